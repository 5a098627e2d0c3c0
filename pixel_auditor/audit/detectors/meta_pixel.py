"""Meta (Facebook) Pixel detector for pixel ids, fbq init and track calls."""

import re
from typing import Any, Dict, List, Sequence

from ..models import Issue, MetaPixelResult, PageContent, ScriptRecord, Severity
from .base import BaseDetector
from .utils import PatternLibrary, count_matches, unique


PIXEL_ID_FORMAT = re.compile(r'^\d{10,20}$')

patterns = PatternLibrary("metaPixel")
patterns.add_pattern("init", r'''fbq\s*\(\s*['"]init['"]\s*,\s*['"](\d{10,20})['"]''')
patterns.add_pattern("legacy_push_init", r'''_fbq\.push\s*\(\s*\[\s*['"]init['"]\s*,\s*['"](\d{10,20})['"]''')
patterns.add_pattern("config_key", r'''['"]?(?:pixel_?id|fb_pixel_id)['"]?\s*[:=]\s*['"]?(\d{10,20})['"]?''')
patterns.add_pattern("tracking_url", r'''facebook\.com/tr/?\?(?:[^"']*&)?id=(\d{10,20})''',
                     description="Image beacon / noscript URL")
patterns.add_pattern("data_attribute", r'''data-(?:fb-?pixel|pixel-id|facebook-pixel)=['"](\d{10,20})['"]''')
patterns.add_pattern("js_variable",
                     r'''(?:var|let|const)\s+(?:fb_?pixel_?id|pixel_?id|FB_PIXEL_ID)\s*=\s*['"](\d{10,20})['"]''')
patterns.add_pattern("json_config", r'"(?:meta_?pixel|facebook_?pixel|fb_?pixel)"\s*:\s*"(\d{10,20})"')
patterns.add_pattern("queue_init", r'''fbq\.queue\.push\s*\(\s*\[\s*['"]init['"]\s*,\s*['"](\d{10,20})['"]''')
patterns.add_pattern("platform_key", r'''(?:facebook_pixel_id|fbPixelId)['"]?\s*[:=]\s*['"]?(\d{10,20})['"]?''')

INIT_BY_ID_RULES = ("init", "legacy_push_init", "queue_init")

SDK_SCRIPT = re.compile(r'(?:connect\.facebook\.net|facebook\.com)/[a-z_-]+/(?:fbevents|sdk)\.js', re.IGNORECASE)
FBQ_FUNCTION = re.compile(r'fbq\s*=\s*function|n\s*=\s*f\.fbq\s*=\s*function|window\.fbq\s*=', re.IGNORECASE)
FBEVENTS = re.compile(r'fbevents\.js', re.IGNORECASE)
ANY_INIT = re.compile(r'''fbq\s*\(\s*['"]init['"]\s*,''', re.IGNORECASE)
TRACK_CALL = re.compile(r'''fbq\s*\(\s*['"](track|trackCustom)['"]\s*,\s*['"]([A-Za-z0-9_:\-. ]{2,60})['"]''', re.IGNORECASE)
PAGEVIEW_CALL = re.compile(r'''fbq\s*\(\s*['"]track['"]\s*,\s*['"]PageView['"]''', re.IGNORECASE)
FBQ_DEFINITION = re.compile(r'n\s*=\s*f\.fbq\s*=\s*function|window\.fbq\s*=')
NOSCRIPT_BEACON = re.compile(r'''<noscript[^>]*>[\s\S]*?facebook\.com/tr/?\?(?:[^"']*&)?id=''', re.IGNORECASE)


def is_valid_pixel_id(candidate: str) -> bool:
    """Pixel ids are 10-20 digits."""
    return bool(candidate) and bool(PIXEL_ID_FORMAT.match(candidate))


def detect_pixel_version(content: str) -> Dict[str, Any]:
    """Which generation of the base code is installed."""
    content = content or ""
    has_modern = bool(re.search(r'''fbq\s*\(\s*['"]init['"]''', content))
    has_legacy = bool(re.search(r'_fbq\.push', content))
    has_auto_config = bool(re.search(
        r'''fbq\s*\(\s*['"]init['"]\s*,\s*['"](\d{15,16})['"]\s*,\s*\{.*?autoConfig''', content
    ))

    version = "unknown"
    if has_modern:
        version = "modern"
    elif has_legacy:
        version = "legacy"
    return {"version": version, "has_auto_config": has_auto_config}


def extract_pixel_config(content: str) -> Dict[str, Any]:
    """``autoConfig`` / ``debug`` switches set on the pixel."""
    config: Dict[str, Any] = {}
    auto_config = re.search(r'''autoConfig['"]?\s*[:,]\s*['"]?(true|false)''', content or "", re.IGNORECASE)
    if auto_config:
        config["autoConfig"] = auto_config.group(1).lower() == "true"
    debug = re.search(r'''debug['"]\s*:\s*(true|false)''', content or "", re.IGNORECASE)
    if debug:
        config["debug"] = debug.group(1).lower() == "true"
    return config


class MetaPixelDetector(BaseDetector):
    """Detector for Meta Pixel installations."""

    platform = "metaPixel"
    result_class = MetaPixelResult

    def __init__(self):
        super().__init__("MetaPixelDetector", "1.0.0")

    def analyze(self, page: PageContent, scripts: Sequence[ScriptRecord]) -> MetaPixelResult:
        text = self.combined_text(page, scripts)
        html = page.html or ""
        result = MetaPixelResult()

        result.ids = unique(c for c in patterns.extract(text) if is_valid_pixel_id(c))

        has_init_by_id = any(patterns.find_all(name, text) for name in INIT_BY_ID_RULES)
        # fbq('init', someVariable) still counts as an init
        has_init_unknown_id = not has_init_by_id and bool(ANY_INIT.search(text))

        result.has_script = bool(SDK_SCRIPT.search(text) or FBQ_FUNCTION.search(text) or FBEVENTS.search(text))
        result.has_init = has_init_by_id or has_init_unknown_id
        result.has_config = result.has_init
        result.has_track_calls = bool(TRACK_CALL.search(text) or PAGEVIEW_CALL.search(text))
        result.has_noscript = bool(NOSCRIPT_BEACON.search(text))
        result.detected = bool(result.ids) or result.has_script or result.has_config

        result.version = detect_pixel_version(text)["version"]
        result.config_flags = extract_pixel_config(text)

        if result.detected or result.has_init:
            result.issues = self._check_issues(result, html)
        return result

    def _check_issues(self, result: MetaPixelResult, html: str) -> List[Issue]:
        issues = []

        if result.has_script and not result.has_init:
            issues.append(self.issue(
                "pixel_script_without_init",
                "Meta Pixel loaded but not initialized",
                Severity.HIGH,
                "The Meta Pixel script or snippet is present but no fbq('init', ...) call was "
                "found, so no events are recorded.",
                foundScript=True, foundInit=False,
            ))

        if result.has_init and not result.has_script:
            issues.append(self.issue(
                "pixel_init_without_script",
                "Meta Pixel initialized without its script",
                Severity.MEDIUM,
                "fbq('init', ...) was found but neither fbevents.js nor the base snippet was. "
                "It may be blocked by CSP or an ad blocker, or loaded in a non-standard way.",
                foundScript=False, foundInit=True,
            ))

        if result.has_script and not result.ids:
            issues.append(self.issue(
                "pixel_id_not_found",
                "Pixel id not found",
                Severity.MEDIUM,
                "Meta Pixel is present but its id could not be read. It may be obfuscated, "
                "injected through GTM or loaded dynamically.",
                foundScript=True,
            ))

        if result.has_init and not result.has_track_calls:
            issues.append(self.issue(
                "pixel_no_track_calls",
                "Meta Pixel has no track calls",
                Severity.MEDIUM,
                "The pixel is initialized but no fbq('track' | 'trackCustom') or PageView call was "
                "found. On SPAs events may only fire after navigation or interaction.",
                foundInit=True, foundTrack=False,
            ))

        definitions = count_matches(html, FBQ_DEFINITION)
        if definitions > 1:
            issues.append(self.issue(
                "multiple_fbq_definitions",
                "fbq defined more than once",
                Severity.MEDIUM,
                "The page defines fbq more than once, which can duplicate events or break tracking.",
                count=definitions,
            ))

        site_inits = patterns.candidates("init", html)
        unique_inits = unique(site_inits)
        if len(site_inits) > len(unique_inits):
            issues.append(self.issue(
                "pixel_init_multiple_times",
                "Meta Pixel initialized more than once",
                Severity.MEDIUM,
                "fbq('init', ...) is called several times with the same pixel id, which can "
                "duplicate events.",
                totalInits=len(site_inits), uniqueIds=unique_inits,
            ))

        if result.ids and not result.has_noscript:
            issues.append(self.issue(
                "missing_noscript_fallback",
                "Meta Pixel noscript fallback missing",
                Severity.LOW,
                "No <noscript> image fallback was found for the pixel. Not critical, but it covers "
                "visitors without JavaScript.",
                foundNoscript=False,
            ))

        return issues
