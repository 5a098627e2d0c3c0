"""Google Tag Manager detector for container ids and dataLayer setup."""

import re
from typing import List, Sequence

from ..models import DataLayerAnalysis, GTMResult, PageContent, ScriptRecord, Severity
from .base import BaseDetector
from .utils import PatternLibrary, count_matches, unique


GTM_ID_FORMAT = re.compile(r'^GTM-[A-Z0-9]{5,10}$', re.IGNORECASE)

GTM_FALSE_POSITIVES = frozenset({
    "GTM-TEMPLATE",
    "GTM-INDEX",
    "GTM-EXAMPLE",
    "GTM-XXXXXX",
    "GTM-TEST",
    "GTM-DEBUG",
    "GTM-PLACEHOLDER",
})

patterns = PatternLibrary("gtm")
patterns.add_pattern("loader", r'googletagmanager\.com/gtm\.js\?id=(GTM-[A-Z0-9]+)',
                     description="gtm.js container loader")
patterns.add_pattern("noscript_iframe", r'googletagmanager\.com/ns\.html\?id=(GTM-[A-Z0-9]+)',
                     description="<noscript> iframe fallback")
patterns.add_pattern("snippet_start", r'''['"]gtm\.start['"]\s*:[\s\S]*?['"](GTM-[A-Z0-9]+)['"]''')
patterns.add_pattern("quoted_id", r'''['"](GTM-[A-Z0-9]{5,10})['"]''')
patterns.add_pattern("data_attribute", r'''data-(?:gtm|tag-manager|container)=['"]?(GTM-[A-Z0-9]+)['"]?''')
patterns.add_pattern(
    "js_variable",
    r'''(?:var|let|const)\s+(?:gtm_?id|container_?id|GTM_ID|CONTAINER_ID)\s*=\s*['"](GTM-[A-Z0-9]+)['"]'''
)
patterns.add_pattern("json_config", r'"(?:gtm_?id|container_?id|tag_manager)":\s*"(GTM-[A-Z0-9]+)"')
patterns.add_pattern("platform_key",
                     r'''(?:google_tag_manager|gtmContainerId|gtmId)['"]?\s*[:=]\s*['"](GTM-[A-Z0-9]+)['"]''')
patterns.add_pattern("dynamic_snippet", r'new\s+Date\(\)\.getTime\(\)[\s\S]{0,400}?(GTM-[A-Z0-9]+)')
patterns.add_pattern("window_global", r'''window\.(?:gtmId|GTM_ID|containerId)\s*=\s*['"](GTM-[A-Z0-9]+)['"]''')

DATALAYER_INIT = re.compile(
    r'dataLayer\s*=\s*(?:window\.)?(?:dataLayer\s*\|\|\s*)?\[\]'
    r'|w\[l\]\s*=\s*w\[l\]\s*\|\|\s*\[\]'
)
DATALAYER_GUARDED_INIT = re.compile(r'dataLayer\s*=\s*(?:window\.)?dataLayer\s*\|\|\s*\[\]')
DATALAYER_RESET = re.compile(r'dataLayer\s*=\s*\[\]')
DATALAYER_PUSH = re.compile(r'dataLayer\.push')
WINDOW_DATALAYER_ASSIGN = re.compile(r'window\.dataLayer\s*=')
ANY_LOADER = re.compile(r'googletagmanager\.com/gtm\.js', re.IGNORECASE)
SNIPPET_MARKER = re.compile(r'''['"]gtm\.start['"]''')


def is_valid_gtm_id(candidate: str) -> bool:
    """``GTM-`` plus 5-10 alphanumerics, at least one digit, not a placeholder."""
    if not candidate or not GTM_ID_FORMAT.match(candidate):
        return False
    normalized = candidate.upper()
    return bool(re.search(r'\d', normalized)) and normalized not in GTM_FALSE_POSITIVES


def extract_gtm_ids(text: str) -> List[str]:
    """All valid container ids mentioned anywhere in ``text``."""
    return unique(c.upper() for c in patterns.extract(text) if is_valid_gtm_id(c))


def analyze_data_layer(content: str) -> DataLayerAnalysis:
    """Summarize how ``dataLayer`` is initialized and used."""
    inits = count_matches(content, DATALAYER_GUARDED_INIT)
    pushes = count_matches(content, DATALAYER_PUSH)
    return DataLayerAnalysis(
        exists=inits > 0 or pushes > 0,
        initialized=inits > 0,
        multiple_inits=inits > 1,
        push_count=pushes,
    )


class GTMDetector(BaseDetector):
    """Detector for Google Tag Manager containers."""

    platform = "gtm"
    result_class = GTMResult

    def __init__(self):
        super().__init__("GTMDetector", "1.0.0")

    def analyze(self, page: PageContent, scripts: Sequence[ScriptRecord]) -> GTMResult:
        text = self.combined_text(page, scripts)
        html = page.html or ""
        result = GTMResult()

        result.ids = extract_gtm_ids(text)
        result.containers = list(result.ids)

        # Loader/snippet signals come from the site's own code; Google's
        # libraries reference gtm.js internally
        own_text = "\n".join([html] + [
            s.content for s in scripts
            if s.is_external and s.content and "googletagmanager.com" not in (s.src or "")
        ])
        result.has_script = bool(ANY_LOADER.search(own_text))
        result.has_config = bool(SNIPPET_MARKER.search(own_text))
        result.has_noscript = bool(patterns.find_all("noscript_iframe", html))
        result.detected = bool(result.ids) or result.has_script or result.has_config

        result.data_layer = analyze_data_layer(text)

        if result.detected:
            result.issues = self._check_issues(result, html, own_text)
        return result

    def _check_issues(self, result: GTMResult, html: str, own_text: str) -> list:
        issues = []
        loader_tags = patterns.find_all("loader", html)

        if loader_tags and not result.has_noscript:
            issues.append(self.issue(
                "missing_noscript_fallback",
                "GTM noscript fallback missing",
                Severity.LOW,
                "The gtm.js loader is present but the <noscript> iframe (ns.html) is not, so "
                "visitors without JavaScript are not tracked.",
            ))

        init_count = count_matches(own_text, DATALAYER_INIT)
        if init_count == 0 and not WINDOW_DATALAYER_ASSIGN.search(own_text):
            issues.append(self.issue(
                "datalayer_not_initialized",
                "dataLayer is not initialized",
                Severity.MEDIUM,
                "No dataLayer initialization was found before GTM loads. Pushes made before the "
                "container arrives can be lost.",
            ))

        if init_count > 1 and DATALAYER_RESET.search(own_text):
            issues.append(self.issue(
                "multiple_datalayer_init",
                "dataLayer initialized more than once",
                Severity.LOW,
                "dataLayer is assigned several times; a plain `dataLayer = []` after the first "
                "one wipes earlier pushes.",
                count=init_count,
            ))

        loaded_ids = [m.group(1).upper() for m in loader_tags]
        if len(loaded_ids) > len(set(loaded_ids)):
            issues.append(self.issue(
                "gtm_loaded_multiple_times",
                "GTM container loaded more than once",
                Severity.MEDIUM,
                "The same container is loaded by more than one gtm.js tag, which fires every "
                "tag twice.",
                loads=len(loaded_ids),
            ))

        if len(result.containers) > 1:
            issues.append(self.issue(
                "gtm_multiple_containers",
                "Multiple GTM containers",
                Severity.MEDIUM,
                f"{len(result.containers)} containers were found. Multiple containers are "
                "supported but often duplicate tags.",
                containers=list(result.containers),
            ))

        return issues
