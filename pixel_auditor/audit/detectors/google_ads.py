"""Google Ads detector for AW- account ids, conversion events and linker signals."""

import re
from typing import Any, Dict, List, Optional, Sequence

from ..models import GoogleAdsResult, Issue, PageContent, ScriptRecord, Severity
from .base import BaseDetector
from .utils import PatternLibrary, find_all_matches, object_after, parse_object_literal, read_config_flags, unique


GOOGLE_ADS_ID_FORMAT = re.compile(r'^AW-\d{9,12}$')

GOOGLE_ADS_CONFIG_KEYS = (
    "allow_enhanced_conversions",
    "allow_ad_personalization_signals",
    "conversion_linker",
    "send_page_view",
    "remarketing_only",
)

patterns = PatternLibrary("googleAds")
patterns.add_pattern("script", r'googletagmanager\.com/gtag/js\?id=(AW-\d+)')
patterns.add_pattern("config", r'''gtag\s*\(\s*['"]config['"]\s*,\s*['"](AW-\d+)['"]''')
patterns.add_pattern("quoted_id", r'''['"](AW-\d{9,12})['"]''')
patterns.add_pattern("data_attribute", r'''data-(?:google-?ads?|conversion|aw)=['"]?(AW-\d+)['"]?''')
patterns.add_pattern("js_variable",
                     r'''(?:var|let|const)\s+(?:google_?ads?_?id|aw_?id|conversion_?id)\s*=\s*['"](AW-\d+)['"]''')
patterns.add_pattern("json_config", r'"(?:google_?ads?|aw_?id|adwords)"\s*:\s*"(AW-\d+)"')
patterns.add_pattern("goog_report", r'''goog_report_conversion\s*\(\s*['"](AW-\d+)''')
patterns.add_pattern("numeric_conversion", r'googleadservices\.com/pagead/conversion/(\d{9,12})',
                     description="Legacy conversion endpoint with a bare numeric id")
patterns.add_pattern("linker", r'googleads\.g\.doubleclick\.net|www\.googleadservices\.com/pagead/conversion/(AW-?\d+|\d+)',
                     description="Conversion linker / pagead endpoints")

ID_RULES = ("script", "config", "quoted_id", "data_attribute", "js_variable", "json_config", "goog_report")

CONVERSION_EVENT = re.compile(r'''gtag\s*\(\s*['"]event['"]\s*,\s*['"]conversion['"]''', re.IGNORECASE)
SEND_TO = re.compile(r'''['"]?send_to['"]?\s*:\s*['"](AW-\d+(?:/[^'"]+)?)['"]''', re.IGNORECASE)
SEND_TO_WITH_LABEL = re.compile(r'''['"]send_to['"]\s*:\s*['"]AW-\d+/''', re.IGNORECASE)
REPORT_CONVERSION = re.compile(r'gtag_report_conversion\s*\([^)]*\)|function\s+gtag_report_conversion')
ANY_GTAG_SCRIPT = re.compile(r'googletagmanager\.com/gtag/js', re.IGNORECASE)
ANY_AW_CONFIG = re.compile(r'''gtag\s*\(\s*['"]config['"]\s*,\s*['"]AW-''', re.IGNORECASE)
ANY_LINKER = re.compile(r'googleadservices\.com/pagead/conversion|googleads\.g\.doubleclick\.net', re.IGNORECASE)
BARE_SEND_TO = re.compile(r'^AW-\d+$', re.IGNORECASE)
ENHANCED_CONVERSIONS = re.compile(r'allow_enhanced_conversions[\'"]?\s*:\s*true|enhanced_conversions', re.IGNORECASE)
REMARKETING = re.compile(r'remarketing_only[\'"]?\s*:\s*true|google_remarketing_only', re.IGNORECASE)


def is_valid_google_ads_id(candidate: str) -> bool:
    """``AW-`` followed by 9-12 digits."""
    return bool(candidate) and bool(GOOGLE_ADS_ID_FORMAT.match(candidate))


def extract_google_ads_config(content: Optional[str]) -> Dict[str, Any]:
    """Account ids, labelled conversions and feature flags mentioned in ``content``."""
    if not content:
        return {
            "ids": [],
            "conversions": [],
            "has_enhanced_conversions": False,
            "has_remarketing_tag": False,
        }
    return {
        "ids": unique(m.group(1) for m in find_all_matches(content, r'''['"]?(AW-[0-9]+)['"]?''')),
        "conversions": unique(m.text for m in find_all_matches(content, r'AW-[0-9]+/[A-Za-z0-9_-]+')),
        "has_enhanced_conversions": bool(ENHANCED_CONVERSIONS.search(content)),
        "has_remarketing_tag": bool(REMARKETING.search(content)),
    }


def _as_aw_id(raw: str) -> str:
    if raw.upper().startswith("AW-"):
        return "AW-" + raw[3:]
    if raw.upper().startswith("AW"):
        return "AW-" + raw[2:]
    return f"AW-{raw}"


class GoogleAdsDetector(BaseDetector):
    """Detector for Google Ads tags and conversion tracking."""

    platform = "googleAds"
    result_class = GoogleAdsResult

    def __init__(self):
        super().__init__("GoogleAdsDetector", "1.0.0")

    def analyze(self, page: PageContent, scripts: Sequence[ScriptRecord]) -> GoogleAdsResult:
        text = self.combined_text(page, scripts)
        result = GoogleAdsResult()

        candidates = patterns.extract(text, ID_RULES)

        conversions = self._find_conversions(text)
        candidates.extend(c.split("/")[0] for c in conversions)
        candidates.extend(f"AW-{n}" for n in patterns.candidates("numeric_conversion", text))

        linker_matches = patterns.find_all("linker", text)
        candidates.extend(_as_aw_id(m.group(1)) for m in linker_matches if m.group(1))

        result.ids = unique(c for c in candidates if is_valid_google_ads_id(c))
        result.conversions = unique(conversions)

        has_any_gtag_script = bool(ANY_GTAG_SCRIPT.search(text))
        # gtag.js alone is just as likely to be GA4; only count it with an AW id around
        result.has_script = bool(patterns.find_all("script", text)) or (has_any_gtag_script and bool(result.ids))
        config_calls = patterns.find_all("config", text)
        result.has_config = bool(config_calls) or bool(ANY_AW_CONFIG.search(text))
        result.has_conversions = (
            bool(result.conversions)
            or bool(SEND_TO_WITH_LABEL.search(text))
            or bool(CONVERSION_EVENT.search(text))
        )
        result.has_conversion_linker = bool(linker_matches) or bool(ANY_LINKER.search(text))
        result.has_report_conversion = bool(REPORT_CONVERSION.search(text))

        result.detected = (
            bool(result.ids)
            or result.has_script
            or result.has_config
            or result.has_report_conversion
            or result.has_conversion_linker
        )

        for call in config_calls:
            literal = object_after(text, call.end)
            if literal:
                result.config_flags = read_config_flags(parse_object_literal(literal), GOOGLE_ADS_CONFIG_KEYS)
                break

        result.has_enhanced_conversions = (
            result.config_flags.get("allow_enhanced_conversions") in (True, "true", 1, "1")
            or extract_google_ads_config(text)["has_enhanced_conversions"]
        )

        if result.detected:
            result.issues = self._check_issues(result, has_any_gtag_script)
        return result

    def _find_conversions(self, text: str) -> List[str]:
        """``send_to`` targets of ``gtag('event', 'conversion', {...})`` calls."""
        found = []
        for call in find_all_matches(text, CONVERSION_EVENT):
            literal = object_after(text, call.end)
            if not literal:
                continue
            match = SEND_TO.search(literal)
            if match:
                found.append(match.group(1).strip())
        return found

    def _check_issues(self, result: GoogleAdsResult, has_any_gtag_script: bool) -> List[Issue]:
        issues = []

        if result.has_script and not result.has_config:
            issues.append(self.issue(
                "google_ads_script_without_config",
                "Google Ads loaded but not configured",
                Severity.HIGH,
                "gtag.js is loaded for an AW- account but no gtag('config', 'AW-...') call was "
                "found, so the tag may not work.",
                hasScript=True, hasConfig=False,
            ))

        if result.has_config and not has_any_gtag_script:
            issues.append(self.issue(
                "google_ads_config_without_script",
                "Google Ads configured but gtag.js not found",
                Severity.MEDIUM,
                "A Google Ads configuration exists but gtag.js was not found. It may be blocked by "
                "CSP or an ad blocker, or loaded dynamically.",
                hasScript=False, hasConfig=True,
            ))

        if result.has_conversion_linker and not result.has_conversions:
            issues.append(self.issue(
                "google_ads_linker_without_conversions",
                "Google Ads tracking found but no conversions",
                Severity.MEDIUM,
                "Conversion linker or pagead signals are present but no conversion event with "
                "send_to (AW-.../LABEL) was found.",
                hasConversionLinker=True, hasConversions=False,
            ))

        if (result.has_config or result.ids) and not result.has_conversions:
            issues.append(self.issue(
                "google_ads_no_conversions_detected",
                "No Google Ads conversions found",
                Severity.HIGH,
                "A Google Ads id is present but no gtag('event', 'conversion', {send_to: "
                "'AW-.../LABEL'}) call was found, so conversions are probably not measured.",
                awIds=result.ids[:5],
            ))

        missing_label = [c for c in result.conversions if BARE_SEND_TO.match(c)]
        if missing_label:
            issues.append(self.issue(
                "google_ads_send_to_missing_label",
                "Conversion send_to has no label",
                Severity.HIGH,
                "send_to uses AW-XXXXXXXXX without the /LABEL suffix. Conversion actions are "
                "addressed as AW-XXXXXXXXX/LABEL.",
                send_to=missing_label[:10],
            ))

        if result.has_report_conversion and not result.has_conversions:
            issues.append(self.issue(
                "google_ads_report_conversion_without_send_to",
                "Conversion helper found without send_to",
                Severity.MEDIUM,
                "gtag_report_conversion is defined or called but no send_to target was found. "
                "The flow may be incomplete or depend on dynamic values.",
                hasReportConversion=True,
            ))

        if len(result.ids) > 1:
            issues.append(self.issue(
                "google_ads_multiple_aw_ids",
                "Multiple Google Ads ids",
                Severity.MEDIUM,
                "More than one AW- account is present. This can be intentional but often causes "
                "double counting.",
                awIds=result.ids[:10],
            ))

        if not result.has_enhanced_conversions and (result.has_conversions or result.has_report_conversion):
            issues.append(self.issue(
                "google_ads_enhanced_conversions_not_detected",
                "Enhanced Conversions not detected",
                Severity.LOW,
                "Enhanced Conversions can improve attribution for lead and checkout flows. No "
                "allow_enhanced_conversions signal was found.",
                hasEnhancedConversions=False,
            ))

        return issues
