"""GA4 (Google Analytics 4) detector for measurement ids and gtag configuration."""

import re
from typing import Any, Dict, List, Optional, Sequence

from ..models import GA4Result, PageContent, ScriptRecord, Severity
from .base import BaseDetector
from .utils import PatternLibrary, count_matches, object_after, parse_object_literal, read_config_flags, unique


GA4_ID_FORMAT = re.compile(r'^G-[A-Z0-9]{6,12}$', re.IGNORECASE)

GA4_FALSE_POSITIVES = frozenset({
    "G-RECAPTCHA",
    "G-SAMPLING",
    "G-ANIMATION",
    "G-IMAGE",
    "G-VIDEO",
    "G-AUDIO",
})

GA4_CONFIG_KEYS = ("send_page_view", "cookie_domain", "cookie_flags", "anonymize_ip", "debug_mode")

patterns = PatternLibrary("ga4")
patterns.add_pattern("script", r'googletagmanager\.com/gtag/js\?id=(G-[A-Z0-9]+)',
                     description="Official gtag.js loader URL")
patterns.add_pattern("config", r'''gtag\s*\(\s*['"]config['"]\s*,\s*['"](G-[A-Z0-9]+)['"]''',
                     description="gtag('config', 'G-...') call")
patterns.add_pattern("measurement_id", r'''['"]measurement_id['"]\s*:\s*['"](G-[A-Z0-9]+)['"]''')
patterns.add_pattern("quoted_id", r'''['"](G-[A-Z0-9]{6,12})['"]''',
                     description="Any quoted G- string")
patterns.add_pattern("data_attribute", r'''data-(?:ga4?|analytics|measurement)=['"]?(G-[A-Z0-9]+)['"]?''')
patterns.add_pattern(
    "js_variable",
    r'''(?:var|let|const)\s+(?:ga4_?id|measurement_?id|tracking_?id|GA4_ID|MEASUREMENT_ID)\s*=\s*['"](G-[A-Z0-9]+)['"]'''
)
patterns.add_pattern("json_config", r'"(?:ga4|measurement_id|tracking_id|analytics_id)"\s*:\s*"(G-[A-Z0-9]+)"')
patterns.add_pattern("gtag_js", r'gtag\.js\?id=(G-[A-Z0-9]+)')
patterns.add_pattern("platform_key", r'''(?:googleAnalytics|ga4Id|gaTrackingId)['"]?\s*[:=]\s*['"](G-[A-Z0-9]+)['"]''')
patterns.add_pattern("collect", r'google-analytics\.com/g/collect\?.*?tid=(G-[A-Z0-9]+)',
                     description="Measurement hit sent to g/collect")

ANY_GTAG_SCRIPT = re.compile(r'googletagmanager\.com/gtag/js', re.IGNORECASE)
ANY_CONFIG_CALL = re.compile(r'''gtag\s*\(\s*['"]config['"]\s*,''', re.IGNORECASE)
ANY_EVENT_CALL = re.compile(r'''gtag\s*\(\s*['"]event['"]\s*,''', re.IGNORECASE)
GTAG_DEFINITION = re.compile(r'function\s+gtag\s*\(\s*\)\s*\{')


def has_suspicious_casing(candidate: str) -> bool:
    """Lowercase somewhere and uppercase after the ``G-`` prefix."""
    return bool(re.search(r'[a-z]', candidate)) and bool(re.search(r'[A-Z]', candidate[2:]))


def is_valid_ga4_id(candidate: str, reject_suspicious_casing: bool = True) -> bool:
    """Check a raw ``G-`` candidate against format, denylist and casing rules."""
    if not candidate or not GA4_ID_FORMAT.match(candidate):
        return False
    normalized = candidate.upper()
    if not re.search(r'\d', normalized):
        return False
    if normalized in GA4_FALSE_POSITIVES:
        return False
    if reject_suspicious_casing and has_suspicious_casing(candidate):
        return False
    return True


def extract_ga4_config(config_literal: Optional[str]) -> Dict[str, Any]:
    """Known GA4 flags from a ``gtag('config', id, {...})`` object literal."""
    return read_config_flags(parse_object_literal(config_literal), GA4_CONFIG_KEYS)


class GA4Detector(BaseDetector):
    """Detector for GA4 installations via gtag.js."""

    platform = "ga4"
    result_class = GA4Result

    def __init__(self, reject_suspicious_casing: bool = True):
        super().__init__("GA4Detector", "1.0.0")
        self.reject_suspicious_casing = reject_suspicious_casing

    def analyze(self, page: PageContent, scripts: Sequence[ScriptRecord]) -> GA4Result:
        text = self.combined_text(page, scripts)
        result = GA4Result()

        result.ids = self._extract_ids(text)

        has_any_gtag_script = bool(ANY_GTAG_SCRIPT.search(text))
        result.has_script = (
            bool(patterns.find_all("script", text))
            or bool(patterns.find_all("gtag_js", text))
            or has_any_gtag_script
        )
        config_calls = patterns.find_all("config", text)
        result.has_config = (
            bool(config_calls)
            or bool(patterns.find_all("measurement_id", text))
            or bool(ANY_CONFIG_CALL.search(text))
        )
        result.has_events = bool(ANY_EVENT_CALL.search(text))
        result.detected = bool(result.ids) or result.has_script or result.has_config

        for call in config_calls:
            literal = object_after(text, call.end)
            if literal:
                result.config_flags = extract_ga4_config(literal)
                break

        # Own HTML only: vendor bundles legitimately define gtag too
        result.gtag_definitions = count_matches(page.html or "", GTAG_DEFINITION)

        if result.detected:
            result.issues = self._check_issues(result, has_any_gtag_script)
        return result

    def _extract_ids(self, text: str) -> List[str]:
        accepted = []
        for candidate in patterns.extract(text):
            if is_valid_ga4_id(candidate, self.reject_suspicious_casing):
                accepted.append(candidate.upper())
        return unique(accepted)

    def _check_issues(self, result: GA4Result, has_any_gtag_script: bool) -> list:
        issues = []

        if result.has_script and not result.has_config:
            issues.append(self.issue(
                "ga4_script_without_config",
                "GA4 loaded but not configured",
                Severity.HIGH,
                "gtag.js is loaded but no gtag('config', 'G-...') call or measurement_id was found, "
                "so GA4 will not send page views or events.",
                hasScript=True, hasConfig=False,
            ))

        if result.has_config and not has_any_gtag_script:
            issues.append(self.issue(
                "ga4_config_without_script",
                "GA4 configured but gtag.js not found",
                Severity.MEDIUM,
                "GA4 configuration exists but the gtag.js loader was not found. It may be blocked "
                "by CSP or an ad blocker, or loaded dynamically.",
                hasScript=False, hasConfig=True,
            ))

        if result.gtag_definitions > 1:
            issues.append(self.issue(
                "multiple_gtag_definitions",
                "Multiple gtag() definitions",
                Severity.MEDIUM,
                "The page defines the gtag() function more than once, which usually means GA4 is "
                "installed twice and can duplicate events.",
                count=result.gtag_definitions,
            ))

        if result.config_flags.get("send_page_view") is False:
            issues.append(self.issue(
                "ga4_send_page_view_disabled",
                "send_page_view is disabled",
                Severity.MEDIUM,
                "send_page_view: false was found. Unless page views are sent manually (common in "
                "SPAs), GA4 will not record visits.",
                send_page_view=False,
            ))

        if result.has_config and not result.has_events:
            issues.append(self.issue(
                "ga4_no_events_detected",
                "No GA4 events found in code",
                Severity.LOW,
                "GA4 is configured but no gtag('event', ...) calls were found. This can be normal "
                "when events are fired through GTM or after user interaction.",
                hasConfig=True, hasGtagEvent=False,
            ))

        if len(result.ids) > 1:
            issues.append(self.issue(
                "multiple_ga4_ids",
                "Multiple GA4 measurement ids",
                Severity.MEDIUM,
                f"{len(result.ids)} different measurement ids were found. Make sure each one is "
                "intended, otherwise data is split across properties.",
                ids=list(result.ids),
            ))

        return issues
