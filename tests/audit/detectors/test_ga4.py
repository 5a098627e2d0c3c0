"""Unit tests for GA4 detector."""

from pixel_auditor.audit.capture.page_fetcher import extract_scripts_from_html
from pixel_auditor.audit.detectors.ga4 import (
    GA4_FALSE_POSITIVES,
    GA4Detector,
    extract_ga4_config,
    has_suspicious_casing,
    is_valid_ga4_id,
)
from pixel_auditor.audit.models import PageContent, ScriptRecord, ScriptType


def page(html: str) -> PageContent:
    return PageContent(html=html, scripts=extract_scripts_from_html(html), final_url="https://example.com/")


def issue_codes(result) -> list:
    return [issue.code for issue in result.issues]


class TestGA4IdValidation:
    """Test measurement id validation."""

    def test_valid_ids(self):
        assert is_valid_ga4_id("G-ABC12345") is True
        assert is_valid_ga4_id("G-1234567890") is True
        assert is_valid_ga4_id("G-abc12345") is True

    def test_format_rejections(self):
        """Prefix, length and charset are enforced."""
        assert is_valid_ga4_id("G-ABC1") is False           # too short
        assert is_valid_ga4_id("G-ABC1234567890") is False  # too long
        assert is_valid_ga4_id("UA-12345-1") is False
        assert is_valid_ga4_id("G-ABC_12345") is False
        assert is_valid_ga4_id("") is False

    def test_all_letters_rejected(self):
        """An id needs at least one digit."""
        assert is_valid_ga4_id("G-ABCDEFGH") is False

    def test_denylist(self):
        """Known false positives are never accepted."""
        for candidate in GA4_FALSE_POSITIVES:
            assert is_valid_ga4_id(candidate) is False

    def test_suspicious_casing_is_configurable(self):
        """Mixed case after the prefix is rejected only when the heuristic is on."""
        assert has_suspicious_casing("G-AbC12345") is True
        assert has_suspicious_casing("G-ABC12345") is False
        assert is_valid_ga4_id("G-AbC12345") is False
        assert is_valid_ga4_id("G-AbC12345", reject_suspicious_casing=False) is True


class TestGA4ConfigExtraction:
    """Test configuration flag extraction."""

    def test_known_flags(self):
        flags = extract_ga4_config("{send_page_view: false, 'anonymize_ip': true, other: 1}")
        assert flags == {"send_page_view": False, "anonymize_ip": True}

    def test_unparseable_literal_uses_manual_scan(self):
        flags = extract_ga4_config("{send_page_view: false, cookie_domain: window.location.hostname}")
        assert flags["send_page_view"] is False

    def test_missing_literal(self):
        assert extract_ga4_config(None) == {}


class TestGA4Detector:
    """Test GA4Detector functionality."""

    def setup_method(self):
        """Set up test with fresh GA4 detector."""
        self.detector = GA4Detector()

    def test_detector_properties(self):
        """Test basic detector properties."""
        assert self.detector.name == "GA4Detector"
        assert self.detector.version == "1.0.0"
        assert self.detector.platform == "ga4"

    def test_full_install(self, ga4_html):
        """Loader, config and event produce a clean detection."""
        result = self.detector.detect(page(ga4_html), [])

        assert result.detected is True
        assert result.ids == ["G-ABC12345"]
        assert result.has_script is True
        assert result.has_config is True
        assert result.has_events is True
        assert result.issues == []

    def test_loader_without_config(self):
        """Only the loader URL: detected without an id and flagged high."""
        html = '<script async src="https://www.googletagmanager.com/gtag/js"></script>'
        result = self.detector.detect(page(html), [])

        assert result.detected is True
        assert result.ids == []
        assert "ga4_script_without_config" in issue_codes(result)
        issue = next(i for i in result.issues if i.code == "ga4_script_without_config")
        assert issue.severity == "high"
        assert issue.platform == "ga4"

    def test_config_without_script(self):
        """A config call with no loader is flagged medium."""
        html = "<script>gtag('config', 'G-ZZZ99999');</script>"
        result = self.detector.detect(page(html), [])

        assert result.detected is True
        assert result.ids == ["G-ZZZ99999"]
        codes = issue_codes(result)
        assert "ga4_config_without_script" in codes
        assert "ga4_no_events_detected" in codes

    def test_send_page_view_disabled(self):
        """send_page_view: false in the first config call is reported."""
        html = (
            '<script src="https://www.googletagmanager.com/gtag/js?id=G-ABC12345"></script>'
            "<script>gtag('config', 'G-ABC12345', {send_page_view: false});"
            "gtag('event', 'page_view');</script>"
        )
        result = self.detector.detect(page(html), [])

        assert result.config_flags == {"send_page_view": False}
        assert "ga4_send_page_view_disabled" in issue_codes(result)

    def test_multiple_gtag_definitions_counted_in_html_only(self):
        """Duplicate gtag() definitions in the page HTML are flagged; script bodies are ignored."""
        snippet = "<script>window.dataLayer = window.dataLayer || []; function gtag(){dataLayer.push(arguments);}" \
                  "gtag('config', 'G-ABC12345'); gtag('event', 'login');</script>"
        html = '<script src="https://www.googletagmanager.com/gtag/js?id=G-ABC12345"></script>' + snippet + snippet
        result = self.detector.detect(page(html), [])
        assert result.gtag_definitions == 2
        assert "multiple_gtag_definitions" in issue_codes(result)

        single = '<script src="https://www.googletagmanager.com/gtag/js?id=G-ABC12345"></script>' + snippet
        vendor = ScriptRecord(type=ScriptType.EXTERNAL, src="https://example.com/vendor.js",
                              content="function gtag(){dataLayer.push(arguments);}")
        result = self.detector.detect(page(single), [vendor])
        assert result.gtag_definitions == 1
        assert "multiple_gtag_definitions" not in issue_codes(result)

    def test_multiple_ids(self):
        """Two measurement ids raise multiple_ga4_ids."""
        html = (
            '<script src="https://www.googletagmanager.com/gtag/js?id=G-ABC12345"></script>'
            "<script>gtag('config', 'G-ABC12345'); gtag('config', 'G-XYZ67890'); "
            "gtag('event', 'login');</script>"
        )
        result = self.detector.detect(page(html), [])

        assert result.ids == ["G-ABC12345", "G-XYZ67890"]
        assert "multiple_ga4_ids" in issue_codes(result)

    def test_ids_from_external_script(self):
        """Ids inside fetched script bodies are found."""
        script = ScriptRecord(type=ScriptType.EXTERNAL, src="https://example.com/app.js",
                              content="const MEASUREMENT_ID = 'G-APP12345';")
        result = self.detector.detect(page("<html></html>"), [script])

        assert result.ids == ["G-APP12345"]
        assert result.detected is True

    def test_suspicious_casing_rejected_by_default(self):
        """Minifier-like mixed-case candidates are dropped unless configured otherwise."""
        html = "<script>var x = 'G-AbC12345';</script>"

        assert self.detector.detect(page(html), []).ids == []
        assert GA4Detector(reject_suspicious_casing=False).detect(page(html), []).ids == ["G-ABC12345"]

    def test_denylisted_ids_never_reported(self):
        html = "<script>var widget = 'G-RECAPTCHA'; var real = 'G-REAL1234';</script>"
        result = self.detector.detect(page(html), [])
        assert result.ids == ["G-REAL1234"]

    def test_nothing_found(self):
        """A page without GA4 is not detected and raises nothing."""
        result = self.detector.detect(page("<html><body>Hello</body></html>"), [])

        assert result.detected is False
        assert result.ids == []
        assert result.issues == []

    def test_analysis_failure_returns_empty_result(self, monkeypatch):
        """Exceptions inside analysis never escape detect()."""
        def boom(*args, **kwargs):
            raise RuntimeError("broken rule")

        monkeypatch.setattr(self.detector, "analyze", boom)
        result = self.detector.detect(page("<html></html>"), [])

        assert result.detected is False
        assert result.ids == []
