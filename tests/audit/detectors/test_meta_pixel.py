"""Unit tests for Meta Pixel detector."""

from pixel_auditor.audit.capture.page_fetcher import extract_scripts_from_html
from pixel_auditor.audit.detectors.meta_pixel import (
    MetaPixelDetector,
    detect_pixel_version,
    extract_pixel_config,
    is_valid_pixel_id,
)
from pixel_auditor.audit.models import PageContent, ScriptRecord, ScriptType

BASE_CODE = (
    "<script>!function(f,b,e,v,n,t,s){if(f.fbq)return;n=f.fbq=function(){n.callMethod?"
    "n.callMethod.apply(n,arguments):n.queue.push(arguments)};t=b.createElement(e);t.async=!0;"
    "t.src=v;s=b.getElementsByTagName(e)[0];s.parentNode.insertBefore(t,s)}(window, document,'script',"
    "'https://connect.facebook.net/en_US/fbevents.js');"
    "fbq('init', '123456789012345');fbq('track', 'PageView');</script>"
)
NOSCRIPT = (
    '<noscript><img height="1" width="1" style="display:none" '
    'src="https://www.facebook.com/tr?id=123456789012345&ev=PageView&noscript=1"/></noscript>'
)


def page(html: str) -> PageContent:
    return PageContent(html=html, scripts=extract_scripts_from_html(html), final_url="https://example.com/")


def issue_codes(result) -> list:
    return [issue.code for issue in result.issues]


class TestMetaPixelHelpers:
    """Test pixel id validation and configuration helpers."""

    def test_pixel_id_format(self):
        assert is_valid_pixel_id("1234567890") is True
        assert is_valid_pixel_id("123456789012345") is True
        assert is_valid_pixel_id("123456789") is False
        assert is_valid_pixel_id("12345abc901") is False

    def test_version(self):
        assert detect_pixel_version("fbq('init', '123456789012345')")["version"] == "modern"
        assert detect_pixel_version("_fbq.push(['addPixelId', '1'])")["version"] == "legacy"
        assert detect_pixel_version("")["version"] == "unknown"

    def test_auto_config(self):
        info = detect_pixel_version("fbq('init', '123456789012345', {autoConfig: false})")
        assert info["has_auto_config"] is True
        assert extract_pixel_config("fbq('set', 'autoConfig', false, '123');") == {"autoConfig": False}


class TestMetaPixelDetector:
    """Test MetaPixelDetector functionality."""

    def setup_method(self):
        """Set up test with fresh Meta Pixel detector."""
        self.detector = MetaPixelDetector()

    def test_full_install(self):
        result = self.detector.detect(page(BASE_CODE + NOSCRIPT), [])

        assert result.detected is True
        assert result.ids == ["123456789012345"]
        assert result.has_script is True
        assert result.has_init is True
        assert result.has_track_calls is True
        assert result.has_noscript is True
        assert result.version == "modern"
        assert result.issues == []

    def test_init_only(self, meta_init_only_html):
        """Init without track calls or noscript raises the expected issues."""
        result = self.detector.detect(page(meta_init_only_html), [])

        assert result.detected is True
        assert result.ids == ["1234567890123"]
        severities = {i.code: i.severity for i in result.issues}
        assert severities["pixel_no_track_calls"] == "medium"
        assert severities["missing_noscript_fallback"] == "low"
        assert severities["pixel_init_without_script"] == "medium"

    def test_script_without_init(self):
        html = '<script async src="https://connect.facebook.net/en_US/fbevents.js"></script>'
        result = self.detector.detect(page(html), [])

        assert result.detected is True
        assert result.ids == []
        codes = issue_codes(result)
        assert "pixel_script_without_init" in codes
        assert "pixel_id_not_found" in codes
        assert "pixel_init_without_script" not in codes

    def test_init_with_variable_id(self):
        """fbq('init', someVar) is an init even though the id is unreadable."""
        html = BASE_CODE.replace("'123456789012345'", "window.PIXEL")
        result = self.detector.detect(page(html), [])

        assert result.has_init is True
        assert result.ids == []
        assert "pixel_id_not_found" in issue_codes(result)
        assert "pixel_script_without_init" not in issue_codes(result)

    def test_bare_init_with_variable_id_is_detected(self):
        """An init call alone counts as an install even without an id or the SDK."""
        result = self.detector.detect(page("<script>fbq('init', window.PIXEL);</script>"), [])

        assert result.has_script is False
        assert result.has_config is True
        assert result.detected is True
        assert "pixel_init_without_script" in issue_codes(result)

    def test_duplicate_definitions_and_inits(self):
        """The base code pasted twice duplicates fbq and the init."""
        result = self.detector.detect(page(BASE_CODE + BASE_CODE + NOSCRIPT), [])

        codes = issue_codes(result)
        assert "multiple_fbq_definitions" in codes
        assert "pixel_init_multiple_times" in codes

    def test_different_ids_are_not_duplicate_inits(self):
        html = BASE_CODE + "<script>fbq('init', '987654321098765');</script>" + NOSCRIPT
        result = self.detector.detect(page(html), [])

        assert result.ids == ["123456789012345", "987654321098765"]
        assert "pixel_init_multiple_times" not in issue_codes(result)

    def test_inits_in_external_scripts_are_not_duplicates(self):
        """Duplicate-init counting looks at the page's own HTML only."""
        script = ScriptRecord(type=ScriptType.EXTERNAL, src="https://example.com/app.js",
                              content="fbq('init', '123456789012345');")
        result = self.detector.detect(page(BASE_CODE + NOSCRIPT), [script])

        assert "pixel_init_multiple_times" not in issue_codes(result)

    def test_nothing_found(self):
        result = self.detector.detect(page("<html><body></body></html>"), [])

        assert result.detected is False
        assert result.issues == []
