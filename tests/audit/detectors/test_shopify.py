"""Unit tests for Shopify storefront signals."""

import json

from pixel_auditor.audit.detectors.shopify import (
    detect_shopify_signals,
    extract_shopify_app_names,
    extract_shopify_pixels_config,
)


def web_pixels_html(pixels) -> str:
    """Storefront page carrying a ``webPixelsConfigList`` blob."""
    blob = json.dumps({"webPixelsConfigList": pixels})
    return (
        '<html><head><script src="https://cdn.shopify.com/s/trekkie.storefront.js"></script>'
        f'<script id="web-pixels-manager-setup">window.webPixelsManager.init({blob});</script>'
        '</head><body></body></html>'
    )


GOOGLE_PIXEL = {
    "id": "1",
    "apiClientId": 1780363,
    "configuration": json.dumps({
        "config": json.dumps({
            "google_tag_ids": ["G-ABCD123456", "AW-123456789", "MC-ABCD12345"],
            "gtag_events": [{"type": "purchase", "action_label": ["AW-123456789/xyzLabel"]}],
        }),
    }),
}
META_PIXEL = {
    "id": "2",
    "apiClientId": 2329312,
    "configuration": json.dumps({"pixel_id": "123456789012345", "pixel_type": "facebook_pixel"}),
}


class TestShopifyPixelsConfig:
    """Test webPixelsConfigList parsing."""

    def test_nested_configuration(self):
        ids = extract_shopify_pixels_config(web_pixels_html([GOOGLE_PIXEL, META_PIXEL]))

        assert ids["ga4"] == ["G-ABCD123456"]
        assert ids["google_ads"] == ["AW-123456789"]
        assert ids["merchant_center"] == ["MC-ABCD12345"]
        assert ids["meta_pixel"] == ["123456789012345"]

    def test_configuration_as_object(self):
        pixel = {"configuration": {"config": {"google_tag_ids": ["G-ZZZZ999999"]}}}
        ids = extract_shopify_pixels_config(web_pixels_html([pixel]))

        assert ids["ga4"] == ["G-ZZZZ999999"]

    def test_unparseable_blob_falls_back_to_text_scan(self):
        html = (
            "<script>var cfg = {webPixelsConfigList: [{configuration: "
            "'{\"google_tag_ids\":[\"G-ABCD123456\"],\"pixel_id\":\"123456789012345\"}'}]};</script>"
        )
        ids = extract_shopify_pixels_config(html)

        assert ids["ga4"] == ["G-ABCD123456"]
        assert ids["meta_pixel"] == ["123456789012345"]

    def test_no_config(self):
        ids = extract_shopify_pixels_config("<html></html>")
        assert ids == {"ga4": [], "google_ads": [], "merchant_center": [], "meta_pixel": []}


class TestShopifySignals:
    """Test storefront detection."""

    def test_storefront_with_apps(self):
        info = detect_shopify_signals(web_pixels_html([GOOGLE_PIXEL, META_PIXEL]))

        assert info.is_shopify is True
        assert info.has_web_pixels_manager is True
        assert info.has_trekkie_tracking is True
        assert info.apps_detected == ["Google & YouTube (Official)", "Meta Pixel (Facebook)"]
        assert info.ga4_ids == ["G-ABCD123456"]
        assert info.merchant_center_ids == ["MC-ABCD12345"]

    def test_app_names_deduplicated(self):
        html = '"apiClientId": 123074, "apiClientId": 123074, "apiClientId": 42'
        assert extract_shopify_app_names(html) == ["Klaviyo"]

    def test_not_a_storefront(self, ga4_html):
        info = detect_shopify_signals(ga4_html)

        assert info.is_shopify is False
        assert info.apps_detected == []
        assert info.ga4_ids == []
