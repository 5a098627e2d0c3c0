"""Unit tests for event extraction."""

from pixel_auditor.audit.capture.page_fetcher import extract_scripts_from_html
from pixel_auditor.audit.detectors.events import extract_events, extract_events_from_text, is_reserved
from pixel_auditor.audit.models import EventType, PageContent, ScriptRecord, ScriptType


def page(html: str) -> PageContent:
    return PageContent(html=html, scripts=extract_scripts_from_html(html), final_url="https://example.com/")


def names(events, event_type=None) -> list:
    return [e.name for e in events if event_type is None or e.type == event_type]


class TestGA4Events:
    """Test gtag event extraction."""

    def test_event_with_params(self):
        events = extract_events_from_text(
            "gtag('event', 'purchase', {transaction_id: 'T-1', value: 10, currency: 'USD'});", "html"
        )

        assert len(events) == 1
        event = events[0]
        assert event.type == "GA4"
        assert event.name == "purchase"
        assert event.params == {"transaction_id": "T-1", "value": 10, "currency": "USD"}
        assert event.source == "html"

    def test_event_without_params(self):
        events = extract_events_from_text("gtag('event', 'login');", "html")
        assert events[0].name == "login"
        assert events[0].params is None

    def test_dynamic_params_use_manual_scan(self):
        events = extract_events_from_text("gtag('event', 'purchase', {value: cart.total, currency: 'USD'});", "html")
        assert events[0].params == {"value": "cart.total", "currency": "USD"}

    def test_minified_calls_need_recommended_name(self):
        """Minified call shapes only count for recommended event names."""
        events = extract_events_from_text("a('event','add_to_cart',{value:1});a('event','my_widget_open');", "x.js")
        assert names(events) == ["add_to_cart"]

    def test_reserved_tokens_skipped(self):
        events = extract_events_from_text("gtag('event', 'config'); gtag('event', 'consent');", "html")
        assert events == []
        assert is_reserved("Config") is True
        assert is_reserved("purchase") is False

    def test_first_seen_wins_within_a_pass(self):
        events = extract_events_from_text("gtag('event','login'); gtag('event','login', {method: 'x'});", "html")
        assert len(events) == 1
        assert events[0].params is None


class TestGTMEvents:
    """Test dataLayer.push event extraction."""

    def test_push_with_event_key(self):
        events = extract_events_from_text(
            "dataLayer.push({event: 'add_to_cart', ecommerce: {value: 5, currency: 'USD'}});", "html"
        )

        assert len(events) == 1
        assert events[0].type == "GTM"
        assert events[0].name == "add_to_cart"
        assert events[0].params == {"ecommerce": {"value": 5, "currency": "USD"}}

    def test_push_without_event_key_ignored(self):
        events = extract_events_from_text("dataLayer.push({user_id: '42'});", "html")
        assert events == []

    def test_variable_event_name_ignored(self):
        """An unquoted value is a JavaScript variable, not an event name."""
        events = extract_events_from_text("dataLayer.push({event: evtName, value: 1});", "html")
        assert events == []

    def test_quoted_name_beside_dynamic_values(self):
        events = extract_events_from_text("dataLayer.push({event: 'lead', value: form.total});", "html")

        assert names(events) == ["lead"]
        assert events[0].params == {"value": "form.total"}

    def test_quoted_snake_case_push_is_also_ga4(self):
        events = extract_events_from_text(
            "dataLayer.push({'event': 'begin_checkout', 'value': 30, 'currency': 'USD'});", "html"
        )

        assert [(e.type, e.name) for e in events] == [("GTM", "begin_checkout"), ("GA4", "begin_checkout")]
        assert events[1].params == {"value": 30, "currency": "USD"}

    def test_unquoted_key_or_plain_name_not_ga4(self):
        """Only a quoted 'event' key with a snake_case name mirrors into GA4."""
        events = extract_events_from_text(
            "dataLayer.push({event: 'view_cart'}); dataLayer.push({'event': 'formSubmit'});", "html"
        )

        assert names(events, EventType.GA4) == []
        assert names(events, EventType.GTM) == ["view_cart", "formSubmit"]


class TestMetaPixelEvents:
    """Test fbq event extraction."""

    def test_track_with_params(self):
        events = extract_events_from_text("fbq('track', 'Purchase', {value: 20, currency: 'EUR'});", "html")

        assert len(events) == 1
        assert events[0].type == "MetaPixel"
        assert events[0].name == "Purchase"
        assert events[0].params == {"value": 20, "currency": "EUR"}

    def test_track_custom(self):
        events = extract_events_from_text("fbq('trackCustom', 'NewsletterSignup');", "html")
        assert names(events) == ["Custom: NewsletterSignup"]

    def test_dynamic_event_name(self):
        events = extract_events_from_text("fbq('track', '{{Event Name}}');", "html")
        assert names(events) == ["[Dynamic] {{Event Name}}"]

    def test_minified_track_needs_standard_event(self):
        events = extract_events_from_text("b('track','Lead');b('track','Whatever');", "x.js")
        assert names(events) == ["Lead"]

    def test_implicit_page_view(self):
        """init plus the noscript PageView beacon yields one synthetic PageView."""
        html = (
            "<script>fbq('init', '123456789012345');</script>"
            '<noscript><img src="https://www.facebook.com/tr?id=123456789012345&ev=PageView&noscript=1"/></noscript>'
        )
        events = extract_events_from_text(html, "html")

        assert len(events) == 1
        assert events[0].name == "PageView"
        assert events[0].params == {"_auto": True}

    def test_no_implicit_page_view_when_explicit(self):
        html = (
            "<script>fbq('init', '123456789012345'); fbq('track', 'PageView');</script>"
            '<noscript><img src="https://www.facebook.com/tr?id=123456789012345&ev=PageView&noscript=1"/></noscript>'
        )
        events = extract_events_from_text(html, "html")

        assert names(events) == ["PageView"]
        assert events[0].params is None

    def test_pixel_manager_page_view(self):
        """A WooCommerce Pixel Manager data layer with a pixel id implies a PageView."""
        script = "window.wpmDataLayer = {pixels: {facebook: {pixel_id: '123456789012345'}}};"
        events = extract_events_from_text(script, "html")

        assert len(events) == 1
        assert events[0].type == "MetaPixel"
        assert events[0].name == "PageView"
        assert events[0].params == {"_auto": True}

    def test_pixel_manager_without_pixel_id(self):
        events = extract_events_from_text("window.wpmDataLayer = {shop: {}};", "html")
        assert events == []


class TestExtractEvents:
    """Test event extraction across page and script sources."""

    def test_page_and_site_scripts(self):
        script = ScriptRecord(type=ScriptType.EXTERNAL, src="https://example.com/app.js",
                              content="gtag('event', 'sign_up');")
        events = extract_events(page("<script>gtag('event', 'login');</script>"), [script])

        assert names(events) == ["login", "sign_up"]
        assert events[1].source == "https://example.com/app.js"

    def test_excluded_scripts_not_mined(self):
        """Third-party payloads are not attributed to the site."""
        vendor = ScriptRecord(type=ScriptType.EXTERNAL, src="https://connect.facebook.net/en_US/fbevents.js",
                              content="fbq('track', 'Purchase');", exclude_from_events=True)
        events = extract_events(page("<html></html>"), [vendor])

        assert events == []

    def test_inline_records_not_mined_twice(self):
        """Inline bodies are part of the HTML pass."""
        html = "<script>gtag('event', 'login');</script>"
        inline = ScriptRecord(type=ScriptType.INLINE, content="gtag('event', 'login');", line=1)
        events = extract_events(page(html), [inline])

        assert len(events) == 1

    def test_repeats_across_sources_are_kept(self):
        script = ScriptRecord(type=ScriptType.EXTERNAL, src="https://example.com/app.js",
                              content="gtag('event', 'login');")
        events = extract_events(page("<script>gtag('event', 'login');</script>"), [script])

        assert names(events, EventType.GA4) == ["login", "login"]
