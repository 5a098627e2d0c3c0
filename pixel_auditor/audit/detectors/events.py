"""Event extraction from page and script text.

Events are mined from the page HTML (which includes inline scripts) and from
external scripts that belong to the site. Each source is scanned in its own
pass; inside a pass the first match for a ``(type, name)`` wins, so a call
picked up by both a strict and a permissive pattern is recorded once.
Repeats across passes are kept and reported by the duplicate finder.
"""

import logging
import re
from typing import Any, Dict, List, Optional, Sequence, Set, Tuple

from ..errors import DetectorParseFailure
from ..models import Event, EventType, PageContent, ScriptRecord
from .utils import (
    extract_object_literal,
    find_all_matches,
    object_after,
    parse_object_literal,
    parse_object_literal_json,
    parse_object_literal_manual,
)

logger = logging.getLogger(__name__)


RESERVED_TOKENS = frozenset({
    "init",
    "track",
    "trackcustom",
    "tracksingle",
    "tracksinglecustom",
    "true",
    "false",
    "null",
    "undefined",
    "function",
    "return",
    "config",
    "consent",
})

META_STANDARD_EVENTS = frozenset({
    "PageView",
    "ViewContent",
    "Search",
    "AddToCart",
    "AddToWishlist",
    "InitiateCheckout",
    "AddPaymentInfo",
    "Purchase",
    "Lead",
    "CompleteRegistration",
    "Contact",
    "CustomizeProduct",
    "Donate",
    "FindLocation",
    "Schedule",
    "StartTrial",
    "SubmitApplication",
    "Subscribe",
})

GA4_RECOMMENDED_EVENTS = frozenset({
    "page_view",
    "view_item",
    "view_item_list",
    "select_item",
    "add_to_cart",
    "remove_from_cart",
    "view_cart",
    "add_to_wishlist",
    "begin_checkout",
    "add_shipping_info",
    "add_payment_info",
    "purchase",
    "refund",
    "generate_lead",
    "sign_up",
    "login",
    "search",
    "share",
})

_Q = r'''\\?['"]'''

GA4_EVENT_CALL = re.compile(r'''gtag\s*\(\s*['"]event['"]\s*,\s*['"]([a-zA-Z][a-zA-Z0-9_]+)['"]''', re.IGNORECASE)
GA4_MINIFIED_EVENT_CALL = re.compile(r'''\b\w{1,3}\s*\(\s*['"]event['"]\s*,\s*['"]([a-z][a-z0-9_]+)['"]''')
DATALAYER_PUSH = re.compile(r'dataLayer\.push\s*\(\s*(?=\{)')
DATALAYER_EVENT_KEY = re.compile(r'''['"]?event['"]?\s*:\s*['"]([^'"]+)['"]''', re.IGNORECASE)
DATALAYER_QUOTED_EVENT_KEY = re.compile(r'''['"]event['"]\s*:''')
SNAKE_CASE_EVENT = re.compile(r'^[a-z][a-z0-9]*(?:_[a-z0-9]+)+$')
META_TRACK_CALL = re.compile(
    rf'''fbq\s*\(\s*{_Q}\s*track\s*{_Q}\s*,\s*(?:{_Q})?((?:[A-Za-z][A-Za-z0-9_]+)|(?:\{{\{{.*?\}}\}}))(?:{_Q})?''',
    re.IGNORECASE,
)
META_TRACK_CUSTOM_CALL = re.compile(
    rf'''fbq\s*\(\s*{_Q}\s*trackCustom\s*{_Q}\s*,\s*{_Q}([A-Za-z][A-Za-z0-9_]+){_Q}''',
    re.IGNORECASE,
)
META_MINIFIED_TRACK_CALL = re.compile(r'''\b\w{1,3}\s*\(\s*['"]track['"]\s*,\s*['"]([A-Za-z]+)['"]''')
META_INIT = re.compile(r'''\b(?:fbq|\w{1,3})\s*\(\s*['"]init['"]\s*,''', re.IGNORECASE)
META_NOSCRIPT_PAGEVIEW = re.compile(r'''facebook\.com/tr/?\?[^"']*ev=PageView''', re.IGNORECASE)
# WooCommerce Pixel Manager fires PageView from its own data layer
WPM_MARKERS = ("wpmDataLayer", "pixel_id")


class _ExtractionPass:
    """Collects events for one source with first-seen-wins dedup."""

    def __init__(self, source: str):
        self.source = source
        self.events: List[Event] = []
        self._seen: Set[Tuple[str, str]] = set()

    def add(self, event_type: EventType, name: Optional[str], params: Optional[Dict[str, Any]] = None) -> bool:
        if not name or is_reserved(name):
            return False
        key = (event_type.value, name)
        if key in self._seen:
            return False
        self._seen.add(key)
        self.events.append(Event(type=event_type, name=name, params=params, source=self.source))
        return True

    def has(self, event_type: EventType, name: str) -> bool:
        return (event_type.value, name) in self._seen


def is_reserved(name: str) -> bool:
    """Language and config keywords that are never event names."""
    return name.strip().lower() in RESERVED_TOKENS


def _params_after(content: str, match_end: int) -> Optional[Dict[str, Any]]:
    literal = object_after(content, match_end)
    return parse_object_literal(literal) if literal else None


def extract_ga4_events(content: str, collector: _ExtractionPass) -> None:
    """``gtag('event', name, {...})``, then minified calls for recommended events."""
    for match in find_all_matches(content, GA4_EVENT_CALL):
        collector.add(EventType.GA4, match.group(1), _params_after(content, match.end))

    for match in find_all_matches(content, GA4_MINIFIED_EVENT_CALL):
        name = match.group(1)
        if name in GA4_RECOMMENDED_EVENTS:
            collector.add(EventType.GA4, name, _params_after(content, match.end))


def extract_gtm_events(content: str, collector: _ExtractionPass) -> None:
    """``dataLayer.push({event: ...})`` calls; the ``event`` key becomes the name.

    The name must be a string literal. When the push only parses through the
    manual scan, the name comes from a quoted ``event`` value so that
    ``{event: someVar}`` is not mistaken for an event called ``someVar``.
    Pushes with a quoted ``'event'`` key and a snake_case name are also
    recorded as GA4 events, since sites use them as a GA4 proxy.
    """
    for match in find_all_matches(content, DATALAYER_PUSH):
        literal = extract_object_literal(content, match.end)
        if not literal:
            continue

        name = None
        try:
            parsed = parse_object_literal_json(literal)
            name = parsed.get("event")
        except DetectorParseFailure as e:
            logger.debug(f"{e}; falling back to manual scan")
            parsed = parse_object_literal_manual(literal)

        if not isinstance(name, str) or not name:
            quoted = DATALAYER_EVENT_KEY.search(literal)
            name = quoted.group(1) if quoted else None
        if not name:
            continue

        params = {k: v for k, v in parsed.items() if k != "event"}
        collector.add(EventType.GTM, name, params)
        if DATALAYER_QUOTED_EVENT_KEY.search(literal) and SNAKE_CASE_EVENT.match(name):
            collector.add(EventType.GA4, name, params)


def extract_meta_pixel_events(content: str, collector: _ExtractionPass) -> None:
    """``fbq('track'|'trackCustom', ...)`` calls plus the implicit PageView.

    The implicit PageView comes from the noscript beacon next to an init, or
    from a WooCommerce Pixel Manager data layer carrying a pixel id.
    """
    for match in find_all_matches(content, META_TRACK_CALL):
        name = match.group(1)
        if name.startswith("{{") and name.endswith("}}"):
            name = f"[Dynamic] {name}"
        collector.add(EventType.META_PIXEL, name, _params_after(content, match.end))

    for match in find_all_matches(content, META_TRACK_CUSTOM_CALL):
        name = match.group(1)
        if is_reserved(name):
            continue
        collector.add(EventType.META_PIXEL, f"Custom: {name}", _params_after(content, match.end))

    for match in find_all_matches(content, META_MINIFIED_TRACK_CALL):
        name = match.group(1)
        if name in META_STANDARD_EVENTS:
            collector.add(EventType.META_PIXEL, name, _params_after(content, match.end))

    # init with no PageView call, but the noscript beacon shows one fires
    if (
        META_INIT.search(content)
        and not collector.has(EventType.META_PIXEL, "PageView")
        and META_NOSCRIPT_PAGEVIEW.search(content)
    ):
        collector.add(EventType.META_PIXEL, "PageView", {"_auto": True})

    if all(marker in content for marker in WPM_MARKERS):
        collector.add(EventType.META_PIXEL, "PageView", {"_auto": True})


def extract_events_from_text(content: str, source: str) -> List[Event]:
    """Run every platform extractor over one source in a single pass."""
    collector = _ExtractionPass(source)
    if content:
        extract_ga4_events(content, collector)
        extract_gtm_events(content, collector)
        extract_meta_pixel_events(content, collector)
    return collector.events


def extract_events(page: PageContent, scripts: Sequence[ScriptRecord]) -> List[Event]:
    """Events fired by the site itself.

    Args:
        page: Retrieved page; its HTML already contains the inline scripts
        scripts: Resolved script records

    Returns:
        Events in source order: page HTML first, then eligible external scripts
    """
    events = extract_events_from_text(page.html or "", "html")

    for script in scripts:
        if not script.is_external or script.exclude_from_events or not script.content:
            continue
        events.extend(extract_events_from_text(script.content, script.src or "external"))

    logger.debug(f"Extracted {len(events)} events")
    return events
