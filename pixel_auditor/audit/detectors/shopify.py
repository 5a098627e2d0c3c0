"""Shopify storefront signals.

Shopify's Web Pixels Manager loads tracking from a ``webPixelsConfigList``
JSON blob instead of ordinary script tags. These signals are contextual:
they explain why a store can track without visible tags, they are never
scored.
"""

import json
import logging
import re
from typing import Any, Dict, List

from ..models import ShopifyInfo
from .ga4 import is_valid_ga4_id
from .utils import extract_balanced, find_all_matches, unique

logger = logging.getLogger(__name__)


SHOPIFY_APPS = {
    1780363: "Google & YouTube (Official)",
    2329312: "Meta Pixel (Facebook)",
    4383523: "TikTok Pixel",
    12388204545: "Third-party Analytics App",
    2775569: "Shopify Analytics",
    123074: "Klaviyo",
}

STOREFRONT_MARKERS = re.compile(r'Shopify\.(?:shop|theme|locale|currency)|myshopify\.com|cdn\.shopify\.com',
                                re.IGNORECASE)
WEB_PIXELS_MANAGER = re.compile(r'web-pixels-manager|webPixelsManager', re.IGNORECASE)
MONORAIL = re.compile(r'monorail-edge\.shopifysvc\.com', re.IGNORECASE)
TREKKIE = re.compile(r'trekkie|shopify-analytics', re.IGNORECASE)
API_CLIENT_ID = re.compile(r'"apiClientId":\s*(\d+)')
WEB_PIXELS_CONFIG = re.compile(r'''["']?webPixelsConfigList["']?\s*:\s*(?=\[)''', re.IGNORECASE)

# Loose id scans used when the config blob cannot be parsed
GA4_IN_TEXT = re.compile(r'''['"\\]?(G-[A-Z0-9]{8,12})['"\\]?''', re.IGNORECASE)
ADS_IN_TEXT = re.compile(r'''['"\\]?(AW-\d{9,12})['"\\]?''')
MC_IN_TEXT = re.compile(r'''['"\\]?(MC-[A-Z0-9]{8,12})['"\\]?''', re.IGNORECASE)
META_IN_TEXT = re.compile(r'''pixel_id['":\s\\]+['"\\]?(\d{15,16})['"\\]?''', re.IGNORECASE)


def detect_shopify_tracking_patterns(html: str) -> Dict[str, Any]:
    """Shopify-specific tracking infrastructure present in the page."""
    html = html or ""
    return {
        "has_web_pixels_manager": bool(WEB_PIXELS_MANAGER.search(html)),
        "has_monorail_tracking": bool(MONORAIL.search(html)),
        "has_trekkie_tracking": bool(TREKKIE.search(html)),
        "apps_detected": extract_shopify_app_names(html),
    }


def extract_shopify_app_names(html: str) -> List[str]:
    """Names of known tracking apps referenced by ``apiClientId``."""
    apps = []
    for match in find_all_matches(html or "", API_CLIENT_ID):
        name = SHOPIFY_APPS.get(int(match.group(1)))
        if name:
            apps.append(name)
    return unique(apps)


def _route_google_id(tag_id: str, ids: Dict[str, List[str]]) -> None:
    base = tag_id.split("/")[0].upper()
    if base.startswith("G-"):
        ids["ga4"].append(base)
    elif base.startswith("AW-"):
        ids["google_ads"].append(base)
    elif base.startswith("MC-"):
        ids["merchant_center"].append(base)


def _scan_ids(text: str, ids: Dict[str, List[str]]) -> None:
    for match in find_all_matches(text, GA4_IN_TEXT):
        if is_valid_ga4_id(match.group(1)):
            ids["ga4"].append(match.group(1).upper())
    ids["google_ads"].extend(m.group(1) for m in find_all_matches(text, ADS_IN_TEXT))
    ids["merchant_center"].extend(m.group(1).upper() for m in find_all_matches(text, MC_IN_TEXT))
    ids["meta_pixel"].extend(m.group(1) for m in find_all_matches(text, META_IN_TEXT))


def extract_shopify_pixels_config(html: str) -> Dict[str, List[str]]:
    """Platform ids configured through ``webPixelsConfigList``."""
    ids: Dict[str, List[str]] = {"ga4": [], "google_ads": [], "merchant_center": [], "meta_pixel": []}
    match = WEB_PIXELS_CONFIG.search(html or "")
    if not match:
        return ids
    blob = extract_balanced(html, match.end(), "[", "]") or html[match.end():]

    try:
        pixels = json.loads(blob)
    except ValueError as e:
        logger.debug(f"webPixelsConfigList is not valid JSON, scanning text instead: {e}")
        _scan_ids(blob, ids)
        return {key: unique(values) for key, values in ids.items()}

    for pixel in pixels if isinstance(pixels, list) else []:
        raw = pixel.get("configuration") if isinstance(pixel, dict) else None
        if not raw:
            continue
        try:
            config = json.loads(raw) if isinstance(raw, str) else raw
        except ValueError:
            _scan_ids(str(raw), ids)
            continue
        if not isinstance(config, dict):
            continue

        if config.get("pixel_id") and config.get("pixel_type") == "facebook_pixel":
            ids["meta_pixel"].append(str(config["pixel_id"]))

        inner = config.get("config")
        if not inner:
            continue
        try:
            inner_config = json.loads(inner) if isinstance(inner, str) else inner
        except ValueError:
            _scan_ids(str(inner), ids)
            continue
        if not isinstance(inner_config, dict):
            continue
        for tag_id in inner_config.get("google_tag_ids") or []:
            _route_google_id(str(tag_id), ids)
        for event in inner_config.get("gtag_events") or []:
            for label in (event.get("action_label") or []) if isinstance(event, dict) else []:
                _route_google_id(str(label), ids)

    return {key: unique(values) for key, values in ids.items()}


def detect_shopify_signals(html: str) -> ShopifyInfo:
    """Combine storefront markers, tracking infrastructure and configured ids."""
    patterns = detect_shopify_tracking_patterns(html)
    is_shopify = (
        bool(STOREFRONT_MARKERS.search(html or ""))
        or patterns["has_web_pixels_manager"]
        or patterns["has_monorail_tracking"]
        or patterns["has_trekkie_tracking"]
        or bool(patterns["apps_detected"])
    )
    if not is_shopify:
        return ShopifyInfo()

    configured = extract_shopify_pixels_config(html)
    return ShopifyInfo(
        is_shopify=True,
        ga4_ids=configured["ga4"],
        google_ads_ids=configured["google_ads"],
        meta_pixel_ids=configured["meta_pixel"],
        merchant_center_ids=configured["merchant_center"],
        **patterns,
    )
