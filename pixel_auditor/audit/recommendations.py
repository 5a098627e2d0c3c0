"""Recommendation text for issue codes."""

from typing import Dict, List, Sequence, Tuple

from .models import Issue

RECOMMENDATIONS: Dict[str, str] = {
    # GA4
    "ga4_script_without_config": "Add gtag('config', 'G-XXXXXXX') after loading gtag.js so GA4 starts collecting data.",
    "ga4_config_without_script": "Make sure gtag.js loads on every page and is not blocked by your CSP or consent banner.",
    "multiple_gtag_definitions": "Remove the duplicate GA4 snippet so gtag() is defined once.",
    "ga4_send_page_view_disabled": "Re-enable send_page_view or send page_view events manually on every route change.",
    "ga4_no_events_detected": "Track key actions (add_to_cart, begin_checkout, purchase) with gtag('event', ...) or GTM.",
    "multiple_ga4_ids": "Check that every GA4 measurement id on the page belongs to a property you use.",
    # GTM
    "missing_noscript_fallback": "Add the GTM <noscript> iframe fallback right after <body>.",
    "datalayer_not_initialized": "Initialize window.dataLayer = window.dataLayer || [] before the GTM snippet.",
    "multiple_datalayer_init": "Replace plain dataLayer = [] assignments with the guarded form so earlier pushes survive.",
    "gtm_loaded_multiple_times": "Load each GTM container once; remove duplicate gtm.js tags.",
    "gtm_multiple_containers": "Review why several GTM containers are installed and consolidate if possible.",
    # Meta Pixel
    "pixel_script_without_init": "Call fbq('init', 'PIXEL_ID') after loading fbevents.js.",
    "pixel_init_without_script": "Install the full Meta Pixel base code so fbevents.js actually loads.",
    "pixel_id_not_found": "Verify the Meta Pixel id in Events Manager and make sure it is passed to fbq('init').",
    "pixel_no_track_calls": "Fire at least fbq('track', 'PageView') and your conversion events (AddToCart, Purchase).",
    "multiple_fbq_definitions": "Keep a single copy of the Meta Pixel base code.",
    "pixel_init_multiple_times": "Initialize each pixel id once to avoid duplicated events.",
    # Google Ads
    "google_ads_script_without_config": "Add gtag('config', 'AW-XXXXXXXXX') for your Google Ads account.",
    "google_ads_config_without_script": "Make sure gtag.js loads for your Google Ads tag.",
    "google_ads_linker_without_conversions": "Set up conversion events with send_to: 'AW-XXXXXXXXX/LABEL'.",
    "google_ads_no_conversions_detected": "Track conversions with gtag('event', 'conversion', {send_to: 'AW-XXXXXXXXX/LABEL'}).",
    "google_ads_send_to_missing_label": "Use the full AW-XXXXXXXXX/LABEL value in send_to.",
    "google_ads_report_conversion_without_send_to": "Pass a send_to target when calling gtag_report_conversion.",
    "google_ads_multiple_aw_ids": "Confirm every AW- account on the page is intentional.",
    "google_ads_enhanced_conversions_not_detected": "Consider enabling Enhanced Conversions for better attribution.",
    # Events
    "duplicate_event": "Fire each event once per action; check for duplicated tags in the page and in GTM.",
    "missing_params": "Send value and currency (and transaction_id for purchases) with e-commerce events.",
}

# codes shared by several platforms
PLATFORM_RECOMMENDATIONS: Dict[Tuple[str, str], str] = {
    ("metaPixel", "missing_noscript_fallback"):
        "Add the <noscript> image tag from the Meta Pixel base code (facebook.com/tr?id=...&ev=PageView).",
}

_SEVERITY_ORDER = {"critical": 0, "high": 1, "medium": 2, "low": 3}


def recommendation_for(issue: Issue) -> str:
    """Recommendation text for ``issue``, preferring a platform-specific entry."""
    specific = PLATFORM_RECOMMENDATIONS.get((str(issue.platform), issue.code))
    if specific:
        return specific
    return RECOMMENDATIONS.get(issue.code, issue.title)


def build_recommendations(issues: Sequence[Issue]) -> List[str]:
    """One recommendation per distinct text, most severe first."""
    ranked = sorted(
        enumerate(issues),
        key=lambda pair: (_SEVERITY_ORDER.get(str(pair[1].severity), 4), pair[0]),
    )
    recommendations: List[str] = []
    for _, issue in ranked:
        text = recommendation_for(issue)
        if text not in recommendations:
            recommendations.append(text)
    return recommendations
