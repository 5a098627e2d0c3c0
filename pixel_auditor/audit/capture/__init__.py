"""Page retrieval and script resolution."""

from .page_fetcher import (
    PageFetcher,
    browser_like_headers,
    detect_blocked_hint,
    extract_scripts_from_html,
    validate_url,
)
from .scripts import (
    ExternalResolution,
    ScriptFetchOutcome,
    collect_scripts,
    extract_extra_tracking_urls,
    fetch_externals,
    get_base_domain,
    gtm_loader_urls,
    is_excluded_from_events,
    is_same_site,
    is_tracking_loader,
    merge_fetched,
    resolve_externals,
    resolve_script_url,
    select_external_urls,
)

__all__ = [
    # Retriever
    'PageFetcher',
    'browser_like_headers',
    'detect_blocked_hint',
    'extract_scripts_from_html',
    'validate_url',

    # Script collection and resolution
    'ExternalResolution',
    'ScriptFetchOutcome',
    'collect_scripts',
    'extract_extra_tracking_urls',
    'fetch_externals',
    'get_base_domain',
    'gtm_loader_urls',
    'is_excluded_from_events',
    'is_same_site',
    'is_tracking_loader',
    'merge_fetched',
    'resolve_externals',
    'resolve_script_url',
    'select_external_urls',
]
