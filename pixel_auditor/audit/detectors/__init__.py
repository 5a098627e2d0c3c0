"""Platform detectors, event extraction and event validation."""

from typing import Optional

from .base import BaseDetector, DetectorRegistry
from .config import (
    AuditConfig,
    ConfigManager,
    ConfigurationError,
    DetectorsConfig,
    EventsConfig,
    FetchConfig,
    get_config,
    load_config,
)
from .events import extract_events, extract_events_from_text
from .ga4 import GA4Detector, extract_ga4_config, is_valid_ga4_id
from .google_ads import GoogleAdsDetector, extract_google_ads_config, is_valid_google_ads_id
from .gtm import GTMDetector, analyze_data_layer, extract_gtm_ids, is_valid_gtm_id
from .meta_pixel import MetaPixelDetector, detect_pixel_version, extract_pixel_config, is_valid_pixel_id
from .shopify import detect_shopify_signals
from .validation import event_issues, find_duplicate_events, validate_event_parameters


def create_default_registry(config: Optional[AuditConfig] = None) -> DetectorRegistry:
    """Registry with the four platform detectors, keyed by result field.

    Detectors switched off in ``config.detectors`` are registered but
    disabled, so the report still carries their (empty) result.
    """
    config = config or AuditConfig()
    detectors = config.detectors

    registry = DetectorRegistry()
    registry.register(
        "ga4",
        GA4Detector(reject_suspicious_casing=detectors.ga4.reject_suspicious_casing),
        enabled=detectors.ga4.enabled,
    )
    registry.register("gtm", GTMDetector(), enabled=detectors.gtm.enabled)
    registry.register("google_ads", GoogleAdsDetector(), enabled=detectors.google_ads.enabled)
    registry.register("meta_pixel", MetaPixelDetector(), enabled=detectors.meta_pixel.enabled)
    return registry


__all__ = [
    # Framework
    'BaseDetector',
    'DetectorRegistry',
    'create_default_registry',

    # Configuration
    'AuditConfig',
    'ConfigManager',
    'ConfigurationError',
    'DetectorsConfig',
    'EventsConfig',
    'FetchConfig',
    'get_config',
    'load_config',

    # Detectors
    'GA4Detector',
    'GTMDetector',
    'GoogleAdsDetector',
    'MetaPixelDetector',
    'detect_shopify_signals',

    # Helpers
    'is_valid_ga4_id',
    'extract_ga4_config',
    'is_valid_gtm_id',
    'extract_gtm_ids',
    'analyze_data_layer',
    'is_valid_google_ads_id',
    'extract_google_ads_config',
    'is_valid_pixel_id',
    'detect_pixel_version',
    'extract_pixel_config',

    # Events
    'extract_events',
    'extract_events_from_text',
    'find_duplicate_events',
    'validate_event_parameters',
    'event_issues',
]
