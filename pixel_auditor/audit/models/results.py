"""Detection result, issue and event models."""

from enum import Enum
from typing import Any, Dict, List, Optional, Tuple

from pydantic import Field

from .page import AuditModel


class Severity(str, Enum):
    """Issue severity levels."""
    CRITICAL = "critical"
    HIGH = "high"
    MEDIUM = "medium"
    LOW = "low"


class EventType(str, Enum):
    """Platforms an extracted event can belong to."""
    GA4 = "GA4"
    GTM = "GTM"
    META_PIXEL = "MetaPixel"


class Issue(AuditModel):
    """A single finding raised by exactly one detector."""

    model_config = {"frozen": True}

    platform: str = Field(description="Platform that raised the issue (ga4, gtm, metaPixel, googleAds, events)")
    code: str = Field(description="Stable machine-readable issue code")
    title: str = Field(description="Human-readable summary")
    severity: Severity
    details: Optional[str] = None
    evidence: Optional[Dict[str, Any]] = None


class Event(AuditModel):
    """A tracking call found in page or script text."""

    type: EventType
    name: str
    params: Optional[Dict[str, Any]] = None
    source: Optional[str] = Field(
        default=None,
        description="'html' or the script URL the event was found in"
    )

    @property
    def key(self) -> Tuple[str, str]:
        """Identity used for duplicate detection."""
        return (self.type, self.name)


class DetectionResult(AuditModel):
    """Common shape of a platform detector's output."""

    detected: bool = False
    ids: List[str] = Field(default_factory=list)
    issues: List[Issue] = Field(default_factory=list)
    has_script: bool = False
    has_config: bool = False
    config_flags: Dict[str, Any] = Field(default_factory=dict)
    health_score: Optional[float] = Field(
        default=None,
        description="Detector-supplied health score; overrides the fallback formula when set"
    )


class GA4Result(DetectionResult):
    """GA4 detection output."""

    has_events: bool = False
    gtag_definitions: int = 0


class DataLayerAnalysis(AuditModel):
    """How the page sets up ``window.dataLayer``."""

    exists: bool = False
    initialized: bool = False
    multiple_inits: bool = False
    push_count: int = 0


class GTMResult(DetectionResult):
    """Google Tag Manager detection output."""

    containers: List[str] = Field(default_factory=list)
    has_noscript: bool = False
    data_layer: DataLayerAnalysis = Field(default_factory=DataLayerAnalysis)


class GoogleAdsResult(DetectionResult):
    """Google Ads detection output."""

    conversions: List[str] = Field(default_factory=list)
    has_conversions: bool = False
    has_conversion_linker: bool = False
    has_report_conversion: bool = False
    has_enhanced_conversions: bool = False


class MetaPixelResult(DetectionResult):
    """Meta (Facebook) Pixel detection output."""

    has_init: bool = False
    has_track_calls: bool = False
    has_noscript: bool = False
    version: Optional[str] = None


class MerchantCenterResult(AuditModel):
    """Google Merchant Center signals."""

    detected: bool = False
    ids: List[str] = Field(default_factory=list)


class ShopifyInfo(AuditModel):
    """Shopify storefront signals. Contextual only, never scored."""

    is_shopify: bool = False
    has_web_pixels_manager: bool = False
    has_monorail_tracking: bool = False
    has_trekkie_tracking: bool = False
    apps_detected: List[str] = Field(default_factory=list)
    ga4_ids: List[str] = Field(default_factory=list)
    google_ads_ids: List[str] = Field(default_factory=list)
    meta_pixel_ids: List[str] = Field(default_factory=list)
    merchant_center_ids: List[str] = Field(default_factory=list)
