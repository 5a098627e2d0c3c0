"""Audit report models."""

from typing import Any, Dict, List, Literal, Optional

from pydantic import Field

from .page import AuditModel, FetchedScript
from .results import (
    Event,
    GA4Result,
    GoogleAdsResult,
    GTMResult,
    Issue,
    MerchantCenterResult,
    MetaPixelResult,
    ShopifyInfo,
)


class ParameterFinding(AuditModel):
    """An event missing parameters its platform requires."""

    event: Event
    missing_params: List[str]


class AuditSummary(AuditModel):
    """Roll-up numbers shown at the top of a report."""

    tracking_health_score: int = Field(ge=0, le=100)
    issues_count: int = 0
    events_count: int = 0
    recommendations: List[str] = Field(default_factory=list)


class AuditReport(AuditModel):
    """Complete result of one audit run."""

    status: Literal["ok", "partial"] = "ok"
    url: str = Field(description="URL exactly as supplied by the caller")
    ga4: GA4Result = Field(default_factory=GA4Result)
    gtm: GTMResult = Field(default_factory=GTMResult)
    meta_pixel: MetaPixelResult = Field(default_factory=MetaPixelResult)
    google_ads: GoogleAdsResult = Field(default_factory=GoogleAdsResult)
    merchant_center: MerchantCenterResult = Field(default_factory=MerchantCenterResult)
    shopify: ShopifyInfo = Field(default_factory=ShopifyInfo)
    events: List[Event] = Field(default_factory=list)
    issues: List[Issue] = Field(default_factory=list)
    summary: AuditSummary
    debug: Dict[str, Any] = Field(default_factory=dict)

    # Only populated when details are requested
    external_scripts: Optional[List[FetchedScript]] = None
    duplicates: Optional[List[Event]] = None
    analysis: Optional[List[ParameterFinding]] = None
