"""Audit data models package."""

from .page import (
    AuditModel,
    ScriptType,
    ExternalScriptRef,
    ScriptRefs,
    PageContent,
    ScriptRecord,
    FetchedScript,
)

from .results import (
    Severity,
    EventType,
    Issue,
    Event,
    DetectionResult,
    GA4Result,
    DataLayerAnalysis,
    GTMResult,
    GoogleAdsResult,
    MetaPixelResult,
    MerchantCenterResult,
    ShopifyInfo,
)

from .report import (
    ParameterFinding,
    AuditSummary,
    AuditReport,
)

__all__ = [
    # Page models
    'AuditModel',
    'ScriptType',
    'ExternalScriptRef',
    'ScriptRefs',
    'PageContent',
    'ScriptRecord',
    'FetchedScript',

    # Detection models
    'Severity',
    'EventType',
    'Issue',
    'Event',
    'DetectionResult',
    'GA4Result',
    'DataLayerAnalysis',
    'GTMResult',
    'GoogleAdsResult',
    'MetaPixelResult',
    'MerchantCenterResult',
    'ShopifyInfo',

    # Report models
    'ParameterFinding',
    'AuditSummary',
    'AuditReport',
]
