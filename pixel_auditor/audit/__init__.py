"""Pixel audit engine: retrieval, detection, event validation and scoring."""

from .engine import PixelAuditEngine, run_pixel_audit, run_pixel_audit_sync
from .errors import (
    AuditError,
    DetectorParseFailure,
    HttpStatusError,
    InvalidUrlError,
    PageFetchError,
    PageTimeoutError,
    ScriptFetchFailure,
)
from .models import AuditReport
from .scoring import compute_score

__all__ = [
    'PixelAuditEngine',
    'run_pixel_audit',
    'run_pixel_audit_sync',
    'compute_score',
    'AuditReport',
    'AuditError',
    'InvalidUrlError',
    'PageTimeoutError',
    'HttpStatusError',
    'PageFetchError',
    'ScriptFetchFailure',
    'DetectorParseFailure',
]
