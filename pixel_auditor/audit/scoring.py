"""Tracking health score.

A detector may publish its own ``health_score``; the first one found (GA4,
then Meta Pixel, then Google Ads) is used as-is. Otherwise the score starts
at 100, loses points for every platform that is not installed and for the
issues raised, capped so issues alone cost at most 40 points.
"""

import logging
import math
from numbers import Real
from typing import Callable, List, Mapping, Optional, Sequence

from .models import DetectionResult, Issue

logger = logging.getLogger(__name__)

SEVERITY_WEIGHTS = {
    "critical": 25,
    "high": 18,
    "medium": 10,
    "low": 5,
}
UNKNOWN_SEVERITY_WEIGHT = 8
MAX_ISSUE_PENALTY = 40

MISSING_PLATFORM_PENALTIES = (
    ("ga4", 25),
    ("meta_pixel", 25),
    ("gtm", 10),
    ("google_ads", 10),
)

Accessor = Callable[[Mapping[str, DetectionResult]], Optional[object]]


def _field(platform: str, attribute: str) -> Accessor:
    def accessor(results: Mapping[str, DetectionResult]) -> Optional[object]:
        result = results.get(platform)
        return getattr(result, attribute, None) if result is not None else None
    accessor.__name__ = f"{platform}.{attribute}"
    return accessor


# Evaluated in order; the first numeric value wins
SCORE_ACCESSORS: List[Accessor] = [
    _field("ga4", "health_score"),
    _field("meta_pixel", "health_score"),
    _field("google_ads", "health_score"),
]


def clamp_score(value: float) -> int:
    return int(max(0, min(100, round(value))))


def severity_weight(severity: object) -> int:
    key = getattr(severity, "value", severity)
    return SEVERITY_WEIGHTS.get(str(key).lower(), UNKNOWN_SEVERITY_WEIGHT)


def detector_score(results: Mapping[str, DetectionResult]) -> Optional[int]:
    """First detector-supplied score, clamped, or None."""
    for accessor in SCORE_ACCESSORS:
        value = accessor(results)
        if isinstance(value, Real) and not isinstance(value, bool) and math.isfinite(value):
            logger.debug(f"Using detector score from {accessor.__name__}: {value}")
            return clamp_score(float(value))
    return None


def compute_score(results: Mapping[str, DetectionResult], issues: Sequence[Issue]) -> int:
    """Tracking health score in [0, 100].

    Args:
        results: Detection results keyed by platform (``ga4``, ``gtm``,
            ``meta_pixel``, ``google_ads``)
        issues: Every issue raised during the audit

    Returns:
        Integer score between 0 and 100
    """
    supplied = detector_score(results)
    if supplied is not None:
        return supplied

    score = 100
    for platform, penalty in MISSING_PLATFORM_PENALTIES:
        result = results.get(platform)
        if result is None or not result.detected:
            score -= penalty

    issue_penalty = sum(severity_weight(issue.severity) for issue in issues)
    score -= min(issue_penalty, MAX_ISSUE_PENALTY)

    return clamp_score(score)
