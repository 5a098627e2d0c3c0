"""Unit tests for report recommendations."""

from pixel_auditor.audit.models import Issue
from pixel_auditor.audit.recommendations import (
    PLATFORM_RECOMMENDATIONS,
    RECOMMENDATIONS,
    build_recommendations,
    recommendation_for,
)


def issue(code: str, severity: str, title: str = "Some title") -> Issue:
    return Issue(platform="events", code=code, title=title, severity=severity)


class TestBuildRecommendations:
    """Test recommendation ordering and deduplication."""

    def test_most_severe_first(self):
        recommendations = build_recommendations([
            issue("missing_noscript_fallback", "low"),
            issue("missing_params", "high"),
            issue("duplicate_event", "medium"),
        ])

        assert recommendations == [
            RECOMMENDATIONS["missing_params"],
            RECOMMENDATIONS["duplicate_event"],
            RECOMMENDATIONS["missing_noscript_fallback"],
        ]

    def test_one_per_code(self):
        recommendations = build_recommendations([
            issue("duplicate_event", "medium"),
            issue("duplicate_event", "medium"),
        ])
        assert recommendations == [RECOMMENDATIONS["duplicate_event"]]

    def test_shared_code_worded_per_platform(self):
        """GTM and Meta Pixel both report a missing noscript fallback."""
        gtm = Issue(platform="gtm", code="missing_noscript_fallback", title="t", severity="low")
        meta = Issue(platform="metaPixel", code="missing_noscript_fallback", title="t", severity="low")

        recommendations = build_recommendations([gtm, meta])

        assert recommendations == [
            RECOMMENDATIONS["missing_noscript_fallback"],
            PLATFORM_RECOMMENDATIONS[("metaPixel", "missing_noscript_fallback")],
        ]
        assert recommendation_for(meta) != recommendation_for(gtm)

    def test_unknown_code_uses_title(self):
        assert build_recommendations([issue("brand_new_check", "low", "Check the thing")]) == ["Check the thing"]

    def test_no_issues(self):
        assert build_recommendations([]) == []
