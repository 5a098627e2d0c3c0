"""Duplicate detection and required-parameter validation for extracted events."""

from collections import Counter
from typing import Dict, Iterable, List, Mapping, Optional, Sequence

from ..models import Event, Issue, ParameterFinding, Severity
from .config import EventsConfig


def find_duplicate_events(events: Sequence[Event]) -> List[Event]:
    """Every occurrence of a ``(type, name)`` key after its first, in list order.

    ``[A, A, B, A]`` yields the second and fourth ``A``.
    """
    seen: Counter = Counter()
    duplicates = []
    for event in events:
        seen[event.key] += 1
        if seen[event.key] > 1:
            duplicates.append(event)
    return duplicates


def validate_event_parameters(events: Sequence[Event],
                              required_params: Optional[Mapping[str, Sequence[str]]] = None
                              ) -> List[ParameterFinding]:
    """Events missing parameters their name requires.

    Args:
        events: Extracted events
        required_params: Event name -> required parameter names. Defaults to
            the GA4 and Meta Pixel e-commerce tables.

    Returns:
        One finding per event with at least one missing parameter. Events
        whose name has no table entry are skipped.
    """
    table = required_params if required_params is not None else EventsConfig().required_params
    findings = []
    for event in events:
        required = table.get(event.name)
        if not required:
            continue
        params = event.params or {}
        missing = [param for param in required if param not in params]
        if missing:
            findings.append(ParameterFinding(event=event, missing_params=missing))
    return findings


def event_issues(duplicates: Sequence[Event],
                 findings: Iterable[ParameterFinding],
                 high_severity_events: Iterable[str] = ("purchase", "Purchase")) -> List[Issue]:
    """Turn duplicate and validation results into scored issues."""
    issues = []

    counts: Dict[tuple, int] = {}
    order: List[Event] = []
    for event in duplicates:
        if event.key not in counts:
            counts[event.key] = 1
            order.append(event)
        counts[event.key] += 1

    for event in order:
        total = counts[event.key]
        issues.append(Issue(
            platform="events",
            code="duplicate_event",
            title=f"Duplicate event: {event.type} / {event.name}",
            severity=Severity.MEDIUM,
            details=f"The event fires {total} times. This can inflate metrics or double count conversions.",
            evidence={"type": event.type, "name": event.name, "count": total},
        ))

    high = set(high_severity_events)
    for finding in findings:
        event = finding.event
        issues.append(Issue(
            platform="events",
            code="missing_params",
            title=f"Missing parameters on {event.type} / {event.name}",
            severity=Severity.HIGH if event.name in high else Severity.MEDIUM,
            details=f"The event needs these parameters to be measured correctly: "
                    f"{', '.join(finding.missing_params)}.",
            evidence={"type": event.type, "name": event.name, "missingParams": list(finding.missing_params)},
        ))

    return issues
