"""Audit orchestrator.

Runs one audit end to end: fetch the page, resolve and download the
scripts worth reading, run the platform detectors and the event extractor
over the finished script set, validate events, then score and summarize.

A single deadline bounds the whole run. Only the primary page fetch can
fail an audit; when the deadline cuts off script downloads or detection
the report is returned with ``status="partial"``.
"""

import asyncio
import logging
import time
from typing import Any, Dict, List, Optional, Sequence, Tuple

import httpx

from .capture.page_fetcher import PageFetcher, validate_url
from .capture.scripts import (
    ExternalResolution,
    collect_scripts,
    extract_extra_tracking_urls,
    gtm_loader_urls,
    merge_fetched,
    resolve_externals,
)
from .detectors import (
    AuditConfig,
    DetectorRegistry,
    create_default_registry,
    detect_shopify_signals,
    event_issues,
    extract_events,
    extract_gtm_ids,
    find_duplicate_events,
    get_config,
    validate_event_parameters,
)
from .errors import PageTimeoutError
from .models import (
    AuditReport,
    AuditSummary,
    DetectionResult,
    Event,
    Issue,
    MerchantCenterResult,
    PageContent,
    ScriptRecord,
)
from .recommendations import build_recommendations
from .scoring import compute_score

logger = logging.getLogger(__name__)

REPORT_PLATFORMS = ("ga4", "gtm", "google_ads", "meta_pixel")
DETECTION_SHARE = 0.25


class Deadline:
    """Monotonic time budget shared by every stage of one audit."""

    def __init__(self, seconds: float):
        self.seconds = seconds
        self.started = time.monotonic()
        self.expires = self.started + seconds

    def remaining(self) -> float:
        return max(0.0, self.expires - time.monotonic())

    def elapsed_ms(self) -> int:
        return int((time.monotonic() - self.started) * 1000)

    def reserve(self, seconds: float) -> float:
        """Slice of the budget held back for the last stage."""
        return min(seconds, self.seconds * DETECTION_SHARE)


class PixelAuditEngine:
    """Runs pixel audits with one configuration and detector registry.

    The engine holds no per-audit state; every call to ``audit`` builds its
    own fetcher, script set and results.
    """

    def __init__(self, config: Optional[AuditConfig] = None,
                 registry: Optional[DetectorRegistry] = None):
        self.config = config or get_config()
        self.registry = registry or create_default_registry(self.config)

    async def audit(self, url: str, include_details: bool = False, *,
                    client: Optional[httpx.AsyncClient] = None,
                    html: Optional[str] = None,
                    deadline: Optional[float] = None) -> AuditReport:
        """Audit one page.

        Args:
            url: Page to audit, echoed verbatim in the report
            include_details: Add fetched scripts, raw duplicates and
                parameter findings to the report
            client: HTTP client to use instead of a private one
            html: Audit this HTML instead of fetching ``url``
            deadline: Overall budget in seconds (defaults to config)

        Returns:
            The audit report

        Raises:
            InvalidUrlError: ``url`` is malformed
            PageTimeoutError: The page could not be fetched within its
                timeout or the overall deadline
            HttpStatusError: The page responded with a non-2xx status
            PageFetchError: Any other network failure on the page fetch
        """
        validate_url(url)
        budget = Deadline(deadline if deadline is not None else self.config.deadline_seconds)
        logger.info(f"Starting pixel audit for {url} (deadline {budget.seconds:g}s)")

        async with PageFetcher(self.config.fetch, client=client) as fetcher:
            try:
                page = await asyncio.wait_for(fetcher.fetch_page(url, html=html), timeout=budget.remaining())
            except asyncio.TimeoutError:
                raise PageTimeoutError(url, budget.seconds)

            scripts = collect_scripts(page)
            injected_ids = self._containers_to_inject(page, scripts)
            resolution = await self._resolve(page, scripts, fetcher, injected_ids, budget)

        merged = merge_fetched(scripts, resolution.scripts, page.final_url)
        results, events, detection_complete = await self._detect(page, merged, budget)

        partial = resolution.deadline_hit or not detection_complete
        if partial:
            logger.warning(f"Deadline of {budget.seconds:g}s reached for {url}, returning partial report")

        return self._build_report(
            url=url,
            page=page,
            scripts=scripts,
            merged=merged,
            resolution=resolution,
            results=results,
            events=events,
            injected_ids=injected_ids,
            partial=partial,
            include_details=include_details,
            budget=budget,
        )

    def _containers_to_inject(self, page: PageContent, scripts: Sequence[ScriptRecord]) -> List[str]:
        """GTM ids mentioned in the page whose container is not already loaded."""
        if not self.config.fetch.inject_gtm_containers:
            return []

        text = "\n".join([page.html] + [s.content for s in scripts if s.is_external and s.content])
        loaded = set()
        for script in scripts:
            if script.src and "gtm.js" in script.src.lower():
                loaded.update(extract_gtm_ids(script.src))
        return [cid for cid in extract_gtm_ids(text) if cid not in loaded]

    async def _resolve(self, page: PageContent, scripts: Sequence[ScriptRecord], fetcher: PageFetcher,
                       injected_ids: Sequence[str], budget: Deadline) -> ExternalResolution:
        # downloads stop early enough for detection to run over what arrived
        timeout = budget.remaining() - budget.reserve(self.config.detection_reserve_seconds)
        if timeout <= 0:
            return ExternalResolution(deadline_hit=True)

        resolution = await resolve_externals(
            scripts,
            page.final_url,
            fetcher,
            extra_urls=extract_extra_tracking_urls(page.html),
            injected_urls=gtm_loader_urls(injected_ids),
            timeout=timeout,
        )
        logger.info(
            f"Fetched {len(resolution.scripts)} of {len(resolution.outcomes)} external scripts "
            f"for {page.final_url}"
        )
        return resolution

    async def _detect(self, page: PageContent, scripts: List[ScriptRecord],
                      budget: Deadline) -> Tuple[Dict[str, DetectionResult], List[Event], bool]:
        """Fan the detectors and the event extractor out over the final script set.

        Detection always gets at least the reserved slice of the budget, even
        when the downloads used up the rest. Detectors that have not finished
        by then contribute their empty result.
        """
        enabled = self.registry.get_enabled_detectors()
        tasks: Dict[str, asyncio.Future] = {
            key: asyncio.ensure_future(asyncio.to_thread(detector.detect, page, scripts))
            for key, detector in enabled.items()
        }
        events_task = asyncio.ensure_future(asyncio.to_thread(extract_events, page, scripts))

        timeout = max(budget.remaining(), budget.reserve(self.config.detection_reserve_seconds))
        _, pending = await asyncio.wait(list(tasks.values()) + [events_task], timeout=timeout)
        for task in pending:
            task.cancel()

        results: Dict[str, DetectionResult] = {}
        for key in REPORT_PLATFORMS:
            detector = self.registry.get_detector(key)
            task = tasks.get(key)
            if task is not None and task not in pending:
                results[key] = task.result()
            elif detector is not None:
                results[key] = detector.empty_result()

        events: List[Event] = []
        if events_task not in pending:
            try:
                events = events_task.result()
            except Exception as e:
                logger.warning(f"Event extraction failed, reporting no events: {e}",
                               exc_info=logger.isEnabledFor(logging.DEBUG))
        return results, events, not pending

    def _build_report(self, *, url: str, page: PageContent, scripts: Sequence[ScriptRecord],
                      merged: Sequence[ScriptRecord], resolution: ExternalResolution,
                      results: Dict[str, DetectionResult], events: List[Event],
                      injected_ids: Sequence[str], partial: bool, include_details: bool,
                      budget: Deadline) -> AuditReport:
        duplicates = find_duplicate_events(events)
        findings = validate_event_parameters(events, self.config.events.required_params)

        issues: List[Issue] = []
        for key in REPORT_PLATFORMS:
            if key in results:
                issues.extend(results[key].issues)
        issues.extend(event_issues(duplicates, findings, self.config.events.high_severity_events))

        shopify = detect_shopify_signals(page.html) if self.config.detectors.shopify.enabled else None
        merchant_center = MerchantCenterResult()
        if shopify is not None and shopify.merchant_center_ids:
            merchant_center = MerchantCenterResult(detected=True, ids=shopify.merchant_center_ids)

        score = compute_score(results, issues)
        logger.info(f"Audit of {url} finished: score {score}, {len(issues)} issues, {len(events)} events")

        report: Dict[str, Any] = dict(
            status="partial" if partial else "ok",
            url=url,
            merchant_center=merchant_center,
            events=events,
            issues=issues,
            summary=AuditSummary(
                tracking_health_score=score,
                issues_count=len(issues),
                events_count=len(events),
                recommendations=build_recommendations(issues),
            ),
            debug=self._debug_block(page, scripts, merged, resolution, injected_ids, budget),
        )
        report.update({key: value for key, value in results.items()})
        if shopify is not None:
            report["shopify"] = shopify
        if include_details:
            report["external_scripts"] = resolution.fetched
            report["duplicates"] = duplicates
            report["analysis"] = findings

        return AuditReport(**report)

    def _debug_block(self, page: PageContent, scripts: Sequence[ScriptRecord], merged: Sequence[ScriptRecord],
                     resolution: ExternalResolution, injected_ids: Sequence[str],
                     budget: Deadline) -> Dict[str, Any]:
        block: Dict[str, Any] = {
            "elapsedMs": budget.elapsed_ms(),
            "finalUrl": page.final_url,
            "status": page.status,
            "blocked": page.blocked,
            "injectedGtmIds": list(injected_ids),
            "scripts": {
                "inline": sum(1 for s in scripts if not s.is_external),
                "external": sum(1 for s in scripts if s.is_external),
                "fetched": len(resolution.scripts),
                "failed": sum(1 for o in resolution.outcomes if not o.ok),
                "analyzed": len(merged),
            },
            "deadlineHit": resolution.deadline_hit,
        }
        if self.config.debug:
            block["contentType"] = page.content_type
            block["fetches"] = [
                {"url": o.url, "ok": o.ok, "error": o.error, "injected": o.injected}
                for o in resolution.outcomes
            ]
        return block


async def run_pixel_audit(url: str, include_details: bool = False, *,
                          config: Optional[AuditConfig] = None,
                          client: Optional[httpx.AsyncClient] = None,
                          html: Optional[str] = None,
                          deadline: Optional[float] = None) -> AuditReport:
    """Audit ``url`` and return its report. See ``PixelAuditEngine.audit``."""
    engine = PixelAuditEngine(config)
    return await engine.audit(url, include_details, client=client, html=html, deadline=deadline)


def run_pixel_audit_sync(url: str, include_details: bool = False, **kwargs: Any) -> AuditReport:
    """Blocking wrapper around ``run_pixel_audit`` for scripts and the CLI."""
    return asyncio.run(run_pixel_audit(url, include_details, **kwargs))
