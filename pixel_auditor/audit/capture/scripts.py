"""Script collection, external script resolution and the merge step.

External scripts are downloaded when they belong to the audited site or
when they are a Google tag loader (``gtm.js`` / ``gtag/js``), whose body
carries the site owner's own tag configuration. Known third-party ad,
analytics and chat payloads are still fetched for install detection when
same-site-hosted, but are flagged so their calls are not counted as the
site's events.
"""

import asyncio
import logging
import re
from dataclasses import dataclass, field
from typing import Iterable, List, Optional, Sequence
from urllib.parse import urljoin, urlparse

from ..errors import ScriptFetchFailure
from ..models import FetchedScript, PageContent, ScriptRecord, ScriptType
from .page_fetcher import PageFetcher

logger = logging.getLogger(__name__)

TRACKING_LOADER_MARKERS = ("googletagmanager.com", "gtm.js", "gtag/js")

THIRD_PARTY_EVENT_DENYLIST = (
    "facebook.net",
    "connect.facebook.net",
    "fbevents.js",
    "google-analytics.com",
    "googleadservices.com",
    "doubleclick.net",
    "googlesyndication.com",
    "cdn.segment.com",
    "cdn.amplitude.com",
    "cdn.mxpnl.com",
    "hotjar.com",
    "clarity.ms",
    "intercom.io",
    "crisp.chat",
    "tawk.to",
)

GTM_LOADER_URL = "https://www.googletagmanager.com/gtm.js?id={}"

# Tracking URLs referenced outside <script src>
IMG_TRACKING_SRC = re.compile(r'''<img[^>]+src=["']([^"']*facebook\.com/tr[^"']*)["']''', re.IGNORECASE)
GTM_NOSCRIPT_IFRAME = re.compile(r'''<iframe[^>]+src=["']([^"']*googletagmanager\.com/ns\.html[^"']*)["']''',
                                 re.IGNORECASE)
PRELOAD_SCRIPT = re.compile(r'''<link[^>]+rel=["'](?:preload|modulepreload)["'][^>]*>''', re.IGNORECASE)
LINK_HREF = re.compile(r'''href=["']([^"']+)["']''', re.IGNORECASE)
DYNAMIC_IMPORT = re.compile(r'''import\(\s*["'](https?://[^"']+)["']\s*\)''')


@dataclass
class ScriptFetchOutcome:
    """Result of one external script download."""
    url: str
    content: Optional[str] = None
    error: Optional[str] = None
    injected: bool = False

    @property
    def ok(self) -> bool:
        return self.content is not None


@dataclass
class ExternalResolution:
    """Everything the resolver produced for one page."""
    scripts: List[ScriptRecord] = field(default_factory=list)
    outcomes: List[ScriptFetchOutcome] = field(default_factory=list)
    deadline_hit: bool = False

    @property
    def fetched(self) -> List[FetchedScript]:
        return [
            FetchedScript(src=s.src, content=s.content, exclude_from_events=s.exclude_from_events,
                          injected=self._is_injected(s.src))
            for s in self.scripts
        ]

    def _is_injected(self, src: Optional[str]) -> bool:
        return any(o.injected and o.url == src for o in self.outcomes)


def collect_scripts(page: PageContent) -> List[ScriptRecord]:
    """Inline scripts first, then external references, numbered from 1."""
    records = [
        ScriptRecord(type=ScriptType.INLINE, content=body, line=index + 1)
        for index, body in enumerate(page.scripts.inline)
    ]
    offset = len(records)
    records.extend(
        ScriptRecord(type=ScriptType.EXTERNAL, src=ref.src, line=offset + index + 1)
        for index, ref in enumerate(page.scripts.external)
    )
    return records


def site_origin(site_url: str) -> str:
    parsed = urlparse(site_url)
    return f"{parsed.scheme}://{parsed.netloc}"


def resolve_script_url(src: Optional[str], site_url: str) -> str:
    """Absolute URL for a script ``src``; empty string when unusable.

    Protocol-relative URLs get ``https:``; relative ones resolve against the
    site origin rather than the page path.
    """
    value = (src or "").strip()
    if not value:
        return ""
    if value.startswith("//"):
        return "https:" + value
    if re.match(r'^https?://', value, re.IGNORECASE):
        return value
    if re.match(r'^[a-z][a-z0-9+.-]*:', value, re.IGNORECASE):
        # javascript:, data:, blob: ...
        return ""
    return urljoin(site_origin(site_url) + "/", value)


def get_base_domain(hostname: Optional[str]) -> str:
    """Last two labels of the host, ignoring a leading ``www.``."""
    host = (hostname or "").lower()
    if host.startswith("www."):
        host = host[4:]
    parts = [p for p in host.split(".") if p]
    if len(parts) < 2:
        return host
    return ".".join(parts[-2:])


def is_same_site(script_url: str, base_domain: str) -> bool:
    host = (urlparse(script_url).hostname or "").lower()
    if not host or not base_domain:
        return False
    return host == base_domain or host.endswith("." + base_domain)


def is_tracking_loader(script_url: str) -> bool:
    lowered = script_url.lower()
    return any(marker in lowered for marker in TRACKING_LOADER_MARKERS)


def is_excluded_from_events(script_url: str) -> bool:
    """Third-party payloads whose calls are not the site's own events."""
    if is_tracking_loader(script_url):
        return False
    lowered = script_url.lower()
    return any(marker in lowered for marker in THIRD_PARTY_EVENT_DENYLIST)


def extract_extra_tracking_urls(html: str) -> List[str]:
    """Tracking URLs referenced by img/iframe/preload/import rather than script tags."""
    html = html or ""
    urls = [m.group(1) for m in IMG_TRACKING_SRC.finditer(html)]
    urls.extend(m.group(1) for m in GTM_NOSCRIPT_IFRAME.finditer(html))
    for tag in PRELOAD_SCRIPT.finditer(html):
        if re.search(r'''as=["']script["']''', tag.group(0), re.IGNORECASE) or "modulepreload" in tag.group(0).lower():
            href = LINK_HREF.search(tag.group(0))
            if href:
                urls.append(href.group(1))
    urls.extend(m.group(1) for m in DYNAMIC_IMPORT.finditer(html))
    return urls


def gtm_loader_urls(container_ids: Iterable[str]) -> List[str]:
    return [GTM_LOADER_URL.format(cid) for cid in container_ids]


def select_external_urls(scripts: Sequence[ScriptRecord], site_url: str,
                         extra_urls: Iterable[str] = ()) -> List[str]:
    """Absolute URLs worth downloading, deduplicated case-insensitively."""
    base_domain = get_base_domain(urlparse(site_url).hostname)
    candidates = [s.src for s in scripts if s.is_external and s.src]
    candidates.extend(extra_urls)

    selected = []
    seen = set()
    for src in candidates:
        url = resolve_script_url(src, site_url)
        if not url or url.lower() in seen:
            continue
        if is_same_site(url, base_domain) or is_tracking_loader(url):
            seen.add(url.lower())
            selected.append(url)
    return selected


async def fetch_externals(fetcher: PageFetcher, urls: Sequence[str],
                          max_concurrency: int = 8,
                          timeout: Optional[float] = None,
                          injected: Iterable[str] = ()) -> ExternalResolution:
    """Download ``urls`` concurrently; one outcome per URL.

    Each download fails on its own. When ``timeout`` expires, unfinished
    downloads are cancelled, recorded as ``deadline`` failures and
    ``deadline_hit`` is set.
    """
    semaphore = asyncio.Semaphore(max_concurrency)
    injected_urls = {u.lower() for u in injected}

    async def download(url: str) -> ScriptFetchOutcome:
        is_injected = url.lower() in injected_urls
        async with semaphore:
            try:
                content = await fetcher.download_script(url)
            except ScriptFetchFailure as e:
                logger.debug(str(e))
                return ScriptFetchOutcome(url=url, error=e.reason, injected=is_injected)
        return ScriptFetchOutcome(url=url, content=content, injected=is_injected)

    resolution = ExternalResolution()
    if not urls:
        return resolution

    tasks = [asyncio.ensure_future(download(url)) for url in urls]
    done, pending = await asyncio.wait(tasks, timeout=timeout)
    for task in pending:
        task.cancel()
    if pending:
        resolution.deadline_hit = True
        await asyncio.gather(*pending, return_exceptions=True)

    for url, task in zip(urls, tasks):
        if task in done and not task.cancelled():
            resolution.outcomes.append(task.result())
        else:
            resolution.outcomes.append(ScriptFetchOutcome(url=url, error="deadline",
                                                          injected=url.lower() in injected_urls))
    return resolution


async def resolve_externals(scripts: Sequence[ScriptRecord], site_url: str, fetcher: PageFetcher,
                            extra_urls: Iterable[str] = (),
                            injected_urls: Iterable[str] = (),
                            timeout: Optional[float] = None) -> ExternalResolution:
    """Fetch the external scripts worth analysing.

    Args:
        scripts: Records from ``collect_scripts``
        site_url: Final page URL used for resolution and same-site checks
        fetcher: Retriever used for downloads
        extra_urls: Additional candidates (tracking URLs outside script tags)
        injected_urls: Loader URLs added from ids found in the page
        timeout: Time left for all downloads together

    Returns:
        Resolution whose ``scripts`` are absolute-URL external records that
        have content, flagged with ``exclude_from_events``
    """
    injected_urls = list(injected_urls)
    urls = select_external_urls(scripts, site_url, list(extra_urls) + injected_urls)
    logger.info(f"Fetching {len(urls)} external scripts")

    resolution = await fetch_externals(
        fetcher, urls,
        max_concurrency=fetcher.config.max_concurrency,
        timeout=timeout,
        injected=injected_urls,
    )
    resolution.scripts = [
        ScriptRecord(
            type=ScriptType.EXTERNAL,
            src=outcome.url,
            content=outcome.content,
            exclude_from_events=is_excluded_from_events(outcome.url),
        )
        for outcome in resolution.outcomes
        if outcome.ok and outcome.content
    ]
    failed = sum(1 for o in resolution.outcomes if not o.ok)
    if failed:
        logger.debug(f"{failed} of {len(urls)} external scripts could not be fetched")
    return resolution


def merge_fetched(scripts: Sequence[ScriptRecord], fetched: Sequence[ScriptRecord],
                  site_url: str) -> List[ScriptRecord]:
    """Attach downloaded bodies to the original records.

    Records are matched on absolute URLs so a relative ``src`` still finds
    its download. Fetched scripts with no original record (injected GTM
    containers, extra tracking URLs) are appended. The result is
    deduplicated on lower-cased ``src``; inline records without ``src`` are
    always kept.
    """
    by_url = {f.src.lower(): f for f in fetched if f.src}
    used = set()
    merged: List[ScriptRecord] = []

    for record in scripts:
        if not record.src:
            merged.append(record)
            continue
        absolute = resolve_script_url(record.src, site_url)
        match = by_url.get(absolute.lower()) if absolute else None
        if match is None:
            merged.append(record)
            continue
        used.add(absolute.lower())
        merged.append(record.model_copy(update={
            "src": absolute,
            "content": match.content or record.content,
            "exclude_from_events": match.exclude_from_events or record.exclude_from_events,
        }))

    merged.extend(f for key, f in by_url.items() if key not in used)

    result = []
    seen_src = set()
    for record in merged:
        if record.src:
            key = record.src.lower()
            if key in seen_src:
                continue
            seen_src.add(key)
        result.append(record)
    return result
