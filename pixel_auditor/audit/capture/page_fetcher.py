"""Page and script retrieval over HTTP.

``PageFetcher`` wraps an ``httpx.AsyncClient`` with browser-like headers.
Only ``fetch_page`` can fail an audit; ``fetch_script`` is best-effort and
reports "no content" instead of raising.
"""

import logging
import re
import time
from typing import Dict, Optional
from urllib.parse import urlparse

import httpx

from ..detectors.config import FetchConfig
from ..errors import (
    AuditError,
    HttpStatusError,
    InvalidUrlError,
    PageFetchError,
    PageTimeoutError,
    ScriptFetchFailure,
)
from ..models import ExternalScriptRef, PageContent, ScriptRefs

logger = logging.getLogger(__name__)

SCRIPT_TAG = re.compile(r'<script([^>]*)>([\s\S]*?)</script>', re.IGNORECASE)
SRC_ATTRIBUTE = re.compile(r'''src=["']([^"']+)["']''', re.IGNORECASE)

BLOCKED_STATUSES = frozenset({401, 403, 429, 503})
STATUS_CHALLENGE_MARKERS = (
    "access denied", "request blocked", "bot", "captcha", "security",
    "challenge", "akamai", "imperva", "cloudflare",
)
CHALLENGE_MARKERS = (
    "cf-chl",
    "cloudflare",
    "checking your browser",
    "ddos protection",
    "attention required",
    "enable javascript and cookies",
    "captcha",
    "bot protection",
    "akamai",
    "imperva",
    "incapsula",
    "datadome",
    "perimeterx",
    "px-captcha",
    "access denied",
    "request blocked",
)
MIN_HTML_LENGTH = 1200


def browser_like_headers(config: FetchConfig, extra: Optional[Dict[str, str]] = None) -> Dict[str, str]:
    """Headers a desktop Chrome sends for a top-level navigation."""
    headers = {
        "User-Agent": config.user_agent,
        "Accept": "text/html,application/xhtml+xml,application/xml;q=0.9,image/avif,image/webp,*/*;q=0.8",
        "Accept-Language": config.accept_language,
        "Cache-Control": "no-cache",
        "Pragma": "no-cache",
        "Upgrade-Insecure-Requests": "1",
        "DNT": "1",
        "Sec-CH-UA": '"Chromium";v="124", "Not(A:Brand";v="24", "Google Chrome";v="124"',
        "Sec-CH-UA-Mobile": "?0",
        "Sec-CH-UA-Platform": '"Windows"',
        "Sec-Fetch-Dest": "document",
        "Sec-Fetch-Mode": "navigate",
        "Sec-Fetch-Site": "none",
        "Sec-Fetch-User": "?1",
    }
    if extra:
        headers.update(extra)
    return headers


def validate_url(url: str) -> str:
    """Return the trimmed URL or raise ``InvalidUrlError``."""
    candidate = (url or "").strip()
    if not candidate:
        raise InvalidUrlError(url, "URL is empty")
    try:
        parsed = urlparse(candidate)
    except ValueError as e:
        raise InvalidUrlError(url, str(e))
    if parsed.scheme not in ("http", "https"):
        raise InvalidUrlError(url, "scheme must be http or https")
    if not parsed.netloc or not parsed.hostname:
        raise InvalidUrlError(url, "host is missing")
    return candidate


def extract_scripts_from_html(html: str) -> ScriptRefs:
    """Scan ``<script>`` tags in document order.

    Tags with a ``src`` become external references; otherwise a non-blank
    body becomes an inline script.
    """
    refs = ScriptRefs()
    for match in SCRIPT_TAG.finditer(html or ""):
        attributes = match.group(1) or ""
        body = match.group(2) or ""
        src = SRC_ATTRIBUTE.search(attributes)
        if src:
            refs.external.append(ExternalScriptRef(src=src.group(1)))
        elif body.strip():
            refs.inline.append(body)
    return refs


def detect_blocked_hint(html: str, status: int = 0, content_type: Optional[str] = None) -> Optional[str]:
    """Reason the response looks like a bot wall or interstitial, else None."""
    ct = (content_type or "").lower()
    if ct and "text/html" not in ct and "application/xhtml" not in ct:
        return f"non_html_content_type:{ct}"

    lower = (html or "").lower()
    if status in BLOCKED_STATUSES:
        if any(marker in lower for marker in STATUS_CHALLENGE_MARKERS):
            return f"http_{status}_challenge"
        return f"http_{status}"

    for marker in CHALLENGE_MARKERS:
        if marker in lower:
            return f"challenge:{marker}"

    if html and len(html) < MIN_HTML_LENGTH:
        return "html_too_short"
    return None


class PageFetcher:
    """Fetches pages and scripts for one audit.

    Pass an existing ``httpx.AsyncClient`` (tests use one with a
    ``MockTransport``) or let the fetcher create and close its own.
    """

    def __init__(self, config: Optional[FetchConfig] = None, client: Optional[httpx.AsyncClient] = None):
        self.config = config or FetchConfig()
        self._client = client
        self._owns_client = client is None

    async def __aenter__(self) -> "PageFetcher":
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        await self.aclose()

    @property
    def client(self) -> httpx.AsyncClient:
        if self._client is None:
            self._client = httpx.AsyncClient(
                timeout=httpx.Timeout(timeout=self.config.page_timeout, connect=10.0),
                limits=httpx.Limits(
                    max_connections=self.config.max_concurrency + 2,
                    max_keepalive_connections=self.config.max_concurrency,
                ),
                follow_redirects=True,
            )
        return self._client

    async def aclose(self) -> None:
        if self._owns_client and self._client is not None:
            await self._client.aclose()
            self._client = None

    async def fetch_page(self, url: str, html: Optional[str] = None) -> PageContent:
        """Fetch ``url`` and extract its script references.

        Args:
            url: Absolute http(s) URL
            html: Pre-fetched HTML; when given no request is made

        Returns:
            Page content with the post-redirect ``final_url``

        Raises:
            InvalidUrlError: URL is malformed (raised before any request)
            PageTimeoutError: The page did not respond in time
            HttpStatusError: Non-2xx response
            PageFetchError: Any other network failure
        """
        target = validate_url(url)

        if html is not None:
            logger.info(f"Using supplied HTML for {target} ({len(html)} chars)")
            return PageContent(html=html, scripts=extract_scripts_from_html(html), final_url=target)

        logger.info(f"Fetching page {target}")
        started = time.monotonic()
        response = await self._get_page(target, browser_like_headers(self.config))
        body = response.text
        content_type = response.headers.get("content-type")
        blocked = detect_blocked_hint(body, response.status_code, content_type)

        if blocked and self.config.retry_when_blocked:
            logger.info(f"Page looks blocked ({blocked}), retrying once with session cookies")
            retry_headers = browser_like_headers(
                self.config, {"Sec-Fetch-Site": "same-origin", "Referer": str(response.url)}
            )
            try:
                retry = await self._get_page(target, retry_headers)
            except AuditError as e:
                logger.debug(f"Retry of {target} failed, keeping first response: {e}")
                retry = None
            if retry is not None and len(retry.text) > len(body):
                response = retry
                body = retry.text
                content_type = retry.headers.get("content-type")
                blocked = detect_blocked_hint(body, retry.status_code, content_type)

        logger.info(
            f"Fetched {target} -> {response.url} [{response.status_code}] "
            f"{len(body)} chars in {time.monotonic() - started:.2f}s"
        )
        return PageContent(
            html=body,
            scripts=extract_scripts_from_html(body),
            final_url=str(response.url),
            status=response.status_code,
            content_type=content_type,
            blocked=blocked,
        )

    async def _get_page(self, url: str, headers: Dict[str, str]) -> httpx.Response:
        timeout = self.config.page_timeout
        try:
            response = await self.client.get(url, headers=headers, timeout=timeout, follow_redirects=True)
        except httpx.TimeoutException:
            raise PageTimeoutError(url, timeout)
        except httpx.RequestError as e:
            raise PageFetchError(url, e)

        if not response.is_success:
            raise HttpStatusError(url, response.status_code)
        return response

    async def download_script(self, url: str) -> str:
        """Download a script body.

        Raises:
            ScriptFetchFailure: On timeout, network error or non-2xx status
        """
        headers = browser_like_headers(self.config, {
            "Accept": "*/*",
            "Sec-Fetch-Dest": "script",
            "Sec-Fetch-Mode": "no-cors",
            "Sec-Fetch-Site": "cross-site",
        })
        headers.pop("Sec-Fetch-User", None)
        headers.pop("Upgrade-Insecure-Requests", None)

        try:
            response = await self.client.get(
                url, headers=headers, timeout=self.config.script_timeout, follow_redirects=True
            )
        except httpx.TimeoutException:
            raise ScriptFetchFailure(url, f"timed out after {self.config.script_timeout:g}s")
        except httpx.RequestError as e:
            raise ScriptFetchFailure(url, str(e) or type(e).__name__)

        if not response.is_success:
            raise ScriptFetchFailure(url, f"HTTP {response.status_code}")
        return response.text

    async def fetch_script(self, url: str) -> Optional[str]:
        """Script body, or None when it cannot be fetched."""
        try:
            return await self.download_script(url)
        except ScriptFetchFailure as e:
            logger.debug(str(e))
            return None
