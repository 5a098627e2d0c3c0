"""Shared test fixtures and configuration for Pixel Auditor tests."""

import sys
from pathlib import Path
from typing import Callable, Dict, List, Optional, Union

import httpx
import pytest

# Add project root to Python path
sys.path.insert(0, str(Path(__file__).parent.parent))

from pixel_auditor.audit.capture.page_fetcher import extract_scripts_from_html
from pixel_auditor.audit.detectors.config import AuditConfig, FetchConfig
from pixel_auditor.audit.models import PageContent, ScriptRecord, ScriptType


SITE_URL = "https://shop.example.com/"


def _make_page(html: str, final_url: str = SITE_URL) -> PageContent:
    """Page content as the retriever would produce it for ``html``."""
    return PageContent(html=html, scripts=extract_scripts_from_html(html), final_url=final_url, status=200)


def _external(src: str, content: str = "", exclude_from_events: bool = False) -> ScriptRecord:
    """A fetched external script record."""
    return ScriptRecord(type=ScriptType.EXTERNAL, src=src, content=content,
                        exclude_from_events=exclude_from_events)


def _mock_client(routes: Dict[str, Union[str, int, Callable[[httpx.Request], httpx.Response]]],
                calls: Optional[List[str]] = None) -> httpx.AsyncClient:
    """AsyncClient answering from ``routes`` (URL -> body, status or handler).

    Unknown URLs get a 404. Requested URLs are appended to ``calls``.
    """
    def handler(request: httpx.Request) -> httpx.Response:
        url = str(request.url)
        if calls is not None:
            calls.append(url)
        route = routes.get(url)
        if route is None:
            return httpx.Response(404, text="not found")
        if callable(route):
            return route(request)
        if isinstance(route, int):
            return httpx.Response(route, text="")
        return httpx.Response(200, text=route, headers={"content-type": "text/html; charset=utf-8"})

    return httpx.AsyncClient(transport=httpx.MockTransport(handler), follow_redirects=True)


@pytest.fixture
def make_page():
    """Factory: ``make_page(html, final_url=SITE_URL)``."""
    return _make_page


@pytest.fixture
def external_script():
    """Factory: ``external_script(src, content="", exclude_from_events=False)``."""
    return _external


@pytest.fixture
def mock_client():
    """Factory: ``mock_client(routes, calls=None)`` returning an ``httpx.AsyncClient``."""
    return _mock_client


@pytest.fixture
def audit_config():
    """Audit configuration without the blocked-page retry."""
    return AuditConfig(environment="test", fetch=FetchConfig(retry_when_blocked=False))


@pytest.fixture
def ga4_html():
    """Scenario A page: gtag.js, config call and a purchase event."""
    return (
        '<html><head>'
        '<script src="https://www.googletagmanager.com/gtag/js?id=G-ABC12345"></script>'
        "<script>gtag('config','G-ABC12345');"
        "gtag('event','purchase',{value:10,currency:'USD'});</script>"
        '</head><body></body></html>'
    )


@pytest.fixture
def meta_init_only_html():
    """Scenario B page: a Meta Pixel init and nothing else."""
    return "<html><head><script>fbq('init','1234567890123')</script></head><body></body></html>"


@pytest.fixture
def gtm_html():
    """Standard GTM install with dataLayer init and noscript fallback."""
    return (
        "<html><head><script>window.dataLayer = window.dataLayer || [];"
        "(function(w,d,s,l,i){w[l]=w[l]||[];w[l].push({'gtm.start':new Date().getTime(),event:'gtm.js'});"
        "var f=d.getElementsByTagName(s)[0],j=d.createElement(s);"
        "j.async=true;j.src='https://www.googletagmanager.com/gtm.js?id='+i;"
        "f.parentNode.insertBefore(j,f);})(window,document,'script','dataLayer','GTM-AB12CD3');</script>"
        "</head><body>"
        '<noscript><iframe src="https://www.googletagmanager.com/ns.html?id=GTM-AB12CD3" '
        'height="0" width="0"></iframe></noscript>'
        "</body></html>"
    )
