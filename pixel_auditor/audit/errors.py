"""Exception hierarchy for pixel audits.

Only failures of the primary page fetch escape ``run_pixel_audit``. Script
fetch failures stay inside the resolver and parse failures stay inside the
detectors; those two classes exist so the failure is named where it is
caught and logged.
"""

from typing import Optional


class AuditError(Exception):
    """Base class for audit failures."""


class InvalidUrlError(AuditError):
    """The audit URL is not a well-formed absolute http(s) URL."""

    def __init__(self, url: str, reason: str = "expected an absolute http(s) URL"):
        self.url = url
        self.reason = reason
        super().__init__(f"Invalid URL {url!r}: {reason}")


class PageTimeoutError(AuditError):
    """The page fetch did not complete in time."""

    def __init__(self, url: str, timeout: float):
        self.url = url
        self.timeout = timeout
        super().__init__(f"Timed out after {timeout:g}s fetching {url}")


class HttpStatusError(AuditError):
    """The page responded with a non-2xx status."""

    def __init__(self, url: str, status: int):
        self.url = url
        self.status = status
        super().__init__(f"HTTP {status} fetching {url}")


class PageFetchError(AuditError):
    """Generic network failure (DNS, connection reset, TLS...) fetching the page."""

    def __init__(self, url: str, cause: Optional[BaseException] = None):
        self.url = url
        self.cause = cause
        message = f"Network error fetching {url}"
        if cause is not None:
            message += f": {cause}"
        super().__init__(message)


class ScriptFetchFailure(AuditError):
    """A single external script could not be downloaded."""

    def __init__(self, url: str, reason: str):
        self.url = url
        self.reason = reason
        super().__init__(f"Could not fetch script {url}: {reason}")


class DetectorParseFailure(AuditError):
    """A structured parse inside a detector failed."""

    def __init__(self, what: str, text: str):
        self.what = what
        self.text = text
        super().__init__(f"Could not parse {what}: {text[:80]!r}")
