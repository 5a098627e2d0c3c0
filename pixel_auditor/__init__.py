"""Pixel Auditor - tracking instrumentation audit engine.

Fetches a page and its relevant scripts, detects GA4, Google Tag Manager,
Meta Pixel and Google Ads installations, mines tracking events and rolls
everything up into a 0-100 tracking health score.
"""

__version__ = "0.1.0"

from .audit.engine import run_pixel_audit, run_pixel_audit_sync

__all__ = ["run_pixel_audit", "run_pixel_audit_sync", "__version__"]
