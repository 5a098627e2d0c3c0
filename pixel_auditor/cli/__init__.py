"""Command-line interface for Pixel Auditor."""

from .main import ExitCode, app

__all__ = ['ExitCode', 'app']
