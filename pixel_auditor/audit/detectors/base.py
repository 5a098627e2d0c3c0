"""Base detector protocol and registry for platform tag detection.

Every platform detector scans the same input (the page plus its resolved
scripts) and returns a ``DetectionResult`` subclass. Detectors are pure: no
I/O and no state shared between calls, so they can run in any order or in
parallel.
"""

import logging
from abc import ABC, abstractmethod
from typing import Any, Dict, List, Optional, Sequence, Type

from ..models import DetectionResult, Issue, PageContent, ScriptRecord, Severity
from .errors import resilient_operation

logger = logging.getLogger(__name__)


class BaseDetector(ABC):
    """Abstract base class for platform detectors."""

    #: Platform label stamped on every issue this detector raises
    platform: str = ""
    #: Result model returned by ``detect``
    result_class: Type[DetectionResult] = DetectionResult

    def __init__(self, name: str, version: str = "1.0.0"):
        self._name = name
        self._version = version

    @property
    def name(self) -> str:
        """Detector name for identification."""
        return self._name

    @property
    def version(self) -> str:
        """Detector version for tracking changes."""
        return self._version

    def empty_result(self) -> DetectionResult:
        """Result reported when nothing was found or detection failed."""
        return self.result_class()

    @resilient_operation("detect", lambda self: self.empty_result())
    def detect(self, page: PageContent, scripts: Sequence[ScriptRecord]) -> DetectionResult:
        """Analyze the page and its scripts. Never raises.

        Args:
            page: Retrieved page content
            scripts: Resolved script records

        Returns:
            Platform detection result
        """
        return self.analyze(page, scripts)

    @abstractmethod
    def analyze(self, page: PageContent, scripts: Sequence[ScriptRecord]) -> DetectionResult:
        """Platform-specific detection. May raise; ``detect`` contains it."""
        pass

    @staticmethod
    def combined_text(page: PageContent, scripts: Sequence[ScriptRecord]) -> str:
        """Page HTML followed by every external script body, newline separated.

        Inline bodies are already part of the HTML.
        """
        parts = [page.html or ""]
        parts.extend(script.content for script in scripts if script.is_external and script.content)
        return "\n".join(parts)

    def issue(self, code: str, title: str, severity: Severity,
              details: Optional[str] = None, **evidence: Any) -> Issue:
        """Create an issue attributed to this detector's platform."""
        return Issue(
            platform=self.platform,
            code=code,
            title=title,
            severity=severity,
            details=details,
            evidence=evidence or None,
        )


class DetectorRegistry:
    """Registry of detector instances keyed by report field.

    A registry is built per audit run (see ``create_default_registry``);
    nothing is shared between runs.
    """

    def __init__(self):
        self._detectors: Dict[str, BaseDetector] = {}
        self._enabled: Dict[str, bool] = {}

    def register(self, key: str, detector: BaseDetector, enabled: bool = True) -> None:
        """Register a detector under ``key``.

        Raises:
            ValueError: If the key is already registered
        """
        if key in self._detectors:
            raise ValueError(f"Detector '{key}' is already registered")
        self._detectors[key] = detector
        self._enabled[key] = enabled
        logger.debug(f"Registered detector {detector.name} as '{key}' (enabled={enabled})")

    def get_detector(self, key: str) -> Optional[BaseDetector]:
        return self._detectors.get(key)

    def set_enabled(self, key: str, enabled: bool) -> bool:
        """Enable or disable a detector. Returns False for unknown keys."""
        if key not in self._detectors:
            return False
        self._enabled[key] = enabled
        return True

    def is_enabled(self, key: str) -> bool:
        return self._enabled.get(key, False)

    def get_enabled_detectors(self) -> Dict[str, BaseDetector]:
        """Enabled detectors in registration order."""
        return {key: det for key, det in self._detectors.items() if self._enabled[key]}

    def list_detectors(self, enabled_only: bool = False) -> List[str]:
        if enabled_only:
            return list(self.get_enabled_detectors())
        return list(self._detectors)
