"""Failure containment for detectors.

Detectors are best-effort heuristics: a bug or an unexpected input in one
rule must not take down the audit. ``resilient_operation`` wraps a detector
method so any exception is logged and replaced with a fallback value.
"""

import logging
from functools import wraps
from typing import Any, Callable, TypeVar

logger = logging.getLogger(__name__)

F = TypeVar('F', bound=Callable[..., Any])


def resilient_operation(operation_name: str,
                        default_factory: Callable[[Any], Any],
                        log_success: bool = False) -> Callable[[F], F]:
    """Decorator for making detector operations resilient to errors.

    Args:
        operation_name: Name of the operation for logging
        default_factory: Called with the detector instance to build the value
            returned on error
        log_success: Whether to log successful operations

    Returns:
        Decorated method with error handling
    """
    def decorator(func: F) -> F:
        @wraps(func)
        def wrapper(self, *args, **kwargs):
            try:
                result = func(self, *args, **kwargs)
                if log_success:
                    logger.debug(f"{self.name}.{operation_name} completed successfully")
                return result
            except Exception as e:
                logger.warning(f"{self.name}.{operation_name} failed, using empty result: {e}",
                               exc_info=logger.isEnabledFor(logging.DEBUG))
                return default_factory(self)

        return wrapper  # type: ignore[return-value]
    return decorator
