"""
Ordered fallback over interchangeable strategies.

Each strategy is a zero-argument callable. The first one that returns wins;
if all of them raise, a single error carrying every failure is raised.
"""

import logging
from typing import Callable, Sequence, Tuple, Type, TypeVar

from zotero_md_export.exceptions import BackendUnavailableError, ZoteroExportError

logger = logging.getLogger(__name__)

T = TypeVar("T")

Strategy = Tuple[str, Callable[[], T]]


def try_in_order(
    operation: str,
    strategies: Sequence[Strategy],
    error_cls: Type[ZoteroExportError] = BackendUnavailableError,
) -> T:
    """Run strategies in order and return the first successful result.

    Args:
        operation: Human-readable name of the operation, used in the error
        strategies: (label, callable) pairs tried in sequence
        error_cls: Error raised when every strategy fails. It is built as
            ``error_cls(operation, failures)`` for BackendUnavailableError and
            ``error_cls(message)`` otherwise.

    Returns:
        The value returned by the first strategy that did not raise
    """
    failures = []
    for label, strategy in strategies:
        try:
            return strategy()
        except Exception as e:
            logger.debug("%s via %s failed: %s", operation, label, e)
            failures.append((label, str(e)))

    if issubclass(error_cls, BackendUnavailableError):
        raise error_cls(operation, failures)
    details = "; ".join(f"{label}: {message}" for label, message in failures)
    raise error_cls(f"{operation} failed ({details})")
