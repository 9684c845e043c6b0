"""
Exception hierarchy for zotero-md-export.

Every error raised on purpose by this package derives from
ZoteroExportError so callers can catch one type per item export.
"""

from typing import List, Optional, Tuple


class ZoteroExportError(Exception):
    """Base exception for all export errors."""


class CiteKeyMissingError(ZoteroExportError):
    """Raised when no citation key can be resolved for an item.

    The message carries remediation guidance for the user.
    """

    REMEDIATION = (
        'Better BibTeX cite key is missing for this item. In Zotero, install '
        'Better BibTeX and ensure a citation key exists (for example in Extra: '
        '"Citation Key: mykey").'
    )

    def __init__(self, item_key: Optional[str] = None, message: Optional[str] = None):
        self.item_key = item_key
        super().__init__(message or self.REMEDIATION)


class MalformedResponseError(ZoteroExportError):
    """Raised when a backend returns a payload that cannot be interpreted."""


class ZoteroHTTPError(ZoteroExportError):
    """Raised when a single HTTP attempt against the local API fails."""

    def __init__(self, message: str, status_code: Optional[int] = None):
        self.status_code = status_code
        super().__init__(message)


class BackendUnavailableError(ZoteroExportError):
    """Raised when every backend strategy for an operation failed.

    Attributes:
        failures: (label, message) pairs, one per attempted strategy
    """

    def __init__(self, operation: str, failures: List[Tuple[str, str]]):
        self.operation = operation
        self.failures = list(failures)
        details = "; ".join(f"{label}: {message}" for label, message in self.failures)
        super().__init__(f"{operation} failed ({details})")
