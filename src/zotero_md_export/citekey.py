"""
Citation key resolution from Zotero item metadata.

Better BibTeX keys show up in different places depending on the Zotero
version and how the item was imported: a native ``citationKey`` field,
legacy field names, the API ``meta`` block, or a line in ``extra``.
"""

import re
from typing import Any, Dict, Optional

from zotero_md_export.exceptions import CiteKeyMissingError

DIRECT_FIELDS = ("citationKey", "citekey", "bibtexKey")

EXTRA_PATTERNS = [
    re.compile(r'^citation\s*key\s*:\s*(.+)$', re.IGNORECASE),
    re.compile(r'^citekey\s*:\s*(.+)$', re.IGNORECASE),
    re.compile(r'^bbt\s*citation\s*key\s*:\s*(.+)$', re.IGNORECASE),
]


def _clean(candidate: Any) -> str:
    return candidate.strip() if isinstance(candidate, str) else ''


def extract_from_extra(extra: Any) -> Optional[str]:
    """Find a cite key in the free-text Extra field, one line at a time."""
    if not isinstance(extra, str) or not extra.strip():
        return None

    for line in extra.splitlines():
        trimmed = line.strip()
        for pattern in EXTRA_PATTERNS:
            match = pattern.match(trimmed)
            if match and match.group(1).strip():
                return match.group(1).strip()
    return None


def resolve_cite_key(item: Dict[str, Any]) -> str:
    """
    Resolve the citation key of a Zotero item.

    Args:
        item: Item record in API shape (``key``, ``data``, optional ``meta``)

    Returns:
        The trimmed citation key

    Raises:
        CiteKeyMissingError: If neither a direct field nor Extra holds a key
    """
    data = item.get('data') or {}
    meta = item.get('meta') or {}

    candidates = [data.get(field) for field in DIRECT_FIELDS]
    candidates.append(meta.get('citationKey'))
    for candidate in candidates:
        value = _clean(candidate)
        if value:
            return value

    from_extra = extract_from_extra(data.get('extra'))
    if from_extra:
        return from_extra

    raise CiteKeyMissingError(item.get('key'))
