"""
Path helpers for export planning.

All paths are handled as forward-slash strings so that a plan computed on
one platform renders identically everywhere.
"""

import re

_SLASH_RUN = re.compile(r'/+')
_YEAR_PATTERN = re.compile(r'\b(\d{4})\b')


def normalize_path(path: str) -> str:
    """Convert backslashes to forward slashes and collapse duplicate slashes."""
    return _SLASH_RUN.sub('/', path.replace('\\', '/'))


def markdown_path_for(markdown_dir: str, cite_key: str) -> str:
    """Destination of the Markdown note for a cite key: ``{dir}/@{key}.md``."""
    return normalize_path(f"{markdown_dir}/@{cite_key}.md")


def attachment_dir_for(attachment_base_dir: str, cite_key: str) -> str:
    """Per-item directory holding selected-area images."""
    return normalize_path(f"{attachment_base_dir}/attachment/{cite_key}")


def to_relative_path(from_file: str, target: str) -> str:
    """
    Express ``target`` relative to the directory containing ``from_file``.

    Args:
        from_file: Path of the file the reference lives in (its name is stripped)
        target: Path being referenced

    Returns:
        Relative path using ``..`` segments, or ``"."`` when both coincide
    """
    from_parts = [part for part in normalize_path(from_file).split('/') if part]
    to_parts = [part for part in normalize_path(target).split('/') if part]

    if from_parts:
        from_parts.pop()

    common = 0
    while (common < len(from_parts) and common < len(to_parts)
           and from_parts[common] == to_parts[common]):
        common += 1

    relative = ['..'] * (len(from_parts) - common) + to_parts[common:]
    return '/'.join(relative) or '.'


def extract_year(raw_date: str) -> str:
    """
    Return the first 4-digit run in a free-text date that stands alone as a
    word, or ''. Digits glued to letters (``May2017``) do not count.
    """
    match = _YEAR_PATTERN.search(raw_date or '')
    return match.group(1) if match else ''
