"""Highlight color names and the fixed section order used in exports."""

from functools import cmp_to_key
from typing import Iterable, List

# Zotero's default annotation palette
COLOR_MAP = {
    "#ffd400": "Yellow",
    "#fff5ad": "Yellow",
    "#5fb236": "Green",
    "#2ea8e5": "Blue",
    "#a28ae5": "Purple",
    "#e56eee": "Pink",
    "#f19837": "Orange",
    "#aaaaaa": "Gray",
}

UNKNOWN = "Unknown"

FIXED_ORDER = ["Yellow", "Green", "Blue", "Pink", "Orange", "Purple", "Gray", UNKNOWN]


def color_name_from_hex(hex_color: str) -> str:
    """
    Map an annotation color code to its display name.

    Empty input is ``"Unknown"``; unrecognized codes keep the normalized
    code, e.g. ``"Unknown (#123456)"``.
    """
    normalized = (hex_color or "").strip().lower()
    if not normalized:
        return UNKNOWN
    return COLOR_MAP.get(normalized, f"{UNKNOWN} ({normalized})")


def color_rank(color_name: str) -> int:
    """Position of a color name in FIXED_ORDER; anything else sorts right after Unknown."""
    if color_name in FIXED_ORDER:
        return FIXED_ORDER.index(color_name)
    return FIXED_ORDER.index(UNKNOWN) + 1


def compare_color_names(a: str, b: str) -> int:
    """Comparator over color names: fixed rank first, then the full name."""
    rank_diff = color_rank(a) - color_rank(b)
    if rank_diff:
        return rank_diff
    return (a > b) - (a < b)


color_sort_key = cmp_to_key(compare_color_names)


def sort_color_names(names: Iterable[str]) -> List[str]:
    return sorted(names, key=color_sort_key)
