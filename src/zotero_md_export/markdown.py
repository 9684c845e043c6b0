"""
Markdown rendering for an ExportPlan.

Rendering is a pure function of the plan and the template settings: the
same plan always renders to byte-identical output.
"""

from typing import Any, Dict, List, Mapping
from urllib.parse import quote

from zotero_md_export.colors import color_sort_key
from zotero_md_export.models import ColorGroup, ExportPlan, RenderAnnotation

DEFAULT_PROPERTY_ORDER = ["title", "author", "year", "company"]

PROPERTY_LABELS = {
    "title": "Title",
    "author": "Author",
    "year": "Year",
    "company": "Company",
}

NO_TEXT_PLACEHOLDER = "(No text extracted)"
SOURCE_TAG = "type/source/paper"


def escape_single_quote(value: str) -> str:
    """Escape a value for a single-quoted YAML scalar."""
    return value.replace("'", "''")


def normalize_property_order(order: Any) -> List[str]:
    """
    Sanitize a frontmatter property order.

    Unknown keys are dropped, duplicates removed, and any canonical key
    missing from ``order`` is appended in default order. Anything that is
    not a list counts as an empty order.
    """
    base = order if isinstance(order, (list, tuple)) else []
    result = []
    for key in base:
        if isinstance(key, str) and key in PROPERTY_LABELS and key not in result:
            result.append(key)
    for key in DEFAULT_PROPERTY_ORDER:
        if key not in result:
            result.append(key)
    return result


def sort_groups(groups: List[ColorGroup]) -> List[ColorGroup]:
    return sorted(groups, key=lambda group: color_sort_key(group.color_name))


def _metadata_value(plan: ExportPlan, key: str) -> str:
    return {
        "title": plan.title,
        "author": plan.author,
        "year": plan.year,
        "company": plan.company,
    }[key]


def _annotation_quote_lines(annotation: RenderAnnotation) -> List[str]:
    page_suffix = ""
    if annotation.page_label:
        link = f"zotero://select/library/items/{quote(annotation.key, safe='')}"
        page_suffix = f" ([p. {annotation.page_label}]({link}))"

    lines = [(annotation.text or annotation.comment or NO_TEXT_PLACEHOLDER) + page_suffix]
    if annotation.text and annotation.comment:
        lines.append(f"Comment: {annotation.comment}")
    if annotation.image_markdown_path:
        lines.append(f"[[{annotation.image_markdown_path}]]")
    if annotation.missing_image_message:
        lines.append(f"TODO: {annotation.missing_image_message}")
    return lines


def _abstract_callout(abstract_text: str) -> List[str]:
    if not abstract_text.strip():
        return []
    body = [line.strip() for line in abstract_text.splitlines() if line.strip()]
    return ["> [!INFO]", "> ", "> Abstract", "> "] + [f"> {line}" for line in body] + ["> ", ""]


def _heading_for(color_name: str, overrides: Mapping[str, Any]) -> str:
    override = overrides.get(color_name)
    if isinstance(override, str) and override.strip():
        return override.strip()
    return color_name


def render_markdown(plan: ExportPlan, template=None) -> str:
    """
    Render an ExportPlan to Markdown.

    Args:
        plan: Resolved export plan
        template: Optional TemplateSettings (property order and color
            heading overrides); malformed values are sanitized

    Returns:
        Markdown text ending in exactly one newline
    """
    property_order = normalize_property_order(getattr(template, "property_order", None))
    overrides: Dict[str, Any] = getattr(template, "color_heading_overrides", None) or {}
    if not isinstance(overrides, Mapping):
        overrides = {}

    lines = ["---", "tags:", f"  - {SOURCE_TAG}"]
    for key in property_order:
        lines.append(f"{PROPERTY_LABELS[key]}: '{escape_single_quote(_metadata_value(plan, key))}'")
    lines.extend(["---", "", "Project:", ""])

    lines.extend(_abstract_callout(plan.abstract_text))
    lines.extend(["## Annotations", ""])

    for group in sort_groups(plan.groups):
        lines.append(f"### {_heading_for(group.color_name, overrides)}")
        for index, annotation in enumerate(group.annotations):
            lines.extend(f"> {line}" for line in _annotation_quote_lines(annotation))
            if index < len(group.annotations) - 1:
                lines.append("")
        lines.append("")

    return "\n".join(lines).rstrip() + "\n"

