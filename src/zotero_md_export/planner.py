"""
Turn an item and its annotations into an ExportPlan.

Planning is pure: given the same inputs it always produces the same paths,
image names and grouping. Nothing here touches the network or the disk.
"""

from dataclasses import replace
from typing import Any, Dict, List

from zotero_md_export.colors import color_name_from_hex
from zotero_md_export.models import Annotation, ColorGroup, ExportPlan, ImagePlan, RenderAnnotation
from zotero_md_export.paths import (
    attachment_dir_for,
    extract_year,
    markdown_path_for,
    normalize_path,
    to_relative_path,
)

# Item fields that can hold the publishing organisation, by item type
COMPANY_FIELDS = ("publisher", "institution", "company", "university")


def _text(value: Any) -> str:
    return value.strip() if isinstance(value, str) else ''


def normalize_annotation(raw: Dict[str, Any], attachment_key: str, sort_index: int) -> Annotation:
    """Build an Annotation from a local API annotation record."""
    data = raw.get('data') or {}
    color_hex = _text(data.get('annotationColor')).lower()
    return Annotation(
        key=raw['key'],
        attachment_key=attachment_key,
        color_hex=color_hex,
        color_name=color_name_from_hex(color_hex),
        text=_text(data.get('annotationText')),
        comment=_text(data.get('annotationComment')),
        page_label=_text(data.get('annotationPageLabel')),
        sort_index=sort_index,
        is_image_selection=_text(data.get('annotationType')).lower() == 'image',
    )


def creator_to_string(creator: Dict[str, Any]) -> str:
    """``"Last, First"`` for structured names, the single name otherwise."""
    last = _text(creator.get('lastName'))
    first = _text(creator.get('firstName'))
    if last or first:
        return ', '.join(part for part in (last, first) if part)
    return _text(creator.get('name'))


def build_author(item: Dict[str, Any]) -> str:
    creators = (item.get('data') or {}).get('creators') or []
    names = [creator_to_string(c) for c in creators if isinstance(c, dict)]
    return '; '.join(name for name in names if name)


def resolve_company(item: Dict[str, Any]) -> str:
    data = item.get('data') or {}
    for field in COMPANY_FIELDS:
        value = _text(data.get(field))
        if value:
            return value
    return ''


def prepare_export(markdown_dir: str, attachment_base_dir: str, cite_key: str,
                   item: Dict[str, Any], annotations: List[Annotation]) -> ExportPlan:
    """
    Resolve paths, image names and color groups for one item.

    Args:
        markdown_dir: Directory receiving ``@{cite_key}.md``
        attachment_base_dir: Base directory for ``attachment/{cite_key}/``
        cite_key: Resolved citation key
        item: Item record in API shape
        annotations: Deduplicated annotations with reconciled sort indices

    Returns:
        ExportPlan with groups in order of first color occurrence
    """
    markdown_path = markdown_path_for(markdown_dir, cite_key)
    image_dir = attachment_dir_for(attachment_base_dir, cite_key)

    grouped: Dict[str, List[RenderAnnotation]] = {}
    image_plans = []

    for annotation in sorted(annotations, key=lambda a: a.sort_index):
        image_path = None
        if annotation.is_image_selection:
            file_name = f"image_{len(image_plans) + 1}.png"
            absolute_path = normalize_path(f"{image_dir}/{file_name}")
            image_path = to_relative_path(markdown_path, absolute_path)
            image_plans.append(ImagePlan(
                annotation_key=annotation.key,
                attachment_key=annotation.attachment_key,
                file_name=file_name,
                absolute_path=absolute_path,
                relative_path_from_markdown=image_path,
            ))

        grouped.setdefault(annotation.color_name, []).append(RenderAnnotation(
            key=annotation.key,
            text=annotation.text.strip(),
            comment=annotation.comment.strip(),
            page_label=annotation.page_label.strip(),
            image_markdown_path=image_path,
        ))

    data = item.get('data') or {}
    return ExportPlan(
        markdown_path=markdown_path,
        title=_text(data.get('title')),
        author=build_author(item),
        year=extract_year(_text(data.get('date'))),
        company=resolve_company(item),
        abstract_text=_text(data.get('abstractNote')),
        groups=[ColorGroup(color_name=name, annotations=entries) for name, entries in grouped.items()],
        image_plans=image_plans,
    )


def add_missing_image_todo(plan: ExportPlan, annotation_key: str, message: str) -> ExportPlan:
    """Return a copy of ``plan`` where the annotation's image is replaced by a TODO message."""
    groups = []
    for group in plan.groups:
        annotations = [
            replace(a, image_markdown_path=None, missing_image_message=message)
            if a.key == annotation_key else a
            for a in group.annotations
        ]
        groups.append(replace(group, annotations=annotations))
    return replace(plan, groups=groups)
