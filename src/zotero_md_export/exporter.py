"""
Export orchestration.

Runs one item through fetch, cite-key resolution, planning, image
retrieval, rendering and writing, and collects per-item outcomes for
multi-item runs.
"""

import logging
from pathlib import Path
from typing import Callable, Iterable, List, Optional

from zotero_md_export.citekey import resolve_cite_key
from zotero_md_export.exceptions import CiteKeyMissingError, ZoteroExportError
from zotero_md_export.markdown import render_markdown
from zotero_md_export.models import (
    STATUS_EXPORTED,
    STATUS_FAILED,
    STATUS_MISSING_IMAGES,
    STATUS_NO_ANNOTATIONS,
    ExportPlan,
    ExportSummary,
    ItemExportResult,
)
from zotero_md_export.paths import attachment_dir_for
from zotero_md_export.planner import add_missing_image_todo, prepare_export

logger = logging.getLogger(__name__)


class FileWriter:
    """Filesystem side effects of an export."""

    def ensure_dir(self, path: str) -> None:
        Path(path).mkdir(parents=True, exist_ok=True)

    def write_text(self, path: str, content: str) -> None:
        target = Path(path)
        target.parent.mkdir(parents=True, exist_ok=True)
        target.write_text(content, encoding="utf-8")

    def write_bytes(self, path: str, data: bytes) -> None:
        target = Path(path)
        target.parent.mkdir(parents=True, exist_ok=True)
        target.write_bytes(data)


def missing_image_message(annotation_key: str) -> str:
    return f"Selected-area image missing for annotation {annotation_key}."


def build_preview(plan: ExportPlan, markdown: str, warnings: List[str]) -> str:
    """Dry-run output: the paths that would be written, then the Markdown."""
    image_lines = "\n".join(f"- {image.file_name} -> {image.absolute_path}" for image in plan.image_plans)
    warning_lines = ""
    if warnings:
        warning_lines = "\nWarnings:\n" + "\n".join(f"- {warning}" for warning in warnings)
    return (
        f"Markdown path: {plan.markdown_path}\n\n"
        f"Image plan:\n{image_lines or '- (none)'}{warning_lines}\n\n{markdown}"
    )


class Exporter:
    """Exports Zotero items to Markdown files."""

    def __init__(self, source, settings, writer: Optional[FileWriter] = None):
        """
        Args:
            source: AnnotationSource used for every Zotero lookup
            settings: ExportSettings (output directories and template)
            writer: Filesystem writer, FileWriter by default
        """
        self.source = source
        self.settings = settings
        self.writer = writer or FileWriter()

    def resolve_cite_key(self, item_key: str, item: dict) -> str:
        """Cite key from item metadata, else from Better BibTeX."""
        try:
            return resolve_cite_key(item)
        except CiteKeyMissingError:
            logger.debug("No cite key in metadata of %s; asking Better BibTeX", item_key)

        cite_key = self.source.get_citation_key(item_key)
        if not cite_key:
            raise CiteKeyMissingError(item_key)
        return cite_key

    def export_item(self, item_key: str, dry_run: bool = False) -> ItemExportResult:
        """
        Export one item.

        Args:
            item_key: Zotero item key
            dry_run: Plan and render without writing anything

        Returns:
            ItemExportResult; ``preview`` is set for dry runs

        Raises:
            ZoteroExportError: If the item, its annotations or its cite key
                cannot be resolved
        """
        item = self.source.get_item(item_key)
        annotations = self.source.get_annotations(item_key)
        cite_key = self.resolve_cite_key(item_key, item)

        plan = prepare_export(
            self.settings.markdown_dir,
            self.settings.attachment_base_dir,
            cite_key,
            item,
            annotations,
        )

        if not dry_run and plan.image_plans:
            self.writer.ensure_dir(attachment_dir_for(self.settings.attachment_base_dir, cite_key))

        warnings = []
        saved_images = 0
        for image in plan.image_plans:
            data = self.source.get_selected_area_image(image.annotation_key, image.attachment_key)
            if not data:
                message = missing_image_message(image.annotation_key)
                logger.warning(message)
                plan = add_missing_image_todo(plan, image.annotation_key, message)
                warnings.append(message)
                continue
            if not dry_run:
                self.writer.write_bytes(image.absolute_path, data)
            saved_images += 1

        markdown = render_markdown(plan, self.settings.template)

        preview = None
        if dry_run:
            preview = build_preview(plan, markdown, warnings)
        else:
            self.writer.ensure_dir(self.settings.markdown_dir)
            self.writer.write_text(plan.markdown_path, markdown)
            logger.info("Exported %s to %s", item_key, plan.markdown_path)

        if warnings:
            status = STATUS_MISSING_IMAGES
        elif plan.annotation_count == 0:
            status = STATUS_NO_ANNOTATIONS
        else:
            status = STATUS_EXPORTED

        return ItemExportResult(
            item_key=item_key,
            status=status,
            cite_key=cite_key,
            markdown_path=plan.markdown_path,
            annotation_count=plan.annotation_count,
            image_count=saved_images,
            warnings=warnings,
            preview=preview,
        )

    def export_items(self, item_keys: Iterable[str], dry_run: bool = False,
                     progress_callback: Optional[Callable[[str], None]] = None) -> ExportSummary:
        """
        Export several items one after another.

        A failing item, including one whose files cannot be written, is
        recorded and the run continues with the next one.
        """
        summary = ExportSummary(dry_run=dry_run)
        for item_key in item_keys:
            if progress_callback:
                progress_callback(f"Exporting {item_key}...")
            try:
                result = self.export_item(item_key, dry_run=dry_run)
            except (ZoteroExportError, OSError) as e:
                logger.warning("Export of %s failed: %s", item_key, e)
                result = ItemExportResult(item_key=item_key, status=STATUS_FAILED, error=str(e))
            summary.results.append(result)
        return summary


def format_summary(summary: ExportSummary) -> str:
    """Human-readable run summary."""
    verb = "Would export" if summary.dry_run else "Exported"
    lines = [f"{verb} {len(summary.exported)} of {summary.total} item(s)."]

    if summary.no_annotations:
        lines.append(f"{len(summary.no_annotations)} item(s) had no annotations:")
        lines.extend(f"  - {result.item_key} ({result.markdown_path})" for result in summary.no_annotations)

    if summary.missing_images:
        todo_total = sum(result.todo_count for result in summary.missing_images)
        lines.append(
            f"{len(summary.missing_images)} item(s) with missing images ({todo_total} TODO marker(s)):"
        )
        lines.extend(
            f"  - {result.item_key}: {result.todo_count} TODO(s) in {result.markdown_path}"
            for result in summary.missing_images
        )

    if summary.failed:
        lines.append(f"{len(summary.failed)} item(s) failed:")
        lines.extend(f"  - {result.item_key}: {result.error}" for result in summary.failed)

    return "\n".join(lines)
