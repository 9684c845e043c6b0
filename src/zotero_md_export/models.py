"""Data classes shared across the export pipeline."""

from dataclasses import dataclass, field
from typing import List, Optional


@dataclass(frozen=True)
class Annotation:
    """A normalized PDF annotation, independent of the backend it came from."""

    key: str
    attachment_key: str
    color_hex: str
    color_name: str
    text: str
    comment: str
    page_label: str
    sort_index: int
    is_image_selection: bool = False


@dataclass(frozen=True)
class RenderAnnotation:
    """What the renderer needs for one annotation."""

    key: str
    text: str
    comment: str
    page_label: str
    image_markdown_path: Optional[str] = None
    missing_image_message: Optional[str] = None


@dataclass(frozen=True)
class ColorGroup:
    color_name: str
    annotations: List[RenderAnnotation] = field(default_factory=list)


@dataclass(frozen=True)
class ImagePlan:
    """Where the PNG for one selected-area annotation goes."""

    annotation_key: str
    attachment_key: str
    file_name: str
    absolute_path: str
    relative_path_from_markdown: str


@dataclass(frozen=True)
class ExportPlan:
    """Fully resolved output of one item export, ready for rendering."""

    markdown_path: str
    title: str
    author: str
    year: str
    company: str
    abstract_text: str
    groups: List[ColorGroup] = field(default_factory=list)
    image_plans: List[ImagePlan] = field(default_factory=list)

    @property
    def annotation_count(self) -> int:
        return sum(len(group.annotations) for group in self.groups)


@dataclass
class ItemSummary:
    """A search result row."""

    key: str
    title: str
    creators: str = ""
    year: str = ""

    def display_str(self) -> str:
        """Human-readable one-line description."""
        line = f"{self.key}  {self.title}"
        if self.year:
            line += f" ({self.year})"
        if self.creators:
            line += f" - {self.creators}"
        return line


# Per-item export outcomes
STATUS_EXPORTED = "exported"
STATUS_NO_ANNOTATIONS = "no_annotations"
STATUS_MISSING_IMAGES = "missing_images"
STATUS_FAILED = "failed"


@dataclass
class ItemExportResult:
    """Result of exporting a single item."""

    item_key: str
    status: str
    cite_key: Optional[str] = None
    markdown_path: Optional[str] = None
    annotation_count: int = 0
    image_count: int = 0
    warnings: List[str] = field(default_factory=list)
    error: Optional[str] = None
    preview: Optional[str] = None

    @property
    def todo_count(self) -> int:
        return len(self.warnings)


@dataclass
class ExportSummary:
    """Result of a multi-item export run."""

    dry_run: bool = False
    results: List[ItemExportResult] = field(default_factory=list)

    def _with_status(self, status: str) -> List[ItemExportResult]:
        return [result for result in self.results if result.status == status]

    @property
    def total(self) -> int:
        return len(self.results)

    @property
    def exported(self) -> List[ItemExportResult]:
        return self._with_status(STATUS_EXPORTED)

    @property
    def no_annotations(self) -> List[ItemExportResult]:
        return self._with_status(STATUS_NO_ANNOTATIONS)

    @property
    def missing_images(self) -> List[ItemExportResult]:
        return self._with_status(STATUS_MISSING_IMAGES)

    @property
    def failed(self) -> List[ItemExportResult]:
        return self._with_status(STATUS_FAILED)
