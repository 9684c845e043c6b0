"""
zotero-md-export - export Zotero PDF annotations to Markdown.

Provides functionality for:
- Reading items and annotations from zotero.sqlite or the local API
- Resolving Better BibTeX citation keys
- Rendering annotations grouped by highlight color
- Saving selected-area annotations as PNG images
"""

from zotero_md_export.api import ZoteroLocalAPI
from zotero_md_export.config import ExportSettings, TemplateSettings
from zotero_md_export.exporter import Exporter
from zotero_md_export.markdown import render_markdown
from zotero_md_export.planner import prepare_export
from zotero_md_export.source import AnnotationSource

__version__ = "0.1.0"
__all__ = [
    "AnnotationSource",
    "ExportSettings",
    "Exporter",
    "TemplateSettings",
    "ZoteroLocalAPI",
    "prepare_export",
    "render_markdown",
]
