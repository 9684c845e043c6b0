"""
Read-only access to Zotero's SQLite database.

The database is opened with ``immutable=1`` so that reads neither take nor
wait for the lock held by a running Zotero instance. Nothing in this module
ever writes to the database.
"""

import logging
import os
import sqlite3
from contextlib import closing
from pathlib import Path
from typing import Any, Dict, List, Optional

from zotero_md_export.colors import color_name_from_hex
from zotero_md_export.exceptions import ZoteroExportError
from zotero_md_export.models import Annotation, ItemSummary
from zotero_md_export.paths import extract_year

logger = logging.getLogger(__name__)

SQLITE_PATH_ENV = "ZOTERO_SQLITE_PATH"
BBT_SQLITE_PATH_ENV = "ZOTERO_BBT_SQLITE_PATH"

# itemAnnotations.type for selected-area (image) annotations
ANNOTATION_TYPE_IMAGE = 3

SEARCH_LIMIT = 75

_SEARCH_SQL = """
WITH title_data AS (
    SELECT d.itemID AS itemID, CAST(v.value AS TEXT) AS value
    FROM itemData d
    JOIN fields f ON f.fieldID = d.fieldID
    JOIN itemDataValues v ON v.valueID = d.valueID
    WHERE f.fieldName = 'title'
),
date_data AS (
    SELECT d.itemID AS itemID, CAST(v.value AS TEXT) AS value
    FROM itemData d
    JOIN fields f ON f.fieldID = d.fieldID
    JOIN itemDataValues v ON v.valueID = d.valueID
    WHERE f.fieldName = 'date'
),
creator_data AS (
    SELECT
        ic.itemID AS itemID,
        GROUP_CONCAT(
            CASE
                WHEN c.fieldMode = 1 THEN COALESCE(c.lastName, '')
                ELSE TRIM(
                    COALESCE(c.lastName, '') ||
                    CASE WHEN COALESCE(c.firstName, '') <> '' THEN ', ' || c.firstName ELSE '' END
                )
            END,
            '; '
        ) AS value
    FROM itemCreators ic
    JOIN creators c ON c.creatorID = ic.creatorID
    GROUP BY ic.itemID
)
SELECT
    i.key AS key,
    COALESCE(title_data.value, '(untitled)') AS title,
    COALESCE(creator_data.value, '') AS creators,
    COALESCE(date_data.value, '') AS dateValue
FROM items i
JOIN itemTypes it ON it.itemTypeID = i.itemTypeID
LEFT JOIN title_data ON title_data.itemID = i.itemID
LEFT JOIN date_data ON date_data.itemID = i.itemID
LEFT JOIN creator_data ON creator_data.itemID = i.itemID
WHERE
    it.typeName NOT IN ('attachment', 'note', 'annotation')
    AND i.itemID NOT IN (SELECT itemID FROM deletedItems)
    AND (
        :term = ''
        OR LOWER(COALESCE(title_data.value, '')) LIKE '%' || LOWER(:term) || '%'
        OR LOWER(COALESCE(creator_data.value, '')) LIKE '%' || LOWER(:term) || '%'
        OR LOWER(COALESCE(date_data.value, '')) LIKE '%' || LOWER(:term) || '%'
    )
ORDER BY LOWER(COALESCE(title_data.value, '')) ASC
LIMIT :limit
"""

_ITEM_SQL = """
SELECT i.itemID AS itemID, i.key AS key, it.typeName AS typeName
FROM items i
JOIN itemTypes it ON it.itemTypeID = i.itemTypeID
WHERE i.key = ?
  AND i.itemID NOT IN (SELECT itemID FROM deletedItems)
LIMIT 1
"""

_FIELDS_SQL = """
SELECT f.fieldName AS fieldName, CAST(v.value AS TEXT) AS fieldValue
FROM itemData d
JOIN fields f ON f.fieldID = d.fieldID
JOIN itemDataValues v ON v.valueID = d.valueID
WHERE d.itemID = ?
"""

_CREATORS_SQL = """
SELECT c.firstName AS firstName, c.lastName AS lastName, c.fieldMode AS fieldMode
FROM itemCreators ic
JOIN creators c ON c.creatorID = ic.creatorID
WHERE ic.itemID = ?
ORDER BY ic.orderIndex ASC
"""

_ANNOTATIONS_SQL = """
SELECT
    anno.key AS annotationKey,
    att.key AS attachmentKey,
    COALESCE(ia.color, '') AS colorHex,
    COALESCE(ia.text, '') AS annotationText,
    COALESCE(ia.comment, '') AS annotationComment,
    COALESCE(ia.pageLabel, '') AS pageLabel,
    ia.type AS annotationType
FROM items root
JOIN itemAttachments iatt ON iatt.parentItemID = root.itemID
JOIN items att ON att.itemID = iatt.itemID
JOIN itemAnnotations ia ON ia.parentItemID = att.itemID
JOIN items anno ON anno.itemID = ia.itemID
WHERE root.key = ?
  AND anno.itemID NOT IN (SELECT itemID FROM deletedItems)
ORDER BY att.itemID ASC, ia.sortIndex ASC, anno.itemID ASC
"""

_LIBRARY_SQL = """
SELECT l.type AS libraryType, g.groupID AS groupID
FROM items i
JOIN libraries l ON l.libraryID = i.libraryID
LEFT JOIN "groups" g ON g.libraryID = l.libraryID
WHERE i.key = ?
LIMIT 1
"""

_CITATION_KEY_SQL = """
SELECT citationKey
FROM citationkey
WHERE itemKey = ?
LIMIT 1
"""


def _first_existing(candidates: List[Path]) -> Optional[Path]:
    for candidate in candidates:
        if candidate.exists():
            return candidate
    return None


def _data_dir_candidates(file_name: str) -> List[Path]:
    home = Path.home()
    return [home / "Zotero" / file_name, home / "Zotero Beta" / file_name]


def open_readonly(path: Path) -> sqlite3.Connection:
    """Open an SQLite file read-only without taking or honouring locks."""
    uri = f"{path.resolve().as_uri()}?mode=ro&immutable=1"
    conn = sqlite3.connect(uri, uri=True)
    conn.row_factory = sqlite3.Row
    return conn


class ZoteroSQLiteStore:
    """Query interface over zotero.sqlite and better-bibtex.sqlite."""

    def __init__(self, sqlite_path: Optional[str] = None, bbt_sqlite_path: Optional[str] = None):
        """
        Args:
            sqlite_path: Explicit path to zotero.sqlite (else env var or Zotero data dir)
            bbt_sqlite_path: Explicit path to better-bibtex.sqlite
        """
        self.sqlite_path = sqlite_path or None
        self.bbt_sqlite_path = bbt_sqlite_path or None

    def resolve_sqlite_path(self) -> Path:
        candidates = []
        if self.sqlite_path:
            candidates.append(Path(self.sqlite_path).expanduser())
        if os.environ.get(SQLITE_PATH_ENV, '').strip():
            candidates.append(Path(os.environ[SQLITE_PATH_ENV].strip()).expanduser())
        candidates.extend(_data_dir_candidates("zotero.sqlite"))

        path = _first_existing(candidates)
        if path is None:
            raise ZoteroExportError(
                f"Could not locate zotero.sqlite. Set {SQLITE_PATH_ENV} to the database file."
            )
        return path

    def resolve_bbt_sqlite_path(self) -> Optional[Path]:
        candidates = []
        if self.bbt_sqlite_path:
            candidates.append(Path(self.bbt_sqlite_path).expanduser())
        if os.environ.get(BBT_SQLITE_PATH_ENV, '').strip():
            candidates.append(Path(os.environ[BBT_SQLITE_PATH_ENV].strip()).expanduser())
        candidates.extend(_data_dir_candidates("better-bibtex.sqlite"))
        return _first_existing(candidates)

    def _connect(self) -> sqlite3.Connection:
        path = self.resolve_sqlite_path()
        try:
            return open_readonly(path)
        except sqlite3.Error as e:
            raise ZoteroExportError(f"failed to open Zotero database {path}: {e}") from e

    def search_items(self, query: str, limit: int = SEARCH_LIMIT) -> List[ItemSummary]:
        """
        Search top-level items by title, creator or date.

        Args:
            query: Free-text search term ('' lists everything)
            limit: Maximum number of rows

        Returns:
            Matching items ordered by title
        """
        with closing(self._connect()) as conn:
            try:
                rows = conn.execute(
                    _SEARCH_SQL, {"term": (query or '').strip(), "limit": limit}
                ).fetchall()
            except sqlite3.Error as e:
                raise ZoteroExportError(f"failed to execute Zotero search query: {e}") from e

        return [
            ItemSummary(
                key=row["key"],
                title=row["title"] or '',
                creators=row["creators"] or '',
                year=extract_year(row["dateValue"] or ''),
            )
            for row in rows
        ]

    def get_item(self, item_key: str) -> Dict[str, Any]:
        """
        Load one item in the same shape the local API returns.

        Raises:
            ZoteroExportError: If the item does not exist or the query fails
        """
        with closing(self._connect()) as conn:
            try:
                row = conn.execute(_ITEM_SQL, (item_key,)).fetchone()
                if row is None:
                    raise ZoteroExportError(f"Item {item_key} not found in Zotero database")

                data: Dict[str, Any] = {"itemType": row["typeName"]}
                for field_row in conn.execute(_FIELDS_SQL, (row["itemID"],)):
                    data[field_row["fieldName"]] = field_row["fieldValue"] or ''

                creators = []
                for creator in conn.execute(_CREATORS_SQL, (row["itemID"],)):
                    if creator["fieldMode"] == 1:
                        creators.append({"name": creator["lastName"] or ''})
                    else:
                        creators.append({
                            "firstName": creator["firstName"] or '',
                            "lastName": creator["lastName"] or '',
                        })
                data["creators"] = creators
            except sqlite3.Error as e:
                raise ZoteroExportError(f"failed to load Zotero item {item_key}: {e}") from e

        return {"key": row["key"], "data": data, "meta": {}}

    def get_annotations(self, item_key: str) -> List[Annotation]:
        """
        All non-deleted annotations on the item's attachments.

        Rows come back grouped by attachment and in Zotero's reading order;
        the row position becomes the annotation's sort index.
        """
        with closing(self._connect()) as conn:
            try:
                rows = conn.execute(_ANNOTATIONS_SQL, (item_key,)).fetchall()
            except sqlite3.Error as e:
                raise ZoteroExportError(f"failed to read Zotero annotations for {item_key}: {e}") from e

        annotations = []
        for sort_index, row in enumerate(rows):
            color_hex = (row["colorHex"] or '').strip().lower()
            annotations.append(Annotation(
                key=row["annotationKey"],
                attachment_key=row["attachmentKey"],
                color_hex=color_hex,
                color_name=color_name_from_hex(color_hex),
                text=(row["annotationText"] or '').strip(),
                comment=(row["annotationComment"] or '').strip(),
                page_label=(row["pageLabel"] or '').strip(),
                sort_index=sort_index,
                is_image_selection=row["annotationType"] == ANNOTATION_TYPE_IMAGE,
            ))
        return annotations

    def get_citation_key(self, item_key: str) -> Optional[str]:
        """Better BibTeX key from its own database; None when it is not installed."""
        path = self.resolve_bbt_sqlite_path()
        if path is None:
            return None

        try:
            with closing(open_readonly(path)) as conn:
                row = conn.execute(_CITATION_KEY_SQL, (item_key,)).fetchone()
        except sqlite3.Error as e:
            raise ZoteroExportError(f"failed to read Better BibTeX citation key: {e}") from e

        if row is None:
            return None
        value = (row[0] or '').strip()
        return value or None

    def get_cached_annotation_image(self, annotation_key: str) -> Optional[bytes]:
        """
        PNG rendered by Zotero for an image annotation, read from its cache.

        Returns:
            The image bytes, or None if no cached rendering exists
        """
        profile_dir = self.resolve_sqlite_path().parent

        with closing(self._connect()) as conn:
            try:
                row = conn.execute(_LIBRARY_SQL, (annotation_key,)).fetchone()
            except sqlite3.Error as e:
                raise ZoteroExportError(
                    f"failed to resolve annotation library for cached image: {e}"
                ) from e

        file_name = f"{annotation_key}.png"
        cache_dir = profile_dir / "cache"
        candidates = [cache_dir / "library" / file_name]
        if row is not None and row["libraryType"] == "group" and row["groupID"] is not None:
            group_dir = cache_dir / "groups" / str(row["groupID"])
            candidates.append(group_dir / file_name)
            candidates.append(group_dir / "library" / file_name)

        path = _first_existing(candidates)
        if path is None:
            logger.debug("No cached annotation image for %s", annotation_key)
            return None
        try:
            data = path.read_bytes()
        except OSError as e:
            logger.debug("Cached image %s unreadable: %s", path, e)
            return None
        return data or None
