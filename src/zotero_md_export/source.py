"""
Reconciled access to Zotero data.

Two backends answer the same questions: the SQLite database (primary) and
the local HTTP API (secondary). Every operation tries them in that order
and only fails when both do, with an error naming both failures.
"""

import logging
from concurrent.futures import ThreadPoolExecutor
from contextlib import closing
from typing import Any, Dict, List, Optional, Tuple

from zotero_md_export.api import ZoteroLocalAPI
from zotero_md_export.bbt_client import BetterBibTexClient
from zotero_md_export.exceptions import ZoteroExportError
from zotero_md_export.fallback import try_in_order
from zotero_md_export.models import Annotation, ItemSummary
from zotero_md_export.paths import extract_year
from zotero_md_export.planner import build_author, normalize_annotation
from zotero_md_export.sqlite_store import ZoteroSQLiteStore

logger = logging.getLogger(__name__)

NON_SEARCHABLE_TYPES = ('attachment', 'note', 'annotation')
UNTITLED_PLACEHOLDER = '(untitled)'


def _item_type(record: Dict[str, Any]) -> str:
    return str((record.get('data') or {}).get('itemType') or '')


def is_usable_title(title: str) -> bool:
    normalized = (title or '').strip().lower()
    return bool(normalized) and normalized != UNTITLED_PLACEHOLDER


def sanitize_search_results(items: List[ItemSummary]) -> List[ItemSummary]:
    """Drop untitled results and trim the displayed fields."""
    return [
        ItemSummary(
            key=item.key,
            title=item.title.strip(),
            creators=item.creators.strip(),
            year=item.year.strip(),
        )
        for item in items
        if is_usable_title(item.title)
    ]


class AnnotationMerger:
    """
    Collects annotations discovered along several paths.

    The first time a key is seen fixes its attachment and sort index;
    later sightings of the same key are ignored.
    """

    def __init__(self):
        self._by_key: Dict[str, Tuple[Dict[str, Any], str, int]] = {}

    def add(self, record: Dict[str, Any], attachment_key: str) -> bool:
        key = record['key']
        if key in self._by_key:
            return False
        self._by_key[key] = (record, attachment_key, len(self._by_key))
        return True

    def __len__(self) -> int:
        return len(self._by_key)

    def annotations(self) -> List[Annotation]:
        return [
            normalize_annotation(record, attachment_key, sort_index)
            for record, attachment_key, sort_index in self._by_key.values()
        ]


class AnnotationSource:
    """Primary/secondary backend reconciliation for one Zotero installation."""

    def __init__(self, store: ZoteroSQLiteStore, api: ZoteroLocalAPI,
                 bbt: Optional[BetterBibTexClient] = None, max_workers: int = 4):
        """
        Args:
            store: Primary backend (SQLite database)
            api: Secondary backend (local HTTP API)
            bbt: Better BibTeX client used for citation key lookups
            max_workers: Threads used to query attachments concurrently
        """
        self.store = store
        self.api = api
        self.bbt = bbt
        self.max_workers = max_workers

    @classmethod
    def from_settings(cls, settings) -> "AnnotationSource":
        """Build both backends from ExportSettings."""
        api = ZoteroLocalAPI(
            base_url=settings.zotero_base_url,
            api_key=settings.zotero_api_key,
            proxy_url=settings.proxy_url,
            timeout=settings.timeout,
        )
        return cls(
            store=ZoteroSQLiteStore(settings.sqlite_path, settings.bbt_sqlite_path),
            api=api,
            bbt=BetterBibTexClient(settings.zotero_base_url, timeout=settings.timeout),
        )

    def get_item(self, item_key: str) -> Dict[str, Any]:
        """Item metadata record, from SQLite or else the local API."""
        return try_in_order(f"Zotero item lookup for {item_key}", [
            ("SQLite database", lambda: self.store.get_item(item_key)),
            ("HTTP API", lambda: self.api.get_item(item_key)),
        ])

    def get_annotations(self, item_key: str) -> List[Annotation]:
        """
        Deduplicated annotations of an item.

        An empty list from SQLite is a valid answer (the item simply has no
        annotations) and does not trigger the HTTP fallback.
        """
        return try_in_order(f"Annotation lookup for {item_key}", [
            ("SQLite database", lambda: self.store.get_annotations(item_key)),
            ("HTTP API", lambda: self._discover_annotations_via_api(item_key)),
        ])

    def _attachment_annotations(self, attachment_key: str) -> List[Dict[str, Any]]:
        """
        Annotation children of one attachment via both endpoints; failures contribute nothing.

        Runs on a worker thread with a client of its own.
        """
        found = []
        with closing(self.api.fork()) as api:
            try:
                found.extend(api.get_item_children(attachment_key))
            except ZoteroExportError as e:
                logger.debug("Children of attachment %s unavailable: %s", attachment_key, e)
            try:
                found.extend(api.get_items_by_parent(attachment_key, 'annotation'))
            except ZoteroExportError as e:
                logger.debug("parentItem query for attachment %s failed: %s", attachment_key, e)
        return [record for record in found if _item_type(record) == 'annotation']

    def _discover_annotations_via_api(self, item_key: str) -> List[Annotation]:
        item_children = self.api.get_item_children(item_key)
        try:
            parent_query_children = self.api.get_items_by_parent(item_key)
        except ZoteroExportError as e:
            logger.debug("parentItem query for %s failed: %s", item_key, e)
            parent_query_children = []

        children = item_children + parent_query_children
        attachment_keys = list(dict.fromkeys(
            child['key'] for child in children if _item_type(child) == 'attachment'
        ))

        merger = AnnotationMerger()
        for child in children:
            if _item_type(child) == 'annotation':
                parent = str((child.get('data') or {}).get('parentItem') or item_key)
                merger.add(child, parent)

        if attachment_keys:
            workers = max(1, min(self.max_workers, len(attachment_keys)))
            with ThreadPoolExecutor(max_workers=workers) as executor:
                per_attachment = list(executor.map(self._attachment_annotations, attachment_keys))
            for attachment_key, records in zip(attachment_keys, per_attachment):
                for record in records:
                    merger.add(record, attachment_key)

        logger.debug("Discovered %d annotation(s) for %s via HTTP API", len(merger), item_key)
        return merger.annotations()

    def search_items(self, query: str) -> List[ItemSummary]:
        """Top-level items matching ``query``, untitled results dropped."""
        def via_api() -> List[ItemSummary]:
            results = []
            for record in self.api.search_items(query):
                if _item_type(record) in NON_SEARCHABLE_TYPES:
                    continue
                data = record.get('data') or {}
                results.append(ItemSummary(
                    key=record['key'],
                    title=str(data.get('title') or ''),
                    creators=build_author(record),
                    year=extract_year(str(data.get('date') or '')),
                ))
            return results

        results = try_in_order(f"Zotero search for {query!r}", [
            ("SQLite database", lambda: self.store.search_items(query)),
            ("HTTP API", via_api),
        ])
        return sanitize_search_results(results)

    def get_selected_area_image(self, annotation_key: str,
                                attachment_key: Optional[str] = None) -> Optional[bytes]:
        """
        PNG bytes for an image annotation.

        Tries the annotation's file endpoints, then the attachment's file
        endpoints with an annotation hint, then Zotero's rendered image cache.

        Returns:
            Image bytes, or None when no source has the image
        """
        candidates = [
            lambda: self.api.get_item_file(annotation_key),
            lambda: self.api.get_item_file(annotation_key, view=True),
        ]
        if attachment_key:
            candidates.append(
                lambda: self.api.get_item_file(attachment_key, annotation_key=annotation_key))
            candidates.append(
                lambda: self.api.get_item_file(attachment_key, view=True, annotation_key=annotation_key))

        for candidate in candidates:
            try:
                data = candidate()
            except ZoteroExportError as e:
                logger.debug("Image endpoint failed for %s: %s", annotation_key, e)
                continue
            if data:
                return data

        try:
            cached = self.store.get_cached_annotation_image(annotation_key)
        except ZoteroExportError as e:
            logger.debug("Image cache lookup failed for %s: %s", annotation_key, e)
            return None
        return cached or None

    def get_citation_key(self, item_key: str) -> str:
        """
        Citation key from Better BibTeX, or '' when no source has one.

        Order: BBT database, BBT JSON-RPC, BBT CAYW endpoint.
        """
        lookups = [("Better BibTeX database", lambda: self.store.get_citation_key(item_key))]
        if self.bbt is not None:
            lookups.append(("Better BibTeX JSON-RPC", lambda: self.bbt.get_citation_key(item_key)))
            lookups.append(("Better BibTeX CAYW", lambda: self.bbt.get_cayw_citation_key(item_key)))

        for label, lookup in lookups:
            try:
                value = lookup()
            except ZoteroExportError as e:
                logger.debug("%s citation key lookup failed for %s: %s", label, item_key, e)
                continue
            if value and value.strip():
                return value.strip()
        return ''

    def ping(self) -> bool:
        """Whether any backend answers."""
        try:
            if self.api.ping().strip():
                return True
        except ZoteroExportError as e:
            logger.debug("Connector ping failed: %s", e)

        try:
            self.api.get_items(limit=1)
            return True
        except ZoteroExportError as e:
            logger.debug("Item listing liveness check failed: %s", e)

        try:
            self.store.search_items('', limit=1)
            return True
        except ZoteroExportError as e:
            logger.debug("SQLite liveness check failed: %s", e)
        return False
