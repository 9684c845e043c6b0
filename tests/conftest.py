"""Shared pytest fixtures for zotero-md-export tests."""

import json
import sqlite3
from contextlib import closing
from pathlib import Path
from typing import Any

import pytest
import responses

from zotero_md_export.api import ZoteroLocalAPI

FIXTURES_DIR = Path(__file__).parent / "fixtures"

BASE_URL = "http://127.0.0.1:23119"
ITEMS_URL = f"{BASE_URL}/api/users/0/items"

# PNG signature plus padding; never decoded
PNG_BYTES = b"\x89PNG\r\n\x1a\n" + b"\x00" * 16


def load_fixture(path: str) -> Any:
    """Load a JSON fixture file.

    Args:
        path: Relative path within the fixtures directory

    Returns:
        Parsed JSON content
    """
    with open(FIXTURES_DIR / path) as f:
        return json.load(f)


@pytest.fixture(autouse=True)
def isolated_home(tmp_path_factory, monkeypatch):
    """Keep the real Zotero data directory and env overrides out of every test."""
    home = tmp_path_factory.mktemp("home")
    monkeypatch.setenv("HOME", str(home))
    monkeypatch.delenv("ZOTERO_SQLITE_PATH", raising=False)
    monkeypatch.delenv("ZOTERO_BBT_SQLITE_PATH", raising=False)
    return home


@pytest.fixture
def attention_item():
    """Journal article with a cite key in Extra."""
    return load_fixture("items/attention.json")


@pytest.fixture
def report_item():
    """Report with an institutional author and no cite key anywhere."""
    return load_fixture("items/report_without_key.json")


@pytest.fixture
def item_children():
    return load_fixture("children/item_children.json")


@pytest.fixture
def att1_annotations():
    return load_fixture("children/att1_annotations.json")


@pytest.fixture
def att1_annotation_query():
    return load_fixture("children/att1_annotation_query.json")


@pytest.fixture
def att2_children():
    return load_fixture("children/att2_children.json")


@pytest.fixture
def search_results():
    return load_fixture("search_results.json")


@pytest.fixture
def api():
    """API client without a proxy."""
    return ZoteroLocalAPI(base_url=BASE_URL)


@pytest.fixture
def mock_responses():
    """Context manager for mocking HTTP responses.

    Usage:
        def test_something(mock_responses):
            mock_responses.add(responses.GET, url, json=data)
            # ... test code
    """
    with responses.RequestsMock() as rsps:
        yield rsps


class ZoteroDatabaseBuilder:
    """Builds a small zotero.sqlite with the tables the store reads."""

    SCHEMA = """
    CREATE TABLE itemTypes (itemTypeID INTEGER PRIMARY KEY, typeName TEXT);
    CREATE TABLE libraries (libraryID INTEGER PRIMARY KEY, type TEXT);
    CREATE TABLE "groups" (groupID INTEGER PRIMARY KEY, libraryID INTEGER);
    CREATE TABLE items (itemID INTEGER PRIMARY KEY, itemTypeID INTEGER, libraryID INTEGER, key TEXT);
    CREATE TABLE fields (fieldID INTEGER PRIMARY KEY, fieldName TEXT);
    CREATE TABLE itemDataValues (valueID INTEGER PRIMARY KEY, value);
    CREATE TABLE itemData (itemID INTEGER, fieldID INTEGER, valueID INTEGER);
    CREATE TABLE creators (creatorID INTEGER PRIMARY KEY, firstName TEXT, lastName TEXT, fieldMode INTEGER);
    CREATE TABLE itemCreators (itemID INTEGER, creatorID INTEGER, creatorTypeID INTEGER, orderIndex INTEGER);
    CREATE TABLE deletedItems (itemID INTEGER PRIMARY KEY);
    CREATE TABLE itemAttachments (itemID INTEGER PRIMARY KEY, parentItemID INTEGER);
    CREATE TABLE itemAnnotations (
        itemID INTEGER PRIMARY KEY, parentItemID INTEGER, type INTEGER,
        text TEXT, comment TEXT, color TEXT, pageLabel TEXT, sortIndex TEXT
    );
    """

    def __init__(self, path: Path):
        self.path = path
        self.conn = sqlite3.connect(str(path))
        self.conn.executescript(self.SCHEMA)
        self.conn.execute("INSERT INTO libraries VALUES (1, 'user')")
        self._ids = {}

    def _id(self, table: str, column: str, name: str) -> int:
        row = self.conn.execute(f"SELECT rowid FROM {table} WHERE {column} = ?", (name,)).fetchone()
        if row:
            return row[0]
        return self.conn.execute(f"INSERT INTO {table} ({column}) VALUES (?)", (name,)).lastrowid

    def add_group_library(self, library_id: int, group_id: int) -> None:
        self.conn.execute("INSERT INTO libraries VALUES (?, 'group')", (library_id,))
        self.conn.execute('INSERT INTO "groups" VALUES (?, ?)', (group_id, library_id))

    def add_item(self, key: str, item_type: str, fields=None, creators=(), library_id: int = 1) -> int:
        type_id = self._id("itemTypes", "typeName", item_type)
        item_id = self.conn.execute(
            "INSERT INTO items (itemTypeID, libraryID, key) VALUES (?, ?, ?)",
            (type_id, library_id, key),
        ).lastrowid
        self._ids[key] = item_id

        for name, value in (fields or {}).items():
            field_id = self._id("fields", "fieldName", name)
            value_id = self.conn.execute(
                "INSERT INTO itemDataValues (value) VALUES (?)", (value,)
            ).lastrowid
            self.conn.execute("INSERT INTO itemData VALUES (?, ?, ?)", (item_id, field_id, value_id))

        for order, creator in enumerate(creators):
            if "name" in creator:
                values = (None, creator["name"], 1)
            else:
                values = (creator.get("firstName"), creator.get("lastName"), 0)
            creator_id = self.conn.execute(
                "INSERT INTO creators (firstName, lastName, fieldMode) VALUES (?, ?, ?)", values
            ).lastrowid
            self.conn.execute("INSERT INTO itemCreators VALUES (?, ?, 1, ?)", (item_id, creator_id, order))
        return item_id

    def add_attachment(self, key: str, parent_key: str, library_id: int = 1) -> None:
        item_id = self.add_item(key, "attachment", library_id=library_id)
        self.conn.execute("INSERT INTO itemAttachments VALUES (?, ?)", (item_id, self._ids[parent_key]))

    def add_annotation(self, key: str, attachment_key: str, annotation_type: int = 1,
                       text: str = "", comment: str = "", color: str = "#ffd400",
                       page_label: str = "", sort_index: str = "00000|000000|00000",
                       library_id: int = 1) -> None:
        item_id = self.add_item(key, "annotation", library_id=library_id)
        self.conn.execute(
            "INSERT INTO itemAnnotations VALUES (?, ?, ?, ?, ?, ?, ?, ?)",
            (item_id, self._ids[attachment_key], annotation_type, text, comment, color,
             page_label, sort_index),
        )

    def trash(self, key: str) -> None:
        self.conn.execute("INSERT INTO deletedItems VALUES (?)", (self._ids[key],))

    def close(self) -> Path:
        self.conn.commit()
        self.conn.close()
        return self.path


@pytest.fixture
def zotero_data_dir(tmp_path):
    """A Zotero data directory with zotero.sqlite, better-bibtex.sqlite and a rendered image cache.

    Layout of the library:
        ITEM0001 "Attention Is All You Need" with attachments ATT00001, ATT00002
        ITEM0002 "Deep Learning" (book, no attachments)
        ITEM0003 untitled journal article
        TRASH001 trashed item
        GITEM001 item in group library 4242 with image annotation GANN0001
    """
    data_dir = tmp_path / "Zotero"
    data_dir.mkdir()

    db = ZoteroDatabaseBuilder(data_dir / "zotero.sqlite")
    db.add_group_library(2, 4242)
    db.add_item("ITEM0001", "journalArticle", {
        "title": "Attention Is All You Need",
        "date": "2017-06-12 2017-06-12",
        "publisher": "Google",
        "abstractNote": "This paper introduces the Transformer architecture.",
        "extra": "Citation Key: vaswani2017attention",
    }, creators=[
        {"firstName": "Ashish", "lastName": "Vaswani"},
        {"firstName": "Noam", "lastName": "Shazeer"},
    ])
    db.add_item("ITEM0002", "book", {"title": "Deep Learning", "date": "2016"},
                creators=[{"firstName": "Ian", "lastName": "Goodfellow"}, {"name": "MIT Press"}])
    db.add_item("ITEM0003", "journalArticle", {"date": "2020"})
    db.add_item("TRASH001", "journalArticle", {"title": "Attention Trashed"})
    db.trash("TRASH001")
    db.add_item("NOTE0001", "note", {"title": "Attention notes"})

    db.add_attachment("ATT00001", "ITEM0001")
    db.add_attachment("ATT00002", "ITEM0001")
    db.add_annotation("ANN00002", "ATT00001", annotation_type=3, color="#2ea8e5",
                      page_label="4", sort_index="00003|000000|00100")
    db.add_annotation("ANN00001", "ATT00001", text="The Transformer uses self-attention.",
                      comment="Key contribution", color="#FFD400", page_label="3",
                      sort_index="00002|000100|00050")
    db.add_annotation("ANN00004", "ATT00001", text="Deleted highlight", sort_index="00001|000000|00000")
    db.trash("ANN00004")
    db.add_annotation("ANN00003", "ATT00002", text="Multi-head attention improves expressivity.",
                      color="#5fb236", page_label="12", sort_index="00000|000000|00000")

    db.add_item("GITEM001", "book", {"title": "Group Reading"}, library_id=2)
    db.add_attachment("GATT0001", "GITEM001", library_id=2)
    db.add_annotation("GANN0001", "GATT0001", annotation_type=3, library_id=2)
    db.close()

    with closing(sqlite3.connect(str(data_dir / "better-bibtex.sqlite"))) as bbt:
        bbt.execute("CREATE TABLE citationkey (itemID INTEGER, itemKey TEXT, libraryID INTEGER, citationKey TEXT)")
        bbt.execute("INSERT INTO citationkey VALUES (1, 'ITEM0001', 1, 'vaswani2017attention')")
        bbt.execute("INSERT INTO citationkey VALUES (2, 'ITEM0002', 1, 'goodfellow2016deep')")
        bbt.commit()

    (data_dir / "cache" / "library").mkdir(parents=True)
    (data_dir / "cache" / "library" / "ANN00002.png").write_bytes(PNG_BYTES)
    (data_dir / "cache" / "groups" / "4242").mkdir(parents=True)
    (data_dir / "cache" / "groups" / "4242" / "GANN0001.png").write_bytes(PNG_BYTES)

    return data_dir
