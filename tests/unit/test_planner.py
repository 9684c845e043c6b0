"""Tests for export planning."""

import pytest

from zotero_md_export.models import Annotation
from zotero_md_export.planner import (
    add_missing_image_todo,
    build_author,
    creator_to_string,
    normalize_annotation,
    prepare_export,
    resolve_company,
)


def make_annotation(key, sort_index, color_name="Yellow", text="", comment="", page_label="",
                    is_image=False, attachment_key="ATT00001"):
    return Annotation(
        key=key,
        attachment_key=attachment_key,
        color_hex="",
        color_name=color_name,
        text=text,
        comment=comment,
        page_label=page_label,
        sort_index=sort_index,
        is_image_selection=is_image,
    )


class TestNormalizeAnnotation:
    """Tests for normalize_annotation."""

    def test_highlight(self, att1_annotations):
        annotation = normalize_annotation(att1_annotations[0], "ATT00001", 7)

        assert annotation.key == "ANN00001"
        assert annotation.attachment_key == "ATT00001"
        assert annotation.color_hex == "#ffd400"
        assert annotation.color_name == "Yellow"
        assert annotation.text == "The Transformer uses self-attention."
        assert annotation.comment == "Key contribution"
        assert annotation.page_label == "3"
        assert annotation.sort_index == 7
        assert annotation.is_image_selection is False

    def test_image(self, att1_annotations):
        assert normalize_annotation(att1_annotations[1], "ATT00001", 0).is_image_selection is True

    def test_missing_fields(self):
        annotation = normalize_annotation({"key": "K", "data": {"annotationText": None}}, "A", 0)

        assert annotation.text == ""
        assert annotation.color_name == "Unknown"


class TestMetadata:
    """Tests for author and company extraction."""

    def test_creator_to_string(self):
        assert creator_to_string({"firstName": "Ashish", "lastName": "Vaswani"}) == "Vaswani, Ashish"
        assert creator_to_string({"lastName": "Plato"}) == "Plato"
        assert creator_to_string({"firstName": "Cher", "lastName": ""}) == "Cher"
        assert creator_to_string({"name": "OpenScience Collective"}) == "OpenScience Collective"
        assert creator_to_string({}) == ""

    def test_build_author(self, attention_item):
        assert build_author(attention_item) == "Vaswani, Ashish; Shazeer, Noam"

    def test_build_author_skips_empty_creators(self):
        item = {"data": {"creators": [{"name": " "}, {"lastName": "Doe"}, "junk"]}}
        assert build_author(item) == "Doe"

    def test_company_precedence(self):
        item = {"data": {"publisher": " ", "institution": "MIT", "university": "Harvard"}}
        assert resolve_company(item) == "MIT"

    def test_no_company(self):
        assert resolve_company({"data": {}}) == ""


class TestPrepareExport:
    """Tests for prepare_export."""

    def test_paths_and_metadata(self, attention_item):
        plan = prepare_export("/vault/notes", "/vault", "vaswani2017attention", attention_item, [])

        assert plan.markdown_path == "/vault/notes/@vaswani2017attention.md"
        assert plan.title == "Attention Is All You Need"
        assert plan.author == "Vaswani, Ashish; Shazeer, Noam"
        assert plan.year == "2017"
        assert plan.company == "Google"
        assert plan.abstract_text == "This paper introduces the Transformer architecture."
        assert plan.groups == []
        assert plan.image_plans == []

    def test_image_numbering_follows_sort_order(self, attention_item):
        annotations = [
            make_annotation("IMG_LATE", 5, color_name="Blue", is_image=True),
            make_annotation("TEXT", 1, text="hello"),
            make_annotation("IMG_EARLY", 2, color_name="Green", is_image=True, attachment_key="ATT00002"),
        ]

        plan = prepare_export("/vault/notes", "/vault", "key", attention_item, annotations)

        assert [(p.annotation_key, p.file_name) for p in plan.image_plans] == [
            ("IMG_EARLY", "image_1.png"),
            ("IMG_LATE", "image_2.png"),
        ]
        first = plan.image_plans[0]
        assert first.attachment_key == "ATT00002"
        assert first.absolute_path == "/vault/attachment/key/image_1.png"
        assert first.relative_path_from_markdown == "../attachment/key/image_1.png"

    def test_groups_in_first_occurrence_order(self, attention_item):
        annotations = [
            make_annotation("A", 3, color_name="Yellow"),
            make_annotation("B", 1, color_name="Blue"),
            make_annotation("C", 2, color_name="Yellow"),
            make_annotation("D", 4, color_name="Blue"),
        ]

        plan = prepare_export("/md", "/att", "key", attention_item, annotations)

        assert [g.color_name for g in plan.groups] == ["Blue", "Yellow"]
        assert [a.key for a in plan.groups[0].annotations] == ["B", "D"]
        assert [a.key for a in plan.groups[1].annotations] == ["C", "A"]
        assert plan.annotation_count == 4

    def test_stable_for_equal_sort_index(self, attention_item):
        annotations = [make_annotation("X", 0), make_annotation("Y", 0)]

        plan = prepare_export("/md", "/att", "key", attention_item, annotations)

        assert [a.key for a in plan.groups[0].annotations] == ["X", "Y"]

    def test_render_fields_trimmed(self, attention_item):
        annotations = [make_annotation("A", 0, text="  text ", comment=" c ", page_label=" 9 ")]

        entry = prepare_export("/md", "/att", "key", attention_item, annotations).groups[0].annotations[0]

        assert (entry.text, entry.comment, entry.page_label) == ("text", "c", "9")
        assert entry.image_markdown_path is None

    def test_deterministic(self, attention_item):
        annotations = [make_annotation("A", 1, is_image=True), make_annotation("B", 0)]

        first = prepare_export("/md", "/att", "key", attention_item, annotations)
        second = prepare_export("/md", "/att", "key", attention_item, list(reversed(annotations)))

        assert first == second


class TestAddMissingImageTodo:
    """Tests for add_missing_image_todo."""

    @pytest.fixture
    def plan(self, attention_item):
        annotations = [
            make_annotation("IMG", 0, color_name="Blue", is_image=True),
            make_annotation("TXT", 1, text="kept"),
        ]
        return prepare_export("/md", "/att", "key", attention_item, annotations)

    def test_replaces_image_with_message(self, plan):
        patched = add_missing_image_todo(plan, "IMG", "Selected-area image missing for annotation IMG.")

        entry = patched.groups[0].annotations[0]
        assert entry.image_markdown_path is None
        assert entry.missing_image_message == "Selected-area image missing for annotation IMG."
        assert patched.annotation_count == plan.annotation_count

    def test_original_plan_untouched(self, plan):
        add_missing_image_todo(plan, "IMG", "gone")

        assert plan.groups[0].annotations[0].image_markdown_path == "../att/attachment/key/image_1.png"
        assert plan.groups[0].annotations[0].missing_image_message is None

    def test_unknown_key_is_a_no_op(self, plan):
        assert add_missing_image_todo(plan, "NOPE", "x") == plan
