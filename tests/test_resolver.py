"""Tests for slide and shape addressing."""

import pytest

from conftest import TITLE_SLIDE, build_pptx
from ooxml_mcp_server.exceptions import IndexOutOfRange
from ooxml_mcp_server.tools.documents import PresentationDocument
from ooxml_mcp_server.tools.oxml import new_element, qn, sub_element
from ooxml_mcp_server.tools.resolver import (
    PlaceholderKind,
    iter_slides,
    list_shapes,
    placeholder_kind,
    resolve_placeholder_shape,
    resolve_shape_by_ordinal,
    resolve_slide_by_ordinal,
    resolve_target_shape,
    slide_count,
)


def _sp(ph_type=None, with_ph=True):
    sp = new_element("p:sp")
    nv_pr = sub_element(sub_element(sp, "p:nvSpPr"), "p:nvPr")
    if with_ph:
        ph = sub_element(nv_pr, "p:ph")
        if ph_type is not None:
            ph.set("type", ph_type)
    return sp


# ---------------------------------------------------------------------------
# Slides
# ---------------------------------------------------------------------------

class TestSlideOrdinals:
    def test_slides_resolve_in_show_order(self, deck_bytes):
        doc = PresentationDocument.load(deck_bytes)
        assert slide_count(doc) == 3
        titles = [resolve_target_shape(slide, 0).text for slide in iter_slides(doc)]
        assert titles == ["First", "Second", "Third"]

    def test_slide_ref_carries_identity(self, deck_bytes):
        doc = PresentationDocument.load(deck_bytes)
        slide = resolve_slide_by_ordinal(doc, 1)
        assert slide.index == 1
        assert slide.slide_id >= 256
        assert slide.part.partname == doc.presentation_part.rels.get(slide.r_id).target_partname

    @pytest.mark.parametrize("index", [-1, 3, 42])
    def test_out_of_range(self, deck_bytes, index):
        doc = PresentationDocument.load(deck_bytes)
        with pytest.raises(IndexOutOfRange, match=r"Valid range: 0\.\.2"):
            resolve_slide_by_ordinal(doc, index)

    def test_empty_deck_reports_no_slides(self):
        doc = PresentationDocument.load(build_pptx([]))
        with pytest.raises(IndexOutOfRange, match="there are no slides"):
            resolve_slide_by_ordinal(doc, 0)
        assert iter_slides(doc) == []


# ---------------------------------------------------------------------------
# Shapes
# ---------------------------------------------------------------------------

class TestPlaceholderKind:
    @pytest.mark.parametrize(
        "ph_type, expected",
        [
            ("title", PlaceholderKind.TITLE),
            ("ctrTitle", PlaceholderKind.TITLE),
            ("body", PlaceholderKind.BODY),
            ("subTitle", PlaceholderKind.OTHER),
            ("obj", PlaceholderKind.BODY),
            (None, PlaceholderKind.BODY),
            ("dt", PlaceholderKind.OTHER),
            ("sldNum", PlaceholderKind.OTHER),
        ],
    )
    def test_kinds(self, ph_type, expected):
        assert placeholder_kind(_sp(ph_type)) is expected

    def test_plain_shape_is_not_a_placeholder(self):
        assert placeholder_kind(_sp(with_ph=False)) is None


class TestShapeResolution:
    def test_title_and_content_layout(self, one_slide_deck):
        doc = PresentationDocument.load(one_slide_deck)
        slide = resolve_slide_by_ordinal(doc, 0)
        shapes = list_shapes(slide)
        assert [shape.kind for shape in shapes] == [PlaceholderKind.TITLE, PlaceholderKind.BODY]
        assert shapes[0].text == "Only"

    def test_body_wins_over_title(self, one_slide_deck):
        doc = PresentationDocument.load(one_slide_deck)
        slide = resolve_slide_by_ordinal(doc, 0)
        target = resolve_target_shape(slide)
        assert target.index == 1
        assert target.kind is PlaceholderKind.BODY

    def test_title_when_no_body(self, one_slide_deck):
        doc = PresentationDocument.load(one_slide_deck)
        slide = resolve_slide_by_ordinal(doc, 0)
        body = resolve_placeholder_shape(slide, PlaceholderKind.BODY)
        body.element.getparent().remove(body.element)
        assert resolve_target_shape(slide).kind is PlaceholderKind.TITLE

    def test_subtitle_is_not_a_body_target(self):
        doc = PresentationDocument.load(build_pptx(["Cover"], layout_index=TITLE_SLIDE))
        slide = resolve_slide_by_ordinal(doc, 0)
        assert [shape.kind for shape in list_shapes(slide)] == [PlaceholderKind.TITLE, PlaceholderKind.OTHER]
        assert resolve_placeholder_shape(slide, PlaceholderKind.BODY) is None
        target = resolve_target_shape(slide)
        assert target.index == 0
        assert target.text == "Cover"

    def test_first_shape_when_no_placeholders(self, one_slide_deck):
        doc = PresentationDocument.load(one_slide_deck)
        slide = resolve_slide_by_ordinal(doc, 0)
        for shape in list_shapes(slide):
            shape.element.getparent().remove(shape.element)
        plain = _sp(with_ph=False)
        slide.shape_tree.append(plain)
        target = resolve_target_shape(slide)
        assert target.kind is None
        assert target.element is plain
        assert target.kind_name == "None"

    def test_no_shapes(self, blank_layout_deck):
        doc = PresentationDocument.load(blank_layout_deck)
        slide = resolve_slide_by_ordinal(doc, 0)
        assert list_shapes(slide) == []
        assert resolve_target_shape(slide) is None

    def test_shape_ordinal_out_of_range(self, one_slide_deck):
        doc = PresentationDocument.load(one_slide_deck)
        slide = resolve_slide_by_ordinal(doc, 0)
        with pytest.raises(IndexOutOfRange, match=r"shape index 5 out of range. Valid range: 0\.\.1"):
            resolve_shape_by_ordinal(slide, 5)

    def test_grouped_shapes_are_counted(self, one_slide_deck):
        doc = PresentationDocument.load(one_slide_deck)
        slide = resolve_slide_by_ordinal(doc, 0)
        group = sub_element(slide.shape_tree, "p:grpSp")
        group.append(_sp(with_ph=False))
        shapes = list_shapes(slide)
        assert len(shapes) == 3
        assert shapes[2].element.getparent().tag == qn("p:grpSp")
