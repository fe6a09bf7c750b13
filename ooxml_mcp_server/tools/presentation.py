"""
Structural edits on PowerPoint presentations.

This module provides functionality to:
- Add blank slides built on the first master's placeholder layout
- Remove slides together with the references other parts hold to them
- Move slides within the slide-ID list
- Set or append shape text from plain text or markdown lines
- List slides and shapes
- Create presentations from templates or from scratch
"""

import io
import logging
from typing import Any, Dict, List, Optional

from lxml import etree
from pptx import Presentation
from pptx.util import Inches

from ..exceptions import InvalidArgument, MalformedPackage, MissingTargetShape
from .documents import PresentationDocument
from .importer import MIME_MARKDOWN, MIME_PLAIN, normalize_content_type
from .oxml import (
    CT_SLIDE,
    NSMAP,
    RT_SLIDE,
    RT_SLIDE_LAYOUT,
    insert_after_predecessor,
    new_element,
    qn,
    sub_element,
)
from .package import Part
from .resolver import (
    SlideRef,
    iter_slides,
    list_shapes,
    resolve_slide_by_ordinal,
    resolve_target_shape,
    slide_count,
)

logger = logging.getLogger(__name__)

SLIDE_PARTNAME = "/ppt/slides/slide%d.xml"
BULLET_CHAR = "•"

# Standard slide sizes, in inches
LAYOUTS = {
    "16:9": {"width": 13.333, "height": 7.5},
    "4:3": {"width": 10.0, "height": 7.5},
    "widescreen": {"width": 13.333, "height": 7.5},
    "standard": {"width": 10.0, "height": 7.5},
}

# p:sp children that precede p:txBody
_TX_BODY_PREDECESSORS = ("p:nvSpPr", "p:spPr", "p:style")


# ----------------------------------------------------------------------
# Slide construction

def _placeholder_shape(sp_tree: etree._Element, shape_id: int, name: str, ph_attrs: Dict[str, str]) -> None:
    sp = sub_element(sp_tree, "p:sp")
    nv_sp_pr = sub_element(sp, "p:nvSpPr")
    sub_element(nv_sp_pr, "p:cNvPr", {"id": str(shape_id), "name": name})
    c_nv_sp_pr = sub_element(nv_sp_pr, "p:cNvSpPr")
    sub_element(c_nv_sp_pr, "a:spLocks", {"noGrp": "1"})
    nv_pr = sub_element(nv_sp_pr, "p:nvPr")
    sub_element(nv_pr, "p:ph", ph_attrs)
    sub_element(sp, "p:spPr")
    tx_body = sub_element(sp, "p:txBody")
    sub_element(tx_body, "a:bodyPr")
    sub_element(tx_body, "a:lstStyle")
    paragraph = sub_element(tx_body, "a:p")
    sub_element(paragraph, "a:endParaRPr")


def _blank_slide_element() -> etree._Element:
    """A slide with an empty Title and an empty Body placeholder."""
    sld = new_element("p:sld", nsmap={"a": NSMAP["a"], "p": NSMAP["p"], "r": NSMAP["r"]})
    sp_tree = sub_element(sub_element(sld, "p:cSld"), "p:spTree")

    nv_grp_sp_pr = sub_element(sp_tree, "p:nvGrpSpPr")
    sub_element(nv_grp_sp_pr, "p:cNvPr", {"id": "1", "name": ""})
    sub_element(nv_grp_sp_pr, "p:cNvGrpSpPr")
    sub_element(nv_grp_sp_pr, "p:nvPr")

    xfrm = sub_element(sub_element(sp_tree, "p:grpSpPr"), "a:xfrm")
    sub_element(xfrm, "a:off", {"x": "0", "y": "0"})
    sub_element(xfrm, "a:ext", {"cx": "0", "cy": "0"})
    sub_element(xfrm, "a:chOff", {"x": "0", "y": "0"})
    sub_element(xfrm, "a:chExt", {"cx": "0", "cy": "0"})

    _placeholder_shape(sp_tree, 2, "Title 1", {"type": "title"})
    _placeholder_shape(sp_tree, 3, "Content Placeholder 2", {"type": "body", "idx": "1"})

    clr_map_ovr = sub_element(sld, "p:clrMapOvr")
    sub_element(clr_map_ovr, "a:masterClrMapping")
    return sld


def _choose_layout(doc: PresentationDocument) -> Part:
    """First layout of the first master that has a placeholder, else its first layout."""
    masters = doc.slide_masters()
    if not masters:
        raise MalformedPackage("Presentation has no slide master")
    layouts = doc.slide_layouts(masters[0])
    if not layouts:
        raise MalformedPackage(f"Slide master {masters[0].partname} has no layouts")
    for layout in layouts:
        if layout.element.find(".//p:ph", NSMAP) is not None:
            return layout
    return layouts[0]


def _section_lists(presentation: etree._Element) -> List[etree._Element]:
    return presentation.findall("p:extLst/p:ext/p14:sectionLst", NSMAP)


def _add_to_last_section(presentation: etree._Element, slide_id: int) -> None:
    """Sections (PowerPoint 2010+) must list every slide; new ones join the last."""
    for section_lst in _section_lists(presentation):
        sections = section_lst.findall(qn("p14:section"))
        if not sections:
            continue
        sld_id_lst = sections[-1].find(qn("p14:sldIdLst"))
        if sld_id_lst is None:
            sld_id_lst = new_element("p14:sldIdLst")
            sections[-1].insert(0, sld_id_lst)
        sub_element(sld_id_lst, "p14:sldId", {"id": str(slide_id)})


def add_blank_slide(doc: PresentationDocument) -> SlideRef:
    """Append a blank Title + Body slide at the end of the deck.

    Returns:
        The new slide, addressed by its ordinal.
    """
    layout = _choose_layout(doc)
    pres_part = doc.presentation_part

    part = doc.add_part(doc.next_partname(SLIDE_PARTNAME), CT_SLIDE, element=_blank_slide_element())
    doc.relate(part, layout, RT_SLIDE_LAYOUT)
    r_id = doc.relate(pres_part, part, RT_SLIDE)

    sld_id_lst = doc.slide_id_list(create=True)
    existing = [
        int(sld_id.get("id")) for sld_id in sld_id_lst.findall(qn("p:sldId"))
        if (sld_id.get("id") or "").isdigit()
    ]
    slide_id = max(existing + [255]) + 1
    sub_element(sld_id_lst, "p:sldId", {"id": str(slide_id), "r:id": r_id})
    _add_to_last_section(pres_part.element, slide_id)
    pres_part.mark_dirty()

    logger.info("Added slide %s (id %d, layout %s)", part.partname, slide_id, layout.partname)
    return resolve_slide_by_ordinal(doc, slide_count(doc) - 1)


# ----------------------------------------------------------------------
# Slide order

def remove_slide(doc: PresentationDocument, index: int) -> SlideRef:
    """Remove the slide at ``index`` and every reference to it.

    Raises:
        IndexOutOfRange: If ``index`` is not a valid slide ordinal.
    """
    slide = resolve_slide_by_ordinal(doc, index)
    pres_part = doc.presentation_part
    presentation = pres_part.element

    slide.sld_id.getparent().remove(slide.sld_id)

    for section_lst in _section_lists(presentation):
        for entry in section_lst.findall("p14:section/p14:sldIdLst/p14:sldId", NSMAP):
            if entry.get("id") == str(slide.slide_id):
                entry.getparent().remove(entry)

    for entry in presentation.findall("p:custShowLst/p:custShow/p:sldLst/p:sld", NSMAP):
        if entry.get(qn("r:id")) == slide.r_id:
            entry.getparent().remove(entry)

    pres_part.mark_dirty()
    # drops the relationship from the presentation part and any other part
    doc.drop_part(slide.part.partname)

    logger.info("Removed slide %d (%s)", index, slide.part.partname)
    return slide


def reorder_slide(doc: PresentationDocument, from_index: int, to_index: int) -> int:
    """Move the slide at ``from_index`` to ``to_index``.

    ``to_index`` is read against the list after the entry is taken out, so
    a forward move lands one position earlier: on three slides, ``0 -> 2``
    puts the first slide in the middle and ``0 -> 1`` changes nothing.

    Returns:
        The slide's new ordinal.

    Raises:
        IndexOutOfRange: If either index is not a valid slide ordinal.
    """
    moving = resolve_slide_by_ordinal(doc, from_index)
    resolve_slide_by_ordinal(doc, to_index)
    if to_index > from_index:
        to_index -= 1
    if from_index == to_index:
        return from_index

    sld_id_lst = moving.sld_id.getparent()
    sld_id_lst.remove(moving.sld_id)
    sld_id_lst.insert(to_index, moving.sld_id)
    doc.presentation_part.mark_dirty()

    logger.info("Moved slide %d to position %d", from_index, to_index)
    return to_index


# ----------------------------------------------------------------------
# Shape text

def parse_content_lines(content_type: str, content: str) -> List[str]:
    """Non-blank, trimmed lines. Markdown list markers are stripped."""
    if not content or not content.strip():
        return []
    lines = content.replace("\r\n", "\n").split("\n")
    if content_type == MIME_MARKDOWN:
        lines = [line.strip().lstrip("-* ") for line in lines]
    else:
        lines = [line.strip() for line in lines]
    return [line for line in lines if line.strip()]


def _normalize_slide_content_type(content_type: Optional[str]) -> str:
    normalized = normalize_content_type(content_type)
    if normalized not in (MIME_PLAIN, MIME_MARKDOWN):
        logger.warning("Unsupported slide content type %r, treating as plain text", content_type)
        return MIME_PLAIN
    return normalized


def _text_paragraph(line: str, bullet: bool) -> etree._Element:
    paragraph = new_element("a:p")
    if bullet:
        # only the marker; font and indents stay inherited from the layout
        sub_element(sub_element(paragraph, "a:pPr"), "a:buChar", {"char": BULLET_CHAR})
    run = sub_element(paragraph, "a:r")
    sub_element(run, "a:t").text = line
    return paragraph


def set_shape_text(
    doc: PresentationDocument,
    slide_index: int,
    content_type: Optional[str],
    content: str,
    replace: bool,
    shape_index: Optional[int] = None,
) -> int:
    """Write ``content`` into a shape of slide ``slide_index``.

    Args:
        doc: The presentation
        slide_index: Zero-based slide ordinal
        content_type: text/plain or text/markdown (aliases ``text``, ``markdown``)
        content: Text to write; markdown lines become bulleted paragraphs
        replace: Clear the shape's paragraphs first instead of appending
        shape_index: Explicit shape ordinal; Body, Title, first shape otherwise

    Returns:
        The number of paragraphs written.

    Raises:
        IndexOutOfRange: If a slide or shape ordinal is invalid.
        MissingTargetShape: If the slide has no shape to write into.
    """
    slide = resolve_slide_by_ordinal(doc, slide_index)
    shape = resolve_target_shape(slide, shape_index)
    if shape is None:
        raise MissingTargetShape(f"No valid text shape found on slide {slide_index}")

    normalized = _normalize_slide_content_type(content_type)
    lines = parse_content_lines(normalized, content)
    bullets = normalized == MIME_MARKDOWN

    tx_body = shape.element.find(qn("p:txBody"))
    if tx_body is None:
        tx_body = new_element("p:txBody", nsmap={"a": NSMAP["a"], "p": NSMAP["p"]})
        sub_element(tx_body, "a:bodyPr")
        sub_element(tx_body, "a:lstStyle")
        insert_after_predecessor(shape.element, tx_body, _TX_BODY_PREDECESSORS)

    if replace:
        for paragraph in tx_body.findall(qn("a:p")):
            tx_body.remove(paragraph)

    for line in lines:
        tx_body.append(_text_paragraph(line, bullets))

    if tx_body.find(qn("a:p")) is None:
        # a text body holds at least one paragraph
        sub_element(tx_body, "a:p")

    slide.part.mark_dirty()
    logger.info(
        "Wrote %d paragraph(s) to shape %d on slide %d (replace=%s)",
        len(lines), shape.index, slide_index, replace,
    )
    return len(lines)


# ----------------------------------------------------------------------
# Inventory

def list_slides(doc: PresentationDocument) -> List[Dict[str, Any]]:
    """Ordinal, relationship id and derived title of every slide."""
    slides = []
    for slide in iter_slides(doc):
        title = next((shape.text for shape in list_shapes(slide) if shape.text.strip()), "")
        slides.append({
            "index": slide.index,
            "relationship_id": slide.r_id,
            "slide_id": slide.slide_id,
            "title": title.strip(),
        })
    return slides


def describe_shapes(doc: PresentationDocument, slide_index: int) -> List[Dict[str, Any]]:
    slide = resolve_slide_by_ordinal(doc, slide_index)
    return [
        {
            "shape_index": shape.index,
            "placeholder": shape.kind_name,
            "text": shape.text.strip(),
        }
        for shape in list_shapes(slide)
    ]


# ----------------------------------------------------------------------
# New presentations

def create_from_template(template: bytes) -> PresentationDocument:
    """Open a .potx/.pptx as a regular presentation with at least one slide."""
    doc = PresentationDocument.load(template)
    doc.convert_to_presentation()
    if slide_count(doc) == 0:
        add_blank_slide(doc)
    return doc


def new_presentation(layout: str = "16:9") -> PresentationDocument:
    """A fresh deck with the requested slide size and one blank slide.

    Raises:
        InvalidArgument: If ``layout`` is not a known slide size.
    """
    dims = LAYOUTS.get(layout)
    if dims is None:
        raise InvalidArgument(f"Unknown layout {layout!r}. Choose one of: {', '.join(LAYOUTS)}")

    prs = Presentation()
    prs.slide_width = Inches(dims["width"])
    prs.slide_height = Inches(dims["height"])
    buffer = io.BytesIO()
    prs.save(buffer)

    doc = PresentationDocument.load(buffer.getvalue())
    add_blank_slide(doc)
    return doc
