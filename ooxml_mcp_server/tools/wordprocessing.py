"""
Structural edits on Word documents.

This module provides functionality to:
- Create documents from plain text, markdown or HTML
- Create documents from an input file of any importable type
- Append imported content to existing documents through alt-chunks
- Instantiate documents from .dotx/.docx templates
"""

import io
import logging
import uuid
from typing import Optional

from docx import Document
from lxml import etree

from .documents import WordprocessingDocument
from .importer import (
    ImportPayload,
    prepare_content_payload,
    prepare_import_payload,
    type_family,
)
from .oxml import NSMAP, RT_AF_CHUNK, new_element, qn, sub_element

logger = logging.getLogger(__name__)

AF_CHUNK_PARTNAME = "/word/afchunk%d"


def blank_document() -> WordprocessingDocument:
    """An empty document with the default styles, settings and section."""
    buffer = io.BytesIO()
    Document().save(buffer)
    doc = WordprocessingDocument.load(buffer.getvalue())
    body = doc.body(create=True)
    for paragraph in body.findall(qn("w:p")):
        if len(paragraph) == 0:
            body.remove(paragraph)
            doc.document_part.mark_dirty()
    return doc


def _plain_paragraph(block: str) -> etree._Element:
    """One paragraph; lines are separate runs joined by breaks, whitespace kept."""
    paragraph = new_element("w:p")
    lines = block.split("\n")
    for i, line in enumerate(lines):
        text = sub_element(sub_element(paragraph, "w:r"), "w:t")
        text.text = line
        text.set(qn("xml:space"), "preserve")
        if i < len(lines) - 1:
            sub_element(sub_element(paragraph, "w:r"), "w:br")
    return paragraph


def append_plain_text(doc: WordprocessingDocument, text: str) -> int:
    """Blank-line separated blocks become paragraphs. Returns the paragraph count."""
    blocks = (text or "").replace("\r\n", "\n").split("\n\n")
    for block in blocks:
        doc.append_block(_plain_paragraph(block))
    return len(blocks)


def append_alt_chunk(doc: WordprocessingDocument, payload: ImportPayload, chunk_id: Optional[str] = None) -> str:
    """Store ``payload`` as an import part and reference it at the end of the body.

    Returns:
        The relationship id of the new alt-chunk.
    """
    document_part = doc.ensure_document_part()
    kind = payload.kind
    partname = doc.next_partname(f"{AF_CHUNK_PARTNAME}.{kind.extension}")
    chunk = doc.add_part(partname, kind.content_type, blob=payload.data)
    r_id = doc.relate(document_part, chunk, RT_AF_CHUNK, chunk_id)

    doc.append_block(new_element("w:altChunk", {"r:id": r_id}, nsmap={"w": NSMAP["w"], "r": NSMAP["r"]}))
    logger.info("Appended %s alt-chunk %s (%d bytes) as %s", kind.name, partname, len(payload.data), r_id)
    return r_id


def _new_chunk_id() -> str:
    return "chunk_" + uuid.uuid4().hex


def create_document_from_text(content_type: Optional[str], content: str) -> WordprocessingDocument:
    """Plain text becomes native paragraphs; markdown and HTML an HTML alt-chunk.

    Raises:
        UnsupportedImportType: For anything but plain text, markdown or HTML.
    """
    doc = blank_document()
    if type_family(content_type) == "plain":
        count = append_plain_text(doc, content)
        logger.info("Created document with %d paragraph(s)", count)
    else:
        append_alt_chunk(doc, prepare_content_payload(content_type, content))
    return doc


def create_document_from_file(mime_type: Optional[str], data: bytes) -> WordprocessingDocument:
    doc = blank_document()
    append_alt_chunk(doc, prepare_import_payload(mime_type, data))
    return doc


def append_content(doc: WordprocessingDocument, content_type: Optional[str], content: str) -> str:
    """Append inline text, markdown or HTML after the existing content."""
    return append_alt_chunk(doc, prepare_content_payload(content_type, content), _new_chunk_id())


def append_file(doc: WordprocessingDocument, mime_type: Optional[str], data: bytes) -> str:
    return append_alt_chunk(doc, prepare_import_payload(mime_type, data), _new_chunk_id())


def open_template(template: bytes) -> WordprocessingDocument:
    """Open a .dotx/.docx as a regular document with a main part and body."""
    doc = WordprocessingDocument.load(template)
    doc.ensure_document_part()
    doc.convert_to_document()
    doc.body(create=True)
    return doc


def create_from_template(template: bytes, content_type: Optional[str], content: str) -> WordprocessingDocument:
    doc = open_template(template)
    append_alt_chunk(doc, prepare_content_payload(content_type, content))
    return doc


def create_from_template_file(template: bytes, mime_type: Optional[str], data: bytes) -> WordprocessingDocument:
    doc = open_template(template)
    append_alt_chunk(doc, prepare_import_payload(mime_type, data))
    return doc
