"""Tests for Word document creation, alt-chunk imports and templates."""

import io

import pytest
from docx import Document
from lxml import etree

from conftest import build_docx, rebuild_zip, zip_entries
from ooxml_mcp_server.exceptions import UnsupportedImportType
from ooxml_mcp_server.tools.documents import WordprocessingDocument
from ooxml_mcp_server.tools.importer import MIME_DOCX
from ooxml_mcp_server.tools.oxml import CT_DOCUMENT_MAIN, NSMAP, RT_AF_CHUNK, qn
from ooxml_mcp_server.tools.validation import collect_problems
from ooxml_mcp_server.tools.wordprocessing import (
    append_content,
    append_file,
    append_plain_text,
    blank_document,
    create_document_from_file,
    create_document_from_text,
    create_from_template,
    create_from_template_file,
    open_template,
)


def body_children(doc):
    return [child.tag for child in doc.body()]


def alt_chunks(doc):
    """(relationship id, part) for every alt-chunk in body order."""
    part = doc.document_part
    return [
        (chunk.get(qn("r:id")), doc.related_part(part, chunk.get(qn("r:id"))))
        for chunk in doc.body().findall(qn("w:altChunk"))
    ]


def reopen(doc):
    return Document(io.BytesIO(doc.save()))


# ---------------------------------------------------------------------------
# Creating documents
# ---------------------------------------------------------------------------

class TestCreateFromText:
    def test_plain_text_is_native_paragraphs(self):
        doc = create_document_from_text("text", "First block\nsecond line\n\n  Indented")
        document = reopen(doc)
        texts = [p.text for p in document.paragraphs]
        assert texts == ["First block\nsecond line", "  Indented"]
        assert alt_chunks(doc) == []

    def test_plain_text_keeps_whitespace_and_breaks(self):
        doc = create_document_from_text("text/plain", "a\nb")
        paragraph = doc.body().find(qn("w:p"))
        assert paragraph.find("w:r/w:br", NSMAP) is not None
        for text in paragraph.iterfind(".//w:t", NSMAP):
            assert text.get(qn("xml:space")) == "preserve"

    def test_section_properties_stay_last(self):
        doc = create_document_from_text("text", "one\n\ntwo")
        assert body_children(doc)[-1] == qn("w:sectPr")

    def test_markdown_is_an_html_chunk(self):
        doc = create_document_from_text("markdown", "# Heading\n\n- item")
        chunks = alt_chunks(doc)
        assert len(chunks) == 1
        r_id, part = chunks[0]
        assert r_id.startswith("rId")
        assert part.content_type == "text/html"
        assert part.partname == "/word/afchunk1.html"
        assert b"<h1>Heading</h1>" in part.blob
        assert body_children(doc)[-2:] == [qn("w:altChunk"), qn("w:sectPr")]

    def test_html_chunk_round_trips(self):
        doc = create_document_from_text("html", "<p>Hello</p>")
        entries = zip_entries(doc.save())
        assert b"<p>Hello</p>" in entries["word/afchunk1.html"]
        assert b'PartName="/word/afchunk1.html"' in entries["[Content_Types].xml"]
        assert RT_AF_CHUNK.encode() in entries["word/_rels/document.xml.rels"]

    def test_inline_xml_is_rejected(self):
        with pytest.raises(UnsupportedImportType):
            create_document_from_text("application/xml", "<a/>")

    def test_unknown_type_is_rejected(self):
        with pytest.raises(UnsupportedImportType, match="application/weird"):
            create_document_from_text("application/weird", "x")

    def test_blank_document_has_no_empty_paragraphs(self):
        doc = blank_document()
        assert all(len(p) for p in doc.body().findall(qn("w:p")))


class TestCreateFromFile:
    @pytest.mark.parametrize(
        "mime, content_type, partname",
        [
            ("text/markdown", "text/html", "/word/afchunk1.html"),
            ("text/plain", "text/plain", "/word/afchunk1.txt"),
            ("application/xml", "application/xml", "/word/afchunk1.xml"),
            ("message/rfc822", "message/rfc822", "/word/afchunk1.mht"),
        ],
    )
    def test_chunk_types(self, mime, content_type, partname):
        doc = create_document_from_file(mime, b"<root>payload</root>")
        (_, part), = alt_chunks(doc)
        assert part.content_type == content_type
        assert part.partname == partname
        WordprocessingDocument.load(doc.save())

    def test_wordprocessing_fragment(self):
        fragment = build_docx(["Imported paragraph"])
        doc = create_document_from_file(MIME_DOCX, fragment)
        (_, part), = alt_chunks(doc)
        assert part.partname == "/word/afchunk1.docx"
        assert part.content_type == CT_DOCUMENT_MAIN
        assert not part.is_xml
        assert zip_entries(doc.save())["word/afchunk1.docx"] == fragment

    def test_wordprocessing_fragment_declared_type_survives_save(self):
        doc = create_document_from_file(MIME_DOCX, build_docx(["Imported paragraph"]))
        saved = doc.save()

        manifest = etree.fromstring(zip_entries(saved)["[Content_Types].xml"])
        override = manifest.find("ct:Override[@PartName='/word/afchunk1.docx']", NSMAP)
        assert override is not None
        assert override.get("ContentType") == CT_DOCUMENT_MAIN

        reloaded = WordprocessingDocument.load(saved)
        assert reloaded.get_part("/word/afchunk1.docx").content_type == CT_DOCUMENT_MAIN
        assert collect_problems(reloaded, full=True) == []

    def test_unsupported_mime(self):
        with pytest.raises(UnsupportedImportType):
            create_document_from_file("image/png", b"\x89PNG")


# ---------------------------------------------------------------------------
# Appending
# ---------------------------------------------------------------------------

class TestAppend:
    def test_existing_content_is_kept(self, docx_bytes):
        doc = WordprocessingDocument.load(docx_bytes)
        append_content(doc, "markdown", "**added**")
        document = reopen(doc)
        assert [p.text for p in document.paragraphs][:3] == [
            "Say Hello world today",
            "Nothing to see here",
            "hello WORLD and hello world",
        ]

    def test_successive_chunks(self, docx_bytes):
        doc = WordprocessingDocument.load(docx_bytes)
        first = append_content(doc, "html", "<p>one</p>")
        second = append_file(doc, "text/markdown", b"two")
        chunks = alt_chunks(doc)
        assert [r_id for r_id, _ in chunks] == [first, second]
        assert all(r_id.startswith("chunk_") for r_id in (first, second))
        assert first != second
        assert [part.partname for _, part in chunks] == ["/word/afchunk1.html", "/word/afchunk2.html"]
        assert body_children(doc)[-1] == qn("w:sectPr")

    def test_chunks_survive_save(self, docx_bytes):
        doc = WordprocessingDocument.load(docx_bytes)
        r_id = append_content(doc, "text", "plain <text>")
        reloaded = WordprocessingDocument.load(doc.save())
        part = reloaded.related_part(reloaded.document_part, r_id)
        assert b"plain &lt;text&gt;" in part.blob

    def test_append_file_docx(self, docx_bytes):
        doc = WordprocessingDocument.load(docx_bytes)
        append_file(doc, MIME_DOCX, build_docx(["more"]))
        (_, part), = alt_chunks(doc)
        assert part.partname == "/word/afchunk1.docx"

    def test_plain_text_paragraph_count(self):
        doc = blank_document()
        assert append_plain_text(doc, "a\r\n\r\nb\n\nc") == 3


# ---------------------------------------------------------------------------
# Templates
# ---------------------------------------------------------------------------

class TestTemplates:
    def test_dotx_becomes_document(self, dotx_bytes):
        doc = create_from_template(dotx_bytes, "markdown", "Filled in")
        assert not doc.is_template
        manifest = zip_entries(doc.save())["[Content_Types].xml"]
        assert CT_DOCUMENT_MAIN.encode() in manifest
        assert b"wordprocessingml.template.main+xml" not in manifest
        assert reopen(doc).paragraphs[0].text == "Template heading"

    def test_template_file(self, dotx_bytes):
        doc = create_from_template_file(dotx_bytes, "text/html", b"<p>from file</p>")
        (_, part), = alt_chunks(doc)
        assert b"from file" in part.blob

    def test_missing_main_part_is_created(self, dotx_bytes):
        stripped = rebuild_zip(dotx_bytes, drop={"word/document.xml", "word/_rels/document.xml.rels"})
        doc = open_template(stripped)
        assert doc.document_part.partname == "/word/document.xml"
        assert doc.body() is not None
        append_content(doc, "text", "rebuilt")
        reloaded = WordprocessingDocument.load(doc.save())
        assert len(alt_chunks(reloaded)) == 1

    def test_regular_document_as_template(self, docx_bytes):
        doc = open_template(docx_bytes)
        assert not doc.is_template
        assert not doc.document_part.dirty
