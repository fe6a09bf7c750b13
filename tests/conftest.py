"""Shared fixtures: real decks and documents built with python-pptx / python-docx."""

from __future__ import annotations

import io
import zipfile

import pytest
from docx import Document
from pptx import Presentation

TITLE_SLIDE = 0
TITLE_AND_CONTENT = 1
BLANK = 6


def build_pptx(titles, layout_index=TITLE_AND_CONTENT) -> bytes:
    prs = Presentation()
    layout = prs.slide_layouts[layout_index]
    for title in titles:
        slide = prs.slides.add_slide(layout)
        if slide.shapes.title is not None:
            slide.shapes.title.text = title
    buffer = io.BytesIO()
    prs.save(buffer)
    return buffer.getvalue()


def build_docx(paragraphs) -> bytes:
    document = Document()
    for text in paragraphs:
        document.add_paragraph(text)
    buffer = io.BytesIO()
    document.save(buffer)
    return buffer.getvalue()


def zip_entries(blob: bytes) -> dict:
    with zipfile.ZipFile(io.BytesIO(blob)) as zf:
        return {name: zf.read(name) for name in zf.namelist()}


def rebuild_zip(blob: bytes, drop=(), replace=None) -> bytes:
    """Copy a ZIP, leaving out ``drop`` entries and substituting ``replace`` ones."""
    replace = replace or {}
    buffer = io.BytesIO()
    with zipfile.ZipFile(buffer, "w", zipfile.ZIP_DEFLATED) as out:
        for name, data in zip_entries(blob).items():
            if name in drop:
                continue
            out.writestr(name, replace.get(name, data))
    return buffer.getvalue()


def retype_main_part(blob: bytes, old: str, new: str) -> bytes:
    manifest = zip_entries(blob)["[Content_Types].xml"]
    return rebuild_zip(blob, replace={"[Content_Types].xml": manifest.replace(old.encode(), new.encode())})


@pytest.fixture
def deck_bytes():
    return build_pptx(["First", "Second", "Third"])


@pytest.fixture
def one_slide_deck():
    return build_pptx(["Only"])


@pytest.fixture
def blank_layout_deck():
    return build_pptx(["ignored"], layout_index=BLANK)


@pytest.fixture
def potx_bytes(deck_bytes):
    return retype_main_part(
        deck_bytes,
        "presentationml.presentation.main+xml",
        "presentationml.template.main+xml",
    )


@pytest.fixture
def empty_potx_bytes():
    return retype_main_part(
        build_pptx([]),
        "presentationml.presentation.main+xml",
        "presentationml.template.main+xml",
    )


@pytest.fixture
def docx_bytes():
    return build_docx([
        "Say Hello world today",
        "Nothing to see here",
        "hello WORLD and hello world",
    ])


@pytest.fixture
def dotx_bytes():
    return retype_main_part(
        build_docx(["Template heading"]),
        "wordprocessingml.document.main+xml",
        "wordprocessingml.template.main+xml",
    )
