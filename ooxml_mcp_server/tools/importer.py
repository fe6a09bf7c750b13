"""
Normalize incoming content into alternate-format import payloads.

This module provides functionality to:
- Resolve MIME aliases and sniff types from file extensions
- Convert Markdown to HTML and wrap HTML fragments into full documents
- Turn plain text into semantic HTML paragraphs
- Map every supported input onto a single ImportKind
"""

import html
import logging
import posixpath
import re
from dataclasses import dataclass
from enum import Enum
from typing import Optional
from urllib.parse import unquote, urlparse

import mistune

from ..exceptions import UnsupportedImportType
from .oxml import CT_DOCUMENT_MAIN

logger = logging.getLogger(__name__)


class ImportKind(Enum):
    """How the host application interprets an alt-chunk part."""

    PLAIN_TEXT = ("text/plain", "txt")
    HTML = ("text/html", "html")
    XML = ("application/xml", "xml")
    MAIL_ARCHIVE = ("message/rfc822", "mht")
    WORDPROCESSING_FRAGMENT = (CT_DOCUMENT_MAIN, "docx")

    def __init__(self, content_type: str, extension: str):
        self.content_type = content_type
        self.extension = extension


@dataclass
class ImportPayload:
    kind: ImportKind
    data: bytes


MIME_PLAIN = "text/plain"
MIME_MARKDOWN = "text/markdown"
MIME_HTML = "text/html"
MIME_DOCX = "application/vnd.openxmlformats-officedocument.wordprocessingml.document"

# Input type families, keyed by the label reported back to callers
SUPPORTED_TYPES = {
    "plain": (MIME_PLAIN,),
    "markdown": (MIME_MARKDOWN, "text/x-markdown"),
    "html": (MIME_HTML, "application/xhtml+xml"),
    "xml": ("application/xml", "text/xml"),
    "legacy-mail-archive": ("message/rfc822", "application/x-mimearchive", "multipart/related"),
    "wordprocessing-fragment": (MIME_DOCX,),
}

SUPPORTED_LABELS = tuple(
    f"{label} ({', '.join(mimes)})" for label, mimes in SUPPORTED_TYPES.items()
)

_ALIASES = {
    "text": MIME_PLAIN,
    "markdown": MIME_MARKDOWN,
    "md": MIME_MARKDOWN,
    "html": MIME_HTML,
}

_EXTENSIONS = {
    ".md": MIME_MARKDOWN,
    ".markdown": MIME_MARKDOWN,
    ".htm": MIME_HTML,
    ".html": MIME_HTML,
    ".xhtml": "application/xhtml+xml",
    ".txt": MIME_PLAIN,
    ".xml": "application/xml",
    ".mht": "multipart/related",
    ".mhtml": "multipart/related",
    ".docx": MIME_DOCX,
}

_KINDS = {
    "plain": ImportKind.PLAIN_TEXT,
    "markdown": ImportKind.HTML,
    "html": ImportKind.HTML,
    "xml": ImportKind.XML,
    "legacy-mail-archive": ImportKind.MAIL_ARCHIVE,
    "wordprocessing-fragment": ImportKind.WORDPROCESSING_FRAGMENT,
}

_INVALID_FILE_CHARS = re.compile(r'[<>:"/\\|?*\x00-\x1f]')

_markdown = mistune.create_markdown(escape=False, plugins=["table", "strikethrough"])


def normalize_content_type(content_type: Optional[str]) -> str:
    """Lower-case, drop parameters and resolve aliases (``markdown`` -> ``text/markdown``)."""
    value = (content_type or "").split(";", 1)[0].strip().lower()
    return _ALIASES.get(value, value)


def type_family(content_type: Optional[str]) -> str:
    """Label of the supported family ``content_type`` belongs to.

    Raises:
        UnsupportedImportType: If the type belongs to no supported family.
    """
    mime = normalize_content_type(content_type)
    for label, mimes in SUPPORTED_TYPES.items():
        if mime in mimes:
            return label
    raise UnsupportedImportType(content_type, SUPPORTED_LABELS)


def extension_of(location: str) -> str:
    path = urlparse(location).path if "://" in location else location
    return posixpath.splitext(unquote(path).replace("\\", "/"))[1].lower()


def effective_mime_type(declared: Optional[str], location: str) -> str:
    """Declared MIME type when present, else sniffed from the file extension."""
    if declared and declared.strip():
        return declared
    mime = _EXTENSIONS.get(extension_of(location), MIME_PLAIN)
    logger.debug("No declared type for %s, sniffed %s", location, mime)
    return mime


def markdown_to_html(markdown: str) -> str:
    return _markdown(markdown or "")


def wrap_html(fragment: str) -> str:
    """Wrap an HTML fragment in a full document unless it already is one."""
    fragment = fragment or ""
    if "<html" in fragment.lower():
        return fragment
    return (
        "<!DOCTYPE html>\n"
        "<html>\n"
        "<head>\n"
        '<meta charset="UTF-8">\n'
        "<title>Document</title>\n"
        "</head>\n"
        "<body>\n"
        f"{fragment}\n"
        "</body>\n"
        "</html>"
    )


def plain_text_to_html(text: str) -> str:
    """Blank-line separated blocks become ``<p>``, single newlines ``<br/>``."""
    encoded = html.escape(text or "").replace("\r\n", "\n")
    paragraphs = [block.replace("\n", "<br/>") for block in encoded.split("\n\n")]
    return "<p>" + "</p><p>".join(paragraphs) + "</p>"


def _decode(data: bytes) -> str:
    return (data or b"").decode("utf-8-sig", errors="replace")


def prepare_import_payload(mime_type: Optional[str], data: bytes) -> ImportPayload:
    """Payload for an input file: Markdown and HTML become full HTML documents,
    every other supported type is passed through with its own import kind."""
    family = type_family(mime_type)
    kind = _KINDS[family]

    if family == "markdown":
        payload = wrap_html(markdown_to_html(_decode(data))).encode("utf-8")
    elif family == "html":
        payload = wrap_html(_decode(data)).encode("utf-8")
    else:
        payload = data or b""

    logger.debug("Prepared %s payload (%d bytes) from %s", kind.name, len(payload), mime_type)
    return ImportPayload(kind, payload)


def prepare_content_payload(content_type: Optional[str], content: str) -> ImportPayload:
    """Payload for inline text, markdown or HTML content; always an HTML import."""
    family = type_family(content_type)
    if family == "plain":
        fragment = plain_text_to_html(content)
    elif family == "markdown":
        fragment = markdown_to_html(content)
    elif family == "html":
        fragment = content or ""
    else:
        raise UnsupportedImportType(content_type, SUPPORTED_LABELS[:3])
    return ImportPayload(ImportKind.HTML, wrap_html(fragment).encode("utf-8"))


def sanitize_file_name(name: Optional[str], extension: str) -> str:
    """File-system safe base name without a trailing ``extension``."""
    cleaned = (name or "").strip() or "document"
    cleaned = _INVALID_FILE_CHARS.sub("_", cleaned)
    if cleaned.lower().endswith(extension.lower()):
        cleaned = cleaned[: -len(extension)] or "document"
    return cleaned
