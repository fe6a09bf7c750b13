"""
XML helpers shared by the OOXML engine.

Part XML is parsed with a hardened lxml parser; namespace prefixes used
throughout the engine are declared once here.
"""

from typing import Optional

from lxml import etree


NSMAP = {
    "a": "http://schemas.openxmlformats.org/drawingml/2006/main",
    "p": "http://schemas.openxmlformats.org/presentationml/2006/main",
    "r": "http://schemas.openxmlformats.org/officeDocument/2006/relationships",
    "w": "http://schemas.openxmlformats.org/wordprocessingml/2006/main",
    "p14": "http://schemas.microsoft.com/office/powerpoint/2010/main",
    "ct": "http://schemas.openxmlformats.org/package/2006/content-types",
    "pr": "http://schemas.openxmlformats.org/package/2006/relationships",
}

R_NS = NSMAP["r"]
XML_NS = "http://www.w3.org/XML/1998/namespace"

# Relationship types
RT_BASE = "http://schemas.openxmlformats.org/officeDocument/2006/relationships"
RT_OFFICE_DOCUMENT = f"{RT_BASE}/officeDocument"
RT_SLIDE = f"{RT_BASE}/slide"
RT_SLIDE_LAYOUT = f"{RT_BASE}/slideLayout"
RT_SLIDE_MASTER = f"{RT_BASE}/slideMaster"
RT_SETTINGS = f"{RT_BASE}/settings"
RT_AF_CHUNK = f"{RT_BASE}/aFChunk"
RT_VBA_PROJECT = "http://schemas.microsoft.com/office/2006/relationships/vbaProject"

# Content types
CT_SLIDE = "application/vnd.openxmlformats-officedocument.presentationml.slide+xml"
CT_PRESENTATION_MAIN = "application/vnd.openxmlformats-officedocument.presentationml.presentation.main+xml"
CT_PRESENTATION_MAINS = {
    CT_PRESENTATION_MAIN,
    "application/vnd.openxmlformats-officedocument.presentationml.template.main+xml",
    "application/vnd.openxmlformats-officedocument.presentationml.slideshow.main+xml",
    "application/vnd.ms-powerpoint.presentation.macroEnabled.main+xml",
    "application/vnd.ms-powerpoint.template.macroEnabled.main+xml",
    "application/vnd.ms-powerpoint.slideshow.macroEnabled.main+xml",
}
CT_DOCUMENT_MAIN = "application/vnd.openxmlformats-officedocument.wordprocessingml.document.main+xml"
CT_DOCUMENT_MAINS = {
    CT_DOCUMENT_MAIN,
    "application/vnd.openxmlformats-officedocument.wordprocessingml.template.main+xml",
    "application/vnd.ms-word.document.macroEnabled.main+xml",
    "application/vnd.ms-word.template.macroEnabledTemplate.main+xml",
}
CT_SETTINGS = "application/vnd.openxmlformats-officedocument.wordprocessingml.settings+xml"

_PARSER = etree.XMLParser(
    resolve_entities=False,
    no_network=True,
    remove_blank_text=False,
    huge_tree=True,
)


def qn(tag: str) -> str:
    """Turn a prefixed tag like ``w:p`` into Clark notation."""
    prefix, local = tag.split(":", 1)
    uri = XML_NS if prefix == "xml" else NSMAP[prefix]
    return f"{{{uri}}}{local}"


def parse_xml(blob: bytes) -> etree._Element:
    """Parse part XML without resolving entities or touching the network."""
    return etree.fromstring(blob, parser=_PARSER)


def serialize_xml(element: etree._Element) -> bytes:
    return etree.tostring(element, xml_declaration=True, encoding="UTF-8", standalone=True)


def new_element(tag: str, attrib: Optional[dict] = None, nsmap: Optional[dict] = None) -> etree._Element:
    """Detached element; declares its own prefix unless ``nsmap`` is given."""
    if nsmap is None:
        prefix = tag.split(":", 1)[0]
        nsmap = {prefix: NSMAP[prefix]}
    element = etree.Element(qn(tag), nsmap=nsmap)
    for key, value in (attrib or {}).items():
        element.set(qn(key) if ":" in key else key, value)
    return element


def sub_element(parent: etree._Element, tag: str, attrib: Optional[dict] = None) -> etree._Element:
    child = etree.SubElement(parent, qn(tag))
    for key, value in (attrib or {}).items():
        child.set(qn(key) if ":" in key else key, value)
    return child


def insert_after_predecessor(parent: etree._Element, child: etree._Element, predecessors) -> None:
    """Insert ``child`` right after the last present sibling named in ``predecessors``.

    Falls back to the first position when none of them is present. Used for
    schema-ordered containers (presentation, settings, shape properties).
    """
    wanted = {qn(tag) for tag in predecessors}
    index = 0
    for i, sibling in enumerate(parent):
        if sibling.tag in wanted:
            index = i + 1
    parent.insert(index, child)


def text_of(element: etree._Element, text_tag: str) -> str:
    """Concatenate every ``text_tag`` descendant, like an InnerText read."""
    return "".join(node.text or "" for node in element.iter(qn(text_tag)))
