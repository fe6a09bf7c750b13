"""
Presentation and wordprocessing specializations of the package store.
"""

import logging
from typing import List, Optional

from lxml import etree

from ..exceptions import MalformedPackage
from .oxml import (
    CT_DOCUMENT_MAIN,
    CT_DOCUMENT_MAINS,
    CT_PRESENTATION_MAIN,
    CT_PRESENTATION_MAINS,
    CT_SETTINGS,
    NSMAP,
    RT_OFFICE_DOCUMENT,
    RT_SETTINGS,
    RT_SLIDE_LAYOUT,
    RT_SLIDE_MASTER,
    RT_VBA_PROJECT,
    insert_after_predecessor,
    new_element,
    qn,
    sub_element,
)
from .package import Package, Part

logger = logging.getLogger(__name__)

# p:presentation children that precede p:sldIdLst
_SLD_ID_LST_PREDECESSORS = ("p:sldMasterIdLst", "p:notesMasterIdLst", "p:handoutMasterIdLst")


class PresentationDocument(Package):
    """A PresentationML package with one presentation part."""

    def _check_main_part(self) -> None:
        super()._check_main_part()
        if self.main_part.content_type not in CT_PRESENTATION_MAINS:
            raise MalformedPackage(
                f"Not a presentation package (main part is {self.main_part.content_type})"
            )

    @property
    def presentation_part(self) -> Part:
        return self.main_part

    @property
    def is_template(self) -> bool:
        return self.presentation_part.content_type != CT_PRESENTATION_MAIN

    def convert_to_presentation(self) -> bool:
        """Turn a template/slideshow/macro package into a regular presentation."""
        if not self.is_template:
            return False
        part = self.presentation_part
        logger.info("Converting %s to a regular presentation", part.content_type)
        self.set_content_type(part, CT_PRESENTATION_MAIN)
        _drop_macros(part)
        return True

    def slide_id_list(self, create: bool = False) -> Optional[etree._Element]:
        presentation = self.presentation_part.element
        sld_id_lst = presentation.find(qn("p:sldIdLst"))
        if sld_id_lst is None and create:
            sld_id_lst = new_element("p:sldIdLst")
            insert_after_predecessor(presentation, sld_id_lst, _SLD_ID_LST_PREDECESSORS)
            self.presentation_part.mark_dirty()
        return sld_id_lst

    def slide_ids(self) -> List[etree._Element]:
        sld_id_lst = self.slide_id_list()
        if sld_id_lst is None:
            return []
        return sld_id_lst.findall(qn("p:sldId"))

    def slide_part(self, sld_id: etree._Element) -> Part:
        return self.related_part(self.presentation_part, sld_id.get(qn("r:id")))

    def slide_masters(self) -> List[Part]:
        """Slide masters in ``p:sldMasterIdLst`` order."""
        pres_part = self.presentation_part
        masters = [
            self.related_part(pres_part, master_id.get(qn("r:id")))
            for master_id in pres_part.element.iterfind("p:sldMasterIdLst/p:sldMasterId", NSMAP)
        ]
        return masters or self.related_parts(pres_part, RT_SLIDE_MASTER)

    def slide_layouts(self, master: Part) -> List[Part]:
        """Layouts of ``master`` in ``p:sldLayoutIdLst`` order."""
        layouts = [
            self.related_part(master, layout_id.get(qn("r:id")))
            for layout_id in master.element.iterfind("p:sldLayoutIdLst/p:sldLayoutId", NSMAP)
        ]
        return layouts or self.related_parts(master, RT_SLIDE_LAYOUT)


class WordprocessingDocument(Package):
    """A WordprocessingML package. The main part may be absent in templates."""

    def _check_main_part(self) -> None:
        part = self.main_part
        if part is not None and part.content_type not in CT_DOCUMENT_MAINS:
            raise MalformedPackage(f"Not a wordprocessing package (main part is {part.content_type})")

    @property
    def document_part(self) -> Part:
        part = self.main_part
        if part is None:
            raise MalformedPackage("Missing main document part")
        return part

    @property
    def is_template(self) -> bool:
        return self.document_part.content_type != CT_DOCUMENT_MAIN

    def convert_to_document(self) -> bool:
        """Turn a template or macro-enabled package into a regular document."""
        if not self.is_template:
            return False
        part = self.document_part
        logger.info("Converting %s to a regular document", part.content_type)
        self.set_content_type(part, CT_DOCUMENT_MAIN)
        _drop_macros(part)
        return True

    def ensure_document_part(self) -> Part:
        """Return the main document part, creating ``/word/document.xml`` if absent."""
        part = self.main_part
        if part is None:
            document = new_element("w:document", nsmap={"w": NSMAP["w"], "r": NSMAP["r"]})
            sub_element(document, "w:body")
            part = self.add_part("/word/document.xml", CT_DOCUMENT_MAIN, element=document)
            self.relate(None, part, RT_OFFICE_DOCUMENT)
            logger.info("Created missing main document part")
        return part

    def body(self, create: bool = False) -> etree._Element:
        part = self.document_part
        body = part.element.find(qn("w:body"))
        if body is None:
            if not create:
                raise MalformedPackage("Main document part has no body")
            body = sub_element(part.element, "w:body")
            part.mark_dirty()
        return body

    def append_block(self, block: etree._Element) -> None:
        """Append a block element to the body, keeping ``w:sectPr`` last."""
        body = self.body(create=True)
        last = body[-1] if len(body) else None
        if last is not None and last.tag == qn("w:sectPr"):
            last.addprevious(block)
        else:
            body.append(block)
        self.document_part.mark_dirty()

    def settings_part(self, create: bool = False) -> Optional[Part]:
        document_part = self.document_part
        parts = self.related_parts(document_part, RT_SETTINGS)
        if parts:
            return parts[0]
        if not create:
            return None
        settings = new_element("w:settings", nsmap={"w": NSMAP["w"]})
        partname = "/word/settings.xml"
        if self.get_part(partname) is not None:
            partname = self.next_partname("/word/settings%d.xml")
        part = self.add_part(partname, CT_SETTINGS, element=settings)
        self.relate(document_part, part, RT_SETTINGS)
        logger.info("Created settings part %s", part.partname)
        return part


def _drop_macros(part: Part) -> None:
    for rel in part.rels.of_type(RT_VBA_PROJECT):
        part.rels.drop(rel.r_id)
