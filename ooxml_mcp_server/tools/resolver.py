"""
Map stable addresses (slide ordinal, shape ordinal, placeholder kind) onto
the parts and elements of a loaded presentation.
"""

from dataclasses import dataclass
from enum import Enum
from typing import List, Optional

from lxml import etree

from ..exceptions import IndexOutOfRange, MalformedPackage
from .documents import PresentationDocument
from .oxml import NSMAP, qn, text_of
from .package import Part


class PlaceholderKind(Enum):
    TITLE = "Title"
    BODY = "Body"
    OTHER = "Other"


_PLACEHOLDER_TYPES = {
    "title": PlaceholderKind.TITLE,
    "ctrTitle": PlaceholderKind.TITLE,
    "body": PlaceholderKind.BODY,
    "obj": PlaceholderKind.BODY,
}


@dataclass
class SlideRef:
    """A slide located through the slide-ID list."""
    index: int
    slide_id: int
    r_id: str
    sld_id: etree._Element
    part: Part

    @property
    def shape_tree(self) -> etree._Element:
        sp_tree = self.part.element.find("p:cSld/p:spTree", namespaces=NSMAP)
        if sp_tree is None:
            raise MalformedPackage(f"{self.part.partname} has no shape tree")
        return sp_tree


@dataclass
class ShapeRef:
    """A ``p:sp`` element and its position in document order."""
    index: int
    element: etree._Element
    kind: Optional[PlaceholderKind]

    @property
    def text(self) -> str:
        tx_body = self.element.find(qn("p:txBody"))
        return text_of(tx_body, "a:t") if tx_body is not None else ""

    @property
    def kind_name(self) -> str:
        return self.kind.value if self.kind else "None"


def placeholder_kind(sp: etree._Element) -> Optional[PlaceholderKind]:
    """Placeholder kind of a shape; ``None`` when it is not a placeholder."""
    ph = sp.find("p:nvSpPr/p:nvPr/p:ph", namespaces=NSMAP)
    if ph is None:
        return None
    # a placeholder without a type is an object (content) placeholder
    return _PLACEHOLDER_TYPES.get(ph.get("type", "obj"), PlaceholderKind.OTHER)


def slide_count(doc: PresentationDocument) -> int:
    return len(doc.slide_ids())


def resolve_slide_by_ordinal(doc: PresentationDocument, index: int) -> SlideRef:
    """Zero-based slide lookup in slide-show order."""
    sld_ids = doc.slide_ids()
    if index < 0 or index >= len(sld_ids):
        raise IndexOutOfRange("slide", index, len(sld_ids))
    sld_id = sld_ids[index]
    return SlideRef(
        index=index,
        slide_id=int(sld_id.get("id")),
        r_id=sld_id.get(qn("r:id")),
        sld_id=sld_id,
        part=doc.slide_part(sld_id),
    )


def iter_slides(doc: PresentationDocument) -> List[SlideRef]:
    return [resolve_slide_by_ordinal(doc, i) for i in range(slide_count(doc))]


def list_shapes(slide: SlideRef) -> List[ShapeRef]:
    """Every ``p:sp`` of the slide in document order, group members included."""
    return [
        ShapeRef(index=i, element=sp, kind=placeholder_kind(sp))
        for i, sp in enumerate(slide.shape_tree.iter(qn("p:sp")))
    ]


def resolve_shape_by_ordinal(slide: SlideRef, index: int) -> ShapeRef:
    shapes = list_shapes(slide)
    if index < 0 or index >= len(shapes):
        raise IndexOutOfRange("shape", index, len(shapes))
    return shapes[index]


def resolve_placeholder_shape(slide: SlideRef, kind: PlaceholderKind) -> Optional[ShapeRef]:
    """First shape whose placeholder kind is ``kind``."""
    return next((shape for shape in list_shapes(slide) if shape.kind is kind), None)


def resolve_target_shape(slide: SlideRef, shape_index: Optional[int] = None) -> Optional[ShapeRef]:
    """Explicit ordinal when given, else Body, then Title, then the first shape."""
    if shape_index is not None:
        return resolve_shape_by_ordinal(slide, shape_index)
    shapes = list_shapes(slide)
    return (
        resolve_placeholder_shape(slide, PlaceholderKind.BODY)
        or resolve_placeholder_shape(slide, PlaceholderKind.TITLE)
        or (shapes[0] if shapes else None)
    )
