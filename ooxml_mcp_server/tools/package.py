"""
In-memory OOXML package store.

This module provides functionality to:
- Load an Office ZIP container into an arena of parts keyed by part name
- Track each part's ordered relationship list and declared content type
- Add, relate and drop parts while keeping the relationship graph closed
- Find parts no longer reachable from the package root

Parts keep their original bytes until a mutator marks them dirty, so
untouched parts are written back exactly as they were read.
"""

import io
import logging
import posixpath
import re
import zipfile
import zlib
from dataclasses import dataclass
from typing import Dict, Iterator, List, Optional, Set
from urllib.parse import unquote
from xml.etree.ElementTree import ParseError

import defusedxml.ElementTree
from defusedxml import DefusedXmlException
from lxml import etree

from ..exceptions import MalformedPackage
from .oxml import NSMAP, R_NS, RT_OFFICE_DOCUMENT, parse_xml, qn, serialize_xml

logger = logging.getLogger(__name__)

CONTENT_TYPES_NAME = "[Content_Types].xml"
PACKAGE_RELS_NAME = "_rels/.rels"
PACKAGE_URI = "/"
ZIP_MAGIC = b"PK\x03\x04"

CT_NS = NSMAP["ct"]
RELS_NS = NSMAP["pr"]

_RID_PATTERN = re.compile(r"^rId(\d+)$")


@dataclass
class Relationship:
    """One entry of a source part's relationship list."""
    r_id: str
    rel_type: str
    target_ref: str
    is_external: bool = False
    target_partname: Optional[str] = None


class Relationships:
    """Ordered relationships owned by one source part (or the package root)."""

    def __init__(self, base_uri: str, blob: Optional[bytes] = None):
        self.base_uri = base_uri
        self._rels: Dict[str, Relationship] = {}
        self._blob = blob
        self.dirty = False

    @classmethod
    def from_blob(cls, base_uri: str, blob: bytes, source_name: str) -> "Relationships":
        rels = cls(base_uri, blob)
        try:
            root = defusedxml.ElementTree.fromstring(blob)
        except (ParseError, DefusedXmlException) as e:
            raise MalformedPackage(f"Unreadable relationships part {source_name}: {e}") from e

        for rel_el in root.findall(f"{{{RELS_NS}}}Relationship"):
            r_id = rel_el.get("Id")
            if not r_id:
                raise MalformedPackage(f"{source_name}: relationship without Id")
            target_ref = rel_el.get("Target", "")
            is_external = rel_el.get("TargetMode") == "External"
            target_partname = None if is_external else resolve_partname(base_uri, target_ref)
            rels._rels[r_id] = Relationship(
                r_id=r_id,
                rel_type=rel_el.get("Type", ""),
                target_ref=target_ref,
                is_external=is_external,
                target_partname=target_partname,
            )
        return rels

    def __iter__(self) -> Iterator[Relationship]:
        return iter(list(self._rels.values()))

    def __len__(self) -> int:
        return len(self._rels)

    def __contains__(self, r_id: str) -> bool:
        return r_id in self._rels

    def get(self, r_id: str) -> Optional[Relationship]:
        return self._rels.get(r_id)

    def next_r_id(self) -> str:
        numbers = [int(m.group(1)) for m in map(_RID_PATTERN.match, self._rels) if m]
        return f"rId{max(numbers, default=0) + 1}"

    def add(self, rel_type: str, target_partname: str, r_id: Optional[str] = None) -> str:
        r_id = r_id or self.next_r_id()
        if r_id in self._rels:
            raise ValueError(f"Relationship id {r_id} already in use")
        self._rels[r_id] = Relationship(
            r_id=r_id,
            rel_type=rel_type,
            target_ref=relative_ref(self.base_uri, target_partname),
            target_partname=target_partname,
        )
        self.dirty = True
        return r_id

    def drop(self, r_id: str) -> None:
        if self._rels.pop(r_id, None) is not None:
            self.dirty = True

    def targeting(self, partname: str) -> List[Relationship]:
        return [rel for rel in self._rels.values() if rel.target_partname == partname]

    def of_type(self, rel_type: str) -> List[Relationship]:
        return [rel for rel in self._rels.values() if rel.rel_type == rel_type]

    @property
    def blob(self) -> bytes:
        if self._blob is not None and not self.dirty:
            return self._blob
        root = etree.Element(f"{{{RELS_NS}}}Relationships", nsmap={None: RELS_NS})
        for rel in self._rels.values():
            rel_el = etree.SubElement(root, f"{{{RELS_NS}}}Relationship")
            rel_el.set("Id", rel.r_id)
            rel_el.set("Type", rel.rel_type)
            rel_el.set("Target", rel.target_ref)
            if rel.is_external:
                rel_el.set("TargetMode", "External")
        return serialize_xml(root)


class Part:
    """A named entry of the package, with lazily parsed XML."""

    def __init__(self, partname: str, content_type: str, blob: bytes, rels: Relationships):
        self.partname = partname
        self.content_type = content_type
        self.rels = rels
        self._blob = blob
        self._element: Optional[etree._Element] = None
        self.dirty = False

    def __repr__(self) -> str:
        return f"<Part {self.partname} ({self.content_type})>"

    @property
    def is_xml(self) -> bool:
        if self._element is not None:
            return True
        # Word fragments imported as alt-chunks declare a main+xml type but hold a ZIP
        return self.content_type.endswith("xml") and not self._blob.startswith(ZIP_MAGIC)

    @property
    def element(self) -> etree._Element:
        if self._element is None:
            try:
                self._element = parse_xml(self._blob)
            except etree.XMLSyntaxError as e:
                raise MalformedPackage(f"Part {self.partname} is not well-formed XML: {e}") from e
        return self._element

    @element.setter
    def element(self, element: etree._Element) -> None:
        self._element = element
        self.dirty = True

    def mark_dirty(self) -> None:
        self.dirty = True

    @property
    def blob(self) -> bytes:
        if self.dirty and self._element is not None:
            return serialize_xml(self._element)
        return self._blob

    @blob.setter
    def blob(self, blob: bytes) -> None:
        self._blob = blob
        self._element = None
        self.dirty = False


def resolve_partname(base_uri: str, target_ref: str) -> str:
    """Resolve a relative relationship target against its source directory."""
    target = unquote(target_ref.split("#", 1)[0])
    if target.startswith("/"):
        return posixpath.normpath(target)
    return posixpath.normpath(posixpath.join(base_uri, target))


def relative_ref(base_uri: str, target_partname: str) -> str:
    return posixpath.relpath(target_partname, base_uri)


def rels_name_for(partname: str) -> str:
    """Zip entry name of the relationships part belonging to ``partname``."""
    if partname == PACKAGE_URI:
        return PACKAGE_RELS_NAME
    directory, filename = posixpath.split(partname)
    return posixpath.join(directory, "_rels", f"{filename}.rels").lstrip("/")


def _source_of_rels_name(name: str) -> Optional[str]:
    if name == PACKAGE_RELS_NAME:
        return PACKAGE_URI
    directory, filename = posixpath.split(name)
    if posixpath.basename(directory) != "_rels" or not filename.endswith(".rels"):
        return None
    return "/" + posixpath.join(posixpath.dirname(directory), filename[: -len(".rels")]).lstrip("/")


def _base_uri(partname: str) -> str:
    return posixpath.dirname(partname) or PACKAGE_URI


class Package:
    """An opened OOXML package: parts, content types and relationship graph."""

    def __init__(self):
        self._parts: Dict[str, Part] = {}
        self.rels = Relationships(PACKAGE_URI)
        self._defaults: Dict[str, str] = {}
        self._manifest_blob: Optional[bytes] = None
        self._manifest_dirty = False

    # ------------------------------------------------------------------
    # Loading
    @classmethod
    def load(cls, blob: bytes):
        """Open ``blob`` as an OOXML package.

        Raises:
            MalformedPackage: If the ZIP is unreadable, the content-types
                manifest or package relationships are missing, or a part
                has no declared content type.
        """
        if not blob:
            raise MalformedPackage("Package is empty")

        try:
            with zipfile.ZipFile(io.BytesIO(blob)) as zf:
                entries = {
                    info.filename: zf.read(info.filename)
                    for info in zf.infolist()
                    if not info.is_dir()
                }
        except (zipfile.BadZipFile, zlib.error, EOFError, NotImplementedError) as e:
            raise MalformedPackage(f"Not a readable OOXML container: {e}") from e

        if CONTENT_TYPES_NAME not in entries:
            raise MalformedPackage(f"Content-types manifest {CONTENT_TYPES_NAME} missing")
        if PACKAGE_RELS_NAME not in entries:
            raise MalformedPackage(f"Package relationships {PACKAGE_RELS_NAME} missing")

        package = cls()
        overrides = package._read_manifest(entries[CONTENT_TYPES_NAME])

        rels_blobs: Dict[str, bytes] = {}
        for name, data in entries.items():
            if name == CONTENT_TYPES_NAME:
                continue
            source = _source_of_rels_name(name)
            if source is not None:
                rels_blobs[source] = data
                continue

            partname = "/" + name
            content_type = overrides.get(partname.lower()) or package._defaults.get(
                posixpath.splitext(name)[1].lstrip(".").lower()
            )
            if content_type is None:
                raise MalformedPackage(f"Part {partname} has no declared content type")
            package._parts[partname] = Part(
                partname, content_type, data, Relationships(_base_uri(partname))
            )

        package.rels = Relationships.from_blob(PACKAGE_URI, rels_blobs.pop(PACKAGE_URI), PACKAGE_RELS_NAME)
        for source, data in rels_blobs.items():
            part = package._parts.get(source)
            if part is None:
                logger.warning("Ignoring relationships for missing part %s", source)
                continue
            part.rels = Relationships.from_blob(_base_uri(source), data, rels_name_for(source))

        package._check_main_part()
        logger.debug("Loaded package with %d parts (%d bytes)", len(package._parts), len(blob))
        return package

    def _read_manifest(self, blob: bytes) -> Dict[str, str]:
        try:
            root = defusedxml.ElementTree.fromstring(blob)
        except (ParseError, DefusedXmlException) as e:
            raise MalformedPackage(f"Unreadable content-types manifest: {e}") from e

        self._manifest_blob = blob
        overrides: Dict[str, str] = {}
        for default in root.findall(f"{{{CT_NS}}}Default"):
            self._defaults[default.get("Extension", "").lower()] = default.get("ContentType", "")
        for override in root.findall(f"{{{CT_NS}}}Override"):
            overrides[override.get("PartName", "").lower()] = override.get("ContentType", "")
        return overrides

    def _check_main_part(self) -> None:
        if self.main_part is None:
            raise MalformedPackage("Package has no main document part")

    # ------------------------------------------------------------------
    # Part graph
    @property
    def main_part(self) -> Optional[Part]:
        for rel in self.rels.of_type(RT_OFFICE_DOCUMENT):
            return self.get_part(rel.target_partname)
        return None

    def iter_parts(self) -> Iterator[Part]:
        return iter(list(self._parts.values()))

    def __len__(self) -> int:
        return len(self._parts)

    def get_part(self, partname: Optional[str]) -> Optional[Part]:
        if partname is None:
            return None
        part = self._parts.get(partname)
        if part is None:
            lowered = partname.lower()
            part = next((p for name, p in self._parts.items() if name.lower() == lowered), None)
        return part

    def rels_of(self, source: Optional[Part]) -> Relationships:
        return self.rels if source is None else source.rels

    def related_part(self, source: Optional[Part], r_id: str) -> Part:
        """Follow relationship ``r_id`` of ``source`` (``None`` for the root)."""
        rel = self.rels_of(source).get(r_id)
        name = source.partname if source is not None else PACKAGE_URI
        if rel is None:
            raise MalformedPackage(f"{name} has no relationship {r_id}")
        part = self.get_part(rel.target_partname)
        if part is None:
            raise MalformedPackage(f"{name} relationship {r_id} targets missing part {rel.target_partname}")
        return part

    def related_parts(self, source: Optional[Part], rel_type: str) -> List[Part]:
        parts = []
        for rel in self.rels_of(source).of_type(rel_type):
            part = self.get_part(rel.target_partname)
            if part is not None:
                parts.append(part)
        return parts

    def relate(self, source: Optional[Part], target: Part, rel_type: str, r_id: Optional[str] = None) -> str:
        """Return the id of a ``rel_type`` relationship to ``target``, adding one if needed."""
        rels = self.rels_of(source)
        if r_id is None:
            for rel in rels.targeting(target.partname):
                if rel.rel_type == rel_type:
                    return rel.r_id
        return rels.add(rel_type, target.partname, r_id)

    def next_partname(self, template: str) -> str:
        """First free part name for a ``%d`` template such as ``/ppt/slides/slide%d.xml``."""
        taken = {name.lower() for name in self._parts}
        n = 1
        while (template % n).lower() in taken:
            n += 1
        return template % n

    def add_part(
        self,
        partname: str,
        content_type: str,
        blob: bytes = b"",
        element: Optional[etree._Element] = None,
    ) -> Part:
        if self.get_part(partname) is not None:
            raise ValueError(f"Part {partname} already exists")
        part = Part(partname, content_type, blob, Relationships(_base_uri(partname)))
        if element is not None:
            part.element = element
        self._parts[partname] = part
        self._manifest_dirty = True
        return part

    def set_content_type(self, part: Part, content_type: str) -> None:
        if part.content_type != content_type:
            part.content_type = content_type
            self._manifest_dirty = True

    def drop_part(self, partname: str) -> None:
        """Remove a part and every relationship elsewhere that pointed at it.

        XML attributes carrying a dropped relationship id are removed; a
        hyperlink element whose only purpose was the link is removed whole.
        """
        part = self._parts.pop(partname, None)
        if part is None:
            return
        self._manifest_dirty = True

        for rel in self.rels.targeting(partname):
            self.rels.drop(rel.r_id)
        for source in self._parts.values():
            for rel in source.rels.targeting(partname):
                source.rels.drop(rel.r_id)
                if source.is_xml:
                    _scrub_references(source, rel.r_id)

    def reachable_partnames(self) -> Set[str]:
        seen: Set[str] = set()
        pending = [self.rels]
        while pending:
            rels = pending.pop()
            for rel in rels:
                if rel.is_external:
                    continue
                part = self.get_part(rel.target_partname)
                if part is None or part.partname in seen:
                    continue
                seen.add(part.partname)
                pending.append(part.rels)
        return seen

    def prune_orphans(self) -> List[str]:
        """Remove parts that no relationship chain from the root reaches."""
        reachable = self.reachable_partnames()
        orphans = [name for name in self._parts if name not in reachable]
        for name in orphans:
            del self._parts[name]
        if orphans:
            self._manifest_dirty = True
        return orphans

    # ------------------------------------------------------------------
    # Content types
    @property
    def content_types_blob(self) -> bytes:
        if self._manifest_blob is not None and not self._manifest_dirty:
            return self._manifest_blob

        root = etree.Element(f"{{{CT_NS}}}Types", nsmap={None: CT_NS})
        for extension, content_type in self._defaults.items():
            default = etree.SubElement(root, f"{{{CT_NS}}}Default")
            default.set("Extension", extension)
            default.set("ContentType", content_type)
        for part in self._parts.values():
            extension = posixpath.splitext(part.partname)[1].lstrip(".").lower()
            if self._defaults.get(extension) == part.content_type:
                continue
            override = etree.SubElement(root, f"{{{CT_NS}}}Override")
            override.set("PartName", part.partname)
            override.set("ContentType", part.content_type)
        return serialize_xml(root)

    # ------------------------------------------------------------------
    # Saving
    def save(self) -> bytes:
        from .serializer import save_package
        return save_package(self)


def _scrub_references(source: Part, r_id: str) -> None:
    hyperlink_tags = {qn("a:hlinkClick"), qn("a:hlinkHover"), qn("w:hyperlink")}
    prefix = f"{{{R_NS}}}"
    changed = False
    for node in list(source.element.iter(etree.Element)):
        for attr, value in list(node.attrib.items()):
            if value != r_id or not attr.startswith(prefix):
                continue
            changed = True
            parent = node.getparent()
            if node.tag in hyperlink_tags and parent is not None:
                if node.tag == qn("w:hyperlink"):
                    # keep the linked runs, drop only the link wrapper
                    for child in list(node):
                        node.addprevious(child)
                parent.remove(node)
                break
            del node.attrib[attr]
    if changed:
        source.mark_dirty()
