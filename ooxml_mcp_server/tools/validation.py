"""
Consistency checks for in-memory OOXML packages.

The serializer runs these checks before emitting bytes, limited to parts a
mutation touched. The validate tool runs them over every part.
"""

import logging
from typing import List, Tuple

from lxml import etree

from ..exceptions import MalformedPackage
from .oxml import (
    CT_DOCUMENT_MAINS,
    CT_PRESENTATION_MAINS,
    CT_SLIDE,
    NSMAP,
    R_NS,
    RT_SLIDE,
    RT_SLIDE_LAYOUT,
    qn,
)
from .package import Package, Part

logger = logging.getLogger(__name__)

CheckResult = Tuple[str, bool, List[str]]


class PackageValidator:
    """Checks every OOXML package has to satisfy."""

    def __init__(self, package: Package, full: bool = False):
        self.package = package
        self.full = full

    def _parts_to_scan(self) -> List[Part]:
        return [
            part for part in self.package.iter_parts()
            if part.is_xml and (self.full or part.dirty)
        ]

    def validate_all(self) -> List[CheckResult]:
        """Run all validations. Returns list of (check_name, passed, details)."""
        results = []

        passed, errors = self.validate_xml_wellformed()
        results.append(("XML well-formedness", passed, errors))
        if not passed:
            return results

        passed, errors = self.validate_relationship_targets()
        results.append(("Relationship targets", passed, errors))

        passed, errors = self.validate_relationship_ids()
        results.append(("Relationship id references", passed, errors))

        return results

    def validate_xml_wellformed(self) -> Tuple[bool, List[str]]:
        errors = []
        for part in self._parts_to_scan():
            try:
                part.element
            except MalformedPackage as e:
                errors.append(str(e))
        return len(errors) == 0, errors

    def validate_relationship_targets(self) -> Tuple[bool, List[str]]:
        """Every internal relationship must point at a part in the package."""
        errors = []
        sources = [("/", self.package.rels)] + [
            (part.partname, part.rels) for part in self.package.iter_parts()
        ]
        for name, rels in sources:
            for rel in rels:
                if rel.is_external:
                    continue
                if self.package.get_part(rel.target_partname) is None:
                    errors.append(f"{name}: {rel.r_id} targets missing part {rel.target_partname}")
        return len(errors) == 0, errors

    def validate_relationship_ids(self) -> Tuple[bool, List[str]]:
        """Every r:* attribute in part XML must name one of the part's relationships."""
        errors = []
        prefix = f"{{{R_NS}}}"
        for part in self._parts_to_scan():
            for node in part.element.iter(etree.Element):
                for attr, value in node.attrib.items():
                    if attr.startswith(prefix) and value and value not in part.rels:
                        local = attr[len(prefix):]
                        errors.append(f"{part.partname}: dangling r:{local}=\"{value}\"")
        return len(errors) == 0, errors


class PresentationValidator(PackageValidator):
    """Validator for PowerPoint presentations."""

    def validate_all(self) -> List[CheckResult]:
        results = super().validate_all()
        if not all(passed for _, passed, _ in results):
            return results

        passed, errors = self.validate_slide_id_list()
        results.append(("Slide-ID list", passed, errors))

        passed, errors = self._validate_slide_layouts()
        results.append(("Slide layout references", passed, errors))

        return results

    def validate_slide_id_list(self) -> Tuple[bool, List[str]]:
        errors = []
        pres_part = self.package.main_part
        sld_id_lst = pres_part.element.find(qn("p:sldIdLst"))
        if sld_id_lst is None:
            return True, errors

        seen = set()
        for sld_id in sld_id_lst.findall(qn("p:sldId")):
            numeric = sld_id.get("id", "")
            r_id = sld_id.get(qn("r:id"), "")
            if not numeric.isdigit() or int(numeric) < 256:
                errors.append(f"slide id {numeric!r} is not a number >= 256")
            elif numeric in seen:
                errors.append(f"slide id {numeric} is used twice")
            seen.add(numeric)

            rel = pres_part.rels.get(r_id)
            if rel is None:
                errors.append(f"slide id {numeric} references missing relationship {r_id!r}")
            elif rel.rel_type != RT_SLIDE:
                errors.append(f"slide id {numeric} relationship {r_id} is not a slide relationship")
            elif self.package.get_part(rel.target_partname) is None:
                errors.append(f"slide id {numeric} relationship {r_id} targets missing slide")
        return len(errors) == 0, errors

    def _validate_slide_layouts(self) -> Tuple[bool, List[str]]:
        """Each slide relates to exactly one slide layout."""
        errors = []
        for part in self.package.iter_parts():
            if part.content_type != CT_SLIDE or not (self.full or part.dirty):
                continue
            layout_count = len(part.rels.of_type(RT_SLIDE_LAYOUT))
            if layout_count > 1:
                errors.append(f"{part.partname}: Multiple slideLayout references ({layout_count})")
            elif layout_count == 0:
                errors.append(f"{part.partname}: Missing slideLayout reference")
        return len(errors) == 0, errors


class WordprocessingValidator(PackageValidator):
    """Validator for Word documents."""

    def validate_all(self) -> List[CheckResult]:
        results = super().validate_all()
        if not all(passed for _, passed, _ in results):
            return results

        passed, errors = self._validate_whitespace()
        results.append(("Whitespace preservation", passed, errors))

        passed, errors = self._validate_track_changes()
        results.append(("Track changes", passed, errors))

        return results

    def _document_part(self):
        # text-level findings are reported by full validation only; saving
        # must not reject content the user authored elsewhere
        return self.package.main_part if self.full else None

    def _validate_whitespace(self) -> Tuple[bool, List[str]]:
        """w:t elements with edge whitespace carry xml:space='preserve'."""
        errors = []
        part = self._document_part()
        if part is None:
            return True, errors

        space_attr = qn("xml:space")
        for elem in part.element.iter(qn("w:t"), qn("w:delText")):
            text = elem.text or ""
            if text != text.strip() and elem.get(space_attr) != "preserve":
                errors.append(
                    f"{part.partname}: text with edge whitespace missing xml:space='preserve': {text[:30]!r}"
                )
        return len(errors) == 0, errors

    def _validate_track_changes(self) -> Tuple[bool, List[str]]:
        """Deleted runs hold w:delText, never w:t."""
        errors = []
        part = self._document_part()
        if part is None:
            return True, errors

        for elem in part.element.xpath(".//w:del//w:t", namespaces={"w": NSMAP["w"]}):
            errors.append(f"{part.partname}: w:t found inside w:del: {(elem.text or '')[:30]!r}")
        return len(errors) == 0, errors


def validator_for(package: Package, full: bool = False) -> PackageValidator:
    main_part = package.main_part
    content_type = main_part.content_type if main_part is not None else ""
    if content_type in CT_PRESENTATION_MAINS:
        return PresentationValidator(package, full)
    if content_type in CT_DOCUMENT_MAINS:
        return WordprocessingValidator(package, full)
    return PackageValidator(package, full)


def collect_problems(package: Package, full: bool = False) -> List[str]:
    """Flatten failed checks into a list of messages (empty when consistent)."""
    problems = []
    for check_name, passed, details in validator_for(package, full).validate_all():
        if not passed:
            logger.debug("Check failed: %s (%d findings)", check_name, len(details))
            problems.extend(details or [check_name])
    return problems
