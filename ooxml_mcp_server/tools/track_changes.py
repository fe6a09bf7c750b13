"""
Find-and-replace in Word documents recorded as tracked changes.

Each paragraph containing the search text (case-insensitive) is rebuilt as
unchanged text, a deletion of the matched text, an insertion of the
replacement and the remaining text. Only the first match per paragraph is
replaced.
"""

import copy
import itertools
import logging
import re
from datetime import datetime, timezone
from typing import Iterator, Optional

from lxml import etree

from ..exceptions import InvalidArgument
from .documents import WordprocessingDocument
from .oxml import insert_after_predecessor, new_element, qn, sub_element, text_of

logger = logging.getLogger(__name__)

# w:settings children that precede w:trackRevisions
_TRACK_REVISIONS_PREDECESSORS = (
    "w:writeProtection", "w:view", "w:zoom", "w:removePersonalInformation",
    "w:removeDateAndTime", "w:doNotDisplayPageBoundaries", "w:displayBackgroundShape",
    "w:printPostScriptOverText", "w:printFractionalCharacterWidth", "w:printFormsData",
    "w:embedTrueTypeFonts", "w:embedSystemFonts", "w:saveSubsetFonts", "w:saveFormsData",
    "w:mirrorMargins", "w:alignBordersAndEdges", "w:bordersDoNotSurroundHeader",
    "w:bordersDoNotSurroundFooter", "w:gutterAtTop", "w:hideSpellingErrors",
    "w:hideGrammaticalErrors", "w:activeWritingStyle", "w:proofState", "w:formsDesign",
    "w:attachedTemplate", "w:linkStyles", "w:stylePaneFormatFilter",
    "w:stylePaneSortMethod", "w:documentType", "w:mailMerge", "w:revisionView",
)


def enable_track_revisions(doc: WordprocessingDocument) -> bool:
    """Declare ``w:trackRevisions`` in the settings part. Returns True if it was added."""
    settings_part = doc.settings_part(create=True)
    settings = settings_part.element
    if settings.find(qn("w:trackRevisions")) is not None:
        return False
    insert_after_predecessor(
        settings, new_element("w:trackRevisions"), _TRACK_REVISIONS_PREDECESSORS
    )
    settings_part.mark_dirty()
    return True


def _revision_date(when: datetime) -> str:
    if when.tzinfo is not None:
        when = when.astimezone(timezone.utc)
    return when.strftime("%Y-%m-%dT%H:%M:%SZ")


def _revision_ids(document: etree._Element) -> Iterator[int]:
    """Integers above every ``w:id`` already used in the document part."""
    id_attr = qn("w:id")
    used = [
        int(value) for value in (node.get(id_attr) for node in document.iter(etree.Element))
        if value is not None and value.lstrip("-").isdigit()
    ]
    return itertools.count(max(used, default=0) + 1)


def _append_run(parent: etree._Element, text: str, r_pr: Optional[etree._Element], text_tag: str = "w:t") -> None:
    run = sub_element(parent, "w:r")
    if r_pr is not None:
        run.append(copy.deepcopy(r_pr))
    text_el = sub_element(run, text_tag)
    text_el.text = text
    text_el.set(qn("xml:space"), "preserve")


def splice_paragraph(
    paragraph: etree._Element,
    start: int,
    end: int,
    replacement: str,
    author: str,
    when: datetime,
    ids: Iterator[int],
) -> None:
    """Rebuild ``paragraph`` so text[start:end] reads as deleted and ``replacement`` as inserted.

    Paragraph properties are kept and the first run's formatting is carried
    over to the rebuilt runs.
    """
    text = text_of(paragraph, "w:t")
    first_r_pr = paragraph.find(".//" + qn("w:r") + "/" + qn("w:rPr"))
    if first_r_pr is not None:
        first_r_pr = copy.deepcopy(first_r_pr)

    for child in list(paragraph):
        if child.tag != qn("w:pPr"):
            paragraph.remove(child)

    date = _revision_date(when)
    before, matched, after = text[:start], text[start:end], text[end:]

    if before:
        _append_run(paragraph, before, first_r_pr)

    deleted = sub_element(paragraph, "w:del", {"w:id": str(next(ids)), "w:author": author, "w:date": date})
    _append_run(deleted, matched, first_r_pr, text_tag="w:delText")

    inserted = sub_element(paragraph, "w:ins", {"w:id": str(next(ids)), "w:author": author, "w:date": date})
    _append_run(inserted, replacement, first_r_pr)

    if after:
        _append_run(paragraph, after, first_r_pr)


def replace_with_track_changes(
    doc: WordprocessingDocument,
    search: str,
    replacement: str,
    author: str,
    when: datetime,
) -> int:
    """Replace the first match of ``search`` in every paragraph as a tracked change.

    Returns:
        The number of paragraphs revised.

    Raises:
        InvalidArgument: If ``search`` is empty or whitespace.
    """
    if not search or not search.strip():
        raise InvalidArgument("Original text cannot be empty.")

    enable_track_revisions(doc)
    part = doc.document_part
    body = doc.body()
    ids = _revision_ids(part.element)
    pattern = re.compile(re.escape(search), re.IGNORECASE)

    revised = 0
    for paragraph in list(body.iter(qn("w:p"))):
        # nested paragraphs go away with an enclosing paragraph that was rebuilt
        if body not in paragraph.iterancestors():
            continue
        text = text_of(paragraph, "w:t")
        if not text.strip():
            continue
        match = pattern.search(text)
        if match is None:
            continue
        splice_paragraph(paragraph, match.start(), match.end(), replacement or "", author, when, ids)
        revised += 1

    if revised:
        part.mark_dirty()
    logger.info("Revised %d paragraph(s) with tracked changes", revised)
    return revised
