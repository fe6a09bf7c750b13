"""
Flatten an in-memory package back into OOXML bytes.

Orphaned parts are pruned, the package is checked for consistency, and
only then is a ZIP written. Untouched parts, rels parts and the
content-types manifest keep their original bytes.
"""

import io
import logging
import zipfile

from ..exceptions import InternalInconsistency
from .package import CONTENT_TYPES_NAME, PACKAGE_RELS_NAME, Package, rels_name_for
from .validation import collect_problems

logger = logging.getLogger(__name__)


def save_package(package: Package) -> bytes:
    """Serialize ``package``.

    Raises:
        InternalInconsistency: If a mutation left a dangling relationship,
            a broken slide-ID list or another invariant violation.
    """
    orphans = package.prune_orphans()
    if orphans:
        logger.warning("Pruned %d orphaned part(s): %s", len(orphans), ", ".join(orphans))

    problems = collect_problems(package)
    if problems:
        raise InternalInconsistency(problems)

    buffer = io.BytesIO()
    with zipfile.ZipFile(buffer, "w", zipfile.ZIP_DEFLATED) as zf:
        zf.writestr(CONTENT_TYPES_NAME, package.content_types_blob)
        zf.writestr(PACKAGE_RELS_NAME, package.rels.blob)
        for part in package.iter_parts():
            zf.writestr(part.partname.lstrip("/"), part.blob)
            if len(part.rels):
                zf.writestr(rels_name_for(part.partname), part.rels.blob)

    data = buffer.getvalue()
    logger.debug("Saved package with %d parts (%d bytes)", len(package), len(data))
    return data
