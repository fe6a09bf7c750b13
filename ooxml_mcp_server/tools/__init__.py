"""
OOXML MCP Server Tools.
"""

from .documents import PresentationDocument, WordprocessingDocument
from .importer import ImportKind, prepare_import_payload, sanitize_file_name
from .package import Package
from .presentation import add_blank_slide, remove_slide, reorder_slide, set_shape_text
from .track_changes import replace_with_track_changes
from .wordprocessing import append_alt_chunk, create_document_from_text

__all__ = [
    "Package",
    "PresentationDocument",
    "WordprocessingDocument",
    "ImportKind",
    "prepare_import_payload",
    "sanitize_file_name",
    "add_blank_slide",
    "remove_slide",
    "reorder_slide",
    "set_shape_text",
    "replace_with_track_changes",
    "append_alt_chunk",
    "create_document_from_text",
]
