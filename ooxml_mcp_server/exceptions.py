"""
Errors raised by the OOXML engine.

Structural and validation errors propagate unchanged to the MCP boundary,
where they are rendered as ``Error: ...`` text results.
"""

from typing import Iterable, Optional


class OoxmlError(Exception):
    """Base class for every engine error."""


class MalformedPackage(OoxmlError):
    """The input is not a readable OOXML container or lacks a required part."""


class IndexOutOfRange(OoxmlError, IndexError):
    """A slide or shape ordinal is outside the valid range."""

    def __init__(self, what: str, index: int, count: int):
        self.what = what
        self.index = index
        self.count = count
        if count == 0:
            message = f"{what} index {index} out of range: there are no {what}s"
        else:
            message = f"{what} index {index} out of range. Valid range: 0..{count - 1}"
        super().__init__(message)


class UnsupportedImportType(OoxmlError, ValueError):
    """A MIME type or file extension the content importer cannot handle."""

    def __init__(self, mime_type: Optional[str], supported: Iterable[str]):
        self.mime_type = mime_type
        self.supported = tuple(supported)
        super().__init__(
            f"Unsupported or unknown content type '{mime_type}'. "
            f"Supported: {', '.join(self.supported)}"
        )


class MissingTargetShape(OoxmlError):
    """No placeholder or shape could be found on a slide."""


class InvalidArgument(OoxmlError, ValueError):
    """An argument is empty or malformed."""


class InternalInconsistency(OoxmlError, RuntimeError):
    """A post-mutation invariant check failed; the package must not be written."""

    def __init__(self, problems: Iterable[str]):
        self.problems = list(problems)
        super().__init__(
            "Package failed consistency check:\n" + "\n".join(f"  - {p}" for p in self.problems)
        )
