"""
Local file collaborators for the tool layer: fetching inputs, persisting
outputs and supplying revision identity.
"""

import logging
from dataclasses import dataclass
from datetime import datetime, timezone
from pathlib import Path
from typing import Optional
from urllib.parse import unquote, urlparse

from .exceptions import InvalidArgument

logger = logging.getLogger(__name__)


@dataclass
class FetchedContent:
    data: bytes
    mime_type: Optional[str]
    filename: str


@dataclass
class ResourceHandle:
    name: str
    path: Path
    size: int


def _local_path(location: str) -> Path:
    if location.startswith("file://"):
        return Path(unquote(urlparse(location).path))
    return Path(location).expanduser()


class LocalFileStore:
    """Reads inputs from local paths and writes new documents under ``output_dir``."""

    def __init__(self, output_dir: Path):
        self.output_dir = Path(output_dir)

    def fetch(self, location: str) -> FetchedContent:
        """Read a local path or ``file://`` URL.

        No MIME type is declared; callers sniff it from the file name.

        Raises:
            FileNotFoundError: If nothing exists at ``location``.
            InvalidArgument: If the file is empty.
        """
        path = _local_path(location)
        if not path.is_file():
            raise FileNotFoundError(f"File not found: {location}")
        data = path.read_bytes()
        if not data:
            raise InvalidArgument(f"File is empty: {location}")
        logger.debug("Fetched %s (%d bytes)", path, len(data))
        return FetchedContent(data=data, mime_type=None, filename=path.name)

    def upload(self, name: str, data: bytes) -> ResourceHandle:
        path = self.output_dir / name
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_bytes(data)
        logger.debug("Wrote %s (%d bytes)", path, len(data))
        return ResourceHandle(name=path.name, path=path, size=len(data))

    def replace(self, location: str, data: bytes) -> ResourceHandle:
        """Overwrite an existing document in place."""
        path = _local_path(location)
        if not path.is_file():
            raise FileNotFoundError(f"File not found: {location}")
        path.write_bytes(data)
        logger.debug("Replaced %s (%d bytes)", path, len(data))
        return ResourceHandle(name=path.name, path=path, size=len(data))


@dataclass
class ServerIdentity:
    """Author and clock for revision metadata."""
    author: str

    def now(self) -> datetime:
        return datetime.now(timezone.utc)
