"""Tests for environment configuration and the local file store."""

from pathlib import Path

import pytest

from ooxml_mcp_server.config import DEFAULT_SERVER_NAME, ServerConfig
from ooxml_mcp_server.exceptions import InvalidArgument
from ooxml_mcp_server.storage import LocalFileStore, ServerIdentity


class TestServerConfig:
    def test_defaults(self):
        config = ServerConfig.from_env({})
        assert config.server_name == DEFAULT_SERVER_NAME
        assert config.author == DEFAULT_SERVER_NAME
        assert config.output_dir == Path(".")
        assert config.log_level == "INFO"

    def test_overrides(self):
        config = ServerConfig.from_env({
            "OOXML_MCP_SERVER_NAME": "docs",
            "OOXML_MCP_AUTHOR": "Jordan",
            "OOXML_MCP_OUTPUT_DIR": "/srv/out",
            "OOXML_MCP_LOG_LEVEL": "debug",
        })
        assert config.server_name == "docs"
        assert config.author == "Jordan"
        assert config.output_dir == Path("/srv/out")
        assert config.log_level == "DEBUG"

    def test_author_follows_server_name(self):
        assert ServerConfig.from_env({"OOXML_MCP_SERVER_NAME": "docs"}).author == "docs"

    def test_reads_process_environment(self, monkeypatch):
        monkeypatch.setenv("OOXML_MCP_AUTHOR", "From Env")
        assert ServerConfig.from_env().author == "From Env"


class TestLocalFileStore:
    def test_fetch(self, tmp_path):
        path = tmp_path / "in.txt"
        path.write_bytes(b"data")
        fetched = LocalFileStore(tmp_path).fetch(str(path))
        assert fetched.data == b"data"
        assert fetched.mime_type is None
        assert fetched.filename == "in.txt"

    def test_fetch_file_url(self, tmp_path):
        path = tmp_path / "with space.md"
        path.write_bytes(b"# x")
        url = path.as_uri()
        assert LocalFileStore(tmp_path).fetch(url).data == b"# x"

    def test_fetch_missing(self, tmp_path):
        with pytest.raises(FileNotFoundError, match="File not found"):
            LocalFileStore(tmp_path).fetch(str(tmp_path / "absent.txt"))

    def test_fetch_empty(self, tmp_path):
        path = tmp_path / "empty.txt"
        path.write_bytes(b"")
        with pytest.raises(InvalidArgument, match="File is empty"):
            LocalFileStore(tmp_path).fetch(str(path))

    def test_upload_creates_output_dir(self, tmp_path):
        store = LocalFileStore(tmp_path / "nested" / "out")
        handle = store.upload("doc.docx", b"12345")
        assert handle.path == tmp_path / "nested" / "out" / "doc.docx"
        assert handle.size == 5
        assert handle.path.read_bytes() == b"12345"

    def test_replace(self, tmp_path):
        path = tmp_path / "doc.docx"
        path.write_bytes(b"old")
        handle = LocalFileStore(tmp_path).replace(str(path), b"new!")
        assert handle.size == 4
        assert path.read_bytes() == b"new!"

    def test_replace_missing(self, tmp_path):
        with pytest.raises(FileNotFoundError):
            LocalFileStore(tmp_path).replace(str(tmp_path / "absent.docx"), b"x")


class TestServerIdentity:
    def test_clock_is_utc(self):
        now = ServerIdentity("someone").now()
        assert now.tzinfo is not None
        assert now.utcoffset().total_seconds() == 0
