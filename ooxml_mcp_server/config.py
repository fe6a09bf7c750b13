"""
Server configuration read from environment variables.
"""

import os
from dataclasses import dataclass
from pathlib import Path
from typing import Mapping, Optional

DEFAULT_SERVER_NAME = "ooxml-mcp-server"


@dataclass
class ServerConfig:
    server_name: str = DEFAULT_SERVER_NAME
    author: str = DEFAULT_SERVER_NAME
    output_dir: Path = Path(".")
    log_level: str = "INFO"

    @classmethod
    def from_env(cls, environ: Optional[Mapping[str, str]] = None) -> "ServerConfig":
        """Build the configuration from ``OOXML_MCP_*`` variables.

        The revision author defaults to the server name.
        """
        env = os.environ if environ is None else environ
        server_name = env.get("OOXML_MCP_SERVER_NAME") or DEFAULT_SERVER_NAME
        return cls(
            server_name=server_name,
            author=env.get("OOXML_MCP_AUTHOR") or server_name,
            output_dir=Path(env.get("OOXML_MCP_OUTPUT_DIR") or "."),
            log_level=(env.get("OOXML_MCP_LOG_LEVEL") or "INFO").upper(),
        )
