"""
Entry point for running the OOXML MCP Server as a module.
Allows: python -m ooxml_mcp_server
"""

from .server import main

if __name__ == "__main__":
    main()
