"""
OOXML MCP Server - structural editing of Word and PowerPoint documents.

This MCP server provides tools for:
- Adding, removing and moving slides
- Writing text and markdown into slide shapes
- Creating presentations and documents from scratch or from templates
- Importing text, markdown, HTML and other formats into Word documents
- Replacing text in Word documents as tracked changes
- Validating Office packages
"""

from .server import main

__all__ = ["main"]
