"""
OOXML MCP Server - Main server implementation.
"""

import asyncio
import json
import logging
from pathlib import Path
from typing import Any

from mcp.server import Server
from mcp.server.stdio import stdio_server
from mcp.types import TextContent, Tool

from .config import ServerConfig
from .storage import LocalFileStore, ServerIdentity
from .tools.documents import PresentationDocument, WordprocessingDocument
from .tools.importer import effective_mime_type, sanitize_file_name
from .tools.package import Package
from .tools.presentation import (
    add_blank_slide,
    create_from_template as create_presentation_from_template,
    describe_shapes,
    list_slides,
    new_presentation,
    remove_slide,
    reorder_slide,
    set_shape_text,
)
from .tools.track_changes import replace_with_track_changes
from .tools.validation import validator_for
from .tools.wordprocessing import (
    append_content,
    append_file,
    create_document_from_file,
    create_document_from_text,
    create_from_template,
    create_from_template_file,
)

config = ServerConfig.from_env()

logging.basicConfig(level=config.log_level)
logger = logging.getLogger(__name__)

server = Server(config.server_name)
store = LocalFileStore(config.output_dir)
identity = ServerIdentity(config.author)

PRESENTATION_EXTENSIONS = {".pptx", ".potx", ".pptm", ".potm", ".ppsx", ".ppsm"}
WORD_EXTENSIONS = {".docx", ".dotx", ".docm", ".dotm"}

_CONTENT_TYPE_HELP = "Input MIME type: text/plain | text/markdown | text/html (aliases: text | markdown | html)"


def _path_arg(description: str) -> dict[str, str]:
    return {"type": "string", "description": description}


@server.list_tools()
async def list_tools() -> list[Tool]:
    """List all available tools."""
    return [
        Tool(
            name="powerpoint_add_content",
            description=(
                "Add or replace text or markdown content on a PowerPoint slide. "
                "Without shape_index the Body placeholder is used, then the Title, then the first shape. "
                "Markdown lines become bulleted paragraphs."
            ),
            inputSchema={
                "type": "object",
                "properties": {
                    "pptx_path": _path_arg("Path to the PowerPoint file (.pptx)"),
                    "slide_index": {"type": "integer", "description": "Zero-based slide index"},
                    "content_type": {
                        "type": "string",
                        "description": "Input MIME type: text/plain | text/markdown (aliases: text | markdown)",
                        "default": "text/plain",
                    },
                    "content": {"type": "string", "description": "Content to add or replace"},
                    "replace": {
                        "type": "boolean",
                        "description": "If true, replace existing text; otherwise append new paragraphs",
                        "default": False,
                    },
                    "shape_index": {
                        "type": "integer",
                        "description": "Optional shape index (omit for auto body/title detection)",
                    },
                },
                "required": ["pptx_path", "slide_index", "content"],
            },
        ),
        Tool(
            name="powerpoint_get_shapes",
            description="List the shapes on a slide with their placeholder kind and text.",
            inputSchema={
                "type": "object",
                "properties": {
                    "pptx_path": _path_arg("Path to the PowerPoint file (.pptx)"),
                    "slide_index": {"type": "integer", "description": "Zero-based slide index"},
                },
                "required": ["pptx_path", "slide_index"],
            },
        ),
        Tool(
            name="powerpoint_get_slides",
            description="List all slides in slide-show order with their relationship id and title.",
            inputSchema={
                "type": "object",
                "properties": {
                    "pptx_path": _path_arg("Path to the PowerPoint file (.pptx)"),
                },
                "required": ["pptx_path"],
            },
        ),
        Tool(
            name="powerpoint_add_slide",
            description="Append a blank slide with an empty title and body placeholder.",
            inputSchema={
                "type": "object",
                "properties": {
                    "pptx_path": _path_arg("Path to the PowerPoint file (.pptx)"),
                },
                "required": ["pptx_path"],
            },
        ),
        Tool(
            name="powerpoint_remove_slide",
            description="Remove a slide (by zero-based index) from a presentation.",
            inputSchema={
                "type": "object",
                "properties": {
                    "pptx_path": _path_arg("Path to the PowerPoint file (.pptx)"),
                    "slide_index": {"type": "integer", "description": "Zero-based slide index"},
                },
                "required": ["pptx_path", "slide_index"],
            },
        ),
        Tool(
            name="powerpoint_move_slide",
            description=(
                "Move a slide from one index to another (zero-based). "
                "to_index counts positions after the slide is taken out, so moving "
                "forward lands one slot before to_index."
            ),
            inputSchema={
                "type": "object",
                "properties": {
                    "pptx_path": _path_arg("Path to the PowerPoint file (.pptx)"),
                    "from_index": {"type": "integer", "description": "Current slide index"},
                    "to_index": {"type": "integer", "description": "Target slide index"},
                },
                "required": ["pptx_path", "from_index", "to_index"],
            },
        ),
        Tool(
            name="powerpoint_new_presentation",
            description="Create a new presentation with one blank slide.",
            inputSchema={
                "type": "object",
                "properties": {
                    "file_name": {"type": "string", "description": "File name without .pptx extension"},
                    "layout": {
                        "type": "string",
                        "description": "Slide layout: '16:9' (default), '4:3', 'widescreen', or 'standard'",
                        "default": "16:9",
                    },
                },
                "required": ["file_name"],
            },
        ),
        Tool(
            name="powerpoint_create_from_template",
            description=(
                "Create a new presentation (.pptx) from a .potx or .pptx template. "
                "A template without slides gets one blank slide."
            ),
            inputSchema={
                "type": "object",
                "properties": {
                    "file_name": {"type": "string", "description": "File name without .pptx extension"},
                    "template_path": _path_arg("Path to the template (.potx or .pptx)"),
                },
                "required": ["file_name", "template_path"],
            },
        ),
        Tool(
            name="word_replace_text_with_track_changes",
            description=(
                "Replace text in a Word document as tracked changes (shows insert/delete in Word). "
                "The search is case-insensitive; the first match in each paragraph is replaced."
            ),
            inputSchema={
                "type": "object",
                "properties": {
                    "docx_path": _path_arg("Path to the Word document (.docx)"),
                    "original_text": {"type": "string", "description": "Text to search for"},
                    "replacement_text": {"type": "string", "description": "Replacement text to insert"},
                },
                "required": ["docx_path", "original_text", "replacement_text"],
            },
        ),
        Tool(
            name="word_create_from_text",
            description="Create a new Word document (.docx) from text, markdown, or HTML.",
            inputSchema={
                "type": "object",
                "properties": {
                    "file_name": {"type": "string", "description": "File name without .docx extension"},
                    "content_type": {"type": "string", "description": _CONTENT_TYPE_HELP},
                    "content": {"type": "string", "description": "Document content matching the MIME type"},
                },
                "required": ["file_name", "content_type", "content"],
            },
        ),
        Tool(
            name="word_create_from_input_file",
            description=(
                "Create a new Word document (.docx) from an input file "
                "(md, html, txt, xml, mht/mhtml, docx; type detected from the extension)."
            ),
            inputSchema={
                "type": "object",
                "properties": {
                    "input_path": _path_arg("Path to the input file"),
                    "file_name": {"type": "string", "description": "File name without .docx extension"},
                    "mime_type": {"type": "string", "description": "Optional MIME type of the input file"},
                },
                "required": ["input_path", "file_name"],
            },
        ),
        Tool(
            name="word_create_from_template",
            description="Create a new Word document (.docx) from a .dotx template with text, markdown or HTML content.",
            inputSchema={
                "type": "object",
                "properties": {
                    "file_name": {"type": "string", "description": "File name without .docx extension"},
                    "template_path": _path_arg("Path to the template (.dotx or .docx)"),
                    "content_type": {"type": "string", "description": _CONTENT_TYPE_HELP},
                    "content": {"type": "string", "description": "Document content matching the MIME type"},
                },
                "required": ["file_name", "template_path", "content_type", "content"],
            },
        ),
        Tool(
            name="word_create_from_template_file",
            description="Create a new Word document (.docx) from a .dotx template and an input file.",
            inputSchema={
                "type": "object",
                "properties": {
                    "file_name": {"type": "string", "description": "File name without .docx extension"},
                    "template_path": _path_arg("Path to the template (.dotx or .docx)"),
                    "input_path": _path_arg("Path to the input file (md, html, txt, xml, mht, docx)"),
                    "mime_type": {"type": "string", "description": "Optional MIME type of the input file"},
                },
                "required": ["file_name", "template_path", "input_path"],
            },
        ),
        Tool(
            name="word_append_content",
            description="Append text, markdown, or HTML content to an existing Word document (.docx).",
            inputSchema={
                "type": "object",
                "properties": {
                    "docx_path": _path_arg("Path to the Word document (.docx)"),
                    "content_type": {"type": "string", "description": _CONTENT_TYPE_HELP},
                    "content": {"type": "string", "description": "Content to append"},
                },
                "required": ["docx_path", "content_type", "content"],
            },
        ),
        Tool(
            name="word_append_from_file",
            description="Append the content of an input file (md, html, txt, xml, mht, docx) to an existing Word document.",
            inputSchema={
                "type": "object",
                "properties": {
                    "docx_path": _path_arg("Path to the Word document (.docx)"),
                    "input_path": _path_arg("Path to the input file"),
                    "mime_type": {"type": "string", "description": "Optional MIME type of the input file"},
                },
                "required": ["docx_path", "input_path"],
            },
        ),
        Tool(
            name="validate_office_document",
            description=(
                "Validate a Word or PowerPoint file. "
                "Checks XML well-formedness, relationship targets and ids, the slide-ID list, "
                "slide layouts, whitespace preservation and tracked-change markup."
            ),
            inputSchema={
                "type": "object",
                "properties": {
                    "office_file": _path_arg("Path to the Office file (.docx or .pptx)"),
                },
                "required": ["office_file"],
            },
        ),
    ]


@server.call_tool()
async def call_tool(name: str, arguments: dict[str, Any]) -> list[TextContent]:
    """Handle tool calls."""
    try:
        if name == "powerpoint_add_content":
            result = await handle_add_content(arguments)
        elif name == "powerpoint_get_shapes":
            result = await handle_get_shapes(arguments)
        elif name == "powerpoint_get_slides":
            result = await handle_get_slides(arguments)
        elif name == "powerpoint_add_slide":
            result = await handle_add_slide(arguments)
        elif name == "powerpoint_remove_slide":
            result = await handle_remove_slide(arguments)
        elif name == "powerpoint_move_slide":
            result = await handle_move_slide(arguments)
        elif name == "powerpoint_new_presentation":
            result = await handle_new_presentation(arguments)
        elif name == "powerpoint_create_from_template":
            result = await handle_presentation_from_template(arguments)
        elif name == "word_replace_text_with_track_changes":
            result = await handle_track_changes(arguments)
        elif name == "word_create_from_text":
            result = await handle_create_from_text(arguments)
        elif name == "word_create_from_input_file":
            result = await handle_create_from_input_file(arguments)
        elif name == "word_create_from_template":
            result = await handle_create_from_template(arguments)
        elif name == "word_create_from_template_file":
            result = await handle_create_from_template_file(arguments)
        elif name == "word_append_content":
            result = await handle_append_content(arguments)
        elif name == "word_append_from_file":
            result = await handle_append_from_file(arguments)
        elif name == "validate_office_document":
            result = await handle_validate_document(arguments)
        else:
            result = f"Unknown tool: {name}"

        return [TextContent(type="text", text=result)]

    except Exception as e:
        logger.exception(f"Error in tool {name}")
        return [TextContent(type="text", text=f"Error: {str(e)}")]


def _load_presentation(path: str) -> PresentationDocument:
    return PresentationDocument.load(store.fetch(path).data)


def _load_document(path: str) -> WordprocessingDocument:
    return WordprocessingDocument.load(store.fetch(path).data)


def _fetch_input(args: dict[str, Any]) -> tuple[str, bytes]:
    """MIME type and bytes of the ``input_path`` argument."""
    location = args["input_path"]
    fetched = store.fetch(location)
    declared = args.get("mime_type") or fetched.mime_type
    return effective_mime_type(declared, location), fetched.data


def _save_new(doc: Package, file_name: str, extension: str) -> str:
    handle = store.upload(f"{sanitize_file_name(file_name, extension)}{extension}", doc.save())
    return f"Created {handle.path} ({handle.size} bytes)"


def _save_in_place(doc: Package, location: str) -> str:
    handle = store.replace(location, doc.save())
    return f"Updated {handle.path} ({handle.size} bytes)"


async def handle_add_content(args: dict[str, Any]) -> str:
    """Handle powerpoint_add_content tool."""
    pptx_path = args["pptx_path"]
    doc = _load_presentation(pptx_path)
    count = set_shape_text(
        doc,
        slide_index=int(args["slide_index"]),
        content_type=args.get("content_type", "text/plain"),
        content=args["content"],
        replace=bool(args.get("replace", False)),
        shape_index=args.get("shape_index"),
    )
    return f"{_save_in_place(doc, pptx_path)}\nWrote {count} paragraph(s)"


async def handle_get_shapes(args: dict[str, Any]) -> str:
    """Handle powerpoint_get_shapes tool."""
    doc = _load_presentation(args["pptx_path"])
    shapes = describe_shapes(doc, int(args["slide_index"]))
    return json.dumps({"shapes": shapes}, indent=2, ensure_ascii=False)


async def handle_get_slides(args: dict[str, Any]) -> str:
    """Handle powerpoint_get_slides tool."""
    doc = _load_presentation(args["pptx_path"])
    return json.dumps({"slides": list_slides(doc)}, indent=2, ensure_ascii=False)


async def handle_add_slide(args: dict[str, Any]) -> str:
    pptx_path = args["pptx_path"]
    doc = _load_presentation(pptx_path)
    slide = add_blank_slide(doc)
    return f"{_save_in_place(doc, pptx_path)}\nAdded slide at index {slide.index}"


async def handle_remove_slide(args: dict[str, Any]) -> str:
    pptx_path = args["pptx_path"]
    doc = _load_presentation(pptx_path)
    slide = remove_slide(doc, int(args["slide_index"]))
    return f"{_save_in_place(doc, pptx_path)}\nRemoved slide {slide.index}"


async def handle_move_slide(args: dict[str, Any]) -> str:
    pptx_path = args["pptx_path"]
    from_index = int(args["from_index"])
    to_index = int(args["to_index"])
    doc = _load_presentation(pptx_path)
    position = reorder_slide(doc, from_index, to_index)
    return f"{_save_in_place(doc, pptx_path)}\nMoved slide {from_index} to position {position}"


async def handle_new_presentation(args: dict[str, Any]) -> str:
    doc = new_presentation(args.get("layout", "16:9"))
    return _save_new(doc, args["file_name"], ".pptx")


async def handle_presentation_from_template(args: dict[str, Any]) -> str:
    template = store.fetch(args["template_path"])
    doc = create_presentation_from_template(template.data)
    return _save_new(doc, args["file_name"], ".pptx")


async def handle_track_changes(args: dict[str, Any]) -> str:
    """Handle word_replace_text_with_track_changes tool."""
    docx_path = args["docx_path"]
    doc = _load_document(docx_path)
    revised = replace_with_track_changes(
        doc,
        search=args["original_text"],
        replacement=args.get("replacement_text", ""),
        author=identity.author,
        when=identity.now(),
    )
    if not revised:
        return f"Text not found in {docx_path}; document left unchanged"
    return f"{_save_in_place(doc, docx_path)}\nRevised {revised} paragraph(s)"


async def handle_create_from_text(args: dict[str, Any]) -> str:
    doc = create_document_from_text(args["content_type"], args["content"])
    return _save_new(doc, args["file_name"], ".docx")


async def handle_create_from_input_file(args: dict[str, Any]) -> str:
    mime_type, data = _fetch_input(args)
    doc = create_document_from_file(mime_type, data)
    return _save_new(doc, args["file_name"], ".docx")


async def handle_create_from_template(args: dict[str, Any]) -> str:
    template = store.fetch(args["template_path"])
    doc = create_from_template(template.data, args["content_type"], args["content"])
    return _save_new(doc, args["file_name"], ".docx")


async def handle_create_from_template_file(args: dict[str, Any]) -> str:
    template = store.fetch(args["template_path"])
    mime_type, data = _fetch_input(args)
    doc = create_from_template_file(template.data, mime_type, data)
    return _save_new(doc, args["file_name"], ".docx")


async def handle_append_content(args: dict[str, Any]) -> str:
    docx_path = args["docx_path"]
    doc = _load_document(docx_path)
    append_content(doc, args["content_type"], args["content"])
    return _save_in_place(doc, docx_path)


async def handle_append_from_file(args: dict[str, Any]) -> str:
    docx_path = args["docx_path"]
    mime_type, data = _fetch_input(args)
    doc = _load_document(docx_path)
    append_file(doc, mime_type, data)
    return _save_in_place(doc, docx_path)


async def handle_validate_document(args: dict[str, Any]) -> str:
    """Handle validate_office_document tool."""
    office_file = args["office_file"]
    data = store.fetch(office_file).data
    suffix = Path(office_file).suffix.lower()
    if suffix in PRESENTATION_EXTENSIONS:
        package = PresentationDocument.load(data)
    elif suffix in WORD_EXTENSIONS:
        package = WordprocessingDocument.load(data)
    else:
        package = Package.load(data)

    results = validator_for(package, full=True).validate_all()
    lines = []
    for check_name, passed, details in results:
        lines.append(f"{'PASS' if passed else 'FAIL'}: {check_name}")
        lines.extend(f"  - {detail}" for detail in details)
    result = "\n".join(lines)
    if all(passed for _, passed, _ in results):
        return f"All validations PASSED!\n{result}"
    return f"Validation FAILED:\n{result}"


def main():
    """Main entry point."""
    asyncio.run(run_server())


async def run_server():
    """Run the MCP server."""
    async with stdio_server() as (read_stream, write_stream):
        await server.run(read_stream, write_stream, server.create_initialization_options())


if __name__ == "__main__":
    main()
