"""ERD-MCP server: MCP tools for laying out and rendering OData entity diagrams."""

from __future__ import annotations

import asyncio
import json
import logging
import os
import uuid
from pathlib import Path

from mcp.server import Server
from mcp.server.stdio import stdio_server
from mcp.types import TextContent, ImageContent, Tool

from .diagram import (
    build_diagram,
    check_request_limits,
    diagram_to_dict,
    diagram_to_yaml,
    filter_entity_types,
    layout_options_from,
)
from .layout import compute_layout
from .parser import ODataMetadataParser
from .renderer import DiagramRenderer

logger = logging.getLogger(__name__)


# --- Constants ---
OUTPUT_DIR = Path(os.environ.get("ERD_OUTPUT_DIR", Path.home() / ".erd-mcp" / "diagrams"))

server = Server("erd-mcp")


def _ensure_output_dir():
    OUTPUT_DIR.mkdir(parents=True, exist_ok=True)


# --- Shared schema fragments ---

_METADATA_PROPERTIES = {
    "metadata_xml": {
        "type": "string",
        "description": "The OData $metadata document (EDMX/CSDL XML).",
    },
    "entity_filter": {
        "type": "string",
        "description": (
            "Optional case-insensitive regex; only entity types whose name or "
            "namespace matches are included."
        ),
    },
}

_LAYOUT_PROPERTIES = {
    "grid_size": {
        "type": "number",
        "description": "Grid spacing and force scale (default 300).",
    },
    "padding": {
        "type": "number",
        "description": "Minimum x/y of the finished layout (default 100).",
    },
    "max_iterations": {
        "type": "integer",
        "description": "Simulation rounds (default 200).",
    },
    "temperature": {
        "type": "number",
        "description": "Initial force multiplier (default 200).",
    },
    "cooling_factor": {
        "type": "number",
        "description": "Per-round temperature decay (default 0.95).",
    },
}


# --- Tool definitions ---

@server.list_tools()
async def list_tools() -> list[Tool]:
    return [
        Tool(
            name="list_entity_types",
            description=(
                "List the entity types, entity sets and function imports declared "
                "in an OData metadata document."
            ),
            inputSchema={
                "type": "object",
                "properties": dict(_METADATA_PROPERTIES),
                "required": ["metadata_xml"],
            },
        ),
        Tool(
            name="layout_metadata",
            description=(
                "Compute an orthogonal grid layout for the entity relationship "
                "diagram of an OData metadata document. Returns node positions "
                "and edges as JSON or YAML."
            ),
            inputSchema={
                "type": "object",
                "properties": {
                    **_METADATA_PROPERTIES,
                    **_LAYOUT_PROPERTIES,
                    "format": {
                        "type": "string",
                        "enum": ["json", "yaml"],
                        "description": "Output format (default json).",
                        "default": "json",
                    },
                },
                "required": ["metadata_xml"],
            },
        ),
        Tool(
            name="render_metadata",
            description=(
                "Lay out and render the entity relationship diagram of an OData "
                "metadata document. Returns the path to the rendered PNG file."
            ),
            inputSchema={
                "type": "object",
                "properties": {
                    **_METADATA_PROPERTIES,
                    **_LAYOUT_PROPERTIES,
                    "title": {
                        "type": "string",
                        "description": "Diagram title (default 'Entity Relationship Diagram').",
                    },
                    "theme": {
                        "type": "string",
                        "enum": ["dark", "light"],
                        "default": "dark",
                    },
                    "scale": {
                        "type": "number",
                        "description": "Render scale factor (default 1.5)",
                        "default": 1.5,
                    },
                    "filename": {
                        "type": "string",
                        "description": "Output filename (without extension). Default: auto-generated UUID.",
                    },
                },
                "required": ["metadata_xml"],
            },
        ),
    ]


@server.call_tool()
async def call_tool(name: str, arguments: dict) -> list[TextContent | ImageContent]:
    if name == "list_entity_types":
        return await _list_entity_types(arguments)
    elif name == "layout_metadata":
        return await _layout_metadata(arguments)
    elif name == "render_metadata":
        return await _render_metadata(arguments)
    else:
        return [TextContent(type="text", text=f"Unknown tool: {name}")]


async def _list_entity_types(args: dict) -> list[TextContent]:
    """Summarize the entity model of a metadata document."""
    try:
        parser = ODataMetadataParser(args["metadata_xml"])
    except ValueError as e:
        return [TextContent(type="text", text=f"Failed to parse metadata: {e}")]

    try:
        entity_types = filter_entity_types(parser.entity_types, args.get("entity_filter"))
    except ValueError as e:
        return [TextContent(type="text", text=f"Invalid request: {e}")]

    return [TextContent(
        type="text",
        text=json.dumps({
            "entity_types": [
                {
                    "name": et.full_name,
                    "properties": [p.name for p in et.properties],
                    "navigation_properties": [
                        {"name": n.name, "type": parser.expand_type_reference(n.type)}
                        for n in et.navigation_properties
                    ],
                }
                for et in entity_types
            ],
            "entity_sets": [
                {"name": es.name, "entity_type": es.entity_type}
                for es in parser.get_entity_sets()
            ],
            "function_imports": [
                {"name": fi.name, "function": fi.function}
                for fi in parser.get_function_imports()
            ],
        }),
    )]


async def _layout_metadata(args: dict) -> list[TextContent]:
    """Lay out a metadata document and return the positions."""
    try:
        parser = ODataMetadataParser(args["metadata_xml"])
        options = layout_options_from(args)
        nodes, edges = build_diagram(parser, args.get("entity_filter"))
        check_request_limits(nodes, options)
    except ValueError as e:
        return [TextContent(type="text", text=f"Invalid request: {e}")]

    positioned = await asyncio.to_thread(compute_layout, nodes, edges, options)

    if args.get("format", "json") == "yaml":
        return [TextContent(type="text", text=diagram_to_yaml(positioned, edges, options=options))]
    return [TextContent(
        type="text",
        text=json.dumps(diagram_to_dict(positioned, edges, options=options)),
    )]


async def _render_metadata(args: dict) -> list[TextContent]:
    """Lay out a metadata document and render it to PNG."""
    _ensure_output_dir()

    title = args.get("title") or "Entity Relationship Diagram"
    scale = args.get("scale", 1.5)
    theme = args.get("theme", "dark")
    # Only the final path component is used, so files stay in OUTPUT_DIR
    filename = Path(str(args.get("filename") or "")).name or str(uuid.uuid4())[:8]

    try:
        parser = ODataMetadataParser(args["metadata_xml"])
        options = layout_options_from(args)
        renderer = DiagramRenderer(scale=scale, theme=theme)
        nodes, edges = build_diagram(parser, args.get("entity_filter"))
        check_request_limits(nodes, options)
    except ValueError as e:
        return [TextContent(type="text", text=f"Invalid request: {e}")]

    positioned = await asyncio.to_thread(compute_layout, nodes, edges, options)

    output_path = str(OUTPUT_DIR / f"{filename}.png")
    try:
        await asyncio.to_thread(
            renderer.render,
            positioned,
            edges,
            title=title,
            output_path=output_path,
            grid_size=options.grid_size,
        )
    except Exception as e:
        logger.error(f"Rendering failed: {e}")
        return [TextContent(type="text", text=f"Rendering failed: {e}")]

    return [TextContent(
        type="text",
        text=json.dumps({
            "status": "success",
            "path": output_path,
            "title": title,
            "entity_types": len(positioned),
            "relationships": len(edges),
        }),
    )]


def main():
    """Entry point for the MCP server."""
    logging.basicConfig(
        level=logging.INFO,
        format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
    )
    asyncio.run(_run())


async def _run():
    async with stdio_server() as (read_stream, write_stream):
        await server.run(read_stream, write_stream, server.create_initialization_options())


if __name__ == "__main__":
    main()
