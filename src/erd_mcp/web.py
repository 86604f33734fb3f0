#!/usr/bin/env python3
"""
ERD web service - HTTP API for entity diagram layout

A lightweight aiohttp server: upload an OData $metadata document, get back
the entity list, the computed layout, or the rendered diagram.

Requests carry either the raw XML as the body, or JSON:

    {"metadata": "<edmx:Edmx ...>", "filter": "Product|Category",
     "options": {"grid_size": 300}, "theme": "light", "title": "Demo"}

Usage:
    erd-web [--port 8767] [--host 0.0.0.0]
"""

import asyncio
import json
import logging

from aiohttp import web
from pydantic import ValidationError

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

# Metadata documents of large services run to several megabytes
MAX_UPLOAD_SIZE = 20 * 1024 * 1024


class BadRequest(Exception):
    """Raised while reading a request that cannot be served."""


# JSON fields and the types they must have when present
_FIELD_TYPES = (
    ("metadata", str, "a string"),
    ("filter", str, "a string"),
    ("options", dict, "an object"),
    ("title", str, "a string"),
    ("theme", str, "a string"),
    ("scale", (int, float), "a number"),
)


async def read_request(request) -> dict:
    """Normalize a raw-XML or JSON request body into a dict.

    The returned dict always has a ``metadata`` key.
    """
    if request.content_type == "application/json":
        try:
            data = await request.json()
        except json.JSONDecodeError as e:
            raise BadRequest(f"Invalid JSON body: {e}") from e
        if not isinstance(data, dict):
            raise BadRequest("JSON body must be an object")
    else:
        data = {"metadata": await request.text()}

    if not data.get("metadata"):
        raise BadRequest("No metadata provided")
    for key, expected, name in _FIELD_TYPES:
        if data.get(key) is not None and not isinstance(data[key], expected):
            raise BadRequest(f"Field '{key}' must be {name}")
    return data


def _prepare(data: dict):
    """Parse metadata, build the diagram and lay it out.

    Blocking; handlers run it in a worker thread.
    """
    parser = ODataMetadataParser(data["metadata"])
    options = layout_options_from(data.get("options"))
    nodes, edges = build_diagram(parser, data.get("filter"))
    check_request_limits(nodes, options)
    return compute_layout(nodes, edges, options), edges, options


async def handle_status(request):
    """Health check."""
    return web.json_response({"status": "ok"})


async def handle_entity_types(request):
    """List entity types (optionally filtered) and entity sets."""
    try:
        data = await read_request(request)
        parser = ODataMetadataParser(data["metadata"])
    except (BadRequest, ValueError) as e:
        return web.json_response({"error": str(e)}, status=400)

    entity_types = filter_entity_types(parser.entity_types, data.get("filter"))
    return web.json_response({
        "entity_types": [et.model_dump() | {"full_name": et.full_name} for et in entity_types],
        "entity_sets": [es.model_dump() for es in parser.get_entity_sets()],
        "function_imports": [fi.model_dump() for fi in parser.get_function_imports()],
    })


async def handle_layout(request):
    """Compute the layout; JSON by default, YAML with ``?format=yaml``."""
    try:
        data = await read_request(request)
        positioned, edges, options = await asyncio.to_thread(_prepare, data)
    except ValidationError as e:
        return web.json_response({"error": f"Invalid layout options: {e}"}, status=400)
    except (BadRequest, ValueError) as e:
        return web.json_response({"error": str(e)}, status=400)

    title = data.get("title")
    if request.query.get("format") == "yaml":
        return web.Response(
            text=diagram_to_yaml(positioned, edges, title=title, options=options),
            content_type="application/x-yaml",
        )
    return web.json_response(diagram_to_dict(positioned, edges, title=title, options=options))


async def handle_render(request):
    """Lay out and render the diagram; responds with PNG bytes."""
    try:
        data = await read_request(request)
        renderer = DiagramRenderer(
            scale=float(data.get("scale", 1.0)),
            theme=data.get("theme", "dark"),
        )
        positioned, edges, options = await asyncio.to_thread(_prepare, data)
    except ValidationError as e:
        return web.json_response({"error": f"Invalid layout options: {e}"}, status=400)
    except (BadRequest, TypeError, ValueError) as e:
        return web.json_response({"error": str(e)}, status=400)

    try:
        png = await asyncio.to_thread(
            renderer.render,
            positioned,
            edges,
            title=data.get("title") or "Entity Relationship Diagram",
            grid_size=options.grid_size,
        )
    except Exception as e:
        logger.error(f"Render error: {e}")
        return web.json_response({"error": str(e)}, status=500)

    return web.Response(body=png, content_type="image/png")


def create_app():
    """Create the aiohttp application."""
    app = web.Application(client_max_size=MAX_UPLOAD_SIZE)

    app.router.add_get('/api/status', handle_status)
    app.router.add_post('/api/entity-types', handle_entity_types)
    app.router.add_post('/api/layout', handle_layout)
    app.router.add_post('/api/render', handle_render)

    return app


async def main(host: str = '0.0.0.0', port: int = 8767):
    """Run the web server."""
    app = create_app()

    runner = web.AppRunner(app)
    await runner.setup()

    site = web.TCPSite(runner, host, port)
    await site.start()

    logger.info(f"ERD web service running at http://{host}:{port}")

    # Keep running
    while True:
        await asyncio.sleep(3600)


def run():
    """Console entry point."""
    import argparse

    logging.basicConfig(
        level=logging.INFO,
        format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
    )

    parser = argparse.ArgumentParser(description='ERD Web Service')
    parser.add_argument('--host', default='0.0.0.0', help='Host to bind to')
    parser.add_argument('--port', type=int, default=8767, help='Port to listen on')
    args = parser.parse_args()

    try:
        asyncio.run(main(host=args.host, port=args.port))
    except KeyboardInterrupt:
        logger.info("Shutting down...")


if __name__ == '__main__':
    run()
