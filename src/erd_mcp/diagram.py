"""Entity diagram builder for ERD-MCP.

Turns a parsed metadata document into the node/edge lists the layout engine
consumes, and serializes positioned diagrams back out (dict / YAML).

  - One node per entity type, id = fully-qualified type name
  - One edge per navigation property whose target type is also a node
"""

from __future__ import annotations

import logging
import re
from typing import Optional

import yaml

from .models import (
    DEFAULT_NODE_HEIGHT,
    DEFAULT_NODE_WIDTH,
    EntityEdge,
    EntityNode,
    LayoutOptions,
    ODataEntityType,
)
from .parser import ODataMetadataParser, strip_collection

logger = logging.getLogger(__name__)


# Entity boxes are wide, so the diagram uses a coarser grid than the engine default
ENTITY_DIAGRAM_OPTIONS = LayoutOptions(
    grid_size=300,
    padding=100,
    max_iterations=200,
    temperature=200,
    cooling_factor=0.95,
)


LAYOUT_OPTION_KEYS = ("grid_size", "padding", "max_iterations", "temperature", "cooling_factor")

# Services lay out on request; the simulation is O(iterations x N^2)
MAX_REQUEST_ITERATIONS = 1000
MAX_REQUEST_NODES = 300


def layout_options_from(
    overrides: Optional[dict],
    base: LayoutOptions = ENTITY_DIAGRAM_OPTIONS,
) -> LayoutOptions:
    """Build validated ``LayoutOptions`` from ``base`` plus request overrides.

    Unknown keys and ``None`` values are ignored.  Invalid values raise
    ``pydantic.ValidationError``; a non-dict ``overrides`` raises ``ValueError``.
    """
    if overrides is not None and not isinstance(overrides, dict):
        raise ValueError("Layout options must be an object")

    values = base.model_dump()
    for key in LAYOUT_OPTION_KEYS:
        if overrides and overrides.get(key) is not None:
            values[key] = overrides[key]
    return LayoutOptions(**values)


def filter_entity_types(
    entity_types: list[ODataEntityType],
    pattern: Optional[str] = None,
) -> list[ODataEntityType]:
    """Keep entity types whose name or namespace matches ``pattern``.

    Matching is a case-insensitive regex search.  An empty pattern keeps
    everything, and so does a pattern that is not a valid regex.
    """
    if not pattern:
        return list(entity_types)
    if not isinstance(pattern, str):
        raise ValueError("Entity filter must be a string")

    try:
        regex = re.compile(pattern, re.IGNORECASE)
    except re.error as e:
        logger.warning(f"Ignoring invalid entity filter {pattern!r}: {e}")
        return list(entity_types)

    return [
        et for et in entity_types
        if regex.search(et.name) or (et.namespace and regex.search(et.namespace))
    ]


def build_diagram(
    parser: ODataMetadataParser,
    entity_filter: Optional[str] = None,
) -> tuple[list[EntityNode], list[EntityEdge]]:
    """Build layout nodes and edges from a parsed metadata document.

    Navigation targets are unwrapped from ``Collection(...)`` and have their
    namespace alias expanded before they are matched against node ids;
    navigation properties pointing outside the (filtered) diagram produce
    no edge.
    """
    entity_types = filter_entity_types(parser.entity_types, entity_filter)

    nodes = [
        EntityNode(
            id=et.full_name,
            width=DEFAULT_NODE_WIDTH,
            height=DEFAULT_NODE_HEIGHT,
            data=et,
        )
        for et in entity_types
    ]
    node_ids = {node.id for node in nodes}

    edges = []
    for et in entity_types:
        for nav in et.navigation_properties:
            target = parser.expand_type_reference(strip_collection(nav.type))
            if target in node_ids:
                edges.append(EntityEdge(source=et.full_name, target=target, label=nav.name))

    logger.debug(f"Built diagram with {len(nodes)} nodes and {len(edges)} edges")
    return nodes, edges


def diagram_to_dict(
    nodes: list[EntityNode],
    edges: list[EntityEdge],
    title: Optional[str] = None,
    options: Optional[LayoutOptions] = None,
) -> dict:
    """Plain-data view of a positioned diagram (JSON/YAML friendly)."""
    data: dict = {}
    if title:
        data["title"] = title
    if options:
        data["layout"] = options.model_dump()

    data["nodes"] = []
    for node in nodes:
        node_data = {
            "id": node.id,
            "x": node.x,
            "y": node.y,
            "width": node.width,
            "height": node.height,
        }
        if isinstance(node.data, ODataEntityType):
            node_data["name"] = node.data.name
            if node.data.namespace:
                node_data["namespace"] = node.data.namespace
        data["nodes"].append(node_data)

    data["edges"] = []
    for edge in edges:
        edge_data = {"source": edge.source, "target": edge.target}
        if edge.label:
            edge_data["label"] = edge.label
        data["edges"].append(edge_data)

    return data


def diagram_to_yaml(
    nodes: list[EntityNode],
    edges: list[EntityEdge],
    title: Optional[str] = None,
    options: Optional[LayoutOptions] = None,
) -> str:
    """Serialize a positioned diagram to YAML."""
    data = {"diagram": diagram_to_dict(nodes, edges, title=title, options=options)}
    return yaml.dump(data, default_flow_style=False, sort_keys=False)


def check_request_limits(nodes: list[EntityNode], options: LayoutOptions) -> None:
    """Reject layout requests too large to serve inline.

    Raises:
        ValueError: If the iteration count or the node count is above the
            service limits.
    """
    if options.max_iterations > MAX_REQUEST_ITERATIONS:
        raise ValueError(
            f"max_iterations {options.max_iterations} exceeds the limit of {MAX_REQUEST_ITERATIONS}"
        )
    if len(nodes) > MAX_REQUEST_NODES:
        raise ValueError(
            f"Diagram has {len(nodes)} entity types, more than the limit of "
            f"{MAX_REQUEST_NODES}; narrow it with an entity filter"
        )
