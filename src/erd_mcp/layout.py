"""
Orthogonal force-directed layout for ERD-MCP.

Positions entity boxes so that related entities sit close together and
every box lands on a uniform lattice, which keeps the connectors drawn
between them orthogonal.

The algorithm is a linear pipeline:

  1. Initializer: spread the nodes over a coarse square-ish grid so the
     first rounds are not dominated by coincident points.
  2. Force pass: all-pairs repulsion followed by per-edge attraction.
     Every displacement is scaled by the current temperature and clamped
     to half a grid cell per axis.
  3. Grid snap: round every node to the lattice; a node that lands on
     top of another searches a bounded spiral of nearby cells for a free
     one.  Steps 2 and 3 repeat ``max_iterations`` times while the
     temperature cools geometrically.
  4. Normalizer: translate the whole layout so the minimum coordinate on
     each axis equals ``padding``.

Everything here is deterministic. Helper structures are rebuilt per call.

Force constants (``g`` = grid size):
  - Repulsion:  4g/d² below 1.5g, min(2g/d², g) beyond
  - Attraction: min(d / 2g, g / 2) along each edge
  - Movement:   at most g / 2 per axis per pass
"""

from __future__ import annotations

import logging
import math
from dataclasses import dataclass
from typing import Optional

from .models import EntityEdge, EntityNode, LayoutOptions

logger = logging.getLogger(__name__)


# --- Force and search constants (multiples of the grid size) ---

INITIAL_SPACING_CELLS = 2
MIN_DISTANCE_FACTOR = 1.5
NEAR_REPULSION_FACTOR = 4
FAR_REPULSION_FACTOR = 2
ATTRACTION_DIVISOR_FACTOR = 2
ATTRACTION_CAP_FACTOR = 0.5
MAX_MOVEMENT_FACTOR = 0.5

SPIRAL_MAX_RADIUS = 3
SPIRAL_STEPS_PER_RADIUS = 8


@dataclass
class LayoutBounds:
    """Bounding box of a set of nodes (boxes included)."""
    min_x: float
    min_y: float
    max_x: float
    max_y: float

    @property
    def width(self) -> float:
        return self.max_x - self.min_x

    @property
    def height(self) -> float:
        return self.max_y - self.min_y


# ---------------------------------------------------------------------------
# Small numeric helpers
# ---------------------------------------------------------------------------

def _clamp(value: float, limit: float) -> float:
    return max(min(value, limit), -limit)


def _round_half_up(value: float) -> int:
    """Round to the nearest integer, halves toward +inf (not banker's)."""
    return math.floor(value + 0.5)


def _snap(value: float, grid_size: float) -> float:
    return _round_half_up(value / grid_size) * grid_size


def _is_free(nodes: list[EntityNode], node: EntityNode, x: float, y: float, grid_size: float) -> bool:
    """True if no other node is within one grid cell of (x, y) on both axes."""
    for other in nodes:
        if other is node:
            continue
        if abs(x - other.x) < grid_size and abs(y - other.y) < grid_size:
            return False
    return True


# ---------------------------------------------------------------------------
# Phases
# ---------------------------------------------------------------------------

def initialize_grid(nodes: list[EntityNode], options: LayoutOptions) -> None:
    """Place nodes row by row on a grid of ``ceil(sqrt(N))`` columns."""
    if not nodes:
        return

    columns = math.ceil(math.sqrt(len(nodes)))
    spacing = options.grid_size * INITIAL_SPACING_CELLS + options.padding
    for index, node in enumerate(nodes):
        row, col = divmod(index, columns)
        node.x = col * spacing
        node.y = row * spacing


def apply_repulsion(nodes: list[EntityNode], options: LayoutOptions, temperature: float) -> None:
    """Push every node away from every other node.

    Nodes are updated one after another, so a node moved earlier in the
    pass is seen at its new position by the nodes that follow.  Coincident
    pairs (distance 0) contribute no force.
    """
    grid_size = options.grid_size
    min_distance = grid_size * MIN_DISTANCE_FACTOR
    max_movement = grid_size * MAX_MOVEMENT_FACTOR

    for node in nodes:
        fx = 0.0
        fy = 0.0
        for other in nodes:
            if other is node:
                continue
            dx = node.x - other.x
            dy = node.y - other.y
            distance = math.sqrt(dx * dx + dy * dy)
            if distance <= 0:
                continue

            if distance < min_distance:
                force = (grid_size * NEAR_REPULSION_FACTOR) / (distance * distance)
            else:
                force = min((grid_size * FAR_REPULSION_FACTOR) / (distance * distance), grid_size)
            fx += (dx / distance) * force
            fy += (dy / distance) * force

        node.x += _clamp(fx * temperature, max_movement)
        node.y += _clamp(fy * temperature, max_movement)


def apply_attraction(
    nodes: list[EntityNode],
    edges: list[EntityEdge],
    options: LayoutOptions,
    temperature: float,
) -> None:
    """Pull the two endpoints of every edge toward each other.

    Edges whose source or target is not among ``nodes`` are skipped.
    """
    grid_size = options.grid_size
    max_movement = grid_size * MAX_MOVEMENT_FACTOR

    # First node wins when ids repeat
    node_index: dict[str, EntityNode] = {}
    for node in nodes:
        node_index.setdefault(node.id, node)

    for edge in edges:
        source = node_index.get(edge.source)
        target = node_index.get(edge.target)
        if source is None or target is None:
            continue

        dx = target.x - source.x
        dy = target.y - source.y
        distance = math.sqrt(dx * dx + dy * dy)
        if distance <= 0:
            continue

        force = min(
            distance / (grid_size * ATTRACTION_DIVISOR_FACTOR),
            grid_size * ATTRACTION_CAP_FACTOR,
        )
        move_x = _clamp((dx / distance) * force * temperature, max_movement)
        move_y = _clamp((dy / distance) * force * temperature, max_movement)

        source.x += move_x
        source.y += move_y
        target.x -= move_x
        target.y -= move_y


def snap_to_grid(nodes: list[EntityNode], options: LayoutOptions) -> int:
    """Round every node to the lattice, resolving collisions by spiral search.

    A rounded position conflicts when some other node's current position is
    less than one grid cell away on both axes.  The search walks rings of
    radius 1..3 cells, ``8r`` evenly spaced angles each, and takes the first
    free candidate.  If none is free the rounded position is kept anyway.

    Returns the number of nodes left in a conflicting cell.
    """
    grid_size = options.grid_size
    unresolved = 0

    for node in nodes:
        rounded_x = _snap(node.x, grid_size)
        rounded_y = _snap(node.y, grid_size)

        if _is_free(nodes, node, rounded_x, rounded_y, grid_size):
            node.x = rounded_x
            node.y = rounded_y
            continue

        found = _spiral_search(nodes, node, rounded_x, rounded_y, grid_size)
        if found is None:
            unresolved += 1
            node.x = rounded_x
            node.y = rounded_y
        else:
            node.x, node.y = found

    return unresolved


def _spiral_search(
    nodes: list[EntityNode],
    node: EntityNode,
    origin_x: float,
    origin_y: float,
    grid_size: float,
) -> Optional[tuple[float, float]]:
    for radius in range(1, SPIRAL_MAX_RADIUS + 1):
        steps = radius * SPIRAL_STEPS_PER_RADIUS
        for step in range(steps):
            angle = (step * math.pi) / (radius * 4)
            test_x = origin_x + _round_half_up(math.cos(angle) * radius) * grid_size
            test_y = origin_y + _round_half_up(math.sin(angle) * radius) * grid_size
            if _is_free(nodes, node, test_x, test_y, grid_size):
                return (test_x, test_y)
    return None


def normalize_positions(nodes: list[EntityNode], options: LayoutOptions) -> None:
    """Translate all nodes so the minimum x and y both equal ``padding``."""
    if not nodes:
        return

    min_x = min(n.x for n in nodes)
    min_y = min(n.y for n in nodes)
    shift_x = options.padding - min_x
    shift_y = options.padding - min_y
    for node in nodes:
        node.x += shift_x
        node.y += shift_y


def run_iteration(
    nodes: list[EntityNode],
    edges: list[EntityEdge],
    options: LayoutOptions,
    temperature: float,
) -> int:
    """One simulation round: repulsion, attraction, then grid snap.

    Returns the number of nodes the snap could not place in a free cell.
    """
    apply_repulsion(nodes, options, temperature)
    apply_attraction(nodes, edges, options, temperature)
    return snap_to_grid(nodes, options)


def layout_bounds(nodes: list[EntityNode]) -> Optional[LayoutBounds]:
    """Bounding box of the nodes' boxes, or None for an empty list."""
    if not nodes:
        return None
    return LayoutBounds(
        min_x=min(n.x for n in nodes),
        min_y=min(n.y for n in nodes),
        max_x=max(n.x + n.width for n in nodes),
        max_y=max(n.y + n.height for n in nodes),
    )


# ---------------------------------------------------------------------------
# Entry points
# ---------------------------------------------------------------------------

def compute_layout_in_place(
    nodes: list[EntityNode],
    edges: list[EntityEdge],
    options: Optional[LayoutOptions] = None,
) -> list[EntityNode]:
    """
    Lay out ``nodes`` by mutating their positions; returns the same list.

    Steps:
    1. Initialize on a coarse grid
    2. Repeat ``max_iterations`` times: force pass, grid snap, cool down
    3. Translate so the minimum coordinate equals ``padding``

    The caller owns ``nodes``; do not run two layouts on the same list at
    the same time.
    """
    opts = options or LayoutOptions()

    logger.debug(
        f"Laying out {len(nodes)} nodes / {len(edges)} edges "
        f"(grid={opts.grid_size}, iterations={opts.max_iterations})"
    )

    initialize_grid(nodes, opts)

    temperature = opts.temperature
    unresolved = 0
    for _ in range(opts.max_iterations):
        unresolved = run_iteration(nodes, edges, opts, temperature)
        temperature *= opts.cooling_factor

    if unresolved:
        logger.debug(f"{unresolved} nodes still share a grid cell after the final snap")

    normalize_positions(nodes, opts)
    return nodes


def compute_layout(
    nodes: list[EntityNode],
    edges: list[EntityEdge],
    options: Optional[LayoutOptions] = None,
) -> list[EntityNode]:
    """Lay out copies of ``nodes`` and return them; the inputs are untouched.

    Payloads (``data``) are shared between the input and output nodes, only
    the node records themselves are copied.
    """
    positioned = [node.model_copy() for node in nodes]
    return compute_layout_in_place(positioned, edges, options)
