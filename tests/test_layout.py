"""
Tests for the orthogonal force-directed layout.

Tests cover:
- Grid initialization
- Repulsion and attraction passes
- Grid snapping and spiral conflict search
- Centering normalization
- End-to-end properties (determinism, alignment, centering, edge tolerance)
"""

import math

import pytest
from pydantic import ValidationError

from erd_mcp.layout import (
    apply_attraction,
    apply_repulsion,
    compute_layout,
    compute_layout_in_place,
    initialize_grid,
    layout_bounds,
    normalize_positions,
    run_iteration,
    snap_to_grid,
)
from erd_mcp.models import EntityEdge, EntityNode, LayoutOptions


def _positions(nodes):
    return [(n.id, n.x, n.y) for n in nodes]


def _distance(a: EntityNode, b: EntityNode) -> float:
    return math.hypot(a.x - b.x, a.y - b.y)


# =============================================================================
# Options
# =============================================================================

class TestLayoutOptions:
    """Tests for option defaults and validation."""

    def test_defaults(self):
        opts = LayoutOptions()
        assert opts.grid_size == 100
        assert opts.padding == 50
        assert opts.max_iterations == 100
        assert opts.temperature == 100
        assert opts.cooling_factor == 0.95

    def test_partial_options(self):
        opts = LayoutOptions(grid_size=40)
        assert opts.grid_size == 40
        assert opts.padding == 50

    @pytest.mark.parametrize("grid_size", [0, -10])
    def test_non_positive_grid_size_rejected(self, grid_size):
        with pytest.raises(ValidationError):
            LayoutOptions(grid_size=grid_size)

    def test_negative_iterations_rejected(self):
        with pytest.raises(ValueError):
            LayoutOptions(max_iterations=-1)


# =============================================================================
# Initializer
# =============================================================================

class TestInitializeGrid:
    """Tests for the initial grid placement."""

    def test_square_grid_placement(self, default_options):
        nodes = [EntityNode(id=str(i)) for i in range(5)]
        initialize_grid(nodes, default_options)

        # ceil(sqrt(5)) = 3 columns, spacing 2 * 100 + 50
        assert [(n.x, n.y) for n in nodes] == [
            (0, 0), (250, 0), (500, 0),
            (0, 250), (250, 250),
        ]

    def test_empty_is_noop(self, default_options):
        nodes = []
        initialize_grid(nodes, default_options)
        assert nodes == []

    def test_overwrites_existing_positions(self, default_options):
        nodes = [EntityNode(id="A", x=999, y=-999)]
        initialize_grid(nodes, default_options)
        assert (nodes[0].x, nodes[0].y) == (0, 0)


# =============================================================================
# Force passes
# =============================================================================

class TestForces:
    """Tests for the repulsion and attraction passes."""

    def test_short_range_repulsion(self, default_options):
        a = EntityNode(id="A", x=0, y=0)
        b = EntityNode(id="B", x=100, y=0)
        apply_repulsion([a, b], default_options, temperature=1.0)

        # d = 100 < 150: magnitude 4g/d² = 0.04
        assert a.x == pytest.approx(-0.04)
        assert a.y == 0
        # B sees A at its already-updated position
        assert b.x == pytest.approx(100 + 400 / (100.04 ** 2))

    def test_long_range_repulsion(self, default_options):
        a = EntityNode(id="A", x=0, y=0)
        b = EntityNode(id="B", x=0, y=1000)
        apply_repulsion([a, b], default_options, temperature=1.0)

        # d = 1000: magnitude 2g/d² = 0.0002
        assert a.y == pytest.approx(-0.0002)
        assert a.x == 0

    def test_repulsion_movement_is_clamped(self, default_options):
        a = EntityNode(id="A", x=0, y=0)
        b = EntityNode(id="B", x=10, y=0)
        apply_repulsion([a, b], default_options, temperature=1e6)

        assert a.x == pytest.approx(-50)

    def test_coincident_nodes_have_no_repulsion(self, default_options):
        a = EntityNode(id="A", x=5, y=5)
        b = EntityNode(id="B", x=5, y=5)
        apply_repulsion([a, b], default_options, temperature=100)

        assert (a.x, a.y, b.x, b.y) == (5, 5, 5, 5)

    def test_attraction_pulls_endpoints_together(self, default_options):
        a = EntityNode(id="A", x=0, y=0)
        b = EntityNode(id="B", x=300, y=0)
        apply_attraction([a, b], [EntityEdge(source="A", target="B")], default_options, temperature=1.0)

        # magnitude min(300 / 200, 50) = 1.5
        assert a.x == pytest.approx(1.5)
        assert b.x == pytest.approx(298.5)

    def test_attraction_movement_is_clamped(self, default_options):
        a = EntityNode(id="A", x=0, y=0)
        b = EntityNode(id="B", x=0, y=400)
        apply_attraction([a, b], [EntityEdge(source="A", target="B")], default_options, temperature=100)

        assert a.y == pytest.approx(50)
        assert b.y == pytest.approx(350)

    def test_dangling_edges_are_skipped(self, default_options):
        a = EntityNode(id="A", x=0, y=0)
        b = EntityNode(id="B", x=300, y=0)
        edges = [
            EntityEdge(source="A", target="missing"),
            EntityEdge(source="missing", target="B"),
        ]
        apply_attraction([a, b], edges, default_options, temperature=100)

        assert (a.x, b.x) == (0, 300)


# =============================================================================
# Grid snapping
# =============================================================================

class TestSnapToGrid:
    """Tests for grid rounding and spiral conflict search."""

    def test_rounds_halves_up(self, default_options):
        node = EntityNode(id="A", x=150, y=-150)
        unresolved = snap_to_grid([node], default_options)

        assert (node.x, node.y) == (200, -100)
        assert unresolved == 0

    def test_conflict_moves_to_first_free_spiral_cell(self, default_options):
        a = EntityNode(id="A", x=0, y=0)
        b = EntityNode(id="B", x=0, y=0)
        snap_to_grid([a, b], default_options)

        # First spiral candidate is one cell to the right (angle 0)
        assert (a.x, a.y) == (100, 0)
        assert (b.x, b.y) == (0, 0)

    def test_conflict_checks_unrounded_neighbours(self, default_options):
        a = EntityNode(id="A", x=20, y=0)
        b = EntityNode(id="B", x=60, y=40)
        snap_to_grid([a, b], default_options)

        # A rounds to (0, 0) but B (still at 60, 40) is within one cell, and
        # so are the first three spiral cells; the fourth (angle 3pi/4) is free
        assert (a.x, a.y) == (-100, 100)
        assert (b.x, b.y) == (100, 0)

    def test_unresolvable_conflict_keeps_rounded_position(self, default_options):
        crowded = EntityNode(id="X", x=10, y=10)
        blockers = [
            EntityNode(id=f"{i},{j}", x=i * 100, y=j * 100)
            for i in range(-3, 4)
            for j in range(-3, 4)
        ]
        unresolved = snap_to_grid([crowded] + blockers, default_options)

        assert (crowded.x, crowded.y) == (0, 0)
        # The crowded node and the blocker it landed on
        assert unresolved == 2


# =============================================================================
# Normalization
# =============================================================================

class TestNormalize:
    """Tests for the centering step."""

    def test_minimum_equals_padding(self, default_options):
        nodes = [
            EntityNode(id="A", x=-300, y=200),
            EntityNode(id="B", x=100, y=-400),
        ]
        normalize_positions(nodes, default_options)

        assert [(n.x, n.y) for n in nodes] == [(50, 650), (450, 50)]

    def test_empty_is_noop(self, default_options):
        normalize_positions([], default_options)

    def test_layout_bounds(self):
        nodes = [
            EntityNode(id="A", x=0, y=0, width=10, height=20),
            EntityNode(id="B", x=100, y=50, width=30, height=40),
        ]
        bounds = layout_bounds(nodes)

        assert (bounds.min_x, bounds.min_y, bounds.max_x, bounds.max_y) == (0, 0, 130, 90)
        assert (bounds.width, bounds.height) == (130, 90)
        assert layout_bounds([]) is None


# =============================================================================
# End-to-end layout
# =============================================================================

class TestComputeLayout:
    """Tests for the full pipeline."""

    def test_empty_input(self):
        assert compute_layout([], []) == []

    @pytest.mark.parametrize("iterations", [0, 1, 50])
    def test_single_node_lands_on_padding(self, iterations):
        opts = LayoutOptions(max_iterations=iterations)
        result = compute_layout([EntityNode(id="A")], [], opts)

        assert len(result) == 1
        assert (result[0].x, result[0].y) == (50, 50)

    def test_deterministic(self, ring_graph):
        nodes, edges = ring_graph
        first = compute_layout(nodes, edges)
        second = compute_layout(nodes, edges)

        assert _positions(first) == _positions(second)

    def test_grid_alignment(self, ring_graph):
        nodes, edges = ring_graph
        opts = LayoutOptions(max_iterations=30)
        result = compute_layout(nodes, edges, opts)

        for node in result:
            assert (node.x - opts.padding) % opts.grid_size == 0
            assert (node.y - opts.padding) % opts.grid_size == 0

    def test_grid_alignment_with_zero_padding(self, ring_graph):
        nodes, edges = ring_graph
        opts = LayoutOptions(padding=0, max_iterations=30)
        result = compute_layout(nodes, edges, opts)

        for node in result:
            assert node.x % opts.grid_size == 0
            assert node.y % opts.grid_size == 0

    def test_centering(self, ring_graph):
        nodes, edges = ring_graph
        opts = LayoutOptions(padding=75, max_iterations=20)
        result = compute_layout(nodes, edges, opts)

        assert min(n.x for n in result) == 75
        assert min(n.y for n in result) == 75

    def test_dangling_edge_does_not_change_output(self, ring_graph):
        nodes, edges = ring_graph
        with_dangling = edges + [
            EntityEdge(source="A", target="Nowhere"),
            EntityEdge(source="Ghost", target="C"),
        ]

        assert _positions(compute_layout(nodes, edges)) == _positions(compute_layout(nodes, with_dangling))

    def test_two_connected_nodes_converge(self):
        nodes = [EntityNode(id="A"), EntityNode(id="B")]
        edges = [EntityEdge(source="A", target="B")]
        opts = LayoutOptions(grid_size=100, max_iterations=20)
        initial_distance = 2 * opts.grid_size + opts.padding

        a, b = compute_layout(nodes, edges, opts)

        assert _distance(a, b) < initial_distance
        assert _distance(a, b) >= opts.grid_size

    def test_no_iterations_is_grid_plus_centering(self):
        nodes = [EntityNode(id=str(i)) for i in range(4)]
        opts = LayoutOptions(max_iterations=0)
        result = compute_layout(nodes, [EntityEdge(source="0", target="3")], opts)

        assert [(n.x, n.y) for n in result] == [
            (50, 50), (300, 50),
            (50, 300), (300, 300),
        ]

    def test_coincident_nodes_separate_after_one_iteration(self, default_options):
        nodes = [EntityNode(id="A"), EntityNode(id="B")]
        run_iteration(nodes, [], default_options, temperature=default_options.temperature)

        assert (nodes[0].x, nodes[0].y) != (nodes[1].x, nodes[1].y)


class TestMutationContract:
    """Tests for the pure and in-place entry points."""

    def test_compute_layout_leaves_input_untouched(self, ring_graph):
        nodes, edges = ring_graph
        result = compute_layout(nodes, edges, LayoutOptions(max_iterations=5))

        assert all((n.x, n.y) == (0, 0) for n in nodes)
        assert all(out is not original for out, original in zip(result, nodes))
        assert [n.id for n in result] == [n.id for n in nodes]

    def test_compute_layout_shares_payload(self):
        payload = {"entity": "Product"}
        result = compute_layout([EntityNode(id="A", data=payload)], [])

        assert result[0].data is payload

    def test_in_place_returns_same_list(self, ring_graph):
        nodes, edges = ring_graph
        result = compute_layout_in_place(nodes, edges, LayoutOptions(max_iterations=5))

        assert result is nodes
        assert min(n.x for n in nodes) == 50

    def test_pure_and_in_place_agree(self, ring_graph):
        nodes, edges = ring_graph
        opts = LayoutOptions(max_iterations=15)
        pure = compute_layout(nodes, edges, opts)
        in_place = compute_layout_in_place(nodes, edges, opts)

        assert _positions(pure) == _positions(in_place)
