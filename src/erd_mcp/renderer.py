"""Entity diagram renderer using Pillow. Produces ERD PNG images."""

from __future__ import annotations

import math
from dataclasses import dataclass
from io import BytesIO
from pathlib import Path
from typing import Optional

from PIL import Image, ImageDraw, ImageFont

from .models import EntityEdge, EntityNode, ODataEntityType
from .themes import get_theme, ThemePalette


# --- Font handling ---

def _load_font(size: int) -> ImageFont.FreeTypeFont | ImageFont.ImageFont:
    """Load a font, falling back to default if none available."""
    font_paths = [
        "/usr/share/fonts/truetype/dejavu/DejaVuSans.ttf",
        "/usr/share/fonts/truetype/liberation/LiberationSans-Regular.ttf",
        "/usr/share/fonts/truetype/freefont/FreeSans.ttf",
        "/usr/share/fonts/TTF/DejaVuSans.ttf",
    ]
    for fp in font_paths:
        if Path(fp).exists():
            return ImageFont.truetype(fp, size)
    return ImageFont.load_default()


def _load_bold_font(size: int) -> ImageFont.FreeTypeFont | ImageFont.ImageFont:
    """Load a bold font, falling back to regular."""
    font_paths = [
        "/usr/share/fonts/truetype/dejavu/DejaVuSans-Bold.ttf",
        "/usr/share/fonts/truetype/liberation/LiberationSans-Bold.ttf",
        "/usr/share/fonts/truetype/freefont/FreeSansBold.ttf",
        "/usr/share/fonts/TTF/DejaVuSans-Bold.ttf",
    ]
    for fp in font_paths:
        if Path(fp).exists():
            return ImageFont.truetype(fp, size)
    return _load_font(size)


# --- Color helpers ---

def _hex_to_rgb(hex_color: str) -> tuple[int, int, int]:
    """Convert hex color to RGB tuple. Supports both 3-char and 6-char hex."""
    hex_color = hex_color.lstrip("#")
    if len(hex_color) == 3:
        hex_color = hex_color[0]*2 + hex_color[1]*2 + hex_color[2]*2
    return tuple(int(hex_color[i:i+2], 16) for i in (0, 2, 4))


def _hex_to_rgba(hex_color: str, alpha: int = 255) -> tuple[int, int, int, int]:
    """Convert hex color to RGBA tuple."""
    r, g, b = _hex_to_rgb(hex_color)
    return (r, g, b, alpha)


# --- Drawing primitives ---

def _draw_arrow(
    draw: ImageDraw.ImageDraw,
    start: tuple[float, float],
    end: tuple[float, float],
    color: str,
    width: int = 2,
    arrow_size: int = 10,
):
    """Draw a line with an arrowhead."""
    draw.line([start, end], fill=color, width=width)

    dx = end[0] - start[0]
    dy = end[1] - start[1]
    length = math.sqrt(dx * dx + dy * dy)
    if length == 0:
        return

    udx = dx / length
    udy = dy / length

    ax = end[0] - arrow_size * udx + (arrow_size / 2) * udy
    ay = end[1] - arrow_size * udy - (arrow_size / 2) * udx
    bx = end[0] - arrow_size * udx - (arrow_size / 2) * udy
    by = end[1] - arrow_size * udy + (arrow_size / 2) * udx

    draw.polygon([(end[0], end[1]), (ax, ay), (bx, by)], fill=color)


def _text_width(font, text: str) -> float:
    bbox = font.getbbox(text)
    return bbox[2] - bbox[0]


def _fit_text(font, text: str, max_width: float) -> str:
    """Truncate ``text`` with an ellipsis so it fits in ``max_width`` pixels."""
    if _text_width(font, text) <= max_width:
        return text
    while text and _text_width(font, text + "...") > max_width:
        text = text[:-1]
    return text + "..."


@dataclass
class _Box:
    """A node mapped to image space (scaled pixels)."""
    node: EntityNode
    x: float
    y: float
    width: float
    height: float

    @property
    def center(self) -> tuple[float, float]:
        return (self.x + self.width / 2, self.y + self.height / 2)


# --- Main renderer ---

class DiagramRenderer:
    """Renders a positioned entity diagram to a PNG image.

    Node coordinates are the top-left corners of the entity boxes in
    layout units.  Boxes grow downward to fit their member rows, so two
    boxes on neighbouring grid cells could overlap; pass the layout's
    ``grid_size`` to ``render`` and positions are stretched apart until
    the largest box fits in a cell.
    """

    # Layout constants
    PADDING = 60
    TITLE_HEIGHT = 60
    NODE_GAP = 60           # minimum free space between stretched grid cells

    # Entity box constants
    HEADER_HEIGHT = 48      # entity name + namespace band
    ROW_HEIGHT = 22
    ROW_PADDING = 12
    SECTION_GAP = 8
    MAX_PROPERTY_ROWS = 8
    MAX_NAVIGATION_ROWS = 6
    OVERFLOW_PREFIX = "... "    # marks the "N more" summary row
    CORNER_RADIUS = 8

    def __init__(self, scale: float = 1.0, theme: str = "dark"):
        self.scale = scale
        self.font_title = _load_bold_font(int(24 * scale))
        self.font_name = _load_bold_font(int(16 * scale))
        self.font_body = _load_font(int(13 * scale))
        self.font_small = _load_font(int(11 * scale))
        self.theme: ThemePalette = get_theme(theme)

    # --- Measuring ---

    def _member_rows(self, entity: Optional[ODataEntityType]) -> tuple[list[str], list[str]]:
        """Display rows for properties and navigation properties."""
        if entity is None:
            return [], []

        properties = [f"{p.name}: {p.type}" for p in entity.properties]
        if len(properties) > self.MAX_PROPERTY_ROWS:
            hidden = len(properties) - (self.MAX_PROPERTY_ROWS - 1)
            properties = properties[:self.MAX_PROPERTY_ROWS - 1] + [f"{self.OVERFLOW_PREFIX}{hidden} more"]

        navigation = [f"-> {n.name}: {n.type}" for n in entity.navigation_properties]
        if len(navigation) > self.MAX_NAVIGATION_ROWS:
            hidden = len(navigation) - (self.MAX_NAVIGATION_ROWS - 1)
            navigation = navigation[:self.MAX_NAVIGATION_ROWS - 1] + [f"{self.OVERFLOW_PREFIX}{hidden} more"]

        return properties, navigation

    def _row_fill(self, row: str, fill: str) -> str:
        """Summary rows are drawn muted, member rows in ``fill``."""
        if row.startswith(self.OVERFLOW_PREFIX):
            return self.theme.muted_text
        return fill

    def compute_node_height(self, node: EntityNode) -> float:
        """Height in layout units needed to show the node's member rows.

        Never smaller than ``node.height``.
        """
        entity = node.data if isinstance(node.data, ODataEntityType) else None
        properties, navigation = self._member_rows(entity)

        height = self.HEADER_HEIGHT + self.ROW_PADDING
        height += len(properties) * self.ROW_HEIGHT
        if properties and navigation:
            height += self.SECTION_GAP
        height += len(navigation) * self.ROW_HEIGHT
        height += self.ROW_PADDING
        return max(float(height), node.height)

    def _layout_boxes(self, nodes: list[EntityNode], grid_size: Optional[float]) -> list[_Box]:
        heights = [self.compute_node_height(n) for n in nodes]

        stretch_x = 1.0
        stretch_y = 1.0
        if grid_size:
            stretch_x = max(1.0, (max(n.width for n in nodes) + self.NODE_GAP) / grid_size)
            stretch_y = max(1.0, (max(heights) + self.NODE_GAP) / grid_size)

        min_x = min(n.x for n in nodes)
        min_y = min(n.y for n in nodes)
        s = self.scale

        return [
            _Box(
                node=node,
                x=((node.x - min_x) * stretch_x + self.PADDING) * s,
                y=((node.y - min_y) * stretch_y + self.PADDING + self.TITLE_HEIGHT) * s,
                width=node.width * s,
                height=height * s,
            )
            for node, height in zip(nodes, heights)
        ]

    # --- Rendering ---

    def render(
        self,
        nodes: list[EntityNode],
        edges: list[EntityEdge],
        title: str = "Entity Relationship Diagram",
        output_path: Optional[str] = None,
        grid_size: Optional[float] = None,
    ) -> bytes:
        """Render the diagram to PNG bytes. Optionally save to file.

        Args:
            nodes: Positioned nodes (usually the output of ``compute_layout``).
            edges: Edges to draw; edges with unknown endpoints are skipped.
            title: Title drawn centered at the top.
            output_path: Optional path to save the PNG.
            grid_size: Grid size the layout ran with; enables cell stretching.
        """
        boxes = self._layout_boxes(nodes, grid_size) if nodes else []
        s = self.scale

        if boxes:
            img_width = int(max(b.x + b.width for b in boxes) + self.PADDING * s)
            img_height = int(max(b.y + b.height for b in boxes) + self.PADDING * s)
        else:
            img_width = int(400 * s)
            img_height = int(300 * s)
        img_width = max(img_width, int(_text_width(self.font_title, title) + 2 * self.PADDING * s))

        img = Image.new("RGBA", (img_width, img_height), _hex_to_rgba(self.theme.background))
        draw = ImageDraw.Draw(img)

        self._draw_title(draw, title, img_width)

        # Connectors first (behind boxes)
        boxes_by_id: dict[str, _Box] = {}
        for box in boxes:
            boxes_by_id.setdefault(box.node.id, box)
        for edge in edges:
            source = boxes_by_id.get(edge.source)
            target = boxes_by_id.get(edge.target)
            if source is None or target is None:
                continue
            self._draw_connector(draw, source, target, edge.label)

        for box in boxes:
            self._draw_entity(draw, box)

        buf = BytesIO()
        img.save(buf, format="PNG", optimize=True)
        png_bytes = buf.getvalue()

        if output_path:
            Path(output_path).write_bytes(png_bytes)

        return png_bytes

    def _draw_title(self, draw: ImageDraw.ImageDraw, title: str, img_width: int):
        """Draw the diagram title centered at the top."""
        tw = _text_width(self.font_title, title)
        x = (img_width - tw) / 2
        draw.text((x, 20 * self.scale), title, fill=self.theme.title_color, font=self.font_title)

    def _route(self, source: _Box, target: _Box) -> list[tuple[float, float]]:
        """Orthogonal elbow route between two boxes.

        Side-by-side boxes are joined right/left edge to edge with a
        horizontal-vertical-horizontal path; boxes stacked in the same
        column are joined bottom/top with a vertical-horizontal-vertical one.
        """
        if source is target:
            # Self reference: loop off the right edge
            loop = 30 * self.scale
            x = source.x + source.width
            y1 = source.y + source.height * 0.35
            y2 = source.y + source.height * 0.65
            return [(x, y1), (x + loop, y1), (x + loop, y2), (x, y2)]

        scx, scy = source.center
        tcx, tcy = target.center

        overlap_x = (source.x < target.x + target.width) and (target.x < source.x + source.width)
        if overlap_x:
            if tcy >= scy:
                start = (scx, source.y + source.height)
                end = (tcx, target.y)
            else:
                start = (scx, source.y)
                end = (tcx, target.y + target.height)
            mid_y = (start[1] + end[1]) / 2
            return [start, (start[0], mid_y), (end[0], mid_y), end]

        if tcx >= scx:
            start = (source.x + source.width, scy)
            end = (target.x, tcy)
        else:
            start = (source.x, scy)
            end = (target.x + target.width, tcy)
        mid_x = (start[0] + end[0]) / 2
        return [start, (mid_x, start[1]), (mid_x, end[1]), end]

    def _draw_connector(
        self,
        draw: ImageDraw.ImageDraw,
        source: _Box,
        target: _Box,
        label: Optional[str],
    ):
        points = self._route(source, target)
        color = self.theme.connector
        width = max(1, int(3 * self.scale))

        for i in range(len(points) - 2):
            draw.line([points[i], points[i + 1]], fill=color, width=width)
        _draw_arrow(draw, points[-2], points[-1], color=color, width=width, arrow_size=int(12 * self.scale))

        if label:
            (x1, y1), (x2, y2) = points[1], points[2]
            draw.text(
                ((x1 + x2) / 2 + 4 * self.scale, (y1 + y2) / 2 + 2 * self.scale),
                label,
                fill=self.theme.connector_label,
                font=self.font_small,
            )

    def _draw_entity(self, draw: ImageDraw.ImageDraw, box: _Box):
        """Draw a single entity box: header band, properties, navigation rows."""
        s = self.scale
        x, y, w, h = box.x, box.y, box.width, box.height
        node = box.node
        entity = node.data if isinstance(node.data, ODataEntityType) else None
        inner_width = w - 2 * self.ROW_PADDING * s

        draw.rounded_rectangle(
            [x, y, x + w, y + h],
            radius=int(self.CORNER_RADIUS * s),
            fill=self.theme.entity_fill,
            outline=self.theme.entity_border,
            width=max(1, int(s)),
        )
        draw.rounded_rectangle(
            [x, y, x + w, y + self.HEADER_HEIGHT * s],
            radius=int(self.CORNER_RADIUS * s),
            fill=self.theme.header_fill,
        )

        text_x = x + self.ROW_PADDING * s
        draw.text(
            (text_x, y + 6 * s),
            _fit_text(self.font_name, node.get_label(), inner_width),
            fill=self.theme.header_text,
            font=self.font_name,
        )
        namespace = entity.namespace if entity and entity.namespace else "No namespace"
        draw.text(
            (text_x, y + 28 * s),
            _fit_text(self.font_small, namespace, inner_width),
            fill=self.theme.namespace_text,
            font=self.font_small,
        )

        properties, navigation = self._member_rows(entity)
        row_y = y + (self.HEADER_HEIGHT + self.ROW_PADDING) * s
        for row in properties:
            draw.text(
                (text_x, row_y),
                _fit_text(self.font_body, row, inner_width),
                fill=self._row_fill(row, self.theme.property_text),
                font=self.font_body,
            )
            row_y += self.ROW_HEIGHT * s

        if properties and navigation:
            row_y += self.SECTION_GAP * s
        for row in navigation:
            draw.text(
                (text_x, row_y),
                _fit_text(self.font_body, row, inner_width),
                fill=self._row_fill(row, self.theme.navigation_text),
                font=self.font_body,
            )
            row_y += self.ROW_HEIGHT * s
