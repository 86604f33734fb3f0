"""
Theme definitions for ERD-MCP.

Provides dark and light color palettes for rendering entity diagrams.
Each theme defines colors for:
- Diagram background and title
- Entity boxes (body, header band, border, namespace line)
- Member rows (properties, navigation properties, "N more" summaries)
- Connectors and their labels
"""

from __future__ import annotations
from dataclasses import dataclass


@dataclass
class ThemePalette:
    """Color palette for a theme."""

    # Diagram
    background: str
    title_color: str

    # Entity boxes
    entity_fill: str
    entity_border: str
    header_fill: str
    header_text: str
    namespace_text: str

    # Member rows
    property_text: str
    navigation_text: str
    muted_text: str

    # Connectors
    connector: str
    connector_label: str


# Catppuccin Mocha (dark theme) - default
DARK_THEME = ThemePalette(
    background="#11111b",
    title_color="#cdd6f4",
    entity_fill="#1e1e2e",
    entity_border="#45475a",
    header_fill="#f39930",
    header_text="#11111b",
    namespace_text="#313244",
    property_text="#cdd6f4",
    navigation_text="#89b4fa",
    muted_text="#6c7086",
    connector="#1da9f5",
    connector_label="#a6adc8",
)


# Light theme - clean white background with darker accents
LIGHT_THEME = ThemePalette(
    background="#ffffff",
    title_color="#1e1e2e",
    entity_fill="#f8f9fa",
    entity_border="#dee2e6",
    header_fill="#f39930",
    header_text="#1e1e2e",
    namespace_text="#495057",
    property_text="#1e1e2e",
    navigation_text="#1e66f5",
    muted_text="#6c6f85",
    connector="#1da9f5",
    connector_label="#495057",
)


# Theme registry
THEMES: dict[str, ThemePalette] = {
    "dark": DARK_THEME,
    "light": LIGHT_THEME,
}


def get_theme(name: str) -> ThemePalette:
    """Get a theme palette by name.

    Args:
        name: Theme name ("dark" or "light")

    Returns:
        ThemePalette for the requested theme

    Raises:
        ValueError: If theme name is not recognized
    """
    if name not in THEMES:
        valid = ", ".join(THEMES.keys())
        raise ValueError(f"Unknown theme '{name}'. Valid themes: {valid}")
    return THEMES[name]
