"""
Data models for ERD-MCP: entity diagrams and their layout.

There are two families of records in this module:

    OData schema records: what an uploaded ``$metadata`` document contains
    Layout records: what the layout engine consumes and produces

The OData side mirrors the CSDL document structure:

    ODataSchema
    ├── ODataEntityType
    │   ├── ODataProperty
    │   └── ODataNavigationProperty
    └── EntityContainer (flattened onto the schema)
        ├── ODataEntitySet
        │   └── NavigationPropertyBinding
        └── ODataFunctionImport

The layout side is deliberately small: an ``EntityNode`` per box, an
``EntityEdge`` per arrow, and ``LayoutOptions`` to tune the simulation.
Nodes carry an opaque ``data`` payload (usually the ``ODataEntityType`` the
box represents) that the layout algorithm never looks at.
"""

from __future__ import annotations
from typing import Any, Optional
from pydantic import BaseModel, Field


# ---------------------------------------------------------------------------
# OData schema records
# ---------------------------------------------------------------------------

class ODataProperty(BaseModel):
    """A structural property of an entity type (``<Property>``)."""
    name: str
    type: str
    nullable: bool = True


class ODataNavigationProperty(BaseModel):
    """A reference from one entity type to another (``<NavigationProperty>``).

    ``type`` is kept exactly as written in the document. It may be a
    ``Collection(...)`` wrapper and may use a namespace alias.  Use
    ``ODataMetadataParser.expand_type_reference`` to normalize it.
    """
    name: str
    type: str
    partner: Optional[str] = None


class ODataEntityType(BaseModel):
    """An entity type, stamped with the namespace of its schema.

    The fully-qualified name (``Namespace.Name``) is what identifies the
    entity type across schemas and is used as the diagram node id.
    """
    name: str
    namespace: Optional[str] = None
    properties: list[ODataProperty] = Field(default_factory=list)
    navigation_properties: list[ODataNavigationProperty] = Field(default_factory=list)

    @property
    def full_name(self) -> str:
        """``Namespace.Name`` if a namespace is known, otherwise ``Name``."""
        return f"{self.namespace}.{self.name}" if self.namespace else self.name


class NavigationPropertyBinding(BaseModel):
    path: str
    target: str


class ODataEntitySet(BaseModel):
    """An entity set declared in an entity container."""
    name: str
    entity_type: str
    navigation_property_bindings: list[NavigationPropertyBinding] = Field(default_factory=list)


class ODataFunctionImport(BaseModel):
    name: str
    function: str


class ODataSchema(BaseModel):
    """A single ``<Schema>`` element.

    A document may carry several schemas; an ``Alias`` lets type references
    in other schemas use a short prefix instead of the full namespace.
    The entity container, if the schema has one, is flattened onto the
    schema as ``container_name`` + ``entity_sets`` + ``function_imports``.
    """
    namespace: Optional[str] = None
    alias: Optional[str] = None
    entity_types: list[ODataEntityType] = Field(default_factory=list)
    container_name: Optional[str] = None
    entity_sets: list[ODataEntitySet] = Field(default_factory=list)
    function_imports: list[ODataFunctionImport] = Field(default_factory=list)

    @property
    def has_container(self) -> bool:
        return self.container_name is not None


# ---------------------------------------------------------------------------
# Layout records
# ---------------------------------------------------------------------------

# Approximate box size of an entity in the diagram
DEFAULT_NODE_WIDTH = 350.0
DEFAULT_NODE_HEIGHT = 100.0


class EntityNode(BaseModel):
    """A box on the diagram.

    Position
    --------
    ``x`` and ``y`` are mutable; the layout engine overwrites them.  After
    a layout with at least one iteration, ``x - padding`` and
    ``y - padding`` are integer multiples of the grid size.

    Size
    ----
    ``width`` and ``height`` describe the box for renderers.  The force
    simulation treats every node as a point and ignores them.

    Payload
    -------
    ``data`` is opaque to the layout.  The diagram builder stores the
    ``ODataEntityType`` here so the renderer can draw its members.
    """
    id: str
    x: float = 0.0
    y: float = 0.0
    width: float = DEFAULT_NODE_WIDTH
    height: float = DEFAULT_NODE_HEIGHT
    data: Any = None

    def get_label(self) -> str:
        """Short display name: the entity name if known, otherwise the id."""
        if isinstance(self.data, ODataEntityType):
            return self.data.name
        return self.id


class EntityEdge(BaseModel):
    """A directed edge ``source -> target`` between node ids.

    ``label`` is informational (the navigation property name); edges that
    reference unknown node ids are tolerated by the layout.
    """
    source: str
    target: str
    label: Optional[str] = None


class LayoutOptions(BaseModel):
    """Tuning knobs for the orthogonal force-directed layout.

    Attributes:
        grid_size:      Lattice spacing; also the base unit for every force.
        padding:        Minimum x and y of the finished layout.
        max_iterations: Number of simulate + snap rounds.
        temperature:    Initial force multiplier.
        cooling_factor: Multiplicative temperature decay per round.

    A non-positive ``grid_size`` or a negative ``max_iterations`` is
    rejected with ``pydantic.ValidationError`` when the options are built.
    """
    grid_size: float = Field(default=100.0, gt=0)
    padding: float = 50.0
    max_iterations: int = Field(default=100, ge=0)
    temperature: float = 100.0
    cooling_factor: float = 0.95
