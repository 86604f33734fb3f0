"""OData ``$metadata`` parser for ERD-MCP.

Reads an EDMX/CSDL document and exposes its schemas, entity types, entity
sets and function imports as pydantic records.

Elements are matched by local name, so the same code reads OData v4
(``http://docs.oasis-open.org/odata/ns/edm``) as well as the older v2/v3
Microsoft namespaces.
"""

from __future__ import annotations

import logging
import re
from pathlib import Path
from typing import Optional

from lxml import etree

from .models import (
    NavigationPropertyBinding,
    ODataEntitySet,
    ODataEntityType,
    ODataFunctionImport,
    ODataNavigationProperty,
    ODataProperty,
    ODataSchema,
)

logger = logging.getLogger(__name__)

COLLECTION_PREFIX = "Collection("

# Uploaded documents are untrusted
_XML_PARSER = etree.XMLParser(resolve_entities=False, no_network=True, encoding="utf-8")

# Input arrives as decoded text and is re-encoded as UTF-8, so the encoding
# named in the declaration no longer applies
_XML_DECLARATION = re.compile(r"^\s*<\?xml[^>]*\?>")

MISSING_ELEMENTS_ERROR = (
    "Invalid OData metadata: Missing required elements "
    "(edmx:Edmx, edmx:DataServices, or Schema)"
)


def _local(element) -> str:
    return etree.QName(element).localname


def _children(element, name: str) -> list:
    """Direct child elements with the given local name."""
    return [
        child for child in element
        if isinstance(child.tag, str) and _local(child) == name
    ]


def _child(element, name: str):
    found = _children(element, name)
    return found[0] if found else None


def strip_collection(type_reference: str) -> str:
    """``Collection(NS.Type)`` -> ``NS.Type``; other references unchanged."""
    if type_reference.startswith(COLLECTION_PREFIX) and type_reference.endswith(")"):
        return type_reference[len(COLLECTION_PREFIX):-1]
    return type_reference


def get_full_entity_type_name(entity_type: ODataEntityType) -> str:
    return entity_type.full_name


class ODataMetadataParser:
    """Parses an OData metadata document and answers questions about it.

    The parser can be built empty and fed later through ``parse_metadata``;
    each call replaces the previously parsed document.
    """

    def __init__(self, xml_string: Optional[str] = None):
        self.schemas: list[ODataSchema] = []
        self.namespace_aliases: dict[str, str] = {}
        if xml_string is not None:
            self.parse_metadata(xml_string)

    # --- Parsing ---

    def parse_metadata(self, xml_string: str) -> list[ODataSchema]:
        """Parse an OData metadata XML string.

        Raises:
            ValueError: If the input is empty, is not well-formed XML, or
                lacks the ``Edmx/DataServices/Schema`` structure.
        """
        if not xml_string or not isinstance(xml_string, str):
            raise ValueError("Invalid input: XML string is required")

        try:
            body = _XML_DECLARATION.sub("", xml_string.lstrip("\ufeff"), count=1)
            root = etree.fromstring(body.encode("utf-8"), parser=_XML_PARSER)
        except etree.XMLSyntaxError as e:
            raise ValueError(f"Failed to parse XML: {e}") from e

        if _local(root) != "Edmx":
            raise ValueError(MISSING_ELEMENTS_ERROR)
        data_services = _child(root, "DataServices")
        if data_services is None:
            raise ValueError(MISSING_ELEMENTS_ERROR)
        schema_elements = _children(data_services, "Schema")
        if not schema_elements:
            raise ValueError(MISSING_ELEMENTS_ERROR)

        schemas = []
        aliases: dict[str, str] = {}
        for schema_el in schema_elements:
            schema = self._parse_schema(schema_el)
            if schema.namespace and schema.alias:
                aliases[schema.alias] = schema.namespace
            schemas.append(schema)

        self.schemas = schemas
        self.namespace_aliases = aliases

        logger.debug(
            f"Parsed {len(schemas)} schemas with "
            f"{len(self.entity_types)} entity types"
        )
        return schemas

    def _parse_schema(self, schema_el) -> ODataSchema:
        namespace = schema_el.get("Namespace")
        schema = ODataSchema(namespace=namespace, alias=schema_el.get("Alias"))

        for type_el in _children(schema_el, "EntityType"):
            schema.entity_types.append(_parse_entity_type(type_el, namespace))

        container_el = _child(schema_el, "EntityContainer")
        if container_el is not None:
            schema.container_name = container_el.get("Name", "")
            for set_el in _children(container_el, "EntitySet"):
                schema.entity_sets.append(ODataEntitySet(
                    name=set_el.get("Name", ""),
                    entity_type=set_el.get("EntityType", ""),
                    navigation_property_bindings=[
                        NavigationPropertyBinding(
                            path=binding.get("Path", ""),
                            target=binding.get("Target", ""),
                        )
                        for binding in _children(set_el, "NavigationPropertyBinding")
                    ],
                ))
            for func_el in _children(container_el, "FunctionImport"):
                schema.function_imports.append(ODataFunctionImport(
                    name=func_el.get("Name", ""),
                    function=func_el.get("Function", ""),
                ))

        return schema

    # --- Queries ---

    @property
    def entity_types(self) -> list[ODataEntityType]:
        """Every entity type across all schemas, in document order."""
        types: list[ODataEntityType] = []
        for schema in self.schemas:
            types.extend(schema.entity_types)
        return types

    def get_entity_types(self) -> list[ODataEntityType]:
        return self.entity_types

    def _container_schema(self) -> Optional[ODataSchema]:
        for schema in self.schemas:
            if schema.has_container:
                return schema
        return None

    def get_entity_sets(self) -> list[ODataEntitySet]:
        """Entity sets of the first schema that declares an entity container."""
        schema = self._container_schema()
        return list(schema.entity_sets) if schema else []

    def get_function_imports(self) -> list[ODataFunctionImport]:
        schema = self._container_schema()
        return list(schema.function_imports) if schema else []

    def expand_type_reference(self, type_reference: str) -> str:
        """Expand a namespace alias in a type reference.

        ``Collection(...)`` wrappers are preserved and their inner type is
        expanded.  Only two-part references (``Alias.Type``) whose prefix is
        a known alias are rewritten; everything else is returned unchanged.
        """
        inner = strip_collection(type_reference)
        if inner != type_reference:
            return f"{COLLECTION_PREFIX}{self.expand_type_reference(inner)})"

        parts = type_reference.split(".")
        if len(parts) == 2:
            alias, type_name = parts
            if alias in self.namespace_aliases:
                return f"{self.namespace_aliases[alias]}.{type_name}"

        return type_reference


def _parse_entity_type(type_el, namespace: Optional[str]) -> ODataEntityType:
    """Parse a single ``<EntityType>`` element."""
    properties = [
        ODataProperty(
            name=prop.get("Name", ""),
            type=prop.get("Type", ""),
            nullable=prop.get("Nullable", "true").lower() != "false",
        )
        for prop in _children(type_el, "Property")
    ]

    # v2/v3 navigation properties without a Type attribute (Relationship /
    # ToRole) cannot be resolved to a target type and are left out
    navigation_properties = [
        ODataNavigationProperty(
            name=nav.get("Name", ""),
            type=nav.get("Type"),
            partner=nav.get("Partner"),
        )
        for nav in _children(type_el, "NavigationProperty")
        if nav.get("Type")
    ]

    return ODataEntityType(
        name=type_el.get("Name", ""),
        namespace=namespace,
        properties=properties,
        navigation_properties=navigation_properties,
    )


def parse_file(path: str) -> ODataMetadataParser:
    """Parse an OData metadata file from disk."""
    content = Path(path).read_text(encoding="utf-8")
    return ODataMetadataParser(content)
