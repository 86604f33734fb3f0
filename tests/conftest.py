"""
Shared test fixtures for ERD-MCP tests.

Provides sample OData metadata documents (v4 single schema, v4 with a
namespace alias, v2) and small node/edge sets for layout tests.
"""

import pytest

from erd_mcp.diagram import MAX_REQUEST_NODES
from erd_mcp.models import EntityEdge, EntityNode, LayoutOptions


SAMPLE_XML = """<?xml version="1.0" encoding="utf-8"?>
<edmx:Edmx Version="4.0" xmlns:edmx="http://docs.oasis-open.org/odata/ns/edmx">
  <edmx:DataServices>
    <Schema Namespace="ODataDemo" xmlns="http://docs.oasis-open.org/odata/ns/edm">
      <EntityType Name="Product">
        <Property Name="ID" Type="Edm.Int32" Nullable="false" />
        <Property Name="Name" Type="Edm.String" />
        <Property Name="Description" Type="Edm.String" />
        <Property Name="ReleaseDate" Type="Edm.DateTimeOffset" />
        <Property Name="DiscontinuedDate" Type="Edm.DateTimeOffset" />
        <Property Name="Rating" Type="Edm.Int16" />
        <Property Name="Price" Type="Edm.Decimal" />
        <NavigationProperty Name="Category" Type="ODataDemo.Category" Partner="Products" />
        <NavigationProperty Name="Supplier" Type="ODataDemo.Supplier" Partner="Products" />
      </EntityType>
      <EntityType Name="Category">
        <Property Name="ID" Type="Edm.Int32" Nullable="false" />
        <Property Name="Name" Type="Edm.String" />
        <NavigationProperty Name="Products" Type="Collection(ODataDemo.Product)" Partner="Category" />
      </EntityType>
      <EntityContainer Name="DemoService">
        <EntitySet Name="Products" EntityType="ODataDemo.Product">
          <NavigationPropertyBinding Path="Category" Target="Categories" />
        </EntitySet>
        <EntitySet Name="Categories" EntityType="ODataDemo.Category" />
        <FunctionImport Name="GetProductsByRating" Function="ODataDemo.GetProductsByRating" />
      </EntityContainer>
    </Schema>
  </edmx:DataServices>
</edmx:Edmx>"""


MULTI_SCHEMA_XML = """<?xml version="1.0" encoding="utf-8"?>
<edmx:Edmx Version="4.0" xmlns:edmx="http://docs.oasis-open.org/odata/ns/edmx">
  <edmx:DataServices>
    <Schema Namespace="Microsoft.OData.SampleService.Models.TripPin" Alias="TripPin"
            xmlns="http://docs.oasis-open.org/odata/ns/edm">
      <EntityType Name="Photo">
        <Property Name="Id" Type="Edm.Int32" Nullable="false" />
        <Property Name="Name" Type="Edm.String" />
      </EntityType>
      <EntityType Name="Person">
        <Property Name="UserName" Type="Edm.String" Nullable="false" />
        <NavigationProperty Name="Friends" Type="Collection(TripPin.Person)" />
        <NavigationProperty Name="Photo" Type="TripPin.Photo" />
      </EntityType>
    </Schema>
    <Schema Namespace="ODataDemo" xmlns="http://docs.oasis-open.org/odata/ns/edm">
      <EntityType Name="Product">
        <Property Name="ID" Type="Edm.Int32" Nullable="false" />
        <Property Name="Name" Type="Edm.String" />
        <NavigationProperty Name="Owner" Type="TripPin.Person" />
      </EntityType>
    </Schema>
  </edmx:DataServices>
</edmx:Edmx>"""


V2_XML = """<?xml version="1.0" encoding="utf-8"?>
<edmx:Edmx Version="1.0" xmlns:edmx="http://schemas.microsoft.com/ado/2007/06/edmx">
  <edmx:DataServices m:DataServiceVersion="2.0"
      xmlns:m="http://schemas.microsoft.com/ado/2007/08/dataservices/metadata">
    <Schema Namespace="NorthwindModel" xmlns="http://schemas.microsoft.com/ado/2008/09/edm">
      <EntityType Name="Order">
        <Key><PropertyRef Name="OrderID" /></Key>
        <Property Name="OrderID" Type="Edm.Int32" Nullable="false" />
        <NavigationProperty Name="Customer" Relationship="NorthwindModel.FK_Orders_Customers"
                            FromRole="Orders" ToRole="Customers" />
      </EntityType>
      <EntityType Name="Customer">
        <Property Name="CustomerID" Type="Edm.String" Nullable="false" />
      </EntityType>
    </Schema>
  </edmx:DataServices>
</edmx:Edmx>"""


def wide_metadata(count: int) -> str:
    """A single-schema document with ``count`` unrelated entity types."""
    entity_types = "".join(
        f'<EntityType Name="Entity{i}"><Property Name="Id" Type="Edm.Int32" /></EntityType>'
        for i in range(count)
    )
    return (
        '<edmx:Edmx Version="4.0" xmlns:edmx="http://docs.oasis-open.org/odata/ns/edmx">'
        '<edmx:DataServices>'
        '<Schema Namespace="Wide" xmlns="http://docs.oasis-open.org/odata/ns/edm">'
        f"{entity_types}"
        "</Schema></edmx:DataServices></edmx:Edmx>"
    )


@pytest.fixture
def sample_xml() -> str:
    return SAMPLE_XML


@pytest.fixture
def multi_schema_xml() -> str:
    return MULTI_SCHEMA_XML


@pytest.fixture
def v2_xml() -> str:
    return V2_XML


@pytest.fixture
def default_options() -> LayoutOptions:
    return LayoutOptions()


@pytest.fixture
def ring_graph() -> tuple[list[EntityNode], list[EntityEdge]]:
    """Six nodes in a ring plus one chord."""
    ids = ["A", "B", "C", "D", "E", "F"]
    nodes = [EntityNode(id=node_id) for node_id in ids]
    edges = [
        EntityEdge(source=ids[i], target=ids[(i + 1) % len(ids)])
        for i in range(len(ids))
    ]
    edges.append(EntityEdge(source="A", target="D"))
    return nodes, edges


@pytest.fixture
def oversized_xml() -> str:
    """One entity type more than the services lay out per request."""
    return wide_metadata(MAX_REQUEST_NODES + 1)
