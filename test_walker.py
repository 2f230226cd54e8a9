"""
Tests for schema inference over mapping metadata.
"""

from feature_query.core.models import (
    SYNTHETIC_ATTRIBUTES,
    AttributeType,
    GeometryKind,
)
from feature_query.schema.type_mappings import TypeMapper
from feature_query.schema.walker import (
    ContainerNode,
    GeoPointNode,
    LeafNode,
    MappingWalker,
    parse_mapping,
)

from conftest import MAPPING


def by_name(attributes):
    return {attribute.name: attribute for attribute in attributes}


def test_empty_mapping_yields_synthetic_attributes():
    """An empty mapping still has the synthetic attributes, in order."""
    attributes = MappingWalker().walk({})
    assert [a.name for a in attributes] == list(SYNTHETIC_ATTRIBUTES)
    assert attributes[-1].type == AttributeType.BINARY

    attributes = MappingWalker().walk({"properties": {}})
    assert [a.name for a in attributes] == list(SYNTHETIC_ATTRIBUTES)


def test_synthetic_attributes_come_first():
    """Synthetic attributes precede mapped fields for any mapping."""
    attributes = MappingWalker().walk(MAPPING)
    names = [a.name for a in attributes]
    assert names[: len(SYNTHETIC_ATTRIBUTES)] == list(SYNTHETIC_ATTRIBUTES)
    assert by_name(attributes)["_score"].type == AttributeType.FLOAT
    assert by_name(attributes)["_relative_score"].type == AttributeType.FLOAT


def test_keyword_and_geo_point_scenario():
    """A keyword leaf and a geo_point leaf map to String and GeoPoint."""
    attributes = MappingWalker().walk(
        {"a": {"type": "keyword"}, "b": {"type": "geo_point"}}
    )
    assert [a.name for a in attributes] == list(SYNTHETIC_ATTRIBUTES) + ["a", "b"]

    a = by_name(attributes)["a"]
    assert a.type == AttributeType.STRING
    assert a.analyzed is False

    b = by_name(attributes)["b"]
    assert b.type == AttributeType.GEO_POINT
    assert b.srid == 4326
    assert b.geometry_kind == GeometryKind.POINT


def test_text_fields_are_analyzed():
    attributes = by_name(MappingWalker().walk(MAPPING))
    assert attributes["description"].analyzed is True
    assert attributes["name"].analyzed is False


def test_geo_point_container_yields_single_attribute():
    """A coordinates container collapses into one GeoPoint attribute."""
    attributes = MappingWalker().walk(MAPPING)
    geo = [a for a in attributes if a.name.startswith("location")]
    assert len(geo) == 1
    assert geo[0].name == "location.coordinates"
    assert geo[0].type == AttributeType.GEO_POINT
    assert geo[0].srid == 4326


def test_lat_lon_container_yields_single_attribute():
    """Numeric lat/lon leaves are a geo point, not two numbers."""
    mapping = {
        "position": {
            "properties": {"lat": {"type": "double"}, "lon": {"type": "double"}}
        }
    }
    attributes = MappingWalker().walk(mapping)
    mapped = [a for a in attributes if a.name not in SYNTHETIC_ATTRIBUTES]
    assert len(mapped) == 1
    assert mapped[0].name == "position.coordinates"
    assert mapped[0].type == AttributeType.GEO_POINT


def test_lat_lon_strings_are_not_a_geo_point():
    mapping = {
        "place": {
            "properties": {"lat": {"type": "keyword"}, "lon": {"type": "keyword"}}
        }
    }
    names = [a.name for a in MappingWalker().walk(mapping)]
    assert "place.lat" in names
    assert "place.lon" in names


def test_nested_flag_propagates_downward_only():
    """Leaves under a nested container are nested; siblings are not."""
    mapping = {
        "properties": {
            "top": {"type": "keyword"},
            "group": {
                "type": "nested",
                "properties": {
                    "inner": {"type": "keyword"},
                    "deeper": {"properties": {"leaf": {"type": "long"}}},
                },
            },
            "plain": {"properties": {"child": {"type": "keyword"}}},
        }
    }
    attributes = by_name(MappingWalker().walk(mapping))
    assert attributes["group.inner"].nested is True
    assert attributes["group.deeper.leaf"].nested is True
    assert attributes["top"].nested is False
    assert attributes["plain.child"].nested is False
    assert attributes["group.deeper.leaf"].nested_paths == ["group"]
    assert attributes["top"].nested_paths == []
    assert not any(a.nested for a in attributes.values() if not a.name.startswith("group."))


def test_date_format_scenario():
    """Unparsable date formats are dropped."""
    mapping = {"when": {"type": "date", "format": "yyyy-MM-dd||epoch_millis"}}
    attribute = by_name(MappingWalker().walk(mapping))["when"]
    assert attribute.type == AttributeType.DATE
    assert attribute.date_formats == ["yyyy-MM-dd"]


def test_date_without_valid_format_uses_default():
    mapping = {
        "a": {"type": "date"},
        "b": {"type": "date", "format": "epoch_second"},
    }
    attributes = by_name(MappingWalker().walk(mapping))
    assert attributes["a"].date_formats == ["date_optional_time"]
    assert attributes["b"].date_formats == ["date_optional_time"]


def test_named_date_formats_are_kept():
    mapping = {"a": {"type": "date", "format": "strict_date_optional_time||date"}}
    attribute = by_name(MappingWalker().walk(mapping))["a"]
    assert attribute.date_formats == ["strict_date_optional_time", "date"]


def test_unknown_types_are_dropped():
    """Unsupported leaf types are silently left out."""
    mapping = {
        "ip": {"type": "ip"},
        "range": {"type": "integer_range"},
        "kept": {"type": "long"},
    }
    names = [a.name for a in MappingWalker().walk(mapping)]
    assert "ip" not in names
    assert "range" not in names
    assert "kept" in names


def test_timestamp_meta_field():
    mapping = {
        "_timestamp": {"enabled": True},
        "properties": {"name": {"type": "keyword"}},
    }
    attributes = MappingWalker().walk(mapping)
    names = [a.name for a in attributes]
    assert names.index("_timestamp") == len(SYNTHETIC_ATTRIBUTES)
    assert by_name(attributes)["_timestamp"].type == AttributeType.DATE


def test_stored_flag():
    mapping = {"a": {"type": "keyword", "store": True}, "b": {"type": "keyword"}}
    attributes = by_name(MappingWalker().walk(mapping))
    assert attributes["a"].stored is True
    assert attributes["b"].stored is False


def test_types_are_compatible_with_leaf_types():
    """Every attribute type round-trips to the same attribute type."""
    mapping = {
        name: {"type": es_type}
        for name, es_type in (
            ("s", "keyword"),
            ("t", "text"),
            ("i", "integer"),
            ("sh", "short"),
            ("l", "long"),
            ("f", "float"),
            ("hf", "half_float"),
            ("d", "double"),
            ("bo", "boolean"),
            ("dt", "date"),
            ("gp", "geo_point"),
            ("gs", "geo_shape"),
            ("bi", "binary"),
        )
    }
    for attribute in MappingWalker().walk(mapping):
        if attribute.name in mapping:
            assert attribute.type == TypeMapper.to_attribute_type(mapping[attribute.name]["type"])
        canonical = TypeMapper.to_es_type(attribute.type)
        assert TypeMapper.to_attribute_type(canonical) == attribute.type


def test_mapping_tree_nodes():
    """The mapping document is parsed into container, leaf and geo point nodes."""
    nodes, timestamp = parse_mapping(MAPPING)
    kinds = {node.name: type(node) for node in nodes}
    assert kinds["name"] is LeafNode
    assert kinds["location"] is GeoPointNode
    assert kinds["owner"] is ContainerNode
    assert timestamp is None

    owner = next(node for node in nodes if node.name == "owner")
    assert owner.declared_type == "nested"
    assert [child.name for child in owner.children] == ["name", "age"]
