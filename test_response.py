"""
Tests for response normalization and hit decoding.
"""

import json
from datetime import datetime

import pytest
from shapely.geometry import Point, Polygon

from feature_query.core.config import ArrayEncoding
from feature_query.core.models import (
    Attribute,
    AttributeType,
    GeometryKind,
    Hit,
    NativeResponse,
)
from feature_query.execution.decoding import HitDecoder, parse_point, parse_shape, read_field
from feature_query.schema.feature_type_builder import FeatureTypeBuilder
from feature_query.schema.walker import MappingWalker

from conftest import MAPPING, make_documents


@pytest.fixture
def feature_type():
    attributes = MappingWalker().walk(MAPPING)
    attributes.append(
        Attribute(
            name="area", type=AttributeType.GEO_SHAPE, srid=4326, geometry_kind=GeometryKind.SHAPE
        )
    )
    attributes.append(Attribute(name="tags", type=AttributeType.STRING))
    return FeatureTypeBuilder(attributes, "place").build()


def test_response_from_raw():
    raw = {
        "_scroll_id": "abc",
        "hits": {
            "total": {"value": 12, "relation": "eq"},
            "max_score": 2.0,
            "hits": make_documents(2),
        },
        "aggregations": {"grid": {"buckets": [{"key": "u4", "doc_count": 3}]}},
    }
    response = NativeResponse.from_raw(raw)
    assert response.total_hits == 12
    assert response.max_score == 2.0
    assert response.num_hits == 2
    assert response.hits[0].id == "1"
    assert response.aggregations["grid"].buckets == [{"key": "u4", "doc_count": 3}]
    assert response.scroll_id == "abc"
    assert "hits=2" in str(response)
    assert "numBuckets=1" in str(response)


def test_response_legacy_total_and_missing_parts():
    response = NativeResponse.from_raw({"hits": {"total": 3, "hits": []}})
    assert response.total_hits == 3
    assert response.max_score == 0.0
    assert response.aggregations is None
    assert response.scroll_id is None


def test_decode_hit(feature_type):
    """Hit metadata and source values are decoded into typed values."""
    hit = Hit.model_validate(make_documents(2)[1])
    record = HitDecoder(feature_type, max_score=4.0).decode(hit)

    assert record.id == "2"
    assert record.type_name == "place"
    assert record.get("_id") == "2"
    assert record.get("_index") == "places"
    assert record.get("_score") == 2.0
    assert record.get("_relative_score") == 0.5
    assert record.get("_aggregation") is None
    assert record.get("name") == "place 2"
    assert record.get("count") == 2
    assert record.get("rating") == 1.0
    assert record.get("active") is False
    assert record.get("created") == datetime(2020, 1, 2)
    assert record.get("location.coordinates") == Point(2.0, 1.0)
    assert record.get("owner.name") == "owner 2"
    assert record.get("area") is None


def test_stored_fields_take_precedence(feature_type):
    hit = Hit.model_validate(
        {"_id": "x", "fields": {"name": ["stored"]}, "_source": {"name": "source"}}
    )
    record = HitDecoder(feature_type).decode(hit)
    assert record.get("name") == "stored"


def test_missing_identifier_gets_generated_id(feature_type):
    record = HitDecoder(feature_type).decode(Hit(source={"name": "a"}), 3)
    assert record.id == "place.3"


def test_array_encoding(feature_type):
    """CSV encoding joins url-encoded string elements."""
    hit = Hit.model_validate({"_id": "1", "_source": {"tags": ["a b", "c,d"]}})
    json_record = HitDecoder(feature_type, array_encoding=ArrayEncoding.JSON).decode(hit)
    assert json_record.get("tags") == ["a b", "c,d"]

    csv_record = HitDecoder(feature_type, array_encoding=ArrayEncoding.CSV).decode(hit)
    assert csv_record.get("tags") == "a%20b,c%2Cd"


def test_unconvertible_value_is_none(feature_type):
    hit = Hit.model_validate({"_id": "1", "_source": {"count": "many"}})
    assert HitDecoder(feature_type).decode(hit).get("count") is None


def test_decode_bucket(feature_type):
    bucket = {"key": "u4pr", "doc_count": 7}
    record = HitDecoder(feature_type).decode_bucket(bucket, 1)
    assert record.id == "place.1"
    assert json.loads(record.get("_aggregation")) == bucket
    assert record.get("name") is None


@pytest.mark.parametrize(
    "value",
    [
        "2.5,1.5",
        [1.5, 2.5],
        {"lat": 2.5, "lon": 1.5},
        {"type": "Point", "coordinates": [1.5, 2.5]},
        "POINT (1.5 2.5)",
        [[1.5, 2.5], [3.0, 4.0]],
    ],
)
def test_parse_point_forms(value):
    assert parse_point(value) == Point(1.5, 2.5)


def test_parse_point_geohash():
    point = parse_point("u4pruydqqvj")
    assert point.y == pytest.approx(57.64911, abs=1e-4)
    assert point.x == pytest.approx(10.40744, abs=1e-4)


def test_parse_shapes():
    polygon = {"type": "polygon", "coordinates": [[[0, 0], [1, 0], [1, 1], [0, 0]]]}
    assert isinstance(parse_shape(polygon), Polygon)
    envelope = parse_shape({"type": "envelope", "coordinates": [[0, 2], [3, 1]]})
    assert envelope.bounds == (0.0, 1.0, 3.0, 2.0)
    assert parse_shape("POINT (1 2)") == Point(1, 2)


def test_read_field():
    document = {
        "a": {"b": [{"c": 1}, {"c": 2}, {"d": 3}]},
        "x.y": "dotted",
    }
    assert read_field(document, "a.b.c") == [1, 2]
    assert read_field(document, "x.y") == "dotted"
    assert read_field(document, "a.missing") is None
    assert read_field(None, "a") is None


def test_lat_lon_geo_point_read_from_parent():
    attributes = MappingWalker().walk(
        {"pos": {"properties": {"lat": {"type": "double"}, "lon": {"type": "double"}}}}
    )
    feature_type = FeatureTypeBuilder(attributes, "t").build()
    hit = Hit.model_validate({"_id": "1", "_source": {"pos": {"lat": 1.0, "lon": 2.0}}})
    assert HitDecoder(feature_type).decode(hit).get("pos.coordinates") == Point(2.0, 1.0)
