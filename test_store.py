"""
Tests for the feature store, feature sources and the layer cache.
"""

import json
import threading

import pytest

from feature_query.core.errors import (
    AggregationDecodeError,
    FeatureQueryError,
    SchemaFetchError,
    SearchExecutionError,
)
from feature_query.core.models import (
    LayerConfiguration,
    QueryDescriptor,
    Record,
    SortKey,
    SortOrder,
)
from feature_query.execution.decoding import HitDecoder
from feature_query.orchestrator import FeatureStore
from feature_query.query.filters import BBox, Compare, Predicate
from feature_query.schema.layer_cache import LayerConfigurationCache

from conftest import FakeSearchCapability, make_settings


def test_type_names(store):
    assert store.get_type_names() == ["place"]


def test_type_listing_failure_is_schema_error():
    class Broken(FakeSearchCapability):
        def get_types(self, index_name):
            raise RuntimeError("boom")

    with pytest.raises(SchemaFetchError) as excinfo:
        FeatureStore(Broken(), make_settings())
    assert excinfo.value.index_name == "places"


def test_unknown_feature_source(store):
    with pytest.raises(KeyError):
        store.get_feature_source("nowhere")


def test_schema_inferred_on_first_access(store):
    source = store.get_feature_source("place")
    schema = source.get_schema()
    assert schema.name == "place"
    assert schema.attribute_names[:6] == [
        "_id", "_index", "_type", "_score", "_relative_score", "_aggregation"
    ]
    assert "owner.age" in schema.attribute_names
    assert schema.geometry_descriptor.name == "location.coordinates"
    assert source.layer_configuration.doc_type == "place"


def test_get_features(store):
    query = QueryDescriptor(
        filter=Compare(attribute="count", operator=">=", value=2),
        sort_by=[SortKey(field="count", order=SortOrder.DESC)],
        start_index=1,
        max_features=2,
    )
    with store.get_feature_source("place").get_features(query) as reader:
        records = list(reader)

    request = store.capability.requests[-1]
    assert request.from_ == 1
    assert request.size == 2
    assert request.sort == [("count", "desc")]
    # the fake engine ignores filters and sorting; paging is applied
    assert [record.id for record in records] == ["2", "3"]
    assert records[0].type_name == "place"


def test_count_fully_supported(store):
    source = store.get_feature_source("place")
    assert source.get_count() == 5
    assert source.get_count(QueryDescriptor(max_features=3)) == 3
    assert source.get_count(QueryDescriptor(start_index=4)) == 1
    assert source.get_count(QueryDescriptor(start_index=9)) == 0

    request = store.capability.requests[-1]
    assert request.size == 0
    assert request.from_ is None
    assert request.sort == []


def test_count_with_local_filter(store):
    query = QueryDescriptor(filter=Predicate(function=lambda record: record.get("active")))
    assert store.get_feature_source("place").get_count(query) == 3


def test_bounds(store):
    assert store.get_feature_source("place").get_bounds() == (1.0, 0.5, 5.0, 2.5)


def test_bounds_with_local_spatial_filter(store):
    query = QueryDescriptor(
        filter=BBox(minx=1.5, miny=0.0, maxx=3.5, maxy=3.0)
        & Predicate(function=lambda record: True)
    )
    assert store.get_feature_source("place").get_bounds(query) == (2.0, 1.0, 3.0, 1.5)


def test_bounds_without_geometry():
    capability = FakeSearchCapability(
        mappings={"plain": {"properties": {"name": {"type": "keyword"}}}},
        documents={"plain": [{"_id": "1", "_source": {"name": "a"}}]},
    )
    store = FeatureStore(capability, make_settings())
    assert store.get_feature_source("plain").get_bounds() is None


def test_visit_buckets():
    buckets = [{"key": "s0", "doc_count": 3}, {"key": "s1", "doc_count": 2}]
    capability = FakeSearchCapability(aggregations={"grid": {"buckets": buckets}})
    store = FeatureStore(capability, make_settings(grid_size=100, grid_threshold=0.01))
    aggregation = {"grid": {"geohash_grid": {"field": "location.coordinates"}}}

    result = store.get_feature_source("place").visit_buckets(
        QueryDescriptor(filter=BBox(minx=0, miny=0, maxx=1, maxy=1)),
        json.dumps(aggregation),
        {"term": {"active": True}},
    )

    assert result == buckets
    request = capability.requests[-1]
    assert request.size == 0
    assert request.aggregations["grid"]["geohash_grid"]["precision"] == 4
    assert {"term": {"active": True}} in request.query["bool"]["must"]


def test_visit_buckets_decode_failure(monkeypatch):
    capability = FakeSearchCapability(aggregations={"grid": {"buckets": [{"key": "a"}]}})
    store = FeatureStore(capability, make_settings())

    def broken_bucket(self, bucket, position=0):
        return Record(id="place.0", type_name="place", values={"_aggregation": b"{not json"})

    monkeypatch.setattr(HitDecoder, "decode_bucket", broken_bucket)
    with pytest.raises(AggregationDecodeError) as excinfo:
        store.get_feature_source("place").visit_buckets(
            aggregation_definition={"grid": {"geohash_grid": {"field": "location.coordinates"}}}
        )
    assert excinfo.value.type_name == "place"
    assert isinstance(excinfo.value.__cause__, ValueError)


def test_malformed_hint_is_search_error(store):
    """Hint text that is not a JSON object fails as a search error."""
    source = store.get_feature_source("place")
    with pytest.raises(SearchExecutionError) as excinfo:
        source.visit_buckets(aggregation_definition="{bad json")
    assert isinstance(excinfo.value, FeatureQueryError)
    assert excinfo.value.index_name == "places"
    assert excinfo.value.type_name == "place"
    assert isinstance(excinfo.value.__cause__, ValueError)

    query = QueryDescriptor(hints={"aggregation": {"q": "{bad"}})
    with pytest.raises(SearchExecutionError):
        source.get_features(query)
    with pytest.raises(SearchExecutionError):
        source.get_count(query)
    with pytest.raises(SearchExecutionError):
        source.visit_buckets(query_definition="[1, 2]")


def test_new_layer_over_existing_type(store):
    """A layer may expose a source type under another name and attribute set."""
    attributes = store.get_attributes("place")
    for attribute in attributes:
        if attribute.name == "description":
            attribute.use = False
        if attribute.name == "owner.name":
            attribute.custom_name = "owner_name"
    store.set_layer_configuration(
        LayerConfiguration(doc_type="place", layer_name="people", attributes=attributes)
    )

    assert store.get_type_names() == ["place", "people"]
    source = store.get_feature_source("people")
    assert source.doc_type == "place"
    schema = source.get_schema()
    assert "description" not in schema.attribute_names
    assert schema.get_descriptor("owner_name").full_name == "owner.name"

    with source.get_features(QueryDescriptor(max_features=1)) as reader:
        record = next(reader)
    assert record.type_name == "people"
    assert record.get("owner_name") == "owner 1"


def test_update_layer_configuration(store):
    def hide_rating(configuration):
        configuration.find_attribute("rating").use = False

    updated = store.update_layer_configuration("place", hide_rating)
    assert updated.find_attribute("rating").use is False
    assert "rating" not in store.get_feature_source("place").get_schema().attribute_names


def test_update_renames_layer(store):
    def rename(configuration):
        configuration.layer_name = "sites"

    store.update_layer_configuration("place", rename)
    assert "sites" in store.get_type_names()
    assert store.get_feature_source("sites").doc_type == "place"


def test_store_context_manager_closes_capability(capability):
    with FeatureStore(capability, make_settings()):
        pass
    assert capability.closed


def test_cache_returns_copies():
    cache = LayerConfigurationCache()
    cache.put(LayerConfiguration(doc_type="place", attributes=[]))

    copy = cache.get("place")
    copy.layer_name = "changed"
    assert cache.get("place").layer_name == "place"
    assert cache.names() == ["place"]
    assert "place" in cache
    assert cache.get("other") is None


def test_cache_update_missing_layer():
    with pytest.raises(KeyError):
        LayerConfigurationCache().update("missing", lambda configuration: None)


def test_concurrent_first_access_publishes_one_value():
    """Racing creators all observe the first published configuration."""
    cache = LayerConfigurationCache()
    barrier = threading.Barrier(8)
    results = []
    lock = threading.Lock()

    def create(i):
        def factory():
            barrier.wait()
            return LayerConfiguration(doc_type=f"type-{i}", layer_name="layer")

        configuration = cache.get_or_create("layer", factory)
        with lock:
            results.append(configuration.doc_type)

    threads = [threading.Thread(target=create, args=(i,)) for i in range(8)]
    for thread in threads:
        thread.start()
    for thread in threads:
        thread.join()

    assert len(results) == 8
    assert len(set(results)) == 1
