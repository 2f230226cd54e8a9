"""
Per-type feature access: schema, records, counts, bounds and buckets.
"""

import json
import logging
from typing import TYPE_CHECKING, Any, Dict, List, Optional, Union

from feature_query.core.errors import AggregationDecodeError, SearchExecutionError
from feature_query.core.models import (
    AGGREGATION,
    AGGREGATION_HINT,
    FeatureType,
    LayerConfiguration,
    QueryDescriptor,
)
from feature_query.execution.readers import (
    BaseRecordReader,
    FilteringRecordReader,
    RecordReader,
    ScrollRecordReader,
)
from feature_query.query.geohash import Envelope
from feature_query.query.translator import (
    AGGREGATION_DEFINITION,
    QUERY_DEFINITION,
    TranslationResult,
)
from feature_query.schema.feature_type_builder import FeatureTypeBuilder

if TYPE_CHECKING:
    from feature_query.orchestrator import FeatureStore

logger = logging.getLogger(__name__)


class FeatureSource:
    """
    Feature access for one layer of a feature store.

    The layer configuration is created from the inferred schema on first
    access and shared through the store's cache.
    """

    def __init__(self, store: "FeatureStore", layer_name: str):
        """
        Initialize feature source.

        Args:
            store: Owning feature store
            layer_name: Layer (display) name
        """
        self.store = store
        self.layer_name = layer_name
        store.get_layer_configuration(layer_name)

    @property
    def layer_configuration(self) -> LayerConfiguration:
        return self.store.get_layer_configuration(self.layer_name)

    @property
    def doc_type(self) -> str:
        return self.store.get_doc_type(self.layer_name)

    def get_schema(self) -> FeatureType:
        """Build the feature type from the current layer configuration."""
        return FeatureTypeBuilder(self.layer_configuration.attributes, self.layer_name).build()

    def _translate(
        self,
        query: QueryDescriptor,
        feature_type: FeatureType,
        layer_config: LayerConfiguration,
    ) -> TranslationResult:
        try:
            return self.store.translator.translate(query, feature_type, layer_config)
        except ValueError as e:
            logger.error("Error building query for %s: %s", self.layer_name, e)
            raise SearchExecutionError(
                f"Error executing query search: {e}", self.store.index_name, self.doc_type
            ) from e

    def get_features(self, query: Optional[QueryDescriptor] = None) -> BaseRecordReader:
        """
        Run a query and return a reader over the matching records.

        Partially supported filters are completed by a local post filter.
        The caller should close the reader (or use it as a context manager)
        if it is not consumed to the end.
        """
        query = query or QueryDescriptor()
        settings = self.store.settings
        layer_config = self.layer_configuration
        feature_type = FeatureTypeBuilder(layer_config.attributes, self.layer_name).build()

        translation = self._translate(query, feature_type, layer_config)
        response = self.store.executor.search(self.doc_type, translation.request)

        reader: BaseRecordReader
        if translation.cursor_mode:
            reader = ScrollRecordReader(
                self.store.capability,
                response,
                feature_type,
                max_features=self.store.translator.get_size(query),
                scroll_time=settings.scroll_time,
                type_name=self.layer_name,
                array_encoding=settings.array_encoding,
                index_name=self.store.index_name,
            )
        else:
            reader = RecordReader(
                response, feature_type, self.layer_name, settings.array_encoding
            )

        if not translation.fully_supported:
            reader = FilteringRecordReader(
                reader, query.filter, _aggregation_attribute(feature_type)
            )
        return reader

    def get_count(self, query: Optional[QueryDescriptor] = None) -> int:
        """
        Count the records matching a query.

        Partially supported filters are counted by reading every record.
        """
        query = query or QueryDescriptor()
        layer_config = self.layer_configuration
        feature_type = FeatureTypeBuilder(layer_config.attributes, self.layer_name).build()
        translation = self._translate(query, feature_type, layer_config)

        if not translation.fully_supported:
            with self.get_features(query) as reader:
                return sum(1 for _ in reader)

        request = translation.request.model_copy(deep=True)
        request.size = 0
        request.from_ = None
        request.scroll = None
        request.sort = []
        request.aggregations = None
        response = self.store.executor.search(self.doc_type, request)

        size = self.store.translator.get_size(query)
        start = self.store.translator.get_start_index(query)
        return max(0, min(response.total_hits - start, size))

    def get_bounds(self, query: Optional[QueryDescriptor] = None) -> Optional[Envelope]:
        """
        Envelope of the default geometry over all matching records.

        Returns:
            (minx, miny, maxx, maxy), or None if no record has a geometry
        """
        geometry = self.get_schema().geometry_descriptor
        if geometry is None:
            return None

        bounds: Optional[List[float]] = None
        with self.get_features(query) as reader:
            for record in reader:
                value = record.get(geometry.name)
                if value is None or value.is_empty:
                    continue
                minx, miny, maxx, maxy = value.bounds
                if bounds is None:
                    bounds = [minx, miny, maxx, maxy]
                else:
                    bounds = [
                        min(bounds[0], minx),
                        min(bounds[1], miny),
                        max(bounds[2], maxx),
                        max(bounds[3], maxy),
                    ]
        return tuple(bounds) if bounds is not None else None  # type: ignore[return-value]

    def visit_buckets(
        self,
        query: Optional[QueryDescriptor] = None,
        aggregation_definition: Optional[Union[str, Dict[str, Any]]] = None,
        query_definition: Optional[Union[str, Dict[str, Any]]] = None,
    ) -> List[Dict[str, Any]]:
        """
        Run a bucket aggregation and return the decoded buckets.

        Args:
            query: Base query (filter restricts the aggregated documents)
            aggregation_definition: Aggregation document or JSON text
            query_definition: Extra query document or JSON text

        Raises:
            AggregationDecodeError: If a bucket payload cannot be decoded
        """
        query = query or QueryDescriptor()
        payload: Dict[str, Any] = {}
        if aggregation_definition:
            payload[AGGREGATION_DEFINITION] = aggregation_definition
        if query_definition:
            payload[QUERY_DEFINITION] = query_definition
        hints = dict(query.hints)
        hints[AGGREGATION_HINT] = payload
        query = query.model_copy(update={"hints": hints})

        feature_type = self.get_schema()
        attribute = _aggregation_attribute(feature_type)
        buckets: List[Dict[str, Any]] = []
        if attribute is None:
            return buckets

        with self.get_features(query) as reader:
            for record in reader:
                data = record.get(attribute)
                if data is None:
                    continue
                try:
                    buckets.append(json.loads(data))
                except (ValueError, UnicodeDecodeError) as e:
                    logger.debug("Failed to parse aggregation value: %s", e)
                    raise AggregationDecodeError(
                        f"Problem visiting {self.layer_name} visiting {record.id}: {e}",
                        self.store.index_name,
                        self.doc_type,
                    ) from e
        return buckets


def _aggregation_attribute(feature_type: FeatureType) -> Optional[str]:
    for descriptor in feature_type.attributes:
        if descriptor.full_name == AGGREGATION:
            return descriptor.name
    return None
