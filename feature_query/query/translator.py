"""
Query translation coordinator.

Turns a query descriptor into a native search request: chooses the paging
mode, translates sort, paging, projection and filter, and prepares spatial
grid aggregations.
"""

import copy
import json
import logging
from typing import Any, Dict, Optional

from pydantic import BaseModel

from feature_query.core.config import StoreSettings
from feature_query.core.models import (
    AGGREGATION_HINT,
    ID,
    SYNTHETIC_ATTRIBUTES,
    AttributeType,
    FeatureType,
    LayerConfiguration,
    NativeRequest,
    QueryDescriptor,
    SortOrder,
)
from feature_query.query.filter_translator import MATCH_ALL, FilterTranslator
from feature_query.query.geohash import compute_precision, update_grid_aggregation_precision

logger = logging.getLogger(__name__)

# Aggregation hint payload keys
AGGREGATION_DEFINITION = "a"
QUERY_DEFINITION = "q"

COORDINATES_SUFFIX = ".coordinates"


class TranslationResult(BaseModel):
    request: NativeRequest
    fully_supported: bool = True
    cursor_mode: bool = False


class QueryTranslator:
    """
    Translates query descriptors to native requests.

    Stateless apart from the settings; translating the same descriptor
    twice yields equal requests.
    """

    def __init__(self, settings: StoreSettings):
        """
        Initialize query translator.

        Args:
            settings: Store settings (paging, cursor, projection, grid)
        """
        self.settings = settings

    def use_cursor(self, query: QueryDescriptor) -> bool:
        """Cursor paging only applies to unsorted, unpaged, plain queries."""
        return (
            self.settings.scroll_enabled
            and not query.is_sorted()
            and query.start_index is None
            and not query.is_aggregation()
        )

    def get_size(self, query: QueryDescriptor) -> int:
        if not query.is_max_features_unlimited():
            return query.max_features  # type: ignore[return-value]
        size = self.settings.default_max_features
        logger.debug("Unlimited max features not supported, using default: %s", size)
        return size

    def get_start_index(self, query: QueryDescriptor) -> int:
        return query.start_index if query.start_index is not None else 0

    def translate(
        self,
        query: QueryDescriptor,
        feature_type: FeatureType,
        layer_config: Optional[LayerConfiguration] = None,
    ) -> TranslationResult:
        """
        Build the native request for a query.

        Args:
            query: Query descriptor
            feature_type: Schema the query is expressed against
            layer_config: Layer configuration (stored/use flags)

        Returns:
            Translation result with the request and the support flag
        """
        request = NativeRequest()
        cursor_mode = self.use_cursor(query)
        natural_order = SortOrder.ASC

        if not cursor_mode:
            for key in query.sort_by:
                if key.field is None:
                    natural_order = key.order
                    continue
                descriptor = feature_type.get_descriptor(key.field)
                field = descriptor.full_name if descriptor is not None else key.field
                request.add_sort(field, key.order.value)

            request.size = self.get_size(query)
            request.from_ = self.get_start_index(query)
        else:
            if self.settings.scroll_size is not None:
                request.size = self.settings.scroll_size
            if self.settings.scroll_time is not None:
                request.scroll = self.settings.scroll_time

        if self.settings.source_filtering_enabled:
            self._set_projection(request, query, feature_type, layer_config)

        native_query, fully_supported = FilterTranslator(feature_type).translate(query.filter)
        if not fully_supported:
            logger.debug(
                "Filter is not fully supported natively, post filtering %s", feature_type.name
            )

        hint = query.hints.get(AGGREGATION_HINT) or {}
        request.query = native_query
        override = _parse_definition(hint.get(QUERY_DEFINITION))
        if override:
            request.query = {"bool": {"must": [native_query, override]}}

        if (
            query.is_sorted()
            and native_query == MATCH_ALL
            and all(field != ID for field, _ in request.sort)
        ):
            request.add_sort(ID, natural_order.value)

        aggregations = _parse_definition(hint.get(AGGREGATION_DEFINITION))
        if aggregations:
            envelope = FilterTranslator.extract_envelope(query.filter)
            precision = compute_precision(
                envelope, self.settings.grid_size, self.settings.grid_threshold
            )
            request.aggregations = update_grid_aggregation_precision(aggregations, precision)
            request.size = 0

        return TranslationResult(
            request=request, fully_supported=fully_supported, cursor_mode=cursor_mode
        )

    def _set_projection(
        self,
        request: NativeRequest,
        query: QueryDescriptor,
        feature_type: FeatureType,
        layer_config: Optional[LayerConfiguration],
    ) -> None:
        if query.properties is not None:
            for name in query.properties:
                descriptor = feature_type.get_descriptor(name)
                if descriptor is None:
                    continue
                attribute = layer_config.find_attribute(descriptor.full_name) if layer_config else None
                if attribute is not None and attribute.stored:
                    request.add_stored_field(descriptor.full_name)
                else:
                    request.add_source_include(_source_path(descriptor.full_name, descriptor.type))
            return

        if layer_config is None:
            for descriptor in feature_type.attributes:
                if descriptor.full_name not in SYNTHETIC_ATTRIBUTES:
                    request.add_source_include(_source_path(descriptor.full_name, descriptor.type))
            return

        for attribute in layer_config.attributes:
            if not attribute.use or attribute.name in SYNTHETIC_ATTRIBUTES:
                continue
            if attribute.stored:
                request.add_stored_field(attribute.name)
            else:
                request.add_source_include(_source_path(attribute.name, attribute.type))


def _parse_definition(definition: Any) -> Optional[Dict[str, Any]]:
    """Aggregation hint entries are JSON text or already parsed documents."""
    if definition is None:
        return None
    if isinstance(definition, str):
        if not definition.strip():
            return None
        definition = json.loads(definition)
    if not isinstance(definition, dict):
        raise ValueError(f"Expected a JSON object, got {type(definition).__name__}")
    return copy.deepcopy(definition)


def _source_path(full_name: str, attribute_type: AttributeType) -> str:
    """Geo points are read from their parent object, whatever its shape."""
    if attribute_type == AttributeType.GEO_POINT and full_name.endswith(COORDINATES_SUFFIX):
        return full_name[: -len(COORDINATES_SUFFIX)]
    return full_name
