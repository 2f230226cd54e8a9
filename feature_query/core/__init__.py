"""Core interfaces, models and errors for feature queries."""

from feature_query.core.config import ArrayEncoding, StoreSettings
from feature_query.core.errors import (
    AggregationDecodeError,
    CursorFetchError,
    CursorReleaseError,
    FeatureQueryError,
    SchemaFetchError,
    SearchExecutionError,
    TransportFailure,
)
from feature_query.core.interfaces import ISchemaProvider, ISearchCapability
from feature_query.core.models import (
    Attribute,
    AttributeDescriptor,
    AttributeType,
    FeatureType,
    GeometryKind,
    Hit,
    LayerConfiguration,
    NativeRequest,
    NativeResponse,
    QueryDescriptor,
    Record,
    SortKey,
    SortOrder,
)

__all__ = [
    "ArrayEncoding",
    "StoreSettings",
    "AggregationDecodeError",
    "CursorFetchError",
    "CursorReleaseError",
    "FeatureQueryError",
    "SchemaFetchError",
    "SearchExecutionError",
    "TransportFailure",
    "ISchemaProvider",
    "ISearchCapability",
    "Attribute",
    "AttributeDescriptor",
    "AttributeType",
    "FeatureType",
    "GeometryKind",
    "Hit",
    "LayerConfiguration",
    "NativeRequest",
    "NativeResponse",
    "QueryDescriptor",
    "Record",
    "SortKey",
    "SortOrder",
]
