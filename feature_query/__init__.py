"""
Feature Query - typed, queryable feature collections over a search index.

Main entry point for creating feature stores.
"""

from feature_query.core.config import StoreSettings
from feature_query.core.models import LayerConfiguration, QueryDescriptor, SortKey, SortOrder
from feature_query.feature_source import FeatureSource
from feature_query.orchestrator import FeatureStore

__all__ = [
    "FeatureStore",
    "FeatureSource",
    "StoreSettings",
    "LayerConfiguration",
    "QueryDescriptor",
    "SortKey",
    "SortOrder",
]
