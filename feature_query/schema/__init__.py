"""Schema inference and feature type building."""

from feature_query.schema.type_mappings import TypeMapper
from feature_query.schema.walker import MappingWalker
from feature_query.schema.extractor import SchemaExtractor
from feature_query.schema.feature_type_builder import FeatureTypeBuilder
from feature_query.schema.layer_cache import LayerConfigurationCache

__all__ = [
    "TypeMapper",
    "MappingWalker",
    "SchemaExtractor",
    "FeatureTypeBuilder",
    "LayerConfigurationCache",
]
