"""
Type mapping utilities for converting mapping leaf types to attribute types.
"""

from datetime import datetime
from typing import Dict, Optional, Type

from shapely.geometry import Point
from shapely.geometry.base import BaseGeometry

from feature_query.core.models import AttributeType, GeometryKind


class TypeMapper:
    """Maps mapping leaf types to attribute types and Python bindings."""

    # Mapping leaf type -> attribute type
    ELASTICSEARCH_TYPE_MAP = {
        "string": AttributeType.STRING,
        "keyword": AttributeType.STRING,
        "text": AttributeType.STRING,
        "integer": AttributeType.INTEGER,
        "short": AttributeType.INTEGER,
        "byte": AttributeType.INTEGER,
        "long": AttributeType.LONG,
        "float": AttributeType.FLOAT,
        "half_float": AttributeType.FLOAT,
        "scaled_float": AttributeType.FLOAT,
        "double": AttributeType.DOUBLE,
        "boolean": AttributeType.BOOLEAN,
        "date": AttributeType.DATE,
        "date_nanos": AttributeType.DATE,
        "geo_point": AttributeType.GEO_POINT,
        "geo_shape": AttributeType.GEO_SHAPE,
        "binary": AttributeType.BINARY,
    }

    # Attribute type -> canonical mapping leaf type
    CANONICAL_TYPE_MAP = {
        AttributeType.STRING: "keyword",
        AttributeType.INTEGER: "integer",
        AttributeType.LONG: "long",
        AttributeType.FLOAT: "float",
        AttributeType.DOUBLE: "double",
        AttributeType.BOOLEAN: "boolean",
        AttributeType.DATE: "date",
        AttributeType.GEO_POINT: "geo_point",
        AttributeType.GEO_SHAPE: "geo_shape",
        AttributeType.BINARY: "binary",
    }

    PYTHON_TYPE_MAP: Dict[AttributeType, Type] = {
        AttributeType.STRING: str,
        AttributeType.INTEGER: int,
        AttributeType.LONG: int,
        AttributeType.FLOAT: float,
        AttributeType.DOUBLE: float,
        AttributeType.BOOLEAN: bool,
        AttributeType.DATE: datetime,
        AttributeType.GEO_POINT: Point,
        AttributeType.GEO_SHAPE: BaseGeometry,
        AttributeType.BINARY: bytes,
    }

    NUMERIC_TYPES = {"float", "double", "half_float", "scaled_float", "integer", "long"}

    @classmethod
    def to_attribute_type(cls, es_type: str) -> Optional[AttributeType]:
        """
        Get the attribute type for a mapping leaf type.

        Args:
            es_type: Leaf type string from the mapping (e.g. "keyword")

        Returns:
            Attribute type, or None if the leaf type is not supported
        """
        return cls.ELASTICSEARCH_TYPE_MAP.get(es_type.lower())

    @classmethod
    def to_es_type(cls, attribute_type: AttributeType) -> str:
        return cls.CANONICAL_TYPE_MAP[attribute_type]

    @classmethod
    def get_python_type(cls, attribute_type: AttributeType) -> Type:
        return cls.PYTHON_TYPE_MAP[attribute_type]

    @classmethod
    def geometry_kind(cls, attribute_type: AttributeType) -> Optional[GeometryKind]:
        if attribute_type == AttributeType.GEO_POINT:
            return GeometryKind.POINT
        if attribute_type == AttributeType.GEO_SHAPE:
            return GeometryKind.SHAPE
        return None

    @classmethod
    def is_numeric(cls, es_type: Optional[str]) -> bool:
        return isinstance(es_type, str) and es_type.lower() in cls.NUMERIC_TYPES
