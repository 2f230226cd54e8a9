"""
Filter translation.

Converts filter trees to the search engine's query DSL by structural
recursion. Constructs without a native equivalent become ``match_all`` at
their position and mark the translation as partially supported.
"""

import json
import logging
from datetime import datetime
from typing import Any, Dict, List, Optional, Tuple

from shapely.geometry import Point, mapping
from shapely.geometry.base import BaseGeometry

from feature_query.core.models import (
    DATE_FORMAT,
    DEFAULT_DATE_FORMAT,
    NESTED,
    NESTED_PATHS,
    AttributeDescriptor,
    AttributeType,
    FeatureType,
)
from feature_query.query.filters import (
    And,
    BBox,
    Beyond,
    Between,
    Compare,
    CompareOperator,
    DWithin,
    ExcludeFilter,
    Filter,
    IdIn,
    In,
    IncludeFilter,
    IsNull,
    Like,
    Not,
    Or,
    SpatialOperator,
    SpatialRelation,
)
from feature_query.query.geohash import Envelope
from feature_query.schema.date_formats import format_date, parse_date

logger = logging.getLogger(__name__)

MATCH_ALL: Dict[str, Any] = {"match_all": {}}
MATCH_NONE: Dict[str, Any] = {"match_none": {}}


def match_all() -> Dict[str, Any]:
    return {"match_all": {}}


def match_none() -> Dict[str, Any]:
    return {"match_none": {}}


RANGE_OPERATORS = {
    CompareOperator.LT: "lt",
    CompareOperator.LE: "lte",
    CompareOperator.GT: "gt",
    CompareOperator.GE: "gte",
}


class FilterTranslator:
    """
    Translates filter trees to query DSL for one feature type.

    Property names are resolved to full source paths through the feature
    type's descriptors.
    """

    def __init__(self, feature_type: FeatureType):
        self.feature_type = feature_type
        self._fully_supported = True

    def translate(self, filter: Filter) -> Tuple[Dict[str, Any], bool]:
        """
        Translate a filter tree.

        Returns:
            (query DSL document, fully supported flag)
        """
        self._fully_supported = True
        query = self._translate(filter)
        if not self._fully_supported:
            logger.debug("Filter %r is not fully supported natively", filter)
        return query, self._fully_supported

    def _unsupported(self, node: Filter, reason: str) -> Dict[str, Any]:
        logger.debug("Unsupported filter %s: %s", type(node).__name__, reason)
        self._fully_supported = False
        return match_all()

    def _translate(self, node: Filter) -> Dict[str, Any]:
        if isinstance(node, IncludeFilter):
            return match_all()
        if isinstance(node, ExcludeFilter):
            return match_none()
        if isinstance(node, And):
            return {"bool": {"must": [self._translate(c) for c in node.children]}}
        if isinstance(node, Or):
            return {
                "bool": {
                    "should": [self._translate(c) for c in node.children],
                    "minimum_should_match": 1,
                }
            }
        if isinstance(node, Not):
            return self._translate_not(node)
        if isinstance(node, Compare):
            return self._translate_compare(node)
        if isinstance(node, Between):
            return self._translate_between(node)
        if isinstance(node, In):
            return self._translate_in(node)
        if isinstance(node, Like):
            return self._translate_like(node)
        if isinstance(node, IsNull):
            return self._translate_is_null(node)
        if isinstance(node, IdIn):
            return {"ids": {"values": list(node.ids)}}
        if isinstance(node, BBox):
            return self._translate_bbox(node)
        if isinstance(node, SpatialRelation):
            return self._translate_spatial_relation(node)
        # Beyond extends DWithin
        if isinstance(node, Beyond):
            query = self._translate_distance(node)
            if query == MATCH_ALL:
                return query
            return {"bool": {"must_not": query}}
        if isinstance(node, DWithin):
            return self._translate_distance(node)
        return self._unsupported(node, "no native equivalent")

    def _translate_not(self, node: Not) -> Dict[str, Any]:
        outer = self._fully_supported
        self._fully_supported = True
        child = self._translate(node.child)
        child_supported = self._fully_supported
        self._fully_supported = outer and child_supported
        if not child_supported:
            # negating an over-matching query would under-match
            return match_all()
        return {"bool": {"must_not": child}}

    def _descriptor(self, name: Optional[str]) -> Optional[AttributeDescriptor]:
        if name is None:
            return self.feature_type.geometry_descriptor
        return self.feature_type.get_descriptor(name)

    def _wrap_nested(self, descriptor: AttributeDescriptor, query: Dict[str, Any]) -> Dict[str, Any]:
        """Wrap a leaf query in one ``nested`` query per enclosing nested field."""
        if not descriptor.user_data.get(NESTED):
            return query
        paths = descriptor.user_data.get(NESTED_PATHS)
        if not paths:
            full_name = descriptor.full_name
            if "." not in full_name:
                return query
            paths = [full_name.rsplit(".", 1)[0]]
        for path in reversed(paths):
            query = {"nested": {"path": path, "query": query}}
        return query

    def _literal(self, descriptor: AttributeDescriptor, value: Any) -> Tuple[Any, Optional[str]]:
        """Convert a literal for the DSL; returns (value, date format used)."""
        if descriptor.type == AttributeType.DATE and value is not None:
            formats = descriptor.user_data.get(DATE_FORMAT) or [DEFAULT_DATE_FORMAT]
            if not isinstance(value, datetime):
                value = parse_date(value, formats)
            return format_date(value, formats)
        return value, None

    def _translate_compare(self, node: Compare) -> Dict[str, Any]:
        descriptor = self._descriptor(node.attribute)
        if descriptor is None:
            return self._unsupported(node, f"unknown property '{node.attribute}'")
        if descriptor.is_geometry:
            return self._unsupported(node, "comparison on a geometry")

        field = descriptor.full_name
        value, fmt = self._literal(descriptor, node.value)

        if node.operator in RANGE_OPERATORS:
            bounds: Dict[str, Any] = {RANGE_OPERATORS[node.operator]: value}
            if fmt is not None:
                bounds["format"] = fmt
            return self._wrap_nested(descriptor, {"range": {field: bounds}})

        if not node.match_case and isinstance(value, str):
            term: Dict[str, Any] = {"term": {field: {"value": value, "case_insensitive": True}}}
        else:
            term = {"term": {field: value}}
        query = self._wrap_nested(descriptor, term)
        if node.operator == CompareOperator.NE:
            return {"bool": {"must_not": query}}
        return query

    def _translate_between(self, node: Between) -> Dict[str, Any]:
        descriptor = self._descriptor(node.attribute)
        if descriptor is None:
            return self._unsupported(node, f"unknown property '{node.attribute}'")
        lower, fmt = self._literal(descriptor, node.lower)
        upper, _ = self._literal(descriptor, node.upper)
        bounds: Dict[str, Any] = {"gte": lower, "lte": upper}
        if fmt is not None:
            bounds["format"] = fmt
        return self._wrap_nested(descriptor, {"range": {descriptor.full_name: bounds}})

    def _translate_in(self, node: In) -> Dict[str, Any]:
        descriptor = self._descriptor(node.attribute)
        if descriptor is None:
            return self._unsupported(node, f"unknown property '{node.attribute}'")
        values = [self._literal(descriptor, v)[0] for v in node.values]
        return self._wrap_nested(descriptor, {"terms": {descriptor.full_name: values}})

    def _translate_like(self, node: Like) -> Dict[str, Any]:
        descriptor = self._descriptor(node.attribute)
        if descriptor is None:
            return self._unsupported(node, f"unknown property '{node.attribute}'")
        pattern = "".join(
            "*" if c == "%" else "?" if c == "_" else "\\" + c if c in "*?\\" else c
            for c in node.pattern
        )
        wildcard: Dict[str, Any] = {"value": pattern}
        if not node.match_case:
            wildcard["case_insensitive"] = True
        return self._wrap_nested(descriptor, {"wildcard": {descriptor.full_name: wildcard}})

    def _translate_is_null(self, node: IsNull) -> Dict[str, Any]:
        descriptor = self._descriptor(node.attribute)
        if descriptor is None:
            return self._unsupported(node, f"unknown property '{node.attribute}'")
        exists = self._wrap_nested(descriptor, {"exists": {"field": descriptor.full_name}})
        return {"bool": {"must_not": exists}}

    def _geometry_descriptor(self, name: Optional[str]) -> Optional[AttributeDescriptor]:
        descriptor = self._descriptor(name)
        if descriptor is None or not descriptor.is_geometry:
            return None
        return descriptor

    def _translate_bbox(self, node: BBox) -> Dict[str, Any]:
        descriptor = self._geometry_descriptor(node.attribute)
        if descriptor is None:
            return self._unsupported(node, "no geometry property")
        field = descriptor.full_name
        if descriptor.type == AttributeType.GEO_POINT:
            query = {
                "geo_bounding_box": {
                    field: {
                        "top_left": {"lat": node.maxy, "lon": node.minx},
                        "bottom_right": {"lat": node.miny, "lon": node.maxx},
                    }
                }
            }
        else:
            query = {
                "geo_shape": {
                    field: {
                        "shape": {
                            "type": "envelope",
                            "coordinates": [[node.minx, node.maxy], [node.maxx, node.miny]],
                        },
                        "relation": SpatialOperator.INTERSECTS.value,
                    }
                }
            }
        return self._wrap_nested(descriptor, query)

    def _translate_spatial_relation(self, node: SpatialRelation) -> Dict[str, Any]:
        descriptor = self._geometry_descriptor(node.attribute)
        if descriptor is None:
            return self._unsupported(node, "no geometry property")
        if descriptor.type == AttributeType.GEO_POINT and node.operator == SpatialOperator.CONTAINS:
            return self._unsupported(node, "points cannot contain a geometry")
        query = {
            "geo_shape": {
                descriptor.full_name: {
                    "shape": geojson(node.geometry),
                    "relation": node.operator.value,
                }
            }
        }
        return self._wrap_nested(descriptor, query)

    def _translate_distance(self, node: DWithin) -> Dict[str, Any]:
        descriptor = self._geometry_descriptor(node.attribute)
        if descriptor is None:
            return self._unsupported(node, "no geometry property")
        if descriptor.type != AttributeType.GEO_POINT or not isinstance(node.geometry, Point):
            return self._unsupported(node, "distance queries are only supported between points")
        query = {
            "geo_distance": {
                "distance": f"{node.distance}{node.units}",
                descriptor.full_name: {"lat": node.geometry.y, "lon": node.geometry.x},
            }
        }
        return self._wrap_nested(descriptor, query)

    @classmethod
    def extract_envelope(cls, filter: Filter) -> Optional[Envelope]:
        """
        Spatial envelope a filter restricts results to.

        Returns:
            (minx, miny, maxx, maxy), or None if the filter has no spatial bound
        """
        if isinstance(filter, BBox):
            return (filter.minx, filter.miny, filter.maxx, filter.maxy)
        if isinstance(filter, SpatialRelation) and filter.operator in (
            SpatialOperator.INTERSECTS,
            SpatialOperator.WITHIN,
        ):
            return tuple(filter.geometry.bounds)  # type: ignore[return-value]
        if isinstance(filter, And):
            envelopes = [e for e in map(cls.extract_envelope, filter.children) if e is not None]
            if not envelopes:
                return None
            return _intersection(envelopes)
        if isinstance(filter, Or):
            envelopes = [cls.extract_envelope(c) for c in filter.children]
            if not envelopes or any(e is None for e in envelopes):
                return None
            return _union(envelopes)  # type: ignore[arg-type]
        return None


def _intersection(envelopes: List[Envelope]) -> Envelope:
    minx = max(e[0] for e in envelopes)
    miny = max(e[1] for e in envelopes)
    maxx = min(e[2] for e in envelopes)
    maxy = min(e[3] for e in envelopes)
    # disjoint envelopes collapse to an empty area
    return (minx, miny, max(minx, maxx), max(miny, maxy))


def _union(envelopes: List[Envelope]) -> Envelope:
    return (
        min(e[0] for e in envelopes),
        min(e[1] for e in envelopes),
        max(e[2] for e in envelopes),
        max(e[3] for e in envelopes),
    )


def geojson(geometry: BaseGeometry) -> Dict[str, Any]:
    """GeoJSON dict of a geometry with lists instead of tuples."""
    return json.loads(json.dumps(mapping(geometry)))
