"""
Decodes search hits and aggregation buckets into typed records.
"""

import base64
import json
import logging
from typing import Any, Dict, List, Mapping, Optional, Sequence
from urllib.parse import quote

from shapely import wkt
from shapely.errors import ShapelyError
from shapely.geometry import Point, box, shape
from shapely.geometry.base import BaseGeometry

from feature_query.core.config import ArrayEncoding
from feature_query.core.models import (
    AGGREGATION,
    DATE_FORMAT,
    DEFAULT_DATE_FORMAT,
    ID,
    INDEX,
    RELATIVE_SCORE,
    SCORE,
    TYPE,
    AttributeDescriptor,
    AttributeType,
    FeatureType,
    Hit,
    Record,
)
from feature_query.query.geohash import decode_geohash
from feature_query.schema.date_formats import parse_date

logger = logging.getLogger(__name__)

COORDINATES = "coordinates"


def read_field(document: Optional[Mapping[str, Any]], path: str) -> Any:
    """
    Read a dotted path from a source document.

    Lists along the path are traversed; the values found under each
    element are collected into a flat list. Keys containing dots are
    matched as well.
    """
    if document is None:
        return None
    return _read(document, path.split("."))


def _read(node: Any, parts: List[str]) -> Any:
    if not parts:
        return node
    if isinstance(node, list):
        values = []
        for item in node:
            value = _read(item, parts)
            if isinstance(value, list):
                values.extend(value)
            elif value is not None:
                values.append(value)
        return values or None
    if isinstance(node, Mapping):
        for i in range(len(parts), 0, -1):
            key = ".".join(parts[:i])
            if key in node:
                value = _read(node[key], parts[i:])
                if value is not None:
                    return value
    return None


def parse_point(value: Any) -> Optional[Point]:
    """
    Parse a geo point in any of the engine's accepted forms.

    Supports ``"lat,lon"`` strings, geohashes, ``[lon, lat]`` arrays,
    ``{"lat", "lon"}`` objects and GeoJSON points.
    """
    if value is None:
        return None
    if isinstance(value, Point):
        return value
    if isinstance(value, str):
        text = value.strip()
        if "," in text:
            lat, lon = (float(part) for part in text.split(",", 1))
            return Point(lon, lat)
        if text.upper().startswith("POINT"):
            return wkt.loads(text)
        lat, lon = decode_geohash(text)
        return Point(lon, lat)
    if isinstance(value, Mapping):
        if "lat" in value and "lon" in value:
            return Point(float(value["lon"]), float(value["lat"]))
        if COORDINATES in value:
            return parse_point(value[COORDINATES])
        return None
    if isinstance(value, (list, tuple)) and value:
        if len(value) >= 2 and all(isinstance(v, (int, float)) for v in value[:2]):
            return Point(float(value[0]), float(value[1]))
        return parse_point(value[0])
    return None


def parse_shape(value: Any) -> Optional[BaseGeometry]:
    """Parse a geo shape from GeoJSON or WKT."""
    if value is None:
        return None
    if isinstance(value, BaseGeometry):
        return value
    if isinstance(value, str):
        return wkt.loads(value)
    if isinstance(value, Mapping):
        shape_type = str(value.get("type", "")).lower()
        if shape_type == "envelope":
            (minx, maxy), (maxx, miny) = value[COORDINATES]
            return box(minx, miny, maxx, maxy)
        return shape(value)
    return None


class HitDecoder:
    """
    Builds records from hits or aggregation buckets of one feature type.

    Args:
        feature_type: Schema of the records
        type_name: Name used for generated record identifiers
        array_encoding: How string arrays are returned
        max_score: Maximum score of the response, for the relative score
    """

    def __init__(
        self,
        feature_type: FeatureType,
        type_name: Optional[str] = None,
        array_encoding: ArrayEncoding = ArrayEncoding.JSON,
        max_score: float = 0.0,
    ):
        self.feature_type = feature_type
        self.type_name = type_name or feature_type.name
        self.array_encoding = array_encoding
        self.max_score = max_score

    def decode(self, hit: Hit, position: int = 0) -> Record:
        values: Dict[str, Any] = {}
        for descriptor in self.feature_type.attributes:
            values[descriptor.name] = self._hit_value(hit, descriptor)
        record_id = hit.id if hit.id is not None else f"{self.type_name}.{position}"
        return Record(id=record_id, type_name=self.type_name, values=values)

    def decode_bucket(self, bucket: Mapping[str, Any], position: int = 0) -> Record:
        """The bucket is carried as JSON bytes in the aggregation attribute."""
        values: Dict[str, Any] = {d.name: None for d in self.feature_type.attributes}
        payload = json.dumps(bucket).encode("utf-8")
        for descriptor in self.feature_type.attributes:
            if descriptor.full_name == AGGREGATION:
                values[descriptor.name] = payload
        return Record(id=f"{self.type_name}.{position}", type_name=self.type_name, values=values)

    def _hit_value(self, hit: Hit, descriptor: AttributeDescriptor) -> Any:
        full_name = descriptor.full_name
        if full_name == ID:
            return hit.id
        if full_name == INDEX:
            return hit.index
        if full_name == TYPE:
            return hit.type
        if full_name == SCORE:
            return hit.score
        if full_name == RELATIVE_SCORE:
            if hit.score is None or not self.max_score:
                return None
            return hit.score / self.max_score
        if full_name == AGGREGATION:
            return None

        raw = self._raw_value(hit, descriptor)
        if raw is None:
            return None
        try:
            return self.convert(descriptor, raw)
        except (ValueError, TypeError, KeyError, ShapelyError) as e:
            logger.debug("Unable to convert %s value %r: %s", full_name, raw, e)
            return None

    def _raw_value(self, hit: Hit, descriptor: AttributeDescriptor) -> Any:
        full_name = descriptor.full_name
        stored = hit.field(full_name)
        if stored is not None:
            return stored[0] if len(stored) == 1 else stored

        value = read_field(hit.source, full_name)
        if value is None and descriptor.type == AttributeType.GEO_POINT:
            # lat/lon objects have no coordinates member
            if full_name.endswith("." + COORDINATES):
                value = read_field(hit.source, full_name[: -len(COORDINATES) - 1])
        return value

    def convert(self, descriptor: AttributeDescriptor, value: Any) -> Any:
        """Convert a raw value to the attribute's binding."""
        attribute_type = descriptor.type
        if attribute_type == AttributeType.GEO_POINT:
            return parse_point(value)
        if attribute_type == AttributeType.GEO_SHAPE:
            return parse_shape(value)

        if isinstance(value, list):
            if attribute_type == AttributeType.STRING and self.array_encoding == ArrayEncoding.CSV:
                return ",".join(quote(str(v), safe="") for v in value)
            return [self._convert_scalar(descriptor, v) for v in value]
        return self._convert_scalar(descriptor, value)

    def _convert_scalar(self, descriptor: AttributeDescriptor, value: Any) -> Any:
        attribute_type = descriptor.type
        if value is None:
            return None
        if attribute_type == AttributeType.STRING:
            if isinstance(value, dict):
                return json.dumps(value)
            return value if isinstance(value, str) else str(value)
        if attribute_type in (AttributeType.INTEGER, AttributeType.LONG):
            return int(float(value)) if isinstance(value, str) else int(value)
        if attribute_type in (AttributeType.FLOAT, AttributeType.DOUBLE):
            return float(value)
        if attribute_type == AttributeType.BOOLEAN:
            if isinstance(value, str):
                return value.strip().lower() == "true"
            return bool(value)
        if attribute_type == AttributeType.DATE:
            formats: Sequence[str] = descriptor.user_data.get(DATE_FORMAT) or [DEFAULT_DATE_FORMAT]
            return parse_date(value, formats)
        if attribute_type == AttributeType.BINARY:
            if isinstance(value, bytes):
                return value
            return base64.b64decode(value)
        return value
