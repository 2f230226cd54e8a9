"""
Filter node set.

Filters are immutable Pydantic models. Each node can be translated to the
native query DSL (see ``filter_translator``) and evaluated locally against
a decoded record, which is how partially supported queries are post
filtered.
"""

import math
import re
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Callable, List, Optional

from pydantic import BaseModel, ConfigDict, Field
from shapely.geometry import Point, box
from shapely.geometry.base import BaseGeometry
from shapely.ops import nearest_points

from feature_query.core.models import DEFAULT_DATE_FORMAT, Record
from feature_query.schema.date_formats import parse_date

EARTH_RADIUS_METERS = 6371008.8

DISTANCE_UNITS = {
    "m": 1.0,
    "km": 1000.0,
    "mi": 1609.344,
    "yd": 0.9144,
    "ft": 0.3048,
    "nmi": 1852.0,
}


class Filter(BaseModel):
    """Base filter node."""

    model_config = ConfigDict(frozen=True, arbitrary_types_allowed=True)

    def evaluate(self, record: Record) -> bool:
        raise NotImplementedError

    def __and__(self, other: "Filter") -> "And":
        return And(children=[self, other])

    def __or__(self, other: "Filter") -> "Or":
        return Or(children=[self, other])

    def __invert__(self) -> "Not":
        return Not(child=self)


class IncludeFilter(Filter):
    def evaluate(self, record: Record) -> bool:
        return True


class ExcludeFilter(Filter):
    def evaluate(self, record: Record) -> bool:
        return False


INCLUDE = IncludeFilter()
EXCLUDE = ExcludeFilter()


class And(Filter):
    children: List[Filter] = Field(default_factory=list)

    def evaluate(self, record: Record) -> bool:
        return all(child.evaluate(record) for child in self.children)


class Or(Filter):
    children: List[Filter] = Field(default_factory=list)

    def evaluate(self, record: Record) -> bool:
        return any(child.evaluate(record) for child in self.children)


class Not(Filter):
    child: Filter

    def evaluate(self, record: Record) -> bool:
        return not self.child.evaluate(record)


class CompareOperator(str, Enum):
    EQ = "="
    NE = "!="
    LT = "<"
    LE = "<="
    GT = ">"
    GE = ">="


def _values(value: Any) -> List[Any]:
    """Multi-valued fields match if any element matches."""
    if value is None:
        return []
    if isinstance(value, (list, tuple)):
        return [v for v in value if v is not None]
    return [value]


def _coerce(actual: Any, literal: Any) -> Any:
    """Convert a literal to the kind of value held by the record."""
    if isinstance(actual, datetime) and not isinstance(literal, datetime):
        literal = parse_date(literal, [DEFAULT_DATE_FORMAT])
    if isinstance(actual, datetime) and isinstance(literal, datetime):
        # naive and aware datetimes cannot be compared
        if (actual.tzinfo is None) != (literal.tzinfo is None):
            literal = literal.replace(tzinfo=None if actual.tzinfo is None else timezone.utc)
        return literal
    if isinstance(actual, bool):
        if isinstance(literal, str):
            return literal.strip().lower() == "true"
        return bool(literal)
    if isinstance(actual, (int, float)) and isinstance(literal, str):
        return float(literal)
    if isinstance(actual, str) and not isinstance(literal, str):
        return str(literal)
    return literal


def _compare(actual: Any, operator: CompareOperator, literal: Any, match_case: bool) -> bool:
    try:
        literal = _coerce(actual, literal)
    except (TypeError, ValueError):
        return operator == CompareOperator.NE
    if not match_case and isinstance(actual, str) and isinstance(literal, str):
        actual, literal = actual.lower(), literal.lower()
    try:
        if operator == CompareOperator.EQ:
            return actual == literal
        if operator == CompareOperator.NE:
            return actual != literal
        if operator == CompareOperator.LT:
            return actual < literal
        if operator == CompareOperator.LE:
            return actual <= literal
        if operator == CompareOperator.GT:
            return actual > literal
        if operator == CompareOperator.GE:
            return actual >= literal
    except TypeError:
        return False
    raise ValueError(f"Unknown operator {operator}")


class Compare(Filter):
    """Compare a property with a literal value."""

    attribute: str
    operator: CompareOperator
    value: Any
    match_case: bool = True

    def evaluate(self, record: Record) -> bool:
        values = _values(record.get(self.attribute))
        if self.operator == CompareOperator.NE:
            # a missing value is never equal
            return not any(
                _compare(v, CompareOperator.EQ, self.value, self.match_case) for v in values
            )
        return any(_compare(v, self.operator, self.value, self.match_case) for v in values)


class PropertyCompare(Filter):
    """Compare two properties of the same record."""

    left: str
    operator: CompareOperator
    right: str

    def evaluate(self, record: Record) -> bool:
        right_values = _values(record.get(self.right))
        return any(
            _compare(left, self.operator, right, True)
            for left in _values(record.get(self.left))
            for right in right_values
        )


class Between(Filter):
    attribute: str
    lower: Any
    upper: Any

    def evaluate(self, record: Record) -> bool:
        return any(
            _compare(v, CompareOperator.GE, self.lower, True)
            and _compare(v, CompareOperator.LE, self.upper, True)
            for v in _values(record.get(self.attribute))
        )


class In(Filter):
    attribute: str
    values: List[Any]

    def evaluate(self, record: Record) -> bool:
        return any(
            _compare(v, CompareOperator.EQ, literal, True)
            for v in _values(record.get(self.attribute))
            for literal in self.values
        )


def like_to_regex(pattern: str, wildcard: str = "%", single_char: str = "_") -> str:
    parts = []
    for char in pattern:
        if char == wildcard:
            parts.append(".*")
        elif char == single_char:
            parts.append(".")
        else:
            parts.append(re.escape(char))
    return "".join(parts)


class Like(Filter):
    """SQL style pattern match; ``%`` matches any run, ``_`` one character."""

    attribute: str
    pattern: str
    match_case: bool = True

    def evaluate(self, record: Record) -> bool:
        flags = 0 if self.match_case else re.IGNORECASE
        regex = re.compile(like_to_regex(self.pattern), flags | re.DOTALL)
        return any(
            regex.fullmatch(str(v)) is not None for v in _values(record.get(self.attribute))
        )


class IsNull(Filter):
    attribute: str

    def evaluate(self, record: Record) -> bool:
        return not _values(record.get(self.attribute))


class IdIn(Filter):
    ids: List[str]

    def evaluate(self, record: Record) -> bool:
        return record.id in self.ids


def _geometries(record: Record, attribute: Optional[str]) -> List[BaseGeometry]:
    """Geometry values of an attribute, or of every geometry attribute if None."""
    if attribute is None:
        candidates = [v for value in record.values.values() for v in _values(value)]
    else:
        candidates = _values(record.get(attribute))
    return [v for v in candidates if isinstance(v, BaseGeometry)]


class BBox(Filter):
    """
    Bounding box in longitude/latitude.

    A missing attribute targets the default geometry.
    """

    attribute: Optional[str] = None
    minx: float
    miny: float
    maxx: float
    maxy: float

    @property
    def envelope(self) -> BaseGeometry:
        return box(self.minx, self.miny, self.maxx, self.maxy)

    def evaluate(self, record: Record) -> bool:
        envelope = self.envelope
        return any(g.intersects(envelope) for g in _geometries(record, self.attribute))


class SpatialOperator(str, Enum):
    INTERSECTS = "intersects"
    WITHIN = "within"
    CONTAINS = "contains"
    DISJOINT = "disjoint"


class SpatialRelation(Filter):
    """Relation between a geometry property and a literal geometry."""

    attribute: str
    operator: SpatialOperator
    geometry: BaseGeometry

    def evaluate(self, record: Record) -> bool:
        geometries = _geometries(record, self.attribute)
        if self.operator == SpatialOperator.DISJOINT:
            return bool(geometries) and all(g.disjoint(self.geometry) for g in geometries)
        relation = getattr(BaseGeometry, self.operator.value)
        return any(relation(g, self.geometry) for g in geometries)


def haversine(a: Point, b: Point) -> float:
    """Great circle distance in meters between two lon/lat points."""
    lon1, lat1, lon2, lat2 = map(math.radians, (a.x, a.y, b.x, b.y))
    h = (
        math.sin((lat2 - lat1) / 2) ** 2
        + math.cos(lat1) * math.cos(lat2) * math.sin((lon2 - lon1) / 2) ** 2
    )
    return 2 * EARTH_RADIUS_METERS * math.asin(min(1.0, math.sqrt(h)))


def geographic_distance(a: BaseGeometry, b: BaseGeometry) -> float:
    if a.intersects(b):
        return 0.0
    near_a, near_b = nearest_points(a, b)
    return haversine(near_a, near_b)


class DWithin(Filter):
    """Geometry property within a distance of a literal geometry."""

    attribute: str
    geometry: BaseGeometry
    distance: float
    units: str = "m"

    @property
    def meters(self) -> float:
        if self.units not in DISTANCE_UNITS:
            raise ValueError(f"Unknown distance unit '{self.units}'")
        return self.distance * DISTANCE_UNITS[self.units]

    def evaluate(self, record: Record) -> bool:
        limit = self.meters
        return any(
            geographic_distance(g, self.geometry) <= limit
            for g in _geometries(record, self.attribute)
        )


class Beyond(DWithin):
    """
    Geometry property farther than a distance from a literal geometry.

    Records without a geometry match, as with the negated native query.
    """

    def evaluate(self, record: Record) -> bool:
        return not super().evaluate(record)


class Predicate(Filter):
    """Arbitrary Python predicate; always evaluated locally."""

    function: Callable[[Record], bool]
    description: str = ""

    def evaluate(self, record: Record) -> bool:
        return bool(self.function(record))
