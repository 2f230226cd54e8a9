"""
Shared data models for the feature query system.
"""

from enum import Enum
from typing import Any, Dict, List, Optional, Tuple

from pydantic import BaseModel, ConfigDict, Field, create_model, model_validator


# Synthetic attribute names, always present in a walked schema
ID = "_id"
INDEX = "_index"
TYPE = "_type"
SCORE = "_score"
RELATIVE_SCORE = "_relative_score"
AGGREGATION = "_aggregation"
TIMESTAMP = "_timestamp"

SYNTHETIC_ATTRIBUTES = (ID, INDEX, TYPE, SCORE, RELATIVE_SCORE, AGGREGATION)

# Descriptor user data keys
FULL_NAME = "full_name"
ANALYZED = "analyzed"
NESTED = "nested"
NESTED_PATHS = "nested_paths"
GEOMETRY_TYPE = "geometry_type"
DATE_FORMAT = "date_format"

# Query hint carrying the aggregation payload ({"a": ..., "q": ...})
AGGREGATION_HINT = "aggregation"

DEFAULT_DATE_FORMAT = "date_optional_time"


class AttributeType(str, Enum):
    """Scalar and geometry kinds an inferred attribute can take."""

    STRING = "String"
    INTEGER = "Integer"
    LONG = "Long"
    FLOAT = "Float"
    DOUBLE = "Double"
    BOOLEAN = "Boolean"
    DATE = "Date"
    GEO_POINT = "GeoPoint"
    GEO_SHAPE = "GeoShape"
    BINARY = "Binary"

    @property
    def is_geometry(self) -> bool:
        return self in (AttributeType.GEO_POINT, AttributeType.GEO_SHAPE)


class GeometryKind(str, Enum):
    POINT = "geo_point"
    SHAPE = "geo_shape"


class SortOrder(str, Enum):
    ASC = "asc"
    DESC = "desc"


class Attribute(BaseModel):
    """One field inferred from the index mapping."""

    model_config = ConfigDict(validate_assignment=True)

    name: str
    type: AttributeType
    srid: Optional[int] = None
    geometry_kind: Optional[GeometryKind] = None
    stored: bool = False
    analyzed: bool = False
    nested: bool = False
    nested_paths: List[str] = Field(default_factory=list)
    date_formats: List[str] = Field(default_factory=list)
    use: bool = True
    custom_name: Optional[str] = None
    default_geometry: Optional[bool] = None

    @model_validator(mode="after")
    def check_kind(self) -> "Attribute":
        """Geometry kind and date formats must agree with the type."""
        if self.type.is_geometry != (self.geometry_kind is not None):
            raise ValueError(
                f"Attribute '{self.name}': geometry kind must be set only for geometry types"
            )
        if (self.type == AttributeType.DATE) != bool(self.date_formats):
            raise ValueError(
                f"Attribute '{self.name}': date formats must be set only for date types"
            )
        return self

    @property
    def display_name(self) -> str:
        return self.custom_name if self.custom_name is not None else self.name

    def copy_attribute(self) -> "Attribute":
        return self.model_copy(deep=True)


class LayerConfiguration(BaseModel):
    """Describes a layer as a set of attributes over one source type."""

    doc_type: str
    layer_name: Optional[str] = None
    attributes: List[Attribute] = Field(default_factory=list)

    @model_validator(mode="after")
    def default_layer_name(self) -> "LayerConfiguration":
        if self.layer_name is None:
            self.layer_name = self.doc_type
        return self

    def clone(self) -> "LayerConfiguration":
        return LayerConfiguration(
            doc_type=self.doc_type,
            layer_name=self.layer_name,
            attributes=[attribute.copy_attribute() for attribute in self.attributes],
        )

    def find_attribute(self, name: str) -> Optional[Attribute]:
        for attribute in self.attributes:
            if attribute.name == name:
                return attribute
        return None


class AttributeDescriptor(BaseModel):
    """A typed attribute of a built feature type."""

    model_config = ConfigDict(arbitrary_types_allowed=True)

    name: str
    type: AttributeType
    binding: Any
    crs: Any = None
    user_data: Dict[str, Any] = Field(default_factory=dict)

    @property
    def full_name(self) -> str:
        return self.user_data.get(FULL_NAME, self.name)

    @property
    def is_geometry(self) -> bool:
        return self.type.is_geometry


class FeatureType(BaseModel):
    """Typed record schema produced by the feature type builder."""

    name: str
    attributes: List[AttributeDescriptor] = Field(default_factory=list)
    default_geometry: Optional[str] = None

    def get_descriptor(self, name: str) -> Optional[AttributeDescriptor]:
        for descriptor in self.attributes:
            if descriptor.name == name:
                return descriptor
        return None

    @property
    def attribute_names(self) -> List[str]:
        return [descriptor.name for descriptor in self.attributes]

    @property
    def geometry_descriptor(self) -> Optional[AttributeDescriptor]:
        """Default geometry descriptor, falling back to the first geometry."""
        if self.default_geometry is not None:
            return self.get_descriptor(self.default_geometry)
        for descriptor in self.attributes:
            if descriptor.is_geometry:
                return descriptor
        return None

    def record_model(self) -> type[BaseModel]:
        """
        Build a Pydantic model class for records of this type.

        Field names are sanitized identifiers; the original attribute
        names are kept as aliases.
        """
        fields: Dict[str, tuple] = {}
        for descriptor in self.attributes:
            field_name = "".join(
                c if c.isalnum() else "_" for c in descriptor.name
            ).strip("_")
            if not field_name or field_name in fields or field_name[0].isdigit():
                continue
            fields[field_name] = (
                Optional[descriptor.binding],
                Field(default=None, alias=descriptor.name),
            )
        model_name = "".join(c if c.isalnum() else "_" for c in self.name) or "Record"
        return create_model(  # type: ignore[call-overload]
            model_name,
            __config__=ConfigDict(arbitrary_types_allowed=True, populate_by_name=True),
            **fields,
        )


class SortKey(BaseModel):
    """Sort key; a key without a field is the natural order."""

    field: Optional[str] = None
    order: SortOrder = SortOrder.ASC


class QueryDescriptor(BaseModel):
    """Declarative query over one feature type."""

    model_config = ConfigDict(arbitrary_types_allowed=True)

    filter: Any = None
    sort_by: List[SortKey] = Field(default_factory=list)
    properties: Optional[List[str]] = None
    start_index: Optional[int] = None
    max_features: Optional[int] = None
    hints: Dict[str, Any] = Field(default_factory=dict)

    @model_validator(mode="after")
    def default_filter(self) -> "QueryDescriptor":
        if self.filter is None:
            from feature_query.query.filters import INCLUDE

            self.filter = INCLUDE
        return self

    def is_sorted(self) -> bool:
        return len(self.sort_by) > 0

    def is_aggregation(self) -> bool:
        return self.hints.get(AGGREGATION_HINT) is not None

    def is_max_features_unlimited(self) -> bool:
        return self.max_features is None


class NativeRequest(BaseModel):
    """Search request in the engine's native representation."""

    query: Dict[str, Any] = Field(default_factory=lambda: {"match_all": {}})
    source_includes: List[str] = Field(default_factory=list)
    stored_fields: List[str] = Field(default_factory=list)
    sort: List[Tuple[str, str]] = Field(default_factory=list)
    from_: Optional[int] = None
    size: Optional[int] = None
    scroll: Optional[int] = None
    aggregations: Optional[Dict[str, Any]] = None

    def add_sort(self, field: str, order: str) -> None:
        self.sort.append((field, order))

    def add_source_include(self, name: str) -> None:
        if name not in self.source_includes:
            self.source_includes.append(name)

    def add_stored_field(self, name: str) -> None:
        if name not in self.stored_fields:
            self.stored_fields.append(name)

    def to_search_kwargs(self) -> Dict[str, Any]:
        """Keyword arguments for ``Elasticsearch.search``."""
        kwargs: Dict[str, Any] = {"query": self.query}
        if self.sort:
            kwargs["sort"] = [{field: {"order": order}} for field, order in self.sort]
        if self.from_ is not None:
            kwargs["from_"] = self.from_
        if self.size is not None:
            kwargs["size"] = self.size
        if self.source_includes:
            kwargs["source"] = list(self.source_includes)
        if self.stored_fields:
            kwargs["stored_fields"] = list(self.stored_fields)
        if self.aggregations:
            kwargs["aggregations"] = self.aggregations
        if self.scroll is not None:
            kwargs["scroll"] = f"{self.scroll}s"
        return kwargs


class Hit(BaseModel):
    """A single search hit."""

    model_config = ConfigDict(populate_by_name=True)

    id: Optional[str] = Field(default=None, alias="_id")
    index: Optional[str] = Field(default=None, alias="_index")
    type: Optional[str] = Field(default=None, alias="_type")
    score: Optional[float] = Field(default=None, alias="_score")
    fields: Dict[str, List[Any]] = Field(default_factory=dict)
    source: Optional[Dict[str, Any]] = Field(default=None, alias="_source")

    def field(self, name: str) -> Optional[List[Any]]:
        return self.fields.get(name)


class Aggregation(BaseModel):
    buckets: List[Dict[str, Any]] = Field(default_factory=list)


class NativeResponse(BaseModel):
    """Search response in a normalized form."""

    total_hits: int = 0
    max_score: float = 0.0
    hits: List[Hit] = Field(default_factory=list)
    aggregations: Optional[Dict[str, Aggregation]] = None
    scroll_id: Optional[str] = None

    @classmethod
    def from_raw(cls, raw: Dict[str, Any]) -> "NativeResponse":
        """
        Build a response from the engine's JSON body.

        ``hits.total`` may be a number or an object with a ``value``.
        """
        hits = raw.get("hits") or {}
        total = hits.get("total", 0)
        if isinstance(total, dict):
            total = total.get("value", 0)

        aggregations = None
        if raw.get("aggregations") is not None:
            aggregations = {
                name: Aggregation(buckets=body.get("buckets", []))
                for name, body in raw["aggregations"].items()
                if isinstance(body, dict)
            }

        return cls(
            total_hits=total or 0,
            max_score=hits.get("max_score") or 0.0,
            hits=[Hit.model_validate(hit) for hit in hits.get("hits", [])],
            aggregations=aggregations,
            scroll_id=raw.get("_scroll_id"),
        )

    @property
    def num_hits(self) -> int:
        return len(self.hits)

    def __str__(self) -> str:
        buckets = sum(len(a.buckets) for a in (self.aggregations or {}).values())
        return (
            f"NativeResponse[total={self.total_hits}, hits={self.num_hits}, "
            f"numBuckets={buckets}, scrollId={self.scroll_id}]"
        )


class Record(BaseModel):
    """A typed record reconstructed from a hit or an aggregation bucket."""

    model_config = ConfigDict(arbitrary_types_allowed=True)

    id: str
    type_name: str
    values: Dict[str, Any] = Field(default_factory=dict)

    def get(self, name: str, default: Any = None) -> Any:
        return self.values.get(name, default)
