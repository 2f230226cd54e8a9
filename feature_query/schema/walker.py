"""
Schema inference over nested index mapping metadata.

The mapping document is first parsed into a small tree of container, leaf
and geo point nodes, which is then walked depth-first to produce the
ordered attribute list.
"""

import logging
from dataclasses import dataclass, field
from typing import Any, Dict, List, Mapping, Optional, Tuple, Union

from feature_query.core.errors import InvalidDateFormatError
from feature_query.core.models import (
    AGGREGATION,
    DEFAULT_DATE_FORMAT,
    ID,
    INDEX,
    RELATIVE_SCORE,
    SCORE,
    TIMESTAMP,
    TYPE,
    Attribute,
    AttributeType,
)
from feature_query.schema.date_formats import DateFormat
from feature_query.schema.type_mappings import TypeMapper

logger = logging.getLogger(__name__)

GEO_POINT_SRID = 4326
COORDINATES = "coordinates"


@dataclass(frozen=True)
class LeafNode:
    name: str
    type: str
    params: Mapping[str, Any] = field(default_factory=dict)


@dataclass(frozen=True)
class GeoPointNode:
    """An object field whose shape is a geo point (coordinates or lat/lon)."""

    name: str
    params: Mapping[str, Any] = field(default_factory=dict)


@dataclass(frozen=True)
class ContainerNode:
    name: str
    declared_type: Optional[str]
    children: Tuple["MappingNode", ...] = ()


MappingNode = Union[LeafNode, GeoPointNode, ContainerNode]


def is_analyzed(definition: Mapping[str, Any]) -> bool:
    """Only ``text`` fields are analyzed."""
    return definition.get("type") == "text"


def is_geo_point_group(properties: Mapping[str, Any]) -> bool:
    """
    Check whether a property group describes a geo point.

    Matches ``{"coordinates": {"type": "geo_point"}}`` and objects made of
    numeric ``lat``/``lon`` leaves.
    """
    if len(properties) == 1:
        coordinates = properties.get(COORDINATES)
        return isinstance(coordinates, dict) and coordinates.get("type") == "geo_point"
    if set(properties) == {"lat", "lon"}:
        return all(
            isinstance(properties[key], dict)
            and TypeMapper.is_numeric(properties[key].get("type"))
            for key in ("lat", "lon")
        )
    return False


def parse_field(name: str, definition: Mapping[str, Any]) -> Optional[MappingNode]:
    properties = definition.get("properties")
    declared_type = definition.get("type")
    if isinstance(properties, dict):
        if is_geo_point_group(properties):
            params = properties.get(COORDINATES, definition)
            return GeoPointNode(name, params)
        return ContainerNode(
            name,
            declared_type if isinstance(declared_type, str) else None,
            parse_group(properties),
        )
    if isinstance(declared_type, str):
        return LeafNode(name, declared_type, dict(definition))
    return None


def parse_group(group: Mapping[str, Any]) -> Tuple[MappingNode, ...]:
    nodes = []
    for name, definition in group.items():
        if name == TIMESTAMP or not isinstance(definition, dict):
            continue
        node = parse_field(name, definition)
        if node is not None:
            nodes.append(node)
    return tuple(nodes)


def parse_mapping(
    mapping: Mapping[str, Any],
) -> Tuple[Tuple[MappingNode, ...], Optional[Mapping[str, Any]]]:
    """
    Parse a mapping document into top level nodes.

    The document may be a type definition carrying a ``properties`` group
    or directly a group of fields.

    Returns:
        (top level nodes, ``_timestamp`` definition if present)
    """
    timestamp = mapping.get(TIMESTAMP)
    properties = mapping.get("properties")
    group = properties if isinstance(properties, dict) else mapping
    return parse_group(group), timestamp if isinstance(timestamp, dict) else None


class MappingWalker:
    """
    Walks mapping metadata and produces the ordered attribute list.

    Synthetic attributes for hit metadata and aggregation payloads come
    first, followed by ``_timestamp`` (if mapped) and the mapped fields in
    document order.
    """

    SYNTHETIC = (
        (ID, "string"),
        (INDEX, "string"),
        (TYPE, "string"),
        (SCORE, "float"),
        (RELATIVE_SCORE, "float"),
        (AGGREGATION, "binary"),
    )

    def walk(self, mapping: Optional[Mapping[str, Any]]) -> List[Attribute]:
        attributes = self.synthetic_attributes()
        if not mapping:
            return attributes

        nodes, timestamp = parse_mapping(mapping)
        if timestamp is not None:
            attribute = self._leaf_attribute(TIMESTAMP, "date", timestamp, ())
            if attribute is not None:
                attributes.append(attribute)

        for node in nodes:
            self._visit(node, "", (), attributes)
        return attributes

    def synthetic_attributes(self) -> List[Attribute]:
        attributes = []
        for name, es_type in self.SYNTHETIC:
            attribute = self._leaf_attribute(name, es_type, {}, ())
            if attribute is not None:
                attributes.append(attribute)
        return attributes

    def _visit(
        self,
        node: MappingNode,
        prefix: str,
        nested_paths: Tuple[str, ...],
        out: List[Attribute],
    ) -> None:
        path = f"{prefix}.{node.name}" if prefix else node.name

        if isinstance(node, GeoPointNode):
            attribute = self._leaf_attribute(
                f"{path}.{COORDINATES}", "geo_point", node.params, nested_paths
            )
            if attribute is not None:
                out.append(attribute)
        elif isinstance(node, ContainerNode):
            # nesting flows down to every leaf beneath a nested container;
            # the enclosing nested paths are kept outermost first
            child_paths = nested_paths
            if node.declared_type == "nested":
                child_paths = nested_paths + (path,)
            for child in node.children:
                self._visit(child, path, child_paths, out)
        elif isinstance(node, LeafNode):
            attribute = self._leaf_attribute(path, node.type, node.params, nested_paths)
            if attribute is not None:
                out.append(attribute)
        else:
            raise TypeError(f"Unexpected mapping node {node!r}")

    def _leaf_attribute(
        self,
        path: str,
        es_type: str,
        params: Mapping[str, Any],
        nested_paths: Tuple[str, ...],
    ) -> Optional[Attribute]:
        attribute_type = TypeMapper.to_attribute_type(es_type)
        if attribute_type is None:
            logger.debug("Skipping '%s' with unsupported type '%s'", path, es_type)
            return None

        values: Dict[str, Any] = {
            "name": path,
            "type": attribute_type,
            "stored": bool(params.get("store", False)),
            "nested": bool(nested_paths),
            "nested_paths": list(nested_paths),
        }
        if attribute_type.is_geometry:
            values["srid"] = GEO_POINT_SRID
            values["geometry_kind"] = TypeMapper.geometry_kind(attribute_type)
        elif attribute_type == AttributeType.STRING:
            values["analyzed"] = is_analyzed({"type": es_type})
        elif attribute_type == AttributeType.DATE:
            values["date_formats"] = self.resolve_date_formats(path, params.get("format"))
        return Attribute(**values)

    def resolve_date_formats(self, path: str, available: Optional[str]) -> List[str]:
        """
        Split a ``||`` delimited format string and keep the valid formats.

        Falls back to the generic default when nothing valid remains.
        """
        valid_formats: List[str] = []
        if available:
            for candidate in available.split("||"):
                candidate = candidate.strip()
                try:
                    DateFormat.for_format(candidate)
                except InvalidDateFormatError as e:
                    logger.debug(
                        "Unable to parse date format ('%s') for %s: %s", candidate, path, e
                    )
                    continue
                valid_formats.append(candidate)
        if not valid_formats:
            valid_formats.append(DEFAULT_DATE_FORMAT)
        return valid_formats
