"""
Builds a feature type from the attributes of a layer configuration.
"""

import logging
from typing import List, Optional

from feature_query.core.errors import CRSResolutionError
from feature_query.core.models import (
    ANALYZED,
    DATE_FORMAT,
    FULL_NAME,
    GEOMETRY_TYPE,
    NESTED,
    NESTED_PATHS,
    Attribute,
    AttributeDescriptor,
    FeatureType,
)
from feature_query.schema.crs import resolve_crs
from feature_query.schema.type_mappings import TypeMapper

logger = logging.getLogger(__name__)


class FeatureTypeBuilder:
    """
    Builds a typed record schema from configured attributes.

    Only attributes flagged ``use`` are included, in list order.
    """

    def __init__(self, attributes: Optional[List[Attribute]], type_name: str):
        """
        Initialize feature type builder.

        Args:
            attributes: Configured attributes (None builds an empty type)
            type_name: Name of the feature type
        """
        self.attributes = attributes
        self.type_name = type_name

    def build(self) -> FeatureType:
        descriptors: List[AttributeDescriptor] = []
        default_geometries: List[str] = []

        for attribute in self.attributes or []:
            if not attribute.use:
                continue
            descriptor = self._build_descriptor(attribute)
            if descriptor is None:
                continue
            if descriptor.is_geometry and attribute.default_geometry:
                default_geometries.append(descriptor.name)
            descriptors.append(descriptor)

        default_geometry = None
        if len(default_geometries) == 1:
            default_geometry = default_geometries[0]
        elif default_geometries:
            logger.debug(
                "Conflicting default geometries %s for %s, leaving none",
                default_geometries,
                self.type_name,
            )

        return FeatureType(
            name=self.type_name,
            attributes=descriptors,
            default_geometry=default_geometry,
        )

    def _build_descriptor(self, attribute: Attribute) -> Optional[AttributeDescriptor]:
        name = attribute.display_name
        crs = None
        user_data = {}

        if attribute.type.is_geometry:
            if attribute.srid is None:
                logger.warning("No srid for geometry attribute %s", attribute.name)
                return None
            try:
                crs = resolve_crs(attribute.srid)
            except CRSResolutionError as e:
                logger.warning(
                    "Error occurred determining srid for %s: %s", attribute.name, e
                )
                return None
            user_data[GEOMETRY_TYPE] = attribute.geometry_kind

        if attribute.date_formats:
            user_data[DATE_FORMAT] = list(attribute.date_formats)

        user_data[FULL_NAME] = attribute.name
        user_data[ANALYZED] = attribute.analyzed
        user_data[NESTED] = attribute.nested
        user_data[NESTED_PATHS] = list(attribute.nested_paths)

        return AttributeDescriptor(
            name=name,
            type=attribute.type,
            binding=TypeMapper.get_python_type(attribute.type),
            crs=crs,
            user_data=user_data,
        )
