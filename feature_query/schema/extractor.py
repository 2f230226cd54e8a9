"""
Schema extraction coordinator.

Fetches mapping metadata through the search capability and walks it into
attributes.
"""

import logging
from typing import List, Optional

from feature_query.core.errors import FeatureQueryError, SchemaFetchError
from feature_query.core.interfaces import ISearchCapability
from feature_query.core.models import Attribute
from feature_query.schema.walker import MappingWalker

logger = logging.getLogger(__name__)


class SchemaExtractor:
    """
    Infers attributes for source types of one index.

    Implements the ISchemaProvider interface.
    """

    def __init__(
        self,
        capability: ISearchCapability,
        index_name: str,
        walker: Optional[MappingWalker] = None,
    ):
        """
        Initialize schema extractor.

        Args:
            capability: Search capability used to fetch mappings
            index_name: Index or alias name
            walker: Mapping walker (default walker if None)
        """
        self.capability = capability
        self.index_name = index_name
        self.walker = walker or MappingWalker()

    def get_attributes(self, type_name: str) -> List[Attribute]:
        """
        Fetch and walk the mapping of a source type.

        Returns:
            Ordered attributes; empty if the type has no mapping
        """
        try:
            mapping = self.capability.get_mapping(self.index_name, type_name)
        except FeatureQueryError:
            raise
        except Exception as e:
            logger.error("Error fetching mapping for %s/%s: %s", self.index_name, type_name, e)
            raise SchemaFetchError(
                f"Unable to fetch mapping: {e}", self.index_name, type_name
            ) from e

        if mapping is None:
            logger.debug("No mapping found for %s/%s", self.index_name, type_name)
            return []
        return self.walker.walk(mapping)
