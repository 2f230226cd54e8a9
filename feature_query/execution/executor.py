"""
Query execution coordinator.

Runs native requests through the search capability and wraps failures.
"""

import logging

from feature_query.core.errors import FeatureQueryError, SearchExecutionError
from feature_query.core.interfaces import ISearchCapability
from feature_query.core.models import NativeRequest, NativeResponse

logger = logging.getLogger(__name__)


class QueryExecutor:
    """
    Executes search requests for one index.

    Failures are raised as ``FeatureQueryError`` naming the index and type;
    nothing is retried here.
    """

    def __init__(self, capability: ISearchCapability, index_name: str):
        """
        Initialize query executor.

        Args:
            capability: Search capability implementation
            index_name: Index or alias name
        """
        self.capability = capability
        self.index_name = index_name

    def search(self, type_name: str, request: NativeRequest) -> NativeResponse:
        """
        Execute one search request.

        Args:
            type_name: Source type name
            request: Native request

        Returns:
            Normalized response
        """
        logger.debug("Search request for %s/%s: %s", self.index_name, type_name, request)
        try:
            response = self.capability.search(self.index_name, type_name, request)
        except FeatureQueryError:
            raise
        except Exception as e:
            logger.error("Error executing search on %s/%s: %s", self.index_name, type_name, e)
            raise SearchExecutionError(
                f"Error executing query search: {e}", self.index_name, type_name
            ) from e
        logger.debug("Search response: %s", response)
        return response
