"""
Abstract interfaces for search engine collaborators.

These protocols define what the feature query core needs from the outside
world: a way to read mapping metadata and a way to run searches.
"""

from typing import Any, Dict, List, Optional, Protocol, Set

from feature_query.core.models import Attribute, NativeRequest, NativeResponse


class ISearchCapability(Protocol):
    """
    Execute requests against a search engine.

    Implementations raise ``FeatureQueryError`` subclasses on failure and
    never retry internally.
    """

    def get_types(self, index_name: str) -> List[str]:
        """
        Enumerate the type names available in an index.

        Args:
            index_name: Index or alias name

        Returns:
            List of type names (empty if the index has no mapping)
        """
        ...

    def get_mapping(self, index_name: str, type_name: str) -> Optional[Dict[str, Any]]:
        """
        Fetch the nested mapping metadata of a type.

        Args:
            index_name: Index or alias name
            type_name: Source type name

        Returns:
            Mapping document, or None if the type does not exist
        """
        ...

    def search(
        self, index_name: str, type_name: str, request: NativeRequest
    ) -> NativeResponse:
        """Execute one search request."""
        ...

    def scroll(self, scroll_id: str, scroll_time: Optional[int]) -> NativeResponse:
        """
        Continue a cursor.

        Args:
            scroll_id: Cursor token from the previous response
            scroll_time: Time to keep the cursor alive, in seconds
        """
        ...

    def clear_scroll(self, scroll_ids: Set[str]) -> None:
        """Release server-side cursors (best effort)."""
        ...

    def close(self) -> None:
        ...


class ISchemaProvider(Protocol):
    """Provide the inferred attributes of a source type."""

    def get_attributes(self, type_name: str) -> List[Attribute]:
        """
        Infer attributes for a source type.

        Args:
            type_name: Source type name

        Returns:
            Ordered list of attributes, synthetic attributes first
        """
        ...
