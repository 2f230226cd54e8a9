"""
Elasticsearch search capability.

Implements ISearchCapability over the official Elasticsearch client.
"""

import logging
from typing import Any, Dict, List, Optional, Set

from elasticsearch import ApiError, Elasticsearch, NotFoundError, TransportError

from feature_query.core.errors import (
    CursorFetchError,
    CursorReleaseError,
    SchemaFetchError,
    SearchExecutionError,
    TransportFailure,
)
from feature_query.core.models import NativeRequest, NativeResponse

logger = logging.getLogger(__name__)


def _body(response: Any) -> Dict[str, Any]:
    """Plain dict body of a client response."""
    return getattr(response, "body", response)


def _is_typeless(mappings: Dict[str, Any]) -> bool:
    return not mappings or "properties" in mappings or not any(
        isinstance(value, dict) and "properties" in value for value in mappings.values()
    )


class ESSearchCapability:
    """
    Search capability backed by Elasticsearch.

    Typeless indices expose a single type named after the index; legacy
    typed mappings expose their mapping types.
    """

    def __init__(
        self,
        es_host: Optional[str] = None,
        client: Optional[Elasticsearch] = None,
        **client_kwargs: Any,
    ):
        """
        Initialize Elasticsearch search capability.

        Args:
            es_host: Elasticsearch host URL (ignored if client is given)
            client: Existing Elasticsearch client
            **client_kwargs: Extra arguments for the client constructor
        """
        if client is None:
            if es_host is None:
                raise ValueError("Either es_host or client is required")
            client = Elasticsearch(hosts=[es_host], **client_kwargs)
        self.es_host = es_host
        self.es_client = client

    def _get_index_mappings(self, index_name: str) -> Dict[str, Dict[str, Any]]:
        try:
            response = self.es_client.indices.get_mapping(index=index_name)
        except NotFoundError:
            return {}
        except ApiError as e:
            logger.error("Error fetching mapping of %s: %s", index_name, e)
            raise SchemaFetchError(f"Unable to fetch mapping: {e}", index_name) from e
        except TransportError as e:
            logger.error("Error connecting to %s: %s", self.es_host, e)
            raise TransportFailure(f"Unable to reach search engine: {e}", index_name) from e
        return {
            name: body.get("mappings") or {}
            for name, body in _body(response).items()
            if isinstance(body, dict)
        }

    def get_types(self, index_name: str) -> List[str]:
        types: List[str] = []
        for mappings in self._get_index_mappings(index_name).values():
            if _is_typeless(mappings):
                candidates = [index_name]
            else:
                candidates = [name for name in mappings if name != "_default_"]
            for name in candidates:
                if name not in types:
                    types.append(name)
        return types

    def get_mapping(self, index_name: str, type_name: str) -> Optional[Dict[str, Any]]:
        """
        Fetch the mapping of a type, merged across the indices of an alias.
        """
        merged: Optional[Dict[str, Any]] = None
        for mappings in self._get_index_mappings(index_name).values():
            if _is_typeless(mappings):
                definition = mappings
            else:
                definition = mappings.get(type_name)
            if not isinstance(definition, dict):
                continue
            if merged is None:
                merged = {"properties": {}}
            merged["properties"].update(definition.get("properties") or {})
            for key, value in definition.items():
                if key != "properties":
                    merged.setdefault(key, value)
        return merged

    def search(
        self, index_name: str, type_name: str, request: NativeRequest
    ) -> NativeResponse:
        try:
            response = self.es_client.search(index=index_name, **request.to_search_kwargs())
        except ApiError as e:
            logger.error("Error executing search on %s: %s", index_name, e)
            raise SearchExecutionError(
                f"Error executing query search: {e}", index_name, type_name
            ) from e
        except TransportError as e:
            logger.error("Error connecting to %s: %s", self.es_host, e)
            raise TransportFailure(
                f"Unable to reach search engine: {e}", index_name, type_name
            ) from e
        return NativeResponse.from_raw(_body(response))

    def scroll(self, scroll_id: str, scroll_time: Optional[int]) -> NativeResponse:
        kwargs: Dict[str, Any] = {"scroll_id": scroll_id}
        if scroll_time is not None:
            kwargs["scroll"] = f"{scroll_time}s"
        try:
            response = self.es_client.scroll(**kwargs)
        except ApiError as e:
            logger.error("Error fetching cursor page: %s", e)
            raise CursorFetchError(f"Invalid or expired cursor: {e}") from e
        except TransportError as e:
            logger.error("Error connecting to %s: %s", self.es_host, e)
            raise TransportFailure(f"Unable to reach search engine: {e}") from e
        return NativeResponse.from_raw(_body(response))

    def clear_scroll(self, scroll_ids: Set[str]) -> None:
        if not scroll_ids:
            return
        try:
            self.es_client.clear_scroll(scroll_id=sorted(scroll_ids))
        except (ApiError, TransportError) as e:
            raise CursorReleaseError(f"Unable to release cursors: {e}") from e

    def close(self) -> None:
        self.es_client.close()
