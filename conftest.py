"""
Shared fixtures: an in-memory search capability and a sample index.
"""

from typing import Any, Dict, List, Optional, Set

import pytest

from feature_query.core.config import StoreSettings
from feature_query.core.errors import CursorFetchError
from feature_query.core.models import NativeRequest, NativeResponse
from feature_query.orchestrator import FeatureStore

INDEX_NAME = "places"

MAPPING: Dict[str, Any] = {
    "properties": {
        "name": {"type": "keyword"},
        "description": {"type": "text"},
        "count": {"type": "integer"},
        "rating": {"type": "double"},
        "active": {"type": "boolean"},
        "created": {"type": "date", "format": "yyyy-MM-dd||epoch_millis"},
        "location": {"properties": {"coordinates": {"type": "geo_point"}}},
        "owner": {
            "type": "nested",
            "properties": {
                "name": {"type": "keyword"},
                "age": {"type": "integer"},
            },
        },
    }
}


def make_documents(count: int) -> List[Dict[str, Any]]:
    documents = []
    for i in range(1, count + 1):
        documents.append(
            {
                "_id": str(i),
                "_index": INDEX_NAME,
                "_score": float(i),
                "_source": {
                    "name": f"place {i}",
                    "description": f"Place number {i}",
                    "count": i,
                    "rating": i / 2,
                    "active": i % 2 == 1,
                    "created": f"2020-01-{i:02d}",
                    "location": {"coordinates": [float(i), float(i) / 2]},
                    "owner": {"name": f"owner {i}", "age": 20 + i},
                },
            }
        )
    return documents


class FakeSearchCapability:
    """
    In-memory search capability.

    Every search matches all documents of the type; ``from_``/``size`` and
    cursor paging are honored. Requests and released cursors are recorded.
    """

    def __init__(
        self,
        mappings: Optional[Dict[str, Dict[str, Any]]] = None,
        documents: Optional[Dict[str, List[Dict[str, Any]]]] = None,
        aggregations: Optional[Dict[str, Any]] = None,
    ):
        self.mappings = mappings if mappings is not None else {"place": MAPPING}
        self.documents = documents if documents is not None else {"place": make_documents(5)}
        self.aggregations = aggregations
        self.requests: List[NativeRequest] = []
        self.scroll_calls: List[tuple] = []
        self.cleared: List[Set[str]] = []
        self.closed = False
        self._cursors: Dict[str, List[Dict[str, Any]]] = {}
        self._page_sizes: Dict[str, int] = {}
        self._cursor_count = 0

    def get_types(self, index_name: str) -> List[str]:
        return list(self.mappings)

    def get_mapping(self, index_name: str, type_name: str) -> Optional[Dict[str, Any]]:
        return self.mappings.get(type_name)

    def _response(self, hits: List[Dict[str, Any]], total: int, scroll_id: Optional[str] = None) -> NativeResponse:
        raw: Dict[str, Any] = {
            "hits": {
                "total": {"value": total, "relation": "eq"},
                "max_score": max((h.get("_score") or 0.0 for h in hits), default=None),
                "hits": hits,
            }
        }
        if scroll_id is not None:
            raw["_scroll_id"] = scroll_id
        return NativeResponse.from_raw(raw)

    def search(self, index_name: str, type_name: str, request: NativeRequest) -> NativeResponse:
        self.requests.append(request)
        documents = self.documents.get(type_name, [])
        total = len(documents)

        if request.aggregations:
            raw = {
                "hits": {"total": total, "max_score": None, "hits": []},
                "aggregations": self.aggregations or {},
            }
            return NativeResponse.from_raw(raw)

        if request.scroll is not None:
            size = request.size if request.size is not None else 10
            self._cursor_count += 1
            scroll_id = f"cursor-{self._cursor_count}-0"
            self._cursors[scroll_id] = documents[size:]
            self._page_sizes[scroll_id] = size
            return self._response(documents[:size], total, scroll_id)

        start = request.from_ or 0
        size = request.size if request.size is not None else 10
        return self._response(documents[start:start + size], total)

    def scroll(self, scroll_id: str, scroll_time: Optional[int]) -> NativeResponse:
        self.scroll_calls.append((scroll_id, scroll_time))
        if scroll_id not in self._cursors:
            raise CursorFetchError(f"No search context found for id [{scroll_id}]")
        remaining = self._cursors.pop(scroll_id)
        size = self._page_sizes.pop(scroll_id)
        base, page = scroll_id.rsplit("-", 1)
        next_id = f"{base}-{int(page) + 1}"
        self._cursors[next_id] = remaining[size:]
        self._page_sizes[next_id] = size
        return self._response(remaining[:size], len(remaining), next_id)

    def clear_scroll(self, scroll_ids: Set[str]) -> None:
        self.cleared.append(set(scroll_ids))

    def close(self) -> None:
        self.closed = True


def make_settings(**overrides: Any) -> StoreSettings:
    values: Dict[str, Any] = {"index_name": INDEX_NAME}
    values.update(overrides)
    return StoreSettings(_env_file=None, **values)


@pytest.fixture
def capability() -> FakeSearchCapability:
    return FakeSearchCapability()


@pytest.fixture
def settings() -> StoreSettings:
    return make_settings()


@pytest.fixture
def store(capability: FakeSearchCapability, settings: StoreSettings) -> FeatureStore:
    return FeatureStore(capability, settings)
