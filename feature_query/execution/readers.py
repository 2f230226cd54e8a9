"""
Record readers.

Readers are lazy, single pass iterators over the records of one query.
Cursor backed readers own their server-side cursors and release them
exactly once, on exhaustion, when the cap is reached or on ``close()``.
"""

import logging
from typing import Iterator, List, Optional, Set

from feature_query.core.config import ArrayEncoding
from feature_query.core.errors import CursorFetchError, FeatureQueryError
from feature_query.core.interfaces import ISearchCapability
from feature_query.core.models import FeatureType, Hit, NativeResponse, Record
from feature_query.execution.decoding import HitDecoder
from feature_query.query.filters import Filter

logger = logging.getLogger(__name__)


class BaseRecordReader(Iterator[Record]):
    def __iter__(self) -> "BaseRecordReader":
        return self

    def __next__(self) -> Record:
        raise NotImplementedError

    def close(self) -> None:
        pass

    def __enter__(self) -> "BaseRecordReader":
        return self

    def __exit__(self, exc_type, exc_val, exc_tb) -> None:
        self.close()


class RecordReader(BaseRecordReader):
    """
    Reads the records of a single response.

    When the response carries aggregations, records are built from the
    buckets of the first aggregation instead of the hits.
    """

    def __init__(
        self,
        response: NativeResponse,
        feature_type: FeatureType,
        type_name: Optional[str] = None,
        array_encoding: ArrayEncoding = ArrayEncoding.JSON,
    ):
        self.decoder = HitDecoder(
            feature_type, type_name, array_encoding, max_score=response.max_score
        )
        self._hits: List[Hit] = response.hits
        self._buckets: Optional[List[dict]] = None
        if response.aggregations:
            first = next(iter(response.aggregations.values()))
            self._buckets = first.buckets
        self._position = 0

    def __next__(self) -> Record:
        if self._buckets is not None:
            if self._position >= len(self._buckets):
                raise StopIteration
            record = self.decoder.decode_bucket(self._buckets[self._position], self._position)
        else:
            if self._position >= len(self._hits):
                raise StopIteration
            record = self.decoder.decode(self._hits[self._position], self._position)
        self._position += 1
        return record


class ScrollRecordReader(BaseRecordReader):
    """
    Reads records across cursor pages.

    Args:
        capability: Search capability used for follow-up fetches
        response: First response, carrying the cursor token
        feature_type: Schema of the records
        max_features: Maximum number of records to return
        scroll_time: Cursor TTL in seconds for follow-up fetches
    """

    def __init__(
        self,
        capability: ISearchCapability,
        response: NativeResponse,
        feature_type: FeatureType,
        max_features: int,
        scroll_time: Optional[int] = None,
        type_name: Optional[str] = None,
        array_encoding: ArrayEncoding = ArrayEncoding.JSON,
        index_name: Optional[str] = None,
    ):
        self.capability = capability
        self.feature_type = feature_type
        self.max_features = max_features
        self.scroll_time = scroll_time
        self.type_name = type_name or feature_type.name
        self.array_encoding = array_encoding
        self.index_name = index_name

        self._scroll_ids: Set[str] = set()
        self._released = False
        self._count = 0
        self._load(response)

    def _load(self, response: NativeResponse) -> None:
        self._hits = response.hits
        self._page_position = 0
        self._scroll_id = response.scroll_id
        if response.scroll_id:
            self._scroll_ids.add(response.scroll_id)
        self._decoder = HitDecoder(
            self.feature_type, self.type_name, self.array_encoding, max_score=response.max_score
        )

    def _fetch_next_page(self) -> bool:
        if not self._scroll_id:
            return False
        try:
            response = self.capability.scroll(self._scroll_id, self.scroll_time)
        except CursorFetchError:
            self._release()
            raise
        except Exception as e:
            logger.error("Error fetching next cursor page: %s", e)
            self._release()
            raise CursorFetchError(
                f"Unable to fetch next page: {e}", self.index_name, self.type_name
            ) from e
        self._load(response)
        return len(self._hits) > 0

    def __next__(self) -> Record:
        if self._released:
            raise StopIteration
        if self._count >= self.max_features:
            self._release()
            raise StopIteration
        if self._page_position >= len(self._hits):
            if not self._hits or not self._fetch_next_page():
                self._release()
                raise StopIteration

        record = self._decoder.decode(self._hits[self._page_position], self._count)
        self._page_position += 1
        self._count += 1
        return record

    def _release(self) -> None:
        if self._released:
            return
        self._released = True
        if not self._scroll_ids:
            return
        logger.debug("Releasing %d cursor(s)", len(self._scroll_ids))
        try:
            self.capability.clear_scroll(set(self._scroll_ids))
        except FeatureQueryError as e:
            logger.warning("Failed to release cursors: %s", e)

    def close(self) -> None:
        self._release()


class FilteringRecordReader(BaseRecordReader):
    """
    Drops records that do not satisfy a filter.

    Aggregation bucket records are passed through unchanged.
    """

    def __init__(self, delegate: BaseRecordReader, filter: Filter, aggregation_attribute: Optional[str] = None):
        self.delegate = delegate
        self.filter = filter
        self.aggregation_attribute = aggregation_attribute

    def __next__(self) -> Record:
        while True:
            record = next(self.delegate)
            if self.aggregation_attribute and record.get(self.aggregation_attribute) is not None:
                return record
            if self.filter.evaluate(record):
                return record

    def close(self) -> None:
        self.delegate.close()
