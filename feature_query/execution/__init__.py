"""Query execution and result decoding."""

from feature_query.execution.executor import QueryExecutor
from feature_query.execution.decoding import HitDecoder
from feature_query.execution.readers import (
    BaseRecordReader,
    FilteringRecordReader,
    RecordReader,
    ScrollRecordReader,
)

__all__ = [
    "QueryExecutor",
    "HitDecoder",
    "BaseRecordReader",
    "FilteringRecordReader",
    "RecordReader",
    "ScrollRecordReader",
]
