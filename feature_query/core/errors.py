"""
Error taxonomy for feature queries.

Hard failures carry the operation that failed and the index/type involved;
the originating exception is chained as ``__cause__``.
"""

from enum import Enum
from typing import Optional


class ErrorOperation(str, Enum):
    SCHEMA_FETCH = "schema_fetch"
    SEARCH_EXECUTE = "search_execute"
    CURSOR_FETCH = "cursor_fetch"
    CURSOR_RELEASE = "cursor_release"
    AGGREGATION_DECODE = "aggregation_decode"
    TRANSPORT = "transport"


class FeatureQueryError(Exception):
    """Base class for hard failures."""

    operation = ErrorOperation.TRANSPORT

    def __init__(
        self,
        message: str,
        index_name: Optional[str] = None,
        type_name: Optional[str] = None,
    ):
        self.index_name = index_name
        self.type_name = type_name
        super().__init__(message)

    def __str__(self) -> str:
        target = "/".join(n for n in (self.index_name, self.type_name) if n)
        message = super().__str__()
        if target:
            return f"[{self.operation.value} {target}] {message}"
        return f"[{self.operation.value}] {message}"


class TransportFailure(FeatureQueryError):
    """The search engine could not be reached."""

    operation = ErrorOperation.TRANSPORT


class SchemaFetchError(FeatureQueryError):
    operation = ErrorOperation.SCHEMA_FETCH


class SearchExecutionError(FeatureQueryError):
    operation = ErrorOperation.SEARCH_EXECUTE


class CursorFetchError(FeatureQueryError):
    """A cursor continuation failed, e.g. the token is invalid or expired."""

    operation = ErrorOperation.CURSOR_FETCH


class CursorReleaseError(FeatureQueryError):
    operation = ErrorOperation.CURSOR_RELEASE


class AggregationDecodeError(FeatureQueryError):
    """An aggregation bucket payload could not be decoded."""

    operation = ErrorOperation.AGGREGATION_DECODE


class CRSResolutionError(ValueError):
    """No coordinate reference system is known for an SRID."""


class InvalidDateFormatError(ValueError):
    """A date format string is not understood."""
