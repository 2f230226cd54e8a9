"""Query translation: filters, filter DSL translation and request building."""

from feature_query.query.filters import INCLUDE, EXCLUDE, Filter
from feature_query.query.filter_translator import FilterTranslator
from feature_query.query.translator import QueryTranslator, TranslationResult

__all__ = [
    "INCLUDE",
    "EXCLUDE",
    "Filter",
    "FilterTranslator",
    "QueryTranslator",
    "TranslationResult",
]
