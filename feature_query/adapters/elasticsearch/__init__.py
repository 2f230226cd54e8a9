"""Elasticsearch adapter."""

from feature_query.adapters.elasticsearch.client import ESSearchCapability

__all__ = ["ESSearchCapability"]
