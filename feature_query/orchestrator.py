"""
Feature store - main entry point.

Coordinates schema inference, layer configuration and query execution for
one index.
"""

import logging
import threading
from typing import Any, Callable, Dict, List, Optional

from feature_query.core.config import StoreSettings
from feature_query.core.errors import FeatureQueryError, SchemaFetchError
from feature_query.core.interfaces import ISchemaProvider, ISearchCapability
from feature_query.core.models import Attribute, LayerConfiguration
from feature_query.execution.executor import QueryExecutor
from feature_query.feature_source import FeatureSource
from feature_query.query.translator import QueryTranslator
from feature_query.schema.extractor import SchemaExtractor
from feature_query.schema.layer_cache import LayerConfigurationCache

logger = logging.getLogger(__name__)


class FeatureStore:
    """
    Exposes the types of an index as typed feature collections.

    Layer configurations are created lazily from the inferred schema and
    cached for the lifetime of the store.
    """

    def __init__(
        self,
        capability: ISearchCapability,
        settings: Optional[StoreSettings] = None,
        schema_provider: Optional[ISchemaProvider] = None,
    ):
        """
        Initialize feature store.

        Args:
            capability: Search capability implementation
            settings: Store settings (read from the environment if None)
            schema_provider: Schema provider (mapping walker over the
                capability if None)
        """
        self.capability = capability
        self.settings = settings or StoreSettings()
        self.index_name = self.settings.index_name

        self.schema_provider = schema_provider or SchemaExtractor(capability, self.index_name)
        self.translator = QueryTranslator(self.settings)
        self.executor = QueryExecutor(capability, self.index_name)
        self.layer_configurations = LayerConfigurationCache()

        self._lock = threading.Lock()
        self._doc_types: Dict[str, str] = {}

        logger.debug("Initializing feature store for %s", self.index_name)
        try:
            self._base_type_names = list(capability.get_types(self.index_name))
        except FeatureQueryError:
            raise
        except Exception as e:
            logger.error("Error listing types of %s: %s", self.index_name, e)
            raise SchemaFetchError(f"Unable to list types: {e}", self.index_name) from e

    @classmethod
    def from_elasticsearch(
        cls, es_host: str, index_name: str, **settings: Any
    ) -> "FeatureStore":
        """
        Create a feature store for an Elasticsearch index.

        Args:
            es_host: Elasticsearch host URL
            index_name: Index or alias name
            **settings: Other StoreSettings fields

        Returns:
            Configured FeatureStore
        """
        from feature_query.adapters.elasticsearch import ESSearchCapability

        store_settings = StoreSettings(host=es_host, index_name=index_name, **settings)
        return cls(ESSearchCapability(es_host=es_host), store_settings)

    @classmethod
    def from_settings(cls, settings: Optional[StoreSettings] = None) -> "FeatureStore":
        """Create a feature store from settings (environment and ``.env`` by default)."""
        from feature_query.adapters.elasticsearch import ESSearchCapability

        settings = settings or StoreSettings()
        return cls(ESSearchCapability(es_host=settings.host), settings)

    def get_type_names(self) -> List[str]:
        with self._lock:
            layers = list(self._doc_types)
        names = list(self._base_type_names)
        names.extend(name for name in layers if name not in names)
        return names

    def get_doc_type(self, layer_name: str) -> str:
        """Source type of a layer; layers default to the type of the same name."""
        with self._lock:
            return self._doc_types.get(layer_name, layer_name)

    def get_attributes(self, layer_name: str) -> List[Attribute]:
        """
        Attributes of a layer.

        Configured attributes take precedence; otherwise they are inferred
        from the mapping of the layer's source type.
        """
        configuration = self.layer_configurations.get(layer_name)
        if configuration is not None and configuration.attributes:
            return configuration.attributes
        return self.schema_provider.get_attributes(self.get_doc_type(layer_name))

    def get_layer_configuration(self, layer_name: str) -> LayerConfiguration:
        def create() -> LayerConfiguration:
            return LayerConfiguration(
                doc_type=self.get_doc_type(layer_name),
                layer_name=layer_name,
                attributes=self.get_attributes(layer_name),
            )

        return self.layer_configurations.get_or_create(layer_name, create)

    def set_layer_configuration(self, configuration: LayerConfiguration) -> None:
        """Publish a layer configuration, possibly a new layer over an existing type."""
        with self._lock:
            self._doc_types[configuration.layer_name] = configuration.doc_type
        self.layer_configurations.put(configuration)

    def update_layer_configuration(
        self, layer_name: str, mutator: Callable[[LayerConfiguration], None]
    ) -> LayerConfiguration:
        """
        Change a layer configuration; the change is published as a whole.

        Args:
            layer_name: Layer to change
            mutator: Function applied to a private copy of the configuration
        """
        self.get_layer_configuration(layer_name)
        updated = self.layer_configurations.update(layer_name, mutator)
        with self._lock:
            if updated.layer_name != layer_name:
                self._doc_types.pop(layer_name, None)
            self._doc_types[updated.layer_name] = updated.doc_type
        return updated

    def get_feature_source(self, layer_name: str) -> FeatureSource:
        if layer_name not in self.get_type_names():
            raise KeyError(f"Unknown type '{layer_name}' in {self.index_name}")
        return FeatureSource(self, layer_name)

    def close(self) -> None:
        self.capability.close()

    def __enter__(self) -> "FeatureStore":
        return self

    def __exit__(self, exc_type, exc_val, exc_tb) -> None:
        self.close()
