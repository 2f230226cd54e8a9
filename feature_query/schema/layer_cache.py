"""
Process-lifetime cache of layer configurations.

Values are published whole: every write stores a private clone under the
lock and every read returns a clone, so no reader can observe a partially
updated configuration.
"""

import threading
from typing import Callable, Dict, List, Optional

from feature_query.core.models import LayerConfiguration


class LayerConfigurationCache:
    def __init__(self):
        self._lock = threading.Lock()
        self._configurations: Dict[str, LayerConfiguration] = {}

    def get(self, layer_name: str) -> Optional[LayerConfiguration]:
        with self._lock:
            configuration = self._configurations.get(layer_name)
        return configuration.clone() if configuration is not None else None

    def put(self, configuration: LayerConfiguration) -> None:
        published = configuration.clone()
        with self._lock:
            self._configurations[published.layer_name] = published

    def get_or_create(
        self, layer_name: str, factory: Callable[[], LayerConfiguration]
    ) -> LayerConfiguration:
        """
        Return the cached configuration, creating it on first access.

        The factory runs outside the lock; if two callers race, the first
        published value wins and both get it.
        """
        existing = self.get(layer_name)
        if existing is not None:
            return existing

        created = factory().clone()
        with self._lock:
            published = self._configurations.setdefault(layer_name, created)
        return published.clone()

    def update(
        self, layer_name: str, mutator: Callable[[LayerConfiguration], None]
    ) -> LayerConfiguration:
        """
        Apply a mutation to a copy and publish it as the new value.

        Raises:
            KeyError: If no configuration exists for the layer
        """
        with self._lock:
            current = self._configurations[layer_name]
            updated = current.clone()
            mutator(updated)
            self._configurations.pop(layer_name)
            self._configurations[updated.layer_name] = updated
        return updated.clone()

    def names(self) -> List[str]:
        with self._lock:
            return list(self._configurations)

    def __contains__(self, layer_name: str) -> bool:
        with self._lock:
            return layer_name in self._configurations
