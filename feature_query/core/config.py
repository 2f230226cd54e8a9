"""Store settings, read from ``FEATURE_QUERY_*`` environment variables or ``.env``."""

from enum import Enum
from typing import Optional

from pydantic_settings import BaseSettings, SettingsConfigDict


class ArrayEncoding(str, Enum):
    # Return all arrays without encoding
    JSON = "JSON"
    # URL encode and join string array elements
    CSV = "CSV"


class StoreSettings(BaseSettings):
    host: str = "http://localhost:9200"
    index_name: str = ""

    source_filtering_enabled: bool = False
    default_max_features: int = 100

    # Cursor ("scroll") paging
    scroll_enabled: bool = False
    scroll_size: Optional[int] = 20
    scroll_time: Optional[int] = 120  # seconds

    # Spatial grid aggregation
    grid_size: int = 10000
    grid_threshold: float = 0.05

    array_encoding: ArrayEncoding = ArrayEncoding.JSON

    model_config = SettingsConfigDict(
        env_prefix="FEATURE_QUERY_",
        env_file=".env",
        case_sensitive=False,
        extra="ignore",
    )
