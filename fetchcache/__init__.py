from fetchcache._cache import CacheContext as CacheContext
from fetchcache._cache import default_context as default_context
from fetchcache._cache import fetch as fetch
from fetchcache._cache import set_parameter as set_parameter
from fetchcache._client import RevalidationClient as RevalidationClient
from fetchcache._config import CacheConfig as CacheConfig
from fetchcache._config import load_config as load_config
from fetchcache._controller import is_expired as is_expired
from fetchcache._controller import parse_refresh as parse_refresh
from fetchcache._exceptions import (
    AbortError as AbortError,
    CacheControlError as CacheControlError,
    CacheReadError as CacheReadError,
    ConfigError as ConfigError,
    FetchCacheError as FetchCacheError,
    NetworkError as NetworkError,
    ParseError as ParseError,
    StoreError as StoreError,
    ValidationError as ValidationError,
)
from fetchcache._headers import CacheControl as CacheControl
from fetchcache._headers import parse_cache_control as parse_cache_control
from fetchcache._keygen import generate_key as generate_key
from fetchcache._serializers import JSONSerializer as JSONSerializer
from fetchcache._serializers import Metadata as Metadata
from fetchcache._storages import AsyncFileStorage as AsyncFileStorage
from fetchcache._synchronization import SingleFlight as SingleFlight

__all__ = (
    # Entry points
    "fetch",
    "set_parameter",
    "default_context",
    "CacheContext",
    ## Configuration
    "CacheConfig",
    "load_config",
    "parse_refresh",
    ## Policy
    "is_expired",
    "CacheControl",
    "parse_cache_control",
    ## Storage
    "AsyncFileStorage",
    "JSONSerializer",
    "Metadata",
    "generate_key",
    ## Network
    "RevalidationClient",
    "SingleFlight",
    # Exceptions
    "FetchCacheError",
    "StoreError",
    "CacheReadError",
    "NetworkError",
    "AbortError",
    "ConfigError",
    "CacheControlError",
    "ParseError",
    "ValidationError",
)
