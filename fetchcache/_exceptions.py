__all__ = (
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


class FetchCacheError(Exception): ...


class StoreError(FetchCacheError): ...


class CacheReadError(FetchCacheError): ...


class NetworkError(FetchCacheError): ...


class AbortError(NetworkError): ...


class ConfigError(FetchCacheError): ...


class CacheControlError(FetchCacheError): ...


class ParseError(CacheControlError): ...


class ValidationError(CacheControlError): ...
