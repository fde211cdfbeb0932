from __future__ import annotations

import hashlib
import re

__all__ = ("generate_key", "MAX_KEY_PREFIX")

MAX_KEY_PREFIX = 60
METADATA_SUFFIX = ".headers"

_SCHEME = re.compile(r"^[a-zA-Z][a-zA-Z0-9+.-]*://")
_UNSAFE = re.compile(r"[^A-Za-z0-9._-]+")


def url_digest(url: str) -> str:
    return hashlib.md5(url.encode("utf-8"), usedforsecurity=False).hexdigest()


def generate_key(url: str) -> str:
    """
    Maps a URL to a filesystem-safe cache key.

    The key starts with a readable name: the URL without its scheme,
    where every run of characters outside `[A-Za-z0-9._-]` becomes a
    single underscore, cut at `MAX_KEY_PREFIX` characters. The MD5
    digest of the full URL follows, so URLs sharing a readable name
    still get distinct keys and no key ends like a metadata file.

    Example:
    ```python
        generate_key("https://example.com/a?b=c")
        # 'example.com_a_b_c-e522f177d6c6a83fd699dc3ff1917422'
    ```
    """
    name = _UNSAFE.sub("_", _SCHEME.sub("", url)).strip("_")
    return f"{name[:MAX_KEY_PREFIX]}-{url_digest(url)}"
