from __future__ import annotations

import logging
import os
import shutil
import typing as tp
from pathlib import Path

from ._exceptions import CacheReadError, StoreError
from ._files import AsyncFileManager, AsyncFileStream
from ._keygen import METADATA_SUFFIX
from ._serializers import BaseSerializer, JSONSerializer, Metadata
from ._utils import BaseClock, Clock, filter_mapping, keep_mapping

logger = logging.getLogger("fetchcache.storages")

__all__ = ("AsyncFileStorage", "REFRESHED_HEADERS")

# Headers taken over from a 304 response when an entry is revalidated
REFRESHED_HEADERS = ("expires", "cache-control", "date")

# Hop-by-hop framing, meaningless once the body sits on disk
UNSTORED_HEADERS = ("transfer-encoding",)


class AsyncFileStorage:
    """
    Stores each response as a pair of files inside a cache folder.

    For a key `K` the raw body lives in `K` and the JSON metadata
    (status, retrieval time and lower-cased headers) in `K.headers`.
    An entry only counts as present when both files exist and the
    metadata parses.

    :param base_path: The cache folder, defaults to ".cache"
    :type base_path: tp.Union[str, Path], optional
    :param serializer: Serializer for the metadata record, defaults to None
    :type serializer: tp.Optional[BaseSerializer], optional
    :param clock: Source of the retrieval timestamps, defaults to None
    :type clock: tp.Optional[BaseClock], optional
    """

    def __init__(
        self,
        base_path: tp.Union[str, Path] = ".cache",
        serializer: tp.Optional[BaseSerializer] = None,
        clock: tp.Optional[BaseClock] = None,
    ) -> None:
        self._base_path = Path(base_path)
        self._serializer = serializer or JSONSerializer()
        self._clock = clock or Clock()
        self._file_manager = AsyncFileManager()

    @property
    def base_path(self) -> Path:
        return self._base_path

    def body_path(self, key: str) -> Path:
        return self._base_path / key

    def metadata_path(self, key: str) -> Path:
        return self._base_path / f"{key}{METADATA_SUFFIX}"

    async def ensure_folder(self) -> None:
        """
        Creates the cache folder if it does not exist yet.

        :raises StoreError: If the path is taken by something that is not a directory
        """
        try:
            if self._base_path.is_dir():
                return
            if self._base_path.exists():
                raise StoreError(f"Looking for a cache folder at {self._base_path} but found a file instead.")
            self._base_path.mkdir(parents=True)
            logger.debug(f"Created the cache folder {self._base_path}.")
        except FileExistsError:
            # Someone may have created the folder in the meantime
            if not self._base_path.is_dir():
                raise StoreError(f"Looking for a cache folder at {self._base_path} but found a file instead.")
        except OSError as exc:
            raise StoreError(f"Could not create the cache folder {self._base_path}.") from exc

    async def read_metadata(self, key: str) -> tp.Optional[Metadata]:
        """
        Retrieves the metadata of a stored response.

        Missing, malformed or unpaired records are reported as absent
        so that the caller falls back to the network.

        :param key: The cache key of the response
        :type key: str
        :return: The stored metadata, if the entry is complete
        :rtype: tp.Optional[Metadata]
        """
        metadata_path = self.metadata_path(key)

        try:
            data = await self._file_manager.read_from(str(metadata_path))
            metadata = self._serializer.loads(data)
            if not self.body_path(key).is_file():
                raise CacheReadError(f"The body of the entry {key!r} is missing.")
        except FileNotFoundError:
            return None
        except (OSError, CacheReadError) as exc:
            logger.debug(f"Ignoring the cache entry {key!r}: {exc}")
            return None
        return metadata

    def read_body(self, key: str) -> AsyncFileStream:
        """Opens the stored body for a single sequential read."""
        return AsyncFileStream(str(self.body_path(key)))

    async def write_entry(
        self,
        key: str,
        status: int,
        headers: tp.Mapping[str, str],
        stream: tp.AsyncIterable[bytes],
    ) -> Metadata:
        """
        Stores a response body and its metadata.

        The previous metadata record is dropped first and the new one
        only becomes visible once the body has been fully written.

        :param key: The cache key of the response
        :type key: str
        :param status: The HTTP status of the response
        :type status: int
        :param headers: The response headers
        :type headers: tp.Mapping[str, str]
        :param stream: The raw response body
        :type stream: tp.AsyncIterable[bytes]
        :raises StoreError: If the files could not be written
        :return: The metadata that was written
        :rtype: Metadata
        """
        metadata = Metadata(
            status=status,
            headers={name.lower(): value for name, value in filter_mapping(headers, UNSTORED_HEADERS).items()},
            received_at=self._clock.now(),
        )

        try:
            self.metadata_path(key).unlink(missing_ok=True)
            size = await self._file_manager.write_stream(str(self.body_path(key)), stream)
            await self._file_manager.write_to(str(self.metadata_path(key)), self._serializer.dumps(metadata))
        except OSError as exc:
            raise StoreError(f"Could not write the cache entry {key!r}.") from exc

        logger.debug(f"Stored {size} bytes for the cache entry {key!r}.")
        return metadata

    async def update_metadata(self, key: str, headers: tp.Mapping[str, str]) -> tp.Optional[Metadata]:
        """
        Refreshes a stored entry after a successful revalidation.

        Only the retrieval time and the `REFRESHED_HEADERS` change;
        the body is left untouched.

        :param key: The cache key of the response
        :type key: str
        :param headers: The headers of the 304 response
        :type headers: tp.Mapping[str, str]
        :return: The updated metadata, or None if the entry disappeared
        :rtype: tp.Optional[Metadata]
        """
        metadata = await self.read_metadata(key)
        if metadata is None:
            return None

        refreshed = keep_mapping(headers, REFRESHED_HEADERS)
        metadata.headers.update({name.lower(): value for name, value in refreshed.items()})
        metadata.received_at = self._clock.now()

        try:
            await self._file_manager.write_to(str(self.metadata_path(key)), self._serializer.dumps(metadata))
        except OSError as exc:
            raise StoreError(f"Could not update the cache entry {key!r}.") from exc
        return metadata

    async def reset_folder(self) -> None:
        """Removes everything inside the cache folder, keeping the folder itself."""
        if not self._base_path.is_dir():
            return

        try:
            with os.scandir(self._base_path) as entries:
                for entry in entries:
                    if entry.is_dir(follow_symlinks=False):
                        shutil.rmtree(entry.path)
                    else:
                        os.unlink(entry.path)
        except FileNotFoundError:  # pragma: no cover
            pass
        except OSError as exc:
            raise StoreError(f"Could not reset the cache folder {self._base_path}.") from exc
        logger.debug(f"Reset the cache folder {self._base_path}.")
