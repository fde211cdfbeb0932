from __future__ import annotations

import os
import typing as tp
import uuid

import anyio
import httpx

# 64 KB
CHUNK_SIZE = 65536


class AsyncFileManager:
    """
    Reads and writes cache files.

    Writes go to a temporary sibling first and are moved in place with
    `os.replace`, so readers only ever see complete files.
    """

    async def write_to(self, path: str, data: bytes | str) -> None:
        await self.write_stream(path, _single_chunk(data))

    async def write_stream(self, path: str, stream: tp.AsyncIterable[bytes]) -> int:
        temp_path = f"{path}.tmp-{uuid.uuid4().hex}"
        written = 0
        try:
            async with await anyio.open_file(temp_path, "wb") as f:
                async for chunk in stream:
                    await f.write(chunk)
                    written += len(chunk)
            os.replace(temp_path, path)
        except BaseException:
            if os.path.exists(temp_path):
                os.unlink(temp_path)
            raise
        return written

    async def read_from(self, path: str) -> bytes:
        async with await anyio.open_file(path, "rb") as f:
            return tp.cast(bytes, await f.read())


async def _single_chunk(data: bytes | str) -> tp.AsyncIterator[bytes]:
    yield data.encode("utf-8") if isinstance(data, str) else data


class AsyncFileStream(httpx.AsyncByteStream):
    """
    Single-pass stream over a cached body.

    The file is opened lazily on first iteration and closed once
    it is exhausted or the stream is closed.
    """

    def __init__(self, path: str, chunk_size: int = CHUNK_SIZE) -> None:
        self._path = path
        self._chunk_size = chunk_size
        self._file: tp.Optional[anyio.AsyncFile[bytes]] = None
        self._consumed = False

    async def __aiter__(self) -> tp.AsyncIterator[bytes]:
        if self._consumed:
            raise httpx.StreamConsumed()
        self._consumed = True
        self._file = await anyio.open_file(self._path, "rb")
        try:
            while True:
                chunk = await self._file.read(self._chunk_size)
                if not chunk:
                    break
                yield chunk
        finally:
            await self.aclose()

    async def aclose(self) -> None:
        if self._file is not None:
            await self._file.aclose()
            self._file = None
