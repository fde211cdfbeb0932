from __future__ import annotations

import json
import typing as tp
from dataclasses import dataclass, field

from ._exceptions import CacheReadError

__all__ = ("Metadata", "BaseSerializer", "JSONSerializer")


@dataclass
class Metadata:
    """
    Everything stored next to a cached body.

    `headers` maps lower-cased header names to their values and
    `received_at` is the write time in milliseconds since the epoch.
    """

    status: int
    headers: tp.Dict[str, str] = field(default_factory=dict)
    received_at: int = 0


class BaseSerializer:
    def dumps(self, metadata: Metadata) -> str:
        raise NotImplementedError()

    def loads(self, data: tp.Union[str, bytes]) -> Metadata:
        raise NotImplementedError()


class JSONSerializer(BaseSerializer):
    """A simple json-based serializer."""

    def dumps(self, metadata: Metadata) -> str:
        """
        Dumps the metadata of a cached response.

        :param metadata: Status, headers and retrieval time of the response
        :type metadata: Metadata
        :return: Serialized metadata
        :rtype: str
        """
        metadata_dict = {
            "status": metadata.status,
            "received": metadata.received_at,
            "headers": {key.lower(): value for key, value in metadata.headers.items()},
        }
        return json.dumps(metadata_dict, indent=2)

    def loads(self, data: tp.Union[str, bytes]) -> Metadata:
        """
        Loads the metadata of a cached response.

        :param data: Serialized metadata
        :type data: tp.Union[str, bytes]
        :raises CacheReadError: If the data is not a well-formed metadata record
        :return: Status, headers and retrieval time of the response
        :rtype: Metadata
        """
        try:
            full_json = json.loads(data)
        except ValueError as exc:
            raise CacheReadError("The metadata record is not valid JSON.") from exc

        if not isinstance(full_json, dict):
            raise CacheReadError("The metadata record should be a JSON object.")

        status = full_json.get("status")
        received = full_json.get("received")
        headers = full_json.get("headers")

        if not isinstance(status, int) or isinstance(status, bool):
            raise CacheReadError(f"Invalid status in the metadata record: {status!r}.")
        if not isinstance(received, int) or isinstance(received, bool):
            raise CacheReadError(f"Invalid retrieval time in the metadata record: {received!r}.")
        if not isinstance(headers, dict) or not all(
            isinstance(key, str) and isinstance(value, str) for key, value in headers.items()
        ):
            raise CacheReadError("Invalid headers in the metadata record.")

        return Metadata(
            status=status,
            headers={key.lower(): value for key, value in headers.items()},
            received_at=received,
        )
