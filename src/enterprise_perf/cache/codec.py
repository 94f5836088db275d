"""Serialization boundary between cached bytes and typed values.

JsonCodec stores plain JSON-compatible values with orjson. ModelCodec wraps
a pydantic TypeAdapter so each resource kind is encoded and validated
against its own schema on the way back out of the cache.
"""

from __future__ import annotations

from typing import Any, Generic, Protocol, TypeVar

import orjson
from pydantic import TypeAdapter, ValidationError

from enterprise_perf.errors import CacheBackendError

T = TypeVar("T")


class Codec(Protocol[T]):
    """Encode values to bytes and back."""

    def encode(self, value: T) -> bytes: ...

    def decode(self, data: bytes) -> T: ...


class JsonCodec:
    """orjson codec for JSON-compatible values (dicts, lists, scalars)."""

    def encode(self, value: Any) -> bytes:
        try:
            return orjson.dumps(value, default=str)
        except TypeError as e:
            raise CacheBackendError("encode", str(e)) from e

    def decode(self, data: bytes) -> Any:
        try:
            return orjson.loads(data)
        except orjson.JSONDecodeError as e:
            raise CacheBackendError("decode", str(e)) from e


class ModelCodec(Generic[T]):
    """Typed codec backed by a pydantic TypeAdapter.

    Example:
        codec = ModelCodec(Clinic)
        clinic = await cache.get("clinic:abc", codec=codec)  # Clinic | None
    """

    def __init__(self, type_: type[T] | Any):
        self.type_ = type_
        self.adapter: TypeAdapter[T] = TypeAdapter(type_)
        self._many: ModelCodec[list[T]] | None = None

    def encode(self, value: T) -> bytes:
        try:
            return self.adapter.dump_json(value)
        except (ValueError, TypeError) as e:
            raise CacheBackendError("encode", str(e)) from e

    def decode(self, data: bytes) -> T:
        try:
            return self.adapter.validate_json(data)
        except ValidationError as e:
            raise CacheBackendError("decode", str(e)) from e

    def normalize(self, value: Any) -> T:
        """Return value exactly as a cache round-trip would.

        Rows read from a store go through this before they are returned, so
        a result is the same whether or not it was served from the cache.

        Raises:
            ValidationError: If value does not match the codec's type
        """
        validated = self.adapter.validate_python(value)
        return self.adapter.validate_json(self.adapter.dump_json(validated))

    def many(self) -> ModelCodec[list[T]]:
        """Codec for a list of this codec's type."""
        if self._many is None:
            self._many = ModelCodec(list[self.type_])
        return self._many


JSON_CODEC = JsonCodec()

# Untyped rows: JSON-compatible values, datetimes as ISO 8601 strings
ROW_CODEC: ModelCodec[dict[str, Any]] = ModelCodec(dict[str, Any])
