"""JSON serialization helpers backed by msgspec."""

from typing import Any

import msgspec

__all__ = ("from_json", "to_json")

_encoder = msgspec.json.Encoder(enc_hook=str)
_decoder = msgspec.json.Decoder()


def to_json(data: Any) -> str:
    """Encode data to a JSON string.

    Values msgspec does not know how to encode are rendered with ``str()``.
    """
    return _encoder.encode(data).decode("utf-8")


def from_json(data: "str | bytes") -> Any:
    """Decode a JSON string or bytes to Python objects.

    Raises:
        msgspec.DecodeError: If the payload is not valid JSON.
    """
    return _decoder.decode(data)
