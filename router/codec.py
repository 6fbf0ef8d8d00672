"""
Message codec: JSON text <-> Envelope.

Stateless. Callers log and drop frames that fail to decode; nothing is retried.
"""

import json
from typing import Union

from pydantic import ValidationError

from router.errors import DecodeError
from router.types import Envelope


def encode(envelope: Envelope) -> str:
    """Serialize an envelope to a JSON text frame."""
    return envelope.model_dump_json(exclude_none=True)


def decode(raw: Union[str, bytes, bytearray]) -> Envelope:
    """
    Parse a JSON text frame into an Envelope.

    Raises:
        DecodeError: malformed JSON, non-object frame, unknown message_type,
            or a payload that does not validate against its tag.
    """
    if isinstance(raw, (bytes, bytearray)):
        try:
            raw = raw.decode("utf-8")
        except UnicodeDecodeError as e:
            raise DecodeError(f"frame is not valid UTF-8: {e}") from e

    try:
        data = json.loads(raw)
    except (json.JSONDecodeError, TypeError) as e:
        raise DecodeError(f"frame is not valid JSON: {e}") from e

    if not isinstance(data, dict):
        raise DecodeError(f"frame must be a JSON object, got {type(data).__name__}")

    try:
        return Envelope.model_validate(data)
    except ValidationError as e:
        raise DecodeError(f"invalid envelope: {e.error_count()} validation error(s): {e}") from e
