"""
Opaque cursor tokens.

Backends hand out structured continuation keys (e.g. a DynamoDB
LastEvaluatedKey) and a combined view tracks one cursor per source. Both
cross the caller boundary as a single URL-safe string.
"""

import base64
import binascii
import json
from typing import Any

from pydantic import BaseModel, ConfigDict, ValidationError

from .exceptions import CursorDecodeError
from .pagination import Cursor


def encode_cursor(key: dict[str, Any]) -> str:
    """
    Encodes a JSON-serializable mapping as an opaque token.

    Keys are sorted so equal mappings always produce equal tokens, which the
    repeat detection relies on.
    """
    raw = json.dumps(key, sort_keys=True, separators=(",", ":"), default=str)
    return base64.urlsafe_b64encode(raw.encode("utf-8")).decode("ascii").rstrip("=")


def decode_cursor(token: str) -> dict[str, Any]:
    """
    Decodes a token produced by encode_cursor.

    Raises:
        CursorDecodeError: If the token is not valid base64 JSON of an object
    """
    padded = token + "=" * (-len(token) % 4)
    try:
        decoded = json.loads(base64.urlsafe_b64decode(padded.encode("ascii")))
    except (binascii.Error, UnicodeError, ValueError) as e:
        raise CursorDecodeError(token, original_error=e) from e
    if not isinstance(decoded, dict):
        raise CursorDecodeError(token)
    return decoded


class MergedCursor(BaseModel):
    """
    Continuation state of a combined view: one input cursor per source.

    A None cursor means "from the beginning", so exhaustion is tracked
    separately in ``exhausted`` rather than inferred from None.
    """

    model_config = ConfigDict(frozen=True)

    per_source: dict[str, Cursor]
    exhausted: list[str] = []

    @property
    def has_more(self) -> bool:
        return any(key not in self.exhausted for key in self.per_source)

    def cursor_for(self, source_key: str) -> Cursor:
        """Next input cursor of a source, None when it has no further pages."""
        if source_key in self.exhausted:
            return None
        return self.per_source.get(source_key)

    def to_token(self) -> str:
        return encode_cursor({"per_source": self.per_source, "exhausted": sorted(self.exhausted)})

    @classmethod
    def from_token(cls, token: str) -> "MergedCursor":
        try:
            return cls.model_validate(decode_cursor(token))
        except ValidationError as e:
            raise CursorDecodeError(token, original_error=e) from e
