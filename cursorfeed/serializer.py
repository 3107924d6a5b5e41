import base64
import binascii
from decimal import Decimal
from typing import Any, cast

from boto3.dynamodb.types import TypeDeserializer, TypeSerializer

from .cursors import decode_cursor, encode_cursor
from .exceptions import CursorDecodeError, MalformedPageError

_KEY_TYPES = frozenset({"S", "N", "B"})


class DynamoSerializer:
    """
    Converts DynamoDB low-level JSON into plain Python records and cursors.

    Architectural Note:
    -------------------
    DynamoDB returns numbers as 'Decimal', which json cannot encode and which
    callers rarely want in a feed payload. Records are restored to int/float
    on the way out.

    LastEvaluatedKeys are NOT restored: a cursor must give back exactly the
    key DynamoDB handed out, and a float cannot hold every 'N' value. Cursor
    tokens therefore carry the key in DynamoDB JSON form.
    """

    def __init__(self) -> None:
        self._serializer = TypeSerializer()
        self._deserializer = TypeDeserializer()

    def to_dynamo(self, data: dict[str, Any]) -> dict[str, dict[str, Any]]:
        """Converts a plain Python dict to DynamoDB JSON format ({"S": "...", "N": "..."})."""
        return {k: self.to_dynamo_value(v) for k, v in data.items()}

    def to_dynamo_value(self, value: Any) -> dict[str, Any]:
        """
        Serializes a single scalar value to DynamoDB format.
        E.g.: 10.5 -> {'N': '10.5'}
        """
        try:
            return cast(dict[str, Any], self._serializer.serialize(self._prepare(value)))
        except TypeError as e:
            raise MalformedPageError(
                f"Value {value!r} cannot be used as a DynamoDB key: {e!s}", original_error=e
            ) from e

    def from_dynamo(self, item: dict[str, Any]) -> dict[str, Any]:
        """Converts DynamoDB JSON format back to a standard Python dict."""
        try:
            python_data = {k: self._deserializer.deserialize(v) for k, v in item.items()}
        except (TypeError, AttributeError) as e:
            raise MalformedPageError(
                "DynamoDB returned an item that cannot be deserialized",
                payload=item,
                original_error=e,
            ) from e
        result = self._restore(python_data)
        assert isinstance(result, dict)
        return result

    def serialize_cursor(self, last_evaluated_key: dict[str, Any]) -> str:
        """
        Converts a DynamoDB LastEvaluatedKey into an opaque cursor token.

        The key keeps its DynamoDB JSON form so numbers survive unchanged;
        binary values are base64 encoded.

        Input:  {"pk": {"S": "value"}, "sk": {"N": "123.45"}}
        Output: base64 of {"pk": {"S": "value"}, "sk": {"N": "123.45"}}

        Raises:
            MalformedPageError: If the key holds anything but S, N or B values
        """
        encoded: dict[str, dict[str, str]] = {}
        for name, attribute in last_evaluated_key.items():
            type_, value = self._key_attribute(attribute)
            if type_ == "B":
                if not isinstance(value, (bytes, bytearray)):
                    raise MalformedPageError(
                        f"Binary key attribute '{name}' is not bytes",
                        payload=last_evaluated_key,
                    )
                value = base64.b64encode(bytes(value)).decode("ascii")
            elif not isinstance(value, str):
                raise MalformedPageError(
                    f"Key attribute '{name}' is not a string", payload=last_evaluated_key
                )
            encoded[name] = {type_: value}
        return encode_cursor(encoded)

    def deserialize_cursor(self, token: str) -> dict[str, Any]:
        """
        Converts an opaque cursor token back into an ExclusiveStartKey.

        Raises:
            CursorDecodeError: If the token is invalid or is not a DynamoDB key
        """
        key = decode_cursor(token)
        start_key: dict[str, Any] = {}
        for name, attribute in key.items():
            try:
                type_, value = self._key_attribute(attribute)
            except MalformedPageError as e:
                raise CursorDecodeError(token, original_error=e) from e
            if not isinstance(value, str):
                raise CursorDecodeError(token)
            if type_ == "B":
                try:
                    start_key[name] = {"B": base64.b64decode(value, validate=True)}
                except binascii.Error as e:
                    raise CursorDecodeError(token, original_error=e) from e
            else:
                start_key[name] = {type_: value}
        return start_key

    @staticmethod
    def _key_attribute(attribute: Any) -> tuple[str, Any]:
        """Unpacks a key attribute such as {"N": "1"}; keys only ever hold S, N or B."""
        if not isinstance(attribute, dict) or len(attribute) != 1:
            raise MalformedPageError(f"Invalid key attribute {attribute!r}")
        ((type_, value),) = attribute.items()
        if type_ not in _KEY_TYPES:
            raise MalformedPageError(f"Unsupported key attribute type '{type_}'")
        return type_, value

    def _prepare(self, value: Any) -> Any:
        """Recursively converts floats to Decimal (boto3 requirement)."""
        if isinstance(value, bool):
            return value
        if isinstance(value, float):
            # Convert through str to avoid float precision artifacts
            return Decimal(str(value))
        if isinstance(value, list):
            return [self._prepare(v) for v in value]
        if isinstance(value, dict):
            return {k: self._prepare(v) for k, v in value.items()}
        return value

    def _restore(self, value: Any) -> Any:
        """
        Recursively restores DynamoDB values to Python-friendly types.

        Converts:
        - Decimal -> int (if whole number) or float
        - set -> sorted list (sets are not JSON serializable)
        """
        if isinstance(value, Decimal):
            if value % 1 == 0:
                return int(value)
            return float(value)
        if isinstance(value, (set, frozenset)):
            return sorted((self._restore(v) for v in value), key=str)
        if isinstance(value, list):
            return [self._restore(v) for v in value]
        if isinstance(value, dict):
            return {k: self._restore(v) for k, v in value.items()}
        return value
