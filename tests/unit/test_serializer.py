"""
Unit tests for DynamoSerializer.

Tests conversion of DynamoDB items into plain records and of
LastEvaluatedKeys into opaque cursor tokens and back.
"""

import base64
from datetime import datetime
from typing import Any

import pytest

from cursorfeed.cursors import decode_cursor, encode_cursor
from cursorfeed.exceptions import CursorDecodeError, MalformedPageError
from cursorfeed.serializer import DynamoSerializer


@pytest.mark.unit
class TestDynamoSerializerToDynamo:
    """Test serialization from Python to DynamoDB format."""

    def setup_method(self) -> None:
        """Create a fresh serializer for each test."""
        self.serializer = DynamoSerializer()

    def test_to_dynamo_scalars(self) -> None:
        data = {"user_id": "u-1", "created_at": 1700000000, "active": True}
        assert self.serializer.to_dynamo(data) == {
            "user_id": {"S": "u-1"},
            "created_at": {"N": "1700000000"},
            "active": {"BOOL": True},
        }

    def test_to_dynamo_float(self) -> None:
        """Test float serialization (converted to Decimal)."""
        assert self.serializer.to_dynamo({"score": 95.5}) == {"score": {"N": "95.5"}}

    def test_to_dynamo_value_nested_float(self) -> None:
        value = {"weights": [0.1, 2]}
        assert self.serializer.to_dynamo_value(value) == {
            "M": {"weights": {"L": [{"N": "0.1"}, {"N": "2"}]}}
        }

    def test_unsupported_value(self) -> None:
        """Values boto3 cannot serialize are reported as a malformed page."""
        with pytest.raises(MalformedPageError, match="cannot be used as a DynamoDB key"):
            self.serializer.to_dynamo_value(datetime(2024, 1, 1))


@pytest.mark.unit
class TestDynamoSerializerFromDynamo:
    """Test deserialization from DynamoDB format to plain records."""

    def setup_method(self) -> None:
        self.serializer = DynamoSerializer()

    def test_numbers_are_restored(self) -> None:
        """Whole numbers become int, others float; no Decimal leaks out."""
        item = {"likes": {"N": "25"}, "ratio": {"N": "0.75"}}
        result = self.serializer.from_dynamo(item)
        assert result == {"likes": 25, "ratio": 0.75}
        assert isinstance(result["likes"], int)
        assert isinstance(result["ratio"], float)

    def test_sets_become_sorted_lists(self) -> None:
        item = {"tags": {"SS": ["shoes", "coat"]}}
        assert self.serializer.from_dynamo(item) == {"tags": ["coat", "shoes"]}

    def test_nested(self) -> None:
        item: dict[str, Any] = {
            "image": {"M": {"imageDocId": {"S": "img-1"}, "size": {"L": [{"N": "640"}]}}},
            "caption": {"NULL": True},
        }
        assert self.serializer.from_dynamo(item) == {
            "image": {"imageDocId": "img-1", "size": [640]},
            "caption": None,
        }

    @pytest.mark.parametrize("bad_value", ["plain string", {"ZZ": "1"}])
    def test_malformed_item(self, bad_value: Any) -> None:
        with pytest.raises(MalformedPageError) as exc_info:
            self.serializer.from_dynamo({"field": bad_value})
        assert exc_info.value.payload == {"field": bad_value}


@pytest.mark.unit
class TestDynamoSerializerCursors:
    """Test LastEvaluatedKey <-> cursor token conversion."""

    def setup_method(self) -> None:
        self.serializer = DynamoSerializer()

    def test_serialize_cursor_keeps_dynamo_json(self) -> None:
        """The token wraps the key exactly as DynamoDB returned it."""
        key = {"user_id": {"S": "u-1"}, "created_at": {"N": "1700000000"}}
        token = self.serializer.serialize_cursor(key)
        assert decode_cursor(token) == key

    def test_deserialize_cursor_restores_exclusive_start_key(self) -> None:
        key = {"user_id": {"S": "u-1"}, "score": {"N": "1.5"}}
        token = self.serializer.serialize_cursor(key)
        assert self.serializer.deserialize_cursor(token) == key

    def test_precise_number_key_survives(self) -> None:
        """Sort keys with more digits than a float holds come back unchanged."""
        key = {"feed_id": {"S": "likes#u-1"}, "sk": {"N": "1700000000.123456789012"}}
        token = self.serializer.serialize_cursor(key)
        assert self.serializer.deserialize_cursor(token) == key

    def test_binary_key_survives(self) -> None:
        key = {"pk": {"B": b"\x01\x02\xff"}, "sk": {"N": "7"}}
        token = self.serializer.serialize_cursor(key)
        assert decode_cursor(token)["pk"] == {"B": base64.b64encode(b"\x01\x02\xff").decode()}
        assert self.serializer.deserialize_cursor(token) == key

    def test_equal_keys_give_equal_tokens(self) -> None:
        """Repeat detection compares tokens, so attribute order must not matter."""
        first = {"a": {"S": "x"}, "b": {"N": "1"}}
        second = {"b": {"N": "1"}, "a": {"S": "x"}}
        assert self.serializer.serialize_cursor(first) == self.serializer.serialize_cursor(second)

    @pytest.mark.parametrize(
        "bad_key",
        [
            {"pk": {"M": {}}},
            {"pk": {"S": "a", "N": "1"}},
            {"pk": {"B": "not bytes"}},
            {"pk": {"N": 1}},
        ],
    )
    def test_serialize_invalid_key(self, bad_key: dict[str, Any]) -> None:
        with pytest.raises(MalformedPageError):
            self.serializer.serialize_cursor(bad_key)

    def test_deserialize_invalid_token(self) -> None:
        token = base64.urlsafe_b64encode(b"not json").decode()
        with pytest.raises(CursorDecodeError):
            self.serializer.deserialize_cursor(token)

    def test_deserialize_non_object_token(self) -> None:
        token = base64.urlsafe_b64encode(b"[1, 2]").decode()
        with pytest.raises(CursorDecodeError):
            self.serializer.deserialize_cursor(token)

    @pytest.mark.parametrize(
        "key",
        [
            {"pk": "USER#1"},
            {"pk": {"SS": ["a"]}},
            {"pk": {"N": 12}},
            {"pk": {"B": "***"}},
        ],
    )
    def test_deserialize_token_that_is_not_a_key(self, key: dict[str, Any]) -> None:
        with pytest.raises(CursorDecodeError):
            self.serializer.deserialize_cursor(encode_cursor(key))
