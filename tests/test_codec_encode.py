"""Tests for request body encoding in onehttp.codec.

Tests cover:
- JSON: models, dataclasses, dicts, naming strategies, null handling, compact output
- XML: models, dataclasses, single-key mappings, rejected shapes
- Plain text, unknown text and raw bytes: value kind checks and Content-Type
- No body for None data
"""

import json
import math
import xml.etree.ElementTree as ET
from dataclasses import dataclass
from datetime import date
from typing import Optional

import pytest
from pydantic import BaseModel

from onehttp.codec import (
    JSON_CONTENT_TYPE,
    PLAIN_TEXT_CONTENT_TYPE,
    XML_CONTENT_TYPE,
    EncodedBody,
    EncodingError,
    encode,
)
from onehttp.models import MediaType, NamingStrategy, NullValueHandling, RequestOptions


class SampleObject(BaseModel):
    success: bool
    server_message: str
    note: Optional[str] = None


@dataclass
class Measurement:
    sensor_id: str
    reading_value: float


class Envelope(BaseModel):
    request_headers: dict[str, str]
    sent_by: Measurement


def _options(**kwargs) -> RequestOptions:
    return RequestOptions(**kwargs)


# =============================================================================
# No body
# =============================================================================


class TestNoBody:
    @pytest.mark.parametrize("media_type", list(MediaType))
    def test_none_data_has_no_body(self, media_type):
        assert encode(None, _options(media_type=media_type)) is None


# =============================================================================
# JSON
# =============================================================================


class TestEncodeJson:
    def test_model_camel_case_by_default(self):
        body = encode(SampleObject(success=True, server_message="hi"))
        assert isinstance(body, EncodedBody)
        assert body.content_type == JSON_CONTENT_TYPE
        assert body.content == b'{"success":true,"serverMessage":"hi","note":null}'

    def test_snake_case(self):
        body = encode(
            SampleObject(success=True, server_message="hi"),
            _options(naming_strategy=NamingStrategy.SNAKE_CASE),
        )
        assert json.loads(body.content) == {"success": True, "server_message": "hi", "note": None}

    def test_no_naming(self):
        body = encode({"Mixed_Key": 1}, _options(naming_strategy=NamingStrategy.NONE))
        assert body.content == b'{"Mixed_Key":1}'

    def test_ignore_nulls(self):
        body = encode(
            SampleObject(success=False, server_message="x"),
            _options(null_value_handling=NullValueHandling.IGNORE),
        )
        assert json.loads(body.content) == {"success": False, "serverMessage": "x"}

    def test_dataclass(self):
        body = encode(Measurement(sensor_id="s1", reading_value=2.5))
        assert json.loads(body.content) == {"sensorId": "s1", "readingValue": 2.5}

    def test_dict_keys_only_lose_leading_capitals(self):
        body = encode({"Headers": {"x-request-id": "1", "user_id": 2}})
        assert body.content == b'{"headers":{"x-request-id":"1","user_id":2}}'

    def test_dict_field_inside_model(self):
        body = encode(Envelope(request_headers={"X-Request-Id": "1"}, sent_by=Measurement("s1", 1.0)))
        assert json.loads(body.content) == {
            "requestHeaders": {"x-Request-Id": "1"},
            "sentBy": {"sensorId": "s1", "readingValue": 1.0},
        }

    def test_snake_case_dict_keys(self):
        body = encode({"UserId": 1}, _options(naming_strategy=NamingStrategy.SNAKE_CASE))
        assert json.loads(body.content) == {"user_id": 1}

    def test_list_and_scalar_values(self):
        assert encode([1, 2, 3]).content == b"[1,2,3]"
        assert encode("text").content == b'"text"'
        assert encode(0).content == b"0"

    def test_dates_are_iso_strings(self):
        body = encode({"day": date(2024, 1, 31)})
        assert json.loads(body.content) == {"day": "2024-01-31"}

    def test_unicode_is_not_escaped(self):
        body = encode({"name": "héllo"})
        assert body.content == '{"name":"héllo"}'.encode("utf-8")

    def test_nan_rejected(self):
        with pytest.raises(EncodingError):
            encode({"value": math.nan})

    def test_unserializable_rejected(self):
        with pytest.raises(EncodingError):
            encode({"value": object()})

    def test_circular_reference_rejected(self):
        data: dict = {}
        data["self"] = data
        with pytest.raises(EncodingError):
            encode(data)

    def test_encoding_error_is_value_error(self):
        with pytest.raises(ValueError):
            encode({"value": object()})


# =============================================================================
# XML
# =============================================================================


class TestEncodeXml:
    def test_model_uses_class_name_as_root(self):
        body = encode(
            SampleObject(success=True, server_message="hi"),
            _options(media_type=MediaType.XML),
        )
        assert body.content_type == XML_CONTENT_TYPE
        root = ET.fromstring(body.content)
        assert root.tag == "SampleObject"
        assert root.find("success").text == "true"
        assert root.find("server_message").text == "hi"

    def test_dataclass_uses_class_name_as_root(self):
        body = encode(Measurement(sensor_id="s1", reading_value=2.5), _options(media_type=MediaType.XML))
        root = ET.fromstring(body.content)
        assert root.tag == "Measurement"
        assert root.find("sensor_id").text == "s1"

    def test_single_key_mapping(self):
        body = encode({"Order": {"Id": 5, "Item": ["a", "b"]}}, _options(media_type=MediaType.XML))
        root = ET.fromstring(body.content)
        assert root.tag == "Order"
        assert root.find("Id").text == "5"
        assert [e.text for e in root.findall("Item")] == ["a", "b"]

    def test_multi_key_mapping_rejected(self):
        with pytest.raises(EncodingError):
            encode({"A": 1, "B": 2}, _options(media_type=MediaType.XML))

    def test_scalar_rejected(self):
        with pytest.raises(EncodingError):
            encode("text", _options(media_type=MediaType.XML))

    def test_bad_element_name_rejected(self):
        with pytest.raises(EncodingError):
            encode({"Root": {"bad name": 1}}, _options(media_type=MediaType.XML))


# =============================================================================
# Text and bytes
# =============================================================================


class TestEncodeText:
    def test_plain_text(self):
        body = encode("hello", _options(media_type=MediaType.PLAIN_TEXT))
        assert body.content == b"hello"
        assert body.content_type == PLAIN_TEXT_CONTENT_TYPE

    def test_plain_text_requires_str(self):
        with pytest.raises(EncodingError):
            encode({"a": 1}, _options(media_type=MediaType.PLAIN_TEXT))

    def test_unknown_text_has_no_content_type(self):
        body = encode("a,b,c", _options(media_type=MediaType.UNKNOWN_TEXT))
        assert body.content == b"a,b,c"
        assert body.content_type is None

    def test_unknown_text_requires_str(self):
        with pytest.raises(EncodingError):
            encode(b"bytes", _options(media_type=MediaType.UNKNOWN_TEXT))

    def test_empty_string_is_a_body(self):
        body = encode("", _options(media_type=MediaType.PLAIN_TEXT))
        assert body is not None
        assert body.content == b""


class TestEncodeRawBytes:
    @pytest.mark.parametrize("data", [b"\x00\x01", bytearray(b"\x00\x01"), memoryview(b"\x00\x01")])
    def test_bytes_like(self, data):
        body = encode(data, _options(media_type=MediaType.RAW_BYTES))
        assert body.content == b"\x00\x01"
        assert body.content_type is None

    def test_str_rejected(self):
        with pytest.raises(EncodingError):
            encode("text", _options(media_type=MediaType.RAW_BYTES))
