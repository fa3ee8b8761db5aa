"""Tests for XML-RPC request encoding and response decoding."""

import xml.etree.ElementTree as ET
from datetime import datetime, timedelta, timezone

import pytest

from mb_xmlrpc.codec import MAX_NESTING, format_datetime, format_double
from mb_xmlrpc.errors import (
    DecodeError,
    InvalidCharacterError,
    InvalidMethodNameError,
    InvalidResponseShapeError,
    MalformedValueError,
    MalformedXmlError,
    UnknownTypeError,
)
from mb_xmlrpc.protocol import Request, Response, decode_request, decode_response, encode_request, encode_response
from mb_xmlrpc.value import Array, Base64, Boolean, DateTime, Double, Integer, Nil, String, Struct, Value

FAULT_BODY = b"""<?xml version="1.0"?>
<methodResponse>
  <fault>
    <value>
      <struct>
        <member><name>faultCode</name><value><int>4</int></value></member>
        <member><name>faultString</name><value><string>Too many parameters.</string></value></member>
      </struct>
    </value>
  </fault>
</methodResponse>
"""

ROUND_TRIP_VALUES: list[Value] = [
    Nil(),
    Boolean(True),
    Boolean(False),
    Integer(0),
    Integer(2**31 - 1),
    Integer(-(2**31)),
    Double(0.1),
    Double(-2.5),
    Double(1e300),
    Double(1e-300),
    String(""),
    String("plain"),
    String("<tag> & \"quotes\" 'apos'\r\n\ttabs"),
    String("unicode: é中\U0001f600"),
    Base64(b""),
    Base64(bytes(range(256))),
    DateTime(datetime(1998, 7, 17, 14, 8, 55)),
    DateTime(datetime(2024, 2, 29, 23, 59, 59, tzinfo=timezone(timedelta(hours=5, minutes=30)))),
    DateTime(datetime(2024, 1, 1, tzinfo=timezone(-timedelta(hours=8)))),
    Array(),
    Array((Integer(1), String("two"), Array((Nil(),)))),
    Struct(),
    Struct({"name & <id>": String("x"), "nested": Struct({"list": Array((Double(1.5), Boolean(True)))})}),
]


def _response(value_xml: str) -> bytes:
    return f"<methodResponse><params><param><value>{value_xml}</value></param></params></methodResponse>".encode()


def _decode_value(value_xml: str) -> Value | None:
    return decode_response(_response(value_xml)).value


def nested_arrays(depth: int) -> str:
    """Return the XML of ``depth`` arrays, each holding the next, around an empty string."""
    return "<array><data><value>" * depth + "</value></data></array>" * depth


class TestRoundTrip:
    """Encode then decode yields an equal value."""

    @pytest.mark.parametrize("value", ROUND_TRIP_VALUES, ids=repr)
    def test_response_round_trip(self, value: Value):
        """A value survives encode_response → decode_response."""
        assert decode_response(encode_response(Response.success(value))).value == value

    def test_request_round_trip(self):
        """Every value survives as a request parameter, in order."""
        req = Request(method_name="echo.all", params=tuple(ROUND_TRIP_VALUES))
        assert decode_request(encode_request(req)) == req

    def test_fault_round_trip(self):
        """A fault response survives encode_response → decode_response."""
        decoded = decode_response(encode_response(Response.fail(-1, "boom")))
        assert decoded.is_fault
        assert decoded.fault_code == -1
        assert decoded.fault_string == "boom"


class TestRequestEncoding:
    """encode_request wire format."""

    def test_envelope(self):
        """Method name and parameters land in a methodCall envelope."""
        body = encode_request(Request(method_name="sum", params=(Integer(2), Integer(3))))
        root = ET.fromstring(body)
        assert root.tag == "methodCall"
        assert root.findtext("methodName") == "sum"
        assert [p.findtext("value/i4") for p in root.findall("params/param")] == ["2", "3"]

    def test_xml_declaration(self):
        """Output starts with an XML declaration."""
        assert encode_request(Request(method_name="ping")).startswith(b'<?xml version="1.0"?>')

    def test_no_params(self):
        """A call without parameters has an empty params element."""
        root = ET.fromstring(encode_request(Request(method_name="ping")))
        params = root.find("params")
        assert params is not None
        assert list(params) == []

    def test_empty_method_name(self):
        """Empty method name raises InvalidMethodNameError."""
        with pytest.raises(InvalidMethodNameError) as exc_info:
            encode_request(Request(method_name=""))
        assert exc_info.value.code == "invalid_method_name"

    def test_escaping(self):
        """All five reserved characters are escaped in text."""
        body = encode_request(Request(method_name="a&b", params=(String("<>\"'&"),)))
        assert b"<methodName>a&amp;b</methodName>" in body
        assert b"<string>&lt;&gt;&quot;&apos;&amp;</string>" in body

    def test_boolean_encoding(self):
        """Booleans are written as 0 and 1."""
        body = encode_request(Request(method_name="m", params=(Boolean(True), Boolean(False))))
        assert b"<boolean>1</boolean>" in body
        assert b"<boolean>0</boolean>" in body

    def test_base64_encoding(self):
        """Binary payloads are base64-encoded."""
        body = encode_request(Request(method_name="m", params=(Base64(b"hello"),)))
        assert b"<base64>aGVsbG8=</base64>" in body

    def test_struct_member_order(self):
        """Struct members are written in insertion order."""
        body = encode_request(Request(method_name="m", params=(Struct({"b": Nil(), "a": Nil()}),)))
        assert body.index(b"<name>b</name>") < body.index(b"<name>a</name>")


class TestScalarFormatting:
    """Canonical text of doubles and date-times."""

    def test_double_has_fraction(self):
        """Integral doubles keep a fractional part."""
        assert format_double(1.0) == "1.0"
        assert format_double(-3.0) == "-3.0"

    def test_double_no_exponent(self):
        """Large and small doubles are written positionally."""
        assert format_double(1e16) == "10000000000000000.0"
        assert format_double(1.5e-7) == "0.00000015"

    def test_datetime_naive(self):
        """Naive date-times use the compact form."""
        assert format_datetime(datetime(1998, 7, 17, 14, 8, 55)) == "19980717T14:08:55"

    def test_datetime_offset(self):
        """Aware date-times carry their UTC offset."""
        moment = datetime(2024, 1, 1, 0, 0, 0, tzinfo=timezone(-timedelta(hours=3, minutes=30)))
        assert format_datetime(moment) == "20240101T00:00:00-03:30"


class TestResponseDecoding:
    """decode_response on conforming documents."""

    def test_success(self):
        """A single param decodes to a success response."""
        resp = decode_response(_response("<i4>5</i4>"))
        assert not resp.is_fault
        assert resp.value == Integer(5)

    def test_fault(self):
        """A fault struct decodes to a fault response, never a success."""
        resp = decode_response(FAULT_BODY)
        assert resp.is_fault
        assert resp.value is None
        assert resp.fault_code == 4
        assert resp.fault_string == "Too many parameters."

    def test_fault_code_as_string(self):
        """A numeric string faultCode is coerced to an integer."""
        body = (
            b"<methodResponse><fault><value><struct>"
            b"<member><name>faultCode</name><value><string>-7</string></value></member>"
            b"<member><name>faultString</name><value>oops</value></member>"
            b"</struct></value></fault></methodResponse>"
        )
        resp = decode_response(body)
        assert resp.fault_code == -7
        assert resp.fault_string == "oops"

    def test_bare_value_is_string(self):
        """A value without a type element is a string."""
        assert _decode_value("hello") == String("hello")
        assert _decode_value("") == String("")

    def test_int_tag(self):
        """<int> is accepted as well as <i4>."""
        assert _decode_value("<int> -12 </int>") == Integer(-12)

    def test_namespaced_nil(self):
        """Namespaced nil (ex:nil) decodes as Nil."""
        xml = '<ex:nil xmlns:ex="http://ws.apache.org/xmlrpc/namespaces/extensions"/>'
        assert _decode_value(xml) == Nil()

    def test_extended_datetime(self):
        """Extended ISO-8601 with a Z suffix is accepted."""
        value = _decode_value("<dateTime.iso8601>2024-03-04T05:06:07Z</dateTime.iso8601>")
        assert value == DateTime(datetime(2024, 3, 4, 5, 6, 7, tzinfo=timezone.utc))

    def test_base64_with_line_breaks(self):
        """Whitespace inside base64 text is ignored."""
        assert _decode_value("<base64>aGVs\n  bG8=</base64>") == Base64(b"hello")

    def test_whitespace_between_elements(self):
        """Indentation between elements does not change the result."""
        body = b"""<?xml version="1.0"?>
        <methodResponse>
          <params>
            <param>
              <value>
                <array>
                  <data>
                    <value><i4>1</i4></value>
                    <value><string> padded </string></value>
                  </data>
                </array>
              </value>
            </param>
          </params>
        </methodResponse>"""
        assert decode_response(body).value == Array((Integer(1), String(" padded ")))

    def test_duplicate_member_keeps_last(self):
        """A repeated struct member name keeps the last value."""
        xml = (
            "<struct>"
            "<member><name>a</name><value><i4>1</i4></value></member>"
            "<member><name>b</name><value><i4>2</i4></value></member>"
            "<member><name>a</name><value><i4>3</i4></value></member>"
            "</struct>"
        )
        value = _decode_value(xml)
        assert value == Struct({"a": Integer(3), "b": Integer(2)})


class TestDecodeErrors:
    """Non-conforming data raises DecodeError, never a success."""

    def test_truncated(self):
        """Truncated XML is malformed."""
        with pytest.raises(MalformedXmlError) as exc_info:
            decode_response(FAULT_BODY[:40])
        assert exc_info.value.code == "malformed_xml"

    def test_not_xml(self):
        """Arbitrary bytes are malformed XML."""
        with pytest.raises(MalformedXmlError):
            decode_response(b"<html><body>502 Bad Gateway")

    def test_empty(self):
        """An empty body is malformed XML."""
        with pytest.raises(MalformedXmlError):
            decode_response(b"")

    def test_wrong_root(self):
        """A root other than methodResponse is rejected."""
        with pytest.raises(InvalidResponseShapeError):
            decode_response(b"<methodCall><methodName>x</methodName></methodCall>")

    def test_empty_params(self):
        """A response without a param is rejected."""
        with pytest.raises(InvalidResponseShapeError):
            decode_response(b"<methodResponse><params/></methodResponse>")

    def test_two_params(self):
        """A response with two params is rejected."""
        body = _response("<i4>1</i4>").replace(b"</params>", b"<param><value>x</value></param></params>")
        with pytest.raises(InvalidResponseShapeError):
            decode_response(body)

    def test_params_and_fault(self):
        """A response with both params and fault is rejected."""
        body = b"<methodResponse><params><param><value>1</value></param></params><fault/></methodResponse>"
        with pytest.raises(InvalidResponseShapeError):
            decode_response(body)

    def test_fault_not_struct(self):
        """A fault whose value is not a struct is rejected."""
        with pytest.raises(InvalidResponseShapeError):
            decode_response(b"<methodResponse><fault><value><i4>1</i4></value></fault></methodResponse>")

    def test_fault_missing_member(self):
        """A fault struct without faultString is rejected."""
        body = (
            b"<methodResponse><fault><value><struct>"
            b"<member><name>faultCode</name><value><i4>1</i4></value></member>"
            b"</struct></value></fault></methodResponse>"
        )
        with pytest.raises(InvalidResponseShapeError):
            decode_response(body)

    def test_unknown_type(self):
        """An unrecognized type element raises UnknownTypeError."""
        with pytest.raises(UnknownTypeError) as exc_info:
            decode_response(_response("<bignum>1</bignum>"))
        assert exc_info.value.tag == "bignum"

    @pytest.mark.parametrize(
        "value_xml",
        [
            "<i4>abc</i4>",
            "<i4>2147483648</i4>",
            "<boolean>2</boolean>",
            "<double>one</double>",
            "<dateTime.iso8601>yesterday</dateTime.iso8601>",
            "<dateTime.iso8601>20241399T00:00:00</dateTime.iso8601>",
            "<base64>!!!</base64>",
            "<i4>1</i4><i4>2</i4>",
            "<array><value>1</value></array>",
            "<struct><member><name>a</name></member></struct>",
        ],
    )
    def test_malformed_value(self, value_xml: str):
        """Text or structure that does not match the type raises MalformedValueError."""
        with pytest.raises(MalformedValueError):
            decode_response(_response(value_xml))

    def test_all_errors_are_decode_errors(self):
        """Every decode failure shares the DecodeError base."""
        for body in (b"junk", b"<x/>", _response("<nope/>"), _response("<i4>x</i4>")):
            with pytest.raises(DecodeError):
                decode_response(body)


class TestNesting:
    """Nesting depth of arrays and structs."""

    def test_limit_accepted(self):
        """Arrays nested exactly MAX_NESTING deep decode."""
        value = _decode_value(nested_arrays(MAX_NESTING))
        depth = 0
        while isinstance(value, Array):
            depth += 1
            value = value.items[0]
        assert depth == MAX_NESTING
        assert value == String("")

    def test_one_past_limit(self):
        """One array past the limit is a malformed value."""
        with pytest.raises(MalformedValueError, match="nested deeper"):
            decode_response(_response(nested_arrays(MAX_NESTING + 1)))

    def test_very_deep_document(self):
        """Thousands of nested arrays raise a DecodeError, not RecursionError."""
        with pytest.raises(MalformedValueError):
            decode_response(_response(nested_arrays(5000)))

    def test_deep_structs(self):
        """Structs count toward the same limit."""
        xml = "<struct><member><name>n</name><value>" * (MAX_NESTING + 1) + "</value></member></struct>" * (MAX_NESTING + 1)
        with pytest.raises(MalformedValueError):
            decode_response(_response(xml))

    def test_deep_fault_value(self):
        """The limit applies inside fault values too."""
        body = f"<methodResponse><fault><value>{nested_arrays(2000)}</value></fault></methodResponse>".encode()
        with pytest.raises(DecodeError):
            decode_response(body)


class TestInvalidCharacters:
    """Text XML 1.0 cannot carry is rejected before any document is produced."""

    @pytest.mark.parametrize("text", ["a\x01b", "\x00", "\x0b", "\x1f", "\ufffe", "\uffff", "lone \ud800 surrogate"])
    def test_string_param(self, text: str):
        """A string holding a forbidden character raises InvalidCharacterError."""
        with pytest.raises(InvalidCharacterError) as exc_info:
            encode_request(Request("echo", (String(text),)))
        assert exc_info.value.code == "invalid_character"

    def test_member_name(self):
        """A struct member name is checked too."""
        with pytest.raises(InvalidCharacterError):
            encode_request(Request("echo", (Struct({"bad\x07name": Nil()}),)))

    def test_nested_string(self):
        """Strings inside containers are checked."""
        with pytest.raises(InvalidCharacterError):
            encode_request(Request("echo", (Array((Struct({"s": String("\x02")}),)),)))

    def test_method_name(self):
        """The method name is checked."""
        with pytest.raises(InvalidCharacterError):
            encode_request(Request("sum\x00"))

    def test_response_string(self):
        """encode_response rejects the same characters."""
        with pytest.raises(InvalidCharacterError):
            encode_response(Response.success(String("a\x01b")))

    def test_reports_character(self):
        """The error names the offending code point."""
        with pytest.raises(InvalidCharacterError) as exc_info:
            encode_request(Request("echo", (String("ok\x1bnot ok"),)))
        assert exc_info.value.char == "\x1b"
        assert "U+001B" in str(exc_info.value)

    def test_allowed_whitespace_and_astral(self):
        """Tab, newline, carriage return and characters beyond the BMP round-trip."""
        text = "\t\n\r \ud7ff \ue000 \ufffd \U0001f600"
        assert decode_response(encode_response(Response.success(String(text)))).value == String(text)
