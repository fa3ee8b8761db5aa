"""Mapping between Value trees and XML-RPC ``<value>`` elements.

Encoding writes text fragments; decoding walks parsed ElementTree elements.
"""

import base64
import binascii
import math
import re
import xml.etree.ElementTree as ET
from collections.abc import Callable
from datetime import datetime, timedelta, timezone
from decimal import Decimal

from mb_xmlrpc.errors import InvalidCharacterError, MalformedValueError, UnknownTypeError
from mb_xmlrpc.value import INT32_MAX, INT32_MIN, Array, Base64, Boolean, DateTime, Double, Integer, Nil, String, Struct, Value

# \r is escaped too, otherwise XML line-end normalization turns it into \n
_ESCAPE_TABLE = str.maketrans({"&": "&amp;", "<": "&lt;", ">": "&gt;", '"': "&quot;", "'": "&apos;", "\r": "&#13;"})

# Characters outside the XML 1.0 Char production, lone surrogates included
_INVALID_CHAR_RE = re.compile(r"[\x00-\x08\x0b\x0c\x0e-\x1f\ud800-\udfff\ufffe\uffff]")

# Arrays and structs nested deeper than this are rejected on decode
MAX_NESTING = 100

INT_RE = re.compile(r"[+-]?\d+")
_DATETIME_RE = re.compile(
    r"(\d{4})-?(\d{2})-?(\d{2})T(\d{2}):?(\d{2}):?(\d{2})(?:\.\d+)?"
    r"(Z|[+-]\d{2}(?::?\d{2})?)?"
)


def escape(text: str) -> str:
    """Escape reserved XML characters in element text.

    Raises:
        InvalidCharacterError: Text holds a character no XML 1.0 document can carry.

    """
    found = _INVALID_CHAR_RE.search(text)
    if found is not None:
        raise InvalidCharacterError(found.group())
    return text.translate(_ESCAPE_TABLE)


# --- Encoding ---


def format_double(number: float) -> str:
    """Format a float as positional decimal text with a fractional part."""
    if not math.isfinite(number):
        return repr(number)
    text = repr(number)
    if "e" in text:
        text = format(Decimal(text), "f")
    if "." not in text:
        text += ".0"
    return text


def format_datetime(moment: datetime) -> str:
    """Format a datetime as ``YYYYMMDDTHH:MM:SS`` with an optional ``+HH:MM`` offset."""
    text = f"{moment.year:04d}{moment.month:02d}{moment.day:02d}T{moment.hour:02d}:{moment.minute:02d}:{moment.second:02d}"
    offset = moment.utcoffset()
    if offset is None:
        return text
    total_minutes = int(offset.total_seconds()) // 60
    sign = "-" if total_minutes < 0 else "+"
    hours, minutes = divmod(abs(total_minutes), 60)
    return f"{text}{sign}{hours:02d}:{minutes:02d}"


def dump_value(value: Value, write: Callable[[str], object]) -> None:
    """Write one ``<value>`` element for a value tree."""
    write("<value>")
    match value:
        case Nil():
            write("<nil/>")
        case Boolean(v):
            write(f"<boolean>{1 if v else 0}</boolean>")
        case Integer(v):
            write(f"<i4>{v}</i4>")
        case Double(v):
            write(f"<double>{format_double(v)}</double>")
        case String(v):
            write(f"<string>{escape(v)}</string>")
        case Base64(v):
            write(f"<base64>{base64.b64encode(v).decode('ascii')}</base64>")
        case DateTime(v):
            write(f"<dateTime.iso8601>{format_datetime(v)}</dateTime.iso8601>")
        case Array(items):
            write("<array><data>")
            for item in items:
                dump_value(item, write)
            write("</data></array>")
        case Struct(members):
            write("<struct>")
            for name, member in members.items():
                write(f"<member><name>{escape(name)}</name>")
                dump_value(member, write)
                write("</member>")
            write("</struct>")
        case _:
            msg = f"Not an XML-RPC value: {value!r}"
            raise TypeError(msg)
    write("</value>")


# --- Decoding ---


def local_name(elem: ET.Element) -> str:
    """Return the element tag without any ``{namespace}`` prefix."""
    return elem.tag.rpartition("}")[2]


def load_value(elem: ET.Element, depth: int = 0) -> Value:
    """Decode a ``<value>`` element. ``depth`` counts the enclosing arrays and structs.

    Raises:
        UnknownTypeError: Unrecognized type element.
        MalformedValueError: Text or structure does not match the claimed type,
            or containers nest deeper than MAX_NESTING.

    """
    children = list(elem)
    if not children:
        # A bare <value> holds a string
        return String(elem.text or "")
    if len(children) > 1:
        msg = f"<value> holds {len(children)} type elements, expected one."
        raise MalformedValueError(msg)

    typed = children[0]
    tag = local_name(typed)
    text = typed.text or ""
    match tag:
        case "nil":
            return Nil()
        case "boolean":
            return _load_boolean(text)
        case "i4" | "int":
            return _load_integer(tag, text)
        case "double":
            return _load_double(text)
        case "string":
            return String(text)
        case "base64":
            return _load_base64(text)
        case "dateTime.iso8601":
            return _load_datetime(text)
        case "array":
            return _load_array(typed, depth + 1)
        case "struct":
            return _load_struct(typed, depth + 1)
        case _:
            raise UnknownTypeError(tag)


def _load_boolean(text: str) -> Boolean:
    match text.strip():
        case "0":
            return Boolean(False)
        case "1":
            return Boolean(True)
    msg = f"Invalid boolean: {text!r}"
    raise MalformedValueError(msg)


def _load_integer(tag: str, text: str) -> Integer:
    stripped = text.strip()
    if not INT_RE.fullmatch(stripped):
        msg = f"Invalid <{tag}>: {text!r}"
        raise MalformedValueError(msg)
    number = int(stripped)
    if not INT32_MIN <= number <= INT32_MAX:
        msg = f"<{tag}> out of 32-bit range: {stripped}"
        raise MalformedValueError(msg)
    return Integer(number)


def _load_double(text: str) -> Double:
    try:
        return Double(float(text.strip()))
    except ValueError:
        msg = f"Invalid double: {text!r}"
        raise MalformedValueError(msg) from None


def _load_base64(text: str) -> Base64:
    try:
        return Base64(base64.b64decode("".join(text.split()), validate=True))
    except binascii.Error as e:
        msg = f"Invalid base64 payload: {e}"
        raise MalformedValueError(msg) from None


def _load_datetime(text: str) -> DateTime:
    found = _DATETIME_RE.fullmatch(text.strip())
    if found is None:
        msg = f"Invalid dateTime.iso8601: {text!r}"
        raise MalformedValueError(msg)
    year, month, day, hour, minute, second = (int(part) for part in found.groups()[:6])
    try:
        return DateTime(datetime(year, month, day, hour, minute, second, tzinfo=_parse_offset(found.group(7))))
    except ValueError as e:
        msg = f"Invalid dateTime.iso8601 {text!r}: {e}"
        raise MalformedValueError(msg) from None


def _parse_offset(suffix: str | None) -> timezone | None:
    if suffix is None:
        return None
    if suffix == "Z":
        return timezone.utc
    sign = -1 if suffix[0] == "-" else 1
    digits = suffix[1:].replace(":", "")
    minutes = int(digits[:2]) * 60 + int(digits[2:] or 0)
    return timezone(sign * timedelta(minutes=minutes))


def _check_depth(depth: int) -> None:
    if depth > MAX_NESTING:
        msg = f"Values nested deeper than {MAX_NESTING} arrays or structs."
        raise MalformedValueError(msg)


def _load_array(elem: ET.Element, depth: int) -> Array:
    _check_depth(depth)
    children = list(elem)
    if len(children) != 1 or local_name(children[0]) != "data":
        msg = "<array> must hold exactly one <data> element."
        raise MalformedValueError(msg)
    items: list[Value] = []
    for child in children[0]:
        if local_name(child) != "value":
            msg = f"Unexpected <{local_name(child)}> inside <data>."
            raise MalformedValueError(msg)
        items.append(load_value(child, depth))
    return Array(tuple(items))


def _load_struct(elem: ET.Element, depth: int) -> Struct:
    _check_depth(depth)
    # Duplicate member names: the last one wins
    members: dict[str, Value] = {}
    for member in elem:
        if local_name(member) != "member":
            msg = f"Unexpected <{local_name(member)}> inside <struct>."
            raise MalformedValueError(msg)
        names = [child for child in member if local_name(child) == "name"]
        values = [child for child in member if local_name(child) == "value"]
        if len(names) != 1 or len(values) != 1 or len(member) != 2:
            msg = "<member> must hold exactly one <name> and one <value>."
            raise MalformedValueError(msg)
        members[names[0].text or ""] = load_value(values[0], depth)
    return Struct(members)
