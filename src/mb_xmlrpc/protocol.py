"""XML-RPC method-call and method-response documents.

Request:  <methodCall><methodName>sum</methodName><params><param><value>..</value></param></params></methodCall>
Response: <methodResponse><params><param><value>..</value></param></params></methodResponse>
Fault:    <methodResponse><fault><value><struct>faultCode, faultString</struct></value></fault></methodResponse>
"""

import xml.etree.ElementTree as ET
from dataclasses import dataclass

from mb_xmlrpc.codec import INT_RE, dump_value, escape, load_value, local_name
from mb_xmlrpc.errors import InvalidMethodNameError, InvalidResponseShapeError, MalformedXmlError
from mb_xmlrpc.value import Boolean, Double, Integer, String, Struct, Value

XML_DECLARATION = '<?xml version="1.0"?>\n'


@dataclass(frozen=True)
class Request:
    """Method call: a method name with ordered parameters."""

    method_name: str
    params: tuple[Value, ...] = ()


@dataclass(frozen=True)
class Response:
    """Method response: either a success value or a fault, never both."""

    value: Value | None = None
    fault_code: int | None = None
    fault_string: str = ""

    def __post_init__(self) -> None:
        if (self.value is None) == (self.fault_code is None):
            msg = "Response must carry exactly one of a value or a fault."
            raise ValueError(msg)

    @property
    def is_fault(self) -> bool:
        """Check if this response is a fault."""
        return self.fault_code is not None

    @staticmethod
    def success(value: Value) -> "Response":
        """Build a success response."""
        return Response(value=value)

    @staticmethod
    def fail(fault_code: int, fault_string: str) -> "Response":
        """Build a fault response."""
        return Response(fault_code=fault_code, fault_string=fault_string)


def encode_request(req: Request) -> bytes:
    """Serialize a Request to a UTF-8 methodCall document.

    Raises:
        InvalidMethodNameError: The method name is empty.
        InvalidCharacterError: The method name, a string or a member name holds a character XML cannot carry.

    """
    if not req.method_name:
        raise InvalidMethodNameError
    parts: list[str] = [XML_DECLARATION, "<methodCall><methodName>", escape(req.method_name), "</methodName><params>"]
    for param in req.params:
        parts.append("<param>")
        dump_value(param, parts.append)
        parts.append("</param>")
    parts.append("</params></methodCall>\n")
    return "".join(parts).encode()


def decode_response(data: bytes) -> Response:
    """Deserialize a methodResponse document into a Response.

    A fault document decodes to a fault Response; only non-conforming data raises.

    Raises:
        MalformedXmlError: Data is not well-formed XML.
        InvalidResponseShapeError: Document is not a methodResponse with one param or a fault.
        UnknownTypeError: A value has an unrecognized type element.
        MalformedValueError: A value's text does not parse as its type, or values nest too deeply.

    """
    root = _parse(data)
    if local_name(root) != "methodResponse":
        msg = f"Expected <methodResponse>, got <{local_name(root)}>."
        raise InvalidResponseShapeError(msg)
    body = _only_child(root, "methodResponse")
    match local_name(body):
        case "params":
            param = _only_child(body, "params", expected="param")
            return Response.success(load_value(_only_child(param, "param", expected="value")))
        case "fault":
            fault = load_value(_only_child(body, "fault", expected="value"))
            return _fault_response(fault)
        case other:
            msg = f"Unexpected <{other}> inside <methodResponse>."
            raise InvalidResponseShapeError(msg)


# --- Server-side direction, used by loopback transports ---


def encode_response(resp: Response) -> bytes:
    """Serialize a Response to a UTF-8 methodResponse document.

    Raises:
        InvalidCharacterError: A string or member name holds a character XML cannot carry.

    """
    parts: list[str] = [XML_DECLARATION, "<methodResponse>"]
    if resp.value is not None:
        parts.append("<params><param>")
        dump_value(resp.value, parts.append)
        parts.append("</param></params>")
    else:
        parts.append("<fault>")
        fault = Struct({"faultCode": Integer(resp.fault_code or 0), "faultString": String(resp.fault_string)})
        dump_value(fault, parts.append)
        parts.append("</fault>")
    parts.append("</methodResponse>\n")
    return "".join(parts).encode()


def decode_request(data: bytes) -> Request:
    """Deserialize a methodCall document into a Request.

    Raises:
        MalformedXmlError: Data is not well-formed XML.
        InvalidResponseShapeError: Document is not a methodCall.
        InvalidMethodNameError: The method name is missing or empty.

    """
    root = _parse(data)
    if local_name(root) != "methodCall":
        msg = f"Expected <methodCall>, got <{local_name(root)}>."
        raise InvalidResponseShapeError(msg)
    method_name = ""
    params: list[Value] = []
    for child in root:
        match local_name(child):
            case "methodName":
                method_name = (child.text or "").strip()
            case "params":
                for param in child:
                    params.append(load_value(_only_child(param, "param", expected="value")))
    if not method_name:
        raise InvalidMethodNameError("Method call has no method name.")
    return Request(method_name=method_name, params=tuple(params))


# --- Helpers ---


def _parse(data: bytes) -> ET.Element:
    try:
        return ET.fromstring(data)
    except ET.ParseError as e:
        msg = f"Malformed XML: {e}"
        raise MalformedXmlError(msg) from None


def _only_child(elem: ET.Element, where: str, expected: str | None = None) -> ET.Element:
    """Return the single child of elem, optionally checking its tag."""
    children = list(elem)
    if len(children) != 1:
        msg = f"<{where}> must hold exactly one element, found {len(children)}."
        raise InvalidResponseShapeError(msg)
    child = children[0]
    if expected is not None and local_name(child) != expected:
        msg = f"Expected <{expected}> inside <{where}>, got <{local_name(child)}>."
        raise InvalidResponseShapeError(msg)
    return child


def _fault_response(fault: Value) -> Response:
    if not isinstance(fault, Struct):
        msg = "Fault value must be a struct."
        raise InvalidResponseShapeError(msg)
    if "faultCode" not in fault or "faultString" not in fault:
        msg = "Fault struct must have faultCode and faultString members."
        raise InvalidResponseShapeError(msg)
    return Response.fail(_coerce_fault_code(fault["faultCode"]), _coerce_fault_string(fault["faultString"]))


def _coerce_fault_code(value: Value) -> int:
    match value:
        case Integer(code):
            return code
        case String(text) if INT_RE.fullmatch(text.strip()):
            return int(text)
    msg = f"faultCode is not an integer: {value!r}"
    raise InvalidResponseShapeError(msg)


def _coerce_fault_string(value: Value) -> str:
    match value:
        case String(text):
            return text
        case Boolean(flag):
            return "1" if flag else "0"
        case Integer(number) | Double(number):
            return str(number)
    msg = f"faultString is not a string: {value!r}"
    raise InvalidResponseShapeError(msg)
