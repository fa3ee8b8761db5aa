"""Error types raised by the XML-RPC codec and client."""


class XmlRpcError(Exception):
    """Base class for library errors."""

    def __init__(self, code: str, message: str) -> None:
        """Initialize with a machine-readable code and a human-readable message.

        Args:
            code: Machine-readable error code (e.g. "malformed_xml").
            message: Human-readable error description.

        """
        super().__init__(message)
        self.code = code


class InvalidMethodNameError(XmlRpcError):
    """The method name cannot be encoded into a method call."""

    def __init__(self, message: str = "Method name cannot be empty.") -> None:
        """Initialize with a description of the rejected name."""
        super().__init__("invalid_method_name", message)


class InvalidCharacterError(XmlRpcError):
    """Text holds a character that XML 1.0 cannot carry (control characters, U+FFFE, U+FFFF, lone surrogates).

    Such data can only be sent as Base64.
    """

    def __init__(self, char: str) -> None:
        """Initialize with the offending character."""
        super().__init__("invalid_character", f"Character U+{ord(char):04X} cannot be sent in XML-RPC text.")
        self.char = char


class DecodeError(XmlRpcError):
    """Wire data is not a conforming XML-RPC document.

    A well-formed fault response is not a decode error.
    """


class MalformedXmlError(DecodeError):
    def __init__(self, message: str) -> None:
        super().__init__("malformed_xml", message)


class InvalidResponseShapeError(DecodeError):
    def __init__(self, message: str) -> None:
        super().__init__("invalid_response_shape", message)


class UnknownTypeError(DecodeError):
    def __init__(self, tag: str) -> None:
        super().__init__("unknown_type", f"Unknown value type: <{tag}>")
        self.tag = tag


class MalformedValueError(DecodeError):
    def __init__(self, message: str) -> None:
        super().__init__("malformed_value", message)


class Fault(XmlRpcError):
    """A request ended in a fault: protocol-level, transport, or invalid response."""

    def __init__(self, fault_code: int, fault_string: str) -> None:
        """Initialize with the fault code and fault string reported for the request."""
        super().__init__("fault", fault_string)
        self.fault_code = fault_code
        self.fault_string = fault_string
