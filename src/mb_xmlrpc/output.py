"""Structured output for CLI and JSON modes."""

# ruff: noqa: T201 - print() is how this module produces CLI output.

import base64
import json
import sys
from datetime import datetime
from typing import NoReturn

import typer

from mb_xmlrpc.value import Value, pformat, to_python


def _json_default(obj: object) -> object:
    """Serialize the native types JSON has no literal for."""
    if isinstance(obj, bytes):
        return base64.b64encode(obj).decode("ascii")
    if isinstance(obj, datetime):
        return obj.isoformat()
    msg = f"Object of type {type(obj).__name__} is not JSON serializable"
    raise TypeError(msg)


class Output:
    """Handles all CLI output in JSON or human-readable format."""

    def __init__(self, *, json_mode: bool) -> None:
        """Initialize output handler.

        Args:
            json_mode: If True, output JSON envelopes; otherwise human-readable text.

        """
        self._json_mode = json_mode

    def print_error_and_exit(self, code: str, message: str) -> NoReturn:
        """Print an error in JSON or human-readable format and exit with code 1.

        Raises:
            typer.Exit: Always, with code 1.

        """
        if self._json_mode:
            print(json.dumps({"ok": False, "error": code, "message": message}))
        else:
            print(f"Error: {message}", file=sys.stderr)
        raise typer.Exit(code=1)

    def print_fault_and_exit(self, fault_code: int, fault_string: str) -> NoReturn:
        """Print a failed call (server fault or transport failure) and exit with code 1.

        Raises:
            typer.Exit: Always, with code 1.

        """
        if self._json_mode:
            print(json.dumps({"ok": False, "error": "fault", "message": fault_string, "fault_code": fault_code}))
        else:
            print(f"Fault {fault_code}: {fault_string}", file=sys.stderr)
        raise typer.Exit(code=1)

    def print_result(self, value: Value) -> None:
        """Print a method call result."""
        if self._json_mode:
            print(json.dumps({"ok": True, "data": {"result": to_python(value)}}, default=_json_default))
        else:
            print(pformat(value))

    def print_list(self, names: list[str]) -> None:
        """Print a list of names, one per line."""
        if self._json_mode:
            print(json.dumps({"ok": True, "data": {"methods": names}}))
        else:
            for name in names:
                print(name)
