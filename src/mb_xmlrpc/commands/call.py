"""Call a remote method."""

import asyncio
import json

import typer

from mb_xmlrpc.app_context import use_context
from mb_xmlrpc.client import call_once
from mb_xmlrpc.errors import Fault, InvalidCharacterError, InvalidMethodNameError
from mb_xmlrpc.value import Value, from_python


def parse_param(text: str) -> Value:
    """Parse a command line parameter: a JSON literal, or a plain string when it is not valid JSON.

    Raises:
        TypeError: JSON value with no XML-RPC counterpart.
        ValueError: Integer outside the 32-bit range.

    """
    try:
        obj = json.loads(text)
    except json.JSONDecodeError:
        obj = text
    return from_python(obj)


def call(
    ctx: typer.Context,
    method: str,
    params: list[str] | None = typer.Argument(default=None, help="Parameters as JSON literals (plain text is sent as a string)"),
) -> None:
    """Call METHOD with PARAMS and print the result."""
    app = use_context(ctx)
    server = app.require_server()
    try:
        values = [parse_param(p) for p in params or []]
    except (TypeError, ValueError) as e:
        app.out.print_error_and_exit("invalid_param", str(e))
    try:
        result = asyncio.run(call_once(server, method, values))
    except (InvalidMethodNameError, InvalidCharacterError) as e:
        app.out.print_error_and_exit(e.code, str(e))
    except Fault as e:
        app.out.print_fault_and_exit(e.fault_code, e.fault_string)
    app.out.print_result(result)
