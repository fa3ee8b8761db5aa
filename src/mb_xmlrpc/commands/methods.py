"""List methods exposed by the server."""

import asyncio

import typer

from mb_xmlrpc.app_context import use_context
from mb_xmlrpc.client import call_once
from mb_xmlrpc.errors import Fault
from mb_xmlrpc.value import Array, String


def methods(ctx: typer.Context) -> None:
    """List server methods (system.listMethods)."""
    app = use_context(ctx)
    server = app.require_server()
    try:
        result = asyncio.run(call_once(server, "system.listMethods"))
    except Fault as e:
        app.out.print_fault_and_exit(e.fault_code, e.fault_string)
    if not isinstance(result, Array) or not all(isinstance(item, String) for item in result.items):
        app.out.print_error_and_exit("unexpected_result", "system.listMethods did not return a list of strings.")
    app.out.print_list([item.value for item in result.items if isinstance(item, String)])
