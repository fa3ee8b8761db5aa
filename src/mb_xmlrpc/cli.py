"""CLI entry point for mb-xmlrpc."""

from pathlib import Path
from typing import Annotated

import typer
from mm_clikit import TyperPlus

from mb_xmlrpc.app_context import AppContext
from mb_xmlrpc.commands.call import call
from mb_xmlrpc.commands.methods import methods
from mb_xmlrpc.config import Config
from mb_xmlrpc.log import setup_logging
from mb_xmlrpc.output import Output

app = TyperPlus(package_name="mb-xmlrpc")


@app.callback()
def callback(
    ctx: typer.Context,
    *,
    json_output: Annotated[bool, typer.Option("--json", help="Output results as JSON.")] = False,
    data_dir: Annotated[Path | None, typer.Option("--data-dir", help="Data directory path.")] = None,
    url: Annotated[str | None, typer.Option("--url", help="XML-RPC server URL (overrides config.toml).")] = None,
    debug: Annotated[bool, typer.Option("--debug", help="Write debug records, including results, to the log file.")] = False,
) -> None:
    """Call XML-RPC methods from the terminal."""
    out = Output(json_mode=json_output)
    try:
        cfg = Config.build(data_dir, url)
    except ValueError as e:
        out.print_error_and_exit("invalid_config", str(e))
    cfg.data_dir.mkdir(parents=True, exist_ok=True)
    setup_logging(cfg.log_path, debug=debug)
    ctx.obj = AppContext(out=out, cfg=cfg)


app.command(aliases=["c"])(call)
app.command(aliases=["m"])(methods)
