"""Application context shared across CLI commands."""

from dataclasses import dataclass

import typer

from mb_xmlrpc.config import ClientConfig, Config
from mb_xmlrpc.output import Output


@dataclass(frozen=True, slots=True)
class AppContext:
    """Shared application state passed through Typer context."""

    out: Output
    cfg: Config

    def require_server(self) -> ClientConfig:
        """Return the target server configuration, exiting with an error when no URL is known."""
        if self.cfg.server is None:
            self.out.print_error_and_exit("no_url", f"No server URL. Pass --url or set 'url' in {self.cfg.config_path}.")
        return self.cfg.server


def use_context(ctx: typer.Context) -> AppContext:
    """Extract application context from Typer context."""
    result: AppContext = ctx.obj
    return result
