"""Typer application and CLI entry point for cloudlogin.

This module wires the top-level Typer application: the root callback that
sets up output and logging, the account commands (``login``, ``logout``,
``status``, ``token``), and the ``subscription`` and ``config`` groups.

The :func:`main` function is the console-script entry point declared in
``pyproject.toml``. It installs signal handlers and invokes the Typer app.
:class:`~cloudlogin.exceptions.CloudLoginError` exits with its own code;
any other exception is written to a crash log under the data directory.

See Also:
    :mod:`cloudlogin.auth.manager`: The account manager the commands drive.
    :mod:`cloudlogin.output`: Output formatting initialised in :func:`main_callback`.
"""

from __future__ import annotations

import logging
import signal
import sys
import traceback
from datetime import datetime
from typing import Any, Optional

import typer
from rich.logging import RichHandler

from cloudlogin import __version__
from cloudlogin.commands.account import (
    login_command,
    logout_command,
    status_command,
    token_command,
)
from cloudlogin.commands.config import config_app
from cloudlogin.commands.subscription import subscription_app
from cloudlogin.exit_codes import EXIT_GENERIC_FAILURE


app = typer.Typer(
    name="cloudlogin",
    help="Sign in to the cloud with OAuth2 + PKCE and manage tokens and subscriptions.",
    no_args_is_help=True,
    add_completion=False,
    rich_markup_mode="rich",
)

app.command("login")(login_command)
app.command("logout")(logout_command)
app.command("status")(status_command)
app.command("token")(token_command)
app.add_typer(subscription_app, name="subscription", help="Subscription selection.")
app.add_typer(config_app, name="config", help="View and change configuration.")


def _version_callback(value: bool) -> None:
    """Print version and exit when --version is passed."""
    if value:
        typer.echo(f"cloudlogin {__version__}")
        raise typer.Exit()


def _configure_logging(verbose: bool, handler: logging.Handler) -> None:
    """Route the package's log records to *handler* on stderr."""
    logger = logging.getLogger("cloudlogin")
    for existing in list(logger.handlers):
        logger.removeHandler(existing)
    logger.addHandler(handler)
    logger.setLevel(logging.DEBUG if verbose else logging.WARNING)


@app.callback()
def main_callback(
    ctx: typer.Context,
    version: bool = typer.Option(
        False,
        "--version",
        callback=_version_callback,
        is_eager=True,
        help="Show version and exit.",
    ),
    tenant: Optional[str] = typer.Option(
        None, "--tenant", help="Tenant to use instead of the configured default."
    ),
    json_output: bool = typer.Option(
        False, "--json", help="JSON output format."
    ),
    plain_output: bool = typer.Option(
        False, "--plain", help="Plain text output."
    ),
    no_color: bool = typer.Option(
        False, "--no-color", help="Disable color output."
    ),
    quiet: bool = typer.Option(
        False, "--quiet", "-q", help="Suppress non-essential output."
    ),
    verbose: bool = typer.Option(
        False, "--verbose", "-v", help="Enable debug logging."
    ),
    no_input: bool = typer.Option(
        False, "--no-input", help="Never prompt for a subscription."
    ),
) -> None:
    """Root callback executed before every sub-command.

    Installs the global :class:`~cloudlogin.output.OutputManager`, attaches
    a :class:`rich.logging.RichHandler` to the ``cloudlogin`` logger (DEBUG
    with ``--verbose``, WARNING otherwise), and stores shared options in
    ``ctx.obj`` for :func:`~cloudlogin.commands.get_manager`.
    """
    from cloudlogin.output import OutputFormat, OutputManager, set_output

    fmt = OutputFormat.AUTO
    if json_output:
        fmt = OutputFormat.JSON
    elif plain_output:
        fmt = OutputFormat.PLAIN

    output = OutputManager(format=fmt, no_color=no_color, quiet=quiet)
    set_output(output)

    _configure_logging(
        verbose,
        RichHandler(
            console=output.stderr_console,
            show_time=False,
            show_path=verbose,
            markup=False,
        ),
    )

    ctx.ensure_object(dict)
    ctx.obj["tenant"] = tenant
    ctx.obj["no_input"] = no_input
    ctx.obj["verbose"] = verbose


def _setup_signal_handlers() -> None:
    """Install a SIGINT handler so Ctrl-C exits cleanly."""

    def _handler(signum: int, frame: Any) -> None:  # noqa: ANN401
        sys.stderr.write("\nCancelled.\n")
        sys.exit(130)

    signal.signal(signal.SIGINT, _handler)


def _write_crash_log(exc: Exception) -> str:
    """Write a crash traceback to disk and return the log file path."""
    from cloudlogin.config import get_data_dir

    logs_dir = get_data_dir() / "logs"
    logs_dir.mkdir(parents=True, exist_ok=True)
    timestamp = datetime.now().strftime("%Y%m%d-%H%M%S")
    log_path = logs_dir / f"crash-{timestamp}.log"
    log_path.write_text(traceback.format_exc())
    return str(log_path)


def main() -> None:
    """CLI entry point invoked by the ``cloudlogin`` console script.

    Raises:
        SystemExit: Always raised (either by Typer or explicitly).
    """
    _setup_signal_handlers()
    try:
        app()
    except SystemExit:
        raise
    except KeyboardInterrupt:
        sys.stderr.write("\nCancelled.\n")
        sys.exit(130)
    except Exception as exc:
        from cloudlogin.exceptions import CloudLoginError
        from cloudlogin.output import error

        if isinstance(exc, CloudLoginError):
            error(str(exc))
            sys.exit(exc.exit_code)
        else:
            log_path = _write_crash_log(exc)
            error(f"Unexpected error. Debug log: {log_path}")
            sys.exit(EXIT_GENERIC_FAILURE)
