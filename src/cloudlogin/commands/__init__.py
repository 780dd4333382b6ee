"""Built-in CLI sub-commands for cloudlogin.

This package groups the Typer command modules that form the CLI:

* :mod:`~cloudlogin.commands.account` -- ``login``, ``logout``, ``status``
  and ``token``, registered directly on the root app.
* :mod:`~cloudlogin.commands.subscription` -- list, select and show the
  subscription selection.
* :mod:`~cloudlogin.commands.config` -- inspect the effective settings.

Commands never hold login logic of their own. They fetch the shared
:class:`~cloudlogin.auth.manager.AccountManager` with :func:`get_manager`
and translate :class:`~cloudlogin.exceptions.CloudLoginError` into an
error message and exit code with :func:`handle_errors`.
"""

from __future__ import annotations

from contextlib import contextmanager
from typing import TYPE_CHECKING, Iterator

import typer

from cloudlogin.exceptions import CloudLoginError, InvalidUsageError
from cloudlogin.output import error, get_output

if TYPE_CHECKING:
    from cloudlogin.auth.manager import AccountManager
    from cloudlogin.models import SubscriptionInfo


@contextmanager
def handle_errors() -> Iterator[None]:
    """Print a :class:`CloudLoginError` and exit with its code."""
    try:
        yield
    except CloudLoginError as exc:
        error(str(exc))
        raise typer.Exit(code=exc.exit_code) from None


def prompt_for_subscription(subscriptions: list[SubscriptionInfo]) -> str:
    """Ask the user to pick one subscription by its display name.

    Returns:
        The chosen subscription id.
    """
    output = get_output()
    output.info("Select a subscription:")
    for index, sub in enumerate(subscriptions, 1):
        label = sub.subscription_name or sub.subscription_id
        output.info(f"  {index}. {label} ({sub.subscription_id})")

    while True:
        choice = typer.prompt("Subscription number", type=int, err=True)
        if 1 <= choice <= len(subscriptions):
            return subscriptions[choice - 1].subscription_id
        error(f"Enter a number between 1 and {len(subscriptions)}.")


def get_manager(ctx: typer.Context) -> AccountManager:
    """Return the context's :class:`AccountManager`, creating it on first use.

    Tests (and embedding applications) may pre-seed ``ctx.obj["manager"]``.
    """
    obj = ctx.ensure_object(dict)
    manager = obj.get("manager")
    if manager is None:
        from cloudlogin.auth.manager import create_default_manager
        from cloudlogin.config import resolve_config

        chooser = None if obj.get("no_input") else prompt_for_subscription
        config = resolve_config(cli_tenant=obj.get("tenant"))
        manager = create_default_manager(config.login, chooser=chooser)
        obj["manager"] = manager
    return manager


def require_value(value: str, name: str) -> str:
    """Reject blank positional arguments."""
    if not value.strip():
        raise InvalidUsageError(f"{name} must not be empty")
    return value.strip()
