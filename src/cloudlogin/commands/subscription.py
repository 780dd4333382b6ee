"""Subscription commands -- enumerate and select cloud subscriptions.

Provides the ``cloudlogin subscription`` sub-command group. The selection
is stored per project in ``.cloudlogin/subscriptionInfo.json``.

Typical workflow::

    cloudlogin subscription list
    cloudlogin subscription set 00000000-0000-0000-0000-000000000000
    cloudlogin subscription show
    cloudlogin subscription clear
"""

from __future__ import annotations

import typer

from cloudlogin.commands import get_manager, handle_errors, require_value
from cloudlogin.exit_codes import EXIT_NOT_FOUND
from cloudlogin.output import info, print_object, print_table, success, suggest


subscription_app = typer.Typer(no_args_is_help=True)


@subscription_app.command("list")
def subscription_list(ctx: typer.Context) -> None:
    """List subscriptions across every tenant of the signed-in account.

    Tenants that require multi-factor authentication are skipped with a
    warning.
    """
    with handle_errors():
        manager = get_manager(ctx)
        subscriptions = manager.list_subscriptions()
        selected = manager.selection
        selected_id = selected.subscription_id if selected is not None else None

        if not subscriptions:
            info("No subscriptions found.")
            return

        rows = [
            [
                "*" if sub.subscription_id == selected_id else "",
                sub.subscription_id,
                sub.subscription_name,
                sub.tenant_id,
            ]
            for sub in subscriptions
        ]
        print_table(["Selected", "Subscription ID", "Name", "Tenant ID"], rows, title="Subscriptions")


@subscription_app.command("set")
def subscription_set(
    ctx: typer.Context,
    subscription_id: str = typer.Argument(help="Subscription id to select."),
) -> None:
    """Select a subscription for this project."""
    with handle_errors():
        selection = get_manager(ctx).set_subscription(
            require_value(subscription_id, "Subscription id")
        )
        success(
            f"Selected subscription '{selection.subscription_name or selection.subscription_id}'."
        )


@subscription_app.command("show")
def subscription_show(
    ctx: typer.Context,
    prompt: bool = typer.Option(
        False, "--prompt/--no-prompt", help="Ask to choose when nothing is selected."
    ),
) -> None:
    """Show the selected subscription.

    With exactly one visible subscription it is selected automatically.
    """
    with handle_errors():
        selection = get_manager(ctx).get_selected_subscription(prompt_if_missing=prompt)
        if selection is None:
            info("No subscription selected.")
            suggest("Run 'cloudlogin subscription set <id>' to choose one.")
            raise typer.Exit(code=EXIT_NOT_FOUND)
        print_object(selection.model_dump(by_alias=True))


@subscription_app.command("clear")
def subscription_clear(ctx: typer.Context) -> None:
    """Forget the subscription selected for this project."""
    with handle_errors():
        if get_manager(ctx).clear_subscription():
            success("Subscription selection cleared.")
        else:
            info("No subscription selected.")
