"""Account commands -- sign in, sign out, and hand out tokens.

Registered directly on the root app::

    cloudlogin login                     # browser sign-in (default authority)
    cloudlogin login --tenant contoso.onmicrosoft.com
    cloudlogin status --json             # never prompts
    cloudlogin token --tenant <tenant>   # bearer token on stdout
    cloudlogin logout
"""

from __future__ import annotations

from typing import Any, Optional

import typer

from cloudlogin.commands import get_manager, handle_errors
from cloudlogin.exit_codes import EXIT_AUTH_FAILURE
from cloudlogin.models import LoginState
from cloudlogin.output import info, print_data, print_object, success, suggest


def login_command(
    ctx: typer.Context,
    tenant: Optional[str] = typer.Option(
        None, "--tenant", "-t", help="Sign in to this tenant's authority."
    ),
) -> None:
    """Sign in through the browser.

    Reuses the cached session when it is still valid; otherwise opens the
    browser on the provider's account chooser.
    """
    with handle_errors():
        manager = get_manager(ctx)
        if tenant:
            manager.switch_tenant(tenant)
        else:
            manager.get_token()
        success(f"Signed in as {manager.username or 'unknown user'}.")
        if manager.get_selected_subscription() is None:
            suggest("Run 'cloudlogin subscription list' to choose a subscription.")


def logout_command(ctx: typer.Context) -> None:
    """Sign out and forget the cached account.

    The project's subscription selection is kept.
    """
    with handle_errors():
        get_manager(ctx).sign_out()
        success("Signed out.")


def status_command(ctx: typer.Context) -> None:
    """Show whether an account is signed in. Never opens the browser."""
    with handle_errors():
        manager = get_manager(ctx)
        status = manager.get_status()
        claims = status.account_info or {}
        data: dict[str, Any] = {"status": status.status.value}
        if status.status == LoginState.SIGNED_IN:
            data["username"] = manager.username
            data["tenantId"] = claims.get("tid") or manager.tenant_id
            data["homeTenantId"] = manager.home_tenant_id
        selection = manager.selection
        if selection is not None:
            data["subscription"] = selection.model_dump(by_alias=True)
        print_object(data)
        if status.status != LoginState.SIGNED_IN:
            info("Not signed in.")
            suggest("Run 'cloudlogin login' to sign in.")


def token_command(
    ctx: typer.Context,
    tenant: Optional[str] = typer.Option(
        None, "--tenant", "-t", help="Issue the token from this tenant's authority."
    ),
    scope: Optional[list[str]] = typer.Option(
        None, "--scope", "-s", help="Scope to request (repeatable)."
    ),
) -> None:
    """Print an access token to stdout, signing in if needed."""
    with handle_errors():
        token = get_manager(ctx).get_token(tenant, scopes=scope or None)
        if token is None:
            info("No token available.")
            raise typer.Exit(code=EXIT_AUTH_FAILURE)
        print_data(token)
