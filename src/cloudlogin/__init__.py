"""cloudlogin -- interactive OAuth2 login and token manager for cloud CLIs.

Signs a user in through the browser with the OAuth2 Authorization Code
grant and PKCE, captures the redirect on a loopback listener, and then
serves access tokens from a durable per-account cache with silent refresh,
tenant switching, and subscription selection.

Typical workflow::

    cloudlogin login                    # browser sign-in
    cloudlogin subscription list        # subscriptions across tenants
    cloudlogin subscription set <id>    # persist the selection
    cloudlogin token                    # print a bearer token

Modules:
    app: Typer application and CLI entry point.
    models: Pydantic models shared across the package.
    config: XDG-aware configuration and precedence resolution.
    exceptions: Exception hierarchy with exit-code mapping.
    exit_codes: Numeric exit codes following clig.dev conventions.
    output: stdout/stderr formatting with Rich support.
    auth: PKCE, redirect listener, token exchange, caches and the
        :class:`~cloudlogin.auth.manager.AccountManager`.
"""

__version__ = "0.3.0"
