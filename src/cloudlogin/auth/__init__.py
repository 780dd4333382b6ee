"""Interactive OAuth2 login subsystem for cloudlogin.

This package implements the public-client Authorization Code + PKCE flow
and everything built on top of it:

- :mod:`~cloudlogin.auth.pkce` -- verifier/challenge generation.
- :class:`RedirectListener` -- loopback listener capturing the redirect.
- :class:`TokenExchangeClient` -- code redemption and silent refresh.
- :class:`AccountCache` -- durable "current account" pointer.
- :class:`TenantTokenMemory` -- per-tenant token handles and
  :class:`TenantCredential` objects for downstream SDKs.
- :class:`LoginFlow` -- one login flow, optionally bound to a tenant.
- :class:`AccountManager` -- the stateful façade; see
  :func:`create_default_manager`.

Typical usage::

    from cloudlogin.auth import create_default_manager

    manager = create_default_manager()
    token = manager.get_token()
    selection = manager.get_selected_subscription(prompt_if_missing=True)
"""

from cloudlogin.auth.account_cache import AccountCache
from cloudlogin.auth.base import SubscriptionProvider, TokenProvider
from cloudlogin.auth.listener import RedirectListener
from cloudlogin.auth.login_flow import LoginFlow
from cloudlogin.auth.manager import AccountManager, create_default_manager
from cloudlogin.auth.pkce import generate_challenge, new_authorization_request
from cloudlogin.auth.subscription_store import SubscriptionStore
from cloudlogin.auth.subscriptions import SubscriptionClient
from cloudlogin.auth.tenant_memory import TenantCredential, TenantTokenCache, TenantTokenMemory
from cloudlogin.auth.token_client import TokenExchangeClient

__all__ = [
    "AccountCache",
    "AccountManager",
    "LoginFlow",
    "RedirectListener",
    "SubscriptionClient",
    "SubscriptionProvider",
    "SubscriptionStore",
    "TenantCredential",
    "TenantTokenCache",
    "TenantTokenMemory",
    "TokenExchangeClient",
    "TokenProvider",
    "create_default_manager",
    "generate_challenge",
    "new_authorization_request",
]
