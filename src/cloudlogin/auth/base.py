"""Abstract interfaces exposed by the login subsystem.

Two small abstract base classes describe what downstream code may rely on:

- :class:`TokenProvider` -- anything that can hand out bearer tokens and
  report the signed-in identity.
- :class:`SubscriptionProvider` -- anything that can enumerate and select
  cloud subscriptions.

:class:`~cloudlogin.auth.manager.AccountManager` implements both. Code that
only needs a token (an SDK adapter, a deployment step) should depend on
:class:`TokenProvider` rather than on the concrete manager.

See Also:
    :mod:`cloudlogin.auth.manager` for the implementation.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import Optional

from cloudlogin.models import LoginStatus, SubscriptionInfo, TokenClaims


class TokenProvider(ABC):
    """Source of bearer tokens for the signed-in account."""

    @abstractmethod
    def get_token(
        self, tenant_id: Optional[str] = None, *, scopes: Optional[list[str]] = None
    ) -> Optional[str]:
        """Return an access token, signing in interactively when needed.

        Args:
            tenant_id: Tenant whose authority should issue the token.
                ``None`` means the current tenant.
            scopes: Scopes to request. ``None`` means the configured
                default scopes.

        Returns:
            The bearer token string, or ``None`` when no token could be
            obtained.
        """
        ...

    @abstractmethod
    def get_json_object(self) -> Optional[TokenClaims]:
        """Return the decoded claims of the current token, if any."""
        ...

    @abstractmethod
    def get_status(self) -> LoginStatus:
        """Return a snapshot of the login state. Never triggers a login."""
        ...

    @abstractmethod
    def sign_out(self) -> bool:
        """Forget the current account. Returns ``True`` once signed out."""
        ...


class SubscriptionProvider(ABC):
    """Enumerates and selects cloud subscriptions."""

    @abstractmethod
    def list_subscriptions(self) -> list[SubscriptionInfo]:
        """Return every subscription visible across the account's tenants."""
        ...

    @abstractmethod
    def set_subscription(self, subscription_id: str) -> SubscriptionInfo:
        """Select *subscription_id* and persist the choice."""
        ...

    @abstractmethod
    def get_selected_subscription(
        self, prompt_if_missing: bool = False
    ) -> Optional[SubscriptionInfo]:
        """Return the persisted selection, choosing one when allowed."""
        ...
