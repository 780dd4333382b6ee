"""Canonical Pydantic models shared across all cloudlogin modules.

This is the single source of truth for data shapes in the project. Every other
module imports from here rather than defining its own models. The models fall
into two groups:

**Configuration models** -- serialised as JSON in the user's config directory:
    :class:`LoginConfig`, :class:`OutputConfig` and :class:`GlobalConfig`.

**Login state models** -- produced and consumed by the login subsystem:
    :class:`AuthorizationRequest`, :class:`Account`, :class:`TokenRecord`,
    :class:`TokenClaims`, :class:`TenantInfo`, :class:`SubscriptionInfo`,
    :class:`SubscriptionSelection` and :class:`LoginStatus`.

Secret-bearing fields (code verifier, access token) are excluded from
``repr`` so that they never end up in logs or tracebacks by accident.
"""

from __future__ import annotations

import enum
from datetime import datetime, timedelta, timezone
from typing import Any, Optional

from pydantic import BaseModel, ConfigDict, Field


# --- Enums ---


class AccountKind(str, enum.Enum):
    """Identity namespaces with independent "current account" slots.

    The value doubles as the logical account name used as the account
    cache key. :attr:`display_name` is the only text ever substituted into
    the redirect listener's result pages.
    """

    AZURE = "azure"
    M365 = "m365"

    @property
    def display_name(self) -> str:
        return _ACCOUNT_DISPLAY_NAMES[self]


_ACCOUNT_DISPLAY_NAMES = {
    AccountKind.AZURE: "Azure",
    AccountKind.M365: "Microsoft 365",
}


class LoginState(str, enum.Enum):
    """States of the :class:`~cloudlogin.auth.manager.AccountManager` state machine."""

    SIGNED_OUT = "SignedOut"
    AUTHENTICATING = "Authenticating"
    SIGNED_IN = "SignedIn"


# --- Config ---


class LoginConfig(BaseModel):
    """Identity-provider and listener settings.

    Defaults target the public multi-tenant ``organizations`` authority of
    Microsoft Entra ID with the Azure Resource Manager scope.

    Example::

        LoginConfig(tenant="contoso.onmicrosoft.com", port=8400)
    """

    client_id: str = Field(
        default="7ea7c24c-b1f6-4a20-9d11-9ae12e9e7ac0",
        description="Public client (application) id",
    )
    authority_host: str = Field(
        default="https://login.microsoftonline.com",
        description="Identity provider host; the tenant is appended as a path segment",
    )
    tenant: str = Field(
        default="organizations",
        description="Default tenant for the authority (id, domain, or 'organizations')",
    )
    scopes: list[str] = Field(
        default_factory=lambda: ["https://management.core.windows.net/user_impersonation"],
    )
    resource_manager_url: str = Field(
        default="https://management.azure.com",
        description="Base URL used to list tenants and subscriptions",
    )
    account_kind: AccountKind = AccountKind.AZURE
    port: int = Field(
        default=0, ge=0, le=65535, description="Redirect listener port (0 = ephemeral)"
    )
    bind_timeout: float = Field(
        default=5.0, gt=0, description="Seconds to wait for the listener to bind"
    )
    login_timeout: float = Field(
        default=300.0, gt=0, description="Seconds to wait for the browser callback"
    )
    http_timeout: float = Field(default=30.0, gt=0)

    @property
    def account_name(self) -> str:
        """Logical account name used as the account cache key."""
        return self.account_kind.value


class OutputConfig(BaseModel):
    """Default output format preferences stored in :class:`GlobalConfig`."""

    format: str = Field(
        default="auto", description="Output format: auto, json, plain, rich"
    )


class GlobalConfig(BaseModel):
    """User-wide configuration persisted at ``~/.config/cloudlogin/config.json``.

    Loaded and saved by :func:`~cloudlogin.config.load_global_config` and
    :func:`~cloudlogin.config.save_global_config`. Fields here have the
    lowest precedence and can be overridden by project config, environment
    variables, or CLI flags. See :func:`~cloudlogin.config.resolve_config`.
    """

    login: LoginConfig = Field(default_factory=LoginConfig)
    output: OutputConfig = Field(default_factory=OutputConfig)


# --- Login state ---


class AuthorizationRequest(BaseModel):
    """One in-flight interactive login attempt.

    The verifier/challenge pair is generated together by
    :func:`~cloudlogin.auth.pkce.new_authorization_request` and is never
    reused across attempts.
    """

    model_config = ConfigDict(frozen=True)

    code_verifier: str = Field(repr=False)
    code_challenge: str
    code_challenge_method: str = "S256"
    redirect_uri: str
    scopes: list[str] = Field(default_factory=list)
    authority: str
    prompt: str = "select_account"


class Account(BaseModel):
    """An authenticated identity.

    ``home_account_id`` (``<object id>.<home tenant id>``) is the stable
    key under which the account and its refresh material are cached.
    """

    home_account_id: str
    tenant_id: str
    username: str = ""
    local_account_id: Optional[str] = None
    id_token_claims: dict[str, Any] = Field(default_factory=dict, repr=False)


class TokenRecord(BaseModel):
    """A bearer credential scoped to one tenant.

    Records are never mutated; a newer record for the same tenant and
    resource replaces the older one.
    """

    model_config = ConfigDict(frozen=True)

    access_token: str = Field(repr=False)
    expires_on: datetime
    tenant_id: str
    client_id: str
    resource: Optional[str] = None
    scopes: list[str] = Field(default_factory=list)
    home_account_id: Optional[str] = None
    token_type: str = "Bearer"

    def expires_within(self, seconds: float) -> bool:
        """Return True if the token expires less than *seconds* from now."""
        expires = self.expires_on
        if expires.tzinfo is None:
            expires = expires.replace(tzinfo=timezone.utc)
        return datetime.now(timezone.utc) + timedelta(seconds=seconds) >= expires

    @property
    def is_expired(self) -> bool:
        return self.expires_within(0)


class TokenClaims(BaseModel):
    """Typed view over the payload of a JWT access or ID token.

    Built by :func:`~cloudlogin.auth.claims.parse_claims`, which owns the
    single missing-field policy (see that function).
    """

    tenant_id: Optional[str] = None
    object_id: Optional[str] = None
    subject: Optional[str] = None
    username: Optional[str] = None
    audience: Optional[str] = None
    issued_at: Optional[datetime] = None
    expires_at: Optional[datetime] = None
    raw: dict[str, Any] = Field(default_factory=dict, repr=False)


class TenantInfo(BaseModel):
    """A directory (tenant) reachable by the signed-in account."""

    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    tenant_id: str = Field(alias="tenantId")
    display_name: Optional[str] = Field(default=None, alias="displayName")
    default_domain: Optional[str] = Field(default=None, alias="defaultDomain")


class SubscriptionInfo(BaseModel):
    """A cloud subscription visible under a tenant.

    Serialises with the camelCase keys used by the selection file
    (``model_dump(by_alias=True)``).
    """

    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    subscription_id: str = Field(alias="subscriptionId")
    subscription_name: str = Field(default="", alias="subscriptionName")
    tenant_id: str = Field(alias="tenantId")


class SubscriptionSelection(SubscriptionInfo):
    """The user's chosen subscription, as persisted in ``subscriptionInfo.json``."""


class LoginStatus(BaseModel):
    """Snapshot returned by :meth:`~cloudlogin.auth.manager.AccountManager.get_status`."""

    status: LoginState
    token: Optional[str] = Field(default=None, repr=False)
    account_info: Optional[dict[str, Any]] = None
