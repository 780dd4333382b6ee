"""Token endpoint client for the public-client Authorization Code + PKCE flow.

:class:`TokenExchangeClient` talks to a Microsoft Entra ID style v2.0
authority (``<host>/<tenant>/oauth2/v2.0/{authorize,token}``):

* :meth:`~TokenExchangeClient.build_authorization_url` -- the URL opened in
  the browser.
* :meth:`~TokenExchangeClient.exchange_code` -- redeem an authorization code
  (interactive path).
* :meth:`~TokenExchangeClient.acquire_silent` -- serve a cached access token
  or redeem the cached refresh token, never prompting.
* :meth:`~TokenExchangeClient.acquire_tenant_token` -- force a refresh
  against a tenant-specific authority.

Every successful response is written to the shared
:class:`~cloudlogin.cache.TokenCache`. Provider rejections map to
:class:`~cloudlogin.exceptions.MFARequired` when the response carries a
multi-factor / conditional-access error code and to
:class:`~cloudlogin.exceptions.TokenExchangeFailed` otherwise; network
failures map to ``TokenExchangeFailed(transient=True)``. Error messages
carry the provider's error text, never codes, verifiers or tokens.
"""

from __future__ import annotations

import base64
import json
import logging
from datetime import datetime, timedelta, timezone
from typing import Any, Optional
from urllib.parse import urlencode

import httpx

from cloudlogin.auth.claims import claims_from_payload, decode_jwt_payload, parse_claims
from cloudlogin.cache.token_cache import RESERVED_SCOPES, TokenCache
from cloudlogin.exceptions import MFARequired, NoAccount, TokenExchangeFailed
from cloudlogin.models import Account, AuthorizationRequest, TokenRecord

logger = logging.getLogger(__name__)

DEFAULT_AUTHORITY_HOST = "https://login.microsoftonline.com"
MULTI_TENANT_AUTHORITIES = frozenset({"organizations", "common", "consumers"})

# AADSTS codes for "strong authentication / conditional access required".
MFA_ERROR_CODES = frozenset({50076, 50079, 50158})

_DEFAULT_EXPIRES_IN = 3600
_REFRESH_MARGIN_SECONDS = 300


def _b64url_json(segment: str) -> dict[str, Any]:
    segment += "=" * (-len(segment) % 4)
    try:
        data = json.loads(base64.urlsafe_b64decode(segment.encode("ascii")))
    except (ValueError, UnicodeError):
        return {}
    return data if isinstance(data, dict) else {}


def _request_scopes(scopes: list[str]) -> str:
    requested = [s for s in scopes if s.lower() not in RESERVED_SCOPES]
    return " ".join(requested + sorted(RESERVED_SCOPES))


def _resource_for(scopes: list[str]) -> Optional[str]:
    for scope in scopes:
        if scope.lower() in RESERVED_SCOPES:
            continue
        if "://" in scope and scope.count("/") > 2:
            return scope.rsplit("/", 1)[0] + "/"
        return scope
    return None


def _mfa_required(body: dict[str, Any]) -> bool:
    codes = body.get("error_codes") or []
    if any(code in MFA_ERROR_CODES for code in codes if isinstance(code, int)):
        return True
    description = str(body.get("error_description", ""))
    return any(f"AADSTS{code}" in description for code in MFA_ERROR_CODES)


class TokenExchangeClient:
    """Client for one authority (host + tenant) sharing a durable token cache.

    Args:
        client_id: Public client (application) id.
        cache: Durable store for accounts and tokens.
        authority_host: Identity provider host.
        tenant: Tenant segment of the authority. ``organizations`` accepts
            any work or school account.
        timeout: HTTP timeout in seconds.

    Example::

        client = TokenExchangeClient("7ea7...", TokenCache(get_cache_dir()))
        record, account = client.exchange_code(code, verifier, redirect_uri, scopes)
        again = client.acquire_silent(account, scopes)   # served from cache
    """

    def __init__(
        self,
        client_id: str,
        cache: TokenCache,
        authority_host: str = DEFAULT_AUTHORITY_HOST,
        tenant: str = "organizations",
        timeout: float = 30.0,
    ) -> None:
        self.client_id = client_id
        self.cache = cache
        self.authority_host = authority_host.rstrip("/")
        self.tenant = tenant
        self.timeout = timeout

    @property
    def authority(self) -> str:
        return f"{self.authority_host}/{self.tenant}"

    @property
    def authorize_endpoint(self) -> str:
        return f"{self.authority}/oauth2/v2.0/authorize"

    @property
    def token_endpoint(self) -> str:
        return self._token_endpoint(self.tenant)

    @property
    def is_multi_tenant(self) -> bool:
        return self.tenant.lower() in MULTI_TENANT_AUTHORITIES

    def for_tenant(self, tenant_id: str) -> TokenExchangeClient:
        """Return a client bound to *tenant_id*'s authority, sharing the cache."""
        return TokenExchangeClient(
            self.client_id,
            self.cache,
            authority_host=self.authority_host,
            tenant=tenant_id,
            timeout=self.timeout,
        )

    # ------------------------------------------------------------------ #
    # Interactive path
    # ------------------------------------------------------------------ #

    def build_authorization_url(self, request: AuthorizationRequest) -> str:
        """Return the authorize URL for *request* (account chooser forced)."""
        params = {
            "client_id": self.client_id,
            "response_type": "code",
            "redirect_uri": request.redirect_uri,
            "scope": _request_scopes(request.scopes),
            "code_challenge": request.code_challenge,
            "code_challenge_method": request.code_challenge_method,
            "prompt": request.prompt,
            "client_info": "1",
        }
        return f"{self.authorize_endpoint}?{urlencode(params)}"

    def exchange_code(
        self,
        code: str,
        code_verifier: str,
        redirect_uri: str,
        scopes: list[str],
    ) -> tuple[TokenRecord, Account]:
        """Redeem an authorization code for tokens.

        Returns:
            The access token record and the signed-in account, both already
            written to the cache.

        Raises:
            MFARequired: If the provider demands additional authentication.
            TokenExchangeFailed: On any other rejection or network failure.
        """
        token_data = self._post(
            self.tenant,
            {
                "client_id": self.client_id,
                "grant_type": "authorization_code",
                "code": code,
                "redirect_uri": redirect_uri,
                "code_verifier": code_verifier,
                "scope": _request_scopes(scopes),
                "client_info": "1",
            },
        )
        account = self._account_from_response(token_data, fallback=None)
        if account is None:
            raise TokenExchangeFailed(
                "Token response did not identify the signed-in account",
                provider_error="missing_account",
            )
        record = self._store(token_data, account, scopes, self.tenant)
        logger.debug("Redeemed authorization code for %s", account.username or account.home_account_id)
        return record, account

    # ------------------------------------------------------------------ #
    # Silent path
    # ------------------------------------------------------------------ #

    def acquire_silent(
        self,
        account: Account,
        scopes: list[str],
        tenant_id: Optional[str] = None,
        force_refresh: bool = False,
    ) -> Optional[TokenRecord]:
        """Return a token without user interaction.

        A cached access token that is not about to expire is returned with
        no network call. Otherwise the cached refresh token is redeemed
        against ``tenant_id``'s authority (default: this client's).

        Returns:
            The token record, or ``None`` when the cache has no refresh
            material for *account*.

        Raises:
            MFARequired: If the provider demands additional authentication.
            TokenExchangeFailed: On any other rejection or network failure.
        """
        tenant = tenant_id or self.tenant
        lookup_tenant = account.tenant_id if tenant.lower() in MULTI_TENANT_AUTHORITIES else tenant

        if not force_refresh:
            cached = self.cache.find_access_token(account.home_account_id, lookup_tenant, scopes)
            if cached is not None and not cached.expires_within(_REFRESH_MARGIN_SECONDS):
                logger.debug("Access token for tenant %s served from cache", lookup_tenant)
                return cached

        refresh_token = self.cache.get_refresh_token(account.home_account_id)
        if refresh_token is None:
            return None

        token_data = self._post(
            tenant,
            {
                "client_id": self.client_id,
                "grant_type": "refresh_token",
                "refresh_token": refresh_token,
                "scope": _request_scopes(scopes),
                "client_info": "1",
            },
        )
        refreshed = self._account_from_response(token_data, fallback=account) or account
        logger.debug("Refreshed access token at authority tenant %s", tenant)
        return self._store(token_data, refreshed, scopes, tenant)

    def acquire_tenant_token(
        self,
        account: Account,
        tenant_id: str,
        scopes: list[str],
        force_refresh: bool = True,
    ) -> TokenRecord:
        """Acquire a token from *tenant_id*'s own authority.

        Raises:
            NoAccount: If the cache holds no refresh material for *account*.
            MFARequired: If the tenant demands additional authentication.
            TokenExchangeFailed: On any other rejection or network failure.
        """
        record = self.acquire_silent(account, scopes, tenant_id=tenant_id, force_refresh=force_refresh)
        if record is None:
            raise NoAccount(
                f"No cached sign-in for {account.username or 'the current account'}; "
                "run 'cloudlogin login' first"
            )
        return record

    # ------------------------------------------------------------------ #
    # Accounts
    # ------------------------------------------------------------------ #

    def get_account(self, home_account_id: str) -> Optional[Account]:
        return self.cache.get_account(home_account_id)

    def get_accounts(self) -> list[Account]:
        return self.cache.get_all_accounts()

    def remove_account(self, account: Account) -> None:
        self.cache.remove_account(account.home_account_id)

    def remove_all_accounts(self) -> None:
        for account in self.get_accounts():
            self.remove_account(account)

    # ------------------------------------------------------------------ #
    # Internals
    # ------------------------------------------------------------------ #

    def _token_endpoint(self, tenant: str) -> str:
        return f"{self.authority_host}/{tenant}/oauth2/v2.0/token"

    def _post(self, tenant: str, data: dict[str, str]) -> dict[str, Any]:
        try:
            response = httpx.post(
                self._token_endpoint(tenant),
                data=data,
                headers={"Accept": "application/json"},
                timeout=self.timeout,
            )
            response.raise_for_status()
            token_data = response.json()
        except httpx.HTTPStatusError as exc:
            raise self._provider_error(tenant, exc.response) from exc
        except httpx.HTTPError as exc:
            raise TokenExchangeFailed(
                f"Token request to {self.authority_host}/{tenant} failed: {exc.__class__.__name__}: {exc}",
                transient=True,
            ) from exc
        except ValueError as exc:
            raise TokenExchangeFailed(
                f"Token endpoint for tenant {tenant} returned a non-JSON response"
            ) from exc

        if not isinstance(token_data, dict) or "access_token" not in token_data:
            raise TokenExchangeFailed("Token response missing 'access_token' field")
        return token_data

    def _provider_error(self, tenant: str, response: httpx.Response) -> TokenExchangeFailed:
        try:
            body = response.json()
        except ValueError:
            body = {}
        if not isinstance(body, dict):
            body = {}

        error = str(body.get("error") or f"http_{response.status_code}")
        description = str(body.get("error_description") or "").strip()
        summary = description.splitlines()[0] if description else ""
        message = f"Token request rejected by {self.authority_host}/{tenant}: {error}"
        if summary:
            message += f" - {summary}"

        if _mfa_required(body):
            return MFARequired(message, provider_error=error)
        return TokenExchangeFailed(message, provider_error=error)

    def _account_from_response(
        self, token_data: dict[str, Any], fallback: Optional[Account]
    ) -> Optional[Account]:
        id_payload: dict[str, Any] = {}
        if isinstance(token_data.get("id_token"), str):
            id_payload = decode_jwt_payload(token_data["id_token"])
        claims = claims_from_payload(id_payload)

        client_info = token_data.get("client_info")
        info = _b64url_json(client_info) if isinstance(client_info, str) else {}
        uid, utid = info.get("uid"), info.get("utid")

        if uid and utid:
            home_account_id, home_tenant = f"{uid}.{utid}", str(utid)
        elif claims.object_id and claims.tenant_id:
            home_account_id, home_tenant = f"{claims.object_id}.{claims.tenant_id}", claims.tenant_id
        elif fallback is not None:
            return fallback
        else:
            return None

        return Account(
            home_account_id=home_account_id,
            tenant_id=home_tenant,
            username=claims.username or (fallback.username if fallback else ""),
            local_account_id=claims.object_id,
            id_token_claims=id_payload or (fallback.id_token_claims if fallback else {}),
        )

    def _store(
        self,
        token_data: dict[str, Any],
        account: Account,
        scopes: list[str],
        authority_tenant: str,
    ) -> TokenRecord:
        access_token = token_data["access_token"]
        claims = parse_claims(access_token)

        if claims.expires_at is not None:
            expires_on = claims.expires_at
        else:
            try:
                expires_in = int(token_data.get("expires_in", _DEFAULT_EXPIRES_IN))
            except (TypeError, ValueError):
                expires_in = _DEFAULT_EXPIRES_IN
            issued = claims.issued_at or datetime.now(timezone.utc)
            expires_on = issued + timedelta(seconds=expires_in)

        if claims.tenant_id:
            tenant_id = claims.tenant_id
        elif authority_tenant.lower() in MULTI_TENANT_AUTHORITIES:
            tenant_id = account.tenant_id
        else:
            tenant_id = authority_tenant

        record = TokenRecord(
            access_token=access_token,
            expires_on=expires_on,
            tenant_id=tenant_id,
            client_id=self.client_id,
            resource=claims.audience or _resource_for(scopes),
            scopes=[s for s in scopes if s.lower() not in RESERVED_SCOPES],
            home_account_id=account.home_account_id,
            token_type=str(token_data.get("token_type") or "Bearer"),
        )

        self.cache.add_account(account)
        if isinstance(token_data.get("refresh_token"), str):
            self.cache.save_refresh_token(account.home_account_id, token_data["refresh_token"])
        self.cache.add_access_token(record)
        return record
