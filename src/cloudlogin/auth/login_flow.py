"""Interactive and silent login for one account name and authority.

:class:`LoginFlow` is the single login-flow abstraction. Without a tenant
it signs in against the configured (usually multi-tenant) authority; with
one, or after :meth:`LoginFlow.rebind`, it is bound to that tenant's
authority. Both cases share the same code path.

The flow owns the "current account" for its account name and keeps the
:class:`~cloudlogin.auth.account_cache.AccountCache` pointer in step with
it. It is not thread-safe on its own:
:class:`~cloudlogin.auth.manager.AccountManager` serialises every call.
"""

from __future__ import annotations

import logging
import sys
import threading
import webbrowser
from typing import Callable, Optional

from cloudlogin.auth.account_cache import AccountCache
from cloudlogin.auth.listener import RedirectListener
from cloudlogin.auth.pkce import new_authorization_request
from cloudlogin.auth.token_client import TokenExchangeClient
from cloudlogin.exceptions import MFARequired, TokenExchangeFailed
from cloudlogin.models import Account, LoginConfig, TokenRecord

logger = logging.getLogger(__name__)

BrowserOpener = Callable[[str], None]


def open_in_browser(url: str) -> None:
    """Open *url* in the default browser on a daemon thread."""
    threading.Thread(target=webbrowser.open, args=(url,), daemon=True).start()


class LoginFlow:
    """Browser login plus silent token acquisition for one account name.

    Args:
        config: Identity-provider and listener settings.
        client: Token client bound to the default authority.
        account_cache: Durable "current account" pointers.
        tenant_id: Bind to this tenant's authority instead of the default.
        open_browser: Called with the authorization URL. Defaults to
            :func:`open_in_browser`.
    """

    def __init__(
        self,
        config: LoginConfig,
        client: TokenExchangeClient,
        account_cache: AccountCache,
        *,
        tenant_id: Optional[str] = None,
        open_browser: BrowserOpener = open_in_browser,
    ) -> None:
        self.config = config
        self.account_cache = account_cache
        self._default_client = client
        self._open_browser = open_browser
        self.tenant_id = tenant_id
        self.client = client.for_tenant(tenant_id) if tenant_id else client
        self.account: Optional[Account] = None

    @property
    def account_name(self) -> str:
        return self.config.account_name

    def rebind(self, tenant_id: Optional[str]) -> None:
        """Point the flow at *tenant_id*'s authority (``None`` = default)."""
        self.tenant_id = tenant_id
        self.client = self._default_client.for_tenant(tenant_id) if tenant_id else self._default_client

    def reload_cache(self) -> Optional[Account]:
        """Restore the current account from the durable caches.

        A missing pointer, or a pointer whose account is gone from the token
        cache, leaves the flow signed out.
        """
        home_account_id = self.account_cache.load(self.account_name)
        if home_account_id is None:
            self.account = None
            return None
        self.account = self.client.get_account(home_account_id)
        if self.account is None:
            logger.debug("Cached account pointer for '%s' has no token cache entry", self.account_name)
        return self.account

    def login(self, scopes: Optional[list[str]] = None) -> TokenRecord:
        """Run the browser flow and return the first access token.

        Raises:
            PortConflict: The redirect listener could not bind in time.
            AuthorizationTimeout: Nobody completed the sign-in in time.
            AuthorizationDenied: The provider redirected with an error.
            TokenExchangeFailed: The code could not be redeemed.
        """
        scopes = scopes or self.config.scopes
        listener = RedirectListener(
            self.config.port,
            account_kind=self.config.account_kind,
            bind_timeout=self.config.bind_timeout,
        )
        with listener:
            request = new_authorization_request(
                listener.redirect_uri, scopes, self.client.authority
            )
            url = self.client.build_authorization_url(request)
            sys.stderr.write(
                f"Sign in to {self.config.account_kind.display_name} in your browser. "
                f"If it does not open, go to:\n{url}\n"
            )
            sys.stderr.flush()
            self._open_browser(url)
            code = listener.wait_for_code(self.config.login_timeout)

        record, account = self.client.exchange_code(
            code, request.code_verifier, request.redirect_uri, scopes
        )
        self.account = account
        self.account_cache.save(self.account_name, account.home_account_id)
        logger.info("Signed in as %s", account.username or account.home_account_id)
        return record

    def logout(self) -> None:
        """Forget the current account and its cached tokens."""
        if self.account is None:
            self.reload_cache()
        if self.account is not None:
            self.client.remove_account(self.account)
        self.account = None
        self.account_cache.save(self.account_name, None)

    def get_token(
        self, scopes: Optional[list[str]] = None, interactive: bool = True
    ) -> Optional[TokenRecord]:
        """Return an access token, re-prompting once when silent refresh fails.

        Args:
            scopes: Scopes to request (default: configured scopes).
            interactive: Allow a browser login when there is no account or
                the silent path fails. When ``False`` the silent failure is
                raised (or ``None`` returned).

        Raises:
            MFARequired: Never answered by an automatic re-login.
        """
        scopes = scopes or self.config.scopes
        if self.account is None:
            self.reload_cache()
        if self.account is None:
            return self.login(scopes) if interactive else None

        try:
            record = self.client.acquire_silent(self.account, scopes)
        except MFARequired:
            raise
        except TokenExchangeFailed as exc:
            if not interactive:
                raise
            logger.warning("Silent sign-in failed, signing in again: %s", exc)
            record = None

        if record is None and interactive:
            self.logout()
            return self.login(scopes)
        return record

    def get_tenant_token(
        self,
        tenant_id: str,
        scopes: Optional[list[str]] = None,
        interactive: bool = True,
    ) -> Optional[TokenRecord]:
        """Return a token issued by *tenant_id*'s authority.

        Returns ``None`` when nobody is signed in. When the tenant refuses
        the cached sign-in for a reason other than MFA and *interactive* is
        set, every cached account is dropped, the flow is rebound to the
        tenant and the user signs in again.
        """
        scopes = scopes or self.config.scopes
        if self.account is None:
            self.reload_cache()
        if self.account is None:
            return None

        try:
            return self.client.acquire_tenant_token(self.account, tenant_id, scopes)
        except MFARequired:
            raise
        except TokenExchangeFailed as exc:
            if not interactive:
                raise
            logger.warning("Tenant %s refused the cached sign-in, signing in again: %s", tenant_id, exc)

        self._default_client.remove_all_accounts()
        self.account = None
        self.rebind(tenant_id)
        return self.login(scopes)
