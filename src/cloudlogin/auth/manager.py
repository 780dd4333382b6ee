"""Account manager -- the stateful façade of the login subsystem.

:class:`AccountManager` decides between the silent, interactive and
tenant-switch paths, serialises every mutation of account state behind one
re-entrant mutex, and exposes subscription enumeration and selection.

State machine::

    SignedOut --get_token()--> Authenticating --ok--> SignedIn(default)
    Authenticating --timeout/deny/error--> SignedOut
    SignedIn(*) --switch_tenant(T)--> Authenticating --ok--> SignedIn(T)
    SignedIn(*) --get_token(T), T refuses--> Authenticating --ok--> SignedIn(T)
    SignedIn(*) --sign_out()--> SignedOut

A silent-refresh failure other than MFA goes back through Authenticating
(one browser prompt) instead of failing the caller. ``MFARequired`` is
fatal for a single tenant-token request but only skips the tenant while
enumerating subscriptions.

For most use cases, call :func:`create_default_manager`.

See Also:
    :class:`~cloudlogin.auth.login_flow.LoginFlow` -- the login mechanics.
    :class:`~cloudlogin.auth.base.TokenProvider` -- the consumer contract.
"""

from __future__ import annotations

import logging
import threading
from pathlib import Path
from typing import Callable, Optional

from cloudlogin.auth.account_cache import AccountCache
from cloudlogin.auth.base import SubscriptionProvider, TokenProvider
from cloudlogin.auth.claims import parse_claims
from cloudlogin.auth.login_flow import BrowserOpener, LoginFlow, open_in_browser
from cloudlogin.auth.subscription_store import SubscriptionStore
from cloudlogin.auth.subscriptions import SubscriptionClient
from cloudlogin.auth.tenant_memory import TenantCredential, TenantTokenMemory
from cloudlogin.auth.token_client import MULTI_TENANT_AUTHORITIES, TokenExchangeClient
from cloudlogin.cache.token_cache import TokenCache
from cloudlogin.exceptions import (
    CloudLoginError,
    InvalidUsageError,
    MFARequired,
    NoAccount,
    NoSubscriptionFound,
    SubscriptionNotFound,
)
from cloudlogin.models import (
    LoginConfig,
    LoginState,
    LoginStatus,
    SubscriptionInfo,
    SubscriptionSelection,
    TenantInfo,
    TokenClaims,
    TokenRecord,
)

logger = logging.getLogger(__name__)

StatusListener = Callable[[LoginState, Optional[str], Optional[TokenClaims]], None]
SubscriptionChooser = Callable[[list[SubscriptionInfo]], str]


class AccountManager(TokenProvider, SubscriptionProvider):
    """Owns the current account, its tokens and the subscription selection.

    One instance per process (or per test). Every public method takes the
    same :class:`threading.RLock`, so ten threads calling :meth:`get_token`
    with nobody signed in produce exactly one browser login and all
    receive its token.

    Args:
        config: Identity-provider settings.
        flow: Login mechanics for the configured account name.
        subscriptions: Resource manager client.
        store: Persisted subscription selection.
        tenant_memory: Per-tenant token memory (a fresh one by default).
        chooser: Picks a subscription id when several are visible and the
            caller allowed prompting.

    Example::

        manager = create_default_manager()
        token = manager.get_token()
        for sub in manager.list_subscriptions():
            print(sub.subscription_id, sub.subscription_name)
    """

    def __init__(
        self,
        config: LoginConfig,
        flow: LoginFlow,
        subscriptions: SubscriptionClient,
        store: SubscriptionStore,
        *,
        tenant_memory: Optional[TenantTokenMemory] = None,
        chooser: Optional[SubscriptionChooser] = None,
    ) -> None:
        self.config = config
        self._flow = flow
        self._subscriptions = subscriptions
        self._store = store
        self._memory = tenant_memory if tenant_memory is not None else TenantTokenMemory()
        self._chooser = chooser

        self._lock = threading.RLock()
        self._state = LoginState.SIGNED_OUT
        self._configured_tenant = (
            None if config.tenant.lower() in MULTI_TENANT_AUTHORITIES else config.tenant
        )
        self._bound_tenant = self._configured_tenant
        self._token: Optional[TokenRecord] = None
        self._claims: Optional[TokenClaims] = None
        self._selection: Optional[SubscriptionSelection] = None
        self._selection_loaded = False
        self._last_listing: Optional[list[SubscriptionInfo]] = None
        self._listeners: dict[str, StatusListener] = {}

    # ------------------------------------------------------------------ #
    # Read-only state
    # ------------------------------------------------------------------ #

    @property
    def state(self) -> LoginState:
        with self._lock:
            return self._state

    @property
    def tenant_memory(self) -> TenantTokenMemory:
        return self._memory

    @property
    def tenant_id(self) -> Optional[str]:
        """Current tenant: an explicit binding, else the selection's, else the token's."""
        with self._lock:
            if self._bound_tenant:
                return self._bound_tenant
            selection = self._load_selection()
            if selection is not None and selection.tenant_id:
                return selection.tenant_id
            return self._token.tenant_id if self._token is not None else None

    @property
    def selection(self) -> Optional[SubscriptionSelection]:
        """The persisted selection, without listing or prompting."""
        with self._lock:
            return self._load_selection()

    @property
    def home_tenant_id(self) -> Optional[str]:
        with self._lock:
            account = self._flow.account
            return account.tenant_id if account is not None else None

    @property
    def username(self) -> Optional[str]:
        with self._lock:
            account = self._flow.account
            return account.username or None if account is not None else None

    # ------------------------------------------------------------------ #
    # Tokens
    # ------------------------------------------------------------------ #

    def get_token(
        self, tenant_id: Optional[str] = None, *, scopes: Optional[list[str]] = None
    ) -> Optional[str]:
        """Return an access token, signing in interactively when needed.

        Without *tenant_id* the default-authority path is used (the bound
        tenant after :meth:`switch_tenant`). With one, a token is issued by
        that tenant's authority; if the tenant refuses the cached sign-in
        for a reason other than MFA the user is prompted once and the
        manager stays bound to that tenant afterwards.

        Raises:
            MFARequired: The tenant demands multi-factor authentication.
            AuthorizationTimeout, PortConflict, AuthorizationDenied,
            TokenExchangeFailed: The interactive login failed.
        """
        with self._lock:
            if tenant_id is None or tenant_id == self._bound_tenant:
                record = self._acquire(lambda: self._flow.get_token(scopes))
                return record.access_token if record is not None else None

            def tenant_token() -> Optional[TokenRecord]:
                record = self._flow.get_tenant_token(tenant_id, scopes)
                if record is None:
                    # Nobody signed in yet: sign in first, then ask the tenant.
                    self._on_token(self._flow.get_token(scopes), current=True)
                    record = self._flow.get_tenant_token(tenant_id, scopes)
                return record

            flow_tenant = self._flow.tenant_id
            rebound = False
            try:
                record = self._acquire(tenant_token, current=False)
            finally:
                if self._flow.tenant_id != flow_tenant:
                    # The tenant refused the cached sign-in: every account was
                    # dropped and the flow signed in again at its authority.
                    rebound = True
                    self._bound_tenant = self._flow.tenant_id
                    self._last_listing = None
                    self._memory.forget_all()
            if rebound and record is not None:
                logger.info("Now bound to tenant %s", tenant_id)
                self._on_token(record, current=True, force_notify=True)
            return record.access_token if record is not None else None

    def switch_tenant(
        self, tenant_id: Optional[str], *, scopes: Optional[list[str]] = None
    ) -> Optional[str]:
        """Log out, rebind to *tenant_id*'s authority and sign in there.

        The cached sign-in is never reused: the switch always opens the
        browser. ``None`` returns to the configured default authority.
        """
        with self._lock:
            logger.debug("Switching tenant to %s", tenant_id or "default")
            self._bound_tenant = tenant_id
            self._last_listing = None

            def attempt() -> Optional[TokenRecord]:
                self._flow.logout()
                self._memory.forget_all()
                self._flow.rebind(tenant_id)
                return self._flow.login(scopes)

            record = self._acquire(attempt, transition=True)
            return record.access_token if record is not None else None

    def get_credential(
        self, tenant_id: Optional[str] = None, *, scopes: Optional[list[str]] = None
    ) -> TenantCredential:
        """Return a tenant-bound credential for downstream SDKs.

        Raises:
            NoAccount: If no token could be obtained.
        """
        with self._lock:
            token = self.get_token(tenant_id, scopes=scopes)
            if token is None:
                raise NoAccount("Not signed in; run 'cloudlogin login' first")
            tenant = tenant_id or (self._token.tenant_id if self._token else None)
            if tenant is None:
                raise NoAccount("Cannot determine the tenant of the current token")
            handle = self._memory.handle(tenant)
            record = handle.get()

            def renew() -> None:
                self.get_token(tenant_id, scopes=scopes)

            return TenantCredential(
                self.config.client_id,
                tenant,
                self.username or "",
                handle,
                resource=record.resource if record is not None else None,
                renew=renew,
            )

    def get_json_object(self) -> Optional[TokenClaims]:
        """Return the claims of the current token, signing in if needed."""
        with self._lock:
            if self._token is None or self._token.expires_within(0):
                self.get_token()
            return self._claims

    def get_status(self) -> LoginStatus:
        """Return the login state, attempting only a silent sign-in."""
        with self._lock:
            if self._token is None or self._token.is_expired:
                try:
                    record = self._flow.get_token(interactive=False)
                except CloudLoginError as exc:
                    logger.debug("Silent sign-in for status failed: %s", exc)
                    record = None
                if record is not None:
                    self._on_token(record)
                elif self._state == LoginState.SIGNED_IN:
                    self._reset(LoginState.SIGNED_OUT)

            if self._state != LoginState.SIGNED_IN or self._token is None:
                return LoginStatus(status=self._state)
            return LoginStatus(
                status=LoginState.SIGNED_IN,
                token=self._token.access_token,
                account_info=self._claims.raw if self._claims is not None else None,
            )

    def sign_out(self) -> bool:
        """Forget the current account. Idempotent; the selection file is kept."""
        with self._lock:
            self._flow.logout()
            self._flow.rebind(self._configured_tenant)
            self._bound_tenant = self._configured_tenant
            self._memory.forget_all()
            self._last_listing = None
            self._reset(LoginState.SIGNED_OUT)
            self._notify(LoginState.SIGNED_OUT, None, None)
            logger.info("Signed out")
            return True

    # ------------------------------------------------------------------ #
    # Subscriptions
    # ------------------------------------------------------------------ #

    def list_subscriptions(self) -> list[SubscriptionInfo]:
        """Enumerate subscriptions across every reachable tenant.

        Tenants are visited in provider order. A tenant that demands MFA is
        reported once and skipped; any other per-tenant failure is logged
        and skipped. Only when the manager is bound to one tenant is the
        enumeration limited to it.

        Raises:
            NoAccount: If nobody is signed in and no login happened.
            ResourceManagerError: If the tenant list itself is unavailable.
        """
        with self._lock:
            token = self.get_token()
            if token is None:
                raise NoAccount("Not signed in; run 'cloudlogin login' first")

            if self._bound_tenant:
                tenants = [TenantInfo(tenant_id=self._bound_tenant)]
            else:
                tenants = self._subscriptions.list_tenants(token)

            result: list[SubscriptionInfo] = []
            for tenant in tenants:
                try:
                    record = self._flow.get_tenant_token(tenant.tenant_id, interactive=False)
                except MFARequired:
                    logger.warning(
                        "Skipping tenant %s: it requires multi-factor authentication. "
                        "Run 'cloudlogin login --tenant %s' to include it.",
                        tenant.tenant_id,
                        tenant.tenant_id,
                    )
                    continue
                except CloudLoginError as exc:
                    logger.warning("Skipping tenant %s: %s", tenant.tenant_id, exc)
                    continue
                if record is None:
                    continue
                self._memory.remember(record)
                try:
                    result.extend(
                        self._subscriptions.list_subscriptions(record.access_token, tenant.tenant_id)
                    )
                except CloudLoginError as exc:
                    logger.warning("Skipping tenant %s: %s", tenant.tenant_id, exc)

            self._last_listing = result
            logger.debug("Found %d subscription(s) in %d tenant(s)", len(result), len(tenants))
            return list(result)

    def set_subscription(self, subscription_id: str) -> SubscriptionSelection:
        """Select *subscription_id* from the last listing and persist it.

        Lists subscriptions first when nothing has been listed yet.

        Raises:
            SubscriptionNotFound: If the id is not in the listing.
        """
        with self._lock:
            listing = self._last_listing
            if listing is None:
                listing = self.list_subscriptions()
            match = next((s for s in listing if s.subscription_id == subscription_id), None)
            if match is None:
                raise SubscriptionNotFound(
                    f"Subscription '{subscription_id}' is not available to the signed-in account"
                )
            self._selection = self._store.save(match)
            self._selection_loaded = True
            logger.info(
                "Selected subscription %s (%s) in tenant %s",
                match.subscription_name or match.subscription_id,
                match.subscription_id,
                match.tenant_id,
            )
            return self._selection

    def clear_subscription(self) -> bool:
        """Forget the persisted selection. Returns whether one existed."""
        with self._lock:
            existed = self._load_selection() is not None
            self._store.clear()
            self._selection = None
            self._selection_loaded = True
            return existed

    def get_selected_subscription(
        self, prompt_if_missing: bool = False
    ) -> Optional[SubscriptionSelection]:
        """Return the selection, auto-selecting or prompting when allowed.

        * A persisted selection is returned as is.
        * With exactly one visible subscription it is selected automatically.
        * With several, the chooser is asked only if *prompt_if_missing*.
        * Without *prompt_if_missing*, nobody is signed in silently, or
          several subscriptions are visible, ``None`` is returned.

        Raises:
            NoSubscriptionFound: Prompting was allowed but the account sees
                no subscription.
            InvalidUsageError: Prompting was allowed, several subscriptions
                are visible, and no chooser is configured.
        """
        with self._lock:
            selection = self._load_selection()
            if selection is not None:
                return selection

            if not prompt_if_missing:
                if self.get_status().status != LoginState.SIGNED_IN:
                    return None
                listing = self.list_subscriptions()
                if len(listing) == 1:
                    return self.set_subscription(listing[0].subscription_id)
                return None

            listing = self.list_subscriptions()
            if not listing:
                raise NoSubscriptionFound(
                    "No subscription was found for the signed-in account"
                )
            if len(listing) == 1:
                return self.set_subscription(listing[0].subscription_id)
            if self._chooser is None:
                raise InvalidUsageError(
                    "Several subscriptions are available; "
                    "choose one with 'cloudlogin subscription set <id>'"
                )
            return self.set_subscription(self._chooser(listing))

    # ------------------------------------------------------------------ #
    # Status listeners
    # ------------------------------------------------------------------ #

    def add_status_listener(self, name: str, listener: StatusListener) -> None:
        """Register *listener* under *name*, replacing any previous one."""
        with self._lock:
            self._listeners[name] = listener

    def remove_status_listener(self, name: str) -> bool:
        with self._lock:
            return self._listeners.pop(name, None) is not None

    # ------------------------------------------------------------------ #
    # Internals
    # ------------------------------------------------------------------ #

    def _acquire(
        self,
        attempt: Callable[[], Optional[TokenRecord]],
        *,
        current: bool = True,
        transition: bool = False,
    ) -> Optional[TokenRecord]:
        previous = self._state
        if transition or previous != LoginState.SIGNED_IN:
            self._state = LoginState.AUTHENTICATING
        try:
            record = attempt()
        except BaseException:
            if self._flow.account is None:
                self._reset(LoginState.SIGNED_OUT)
            else:
                self._state = previous if previous != LoginState.AUTHENTICATING else LoginState.SIGNED_OUT
            raise

        if record is None:
            if self._state == LoginState.AUTHENTICATING:
                self._reset(LoginState.SIGNED_OUT)
            return None
        self._on_token(record, current=current, force_notify=transition)
        return record

    def _on_token(
        self,
        record: Optional[TokenRecord],
        current: bool = True,
        force_notify: bool = False,
    ) -> None:
        if record is None:
            return
        self._memory.remember(record)
        if not current and self._token is not None:
            return

        changed = (
            self._token is None
            or self._token.home_account_id != record.home_account_id
            or self._state != LoginState.SIGNED_IN
        )
        self._token = record
        self._claims = parse_claims(record.access_token)
        self._state = LoginState.SIGNED_IN
        if changed or force_notify:
            self._notify(LoginState.SIGNED_IN, record.access_token, self._claims)

    def _reset(self, state: LoginState) -> None:
        self._state = state
        self._token = None
        self._claims = None

    def _notify(
        self, state: LoginState, token: Optional[str], claims: Optional[TokenClaims]
    ) -> None:
        for name, listener in list(self._listeners.items()):
            try:
                listener(state, token, claims)
            except Exception as exc:
                logger.warning("Status listener '%s' failed: %s", name, exc)

    def _load_selection(self) -> Optional[SubscriptionSelection]:
        if not self._selection_loaded:
            self._selection = self._store.load()
            self._selection_loaded = True
        return self._selection


def create_default_manager(
    config: Optional[LoginConfig] = None,
    project_dir: Optional[Path] = None,
    *,
    open_browser: BrowserOpener = open_in_browser,
    chooser: Optional[SubscriptionChooser] = None,
) -> AccountManager:
    """Create an :class:`AccountManager` wired to the user's directories.

    - token cache in :func:`~cloudlogin.config.get_cache_dir`
    - account pointers in :func:`~cloudlogin.config.get_data_dir`
    - subscription selection in ``<project_dir>/.cloudlogin``

    Args:
        config: Login settings. Defaults to the resolved configuration.
        project_dir: Project root for the selection file (default: cwd).
        open_browser: Browser opener used by interactive logins.
        chooser: Subscription chooser for prompting.
    """
    from cloudlogin.config import get_cache_dir, resolve_config

    if config is None:
        config = resolve_config().login

    client = TokenExchangeClient(
        config.client_id,
        TokenCache(get_cache_dir()),
        authority_host=config.authority_host,
        tenant=config.tenant,
        timeout=config.http_timeout,
    )
    flow = LoginFlow(config, client, AccountCache(), open_browser=open_browser)
    return AccountManager(
        config,
        flow,
        SubscriptionClient(config.resource_manager_url, timeout=config.http_timeout),
        SubscriptionStore(project_dir),
        chooser=chooser,
    )
