"""Durable token cache backed by :mod:`diskcache`.

Holds everything the token exchange client needs to sign a user back in
without a browser: the :class:`~cloudlogin.models.Account` records, the
refresh token of each account, and the access tokens issued per tenant and
scope set. Entries live under ``<cache_dir>/tokens``.

Key layout::

    account:<home_account_id>                       -> Account (JSON dict)
    refresh:<home_account_id>                       -> {"refresh_token": ...}
    access:<home_account_id>:<tenant_id>:<scopes>   -> TokenRecord (JSON dict)

Access-token entries carry a diskcache ``expire`` equal to the token's
remaining lifetime, so stale tokens drop out on their own. A value that no
longer validates is deleted and reported as a miss.

See Also:
    :class:`~cloudlogin.auth.token_client.TokenExchangeClient` -- the only
    writer of this cache.
"""

from __future__ import annotations

import logging
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Iterable, Optional

import diskcache
from pydantic import BaseModel, ValidationError

from cloudlogin.models import Account, TokenRecord

logger = logging.getLogger(__name__)

# Scopes the provider adds to every request; they never distinguish tokens.
RESERVED_SCOPES = frozenset({"openid", "profile", "offline_access"})


def scope_key(scopes: Iterable[str]) -> str:
    """Normalise a scope set into a stable cache-key segment."""
    return " ".join(sorted({s.lower() for s in scopes if s.lower() not in RESERVED_SCOPES}))


class TokenCache:
    """Disk-backed store of accounts, refresh tokens and access tokens.

    Args:
        cache_dir: Root directory for the cache. A ``tokens/``
            subdirectory is created inside it.

    Example::

        cache = TokenCache(get_cache_dir())
        cache.add_account(account)
        cache.add_access_token(record)
        hit = cache.find_access_token(account.home_account_id, "contoso-tid", scopes)
    """

    def __init__(self, cache_dir: str | Path) -> None:
        self._cache_dir = Path(cache_dir) / "tokens"
        self._cache = diskcache.Cache(str(self._cache_dir))

    @property
    def directory(self) -> Path:
        return self._cache_dir

    # ------------------------------------------------------------------ #
    # Accounts
    # ------------------------------------------------------------------ #

    def add_account(self, account: Account) -> None:
        """Store (or replace) an account record."""
        self._cache.set(f"account:{account.home_account_id}", account.model_dump(mode="json"))

    def get_account(self, home_account_id: str) -> Optional[Account]:
        """Return the cached account, or ``None`` if absent or unreadable."""
        return self._load(f"account:{home_account_id}", Account)

    def get_all_accounts(self) -> list[Account]:
        """Return every readable account in the cache."""
        accounts: list[Account] = []
        for key in list(self._cache.iterkeys()):
            if isinstance(key, str) and key.startswith("account:"):
                account = self._load(key, Account)
                if account is not None:
                    accounts.append(account)
        return accounts

    def remove_account(self, home_account_id: str) -> None:
        """Delete an account together with its refresh and access tokens."""
        prefix = f"access:{home_account_id}:"
        for key in list(self._cache.iterkeys()):
            if isinstance(key, str) and key.startswith(prefix):
                self._cache.delete(key)
        self._cache.delete(f"refresh:{home_account_id}")
        self._cache.delete(f"account:{home_account_id}")

    # ------------------------------------------------------------------ #
    # Refresh tokens
    # ------------------------------------------------------------------ #

    def save_refresh_token(self, home_account_id: str, refresh_token: str) -> None:
        self._cache.set(f"refresh:{home_account_id}", {"refresh_token": refresh_token})

    def get_refresh_token(self, home_account_id: str) -> Optional[str]:
        value = self._cache.get(f"refresh:{home_account_id}")
        if isinstance(value, dict) and isinstance(value.get("refresh_token"), str):
            return value["refresh_token"]
        return None

    # ------------------------------------------------------------------ #
    # Access tokens
    # ------------------------------------------------------------------ #

    def add_access_token(self, record: TokenRecord) -> None:
        """Store *record*, replacing any token for the same tenant and scopes.

        Records without a ``home_account_id`` or that are already expired
        are not cached.
        """
        if record.home_account_id is None:
            return
        expires = record.expires_on
        if expires.tzinfo is None:
            expires = expires.replace(tzinfo=timezone.utc)
        ttl = (expires - datetime.now(timezone.utc)).total_seconds()
        if ttl <= 0:
            return
        key = self._access_key(record.home_account_id, record.tenant_id, record.scopes)
        self._cache.set(key, record.model_dump(mode="json"), expire=ttl)

    def find_access_token(
        self, home_account_id: str, tenant_id: str, scopes: Iterable[str]
    ) -> Optional[TokenRecord]:
        """Return the cached access token for this tenant and scope set, if any."""
        return self._load(self._access_key(home_account_id, tenant_id, scopes), TokenRecord)

    # ------------------------------------------------------------------ #
    # Housekeeping
    # ------------------------------------------------------------------ #

    def clear(self) -> None:
        """Remove all entries from the cache."""
        self._cache.clear()

    def close(self) -> None:
        """Close the underlying :class:`diskcache.Cache` and release resources."""
        self._cache.close()

    def _access_key(self, home_account_id: str, tenant_id: str, scopes: Iterable[str]) -> str:
        return f"access:{home_account_id}:{tenant_id}:{scope_key(scopes)}"

    def _load(self, key: str, model: type[BaseModel]) -> Any:
        value = self._cache.get(key)
        if value is None:
            return None
        try:
            return model.model_validate(value)
        except ValidationError:
            logger.warning("Discarding unreadable token cache entry %s", key.split(":")[0])
            self._cache.delete(key)
            return None
