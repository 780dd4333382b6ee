"""Process-wide, per-tenant memory of issued access tokens.

Downstream SDKs that want a "credential object" rather than a raw token
get a :class:`TenantCredential`, which reads through the one
:class:`TenantTokenCache` handle held for its tenant. Handles are created
lazily and live for the lifetime of the :class:`TenantTokenMemory` (one per
:class:`~cloudlogin.auth.manager.AccountManager`).

Only the account manager writes here, inside its mutex; credentials only
read.
"""

from __future__ import annotations

import threading
from typing import Callable, Optional

from cloudlogin.models import TokenRecord


class TenantTokenCache:
    """Token records for a single tenant, keyed by resource."""

    def __init__(self, tenant_id: str) -> None:
        self.tenant_id = tenant_id
        self._lock = threading.Lock()
        self._records: dict[str, TokenRecord] = {}

    def put(self, record: TokenRecord) -> None:
        """Store *record*, superseding any record for the same resource."""
        with self._lock:
            self._records[record.resource or ""] = record

    def get(self, resource: Optional[str] = None) -> Optional[TokenRecord]:
        """Return the record for *resource* (or the newest one when ``None``)."""
        with self._lock:
            if resource is not None:
                return self._records.get(resource)
            if not self._records:
                return None
            return max(self._records.values(), key=lambda r: r.expires_on)

    def clear(self) -> None:
        with self._lock:
            self._records.clear()

    def __len__(self) -> int:
        with self._lock:
            return len(self._records)


class TenantTokenMemory:
    """Maps tenant id to exactly one :class:`TenantTokenCache` handle."""

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._handles: dict[str, TenantTokenCache] = {}

    def handle(self, tenant_id: str) -> TenantTokenCache:
        """Return the handle for *tenant_id*, creating it on first use."""
        with self._lock:
            handle = self._handles.get(tenant_id)
            if handle is None:
                handle = TenantTokenCache(tenant_id)
                self._handles[tenant_id] = handle
            return handle

    def remember(self, record: TokenRecord) -> TenantTokenCache:
        """File *record* under its tenant and return that tenant's handle."""
        handle = self.handle(record.tenant_id)
        handle.put(record)
        return handle

    def lookup(self, tenant_id: str, resource: Optional[str] = None) -> Optional[TokenRecord]:
        with self._lock:
            handle = self._handles.get(tenant_id)
        return handle.get(resource) if handle is not None else None

    def forget_all(self) -> None:
        """Drop every remembered record. Handles themselves are kept."""
        with self._lock:
            handles = list(self._handles.values())
        for handle in handles:
            handle.clear()


class TenantCredential:
    """Legacy-style credential bound to one tenant.

    Args:
        client_id: Public client id that issued the tokens.
        tenant_id: Tenant the credential is scoped to.
        username: Signed-in user (for display).
        handle: The tenant's :class:`TenantTokenCache`.
        resource: Resource whose token to return (``None`` = newest).
        renew: Optional callback invoked when the remembered token is
            missing or expired; it must refresh the handle.
    """

    def __init__(
        self,
        client_id: str,
        tenant_id: str,
        username: str,
        handle: TenantTokenCache,
        resource: Optional[str] = None,
        renew: Optional[Callable[[], None]] = None,
    ) -> None:
        self.client_id = client_id
        self.tenant_id = tenant_id
        self.username = username
        self._handle = handle
        self._resource = resource
        self._renew = renew

    def get_token(self) -> Optional[TokenRecord]:
        record = self._handle.get(self._resource)
        if (record is None or record.is_expired) and self._renew is not None:
            self._renew()
            record = self._handle.get(self._resource)
        return record

    def authorization_header(self) -> dict[str, str]:
        """Return ``{"Authorization": "Bearer ..."}`` or ``{}`` when no token is held."""
        record = self.get_token()
        if record is None:
            return {}
        return {"Authorization": f"{record.token_type} {record.access_token}"}

    def __repr__(self) -> str:
        return f"TenantCredential(tenant_id={self.tenant_id!r}, username={self.username!r})"
