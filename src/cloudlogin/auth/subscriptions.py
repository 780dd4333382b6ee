"""Resource manager client for tenant and subscription enumeration.

Lists the tenants an account can reach and the subscriptions visible under
a tenant-scoped token, following ``nextLink`` pagination. Failures raise
:class:`~cloudlogin.exceptions.ResourceManagerError`.
"""

from __future__ import annotations

import logging
from typing import Any, Optional

import httpx
from pydantic import ValidationError

from cloudlogin.exceptions import ResourceManagerError
from cloudlogin.models import SubscriptionInfo, TenantInfo

logger = logging.getLogger(__name__)

API_VERSION = "2020-01-01"


class SubscriptionClient:
    """Thin client over ``GET /tenants`` and ``GET /subscriptions``.

    Args:
        base_url: Resource manager endpoint.
        timeout: HTTP timeout in seconds.
    """

    def __init__(self, base_url: str = "https://management.azure.com", timeout: float = 30.0) -> None:
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout

    def list_tenants(self, token: str) -> list[TenantInfo]:
        """Return the tenants reachable with *token*, in provider order."""
        tenants: list[TenantInfo] = []
        for item in self._get_all("/tenants", token):
            try:
                tenants.append(TenantInfo.model_validate(item))
            except ValidationError:
                logger.debug("Skipping malformed tenant entry")
        return tenants

    def list_subscriptions(self, token: str, tenant_id: Optional[str] = None) -> list[SubscriptionInfo]:
        """Return the subscriptions visible to a tenant-scoped *token*.

        Entries missing a ``tenantId`` inherit *tenant_id*.
        """
        subscriptions: list[SubscriptionInfo] = []
        for item in self._get_all("/subscriptions", token):
            try:
                subscriptions.append(
                    SubscriptionInfo(
                        subscription_id=item["subscriptionId"],
                        subscription_name=item.get("displayName") or "",
                        tenant_id=item.get("tenantId") or tenant_id or "",
                    )
                )
            except (KeyError, TypeError, ValidationError):
                logger.debug("Skipping malformed subscription entry")
        return subscriptions

    def _get_all(self, path: str, token: str) -> list[dict[str, Any]]:
        url: Optional[str] = f"{self.base_url}{path}"
        params: Optional[dict[str, str]] = {"api-version": API_VERSION}
        items: list[dict[str, Any]] = []
        while url:
            page = self._get(url, token, params)
            value = page.get("value")
            if isinstance(value, list):
                items.extend(v for v in value if isinstance(v, dict))
            url = page.get("nextLink") or None
            # nextLink already carries the api-version
            params = None
        return items

    def _get(self, url: str, token: str, params: Optional[dict[str, str]]) -> dict[str, Any]:
        try:
            response = httpx.get(
                url,
                params=params,
                headers={"Authorization": f"Bearer {token}", "Accept": "application/json"},
                timeout=self.timeout,
            )
            response.raise_for_status()
            data = response.json()
        except httpx.HTTPStatusError as exc:
            raise ResourceManagerError(
                f"Resource manager request to {url} failed with status "
                f"{exc.response.status_code}"
            ) from exc
        except httpx.HTTPError as exc:
            raise ResourceManagerError(f"Resource manager request failed: {exc}") from exc
        except ValueError as exc:
            raise ResourceManagerError("Resource manager returned a non-JSON response") from exc
        if not isinstance(data, dict):
            raise ResourceManagerError("Resource manager returned an unexpected payload")
        return data
