"""Durable token caching for cloudlogin.

This package provides :class:`TokenCache`, the :mod:`diskcache`-backed
store of signed-in accounts, their refresh tokens and the access tokens
issued per tenant. It is written by
:class:`~cloudlogin.auth.token_client.TokenExchangeClient` and lives in the
user cache directory (:func:`~cloudlogin.config.get_cache_dir`).
"""

from cloudlogin.cache.token_cache import TokenCache, scope_key

__all__ = ["TokenCache", "scope_key"]
