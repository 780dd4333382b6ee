"""Exception hierarchy for cloudlogin.

All exceptions inherit from :class:`CloudLoginError`, which carries an
``exit_code`` attribute mapped to a constant from
:mod:`cloudlogin.exit_codes` and the name of the ``component`` that
failed. The top-level error handler in :func:`cloudlogin.app.main` catches
``CloudLoginError`` and exits with the appropriate code, while unexpected
exceptions produce a crash log and exit with :data:`EXIT_GENERIC_FAILURE`.

Messages never contain code verifiers, access tokens or refresh tokens.

Subclass hierarchy::

    CloudLoginError (exit 1)
    +-- InvalidUsageError      (exit 2)
    +-- ConfigError            (exit 1)
    +-- AuthorizationTimeout   (exit 7)
    +-- PortConflict           (exit 8)
    +-- AuthorizationDenied    (exit 3)
    +-- TokenExchangeFailed    (exit 3)
    |   +-- MFARequired        (exit 3)
    +-- NoAccount              (exit 3)
    +-- SubscriptionNotFound   (exit 4)
    +-- NoSubscriptionFound    (exit 4)
    +-- ResourceManagerError   (exit 6)
"""

from __future__ import annotations

from typing import Optional

from cloudlogin.exit_codes import (
    EXIT_AUTH_FAILURE,
    EXIT_CONNECTION_ERROR,
    EXIT_GENERIC_FAILURE,
    EXIT_INVALID_USAGE,
    EXIT_LOGIN_TIMEOUT,
    EXIT_NOT_FOUND,
    EXIT_PORT_CONFLICT,
)


class CloudLoginError(Exception):
    """Base exception for all cloudlogin errors.

    Every subclass sets a class-level ``exit_code`` corresponding to one of
    the constants in :mod:`cloudlogin.exit_codes`. The entry point catches
    this exception type and calls ``sys.exit(exc.exit_code)``.

    Args:
        message: Human-readable error description printed to stderr.
        exit_code: Optional override for the class-level exit code.
        component: Name of the subsystem that raised the error
            (``"listener"``, ``"token"``, ``"subscription"``...).
    """

    exit_code: int = EXIT_GENERIC_FAILURE
    component: str = "login"

    def __init__(
        self,
        message: str,
        exit_code: int | None = None,
        component: str | None = None,
    ):
        super().__init__(message)
        if exit_code is not None:
            self.exit_code = exit_code
        if component is not None:
            self.component = component


class InvalidUsageError(CloudLoginError):
    """Raised for invalid CLI arguments or missing required parameters."""

    exit_code = EXIT_INVALID_USAGE


class ConfigError(CloudLoginError):
    """Raised for configuration problems (invalid JSON, bad values)."""

    exit_code = EXIT_GENERIC_FAILURE
    component = "config"


class AuthorizationTimeout(CloudLoginError):
    """Raised when no authorization callback arrives before the login timer fires.

    Terminal for the current ``login()`` call; the caller may retry.
    """

    exit_code = EXIT_LOGIN_TIMEOUT
    component = "listener"


class PortConflict(CloudLoginError):
    """Raised when the redirect listener cannot start listening in time."""

    exit_code = EXIT_PORT_CONFLICT
    component = "listener"


class AuthorizationDenied(CloudLoginError):
    """Raised when the provider redirects back with an error or without a code."""

    exit_code = EXIT_AUTH_FAILURE
    component = "listener"


class TokenExchangeFailed(CloudLoginError):
    """Raised when the token endpoint rejects a code or refresh request.

    Args:
        message: Description including the provider's error text.
        provider_error: The provider's ``error`` field, if any
            (e.g. ``"invalid_grant"``).
        transient: ``True`` when the failure was network-level rather
            than a provider rejection.
    """

    exit_code = EXIT_AUTH_FAILURE
    component = "token"

    def __init__(
        self,
        message: str,
        provider_error: Optional[str] = None,
        transient: bool = False,
        component: str | None = None,
    ):
        super().__init__(message, component=component)
        self.provider_error = provider_error
        self.transient = transient


class MFARequired(TokenExchangeFailed):
    """Raised when the provider demands multi-factor or conditional-access interaction.

    Recoverable when enumerating tenants (the tenant is skipped), fatal
    for a single tenant-token request.
    """


class NoAccount(CloudLoginError):
    """Raised when an operation needs a signed-in account and none is available."""

    exit_code = EXIT_AUTH_FAILURE


class SubscriptionNotFound(CloudLoginError):
    """Raised when a subscription id is not among the enumerated subscriptions."""

    exit_code = EXIT_NOT_FOUND
    component = "subscription"


class NoSubscriptionFound(CloudLoginError):
    """Raised when a selection is required but the account sees no subscriptions."""

    exit_code = EXIT_NOT_FOUND
    component = "subscription"


class ResourceManagerError(CloudLoginError):
    """Raised when the resource manager cannot list tenants or subscriptions."""

    exit_code = EXIT_CONNECTION_ERROR
    component = "subscription"
