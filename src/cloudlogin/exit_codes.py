"""Numeric process exit codes following `clig.dev <https://clig.dev/>`_ conventions.

Each constant maps to a specific failure category and is referenced by the
corresponding :class:`~cloudlogin.exceptions.CloudLoginError` subclass.
Shell wrappers can inspect the exit code to decide whether retrying
``cloudlogin login`` makes sense without parsing stderr.

Example::

    $ cloudlogin token
    $ echo $?
    7   # EXIT_LOGIN_TIMEOUT -- nobody completed the browser sign-in
"""

EXIT_SUCCESS = 0
"""The command completed successfully."""

EXIT_GENERIC_FAILURE = 1
"""An unclassified error occurred."""

EXIT_INVALID_USAGE = 2
"""The command was invoked with invalid arguments or missing required parameters."""

EXIT_AUTH_FAILURE = 3
"""Authentication failed (denied, token exchange rejected, MFA required, no account)."""

EXIT_NOT_FOUND = 4
"""The requested subscription was not found."""

EXIT_CONNECTION_ERROR = 6
"""A network-level error occurred while talking to the resource manager."""

EXIT_LOGIN_TIMEOUT = 7
"""No authorization callback arrived before the login timer fired."""

EXIT_PORT_CONFLICT = 8
"""The local redirect listener could not bind its port in time."""
