"""Persistent "current account" pointer per logical account name.

Stores the home account id of the signed-in account in
``~/.local/share/cloudlogin/accounts/<account_name>.json`` (XDG) or the
platform-equivalent directory, so a new process can reload the session
from the token cache without prompting. Files are written atomically with
``0o600`` permissions.

Account names (``azure``, ``m365``) are independent slots. A missing or
unreadable file simply means "no account"; it never raises.

See Also:
    :class:`~cloudlogin.auth.login_flow.LoginFlow` -- reads the pointer on
    start-up and clears it on sign-out.
"""

from __future__ import annotations

import json
import logging
import re
from pathlib import Path
from typing import Optional

from cloudlogin.config import atomic_write, get_data_dir

logger = logging.getLogger(__name__)

_SAFE_NAME = re.compile(r"^[A-Za-z0-9_.-]+$")


class AccountCache:
    """Read/write the current home account id for each account name.

    Args:
        directory: Where the per-account files live. Defaults to
            ``<data_dir>/accounts``.

    Example::

        cache = AccountCache()
        cache.save("azure", "oid.tid")
        assert cache.load("azure") == "oid.tid"
        cache.save("azure", None)  # sign-out
    """

    def __init__(self, directory: Optional[Path] = None) -> None:
        self._directory = directory if directory is not None else get_data_dir() / "accounts"

    @property
    def directory(self) -> Path:
        return self._directory

    def path_for(self, account_name: str) -> Path:
        """The file backing *account_name*."""
        if not _SAFE_NAME.match(account_name):
            raise ValueError(f"Invalid account name: {account_name!r}")
        return self._directory / f"{account_name}.json"

    def load(self, account_name: str) -> Optional[str]:
        """Return the cached home account id, or ``None`` if absent or corrupt."""
        path = self.path_for(account_name)
        if not path.is_file():
            return None
        try:
            data = json.loads(path.read_text(encoding="utf-8"))
        except (json.JSONDecodeError, ValueError, OSError):
            logger.warning("Ignoring unreadable account cache %s", path)
            return None
        home_account_id = data.get("homeAccountId") if isinstance(data, dict) else None
        if not isinstance(home_account_id, str) or not home_account_id:
            return None
        return home_account_id

    def save(self, account_name: str, home_account_id: Optional[str]) -> None:
        """Persist the pointer, or delete it when *home_account_id* is ``None``.

        The deletion completes before this method returns, so a sign-out
        that reports success is already durable.
        """
        path = self.path_for(account_name)
        if home_account_id is None:
            path.unlink(missing_ok=True)
            return
        text = json.dumps({"homeAccountId": home_account_id}, indent=2) + "\n"
        atomic_write(path, text, mode=0o600)
