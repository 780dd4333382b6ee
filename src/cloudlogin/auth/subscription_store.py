"""Persisted subscription selection for a project.

The selection lives in ``<project>/.cloudlogin/subscriptionInfo.json``::

    {
        "subscriptionId": "...",
        "subscriptionName": "...",
        "tenantId": "..."
    }

Older projects kept the choice in ``.cloudlogin/env.default.json`` under
``solution.subscriptionId`` / ``solution.tenantId``; when the selection file
is missing that legacy value is migrated into it on first read.

Missing, empty or corrupt files read as "no selection"; they never raise.
"""

from __future__ import annotations

import json
import logging
from pathlib import Path
from typing import Any, Optional

from pydantic import ValidationError

from cloudlogin.config import atomic_write, get_project_config_dir
from cloudlogin.models import SubscriptionInfo, SubscriptionSelection

logger = logging.getLogger(__name__)

SUBSCRIPTION_FILE = "subscriptionInfo.json"
LEGACY_ENV_FILE = "env.default.json"


def _read_json(path: Path) -> Optional[Any]:
    if not path.is_file():
        return None
    try:
        text = path.read_text(encoding="utf-8")
        return json.loads(text) if text.strip() else None
    except (json.JSONDecodeError, ValueError, OSError):
        logger.warning("Ignoring unreadable file %s", path)
        return None


class SubscriptionStore:
    """Reads and writes the project's subscription selection.

    Args:
        project_dir: Project root. Defaults to the current directory.
    """

    def __init__(self, project_dir: Optional[Path] = None) -> None:
        self._config_dir = get_project_config_dir(project_dir)

    @property
    def path(self) -> Path:
        return self._config_dir / SUBSCRIPTION_FILE

    @property
    def legacy_path(self) -> Path:
        return self._config_dir / LEGACY_ENV_FILE

    def load(self) -> Optional[SubscriptionSelection]:
        """Return the persisted selection, migrating the legacy file if needed."""
        if not self.path.is_file():
            legacy = self._load_legacy()
            if legacy is not None:
                logger.info("Migrating subscription selection from %s", self.legacy_path.name)
                self.save(legacy)
            return legacy

        data = _read_json(self.path)
        if not isinstance(data, dict):
            return None
        try:
            return SubscriptionSelection.model_validate(data)
        except ValidationError:
            logger.warning("Ignoring invalid subscription selection in %s", self.path)
            return None

    def save(self, selection: SubscriptionInfo) -> SubscriptionSelection:
        """Persist *selection* (camelCase keys, 4-space indent)."""
        stored = SubscriptionSelection.model_validate(selection.model_dump())
        text = json.dumps(stored.model_dump(by_alias=True), indent=4)
        atomic_write(self.path, text)
        return stored

    def clear(self) -> None:
        self.path.unlink(missing_ok=True)

    def _load_legacy(self) -> Optional[SubscriptionSelection]:
        data = _read_json(self.legacy_path)
        if not isinstance(data, dict):
            return None
        solution = data.get("solution")
        if not isinstance(solution, dict) or not solution.get("subscriptionId"):
            return None
        return SubscriptionSelection(
            subscription_id=str(solution["subscriptionId"]),
            subscription_name="",
            tenant_id=str(solution.get("tenantId") or ""),
        )
