"""Tests for the persistent current-account pointer."""

from __future__ import annotations

import json
import stat
from pathlib import Path

import pytest

from cloudlogin.auth.account_cache import AccountCache


@pytest.fixture()
def cache(tmp_path: Path) -> AccountCache:
    return AccountCache(tmp_path / "accounts")


class TestAccountCache:
    def test_missing_file_is_no_account(self, cache: AccountCache) -> None:
        assert cache.load("azure") is None

    def test_save_and_load(self, cache: AccountCache) -> None:
        cache.save("azure", "oid-1.home-tid")
        assert cache.load("azure") == "oid-1.home-tid"
        data = json.loads(cache.path_for("azure").read_text(encoding="utf-8"))
        assert data == {"homeAccountId": "oid-1.home-tid"}

    def test_file_is_private(self, cache: AccountCache) -> None:
        cache.save("azure", "oid-1.home-tid")
        assert stat.S_IMODE(cache.path_for("azure").stat().st_mode) == 0o600

    def test_account_names_are_independent(self, cache: AccountCache) -> None:
        cache.save("azure", "a.t")
        cache.save("m365", "b.t")
        assert cache.load("azure") == "a.t"
        assert cache.load("m365") == "b.t"

    def test_save_none_deletes(self, cache: AccountCache) -> None:
        cache.save("azure", "a.t")
        cache.save("azure", None)
        assert not cache.path_for("azure").exists()
        assert cache.load("azure") is None
        # Deleting an absent pointer is fine.
        cache.save("azure", None)

    @pytest.mark.parametrize("content", ["{corrupt", "[]", '{"homeAccountId": 5}', '{"homeAccountId": ""}'])
    def test_unreadable_file_is_no_account(self, cache: AccountCache, content: str) -> None:
        path = cache.path_for("azure")
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_text(content, encoding="utf-8")
        assert cache.load("azure") is None

    def test_invalid_name_rejected(self, cache: AccountCache) -> None:
        with pytest.raises(ValueError, match="Invalid account name"):
            cache.path_for("../escape")

    def test_default_directory(self, isolated_config: Path) -> None:
        cache = AccountCache()
        assert cache.directory == isolated_config / "data" / "cloudlogin" / "accounts"
