"""Tests for the subscription and config command groups."""

from __future__ import annotations

import json
from pathlib import Path
from unittest.mock import MagicMock

import pytest

from cloudlogin.app import app
from cloudlogin.auth.manager import AccountManager
from cloudlogin.commands import prompt_for_subscription
from cloudlogin.exceptions import NoSubscriptionFound, SubscriptionNotFound
from cloudlogin.exit_codes import EXIT_INVALID_USAGE, EXIT_NOT_FOUND
from cloudlogin.models import SubscriptionInfo, SubscriptionSelection


def _sub(sub_id: str, name: str = "", tenant: str = "t1") -> SubscriptionInfo:
    return SubscriptionInfo(subscription_id=sub_id, subscription_name=name, tenant_id=tenant)


@pytest.fixture()
def manager() -> MagicMock:
    mock = MagicMock(spec=AccountManager)
    mock.selection = None
    mock.list_subscriptions.return_value = [_sub("sub-1", "Dev"), _sub("sub-2", "Prod", "t2")]
    return mock


def _invoke(cli_runner, manager, args, **kwargs):
    return cli_runner.invoke(app, args, obj={"manager": manager}, **kwargs)


class TestSubscriptionList:
    def test_json_table_marks_selection(self, cli_runner, manager) -> None:
        manager.selection = SubscriptionSelection(subscription_id="sub-2", tenant_id="t2")
        result = _invoke(cli_runner, manager, ["-q", "--json", "subscription", "list"])
        assert result.exit_code == 0, result.output
        rows = json.loads(result.output)
        assert rows == [
            {"Selected": "", "Subscription ID": "sub-1", "Name": "Dev", "Tenant ID": "t1"},
            {"Selected": "*", "Subscription ID": "sub-2", "Name": "Prod", "Tenant ID": "t2"},
        ]

    def test_empty(self, cli_runner, manager) -> None:
        manager.list_subscriptions.return_value = []
        result = _invoke(cli_runner, manager, ["subscription", "list"])
        assert result.exit_code == 0
        assert "No subscriptions found." in result.output


class TestSubscriptionSet:
    def test_set(self, cli_runner, manager) -> None:
        manager.set_subscription.return_value = SubscriptionSelection(
            subscription_id="sub-1", subscription_name="Dev", tenant_id="t1"
        )
        result = _invoke(cli_runner, manager, ["subscription", "set", "sub-1"])
        assert result.exit_code == 0
        manager.set_subscription.assert_called_once_with("sub-1")
        assert "Selected subscription 'Dev'" in result.output

    def test_unknown_id(self, cli_runner, manager) -> None:
        manager.set_subscription.side_effect = SubscriptionNotFound(
            "Subscription 'nope' is not available to the signed-in account"
        )
        result = _invoke(cli_runner, manager, ["subscription", "set", "nope"])
        assert result.exit_code == EXIT_NOT_FOUND
        assert "is not available" in result.output

    def test_blank_id(self, cli_runner, manager) -> None:
        result = _invoke(cli_runner, manager, ["subscription", "set", "  "])
        assert result.exit_code == EXIT_INVALID_USAGE
        manager.set_subscription.assert_not_called()


class TestSubscriptionShow:
    def test_show_selection(self, cli_runner, manager) -> None:
        manager.get_selected_subscription.return_value = SubscriptionSelection(
            subscription_id="sub-1", subscription_name="Dev", tenant_id="t1"
        )
        result = _invoke(cli_runner, manager, ["-q", "--json", "subscription", "show"])
        assert result.exit_code == 0
        assert json.loads(result.output) == {
            "subscriptionId": "sub-1",
            "subscriptionName": "Dev",
            "tenantId": "t1",
        }
        manager.get_selected_subscription.assert_called_once_with(prompt_if_missing=False)

    def test_nothing_selected(self, cli_runner, manager) -> None:
        manager.get_selected_subscription.return_value = None
        result = _invoke(cli_runner, manager, ["subscription", "show"])
        assert result.exit_code == EXIT_NOT_FOUND

    def test_prompt_with_no_subscriptions(self, cli_runner, manager) -> None:
        manager.get_selected_subscription.side_effect = NoSubscriptionFound(
            "No subscription was found for the signed-in account"
        )
        result = _invoke(cli_runner, manager, ["subscription", "show", "--prompt"])
        assert result.exit_code == EXIT_NOT_FOUND
        manager.get_selected_subscription.assert_called_once_with(prompt_if_missing=True)


class TestSubscriptionClear:
    def test_clears_selection(self, cli_runner, manager) -> None:
        manager.clear_subscription.return_value = True
        result = _invoke(cli_runner, manager, ["subscription", "clear"])
        assert result.exit_code == 0
        manager.clear_subscription.assert_called_once_with()
        assert "Subscription selection cleared." in result.output

    def test_nothing_to_clear(self, cli_runner, manager) -> None:
        manager.clear_subscription.return_value = False
        result = _invoke(cli_runner, manager, ["subscription", "clear"])
        assert result.exit_code == 0
        assert "No subscription selected." in result.output


class TestPromptForSubscription:
    def test_reprompts_until_valid(self, monkeypatch, quiet_output) -> None:
        answers = iter([0, 5, 2])
        monkeypatch.setattr("cloudlogin.commands.typer.prompt", lambda *a, **kw: next(answers))
        chosen = prompt_for_subscription([_sub("sub-1", "Dev"), _sub("sub-2", "Prod")])
        assert chosen == "sub-2"


class TestConfigShow:
    def test_shows_effective_config(self, cli_runner, isolated_config: Path) -> None:
        result = cli_runner.invoke(app, ["-q", "--json", "--tenant", "contoso.onmicrosoft.com", "config", "show"])
        assert result.exit_code == 0, result.output
        data = json.loads(result.output)
        assert data["login"]["tenant"] == "contoso.onmicrosoft.com"
        assert data["output"]["format"] == "auto"


class TestConfigSet:
    def test_sets_string_and_int(self, cli_runner, isolated_config: Path) -> None:
        from cloudlogin.config import load_global_config

        result = cli_runner.invoke(app, ["config", "set", "login.tenant", "contoso.onmicrosoft.com"])
        assert result.exit_code == 0, result.output
        assert "Set login.tenant = contoso.onmicrosoft.com" in result.output

        result = cli_runner.invoke(app, ["config", "set", "login.port", "8400"])
        assert result.exit_code == 0, result.output

        login = load_global_config().login
        assert login.tenant == "contoso.onmicrosoft.com"
        assert login.port == 8400

    def test_list_value_is_comma_separated(self, cli_runner, isolated_config: Path) -> None:
        from cloudlogin.config import load_global_config

        result = cli_runner.invoke(
            app, ["config", "set", "login.scopes", "https://graph.microsoft.com/.default, offline_access"]
        )
        assert result.exit_code == 0, result.output
        assert load_global_config().login.scopes == [
            "https://graph.microsoft.com/.default",
            "offline_access",
        ]

    @pytest.mark.parametrize(
        "args",
        [
            ["login.nope", "x"],
            ["nope.tenant", "x"],
            ["login", "x"],
            ["login.port", "not-a-number"],
            ["login.port", "70000"],
        ],
    )
    def test_rejects_bad_input(self, cli_runner, isolated_config: Path, args: list[str]) -> None:
        from cloudlogin.config import get_config_dir

        result = cli_runner.invoke(app, ["config", "set", *args])
        assert result.exit_code == EXIT_INVALID_USAGE
        assert not (get_config_dir() / "config.json").exists()
