"""Tests for the login, logout, status and token commands."""

from __future__ import annotations

import json
from unittest.mock import MagicMock

import pytest

from cloudlogin import __version__
from cloudlogin.app import app
from cloudlogin.auth.manager import AccountManager
from cloudlogin.exceptions import AuthorizationTimeout, MFARequired, PortConflict
from cloudlogin.exit_codes import EXIT_AUTH_FAILURE, EXIT_LOGIN_TIMEOUT, EXIT_PORT_CONFLICT
from cloudlogin.models import LoginState, LoginStatus, SubscriptionSelection


@pytest.fixture()
def manager() -> MagicMock:
    mock = MagicMock(spec=AccountManager)
    mock.username = "alice@contoso.com"
    mock.tenant_id = "home-tid"
    mock.home_tenant_id = "home-tid"
    mock.selection = None
    mock.get_token.return_value = "eyJ0eXAi.token.sig"
    mock.get_selected_subscription.return_value = None
    return mock


def _invoke(cli_runner, manager, args):
    return cli_runner.invoke(app, args, obj={"manager": manager})


class TestVersion:
    def test_version(self, cli_runner) -> None:
        result = cli_runner.invoke(app, ["--version"])
        assert result.exit_code == 0
        assert __version__ in result.output


class TestLogin:
    def test_login_default_authority(self, cli_runner, manager) -> None:
        result = _invoke(cli_runner, manager, ["login"])
        assert result.exit_code == 0, result.output
        manager.get_token.assert_called_once_with()
        manager.switch_tenant.assert_not_called()
        assert "Signed in as alice@contoso.com" in result.output
        assert "subscription list" in result.output

    def test_login_to_tenant(self, cli_runner, manager) -> None:
        manager.get_selected_subscription.return_value = SubscriptionSelection(
            subscription_id="sub-1", tenant_id="tenant-b"
        )
        result = _invoke(cli_runner, manager, ["login", "--tenant", "tenant-b"])
        assert result.exit_code == 0, result.output
        manager.switch_tenant.assert_called_once_with("tenant-b")
        assert "subscription list" not in result.output

    @pytest.mark.parametrize(
        ("error", "code"),
        [
            (AuthorizationTimeout("No authorization callback received within 300 seconds"), EXIT_LOGIN_TIMEOUT),
            (PortConflict("Cannot listen on 127.0.0.1:8400"), EXIT_PORT_CONFLICT),
            (MFARequired("AADSTS50076"), EXIT_AUTH_FAILURE),
        ],
    )
    def test_login_failures_map_to_exit_codes(self, cli_runner, manager, error, code) -> None:
        manager.get_token.side_effect = error
        result = _invoke(cli_runner, manager, ["login"])
        assert result.exit_code == code
        assert str(error) in result.output


class TestLogout:
    def test_logout(self, cli_runner, manager) -> None:
        result = _invoke(cli_runner, manager, ["logout"])
        assert result.exit_code == 0
        manager.sign_out.assert_called_once_with()
        assert "Signed out." in result.output


class TestStatus:
    def test_signed_in_json(self, cli_runner, manager) -> None:
        manager.get_status.return_value = LoginStatus(
            status=LoginState.SIGNED_IN, token="tok", account_info={"tid": "tenant-b"}
        )
        manager.selection = SubscriptionSelection(
            subscription_id="sub-1", subscription_name="Dev", tenant_id="tenant-b"
        )

        result = _invoke(cli_runner, manager, ["-q", "--json", "status"])

        assert result.exit_code == 0, result.output
        data = json.loads(result.output)
        assert data == {
            "status": "SignedIn",
            "username": "alice@contoso.com",
            "tenantId": "tenant-b",
            "homeTenantId": "home-tid",
            "subscription": {
                "subscriptionId": "sub-1",
                "subscriptionName": "Dev",
                "tenantId": "tenant-b",
            },
        }
        manager.get_token.assert_not_called()

    def test_signed_out(self, cli_runner, manager) -> None:
        manager.get_status.return_value = LoginStatus(status=LoginState.SIGNED_OUT)
        result = _invoke(cli_runner, manager, ["--plain", "status"])
        assert result.exit_code == 0
        assert "status\tSignedOut" in result.output
        assert "Not signed in." in result.output


class TestToken:
    def test_prints_token(self, cli_runner, manager) -> None:
        result = _invoke(cli_runner, manager, ["-q", "token"])
        assert result.exit_code == 0
        assert result.output.strip() == "eyJ0eXAi.token.sig"
        manager.get_token.assert_called_once_with(None, scopes=None)

    def test_tenant_and_scopes(self, cli_runner, manager) -> None:
        result = _invoke(
            cli_runner,
            manager,
            ["token", "--tenant", "tenant-b", "-s", "https://graph.microsoft.com/.default"],
        )
        assert result.exit_code == 0
        manager.get_token.assert_called_once_with(
            "tenant-b", scopes=["https://graph.microsoft.com/.default"]
        )

    def test_no_token(self, cli_runner, manager) -> None:
        manager.get_token.return_value = None
        result = _invoke(cli_runner, manager, ["token"])
        assert result.exit_code == EXIT_AUTH_FAILURE
        assert "No token available." in result.output
