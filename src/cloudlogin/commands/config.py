"""Config commands -- inspect and modify the configuration.

Provides the ``cloudlogin config`` sub-command group. Settings live in the
global config file and may be overridden by ``./cloudlogin.json``,
``CLOUDLOGIN_*`` environment variables and CLI flags.
"""

from __future__ import annotations

from typing import Any

import typer
from pydantic import ValidationError

from cloudlogin.commands import handle_errors
from cloudlogin.exceptions import InvalidUsageError
from cloudlogin.output import info, print_object, success


config_app = typer.Typer(no_args_is_help=True)


@config_app.command("show")
def config_show(ctx: typer.Context) -> None:
    """Show the effective configuration after all overrides.

    Example::

        cloudlogin config show
        cloudlogin --tenant contoso.onmicrosoft.com config show --json
    """
    from cloudlogin.config import get_cache_dir, get_config_dir, get_data_dir, resolve_config

    with handle_errors():
        obj = ctx.ensure_object(dict)
        config = resolve_config(cli_tenant=obj.get("tenant"))
        info(f"Config directory: {get_config_dir()}")
        info(f"Cache directory: {get_cache_dir()}")
        info(f"Data directory: {get_data_dir()}")
        print_object(config.model_dump(mode="json"))


@config_app.command("set")
def config_set(
    key: str = typer.Argument(help="Config key (dot notation, e.g., 'login.tenant')."),
    value: str = typer.Argument(help="Value to set."),
) -> None:
    """Set a value in the global configuration file.

    The value is coerced to the type of the existing field and the result
    is validated before it is saved. List fields take a comma-separated
    value.

    Example::

        cloudlogin config set login.tenant contoso.onmicrosoft.com
        cloudlogin config set login.port 8400
        cloudlogin config set output.format json
    """
    from cloudlogin.config import load_global_config, save_global_config
    from cloudlogin.models import GlobalConfig

    with handle_errors():
        data = load_global_config().model_dump(mode="json")

        keys = key.split(".")
        target = data
        for k in keys[:-1]:
            if not isinstance(target.get(k), dict):
                raise InvalidUsageError(f"Invalid config key: {key}")
            target = target[k]

        final_key = keys[-1]
        if final_key not in target or isinstance(target[final_key], dict):
            raise InvalidUsageError(f"Unknown config key: {key}")

        target[final_key] = _coerce(key, target[final_key], value)

        try:
            new_config = GlobalConfig.model_validate(data)
        except ValidationError as exc:
            raise InvalidUsageError(f"Invalid value for {key}: {exc.errors()[0]['msg']}") from None

        save_global_config(new_config)
        success(f"Set {key} = {target[final_key]}")


def _coerce(key: str, current: Any, value: str) -> Any:
    """Convert *value* to the type of the field's *current* value."""
    if isinstance(current, bool):
        return value.lower() in ("true", "1", "yes")
    if isinstance(current, list):
        return [item.strip() for item in value.split(",") if item.strip()]
    if isinstance(current, (int, float)):
        try:
            return type(current)(value)
        except ValueError:
            raise InvalidUsageError(
                f"Expected {type(current).__name__} for {key}, got: {value}"
            ) from None
    return value
