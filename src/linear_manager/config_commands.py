"""Configuration commands for linear manager CLI."""

import os

from cyclopts import App

from linear_manager.config import ENV_OVERRIDES, KNOWN_KEYS, get_config, validate_setting

config_app = App(name="config", help="Read and change settings in .linear-manager/config.yaml")

SECRET_KEYS = {"linear.api_key"}


def _display(key: str, value: object) -> str:
    if key in SECRET_KEYS and isinstance(value, str):
        return value[:4] + "..." + value[-4:] if len(value) > 8 else "****"
    return str(value)


def _env_source(key: str) -> str | None:
    variable = ENV_OVERRIDES.get(key)
    if variable and os.environ.get(variable):
        return variable
    return None


@config_app.command
def set(key: str, value: str, global_: bool = False) -> None:
    """Store a setting.

    Args:
        key: Setting name, see `lm config keys`
        value: New value
        global_: Write ~/.linear-manager/config.yaml instead of the local file
    """
    value = validate_setting(key, value)
    get_config(use_global=global_).set(key, value)
    print(f"Set {key} = {_display(key, value)} ({'global' if global_ else 'local'})")
    if key not in KNOWN_KEYS:
        print(f"Note: {key} is not a setting linear-manager reads")
    variable = _env_source(key)
    if variable:
        print(f"Note: ${variable} is set and takes precedence")


@config_app.command
def unset(key: str, global_: bool = False) -> None:
    """Remove a setting.

    Args:
        key: Setting name
        global_: Change the global file instead of the local one
    """
    get_config(use_global=global_).unset(key)
    print(f"Unset {key} ({'global' if global_ else 'local'})")


@config_app.command
def get(key: str, global_: bool = False) -> None:
    """Show the effective value of a setting.

    Args:
        key: Setting name
        global_: Ignore the local file
    """
    value = get_config(use_global=global_).get(key)
    if value is None:
        print(f"{key} is not set")
        return
    variable = _env_source(key)
    suffix = f" (from ${variable})" if variable else ""
    print(f"{key} = {_display(key, value)}{suffix}")


@config_app.command(name="list")
def list_config(global_: bool = False) -> None:
    """List stored settings, local ones overriding global ones.

    Args:
        global_: List the global file only
    """
    config = get_config(use_global=global_)
    settings = config.list()
    for key in ENV_OVERRIDES:
        if _env_source(key):
            settings[key] = config.get(key)
    if not settings:
        print(f"No {'global' if global_ else 'local'} settings")
        return

    for key, value in settings.items():
        variable = _env_source(key)
        suffix = f" (from ${variable})" if variable else ""
        print(f"{key} = {_display(key, value)}{suffix}")


@config_app.command
def keys() -> None:
    """Describe the settings linear-manager reads."""
    width = max(len(key) for key in KNOWN_KEYS)
    for key, description in KNOWN_KEYS.items():
        variable = ENV_OVERRIDES.get(key)
        env = f" (env ${variable})" if variable else ""
        print(f"{key.ljust(width)}  {description}{env}")
