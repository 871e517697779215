"""Config sub-commands: backend selection, credentials and logging settings."""

import sys

from cyclopts import App

from entity_links.config import KNOWN_KEYS, get_config, mask, validate_setting

config_app = App(name="config", help="Manage backend, credential and logging settings")


def _scope(global_: bool) -> str:
    return "global" if global_ else "local"


@config_app.command
def set(key: str, value: str, global_: bool = False) -> None:
    """Store a setting after checking it is a known key with a usable value.

    Args:
        key: One of backend, local.path, supabase.url, supabase.key, user,
            logging.slow_query_ms, links.warn_uncommon
        value: Setting value
        global_: Write to ~/.entity-links instead of the project directory
    """
    try:
        validate_setting(key, value)
    except ValueError as e:
        print(f"Error: {e}", file=sys.stderr)
        sys.exit(1)
    get_config(use_global=global_).set(key, value)
    print(f"Set {key} = {mask(key, value)} ({_scope(global_)})")


@config_app.command
def unset(key: str, global_: bool = False) -> None:
    """Remove a setting so the next source (global, environment, default) applies."""
    config = get_config(use_global=global_)
    config.unset(key)
    fallback = config.source(key)
    suffix = f", now from {fallback}" if fallback else ""
    print(f"Unset {key} ({_scope(global_)}{suffix})")


@config_app.command
def get(key: str, global_: bool = False) -> None:
    """Show the effective value of a setting and where it comes from."""
    config = get_config(use_global=global_)
    value = config.get(key)
    if value is None:
        print(f"{key} is not set")
        return
    print(f"{key} = {mask(key, value)} ({config.source(key)})")


@config_app.command(name="list")
def list_config(global_: bool = False, all_: bool = False) -> None:
    """List stored settings.

    Args:
        global_: Only the global config file
        all_: Every known key with its effective value, including environment and defaults
    """
    config = get_config(use_global=global_)
    if all_:
        for key in KNOWN_KEYS:
            value = config.get(key)
            shown = "(not set)" if value is None else f"{mask(key, value)} ({config.source(key)})"
            print(f"{key} = {shown}")
        return

    settings = config.list()
    if not settings:
        print(f"No {_scope(global_)} configuration settings")
        return
    for key, value in settings.items():
        print(f"{key} = {mask(key, value)}")
