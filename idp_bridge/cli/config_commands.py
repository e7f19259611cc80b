"""IdP settings management CLI commands."""

from typing import Any

import typer
from rich.console import Console
from rich.table import Table

from idp_bridge.core.exceptions import ConfigurationError
from idp_bridge.core.services import ConfigurationService
from idp_bridge.core.services.configuration_service import DEFAULTS, SECRET_KEYS
from idp_bridge.runtime.context import get_config

console = Console()

config_app = typer.Typer(help="Inspect and edit the identity provider settings")

_TRUE_VALUES = {"1", "true", "yes", "on"}


def get_configuration_service() -> ConfigurationService:
    return ConfigurationService.from_config(get_config().idp)


def mask_secret(value: Any) -> str:
    """`"abcdef123456"` -> `"abcd********"`."""
    if not value:
        return ""
    text = str(value)
    return text[:4] + "*" * max(len(text) - 4, 4)


def _display(key: str, value: Any) -> str:
    if key in SECRET_KEYS:
        return mask_secret(value)
    if value is None:
        return ""
    return str(value)


def coerce_value(key: str, raw: str) -> Any:
    """Turn a command-line string into the type the setting expects.

    Raises:
        typer.BadParameter: If `key` is not a known setting
    """
    if key not in DEFAULTS:
        raise typer.BadParameter(f"Unknown setting '{key}'")
    default = DEFAULTS[key]
    if isinstance(default, bool):
        return raw.strip().lower() in _TRUE_VALUES
    if isinstance(default, list):
        return [part.strip() for part in raw.split(",") if part.strip()]
    # Mapping text is entered with literal "\n" between rules
    if key in ("role_mapping", "claim_mapping"):
        return raw.replace("\\n", "\n")
    return raw


@config_app.command("show")
def show_config() -> None:
    """Show every IdP setting with secrets masked."""
    service = get_configuration_service()
    values = service.get_all()

    table = Table(title=f"IdP settings (version {service.version})")
    table.add_column("Key", style="cyan")
    table.add_column("Value", style="green")
    table.add_column("Default", style="magenta")

    for key in DEFAULTS:
        value = values.get(key)
        table.add_row(
            key,
            _display(key, value if value is not None else DEFAULTS[key]),
            "" if value is not None else "✅",
        )

    console.print(table)


@config_app.command("get")
def get_value(key: str = typer.Argument(..., help="Setting name, e.g. domain")) -> None:
    """Print a single resolved setting."""
    if key not in DEFAULTS:
        console.print(f"[red]❌ Unknown setting '{key}'[/red]")
        raise typer.Exit(code=1)
    console.print(_display(key, get_configuration_service().get(key)))


@config_app.command("set")
def set_value(
    key: str = typer.Argument(..., help="Setting name, e.g. sync_role_mapping"),
    value: str = typer.Argument(..., help="New value; lists are comma separated"),
) -> None:
    """Store a setting. Environment overrides still take precedence."""
    coerced = coerce_value(key, value)
    service = get_configuration_service()
    service.set(key, coerced)
    console.print(f"[green]✅ {key} = {_display(key, coerced)} (version {service.version})[/green]")


@config_app.command("check")
def check_config() -> None:
    """Verify the settings are complete enough to log users in."""
    service = get_configuration_service()
    try:
        settings = service.settings(require_complete=True)
    except ConfigurationError as e:
        console.print(f"[red]❌ {e}[/red]")
        raise typer.Exit(code=1) from e

    console.print(f"[green]✅ Issuer: {settings.issuer}[/green]")
    console.print(f"   Scopes: {' '.join(settings.request_scopes)}")
    console.print(f"   Callback: {service.redirect_uri(get_config().app.base_url)}")
    console.print(
        f"   Role rules: {len(settings.role_mapping)}, claim rules: {len(settings.claim_mapping)}"
    )
