"""Main CLI application module."""

import typer

from .config_commands import config_app

app = typer.Typer(
    help="IdP bridge administration",
    no_args_is_help=True,
    rich_markup_mode="rich",
)

app.add_typer(config_app, name="config")


@app.command("serve")
def serve(
    host: str | None = typer.Option(None, help="Host to bind; defaults to app.host"),
    port: int | None = typer.Option(None, help="Port to bind; defaults to app.port"),
) -> None:
    """Run the login web app with uvicorn."""
    import uvicorn

    from idp_bridge.api.http.app import create_app
    from idp_bridge.api.utils.app_startup import configure_logging
    from idp_bridge.runtime.context import get_config

    configure_logging()
    app_config = get_config().app
    uvicorn.run(
        create_app(),
        host=host or app_config.host,
        port=port or app_config.port,
        access_log=False,
    )


def main() -> None:
    """Main entry point for the CLI."""
    app()


if __name__ == "__main__":
    main()
