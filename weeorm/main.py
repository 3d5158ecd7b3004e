from __future__ import annotations

import sys

import typer

from weeorm.config import get_settings
from weeorm.errors import DataAccessError
from weeorm.infrastructure.db_factory import open_connection
from weeorm.utils.logging import configure_logging

app = typer.Typer(help="weeorm database administration CLI.")


@app.command()
def info() -> None:
    """
    Show effective connection configuration.
    """
    settings = get_settings()
    if settings.db_driver == "sqlite":
        target = f"sqlite:{settings.db_sqlite_path}"
    else:
        target = (
            f"postgresql://{settings.db_user}:***@{settings.db_host}:"
            f"{settings.db_port}/{settings.db_name}"
        )
    typer.echo(
        f"DB={target} | pool=({settings.db_pool_min_size},{settings.db_pool_max_size}) "
        f"statement_timeout_ms={settings.db_statement_timeout_ms} env={settings.app_env}"
    )


@app.command()
def ping() -> None:
    """
    Open a connection and run SELECT 1.
    """
    settings = get_settings()
    configure_logging(level=settings.log_level, json_logs=settings.log_json)
    try:
        with open_connection(settings) as conn:
            row = conn.fetch_one("SELECT 1 AS ok")
    except DataAccessError as exc:
        typer.echo(f"Database unreachable: {exc}", err=True)
        raise typer.Exit(code=1)
    typer.echo(f"OK ({settings.db_driver}): {row}")


def main() -> None:
    try:
        app()
    except KeyboardInterrupt:
        typer.echo("Cancelled by user.", err=True)
        sys.exit(130)


if __name__ == "__main__":
    main()
