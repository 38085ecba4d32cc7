"""Mini README: Entry point CLI for the levy treasury.

This script exposes a Typer CLI that starts the FastAPI service (with the
daily levy scheduler) and offers operator shortcuts for inspecting and
changing the levy configuration, running a manual pass and reading the
treasury balance. Settings come from ``LEVY_*`` environment variables.
"""

from __future__ import annotations

import typer
import uvicorn

from levytreasury.configuration import get_settings
from levytreasury.desk import build_desk
from levytreasury.exceptions import InvalidRangeError
from levytreasury.logging_utils import configure_root_logger

cli = typer.Typer(help="Run and operate the levy treasury.")


@cli.command()
def run(
    host: str = typer.Option(None, help="Host interface to bind."),
    port: int = typer.Option(None, help="Port to listen on."),
    production: bool = typer.Option(
        False, help="Use production server settings (disable auto-reload)."
    ),
) -> None:
    """Start the FastAPI application and the daily scheduler using uvicorn."""

    settings = get_settings()
    effective_host = host or settings.interface_host
    effective_port = port or settings.interface_port
    configure_root_logger()

    browser_host = "127.0.0.1" if effective_host in {"0.0.0.0", "::"} else effective_host
    typer.echo(
        f"Starting levy treasury on {effective_host}:{effective_port}.\n"
        f"API docs at http://{browser_host}:{effective_port}/docs"
    )
    uvicorn.run(
        "levytreasury.interface.web_app:create_application",
        host=effective_host,
        port=effective_port,
        factory=True,
        reload=not production,
    )


@cli.command("show-config")
def show_config() -> None:
    """Print the current rate, threshold and last assessed day."""

    desk = build_desk(get_settings())
    try:
        config = desk.config_snapshot()
        typer.echo(
            f"Rate: {config.rate * 100:.2f}%\n"
            f"Threshold: {config.threshold}\n"
            f"Last assessed: {config.last_assessed_day or 'never'}"
        )
    finally:
        desk.close()


@cli.command("set-rate")
def set_rate(rate: float = typer.Argument(..., help="Rate between 0 and 1, e.g. 0.1 for 10%.")) -> None:
    """Set the global levy rate."""

    desk = build_desk(get_settings())
    try:
        config = desk.set_rate(rate)
    except InvalidRangeError as error:
        typer.echo(str(error), err=True)
        raise typer.Exit(code=1) from error
    finally:
        desk.close()
    typer.echo(f"Rate set to {config.rate * 100:.2f}%")


@cli.command("set-threshold")
def set_threshold(threshold: int = typer.Argument(..., help="Minimum balance that is levied.")) -> None:
    """Set the levy threshold."""

    desk = build_desk(get_settings())
    try:
        config = desk.set_threshold(threshold)
    except InvalidRangeError as error:
        typer.echo(str(error), err=True)
        raise typer.Exit(code=1) from error
    finally:
        desk.close()
    typer.echo(f"Threshold set to {config.threshold}")


@cli.command("assess-all")
def assess_all(
    group_id: int = typer.Argument(..., help="Group whose members are assessed."),
    actor_id: int = typer.Option(0, help="Operator id recorded on the ledger."),
) -> None:
    """Run a manual levy pass over one group (ignores the daily marker)."""

    desk = build_desk(get_settings())
    try:
        summary = desk.assess_all(group_id, actor_id=actor_id)
        typer.echo(
            f"Pass complete: collected from {summary.count} members, "
            f"{summary.total_collected} {desk.currency_name} in total"
        )
    finally:
        desk.close()


@cli.command()
def treasury() -> None:
    """Print the treasury balance folded from the ledger."""

    desk = build_desk(get_settings())
    try:
        typer.echo(f"Treasury balance: {desk.treasury_balance()} {desk.currency_name}")
    finally:
        desk.close()


if __name__ == "__main__":
    cli()
