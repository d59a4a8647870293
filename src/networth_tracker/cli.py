"""Click-based CLI for networth-tracker.

Thin wrapper around library modules. Zero business logic: every operation
delegates to storage, rates, or networth modules.
"""

from __future__ import annotations

import asyncio
import json
import logging
import os

import click
from rich.console import Console
from rich.logging import RichHandler
from rich.table import Table

console = Console(stderr=True)


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _run_async(coro):
    """Run an async coroutine from synchronous Click code."""
    return asyncio.run(coro)


def _load_config(ctx: click.Context):
    """Load config lazily, caching on first call."""
    if "config" not in ctx.obj:
        from networth_tracker.core import load_config

        ctx.obj["config"] = load_config(config_path=ctx.obj.get("config_path"))
    return ctx.obj["config"]


async def _create_store_async(config):
    """Create and initialize storage from config."""
    from networth_tracker.storage import create_store

    return await create_store(config.storage)


def _configure_logging(verbose: bool) -> None:
    logging.basicConfig(
        level=logging.INFO if verbose else logging.WARNING,
        format="%(message)s",
        datefmt="[%X]",
        handlers=[RichHandler(console=console, show_path=False)],
        force=True,
    )


def _fail(exc: Exception) -> None:
    console.print(f"[red]{type(exc).__name__}: {exc}[/red]")
    raise SystemExit(1)


# ---------------------------------------------------------------------------
# CLI group
# ---------------------------------------------------------------------------


@click.group()
@click.option(
    "--config",
    "-c",
    type=click.Path(exists=True),
    envvar="NETWORTH_CONFIG",
    default=None,
    help="Path to networth.yml config file.",
)
@click.option(
    "--verbose",
    "-v",
    is_flag=True,
    default=False,
    help="Enable verbose output.",
)
@click.version_option(package_name="networth-tracker")
@click.pass_context
def cli(ctx: click.Context, config: str | None, verbose: bool) -> None:
    """Net Worth Tracker: multi-currency net worth with monthly FX sync."""
    ctx.ensure_object(dict)
    ctx.obj["config_path"] = config
    ctx.obj["verbose"] = verbose
    ctx.obj["console"] = console
    _configure_logging(verbose)


# ---------------------------------------------------------------------------
# init
# ---------------------------------------------------------------------------


@cli.command()
@click.option("--name", "-n", type=str, default="Me", help="Display name.")
@click.option(
    "--home-currency",
    "-h",
    type=str,
    required=True,
    help="Reporting currency, e.g. NZD.",
)
@click.pass_context
def init(ctx: click.Context, name: str, home_currency: str) -> None:
    """Create or update user settings."""
    config = _load_config(ctx)

    async def _run():
        store = await _create_store_async(config)
        try:
            settings = await store.upsert_settings(name=name, home_currency=home_currency)
        finally:
            await store.close()
        console.print(
            f"[green]✓[/green] Home currency set to "
            f"[bold]{settings.home_currency}[/bold]"
        )

    try:
        _run_async(_run())
    except Exception as exc:
        _fail(exc)


# ---------------------------------------------------------------------------
# sync
# ---------------------------------------------------------------------------


@cli.command()
@click.pass_context
def sync(ctx: click.Context) -> None:
    """Fetch exchange rates and store one closing rate per month."""
    config = _load_config(ctx)

    async def _run():
        from networth_tracker.rates import RateSyncService, build_providers

        store = await _create_store_async(config)
        try:
            service = RateSyncService(store, build_providers(config))
            with console.status("Syncing exchange rates..."):
                return await service.run()
        finally:
            await store.close()

    try:
        reports = _run_async(_run())
    except Exception as exc:
        _fail(exc)

    if not reports:
        console.print("[yellow]Nothing to sync.[/yellow]")
        return

    for report in reports:
        console.print(
            f"[green]✓[/green] {report.provider}: {report.upserted} upserted, "
            f"{report.skipped_finalized} finalized"
            + (f" ({report.failed} failed)" if report.failed else "")
        )


# ---------------------------------------------------------------------------
# net-worth
# ---------------------------------------------------------------------------


@cli.command("net-worth")
@click.option("--latest", is_flag=True, default=False, help="Show only the latest month.")
@click.option("--json", "as_json", is_flag=True, default=False, help="Output JSON.")
@click.pass_context
def net_worth(ctx: click.Context, latest: bool, as_json: bool) -> None:
    """Show the monthly net worth series in the home currency."""
    config = _load_config(ctx)

    async def _run():
        from networth_tracker.networth import NetWorthService

        store = await _create_store_async(config)
        try:
            service = NetWorthService(store)
            if latest:
                point = await service.latest()
                return [point] if point else []
            return await service.history()
        finally:
            await store.close()

    try:
        points = _run_async(_run())
    except Exception as exc:
        _fail(exc)

    if as_json:
        click.echo(json.dumps([p.model_dump() for p in points], indent=2))
        return

    if not points:
        console.print("[yellow]No net worth data yet.[/yellow]")
        return

    table = Table(title=f"Net Worth ({points[0].currency})")
    table.add_column("Month", style="bold")
    table.add_column("Assets", justify="right")
    table.add_column("Liabilities", justify="right")
    table.add_column("Net Worth", justify="right")
    for p in points:
        table.add_row(
            f"{p.year}-{p.month:02d}",
            f"{p.total_assets:,.2f}",
            f"{p.total_liabilities:,.2f}",
            f"{p.net_worth:,.2f}",
        )
    Console().print(table)


# ---------------------------------------------------------------------------
# rates
# ---------------------------------------------------------------------------


@cli.command()
@click.option("--year", "-y", type=int, default=None, help="Only rates for this year.")
@click.pass_context
def rates(ctx: click.Context, year: int | None) -> None:
    """List stored monthly exchange rates."""
    config = _load_config(ctx)

    async def _run():
        from networth_tracker.rates import is_finalized

        store = await _create_store_async(config)
        try:
            stored = await store.list_rates(year=year)
        finally:
            await store.close()
        return [(r, is_finalized(r, r.year, r.month)) for r in stored]

    try:
        rows = _run_async(_run())
    except Exception as exc:
        _fail(exc)

    if not rows:
        console.print("[yellow]No rates stored.[/yellow]")
        return

    table = Table(title="Currency Rates")
    table.add_column("Month", style="bold")
    table.add_column("Pair")
    table.add_column("Rate", justify="right")
    table.add_column("Provider")
    table.add_column("Final", justify="center")
    for r, final in rows:
        table.add_row(
            f"{r.year}-{r.month:02d}",
            f"{r.from_currency}→{r.to_currency}",
            f"{r.rate:.6f}",
            r.provider,
            "✓" if final else "",
        )
    Console().print(table)


# ---------------------------------------------------------------------------
# serve
# ---------------------------------------------------------------------------


@cli.command()
@click.option("--host", type=str, default=None, help="Bind address (default from config).")
@click.option("--port", type=int, default=None, help="Port (default from config).")
@click.option("--reload", is_flag=True, default=False, help="Auto-reload on code changes.")
@click.pass_context
def serve(ctx: click.Context, host: str | None, port: int | None, reload: bool) -> None:
    """Start the REST API server."""
    import uvicorn

    config = _load_config(ctx)
    host = host or config.api.host
    port = port or config.api.port

    # the app factory runs in uvicorn and reloads config from the environment
    if ctx.obj.get("config_path"):
        os.environ["NETWORTH_CONFIG"] = ctx.obj["config_path"]

    console.print(f"Starting networth-tracker API on [bold]{host}:{port}[/bold]")
    console.print(f"API docs: http://{host}:{port}/docs")

    uvicorn.run(
        "networth_tracker.api.app:create_app",
        factory=True,
        host=host,
        port=port,
        reload=reload,
    )


# ---------------------------------------------------------------------------
# Entry point
# ---------------------------------------------------------------------------


def main() -> None:
    """Main entry point for the CLI."""
    cli()


if __name__ == "__main__":
    main()
