"""CLI entry point for promise-lab."""

from __future__ import annotations

import click

from .core.errors import PromiseLabError


@click.group()
def main() -> None:
    """Deferred values and async/await, demonstrated."""


@main.command()
def scenarios() -> None:
    """List the available scenarios."""
    from .scenarios import SCENARIOS

    for index, scenario in enumerate(SCENARIOS.values(), start=1):
        click.echo(f"#{index}  {scenario.name:<28} {scenario.description}")


@main.command()
@click.argument("names", nargs=-1)
@click.option("--config", default=None, help="Config file path")
@click.option("--sleep-ms", default=None, type=int, help="Operation timer delay override")
@click.option(
    "--log-format",
    default=None,
    type=click.Choice(["json", "console"]),
    help="Log renderer override",
)
def run(
    names: tuple[str, ...],
    config: str | None,
    sleep_ms: int | None,
    log_format: str | None,
) -> None:
    """Run scenarios by name (all of them when none are given)."""
    import asyncio

    from .core.config import load_settings
    from .observability.logger import setup_logging
    from .scenarios import SCENARIOS, run_scenario

    overrides: dict = {}
    if sleep_ms is not None:
        overrides["sleep_ms"] = sleep_ms
        overrides["settle_grace_ms"] = max(int(sleep_ms * 1.9), sleep_ms + 1)
    if log_format:
        overrides["observability"] = {"log_format": log_format}

    try:
        settings = load_settings(config_path=config, overrides=overrides)
    except PromiseLabError as exc:
        raise click.ClickException(str(exc)) from exc

    setup_logging(
        level=settings.observability.log_level,
        format=settings.observability.log_format,
    )

    async def _run_all() -> None:
        for name in names or tuple(SCENARIOS):
            result = await run_scenario(name, settings)
            click.echo(f"{result.label} {result.name}: {result.description}")
            for event in result.events:
                click.echo(f"    {event}")
            click.echo(f"    => {result.outcome.value} (uncaught: {result.uncaught})")

    try:
        asyncio.run(_run_all())
    except PromiseLabError as exc:
        raise click.ClickException(str(exc)) from exc
