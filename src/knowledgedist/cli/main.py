"""
Knowledge distribution operator CLI

Commands:
- tick: Run one scheduler tick
- run: Run the periodic scheduler loop
- show: Show a domain and its scheduled distribution
- estimate: Show a user's best-case share of a scheduled distribution
"""

import asyncio
import json
import logging
from datetime import datetime
from typing import Any, Awaitable, Callable, Optional

import click
from rich import box
from rich.console import Console
from rich.table import Table

from knowledgedist.config import EngineConfig
from knowledgedist.engine import DistributionEngine
from knowledgedist.models import Domain, ensure_utc
from knowledgedist.observability import DistributionMetrics
from knowledgedist.storage import AbstractStorageProvider, StorageConfig, create_provider
from knowledgedist.units import from_minor, percent_of

console = Console()


def _format_datetime(dt: Optional[datetime]) -> str:
    if dt is None:
        return "N/A"
    return dt.strftime("%Y-%m-%d %H:%M:%S")


def _output_json(data: object) -> None:
    """Print data as JSON to stdout."""
    click.echo(json.dumps(data, indent=2, default=str))


def _build_provider(storage_config: StorageConfig) -> AbstractStorageProvider:
    return create_provider(storage_config)


def _run_with_engine(
    ctx: click.Context,
    action: Callable[[DistributionEngine], Awaitable[Any]],
    metrics: Optional[DistributionMetrics] = None,
) -> Any:
    storage_config: StorageConfig = ctx.obj["storage"]
    config: EngineConfig = ctx.obj["config"]

    async def runner() -> Any:
        provider = _build_provider(storage_config)
        await provider.connect()
        try:
            engine = DistributionEngine.build(provider, config, metrics=metrics)
            return await action(engine)
        finally:
            await provider.disconnect()

    return asyncio.run(runner())


def _fail(message: str) -> None:
    click.echo(f"Error: {message}", err=True)
    raise SystemExit(1)


@click.group()
@click.option(
    "--backend",
    type=click.Choice(["redis", "memory"]),
    default="redis",
    envvar="KDIST_STORAGE_BACKEND",
    help="Storage backend.",
)
@click.option("--redis-url", envvar="KDIST_REDIS_URL", default=None, help="Redis connection URL.")
@click.option("-v", "--verbose", is_flag=True, help="Enable debug logging.")
@click.pass_context
def app(ctx: click.Context, backend: str, redis_url: Optional[str], verbose: bool):
    """Operate the knowledge distribution engine.

    Run scheduler ticks, inspect domains, and estimate shares of
    scheduled distributions.
    """
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.WARNING,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    ctx.ensure_object(dict)
    ctx.obj["storage"] = StorageConfig(backend=backend, connection_string=redis_url)
    ctx.obj["config"] = EngineConfig.from_env()


@app.command()
@click.option("--at", "at", type=click.DateTime(), default=None, help="Evaluate as of this UTC time.")
@click.option("--json", "json_flag", is_flag=True, help="Output as JSON.")
@click.pass_context
def tick(ctx: click.Context, at: Optional[datetime], json_flag: bool):
    """Run one scheduler tick and report what happened."""
    now = ensure_utc(at) if at is not None else None
    report = _run_with_engine(ctx, lambda engine: engine.scheduler.tick(now))

    data = {
        "started_at": report.started_at.isoformat(),
        "scanned": report.scanned,
        "pending": report.pending,
        "settled": report.settled,
        "skipped": report.skipped,
        "unchanged": report.unchanged,
        "failed": report.failed,
        "lease_conflicts": report.lease_conflicts,
    }
    if json_flag:
        _output_json(data)
    else:
        table = Table(box=box.SIMPLE, show_header=False)
        table.add_column("Field", style="bold cyan", no_wrap=True)
        table.add_column("Value")
        table.add_row("Scanned", str(report.scanned))
        table.add_row("Pending", str(report.pending))
        table.add_row("Settled", ", ".join(report.settled) or "-")
        table.add_row("Skipped", ", ".join(report.skipped) or "-")
        table.add_row("Failed", ", ".join(report.failed) or "-")
        table.add_row("Lease conflicts", ", ".join(report.lease_conflicts) or "-")
        console.print(table)

    if report.failed:
        raise SystemExit(1)


@app.command()
@click.option("--metrics-port", type=int, default=None, help="Expose Prometheus metrics on this port.")
@click.pass_context
def run(ctx: click.Context, metrics_port: Optional[int]):
    """Run the scheduler loop until interrupted."""
    metrics = None
    if metrics_port is not None:
        metrics = DistributionMetrics()
        metrics.start_server(metrics_port)

    async def serve(engine: DistributionEngine) -> None:
        await engine.scheduler.start()
        try:
            await asyncio.Event().wait()
        finally:
            await engine.scheduler.stop()

    console.print(
        f"[bold blue]Scheduler running every {ctx.obj['config'].tick_interval_seconds}s "
        f"(Ctrl+C to stop)[/bold blue]"
    )
    try:
        _run_with_engine(ctx, serve, metrics=metrics)
    except KeyboardInterrupt:
        console.print("Stopped.")


@app.command()
@click.argument("domain_id")
@click.option("--json", "json_flag", is_flag=True, help="Output as JSON.")
@click.pass_context
def show(ctx: click.Context, domain_id: str, json_flag: bool):
    """Show a domain and its scheduled distribution.

    DOMAIN_ID is the domain to inspect.
    """

    async def load(engine: DistributionEngine) -> Optional[Domain]:
        return await engine.domains.get(domain_id)

    domain = _run_with_engine(ctx, load)
    if domain is None:
        _fail(f"Domain '{domain_id}' not found.")
    if json_flag:
        _output_json(domain.model_dump(mode="json"))
        return

    console.print(f"\n[bold blue]Domain: {domain.name or domain.domain_id}[/bold blue]\n")
    table = Table(box=box.SIMPLE, show_header=False)
    table.add_column("Field", style="bold cyan", no_wrap=True)
    table.add_column("Value")
    table.add_row("Domain ID", domain.domain_id)
    table.add_row("Master", domain.master_id or "-")
    table.add_row("Point balance", str(domain.point_balance))
    table.add_row("Carryover", str(domain.carryover_balance))
    table.add_row("Productivity", str(domain.productivity_factor))
    table.add_row("Last accrued", _format_datetime(domain.points_last_accrued_at))
    table.add_row("Last executed", _format_datetime(domain.last_executed_at))
    console.print(table)

    schedule = domain.scheduled
    if schedule is None:
        console.print("  No distribution scheduled.\n")
        return

    rule = schedule.rule_snapshot
    sched_table = Table(title="Scheduled distribution", box=box.ROUNDED)
    sched_table.add_column("Field", style="cyan")
    sched_table.add_column("Value")
    sched_table.add_row("Event", schedule.event_id)
    sched_table.add_row("Due", _format_datetime(schedule.due_at))
    sched_table.add_row("Scope", f"{schedule.distribution_scope.value} ({schedule.effective_distribution_percent}%)")
    sched_table.add_row("Master %", str(rule.master_percent))
    for user_id, percent in sorted(rule.admin_percents.items()):
        sched_table.add_row(f"Deputy {user_id} %", str(percent))
    for user_id, percent in sorted(rule.custom_user_percents.items()):
        sched_table.add_row(f"Named {user_id} %", str(percent))
    sched_table.add_row("Non-hostile alliance %", str(rule.non_hostile_alliance_percent))
    for alliance_id, percent in sorted(rule.specific_alliance_percents.items()):
        sched_table.add_row(f"Alliance {alliance_id} %", str(percent))
    sched_table.add_row("No alliance %", str(rule.no_alliance_percent))
    sched_table.add_row("Alliance contribution %", str(schedule.alliance_contribution_percent))
    console.print(sched_table)


@app.command()
@click.argument("domain_id")
@click.argument("user_id")
@click.option("--json", "json_flag", is_flag=True, help="Output as JSON.")
@click.pass_context
def estimate(ctx: click.Context, domain_id: str, user_id: str, json_flag: bool):
    """Estimate a user's best-case share of a scheduled distribution.

    DOMAIN_ID is the domain; USER_ID is the prospective recipient.
    """

    async def compute(engine: DistributionEngine) -> dict:
        domain = await engine.domains.get(domain_id)
        if domain is None:
            return {"error": f"Domain '{domain_id}' not found."}
        schedule = domain.scheduled
        if schedule is None:
            return {"error": f"Domain '{domain_id}' has no scheduled distribution."}
        candidate = await engine.directory.get_candidate(user_id)
        percent = engine.rules.projected_max_percent(candidate, domain, schedule)
        pool = engine.announcer.projected_pool(domain, schedule)
        return {
            "domain_id": domain_id,
            "user_id": user_id,
            "event_id": schedule.event_id,
            "projected_percent": str(percent),
            "projected_pool": str(from_minor(pool)),
            "estimated_max": str(from_minor(percent_of(pool, percent))),
        }

    data = _run_with_engine(ctx, compute)
    if "error" in data:
        _fail(data["error"])
    if json_flag:
        _output_json(data)
        return
    console.print(
        f"{user_id} may receive up to [bold green]{data['estimated_max']}[/bold green] "
        f"({data['projected_percent']}% of {data['projected_pool']}) from {domain_id}"
    )


if __name__ == "__main__":
    app()
