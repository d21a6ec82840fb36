# rent_aggregator/cli/runner.py

"""Headless CLI commands on top of the aggregation service."""

import json
import logging
import sys
from typing import Any

from rich.console import Console
from rich.table import Table

from rent_aggregator.config.settings import Settings
from rent_aggregator.errors import ValidationError
from rent_aggregator.models.criteria import SearchCriteria
from rent_aggregator.services.aggregation_service import (
    AggregationService,
    SearchResponse,
)

logger = logging.getLogger("rent_aggregator.cli")

# Stderr console for status messages so stdout stays clean for JSON
_err = Console(stderr=True)


def resolve_sources(
    source_csv: str | None,
) -> list[dict[str, str]]:
    """Map a comma-separated list of portal IDs to their config dicts.

    Returns every enabled source when *source_csv* is ``None``.
    Raises ``SystemExit`` on unknown IDs.
    """
    available = {s["id"]: s for s in Settings.AVAILABLE_SOURCES}
    if source_csv is None:
        return Settings.enabled_sources()

    requested = [s.strip() for s in source_csv.split(",") if s.strip()]
    unknown = [r for r in requested if r not in available]
    if unknown:
        valid = ", ".join(sorted(available))
        _err.print(f"[red]Unknown source(s): {', '.join(unknown)}[/red]")
        _err.print(f"[dim]Available: {valid}[/dim]")
        raise SystemExit(1)

    return [available[r] for r in requested]


def _print_table(response: SearchResponse) -> None:
    """Render one result page as a Rich table on stdout."""
    page = response.pagination
    table = Table(
        title=(
            f"Listings page {page.current_page}/{max(page.total_pages, 1)}"
            f" ({page.total_results} total)"
        ),
        show_lines=True,
        title_style="bold cyan",
    )
    table.add_column("#", style="dim", width=4)
    table.add_column("Title", max_width=50)
    table.add_column("Price", justify="right", style="green")
    table.add_column("Rooms", justify="center")
    table.add_column("m²", justify="right")
    table.add_column("Location", max_width=25)
    table.add_column("Source", style="magenta")
    table.add_column("URL", overflow="fold", style="dim")

    offset = (page.current_page - 1) * page.page_size
    for idx, item in enumerate(response.results, offset + 1):
        table.add_row(
            str(idx),
            item.title[:50],
            str(item.price) if item.price else "N/A",
            str(item.rooms) if item.rooms else "—",
            f"{item.area_sqm:g}" if item.area_sqm else "—",
            item.location or "—",
            item.source,
            item.url,
        )

    Console().print(table)


def _dump_json(payload: Any) -> None:
    json.dump(payload, sys.stdout, ensure_ascii=False, indent=2)
    sys.stdout.write("\n")


async def cli_search(
    service: AggregationService,
    params: dict[str, Any],
    page: int,
    page_size: int,
    force_refresh: bool,
    output_format: str,
) -> int:
    """Run one search and return an exit code (0=ok, 1=nothing, 2=bad input)."""
    try:
        criteria = SearchCriteria.from_params(params)
        response = await service.search(
            criteria,
            page=page,
            page_size=page_size,
            force_refresh=force_refresh,
        )
    except ValidationError as exc:
        for problem in exc.problems:
            _err.print(f"[red]Invalid input: {problem}[/red]")
        return 2

    _err.print(
        f"[bold]Searching:[/bold] {criteria.city or 'anywhere'}  "
        f"[dim]portals={len(service.connectors)} "
        f"cache={response.cache_status}[/dim]"
    )
    for portal, message in sorted(response.errors.items()):
        _err.print(f"[red]{portal}: {message}[/red]")

    if not response.pagination.total_results:
        _err.print("[yellow]No listings found.[/yellow]")
        return 1

    dropped = (
        f" ({response.dropped} dropped)" if response.dropped else ""
    )
    _err.print(
        f"[green]✓ {response.pagination.total_results} listings"
        f"{dropped} in {response.duration_ms:.0f}ms[/green]"
    )

    if output_format == "table":
        _print_table(response)
    else:
        _dump_json(response.to_dict())
    return 0


async def run_health_check(service: AggregationService) -> int:
    """Probe connectors and cache tiers; exit 1 if anything is down."""
    _err.print("[bold]Running portal health check...[/bold]")
    results = await service.health_checker.check_all()
    cache_health = service.cache.health_check()

    table = Table(
        title="Portal Health Check",
        show_lines=True,
        title_style="bold cyan",
    )
    table.add_column("Service", style="bold")
    table.add_column("Status", justify="center")
    table.add_column("Latency", justify="right")
    table.add_column("Notes", style="dim")

    any_down = False
    for r in results:
        if r.status == "ok":
            status = "[green]✅ OK[/green]"
        elif r.status == "slow":
            status = "[yellow]⚠️  SLOW[/yellow]"
        else:
            status = "[red]❌ DOWN[/red]"
            any_down = True
        latency = f"{r.latency_ms:.0f}ms" if r.latency_ms > 0 else "—"
        table.add_row(r.source_id, status, latency, r.message)

    for tier, tier_status in cache_health.items():
        if tier_status == "down":
            any_down = True
            status = "[red]❌ DOWN[/red]"
        elif tier_status == "ok":
            status = "[green]✅ OK[/green]"
        else:
            status = "[dim]disabled[/dim]"
        table.add_row(f"cache ({tier})", status, "—", "")

    Console().print(table)
    return 1 if any_down else 0


async def run_stats(service: AggregationService) -> int:
    _dump_json(await service.stats())
    return 0


async def run_refresh(
    service: AggregationService,
    cities: list[str] | None,
) -> int:
    """Refresh *cities* (or the configured list); exit 1 on total failure."""
    targets = cities or Settings.REFRESH_CITIES
    _err.print(f"[bold]Refreshing:[/bold] {', '.join(targets)}")
    responses = await service.refresh_all(targets)

    for city in targets:
        response = responses.get(city)
        if response is None:
            _err.print(f"[red]✗ {city}: skipped (invalid city)[/red]")
            continue
        failed = ", ".join(sorted(response.errors))
        note = f" [dim](failed: {failed})[/dim]" if failed else ""
        _err.print(
            f"[green]✓ {city}: {response.pagination.total_results}"
            f" listings[/green]{note}"
        )
    return 0 if responses else 1


def run_clear_cache(service: AggregationService) -> int:
    removed = service.cache.clear()
    _err.print(f"[green]✓ Cache cleared ({removed} entries removed)[/green]")
    return 0
