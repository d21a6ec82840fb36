# main.py

"""Entry point for the rent_aggregator headless CLI."""

import argparse
import asyncio
import logging
import sys

from rent_aggregator.config.logging_config import setup_logging
from rent_aggregator.config.settings import Settings
from rent_aggregator.models.criteria import PropertyType

logger = logging.getLogger("rent_aggregator.main")


def _build_parser() -> argparse.ArgumentParser:
    """Build the argument parser for the CLI."""
    valid_ids = ", ".join(s["id"] for s in Settings.AVAILABLE_SOURCES)

    parser = argparse.ArgumentParser(
        prog="rent_aggregator",
        description="German rental listing aggregator.",
        epilog=f"Available sources: {valid_ids}",
    )
    parser.add_argument(
        "city",
        nargs="?",
        default=None,
        help="City to search (Spanish names are translated).",
    )
    parser.add_argument(
        "-t",
        "--type",
        choices=[t.value for t in PropertyType],
        default=PropertyType.ANY.value,
        dest="property_type",
        help="Property type (default: any).",
    )
    parser.add_argument(
        "-r", "--rooms", default=None, help="Minimum number of rooms.",
    )
    parser.add_argument(
        "-b", "--budget", default=None, help="Maximum monthly rent.",
    )
    parser.add_argument(
        "-m",
        "--max-results",
        default=None,
        dest="max_results",
        help=(
            "Results per portal "
            f"(default: {Settings.DEFAULT_MAX_RESULTS})."
        ),
    )
    parser.add_argument(
        "-p", "--page", type=int, default=1, help="Result page (1-based).",
    )
    parser.add_argument(
        "-n",
        "--page-size",
        type=int,
        default=Settings.DEFAULT_PAGE_SIZE,
        dest="page_size",
        help=f"Results per page (default: {Settings.DEFAULT_PAGE_SIZE}).",
    )
    parser.add_argument(
        "-s",
        "--sources",
        default=None,
        help="Comma-separated portal IDs (default: all enabled).",
    )
    parser.add_argument(
        "--force-refresh",
        action="store_true",
        default=False,
        dest="force_refresh",
        help="Bypass the cache for this search.",
    )
    parser.add_argument(
        "-f",
        "--format",
        choices=["json", "table"],
        default="json",
        dest="output_format",
        help="Output format (default: json).",
    )
    parser.add_argument(
        "--health",
        action="store_true",
        default=False,
        help="Run a connectivity health check on portals and cache.",
    )
    parser.add_argument(
        "--stats",
        action="store_true",
        default=False,
        help="Print service statistics as JSON.",
    )
    parser.add_argument(
        "--refresh",
        default=None,
        metavar="CITY",
        help="Invalidate and re-fetch every cached search for CITY.",
    )
    parser.add_argument(
        "--refresh-all",
        action="store_true",
        default=False,
        dest="refresh_all",
        help="Refresh the configured city list (for cron jobs).",
    )
    parser.add_argument(
        "--clear-cache",
        action="store_true",
        default=False,
        dest="clear_cache",
        help="Purge both cache tiers.",
    )
    return parser


def _run(args: argparse.Namespace) -> int:
    """Dispatch the parsed command against a freshly wired service."""
    from rent_aggregator.cli import runner
    from rent_aggregator.services.aggregation_service import (
        build_default_service,
    )

    service = build_default_service(
        sources=runner.resolve_sources(args.sources),
    )

    if args.clear_cache:
        return runner.run_clear_cache(service)
    if args.health:
        return asyncio.run(runner.run_health_check(service))
    if args.stats:
        return asyncio.run(runner.run_stats(service))
    if args.refresh_all:
        return asyncio.run(runner.run_refresh(service, None))
    if args.refresh:
        return asyncio.run(runner.run_refresh(service, [args.refresh]))

    return asyncio.run(
        runner.cli_search(
            service,
            params={
                "city": args.city,
                "type": args.property_type,
                "rooms": args.rooms,
                "budget": args.budget,
                "max_results": args.max_results,
            },
            page=args.page,
            page_size=args.page_size,
            force_refresh=args.force_refresh,
            output_format=args.output_format,
        )
    )


def main() -> None:
    """Parse arguments, set up logging and run one command."""
    log_file = setup_logging()
    logger.info("rent_aggregator starting, log file: %s", log_file)

    parser = _build_parser()
    args = parser.parse_args()

    actions = (
        args.health, args.stats, args.refresh, args.refresh_all,
        args.clear_cache,
    )
    if args.city is None and not any(actions):
        parser.print_help(sys.stderr)
        sys.exit(2)

    try:
        exit_code = _run(args)
    except Exception:
        logger.critical("Fatal error during CLI run", exc_info=True)
        raise
    finally:
        logger.info("rent_aggregator shutting down")
    sys.exit(exit_code)


if __name__ == "__main__":
    main()
