#!/usr/bin/env python3
"""
aWhere export runner.

Fetches one endpoint for every configured location (or every grid cell of an
area) and writes the result tables to CSV files under data/.
"""

import argparse
import logging
import sys
import time
from pathlib import Path

# Add parent directory to path for imports
sys.path.insert(0, str(Path(__file__).parent.parent))

from agroweather.clients import AgroWeatherClient, ApiError, Coordinates, FieldId
from agroweather.core import ConfigError, QueryRuntime, ValidationError
from agroweather.exporters import TableExporter
from agroweather.spatial import CallsDeclinedError


CONFIG_PATH = Path("config.json")
DATA_ROOT = Path("data")
LOG_DIR = Path("logs")
LOG_FILE = LOG_DIR / "agroweather_export.log"

DATED_ENDPOINTS = ("daily_observed", "agronomic_values")
NORM_ENDPOINTS = ("weather_norms",)

logger = logging.getLogger(__name__)


def configure_logging(verbose: bool) -> None:
    LOG_DIR.mkdir(exist_ok=True)
    handlers = [logging.FileHandler(LOG_FILE, encoding="utf-8")]
    if verbose:
        handlers.append(logging.StreamHandler())
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.INFO,
        format="%(asctime)s [%(levelname)s] %(message)s",
        handlers=handlers,
        force=True,
    )


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="aWhere data export runner")
    parser.add_argument("--config", type=Path, default=CONFIG_PATH, help="Path to config.json")
    parser.add_argument(
        "--endpoint",
        choices=DATED_ENDPOINTS + NORM_ENDPOINTS,
        default="daily_observed",
        help="Endpoint to query",
    )
    parser.add_argument("--since", type=str, default=None, help="Start date YYYY-MM-DD")
    parser.add_argument("--until", type=str, default=None, help="End date YYYY-MM-DD")
    parser.add_argument("--month-day-start", type=str, default=None, help="Norms window start MM-DD")
    parser.add_argument("--month-day-end", type=str, default=None, help="Norms window end MM-DD")
    parser.add_argument("--year-start", type=int, default=None, help="First year averaged by norms")
    parser.add_argument("--year-end", type=int, default=None, help="Last year averaged by norms")
    parser.add_argument("--area", type=str, default=None, help="WKT area to query cell by cell")
    parser.add_argument("--workers", type=int, default=None, help="Worker threads for area queries")
    parser.add_argument("--yes", action="store_true", help="Skip the API call confirmation prompt")
    parser.add_argument("--verbose", action="store_true", help="Debug logging, also to the console")
    return parser


def endpoint_arguments(args: argparse.Namespace, runtime: QueryRuntime) -> tuple:
    """Return the positional and keyword arguments for the chosen endpoint."""
    if args.endpoint in NORM_ENDPOINTS:
        if not (args.month_day_start and args.year_start and args.year_end):
            raise ValidationError("--month-day-start, --year-start and --year-end are required for norms.")
        return (args.month_day_start, args.month_day_end), {
            "year_start": args.year_start,
            "year_end": args.year_end,
        }
    date_range = runtime.date_range
    return (date_range.start, date_range.end), {}


def run_export(args: argparse.Namespace) -> int:
    runtime = QueryRuntime(args.config)
    runtime.update_dates(args.since, args.until)
    client = AgroWeatherClient(config_path=args.config, workers=args.workers)
    exporter = TableExporter(DATA_ROOT / "awhere" / args.endpoint)
    positional, keywords = endpoint_arguments(args, runtime)

    if args.area:
        table = client.query_area(
            args.endpoint,
            args.area,
            *positional,
            bypass_confirmation=args.yes,
            **keywords,
        )
        exporter.save("area.csv", table)
        return 0

    runtime.reload_locations()
    errors = 0
    fetch = getattr(client, args.endpoint)
    for name, lat, lon, field_id in runtime.location_items:
        location = FieldId(field_id) if field_id else Coordinates(lat, lon)
        try:
            table = fetch(location, *positional, **keywords)
        except ApiError as exc:
            logger.error("%s[%s]: %s", args.endpoint, name, exc)
            errors += 1
            continue
        exporter.save(f"{name}.csv", table)
    return 1 if errors else 0


def main():
    """Main entry point."""
    args = build_parser().parse_args()
    configure_logging(args.verbose)

    run_start = time.time()
    try:
        status = run_export(args)
    except (ConfigError, ValidationError) as exc:
        logger.error("%s", exc)
        print(f"Error: {exc}")
        sys.exit(2)
    except CallsDeclinedError:
        logger.info("Area query declined, nothing fetched")
        sys.exit(1)
    except KeyboardInterrupt:
        logger.info("Export interrupted, shutting down")
        print("\nShutdown complete.")
        sys.exit(130)

    logger.info("Export completed in %.2f seconds", time.time() - run_start)
    sys.exit(status)


if __name__ == "__main__":
    main()
