"""CLI interface: coloured need-to-book report, calendar list, maps diagnostic."""

import argparse
import asyncio
import shutil
import sys
import textwrap
from collections.abc import Sequence
from datetime import UTC, date, tzinfo

from nearbook.core.bootstrap import build_geodata, build_orchestrator
from nearbook.core.config import config
from nearbook.core.errors import (
    GeodataUnavailableError,
    UnauthenticatedError,
    UpstreamUnavailableError,
)
from nearbook.core.logger import logger
from nearbook.observability import flush, trace
from nearbook.orchestrators.booking.constants import ALL_CALENDARS
from nearbook.orchestrators.booking.models import CandidateJob, OpportunitySearchResponse
from nearbook.services.google_service import GoogleService
from nearbook.services.maps_client import GoogleMapsClient, parse_driving_km

MAPS_CHECK_ORIGIN = "123 Main St, New York, NY"
MAPS_CHECK_DESTINATION = "456 Broadway, New York, NY"


class Colors:
    RESET = "\033[0m"
    BOLD = "\033[1m"
    DIM = "\033[2m"

    # Foreground
    RED = "\033[31m"
    GREEN = "\033[32m"
    YELLOW = "\033[33m"
    BLUE = "\033[34m"
    MAGENTA = "\033[35m"
    CYAN = "\033[36m"


def colorize(text: str, *colors: str) -> str:
    if not sys.stdout.isatty():
        return text
    color_codes = "".join(colors)
    return f"{color_codes}{text}{Colors.RESET}"


def _iso_date(value: str) -> date:
    try:
        return date.fromisoformat(value)
    except ValueError:
        raise argparse.ArgumentTypeError(f"not a YYYY-MM-DD date: {value!r}")


def _non_negative(value: str) -> float:
    try:
        number = float(value)
    except ValueError:
        raise argparse.ArgumentTypeError(f"not a number: {value!r}")
    if number < 0:
        raise argparse.ArgumentTypeError(f"must not be negative: {value}")
    return number


def build_parser(prog: str) -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog=prog, description="Suggest days to book need-to-book jobs near other events."
    )
    parser.add_argument(
        "--start", type=_iso_date, default=None,
        help="first day of the search (YYYY-MM-DD, default: today)",
    )
    parser.add_argument(
        "--calendar", action="append", dest="calendars", default=None,
        help=f"calendar id to search; repeatable; '{ALL_CALENDARS}' for every readable calendar",
    )
    parser.add_argument(
        "--window", type=_non_negative, default=None,
        help=f"candidate window in days (default: {config.candidate_window_days:g})",
    )
    parser.add_argument(
        "--threshold", type=_non_negative, default=None,
        help=f"distance threshold in km (default: {config.distance_threshold_km:g})",
    )
    parser.add_argument(
        "--marker", default=None,
        help=f"title marker for need-to-book jobs (default: {config.need_to_book_marker!r})",
    )
    return parser


def parse_search_args(argv: Sequence[str], prog: str = "nearbook search") -> argparse.Namespace:
    """Parse search flags. Bad input exits with status 2."""
    args = build_parser(prog).parse_args(list(argv))
    if args.marker is not None and not args.marker.strip():
        build_parser(prog).error("--marker must not be blank")
    return args


def _format_distance(job: CandidateJob) -> str:
    if job.estimated:
        return colorize(f"~{job.distance_km:.1f} km (estimate)", Colors.YELLOW)
    return colorize(f"{job.distance_km:.1f} km", Colors.GREEN)


def _wrap(text: str, indent: str) -> str:
    try:
        terminal_width = shutil.get_terminal_size().columns
    except OSError:
        terminal_width = 80
    width = max(terminal_width - len(indent), 40)
    return textwrap.fill(text, width=width, initial_indent=indent, subsequent_indent=indent)


def format_report(response: OpportunitySearchResponse, tz: tzinfo = UTC) -> str:
    lines: list[str] = []
    targets = response.targets
    days = response.opportunities_by_day

    lines.append(
        colorize(f"Need to book: {len(targets)} job(s)", Colors.BOLD, Colors.MAGENTA)
    )
    for t in targets:
        where = t.location or colorize("no location", Colors.DIM)
        lines.append(f"  • {t.title}  {colorize(t.start.local_date(tz).isoformat(), Colors.DIM)}  {where}")

    lines.append("")
    if not days:
        lines.append(colorize("No nearby jobs found in the search window.", Colors.DIM))
    for day, opp in sorted(days.items()):
        lines.append(colorize(f"{day}  {opp.target.title}", Colors.BOLD, Colors.CYAN))
        for job in opp.candidates:
            ev = job.event
            lines.append(f"    {_format_distance(job):>12}  {ev.title or '(untitled)'}  @ {ev.location}")
        if opp.directions_url:
            lines.append(colorize(f"    Directions: {opp.directions_url}", Colors.DIM))

    for w in response.warnings:
        lines.append(colorize(_wrap(f"⚠ {w}", "  "), Colors.YELLOW))
    return "\n".join(lines)


async def run_search(argv: Sequence[str] = ()) -> int:
    args = parse_search_args(argv)
    orchestrator, geodata = build_orchestrator()
    try:
        async with trace(
            "Need-to-book search",
            "chain",
            inputs={"start": str(args.start), "calendars": args.calendars},
            metadata={"interface": "cli"},
        ) as run:
            response = await orchestrator.search(
                start=args.start,
                calendar_ids=args.calendars,
                window_days=args.window,
                threshold_km=args.threshold,
                marker=args.marker,
            )
            run.end(outputs={"days": len(response.opportunities_by_day)})
    except UnauthenticatedError as e:
        print(colorize(f"  Error: {e}", Colors.RED))
        return 1
    except UpstreamUnavailableError as e:
        print(colorize(f"  Search could not run: {e}", Colors.RED))
        return 1
    finally:
        await geodata.close()
        flush()

    print(format_report(response, orchestrator.settings.tz))
    return 0


async def run_calendars() -> int:
    service = GoogleService()
    if not service.is_connected:
        print(colorize(f"  Error: {UnauthenticatedError()}", Colors.RED))
        return 1
    try:
        calendars = await asyncio.to_thread(service.list_calendars)
    except (UnauthenticatedError, UpstreamUnavailableError) as e:
        print(colorize(f"  Error: {e}", Colors.RED))
        return 1

    for cal in calendars:
        marks = []
        if cal.primary:
            marks.append("primary")
        if cal.id == service.default_calendar_id:
            marks.append("default")
        suffix = colorize(f" ({', '.join(marks)})", Colors.GREEN) if marks else ""
        print(f"  {cal.display_name}: {colorize(cal.id, Colors.DIM)} [{cal.access_role}]{suffix}")
    return 0


async def run_maps_check() -> int:
    """Query the Distance Matrix with two sample addresses and print the outcome."""
    geodata = build_geodata()
    maps = geodata.routing
    try:
        if not isinstance(maps, GoogleMapsClient):
            print(colorize("  No routing key: set ROUTING_API_KEY or GOOGLE_MAPS_API_KEY", Colors.RED))
            return 1
        data = await maps.distance_matrix(MAPS_CHECK_ORIGIN, MAPS_CHECK_DESTINATION)
        print(f"  Status: {data.get('status', 'unknown')}")
        if data.get("error_message"):
            print(colorize(f"  {data['error_message']}", Colors.YELLOW))
        km = parse_driving_km(data, maps.provider)
    except GeodataUnavailableError as e:
        logger.error(f"Maps check failed: {e}")
        print(colorize(f"  Maps check failed: {e}", Colors.RED))
        return 1
    finally:
        await geodata.close()

    if km is None:
        print(colorize("  No distance returned", Colors.RED))
        return 1
    print(colorize(f"  {MAPS_CHECK_ORIGIN} → {MAPS_CHECK_DESTINATION}: {km:.1f} km", Colors.GREEN))
    return 0


def main(argv: Sequence[str] = ()) -> int:
    try:
        return asyncio.run(run_search(argv))
    except KeyboardInterrupt:
        return 130
