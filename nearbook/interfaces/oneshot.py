"""One-shot interface: run a single search, print the consumer JSON, exit."""

from __future__ import annotations

import asyncio
import json
from collections.abc import Sequence

from nearbook.core.bootstrap import build_orchestrator
from nearbook.core.errors import UnauthenticatedError, UpstreamUnavailableError
from nearbook.interfaces.cli import parse_search_args
from nearbook.observability import flush


def _print_json(payload: dict) -> None:
    print(json.dumps(payload, indent=2, ensure_ascii=False))


async def run_oneshot(argv: Sequence[str] = ()) -> int:
    args = parse_search_args(argv, prog="nearbook json")
    orchestrator, geodata = build_orchestrator()
    try:
        response = await orchestrator.search(
            start=args.start,
            calendar_ids=args.calendars,
            window_days=args.window,
            threshold_km=args.threshold,
            marker=args.marker,
        )
    except UnauthenticatedError as e:
        _print_json({"error": "unauthenticated", "message": str(e)})
        return 1
    except UpstreamUnavailableError as e:
        _print_json({"error": "upstream_unavailable", "message": str(e)})
        return 1
    finally:
        await geodata.close()
        flush()

    _print_json(response.to_consumer_dict())
    return 0


def main(argv: Sequence[str] = ()) -> int:
    return asyncio.run(run_oneshot(argv))
