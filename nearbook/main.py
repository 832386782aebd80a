"""Entry point: search | json | calendars | google-auth | maps-check."""

import asyncio
import sys

USAGE = "Usage: python -m nearbook.main [search|json|calendars|google-auth|maps-check] [options]"


def main():
    mode = "search"
    args = sys.argv[2:]
    if len(sys.argv) > 1:
        if sys.argv[1].startswith("-"):
            args = sys.argv[1:]
        else:
            mode = sys.argv[1].lower()

    if mode == "search":
        from nearbook.interfaces.cli import main as run_search_main

        sys.exit(run_search_main(args))

    elif mode == "json":
        from nearbook.interfaces.oneshot import main as run_oneshot_main

        sys.exit(run_oneshot_main(args))

    elif mode == "calendars":
        from nearbook.interfaces.cli import run_calendars

        sys.exit(asyncio.run(run_calendars()))

    elif mode == "google-auth":
        from nearbook.services.google_auth import run_google_auth

        sys.exit(run_google_auth())

    elif mode == "maps-check":
        from nearbook.interfaces.cli import run_maps_check

        sys.exit(asyncio.run(run_maps_check()))

    else:
        print(f"Unknown mode: {mode}")
        print(USAGE)
        sys.exit(2)


if __name__ == "__main__":
    main()
