"""One-time Google sign-in for nearbook. Run: python -m nearbook.main google-auth

Grants read-only Calendar access, lets the user pick which calendar a search reads
by default (or every readable calendar), and stores both in the token file.
"""

from google.oauth2.credentials import Credentials
from google_auth_oauthlib.flow import InstalledAppFlow

from nearbook.contracts.calendar_v1 import Calendar
from nearbook.core.config import config
from nearbook.core.errors import NearbookError
from nearbook.orchestrators.booking.constants import ALL_CALENDARS
from nearbook.services.google_service import SCOPES, GoogleService, _save_tokens

REDIRECT_PORT = 6999


def _client_config() -> dict:
    return {
        "installed": {
            "client_id": config.google_client_id,
            "client_secret": config.google_client_secret,
            "redirect_uris": [f"http://localhost:{REDIRECT_PORT}/"],
            "auth_uri": "https://accounts.google.com/o/oauth2/auth",
            "token_uri": "https://oauth2.googleapis.com/token",
        }
    }


def _missing_scopes(creds: Credentials) -> list[str]:
    granted = set(creds.scopes or SCOPES)
    return [s for s in SCOPES if s not in granted]


def _choose_default(calendars: list[Calendar], current: str) -> str:
    """Prompt for the calendar searched when none is given on the command line."""
    print("\nCalendars nearbook can read:")
    for i, cal in enumerate(calendars, start=1):
        mark = " (primary)" if cal.primary else ""
        print(f"  {i}. {cal.display_name}{mark} [{cal.access_role}]")
    print(f"  a. All of the above ('{ALL_CALENDARS}')")

    choice = input(f"\nSearch which calendar by default? (Enter = keep '{current}'): ")
    choice = choice.strip().lower()
    if choice == "a":
        return ALL_CALENDARS
    if choice.isdigit() and 1 <= int(choice) <= len(calendars):
        return calendars[int(choice) - 1].id
    return current


def run_google_auth() -> int:
    if not config.google_client_id or not config.google_client_secret:
        print("Missing GOOGLE_CLIENT_ID or GOOGLE_CLIENT_SECRET in .env")
        print(
            "Create a Desktop OAuth client in Google Cloud Console > APIs & Services > "
            "Credentials and enable the Google Calendar API."
        )
        return 1

    flow = InstalledAppFlow.from_client_config(_client_config(), scopes=SCOPES)
    print("Opening browser for Google sign-in (read-only calendar access)...")
    creds = flow.run_local_server(port=REDIRECT_PORT)

    missing = _missing_scopes(creds)
    if missing:
        print(f"Sign-in did not grant: {', '.join(missing)}")
        print("Run google-auth again and allow calendar access.")
        return 1

    default_calendar_id = config.google_calendar_default_id
    try:
        calendars = GoogleService(credentials=creds).list_calendars()
    except NearbookError as e:
        print(f"Could not list calendars: {e}. Searching '{default_calendar_id}' by default.")
    else:
        if calendars:
            default_calendar_id = _choose_default(calendars, default_calendar_id)

    path = config.google_calendar_tokens_path
    _save_tokens(path, creds, default_calendar_id)
    print(f"Tokens saved to {path} (default calendar: {default_calendar_id})")
    print("Next: python -m nearbook.main maps-check, then python -m nearbook.main search")
    return 0
