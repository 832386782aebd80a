"""
Google Calendar event source.
Handles credential loading, refreshing, and building of the Calendar API service,
and exposes the read-only calls the need-to-book search uses.
"""

import json
import logging
from datetime import UTC, datetime
from pathlib import Path
from typing import NoReturn

from google.auth.exceptions import RefreshError
from google.auth.transport.requests import Request
from google.oauth2.credentials import Credentials
from googleapiclient.discovery import Resource, build
from googleapiclient.errors import HttpError
from pydantic import ValidationError

from nearbook.contracts.calendar_v1 import Calendar, CalendarEvent
from nearbook.core.config import config
from nearbook.core.errors import UnauthenticatedError, UpstreamUnavailableError
from nearbook.core.logger import logger

SCOPES = [
    "https://www.googleapis.com/auth/calendar.readonly",
]

_log = logging.getLogger(__name__)


def _save_tokens(path: Path, creds: Credentials, default_calendar_id: str) -> None:
    """Saves credentials and the default calendar id to the token file."""
    data = {
        "access_token": creds.token,
        "refresh_token": creds.refresh_token,
        "expiry": creds.expiry.isoformat() if creds.expiry else None,
        "default_calendar_id": default_calendar_id or "primary",
    }
    path.parent.mkdir(parents=True, exist_ok=True)
    with open(path, "w") as f:
        json.dump(data, f, indent=2)


def _load_credentials(path: Path) -> tuple[Credentials | None, str]:
    """Loads credentials and the default calendar id from the token file."""
    if not path.exists():
        return None, config.google_calendar_default_id
    with open(path) as f:
        data = json.load(f)

    creds = Credentials(
        token=data.get("access_token"),
        refresh_token=data.get("refresh_token"),
        token_uri="https://oauth2.googleapis.com/token",
        client_id=config.google_client_id,
        client_secret=config.google_client_secret,
        scopes=SCOPES,
    )
    if data.get("expiry"):
        try:
            # google-auth compares expiry as naive UTC
            expiry = datetime.fromisoformat(data["expiry"].replace("Z", "+00:00"))
            creds.expiry = expiry.astimezone(UTC).replace(tzinfo=None)
        except (ValueError, TypeError):
            pass

    return creds, data.get("default_calendar_id", "primary")


def _rfc3339(dt: datetime) -> str:
    return dt.astimezone(UTC).isoformat().replace("+00:00", "Z")


class GoogleService:
    """Read-only access to Google Calendar events and calendars."""

    def __init__(self, path: Path | None = None, credentials: Credentials | None = None):
        self._token_path = path or config.google_calendar_tokens_path
        self._creds: Credentials | None = None
        self.default_calendar_id: str = config.google_calendar_default_id
        self._calendar_api: Resource | None = None

        if credentials is not None:
            self._creds = credentials
            self._build_api_resources()
        else:
            self._reload_credentials()

    def _reload_credentials(self) -> None:
        """Loads credentials from disk and refreshes them if necessary."""
        self._creds, self.default_calendar_id = _load_credentials(self._token_path)

        if self._creds and self._creds.valid:
            self._build_api_resources()
        elif self._creds and self._creds.expired and self._creds.refresh_token:
            try:
                self._creds.refresh(Request())
                _save_tokens(self._token_path, self._creds, self.default_calendar_id)
                self._build_api_resources()
                logger.info("Google API token refreshed.")
            except RefreshError as e:
                logger.error(f"Failed to refresh Google API token: {e}")
                logger.error("Try re-authenticating: python -m nearbook.main google-auth")
                self._creds = None
        else:
            self._creds = None

    def _build_api_resources(self):
        """Builds the calendar API resource if credentials are valid."""
        if not self._creds:
            return
        try:
            self._calendar_api = build(
                "calendar", "v3", credentials=self._creds, cache_discovery=False
            )
        except Exception as e:
            logger.error(f"Failed to build Google API resources: {e}")
            self._calendar_api = None

    @property
    def is_connected(self) -> bool:
        """Returns True if the service holds a usable delegated credential."""
        return self._calendar_api is not None

    @property
    def calendar(self) -> Resource:
        if not self._calendar_api:
            raise UnauthenticatedError()
        return self._calendar_api

    def get_calendar_id(self, calendar_id: str | None) -> str:
        """Returns the calendar ID to use, falling back to the default."""
        return (calendar_id or self.default_calendar_id) or "primary"

    def _raise_for_http(
        self, e: HttpError, what: str, calendar_id: str | None = None
    ) -> NoReturn:
        status = getattr(e.resp, "status", None)
        if status in (401, 403):
            raise UnauthenticatedError(
                f"Google rejected the credential while reading {what} (HTTP {status}). "
                "Run: python -m nearbook.main google-auth"
            ) from e
        raise UpstreamUnavailableError(
            f"Google Calendar failed reading {what}: HTTP {status}", calendar_id=calendar_id
        ) from e

    def list_calendars(self, readable_only: bool = True) -> list[Calendar]:
        """Calendars from the user's calendar list, readable ones by default."""
        try:
            result = self.calendar.calendarList().list(maxResults=100, showHidden=False).execute()
        except RefreshError as e:
            raise UnauthenticatedError(f"Google token refresh failed: {e}") from e
        except HttpError as e:
            self._raise_for_http(e, "calendar list")
        except (OSError, TimeoutError) as e:
            raise UpstreamUnavailableError(f"Google Calendar unreachable: {e}") from e

        calendars: list[Calendar] = []
        for item in result.get("items", []):
            try:
                cal = Calendar.model_validate(item)
            except ValidationError as e:
                _log.debug("Skipping malformed calendar entry: %s", e)
                continue
            if readable_only and not cal.is_readable:
                continue
            calendars.append(cal)
        return calendars

    def list_events(
        self,
        calendar_id: str | None,
        time_min: datetime,
        time_max: datetime,
        max_results: int | None = None,
    ) -> list[CalendarEvent]:
        """Single (expanded) events between time_min and time_max, ordered by start."""
        cal_id = self.get_calendar_id(calendar_id)
        page_size = max_results or config.calendar_max_results
        items: list[dict] = []
        page_token: str | None = None
        try:
            while True:
                resp = self.calendar.events().list(
                    calendarId=cal_id,
                    timeMin=_rfc3339(time_min),
                    timeMax=_rfc3339(time_max),
                    maxResults=page_size,
                    singleEvents=True,
                    orderBy="startTime",
                    pageToken=page_token,
                ).execute()
                items.extend(resp.get("items", []))
                page_token = resp.get("nextPageToken")
                if not page_token:
                    break
        except RefreshError as e:
            raise UnauthenticatedError(f"Google token refresh failed: {e}") from e
        except HttpError as e:
            self._raise_for_http(e, f"events of {cal_id}", calendar_id=cal_id)
        except (OSError, TimeoutError) as e:
            raise UpstreamUnavailableError(
                f"Google Calendar unreachable: {e}", calendar_id=cal_id
            ) from e

        events: list[CalendarEvent] = []
        for item in items:
            if item.get("status") == "cancelled":
                continue
            try:
                events.append(CalendarEvent.from_google(item, calendar_id=cal_id))
            except ValidationError as e:
                _log.debug("Skipping malformed event %s: %s", item.get("id"), e)
        return events
