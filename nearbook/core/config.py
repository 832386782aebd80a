"""Configuration from environment variables (.env)."""

import os
from pathlib import Path
from dataclasses import dataclass
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from dotenv import load_dotenv

load_dotenv()

DISTANCE_STRATEGY_MODES = ("auto", "driving", "great_circle", "estimate")
GEOCODER_PROVIDERS = ("google", "nominatim", "none")


def _choice(value: str, allowed: tuple[str, ...], default: str) -> str:
    v = (value or default).strip().lower()
    return v if v in allowed else default


@dataclass
class Config:
    project_root: Path
    data_dir: Path
    logs_dir: Path
    google_client_id: str
    google_client_secret: str
    google_calendar_tokens_path: Path
    google_calendar_default_id: str
    user_timezone: str
    google_maps_api_key: str
    routing_api_key: str  # Distance Matrix; falls back to GOOGLE_MAPS_API_KEY
    geocoding_api_key: str  # Geocoding API; falls back to GOOGLE_MAPS_API_KEY
    geocoder_provider: str  # google | nominatim | none
    nominatim_base_url: str
    nominatim_user_agent: str
    distance_strategy: str  # auto | driving | great_circle | estimate
    need_to_book_marker: str
    search_horizon_days: int
    candidate_window_days: float
    distance_threshold_km: float
    estimate_window_days: float
    estimate_km_per_day: float
    estimate_min_km: float
    geodata_timeout_seconds: float
    geodata_max_concurrency: int
    calendar_max_results: int

    @classmethod
    def load(cls) -> "Config":
        project_root = Path(__file__).parent.parent.parent
        maps_key = os.getenv("GOOGLE_MAPS_API_KEY", "")
        return cls(
            project_root=project_root,
            data_dir=project_root / "data",
            logs_dir=project_root / "logs",
            google_client_id=os.getenv("GOOGLE_CLIENT_ID", ""),
            google_client_secret=os.getenv("GOOGLE_CLIENT_SECRET", ""),
            google_calendar_tokens_path=project_root / "data" / "google_calendar_tokens.json",
            google_calendar_default_id=os.getenv("GOOGLE_CALENDAR_DEFAULT_ID", "primary"),
            user_timezone=os.getenv("USER_TIMEZONE", os.getenv("TZ", "UTC")),
            google_maps_api_key=maps_key,
            routing_api_key=os.getenv("ROUTING_API_KEY", maps_key),
            geocoding_api_key=os.getenv("GEOCODING_API_KEY", maps_key),
            geocoder_provider=_choice(
                os.getenv("GEOCODER_PROVIDER", "google"), GEOCODER_PROVIDERS, "google"
            ),
            nominatim_base_url=os.getenv(
                "NOMINATIM_BASE_URL", "https://nominatim.openstreetmap.org"
            ).rstrip("/"),
            nominatim_user_agent=os.getenv("NOMINATIM_USER_AGENT", "nearbook/0.1"),
            distance_strategy=_choice(
                os.getenv("DISTANCE_STRATEGY", "auto"), DISTANCE_STRATEGY_MODES, "auto"
            ),
            need_to_book_marker=os.getenv("NEED_TO_BOOK_MARKER", "need to book"),
            search_horizon_days=int(os.getenv("SEARCH_HORIZON_DAYS", "90")),
            candidate_window_days=float(os.getenv("CANDIDATE_WINDOW_DAYS", "7")),
            distance_threshold_km=float(os.getenv("DISTANCE_THRESHOLD_KM", "20")),
            estimate_window_days=float(os.getenv("ESTIMATE_WINDOW_DAYS", "2")),
            estimate_km_per_day=float(os.getenv("ESTIMATE_KM_PER_DAY", "5")),
            estimate_min_km=float(os.getenv("ESTIMATE_MIN_KM", "1")),
            geodata_timeout_seconds=float(os.getenv("GEODATA_TIMEOUT_SECONDS", "8")),
            geodata_max_concurrency=int(os.getenv("GEODATA_MAX_CONCURRENCY", "8")),
            calendar_max_results=int(os.getenv("CALENDAR_MAX_RESULTS", "500")),
        )

    def validate(self) -> list[str]:
        errors = []
        if not self.need_to_book_marker.strip():
            errors.append("NEED_TO_BOOK_MARKER must not be empty")
        if self.search_horizon_days <= 0:
            errors.append("SEARCH_HORIZON_DAYS must be positive")
        if self.candidate_window_days < 0:
            errors.append("CANDIDATE_WINDOW_DAYS must not be negative")
        if self.distance_threshold_km < 0:
            errors.append("DISTANCE_THRESHOLD_KM must not be negative")
        if self.geodata_max_concurrency < 1:
            errors.append("GEODATA_MAX_CONCURRENCY must be at least 1")
        if self.geodata_timeout_seconds <= 0:
            errors.append("GEODATA_TIMEOUT_SECONDS must be positive")
        try:
            ZoneInfo(self.user_timezone)
        except (ZoneInfoNotFoundError, ValueError):
            errors.append(f"USER_TIMEZONE {self.user_timezone!r} is not a known time zone")
        if self.distance_strategy == "driving" and not self.routing_api_key:
            errors.append(
                "DISTANCE_STRATEGY=driving requires ROUTING_API_KEY or GOOGLE_MAPS_API_KEY"
            )
        return errors


config = Config.load()
