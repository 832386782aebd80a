"""Shared typed constants and defaults for the need-to-book search."""

from enum import StrEnum

DEFAULT_MARKER = "need to book"
DEFAULT_SEARCH_HORIZON_DAYS = 90
DEFAULT_CANDIDATE_WINDOW_DAYS = 7.0
DEFAULT_DISTANCE_THRESHOLD_KM = 20.0

# Time-gap estimate used when no geodata service can be used
DEFAULT_ESTIMATE_WINDOW_DAYS = 2.0
DEFAULT_ESTIMATE_KM_PER_DAY = 5.0
DEFAULT_ESTIMATE_MIN_KM = 1.0

EARTH_RADIUS_KM = 6371.0
SECONDS_PER_DAY = 24 * 60 * 60

ALL_CALENDARS = "all"


class SearchStage(StrEnum):
    """Per-call pipeline states, in order."""

    NOT_STARTED = "not_started"
    CLASSIFYING_EVENTS = "classifying_events"
    SEARCHING_CANDIDATES = "searching_candidates"
    RESOLVING_DISTANCES = "resolving_distances"
    AGGREGATING = "aggregating"
    DONE = "done"
    FAILED = "failed"


class DistanceStrategyKind(StrEnum):
    """Distance strategies in fallback priority order."""

    DRIVING = "driving"
    GREAT_CIRCLE = "great_circle"
    ESTIMATE = "estimate"


class GeocoderProvider(StrEnum):
    GOOGLE = "google"
    NOMINATIM = "nominatim"
    NONE = "none"


class WarningSource(StrEnum):
    """Prefixes for SearchWarning.source."""

    GEODATA = "geodata"
    CALENDAR = "calendar"
    TARGET = "target"
    RANKER = "ranker"
