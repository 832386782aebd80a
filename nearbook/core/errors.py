"""Error types for the search pipeline.

Only UnauthenticatedError and UpstreamUnavailableError escape a search call.
GeodataUnavailableError is raised by geodata clients and handled inside the ranker.
"""


class NearbookError(RuntimeError):
    pass


class UnauthenticatedError(NearbookError):
    """No valid delegated Google credential."""

    def __init__(self, message: str = "Calendar not connected. Run: python -m nearbook.main google-auth"):
        super().__init__(message)


class UpstreamUnavailableError(NearbookError):
    """The calendar event source failed; there is nothing to search."""

    def __init__(self, message: str, calendar_id: str | None = None):
        super().__init__(message)
        self.calendar_id = calendar_id


class GeodataUnavailableError(NearbookError):
    """A geocoding or routing service is unreachable or refused the request."""

    def __init__(self, provider: str, reason: str):
        super().__init__(f"{provider}: {reason}")
        self.provider = provider
        self.reason = reason
