"""Service wiring at startup: event source, geodata clients, orchestrator."""

from dataclasses import dataclass, field, replace

from nearbook.core.config import Config, config
from nearbook.core.logger import logger
from nearbook.orchestrators.booking.constants import GeocoderProvider
from nearbook.orchestrators.booking.distance import Geocoder, RoutingService
from nearbook.orchestrators.booking.orchestrator import NeedToBookOrchestrator, SearchSettings
from nearbook.services.google_service import GoogleService
from nearbook.services.maps_client import GoogleMapsClient, NominatimGeocoder


@dataclass
class Geodata:
    """Configured geodata services; either side may be missing."""

    routing: RoutingService | None = None
    geocoder: Geocoder | None = None
    _clients: list = field(default_factory=list)

    async def close(self) -> None:
        for client in self._clients:
            await client.close()
        self._clients.clear()


def build_geodata(cfg: Config = config) -> Geodata:
    geodata = Geodata()
    maps: GoogleMapsClient | None = None
    if cfg.routing_api_key or cfg.geocoding_api_key:
        maps = GoogleMapsClient(
            routing_api_key=cfg.routing_api_key,
            geocoding_api_key=cfg.geocoding_api_key,
            timeout=cfg.geodata_timeout_seconds,
            max_connections=cfg.geodata_max_concurrency,
        )
        geodata._clients.append(maps)
        if maps.has_routing:
            geodata.routing = maps

    provider = GeocoderProvider(cfg.geocoder_provider)
    if provider == GeocoderProvider.GOOGLE and maps is not None and maps.has_geocoding:
        geodata.geocoder = maps
    elif provider == GeocoderProvider.NOMINATIM:
        nominatim = NominatimGeocoder(
            base_url=cfg.nominatim_base_url,
            user_agent=cfg.nominatim_user_agent,
            timeout=cfg.geodata_timeout_seconds,
        )
        geodata._clients.append(nominatim)
        geodata.geocoder = nominatim

    logger.debug(
        "Geodata: routing=%s geocoder=%s",
        type(geodata.routing).__name__ if geodata.routing else None,
        type(geodata.geocoder).__name__ if geodata.geocoder else None,
    )
    return geodata


def build_orchestrator(
    cfg: Config = config,
    events: GoogleService | None = None,
    geodata: Geodata | None = None,
) -> tuple[NeedToBookOrchestrator, Geodata]:
    """Orchestrator plus the geodata clients it holds (close them when done)."""
    for problem in cfg.validate():
        logger.warning("Config: %s", problem)
    geodata = geodata or build_geodata(cfg)
    events = events or GoogleService()
    settings = SearchSettings.from_config(cfg)
    # the default picked at google-auth time lives in the token file
    if events.default_calendar_id:
        settings = replace(settings, default_calendar_id=events.default_calendar_id)
    orchestrator = NeedToBookOrchestrator(
        events=events,
        routing=geodata.routing,
        geocoder=geodata.geocoder,
        settings=settings,
    )
    return orchestrator, geodata
