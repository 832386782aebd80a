from collections.abc import AsyncIterator

import pytest_asyncio

from nearbook.core.bootstrap import Geodata, build_orchestrator
from nearbook.orchestrators.booking.orchestrator import NeedToBookOrchestrator


@pytest_asyncio.fixture
async def live_search() -> AsyncIterator[tuple[NeedToBookOrchestrator, Geodata]]:
    """Orchestrator wired to the real Google services from .env, for e2e suites only."""
    orchestrator, geodata = build_orchestrator()
    try:
        yield orchestrator, geodata
    finally:
        await geodata.close()
