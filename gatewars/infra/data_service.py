#!/usr/bin/env python3
"""
Contract of the external Game Data Service.

The service is the source of truth for stored resource totals, building
levels, research levels and queued upgrades. Every method returns raw
mappings; the core validates them on ingestion. Implementations raise
NetworkError when the service cannot be reached.
"""
from __future__ import annotations

from typing import Any, Dict, List, Mapping, Protocol

RawPayload = Mapping[str, Any]


class GameDataService(Protocol):
    async def fetch_cities(self, user_id: str) -> List[RawPayload]:
        """All cities visible to the user, with nested buildings."""
        ...

    async def fetch_research(self, user_id: str) -> List[RawPayload]:
        """Research types merged with the user's current levels."""
        ...

    async def fetch_active_upgrades(self, city_id: str) -> List[RawPayload]:
        """Incomplete building upgrades of one city."""
        ...

    async def fetch_active_research_queue(self, user_id: str) -> List[RawPayload]:
        """Incomplete research entries of the user, soonest first."""
        ...

    async def request_building_upgrade(self, city_id: str, building_id: str) -> RawPayload:
        """Returns {success, message?, upgrade?}; the service checks cost and eligibility."""
        ...

    async def request_research_start(self, research_id: str) -> RawPayload:
        """Returns {success, message?, end_time?}."""
        ...

    async def persist_resources(self, city_id: str, resources: Dict[str, int]) -> None:
        ...
