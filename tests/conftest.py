"""
Shared pytest fixtures for the GateWars game-state core.

Provides:
  - FakeClock: a controllable epoch-seconds clock
  - FakeGameDataService: an in-memory Game Data Service that applies due
    upgrades only when cities or research are read, so queue listings can
    still show work whose end time has passed
  - Payload builders for cities, buildings, research and queue entries
"""

import copy
import sys
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Dict, List, Optional

import pytest

# ---------------------------------------------------------------------------
# Ensure the project root is on sys.path so we can import gatewars
# ---------------------------------------------------------------------------
PROJECT_ROOT = Path(__file__).resolve().parent.parent
if str(PROJECT_ROOT) not in sys.path:
    sys.path.insert(0, str(PROJECT_ROOT))

from gatewars.errors import NetworkError  # noqa: E402

T0 = 1_700_000_000.0
USER_ID = "user-1"
OTHER_USER_ID = "user-2"


def iso(ts: float) -> str:
    return datetime.fromtimestamp(ts, tz=timezone.utc).isoformat()


class FakeClock:
    def __init__(self, start: float = T0) -> None:
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> float:
        self.now += seconds
        return self.now


# ---------------------------------------------------------------------------
# Payload builders
# ---------------------------------------------------------------------------

def make_building(
    level: int = 1,
    production: Optional[Dict[str, float]] = None,
    cost: Optional[Dict[str, float]] = None,
    upgrade_time: float = 60,
    name: Optional[str] = None,
) -> Dict[str, Any]:
    payload: Dict[str, Any] = {
        "level": level,
        "production": production or {},
        "cost": cost if cost is not None else {"naquadah": 100, "deuterium": 50, "trinium": 25},
        "upgrade_time": upgrade_time,
    }
    if name is not None:
        payload["name"] = name
    return payload


def make_city(
    city_id: str = "city-1",
    user_id: str = USER_ID,
    name: str = "Abydos",
    resources: Optional[Dict[str, float]] = None,
    buildings: Optional[Dict[str, Dict[str, Any]]] = None,
    updated_at: float = T0,
    username: Optional[str] = "oneill",
    ships: Optional[Dict[str, int]] = None,
) -> Dict[str, Any]:
    resources = resources or {"naquadah": 1000, "deuterium": 500, "trinium": 250, "people": 100}
    return {
        "id": city_id,
        "user_id": user_id,
        "name": name,
        "naquadah": resources.get("naquadah", 0),
        "deuterium": resources.get("deuterium", 0),
        "trinium": resources.get("trinium", 0),
        "people": resources.get("people", 0),
        "updated_at": iso(updated_at),
        "buildings": buildings if buildings is not None else {
            "naquadah_mine": make_building(production={"naquadah": 2}),
        },
        "ships": ships or {},
        "x": 10,
        "y": 20,
        "profiles": {"username": username} if username is not None else None,
    }


def make_research(
    research_id: str,
    name: Optional[str] = None,
    level: int = 0,
    max_level: int = 10,
    base_bonus: float = 0.0,
    bonus_factor: float = 1.0,
    cost: Optional[Dict[str, float]] = None,
    requirements: Optional[Dict[str, int]] = None,
    upgrade_time: float = 120,
    bonus_type: str = "",
) -> Dict[str, Any]:
    return {
        "id": research_id,
        "name": name or research_id.replace("_", " ").title(),
        "description": "",
        "category": "military",
        "level": level,
        "max_level": max_level,
        "base_bonus": base_bonus,
        "bonus_factor": bonus_factor,
        "bonus_type": bonus_type,
        "base_cost": cost if cost is not None else {"naquadah": 200, "deuterium": 100},
        "requirements": requirements,
        "upgrade_time_base": upgrade_time,
    }


def make_queue_entry(
    target_id: str,
    start: float,
    end: float,
    from_level: int = 1,
    to_level: int = 2,
    research: bool = False,
    completed: bool = False,
    entry_id: str = "q-1",
    city_id: str = "city-1",
) -> Dict[str, Any]:
    payload: Dict[str, Any] = {
        "id": entry_id,
        "from_level": from_level,
        "to_level": to_level,
        "start_time": iso(start),
        "end_time": iso(end),
        "completed": completed,
        "end_ts": end,
        "city_id": city_id,
    }
    payload["research_id" if research else "building_id"] = target_id
    return payload


def default_research() -> List[Dict[str, Any]]:
    return [
        make_research("weapons_research", "Weapons Research", level=1, base_bonus=5, bonus_factor=1.1),
        make_research("shield_technology", "Shield Technology", level=0, base_bonus=5, bonus_factor=1.1),
        make_research(
            "hyperdrive",
            "Hyperdrive",
            max_level=5,
            requirements={"weapons_research": 2},
        ),
        make_research("capped", "Capped Research", level=3, max_level=3),
    ]


# ---------------------------------------------------------------------------
# Fake Game Data Service
# ---------------------------------------------------------------------------

class FakeGameDataService:
    def __init__(self, clock: FakeClock) -> None:
        self.clock = clock
        self.cities: Dict[str, Dict[str, Any]] = {}
        self.research: Dict[str, Dict[str, Any]] = {}
        self.upgrades: List[Dict[str, Any]] = []
        self.research_queue: List[Dict[str, Any]] = []
        self.saved: List[tuple] = []
        self.calls: List[str] = []
        self.offline = False
        self.auto_complete = True
        self.reject_with: Optional[str] = None
        self._next_id = 1

    def add_city(self, payload: Dict[str, Any]) -> None:
        self.cities[payload["id"]] = payload

    def _enter(self, name: str) -> None:
        self.calls.append(name)
        if self.offline:
            raise NetworkError("service offline")

    def _complete_due(self) -> None:
        if not self.auto_complete:
            return
        now = self.clock()
        for entry in self.upgrades:
            if not entry["completed"] and entry["end_ts"] <= now:
                entry["completed"] = True
                building = self.cities[entry["city_id"]]["buildings"][entry["building_id"]]
                building["level"] = entry["to_level"]
        for entry in self.research_queue:
            if not entry["completed"] and entry["end_ts"] <= now:
                entry["completed"] = True
                self.research[entry["research_id"]]["level"] = entry["to_level"]

    def _new_id(self) -> str:
        value = f"q-{self._next_id}"
        self._next_id += 1
        return value

    async def fetch_cities(self, user_id: str) -> List[Dict[str, Any]]:
        self._enter("fetch_cities")
        self._complete_due()
        return copy.deepcopy(list(self.cities.values()))

    async def fetch_research(self, user_id: str) -> List[Dict[str, Any]]:
        self._enter("fetch_research")
        self._complete_due()
        return copy.deepcopy(list(self.research.values()))

    async def fetch_active_upgrades(self, city_id: str) -> List[Dict[str, Any]]:
        self._enter("fetch_active_upgrades")
        return copy.deepcopy(
            [e for e in self.upgrades if e["city_id"] == city_id and not e["completed"]]
        )

    async def fetch_active_research_queue(self, user_id: str) -> List[Dict[str, Any]]:
        self._enter("fetch_active_research_queue")
        return copy.deepcopy([e for e in self.research_queue if not e["completed"]])

    async def request_building_upgrade(self, city_id: str, building_id: str) -> Dict[str, Any]:
        self._enter("request_building_upgrade")
        if self.reject_with:
            return {"success": False, "message": self.reject_with}
        building = self.cities[city_id]["buildings"][building_id]
        now = self.clock()
        entry = make_queue_entry(
            building_id,
            start=now,
            end=now + building.get("upgrade_time", 60),
            from_level=building["level"],
            to_level=building["level"] + 1,
            entry_id=self._new_id(),
            city_id=city_id,
        )
        self.upgrades.append(entry)
        return {"success": True, "upgrade": copy.deepcopy(entry)}

    async def request_research_start(self, research_id: str) -> Dict[str, Any]:
        self._enter("request_research_start")
        if self.reject_with:
            return {"success": False, "message": self.reject_with}
        item = self.research[research_id]
        now = self.clock()
        entry = make_queue_entry(
            research_id,
            start=now,
            end=now + item["upgrade_time_base"],
            from_level=item["level"],
            to_level=item["level"] + 1,
            research=True,
            entry_id=self._new_id(),
        )
        self.research_queue.append(entry)
        return {"success": True, "end_time": entry["end_time"]}

    async def persist_resources(self, city_id: str, resources: Dict[str, int]) -> None:
        self._enter("persist_resources")
        self.saved.append((city_id, dict(resources)))
        city = self.cities[city_id]
        city.update(resources)
        city["updated_at"] = iso(self.clock())


# ---------------------------------------------------------------------------
# Fixtures
# ---------------------------------------------------------------------------

@pytest.fixture()
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture()
def service(clock: FakeClock) -> FakeGameDataService:
    svc = FakeGameDataService(clock)
    svc.add_city(make_city())
    svc.add_city(
        make_city(
            "city-2",
            name="Chulak",
            resources={"naquadah": 50, "deuterium": 0, "trinium": 0, "people": 10},
            buildings={"trinium_mine": make_building(production={"trinium": 1})},
        )
    )
    svc.add_city(make_city("city-9", user_id=OTHER_USER_ID, name="Dakara", username="teal_c"))
    for payload in default_research():
        svc.research[payload["id"]] = payload
    return svc


class FixedRandom:
    """Random source that returns a fixed fraction of every range."""

    def __init__(self, luck: float = 1.0, base_losses: Optional[float] = None) -> None:
        self.luck = luck
        self.base_losses = base_losses
        self.draws: List[tuple] = []

    def uniform(self, a: float, b: float) -> float:
        self.draws.append((a, b))
        if len(self.draws) % 2 == 1:
            return self.luck
        return self.base_losses if self.base_losses is not None else (a + b) / 2
