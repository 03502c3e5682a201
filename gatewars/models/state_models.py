from __future__ import annotations

import math
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Mapping, Optional


class ResourceKind(str, Enum):
    NAQUADAH = "naquadah"
    DEUTERIUM = "deuterium"
    TRINIUM = "trinium"
    PEOPLE = "people"


RESOURCE_KINDS: tuple[str, ...] = tuple(kind.value for kind in ResourceKind)


def as_amount(value: Any) -> float:
    """Coerce a raw amount to a finite float; anything unusable counts as 0."""
    if isinstance(value, bool):
        return 0.0
    try:
        amount = float(value)
    except (TypeError, ValueError):
        return 0.0
    if not math.isfinite(amount):
        return 0.0
    return amount


@dataclass(frozen=True)
class ResourceVector:
    naquadah: float = 0.0
    deuterium: float = 0.0
    trinium: float = 0.0
    people: float = 0.0

    @classmethod
    def from_mapping(cls, data: Optional[Mapping[str, Any]]) -> "ResourceVector":
        if not data:
            return cls()
        return cls(**{kind: as_amount(data.get(kind)) for kind in RESOURCE_KINDS})

    def get(self, kind: ResourceKind | str) -> float:
        return getattr(self, ResourceKind(kind).value)

    def plus(self, other: "ResourceVector") -> "ResourceVector":
        return ResourceVector(
            naquadah=self.naquadah + other.naquadah,
            deuterium=self.deuterium + other.deuterium,
            trinium=self.trinium + other.trinium,
            people=self.people + other.people,
        )

    def scaled(self, factor: float) -> "ResourceVector":
        return ResourceVector(
            naquadah=self.naquadah * factor,
            deuterium=self.deuterium * factor,
            trinium=self.trinium * factor,
            people=self.people * factor,
        )

    def minus(self, cost: "ResourceVector") -> "ResourceVector":
        """Subtract a cost; no field goes below zero."""
        return ResourceVector(
            naquadah=self.naquadah - cost.naquadah,
            deuterium=self.deuterium - cost.deuterium,
            trinium=self.trinium - cost.trinium,
            people=self.people - cost.people,
        ).clamped()

    def clamped(self) -> "ResourceVector":
        return ResourceVector(
            naquadah=max(0.0, self.naquadah),
            deuterium=max(0.0, self.deuterium),
            trinium=max(0.0, self.trinium),
            people=max(0.0, self.people),
        )

    def covers(self, cost: "ResourceVector") -> bool:
        return all(self.get(kind) >= cost.get(kind) for kind in RESOURCE_KINDS)

    def shortfall(self, cost: "ResourceVector") -> List[str]:
        return [kind for kind in RESOURCE_KINDS if self.get(kind) < cost.get(kind)]

    def floored(self) -> Dict[str, int]:
        # upstream stores whole units
        return {kind: int(math.floor(max(0.0, self.get(kind)))) for kind in RESOURCE_KINDS}

    def as_dict(self) -> Dict[str, float]:
        return {kind: self.get(kind) for kind in RESOURCE_KINDS}


class QueueKind(str, Enum):
    BUILDING = "building"
    RESEARCH = "research"


@dataclass
class Building:
    id: str
    name: str
    level: int = 1
    production: ResourceVector = field(default_factory=ResourceVector)
    upgrade_cost: ResourceVector = field(default_factory=ResourceVector)
    upgrade_duration_seconds: float = 0.0
    description: str = ""
    upgrading: bool = False
    upgrade_ends_at: Optional[float] = None  # epoch seconds

    def start_upgrade(self, ends_at: float) -> None:
        self.upgrading = True
        self.upgrade_ends_at = ends_at

    def finish_upgrade(self, level: int) -> None:
        self.level = level
        self.upgrading = False
        self.upgrade_ends_at = None


@dataclass
class ResearchType:
    id: str
    name: str
    level: int = 0
    max_level: int = 1
    base_bonus: float = 0.0
    bonus_factor: float = 1.0
    bonus_type: str = ""
    cost: ResourceVector = field(default_factory=ResourceVector)
    requirements: Dict[str, int] = field(default_factory=dict)
    duration_seconds: float = 0.0
    category: str = ""
    description: str = ""
    researching: bool = False
    research_ends_at: Optional[float] = None

    def bonus_percent(self, level: Optional[int] = None) -> float:
        lvl = self.level if level is None else level
        return self.base_bonus * (self.bonus_factor ** lvl)

    def bonus_multiplier(self, level: Optional[int] = None) -> float:
        return 1.0 + self.bonus_percent(level) / 100.0

    def clamp_level(self, level: int) -> int:
        return max(0, min(int(level), self.max_level))


@dataclass
class UpgradeQueueEntry:
    kind: QueueKind
    target_id: str  # building id or research id
    from_level: int
    to_level: int
    start_time: float
    end_time: float
    completed: bool = False
    id: Optional[str] = None

    def is_due(self, now: float) -> bool:
        return not self.completed and now >= self.end_time


@dataclass
class City:
    id: str
    user_id: str
    name: str
    resources: ResourceVector = field(default_factory=ResourceVector)
    buildings: Dict[str, Building] = field(default_factory=dict)
    ships: Dict[str, int] = field(default_factory=dict)
    x: Optional[int] = None
    y: Optional[int] = None
    updated_at: Optional[float] = None
    owner_name: Optional[str] = None

    @property
    def population(self) -> float:
        return self.resources.people


@dataclass
class GameState:
    """The single mutable snapshot owned by the coordinator."""

    user_id: Optional[str]
    cities: Dict[str, City] = field(default_factory=dict)
    current_city_id: Optional[str] = None
    research: Dict[str, ResearchType] = field(default_factory=dict)
    building_queue: List[UpgradeQueueEntry] = field(default_factory=list)
    research_queue: List[UpgradeQueueEntry] = field(default_factory=list)
    resources: ResourceVector = field(default_factory=ResourceVector)
    last_update: float = 0.0
    status: str = "loading"  # "loading" | "ready" | "error"
    error: Optional[str] = None

    @property
    def current_city(self) -> Optional[City]:
        if self.current_city_id is None:
            return None
        return self.cities.get(self.current_city_id)

    @property
    def buildings(self) -> Dict[str, Building]:
        city = self.current_city
        return city.buildings if city is not None else {}

    @property
    def active_research(self) -> Optional[UpgradeQueueEntry]:
        for entry in self.research_queue:
            if not entry.completed:
                return entry
        return None
