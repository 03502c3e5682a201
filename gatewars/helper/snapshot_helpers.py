#!/usr/bin/env python3
"""
Validation and conversion of raw Game Data Service payloads.

Every payload crossing into the core passes through one of the pydantic
models below. Resource maps are restricted to the four known resource kinds,
requirement maps to research ids present in the same snapshot, and queue
entries must end after they start. Anything that fails raises SnapshotError.
"""
from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Dict, Iterable, List, Mapping, Optional

from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator, model_validator

from gatewars.errors import SnapshotError, StateError
from gatewars.models import GAME_CONFIG
from gatewars.models.game_config import BuildingDefaults
from gatewars.models.state_models import (
    RESOURCE_KINDS,
    Building,
    City,
    QueueKind,
    ResearchType,
    ResourceVector,
    UpgradeQueueEntry,
    as_amount,
)


def to_epoch(value: datetime) -> float:
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    return value.timestamp()


def building_display_name(building_id: str) -> str:
    return " ".join(word.capitalize() for word in building_id.split("_"))


class ResourcePayload(BaseModel):
    """Lenient resource map: unknown keys dropped, unusable amounts become 0."""

    model_config = ConfigDict(extra="ignore")

    naquadah: float = 0.0
    deuterium: float = 0.0
    trinium: float = 0.0
    people: float = 0.0

    @model_validator(mode="before")
    @classmethod
    def _coerce(cls, data: Any) -> Any:
        if data is None:
            return {}
        if not isinstance(data, Mapping):
            return {}
        return {kind: as_amount(data.get(kind)) for kind in RESOURCE_KINDS}

    def to_vector(self) -> ResourceVector:
        return ResourceVector(**self.model_dump())


class BuildingPayload(BaseModel):
    model_config = ConfigDict(extra="ignore")

    name: Optional[str] = None
    description: str = ""
    level: Optional[int] = None
    cost: Optional[ResourcePayload] = None
    production: ResourcePayload = Field(default_factory=ResourcePayload)
    upgrade_time: Optional[float] = Field(default=None, ge=0, allow_inf_nan=False)

    @field_validator("level")
    @classmethod
    def _level_positive(cls, value: Optional[int]) -> Optional[int]:
        if value is not None and value < 1:
            raise ValueError("building level must be at least 1")
        return value


class ProfilePayload(BaseModel):
    model_config = ConfigDict(extra="ignore")

    username: Optional[str] = None
    email: Optional[str] = None


class CityPayload(BaseModel):
    model_config = ConfigDict(extra="ignore")

    id: str
    user_id: str
    name: str
    naquadah: float = 0.0
    deuterium: float = 0.0
    trinium: float = 0.0
    people: Optional[float] = None
    updated_at: Optional[datetime] = None
    buildings: Dict[str, BuildingPayload] = Field(default_factory=dict)
    ships: Dict[str, int] = Field(default_factory=dict)
    x: Optional[int] = None
    y: Optional[int] = None
    profiles: Optional[ProfilePayload] = None


class ResearchPayload(BaseModel):
    model_config = ConfigDict(extra="ignore")

    id: str
    name: str
    description: str = ""
    category: str = ""
    level: int = 0
    max_level: int = Field(ge=0)
    base_bonus: float = 0.0
    bonus_factor: float = 1.0
    bonus_type: str = ""
    base_cost: ResourcePayload = Field(default_factory=ResourcePayload)
    requirements: Dict[str, int] = Field(default_factory=dict)
    upgrade_time_base: float = Field(default=0.0, ge=0, allow_inf_nan=False)

    @field_validator("requirements", mode="before")
    @classmethod
    def _none_is_empty(cls, value: Any) -> Any:
        return value or {}


class QueuePayload(BaseModel):
    model_config = ConfigDict(extra="ignore")

    id: Optional[str] = None
    building_id: Optional[str] = None
    research_id: Optional[str] = None
    from_level: int = Field(ge=0)
    to_level: int = Field(ge=1)
    start_time: datetime
    end_time: datetime
    completed: bool = False

    @model_validator(mode="after")
    def _check_window(self) -> "QueuePayload":
        if to_epoch(self.end_time) <= to_epoch(self.start_time):
            raise ValueError("end_time must be after start_time")
        return self


class UpgradeResponse(BaseModel):
    model_config = ConfigDict(extra="ignore")

    success: bool
    message: Optional[str] = None
    upgrade: Optional[QueuePayload] = None


class ResearchStartResponse(BaseModel):
    model_config = ConfigDict(extra="ignore")

    success: bool
    message: Optional[str] = None
    end_time: Optional[datetime] = None


def _validate(model: type[BaseModel], payload: Any, what: str) -> Any:
    try:
        return model.model_validate(payload)
    except ValidationError as exc:
        raise SnapshotError(f"invalid {what} payload: {exc}") from exc


def parse_city(
    payload: Mapping[str, Any],
    viewer_id: Optional[str],
    defaults: BuildingDefaults = GAME_CONFIG.building_defaults,
) -> City:
    data: CityPayload = _validate(CityPayload, payload, "city")

    buildings: Dict[str, Building] = {}
    for building_id, raw in data.buildings.items():
        cost = raw.cost.to_vector() if raw.cost is not None else defaults.upgrade_cost.to_vector()
        duration = raw.upgrade_time if raw.upgrade_time is not None else defaults.upgrade_duration_seconds
        buildings[building_id] = Building(
            id=building_id,
            name=raw.name or building_display_name(building_id),
            level=raw.level if raw.level is not None else defaults.level,
            production=raw.production.to_vector(),
            upgrade_cost=cost,
            upgrade_duration_seconds=max(0.0, float(duration)),
            description=raw.description,
        )

    owner_name = data.profiles.username if data.profiles else None
    name = data.name
    if viewer_id is not None and data.user_id != viewer_id:
        name = f"{owner_name or 'Unknown'}'s {data.name}"

    resources = ResourceVector(
        naquadah=data.naquadah,
        deuterium=data.deuterium,
        trinium=data.trinium,
        people=data.people or 0.0,
    ).clamped()

    return City(
        id=data.id,
        user_id=data.user_id,
        name=name,
        resources=resources,
        buildings=buildings,
        ships={ship_id: max(0, count) for ship_id, count in data.ships.items()},
        x=data.x,
        y=data.y,
        updated_at=to_epoch(data.updated_at) if data.updated_at else None,
        owner_name=owner_name,
    )


def parse_research(payloads: Iterable[Mapping[str, Any]]) -> Dict[str, ResearchType]:
    parsed: List[ResearchPayload] = [
        _validate(ResearchPayload, payload, "research") for payload in payloads
    ]
    known = {item.id for item in parsed}

    research: Dict[str, ResearchType] = {}
    for item in parsed:
        unknown = sorted(set(item.requirements) - known)
        if unknown:
            raise SnapshotError(
                f"research {item.id} requires unknown research: {', '.join(unknown)}"
            )
        research[item.id] = ResearchType(
            id=item.id,
            name=item.name,
            level=max(0, min(item.level, item.max_level)),
            max_level=item.max_level,
            base_bonus=item.base_bonus,
            bonus_factor=item.bonus_factor,
            bonus_type=item.bonus_type,
            cost=item.base_cost.to_vector(),
            requirements=dict(item.requirements),
            duration_seconds=item.upgrade_time_base,
            category=item.category,
            description=item.description,
        )
    return research


def queue_entry_from_payload(data: QueuePayload, kind: QueueKind) -> UpgradeQueueEntry:
    target = data.building_id if kind is QueueKind.BUILDING else data.research_id
    if not target:
        raise SnapshotError(f"{kind.value} queue entry has no target id")
    return UpgradeQueueEntry(
        kind=kind,
        target_id=target,
        from_level=data.from_level,
        to_level=data.to_level,
        start_time=to_epoch(data.start_time),
        end_time=to_epoch(data.end_time),
        completed=data.completed,
        id=data.id,
    )


def parse_queue(payloads: Iterable[Mapping[str, Any]], kind: QueueKind) -> List[UpgradeQueueEntry]:
    entries = [
        queue_entry_from_payload(_validate(QueuePayload, payload, f"{kind.value} queue"), kind)
        for payload in payloads
    ]
    return sorted(entries, key=lambda entry: entry.end_time)


def parse_upgrade_response(payload: Any) -> UpgradeResponse:
    return _validate(UpgradeResponse, payload, "upgrade response")


def parse_research_response(payload: Any) -> ResearchStartResponse:
    return _validate(ResearchStartResponse, payload, "research response")


@dataclass
class SnapshotBundle:
    """Everything one authoritative fetch returns, already validated."""

    user_id: str
    cities: Dict[str, City]
    current_city_id: str
    research: Dict[str, ResearchType]
    building_queue: List[UpgradeQueueEntry] = field(default_factory=list)
    research_queue: List[UpgradeQueueEntry] = field(default_factory=list)
    taken_at: float = 0.0

    @property
    def current_city(self) -> City:
        return self.cities[self.current_city_id]


def parse_cities(payloads: Iterable[Mapping[str, Any]], user_id: str) -> Dict[str, City]:
    cities: Dict[str, City] = {}
    for payload in payloads:
        city = parse_city(payload, viewer_id=user_id)
        cities[city.id] = city
    return cities


def pick_current_city(
    cities: Mapping[str, City], user_id: str, requested: Optional[str] = None
) -> str:
    """The requested city when the user owns it, otherwise the user's first city."""
    own = [city for city in cities.values() if city.user_id == user_id]
    if not own:
        raise StateError("No cities found")
    current = cities.get(requested) if requested else None
    if current is None or current.user_id != user_id:
        current = own[0]
    return current.id


def build_snapshot(
    user_id: str,
    city_payloads: Iterable[Mapping[str, Any]],
    research_payloads: Iterable[Mapping[str, Any]],
    upgrade_payloads: Iterable[Mapping[str, Any]],
    queue_payloads: Iterable[Mapping[str, Any]],
    now: float,
    current_city_id: Optional[str] = None,
) -> SnapshotBundle:
    """
    Assemble a SnapshotBundle from raw service payloads.

    The current city is the requested one when the user still owns it,
    otherwise the user's first city. Buildings with an unfinished queue entry
    are marked upgrading, research with an unfinished queue entry researching.
    Raises StateError if the user owns no city, SnapshotError on any
    malformed payload.
    """
    cities = parse_cities(city_payloads, user_id)
    current = cities[pick_current_city(cities, user_id, current_city_id)]

    research = parse_research(research_payloads)
    # past-due entries are left for the next reconciliation poll
    building_queue = [
        entry
        for entry in parse_queue(upgrade_payloads, QueueKind.BUILDING)
        if not entry.completed and entry.end_time > now
    ]
    research_queue = [
        entry
        for entry in parse_queue(queue_payloads, QueueKind.RESEARCH)
        if not entry.completed and entry.end_time > now
    ]

    for entry in building_queue:
        building = current.buildings.get(entry.target_id)
        if building is not None:
            building.start_upgrade(entry.end_time)
    for entry in research_queue:
        item = research.get(entry.target_id)
        if item is not None:
            item.researching = True
            item.research_ends_at = entry.end_time

    taken_at = now
    if current.updated_at is not None:
        taken_at = min(current.updated_at, now)

    return SnapshotBundle(
        user_id=user_id,
        cities=cities,
        current_city_id=current.id,
        research=research,
        building_queue=building_queue,
        research_queue=research_queue,
        taken_at=taken_at,
    )
