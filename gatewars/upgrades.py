#!/usr/bin/env python3
"""
Tracking of in-flight building upgrades and the account-wide research slot.

Each target moves Idle -> Upgrading -> (due) -> Idle. The level bump is never
computed here: once an entry is due, the tracker fetches fresh city and
research state from the Game Data Service and hands it back as a snapshot for
the coordinator to ingest.
"""
from __future__ import annotations

import logging
import math
import time
from dataclasses import dataclass, field
from datetime import timedelta
from typing import Callable, Dict, Iterable, List, Optional, Set

from gatewars.errors import (
    CommandResult,
    NetworkError,
    SnapshotError,
    StateError,
    ValidationError,
)
from gatewars.helper.snapshot_helpers import (
    SnapshotBundle,
    build_snapshot,
    parse_queue,
    parse_research_response,
    parse_upgrade_response,
    queue_entry_from_payload,
    to_epoch,
)
from gatewars.infra.data_service import GameDataService
from gatewars.models import Building, GameState, QueueKind, ResearchType, UpgradeQueueEntry

logger = logging.getLogger(__name__)

RESEARCH_SLOT = "research"

# fallback when the service confirms without telling us when the work ends
MIN_FALLBACK_DURATION = 1.0


def time_remaining(end_time: Optional[float], now: float) -> Optional[timedelta]:
    """Time left until `end_time`, or None once it has passed (or is unknown)."""
    if end_time is None or not math.isfinite(end_time) or now >= end_time:
        return None
    return timedelta(seconds=min(end_time - now, timedelta.max.days * 86400.0))


def format_duration(seconds: float, with_seconds: bool = False) -> str:
    if not seconds or not math.isfinite(seconds) or seconds < 0:
        seconds = 0
    total = int(seconds)
    hours = total // 3600
    minutes = (total % 3600) // 60
    if with_seconds:
        return f"{hours}h {minutes}m {total % 60}s"
    return f"{hours}h {minutes}m"


def _building_key(building_id: str) -> str:
    return f"building:{building_id}"


@dataclass
class ReconcileReport:
    due_buildings: List[str] = field(default_factory=list)
    due_research: List[str] = field(default_factory=list)
    untracked: List[str] = field(default_factory=list)
    snapshot: Optional[SnapshotBundle] = None

    @property
    def changed(self) -> bool:
        return bool(self.due_buildings or self.due_research or self.untracked)


class UpgradeQueueTracker:
    def __init__(
        self,
        service: GameDataService,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self.service = service
        self.clock = clock
        self.building_entries: Dict[str, UpgradeQueueEntry] = {}
        self.research_entry: Optional[UpgradeQueueEntry] = None
        self.in_flight: Set[str] = set()

    # --- state -------------------------------------------------------------
    def load(
        self,
        building_queue: Iterable[UpgradeQueueEntry],
        research_queue: Iterable[UpgradeQueueEntry],
    ) -> None:
        """Replace every tracked entry with the ones from a fresh snapshot."""
        self.building_entries = {}
        for entry in sorted(building_queue, key=lambda e: e.end_time):
            if entry.completed:
                continue
            # one incomplete entry per building: keep the soonest
            self.building_entries.setdefault(entry.target_id, entry)
        self.research_entry = next(
            (entry for entry in sorted(research_queue, key=lambda e: e.end_time) if not entry.completed),
            None,
        )

    @property
    def entries(self) -> List[UpgradeQueueEntry]:
        out = list(self.building_entries.values())
        if self.research_entry is not None:
            out.append(self.research_entry)
        return out

    def due_entries(self, now: Optional[float] = None) -> List[UpgradeQueueEntry]:
        current = self.clock() if now is None else now
        return [entry for entry in self.entries if entry.is_due(current)]

    def is_busy(self, building_id: str) -> bool:
        return building_id in self.building_entries or _building_key(building_id) in self.in_flight

    @property
    def research_busy(self) -> bool:
        return self.research_entry is not None or RESEARCH_SLOT in self.in_flight

    # --- eligibility -------------------------------------------------------
    def check_building(self, state: GameState, building_id: str) -> Building:
        city = state.current_city
        if city is None:
            raise StateError("No city selected")
        building = city.buildings.get(building_id)
        if building is None:
            raise ValidationError(f"Unknown building: {building_id}")
        if building.upgrading or building_id in self.building_entries:
            raise ValidationError(f"{building.name} is already being upgraded")
        if _building_key(building_id) in self.in_flight:
            raise ValidationError(f"An upgrade request for {building.name} is already pending")
        missing = state.resources.shortfall(building.upgrade_cost)
        if missing:
            raise ValidationError(f"Insufficient resources: {', '.join(missing)}")
        return building

    def check_research(self, state: GameState, research_id: str) -> ResearchType:
        item = state.research.get(research_id)
        if item is None:
            raise ValidationError(f"Unknown research: {research_id}")
        if self.research_busy or state.active_research is not None:
            raise ValidationError("Another research is already in progress")
        if item.level >= item.max_level:
            raise ValidationError(f"{item.name} is already at maximum level")
        unmet = []
        for required_id, min_level in item.requirements.items():
            required = state.research.get(required_id)
            if required is None or required.level < min_level:
                label = required.name if required is not None else required_id
                unmet.append(f"{label} level {min_level}")
        if unmet:
            raise ValidationError(f"Requirements not met: {', '.join(unmet)}")
        missing = state.resources.shortfall(item.cost)
        if missing:
            raise ValidationError(f"Insufficient resources: {', '.join(missing)}")
        return item

    # --- commands ----------------------------------------------------------
    async def start_building_upgrade(self, state: GameState, building_id: str) -> CommandResult:
        try:
            building = self.check_building(state, building_id)
        except (ValidationError, StateError) as exc:
            return CommandResult.failed(str(exc))

        city_id = state.current_city_id
        key = _building_key(building_id)
        self.in_flight.add(key)
        try:
            raw = await self.service.request_building_upgrade(city_id, building_id)
            response = parse_upgrade_response(raw)
        except NetworkError as exc:
            logger.warning("building upgrade request failed city=%s building=%s: %s", city_id, building_id, exc)
            return CommandResult.failed("Game data service unavailable, try again")
        except SnapshotError as exc:
            logger.warning("unexpected building upgrade response: %s", exc)
            return CommandResult.failed("Unexpected response from game data service")
        finally:
            self.in_flight.discard(key)

        if not response.success:
            return CommandResult.failed(response.message or "Upgrade rejected")

        now = self.clock()
        if response.upgrade is not None:
            entry = queue_entry_from_payload(response.upgrade, QueueKind.BUILDING)
        else:
            entry = UpgradeQueueEntry(
                kind=QueueKind.BUILDING,
                target_id=building_id,
                from_level=building.level,
                to_level=building.level + 1,
                start_time=now,
                end_time=now + max(building.upgrade_duration_seconds, MIN_FALLBACK_DURATION),
            )

        # a snapshot may have been ingested while we waited on the service
        if state.current_city_id != city_id:
            logger.info("current city changed during upgrade request; leaving state to next snapshot")
            return CommandResult.ok(end_time=entry.end_time)
        current = state.buildings.get(building_id)
        if building_id in self.building_entries or (
            current is not None and (current.upgrading or current.level != building.level)
        ):
            # the ingested snapshot already carries the deduction and the queue entry
            logger.info("building upgrade already in snapshot city=%s building=%s", city_id, building_id)
            return CommandResult.ok(end_time=entry.end_time)
        if current is not None:
            current.start_upgrade(entry.end_time)
            state.resources = state.resources.minus(current.upgrade_cost)
        self.building_entries[building_id] = entry
        state.building_queue.append(entry)
        logger.info(
            "building upgrade started city=%s building=%s level %d->%d ends=%.0f",
            city_id, building_id, entry.from_level, entry.to_level, entry.end_time,
        )
        return CommandResult.ok(end_time=entry.end_time)

    async def start_research(self, state: GameState, research_id: str) -> CommandResult:
        try:
            item = self.check_research(state, research_id)
        except ValidationError as exc:
            return CommandResult.failed(str(exc))

        self.in_flight.add(RESEARCH_SLOT)
        try:
            raw = await self.service.request_research_start(research_id)
            response = parse_research_response(raw)
        except NetworkError as exc:
            logger.warning("research request failed research=%s: %s", research_id, exc)
            return CommandResult.failed("Game data service unavailable, try again")
        except SnapshotError as exc:
            logger.warning("unexpected research response: %s", exc)
            return CommandResult.failed("Unexpected response from game data service")
        finally:
            self.in_flight.discard(RESEARCH_SLOT)

        if not response.success:
            return CommandResult.failed(response.message or "Research rejected")

        now = self.clock()
        if response.end_time is not None:
            end_time = to_epoch(response.end_time)
        else:
            end_time = now + max(item.duration_seconds, MIN_FALLBACK_DURATION)
        entry = UpgradeQueueEntry(
            kind=QueueKind.RESEARCH,
            target_id=research_id,
            from_level=item.level,
            to_level=item.level + 1,
            start_time=min(now, end_time - MIN_FALLBACK_DURATION),
            end_time=end_time,
        )

        current = state.research.get(research_id)
        if self.research_entry is not None or (
            current is not None and (current.researching or current.level != item.level)
        ):
            logger.info("research already in snapshot research=%s", research_id)
            return CommandResult.ok(end_time=end_time)
        if current is not None:
            current.researching = True
            current.research_ends_at = end_time
            state.resources = state.resources.minus(current.cost)
        self.research_entry = entry
        state.research_queue.append(entry)
        logger.info("research started research=%s level %d->%d", research_id, entry.from_level, entry.to_level)
        return CommandResult.ok(end_time=end_time)

    # --- reconciliation ----------------------------------------------------
    async def reconcile(self, state: GameState, now: Optional[float] = None) -> ReconcileReport:
        """
        Poll the service for completion of tracked work.

        A tracked entry is due once its end time has passed or the service
        stops listing it. Entries the service lists that we do not track
        (started elsewhere) also count as a change. Only on a change are
        cities and research re-fetched; the resulting snapshot is attached
        to the report. NetworkError, SnapshotError and StateError propagate.
        """
        report = ReconcileReport()
        city = state.current_city
        if city is None or state.user_id is None:
            return report
        current = self.clock() if now is None else now

        upgrade_payloads = list(await self.service.fetch_active_upgrades(city.id))
        queue_payloads = list(await self.service.fetch_active_research_queue(state.user_id))
        listed_buildings = {
            entry.target_id: entry
            for entry in parse_queue(upgrade_payloads, QueueKind.BUILDING)
            if not entry.completed
        }
        listed_research = {
            entry.target_id: entry
            for entry in parse_queue(queue_payloads, QueueKind.RESEARCH)
            if not entry.completed
        }

        for building_id, entry in self.building_entries.items():
            if entry.is_due(current) or building_id not in listed_buildings:
                report.due_buildings.append(building_id)
        for building_id, entry in listed_buildings.items():
            if building_id in self.building_entries:
                continue
            if entry.is_due(current):
                report.due_buildings.append(building_id)
            else:
                report.untracked.append(building_id)

        if self.research_entry is not None:
            rid = self.research_entry.target_id
            if self.research_entry.is_due(current) or rid not in listed_research:
                report.due_research.append(rid)
        for rid, entry in listed_research.items():
            if self.research_entry is not None and rid == self.research_entry.target_id:
                continue
            if entry.is_due(current):
                report.due_research.append(rid)
            else:
                report.untracked.append(rid)

        if not report.changed:
            return report

        logger.info(
            "queue change detected city=%s buildings=%s research=%s untracked=%s",
            city.id, report.due_buildings, report.due_research, report.untracked,
        )
        city_payloads = await self.service.fetch_cities(state.user_id)
        research_payloads = await self.service.fetch_research(state.user_id)
        report.snapshot = build_snapshot(
            state.user_id,
            city_payloads,
            research_payloads,
            upgrade_payloads,
            queue_payloads,
            now=current,
            current_city_id=city.id,
        )
        return report
