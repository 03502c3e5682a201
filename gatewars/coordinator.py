#!/usr/bin/env python3
"""
Coordinator owning the GameState of one signed-in user.

All mutation of the state goes through this class. It runs three
fixed-interval loops on one asyncio event loop:

- resource tick: extrapolates resources locally between snapshots
- reconciliation poll: asks the Game Data Service whether queued work finished
- persistence save: writes the floored extrapolated totals upstream

and, when a change feed is configured, a consumer that refreshes the
snapshot as soon as the current city changes upstream. Every authoritative
snapshot supersedes local state wholesale.
"""
from __future__ import annotations

import asyncio
import contextlib
import logging
import time
from datetime import timedelta
from typing import Callable, Dict, Mapping, Optional

from gatewars.accrual import ResourceAccrualEngine, production_rate
from gatewars.combat import BattleFactors, BattleReport, CombatResolver, RandomSource
from gatewars.errors import CommandResult, NetworkError, SnapshotError, StateError
from gatewars.helper.snapshot_helpers import (
    SnapshotBundle,
    build_snapshot,
    parse_cities,
    pick_current_city,
)
from gatewars.infra.change_feed import ChangeFeed, ChangeFilter, PollingChangeFeed, RedisChangeFeed
from gatewars.infra.data_service import GameDataService
from gatewars.models import GAME_CONFIG, CoordinatorSettings, GameState, ResourceVector, Ship
from gatewars.state_utils import snapshot_from_state
from gatewars.upgrades import ReconcileReport, UpgradeQueueTracker, time_remaining

logger = logging.getLogger(__name__)

NO_USER = "No authenticated user found"
INIT_FAILED = "Failed to initialize game data"
NO_CITY = "No city selected"


class GameStateCoordinator:
    def __init__(
        self,
        service: GameDataService,
        user_id: Optional[str],
        *,
        settings: Optional[CoordinatorSettings] = None,
        clock: Callable[[], float] = time.time,
        rng: Optional[RandomSource] = None,
        change_feed: Optional[ChangeFeed] = None,
        ships: Optional[Mapping[str, Ship]] = None,
    ) -> None:
        self.service = service
        self.settings = settings or CoordinatorSettings()
        self.clock = clock
        self.rng = rng
        self.change_feed = change_feed
        self.ships: Mapping[str, Ship] = ships if ships is not None else GAME_CONFIG.ship_catalog
        self.state = GameState(user_id=user_id)
        self.accrual = ResourceAccrualEngine(clock=clock)
        self.tracker = UpgradeQueueTracker(service, clock=clock)
        self._stop = asyncio.Event()

    @classmethod
    def from_settings(
        cls,
        service: GameDataService,
        settings: Optional[CoordinatorSettings] = None,
        **kwargs,
    ) -> "GameStateCoordinator":
        settings = settings or CoordinatorSettings()
        coordinator = cls(service, settings.user_id, settings=settings, **kwargs)
        if "change_feed" not in kwargs:
            if settings.change_feed_enabled:
                coordinator.change_feed = RedisChangeFeed()
            else:
                coordinator.change_feed = PollingChangeFeed(
                    coordinator.city_version, settings.reconcile_poll_seconds
                )
        return coordinator

    @property
    def ready(self) -> bool:
        return self.state.status == "ready"

    def _fail(self, message: str) -> None:
        self.state.status = "error"
        self.state.error = message
        logger.error("coordinator error: %s", message)

    # --- snapshots ---------------------------------------------------------
    async def _fetch_snapshot(self) -> SnapshotBundle:
        user_id = self.state.user_id
        if not user_id:
            raise StateError(NO_USER)
        city_payloads = list(await self.service.fetch_cities(user_id))
        city_id = pick_current_city(
            parse_cities(city_payloads, user_id), user_id, self.state.current_city_id
        )
        research_payloads = await self.service.fetch_research(user_id)
        upgrade_payloads = await self.service.fetch_active_upgrades(city_id)
        queue_payloads = await self.service.fetch_active_research_queue(user_id)
        return build_snapshot(
            user_id,
            city_payloads,
            research_payloads,
            upgrade_payloads,
            queue_payloads,
            now=self.clock(),
            current_city_id=city_id,
        )

    async def city_version(self, change_filter: ChangeFilter) -> Optional[str]:
        """`updated_at` stamp of the watched city, as the service reports it."""
        user_id = self.state.user_id
        # None once another city is selected, so the subscription turns over
        if not user_id or change_filter.row_id != self.state.current_city_id:
            return None
        for payload in await self.service.fetch_cities(user_id):
            if str(payload.get("id")) == change_filter.row_id:
                return payload.get("updated_at")
        return None

    async def initialize(self) -> bool:
        if not self.state.user_id:
            self._fail(NO_USER)
            return False
        self.state.status = "loading"
        self.state.error = None
        try:
            bundle = await self._fetch_snapshot()
        except StateError as exc:
            self._fail(str(exc))
            return False
        except (NetworkError, SnapshotError) as exc:
            logger.warning("initial snapshot failed: %s", exc)
            self._fail(INIT_FAILED)
            return False
        self.ingest_snapshot(bundle)
        logger.info(
            "initialized user=%s city=%s cities=%d research=%d",
            bundle.user_id, bundle.current_city_id, len(bundle.cities), len(bundle.research),
        )
        return True

    async def retry_initialization(self) -> bool:
        self.state.status = "loading"
        self.state.error = None
        return await self.initialize()

    def ingest_snapshot(self, bundle: SnapshotBundle) -> None:
        """Replace local state with an authoritative snapshot."""
        state = self.state
        taken_at = min(bundle.taken_at, self.clock())
        state.user_id = bundle.user_id
        state.cities = bundle.cities
        state.current_city_id = bundle.current_city_id
        state.research = bundle.research
        state.building_queue = list(bundle.building_queue)
        state.research_queue = list(bundle.research_queue)
        state.resources = bundle.current_city.resources
        state.last_update = taken_at
        state.status = "ready"
        state.error = None
        self.accrual.reset(taken_at)
        self.tracker.load(state.building_queue, state.research_queue)

    async def refresh_snapshot(self) -> bool:
        try:
            bundle = await self._fetch_snapshot()
        except NetworkError as exc:
            logger.warning("snapshot refresh failed: %s", exc)
            return False
        except SnapshotError as exc:
            logger.warning("discarding malformed snapshot: %s", exc)
            return False
        except StateError as exc:
            self._fail(str(exc))
            return False
        self.ingest_snapshot(bundle)
        return True

    async def set_current_city(self, city_id: str) -> CommandResult:
        city = self.state.cities.get(city_id)
        if city is None:
            return CommandResult.failed(f"Unknown city: {city_id}")
        if city.user_id != self.state.user_id:
            return CommandResult.failed("Cannot manage another player's city")
        if city_id == self.state.current_city_id:
            return CommandResult.ok()

        now = self.clock()
        taken_at = min(city.updated_at, now) if city.updated_at is not None else now
        self.state.current_city_id = city_id
        self.state.resources = city.resources
        self.state.last_update = taken_at
        self.accrual.reset(taken_at)
        # building queues are per city
        self.state.building_queue = []
        self.tracker.load([], self.state.research_queue)
        logger.info("switched to city=%s", city_id)
        await self.refresh_snapshot()
        return CommandResult.ok()

    # --- periodic work -----------------------------------------------------
    def tick(self, now: Optional[float] = None) -> ResourceVector:
        if not self.ready or self.state.current_city is None:
            return self.state.resources
        self.state.resources = self.accrual.update(
            self.state.resources, self.state.buildings.values(), now=now
        )
        self.state.last_update = self.accrual.last_update
        return self.state.resources

    async def persist_resources(self) -> bool:
        city = self.state.current_city
        if not self.ready or city is None:
            return False
        amounts = self.state.resources.floored()
        try:
            await self.service.persist_resources(city.id, amounts)
        except NetworkError as exc:
            logger.warning("resource save failed city=%s: %s", city.id, exc)
            return False
        logger.debug("resources saved city=%s %s", city.id, amounts)
        return True

    async def reconcile(self, now: Optional[float] = None) -> Optional[ReconcileReport]:
        if not self.ready:
            return None
        try:
            report = await self.tracker.reconcile(self.state, now=now)
        except NetworkError as exc:
            logger.warning("reconciliation poll failed: %s", exc)
            return None
        except SnapshotError as exc:
            logger.warning("discarding malformed queue data: %s", exc)
            return None
        except StateError as exc:
            self._fail(str(exc))
            return None
        if report.snapshot is not None:
            self.ingest_snapshot(report.snapshot)
        return report

    # --- commands ----------------------------------------------------------
    async def request_building_upgrade(self, building_id: str) -> CommandResult:
        if not self.ready or self.state.current_city is None:
            return CommandResult.failed(NO_CITY)
        return await self.tracker.start_building_upgrade(self.state, building_id)

    async def request_research_start(self, research_id: str) -> CommandResult:
        if not self.ready or self.state.current_city is None:
            return CommandResult.failed(NO_CITY)
        return await self.tracker.start_research(self.state, research_id)

    def simulate_combat(
        self,
        attacker_fleet: Mapping[str, int],
        defender_fleet: Mapping[str, int],
        attacker_levels: Optional[Mapping[str, int]] = None,
        defender_levels: Optional[Mapping[str, int]] = None,
        factors: Optional[BattleFactors] = None,
    ) -> BattleReport:
        resolver = CombatResolver(self.ships, self.state.research, rng=self.rng)
        if self.rng is None:
            # keep one source so repeated simulations draw from the same stream
            self.rng = resolver.rng
        return resolver.resolve(
            attacker_fleet,
            defender_fleet,
            attacker_levels=attacker_levels,
            defender_levels=defender_levels,
            factors=factors,
        )

    # --- queries -----------------------------------------------------------
    def production_rate(self) -> ResourceVector:
        return production_rate(self.state.buildings.values())

    def time_remaining(self, end_time: Optional[float]) -> Optional[timedelta]:
        return time_remaining(end_time, self.clock())

    def snapshot(self) -> Dict:
        return snapshot_from_state(self.state, self.clock())

    # --- loops -------------------------------------------------------------
    async def _sleep(self, seconds: float) -> None:
        try:
            await asyncio.wait_for(self._stop.wait(), timeout=seconds)
        except asyncio.TimeoutError:
            pass

    async def _resource_loop(self) -> None:
        while not self._stop.is_set():
            try:
                self.tick()
            except Exception:  # pragma: no cover - background safety
                logger.exception("resource tick failed")
            await self._sleep(self.settings.resource_tick_seconds)

    async def _reconcile_loop(self) -> None:
        while not self._stop.is_set():
            try:
                await self.reconcile()
            except Exception:  # pragma: no cover - background safety
                logger.exception("reconciliation poll failed")
            await self._sleep(self.settings.reconcile_poll_seconds)

    async def _persist_loop(self) -> None:
        while not self._stop.is_set():
            await self._sleep(self.settings.persist_save_seconds)
            if self._stop.is_set():
                break
            try:
                await self.persist_resources()
            except Exception:  # pragma: no cover - background safety
                logger.exception("resource save failed")

    async def _change_feed_loop(self) -> None:
        feed = self.change_feed
        while feed is not None and not self._stop.is_set():
            city_id = self.state.current_city_id
            if not self.ready or city_id is None:
                await self._sleep(self.settings.reconcile_poll_seconds)
                continue
            try:
                async with contextlib.aclosing(feed.subscribe(ChangeFilter("cities", city_id))) as events:
                    async for event in events:
                        logger.debug("change event %s %s/%s", event.kind, event.table, event.row_id)
                        await self.refresh_snapshot()
                        if self._stop.is_set() or self.state.current_city_id != city_id:
                            break
            except NetworkError as exc:
                logger.warning("change feed unavailable: %s", exc)
                await self._sleep(self.settings.reconcile_poll_seconds)
            except Exception:  # pragma: no cover - background safety
                logger.exception("change feed consumer failed")
                await self._sleep(self.settings.reconcile_poll_seconds)

    async def run(self) -> None:
        if not self.ready:
            await self.initialize()
        self._stop.clear()
        logger.info(
            "coordinator loops starting tick=%ss poll=%ss save=%ss feed=%s",
            self.settings.resource_tick_seconds,
            self.settings.reconcile_poll_seconds,
            self.settings.persist_save_seconds,
            type(self.change_feed).__name__ if self.change_feed else None,
        )
        feed_task = None
        if self.change_feed is not None:
            feed_task = asyncio.create_task(self._change_feed_loop())
        try:
            await asyncio.gather(
                self._resource_loop(),
                self._reconcile_loop(),
                self._persist_loop(),
            )
        finally:
            if feed_task is not None:
                feed_task.cancel()
                with contextlib.suppress(asyncio.CancelledError):
                    await feed_task
                await self.change_feed.close()
            await self.persist_resources()
            logger.info("coordinator loops stopped")

    def stop(self) -> None:
        self._stop.set()
