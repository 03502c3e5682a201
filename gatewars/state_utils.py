#!/usr/bin/env python3
"""
Helpers for building view-facing snapshots from the in-memory game state.
"""
from __future__ import annotations

from typing import Optional

from gatewars.accrual import production_rate
from gatewars.models import GameState, UpgradeQueueEntry
from gatewars.upgrades import format_duration, time_remaining


def _remaining(end_time: Optional[float], now: float) -> dict:
    left = time_remaining(end_time, now)
    seconds = left.total_seconds() if left is not None else 0.0
    return {
        "remaining_seconds": seconds,
        "remaining": format_duration(seconds, with_seconds=True) if left is not None else None,
    }


def _queue_payload(entry: UpgradeQueueEntry, now: float) -> dict:
    return {
        "id": entry.id,
        "kind": entry.kind.value,
        "target_id": entry.target_id,
        "from_level": entry.from_level,
        "to_level": entry.to_level,
        "start_time": entry.start_time,
        "end_time": entry.end_time,
        **_remaining(entry.end_time, now),
    }


def snapshot_from_state(state: GameState, now: float) -> dict:
    """
    Generate a read-model payload of the current state for views.

    Resource amounts are floored to whole units; timers are expressed as
    seconds left relative to `now` so nothing downstream has to poll.
    """
    city = state.current_city
    buildings_payload = []
    for building in state.buildings.values():
        buildings_payload.append(
            {
                "id": building.id,
                "name": building.name,
                "level": building.level,
                "upgrading": building.upgrading,
                "upgrade_ends_at": building.upgrade_ends_at,
                "upgrade_cost": building.upgrade_cost.floored(),
                "production": building.production.as_dict(),
                "affordable": state.resources.covers(building.upgrade_cost),
                **_remaining(building.upgrade_ends_at, now),
            }
        )

    research_payload = []
    for item in state.research.values():
        research_payload.append(
            {
                "id": item.id,
                "name": item.name,
                "category": item.category,
                "level": item.level,
                "max_level": item.max_level,
                "bonus_type": item.bonus_type,
                "bonus_percent": item.bonus_percent(),
                "researching": item.researching,
                "research_ends_at": item.research_ends_at,
                "cost": item.cost.floored(),
                "requirements": dict(item.requirements),
                **_remaining(item.research_ends_at, now),
            }
        )

    cities_payload = [
        {
            "id": c.id,
            "name": c.name,
            "owner": c.owner_name,
            "own": c.user_id == state.user_id,
            "x": c.x,
            "y": c.y,
            "ships": dict(c.ships),
        }
        for c in state.cities.values()
    ]

    return {
        "status": state.status,
        "error": state.error,
        "user_id": state.user_id,
        "current_city_id": state.current_city_id,
        "current_city": city.name if city is not None else None,
        "population": int(state.resources.people),
        "resources": state.resources.floored(),
        "production_per_second": production_rate(state.buildings.values()).as_dict(),
        "last_update": state.last_update,
        "buildings": buildings_payload,
        "research": research_payload,
        "building_queue": [_queue_payload(e, now) for e in state.building_queue if not e.completed],
        "research_queue": [_queue_payload(e, now) for e in state.research_queue if not e.completed],
        "cities": cities_payload,
    }
