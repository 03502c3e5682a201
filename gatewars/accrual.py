#!/usr/bin/env python3
"""
Local resource extrapolation between authoritative snapshots.
"""
from __future__ import annotations

import time
from typing import Callable, Iterable, Mapping, Optional

from gatewars.models import Building, ResourceVector
from gatewars.models.state_models import as_amount


def production_rate(buildings: Iterable[Building]) -> ResourceVector:
    """Per-second production of every building that is not upgrading."""
    total = ResourceVector()
    for building in buildings:
        if building.upgrading:
            continue
        raw = building.production
        if isinstance(raw, ResourceVector):
            raw = raw.as_dict()
        # malformed production counts as zero
        if not isinstance(raw, Mapping):
            continue
        total = total.plus(ResourceVector.from_mapping(raw))
    return total


def accrue(
    resources: ResourceVector, buildings: Iterable[Building], dt: float
) -> ResourceVector:
    """
    Grow `resources` by the production of idle buildings over `dt` seconds.
    Negative elapsed time counts as zero and no field ends up below zero.
    """
    dt = max(0.0, as_amount(dt))
    return resources.plus(production_rate(buildings).scaled(dt)).clamped()


class ResourceAccrualEngine:
    def __init__(
        self,
        clock: Callable[[], float] = time.time,
        last_update: Optional[float] = None,
    ) -> None:
        self.clock = clock
        self.last_update: float = clock() if last_update is None else last_update

    def reset(self, timestamp: float) -> None:
        """Re-anchor to a snapshot time so the window since then is counted once."""
        self.last_update = timestamp

    def update(
        self,
        resources: ResourceVector,
        buildings: Iterable[Building],
        now: Optional[float] = None,
    ) -> ResourceVector:
        current = self.clock() if now is None else now
        dt = current - self.last_update
        self.last_update = max(self.last_update, current)
        return accrue(resources, buildings, dt)
