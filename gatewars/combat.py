#!/usr/bin/env python3
"""
What-if battle simulation between two fleets.

The resolver never touches persisted fleets or research levels. Its only
randomness is one shared luck draw and one base-loss draw, both taken from
the injected random source so a seeded source gives repeatable reports.
"""
from __future__ import annotations

import math
import random
from dataclasses import asdict, dataclass, field
from enum import Enum
from typing import Dict, Mapping, Optional, Protocol

from gatewars.models import GAME_CONFIG, ResearchType, Ship
from gatewars.models.game_config import BattleModifiers


class RandomSource(Protocol):
    def uniform(self, a: float, b: float) -> float: ...


class Side(str, Enum):
    ATTACKER = "attacker"
    DEFENDER = "defender"


@dataclass(frozen=True)
class BattleFactors:
    luck: float = 1.0
    morale: float = 1.0
    terrain: float = 1.0
    surprise: float = 1.0

    def clamped(
        self,
        minimum: float = GAME_CONFIG.battle_modifiers.factor_minimum,
        maximum: float = GAME_CONFIG.battle_modifiers.factor_maximum,
    ) -> "BattleFactors":
        def clamp(value: float) -> float:
            return min(max(minimum, value), maximum)

        return BattleFactors(
            luck=clamp(self.luck),
            morale=clamp(self.morale),
            terrain=clamp(self.terrain),
            surprise=clamp(self.surprise),
        )


@dataclass
class SideStats:
    attack: float = 0.0
    defense: float = 0.0
    shield: float = 0.0
    final_power: float = 0.0
    factors: Dict[str, float] = field(default_factory=dict)


@dataclass
class BattleReport:
    winner: Side
    attacker_loss_percent: int
    defender_loss_percent: int
    attacker: SideStats
    defender: SideStats
    luck_draw: float
    base_losses: float
    power_difference: float

    def as_dict(self) -> dict:
        payload = asdict(self)
        payload["winner"] = self.winner.value
        return payload


class CombatResolver:
    def __init__(
        self,
        ships: Mapping[str, Ship],
        research: Mapping[str, ResearchType],
        rng: Optional[RandomSource] = None,
        modifiers: BattleModifiers = GAME_CONFIG.battle_modifiers,
    ) -> None:
        self.ships = ships
        self.research = research
        self.rng: RandomSource = rng if rng is not None else random.Random()
        self.modifiers = modifiers

    def clean_fleet(self, fleet: Mapping[str, int]) -> Dict[str, int]:
        """Drop unknown ships and clamp counts into [0, max_ship_count]."""
        cleaned: Dict[str, int] = {}
        for ship_id, count in fleet.items():
            if ship_id not in self.ships:
                continue
            cleaned[ship_id] = min(max(0, int(count)), self.modifiers.max_ship_count)
        return cleaned

    def clean_levels(self, levels: Optional[Mapping[str, int]]) -> Dict[str, int]:
        if levels is None:
            return {rid: item.level for rid, item in self.research.items()}
        return {
            rid: self.research[rid].clamp_level(level)
            for rid, level in levels.items()
            if rid in self.research
        }

    def research_bonuses(self, levels: Mapping[str, int]) -> tuple[float, float]:
        """(attack bonus, defense bonus) multipliers for one side's simulated levels."""
        weapons = self.research.get(self.modifiers.weapons_research_id)
        shields = self.research.get(self.modifiers.shield_research_id)
        attack_bonus = (
            weapons.bonus_multiplier(levels.get(weapons.id, 0)) if weapons else 1.0
        )
        defense_bonus = (
            shields.bonus_multiplier(levels.get(shields.id, 0)) if shields else 1.0
        )
        return attack_bonus, defense_bonus

    def side_totals(self, fleet: Mapping[str, int], levels: Mapping[str, int]) -> SideStats:
        attack_bonus, defense_bonus = self.research_bonuses(levels)
        stats = SideStats()
        for ship_id, count in fleet.items():
            ship = self.ships.get(ship_id)
            if ship is None or count <= 0:
                continue
            stats.attack += ship.attack * attack_bonus * count
            stats.defense += ship.defense * count
            stats.shield += ship.shield * defense_bonus * count
        return stats

    def _loss_percent(self, base_losses: float, stronger: bool, power_difference: float) -> int:
        mods = self.modifiers
        if stronger:
            raw = base_losses * mods.stronger_side_loss_scale * (
                1 - power_difference * mods.power_difference_weight
            )
        else:
            raw = base_losses * mods.weaker_side_loss_scale * (
                1 + power_difference * mods.power_difference_weight
            )
        # the weaker-side figure can exceed 100 at the top of the range
        return int(min(100, max(0, math.floor(raw))))

    def resolve(
        self,
        attacker_fleet: Mapping[str, int],
        defender_fleet: Mapping[str, int],
        attacker_levels: Optional[Mapping[str, int]] = None,
        defender_levels: Optional[Mapping[str, int]] = None,
        factors: Optional[BattleFactors] = None,
    ) -> BattleReport:
        mods = self.modifiers
        factors = (factors or BattleFactors()).clamped(mods.factor_minimum, mods.factor_maximum)

        attacker = self.side_totals(self.clean_fleet(attacker_fleet), self.clean_levels(attacker_levels))
        defender = self.side_totals(self.clean_fleet(defender_fleet), self.clean_levels(defender_levels))

        luck_draw = self.rng.uniform(mods.luck_draw_minimum, mods.luck_draw_maximum)
        combined_luck = factors.luck * luck_draw
        attacker_surprise = factors.surprise if factors.surprise > 1 else 1.0
        defender_surprise = 1 / factors.surprise if factors.surprise < 1 else 1.0

        attacker.final_power = attacker.attack * combined_luck * factors.morale * attacker_surprise
        defender.final_power = (
            (defender.defense + defender.shield)
            * (2 - combined_luck)
            * factors.terrain
            * defender_surprise
        )
        attacker.factors = {
            "luck": combined_luck,
            "morale": factors.morale,
            "surprise": attacker_surprise,
        }
        defender.factors = {
            "luck": 2 - combined_luck,
            "terrain": factors.terrain,
            "surprise": defender_surprise,
        }

        a_power, d_power = attacker.final_power, defender.final_power
        strongest = max(a_power, d_power)
        power_difference = abs(a_power - d_power) / strongest if strongest > 0 else 0.0
        base_losses = self.rng.uniform(mods.base_loss_minimum, mods.base_loss_maximum)

        return BattleReport(
            winner=Side.ATTACKER if a_power > d_power else Side.DEFENDER,
            attacker_loss_percent=self._loss_percent(base_losses, a_power > d_power, power_difference),
            defender_loss_percent=self._loss_percent(base_losses, d_power > a_power, power_difference),
            attacker=attacker,
            defender=defender,
            luck_draw=luck_draw,
            base_losses=base_losses,
            power_difference=power_difference,
        )
