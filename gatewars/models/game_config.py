import json
from pathlib import Path
from pydantic import BaseModel, ConfigDict, NonNegativeFloat, PositiveFloat, PositiveInt
from pydantic import Field, model_validator  # type: ignore
from typing import Annotated, Dict, List

from .state_models import ResourceVector

# # NOTE: Each process loads this module once. The catalog is reference data
# # only; nothing in the simulation mutates it.


class CostModel(BaseModel):
    naquadah: NonNegativeFloat = 0.0
    deuterium: NonNegativeFloat = 0.0
    trinium: NonNegativeFloat = 0.0
    people: NonNegativeFloat = 0.0

    def to_vector(self) -> ResourceVector:
        return ResourceVector(**self.model_dump())


class LoopIntervals(BaseModel):
    resource_tick_seconds: PositiveFloat
    reconcile_poll_seconds: PositiveFloat
    persist_save_seconds: PositiveFloat


class BattleModifiers(BaseModel):
    factor_minimum: PositiveFloat
    factor_maximum: PositiveFloat
    luck_draw_minimum: PositiveFloat
    luck_draw_maximum: PositiveFloat
    base_loss_minimum: NonNegativeFloat
    base_loss_maximum: Annotated[float, Field(le=100)]
    weaker_side_loss_scale: PositiveFloat
    stronger_side_loss_scale: PositiveFloat
    power_difference_weight: Annotated[float, Field(ge=0, le=1)]
    max_ship_count: PositiveInt
    weapons_research_id: Annotated[str, Field(min_length=1)]
    shield_research_id: Annotated[str, Field(min_length=1)]

    @model_validator(mode="after")
    def _check_ranges(self) -> "BattleModifiers":
        if self.factor_minimum > self.factor_maximum:
            raise ValueError("factor_minimum must not exceed factor_maximum")
        if self.luck_draw_minimum > self.luck_draw_maximum:
            raise ValueError("luck_draw_minimum must not exceed luck_draw_maximum")
        if self.base_loss_minimum > self.base_loss_maximum:
            raise ValueError("base_loss_minimum must not exceed base_loss_maximum")
        return self


class BuildingDefaults(BaseModel):
    level: PositiveInt
    upgrade_cost: CostModel
    upgrade_duration_seconds: NonNegativeFloat


class Ship(BaseModel):
    model_config = ConfigDict(frozen=True)

    id: Annotated[str, Field(min_length=1)]
    name: str
    description: str = ""
    attack: NonNegativeFloat
    defense: NonNegativeFloat
    shield: NonNegativeFloat
    speed: NonNegativeFloat
    capacity: NonNegativeFloat
    cost: CostModel
    build_time: NonNegativeFloat


class GameSettings(BaseModel):
    loop_intervals: LoopIntervals
    battle_modifiers: BattleModifiers
    building_defaults: BuildingDefaults
    ships: Annotated[List[Ship], Field(min_length=1)]

    @property
    def ship_catalog(self) -> Dict[str, Ship]:
        return {ship.id: ship for ship in self.ships}

    @classmethod
    def load_json(cls, path: str | Path) -> "GameSettings":
        data = json.loads(Path(path).read_text(encoding="utf-8"))
        return cls.model_validate(data)


_BASE_DIR = Path(__file__).resolve().parents[1]
_CONFIG_PATH = _BASE_DIR / "config" / "game_config.json"

GAME_CONFIG = GameSettings.model_validate_json(
    _CONFIG_PATH.read_text(encoding="utf-8")
)
