from pathlib import Path
from pydantic import BaseModel, PositiveInt, PositiveFloat, NonNegativeInt
from pydantic import Field  # type: ignore
from typing import Annotated, List

# NOTE: loaded once per process; changing the JSON requires a restart.


class LevelCap(BaseModel):
    min_level: PositiveInt
    max_territories: PositiveInt


class CostTier(BaseModel):
    up_to: PositiveInt  # applies while the clan owns fewer than this many tiles
    cost_metal: NonNegativeInt
    cost_energy: NonNegativeInt


class TerritoryRules(BaseModel):
    base_claim_cost_metal: NonNegativeInt
    base_claim_cost_energy: NonNegativeInt
    cost_perk_category: Annotated[str, Field(min_length=1)]
    defense_bonus_per_tile: NonNegativeInt
    max_defense_bonus: Annotated[int, Field(ge=0, le=100)]
    max_territories: PositiveInt
    level_caps: Annotated[List[LevelCap], Field(default_factory=list)]
    cost_tiers: Annotated[List[CostTier], Field(default_factory=list)]


class WarRules(BaseModel):
    base_cost_metal: NonNegativeInt
    base_cost_energy: NonNegativeInt
    cost_perk_category: Annotated[str, Field(min_length=1)]
    min_level_to_declare: PositiveInt
    cooldown_hours: PositiveFloat
    min_duration_hours: PositiveFloat
    require_acceptance: bool = False


class CaptureRules(BaseModel):
    base_success_rate: Annotated[float, Field(gt=0, le=1)]
    minimum_success_rate: Annotated[float, Field(ge=0, le=1)]
    defense_bonus_impact: Annotated[float, Field(ge=0, le=1)]


class PerkRules(BaseModel):
    max_total_reduction: Annotated[int, Field(ge=0, lt=100)]


class IncomeRules(BaseModel):
    base_income_metal: NonNegativeInt
    base_income_energy: NonNegativeInt
    scaling_per_level: Annotated[float, Field(ge=0)]
    collection_hour_utc: Annotated[int, Field(ge=0, le=23)]


class SpoilsRules(BaseModel):
    metal_percent: Annotated[int, Field(ge=0, le=100)]
    energy_percent: Annotated[int, Field(ge=0, le=100)]
    rp_percent: Annotated[int, Field(ge=0, le=100)]
    victory_xp_bonus: NonNegativeInt
    defeat_xp_penalty: NonNegativeInt
    conquest_threshold: PositiveInt
    conquest_spoils_multiplier: PositiveFloat
    domination_threshold: PositiveInt
    blitzkrieg_hours: PositiveFloat
    blitzkrieg_rp_bonus: NonNegativeInt
    decisive_xp_bonus: NonNegativeInt


class RulesSettings(BaseModel):
    territory: TerritoryRules
    war: WarRules
    capture: CaptureRules
    perks: PerkRules
    income: IncomeRules
    spoils: SpoilsRules
    officer_roles: Annotated[List[str], Field(min_length=1)]


_BASE_DIR = Path(__file__).resolve().parents[1]
_CONFIG_PATH = _BASE_DIR / "config" / "rules_config.json"

RULES_CONFIG = RulesSettings.model_validate_json(
    _CONFIG_PATH.read_text(encoding="utf-8")
)
