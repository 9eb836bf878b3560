from typing import Iterable, Optional, Tuple

from warfront.models import RULES_CONFIG
from warfront.models import Coord, Resources, Territory

# rules config variable mapping
DEFENSE_BONUS_PER_TILE: int = RULES_CONFIG.territory.defense_bonus_per_tile
MAX_DEFENSE_BONUS: int = RULES_CONFIG.territory.max_defense_bonus
DEFAULT_MAX_TERRITORIES: int = RULES_CONFIG.territory.max_territories
LEVEL_CAPS = sorted(RULES_CONFIG.territory.level_caps, key=lambda c: c.min_level)
COST_TIERS = sorted(RULES_CONFIG.territory.cost_tiers, key=lambda t: t.up_to)
BASE_CLAIM_COST = Resources(
    metal=RULES_CONFIG.territory.base_claim_cost_metal,
    energy=RULES_CONFIG.territory.base_claim_cost_energy,
)

# N, S, E, W
ORTHOGONAL_OFFSETS: Tuple[Coord, ...] = ((0, 1), (0, -1), (1, 0), (-1, 0))


def orthogonal_neighbors(x: int, y: int) -> list[Coord]:
    return [(x + dx, y + dy) for dx, dy in ORTHOGONAL_OFFSETS]


def count_owned_neighbors(owned: Iterable[Coord], x: int, y: int) -> int:
    owned_set = owned if isinstance(owned, (set, frozenset)) else set(owned)
    return sum(1 for n in orthogonal_neighbors(x, y) if n in owned_set)


def defense_bonus(
    owned: Iterable[Coord],
    x: int,
    y: int,
    per_tile: Optional[int] = None,
    cap: Optional[int] = None,
) -> int:
    """
    Defense bonus (percent) of tile (x, y) for the clan owning `owned`:
    +per_tile for every orthogonal neighbour the same clan holds, capped.
    """
    per_tile = DEFENSE_BONUS_PER_TILE if per_tile is None else per_tile
    cap = MAX_DEFENSE_BONUS if cap is None else cap
    return min(count_owned_neighbors(owned, x, y) * per_tile, cap, 100)


def refresh_defense_bonuses(territories: list[Territory]) -> None:
    """Recompute the derived defense bonus of every tile in one clan's list."""
    owned = {t.coord for t in territories}
    for t in territories:
        t.defense_bonus = defense_bonus(owned, t.tile_x, t.tile_y)


def max_territories_for_level(level: int) -> int:
    if not LEVEL_CAPS:
        return DEFAULT_MAX_TERRITORIES
    cap = LEVEL_CAPS[0].max_territories
    for entry in LEVEL_CAPS:
        if level >= entry.min_level:
            cap = entry.max_territories
        else:
            break
    return cap


def claim_base_cost(territory_count: int) -> Resources:
    """Base claim cost before perks; tiers grow with the clan's holdings."""
    if not COST_TIERS:
        return Resources(metal=BASE_CLAIM_COST.metal, energy=BASE_CLAIM_COST.energy)
    last = COST_TIERS[-1]
    for tier in COST_TIERS:
        if territory_count < tier.up_to:
            return Resources(metal=tier.cost_metal, energy=tier.cost_energy)
    return Resources(metal=last.cost_metal, energy=last.cost_energy)
