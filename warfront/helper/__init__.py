from warfront.helper.grid_helpers import (
    orthogonal_neighbors,
    count_owned_neighbors,
    defense_bonus,
    refresh_defense_bonuses,
    max_territories_for_level,
    claim_base_cost,
)


__all__ = [
    "orthogonal_neighbors",
    "count_owned_neighbors",
    "defense_bonus",
    "refresh_defense_bonuses",
    "max_territories_for_level",
    "claim_base_cost",
]
