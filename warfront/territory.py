#!/usr/bin/env python3
"""
Territory rules: claim validation, claim pricing and passive income.

All functions here are pure; the clan service loads the ownership snapshot,
calls them, and commits the result while holding the clan lease.
"""
from __future__ import annotations

import math
from typing import AbstractSet, Iterable, Optional

from warfront.costs import compute_cost
from warfront.errors import (
    AlreadyClaimed,
    InsufficientResources,
    InvalidCoordinates,
    LimitReached,
    NotAdjacent,
)
from warfront.helper.grid_helpers import (
    DEFAULT_MAX_TERRITORIES,
    claim_base_cost,
    count_owned_neighbors,
)
from warfront.models import RULES_CONFIG
from warfront.models import Coord, IncomeProjection, Perk, Resources

CLAIM_PERK_CATEGORY = RULES_CONFIG.territory.cost_perk_category
INCOME_BASE_METAL = RULES_CONFIG.income.base_income_metal
INCOME_BASE_ENERGY = RULES_CONFIG.income.base_income_energy
INCOME_SCALING = RULES_CONFIG.income.scaling_per_level


def parse_coordinates(tile_x: object, tile_y: object) -> Coord:
    """
    Accept integers and integral floats (JSON sends 10.0 for 10); reject
    anything else, bools included.
    """
    coord = []
    for value in (tile_x, tile_y):
        if isinstance(value, float) and value.is_integer():
            value = int(value)
        if isinstance(value, bool) or not isinstance(value, int):
            raise InvalidCoordinates(
                "Coordinates must be integers", tile_x=tile_x, tile_y=tile_y
            )
        coord.append(value)
    return (coord[0], coord[1])


def validate_claim(
    clan_territories: AbstractSet[Coord],
    all_claimed_tiles: AbstractSet[Coord],
    candidate: Coord,
    max_territories: int = DEFAULT_MAX_TERRITORIES,
) -> None:
    """
    Raise unless `candidate` may be claimed by the clan holding
    `clan_territories`. Returns None on success.
    """
    x, y = candidate
    if candidate in all_claimed_tiles or candidate in clan_territories:
        raise AlreadyClaimed(
            f"Territory ({x}, {y}) is already claimed", tile_x=x, tile_y=y
        )
    if len(clan_territories) >= max_territories:
        raise LimitReached(
            f"Territory limit reached ({max_territories})",
            max_territories=max_territories,
        )
    # first claim may be anywhere
    if not clan_territories:
        return
    if count_owned_neighbors(clan_territories, x, y) == 0:
        raise NotAdjacent(
            "Territory must be adjacent to existing clan territory",
            tile_x=x,
            tile_y=y,
        )


def claim_cost(territory_count: int, perks: Iterable[Perk]) -> Resources:
    base = claim_base_cost(territory_count)
    return compute_cost(base.metal, base.energy, perks, CLAIM_PERK_CATEGORY)


def ensure_affordable(bank: Resources, cost: Resources, action: str) -> None:
    if bank.metal < cost.metal or bank.energy < cost.energy:
        raise InsufficientResources(
            f"Insufficient resources to {action} "
            f"(need {cost.metal} metal / {cost.energy} energy, "
            f"have {bank.metal} / {bank.energy})",
            need={"metal": cost.metal, "energy": cost.energy},
            have={"metal": bank.metal, "energy": bank.energy},
        )


def income_per_territory(clan_level: int) -> int:
    return math.floor(INCOME_BASE_METAL * (1 + (clan_level - 1) * INCOME_SCALING))


def daily_income(clan_level: int, territory_count: int) -> IncomeProjection:
    per_tile = income_per_territory(clan_level)
    energy_per_tile = math.floor(
        INCOME_BASE_ENERGY * (1 + (clan_level - 1) * INCOME_SCALING)
    )
    return IncomeProjection(
        metal_per_day=per_tile * territory_count,
        energy_per_day=energy_per_tile * territory_count,
        per_territory=per_tile,
        territory_count=territory_count,
    )


def income_due(last_collected_at: Optional[float], day_start: float) -> bool:
    """Income is collectable once per day, counted from `day_start`."""
    return last_collected_at is None or last_collected_at < day_start
