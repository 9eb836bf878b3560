#!/usr/bin/env python3
"""
Cost calculator: perk-reduced metal/energy prices for claims and wars.
"""
from __future__ import annotations

from typing import Iterable

from warfront.errors import InvalidPerkValue
from warfront.models import RULES_CONFIG, Perk, Resources

MAX_TOTAL_REDUCTION: int = RULES_CONFIG.perks.max_total_reduction


def perk_reduction(perks: Iterable[Perk], category: str) -> int:
    """
    Summed percentage of every perk in `category`, clamped to
    [0, MAX_TOTAL_REDUCTION]. Each perk on its own must lie in [0, 100].
    """
    total = 0
    for perk in perks:
        if perk.value < 0 or perk.value > 100:
            raise InvalidPerkValue(
                f"Perk value {perk.value}% for '{perk.category}' is outside 0-100",
                category=perk.category,
                value=perk.value,
            )
        if perk.category == category:
            total += perk.value
    return max(0, min(total, MAX_TOTAL_REDUCTION))


def _reduce(base: int, reduction: int) -> int:
    if base <= 0:
        return 0
    return max(1, base * (100 - reduction) // 100)


def compute_cost(
    base_metal: int, base_energy: int, perks: Iterable[Perk], category: str
) -> Resources:
    reduction = perk_reduction(perks, category)
    return Resources(
        metal=_reduce(base_metal, reduction),
        energy=_reduce(base_energy, reduction),
    )
