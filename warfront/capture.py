#!/usr/bin/env python3
"""
Capture resolver: one probabilistic attempt on an enemy tile during a war.
"""
from __future__ import annotations

import random
from typing import Optional, Protocol

from warfront.errors import InvalidDefenseBonus, NoActiveWar, NotEnemyTerritory
from warfront.models import RULES_CONFIG
from warfront.models import CaptureOutcome, Territory, WarStatsDelta

BASE_CAPTURE_RATE = RULES_CONFIG.capture.base_success_rate
MIN_CAPTURE_RATE = RULES_CONFIG.capture.minimum_success_rate
DEFENSE_BONUS_IMPACT = RULES_CONFIG.capture.defense_bonus_impact


class RandomSource(Protocol):
    def random(self) -> float: ...


def capture_rate(defense_bonus: int) -> float:
    """
    70% base, half of the defender's bonus (as a fraction) taken off,
    never below the 30% floor. Bonuses past 100 count as 100.
    """
    if defense_bonus < 0:
        raise InvalidDefenseBonus(
            f"Defense bonus {defense_bonus}% is negative",
            defense_bonus=defense_bonus,
        )
    defense_bonus = min(defense_bonus, 100)
    rate = BASE_CAPTURE_RATE - (defense_bonus / 100) * DEFENSE_BONUS_IMPACT
    # 0.7 - 0.2 is 0.49999999999999994 in binary floating point
    return max(MIN_CAPTURE_RATE, round(rate, 9))


def resolve_capture(
    territory: Optional[Territory],
    owned_by_defender: bool,
    war_is_active: bool,
    attacker_clan_id: str,
    attacker_player_id: str,
    now: float,
    attacker_side: bool = True,
    rng: Optional[RandomSource] = None,
) -> CaptureOutcome:
    """
    Draw exactly once. A failed roll is a normal outcome (captured=False);
    only broken preconditions raise.
    """
    if not war_is_active:
        raise NoActiveWar("No active war exists between these clans")
    if territory is None or not owned_by_defender:
        raise NotEnemyTerritory("Territory not owned by target clan")

    rate = capture_rate(territory.defense_bonus)
    sample = (rng or random).random()
    captured = sample < rate
    delta = WarStatsDelta(attacker_side=attacker_side, captures=1 if captured else 0)
    if not captured:
        return CaptureOutcome(
            captured=False,
            defense_bonus=territory.defense_bonus,
            success_rate=rate,
            sample=sample,
            stats_delta=delta,
        )

    transferred = Territory(
        tile_x=territory.tile_x,
        tile_y=territory.tile_y,
        clan_id=attacker_clan_id,
        claimed_at=now,
        claimed_by=attacker_player_id,
        defense_bonus=0,  # recomputed against the new owner's holdings
    )
    return CaptureOutcome(
        captured=True,
        defense_bonus=territory.defense_bonus,
        success_rate=rate,
        sample=sample,
        stats_delta=delta,
        territory=transferred,
    )
