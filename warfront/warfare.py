#!/usr/bin/env python3
"""
War lifecycle rules: declaration, acceptance and settlement.

Nothing in this module touches storage. Each function validates a snapshot
and returns what the caller must persist (a cost to debit, a new status, a
settlement to pay out).
"""
from __future__ import annotations

import math
from typing import Iterable, List, Optional

from warfront.costs import compute_cost
from warfront.errors import (
    CooldownActive,
    LevelTooLow,
    WarAlreadyActive,
    WarAlreadyEnded,
    WarNotPending,
    WarTooShort,
)
from warfront.models import RULES_CONFIG
from warfront.models import (
    Perk,
    Resources,
    War,
    WarDeclaration,
    WarOutcome,
    WarSettlement,
    WarStatus,
)
from warfront.territory import ensure_affordable

HOUR = 3600.0

WAR_BASE_COST = Resources(
    metal=RULES_CONFIG.war.base_cost_metal, energy=RULES_CONFIG.war.base_cost_energy
)
WAR_PERK_CATEGORY = RULES_CONFIG.war.cost_perk_category
MIN_LEVEL_TO_DECLARE = RULES_CONFIG.war.min_level_to_declare
WAR_COOLDOWN_HOURS = RULES_CONFIG.war.cooldown_hours
MIN_WAR_DURATION_HOURS = RULES_CONFIG.war.min_duration_hours
REQUIRE_ACCEPTANCE = RULES_CONFIG.war.require_acceptance

SPOILS = RULES_CONFIG.spoils

CONQUEST_VICTORY = "CONQUEST_VICTORY"
BLITZKRIEG = "BLITZKRIEG"
DECISIVE_VICTORY = "DECISIVE_VICTORY"
STRATEGIC_DOMINATION = "STRATEGIC_DOMINATION"


def cooldown_remaining_hours(
    last_war_ended_at: Optional[float], now: float
) -> float:
    if last_war_ended_at is None:
        return 0.0
    remaining = last_war_ended_at + WAR_COOLDOWN_HOURS * HOUR - now
    return max(0.0, remaining / HOUR)


def declare_war(
    attacker_level: int,
    attacker_bank: Resources,
    existing_war: Optional[War],
    last_war_ended_at: Optional[float],
    perks: Iterable[Perk],
    now: float,
    require_acceptance: Optional[bool] = None,
) -> WarDeclaration:
    """
    Validate a declaration and price it. The caller is expected to have
    rejected self-declarations already.
    """
    if attacker_level < MIN_LEVEL_TO_DECLARE:
        raise LevelTooLow(
            f"Clan level {MIN_LEVEL_TO_DECLARE} required to declare war "
            f"(current: {attacker_level})",
            required_level=MIN_LEVEL_TO_DECLARE,
            current_level=attacker_level,
        )
    if existing_war is not None and existing_war.is_open:
        raise WarAlreadyActive(
            "An active war already exists between these clans",
            war_id=existing_war.war_id,
        )
    remaining = cooldown_remaining_hours(last_war_ended_at, now)
    if remaining > 0:
        hours = math.ceil(remaining)
        raise CooldownActive(
            f"War cooldown active. {hours} hours remaining.",
            remaining_hours=hours,
        )

    cost = compute_cost(
        WAR_BASE_COST.metal, WAR_BASE_COST.energy, perks, WAR_PERK_CATEGORY
    )
    ensure_affordable(attacker_bank, cost, "declare war")

    if require_acceptance is None:
        require_acceptance = REQUIRE_ACCEPTANCE
    status = WarStatus.DECLARED if require_acceptance else WarStatus.ACTIVE
    return WarDeclaration(cost=cost, status=status)


def accept_war(war: War, now: float) -> None:
    """DECLARED -> ACTIVE, applied in place on the snapshot."""
    if war.status != WarStatus.DECLARED:
        raise WarNotPending(
            f"War {war.war_id} is {war.status.value}, not awaiting acceptance",
            war_id=war.war_id,
        )
    war.status = WarStatus.ACTIVE
    war.started_at = now


def war_objectives(war: War, now: float) -> List[str]:
    captured = war.stats.attacker_captures
    achieved: List[str] = []
    if captured >= SPOILS.conquest_threshold:
        achieved.append(CONQUEST_VICTORY)
    duration = (war.ended_at or now) - war.declared_at
    if duration < SPOILS.blitzkrieg_hours * HOUR:
        achieved.append(BLITZKRIEG)
    if war.stats.defender_captures == 0 and captured > 0:
        achieved.append(DECISIVE_VICTORY)
    if captured >= SPOILS.domination_threshold:
        achieved.append(STRATEGIC_DOMINATION)
    return achieved


def war_spoils(loser_bank: Resources, objectives: List[str]) -> Resources:
    metal = math.floor(loser_bank.metal * SPOILS.metal_percent / 100)
    energy = math.floor(loser_bank.energy * SPOILS.energy_percent / 100)
    rp = math.floor(loser_bank.rp * SPOILS.rp_percent / 100)
    if CONQUEST_VICTORY in objectives:
        metal = math.floor(metal * SPOILS.conquest_spoils_multiplier)
        energy = math.floor(energy * SPOILS.conquest_spoils_multiplier)
    if BLITZKRIEG in objectives:
        rp += SPOILS.blitzkrieg_rp_bonus
    # the loser cannot pay more than it holds
    return Resources(
        metal=min(metal, loser_bank.metal),
        energy=min(energy, loser_bank.energy),
        rp=min(rp, loser_bank.rp),
    )


def end_war(
    war: War,
    outcome: WarOutcome,
    now: float,
    attacker_bank: Resources,
    defender_bank: Resources,
) -> WarSettlement:
    """
    Close `war` in place and compute the settlement. Banks are read only;
    the caller moves the spoils.
    """
    if war.status == WarStatus.ENDED:
        raise WarAlreadyEnded("War has already ended", war_id=war.war_id)
    elapsed = now - war.declared_at
    minimum = MIN_WAR_DURATION_HOURS * HOUR
    if elapsed < minimum:
        hours = math.ceil((minimum - elapsed) / HOUR)
        raise WarTooShort(
            f"War must last at least {MIN_WAR_DURATION_HOURS:g} hours. "
            f"{hours} hours remaining.",
            remaining_hours=hours,
        )

    war.status = WarStatus.ENDED
    war.ended_at = now
    war.outcome = outcome

    if outcome == WarOutcome.TRUCE:
        war.winner = None
        return WarSettlement(winner=None, loser=None)

    if outcome == WarOutcome.WIN:
        winner, loser, loser_bank = (
            war.attacker_clan_id,
            war.defender_clan_id,
            defender_bank,
        )
    else:
        winner, loser, loser_bank = (
            war.defender_clan_id,
            war.attacker_clan_id,
            attacker_bank,
        )
    war.winner = winner

    objectives = war_objectives(war, now)
    xp = SPOILS.victory_xp_bonus
    if DECISIVE_VICTORY in objectives:
        xp += SPOILS.decisive_xp_bonus
    return WarSettlement(
        winner=winner,
        loser=loser,
        spoils=war_spoils(loser_bank, objectives),
        winner_xp=xp,
        loser_xp_penalty=SPOILS.defeat_xp_penalty,
        objectives=objectives,
    )
