#!/usr/bin/env python3
"""
Helpers for turning clan/war state into JSON documents and back.
"""
from __future__ import annotations

from typing import Any, Dict

from warfront.models import (
    CaptureOutcome,
    Clan,
    ClanMember,
    ClanRole,
    ClanStats,
    Perk,
    Resources,
    Territory,
    War,
    WarOutcome,
    WarStats,
    WarStatsDelta,
    WarStatus,
)


def resources_payload(res: Resources) -> dict:
    return {"metal": res.metal, "energy": res.energy, "rp": res.rp}


def resources_from_doc(doc: Dict[str, Any] | None) -> Resources:
    doc = doc or {}
    return Resources(
        metal=int(doc.get("metal", 0)),
        energy=int(doc.get("energy", 0)),
        rp=int(doc.get("rp", 0)),
    )


def territory_payload(t: Territory) -> dict:
    return {
        "tile_x": t.tile_x,
        "tile_y": t.tile_y,
        "clan_id": t.clan_id,
        "claimed_at": t.claimed_at,
        "claimed_by": t.claimed_by,
        "defense_bonus": t.defense_bonus,
    }


def territory_from_doc(doc: Dict[str, Any]) -> Territory:
    return Territory(
        tile_x=int(doc["tile_x"]),
        tile_y=int(doc["tile_y"]),
        clan_id=doc["clan_id"],
        claimed_at=float(doc["claimed_at"]),
        claimed_by=doc["claimed_by"],
        defense_bonus=int(doc.get("defense_bonus", 0)),
    )


def clan_to_doc(clan: Clan) -> dict:
    return {
        "clan_id": clan.clan_id,
        "name": clan.name,
        "tag": clan.tag,
        "level": clan.level,
        "members": [
            {"player_id": m.player_id, "role": m.role.value} for m in clan.members
        ],
        "perks": [{"category": p.category, "value": p.value} for p in clan.perks],
        "territories": [territory_payload(t) for t in clan.territories],
        "bank": resources_payload(clan.bank),
        "xp": clan.xp,
        "last_income_at": clan.last_income_at,
        "stats": {
            "total_territories": clan.stats.total_territories,
            "territories_captured": clan.stats.territories_captured,
            "total_wars": clan.stats.total_wars,
            "wars_won": clan.stats.wars_won,
            "wars_lost": clan.stats.wars_lost,
        },
    }


def clan_from_doc(doc: Dict[str, Any]) -> Clan:
    return Clan(
        clan_id=doc["clan_id"],
        name=doc.get("name", ""),
        tag=doc.get("tag", ""),
        level=int(doc.get("level", 1)),
        members=[
            ClanMember(player_id=m["player_id"], role=ClanRole(m["role"]))
            for m in doc.get("members", [])
        ],
        perks=[Perk(category=p["category"], value=int(p["value"])) for p in doc.get("perks", [])],
        territories=[territory_from_doc(t) for t in doc.get("territories", [])],
        bank=resources_from_doc(doc.get("bank")),
        xp=int(doc.get("xp", 0)),
        last_income_at=doc.get("last_income_at"),
        stats=ClanStats(**doc.get("stats", {})),
    )


def war_to_doc(war: War) -> dict:
    return {
        "war_id": war.war_id,
        "attacker_clan_id": war.attacker_clan_id,
        "defender_clan_id": war.defender_clan_id,
        "status": war.status.value,
        "declaration_cost": resources_payload(war.declaration_cost),
        "declared_at": war.declared_at,
        "started_at": war.started_at,
        "ended_at": war.ended_at,
        "winner": war.winner,
        "outcome": war.outcome.value if war.outcome else None,
        "stats": {
            "attacker_attempts": war.stats.attacker_attempts,
            "attacker_captures": war.stats.attacker_captures,
            "defender_attempts": war.stats.defender_attempts,
            "defender_captures": war.stats.defender_captures,
        },
    }


def war_from_doc(doc: Dict[str, Any]) -> War:
    outcome = doc.get("outcome")
    return War(
        war_id=doc["war_id"],
        attacker_clan_id=doc["attacker_clan_id"],
        defender_clan_id=doc["defender_clan_id"],
        status=WarStatus(doc["status"]),
        declaration_cost=resources_from_doc(doc.get("declaration_cost")),
        declared_at=float(doc["declared_at"]),
        started_at=doc.get("started_at"),
        ended_at=doc.get("ended_at"),
        winner=doc.get("winner"),
        outcome=WarOutcome(outcome) if outcome else None,
        stats=WarStats(**doc.get("stats", {})),
    )


def apply_stats_delta(war: War, delta: WarStatsDelta) -> None:
    if delta.attacker_side:
        war.stats.attacker_attempts += delta.attempts
        war.stats.attacker_captures += delta.captures
    else:
        war.stats.defender_attempts += delta.attempts
        war.stats.defender_captures += delta.captures


def capture_to_doc(outcome: CaptureOutcome) -> dict:
    return {
        "captured": outcome.captured,
        "defense_bonus": outcome.defense_bonus,
        "success_rate": outcome.success_rate,
        "sample": outcome.sample,
        "stats_delta": {
            "attacker_side": outcome.stats_delta.attacker_side,
            "attempts": outcome.stats_delta.attempts,
            "captures": outcome.stats_delta.captures,
        },
        "territory": territory_payload(outcome.territory) if outcome.territory else None,
    }


def capture_from_doc(doc: Dict[str, Any]) -> CaptureOutcome:
    territory = doc.get("territory")
    return CaptureOutcome(
        captured=bool(doc["captured"]),
        defense_bonus=int(doc["defense_bonus"]),
        success_rate=float(doc["success_rate"]),
        sample=float(doc["sample"]),
        stats_delta=WarStatsDelta(**doc["stats_delta"]),
        territory=territory_from_doc(territory) if territory else None,
    )
