#!/usr/bin/env python3
"""
Clan service: loads snapshots from the store, runs the pure rules, and
commits the result while holding the relevant leases.

Route handlers (not part of this package) authenticate the caller, resolve
the player id, and call one method here. Every method returns a plain dict
payload; every failure is a WarfrontError whose kind selects the status.
"""
from __future__ import annotations

import logging
import random
import uuid
from typing import Any, Callable, Dict, List, Optional

from warfront import capture as capture_rules
from warfront import territory as territory_rules
from warfront import warfare as war_rules
from warfront.errors import (
    AlreadyClaimed,
    ClanNotFound,
    IncomeAlreadyCollected,
    InsufficientRank,
    NotAClanMember,
    SelfWar,
    TerritoryNotOwned,
    WarNotFound,
)
from warfront.helper.grid_helpers import (
    defense_bonus,
    max_territories_for_level,
    refresh_defense_bonuses,
)
from warfront.infra.redis_store import ClanStore, pair_key
from warfront.models import RULES_CONFIG
from warfront.models import (
    CaptureOutcome,
    Clan,
    Territory,
    War,
    WarOutcome,
    WarStatus,
)
from warfront.state_utils import (
    apply_stats_delta,
    resources_payload,
    territory_payload,
    war_to_doc,
)
from warfront.timeutils import collection_day_start, next_collection_at, now as wall_clock

logger = logging.getLogger(__name__)

OFFICER_ROLES = frozenset(RULES_CONFIG.officer_roles)


class ClanService:
    def __init__(
        self,
        store: ClanStore,
        clock: Optional[Callable[[], float]] = None,
        rng: Optional[capture_rules.RandomSource] = None,
    ) -> None:
        self.store = store
        self.clock = clock or wall_clock
        self.rng = rng or random.Random()

    # ---------- shared lookups ----------

    async def _load_clan(self, clan_id: str) -> Clan:
        clan = await self.store.get_clan(clan_id)
        if clan is None:
            raise ClanNotFound(f"Clan {clan_id} not found", clan_id=clan_id)
        return clan

    @staticmethod
    def _require_officer(clan: Clan, player_id: str, action: str) -> None:
        member = clan.member(player_id)
        if member is None:
            raise NotAClanMember("Player is not a member of this clan")
        if member.role.value not in OFFICER_ROLES:
            raise InsufficientRank(
                f"Only Leaders, Co-Leaders, and Officers can {action}",
                role=member.role.value,
            )

    async def register_clan(self, clan: Clan) -> None:
        """Store a clan document and index any tiles it already holds."""
        async with self.store.lease(f"clan:{clan.clan_id}"):
            reserved = []
            for t in clan.territories:
                if not await self.store.reserve_tile(t.coord, clan.clan_id):
                    for coord in reserved:
                        await self.store.release_tile(coord, clan.clan_id)
                    raise AlreadyClaimed(
                        f"Territory ({t.tile_x}, {t.tile_y}) is already claimed",
                        tile_x=t.tile_x,
                        tile_y=t.tile_y,
                    )
                reserved.append(t.coord)
            refresh_defense_bonuses(clan.territories)
            clan.stats.total_territories = len(clan.territories)
            await self.store.save_clan(clan)

    # ---------- territory ----------

    async def claim_territory(
        self, clan_id: str, player_id: str, tile_x: Any, tile_y: Any
    ) -> Dict[str, Any]:
        coord = territory_rules.parse_coordinates(tile_x, tile_y)
        x, y = coord
        async with self.store.lease(f"clan:{clan_id}"):
            clan = await self._load_clan(clan_id)
            self._require_officer(clan, player_id, "claim territory")

            owner = await self.store.tile_owner(coord)
            territory_rules.validate_claim(
                clan.coords(),
                {coord} if owner else set(),
                coord,
                max_territories_for_level(clan.level),
            )
            cost = territory_rules.claim_cost(len(clan.territories), clan.perks)
            territory_rules.ensure_affordable(clan.bank, cost, "claim territory")

            # the index key is the cross-clan guard; another clan may have
            # taken the tile since the lookup above
            if not await self.store.reserve_tile(coord, clan_id):
                raise AlreadyClaimed(
                    f"Territory ({x}, {y}) is already claimed", tile_x=x, tile_y=y
                )

            now = self.clock()
            new_territory = Territory(
                tile_x=x, tile_y=y, clan_id=clan_id, claimed_at=now, claimed_by=player_id
            )
            clan.territories.append(new_territory)
            refresh_defense_bonuses(clan.territories)
            clan.bank.metal -= cost.metal
            clan.bank.energy -= cost.energy
            clan.stats.total_territories = len(clan.territories)
            try:
                await self.store.commit(clans=[clan])
            except Exception:
                await self.store.release_tile(coord, clan_id)
                raise

        await self.store.append_activity(
            clan_id,
            "TERRITORY_CLAIMED",
            f"{player_id} claimed territory ({x}, {y})",
            tile_x=x,
            tile_y=y,
            cost=resources_payload(cost),
        )
        logger.info("claim clan=%s tile=(%s,%s) cost=%s/%s", clan_id, x, y, cost.metal, cost.energy)
        return {
            "territory": territory_payload(new_territory),
            "cost": {"metal": cost.metal, "energy": cost.energy},
            "defense_bonus": new_territory.defense_bonus,
            "message": f"Successfully claimed territory at ({x}, {y})",
        }

    async def abandon_territory(
        self, clan_id: str, player_id: str, tile_x: Any, tile_y: Any
    ) -> Dict[str, Any]:
        coord = territory_rules.parse_coordinates(tile_x, tile_y)
        x, y = coord
        async with self.store.lease(f"clan:{clan_id}"):
            clan = await self._load_clan(clan_id)
            self._require_officer(clan, player_id, "abandon territory")
            territory = clan.territory_at(x, y)
            if territory is None:
                raise TerritoryNotOwned("Territory not found", tile_x=x, tile_y=y)
            clan.territories.remove(territory)
            refresh_defense_bonuses(clan.territories)
            clan.stats.total_territories = len(clan.territories)
            await self.store.commit(clans=[clan], del_tiles=[coord])

        await self.store.append_activity(
            clan_id,
            "TERRITORY_ABANDONED",
            f"{player_id} abandoned territory ({x}, {y})",
            tile_x=x,
            tile_y=y,
        )
        return {"message": f"Territory ({x}, {y}) abandoned"}

    async def territory_at(self, tile_x: Any, tile_y: Any) -> Optional[Dict[str, Any]]:
        coord = territory_rules.parse_coordinates(tile_x, tile_y)
        owner = await self.store.tile_owner(coord)
        if owner is None:
            return None
        clan = await self.store.get_clan(owner)
        if clan is None:
            return None
        territory = clan.territory_at(*coord)
        return {
            "clan_id": clan.clan_id,
            "clan_tag": clan.tag,
            "clan_name": clan.name,
            "claimed_at": territory.claimed_at if territory else None,
            "defense_bonus": territory.defense_bonus if territory else 0,
        }

    async def clan_territories(self, clan_id: str) -> List[Dict[str, Any]]:
        clan = await self._load_clan(clan_id)
        return [territory_payload(t) for t in clan.territories]

    # ---------- wars ----------

    async def declare_war(
        self, clan_id: str, target_clan_id: str, player_id: str
    ) -> Dict[str, Any]:
        if clan_id == target_clan_id:
            raise SelfWar("Cannot declare war on your own clan")
        async with self.store.lease(
            f"clan:{clan_id}", f"war:{pair_key(clan_id, target_clan_id)}"
        ):
            clan = await self._load_clan(clan_id)
            target = await self._load_clan(target_clan_id)
            self._require_officer(clan, player_id, "declare war")

            existing = await self.store.open_war_between(clan_id, target_clan_id)
            last_ended = await self.store.last_war_ended_at(clan_id, target_clan_id)
            now = self.clock()
            declaration = war_rules.declare_war(
                clan.level, clan.bank, existing, last_ended, clan.perks, now
            )

            clan.bank.metal -= declaration.cost.metal
            clan.bank.energy -= declaration.cost.energy
            clan.stats.total_wars += 1
            war = War(
                war_id=uuid.uuid4().hex,
                attacker_clan_id=clan_id,
                defender_clan_id=target_clan_id,
                status=declaration.status,
                declaration_cost=declaration.cost,
                declared_at=now,
                started_at=now if declaration.status == WarStatus.ACTIVE else None,
            )
            await self.store.commit(clans=[clan], wars=[war])

        await self.store.append_activity(
            clan_id,
            "WAR_DECLARED",
            f"{player_id} declared war on [{target.tag}] {target.name}",
            war_id=war.war_id,
            target_clan_id=target_clan_id,
            cost=resources_payload(declaration.cost),
        )
        await self.store.append_activity(
            target_clan_id,
            "WAR_DECLARED_AGAINST",
            f"[{clan.tag}] {clan.name} has declared war!",
            war_id=war.war_id,
            attacker_clan_id=clan_id,
        )
        logger.info(
            "war declared id=%s attacker=%s defender=%s status=%s",
            war.war_id,
            clan_id,
            target_clan_id,
            war.status.value,
        )
        return {
            "war": war_to_doc(war),
            "cost": {"metal": declaration.cost.metal, "energy": declaration.cost.energy},
            "message": f"War declared against [{target.tag}] {target.name}",
        }

    async def accept_war(self, clan_id: str, war_id: str, player_id: str) -> Dict[str, Any]:
        war = await self.store.get_war(war_id)
        if war is None or war.defender_clan_id != clan_id:
            raise WarNotFound(f"War {war_id} not found", war_id=war_id)
        async with self.store.lease(
            f"war:{pair_key(war.attacker_clan_id, war.defender_clan_id)}"
        ):
            war = await self.store.get_war(war_id)
            if war is None:
                raise WarNotFound(f"War {war_id} not found", war_id=war_id)
            clan = await self._load_clan(clan_id)
            self._require_officer(clan, player_id, "accept war")
            war_rules.accept_war(war, self.clock())
            await self.store.commit(wars=[war])

        await self.store.append_activity(
            clan_id, "WAR_ACCEPTED", f"{player_id} accepted the war", war_id=war_id
        )
        return {"war": war_to_doc(war), "message": "War accepted"}

    async def capture_territory(
        self,
        clan_id: str,
        target_clan_id: str,
        tile_x: Any,
        tile_y: Any,
        player_id: str,
        attempt_id: Optional[str] = None,
    ) -> Dict[str, Any]:
        """
        One capture attempt. Pass the same `attempt_id` when retrying a request:
        the stored outcome is returned and the roll is never repeated.
        """
        coord = territory_rules.parse_coordinates(tile_x, tile_y)
        x, y = coord
        # an attempt id only replays the same attacker, target and tile
        capture_key = (
            f"{clan_id}:{target_clan_id}:{x}:{y}:{attempt_id}" if attempt_id else None
        )
        async with self.store.lease(
            f"clan:{clan_id}",
            f"clan:{target_clan_id}",
            f"war:{pair_key(clan_id, target_clan_id)}",
        ):
            if capture_key:
                previous = await self.store.get_capture(capture_key)
                if previous is not None:
                    return self._capture_payload(previous, x, y)

            war = await self.store.open_war_between(clan_id, target_clan_id)
            war_is_active = war is not None and war.status == WarStatus.ACTIVE
            clan = await self._load_clan(clan_id)
            target = await self._load_clan(target_clan_id)
            self._require_officer(clan, player_id, "capture territories")

            territory = target.territory_at(x, y)
            if territory is not None:
                territory.defense_bonus = defense_bonus(target.coords(), x, y)
            now = self.clock()
            outcome = capture_rules.resolve_capture(
                territory,
                territory is not None,
                war_is_active,
                attacker_clan_id=clan_id,
                attacker_player_id=player_id,
                now=now,
                attacker_side=war is not None and war.attacker_clan_id == clan_id,
                rng=self.rng,
            )
            assert war is not None
            apply_stats_delta(war, outcome.stats_delta)

            changed_clans: List[Clan] = []
            set_tiles = []
            if outcome.captured and outcome.territory is not None:
                target.territories = [t for t in target.territories if t.coord != coord]
                clan.territories.append(outcome.territory)
                refresh_defense_bonuses(target.territories)
                refresh_defense_bonuses(clan.territories)
                target.stats.total_territories = len(target.territories)
                clan.stats.total_territories = len(clan.territories)
                clan.stats.territories_captured += 1
                changed_clans = [clan, target]
                set_tiles = [(coord, clan_id)]
            await self.store.commit(
                clans=changed_clans,
                wars=[war],
                set_tiles=set_tiles,
                capture=(capture_key, outcome) if capture_key else None,
            )

        if outcome.captured:
            await self.store.append_activity(
                clan_id,
                "TERRITORY_CAPTURED",
                f"{player_id} captured territory ({x}, {y}) from [{target.tag}]",
                war_id=war.war_id,
                tile_x=x,
                tile_y=y,
                previous_owner=target_clan_id,
            )
            await self.store.append_activity(
                target_clan_id,
                "TERRITORY_LOST",
                f"Lost territory ({x}, {y}) to [{clan.tag}] in battle",
                war_id=war.war_id,
                tile_x=x,
                tile_y=y,
                new_owner=clan_id,
            )
        else:
            await self.store.append_activity(
                clan_id,
                "TERRITORY_CAPTURE_FAILED",
                f"{player_id} failed to capture territory ({x}, {y}) from [{target.tag}]",
                war_id=war.war_id,
                tile_x=x,
                tile_y=y,
                defense_bonus=outcome.defense_bonus,
            )
            await self.store.append_activity(
                target_clan_id,
                "TERRITORY_DEFENSE_SUCCESS",
                f"Successfully defended territory ({x}, {y}) against [{clan.tag}]",
                war_id=war.war_id,
                tile_x=x,
                tile_y=y,
                defense_bonus=outcome.defense_bonus,
            )
        logger.info(
            "capture war=%s clan=%s tile=(%s,%s) rate=%.2f captured=%s",
            war.war_id,
            clan_id,
            x,
            y,
            outcome.success_rate,
            outcome.captured,
        )
        return self._capture_payload(outcome, x, y)

    @staticmethod
    def _capture_payload(outcome: CaptureOutcome, x: int, y: int) -> Dict[str, Any]:
        if outcome.captured:
            message = f"Successfully captured territory ({x}, {y})!"
        else:
            message = (
                f"Failed to capture territory. Enemy defense bonus: {outcome.defense_bonus}%"
            )
        return {
            "success": outcome.captured,
            "territory": territory_payload(outcome.territory) if outcome.territory else None,
            "defense_bonus": outcome.defense_bonus,
            "success_rate": outcome.success_rate,
            "message": message,
        }

    async def end_war(
        self, war_id: str, outcome: WarOutcome | str, ended_by: str = "system"
    ) -> Dict[str, Any]:
        outcome = WarOutcome(outcome)
        war = await self.store.get_war(war_id)
        if war is None:
            raise WarNotFound(f"War {war_id} not found", war_id=war_id)
        attacker_id, defender_id = war.attacker_clan_id, war.defender_clan_id
        async with self.store.lease(
            f"clan:{attacker_id}",
            f"clan:{defender_id}",
            f"war:{pair_key(attacker_id, defender_id)}",
        ):
            war = await self.store.get_war(war_id)
            if war is None:
                raise WarNotFound(f"War {war_id} not found", war_id=war_id)
            attacker = await self._load_clan(attacker_id)
            defender = await self._load_clan(defender_id)
            settlement = war_rules.end_war(
                war, outcome, self.clock(), attacker.bank, defender.bank
            )
            if settlement.winner is not None:
                winner, loser = (
                    (attacker, defender)
                    if settlement.winner == attacker_id
                    else (defender, attacker)
                )
                spoils = settlement.spoils
                loser.bank.metal -= spoils.metal
                loser.bank.energy -= spoils.energy
                loser.bank.rp -= spoils.rp
                winner.bank.metal += spoils.metal
                winner.bank.energy += spoils.energy
                winner.bank.rp += spoils.rp
                winner.xp += settlement.winner_xp
                loser.xp = max(0, loser.xp - settlement.loser_xp_penalty)
                winner.stats.wars_won += 1
                loser.stats.wars_lost += 1
            await self.store.commit(clans=[attacker, defender], wars=[war])

        message = {
            WarOutcome.WIN: "victorious",
            WarOutcome.LOSS: "defeated",
            WarOutcome.TRUCE: "ended in a truce",
        }[outcome]
        await self.store.append_activity(
            attacker_id,
            "WAR_ENDED",
            f"War against [{defender.tag}] {message}",
            war_id=war_id,
            outcome=outcome.value,
            ended_by=ended_by,
        )
        await self.store.append_activity(
            defender_id,
            "WAR_ENDED",
            f"War with [{attacker.tag}] {message}",
            war_id=war_id,
            outcome=outcome.value,
            ended_by=ended_by,
        )
        logger.info("war ended id=%s outcome=%s winner=%s", war_id, outcome.value, war.winner)
        return {
            "war": war_to_doc(war),
            "spoils": resources_payload(settlement.spoils),
            "winner_xp": settlement.winner_xp,
            "objectives": settlement.objectives,
            "message": f"War {message}",
        }

    async def active_wars(self, clan_id: str) -> List[Dict[str, Any]]:
        wars = [w for w in await self.store.wars_for_clan(clan_id) if w.is_open]
        wars.sort(key=lambda w: w.declared_at, reverse=True)
        return [war_to_doc(w) for w in wars]

    async def war_history(self, clan_id: str, limit: int = 50) -> List[Dict[str, Any]]:
        wars = [
            w for w in await self.store.wars_for_clan(clan_id) if w.status == WarStatus.ENDED
        ]
        wars.sort(key=lambda w: w.ended_at or 0.0, reverse=True)
        return [war_to_doc(w) for w in wars[:limit]]

    # ---------- income ----------

    async def income_projection(self, clan_id: str) -> Dict[str, Any]:
        clan = await self._load_clan(clan_id)
        projection = territory_rules.daily_income(clan.level, len(clan.territories))
        now = self.clock()
        return {
            "metal_per_day": projection.metal_per_day,
            "energy_per_day": projection.energy_per_day,
            "per_territory": projection.per_territory,
            "territory_count": projection.territory_count,
            "clan_level": clan.level,
            "next_collection": next_collection_at(now),
            "can_collect_now": territory_rules.income_due(
                clan.last_income_at, collection_day_start(now)
            ),
        }

    async def collect_daily_income(self, clan_id: str) -> Dict[str, Any]:
        async with self.store.lease(f"clan:{clan_id}"):
            clan = await self._load_clan(clan_id)
            count = len(clan.territories)
            if count == 0:
                return {
                    "metal_collected": 0,
                    "energy_collected": 0,
                    "territory_count": 0,
                    "message": "No territories to collect income from",
                }
            now = self.clock()
            if not territory_rules.income_due(clan.last_income_at, collection_day_start(now)):
                raise IncomeAlreadyCollected("Income already collected today")
            projection = territory_rules.daily_income(clan.level, count)
            clan.bank.metal += projection.metal_per_day
            clan.bank.energy += projection.energy_per_day
            clan.last_income_at = now
            await self.store.commit(clans=[clan])

        await self.store.append_activity(
            clan_id,
            "TERRITORY_INCOME_COLLECTED",
            f"Collected {projection.metal_per_day} M + {projection.energy_per_day} E "
            f"from {count} territories",
            per_territory=projection.per_territory,
        )
        return {
            "metal_collected": projection.metal_per_day,
            "energy_collected": projection.energy_per_day,
            "territory_count": count,
            "message": f"Collected {projection.metal_per_day} M + "
            f"{projection.energy_per_day} E from {count} territories",
        }
