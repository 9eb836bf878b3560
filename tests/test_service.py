import asyncio

import pytest

from conftest import StubRandom
from warfront.errors import (
    AlreadyClaimed,
    ClanNotFound,
    CooldownActive,
    IncomeAlreadyCollected,
    InsufficientRank,
    InsufficientResources,
    NoActiveWar,
    NotAClanMember,
    NotAdjacent,
    NotEnemyTerritory,
    SelfWar,
    TerritoryNotOwned,
    WarAlreadyActive,
    WarTooShort,
)
from warfront.models import Resources, WarOutcome, WarStatus
from warfront.service import ClanService


def _service(store, clock, *samples):
    return ClanService(store, clock=clock, rng=StubRandom(*samples))


def test_first_claim_anywhere_then_adjacent_only(store, clock, make_clan):
    async def scenario():
        service = _service(store, clock)
        await service.register_clan(make_clan("a"))

        result = await service.claim_territory("a", "leader-a", 10, -4)
        assert result["cost"] == {"metal": 500, "energy": 500}
        assert result["territory"]["claimed_at"] == clock.now
        assert await store.tile_owner((10, -4)) == "a"

        with pytest.raises(NotAdjacent):
            await service.claim_territory("a", "leader-a", 12, -4)

        second = await service.claim_territory("a", "officer-a", 11, -4)
        assert second["defense_bonus"] == 10

        clan = await store.get_clan("a")
        assert clan.bank == Resources(metal=9000, energy=9000)
        assert [t.defense_bonus for t in clan.territories] == [10, 10]
        assert clan.stats.total_territories == 2
        kinds = [e["type"] for e in await store.tail_activity("a")]
        assert kinds == ["TERRITORY_CLAIMED", "TERRITORY_CLAIMED"]

    asyncio.run(scenario())


def test_claim_requires_officer_rank(store, clock, make_clan):
    async def scenario():
        service = _service(store, clock)
        await service.register_clan(make_clan("a"))
        with pytest.raises(InsufficientRank):
            await service.claim_territory("a", "grunt-a", 0, 0)
        with pytest.raises(NotAClanMember):
            await service.claim_territory("a", "stranger", 0, 0)
        with pytest.raises(ClanNotFound):
            await service.claim_territory("nope", "leader-a", 0, 0)

    asyncio.run(scenario())


def test_claim_of_foreign_tile_rejected(store, clock, make_clan):
    async def scenario():
        service = _service(store, clock)
        await service.register_clan(make_clan("a", tiles=[(0, 0)]))
        await service.register_clan(make_clan("b", tiles=[(1, 0)]))
        with pytest.raises(AlreadyClaimed):
            await service.claim_territory("a", "leader-a", 1, 0)
        assert (await store.get_clan("a")).bank.metal == 10000

    asyncio.run(scenario())


def test_register_rejects_overlapping_tiles(store, clock, make_clan):
    async def scenario():
        service = _service(store, clock)
        await service.register_clan(make_clan("a", tiles=[(0, 0)]))
        with pytest.raises(AlreadyClaimed):
            await service.register_clan(make_clan("b", tiles=[(0, 0)]))

    asyncio.run(scenario())


def test_failed_claim_leaves_no_trace(store, clock, make_clan):
    async def scenario():
        service = _service(store, clock)
        await service.register_clan(make_clan("a", metal=499))
        with pytest.raises(InsufficientResources):
            await service.claim_territory("a", "leader-a", 0, 0)
        assert await store.tile_owner((0, 0)) is None
        clan = await store.get_clan("a")
        assert clan.territories == []
        assert clan.bank.metal == 499

    asyncio.run(scenario())


def test_abandon_frees_tile(store, clock, make_clan):
    async def scenario():
        service = _service(store, clock)
        await service.register_clan(make_clan("a", tiles=[(0, 0), (0, 1)]))
        await service.abandon_territory("a", "leader-a", 0, 1)
        assert await store.tile_owner((0, 1)) is None
        assert await service.clan_territories("a") == [
            {
                "tile_x": 0,
                "tile_y": 0,
                "clan_id": "a",
                "claimed_at": clock.now - 3600,
                "claimed_by": "leader-a",
                "defense_bonus": 0,
            }
        ]
        with pytest.raises(TerritoryNotOwned):
            await service.abandon_territory("a", "leader-a", 5, 5)

    asyncio.run(scenario())


def test_territory_lookup(store, clock, make_clan):
    async def scenario():
        service = _service(store, clock)
        await service.register_clan(make_clan("alpha", tiles=[(2, 2)]))
        info = await service.territory_at(2, 2)
        assert info["clan_id"] == "alpha"
        assert info["clan_tag"] == "ALPH"
        assert await service.territory_at(3, 3) is None

    asyncio.run(scenario())


def test_declare_war(store, clock, make_clan):
    async def scenario():
        service = _service(store, clock)
        await service.register_clan(make_clan("a"))
        await service.register_clan(make_clan("b"))

        with pytest.raises(SelfWar):
            await service.declare_war("a", "a", "leader-a")

        result = await service.declare_war("a", "b", "leader-a")
        assert result["war"]["status"] == WarStatus.ACTIVE.value
        assert result["war"]["started_at"] == clock.now
        assert (await store.get_clan("a")).bank == Resources(metal=8000, energy=8000)

        with pytest.raises(WarAlreadyActive):
            await service.declare_war("b", "a", "leader-b")
        assert [w["war_id"] for w in await service.active_wars("b")] == [
            result["war"]["war_id"]
        ]

    asyncio.run(scenario())


def test_declare_war_with_exact_balance_empties_bank(store, clock, make_clan):
    async def scenario():
        service = _service(store, clock)
        await service.register_clan(make_clan("a", level=5, metal=2000, energy=2000))
        await service.register_clan(make_clan("b"))

        result = await service.declare_war("a", "b", "leader-a")
        assert result["cost"] == {"metal": 2000, "energy": 2000}
        assert (await store.get_clan("a")).bank == Resources(metal=0, energy=0)

    asyncio.run(scenario())


def test_capture_is_idempotent_per_attempt(store, clock, make_clan):
    async def scenario():
        # only one sample: a second draw would fail
        service = _service(store, clock, 0.1)
        await service.register_clan(make_clan("a", tiles=[(0, 0)]))
        await service.register_clan(make_clan("b", tiles=[(5, 5), (5, 6)]))
        await service.declare_war("a", "b", "leader-a")

        first = await service.capture_territory(
            "a", "b", 5, 5, "leader-a", attempt_id="req-1"
        )
        assert first["success"] is True
        assert first["defense_bonus"] == 10
        assert first["success_rate"] == pytest.approx(0.65)

        retry = await service.capture_territory(
            "a", "b", 5, 5, "leader-a", attempt_id="req-1"
        )
        assert retry == first
        assert service.rng.calls == 1

        assert await store.tile_owner((5, 5)) == "a"
        attacker = await store.get_clan("a")
        defender = await store.get_clan("b")
        assert attacker.coords() == {(0, 0), (5, 5)}
        assert attacker.stats.territories_captured == 1
        assert defender.coords() == {(5, 6)}
        assert defender.territories[0].defense_bonus == 0

        war = (await store.wars_for_clan("a"))[0]
        assert (war.stats.attacker_attempts, war.stats.attacker_captures) == (1, 1)

    asyncio.run(scenario())


def test_reused_attempt_id_on_another_tile_rolls_again(store, clock, make_clan):
    async def scenario():
        service = _service(store, clock, 0.99, 0.1)
        await service.register_clan(make_clan("a", tiles=[(0, 0)]))
        await service.register_clan(make_clan("b", tiles=[(5, 5), (9, 9)]))
        await service.declare_war("a", "b", "leader-a")

        first = await service.capture_territory(
            "a", "b", 5, 5, "leader-a", attempt_id="req-1"
        )
        assert first["success"] is False

        other = await service.capture_territory(
            "a", "b", 9, 9, "leader-a", attempt_id="req-1"
        )
        assert service.rng.calls == 2
        assert other["success"] is True
        assert other["territory"]["tile_x"] == 9
        assert await store.tile_owner((9, 9)) == "a"
        assert await store.tile_owner((5, 5)) == "b"

    asyncio.run(scenario())


def test_defended_capture_only_counts_attempt(store, clock, make_clan):
    async def scenario():
        service = _service(store, clock, 0.99)
        await service.register_clan(make_clan("a", tiles=[(0, 0)]))
        await service.register_clan(make_clan("b", tiles=[(5, 5)]))
        await service.declare_war("a", "b", "leader-a")

        # the defender strikes back on the attacker's tile
        result = await service.capture_territory("b", "a", 0, 0, "leader-b")
        assert result["success"] is False
        assert await store.tile_owner((0, 0)) == "a"
        war = (await store.wars_for_clan("a"))[0]
        assert (war.stats.defender_attempts, war.stats.defender_captures) == (1, 0)
        kinds = [e["type"] for e in await store.tail_activity("a")]
        assert kinds[-1] == "TERRITORY_DEFENSE_SUCCESS"

    asyncio.run(scenario())


def test_capture_preconditions(store, clock, make_clan):
    async def scenario():
        service = _service(store, clock)
        await service.register_clan(make_clan("a", tiles=[(0, 0)]))
        await service.register_clan(make_clan("b", tiles=[(5, 5)]))
        with pytest.raises(NoActiveWar):
            await service.capture_territory("a", "b", 5, 5, "leader-a")
        await service.declare_war("a", "b", "leader-a")
        with pytest.raises(NotEnemyTerritory):
            await service.capture_territory("a", "b", 9, 9, "leader-a")
        assert service.rng.calls == 0

    asyncio.run(scenario())


def test_end_war_pays_winner_and_starts_cooldown(store, clock, make_clan):
    async def scenario():
        service = _service(store, clock)
        await service.register_clan(make_clan("a"))
        await service.register_clan(make_clan("b"))
        declared = await service.declare_war("a", "b", "leader-a")
        war_id = declared["war"]["war_id"]

        with pytest.raises(WarTooShort):
            await service.end_war(war_id, WarOutcome.WIN)

        clock.advance(49)
        result = await service.end_war(war_id, "WIN", ended_by="admin")
        assert result["spoils"] == {"metal": 1500, "energy": 1500, "rp": 0}
        assert result["objectives"] == ["BLITZKRIEG"]

        winner = await store.get_clan("a")
        loser = await store.get_clan("b")
        assert winner.bank == Resources(metal=9500, energy=9500)
        assert loser.bank == Resources(metal=8500, energy=8500)
        assert winner.xp == 50000
        assert loser.xp == 0
        assert (winner.stats.wars_won, loser.stats.wars_lost) == (1, 1)
        assert await service.active_wars("a") == []
        history = await service.war_history("b")
        assert history[0]["winner"] == "a"

        with pytest.raises(CooldownActive):
            await service.declare_war("b", "a", "leader-b")
        clock.advance(48)
        await service.declare_war("b", "a", "leader-b")

    asyncio.run(scenario())


def test_daily_income_once_per_day(store, clock, make_clan):
    async def scenario():
        service = _service(store, clock)
        await service.register_clan(make_clan("a", level=3, tiles=[(0, 0), (0, 1)]))
        await service.register_clan(make_clan("empty"))

        projection = await service.income_projection("a")
        assert projection["metal_per_day"] == 2400
        assert projection["can_collect_now"] is True

        result = await service.collect_daily_income("a")
        assert result["metal_collected"] == 2400
        with pytest.raises(IncomeAlreadyCollected):
            await service.collect_daily_income("a")

        clock.advance(12)
        await service.collect_daily_income("a")
        assert (await store.get_clan("a")).bank.metal == 10000 + 2 * 2400

        empty = await service.collect_daily_income("empty")
        assert empty["territory_count"] == 0

    asyncio.run(scenario())
