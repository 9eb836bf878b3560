import asyncio
from dataclasses import replace

from services.war_worker.worker import WarWorker, WorkerConfig
from warfront.infra.redis_store import pair_key
from warfront.models import WarStatus
from warfront.service import ClanService

CONFIG = WorkerConfig(
    lease_key="test:lease:war-worker",
    lease_ttl_ms=5000,
    worker_id="worker-1",
    command_group="war",
    command_consumer="war-test",
    command_block_ms=None,
    income_enabled=True,
    idle_delay=0.0,
    log_level="DEBUG",
)


def test_worker_settles_queued_wars(store, clock, make_clan):
    async def scenario():
        service = ClanService(store, clock=clock)
        worker = WarWorker(store=store, config=CONFIG, service=service)
        await worker.setup()

        await service.register_clan(make_clan("a"))
        await service.register_clan(make_clan("b"))
        war_id = (await service.declare_war("a", "b", "leader-a"))["war"]["war_id"]
        clock.advance(50)

        await store.append_command({"type": "end_war", "war_id": war_id, "outcome": "TRUCE"})
        # rule failures are acked, not retried
        await store.append_command({"type": "end_war", "war_id": war_id, "outcome": "WIN"})
        await store.append_command({"type": "launch_nukes"})
        assert await worker.process_commands() == 3
        assert await worker.process_commands() == 0

        war = await store.get_war(war_id)
        assert war.status == WarStatus.ENDED
        assert war.winner is None

    asyncio.run(scenario())


def test_worker_pays_income_once_per_day(store, clock, make_clan):
    async def scenario():
        service = ClanService(store, clock=clock)
        worker = WarWorker(store=store, config=CONFIG, service=service)
        await service.register_clan(make_clan("a", level=1, tiles=[(0, 0)]))
        await service.register_clan(make_clan("b"))

        assert await worker.collect_income(clock.now) == 1
        assert await worker.collect_income(clock.now) == 0
        clock.advance(24)
        assert await worker.collect_income(clock.now) == 1
        assert (await store.get_clan("a")).bank.metal == 12000

    asyncio.run(scenario())


def test_second_worker_refuses_to_start(store):
    async def scenario():
        first = WarWorker(store=store, config=CONFIG)
        await first.setup()
        other = WarWorker(store=store, config=replace(CONFIG, worker_id="worker-2"))
        await other.run()
        assert await store.client.get(CONFIG.lease_key) == "worker-1"

    asyncio.run(scenario())


def test_settlement_waits_out_a_busy_war_lease(store, clock, make_clan):
    async def scenario():
        service = ClanService(store, clock=clock)
        worker = WarWorker(store=store, config=CONFIG, service=service)
        await worker.setup()

        await service.register_clan(make_clan("a"))
        await service.register_clan(make_clan("b"))
        war_id = (await service.declare_war("a", "b", "leader-a"))["war"]["war_id"]
        clock.advance(50)
        await store.append_command({"type": "end_war", "war_id": war_id, "outcome": "WIN"})

        # a capture in flight holds the pair lease
        async with store.lease(f"war:{pair_key('a', 'b')}"):
            assert await worker.process_commands() == 0
        pending = await store.client.xpending(store.command_stream, CONFIG.command_group)
        assert pending["pending"] == 1
        assert (await store.get_war(war_id)).status == WarStatus.ACTIVE

        assert await worker.process_commands() == 1
        war = await store.get_war(war_id)
        assert war.status == WarStatus.ENDED
        assert war.winner == "a"
        pending = await store.client.xpending(store.command_stream, CONFIG.command_group)
        assert pending["pending"] == 0
        assert await worker.process_commands() == 0

    asyncio.run(scenario())
