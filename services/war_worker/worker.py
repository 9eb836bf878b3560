#!/usr/bin/env python3
"""
War worker: applies queued war settlements and pays out daily territory income.

Route handlers enqueue commands on the command stream instead of settling wars
inline. A Redis lease ensures only one worker drains the stream at a time.
"""
from __future__ import annotations

import asyncio
import logging
import os
import signal
import socket
from dataclasses import dataclass
from typing import List, Tuple

from warfront.errors import IncomeAlreadyCollected, LeaseUnavailable, WarfrontError
from warfront.infra.redis_store import ClanStore
from warfront.logging_config import configure_logging
from warfront.service import ClanService
from warfront.timeutils import collection_day_start

logger = logging.getLogger("war-worker")

_RENEW_SCRIPT = """
if redis.call('GET', KEYS[1]) == ARGV[1] then
    return redis.call('PEXPIRE', KEYS[1], ARGV[2])
else
    return 0
end
"""

_RELEASE_SCRIPT = """
if redis.call('GET', KEYS[1]) == ARGV[1] then
    return redis.call('DEL', KEYS[1])
else
    return 0
end
"""


@dataclass(frozen=True)
class WorkerConfig:
    lease_key: str
    lease_ttl_ms: int
    worker_id: str
    command_group: str
    command_consumer: str
    command_block_ms: int
    income_enabled: bool
    idle_delay: float
    log_level: str


def _load_config() -> WorkerConfig:
    return WorkerConfig(
        lease_key=os.environ.get("WAR_WORKER_LEASE_KEY", "warfront:lease:war-worker"),
        lease_ttl_ms=int(os.environ.get("WAR_WORKER_LEASE_TTL_MS", 15000)),
        worker_id=os.environ.get("WORKER_ID", socket.gethostname()),
        command_group=os.environ.get("COMMAND_GROUP", "war"),
        command_consumer=os.environ.get("COMMAND_CONSUMER", f"war-{os.getpid()}"),
        command_block_ms=int(os.environ.get("COMMAND_BLOCK_MS", 1000)),
        income_enabled=os.environ.get("AUTO_COLLECT_INCOME", "true").lower() == "true",
        idle_delay=float(os.environ.get("IDLE_DELAY", 0.5)),
        log_level=os.environ.get("LOG_LEVEL", "INFO"),
    )


_CONFIG = _load_config()


class WarWorker:
    def __init__(
        self,
        store: ClanStore | None = None,
        config: WorkerConfig = _CONFIG,
        service: ClanService | None = None,
    ) -> None:
        self.config = config
        self.store = store or ClanStore()
        self.service = service or ClanService(self.store)
        self._stop = asyncio.Event()
        self._income_day: float | None = None

    async def setup(self) -> None:
        await self.store.ensure_consumer_group(self.config.command_group)
        if not await self._acquire_lease():
            raise RuntimeError("lease already held; refusing to start")
        logger.info(
            "lease acquired key=%s holder=%s", self.config.lease_key, self.config.worker_id
        )

    async def _acquire_lease(self) -> bool:
        return bool(
            await self.store.client.set(
                name=self.config.lease_key,
                value=self.config.worker_id,
                nx=True,
                px=self.config.lease_ttl_ms,
            )
        )

    async def _renew_lease(self) -> bool:
        res = await self.store.client.eval(
            _RENEW_SCRIPT,
            1,
            self.config.lease_key,
            self.config.worker_id,
            self.config.lease_ttl_ms,
        )
        return res == 1

    async def _release_lease(self) -> None:
        await self.store.client.eval(
            _RELEASE_SCRIPT, 1, self.config.lease_key, self.config.worker_id
        )

    async def handle_command(self, payload: dict) -> None:
        kind = payload.get("type")
        if kind == "end_war":
            await self.service.end_war(
                payload["war_id"],
                payload["outcome"],
                ended_by=payload.get("ended_by", "system"),
            )
        elif kind == "collect_income":
            await self.service.collect_daily_income(payload["clan_id"])
        else:
            logger.warning("unknown command type=%s", kind)

    async def process_commands(self) -> int:
        """
        Drain one batch from the command stream. Entries this consumer left
        unacked earlier are retried ahead of new ones. Rule failures are
        logged and acked; lease contention and anything unexpected stay
        pending for the next pass. Returns how many entries were acked.
        """
        raw: List[Tuple[str, dict]] = await self.store.read_commands(
            group=self.config.command_group,
            consumer=self.config.command_consumer,
            count=20,
            block_ms=None,
            pending=True,
        )
        raw += await self.store.read_commands(
            group=self.config.command_group,
            consumer=self.config.command_consumer,
            count=20,
            block_ms=None if raw else self.config.command_block_ms,
        )
        to_ack: List[str] = []
        try:
            for msg_id, payload in raw:
                try:
                    await self.handle_command(payload)
                except LeaseUnavailable:
                    logger.info("command deferred id=%s: lease busy", msg_id)
                    continue
                except (WarfrontError, KeyError, ValueError) as exc:
                    logger.warning(
                        "command rejected id=%s payload=%s: %s", msg_id, payload, exc
                    )
                to_ack.append(msg_id)
        finally:
            await self.store.ack_commands(to_ack, self.config.command_group)
        return len(to_ack)

    async def collect_income(self, now: float) -> int:
        """Pay every clan once per income day. Returns how many clans were paid."""
        day = collection_day_start(now)
        if self._income_day == day:
            return 0
        paid = 0
        for clan_id in await self.store.clan_ids():
            try:
                result = await self.service.collect_daily_income(clan_id)
            except IncomeAlreadyCollected:
                continue
            if result["territory_count"]:
                paid += 1
        self._income_day = day
        logger.info("income collected clans=%d", paid)
        return paid

    async def run(self) -> None:
        try:
            await self.setup()
        except RuntimeError as exc:
            logger.error("%s", exc)
            return

        logger.info(
            "starting loop worker_id=%s group=%s", self.config.worker_id, self.config.command_group
        )
        try:
            while not self._stop.is_set():
                if not await self._renew_lease() and not await self._acquire_lease():
                    logger.error("lost lease; stopping")
                    break
                try:
                    handled = await self.process_commands()
                    if self.config.income_enabled:
                        await self.collect_income(self.service.clock())
                except Exception:  # pragma: no cover - background safety
                    logger.exception("error during cycle")
                    handled = 0
                if not handled:
                    await asyncio.sleep(self.config.idle_delay)
        finally:
            await self._release_lease()
            await self.store.close()
            logger.info("stopping loop")

    def stop(self) -> None:
        self._stop.set()


async def main() -> None:
    configure_logging(_CONFIG.log_level)
    worker = WarWorker()

    loop = asyncio.get_running_loop()
    for sig in (signal.SIGINT, signal.SIGTERM):
        loop.add_signal_handler(sig, worker.stop)

    await worker.run()


def run_main() -> None:
    asyncio.run(main())


if __name__ == "__main__":
    run_main()
