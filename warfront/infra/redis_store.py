#!/usr/bin/env python3
"""
Redis-backed document store for clans, wars and tile ownership.

Provides a thin wrapper around redis.asyncio for:
- clan and war documents stored as JSON strings
- a tile ownership index (one key per coordinate, written with SET NX)
- short leases that serialise read-modify-write on a clan or war pair
- the clan activity stream and the worker command stream
"""
from __future__ import annotations

import asyncio
import json
import logging
import time
import uuid
from contextlib import asynccontextmanager
from typing import Any, AsyncIterator, Iterable, List, Optional

from redis import asyncio as aioredis
from redis.exceptions import ResponseError

from warfront.errors import LeaseUnavailable
from warfront.models import REDIS_SETTINGS, CaptureOutcome, Clan, Coord, War
from warfront.state_utils import (
    capture_from_doc,
    capture_to_doc,
    clan_from_doc,
    clan_to_doc,
    war_from_doc,
    war_to_doc,
)

logger = logging.getLogger(__name__)

_RELEASE_SCRIPT = """
if redis.call('GET', KEYS[1]) == ARGV[1] then
    return redis.call('DEL', KEYS[1])
else
    return 0
end
"""


def pair_key(clan_a: str, clan_b: str) -> str:
    """Order-independent key part for a clan pair."""
    first, second = sorted((clan_a, clan_b))
    return f"{first}|{second}"


class ClanStore:
    def __init__(
        self,
        url: str | None = None,
        client: Any = None,
        key_prefix: str | None = None,
        activity_stream: str | None = None,
        lease_ttl_ms: int | None = None,
        lease_wait_ms: int | None = None,
    ) -> None:
        self.url = url or str(REDIS_SETTINGS.redis_url)
        self.prefix = key_prefix or REDIS_SETTINGS.key_prefix
        self.activity_stream = activity_stream or REDIS_SETTINGS.activity_stream
        self.command_stream = f"{self.prefix}:commands"
        self.lease_ttl_ms = lease_ttl_ms or REDIS_SETTINGS.lease_ttl_ms
        self.lease_wait_ms = lease_wait_ms or REDIS_SETTINGS.lease_wait_ms
        # decode_responses=True so we deal with str, not bytes
        self._redis = client or aioredis.from_url(self.url, decode_responses=True)

    @property
    def client(self):
        return self._redis

    async def close(self) -> None:
        await self._redis.aclose()

    # --- Key helpers ---
    def _clan_key(self, clan_id: str) -> str:
        return f"{self.prefix}:clan:{clan_id}"

    def _clan_index_key(self) -> str:
        return f"{self.prefix}:clans"

    def _clan_wars_key(self, clan_id: str) -> str:
        return f"{self.prefix}:clan:{clan_id}:wars"

    def _tile_key(self, coord: Coord) -> str:
        return f"{self.prefix}:tile:{coord[0]}:{coord[1]}"

    def _war_key(self, war_id: str) -> str:
        return f"{self.prefix}:war:{war_id}"

    def _open_war_key(self, clan_a: str, clan_b: str) -> str:
        return f"{self.prefix}:war:open:{pair_key(clan_a, clan_b)}"

    def _war_ended_key(self, clan_a: str, clan_b: str) -> str:
        return f"{self.prefix}:war:ended:{pair_key(clan_a, clan_b)}"

    def _capture_key(self, attempt_id: str) -> str:
        return f"{self.prefix}:capture:{attempt_id}"

    def _lease_key(self, name: str) -> str:
        return f"{self.prefix}:lease:{name}"

    # --- Leases ---
    async def _acquire_lease(self, key: str, holder: str) -> bool:
        return bool(
            await self._redis.set(name=key, value=holder, nx=True, px=self.lease_ttl_ms)
        )

    async def _release_lease(self, key: str, holder: str) -> None:
        await self._redis.eval(_RELEASE_SCRIPT, 1, key, holder)

    @asynccontextmanager
    async def lease(self, *names: str) -> AsyncIterator[str]:
        """
        Hold every named lease for the duration of the block. Names are taken
        in sorted order so two callers never wait on each other crosswise.
        Raises LeaseUnavailable when the wait budget runs out.
        """
        holder = uuid.uuid4().hex
        keys = [self._lease_key(n) for n in sorted(set(names))]
        deadline = time.monotonic() + self.lease_wait_ms / 1000
        held: list[str] = []
        try:
            for key in keys:
                while not await self._acquire_lease(key, holder):
                    if time.monotonic() >= deadline:
                        logger.warning("lease busy key=%s", key)
                        raise LeaseUnavailable(
                            "Another action is in progress; try again", lease=key
                        )
                    await asyncio.sleep(0.02)
                held.append(key)
            yield holder
        finally:
            for key in reversed(held):
                await self._release_lease(key, holder)

    # --- Clan documents ---
    async def get_clan(self, clan_id: str) -> Optional[Clan]:
        raw = await self._redis.get(self._clan_key(clan_id))
        if not raw:
            return None
        return clan_from_doc(json.loads(raw))

    async def save_clan(self, clan: Clan) -> None:
        await self.commit(clans=[clan])

    async def clan_ids(self) -> List[str]:
        return sorted(await self._redis.smembers(self._clan_index_key()) or [])

    # --- Tile index ---
    async def tile_owner(self, coord: Coord) -> Optional[str]:
        return await self._redis.get(self._tile_key(coord))

    async def reserve_tile(self, coord: Coord, clan_id: str) -> bool:
        """Take the coordinate for `clan_id`; False if any clan holds it."""
        return bool(await self._redis.set(self._tile_key(coord), clan_id, nx=True))

    async def release_tile(self, coord: Coord, clan_id: str) -> None:
        await self._redis.eval(_RELEASE_SCRIPT, 1, self._tile_key(coord), clan_id)

    # --- War documents ---
    async def get_war(self, war_id: str) -> Optional[War]:
        raw = await self._redis.get(self._war_key(war_id))
        if not raw:
            return None
        return war_from_doc(json.loads(raw))

    async def open_war_between(self, clan_a: str, clan_b: str) -> Optional[War]:
        war_id = await self._redis.get(self._open_war_key(clan_a, clan_b))
        if not war_id:
            return None
        return await self.get_war(war_id)

    async def last_war_ended_at(self, clan_a: str, clan_b: str) -> Optional[float]:
        raw = await self._redis.get(self._war_ended_key(clan_a, clan_b))
        return float(raw) if raw else None

    async def wars_for_clan(self, clan_id: str) -> List[War]:
        war_ids = await self._redis.smembers(self._clan_wars_key(clan_id)) or []
        if not war_ids:
            return []
        raws = await self._redis.mget([self._war_key(w) for w in war_ids])
        return [war_from_doc(json.loads(raw)) for raw in raws if raw]

    # --- Capture outcomes (idempotency) ---
    async def get_capture(self, attempt_id: str) -> Optional[CaptureOutcome]:
        raw = await self._redis.get(self._capture_key(attempt_id))
        if not raw:
            return None
        return capture_from_doc(json.loads(raw))

    # --- Atomic commit ---
    async def commit(
        self,
        clans: Iterable[Clan] = (),
        wars: Iterable[War] = (),
        set_tiles: Iterable[tuple[Coord, str]] = (),
        del_tiles: Iterable[Coord] = (),
        capture: tuple[str, CaptureOutcome] | None = None,
        capture_ttl_seconds: int | None = None,
    ) -> None:
        """
        Write every staged document in a single MULTI/EXEC so readers never
        observe half of a claim, capture or war transition.
        """
        async with self._redis.pipeline(transaction=True) as pipe:
            for clan in clans:
                pipe.set(self._clan_key(clan.clan_id), json.dumps(clan_to_doc(clan)))
                pipe.sadd(self._clan_index_key(), clan.clan_id)
            for war in wars:
                self._stage_war(pipe, war)
            for coord, clan_id in set_tiles:
                pipe.set(self._tile_key(coord), clan_id)
            for coord in del_tiles:
                pipe.delete(self._tile_key(coord))
            if capture is not None:
                attempt_id, outcome = capture
                pipe.set(
                    self._capture_key(attempt_id),
                    json.dumps(capture_to_doc(outcome)),
                    ex=capture_ttl_seconds or REDIS_SETTINGS.capture_result_ttl_seconds,
                )
            await pipe.execute()

    def _stage_war(self, pipe: Any, war: War) -> None:
        pipe.set(self._war_key(war.war_id), json.dumps(war_to_doc(war)))
        pipe.sadd(self._clan_wars_key(war.attacker_clan_id), war.war_id)
        pipe.sadd(self._clan_wars_key(war.defender_clan_id), war.war_id)
        open_key = self._open_war_key(war.attacker_clan_id, war.defender_clan_id)
        if war.is_open:
            pipe.set(open_key, war.war_id)
        else:
            pipe.delete(open_key)
            if war.ended_at is not None:
                pipe.set(
                    self._war_ended_key(war.attacker_clan_id, war.defender_clan_id),
                    str(war.ended_at),
                )

    # --- Activity stream ---
    async def append_activity(
        self, clan_id: str, kind: str, message: str, **metadata: Any
    ) -> str:
        """
        Append an activity entry to the stream. Uses field name 'data' to store JSON.
        """
        payload = {
            "clan_id": clan_id,
            "type": kind,
            "message": message,
            "metadata": metadata,
            "timestamp": time.time(),
        }
        return await self._redis.xadd(
            name=self.activity_stream,
            fields={"data": json.dumps(payload)},
            maxlen=REDIS_SETTINGS.activity_maxlen,
            approximate=True,
        )

    async def tail_activity(
        self, clan_id: str | None = None, count: int = 50
    ) -> list[dict]:
        """
        Fetch the most recent activity entries, oldest first, optionally for
        one clan.
        """
        entries = await self._redis.xrevrange(
            self.activity_stream, max="+", min="-", count=count
        )
        out: list[dict] = []
        for _, fields in entries:
            payload_raw = fields.get("data")
            payload = json.loads(payload_raw) if payload_raw else {}
            if clan_id is None or payload.get("clan_id") == clan_id:
                out.append(payload)
        out.reverse()
        return out

    # --- Worker command stream ---
    async def ensure_consumer_group(self, group: str) -> None:
        """
        Create the consumer group if it does not already exist.
        """
        try:
            await self._redis.xgroup_create(
                self.command_stream, group, id="0", mkstream=True
            )
        except ResponseError as exc:
            if "BUSYGROUP" in str(exc):
                return
            raise

    async def append_command(self, payload: dict) -> str:
        return await self._redis.xadd(
            name=self.command_stream,
            fields={"data": json.dumps(payload)},
            maxlen=5000,
            approximate=True,
        )

    async def read_commands(
        self,
        group: str,
        consumer: str,
        count: int = 20,
        block_ms: int | None = 1000,
        pending: bool = False,
    ) -> list[tuple[str, dict]]:
        """
        Read commands via consumer group semantics.
        With `pending=True`, re-read the entries this consumer was handed
        but never acked instead of new ones.
        Returns a list of (message_id, payload_dict).
        """
        entries = await self._redis.xreadgroup(
            groupname=group,
            consumername=consumer,
            streams={self.command_stream: "0" if pending else ">"},
            count=count,
            block=block_ms,
        )
        if not entries:
            return []
        out: list[tuple[str, dict]] = []
        for _, messages in entries:
            for message_id, fields in messages:
                # a pending entry trimmed from the stream comes back without fields
                payload_raw = (fields or {}).get("data")
                payload = json.loads(payload_raw) if payload_raw else {}
                out.append((message_id, payload))
        return out

    async def ack_commands(self, ids: Iterable[str], group: str) -> None:
        ids = list(ids)
        if not ids:
            return
        await self._redis.xack(self.command_stream, group, *ids)
