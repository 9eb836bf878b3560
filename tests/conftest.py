import fakeredis
import pytest

from warfront.infra.redis_store import ClanStore
from warfront.models import Clan, ClanMember, ClanRole, Perk, Resources, Territory

# 2026-01-10 12:00:00 UTC
START = 1768046400.0


class StubRandom:
    """Hands out prepared samples; fails loudly if asked for more."""

    def __init__(self, *samples: float) -> None:
        self.samples = list(samples)
        self.calls = 0

    def random(self) -> float:
        self.calls += 1
        return self.samples.pop(0)


class Clock:
    def __init__(self, start: float = START) -> None:
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, hours: float) -> None:
        self.now += hours * 3600


@pytest.fixture
def clock():
    return Clock()


@pytest.fixture
def store():
    client = fakeredis.FakeAsyncRedis(server=fakeredis.FakeServer(), decode_responses=True)
    return ClanStore(
        client=client,
        key_prefix="test",
        activity_stream="test:activity",
        lease_wait_ms=100,
    )


@pytest.fixture
def make_clan():
    def _make(
        clan_id,
        level=5,
        metal=10000,
        energy=10000,
        rp=0,
        tiles=(),
        perks=(),
    ):
        return Clan(
            clan_id=clan_id,
            name=f"Clan {clan_id}",
            tag=clan_id.upper()[:4],
            level=level,
            members=[
                ClanMember(player_id=f"leader-{clan_id}", role=ClanRole.LEADER),
                ClanMember(player_id=f"officer-{clan_id}", role=ClanRole.OFFICER),
                ClanMember(player_id=f"grunt-{clan_id}", role=ClanRole.MEMBER),
            ],
            perks=[Perk(category=c, value=v) for c, v in perks],
            territories=[
                Territory(
                    tile_x=x,
                    tile_y=y,
                    clan_id=clan_id,
                    claimed_at=START - 3600,
                    claimed_by=f"leader-{clan_id}",
                )
                for x, y in tiles
            ],
            bank=Resources(metal=metal, energy=energy, rp=rp),
        )

    return _make
