from dataclasses import dataclass, field
from enum import Enum
from typing import Optional, List


class ClanRole(str, Enum):
    LEADER = "LEADER"
    CO_LEADER = "CO_LEADER"
    OFFICER = "OFFICER"
    MEMBER = "MEMBER"


class WarStatus(str, Enum):
    DECLARED = "DECLARED"  # declared, waiting for the defender to accept
    ACTIVE = "ACTIVE"  # territory can be captured
    ENDED = "ENDED"


class WarOutcome(str, Enum):
    WIN = "WIN"  # attacker won
    LOSS = "LOSS"  # defender won
    TRUCE = "TRUCE"


OPEN_WAR_STATES = (WarStatus.DECLARED, WarStatus.ACTIVE)

Coord = tuple[int, int]


@dataclass
class Resources:
    metal: int = 0
    energy: int = 0
    rp: int = 0  # research points, only moved by war spoils


@dataclass(frozen=True)
class Perk:
    category: str  # e.g. "territory_cost"
    value: int  # percentage


@dataclass
class ClanMember:
    player_id: str
    role: ClanRole = ClanRole.MEMBER


@dataclass
class Territory:
    tile_x: int
    tile_y: int
    clan_id: str
    claimed_at: float
    claimed_by: str
    defense_bonus: int = 0  # derived from same-clan neighbours, 0..100

    @property
    def coord(self) -> Coord:
        return (self.tile_x, self.tile_y)


@dataclass
class ClanStats:
    total_territories: int = 0
    territories_captured: int = 0
    total_wars: int = 0
    wars_won: int = 0
    wars_lost: int = 0


@dataclass
class Clan:
    clan_id: str
    name: str
    tag: str
    level: int = 1
    members: List[ClanMember] = field(default_factory=list)
    perks: List[Perk] = field(default_factory=list)
    territories: List[Territory] = field(default_factory=list)
    bank: Resources = field(default_factory=Resources)
    xp: int = 0
    last_income_at: Optional[float] = None
    stats: ClanStats = field(default_factory=ClanStats)

    def member(self, player_id: str) -> Optional[ClanMember]:
        for m in self.members:
            if m.player_id == player_id:
                return m
        return None

    def coords(self) -> set[Coord]:
        return {t.coord for t in self.territories}

    def territory_at(self, tile_x: int, tile_y: int) -> Optional[Territory]:
        for t in self.territories:
            if t.tile_x == tile_x and t.tile_y == tile_y:
                return t
        return None


@dataclass
class WarStats:
    attacker_attempts: int = 0
    attacker_captures: int = 0
    defender_attempts: int = 0
    defender_captures: int = 0


@dataclass
class War:
    war_id: str
    attacker_clan_id: str
    defender_clan_id: str
    status: WarStatus
    declaration_cost: Resources
    declared_at: float
    started_at: Optional[float] = None
    ended_at: Optional[float] = None
    winner: Optional[str] = None
    outcome: Optional[WarOutcome] = None
    stats: WarStats = field(default_factory=WarStats)

    @property
    def is_open(self) -> bool:
        return self.status in OPEN_WAR_STATES


@dataclass
class WarStatsDelta:
    """Increments a capture attempt adds to a war's stats."""

    attacker_side: bool  # True when the capturing clan is the war's attacker
    attempts: int = 1
    captures: int = 0


@dataclass
class WarDeclaration:
    cost: Resources
    status: WarStatus


@dataclass
class CaptureOutcome:
    captured: bool
    defense_bonus: int
    success_rate: float
    sample: float
    stats_delta: WarStatsDelta
    territory: Optional[Territory] = None  # the re-parented tile when captured


@dataclass
class WarSettlement:
    """Resource and XP movement when a war ends."""

    winner: Optional[str]
    loser: Optional[str]
    spoils: Resources = field(default_factory=Resources)
    winner_xp: int = 0
    loser_xp_penalty: int = 0
    objectives: List[str] = field(default_factory=list)


@dataclass
class IncomeProjection:
    metal_per_day: int
    energy_per_day: int
    per_territory: int
    territory_count: int


