from .rules_config import RULES_CONFIG, RulesSettings
from .redis_config import REDIS_SETTINGS, RedisSettings
from .clan_models import (
    ClanRole,
    WarStatus,
    WarOutcome,
    OPEN_WAR_STATES,
    Coord,
    Resources,
    Perk,
    ClanMember,
    Territory,
    ClanStats,
    Clan,
    WarStats,
    War,
    WarStatsDelta,
    WarDeclaration,
    CaptureOutcome,
    WarSettlement,
    IncomeProjection,
)

__all__ = [
    "RULES_CONFIG",
    "RulesSettings",
    "REDIS_SETTINGS",
    "RedisSettings",
    "ClanRole",
    "WarStatus",
    "WarOutcome",
    "OPEN_WAR_STATES",
    "Coord",
    "Resources",
    "Perk",
    "ClanMember",
    "Territory",
    "ClanStats",
    "Clan",
    "WarStats",
    "War",
    "WarStatsDelta",
    "WarDeclaration",
    "CaptureOutcome",
    "WarSettlement",
    "IncomeProjection",
]
