#!/usr/bin/env python3
"""
Error kinds raised by the rules engine and the clan service.

Every error carries an ``ErrorKind``; a route layer maps it to a transport
status through ``HTTP_STATUS`` and never inspects the message text.
"""
from __future__ import annotations

from enum import Enum
from typing import Any, Dict


class ErrorKind(str, Enum):
    VALIDATION = "validation"
    PERMISSION = "permission"
    NOT_FOUND = "not_found"
    BUSINESS_RULE = "business_rule"
    CONFLICT = "conflict"
    INTERNAL = "internal"


HTTP_STATUS: Dict[ErrorKind, int] = {
    ErrorKind.VALIDATION: 400,
    ErrorKind.PERMISSION: 403,
    ErrorKind.NOT_FOUND: 404,
    ErrorKind.BUSINESS_RULE: 400,
    ErrorKind.CONFLICT: 409,
    ErrorKind.INTERNAL: 500,
}


class WarfrontError(Exception):
    kind: ErrorKind = ErrorKind.INTERNAL
    code: str = "internal"

    def __init__(self, message: str, **details: Any) -> None:
        super().__init__(message)
        self.message = message
        self.details: Dict[str, Any] = details

    @property
    def status(self) -> int:
        return HTTP_STATUS[self.kind]

    def to_payload(self) -> Dict[str, Any]:
        return {
            "success": False,
            "code": self.code,
            "message": self.message,
            **self.details,
        }


# ---------- Validation ----------


class ValidationError(WarfrontError):
    kind = ErrorKind.VALIDATION
    code = "validation"


class InvalidCoordinates(ValidationError):
    code = "invalid_coordinates"


class InvalidPerkValue(ValidationError):
    code = "invalid_perk_value"


class InvalidDefenseBonus(ValidationError):
    code = "invalid_defense_bonus"


# ---------- Permission ----------


class PermissionDenied(WarfrontError):
    kind = ErrorKind.PERMISSION
    code = "permission"


class NotAClanMember(PermissionDenied):
    code = "not_a_member"


class InsufficientRank(PermissionDenied):
    code = "insufficient_rank"


# ---------- Not found ----------


class NotFound(WarfrontError):
    kind = ErrorKind.NOT_FOUND
    code = "not_found"


class ClanNotFound(NotFound):
    code = "clan_not_found"


class WarNotFound(NotFound):
    code = "war_not_found"


class TerritoryNotOwned(NotFound):
    code = "territory_not_owned"


# ---------- Business rules ----------


class BusinessRuleViolation(WarfrontError):
    kind = ErrorKind.BUSINESS_RULE
    code = "business_rule"


class AlreadyClaimed(BusinessRuleViolation):
    code = "already_claimed"


class NotAdjacent(BusinessRuleViolation):
    code = "not_adjacent"


class LimitReached(BusinessRuleViolation):
    code = "limit_reached"


class InsufficientResources(BusinessRuleViolation):
    code = "insufficient_resources"


class LevelTooLow(BusinessRuleViolation):
    code = "level_too_low"


class WarAlreadyActive(BusinessRuleViolation):
    code = "war_already_active"


class CooldownActive(BusinessRuleViolation):
    code = "cooldown_active"


class SelfWar(BusinessRuleViolation):
    code = "self_war"


class NoActiveWar(BusinessRuleViolation):
    code = "no_active_war"


class NotEnemyTerritory(BusinessRuleViolation):
    code = "not_enemy_territory"


class WarNotPending(BusinessRuleViolation):
    code = "war_not_pending"


class WarTooShort(BusinessRuleViolation):
    code = "war_too_short"


class WarAlreadyEnded(BusinessRuleViolation):
    code = "war_already_ended"


class IncomeAlreadyCollected(BusinessRuleViolation):
    code = "income_already_collected"


# ---------- Conflict ----------


class LeaseUnavailable(WarfrontError):
    kind = ErrorKind.CONFLICT
    code = "lease_unavailable"


def status_for(exc: BaseException) -> int:
    """Transport status for any exception; non-engine errors are internal."""
    if isinstance(exc, WarfrontError):
        return exc.status
    return HTTP_STATUS[ErrorKind.INTERNAL]
