from __future__ import annotations

from dataclasses import dataclass
from enum import Enum


class Action(str, Enum):
    READ = "read"
    CREATE = "create"
    UPDATE = "update"
    DELETE = "delete"


class DecisionReason(str, Enum):
    SELF = "self"
    UNRESTRICTED = "unrestricted"
    ROLE = "role"
    PERMISSION = "permission"
    DENIED = "denied"


@dataclass(frozen=True)
class AccessDecision:
    allowed: bool
    reason: DecisionReason
    resource: str | None = None
    action: Action | None = None
