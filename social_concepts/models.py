"""
Data models for the permission ledger and the concepts around it.
"""

from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from typing import Optional, Dict, Any

from .errors import InvalidActionError


class Action(str, Enum):
    """Closed set of actions that can be denied per user."""
    MESSAGE = "Message"
    FRIEND = "Friend"
    NUDGE = "Nudge"
    RECORD = "Record"
    POST = "Post"

    def __str__(self) -> str:
        return self.value

    @classmethod
    def parse(cls, value: Any) -> "Action":
        if isinstance(value, cls):
            return value
        try:
            return cls(value)
        except ValueError:
            raise InvalidActionError(value) from None


@dataclass(frozen=True)
class DeniedAction:
    """A standing record that a user is currently blocked from an action."""
    user: str
    action: Action


@dataclass(frozen=True)
class AuthorizationDelegation:
    """Directed edge: ``authorizer`` may deny/allow actions for ``authorizee``."""
    authorizer: str
    authorizee: str


@dataclass
class AuditEvent:
    """Represents an audit event for a ledger decision."""
    timestamp: datetime
    event_type: str  # "action_denied", "action_allowed", "control_given", "control_revoked", "check_refused"
    actor: str
    subject: str
    action: Optional[str] = None
    decision: str = "allowed"  # "allowed", "denied", "refused"
    reason: str = ""
    metadata: Dict[str, Any] = None

    def __post_init__(self):
        if self.metadata is None:
            self.metadata = {}
