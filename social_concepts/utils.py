"""
Utility functions that compose several concepts.
"""

from typing import Any, Dict, Optional

from .ledger import PermissionLedger
from .messaging import MessagingConcept
from .models import Action
from .nudging import NudgingConcept
from .recording import RecordingConcept


async def purge_deleted_user(
    user: str,
    ledger: PermissionLedger,
    messaging: Optional[MessagingConcept] = None,
    nudging: Optional[NudgingConcept] = None,
    recording: Optional[RecordingConcept] = None,
    logger=None
) -> Dict[str, int]:
    """
    Remove everything that references a deleted user.

    Denials and delegation edges on either end are deleted from the ledger,
    then the user's messages, nudges and records.

    Args:
        user: ID of the deleted user
        ledger: The permission ledger to purge
        messaging: Optional messaging concept to purge
        nudging: Optional nudging concept to purge
        recording: Optional recording concept to purge
        logger: Optional logger instance

    Returns:
        Number of removed items per concept
    """
    removed = {
        "permissions": (await ledger.purge_user(user))["tuples_revoked"],
        "messages": await messaging.delete_by_user(user) if messaging else 0,
        "nudges": await nudging.delete_by_user(user) if nudging else 0,
        "records": await recording.delete_by_user(user) if recording else 0,
    }
    if logger:
        logger.info(f"Purged deleted user {user}: {removed}")
    return removed


async def record_if_tracked(
    recording: RecordingConcept,
    user: str,
    action: Any
) -> Optional[Dict[str, Any]]:
    """
    Record ``action`` for ``user`` when the action is tracked automatically.

    Returns:
        The created record, or None when the action is not tracked
    """
    action = Action.parse(action)
    if not await recording.is_action_automatically_tracked(action):
        return None
    created = await recording.create(user, action)
    return created["record"]
