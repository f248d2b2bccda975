"""
Action gateway that wraps concept operations with action checks.
"""

import logging
from collections import deque
from typing import Callable, Any, Dict, Union
from functools import wraps
from datetime import datetime

from .errors import UnauthorizedActionError
from .ledger import PermissionLedger
from .models import Action

logger = logging.getLogger(__name__)


class ActionGateway:
    """
    Gateway that checks the permission ledger before a concept operation runs.

    A denied user never reaches the wrapped operation: the check is awaited and
    its failure propagates to the caller before any document is written.
    """

    def __init__(self, ledger: PermissionLedger, audit_history: int = 10_000):
        """
        Initialize the action gateway.

        Args:
            ledger: The permission ledger to use for checks
            audit_history: Number of audit entries kept in memory
        """
        self.ledger = ledger
        self.audit_log = deque(maxlen=audit_history)

    def guarded(
        self,
        action: Union[Action, str],
        user_extractor: Callable[[Dict[str, Any]], str] = lambda args: args["user"],
    ):
        """
        Decorator that wraps an async concept call with an action check.

        Args:
            action: The action the acting user must be allowed to perform
            user_extractor: Function to extract the acting user id from the
                call's keyword arguments

        Example:
            @gateway.guarded(Action.MESSAGE, user_extractor=lambda args: args["sender"])
            async def send(to: str, sender: str, content: str):
                return await messaging.create(to, sender, content)
        """
        action = Action.parse(action)

        def decorator(func: Callable):
            @wraps(func)
            async def wrapper(**kwargs) -> Any:
                user = user_extractor(kwargs)
                audit_entry = {
                    "timestamp": datetime.utcnow().isoformat(),
                    "user": user,
                    "operation": func.__name__,
                    "action": action.value,
                    "authorized": True,
                    "reason": "Authorized",
                }
                try:
                    await self.ledger.assert_action_is_allowed(user, action)
                except UnauthorizedActionError:
                    audit_entry["authorized"] = False
                    audit_entry["reason"] = f"Action {action} is denied for user"
                    self.audit_log.append(audit_entry)
                    raise
                self.audit_log.append(audit_entry)

                logger.debug("User %s passed %s check for %s", user, action, func.__name__)
                return await func(**kwargs)

            return wrapper
        return decorator
