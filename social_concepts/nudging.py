"""
Nudges: reminders to perform an action, sent now or at a scheduled time.

A nudge with no sender is a system nudge.
"""

from datetime import datetime, timedelta
from typing import Optional, Any, Dict, List

from .errors import BadValuesError, NotFoundError, NudgeSenderNotMatchError
from .models import Action
from .store import DocCollection


class NudgingConcept:
    """concept: Nudging [Action, User]"""

    def __init__(self, collection_name: str = "nudges", backing_store: Optional[Any] = None):
        self.nudges = DocCollection(collection_name, backing_store)

    async def create(
        self,
        action: Any,
        time: Optional[datetime],
        to: str,
        sender: Optional[str] = None
    ) -> Dict[str, Any]:
        action = Action.parse(action)
        doc = {
            "to": to,
            "action": action.value,
            "time": time if time is not None else datetime.utcnow(),
        }
        if sender:
            doc["from"] = sender
        _id = await self.nudges.create_one(doc)
        return {"msg": "Nudge successfully created!", "nudge": await self.nudges.read_one({"_id": _id})}

    async def schedule_periodic(
        self,
        action: Any,
        to: str,
        start: datetime,
        period: timedelta,
        count: int,
        sender: Optional[str] = None
    ) -> Dict[str, Any]:
        """
        Create ``count`` nudges, the first at ``start`` and each following one
        ``period`` after the previous.
        """
        action = Action.parse(action)
        if count < 1:
            raise BadValuesError("A periodic nudge needs at least one occurrence!")
        if period <= timedelta(0):
            raise BadValuesError("A periodic nudge needs a positive period!")

        nudges = []
        for i in range(count):
            created = await self.create(action, start + i * period, to, sender)
            nudges.append(created["nudge"])
        return {"msg": f"{count} nudges successfully scheduled!", "nudges": nudges}

    async def get_nudges(self) -> List[Dict[str, Any]]:
        return await self.nudges.read_many({}, sort=[("created", -1)])

    async def get_future_nudges(self, time: Optional[datetime] = None) -> List[Dict[str, Any]]:
        """Nudges scheduled strictly after ``time`` (default now), soonest first."""
        if time is None:
            time = datetime.utcnow()
        return await self.nudges.read_many({"time": {"$gt": time}}, sort=[("time", 1)])

    async def get_by_sender(self, sender: str) -> List[Dict[str, Any]]:
        return await self.nudges.read_many({"from": sender}, sort=[("time", 1)])

    async def get_by_receiver(self, to: str) -> List[Dict[str, Any]]:
        return await self.nudges.read_many({"to": to}, sort=[("time", 1)])

    async def delete(self, _id: str) -> Dict[str, Any]:
        await self.nudges.delete_one({"_id": _id})
        return {"msg": "Nudge deleted successfully!"}

    async def delete_by_user(self, user: str) -> int:
        return (
            await self.nudges.delete_many({"from": user})
            + await self.nudges.delete_many({"to": user})
        )

    async def assert_sender_is_user(self, _id: str, user: str):
        nudge = await self.nudges.read_one({"_id": _id})
        if nudge is None:
            raise NotFoundError("Nudge {0} does not exist!", _id)
        if nudge.get("from") and nudge["from"] != user:
            raise NudgeSenderNotMatchError(user, _id)
