"""
Records of actions users performed.
"""

from datetime import datetime
from typing import Optional, Any, Dict, List, Set

from .errors import NotFoundError, RecorderNotMatchError
from .models import Action
from .store import DocCollection


class RecordingConcept:
    """
    concept: Recording [User, Action]

    Besides manual records, a set of actions can be tracked automatically:
    the route layer records every tracked action a user performs.
    """

    def __init__(self, collection_name: str = "records", backing_store: Optional[Any] = None):
        self.records = DocCollection(collection_name, backing_store)
        self.automatic_tracked_actions: Set[Action] = set()

    async def create(self, user: str, action: Any, time: Optional[datetime] = None) -> Dict[str, Any]:
        action = Action.parse(action)
        _id = await self.records.create_one({
            "user": user,
            "action": action.value,
            "time": time if time is not None else datetime.utcnow(),
        })
        return {"msg": "Record successfully created!", "record": await self.records.read_one({"_id": _id})}

    async def get_records(self) -> List[Dict[str, Any]]:
        return await self.records.read_many({}, sort=[("created", -1)])

    async def get_by_user(self, user: str) -> List[Dict[str, Any]]:
        return await self.records.read_many({"user": user}, sort=[("time", -1)])

    async def get_by_action(self, action: Any) -> List[Dict[str, Any]]:
        action = Action.parse(action)
        return await self.records.read_many({"action": action.value}, sort=[("time", -1)])

    async def delete(self, _id: str) -> Dict[str, Any]:
        await self.records.delete_one({"_id": _id})
        return {"msg": "Record deleted successfully!"}

    async def delete_by_user(self, user: str) -> int:
        return await self.records.delete_many({"user": user})

    async def start_tracking(self, action: Any) -> Dict[str, Any]:
        self.automatic_tracked_actions.add(Action.parse(action))
        return {"msg": "Action successfully tracked!"}

    async def stop_tracking(self, action: Any) -> Dict[str, Any]:
        action = Action.parse(action)
        if action not in self.automatic_tracked_actions:
            raise NotFoundError("Action {0} is not being tracked!", action)
        self.automatic_tracked_actions.discard(action)
        return {"msg": "Action successfully untracked!"}

    async def is_action_automatically_tracked(self, action: Any) -> bool:
        return Action.parse(action) in self.automatic_tracked_actions

    async def assert_recorder_is_user(self, _id: str, user: str):
        record = await self.records.read_one({"_id": _id})
        if record is None:
            raise NotFoundError("Record {0} does not exist!", _id)
        if record["user"] != user:
            raise RecorderNotMatchError(user, _id)
