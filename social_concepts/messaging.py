"""
Direct messages between users.
"""

from datetime import datetime
from typing import Optional, Any, Dict, List

from .errors import BadValuesError, MessageSenderNotMatchError, NotFoundError
from .store import DocCollection

NEWEST_FIRST = [("created", -1)]


class MessagingConcept:
    """concept: Messaging [User]"""

    def __init__(self, collection_name: str = "messages", backing_store: Optional[Any] = None):
        self.messages = DocCollection(collection_name, backing_store)

    async def create(self, to: str, sender: str, content: str) -> Dict[str, Any]:
        if not content:
            raise BadValuesError("Message content must be non-empty!")
        _id = await self.messages.create_one({
            "to": to,
            "from": sender,
            "content": content,
            "time": datetime.utcnow(),
        })
        return {"msg": "Message successfully created!", "message": await self.messages.read_one({"_id": _id})}

    async def get_messages(self) -> List[Dict[str, Any]]:
        return await self.messages.read_many({}, sort=NEWEST_FIRST)

    async def get_by_sender(self, sender: str) -> List[Dict[str, Any]]:
        return await self.messages.read_many({"from": sender}, sort=NEWEST_FIRST)

    async def get_by_receiver(self, to: str) -> List[Dict[str, Any]]:
        return await self.messages.read_many({"to": to}, sort=NEWEST_FIRST)

    async def get_by_sender_and_receiver(self, sender: str, to: str) -> List[Dict[str, Any]]:
        return await self.messages.read_many({"from": sender, "to": to}, sort=NEWEST_FIRST)

    async def delete(self, _id: str) -> Dict[str, Any]:
        await self.messages.delete_one({"_id": _id})
        return {"msg": "Message deleted successfully!"}

    async def delete_by_user(self, user: str) -> int:
        """Delete every message the user sent or received."""
        return (
            await self.messages.delete_many({"from": user})
            + await self.messages.delete_many({"to": user})
        )

    async def assert_sender_is_user(self, _id: str, user: str):
        message = await self.messages.read_one({"_id": _id})
        if message is None:
            raise NotFoundError("Message {0} does not exist!", _id)
        if message["from"] != user:
            raise MessageSenderNotMatchError(user, _id)
