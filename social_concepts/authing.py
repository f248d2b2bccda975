"""
User directory: resolves usernames to opaque user ids and back.

Used for login and for presenting ids as usernames. Never consulted for
permission decisions.
"""

import hashlib
import hmac
import logging
import os
from typing import Optional, Any, Dict, List

from .errors import BadValuesError, NotAllowedError, NotFoundError
from .store import DocCollection

logger = logging.getLogger(__name__)

PBKDF2_ITERATIONS = 200_000


def hash_password(password: str, salt: Optional[bytes] = None) -> str:
    salt = salt or os.urandom(16)
    digest = hashlib.pbkdf2_hmac("sha256", password.encode("utf-8"), salt, PBKDF2_ITERATIONS)
    return f"{salt.hex()}${digest.hex()}"


def verify_password(password: str, stored: str) -> bool:
    salt_hex, _, digest_hex = stored.partition("$")
    candidate = hash_password(password, bytes.fromhex(salt_hex))
    return hmac.compare_digest(candidate.partition("$")[2], digest_hex)


def _redact(user: Dict[str, Any]) -> Dict[str, Any]:
    user = dict(user)
    user.pop("password_hash", None)
    user.pop("_seq", None)
    return user


class AuthingConcept:
    """concept: Authing [User]"""

    def __init__(self, collection_name: str = "users", backing_store: Optional[Any] = None):
        self.users = DocCollection(collection_name, backing_store)

    async def create(self, username: str, password: str) -> Dict[str, Any]:
        if not username or not password:
            raise BadValuesError("Username and password must be non-empty!")
        await self._assert_username_unique(username)
        _id = await self.users.create_one({
            "username": username,
            "password_hash": hash_password(password),
        })
        logger.info("Created user %s (%s)", username, _id)
        return {"msg": "User created successfully!", "user": await self.get_user_by_id(_id)}

    async def get_user_by_id(self, _id: str) -> Dict[str, Any]:
        user = await self.users.read_one({"_id": _id})
        if user is None:
            raise NotFoundError("User not found!")
        return _redact(user)

    async def get_user_by_username(self, username: str) -> Dict[str, Any]:
        user = await self.users.read_one({"username": username})
        if user is None:
            raise NotFoundError("User {0} not found!", username)
        return _redact(user)

    async def get_users(self) -> List[Dict[str, Any]]:
        users = await self.users.read_many({}, sort=[("username", 1)])
        return [_redact(u) for u in users]

    async def ids_to_usernames(self, ids: List[str]) -> List[str]:
        """Map ids to usernames in order; unknown ids become "DELETED_USER"."""
        usernames = []
        for _id in ids:
            user = await self.users.read_one({"_id": _id})
            usernames.append(user["username"] if user else "DELETED_USER")
        return usernames

    async def authenticate(self, username: str, password: str) -> Dict[str, Any]:
        user = await self.users.read_one({"username": username})
        if user is None or not verify_password(password, user["password_hash"]):
            raise NotAllowedError("Username or password is incorrect.")
        return _redact(user)

    async def update_username(self, _id: str, username: str) -> Dict[str, Any]:
        if not username:
            raise BadValuesError("Username must be non-empty!")
        await self._assert_username_unique(username)
        if not await self.users.update_one({"_id": _id}, {"username": username}):
            raise NotFoundError("User not found!")
        return {"msg": "Updated user successfully!"}

    async def update_password(self, _id: str, current_password: str, new_password: str) -> Dict[str, Any]:
        if not new_password:
            raise BadValuesError("Password must be non-empty!")
        user = await self.users.read_one({"_id": _id})
        if user is None:
            raise NotFoundError("User not found!")
        if not verify_password(current_password, user["password_hash"]):
            raise NotAllowedError("The given current password is wrong!")
        await self.users.update_one({"_id": _id}, {"password_hash": hash_password(new_password)})
        logger.info("Updated password for user %s", _id)
        return {"msg": "Updated password successfully!"}

    async def delete(self, _id: str) -> Dict[str, Any]:
        await self.users.delete_one({"_id": _id})
        return {"msg": "User deleted!"}

    async def _assert_username_unique(self, username: str):
        if await self.users.read_one({"username": username}):
            raise NotAllowedError("User with username {0} already exists!", username)
