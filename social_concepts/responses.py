"""
Conversions for the frontend: user ids in documents become usernames.
"""

from typing import Optional, Any, Dict, List

from .authing import AuthingConcept
from .models import Action

SYSTEM_SENDER = "SYSTEM"


def _public(doc: Dict[str, Any]) -> Dict[str, Any]:
    return {k: v for k, v in doc.items() if k != "_seq"}


class Responses:
    """Shapes concept documents for the route layer."""

    def __init__(self, authing: AuthingConcept):
        self.authing = authing

    async def username(self, _id: str) -> str:
        return (await self.authing.ids_to_usernames([_id]))[0]

    async def message(self, message: Optional[Dict[str, Any]]) -> Optional[Dict[str, Any]]:
        if not message:
            return message
        return (await self.messages([message]))[0]

    async def messages(self, messages: List[Dict[str, Any]]) -> List[Dict[str, Any]]:
        senders = await self.authing.ids_to_usernames([m["from"] for m in messages])
        receivers = await self.authing.ids_to_usernames([m["to"] for m in messages])
        return [
            {**_public(m), "from": senders[i], "to": receivers[i]}
            for i, m in enumerate(messages)
        ]

    async def nudge(self, nudge: Optional[Dict[str, Any]]) -> Optional[Dict[str, Any]]:
        if not nudge:
            return nudge
        return (await self.nudges([nudge]))[0]

    async def nudges(self, nudges: List[Dict[str, Any]]) -> List[Dict[str, Any]]:
        receivers = await self.authing.ids_to_usernames([n["to"] for n in nudges])
        shaped = []
        for i, n in enumerate(nudges):
            sender = await self.username(n["from"]) if n.get("from") else SYSTEM_SENDER
            shaped.append({**_public(n), "from": sender, "to": receivers[i]})
        return shaped

    async def record(self, record: Optional[Dict[str, Any]]) -> Optional[Dict[str, Any]]:
        if not record:
            return record
        return (await self.records([record]))[0]

    async def records(self, records: List[Dict[str, Any]]) -> List[Dict[str, Any]]:
        recorders = await self.authing.ids_to_usernames([r["user"] for r in records])
        return [{**_public(r), "recorder": recorders[i]} for i, r in enumerate(records)]

    async def denied_actions(self, user: str, actions: List[Action]) -> Dict[str, Any]:
        return {
            "user": await self.username(user),
            "denied_actions": [a.value for a in actions],
        }

    async def control(self, authorizers: List[str], authorizees: List[str]) -> Dict[str, List[str]]:
        return {
            "authorizers": await self.authing.ids_to_usernames(authorizers),
            "authorizees": await self.authing.ids_to_usernames(authorizees),
        }

    async def ledger_result(self, result: Dict[str, Any]) -> Dict[str, Any]:
        """Replace the ids in a ledger mutation result with usernames."""
        shaped = dict(result)
        for key in ("user", "authorizer", "authorizee"):
            if key in shaped:
                shaped[key] = await self.username(shaped[key])
        return shaped
