"""
Permission ledger: per-user denied actions and delegate-control edges.

Both kinds of state live in an OpenFGA store as relationship tuples:

    (user:<id>, denied, action:<Action>)           user may not perform Action
    (user:<authorizer>, authorizer, user:<id>)     authorizer administers id

See ``model.fga`` for the authorization model these tuples are written against.
"""

import logging
from collections import deque
from datetime import datetime
from typing import Optional, Any, Dict, List

from openfga_sdk import OpenFgaClient, ReadRequestTupleKey
from openfga_sdk.client.models import ClientCheckRequest, ClientTuple, ClientWriteRequest
from openfga_sdk.exceptions import ValidationException

from .errors import (
    ConceptError,
    AlreadyAllowedError,
    AlreadyDeniedError,
    AuthorizerAlreadyExistsError,
    AuthorizerNotFoundError,
    AuthorizerPermissionError,
    UnauthorizedActionError,
)
from .models import Action, AuditEvent, AuthorizationDelegation, DeniedAction

logger = logging.getLogger(__name__)

USER_TYPE = "user"
ACTION_TYPE = "action"
DENIED = "denied"
AUTHORIZER = "authorizer"

# OpenFGA rejects write transactions with more tuples than this.
MAX_TUPLES_PER_WRITE = 100

# Default number of audit events kept in memory.
AUDIT_HISTORY = 10_000


def _user(user_id: str) -> str:
    return f"{USER_TYPE}:{user_id}"


def _action(action: Action) -> str:
    return f"{ACTION_TYPE}:{action.value}"


def _strip_type(obj: str) -> str:
    return obj.split(":", 1)[1]


class PermissionLedger:
    """
    Authoritative source for "may user U perform action A" and
    "does user X administer user Y's permissions".

    Duplicate transitions are errors: denying an already denied action raises
    AlreadyDeniedError, allowing an action that is not denied raises
    AlreadyAllowedError. The same applies to delegation edges.
    """

    def __init__(
        self,
        openfga_client: OpenFgaClient,
        authorization_model_id: Optional[str] = None,
        audit_store: Optional[Any] = None
    ):
        """
        Initialize the ledger.

        Args:
            openfga_client: Configured OpenFGA client (store id already set)
            authorization_model_id: Optional model id pinned on every request
            audit_store: Optional store for audit events (list-like interface);
                defaults to the last AUDIT_HISTORY events in memory
        """
        self.client = openfga_client
        self.authorization_model_id = authorization_model_id
        self.audit_store = audit_store if audit_store is not None else deque(maxlen=AUDIT_HISTORY)

    # -- denied actions -----------------------------------------------------

    async def deny(self, user: str, action: Any) -> Dict[str, Any]:
        """
        Record that ``user`` may not perform ``action``.

        The action is validated before anything is read or written.
        """
        action = Action.parse(action)
        if await self._check(_user(user), DENIED, _action(action)):
            raise AlreadyDeniedError(user, action)

        await self._write_or_raise(AlreadyDeniedError(user, action), writes=[self._denial_tuple(user, action)])
        logger.info("Denied %s for user %s", action, user)
        await self._log_audit_event(AuditEvent(
            timestamp=datetime.utcnow(),
            event_type="action_denied",
            actor=user,
            subject=user,
            action=action.value,
            decision="denied",
            reason="Action denied",
        ))
        return {"msg": "Action successfully denied!", "user": user, "action": action.value}

    async def allow(self, user: str, action: Any) -> Dict[str, Any]:
        """Remove the denial of ``action`` for ``user``."""
        action = Action.parse(action)
        if not await self._check(_user(user), DENIED, _action(action)):
            raise AlreadyAllowedError(user, action)

        await self._write_or_raise(AlreadyAllowedError(user, action), deletes=[self._denial_tuple(user, action)])
        logger.info("Allowed %s for user %s", action, user)
        await self._log_audit_event(AuditEvent(
            timestamp=datetime.utcnow(),
            event_type="action_allowed",
            actor=user,
            subject=user,
            action=action.value,
            decision="allowed",
            reason="Action allowed",
        ))
        return {"msg": "Action successfully allowed!", "user": user, "action": action.value}

    async def is_allowed(self, user: str, action: Any) -> bool:
        """Users with no denial on record are allowed."""
        action = Action.parse(action)
        return not await self._check(_user(user), DENIED, _action(action))

    async def assert_action_is_allowed(self, user: str, action: Any):
        action = Action.parse(action)
        if not await self.is_allowed(user, action):
            logger.warning("Refused action %s for user %s", action, user)
            await self._log_audit_event(AuditEvent(
                timestamp=datetime.utcnow(),
                event_type="check_refused",
                actor=user,
                subject=user,
                action=action.value,
                decision="refused",
                reason="Action is denied for user",
            ))
            raise UnauthorizedActionError(user, action)

    async def get_denied_actions_by_user(self, user: str) -> List[Action]:
        tuples = await self._read(ReadRequestTupleKey(
            user=_user(user),
            relation=DENIED,
            object=f"{ACTION_TYPE}:",
        ))
        return sorted(
            (Action.parse(_strip_type(t.key.object)) for t in tuples),
            key=lambda a: a.value,
        )

    # -- delegation graph ---------------------------------------------------

    async def add_authorizer(self, authorizer: str, authorizee: str) -> Dict[str, Any]:
        """Give ``authorizer`` control over ``authorizee``'s permissions."""
        if await self._check(_user(authorizer), AUTHORIZER, _user(authorizee)):
            raise AuthorizerAlreadyExistsError(authorizer, authorizee)

        await self._write_or_raise(
            AuthorizerAlreadyExistsError(authorizer, authorizee),
            writes=[self._edge_tuple(authorizer, authorizee)],
        )
        logger.info("User %s now controls user %s", authorizer, authorizee)
        await self._log_audit_event(AuditEvent(
            timestamp=datetime.utcnow(),
            event_type="control_given",
            actor=authorizee,
            subject=authorizer,
            reason="Control given",
        ))
        return {"msg": "Control successfully given!", "authorizer": authorizer, "authorizee": authorizee}

    async def remove_authorizer(self, authorizer: str, authorizee: str) -> Dict[str, Any]:
        if not await self._check(_user(authorizer), AUTHORIZER, _user(authorizee)):
            raise AuthorizerNotFoundError(authorizer, authorizee)

        await self._write_or_raise(
            AuthorizerNotFoundError(authorizer, authorizee),
            deletes=[self._edge_tuple(authorizer, authorizee)],
        )
        logger.info("User %s no longer controls user %s", authorizer, authorizee)
        await self._log_audit_event(AuditEvent(
            timestamp=datetime.utcnow(),
            event_type="control_revoked",
            actor=authorizee,
            subject=authorizer,
            decision="revoked",
            reason="Control revoked",
        ))
        return {"msg": "Control successfully revoked!", "authorizer": authorizer, "authorizee": authorizee}

    async def is_authorizer(self, authorizer: str, authorizee: str) -> bool:
        return await self._check(_user(authorizer), AUTHORIZER, _user(authorizee))

    async def assert_is_authorizer(self, authorizer: str, authorizee: str):
        """
        Raise AuthorizerPermissionError unless the edge (authorizer, authorizee)
        exists. Edges are directed: (authorizee, authorizer) does not count.
        """
        if not await self.is_authorizer(authorizer, authorizee):
            logger.warning("User %s has no control over user %s", authorizer, authorizee)
            await self._log_audit_event(AuditEvent(
                timestamp=datetime.utcnow(),
                event_type="check_refused",
                actor=authorizer,
                subject=authorizee,
                decision="refused",
                reason="Not an authorizer",
            ))
            raise AuthorizerPermissionError(authorizer, authorizee)

    async def get_authorizees_by_authorizer(self, authorizer: str) -> List[str]:
        tuples = await self._read(ReadRequestTupleKey(
            user=_user(authorizer),
            relation=AUTHORIZER,
            object=f"{USER_TYPE}:",
        ))
        return [_strip_type(t.key.object) for t in tuples]

    async def get_authorizers_by_authorizee(self, authorizee: str) -> List[str]:
        tuples = await self._read(ReadRequestTupleKey(
            relation=AUTHORIZER,
            object=_user(authorizee),
        ))
        return [_strip_type(t.key.user) for t in tuples]

    # -- guarded mutations --------------------------------------------------

    async def controlled_deny(self, actor: str, user: str, action: Any) -> Dict[str, Any]:
        """Deny ``action`` for ``user`` on behalf of ``actor``, who must control them."""
        Action.parse(action)
        await self.assert_is_authorizer(actor, user)
        return await self.deny(user, action)

    async def controlled_allow(self, actor: str, user: str, action: Any) -> Dict[str, Any]:
        Action.parse(action)
        await self.assert_is_authorizer(actor, user)
        return await self.allow(user, action)

    async def purge_user(self, user: str) -> Dict[str, Any]:
        """
        Delete every denial and every delegation edge naming ``user``.

        Called when a user account is deleted so no orphaned tuples remain.
        """
        denials = await self._read(ReadRequestTupleKey(
            user=_user(user),
            relation=DENIED,
            object=f"{ACTION_TYPE}:",
        ))
        controls = await self._read(ReadRequestTupleKey(
            user=_user(user),
            relation=AUTHORIZER,
            object=f"{USER_TYPE}:",
        ))
        controlled_by = await self._read(ReadRequestTupleKey(
            relation=AUTHORIZER,
            object=_user(user),
        ))

        denied = [
            DeniedAction(user=user, action=Action.parse(_strip_type(t.key.object)))
            for t in denials
        ]
        # A self-delegation is returned by both reads.
        delegations = list(dict.fromkeys(
            AuthorizationDelegation(authorizer=_strip_type(t.key.user), authorizee=_strip_type(t.key.object))
            for t in list(controls) + list(controlled_by)
        ))
        all_tuples = (
            [self._denial_tuple(d.user, d.action) for d in denied]
            + [self._edge_tuple(d.authorizer, d.authorizee) for d in delegations]
        )
        for start in range(0, len(all_tuples), MAX_TUPLES_PER_WRITE):
            await self._write(deletes=all_tuples[start:start + MAX_TUPLES_PER_WRITE])

        logger.info("Purged %d permission tuples for user %s", len(all_tuples), user)
        await self._log_audit_event(AuditEvent(
            timestamp=datetime.utcnow(),
            event_type="user_purged",
            actor=user,
            subject=user,
            decision="revoked",
            reason="User deleted",
            metadata={"tuples_revoked": len(all_tuples)},
        ))
        return {
            "user": user,
            "tuples_revoked": len(all_tuples),
            "denials": denied,
            "delegations": delegations,
            "status": "purged",
        }

    # -- store access -------------------------------------------------------

    @staticmethod
    def _denial_tuple(user: str, action: Action) -> ClientTuple:
        return ClientTuple(user=_user(user), relation=DENIED, object=_action(action))

    @staticmethod
    def _edge_tuple(authorizer: str, authorizee: str) -> ClientTuple:
        return ClientTuple(user=_user(authorizer), relation=AUTHORIZER, object=_user(authorizee))

    def _options(self) -> Dict[str, Any]:
        if self.authorization_model_id:
            return {"authorization_model_id": self.authorization_model_id}
        return {}

    async def _check(self, user: str, relation: str, obj: str) -> bool:
        response = await self.client.check(
            ClientCheckRequest(user=user, relation=relation, object=obj),
            self._options(),
        )
        return bool(response.allowed)

    async def _write(self, writes: Optional[List[ClientTuple]] = None,
                     deletes: Optional[List[ClientTuple]] = None):
        await self.client.write(
            ClientWriteRequest(writes=writes, deletes=deletes),
            self._options(),
        )

    async def _write_or_raise(self, conflict: ConceptError,
                              writes: Optional[List[ClientTuple]] = None,
                              deletes: Optional[List[ClientTuple]] = None):
        """
        Write a single tuple change. If the store rejects it because a
        concurrent request already made the same change, raise ``conflict``.
        """
        try:
            await self._write(writes=writes, deletes=deletes)
        except ValidationException:
            t = (writes or deletes)[0]
            exists = await self._check(t.user, t.relation, t.object)
            if exists == bool(writes):
                logger.warning("Lost a concurrent write for %s %s %s", t.user, t.relation, t.object)
                raise conflict from None
            raise

    async def _read(self, tuple_key: ReadRequestTupleKey) -> List[Any]:
        """Read every tuple matching ``tuple_key``, following continuation tokens."""
        tuples = []
        options: Dict[str, Any] = {}
        while True:
            response = await self.client.read(tuple_key, options)
            tuples.extend(response.tuples or [])
            token = response.continuation_token
            if not token:
                return tuples
            options = {"continuation_token": token}

    async def _log_audit_event(self, event: AuditEvent):
        """Log an audit event."""
        self.audit_store.append(event)
