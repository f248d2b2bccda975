"""
Web server routes. Implements synchronizations between concepts.

Every route resolves the session user, resolves usernames to ids, runs the
concept operation(s) and converts ids back to usernames in the response.
Guards are awaited before any mutation so a failed check aborts the request.
"""

import logging
from contextlib import asynccontextmanager
from datetime import datetime, timedelta, timezone
from typing import Optional

from dotenv import load_dotenv
from fastapi import Body, Depends, FastAPI, Request
from fastapi.responses import JSONResponse
from pydantic import BaseModel
from starlette.middleware.sessions import SessionMiddleware

from .authing import AuthingConcept
from .caching import CachedPermissionLedger
from .config import Settings, build_openfga_client
from .errors import (
    ActionStateError,
    AuthorizerError,
    BadValuesError,
    ConceptError,
    MessageSenderNotMatchError,
    NotAllowedError,
    NudgeSenderNotMatchError,
    RecorderNotMatchError,
    UnauthenticatedError,
    UnauthorizedActionError,
)
from .gateway import ActionGateway
from .ledger import PermissionLedger
from .logging_utils import configure_logging
from .messaging import MessagingConcept
from .models import Action
from .nudging import NudgingConcept
from .recording import RecordingConcept
from .responses import Responses
from .utils import purge_deleted_user, record_if_tracked

logger = logging.getLogger(__name__)


class LoginBody(BaseModel):
    username: str
    password: str


class UsernameBody(BaseModel):
    username: str


class PasswordBody(BaseModel):
    current_password: str
    new_password: str


class MessageBody(BaseModel):
    to: str
    content: str


class NudgeBody(BaseModel):
    to: str
    action: str
    time: Optional[datetime] = None
    period_minutes: Optional[int] = None
    count: int = 1


class RecordBody(BaseModel):
    action: str
    time: Optional[datetime] = None


class ActionBody(BaseModel):
    action: str


class AuthorizeBody(BaseModel):
    action: str
    username: str


def session_user(request: Request) -> str:
    user = request.session.get("user")
    if not user:
        raise UnauthenticatedError("Must be logged in!")
    return user


def _naive_utc(time: Optional[datetime]) -> Optional[datetime]:
    """Stored times are naive UTC; convert aware request times to match."""
    if time is None or time.tzinfo is None:
        return time
    return time.astimezone(timezone.utc).replace(tzinfo=None)


def create_app(
    settings: Optional[Settings] = None,
    *,
    ledger: Optional[PermissionLedger] = None,
    authing: Optional[AuthingConcept] = None,
    messaging: Optional[MessagingConcept] = None,
    nudging: Optional[NudgingConcept] = None,
    recording: Optional[RecordingConcept] = None,
) -> FastAPI:
    """
    Build the web app.

    Concepts not passed in are created from ``settings`` (read from the
    environment when omitted).
    """
    if settings is None:
        load_dotenv()
        settings = Settings.from_env()
    configure_logging(settings.logging_level)

    owned_client = None
    if ledger is None:
        owned_client = build_openfga_client(settings)
        if settings.permission_cache_ttl > 0:
            ledger = CachedPermissionLedger(
                owned_client,
                settings.openfga_model_id,
                cache_ttl_seconds=settings.permission_cache_ttl,
            )
        else:
            ledger = PermissionLedger(owned_client, settings.openfga_model_id)

    authing = authing or AuthingConcept()
    messaging = messaging or MessagingConcept()
    nudging = nudging or NudgingConcept()
    recording = recording or RecordingConcept()
    responses = Responses(authing)
    gateway = ActionGateway(ledger)

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        yield
        if owned_client is not None:
            await owned_client.close()

    app = FastAPI(lifespan=lifespan)
    app.add_middleware(SessionMiddleware, secret_key=settings.session_secret)

    app.state.ledger = ledger
    app.state.authing = authing
    app.state.messaging = messaging
    app.state.nudging = nudging
    app.state.recording = recording
    app.state.gateway = gateway

    async def user_id(username: str) -> str:
        return (await authing.get_user_by_username(username))["_id"]

    @gateway.guarded(Action.MESSAGE, user_extractor=lambda args: args["sender"])
    async def send_message(to: str, sender: str, content: str):
        return await messaging.create(to, sender, content)

    @gateway.guarded(Action.NUDGE, user_extractor=lambda args: args["sender"])
    async def send_nudge(to: str, sender: str, action: str, time: Optional[datetime],
                         period: Optional[timedelta], count: int):
        if period is None:
            return await nudging.create(action, time, to, sender)
        return await nudging.schedule_periodic(action, to, time or datetime.utcnow(), period, count, sender)

    @gateway.guarded(Action.RECORD)
    async def create_record(user: str, action: str, time: Optional[datetime]):
        return await recording.create(user, action, time)

    @app.exception_handler(ConceptError)
    async def concept_error_handler(request: Request, exc: ConceptError):
        message = str(exc)
        if isinstance(exc, UnauthorizedActionError):
            message = exc.format_with(await responses.username(exc.user), exc.action)
        elif isinstance(exc, ActionStateError):
            message = exc.format_with(exc.action, await responses.username(exc.user))
        elif isinstance(exc, AuthorizerError):
            message = exc.format_with(
                await responses.username(exc.authorizer),
                await responses.username(exc.authorizee),
            )
        elif isinstance(exc, (MessageSenderNotMatchError, NudgeSenderNotMatchError)):
            message = exc.format_with(await responses.username(exc.sender), exc._id)
        elif isinstance(exc, RecorderNotMatchError):
            message = exc.format_with(await responses.username(exc.recorder), exc._id)
        logger.info("%s %s failed: %s", request.method, request.url.path, message)
        return JSONResponse(status_code=exc.status_code, content={"msg": message})

    # -- users & sessions -----------------------------------------------------

    @app.get("/session")
    async def get_session_user(user: str = Depends(session_user)):
        return await authing.get_user_by_id(user)

    @app.get("/users")
    async def get_users():
        return await authing.get_users()

    @app.get("/users/{username}")
    async def get_user(username: str):
        return await authing.get_user_by_username(username)

    @app.post("/users")
    async def create_user(request: Request, body: LoginBody):
        if request.session.get("user"):
            raise NotAllowedError("Must be logged out!")
        return await authing.create(body.username, body.password)

    @app.patch("/users/username")
    async def update_username(body: UsernameBody, user: str = Depends(session_user)):
        return await authing.update_username(user, body.username)

    @app.patch("/users/password")
    async def update_password(body: PasswordBody, user: str = Depends(session_user)):
        return await authing.update_password(user, body.current_password, body.new_password)

    @app.delete("/users")
    async def delete_user(request: Request, user: str = Depends(session_user)):
        removed = await purge_deleted_user(
            user, ledger, messaging, nudging, recording, logger=logger
        )
        request.session.clear()
        result = await authing.delete(user)
        return {**result, "removed": removed}

    @app.post("/login")
    async def log_in(request: Request, body: LoginBody):
        user = await authing.authenticate(body.username, body.password)
        request.session["user"] = user["_id"]
        return {"msg": "Logged in!"}

    @app.post("/logout")
    async def log_out(request: Request, user: str = Depends(session_user)):
        request.session.clear()
        return {"msg": "Logged out!"}

    # -- messages -------------------------------------------------------------

    @app.get("/messages")
    async def get_messages(sender: Optional[str] = None, receiver: Optional[str] = None):
        if sender and receiver:
            messages = await messaging.get_by_sender_and_receiver(await user_id(sender), await user_id(receiver))
        elif sender:
            messages = await messaging.get_by_sender(await user_id(sender))
        elif receiver:
            messages = await messaging.get_by_receiver(await user_id(receiver))
        else:
            messages = await messaging.get_messages()
        return await responses.messages(messages)

    @app.post("/messages")
    async def create_message(body: MessageBody, user: str = Depends(session_user)):
        receiver = await user_id(body.to)
        created = await send_message(to=receiver, sender=user, content=body.content)
        await record_if_tracked(recording, user, Action.MESSAGE)
        return {"msg": created["msg"], "message": await responses.message(created["message"])}

    @app.delete("/messages/{message_id}")
    async def delete_message(message_id: str, user: str = Depends(session_user)):
        await messaging.assert_sender_is_user(message_id, user)
        return await messaging.delete(message_id)

    # -- nudges ---------------------------------------------------------------

    @app.get("/nudges")
    async def get_nudges(sender: Optional[str] = None, receiver: Optional[str] = None,
                         time: Optional[datetime] = None):
        if sender:
            nudges = await nudging.get_by_sender(await user_id(sender))
        elif receiver:
            nudges = await nudging.get_by_receiver(await user_id(receiver))
        elif time:
            nudges = await nudging.get_future_nudges(_naive_utc(time))
        else:
            nudges = await nudging.get_nudges()
        return await responses.nudges(nudges)

    @app.post("/nudges")
    async def create_nudge(body: NudgeBody, user: str = Depends(session_user)):
        receiver = await user_id(body.to)
        if body.count > 1 and not body.period_minutes:
            raise BadValuesError("Repeated nudges need a positive period_minutes!")
        if body.period_minutes is not None and body.period_minutes <= 0:
            raise BadValuesError("period_minutes must be positive!")
        period = timedelta(minutes=body.period_minutes) if body.period_minutes else None
        created = await send_nudge(
            to=receiver,
            sender=user,
            action=body.action,
            time=_naive_utc(body.time),
            period=period,
            count=body.count,
        )
        await record_if_tracked(recording, user, Action.NUDGE)
        if "nudges" in created:
            return {"msg": created["msg"], "nudges": await responses.nudges(created["nudges"])}
        return {"msg": created["msg"], "nudge": await responses.nudge(created["nudge"])}

    @app.delete("/nudges/{nudge_id}")
    async def delete_nudge(nudge_id: str, user: str = Depends(session_user)):
        await nudging.assert_sender_is_user(nudge_id, user)
        return await nudging.delete(nudge_id)

    # -- records --------------------------------------------------------------

    @app.get("/records")
    async def get_records(recorder: Optional[str] = None):
        if recorder:
            records = await recording.get_by_user(await user_id(recorder))
        else:
            records = await recording.get_records()
        return await responses.records(records)

    @app.post("/records")
    async def create_record_route(body: RecordBody, user: str = Depends(session_user)):
        created = await create_record(user=user, action=body.action, time=_naive_utc(body.time))
        return {"msg": created["msg"], "record": await responses.record(created["record"])}

    @app.get("/records/tracking")
    async def get_tracked_actions():
        return sorted(a.value for a in recording.automatic_tracked_actions)

    @app.post("/records/tracking")
    async def start_tracking(body: ActionBody, user: str = Depends(session_user)):
        return await recording.start_tracking(body.action)

    @app.delete("/records/tracking")
    async def stop_tracking(body: ActionBody = Body(...), user: str = Depends(session_user)):
        return await recording.stop_tracking(body.action)

    @app.delete("/records/{record_id}")
    async def delete_record(record_id: str, user: str = Depends(session_user)):
        await recording.assert_recorder_is_user(record_id, user)
        return await recording.delete(record_id)

    # -- authorization --------------------------------------------------------

    @app.get("/authorize")
    async def get_denied_actions(user: str = Depends(session_user)):
        return await responses.denied_actions(user, await ledger.get_denied_actions_by_user(user))

    @app.get("/authorize/control")
    async def get_control(user: str = Depends(session_user)):
        return await responses.control(
            await ledger.get_authorizers_by_authorizee(user),
            await ledger.get_authorizees_by_authorizer(user),
        )

    @app.post("/authorize/control")
    async def give_control(body: UsernameBody, user: str = Depends(session_user)):
        authorizer = await user_id(body.username)
        return await responses.ledger_result(await ledger.add_authorizer(authorizer, user))

    @app.delete("/authorize/control")
    async def revoke_control(body: UsernameBody = Body(...), user: str = Depends(session_user)):
        authorizer = await user_id(body.username)
        await ledger.assert_is_authorizer(authorizer, user)
        return await responses.ledger_result(await ledger.remove_authorizer(authorizer, user))

    @app.get("/authorize/{username}")
    async def get_denied_actions_of(username: str):
        user = await user_id(username)
        return await responses.denied_actions(user, await ledger.get_denied_actions_by_user(user))

    @app.post("/authorize/allow")
    async def allow_action(body: AuthorizeBody, user: str = Depends(session_user)):
        target = await user_id(body.username)
        return await responses.ledger_result(await ledger.controlled_allow(user, target, body.action))

    @app.post("/authorize/deny")
    async def deny_action(body: AuthorizeBody, user: str = Depends(session_user)):
        target = await user_id(body.username)
        return await responses.ledger_result(await ledger.controlled_deny(user, target, body.action))

    return app


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(create_app(), host="0.0.0.0", port=8000)
