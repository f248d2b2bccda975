from __future__ import annotations

import pytest
from fastapi.testclient import TestClient

from social_concepts.config import Settings
from social_concepts.ledger import PermissionLedger
from social_concepts.server import create_app


@pytest.fixture
def app(fga):
    return create_app(Settings(session_secret="test-secret"), ledger=PermissionLedger(fga))


def _login(app, username: str, password: str = "pw") -> TestClient:
    client = TestClient(app)
    assert client.post("/users", json={"username": username, "password": password}).status_code == 200
    assert client.post("/login", json={"username": username, "password": password}).status_code == 200
    return client


def test_session_lifecycle(app) -> None:
    client = TestClient(app)
    assert client.get("/session").status_code == 401

    alice = _login(app, "alice")
    assert alice.get("/session").json()["username"] == "alice"
    assert alice.post("/users", json={"username": "x", "password": "y"}).status_code == 403
    assert client.post("/login", json={"username": "alice", "password": "bad"}).status_code == 403

    assert alice.post("/logout").json() == {"msg": "Logged out!"}
    assert alice.get("/session").status_code == 401
    assert [u["username"] for u in client.get("/users").json()] == ["alice"]


def test_delegated_deny_blocks_the_action_until_allowed(app) -> None:
    alice = _login(app, "alice")
    bob = _login(app, "bob")
    carol = _login(app, "carol")

    given = bob.post("/authorize/control", json={"username": "alice"})
    assert given.status_code == 200
    assert given.json()["authorizer"] == "alice"
    assert bob.get("/authorize/control").json() == {"authorizers": ["alice"], "authorizees": []}
    assert alice.get("/authorize/control").json() == {"authorizers": [], "authorizees": ["bob"]}

    denied = alice.post("/authorize/deny", json={"action": "Message", "username": "bob"})
    assert denied.status_code == 200
    assert denied.json()["user"] == "bob"
    assert bob.get("/authorize").json() == {"user": "bob", "denied_actions": ["Message"]}
    assert carol.get("/authorize/bob").json()["denied_actions"] == ["Message"]

    blocked = bob.post("/messages", json={"to": "carol", "content": "hi"})
    assert blocked.status_code == 403
    assert blocked.json() == {"msg": "bob is not allowed to perform action Message!"}
    assert bob.get("/messages").json() == []

    refused = carol.post("/authorize/allow", json={"action": "Message", "username": "bob"})
    assert refused.status_code == 403
    assert refused.json() == {"msg": "carol does not have authorization access over bob!"}

    assert alice.post("/authorize/allow", json={"action": "Message", "username": "bob"}).status_code == 200
    sent = bob.post("/messages", json={"to": "carol", "content": "hi"})
    assert sent.status_code == 200
    assert sent.json()["message"]["from"] == "bob"
    assert sent.json()["message"]["to"] == "carol"


def test_duplicate_and_invalid_transitions_map_to_4xx(app) -> None:
    alice = _login(app, "alice")
    bob = _login(app, "bob")
    bob.post("/authorize/control", json={"username": "alice"})

    assert alice.post("/authorize/deny", json={"action": "Dance", "username": "bob"}).status_code == 400
    not_denied = alice.post("/authorize/allow", json={"action": "Post", "username": "bob"})
    assert not_denied.status_code == 403
    assert not_denied.json() == {"msg": "Action Post already is allowed for user bob!"}
    assert alice.post("/authorize/deny", json={"action": "Post", "username": "bob"}).status_code == 200
    duplicate = alice.post("/authorize/deny", json={"action": "Post", "username": "bob"})
    assert duplicate.status_code == 403
    assert duplicate.json() == {"msg": "Action Post already is denied for user bob!"}
    assert bob.post("/authorize/control", json={"username": "alice"}).status_code == 403
    assert alice.post("/authorize/deny", json={"action": "Post", "username": "nobody"}).status_code == 404


def test_password_change_requires_the_current_password(app) -> None:
    alice = _login(app, "alice", "old-pw")

    wrong = alice.patch("/users/password", json={"current_password": "nope", "new_password": "new-pw"})
    assert wrong.status_code == 403
    assert wrong.json() == {"msg": "The given current password is wrong!"}
    assert alice.patch("/users/password", json={"current_password": "old-pw", "new_password": ""}).status_code == 400

    changed = alice.patch("/users/password", json={"current_password": "old-pw", "new_password": "new-pw"})
    assert changed.status_code == 200
    assert changed.json() == {"msg": "Updated password successfully!"}

    client = TestClient(app)
    assert client.patch("/users/password", json={"current_password": "new-pw", "new_password": "x"}).status_code == 401
    assert client.post("/login", json={"username": "alice", "password": "old-pw"}).status_code == 403
    assert client.post("/login", json={"username": "alice", "password": "new-pw"}).status_code == 200


def test_revoking_control_stops_further_changes(app) -> None:
    alice = _login(app, "alice")
    bob = _login(app, "bob")
    bob.post("/authorize/control", json={"username": "alice"})

    revoked = bob.request("DELETE", "/authorize/control", json={"username": "alice"})
    assert revoked.status_code == 200
    assert bob.request("DELETE", "/authorize/control", json={"username": "alice"}).status_code == 403
    assert alice.post("/authorize/deny", json={"action": "Nudge", "username": "bob"}).status_code == 403


def test_message_ownership_on_delete(app) -> None:
    alice = _login(app, "alice")
    bob = _login(app, "bob")
    message = alice.post("/messages", json={"to": "bob", "content": "hey"}).json()["message"]

    refused = bob.delete(f"/messages/{message['_id']}")
    assert refused.status_code == 403
    assert refused.json()["msg"] == f"bob is not the sender of message {message['_id']}!"
    assert alice.delete(f"/messages/{message['_id']}").status_code == 200
    assert bob.get("/messages", params={"receiver": "bob"}).json() == []


def test_periodic_and_system_nudges(app) -> None:
    alice = _login(app, "alice")
    _login(app, "bob")

    scheduled = alice.post("/nudges", json={
        "to": "bob",
        "action": "Record",
        "time": "2099-01-01T09:00:00",
        "period_minutes": 60,
        "count": 3,
    })
    assert scheduled.status_code == 200
    assert [n["time"] for n in scheduled.json()["nudges"]] == [
        "2099-01-01T09:00:00",
        "2099-01-01T10:00:00",
        "2099-01-01T11:00:00",
    ]
    assert all(n["from"] == "alice" for n in scheduled.json()["nudges"])

    future = alice.get("/nudges", params={"time": "2099-01-01T09:30:00Z"}).json()
    assert len(future) == 2
    assert len(alice.get("/nudges", params={"receiver": "bob"}).json()) == 3


def test_tracked_actions_are_recorded_automatically(app) -> None:
    alice = _login(app, "alice")
    _login(app, "bob")

    assert alice.post("/records/tracking", json={"action": "Message"}).status_code == 200
    assert alice.get("/records/tracking").json() == ["Message"]
    alice.post("/messages", json={"to": "bob", "content": "tracked"})

    records = alice.get("/records", params={"recorder": "alice"}).json()
    assert [(r["action"], r["recorder"]) for r in records] == [("Message", "alice")]

    manual = alice.post("/records", json={"action": "Post"})
    assert manual.status_code == 200
    assert manual.json()["record"]["recorder"] == "alice"
    assert alice.request("DELETE", "/records/tracking", json={"action": "Message"}).status_code == 200
    assert alice.request("DELETE", "/records/tracking", json={"action": "Message"}).status_code == 404


def test_deleting_a_user_purges_permissions(app, fga) -> None:
    alice = _login(app, "alice")
    bob = _login(app, "bob")
    bob.post("/authorize/control", json={"username": "alice"})
    alice.post("/authorize/deny", json={"action": "Post", "username": "bob"})

    deleted = bob.delete("/users")
    assert deleted.status_code == 200
    assert deleted.json()["removed"]["permissions"] == 2
    assert fga.tuples == []
    assert alice.get("/authorize/control").json() == {"authorizers": [], "authorizees": []}
    assert bob.get("/session").status_code == 401


def test_repeated_nudges_need_a_positive_period(app) -> None:
    alice = _login(app, "alice")
    _login(app, "bob")

    no_period = alice.post("/nudges", json={"to": "bob", "action": "Record", "count": 3})
    assert no_period.status_code == 400
    assert no_period.json() == {"msg": "Repeated nudges need a positive period_minutes!"}
    zero_period = alice.post("/nudges", json={"to": "bob", "action": "Record", "count": 3, "period_minutes": 0})
    assert zero_period.status_code == 400
    assert alice.post("/nudges", json={"to": "bob", "action": "Record", "period_minutes": -5}).status_code == 400
    assert alice.get("/nudges").json() == []
