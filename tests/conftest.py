from __future__ import annotations

from types import SimpleNamespace

import pytest
from openfga_sdk.exceptions import ValidationException

from social_concepts.authing import AuthingConcept
from social_concepts.ledger import PermissionLedger
from social_concepts.messaging import MessagingConcept
from social_concepts.nudging import NudgingConcept
from social_concepts.recording import RecordingConcept


class FakeOpenFgaClient:
    """In-memory stand-in for OpenFgaClient covering check/read/write."""

    def __init__(self, page_size: int = 2) -> None:
        self.tuples: list[tuple[str, str, str]] = []
        self.page_size = page_size
        self.writes = 0
        self.checks = 0

    async def check(self, body, options=None):
        self.checks += 1
        return SimpleNamespace(allowed=(body.user, body.relation, body.object) in self.tuples)

    async def write(self, body, options=None):
        self.writes += 1
        writes = [(t.user, t.relation, t.object) for t in (body.writes or [])]
        deletes = [(t.user, t.relation, t.object) for t in (body.deletes or [])]
        for key in writes:
            if key in self.tuples:
                raise ValidationException(status=400, reason=f"cannot write a tuple which already exists: {key}")
        for key in deletes:
            if key not in self.tuples:
                raise ValidationException(status=400, reason=f"cannot delete a tuple which does not exist: {key}")
        for key in deletes:
            self.tuples.remove(key)
        self.tuples.extend(writes)
        return SimpleNamespace(writes=writes, deletes=deletes)

    async def read(self, body, options=None):
        options = options or {}
        matched = [t for t in self.tuples if _matches(t, body)]
        start = int(options.get("continuation_token") or 0)
        page = matched[start:start + self.page_size]
        end = start + self.page_size
        return SimpleNamespace(
            tuples=[
                SimpleNamespace(key=SimpleNamespace(user=u, relation=r, object=o))
                for u, r, o in page
            ],
            continuation_token=str(end) if end < len(matched) else "",
        )

    async def close(self):
        pass


def _matches(stored: tuple[str, str, str], key) -> bool:
    user, relation, obj = stored
    if key.user and key.user != user:
        return False
    if key.relation and key.relation != relation:
        return False
    if key.object:
        if key.object.endswith(":"):
            return obj.startswith(key.object)
        return obj == key.object
    return True


@pytest.fixture
def fga() -> FakeOpenFgaClient:
    return FakeOpenFgaClient()


@pytest.fixture
def ledger(fga) -> PermissionLedger:
    return PermissionLedger(fga)


@pytest.fixture
def authing() -> AuthingConcept:
    return AuthingConcept()


@pytest.fixture
def messaging() -> MessagingConcept:
    return MessagingConcept()


@pytest.fixture
def nudging() -> NudgingConcept:
    return NudgingConcept()


@pytest.fixture
def recording() -> RecordingConcept:
    return RecordingConcept()
