"""
Social Concepts - a social-networking backend built from independent concepts

The core is the permission ledger: per-user denied actions and a directed
delegate-control graph, stored as OpenFGA relationship tuples. Messaging,
Nudging, Recording and Authing are composed around it by a FastAPI app.
"""

from .ledger import PermissionLedger
from .caching import CachedPermissionLedger
from .gateway import ActionGateway
from .models import Action, AuditEvent, AuthorizationDelegation, DeniedAction
from .errors import (
    AlreadyAllowedError,
    AlreadyDeniedError,
    AuthorizerAlreadyExistsError,
    AuthorizerNotFoundError,
    AuthorizerPermissionError,
    ConceptError,
    InvalidActionError,
    UnauthorizedActionError,
)

__version__ = "0.1.0"
__all__ = [
    "PermissionLedger",
    "CachedPermissionLedger",
    "ActionGateway",
    "Action",
    "AuditEvent",
    "AuthorizationDelegation",
    "DeniedAction",
    "ConceptError",
    "InvalidActionError",
    "UnauthorizedActionError",
    "AlreadyDeniedError",
    "AlreadyAllowedError",
    "AuthorizerPermissionError",
    "AuthorizerAlreadyExistsError",
    "AuthorizerNotFoundError",
]
