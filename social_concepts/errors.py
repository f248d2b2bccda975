"""
Error hierarchy shared by every concept.

Errors carry the raw ids they refer to. The route layer resolves those ids to
usernames and renders the message with ``format_with``.
"""

from typing import Any


class ConceptError(Exception):
    """Base class for errors raised by a concept operation."""

    status_code = 500

    def __init__(self, template: str, *values: Any):
        self.template = template
        self.values = values
        super().__init__(self.format_with(*values))

    def format_with(self, *values: Any) -> str:
        return self.template.format(*(str(v) for v in values))


class NotAllowedError(ConceptError):
    status_code = 403


class NotFoundError(ConceptError):
    status_code = 404


class BadValuesError(ConceptError):
    status_code = 400


class UnauthenticatedError(ConceptError):
    status_code = 401


class InvalidActionError(BadValuesError):
    def __init__(self, action: Any):
        self.action = action
        super().__init__("{0} is not a recognized action!", action)


class UnauthorizedActionError(NotAllowedError):
    """Raised when a user tries to perform an action they are denied."""

    def __init__(self, user: str, action: Any):
        self.user = user
        self.action = action
        super().__init__("{0} is not allowed to perform action {1}!", user, action)


class ActionStateError(NotAllowedError):
    """A deny/allow that would not change the (user, action) state."""

    template = ""

    def __init__(self, user: str, action: Any):
        self.user = user
        self.action = action
        super().__init__(self.template, action, user)


class AlreadyDeniedError(ActionStateError):
    template = "Action {0} already is denied for user {1}!"


class AlreadyAllowedError(ActionStateError):
    template = "Action {0} already is allowed for user {1}!"


class AuthorizerError(ConceptError):
    """Mixin-style base for errors about a (authorizer, authorizee) edge."""

    authorizer: str
    authorizee: str


class AuthorizerPermissionError(AuthorizerError, NotAllowedError):
    def __init__(self, authorizer: str, authorizee: str):
        self.authorizer = authorizer
        self.authorizee = authorizee
        NotAllowedError.__init__(
            self, "{0} does not have authorization access over {1}!", authorizer, authorizee
        )


class AuthorizerAlreadyExistsError(AuthorizerError, NotAllowedError):
    def __init__(self, authorizer: str, authorizee: str):
        self.authorizer = authorizer
        self.authorizee = authorizee
        NotAllowedError.__init__(
            self, "{0} already has authorization permission access over {1}!", authorizer, authorizee
        )


class AuthorizerNotFoundError(AuthorizerError, NotFoundError):
    def __init__(self, authorizer: str, authorizee: str):
        self.authorizer = authorizer
        self.authorizee = authorizee
        NotFoundError.__init__(
            self, "Authorization from {0} to {1} does not exist!", authorizer, authorizee
        )


class MessageSenderNotMatchError(NotAllowedError):
    def __init__(self, sender: str, _id: str):
        self.sender = sender
        self._id = _id
        super().__init__("{0} is not the sender of message {1}!", sender, _id)


class NudgeSenderNotMatchError(NotAllowedError):
    def __init__(self, sender: str, _id: str):
        self.sender = sender
        self._id = _id
        super().__init__("{0} is not the sender of nudge {1}!", sender, _id)


class RecorderNotMatchError(NotAllowedError):
    def __init__(self, recorder: str, _id: str):
        self.recorder = recorder
        self._id = _id
        super().__init__("{0} is not the recorder of record {1}!", recorder, _id)
