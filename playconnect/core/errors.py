"""
Typed failures raised by the connection / invitation engine.

Each family maps to one HTTP status in ``playconnect.main``; routers never
translate them by hand.
"""


class EngineError(Exception):
    status_code = 500
    error = "engine_error"

    def __init__(self, detail: str):
        super().__init__(detail)
        self.detail = detail


# --------------------------------------------------
# 404
# --------------------------------------------------
class NotFound(EngineError):
    status_code = 404
    error = "not_found"


class ParentNotFound(NotFound):
    pass


class ChildNotFound(NotFound):
    pass


class RequestNotFound(NotFound):
    pass


class ConnectionNotFound(NotFound):
    pass


class ActivityNotFound(NotFound):
    pass


class InvitationNotFound(NotFound):
    pass


class SkeletonNotFound(NotFound):
    pass


# --------------------------------------------------
# 403
# --------------------------------------------------
class NotAuthorised(EngineError):
    status_code = 403
    error = "not_authorised"


# --------------------------------------------------
# 409
# --------------------------------------------------
class Conflict(EngineError):
    status_code = 409
    error = "conflict"


class DuplicatePendingRequest(Conflict):
    pass


class DuplicateInvitation(Conflict):
    pass


class AlreadyConnected(Conflict):
    pass


class AlreadyResolved(Conflict):
    """Responding to a request that was already resolved the other way."""


class ContactAlreadyRegistered(Conflict):
    pass


# --------------------------------------------------
# 422
# --------------------------------------------------
class InvalidState(EngineError):
    status_code = 422
    error = "invalid_state"


class SelfConnection(InvalidState):
    pass


class IdentityResolutionFailure(EngineError):
    status_code = 422
    error = "identity_resolution_failure"


# --------------------------------------------------
# 500
# --------------------------------------------------
class ConsistencyViolation(EngineError):
    """Stored state contradicts itself. Surfaced, never retried."""

    status_code = 500
    error = "consistency_violation"
