# mlm_system/errors.py
"""
Typed failures raised by the compensation engine.

NotFoundError            referenced user/package/node absent
InvalidStateError        request conflicts with current state (balance, ceiling, enrollment)
StructuralInconsistencyError  corrupted graph (cycle, self-parent, dangling pointer)
ExternalDependencyError  price oracle or store unavailable / returned garbage
"""


class MLMError(Exception):
    """Base class for all engine errors."""

    def __init__(self, message: str, **context):
        super().__init__(message)
        self.message = message
        self.context = context

    def toDict(self) -> dict:
        return {"error": type(self).__name__, "message": self.message, **self.context}


# ---------------------------------------------------------------------------
# NotFound
# ---------------------------------------------------------------------------

class NotFoundError(MLMError):
    pass


class UserNotFoundError(NotFoundError):
    pass


class PackageNotFoundError(NotFoundError):
    pass


class ReferrerNotFoundError(NotFoundError):
    pass


class NodeNotFoundError(NotFoundError):
    pass


# ---------------------------------------------------------------------------
# InvalidState
# ---------------------------------------------------------------------------

class InvalidStateError(MLMError):
    pass


class InsufficientBalanceError(InvalidStateError):
    pass


class AlreadyEnrolledError(InvalidStateError):
    pass


class CeilingExceededError(InvalidStateError):
    pass


class AppendOnlyViolationError(InvalidStateError):
    pass


class ConcurrentUpdateError(InvalidStateError):
    """Another transaction changed a shared aggregate first; the caller may retry."""


# ---------------------------------------------------------------------------
# Structural / external
# ---------------------------------------------------------------------------

class StructuralInconsistencyError(MLMError):
    pass


class ExternalDependencyError(MLMError):
    pass
