"""Exception hierarchy for the workflow core.

The core raises these; the API translates them to HTTP responses in one place.
"""
from typing import Optional


class IdeaflowError(Exception):
    """Base class for all workflow errors."""


class NotFoundError(IdeaflowError):
    """Raised when an idea, task, discussion or trail event does not exist."""

    def __init__(self, entity_type: str, entity_id=None):
        self.entity_type = entity_type
        self.entity_id = entity_id
        msg = f"{entity_type.replace('_', ' ').capitalize()}"
        if entity_id is not None:
            msg += f" #{entity_id}"
        msg += " not found"
        super().__init__(msg)


class InvalidTransitionError(IdeaflowError):
    """Raised when a status transition is not allowed or its precondition is unmet."""

    def __init__(
        self,
        message: str,
        current_status=None,
        requested_status=None,
        allowed_transitions: Optional[list] = None,
    ):
        super().__init__(message)
        self.current_status = current_status
        self.requested_status = requested_status
        self.allowed_transitions = allowed_transitions or []


class PermissionDeniedError(IdeaflowError):
    """Raised when an actor lacks the capability an operation requires."""

    def __init__(self, message: str, capability=None):
        super().__init__(message)
        self.capability = capability


class BusyError(IdeaflowError):
    """Raised when another approval action is already in flight."""

    def __init__(self, message: str = "Another action is already in progress"):
        super().__init__(message)


class DiscussionLockedError(IdeaflowError):
    """Raised when posting to a locked discussion thread."""

    def __init__(self, discussion_id: int):
        self.discussion_id = discussion_id
        super().__init__(f"Discussion #{discussion_id} is locked")


class StoreFailureError(IdeaflowError):
    """Raised when the underlying entity store fails."""

    def __init__(self, message: str, operation: Optional[str] = None):
        super().__init__(message)
        self.operation = operation


class TrailLogFailure(IdeaflowError):
    """Recorded (never raised to callers) when an audit append fails."""

    def __init__(self, message: str, event_type: Optional[str] = None, idea_id: Optional[int] = None):
        super().__init__(message)
        self.event_type = event_type
        self.idea_id = idea_id
