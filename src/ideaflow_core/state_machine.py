"""State machine validation for idea and task status transitions.

Enforces the idea review workflow:
- Ideas must be reviewed before work starts (pending_approval → approved/rejected)
- Implementation starts implicitly when the first task is created (approved → in_progress)
- Completion is reachable from approved or in_progress
- pending_approval is re-entered only through undo, never by a direct request

Task statuses carry no graph: any status may follow any other. Which task
fields an actor may change is a capability question handled by the workflow
engine.
"""
import logging

from .exceptions import InvalidTransitionError
from .models import IdeaStatus, TaskStatus, TrailEventType

logger = logging.getLogger("ideaflow-core.state_machine")


# Idea transition matrix
# Maps current status → list of allowed next statuses (direct requests)
IDEA_TRANSITION_MATRIX: dict[IdeaStatus, list[IdeaStatus]] = {
    IdeaStatus.PENDING_APPROVAL: [
        IdeaStatus.APPROVED,      # Forward: reviewer approves
        IdeaStatus.REJECTED,      # Terminal: reviewer rejects
    ],
    IdeaStatus.APPROVED: [
        IdeaStatus.COMPLETED,     # Forward: finished without tracked tasks
    ],
    IdeaStatus.REJECTED: [
        # Terminal - only undo can bring a rejected idea back to review
    ],
    IdeaStatus.IN_PROGRESS: [
        IdeaStatus.COMPLETED,     # Forward: all tasks completed
    ],
    IdeaStatus.COMPLETED: [
        # Terminal - completed ideas are finalized records
    ],
}


# Compensating edges available only to the undo path
# Maps the status an approve/reject produced → status it may be restored to
RESTORE_TRANSITION_MATRIX: dict[IdeaStatus, list[IdeaStatus]] = {
    IdeaStatus.APPROVED: [IdeaStatus.PENDING_APPROVAL],
    IdeaStatus.REJECTED: [IdeaStatus.PENDING_APPROVAL],
}


# Edges the engine applies as a side effect of another action, never on request
# Maps current status → statuses reachable that way
IMPLICIT_TRANSITION_MATRIX: dict[IdeaStatus, list[IdeaStatus]] = {
    IdeaStatus.APPROVED: [IdeaStatus.IN_PROGRESS],   # First task created
}


# Statuses in which approved_by / approved_at must be set
REVIEWED_STATUSES = frozenset({IdeaStatus.APPROVED, IdeaStatus.REJECTED})

# Ideas in these statuses accept new tasks
TASK_CREATION_STATUSES = frozenset({IdeaStatus.APPROVED, IdeaStatus.IN_PROGRESS})


def is_transition_valid(current_status: IdeaStatus, new_status: IdeaStatus) -> bool:
    """
    Check if a direct idea status transition is valid.

    Args:
        current_status: Current idea status
        new_status: Requested idea status

    Returns:
        True if transition is allowed, False otherwise
    """
    return new_status in IDEA_TRANSITION_MATRIX.get(current_status, [])


def validate_idea_transition(current_status: IdeaStatus, new_status: IdeaStatus) -> None:
    """
    Validate a direct idea status transition and raise if invalid.

    Args:
        current_status: Current idea status
        new_status: Requested idea status

    Raises:
        InvalidTransitionError: If the transition is not allowed
    """
    if is_transition_valid(current_status, new_status):
        logger.debug(f"Valid idea transition: {current_status.value} → {new_status.value}")
        return

    allowed_transitions = IDEA_TRANSITION_MATRIX.get(current_status, [])
    allowed_names = [s.value for s in allowed_transitions]

    if allowed_names:
        error_msg = (
            f"Invalid status transition: {current_status.value} → {new_status.value}. "
            f"From {current_status.value}, you can only transition to: {', '.join(allowed_names)}."
        )
    else:
        error_msg = (
            f"Invalid status transition: {current_status.value} → {new_status.value}. "
            f"{current_status.value} is a terminal status."
        )

    # Add helpful guidance based on the attempted transition
    if new_status == IdeaStatus.PENDING_APPROVAL:
        error_msg += " Ideas return to pending_approval only by undoing the last review action."
    elif current_status == new_status:
        error_msg += f" The idea is already {current_status.value}."
    elif current_status == IdeaStatus.PENDING_APPROVAL:
        error_msg += " Ideas must be approved before implementation can start."
    elif current_status == IdeaStatus.COMPLETED:
        error_msg += " Completed ideas are final. Submit a new idea for further work."
    elif current_status == IdeaStatus.REJECTED:
        error_msg += " Rejected ideas cannot be reactivated. Submit a new idea instead."
    elif new_status == IdeaStatus.IN_PROGRESS:
        error_msg += " Implementation starts when the first task is created."

    logger.warning(f"Blocked transition: {error_msg}")
    raise InvalidTransitionError(
        message=error_msg,
        current_status=current_status,
        requested_status=new_status,
        allowed_transitions=allowed_transitions,
    )


def validate_restore_transition(current_status: IdeaStatus, restored_status: IdeaStatus) -> None:
    """
    Validate a compensating transition requested by the undo path.

    Raises:
        InvalidTransitionError: If ``restored_status`` cannot be reached from
            ``current_status`` by undo
    """
    allowed_transitions = RESTORE_TRANSITION_MATRIX.get(current_status, [])
    if restored_status in allowed_transitions:
        logger.debug(f"Valid restore: {current_status.value} → {restored_status.value}")
        return

    error_msg = (
        f"Cannot restore idea from {current_status.value} to {restored_status.value}. "
        f"Only approve and reject actions can be undone."
    )
    logger.warning(f"Blocked restore: {error_msg}")
    raise InvalidTransitionError(
        message=error_msg,
        current_status=current_status,
        requested_status=restored_status,
        allowed_transitions=allowed_transitions,
    )


def validate_implicit_transition(current_status: IdeaStatus, new_status: IdeaStatus) -> None:
    """
    Validate a transition the engine applies on its own (task creation).

    Raises:
        InvalidTransitionError: If ``new_status`` is not an implicit edge
            from ``current_status``
    """
    allowed_transitions = IMPLICIT_TRANSITION_MATRIX.get(current_status, [])
    if new_status in allowed_transitions:
        logger.debug(f"Valid implicit transition: {current_status.value} → {new_status.value}")
        return

    error_msg = f"Cannot move idea from {current_status.value} to {new_status.value} automatically."
    logger.warning(f"Blocked transition: {error_msg}")
    raise InvalidTransitionError(
        message=error_msg,
        current_status=current_status,
        requested_status=new_status,
        allowed_transitions=allowed_transitions,
    )


def get_allowed_transitions(current_status: IdeaStatus) -> list[IdeaStatus]:
    """Get list of statuses directly reachable from ``current_status``."""
    return list(IDEA_TRANSITION_MATRIX.get(current_status, []))


def is_terminal_status(status: IdeaStatus) -> bool:
    """Check if an idea status is terminal (no direct transitions out)."""
    return not IDEA_TRANSITION_MATRIX.get(status)


def event_type_for_transition(new_status: IdeaStatus) -> TrailEventType:
    """Map a direct idea transition to the trail event type it produces."""
    if new_status == IdeaStatus.APPROVED:
        return TrailEventType.APPROVED
    if new_status == IdeaStatus.REJECTED:
        return TrailEventType.REJECTED
    return TrailEventType.STATUS_CHANGED


def all_tasks_completed(task_statuses: list[TaskStatus]) -> bool:
    """
    Completion precondition: every task is completed.

    An idea without tasks satisfies the precondition.
    """
    return all(status == TaskStatus.COMPLETED for status in task_statuses)


# Idea status sort order for list queries
# Lower number = shown first; reviewer queue first, finished work last
IDEA_STATUS_SORT_ORDER: dict[IdeaStatus, int] = {
    IdeaStatus.PENDING_APPROVAL: 1,   # Needs review decision
    IdeaStatus.IN_PROGRESS: 2,        # Actively worked on
    IdeaStatus.APPROVED: 3,           # Ready to start
    IdeaStatus.COMPLETED: 4,          # Done
    IdeaStatus.REJECTED: 5,           # Declined
}
