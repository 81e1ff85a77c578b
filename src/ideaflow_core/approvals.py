"""Approval coordinator: approve/reject/undo with a single action in flight.

The coordinator keeps the pending working set (ideas awaiting review, oldest
first) in memory and removes an idea as soon as its review succeeds. Each
approve or reject leaves an UndoRecord behind; undo replays the original
status through the workflow engine and puts the idea back at the head of the
working set.
"""
import logging
from datetime import datetime
from typing import Optional

from .exceptions import BusyError, IdeaflowError, PermissionDeniedError
from .models import IdeaStatus
from .notifications import NotificationSink, make_notification
from .permissions import Capability
from .schemas import (
    Actor,
    ApprovalAction,
    ApprovalResponse,
    Idea,
    NotificationType,
    UndoRecord,
)
from .store import EntityType
from .undo import UndoCache
from .workflow import WorkflowEngine

logger = logging.getLogger("ideaflow-core.approvals")

ACTION_STATUSES: dict[ApprovalAction, IdeaStatus] = {
    ApprovalAction.APPROVE: IdeaStatus.APPROVED,
    ApprovalAction.REJECT: IdeaStatus.REJECTED,
}

ACTION_PAST_TENSE: dict[ApprovalAction, str] = {
    ApprovalAction.APPROVE: "approved",
    ApprovalAction.REJECT: "rejected",
}


class ApprovalCoordinator:
    """Runs reviewer actions one at a time and keeps the undo slot."""

    def __init__(self, engine: WorkflowEngine, undo_cache: UndoCache, sink: NotificationSink):
        self.engine = engine
        self.undo_cache = undo_cache
        self.sink = sink
        self._pending: list[Idea] = []
        self._busy = False

    @property
    def pending(self) -> list[Idea]:
        return list(self._pending)

    @property
    def busy(self) -> bool:
        return self._busy

    @property
    def undo_available(self) -> bool:
        return self.undo_cache.peek() is not None

    def _notify(self, type: NotificationType, title: str, message: str):
        notification = make_notification(type, title, message)
        self.sink.emit(notification)
        return notification

    def _remove_pending(self, idea_id: int) -> None:
        self._pending = [i for i in self._pending if i.id != idea_id]

    def _claim(self) -> None:
        # Checked and set without an await in between
        if self._busy:
            self._notify(
                NotificationType.WARNING,
                "Please wait",
                "Another action is already in progress.",
            )
            raise BusyError()
        self._busy = True

    async def refresh_pending(self) -> list[Idea]:
        """Reload the working set from the store, oldest first."""
        ideas = await self.engine.store.list(
            EntityType.IDEA,
            filter={"status": IdeaStatus.PENDING_APPROVAL},
            order_by=["created_at", "id"],
        )
        self._pending = ideas
        logger.debug(f"Pending working set refreshed: {len(ideas)} idea(s)")
        return self.pending

    def add_pending(self, idea: Idea) -> None:
        """Track a newly submitted idea at the end of the working set."""
        if idea.status == IdeaStatus.PENDING_APPROVAL and all(i.id != idea.id for i in self._pending):
            self._pending.append(idea)

    async def handle_approval_action(self, idea: Idea, action: ApprovalAction, actor: Actor) -> ApprovalResponse:
        """
        Approve or reject ``idea``.

        Raises:
            BusyError: If another action is in flight
            IdeaflowError: Whatever the workflow engine raised; the idea stays
                in the pending set and no undo record is kept
        """
        self._claim()
        record = UndoRecord(
            idea_id=idea.id,
            action=action,
            original_status=idea.status,
            idea_title=idea.title,
            timestamp=datetime.utcnow(),
            snapshot=idea.model_copy(deep=True),
        )
        verb = ACTION_PAST_TENSE[action]

        try:
            updated = await self.engine.transition(idea.id, ACTION_STATUSES[action], actor, notify=False)
        except IdeaflowError as e:
            logger.warning(f"{action.value} failed for idea #{idea.id}: {e}")
            self._notify(
                NotificationType.ERROR,
                f"Could not {action.value} idea",
                f"'{idea.title}' was not {verb}: {e} Please try again.",
            )
            raise
        finally:
            self._busy = False

        self._remove_pending(idea.id)
        await self.undo_cache.put(record)
        notification = self._notify(
            NotificationType.SUCCESS,
            f"Idea {verb}",
            f"'{idea.title}' was {verb}. You can undo this for the next few minutes.",
        )
        return ApprovalResponse(idea=updated, notification=notification, undo_available=True)

    async def handle_undo(self, actor: Actor) -> ApprovalResponse:
        """
        Undo the last approve/reject.

        Returns a response without an idea when there is nothing to undo. The
        undo record is consumed whether or not the restore succeeds.
        """
        try:
            self.engine.require(actor, Capability.REVIEW_IDEA)
        except PermissionDeniedError as e:
            self._notify(NotificationType.ERROR, "Could not undo", str(e))
            raise
        self._claim()

        record: Optional[UndoRecord] = None
        try:
            record = self.undo_cache.peek()
            if record is None:
                notification = self._notify(NotificationType.INFO, "Nothing to undo", "There is no recent action to undo.")
                return ApprovalResponse(notification=notification, undo_available=False)

            try:
                restored = await self.engine.restore(
                    record.idea_id,
                    original_status=record.original_status,
                    expected_status=ACTION_STATUSES[record.action],
                    actor=actor,
                )
            except IdeaflowError as e:
                logger.warning(f"Undo failed for idea #{record.idea_id}: {e}")
                self._notify(
                    NotificationType.ERROR,
                    "Could not undo",
                    f"Undoing the {record.action.value} of '{record.idea_title}' failed: {e} Please try again.",
                )
                raise
        finally:
            if record is not None:
                await self.undo_cache.clear()
            self._busy = False

        if restored.status == IdeaStatus.PENDING_APPROVAL:
            self._remove_pending(restored.id)
            self._pending.insert(0, restored)

        notification = self._notify(
            NotificationType.SUCCESS,
            "Action undone",
            f"'{record.idea_title}' is back to {restored.status.value.replace('_', ' ')}.",
        )
        return ApprovalResponse(idea=restored, notification=notification, undo_available=False)
