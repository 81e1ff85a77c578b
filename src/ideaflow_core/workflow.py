"""Workflow engine: idea and task mutations with capability checks and audit.

Every mutation follows the same path: validate against the state machine,
check the actor's capability, persist through the entity store, then append
one trail event. Trail appends and discussion locking happen after the
mutation is committed and never undo it. Each public mutation resolves to
exactly one success or error notification.
"""
import logging
from datetime import datetime
from typing import Any, Awaitable, Callable, Optional

from .discussions import DiscussionLockManager
from .exceptions import IdeaflowError, InvalidTransitionError, PermissionDeniedError
from .models import DiscussionOwnerType, IdeaStatus, TaskStatus, TrailEventType
from .notifications import LoggingNotificationSink, NotificationSink, make_notification
from .permissions import Capability, has_capability
from .schemas import (
    ASSIGNEE_TASK_FIELDS,
    Actor,
    Attachment,
    Discussion,
    DiscussionCreate,
    Idea,
    IdeaCreate,
    MessageCreate,
    NotificationType,
    Task,
    TaskCreate,
    TaskUpdate,
    TrailEventCreate,
)
from .state_machine import (
    IDEA_STATUS_SORT_ORDER,
    REVIEWED_STATUSES,
    TASK_CREATION_STATUSES,
    all_tasks_completed,
    event_type_for_transition,
    get_allowed_transitions,
    validate_idea_transition,
    validate_implicit_transition,
    validate_restore_transition,
)
from .store import EntityStore, EntityType
from .trail import AuditTrailLogger

logger = logging.getLogger("ideaflow-core.workflow")


# Capability required to move an idea into each directly requestable status
TRANSITION_CAPABILITIES: dict[IdeaStatus, Capability] = {
    IdeaStatus.APPROVED: Capability.REVIEW_IDEA,
    IdeaStatus.REJECTED: Capability.REVIEW_IDEA,
    IdeaStatus.COMPLETED: Capability.MANAGE_TASKS,
}

TRANSITION_TITLES: dict[IdeaStatus, str] = {
    IdeaStatus.APPROVED: "Idea approved",
    IdeaStatus.REJECTED: "Idea rejected",
    IdeaStatus.IN_PROGRESS: "Implementation started",
    IdeaStatus.COMPLETED: "Idea completed",
}


class WorkflowEngine:
    """Applies idea and task mutations."""

    def __init__(
        self,
        store: EntityStore,
        trail: AuditTrailLogger,
        discussions: DiscussionLockManager,
        lock_discussions_on_completion: bool = True,
        sink: Optional[NotificationSink] = None,
    ):
        self.store = store
        self.trail = trail
        self.discussions = discussions
        self.lock_discussions_on_completion = lock_discussions_on_completion
        self.sink = sink if sink is not None else LoggingNotificationSink()

    # ------------------------------------------------------------------
    # Capability gate and notifications
    # ------------------------------------------------------------------

    def require(self, actor: Actor, capability: Capability) -> None:
        """
        Check that ``actor`` holds ``capability``.

        Raises:
            PermissionDeniedError: If none of the actor's roles grants it
        """
        if not has_capability(actor.roles, capability):
            logger.warning(f"Denied {capability.value} to user {actor.id} (roles: {[r.value for r in actor.roles]})")
            raise PermissionDeniedError(
                f"{actor.name} does not have the '{capability.value}' capability",
                capability=capability,
            )

    async def _notify_outcome(
        self,
        mutation: Awaitable[Any],
        failure_title: str,
        success: Callable[[Any], tuple[str, str]],
    ) -> Any:
        """
        Await ``mutation`` and emit one notification for its outcome.

        ``success`` maps the result to a (title, message) pair. Domain errors
        produce an error notification and are re-raised.
        """
        try:
            result = await mutation
        except IdeaflowError as e:
            self.sink.emit(make_notification(NotificationType.ERROR, failure_title, f"{e} Please try again."))
            raise
        title, message = success(result)
        self.sink.emit(make_notification(NotificationType.SUCCESS, title, message))
        return result

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    async def get_idea(self, idea_id: int) -> Idea:
        return await self.store.get(EntityType.IDEA, idea_id)

    async def list_ideas(
        self,
        status: Optional[IdeaStatus] = None,
        created_by: Optional[int] = None,
        limit: Optional[int] = None,
        offset: int = 0,
    ) -> tuple[list[Idea], int]:
        """
        List ideas with their total count.

        ``created_by`` keeps only ideas submitted by that user id. Unfiltered
        listings are grouped by status (review queue first), newest first
        within each group. Grouping applies to the returned page.
        """
        filter = {"status": status} if status is not None else None
        order_by = ["-created_at", "-id"]

        if created_by is None:
            ideas = await self.store.list(EntityType.IDEA, filter=filter, order_by=order_by, limit=limit, offset=offset)
            total = await self.store.count(EntityType.IDEA, filter=filter)
        else:
            # Submitter lives inside a JSON column; match it here
            mine = [
                idea
                for idea in await self.store.list(EntityType.IDEA, filter=filter, order_by=order_by)
                if idea.created_by is not None and idea.created_by.id == created_by
            ]
            total = len(mine)
            ideas = mine[offset:offset + limit] if limit is not None else mine[offset:]

        if status is None:
            ideas.sort(key=lambda idea: IDEA_STATUS_SORT_ORDER.get(idea.status, 99))
        return ideas, total

    async def get_task(self, task_id: int) -> Task:
        return await self.store.get(EntityType.TASK, task_id)

    async def list_tasks(self, idea_id: int) -> list[Task]:
        """List an idea's tasks in creation order."""
        await self.get_idea(idea_id)
        return await self.store.list(EntityType.TASK, filter={"idea_id": idea_id})

    async def list_tasks_for_user(self, user_id: int, status: Optional[TaskStatus] = None) -> list[Task]:
        """List tasks assigned to a user, soonest due first (undated last)."""
        filter = {"status": status} if status is not None else None
        tasks = [
            task
            for task in await self.store.list(EntityType.TASK, filter=filter)
            if task.is_assigned_to(user_id)
        ]
        tasks.sort(key=lambda task: (task.due_date is None, task.due_date or datetime.max, task.id))
        return tasks

    # ------------------------------------------------------------------
    # Ideas
    # ------------------------------------------------------------------

    async def submit_idea(
        self,
        data: IdeaCreate,
        actor: Actor,
        files: Optional[list[tuple[str, bytes]]] = None,
    ) -> Idea:
        """
        Create an idea in pending_approval.

        ``files`` are (file_name, content) pairs uploaded right after the idea
        is created. A file that cannot be stored is logged and skipped; the
        idea is still submitted.
        """
        def success(idea: Idea) -> tuple[str, str]:
            message = f"'{idea.title}' is waiting for review."
            missing = len(files or []) - len(idea.attachments)
            if missing > 0:
                message += f" {missing} attachment(s) could not be stored."
            return "Idea submitted", message

        return await self._notify_outcome(self._submit_idea(data, actor, files), "Could not submit idea", success)

    async def _submit_idea(self, data: IdeaCreate, actor: Actor, files: Optional[list[tuple[str, bytes]]]) -> Idea:
        self.require(actor, Capability.SUBMIT_IDEA)

        now = datetime.utcnow()
        idea_id = await self.store.create(
            EntityType.IDEA,
            {
                **data.model_dump(),
                "status": IdeaStatus.PENDING_APPROVAL,
                "created_by": actor.ref(),
                "created_at": now,
                "modified_at": now,
                "attachments": [],
            },
        )
        logger.info(f"Idea #{idea_id} submitted by user {actor.id}: {data.title}")

        await self.trail.append(
            TrailEventCreate(
                idea_id=idea_id,
                event_type=TrailEventType.SUBMITTED,
                title="Idea submitted",
                description=f"{actor.name} submitted '{data.title}'",
                actor=actor.trail_ref(),
                new_status=IdeaStatus.PENDING_APPROVAL.value,
                metadata={
                    "category": data.category,
                    "priority": data.priority.value,
                    "has_attachments": bool(files),
                },
            )
        )

        for file_name, content in files or []:
            try:
                await self.store.upload_attachment(idea_id, file_name, content)
            except (IdeaflowError, ValueError) as e:
                logger.error(f"Idea #{idea_id} submitted but attachment '{file_name}' was not stored: {e}", exc_info=True)

        return await self.get_idea(idea_id)

    async def attach_file(self, idea_id: int, file_name: str, content: bytes, actor: Actor) -> Attachment:
        """Store an attachment and link it to the idea."""

        async def upload() -> Attachment:
            self.require(actor, Capability.SUBMIT_IDEA)
            return await self.store.upload_attachment(idea_id, file_name, content)

        return await self._notify_outcome(
            upload(),
            "Could not upload attachment",
            lambda a: ("Attachment uploaded", f"'{a.file_name}' was attached to idea #{idea_id}."),
        )

    def _status_fields(self, new_status: IdeaStatus, actor: Actor) -> dict:
        # approved_by / approved_at are set exactly in the reviewed statuses
        if new_status in REVIEWED_STATUSES:
            return {"status": new_status, "approved_by": actor.ref(), "approved_at": datetime.utcnow()}
        return {"status": new_status, "approved_by": None, "approved_at": None}

    async def _apply_transition(self, idea: Idea, new_status: IdeaStatus, actor: Actor, **metadata) -> Idea:
        updated = await self.store.update(EntityType.IDEA, idea.id, self._status_fields(new_status, actor))
        logger.info(f"Idea #{idea.id}: {idea.status.value} → {new_status.value} by user {actor.id}")

        await self.trail.append(
            TrailEventCreate(
                idea_id=idea.id,
                event_type=event_type_for_transition(new_status),
                title=TRANSITION_TITLES.get(new_status, "Status changed"),
                description=f"{actor.name} moved '{idea.title}' from {idea.status.value} to {new_status.value}",
                actor=actor.trail_ref(),
                previous_status=idea.status.value,
                new_status=new_status.value,
                metadata=metadata,
            )
        )
        return updated

    async def transition(self, idea_id: int, new_status: IdeaStatus, actor: Actor, notify: bool = True) -> Idea:
        """
        Move an idea to ``new_status``.

        The requested edge is validated before the actor's capability, so a
        request the graph never allows fails the same way for every actor.
        Completing an idea requires every one of its tasks to be completed; an
        idea without tasks may be completed directly.

        ``notify=False`` leaves reporting to the caller (the approval
        coordinator emits its own notifications).

        Raises:
            NotFoundError: If the idea does not exist
            InvalidTransitionError: If the edge is not allowed or a precondition is unmet
            PermissionDeniedError: If the actor may not make this transition
        """
        mutation = self._transition(idea_id, new_status, actor)
        if not notify:
            return await mutation
        return await self._notify_outcome(
            mutation,
            "Could not change idea status",
            lambda idea: (
                TRANSITION_TITLES.get(idea.status, "Status changed"),
                f"'{idea.title}' is now {idea.status.value.replace('_', ' ')}.",
            ),
        )

    async def _transition(self, idea_id: int, new_status: IdeaStatus, actor: Actor) -> Idea:
        idea = await self.get_idea(idea_id)
        validate_idea_transition(idea.status, new_status)
        self.require(actor, TRANSITION_CAPABILITIES[new_status])

        tasks: list[Task] = []
        if new_status == IdeaStatus.COMPLETED:
            tasks = await self.store.list(EntityType.TASK, filter={"idea_id": idea_id})
            if not all_tasks_completed([t.status for t in tasks]):
                open_tasks = [t.id for t in tasks if t.status != TaskStatus.COMPLETED]
                error_msg = (
                    f"Cannot complete idea #{idea_id}: {len(open_tasks)} of {len(tasks)} tasks "
                    f"are not completed (tasks {', '.join(f'#{t}' for t in open_tasks)})."
                )
                logger.warning(f"Blocked transition: {error_msg}")
                raise InvalidTransitionError(
                    message=error_msg,
                    current_status=idea.status,
                    requested_status=new_status,
                    allowed_transitions=get_allowed_transitions(idea.status),
                )

        updated = await self._apply_transition(idea, new_status, actor)

        if new_status == IdeaStatus.COMPLETED and self.lock_discussions_on_completion and tasks:
            try:
                await self.discussions.lock_threads_for_tasks([t.id for t in tasks])
            except IdeaflowError as e:
                logger.error(f"Idea #{idea_id} completed but task discussions were not locked: {e}", exc_info=True)

        return updated

    async def restore(
        self,
        idea_id: int,
        original_status: IdeaStatus,
        expected_status: IdeaStatus,
        actor: Actor,
    ) -> Idea:
        """
        Put an idea back into the status it had before an approve or reject.

        The idea must still be in ``expected_status``, the status the undone
        action produced. No notification is emitted; the approval coordinator
        reports undo outcomes.
        """
        self.require(actor, Capability.REVIEW_IDEA)
        idea = await self.get_idea(idea_id)

        if idea.status != expected_status:
            error_msg = (
                f"Cannot undo: idea #{idea_id} is now {idea.status.value}, "
                f"not {expected_status.value}. It was changed after the action being undone."
            )
            logger.warning(f"Blocked restore: {error_msg}")
            raise InvalidTransitionError(
                message=error_msg,
                current_status=idea.status,
                requested_status=original_status,
            )
        validate_restore_transition(idea.status, original_status)

        updated = await self.store.update(EntityType.IDEA, idea_id, self._status_fields(original_status, actor))
        logger.info(f"Idea #{idea_id} restored: {idea.status.value} → {original_status.value} by user {actor.id}")

        await self.trail.append(
            TrailEventCreate(
                idea_id=idea_id,
                event_type=TrailEventType.REVERTED,
                title="Action undone",
                description=f"{actor.name} undid the {expected_status.value} decision on '{idea.title}'",
                actor=actor.trail_ref(),
                previous_status=idea.status.value,
                new_status=original_status.value,
                metadata={"undone_event": event_type_for_transition(expected_status).value},
            )
        )
        return updated

    # ------------------------------------------------------------------
    # Tasks
    # ------------------------------------------------------------------

    async def create_task(self, idea_id: int, data: TaskCreate, actor: Actor) -> Task:
        """
        Create a task under an approved or in-progress idea.

        The first task on an approved idea starts implementation (the idea
        moves to in_progress). Each task gets its own discussion thread.
        """
        return await self._notify_outcome(
            self._create_task(idea_id, data, actor),
            "Could not create task",
            lambda task: ("Task created", f"'{task.title}' was added to idea #{task.idea_id}."),
        )

    async def _create_task(self, idea_id: int, data: TaskCreate, actor: Actor) -> Task:
        self.require(actor, Capability.MANAGE_TASKS)
        idea = await self.get_idea(idea_id)

        if idea.status not in TASK_CREATION_STATUSES:
            error_msg = (
                f"Cannot create tasks for idea #{idea_id} in status {idea.status.value}. "
                f"Tasks can only be added to approved or in-progress ideas."
            )
            logger.warning(f"Blocked task creation: {error_msg}")
            raise InvalidTransitionError(
                message=error_msg,
                current_status=idea.status,
                allowed_transitions=get_allowed_transitions(idea.status),
            )

        now = datetime.utcnow()
        task_id = await self.store.create(
            EntityType.TASK,
            {
                **data.model_dump(),
                "idea_id": idea_id,
                "created_by": actor.ref(),
                "created_at": now,
                "modified_at": now,
            },
        )
        logger.info(f"Task #{task_id} created under idea #{idea_id} by user {actor.id}")

        await self.trail.append(
            TrailEventCreate(
                idea_id=idea_id,
                task_id=task_id,
                event_type=TrailEventType.TASK_CREATED,
                title="Task created",
                description=f"{actor.name} created task '{data.title}'",
                actor=actor.trail_ref(),
                new_status=data.status.value,
                metadata={
                    "task_id": task_id,
                    "task_title": data.title,
                    "assigned_to": [u.name for u in data.assigned_to],
                    "priority": data.priority.value,
                    "due_date": data.due_date.isoformat() if data.due_date else None,
                },
            )
        )

        if idea.status == IdeaStatus.APPROVED:
            validate_implicit_transition(idea.status, IdeaStatus.IN_PROGRESS)
            await self._apply_transition(idea, IdeaStatus.IN_PROGRESS, actor, task_id=task_id)

        try:
            await self.discussions.create_thread(DiscussionOwnerType.TASK, task_id)
        except IdeaflowError as e:
            logger.error(f"Task #{task_id} created but its discussion thread was not: {e}", exc_info=True)

        return await self.get_task(task_id)

    def _authorize_task_update(self, task: Task, fields: set[str], actor: Actor) -> None:
        if has_capability(actor.roles, Capability.MANAGE_TASKS):
            return
        self.require(actor, Capability.UPDATE_TASK_PROGRESS)
        if not task.is_assigned_to(actor.id):
            raise PermissionDeniedError(
                f"{actor.name} is not assigned to task #{task.id}",
                capability=Capability.UPDATE_TASK_PROGRESS,
            )
        restricted = sorted(fields - ASSIGNEE_TASK_FIELDS)
        if restricted:
            raise PermissionDeniedError(
                f"Assignees may only change status and percent_complete (not: {', '.join(restricted)})",
                capability=Capability.MANAGE_TASKS,
            )

    async def update_task(self, task_id: int, changes: TaskUpdate, actor: Actor) -> Task:
        """
        Apply ``changes`` to a task.

        Any task status may follow any other. Admins may change every field;
        assignees only status and percent_complete.
        """
        return await self._notify_outcome(
            self._update_task(task_id, changes, actor),
            "Could not update task",
            lambda task: (
                "Task updated",
                f"'{task.title}' is {task.status.value.replace('_', ' ')} ({task.percent_complete}% complete).",
            ),
        )

    async def _update_task(self, task_id: int, changes: TaskUpdate, actor: Actor) -> Task:
        task = await self.get_task(task_id)
        # Dates may be cleared explicitly; other fields ignore nulls
        fields = {
            k: v
            for k, v in changes.model_dump(exclude_unset=True).items()
            if v is not None or k in ("start_date", "due_date")
        }
        self._authorize_task_update(task, set(fields), actor)
        if not fields:
            return task

        updated = await self.store.update(EntityType.TASK, task_id, fields)
        status_changed = updated.status != task.status
        logger.info(f"Task #{task_id} updated by user {actor.id}: {sorted(fields)}")

        if status_changed:
            title = "Task status changed"
            description = f"{actor.name} moved task '{task.title}' from {task.status.value} to {updated.status.value}"
        else:
            title = "Task updated"
            description = f"{actor.name} updated task '{task.title}'"

        await self.trail.append(
            TrailEventCreate(
                idea_id=task.idea_id,
                task_id=task_id,
                event_type=TrailEventType.STATUS_CHANGED if status_changed else TrailEventType.TASK_UPDATED,
                title=title,
                description=description,
                actor=actor.trail_ref(),
                previous_status=task.status.value,
                new_status=updated.status.value,
                metadata={
                    "changed_fields": sorted(fields),
                    "percent_complete": updated.percent_complete,
                },
            )
        )
        return updated

    # ------------------------------------------------------------------
    # Discussions
    # ------------------------------------------------------------------

    async def open_discussion(self, data: DiscussionCreate, actor: Actor) -> Discussion:
        """Create (or return) the thread for an idea or task, optionally posting an opening message."""

        async def open_thread() -> Discussion:
            self.require(actor, Capability.POST_MESSAGE)
            thread = await self.discussions.create_thread(data.owner_type, data.owner_id, title=data.title)
            if data.body:
                thread = await self.discussions.add_message(thread.id, data.body, actor)
            return thread

        return await self._notify_outcome(
            open_thread(),
            "Could not open discussion",
            lambda thread: ("Discussion opened", f"'{thread.title}' is open for messages."),
        )

    async def post_message(self, thread_id: int, data: MessageCreate, actor: Actor) -> Discussion:
        async def post() -> Discussion:
            self.require(actor, Capability.POST_MESSAGE)
            return await self.discussions.add_message(
                thread_id,
                data.body,
                actor,
                is_question=data.is_question,
                attachments=data.attachments,
            )

        return await self._notify_outcome(
            post(),
            "Could not post message",
            lambda thread: ("Message posted", f"Your message was added to '{thread.title}'."),
        )

    async def set_discussion_lock(self, thread_id: int, locked: bool, actor: Actor) -> Discussion:
        async def set_lock() -> Discussion:
            self.require(actor, Capability.MODERATE_DISCUSSION)
            return await self.discussions.set_locked(thread_id, locked)

        return await self._notify_outcome(
            set_lock(),
            "Could not change discussion lock",
            lambda thread: (
                "Discussion locked" if thread.locked else "Discussion unlocked",
                f"'{thread.title}' is {'closed to' if thread.locked else 'open for'} new messages.",
            ),
        )
