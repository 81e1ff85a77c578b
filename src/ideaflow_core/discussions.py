"""Discussion threads and their lock state.

One thread exists per owning idea or task. Locked threads reject new
messages; the workflow engine locks task threads when their idea completes.
"""
import logging
from datetime import datetime
from typing import Optional

from .exceptions import DiscussionLockedError, StoreFailureError
from .models import DiscussionOwnerType, TrailEventType
from .schemas import Actor, Attachment, Discussion, DiscussionMessage, TrailEventCreate
from .store import EntityStore, EntityType
from .trail import AuditTrailLogger

logger = logging.getLogger("ideaflow-core.discussions")


class DiscussionLockManager:
    """Creates threads, appends messages and flips lock flags."""

    def __init__(self, store: EntityStore, trail: AuditTrailLogger):
        self.store = store
        self.trail = trail

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    async def get_thread(self, thread_id: int) -> Discussion:
        return await self.store.get(EntityType.DISCUSSION, thread_id)

    async def get_thread_for_owner(
        self, owner_type: DiscussionOwnerType, owner_id: int
    ) -> Optional[Discussion]:
        """Return the thread owned by an idea or task, or None."""
        threads = await self.store.list(
            EntityType.DISCUSSION,
            filter={"owner_type": owner_type, "owner_id": owner_id},
            limit=1,
        )
        return threads[0] if threads else None

    async def list_threads(
        self,
        idea_id: Optional[int] = None,
        participant_id: Optional[int] = None,
    ) -> list[Discussion]:
        """
        List threads, most recently active first.

        ``participant_id`` keeps only threads that user has posted in.
        """
        filter = {"idea_id": idea_id} if idea_id is not None else None
        threads = await self.store.list(
            EntityType.DISCUSSION,
            filter=filter,
            order_by=["-last_activity_at", "-id"],
        )
        if participant_id is not None:
            threads = [t for t in threads if any(p.id == participant_id for p in t.participants)]
        return threads

    async def is_locked(self, thread_id: int) -> bool:
        thread = await self.get_thread(thread_id)
        return thread.locked

    # ------------------------------------------------------------------
    # Mutations
    # ------------------------------------------------------------------

    async def _resolve_owner(self, owner_type: DiscussionOwnerType, owner_id: int) -> tuple[int, str]:
        """Return (idea_id, default title) for an owner, raising NotFoundError if it is missing."""
        if owner_type == DiscussionOwnerType.IDEA:
            idea = await self.store.get(EntityType.IDEA, owner_id)
            return idea.id, f"Discussion: {idea.title}"
        task = await self.store.get(EntityType.TASK, owner_id)
        return task.idea_id, f"Task: {task.title}"

    async def create_thread(
        self,
        owner_type: DiscussionOwnerType,
        owner_id: int,
        title: Optional[str] = None,
    ) -> Discussion:
        """
        Create the thread for an idea or task.

        Idempotent: when the owner already has a thread it is returned
        unchanged.
        """
        existing = await self.get_thread_for_owner(owner_type, owner_id)
        if existing is not None:
            logger.debug(f"Thread #{existing.id} already exists for {owner_type.value} #{owner_id}")
            return existing

        idea_id, default_title = await self._resolve_owner(owner_type, owner_id)
        now = datetime.utcnow()
        try:
            thread_id = await self.store.create(
                EntityType.DISCUSSION,
                {
                    "owner_type": owner_type,
                    "owner_id": owner_id,
                    "idea_id": idea_id,
                    "title": title or default_title,
                    "locked": False,
                    "messages": [],
                    "participants": [],
                    "last_activity_at": now,
                    "created_at": now,
                },
            )
        except StoreFailureError:
            # A concurrent create may have won the unique (owner_type, owner_id) race
            existing = await self.get_thread_for_owner(owner_type, owner_id)
            if existing is None:
                raise
            return existing

        logger.info(f"Created discussion #{thread_id} for {owner_type.value} #{owner_id}")
        return await self.get_thread(thread_id)

    async def set_locked(self, thread_id: int, locked: bool) -> Discussion:
        """Lock or unlock a thread."""
        thread = await self.get_thread(thread_id)
        if thread.locked == locked:
            return thread
        updated = await self.store.update(EntityType.DISCUSSION, thread_id, {"locked": locked})
        logger.info(f"Discussion #{thread_id} {'locked' if locked else 'unlocked'}")
        return updated

    async def add_message(
        self,
        thread_id: int,
        body: str,
        actor: Actor,
        is_question: bool = False,
        attachments: Optional[list[Attachment]] = None,
    ) -> Discussion:
        """
        Append a message to a thread.

        Raises:
            DiscussionLockedError: If the thread is locked
            NotFoundError: If the thread does not exist
        """
        thread = await self.get_thread(thread_id)
        if thread.locked:
            logger.warning(f"Rejected message from {actor.name} on locked discussion #{thread_id}")
            raise DiscussionLockedError(thread_id)

        now = datetime.utcnow()
        message = DiscussionMessage(
            id=max((m.id for m in thread.messages), default=0) + 1,
            author=actor.ref(),
            body=body,
            created_at=now,
            is_question=is_question,
            attachments=attachments or [],
        )
        participants = list(thread.participants)
        if not any(p.id == actor.id for p in participants):
            participants.append(actor.ref())

        updated = await self.store.update(
            EntityType.DISCUSSION,
            thread_id,
            {
                "messages": thread.messages + [message],
                "participants": participants,
                "last_activity_at": now,
            },
        )

        await self.trail.append(
            TrailEventCreate(
                idea_id=thread.idea_id,
                task_id=thread.owner_id if thread.owner_type == DiscussionOwnerType.TASK else None,
                discussion_id=thread_id,
                event_type=TrailEventType.COMMENTED,
                title="Question posted" if is_question else "Comment posted",
                description=f"{actor.name} posted in '{thread.title}'",
                actor=actor.trail_ref(),
                metadata={
                    "message_id": message.id,
                    "is_question": is_question,
                    "has_attachments": bool(message.attachments),
                },
            )
        )
        return updated

    async def lock_threads_for_tasks(self, task_ids: list[int]) -> int:
        """Lock every unlocked thread owned by the given tasks. Returns the number locked."""
        if not task_ids:
            return 0
        threads = await self.store.list(
            EntityType.DISCUSSION,
            filter={"owner_type": DiscussionOwnerType.TASK, "owner_id": list(task_ids), "locked": False},
        )
        for thread in threads:
            await self.store.update(EntityType.DISCUSSION, thread.id, {"locked": True})
        if threads:
            logger.info(f"Locked {len(threads)} task discussion(s): {[t.id for t in threads]}")
        return len(threads)
