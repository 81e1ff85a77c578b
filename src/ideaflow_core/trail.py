"""Audit trail logger.

Appends are made after the mutation they describe has been committed, so a
failed append must never fail or roll back that mutation. Failures are logged
and counted; the caller always gets control back.
"""
import logging
from typing import AsyncIterator, Optional

from .exceptions import TrailLogFailure
from .schemas import TrailEvent, TrailEventCreate
from .store import EntityStore, EntityType

logger = logging.getLogger("ideaflow-core.trail")

DEFAULT_PAGE_SIZE = 100
DEFAULT_SCAN_LIMIT = 1000


class AuditTrailLogger:
    """Append-only writer and paged reader for trail events."""

    def __init__(
        self,
        store: EntityStore,
        page_size: int = DEFAULT_PAGE_SIZE,
        scan_limit: int = DEFAULT_SCAN_LIMIT,
    ):
        self.store = store
        self.page_size = page_size
        self.scan_limit = scan_limit
        self.failure_count = 0
        self.last_failure: Optional[TrailLogFailure] = None

    async def append(self, event: TrailEventCreate) -> Optional[int]:
        """
        Persist ``event`` and return its id, or None if the store refused it.

        Never raises for store errors.
        """
        fields = event.model_dump(mode="json")
        try:
            event_id = await self.store.create(EntityType.TRAIL_EVENT, fields)
        except Exception as e:
            self.failure_count += 1
            self.last_failure = TrailLogFailure(
                f"Failed to append {event.event_type.value} event for idea #{event.idea_id}: {e}",
                event_type=event.event_type.value,
                idea_id=event.idea_id,
            )
            logger.error(str(self.last_failure), exc_info=True)
            return None

        logger.debug(f"Trail event #{event_id}: {event.event_type.value} on idea #{event.idea_id}")
        return event_id

    async def query(self, idea_id: Optional[int] = None) -> AsyncIterator[TrailEvent]:
        """
        Yield trail events most recent first, optionally for one idea.

        Events are fetched from the store a page at a time and the scan stops
        after ``scan_limit`` events.
        """
        filter = {"idea_id": idea_id} if idea_id is not None else None
        offset = 0
        while offset < self.scan_limit:
            batch_size = min(self.page_size, self.scan_limit - offset)
            page = await self.store.list(
                EntityType.TRAIL_EVENT,
                filter=filter,
                order_by=["-timestamp", "-id"],
                limit=batch_size,
                offset=offset,
            )
            for event in page:
                yield event
            if len(page) < batch_size:
                return
            offset += len(page)

    async def collect(self, idea_id: Optional[int] = None, limit: Optional[int] = None) -> list[TrailEvent]:
        """Materialize ``query`` into a list, stopping after ``limit`` events."""
        events: list[TrailEvent] = []
        async for event in self.query(idea_id):
            events.append(event)
            if limit is not None and len(events) >= limit:
                break
        return events
