"""Wiring of the workflow components for one running application."""
import logging
from dataclasses import dataclass
from typing import Optional

from sqlalchemy.ext.asyncio import AsyncEngine

from .approvals import ApprovalCoordinator
from .attachments import LocalAttachmentStorage
from .config import Settings
from .database import create_engine, create_session_factory, dispose, init_models
from .discussions import DiscussionLockManager
from .notifications import NotificationBuffer
from .store import EntityStore, SqlAlchemyEntityStore
from .trail import AuditTrailLogger
from .undo import JsonFileKeyValueStore, KeyValueStore, MemoryKeyValueStore, UndoCache
from .workflow import WorkflowEngine

logger = logging.getLogger("ideaflow-core.services")


@dataclass
class Services:
    settings: Settings
    store: EntityStore
    trail: AuditTrailLogger
    discussions: DiscussionLockManager
    workflow: WorkflowEngine
    notifications: NotificationBuffer
    undo_cache: UndoCache
    approvals: ApprovalCoordinator
    db_engine: Optional[AsyncEngine] = None

    async def close(self) -> None:
        await dispose(self.db_engine)


def build_services(
    settings: Settings,
    store: EntityStore,
    kv: Optional[KeyValueStore] = None,
    db_engine: Optional[AsyncEngine] = None,
) -> Services:
    """Assemble the components around an entity store."""
    if kv is None:
        kv = JsonFileKeyValueStore(settings.undo_state_path) if settings.undo_state_path else MemoryKeyValueStore()

    trail = AuditTrailLogger(store, page_size=settings.trail_page_size, scan_limit=settings.trail_scan_limit)
    discussions = DiscussionLockManager(store, trail)
    notifications = NotificationBuffer()
    workflow = WorkflowEngine(
        store,
        trail,
        discussions,
        lock_discussions_on_completion=settings.lock_discussions_on_completion,
        sink=notifications,
    )
    undo_cache = UndoCache(
        kv,
        window_seconds=settings.undo_window_seconds,
        revalidate_on_read=settings.undo_revalidate_on_read,
    )
    approvals = ApprovalCoordinator(workflow, undo_cache, notifications)

    return Services(
        settings=settings,
        store=store,
        trail=trail,
        discussions=discussions,
        workflow=workflow,
        notifications=notifications,
        undo_cache=undo_cache,
        approvals=approvals,
        db_engine=db_engine,
    )


async def start_services(settings: Settings, kv: Optional[KeyValueStore] = None) -> Services:
    """
    Create the database engine and components, then load persisted state.

    Tables are created if missing, the undo slot is loaded (expired records
    are dropped) and the pending working set is read from the store.
    """
    db_engine = create_engine(settings.database_url, echo=settings.debug)
    await init_models(db_engine)

    store = SqlAlchemyEntityStore(
        create_session_factory(db_engine),
        attachment_storage=LocalAttachmentStorage(settings.attachment_dir, settings.attachment_base_url),
    )
    services = build_services(settings, store, kv=kv, db_engine=db_engine)
    await services.undo_cache.load()
    await services.approvals.refresh_pending()
    logger.info(f"Services started ({len(services.approvals.pending)} idea(s) pending review)")
    return services
