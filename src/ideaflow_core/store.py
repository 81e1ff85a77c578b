"""Entity store adapter: generic CRUD and filtered listing over record collections.

The workflow core talks to persistence only through ``EntityStore``. Records
cross the boundary as Pydantic schemas, never as ORM objects. There is no
delete operation, and trail events cannot be updated.
"""
import enum
import logging
from abc import ABC, abstractmethod
from datetime import datetime
from typing import Any, Optional

from pydantic import BaseModel
from sqlalchemy import func, select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from . import models, schemas
from .attachments import LocalAttachmentStorage
from .exceptions import NotFoundError, StoreFailureError

logger = logging.getLogger("ideaflow-core.store")


class EntityType(str, enum.Enum):
    """Record collections held by the store."""

    IDEA = "idea"
    TASK = "task"
    DISCUSSION = "discussion"
    TRAIL_EVENT = "trail_event"


ENTITY_MODELS: dict[EntityType, type] = {
    EntityType.IDEA: models.Idea,
    EntityType.TASK: models.Task,
    EntityType.DISCUSSION: models.Discussion,
    EntityType.TRAIL_EVENT: models.TrailEvent,
}

ENTITY_RECORDS: dict[EntityType, type[BaseModel]] = {
    EntityType.IDEA: schemas.Idea,
    EntityType.TASK: schemas.Task,
    EntityType.DISCUSSION: schemas.Discussion,
    EntityType.TRAIL_EVENT: schemas.TrailEvent,
}

# Record field name → ORM attribute name, where they differ
FIELD_ALIASES: dict[EntityType, dict[str, str]] = {
    EntityType.TRAIL_EVENT: {"metadata": "event_metadata"},
}

# Collections that accept inserts but no updates
APPEND_ONLY: frozenset[EntityType] = frozenset({EntityType.TRAIL_EVENT})


def _to_column_value(value: Any) -> Any:
    """Convert schema values into something a column (including JSON) accepts."""
    if isinstance(value, BaseModel):
        return value.model_dump(mode="json")
    if isinstance(value, list):
        return [_to_column_value(v) for v in value]
    if isinstance(value, dict):
        return {k: _to_column_value(v) for k, v in value.items()}
    return value


class EntityStore(ABC):
    """Interface consumed by the workflow core."""

    @abstractmethod
    async def list(
        self,
        entity_type: EntityType,
        filter: Optional[dict] = None,
        order_by: Optional[list[str]] = None,
        limit: Optional[int] = None,
        offset: int = 0,
    ) -> list[BaseModel]:
        """Return records matching ``filter`` (field equality; list values mean "any of")."""

    @abstractmethod
    async def count(self, entity_type: EntityType, filter: Optional[dict] = None) -> int:
        """Count records matching ``filter``."""

    @abstractmethod
    async def get(self, entity_type: EntityType, entity_id: int) -> BaseModel:
        """Return one record or raise NotFoundError."""

    @abstractmethod
    async def create(self, entity_type: EntityType, fields: dict) -> int:
        """Insert a record and return its assigned id."""

    @abstractmethod
    async def update(self, entity_type: EntityType, entity_id: int, fields: dict) -> BaseModel:
        """Apply ``fields`` to a record (last write wins) and return the updated record."""

    @abstractmethod
    async def upload_attachment(
        self,
        entity_id: int,
        file_name: str,
        content: bytes,
        entity_type: EntityType = EntityType.IDEA,
    ) -> schemas.Attachment:
        """Store attachment bytes and link {file_name, url} to the record."""


class SqlAlchemyEntityStore(EntityStore):
    """Entity store backed by SQLAlchemy async sessions, one session per call."""

    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        attachment_storage: Optional[LocalAttachmentStorage] = None,
    ):
        self._session_factory = session_factory
        self._attachments = attachment_storage

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    @staticmethod
    def _attr_name(entity_type: EntityType, field: str) -> str:
        return FIELD_ALIASES.get(entity_type, {}).get(field, field)

    def _column(self, entity_type: EntityType, field: str):
        model = ENTITY_MODELS[entity_type]
        attr = self._attr_name(entity_type, field)
        column = getattr(model, attr, None)
        if column is None or attr not in model.__mapper__.column_attrs:
            raise ValueError(f"Unknown field '{field}' for {entity_type.value}")
        return column

    def _apply_filter(self, entity_type: EntityType, query, filter: Optional[dict]):
        for field, value in (filter or {}).items():
            column = self._column(entity_type, field)
            if isinstance(value, (list, tuple, set, frozenset)):
                query = query.where(column.in_(list(value)))
            elif value is None:
                query = query.where(column.is_(None))
            else:
                query = query.where(column == value)
        return query

    def _apply_order(self, entity_type: EntityType, query, order_by: Optional[list[str]]):
        if not order_by:
            return query.order_by(ENTITY_MODELS[entity_type].id.asc())
        for field in order_by:
            descending = field.startswith("-")
            column = self._column(entity_type, field.lstrip("-"))
            query = query.order_by(column.desc() if descending else column.asc())
        return query

    def _assign(self, entity_type: EntityType, row, fields: dict) -> None:
        for field, value in fields.items():
            self._column(entity_type, field)  # validates the field name
            setattr(row, self._attr_name(entity_type, field), _to_column_value(value))

    @staticmethod
    def _to_record(entity_type: EntityType, row) -> BaseModel:
        return ENTITY_RECORDS[entity_type].model_validate(row)

    async def _get_row(self, db: AsyncSession, entity_type: EntityType, entity_id: int):
        row = await db.get(ENTITY_MODELS[entity_type], entity_id)
        if row is None:
            raise NotFoundError(entity_type.value, entity_id)
        return row

    # ------------------------------------------------------------------
    # EntityStore
    # ------------------------------------------------------------------

    async def list(
        self,
        entity_type: EntityType,
        filter: Optional[dict] = None,
        order_by: Optional[list[str]] = None,
        limit: Optional[int] = None,
        offset: int = 0,
    ) -> list[BaseModel]:
        query = select(ENTITY_MODELS[entity_type])
        query = self._apply_filter(entity_type, query, filter)
        query = self._apply_order(entity_type, query, order_by)
        if offset:
            query = query.offset(offset)
        if limit is not None:
            query = query.limit(limit)

        try:
            async with self._session_factory() as db:
                rows = (await db.execute(query)).scalars().all()
                return [self._to_record(entity_type, row) for row in rows]
        except SQLAlchemyError as e:
            logger.error(f"Failed to list {entity_type.value} records: {e}", exc_info=True)
            raise StoreFailureError(f"Failed to list {entity_type.value} records", operation="list") from e

    async def count(self, entity_type: EntityType, filter: Optional[dict] = None) -> int:
        query = select(func.count()).select_from(ENTITY_MODELS[entity_type])
        query = self._apply_filter(entity_type, query, filter)
        try:
            async with self._session_factory() as db:
                return (await db.execute(query)).scalar_one()
        except SQLAlchemyError as e:
            logger.error(f"Failed to count {entity_type.value} records: {e}", exc_info=True)
            raise StoreFailureError(f"Failed to count {entity_type.value} records", operation="count") from e

    async def get(self, entity_type: EntityType, entity_id: int) -> BaseModel:
        try:
            async with self._session_factory() as db:
                row = await self._get_row(db, entity_type, entity_id)
                return self._to_record(entity_type, row)
        except SQLAlchemyError as e:
            logger.error(f"Failed to get {entity_type.value} #{entity_id}: {e}", exc_info=True)
            raise StoreFailureError(f"Failed to get {entity_type.value} #{entity_id}", operation="get") from e

    async def create(self, entity_type: EntityType, fields: dict) -> int:
        row = ENTITY_MODELS[entity_type]()
        self._assign(entity_type, row, fields)
        try:
            async with self._session_factory() as db:
                db.add(row)
                await db.commit()
                await db.refresh(row)
                logger.debug(f"Created {entity_type.value} #{row.id}")
                return row.id
        except SQLAlchemyError as e:
            logger.error(f"Failed to create {entity_type.value}: {e}", exc_info=True)
            raise StoreFailureError(f"Failed to create {entity_type.value}", operation="create") from e

    async def update(self, entity_type: EntityType, entity_id: int, fields: dict) -> BaseModel:
        if entity_type in APPEND_ONLY:
            raise ValueError(f"{entity_type.value} records are append-only and cannot be updated")

        try:
            async with self._session_factory() as db:
                row = await self._get_row(db, entity_type, entity_id)
                self._assign(entity_type, row, fields)
                if hasattr(row, "modified_at") and "modified_at" not in fields:
                    row.modified_at = datetime.utcnow()
                await db.commit()
                await db.refresh(row)
                logger.debug(f"Updated {entity_type.value} #{entity_id}: {sorted(fields)}")
                return self._to_record(entity_type, row)
        except SQLAlchemyError as e:
            logger.error(f"Failed to update {entity_type.value} #{entity_id}: {e}", exc_info=True)
            raise StoreFailureError(f"Failed to update {entity_type.value} #{entity_id}", operation="update") from e

    async def upload_attachment(
        self,
        entity_id: int,
        file_name: str,
        content: bytes,
        entity_type: EntityType = EntityType.IDEA,
    ) -> schemas.Attachment:
        if self._attachments is None:
            raise StoreFailureError("Attachment storage is not configured", operation="upload_attachment")

        model = ENTITY_MODELS[entity_type]
        if "attachments" not in model.__mapper__.column_attrs:
            raise ValueError(f"{entity_type.value} records do not hold attachments")

        # Make sure the record exists before writing bytes
        await self.get(entity_type, entity_id)
        attachment = await self._attachments.save(entity_type.value, entity_id, file_name, content)

        try:
            async with self._session_factory() as db:
                row = await self._get_row(db, entity_type, entity_id)
                existing = [a for a in (row.attachments or []) if a.get("file_name") != attachment.file_name]
                row.attachments = existing + [attachment.model_dump(mode="json")]
                await db.commit()
        except SQLAlchemyError as e:
            logger.error(f"Failed to link attachment to {entity_type.value} #{entity_id}: {e}", exc_info=True)
            raise StoreFailureError(
                f"Failed to link attachment to {entity_type.value} #{entity_id}",
                operation="upload_attachment",
            ) from e

        logger.info(f"Attached {attachment.file_name} to {entity_type.value} #{entity_id}")
        return attachment
