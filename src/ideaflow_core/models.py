"""SQLAlchemy database models."""
from datetime import datetime
import enum

from sqlalchemy import (
    Column,
    String,
    Text,
    Integer,
    DateTime,
    ForeignKey,
    Enum,
    CheckConstraint,
    Boolean,
    UniqueConstraint,
    JSON,
)
from sqlalchemy.orm import declarative_base, relationship

# Base class for all models
Base = declarative_base()


class IdeaStatus(str, enum.Enum):
    """Idea lifecycle status enum.

    - pending_approval: submitted, waiting for a reviewer
    - approved / rejected: reviewed (approved_by is set only in these two)
    - in_progress: implementation started (first task created)
    - completed: all work finalized
    """

    PENDING_APPROVAL = "pending_approval"
    APPROVED = "approved"
    REJECTED = "rejected"
    IN_PROGRESS = "in_progress"
    COMPLETED = "completed"


class TaskStatus(str, enum.Enum):
    """Task status enum. Transitions between these are unconstrained."""

    NOT_STARTED = "not_started"
    IN_PROGRESS = "in_progress"
    COMPLETED = "completed"
    ON_HOLD = "on_hold"


class Priority(str, enum.Enum):
    """Priority enum shared by ideas and tasks."""

    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    CRITICAL = "critical"


class DiscussionOwnerType(str, enum.Enum):
    """Kind of entity that owns a discussion thread."""

    IDEA = "idea"
    TASK = "task"


class TrailEventType(str, enum.Enum):
    """Audit trail event types."""

    SUBMITTED = "submitted"
    APPROVED = "approved"
    REJECTED = "rejected"
    TASK_CREATED = "task_created"
    TASK_UPDATED = "task_updated"
    STATUS_CHANGED = "status_changed"
    COMMENTED = "commented"
    REVERTED = "reverted"


def _enum_values(enum_cls):
    # Persist enum values (lowercase) instead of names (UPPERCASE)
    return [e.value for e in enum_cls]


class Idea(Base):
    """Idea submitted for review.

    Ideas are never physically deleted. User references (created_by,
    approved_by) are stored as {id, name, email} JSON snapshots because users
    live in the external identity provider.
    """

    __tablename__ = "ideas"

    id = Column(Integer, primary_key=True, autoincrement=True)
    title = Column(String(255), nullable=False)
    description = Column(Text, nullable=False, default="")
    category = Column(String(100), nullable=False, default="Other")
    priority = Column(Enum(Priority, values_callable=_enum_values), nullable=False, default=Priority.MEDIUM)
    status = Column(
        Enum(IdeaStatus, values_callable=_enum_values),
        nullable=False,
        default=IdeaStatus.PENDING_APPROVAL,
        index=True,
    )

    created_by = Column(JSON, nullable=True)
    created_at = Column(DateTime, nullable=False, default=datetime.utcnow, index=True)
    modified_at = Column(DateTime, nullable=False, default=datetime.utcnow, onupdate=datetime.utcnow)

    approved_by = Column(JSON, nullable=True)
    approved_at = Column(DateTime, nullable=True)

    attachments = Column(JSON, nullable=False, default=list)

    tasks = relationship("Task", back_populates="idea")

    def __repr__(self) -> str:
        return f"<Idea #{self.id}: {self.title[:30]}>"


class Task(Base):
    """Unit of implementation work owned by exactly one idea."""

    __tablename__ = "tasks"

    id = Column(Integer, primary_key=True, autoincrement=True)
    idea_id = Column(Integer, ForeignKey("ideas.id", ondelete="CASCADE"), nullable=False, index=True)

    title = Column(String(255), nullable=False)
    description = Column(Text, nullable=False, default="")
    status = Column(
        Enum(TaskStatus, values_callable=_enum_values),
        nullable=False,
        default=TaskStatus.NOT_STARTED,
        index=True,
    )
    priority = Column(Enum(Priority, values_callable=_enum_values), nullable=False, default=Priority.MEDIUM)
    percent_complete = Column(Integer, nullable=False, default=0)

    assigned_to = Column(JSON, nullable=False, default=list)
    start_date = Column(DateTime, nullable=True)
    due_date = Column(DateTime, nullable=True, index=True)

    created_by = Column(JSON, nullable=True)
    created_at = Column(DateTime, nullable=False, default=datetime.utcnow, index=True)
    modified_at = Column(DateTime, nullable=False, default=datetime.utcnow, onupdate=datetime.utcnow)

    idea = relationship("Idea", back_populates="tasks")

    __table_args__ = (
        CheckConstraint("percent_complete >= 0 AND percent_complete <= 100", name="valid_percent_complete"),
    )

    def __repr__(self) -> str:
        return f"<Task #{self.id} (idea #{self.idea_id}): {self.title[:30]}>"


class Discussion(Base):
    """Discussion thread attached to an idea or a task.

    At most one thread exists per owning entity. Messages are stored inline as
    a JSON list of {id, author, body, created_at, is_question, attachments}.
    """

    __tablename__ = "discussions"

    id = Column(Integer, primary_key=True, autoincrement=True)
    owner_type = Column(Enum(DiscussionOwnerType, values_callable=_enum_values), nullable=False)
    owner_id = Column(Integer, nullable=False)
    idea_id = Column(Integer, ForeignKey("ideas.id", ondelete="CASCADE"), nullable=False, index=True)

    title = Column(String(255), nullable=False, default="")
    locked = Column(Boolean, nullable=False, default=False)
    messages = Column(JSON, nullable=False, default=list)
    participants = Column(JSON, nullable=False, default=list)

    last_activity_at = Column(DateTime, nullable=False, default=datetime.utcnow)
    created_at = Column(DateTime, nullable=False, default=datetime.utcnow)

    __table_args__ = (
        UniqueConstraint("owner_type", "owner_id", name="uq_discussion_owner"),
    )

    def __repr__(self) -> str:
        return f"<Discussion #{self.id} ({self.owner_type.value} #{self.owner_id})>"


class TrailEvent(Base):
    """Append-only audit record of one workflow action.

    Rows are inserted and read, never updated or deleted.
    """

    __tablename__ = "trail_events"

    id = Column(Integer, primary_key=True, autoincrement=True)
    idea_id = Column(Integer, ForeignKey("ideas.id", ondelete="CASCADE"), nullable=False, index=True)
    task_id = Column(Integer, nullable=True, index=True)
    discussion_id = Column(Integer, nullable=True)

    # Open-ended string rather than a DB enum so new event kinds need no migration
    event_type = Column(String(50), nullable=False, index=True)
    title = Column(String(255), nullable=False)
    description = Column(Text, nullable=False, default="")

    actor = Column(JSON, nullable=True)  # {id, name}
    previous_status = Column(String(30), nullable=True)
    new_status = Column(String(30), nullable=True)
    # "metadata" is reserved on declarative classes
    event_metadata = Column("metadata", JSON, nullable=False, default=dict)

    timestamp = Column(DateTime, nullable=False, default=datetime.utcnow, index=True)

    def __repr__(self) -> str:
        return f"<TrailEvent #{self.id} idea #{self.idea_id}: {self.event_type} at {self.timestamp}>"
