"""Pydantic schemas for records, requests and responses."""
from datetime import datetime
from typing import Optional
import enum

from pydantic import AliasChoices, BaseModel, ConfigDict, Field

from .models import (
    DiscussionOwnerType,
    IdeaStatus,
    Priority,
    TaskStatus,
    TrailEventType,
)
from .permissions import Role


# ============================================================================
# Shared value types
# ============================================================================


class UserRef(BaseModel):
    """Reference to a user held by the identity provider."""

    id: int
    name: str
    email: Optional[str] = None


class Actor(UserRef):
    """The user performing an action, with the roles the identity provider reports."""

    roles: list[Role] = Field(default_factory=list)

    def ref(self) -> UserRef:
        return UserRef(id=self.id, name=self.name, email=self.email)

    def trail_ref(self) -> dict:
        """The {id, name} pair stored on trail events."""
        return {"id": self.id, "name": self.name}


class Attachment(BaseModel):
    """Stored attachment reference."""

    file_name: str
    url: str


# ============================================================================
# Idea Schemas
# ============================================================================


class Idea(BaseModel):
    """Idea record as returned by the entity store."""

    id: int
    title: str
    description: str = ""
    category: str = "Other"
    priority: Priority = Priority.MEDIUM
    status: IdeaStatus
    created_by: Optional[UserRef] = None
    created_at: datetime
    modified_at: datetime
    approved_by: Optional[UserRef] = None
    approved_at: Optional[datetime] = None
    attachments: list[Attachment] = Field(default_factory=list)

    model_config = ConfigDict(from_attributes=True)


class IdeaCreate(BaseModel):
    """Schema for submitting a new idea."""

    title: str = Field(..., min_length=1, max_length=255, description="Idea title")
    description: str = Field("", description="What the idea proposes")
    category: str = Field("Other", max_length=100, description="Free-form category")
    priority: Priority = Field(Priority.MEDIUM, description="Priority level (low, medium, high, critical)")


class IdeaTransition(BaseModel):
    """Schema for requesting an idea status transition."""

    new_status: IdeaStatus


class IdeaListResponse(BaseModel):
    """Schema for idea lists."""

    items: list[Idea]
    total: int


# ============================================================================
# Task Schemas
# ============================================================================


class Task(BaseModel):
    """Task record as returned by the entity store."""

    id: int
    idea_id: int
    title: str
    description: str = ""
    status: TaskStatus
    priority: Priority = Priority.MEDIUM
    percent_complete: int = 0
    assigned_to: list[UserRef] = Field(default_factory=list)
    start_date: Optional[datetime] = None
    due_date: Optional[datetime] = None
    created_by: Optional[UserRef] = None
    created_at: datetime
    modified_at: datetime

    model_config = ConfigDict(from_attributes=True)

    def is_assigned_to(self, user_id: int) -> bool:
        return any(user.id == user_id for user in self.assigned_to)


class TaskCreate(BaseModel):
    """Schema for creating a task under an idea."""

    title: str = Field(..., min_length=1, max_length=255, description="Task title")
    description: str = Field("", description="Task description")
    status: TaskStatus = Field(TaskStatus.NOT_STARTED, description="Initial status")
    priority: Priority = Field(Priority.MEDIUM, description="Task priority")
    percent_complete: int = Field(0, ge=0, le=100)
    assigned_to: list[UserRef] = Field(default_factory=list, description="Assignees")
    start_date: Optional[datetime] = None
    due_date: Optional[datetime] = None


class TaskUpdate(BaseModel):
    """Schema for updating a task. Only fields that are set are applied."""

    title: Optional[str] = Field(None, min_length=1, max_length=255)
    description: Optional[str] = None
    status: Optional[TaskStatus] = None
    priority: Optional[Priority] = None
    percent_complete: Optional[int] = Field(None, ge=0, le=100)
    assigned_to: Optional[list[UserRef]] = None
    start_date: Optional[datetime] = None
    due_date: Optional[datetime] = None


# Fields an assignee may change without the manage_tasks capability
ASSIGNEE_TASK_FIELDS = frozenset({"status", "percent_complete"})


# ============================================================================
# Discussion Schemas
# ============================================================================


class DiscussionMessage(BaseModel):
    """One message in a discussion thread."""

    id: int
    author: UserRef
    body: str
    created_at: datetime
    is_question: bool = False
    attachments: list[Attachment] = Field(default_factory=list)


class Discussion(BaseModel):
    """Discussion thread record."""

    id: int
    owner_type: DiscussionOwnerType
    owner_id: int
    idea_id: int
    title: str = ""
    locked: bool = False
    messages: list[DiscussionMessage] = Field(default_factory=list)
    participants: list[UserRef] = Field(default_factory=list)
    last_activity_at: datetime
    created_at: datetime

    model_config = ConfigDict(from_attributes=True)


class DiscussionCreate(BaseModel):
    """Schema for opening a discussion thread."""

    owner_type: DiscussionOwnerType
    owner_id: int
    title: Optional[str] = Field(None, max_length=255)
    body: Optional[str] = Field(None, description="Optional opening message")


class MessageCreate(BaseModel):
    """Schema for posting a message."""

    body: str = Field(..., min_length=1)
    is_question: bool = False
    attachments: list[Attachment] = Field(default_factory=list)


class DiscussionLockUpdate(BaseModel):
    """Schema for locking or unlocking a thread."""

    locked: bool


# ============================================================================
# Trail Schemas
# ============================================================================


class TrailEvent(BaseModel):
    """Immutable audit record."""

    id: int
    idea_id: int
    task_id: Optional[int] = None
    discussion_id: Optional[int] = None
    event_type: str
    title: str
    description: str = ""
    actor: Optional[dict] = None
    previous_status: Optional[str] = None
    new_status: Optional[str] = None
    metadata: dict = Field(
        default_factory=dict,
        validation_alias=AliasChoices("event_metadata", "metadata"),
    )
    timestamp: datetime

    model_config = ConfigDict(from_attributes=True, populate_by_name=True)


class TrailEventCreate(BaseModel):
    """Event to append to the trail."""

    idea_id: int
    task_id: Optional[int] = None
    discussion_id: Optional[int] = None
    event_type: TrailEventType
    title: str
    description: str = ""
    actor: Optional[dict] = None
    previous_status: Optional[str] = None
    new_status: Optional[str] = None
    metadata: dict = Field(default_factory=dict)


class TrailListResponse(BaseModel):
    """Schema for trail listings (most recent first)."""

    items: list[TrailEvent]
    total: int


# ============================================================================
# Approval / Undo / Notification Schemas
# ============================================================================


class ApprovalAction(str, enum.Enum):
    """Reviewer actions handled by the approval coordinator."""

    APPROVE = "approve"
    REJECT = "reject"


class NotificationType(str, enum.Enum):
    SUCCESS = "success"
    ERROR = "error"
    INFO = "info"
    WARNING = "warning"


class Notification(BaseModel):
    """Transient user-facing notification."""

    type: NotificationType
    title: str
    message: str
    duration_ms: int = 4000


class UndoRecord(BaseModel):
    """Compensating-action descriptor for the last approve/reject.

    Only the five scalar fields are persisted; the idea snapshot stays in
    memory.
    """

    idea_id: int
    action: ApprovalAction
    original_status: IdeaStatus
    idea_title: str
    timestamp: datetime
    snapshot: Optional[Idea] = Field(None, exclude=True)


class ApprovalResponse(BaseModel):
    """Result of an approve/reject/undo request."""

    idea: Optional[Idea] = None
    notification: Notification
    undo_available: bool = False


class UndoStatus(BaseModel):
    """Whether an undo is currently available, and for what."""

    available: bool
    record: Optional[UndoRecord] = None


class PendingIdeasResponse(BaseModel):
    """The coordinator's pending working set, in review order."""

    items: list[Idea]
    total: int
    busy: bool = False
