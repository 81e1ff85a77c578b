"""MCP tool definitions for Ideaflow."""

from mcp.types import Tool


IDEA_STATUSES = ["pending_approval", "approved", "rejected", "in_progress", "completed"]
TASK_STATUSES = ["not_started", "in_progress", "completed", "on_hold"]
PRIORITIES = ["low", "medium", "high", "critical"]

USER_REF_SCHEMA = {
    "type": "object",
    "properties": {
        "id": {"type": "integer"},
        "name": {"type": "string"},
        "email": {"type": "string"}
    },
    "required": ["id", "name"]
}


def get_tools() -> list[Tool]:
    """Get the list of all MCP tools for Ideaflow."""
    return [
        # ============================================================================
        # Review Tools
        # ============================================================================
        Tool(
            name="list_pending_ideas",
            description="List ideas awaiting review, oldest first. "
                       "An idea whose approve/reject was just undone appears at the top.",
            inputSchema={
                "type": "object",
                "properties": {
                    "refresh": {
                        "type": "boolean",
                        "description": "Reload the queue from the database first (default: false)"
                    }
                }
            }
        ),
        Tool(
            name="get_idea",
            description="Get full details of an idea. Errors: 404 (not found).",
            inputSchema={
                "type": "object",
                "properties": {
                    "idea_id": {"type": "integer", "description": "Idea number, e.g. 42"}
                },
                "required": ["idea_id"]
            }
        ),
        Tool(
            name="submit_idea",
            description="Submit a new idea. It starts in pending_approval.",
            inputSchema={
                "type": "object",
                "properties": {
                    "title": {"type": "string", "description": "Idea title"},
                    "description": {"type": "string", "description": "What the idea proposes"},
                    "category": {"type": "string", "description": "Free-form category (default: Other)"},
                    "priority": {"type": "string", "enum": PRIORITIES, "description": "Priority (default: medium)"}
                },
                "required": ["title"]
            }
        ),
        Tool(
            name="approve_idea",
            description="Approve a pending idea. Can be undone with undo_last_action within 5 minutes. "
                       "Errors: 400 (not pending), 403 (not a reviewer), 409 (another action in progress).",
            inputSchema={
                "type": "object",
                "properties": {
                    "idea_id": {"type": "integer", "description": "Idea to approve"}
                },
                "required": ["idea_id"]
            }
        ),
        Tool(
            name="reject_idea",
            description="Reject a pending idea. Can be undone with undo_last_action within 5 minutes. "
                       "Errors: 400 (not pending), 403 (not a reviewer), 409 (another action in progress).",
            inputSchema={
                "type": "object",
                "properties": {
                    "idea_id": {"type": "integer", "description": "Idea to reject"}
                },
                "required": ["idea_id"]
            }
        ),
        Tool(
            name="undo_last_action",
            description="Undo the most recent approve or reject. The idea returns to pending_approval. "
                       "Only one action can be undone, and only within 5 minutes.",
            inputSchema={"type": "object", "properties": {}}
        ),
        Tool(
            name="transition_idea",
            description="Move an idea to a new status. "
                       "Valid: pending_approval → approved/rejected; approved → completed; "
                       "in_progress → completed (every task must be completed first). "
                       "in_progress starts when the first task is created (create_task). "
                       "pending_approval can only be reached with undo_last_action.",
            inputSchema={
                "type": "object",
                "properties": {
                    "idea_id": {"type": "integer", "description": "Idea to transition"},
                    "new_status": {"type": "string", "enum": IDEA_STATUSES, "description": "Target status"}
                },
                "required": ["idea_id", "new_status"]
            }
        ),
        # ============================================================================
        # Task Tools
        # ============================================================================
        Tool(
            name="list_tasks",
            description="List the tasks of an idea.",
            inputSchema={
                "type": "object",
                "properties": {
                    "idea_id": {"type": "integer", "description": "Owning idea"}
                },
                "required": ["idea_id"]
            }
        ),
        Tool(
            name="create_task",
            description="Create a task under an approved or in-progress idea (admins only). "
                       "The first task moves an approved idea to in_progress.",
            inputSchema={
                "type": "object",
                "properties": {
                    "idea_id": {"type": "integer", "description": "Owning idea"},
                    "title": {"type": "string", "description": "Task title"},
                    "description": {"type": "string", "description": "Task description"},
                    "priority": {"type": "string", "enum": PRIORITIES},
                    "assigned_to": {"type": "array", "items": USER_REF_SCHEMA, "description": "Assignees"},
                    "due_date": {"type": "string", "description": "ISO 8601 due date"}
                },
                "required": ["idea_id", "title"]
            }
        ),
        Tool(
            name="update_task",
            description="Update a task. Assignees may change status and percent_complete; admins any field.",
            inputSchema={
                "type": "object",
                "properties": {
                    "task_id": {"type": "integer", "description": "Task to update"},
                    "title": {"type": "string"},
                    "description": {"type": "string"},
                    "status": {"type": "string", "enum": TASK_STATUSES},
                    "priority": {"type": "string", "enum": PRIORITIES},
                    "percent_complete": {"type": "integer", "minimum": 0, "maximum": 100},
                    "assigned_to": {"type": "array", "items": USER_REF_SCHEMA},
                    "due_date": {"type": "string", "description": "ISO 8601 due date"}
                },
                "required": ["task_id"]
            }
        ),
        # ============================================================================
        # Trail & Discussion Tools
        # ============================================================================
        Tool(
            name="get_idea_trail",
            description="Show the audit trail of an idea, most recent first.",
            inputSchema={
                "type": "object",
                "properties": {
                    "idea_id": {"type": "integer", "description": "Idea whose trail to show"},
                    "limit": {"type": "integer", "description": "Maximum events (default: 50)"}
                },
                "required": ["idea_id"]
            }
        ),
        Tool(
            name="get_discussion",
            description="Show a discussion thread. Pass discussion_id, or idea_id to list that idea's threads.",
            inputSchema={
                "type": "object",
                "properties": {
                    "discussion_id": {"type": "integer"},
                    "idea_id": {"type": "integer"}
                }
            }
        ),
        Tool(
            name="post_message",
            description="Post a message to a discussion thread. Errors: 423 (thread locked).",
            inputSchema={
                "type": "object",
                "properties": {
                    "discussion_id": {"type": "integer"},
                    "body": {"type": "string", "description": "Message text"},
                    "is_question": {"type": "boolean", "description": "Mark the message as a question"}
                },
                "required": ["discussion_id", "body"]
            }
        ),
        Tool(
            name="set_discussion_lock",
            description="Lock or unlock a discussion thread (moderators only).",
            inputSchema={
                "type": "object",
                "properties": {
                    "discussion_id": {"type": "integer"},
                    "locked": {"type": "boolean"}
                },
                "required": ["discussion_id", "locked"]
            }
        ),
    ]
