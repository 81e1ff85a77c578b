"""Formatting functions for MCP responses."""


STATUS_EMOJI = {
    'pending_approval': '⏳',
    'approved': '✅',
    'rejected': '❌',
    'in_progress': '🚧',
    'completed': '🏁',
    'not_started': '⚪',
    'on_hold': '⏸️',
}


def _user_name(user) -> str:
    return user['name'] if user else "unknown"


def format_idea(idea: dict) -> str:
    """Format an idea for display."""
    emoji = STATUS_EMOJI.get(idea['status'], '💡')
    desc_info = f"\n\n{idea['description']}" if idea.get('description') else ""
    approved_info = ""
    if idea.get('approved_by'):
        approved_info = f"\nReviewed by: {_user_name(idea['approved_by'])} at {idea['approved_at']}"
    attachments = idea.get('attachments') or []
    attach_info = f"\nAttachments: {', '.join(a['file_name'] for a in attachments)}" if attachments else ""

    return f"""{emoji} **Idea #{idea['id']}: {idea['title']}**
Status: {idea['status']}
Category: {idea['category']} | Priority: {idea['priority']}
Submitted by: {_user_name(idea.get('created_by'))} at {idea['created_at']}{approved_info}{attach_info}{desc_info}"""


def format_idea_line(idea: dict) -> str:
    """One-line idea summary for lists."""
    emoji = STATUS_EMOJI.get(idea['status'], '💡')
    return f"- {emoji} #{idea['id']} {idea['title']} ({idea['priority']}, {idea['category']})"


def format_task(task: dict) -> str:
    """Format a task for display."""
    emoji = STATUS_EMOJI.get(task['status'], '📋')
    assignees = ', '.join(u['name'] for u in task.get('assigned_to') or []) or "unassigned"
    due_info = f"\nDue: {task['due_date']}" if task.get('due_date') else ""
    desc_info = f"\n\n{task['description']}" if task.get('description') else ""

    return f"""{emoji} **Task #{task['id']}: {task['title']}** (idea #{task['idea_id']})
Status: {task['status']} | {task['percent_complete']}% complete | Priority: {task['priority']}
Assigned to: {assignees}{due_info}{desc_info}"""


def format_trail_event(event: dict) -> str:
    """Format a trail event as a single line."""
    status_info = ""
    if event.get('previous_status') or event.get('new_status'):
        status_info = f" [{event.get('previous_status') or '-'} → {event.get('new_status') or '-'}]"
    actor = _user_name(event.get('actor'))
    task_info = f" (task #{event['task_id']})" if event.get('task_id') else ""
    return f"- {event['timestamp']} **{event['event_type']}**{task_info} by {actor}: {event['title']}{status_info}"


def format_discussion(discussion: dict) -> str:
    """Format a discussion thread with its messages."""
    lock_info = " 🔒 locked" if discussion['locked'] else ""
    header = (
        f"**Discussion #{discussion['id']}: {discussion['title']}**{lock_info}\n"
        f"Owner: {discussion['owner_type']} #{discussion['owner_id']} (idea #{discussion['idea_id']})\n"
        f"Participants: {', '.join(p['name'] for p in discussion.get('participants') or []) or 'none'}"
    )
    messages = discussion.get('messages') or []
    if not messages:
        return f"{header}\n\nNo messages yet."

    lines = []
    for message in messages:
        marker = "❓ " if message.get('is_question') else ""
        lines.append(f"[{message['created_at']}] {marker}{message['author']['name']}: {message['body']}")
    return f"{header}\n\n" + "\n".join(lines)


def format_notification(notification: dict) -> str:
    """Format a coordinator notification."""
    return f"{notification['title']}: {notification['message']}"
