"""MCP tool handlers.

All handlers follow a consistent pattern:
- Accept: arguments dict and an httpx.AsyncClient pointed at /api/v1
- Return: list[TextContent]
- Use formatters for consistent output
- Raise httpx errors to the server, which turns them into error text
"""
import logging

import httpx
from mcp.types import TextContent

from . import formatters

logger = logging.getLogger("ideaflow-mcp.handlers")


def _text(text: str) -> list[TextContent]:
    return [TextContent(type="text", text=text)]


# ============================================================================
# Review Handlers
# ============================================================================

async def handle_list_pending_ideas(arguments: dict, client: httpx.AsyncClient) -> list[TextContent]:
    """List the review queue."""
    params = {"refresh": "true"} if arguments.get("refresh") else None
    response = await client.get("/approvals/pending", params=params)
    response.raise_for_status()
    result = response.json()
    logger.info(f"Listed {result['total']} pending ideas")

    if not result['items']:
        return _text("No ideas are waiting for review.")
    busy_info = "\n(An action is currently in progress.)" if result.get('busy') else ""
    lines = "\n".join(formatters.format_idea_line(idea) for idea in result['items'])
    return _text(f"{result['total']} idea(s) awaiting review:{busy_info}\n\n{lines}")


async def handle_get_idea(arguments: dict, client: httpx.AsyncClient) -> list[TextContent]:
    idea_id = arguments["idea_id"]
    response = await client.get(f"/ideas/{idea_id}")
    response.raise_for_status()
    return _text(formatters.format_idea(response.json()))


async def handle_submit_idea(arguments: dict, client: httpx.AsyncClient) -> list[TextContent]:
    payload = {k: v for k, v in arguments.items() if v is not None}
    response = await client.post("/ideas/", json=payload)
    response.raise_for_status()
    result = response.json()
    logger.info(f"Submitted idea #{result['id']}: {result['title']}")
    return _text(f"Submitted idea #{result['id']}.\n\n{formatters.format_idea(result)}")


async def _review(idea_id: int, action: str, client: httpx.AsyncClient) -> list[TextContent]:
    response = await client.post(f"/approvals/{idea_id}/{action}")
    response.raise_for_status()
    result = response.json()
    logger.info(f"{action} idea #{idea_id}")
    text = formatters.format_notification(result['notification'])
    if result.get('idea'):
        text += f"\n\n{formatters.format_idea(result['idea'])}"
    return _text(text)


async def handle_approve_idea(arguments: dict, client: httpx.AsyncClient) -> list[TextContent]:
    return await _review(arguments["idea_id"], "approve", client)


async def handle_reject_idea(arguments: dict, client: httpx.AsyncClient) -> list[TextContent]:
    return await _review(arguments["idea_id"], "reject", client)


async def handle_undo_last_action(arguments: dict, client: httpx.AsyncClient) -> list[TextContent]:
    response = await client.post("/approvals/undo")
    response.raise_for_status()
    result = response.json()
    text = formatters.format_notification(result['notification'])
    if result.get('idea'):
        text += f"\n\n{formatters.format_idea(result['idea'])}"
    return _text(text)


async def handle_transition_idea(arguments: dict, client: httpx.AsyncClient) -> list[TextContent]:
    idea_id = arguments["idea_id"]
    response = await client.post(f"/ideas/{idea_id}/transition", json={"new_status": arguments["new_status"]})
    response.raise_for_status()
    result = response.json()
    logger.info(f"Transitioned idea #{idea_id} to {result['status']}")
    return _text(f"Idea #{idea_id} is now {result['status']}.\n\n{formatters.format_idea(result)}")


# ============================================================================
# Task Handlers
# ============================================================================

async def handle_list_tasks(arguments: dict, client: httpx.AsyncClient) -> list[TextContent]:
    idea_id = arguments["idea_id"]
    response = await client.get(f"/ideas/{idea_id}/tasks")
    response.raise_for_status()
    tasks = response.json()
    if not tasks:
        return _text(f"Idea #{idea_id} has no tasks.")
    return _text(f"{len(tasks)} task(s) for idea #{idea_id}:\n\n" + "\n\n".join(formatters.format_task(t) for t in tasks))


async def handle_create_task(arguments: dict, client: httpx.AsyncClient) -> list[TextContent]:
    idea_id = arguments.pop("idea_id")
    payload = {k: v for k, v in arguments.items() if v is not None}
    response = await client.post(f"/ideas/{idea_id}/tasks", json=payload)
    response.raise_for_status()
    result = response.json()
    logger.info(f"Created task #{result['id']} under idea #{idea_id}")
    return _text(f"Created task #{result['id']}.\n\n{formatters.format_task(result)}")


async def handle_update_task(arguments: dict, client: httpx.AsyncClient) -> list[TextContent]:
    task_id = arguments.pop("task_id")
    response = await client.patch(f"/tasks/{task_id}", json=arguments)
    response.raise_for_status()
    result = response.json()
    logger.info(f"Updated task #{task_id}: {sorted(arguments)}")
    return _text(f"Updated task #{task_id}.\n\n{formatters.format_task(result)}")


# ============================================================================
# Trail & Discussion Handlers
# ============================================================================

async def handle_get_idea_trail(arguments: dict, client: httpx.AsyncClient) -> list[TextContent]:
    idea_id = arguments["idea_id"]
    response = await client.get(f"/ideas/{idea_id}/trail", params={"limit": arguments.get("limit", 50)})
    response.raise_for_status()
    result = response.json()
    if not result['items']:
        return _text(f"No trail events for idea #{idea_id}.")
    lines = "\n".join(formatters.format_trail_event(e) for e in result['items'])
    return _text(f"Trail for idea #{idea_id} (most recent first):\n\n{lines}")


async def handle_get_discussion(arguments: dict, client: httpx.AsyncClient) -> list[TextContent]:
    if arguments.get("discussion_id") is not None:
        response = await client.get(f"/discussions/{arguments['discussion_id']}")
        response.raise_for_status()
        return _text(formatters.format_discussion(response.json()))

    if arguments.get("idea_id") is None:
        return _text("Error: pass discussion_id or idea_id")

    response = await client.get("/discussions/", params={"idea_id": arguments["idea_id"]})
    response.raise_for_status()
    threads = response.json()
    if not threads:
        return _text(f"Idea #{arguments['idea_id']} has no discussions.")
    return _text("\n\n---\n\n".join(formatters.format_discussion(t) for t in threads))


async def handle_post_message(arguments: dict, client: httpx.AsyncClient) -> list[TextContent]:
    discussion_id = arguments["discussion_id"]
    payload = {"body": arguments["body"], "is_question": bool(arguments.get("is_question", False))}
    response = await client.post(f"/discussions/{discussion_id}/messages", json=payload)
    response.raise_for_status()
    logger.info(f"Posted message to discussion #{discussion_id}")
    return _text(f"Message posted.\n\n{formatters.format_discussion(response.json())}")


async def handle_set_discussion_lock(arguments: dict, client: httpx.AsyncClient) -> list[TextContent]:
    discussion_id = arguments["discussion_id"]
    response = await client.post(f"/discussions/{discussion_id}/lock", json={"locked": arguments["locked"]})
    response.raise_for_status()
    result = response.json()
    state = "locked" if result['locked'] else "unlocked"
    return _text(f"Discussion #{discussion_id} is now {state}.")


HANDLERS = {
    "list_pending_ideas": handle_list_pending_ideas,
    "get_idea": handle_get_idea,
    "submit_idea": handle_submit_idea,
    "approve_idea": handle_approve_idea,
    "reject_idea": handle_reject_idea,
    "undo_last_action": handle_undo_last_action,
    "transition_idea": handle_transition_idea,
    "list_tasks": handle_list_tasks,
    "create_task": handle_create_task,
    "update_task": handle_update_task,
    "get_idea_trail": handle_get_idea_trail,
    "get_discussion": handle_get_discussion,
    "post_message": handle_post_message,
    "set_discussion_lock": handle_set_discussion_lock,
}
