"""Ideaflow MCP Server - Expose idea review and tracking to AI assistants."""
import os
import sys
import asyncio
import logging
import traceback
from typing import Any

import httpx
from mcp.server import Server
from mcp.server.stdio import stdio_server
from mcp.types import (
    Tool,
    TextContent,
    ImageContent,
    EmbeddedResource,
)

from . import tools
from . import handlers


# Configure logging to stderr (stdout carries the MCP protocol)
logging.basicConfig(
    level=logging.INFO,
    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s',
    stream=sys.stderr,
    force=True
)
logger = logging.getLogger("ideaflow-mcp")

# API Configuration
API_BASE_URL = os.getenv("IDEAFLOW_API_BASE_URL", "http://localhost:8000/api/v1")


def identity_headers() -> dict:
    """X-User-* headers identifying the assistant's user, from IDEAFLOW_MCP_USER_* variables."""
    mapping = {
        "IDEAFLOW_MCP_USER_ID": "X-User-Id",
        "IDEAFLOW_MCP_USER_NAME": "X-User-Name",
        "IDEAFLOW_MCP_USER_EMAIL": "X-User-Email",
        "IDEAFLOW_MCP_USER_ROLES": "X-User-Roles",
    }
    return {header: os.environ[var] for var, header in mapping.items() if os.getenv(var)}


logger.info(f"MCP Server starting with API_BASE_URL: {API_BASE_URL}")

# MCP Server instance
app = Server("ideaflow-mcp")


@app.list_tools()
async def list_tools() -> list[Tool]:
    """List available MCP tools."""
    return tools.get_tools()


@app.call_tool()
async def call_tool(name: str, arguments: Any) -> list[TextContent | ImageContent | EmbeddedResource]:
    """Handle MCP tool calls by delegating to handlers."""
    logger.info(f"Tool call: {name} with arguments: {arguments}")

    handler = handlers.HANDLERS.get(name)
    if handler is None:
        return [TextContent(type="text", text=f"Error: Unknown tool '{name}'")]

    async with httpx.AsyncClient(base_url=API_BASE_URL, timeout=30.0, headers=identity_headers()) as client:
        try:
            return await handler(dict(arguments or {}), client)

        except httpx.HTTPStatusError as e:
            logger.error(f"HTTP error during {name} call:")
            logger.error(f"  Status: {e.response.status_code}")
            logger.error(f"  URL: {e.request.url}")
            try:
                response_body = e.response.json()
                logger.error(f"  Response body: {response_body}")
                error_detail = response_body.get("detail", str(e))
            except ValueError:
                response_text = e.response.text
                logger.error(f"  Response text: {response_text}")
                error_detail = response_text or str(e)
            return [TextContent(type="text", text=f"Error ({e.response.status_code}): {error_detail}")]

        except httpx.RequestError as e:
            # Network/connection errors
            logger.error(f"Request error during {name} call: {type(e).__name__}: {e}")
            logger.error(f"  Traceback: {traceback.format_exc()}")
            return [TextContent(type="text", text=f"Error: Connection failed - {str(e)}")]


async def main():
    """Run the MCP server."""
    async with stdio_server() as (read_stream, write_stream):
        await app.run(read_stream, write_stream, app.create_initialization_options())


def run():
    asyncio.run(main())


if __name__ == "__main__":
    run()
