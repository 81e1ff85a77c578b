"""FastAPI dependencies: component access and the current user."""
import logging
from typing import Optional

from fastapi import Depends, Header, Request

from ..approvals import ApprovalCoordinator
from ..permissions import Role
from ..schemas import Actor
from ..services import Services
from ..workflow import WorkflowEngine

logger = logging.getLogger("ideaflow-core.api.dependencies")


def get_services(request: Request) -> Services:
    return request.app.state.services


def get_workflow(services: Services = Depends(get_services)) -> WorkflowEngine:
    return services.workflow


def get_coordinator(services: Services = Depends(get_services)) -> ApprovalCoordinator:
    return services.approvals


def parse_roles(raw: str) -> list[Role]:
    """Parse a comma-separated role list, skipping roles we do not know."""
    roles = []
    for part in raw.split(","):
        name = part.strip().lower()
        if not name:
            continue
        try:
            roles.append(Role(name))
        except ValueError:
            logger.warning(f"Ignoring unknown role '{name}'")
    return roles


def get_current_user(
    services: Services = Depends(get_services),
    x_user_id: Optional[int] = Header(None),
    x_user_name: Optional[str] = Header(None),
    x_user_email: Optional[str] = Header(None),
    x_user_roles: Optional[str] = Header(None),
) -> Actor:
    """
    Identify the caller.

    An upstream identity provider supplies the user in X-User-* headers.
    Without them the configured default user is used (solo mode).
    """
    settings = services.settings
    if x_user_id is None:
        return Actor(
            id=settings.default_user_id,
            name=settings.default_user_name,
            email=settings.default_user_email,
            roles=parse_roles(",".join(settings.default_user_roles)),
        )

    return Actor(
        id=x_user_id,
        name=x_user_name or f"User {x_user_id}",
        email=x_user_email,
        roles=parse_roles(x_user_roles or ""),
    )
