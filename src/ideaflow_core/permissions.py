"""Actor roles and the capabilities they grant.

Role derivation belongs to the identity provider; this module only maps the
roles it reports onto the capabilities the workflow checks.
"""
import enum


class Role(str, enum.Enum):
    """Roles reported by the identity provider."""

    ADMIN = "admin"
    APPROVER = "approver"
    CONTRIBUTOR = "contributor"


class Capability(str, enum.Enum):
    """Capabilities checked by the workflow engine."""

    SUBMIT_IDEA = "submit_idea"
    REVIEW_IDEA = "review_idea"                    # approve / reject / undo
    MANAGE_TASKS = "manage_tasks"                  # create tasks, edit all task fields, complete ideas
    UPDATE_TASK_PROGRESS = "update_task_progress"  # status and percent_complete on assigned tasks
    MODERATE_DISCUSSION = "moderate_discussion"    # lock / unlock threads
    POST_MESSAGE = "post_message"


ROLE_CAPABILITIES: dict[Role, set[Capability]] = {
    Role.ADMIN: set(Capability),
    Role.APPROVER: {
        Capability.SUBMIT_IDEA,
        Capability.REVIEW_IDEA,
        Capability.POST_MESSAGE,
    },
    Role.CONTRIBUTOR: {
        Capability.SUBMIT_IDEA,
        Capability.UPDATE_TASK_PROGRESS,
        Capability.POST_MESSAGE,
    },
}


def capabilities_for(roles) -> set[Capability]:
    """Union of the capabilities granted by ``roles``."""
    granted: set[Capability] = set()
    for role in roles:
        granted |= ROLE_CAPABILITIES.get(Role(role), set())
    return granted


def has_capability(roles, capability: Capability) -> bool:
    """Check whether any of ``roles`` grants ``capability``."""
    return capability in capabilities_for(roles)
