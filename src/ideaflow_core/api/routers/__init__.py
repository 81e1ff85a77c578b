"""API routers."""
from . import approvals, discussions, ideas, notifications, tasks, trail

__all__ = ["approvals", "discussions", "ideas", "notifications", "tasks", "trail"]
