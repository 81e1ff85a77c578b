"""Ideaflow Core - idea review, task tracking, discussions and audit trail."""

__version__ = "1.0.0"
