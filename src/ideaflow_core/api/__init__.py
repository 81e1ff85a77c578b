"""Ideaflow Core HTTP API."""
