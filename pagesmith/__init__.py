"""Pagesmith: generates a project website from repository events."""

__version__ = "1.0.0"
