"""Pydantic schemas and value types."""
