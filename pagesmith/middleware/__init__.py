"""Middleware components."""

from .exception_handler import pagesmith_exception_handler
from .request_context import RequestContextMiddleware

__all__ = ["pagesmith_exception_handler", "RequestContextMiddleware"]
