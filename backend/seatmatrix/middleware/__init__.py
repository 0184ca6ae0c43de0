"""HTTP middleware."""

from seatmatrix.middleware.access_logging import AccessLoggingMiddleware

__all__ = ["AccessLoggingMiddleware"]
