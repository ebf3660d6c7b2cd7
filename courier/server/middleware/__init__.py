"""Server middleware."""
from courier.server.middleware.logging import RequestLoggingMiddleware

__all__ = ["RequestLoggingMiddleware"]
