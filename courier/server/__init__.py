"""HTTP surface for the dispatch engine."""
from courier.server.app import create_app

__all__ = ["create_app"]
