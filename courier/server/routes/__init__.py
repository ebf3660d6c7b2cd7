"""Route handlers for the courier HTTP API."""
from courier.server.routes.dead_letters import create_dead_letter_router
from courier.server.routes.health import create_health_router
from courier.server.routes.messages import create_message_router
__all__ = [
    "create_dead_letter_router",
    "create_health_router",
    "create_message_router",
]
