"""POST /messages endpoint handler."""
import logging

from fastapi import APIRouter, status

from courier.engine import CourierEngine
from courier.server.models.requests import MessageRequest
from courier.server.models.responses import MessageQueuedResponse

logger = logging.getLogger(__name__)


def create_message_router(engine: CourierEngine) -> APIRouter:
    """Create message router with injected dependencies."""
    router = APIRouter()

    @router.post(
        "/messages",
        response_model=MessageQueuedResponse,
        status_code=status.HTTP_202_ACCEPTED,
        tags=["messages"],
    )
    async def dispatch_message(body: MessageRequest) -> MessageQueuedResponse:
        """Accept a message for delivery.

        Idempotent per ``idempotency_key``: repeating a request returns the
        original message id without sending again.
        """
        message_id = await engine.dispatch(body.to_intent())
        return MessageQueuedResponse(message_id=message_id)

    return router
