"""Dead-letter inspection and replay endpoints."""
import logging
from typing import Annotated, Optional

from fastapi import APIRouter, Query, status

from courier.engine import CourierEngine
from courier.errors import DeadLetterNotFoundError
from courier.server.models.responses import (
    DeadLetterListResponse, DeadLetterResponse, DeadLetterStatsResponse,
    MessageQueuedResponse, PurgeResponse,
)

logger = logging.getLogger(__name__)


def create_dead_letter_router(engine: CourierEngine) -> APIRouter:
    """Create dead-letter router with injected dependencies."""
    router = APIRouter(prefix="/dead-letters", tags=["dead-letters"])

    @router.get("", response_model=DeadLetterListResponse)
    async def list_dead_letters(
        limit: Annotated[int, Query(ge=1, le=500)] = 50,
        channel: Optional[str] = None,
    ) -> DeadLetterListResponse:
        entries = await engine.recorder.list_entries(limit, channel)
        return DeadLetterListResponse(
            entries=[DeadLetterResponse.from_entry(e) for e in entries], count=len(entries),
        )

    @router.get("/stats", response_model=DeadLetterStatsResponse)
    async def dead_letter_stats(
        days: Annotated[int, Query(ge=1, le=365)] = 7,
        top: Annotated[int, Query(ge=1, le=50)] = 5,
    ) -> DeadLetterStatsResponse:
        return DeadLetterStatsResponse.from_stats(await engine.recorder.stats(days, top))

    @router.post(
        "/{entry_id}/replay",
        response_model=MessageQueuedResponse,
        status_code=status.HTTP_202_ACCEPTED,
    )
    async def replay_dead_letter(entry_id: str) -> MessageQueuedResponse:
        """Requeue the message behind a dead-letter entry."""
        message_id = await engine.replay(entry_id)
        logger.info("Dead letter %s replayed via API", entry_id)
        return MessageQueuedResponse(message_id=message_id)

    @router.delete("/{entry_id}", response_model=PurgeResponse)
    async def delete_dead_letter(entry_id: str) -> PurgeResponse:
        deleted = await engine.recorder.purge(entry_id)
        if not deleted:
            raise DeadLetterNotFoundError(f"Dead letter {entry_id} not found")
        return PurgeResponse(deleted=deleted)

    return router
