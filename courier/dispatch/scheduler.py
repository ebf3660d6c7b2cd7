"""In-process delayed attempt scheduling on the asyncio event loop."""
import asyncio
import logging
from typing import Optional

from courier.dispatch.contracts import AttemptHandler

logger = logging.getLogger(__name__)


class AsyncioAttemptScheduler:
    """Runs each scheduled attempt in its own task after sleeping out the delay.

    Attempts never fire early. Timers live only in this process, so
    attempts still pending at shutdown are lost; the message rows stay
    ``queued`` and can be re-dispatched.
    """

    def __init__(self, handler: Optional[AttemptHandler] = None) -> None:
        self._handler = handler
        self._tasks: set[asyncio.Task] = set()
        self._closed = False

    def set_handler(self, handler: AttemptHandler) -> None:
        self._handler = handler

    async def schedule(self, message_id: str, delay_seconds: float) -> None:
        if self._handler is None:
            raise RuntimeError("AsyncioAttemptScheduler has no handler bound")
        if self._closed:
            raise RuntimeError("AsyncioAttemptScheduler is closed")
        task = asyncio.get_running_loop().create_task(
            self._run(message_id, max(0.0, delay_seconds)), name=f"courier-attempt-{message_id}"
        )
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)

    async def _run(self, message_id: str, delay_seconds: float) -> None:
        if delay_seconds:
            await asyncio.sleep(delay_seconds)
        try:
            await self._handler(message_id)
        except Exception:
            logger.exception("Scheduled attempt for message %s failed", message_id)

    def pending(self) -> int:
        return sum(1 for t in self._tasks if not t.done())

    async def drain(self, timeout: Optional[float] = None) -> None:
        """Wait until no attempts are pending, including ones scheduled meanwhile."""
        async def _wait() -> None:
            while self._tasks:
                await asyncio.gather(*list(self._tasks), return_exceptions=True)

        await asyncio.wait_for(_wait(), timeout)

    async def aclose(self) -> None:
        """Cancel every outstanding timer."""
        self._closed = True
        tasks = list(self._tasks)
        for task in tasks:
            task.cancel()
        if tasks:
            await asyncio.gather(*tasks, return_exceptions=True)
            logger.info("Cancelled %d pending attempt(s) on shutdown", len(tasks))
