# orderbot/dispatcher.py
import asyncio
import logging
from typing import Awaitable, Callable, Dict, List, Optional

from .flow.engine import is_reset_command
from .models import Outgoing

logger = logging.getLogger(__name__)

StepHandler = Callable[[str, str], Awaitable[List[Outgoing]]]
Sender = Callable[[Outgoing], Awaitable[None]]
PauseCheck = Callable[[str], bool]


class ChatDispatcher:
    """
    Serializes message handling per chat: one FIFO queue and one worker task
    per chat id, different chats run concurrently. A worker exits as soon as
    its queue is empty.

    `paused(chat_id)` is checked before every step and before every delivery;
    while it is true the chat's messages are dropped and nothing is sent to it.
    """

    def __init__(self, handle: StepHandler, send: Sender, paused: Optional[PauseCheck] = None):
        self._handle = handle
        self._send = send
        self._paused = paused
        self._queues: Dict[str, asyncio.Queue] = {}
        self._workers: Dict[str, asyncio.Task] = {}
        self._steps: Dict[str, asyncio.Task] = {}

    def is_paused(self, chat_id: str) -> bool:
        return self._paused is not None and self._paused(chat_id)

    def submit(self, chat_id: str, text: str) -> None:
        chat_id = str(chat_id)
        if is_reset_command(text):
            self.interrupt(chat_id)

        queue = self._queues.setdefault(chat_id, asyncio.Queue())
        queue.put_nowait(text)

        if chat_id not in self._workers:
            self._workers[chat_id] = asyncio.create_task(self._worker(chat_id))

    def interrupt(self, chat_id: str) -> Optional[asyncio.Task]:
        """Drop queued messages and cancel the in-flight step; returns that step."""
        chat_id = str(chat_id)
        queue = self._queues.get(chat_id)
        dropped = 0
        while queue is not None and not queue.empty():
            queue.get_nowait()
            dropped += 1

        step = self._steps.get(chat_id)
        if step is not None and not step.done():
            step.cancel()
            logger.info("Cancelled in-flight step chat=%s (dropped %s queued)", chat_id, dropped)
            return step
        if dropped:
            logger.info("Dropped %s queued message(s) chat=%s", dropped, chat_id)
        return None

    async def drain(self, chat_id: str) -> None:
        """Interrupt the chat and wait until its cancelled step has unwound."""
        step = self.interrupt(chat_id)
        if step is not None:
            await asyncio.wait({step})

    async def _worker(self, chat_id: str) -> None:
        queue = self._queues[chat_id]
        try:
            while not queue.empty():
                text = queue.get_nowait()
                if self.is_paused(chat_id):
                    logger.debug("chat=%s paused, queued message dropped", chat_id)
                    continue

                step = asyncio.create_task(self._handle(chat_id, text))
                self._steps[chat_id] = step
                await asyncio.wait({step})
                self._steps.pop(chat_id, None)

                if step.cancelled():
                    continue
                exc = step.exception()
                if exc is not None:
                    logger.error("Step failed chat=%s", chat_id, exc_info=exc)
                    continue

                for msg in step.result():
                    await self._deliver(msg)
        finally:
            self._workers.pop(chat_id, None)
            if queue.empty():
                self._queues.pop(chat_id, None)

    async def _deliver(self, msg: Outgoing) -> None:
        if self.is_paused(msg.chat_id):
            logger.debug("chat=%s paused, reply discarded", msg.chat_id)
            return
        try:
            await self._send(msg)
        except Exception:
            logger.exception("Failed to deliver message to chat=%s", msg.chat_id)

    async def join(self) -> None:
        """Wait until every chat's queue has been drained."""
        while self._workers:
            await asyncio.gather(*list(self._workers.values()), return_exceptions=True)
