"""
notify/queue.py -- Fire-and-forget outbound email.

Registration must never wait on (or fail because of) mail delivery, so
routes only enqueue an EmailMessage. A single worker task, started in the
app lifespan, drains the queue and hands each message to a Mailer.

Threading: sync route handlers run in the threadpool, not on the event loop,
and asyncio.Queue is not thread-safe. enqueue() therefore schedules the put
on the loop with call_soon_threadsafe(), which works from any thread.

Delivery failures are logged with the traceback and dropped; the worker keeps
running. Message bodies are never logged, only recipient and subject.

Usage:
    queue = MailQueue(LogMailer())
    queue.start()                       # inside the running event loop
    queue.enqueue(EmailMessage(...))    # from any thread
    await queue.stop()
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from typing import Optional, Protocol

logger = logging.getLogger("userdesk.notify")


@dataclass(frozen=True)
class EmailMessage:
    sender: str
    to: str
    subject: str
    html_body: str


class Mailer(Protocol):
    def send(self, message: EmailMessage) -> None: ...


class LogMailer:
    """Default mailer: records that a message would have been sent."""

    def send(self, message: EmailMessage) -> None:
        logger.info("Email sent to=%s subject=%r", message.to, message.subject)


class MailQueue:
    def __init__(self, mailer: Mailer) -> None:
        self.mailer = mailer
        self._queue: Optional[asyncio.Queue] = None
        self._loop: Optional[asyncio.AbstractEventLoop] = None
        self._worker: Optional[asyncio.Task] = None

    def start(self) -> None:
        """Create the queue and worker on the running event loop."""
        self._loop = asyncio.get_running_loop()
        self._queue = asyncio.Queue()
        self._worker = self._loop.create_task(self._run())

    def enqueue(self, message: EmailMessage) -> None:
        """Schedule message for delivery. Never blocks, never raises on delivery."""
        if self._loop is None or self._queue is None:
            logger.warning("Mail queue not running; dropping email to=%s", message.to)
            return
        self._loop.call_soon_threadsafe(self._queue.put_nowait, message)
        logger.info("Email queued to=%s subject=%r", message.to, message.subject)

    async def join(self) -> None:
        """Wait until every queued message has been handled."""
        if self._queue is not None:
            await self._queue.join()

    async def stop(self, drain_timeout: float = 5.0) -> None:
        """Give queued messages up to drain_timeout seconds, then cancel the worker.

        Anything still queued after that is dropped and counted in the log.
        """
        if self._worker is not None:
            try:
                await asyncio.wait_for(self._queue.join(), drain_timeout)
            except asyncio.TimeoutError:
                pass
            dropped = self._queue.qsize()
            if dropped:
                logger.warning("Mail queue stopped with %d undelivered emails", dropped)
            self._worker.cancel()
            try:
                await self._worker
            except asyncio.CancelledError:
                pass
        self._worker = None
        self._loop = None
        self._queue = None

    async def _run(self) -> None:
        while True:
            message = await self._queue.get()
            try:
                await asyncio.to_thread(self.mailer.send, message)
            except Exception:
                logger.exception("Failed to send email to=%s subject=%r", message.to, message.subject)
            finally:
                self._queue.task_done()
