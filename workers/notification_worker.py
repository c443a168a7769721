"""
Background notification worker.

- enqueue()           called by the /notifications webhook with each job snapshot.
- worker_loop()       drains the queue one job at a time.
- process_job()       filters, renders and hands a single job to the sender.
- register_callback() lets the chat transport register how messages go out.

Callback signature:
    async def cb(channel, notification) -> None

No deduplication happens here: every snapshot the manager delivers is
rendered once.
"""

import asyncio
import logging
from datetime import datetime
from typing import Awaitable, Callable, Optional

from bot.notifier import Notification, render, should_notify
from models.job import Job

logger = logging.getLogger(__name__)

Sender = Callable[[str, Notification], Awaitable[None]]

_callback: Optional[Sender] = None
_queue: "asyncio.Queue[Job]" = asyncio.Queue()


def register_callback(cb: Optional[Sender]) -> None:
    global _callback
    _callback = cb


def enqueue(job: Job) -> None:
    _queue.put_nowait(job)
    logger.info("Job notification queued",
                extra={"job": job.name, "state": job.state.value, "pending": _queue.qsize()})


async def process_job(job: Job, now: datetime | None = None) -> Notification | None:
    if not should_notify(job):
        return None

    try:
        notification = render(job, now)
    except Exception as exc:
        logger.error("Unable to render notification, dropping it",
                     extra={"job": job.name, "error": str(exc)}, exc_info=True)
        return None

    if _callback is None:
        logger.warning("No sender registered, dropping notification", extra={"job": job.name})
        return notification

    try:
        await _callback(job.requested_channel, notification)
    except Exception as exc:
        logger.error("Notification delivery failed",
                     extra={"job": job.name, "channel": job.requested_channel, "error": str(exc)},
                     exc_info=True)
    return notification


async def worker_loop() -> None:
    logger.info("Notification worker started")
    while True:
        job = await _queue.get()
        try:
            await process_job(job)
        except Exception as exc:
            logger.error("worker_loop error", extra={"job": job.name, "error": str(exc)}, exc_info=True)
        finally:
            _queue.task_done()
