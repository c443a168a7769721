"""
Cluster chat bot — main entry point.

Starts:
    • Structured JSON logging
    • Workflow config load + file watcher (background asyncio task)
    • Notification worker (background asyncio task)
    • Telegram bot (long polling)
    • FastAPI HTTP server (job manager notification webhook)
"""

import asyncio
import json
import logging
import os
from contextlib import asynccontextmanager

import uvicorn
from dotenv import load_dotenv

load_dotenv()  # must run before any module-level os.getenv() calls

from fastapi import FastAPI

from bot.telegram_bot import create_bot_app, send_notification
from config import settings
from config.workflows import WorkflowConfig, watch_workflows
from manager.client import HTTPJobManager, JobPayload
from workers.notification_worker import enqueue, register_callback, worker_loop


# ── Structured JSON logging ────────────────────────────────────────────────────

class _JSONFormatter(logging.Formatter):
    """One JSON object per log line — machine-readable and grep-friendly."""

    _SKIP = frozenset({
        "name", "msg", "args", "levelname", "levelno", "pathname", "filename",
        "module", "exc_info", "exc_text", "stack_info", "lineno", "funcName",
        "created", "msecs", "relativeCreated", "thread", "threadName",
        "processName", "process", "message", "taskName",
    })

    def format(self, record: logging.LogRecord) -> str:
        record.message = record.getMessage()
        out: dict = {
            "ts":     self.formatTime(record, "%Y-%m-%dT%H:%M:%S"),
            "level":  record.levelname,
            "logger": record.name,
            "msg":    record.message,
        }
        if record.exc_info:
            out["exc"] = self.formatException(record.exc_info)
        # Bubble up any extra= fields passed by callers
        for k, v in record.__dict__.items():
            if k not in self._SKIP:
                out[k] = v
        return json.dumps(out, default=str)


def setup_logging(level: str = "INFO") -> None:
    handler = logging.StreamHandler()
    handler.setFormatter(_JSONFormatter())
    root = logging.getLogger()
    root.handlers.clear()
    root.addHandler(handler)
    root.setLevel(getattr(logging, level.upper(), logging.INFO))
    for name in ("uvicorn", "uvicorn.error", "uvicorn.access"):
        logging.getLogger(name).handlers = []
        logging.getLogger(name).propagate = True
    # httpx logs every request at INFO
    logging.getLogger("httpx").setLevel(logging.WARNING)


setup_logging(os.getenv("LOG_LEVEL", "INFO"))
logger = logging.getLogger(__name__)


# ── Lifespan ───────────────────────────────────────────────────────────────────

@asynccontextmanager
async def lifespan(app: FastAPI):
    workflows = WorkflowConfig()
    workflows.reload_if_changed(settings.WORKFLOW_CONFIG_PATH)
    manager = HTTPJobManager()

    tasks = [
        asyncio.create_task(worker_loop()),
        asyncio.create_task(watch_workflows(
            workflows, settings.WORKFLOW_CONFIG_PATH, settings.WORKFLOW_RELOAD_INTERVAL,
        )),
    ]

    bot = create_bot_app(manager, workflows)
    await bot.initialize()
    await bot.start()
    await bot.updater.start_polling(drop_pending_updates=True)
    register_callback(lambda channel, notification: send_notification(bot.bot, channel, notification))
    logger.info("Telegram bot polling started")

    yield

    logger.info("Shutting down")
    register_callback(None)
    await bot.updater.stop()
    await bot.stop()
    await bot.shutdown()
    for task in tasks:
        task.cancel()
    await manager.aclose()


# ── FastAPI app ────────────────────────────────────────────────────────────────

app = FastAPI(title="Cluster Chat Bot", version="0.1.0", lifespan=lifespan)


@app.get("/health")
async def health():
    return {"status": "ok"}


@app.post("/notifications", status_code=202)
async def api_notify(payload: JobPayload):
    """Job status feed: the job manager posts a snapshot on every state change."""
    enqueue(payload.to_job())
    return {"queued": True}


# ── Entry point ────────────────────────────────────────────────────────────────

if __name__ == "__main__":
    uvicorn.run(
        "main:app",
        host="0.0.0.0",
        port=int(os.getenv("PORT", "8000")),
        reload=False,
        log_config=None,   # let our handler take over
    )
