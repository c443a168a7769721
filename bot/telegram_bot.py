"""
Telegram bot — long-polling entry point.

Commands:
    /start | /help                                       show help
    /launch <image_or_version_or_pr> <options>           launch a cluster
    /lookup <image_or_version_or_pr>                     info about a version
    /list                                                list running jobs
    /refresh                                             retry fetching credentials
    /done                                                terminate your cluster
    /auth                                                re-send your credentials
    /test <name> <image_or_version_or_pr> <options>      run a test suite
    /test upgrade <from> <to> <options>                  run an upgrade test
    /test_upgrade <from> <to> <options>                  same as above
    /build <pullrequest>                                 build a release image
    /workflow_launch <name> <image> <parameters>         launch from a workflow
    /version                                             bot version

The last slot of each command takes the rest of the line.
"""

import html
import logging

from telegram import Update
from telegram.constants import ChatType, ParseMode
from telegram.error import TelegramError
from telegram.ext import (
    Application,
    CommandHandler,
    ContextTypes,
    MessageHandler,
    filters,
)

from bot import commands
from bot.commands import CommandContext
from bot.notifier import Notification
from config import settings
from config.workflows import WorkflowConfig
from manager.client import JobManager
from parsing.parser import split_links

logger = logging.getLogger(__name__)


# ── Formatting ────────────────────────────────────────────────────────────────

def to_html(text: str) -> str:
    """Escape *text* for Telegram HTML, turning <url|label> spans into anchors."""
    out = []
    for prefix, target, display in split_links(text):
        out.append(html.escape(prefix))
        if target is not None:
            out.append(f'<a href="{html.escape(target)}">{html.escape(display or target)}</a>')
    return "".join(out)


def slots(args: list[str], count: int) -> list[str]:
    """Spread *args* over *count* slots; the last slot swallows the remainder."""
    values = list(args[: count - 1])
    values.append(" ".join(args[count - 1 :]))
    values += [""] * (count - len(values))
    return values


def _context(update: Update) -> CommandContext:
    chat = update.effective_chat
    return CommandContext(
        user=str(update.effective_user.id),
        channel=str(chat.id),
        text=update.message.text or "",
        direct=chat.type == ChatType.PRIVATE,
    )


async def _reply(update: Update, text: str) -> None:
    await update.message.reply_text(to_html(text), parse_mode=ParseMode.HTML)


# ── Delivery ──────────────────────────────────────────────────────────────────

async def send_notification(bot, channel: str, notification: Notification) -> None:
    attachment = notification.attachment
    if attachment is None:
        await bot.send_message(chat_id=channel, text=to_html(notification.text), parse_mode=ParseMode.HTML)
        return

    try:
        await bot.send_document(
            chat_id=channel,
            document=attachment.content.encode("utf-8"),
            filename=attachment.filename,
            caption=to_html(attachment.comment),
            parse_mode=ParseMode.HTML,
        )
    except TelegramError as exc:
        logger.error("Unable to send attachment with message",
                     extra={"channel": channel, "file": attachment.filename, "error": str(exc)})
        return
    logger.info("Uploaded credentials", extra={"channel": channel, "file": attachment.filename})


# ── Handlers ──────────────────────────────────────────────────────────────────

def _manager(context: ContextTypes.DEFAULT_TYPE) -> JobManager:
    return context.bot_data["manager"]


async def help_command(update: Update, context: ContextTypes.DEFAULT_TYPE) -> None:
    # usage placeholders like <options> are literal text, not link markup
    await update.message.reply_text(html.escape(commands.help_text()), parse_mode=ParseMode.HTML)


async def launch_command(update: Update, context: ContextTypes.DEFAULT_TYPE) -> None:
    image, options = slots(context.args, 2)
    await _reply(update, await commands.launch(_context(update), _manager(context), image, options))


async def lookup_command(update: Update, context: ContextTypes.DEFAULT_TYPE) -> None:
    (image,) = slots(context.args, 1)
    await _reply(update, await commands.lookup(_context(update), _manager(context), image))


async def list_command(update: Update, context: ContextTypes.DEFAULT_TYPE) -> None:
    await _reply(update, await commands.list_jobs(_context(update), _manager(context)))


async def refresh_command(update: Update, context: ContextTypes.DEFAULT_TYPE) -> None:
    await _reply(update, await commands.refresh(_context(update), _manager(context)))


async def done_command(update: Update, context: ContextTypes.DEFAULT_TYPE) -> None:
    await _reply(update, await commands.done(_context(update), _manager(context)))


async def auth_command(update: Update, context: ContextTypes.DEFAULT_TYPE) -> None:
    ctx = _context(update)
    notification = await commands.auth(ctx, _manager(context))
    await send_notification(context.bot, ctx.channel, notification)


async def test_command(update: Update, context: ContextTypes.DEFAULT_TYPE) -> None:
    args = context.args
    if args and args[0] == "upgrade":
        await _upgrade(update, context, args[1:])
        return
    name, image, options = slots(args, 3)
    await _reply(update, await commands.run_test(_context(update), _manager(context), name, image, options))


async def test_upgrade_command(update: Update, context: ContextTypes.DEFAULT_TYPE) -> None:
    await _upgrade(update, context, context.args)


async def _upgrade(update: Update, context: ContextTypes.DEFAULT_TYPE, args: list[str]) -> None:
    from_image, to_image, options = slots(args, 3)
    reply = await commands.run_test_upgrade(
        _context(update), _manager(context), from_image, to_image, options
    )
    await _reply(update, reply)


async def build_command(update: Update, context: ContextTypes.DEFAULT_TYPE) -> None:
    pullrequest, options = slots(context.args, 2)
    await _reply(update, await commands.build(_context(update), _manager(context), pullrequest, options))


async def workflow_launch_command(update: Update, context: ContextTypes.DEFAULT_TYPE) -> None:
    name, image, parameters = slots(context.args, 3)
    reply = await commands.workflow_launch(
        _context(update), _manager(context), context.bot_data["workflows"], name, image, parameters
    )
    await _reply(update, reply)


async def version_command(update: Update, context: ContextTypes.DEFAULT_TYPE) -> None:
    await _reply(update, commands.version())


async def fallback(update: Update, context: ContextTypes.DEFAULT_TYPE) -> None:
    await _reply(update, commands.UNRECOGNIZED)


async def error_handler(update: object, context: ContextTypes.DEFAULT_TYPE) -> None:
    logger.error("Error handling update: %s", context.error, exc_info=context.error)
    if isinstance(update, Update) and update.effective_message:
        await update.effective_message.reply_text("Sorry, that command failed. Please try again.")


# ── App factory ───────────────────────────────────────────────────────────────

def create_bot_app(manager: JobManager, workflows: WorkflowConfig) -> Application:
    if not settings.TELEGRAM_BOT_TOKEN:
        raise ValueError("TELEGRAM_BOT_TOKEN is not set in environment")

    app = Application.builder().token(settings.TELEGRAM_BOT_TOKEN).build()
    app.bot_data["manager"] = manager
    app.bot_data["workflows"] = workflows

    app.add_handler(CommandHandler("start", help_command))
    app.add_handler(CommandHandler("help", help_command))
    app.add_handler(CommandHandler("launch", launch_command))
    app.add_handler(CommandHandler("lookup", lookup_command))
    app.add_handler(CommandHandler("list", list_command))
    app.add_handler(CommandHandler("refresh", refresh_command))
    app.add_handler(CommandHandler("done", done_command))
    app.add_handler(CommandHandler("auth", auth_command))
    app.add_handler(CommandHandler("test", test_command))
    app.add_handler(CommandHandler("test_upgrade", test_upgrade_command))
    app.add_handler(CommandHandler("build", build_command))
    app.add_handler(CommandHandler("workflow_launch", workflow_launch_command))
    app.add_handler(CommandHandler("version", version_command))
    app.add_handler(MessageHandler(filters.TEXT, fallback))
    app.add_error_handler(error_handler)

    return app
