"""
Shift Tasks Notifier — Telegram Bot.

Hosts the scheduler and handles inbound chat messages:
- any message from an unseen chat registers it for task messages;
- "done 3" / "סיימתי משימה 3" / "3" closes task 3 of the configured role;
- /tasks lists today's open tasks.
"""

from __future__ import annotations

import logging
import sys
from functools import wraps
from typing import TYPE_CHECKING, Any, Callable, Coroutine
from zoneinfo import ZoneInfo

from telegram import Update
from telegram.constants import ParseMode
from telegram.ext import (
    Application,
    ApplicationBuilder,
    CommandHandler,
    ContextTypes,
    MessageHandler,
    filters,
)

from src.config import settings
from src.core import messages
from src.core.commands import MarkDone, parse_done_command
from src.core.task_service import tasks_for_day
from src.data.models import Role
from src.ports.task_port import RepositoryError

if TYPE_CHECKING:
    from src.core.clock import Clock
    from src.ports.notification_port import NotificationPort
    from src.ports.task_port import RecipientRegistry, TaskRepository

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Security: silent-ignore decorator
# ---------------------------------------------------------------------------


def authorized_only(
    func: Callable[..., Coroutine[Any, Any, None]],
) -> Callable[..., Coroutine[Any, Any, None]]:
    """Decorator that silently ignores users outside ALLOWED_USER_IDS.

    An empty allow-list means registration is open to everyone.
    """

    @wraps(func)
    async def wrapper(update: Update, context: ContextTypes.DEFAULT_TYPE) -> None:
        allowed = settings.ALLOWED_USER_IDS
        if allowed:
            user = update.effective_user
            if user is None or user.id not in allowed:
                uid = user.id if user else "unknown"
                logger.warning("Unauthorized access attempt from user_id=%s", uid)
                return  # Silent ignore
        return await func(update, context)

    return wrapper


# ---------------------------------------------------------------------------
# Command handlers
# ---------------------------------------------------------------------------


@authorized_only
async def cmd_start(update: Update, context: ContextTypes.DEFAULT_TYPE) -> None:
    """Handle /start — register this chat for task messages."""
    recipients: RecipientRegistry = context.bot_data["recipients"]
    chat_id = update.effective_chat.id

    try:
        is_new = recipients.register(chat_id)
    except RepositoryError as exc:
        logger.error("/start register error for chat %d: %s", chat_id, exc)
        await update.message.reply_text(messages.ERROR_TEXT)
        return

    text = messages.REGISTERED_TEXT if is_new else messages.ALREADY_REGISTERED_TEXT
    await update.message.reply_text(text)


@authorized_only
async def cmd_tasks(update: Update, context: ContextTypes.DEFAULT_TYPE) -> None:
    """Handle /tasks — list the tasks active today."""
    repo: TaskRepository = context.bot_data["tasks"]
    clock: Clock = context.bot_data["clock"]

    try:
        tasks = tasks_for_day(repo, clock.now().date())
    except RepositoryError as exc:
        logger.error("/tasks error: %s", exc)
        await update.message.reply_text(messages.ERROR_TEXT)
        return

    await update.message.reply_text(
        messages.day_overview_text(tasks), parse_mode=ParseMode.MARKDOWN,
    )


# ---------------------------------------------------------------------------
# Message handlers
# ---------------------------------------------------------------------------


@authorized_only
async def handle_text(update: Update, context: ContextTypes.DEFAULT_TYPE) -> None:
    """Register unseen chats; otherwise treat the text as a done command."""
    recipients: RecipientRegistry = context.bot_data["recipients"]
    repo: TaskRepository = context.bot_data["tasks"]
    done_role: Role = context.bot_data["done_role"]

    chat_id = update.effective_chat.id
    text = (update.message.text or "").strip()
    logger.info("New message from chat %d: %s", chat_id, text[:80])

    try:
        is_new = recipients.register(chat_id)
    except RepositoryError as exc:
        logger.error("Register error for chat %d: %s", chat_id, exc)
        await update.message.reply_text(messages.ERROR_TEXT)
        return

    if is_new:
        # Greet only; the first message is never treated as a command
        await update.message.reply_text(messages.REGISTERED_TEXT)
        return

    command = parse_done_command(text)
    if not isinstance(command, MarkDone):
        await update.message.reply_text(messages.UNRECOGNIZED_TEXT)
        return

    try:
        updated = repo.mark_done(done_role, command.task_number)
    except RepositoryError as exc:
        logger.error("Error finishing task %d: %s", command.task_number, exc)
        await update.message.reply_text(messages.ERROR_TEXT)
        return

    if updated:
        await update.message.reply_text(messages.task_done_text(command.task_number))
    else:
        await update.message.reply_text(messages.task_not_found_text(command.task_number))


# ---------------------------------------------------------------------------
# App builder
# ---------------------------------------------------------------------------


def build_app(
    repository: TaskRepository | None = None,
    recipients: RecipientRegistry | None = None,
    notifier: NotificationPort | None = None,
    clock: Clock | None = None,
) -> Application:
    """Build and configure the Telegram Application with handlers and jobs.

    Args:
        repository: Task store. Defaults to the SQLite TaskDB.
        recipients: Chat registry. Defaults to the SQLite RecipientDB.
        notifier: Notification port implementation. Defaults to TelegramNotifier
                  (created from the bot instance after app is built).
        clock: Civil clock. Defaults to the configured TIMEZONE.

    Raises RepositoryError when the database cannot be opened.
    """
    app = (
        ApplicationBuilder()
        .token(settings.TELEGRAM_BOT_TOKEN)
        .post_stop(_stop_scheduler)
        .build()
    )

    # Wire default adapters if not provided
    if repository is None or recipients is None:
        from src.data.db import RecipientDB, TaskDB
        repository = repository or TaskDB()
        recipients = recipients or RecipientDB()

    if notifier is None:
        from src.adapters.telegram_notifier import TelegramNotifier
        notifier = TelegramNotifier(app.bot)

    if clock is None:
        from src.core.clock import ZoneClock
        clock = ZoneClock(settings.TIMEZONE)

    app.bot_data["tasks"] = repository
    app.bot_data["recipients"] = recipients
    app.bot_data["clock"] = clock
    app.bot_data["done_role"] = Role(settings.DONE_COMMAND_ROLE)

    app.add_handler(CommandHandler("start", cmd_start))
    app.add_handler(CommandHandler("tasks", cmd_tasks))
    app.add_handler(MessageHandler(filters.TEXT & ~filters.COMMAND, handle_text))

    _setup_scheduler(app, repository, recipients, notifier, clock)

    logger.info("Telegram bot application built with %d handlers", len(app.handlers[0]))
    return app


def _setup_scheduler(
    app: Application,
    repository: TaskRepository,
    recipients: RecipientRegistry,
    notifier: NotificationPort,
    clock: Clock,
) -> None:
    """Register the minute notification job and the midnight rollover job."""
    from src.core.dispatcher import NotificationDispatcher
    from src.core.rollover import RolloverEngine
    from src.core.scheduler import TaskScheduler

    dispatcher = NotificationDispatcher(
        repository, recipients, notifier, clock,
        send_timeout=settings.SEND_TIMEOUT_SECONDS,
    )
    scheduler = TaskScheduler(
        repository, dispatcher, RolloverEngine(repository, clock), clock,
        tick_seconds=settings.TICK_SECONDS,
    )
    scheduler.start(app.job_queue, ZoneInfo(settings.TIMEZONE))
    app.bot_data["scheduler"] = scheduler


async def _stop_scheduler(app: Application) -> None:
    scheduler = app.bot_data.get("scheduler")
    if scheduler is not None:
        await scheduler.stop()


def main() -> None:
    """Entry point: build the app and start polling or the webhook server."""
    logging.basicConfig(
        level=logging.INFO,
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
    )
    logger.info("Starting Shift Tasks Notifier bot...")

    try:
        app = build_app()
    except RepositoryError as exc:
        logger.critical("Task database unavailable at startup: %s", exc)
        sys.exit(1)

    if settings.TELEGRAM_MODE == "webhook":
        if not settings.WEBHOOK_URL:
            logger.critical("TELEGRAM_MODE=webhook requires WEBHOOK_URL")
            sys.exit(1)
        webhook_url = settings.WEBHOOK_URL.rstrip("/") + settings.WEBHOOK_PATH
        logger.info("Webhook mode: listening on port %d for %s", settings.PORT, webhook_url)
        app.run_webhook(
            listen="0.0.0.0",
            port=settings.PORT,
            url_path=settings.WEBHOOK_PATH.lstrip("/"),
            webhook_url=webhook_url,
        )
    else:
        logger.info("Polling mode")
        app.run_polling()


if __name__ == "__main__":
    main()
