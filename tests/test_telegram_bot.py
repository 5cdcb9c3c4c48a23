"""Tests for src.bot.telegram_bot — Telegram bot handlers.

Tests registration, the done command flow, and authorization.
All external dependencies (DB, Telegram) are mocked.
"""

import pytest
from unittest.mock import AsyncMock, MagicMock, patch

from src.bot.telegram_bot import build_app, cmd_start, cmd_tasks, handle_text
from src.config import settings
from src.core import messages
from src.data.models import Role
from src.ports.task_port import RepositoryError


def _make_update(text, user_id=12345, chat_id=555):
    """Create a mock Update with a text message."""
    update = MagicMock()
    update.message.text = text
    update.effective_user.id = user_id
    update.effective_chat.id = chat_id
    update.message.reply_text = AsyncMock()
    return update


def _make_context(is_new=False, mark_done=True):
    """Create a mock context whose bot_data holds the task ports."""
    context = MagicMock()
    recipients = MagicMock()
    recipients.register.return_value = is_new
    tasks = MagicMock()
    tasks.mark_done.return_value = mark_done
    context.bot_data = {
        "recipients": recipients,
        "tasks": tasks,
        "clock": MagicMock(),
        "done_role": Role.MANAGEMENT,
    }
    return context


def _reply(update):
    return update.message.reply_text.await_args.args[0]


class TestHandleTextRegistration:
    @pytest.mark.asyncio
    async def test_unseen_chat_is_registered_and_greeted(self):
        update = _make_update("done 3")
        context = _make_context(is_new=True)

        await handle_text(update, context)

        context.bot_data["recipients"].register.assert_called_once_with(555)
        context.bot_data["tasks"].mark_done.assert_not_called()
        assert _reply(update) == messages.REGISTERED_TEXT

    @pytest.mark.asyncio
    async def test_registry_failure_replies_error(self):
        update = _make_update("3")
        context = _make_context()
        context.bot_data["recipients"].register.side_effect = RepositoryError("locked")

        await handle_text(update, context)

        assert _reply(update) == messages.ERROR_TEXT


class TestHandleTextDoneCommand:
    @pytest.mark.asyncio
    async def test_marks_task_done(self):
        update = _make_update("סיימתי משימה 3")
        context = _make_context()

        await handle_text(update, context)

        context.bot_data["tasks"].mark_done.assert_called_once_with(Role.MANAGEMENT, 3)
        assert _reply(update) == messages.task_done_text(3)

    @pytest.mark.asyncio
    async def test_task_not_found(self):
        update = _make_update("7")
        context = _make_context(mark_done=False)

        await handle_text(update, context)

        assert _reply(update) == messages.task_not_found_text(7)

    @pytest.mark.asyncio
    async def test_unrecognized_text(self):
        update = _make_update("what's for lunch?")
        context = _make_context()

        await handle_text(update, context)

        context.bot_data["tasks"].mark_done.assert_not_called()
        assert _reply(update) == messages.UNRECOGNIZED_TEXT

    @pytest.mark.asyncio
    async def test_repository_error(self):
        update = _make_update("done 2")
        context = _make_context()
        context.bot_data["tasks"].mark_done.side_effect = RepositoryError("locked")

        await handle_text(update, context)

        assert _reply(update) == messages.ERROR_TEXT


class TestAuthorization:
    @pytest.mark.asyncio
    async def test_outsider_is_silently_ignored(self):
        update = _make_update("3", user_id=999)
        context = _make_context()

        with patch.object(settings, "ALLOWED_USER_IDS", [12345]):
            await handle_text(update, context)

        context.bot_data["recipients"].register.assert_not_called()
        update.message.reply_text.assert_not_called()

    @pytest.mark.asyncio
    async def test_allowed_user_passes(self):
        update = _make_update("3", user_id=12345)
        context = _make_context()

        with patch.object(settings, "ALLOWED_USER_IDS", [12345]):
            await handle_text(update, context)

        context.bot_data["tasks"].mark_done.assert_called_once()


class TestCommands:
    @pytest.mark.asyncio
    async def test_start_registers(self):
        update = _make_update("/start")
        context = _make_context(is_new=True)
        await cmd_start(update, context)
        assert _reply(update) == messages.REGISTERED_TEXT

    @pytest.mark.asyncio
    async def test_start_already_registered(self):
        update = _make_update("/start")
        context = _make_context(is_new=False)
        await cmd_start(update, context)
        assert _reply(update) == messages.ALREADY_REGISTERED_TEXT

    @pytest.mark.asyncio
    async def test_tasks_lists_today(self, clock, make_task):
        update = _make_update("/tasks")
        context = _make_context()
        context.bot_data["clock"] = clock
        context.bot_data["tasks"].list_tasks_for_date.return_value = [
            make_task(title="Fold napkins", task_number=1),
        ]

        await cmd_tasks(update, context)

        context.bot_data["tasks"].list_tasks_for_date.assert_called_once_with(clock.now().date())
        assert "1. [מלצר] Fold napkins" in _reply(update)

    @pytest.mark.asyncio
    async def test_tasks_empty(self, clock):
        update = _make_update("/tasks")
        context = _make_context()
        context.bot_data["clock"] = clock
        context.bot_data["tasks"].list_tasks_for_date.return_value = []

        await cmd_tasks(update, context)

        assert "אין משימות" in _reply(update)


class TestBuildApp:
    def test_bot_data_holds_only_handler_dependencies(self, clock):
        app = build_app(
            repository=MagicMock(), recipients=MagicMock(), notifier=AsyncMock(), clock=clock,
        )

        assert set(app.bot_data) == {"tasks", "recipients", "clock", "done_role", "scheduler"}
        assert app.bot_data["done_role"] is Role.MANAGEMENT
