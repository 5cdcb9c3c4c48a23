"""Tests for src.core.dispatcher — grouped sends and state updates."""

from __future__ import annotations

import asyncio
from unittest.mock import AsyncMock, MagicMock, call

import pytest

from src.core.dispatcher import NotificationDispatcher, group_by_role_and_duration
from src.core.messages import first_contact_header, reminder_header
from src.data.models import Duration, NotifyMethod, Role
from src.ports.notification_port import DeliveryError
from src.ports.task_port import RepositoryError


def _make_dispatcher(clock, chat_ids=(100, 200, 300), notifier=None, repo=None, timeout=1.0):
    recipients = MagicMock()
    recipients.list.return_value = list(chat_ids)
    return NotificationDispatcher(
        repository=repo or MagicMock(),
        recipients=recipients,
        notifier=notifier or AsyncMock(),
        clock=clock,
        send_timeout=timeout,
    )


class TestGrouping:
    def test_groups_by_role_then_duration(self, make_task):
        w_daily = make_task(role=Role.WAITERS, duration=Duration.DAILY)
        b_month = make_task(role=Role.BAR, duration=Duration.MONTHLY)
        w_week = make_task(role=Role.WAITERS, duration=Duration.WEEKLY)

        grouped = group_by_role_and_duration([w_daily, b_month, w_week])

        assert list(grouped) == [Role.WAITERS, Role.BAR]
        assert grouped[Role.WAITERS][Duration.DAILY] == [w_daily]
        assert grouped[Role.WAITERS][Duration.WEEKLY] == [w_week]
        assert grouped[Role.WAITERS][Duration.MONTHLY] == []
        assert grouped[Role.BAR][Duration.MONTHLY] == [b_month]


class TestFirstContactDispatch:
    @pytest.mark.asyncio
    async def test_one_message_per_role_to_every_chat(self, clock, make_task):
        notifier = AsyncMock()
        dispatcher = _make_dispatcher(clock, notifier=notifier)
        tasks = [make_task(role=Role.WAITERS), make_task(role=Role.BAR), make_task(role=Role.WAITERS)]

        report = await dispatcher.dispatch_first_contact(tasks)

        assert notifier.send_message.await_count == 6
        chats = [c.args[0] for c in notifier.send_message.await_args_list]
        assert chats == [100, 200, 300, 100, 200, 300]
        assert report.messages_sent == 6
        assert report.failed_deliveries == 0

    @pytest.mark.asyncio
    async def test_message_sections_in_fixed_order(self, clock, make_task):
        notifier = AsyncMock()
        dispatcher = _make_dispatcher(clock, chat_ids=[100], notifier=notifier)
        monthly = make_task(duration=Duration.MONTHLY, title="Deep clean", task_number=3)
        daily = make_task(duration=Duration.DAILY, title="Set tables", details="Terrace", task_number=1)

        await dispatcher.dispatch_first_contact([monthly, daily])

        text = notifier.send_message.await_args.args[1]
        assert text.startswith(first_contact_header(Role.WAITERS))
        assert "1. Set tables\n📄 Terrace\n\n" in text
        assert text.index("משימות יומיות") < text.index("משימות חודשיות")
        assert "משימות שבועיות" not in text

    @pytest.mark.asyncio
    async def test_marks_sent_and_schedules_next(self, clock, make_task):
        repo = MagicMock()
        dispatcher = _make_dispatcher(clock, repo=repo)
        task = make_task(notify_method=NotifyMethod.INTERVAL, notice_interval=2)

        report = await dispatcher.dispatch_first_contact([task])

        repo.update_task.assert_called_once_with(
            task.id, first_message_sent=True, next_notification_time="2025-02-06 11:00:00",
        )
        assert report.updated_task_ids == [task.id]

    @pytest.mark.asyncio
    async def test_notify_none_clears_next_time(self, clock, make_task):
        repo = MagicMock()
        dispatcher = _make_dispatcher(clock, repo=repo)
        task = make_task(notify_method=NotifyMethod.NONE)

        await dispatcher.dispatch_first_contact([task])

        repo.update_task.assert_called_once_with(
            task.id, first_message_sent=True, next_notification_time=None,
        )


class TestReminderDispatch:
    @pytest.mark.asyncio
    async def test_reminder_updates_next_time_only(self, clock, make_task):
        repo = MagicMock()
        notifier = AsyncMock()
        dispatcher = _make_dispatcher(clock, chat_ids=[100], repo=repo, notifier=notifier)
        task = make_task(
            first_message_sent=True,
            notify_method=NotifyMethod.FIXED,
            notice_time="08:00",
            next_notification_time="2025-02-06 08:00:00",
        )

        await dispatcher.dispatch_reminders([task])

        repo.update_task.assert_called_once_with(
            task.id, next_notification_time="2025-02-07 08:00:00",
        )
        assert notifier.send_message.await_args.args[1].startswith(reminder_header(Role.WAITERS))

    @pytest.mark.asyncio
    async def test_no_tasks_sends_nothing(self, clock):
        notifier = AsyncMock()
        dispatcher = _make_dispatcher(clock, notifier=notifier)
        report = await dispatcher.dispatch_reminders([])
        notifier.send_message.assert_not_called()
        assert report.messages_sent == 0


class TestFailureHandling:
    @pytest.mark.asyncio
    async def test_failed_chat_does_not_block_others(self, clock, make_task):
        notifier = AsyncMock()

        async def send(chat_id, text):
            if chat_id == 200:
                raise DeliveryError("blocked by user")

        notifier.send_message.side_effect = send
        repo = MagicMock()
        dispatcher = _make_dispatcher(clock, notifier=notifier, repo=repo)
        task = make_task()

        report = await dispatcher.dispatch_first_contact([task])

        assert [c.args[0] for c in notifier.send_message.await_args_list] == [100, 200, 300]
        assert report.messages_sent == 2
        assert report.failed_deliveries == 1
        repo.update_task.assert_called_once()

    @pytest.mark.asyncio
    async def test_unexpected_send_error_is_contained(self, clock, make_task):
        notifier = AsyncMock()
        notifier.send_message.side_effect = RuntimeError("boom")
        repo = MagicMock()
        dispatcher = _make_dispatcher(clock, chat_ids=[100], notifier=notifier, repo=repo)

        report = await dispatcher.dispatch_first_contact([make_task()])

        assert report.failed_deliveries == 1
        repo.update_task.assert_called_once()

    @pytest.mark.asyncio
    async def test_slow_chat_times_out(self, clock, make_task):
        notifier = AsyncMock()

        async def send(chat_id, text):
            if chat_id == 100:
                await asyncio.sleep(5)

        notifier.send_message.side_effect = send
        repo = MagicMock()
        dispatcher = _make_dispatcher(clock, chat_ids=[100, 200], notifier=notifier,
                                      repo=repo, timeout=0.05)

        report = await dispatcher.dispatch_first_contact([make_task()])

        assert report.failed_deliveries == 1
        assert report.messages_sent == 1
        repo.update_task.assert_called_once()

    @pytest.mark.asyncio
    async def test_repository_error_on_one_task(self, clock, make_task):
        first, second = make_task(), make_task()
        repo = MagicMock()
        repo.update_task.side_effect = [RepositoryError("locked"), True]
        dispatcher = _make_dispatcher(clock, repo=repo)

        report = await dispatcher.dispatch_first_contact([first, second])

        assert report.failed_task_ids == [first.id]
        assert report.updated_task_ids == [second.id]

    @pytest.mark.asyncio
    async def test_task_deleted_mid_pass_is_not_counted_updated(self, task_db, clock, make_new_task):
        kept = task_db.insert_task(make_new_task(title="Kept"))
        gone = task_db.insert_task(make_new_task(title="Gone"))
        task_db.delete_task(gone.id)
        dispatcher = _make_dispatcher(clock, repo=task_db)

        report = await dispatcher.dispatch_first_contact([kept, gone])

        assert report.updated_task_ids == [kept.id]
        assert report.failed_task_ids == [gone.id]
        assert task_db.get_task(kept.id).first_message_sent is True

    @pytest.mark.asyncio
    async def test_unreadable_registry_still_advances_state(self, clock, make_task):
        repo = MagicMock()
        notifier = AsyncMock()
        dispatcher = _make_dispatcher(clock, repo=repo, notifier=notifier)
        dispatcher._recipients.list.side_effect = RepositoryError("gone")
        task = make_task()

        await dispatcher.dispatch_first_contact([task])

        notifier.send_message.assert_not_called()
        assert repo.update_task.call_args == call(
            task.id, first_message_sent=True, next_notification_time=None,
        )
