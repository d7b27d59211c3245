import pytest

from gnarhub import crud, scheduler as scheduler_module
from gnarhub.background_tasks.session_reminder_tasks import send_session_reminders
from gnarhub.schemas.notification import NotificationKind
from gnarhub.scheduler import get_scheduler_status, init_scheduler, shutdown_scheduler
from tests.utils.booking import (
    FILMER_ID,
    RIDER_A,
    create_open_session,
    create_pending_request,
    future_date,
)


async def booked_session(store, negotiation, days=1):
    session = await create_open_session(store, date=future_date(days).isoformat())
    request = await create_pending_request(negotiation, session)
    await negotiation.accept_request(request_id=request.id, actor_id=FILMER_ID)
    return session


@pytest.mark.asyncio
class TestSendSessionReminders:

    async def test_reminds_both_parties(self, store, negotiation, notifier, transport):
        session = await booked_session(store, negotiation)
        await notifier.drain()
        transport.events.clear()

        reminded = await send_session_reminders(store, notifier)
        await notifier.drain()

        assert reminded == [session.id]
        events = transport.of_kind(NotificationKind.SESSION_REMINDER)
        pairs = sorted((e.payload["recipientId"], e.payload["otherPartyId"]) for e in events)
        assert pairs == sorted([(RIDER_A, FILMER_ID), (FILMER_ID, RIDER_A)])
        assert (await crud.session.get(store, session.id)).reminder_sent_at is not None

    async def test_rerun_is_noop(self, store, negotiation, notifier, transport):
        await booked_session(store, negotiation)
        await send_session_reminders(store, notifier)
        await notifier.drain()
        before = len(transport.of_kind(NotificationKind.SESSION_REMINDER))

        assert await send_session_reminders(store, notifier) == []
        await notifier.drain()
        assert len(transport.of_kind(NotificationKind.SESSION_REMINDER)) == before == 2

    async def test_skips_other_days_and_unbooked(self, store, negotiation, notifier):
        later = await booked_session(store, negotiation, days=2)
        await create_open_session(store, date=future_date(1).isoformat())

        assert await send_session_reminders(store, notifier) == []
        assert await send_session_reminders(store, notifier, on_date=future_date(2)) == [later.id]

    async def test_cancelled_session_not_reminded(self, store, negotiation, notifier):
        session = await booked_session(store, negotiation)
        await crud.session.cancel(store, session_id=session.id)

        assert await send_session_reminders(store, notifier) == []


@pytest.mark.asyncio
class TestScheduler:

    async def test_status_before_init(self):
        assert get_scheduler_status() == {"status": "not_initialized", "jobs": []}

    async def test_init_registers_reminder_job(self, store, notifier):
        running = init_scheduler(store, notifier)
        try:
            status = get_scheduler_status()
            assert status["status"] == "running"
            assert [job["id"] for job in status["jobs"]] == ["send_session_reminders"]
            assert status["jobs"][0]["next_run_time"] is not None

            # A second init returns the existing scheduler
            assert init_scheduler(store, notifier) is running
        finally:
            shutdown_scheduler()

    async def test_shutdown_resets(self, store, notifier):
        init_scheduler(store, notifier)

        shutdown_scheduler()

        assert scheduler_module.scheduler is None
        assert get_scheduler_status()["status"] == "not_initialized"
