"""Tests for the reminder sweep: odometer resolution, scheduling and failure isolation."""

import asyncio
from datetime import date, datetime, timezone

import pytest
from pydantic import ValidationError
from sqlalchemy.exc import OperationalError

import background_worker
import crud
from config import Settings
from background_worker import ReminderScheduler, compose_notification, resolve_current_odometer
from triggers import evaluate_reminder

SWEEP_TIME = datetime(2024, 1, 5, 12, 0, tzinfo=timezone.utc)


class RecordingNotifier:
    def __init__(self, result=True):
        self.result = result
        self.calls = []

    async def send(self, title, message):
        self.calls.append((title, message))
        return self.result


class GatedNotifier(RecordingNotifier):
    """Blocks inside send() until the test opens the gate."""

    def __init__(self):
        super().__init__()
        self.entered = asyncio.Event()
        self.gate = asyncio.Event()

    async def send(self, title, message):
        self.calls.append((title, message))
        self.entered.set()
        await self.gate.wait()
        return True


def make_scheduler(session_factory, notifier, **kwargs):
    kwargs.setdefault("interval", 3600)
    kwargs.setdefault("clock", lambda: SWEEP_TIME)
    return ReminderScheduler(session_factory=session_factory, notifier=notifier, **kwargs)


async def wait_for_calls(notifier, count, timeout=5):
    async def _poll():
        while len(notifier.calls) < count:
            await asyncio.sleep(0.01)
    await asyncio.wait_for(_poll(), timeout)


def read_failure(*args, **kwargs):
    raise OperationalError("SELECT max(odometer)", {}, Exception("database is locked"))


class TestOdometerResolver:

    def test_max_across_service_and_fuel(self, db, make_vehicle, add_service, add_fuel):
        vehicle = make_vehicle()
        add_service(vehicle.id, 11000)
        add_service(vehicle.id, 12000)
        add_fuel(vehicle.id, 12450)
        add_fuel(vehicle.id, 9000)
        assert resolve_current_odometer(db, vehicle.id) == 12450

    def test_no_history_is_zero(self, db, make_vehicle):
        vehicle = make_vehicle()
        assert resolve_current_odometer(db, vehicle.id) == 0

    def test_one_side_empty(self, db, make_vehicle, add_service):
        vehicle = make_vehicle()
        add_service(vehicle.id, 8000)
        assert resolve_current_odometer(db, vehicle.id) == 8000

    def test_other_vehicles_ignored(self, db, make_vehicle, add_fuel):
        mine, other = make_vehicle("Mine"), make_vehicle("Other")
        add_fuel(other.id, 90000)
        add_fuel(mine.id, 1500)
        assert resolve_current_odometer(db, mine.id) == 1500

    def test_read_failure_falls_back_to_zero(self, db, make_vehicle, add_fuel, monkeypatch):
        vehicle = make_vehicle()
        add_fuel(vehicle.id, 40000)
        monkeypatch.setattr(crud, "get_max_odometer", read_failure)
        assert resolve_current_odometer(db, vehicle.id) == 0

    def test_strict_read_failure_raises(self, db, make_vehicle, monkeypatch):
        vehicle = make_vehicle()
        monkeypatch.setattr(crud, "get_max_odometer", read_failure)
        with pytest.raises(OperationalError):
            resolve_current_odometer(db, vehicle.id, strict=True)


def test_compose_notification(make_vehicle, add_reminder):
    vehicle = make_vehicle("Honda City")
    reminder = add_reminder(vehicle.id, "Insurance Renewal", due_date=date(2024, 1, 1))
    outcome = evaluate_reminder(reminder, 0, SWEEP_TIME)

    title, message = compose_notification(vehicle, reminder, outcome)
    assert title == "Reminder: Insurance Renewal"
    assert message == (
        "Vehicle: Honda City\n"
        "Reminder: Insurance Renewal\n"
        "Trigger: date due: 2024-01-01"
    )


class TestSweep:

    @pytest.mark.asyncio
    async def test_overdue_date_notifies(self, session_factory, make_vehicle, add_reminder):
        vehicle = make_vehicle("Honda City")
        add_reminder(vehicle.id, "Insurance Renewal", due_date=date(2024, 1, 1))
        notifier = RecordingNotifier()

        report = await make_scheduler(session_factory, notifier).run_sweep()

        assert report.notifications_sent == 1
        title, message = notifier.calls[0]
        assert title == "Reminder: Insurance Renewal"
        assert "Vehicle: Honda City" in message
        assert "2024-01-01" in message

    @pytest.mark.asyncio
    async def test_approaching_odometer_notifies(
        self, session_factory, make_vehicle, add_service, add_fuel, add_reminder
    ):
        vehicle = make_vehicle()
        add_service(vehicle.id, 49000)
        add_fuel(vehicle.id, 49700)
        add_reminder(vehicle.id, "Oil Change", due_odometer=50000)
        notifier = RecordingNotifier()

        await make_scheduler(session_factory, notifier).run_sweep()

        assert len(notifier.calls) == 1
        assert "odometer approaching: 50000 km (current 49700)" in notifier.calls[0][1]

    @pytest.mark.asyncio
    async def test_quiet_and_completed_reminders_do_not_notify(
        self, db, session_factory, make_vehicle, add_fuel, add_reminder
    ):
        vehicle = make_vehicle()
        add_fuel(vehicle.id, 20000)
        add_reminder(vehicle.id, "Far away", due_odometer=30000, due_date=date(2025, 1, 1))
        add_reminder(vehicle.id, "No thresholds")
        done = add_reminder(vehicle.id, "Done", due_odometer=10000)
        crud.complete_reminder(db, done.id)
        notifier = RecordingNotifier()

        report = await make_scheduler(session_factory, notifier).run_sweep()

        assert notifier.calls == []
        assert report.reminders_evaluated == 2
        assert report.vehicles_checked == 1

    @pytest.mark.asyncio
    async def test_odometer_failure_skips_vehicle_but_not_others(
        self, session_factory, make_vehicle, add_fuel, add_reminder, monkeypatch
    ):
        broken, healthy = make_vehicle("Broken"), make_vehicle("Healthy")
        add_reminder(broken.id, "Broken service", due_date=date(2024, 1, 1))
        add_fuel(healthy.id, 49700)
        add_reminder(healthy.id, "Healthy service", due_odometer=50000)

        real_max = crud.get_max_odometer

        def flaky_max(db, vehicle_id):
            if vehicle_id == broken.id:
                read_failure()
            return real_max(db, vehicle_id)

        monkeypatch.setattr(crud, "get_max_odometer", flaky_max)
        notifier = RecordingNotifier()
        scheduler = make_scheduler(session_factory, notifier, skip_on_odometer_failure=True)

        report = await scheduler.run_sweep()

        assert report.vehicles_skipped == 1
        assert report.vehicles_checked == 1
        assert [title for title, _ in notifier.calls] == ["Reminder: Healthy service"]

    @pytest.mark.asyncio
    async def test_odometer_failure_degrades_to_zero(
        self, session_factory, make_vehicle, add_fuel, add_reminder, monkeypatch
    ):
        vehicle = make_vehicle()
        add_fuel(vehicle.id, 80000)
        add_reminder(vehicle.id, "Registration", due_date=date(2024, 1, 1))
        add_reminder(vehicle.id, "Timing belt", due_odometer=90000)
        monkeypatch.setattr(crud, "get_max_odometer", read_failure)
        notifier = RecordingNotifier()
        scheduler = make_scheduler(session_factory, notifier, skip_on_odometer_failure=False)

        report = await scheduler.run_sweep()

        assert report.vehicles_skipped == 0
        assert [title for title, _ in notifier.calls] == ["Reminder: Registration"]

    @pytest.mark.asyncio
    async def test_reminder_listing_failure_is_isolated(
        self, session_factory, make_vehicle, add_reminder, monkeypatch
    ):
        first, second = make_vehicle("First"), make_vehicle("Second")
        add_reminder(first.id, "First due", due_date=date(2024, 1, 1))
        add_reminder(second.id, "Second due", due_date=date(2024, 1, 2))

        real_list = crud.list_active_reminders

        def flaky_list(db, vehicle_id):
            if vehicle_id == first.id:
                raise OperationalError("SELECT reminders", {}, Exception("connection reset"))
            return real_list(db, vehicle_id)

        monkeypatch.setattr(crud, "list_active_reminders", flaky_list)
        notifier = RecordingNotifier()

        report = await make_scheduler(session_factory, notifier).run_sweep()

        assert report.vehicles_skipped == 1
        assert [title for title, _ in notifier.calls] == ["Reminder: Second due"]

    @pytest.mark.asyncio
    async def test_vehicle_listing_failure_ends_sweep(self, session_factory, monkeypatch):
        def broken_list(db):
            raise OperationalError("SELECT vehicles", {}, Exception("no such table"))

        monkeypatch.setattr(crud, "list_vehicles", broken_list)
        notifier = RecordingNotifier()

        report = await make_scheduler(session_factory, notifier).run_sweep()

        assert report.completed is False
        assert notifier.calls == []

    @pytest.mark.asyncio
    async def test_notification_failure_does_not_stop_sweep(
        self, session_factory, make_vehicle, add_reminder
    ):
        vehicle = make_vehicle()
        add_reminder(vehicle.id, "One", due_date=date(2024, 1, 1))
        add_reminder(vehicle.id, "Two", due_date=date(2024, 1, 2))
        notifier = RecordingNotifier(result=False)

        report = await make_scheduler(session_factory, notifier).run_sweep()

        assert len(notifier.calls) == 2
        assert report.notifications_failed == 2
        assert report.notifications_sent == 0

    @pytest.mark.asyncio
    async def test_odometer_read_once_per_vehicle(
        self, session_factory, make_vehicle, add_fuel, add_reminder, monkeypatch
    ):
        vehicle = make_vehicle()
        add_fuel(vehicle.id, 1000)
        for title in ("A", "B", "C"):
            add_reminder(vehicle.id, title, due_odometer=1200)

        reads = []
        real_max = crud.get_max_odometer

        def counting_max(db, vehicle_id):
            reads.append(vehicle_id)
            return real_max(db, vehicle_id)

        monkeypatch.setattr(crud, "get_max_odometer", counting_max)
        notifier = RecordingNotifier()

        await make_scheduler(session_factory, notifier).run_sweep()

        assert reads == [vehicle.id]
        assert len(notifier.calls) == 3

    @pytest.mark.asyncio
    async def test_due_reminder_fires_again_next_sweep(
        self, session_factory, make_vehicle, add_reminder
    ):
        vehicle = make_vehicle()
        add_reminder(vehicle.id, "PUC", due_date=date(2024, 1, 1))
        notifier = RecordingNotifier()
        scheduler = make_scheduler(session_factory, notifier)

        await scheduler.run_sweep()
        await scheduler.run_sweep()

        assert len(notifier.calls) == 2


class TestSchedulerLifecycle:

    @pytest.mark.asyncio
    async def test_overlapping_sweep_is_dropped(self, session_factory, make_vehicle, add_reminder):
        vehicle = make_vehicle()
        add_reminder(vehicle.id, "PUC", due_date=date(2024, 1, 1))
        notifier = GatedNotifier()
        scheduler = make_scheduler(session_factory, notifier)

        first = asyncio.create_task(scheduler.run_sweep())
        await asyncio.wait_for(notifier.entered.wait(), 5)

        assert scheduler.running
        assert await scheduler.run_sweep() is None

        notifier.gate.set()
        report = await first
        assert report.notifications_sent == 1
        assert not scheduler.running

    @pytest.mark.asyncio
    async def test_start_is_idempotent_and_sweeps_immediately(
        self, session_factory, make_vehicle, add_reminder
    ):
        vehicle = make_vehicle()
        add_reminder(vehicle.id, "PUC", due_date=date(2024, 1, 1))
        notifier = RecordingNotifier()
        scheduler = make_scheduler(session_factory, notifier)

        task = scheduler.start()
        assert scheduler.start() is task

        await wait_for_calls(notifier, 1)
        await scheduler.stop()

        assert task.done()
        assert len(notifier.calls) == 1
        assert not scheduler.started

    @pytest.mark.asyncio
    async def test_sweeps_repeat_on_interval(self, session_factory, make_vehicle, add_reminder):
        vehicle = make_vehicle()
        add_reminder(vehicle.id, "PUC", due_date=date(2024, 1, 1))
        notifier = RecordingNotifier()
        scheduler = make_scheduler(session_factory, notifier, interval=0.05)

        scheduler.start()
        await wait_for_calls(notifier, 3)
        await scheduler.stop()

        assert len(notifier.calls) >= 3

    @pytest.mark.asyncio
    async def test_stop_finishes_current_vehicle_only(
        self, session_factory, make_vehicle, add_reminder
    ):
        first, second = make_vehicle("First"), make_vehicle("Second")
        add_reminder(first.id, "First due", due_date=date(2024, 1, 1))
        add_reminder(second.id, "Second due", due_date=date(2024, 1, 1))
        notifier = GatedNotifier()
        scheduler = make_scheduler(session_factory, notifier)

        task = scheduler.start()
        await asyncio.wait_for(notifier.entered.wait(), 5)
        scheduler.request_stop()
        notifier.gate.set()
        await asyncio.wait_for(task, 5)

        assert [title for title, _ in notifier.calls] == ["Reminder: First due"]


class TestSweepInterval:

    @pytest.mark.parametrize("interval", [0, -5])
    def test_non_positive_interval_rejected(self, session_factory, interval):
        with pytest.raises(ValueError):
            ReminderScheduler(session_factory=session_factory, notifier=RecordingNotifier(), interval=interval)

    def test_non_positive_interval_rejected_in_settings(self):
        with pytest.raises(ValidationError):
            Settings(REMINDER_CHECK_INTERVAL=0)

    @pytest.mark.asyncio
    async def test_short_interval_keeps_loop_alive(self, session_factory, make_vehicle, add_reminder):
        vehicle = make_vehicle()
        add_reminder(vehicle.id, "PUC", due_date=date(2024, 1, 1))
        notifier = RecordingNotifier()
        scheduler = make_scheduler(session_factory, notifier, interval=0.001)

        task = scheduler.start()
        await wait_for_calls(notifier, 2)
        scheduler.request_stop()
        await asyncio.wait_for(task, 5)

        assert task.exception() is None


class TestRunWorker:

    @pytest.mark.asyncio
    async def test_disabled_worker_returns_without_starting(self, monkeypatch):
        created = []
        monkeypatch.setattr(background_worker.settings, "WORKER_ENABLED", False)
        monkeypatch.setattr(background_worker, "ReminderScheduler", lambda *a, **kw: created.append(a))
        monkeypatch.setattr(background_worker.database, "init_db", lambda: created.append("init_db"))

        await background_worker.run_worker()

        assert created == []

    @pytest.mark.asyncio
    async def test_enabled_worker_runs_scheduler_until_it_stops(self, monkeypatch):
        events = []

        class FakeScheduler:
            def request_stop(self):
                events.append("stop")

            def start(self):
                events.append("start")
                return asyncio.get_running_loop().create_task(asyncio.sleep(0))

        monkeypatch.setattr(background_worker.settings, "WORKER_ENABLED", True)
        monkeypatch.setattr(background_worker, "ReminderScheduler", FakeScheduler)
        monkeypatch.setattr(background_worker.database, "init_db", lambda: events.append("init_db"))

        await asyncio.wait_for(background_worker.run_worker(), 5)

        assert events == ["init_db", "start"]
