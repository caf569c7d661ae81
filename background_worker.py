"""Background Worker for the AxleNote service.

This module implements the reminder sweep: a background task that walks every
vehicle, works out its current odometer from service and fuel history,
evaluates its open reminders and sends a notification for each one that is
due or about to be due.

The worker:
- Runs one sweep at start, then one every REMINDER_CHECK_INTERVAL seconds
- Never runs two sweeps at once; a tick that lands mid-sweep is dropped
- Reads the database in a worker thread, one short session per read
- Resolves the odometer once per vehicle and reuses it for all its reminders
- Skips a vehicle whose data cannot be read and carries on with the rest
- Logs notification failures without retry
"""

import asyncio
import signal
import sys
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Callable, Optional

import crud
import database
from config import settings
from logger_config import setup_logger
from notifier import Notifier
from triggers import TriggerOutcome, evaluate_reminder

# Configure logging
logger = setup_logger(__name__, 'worker.log')


def resolve_current_odometer(db, vehicle_id: int, strict: bool = False) -> int:
    """Get a vehicle's current odometer: the highest reading on record.

    Args:
        db: Database session
        vehicle_id: Vehicle ID
        strict: Re-raise read errors instead of falling back to 0

    Returns:
        int: Odometer in km, 0 when there is no history or the read failed
    """
    try:
        return crud.get_max_odometer(db, vehicle_id)
    except Exception as e:
        if strict:
            raise
        logger.warning(f"Could not read odometer for vehicle {vehicle_id}, assuming 0 km: {str(e)}")
        return 0


def compose_notification(vehicle, reminder, outcome: TriggerOutcome):
    """Build the (title, message) pair for a fired reminder."""
    title = f"Reminder: {reminder.title}"
    message = (
        f"Vehicle: {vehicle.name}\n"
        f"Reminder: {reminder.title}\n"
        f"Trigger: {outcome.reason}"
    )
    return title, message


@dataclass
class SweepReport:
    """Counters for one sweep, logged when it finishes."""
    vehicles_checked: int = 0
    vehicles_skipped: int = 0
    reminders_evaluated: int = 0
    notifications_sent: int = 0
    notifications_failed: int = 0
    completed: bool = True


class ReminderScheduler:
    """Owns the sweep task and its start/stop lifecycle.

    One instance per process. ``start()`` is idempotent; ``stop()`` lets an
    in-flight sweep finish the vehicle it is on and then ends the task.
    """

    def __init__(
        self,
        session_factory: Optional[Callable] = None,
        notifier: Optional[Notifier] = None,
        interval: Optional[float] = None,
        skip_on_odometer_failure: Optional[bool] = None,
        clock: Optional[Callable[[], datetime]] = None,
    ):
        self.session_factory = session_factory or database.SessionLocal
        self.notifier = notifier or Notifier()
        self.interval = interval if interval is not None else settings.REMINDER_CHECK_INTERVAL
        if self.interval <= 0:
            raise ValueError(f"Sweep interval must be positive, got {self.interval}")
        self.skip_on_odometer_failure = (
            settings.ODOMETER_FAILURE_SKIPS_VEHICLE
            if skip_on_odometer_failure is None
            else skip_on_odometer_failure
        )
        self.clock = clock or (lambda: datetime.now(timezone.utc))

        self._task: Optional[asyncio.Task] = None
        self._stop_event = asyncio.Event()
        self._sweep_lock = asyncio.Lock()

    @property
    def running(self) -> bool:
        """True while a sweep is executing."""
        return self._sweep_lock.locked()

    @property
    def started(self) -> bool:
        return self._task is not None and not self._task.done()

    def start(self) -> asyncio.Task:
        """Start the background loop (first sweep runs immediately).

        Must be called from a running event loop. Calling it again while the
        loop is alive returns the existing task.
        """
        if self.started:
            return self._task

        self._stop_event.clear()
        self._task = asyncio.get_running_loop().create_task(self._run_loop())
        logger.info(f"Reminder scheduler started (interval {self.interval}s)")
        return self._task

    def request_stop(self):
        """Ask the loop to stop after the current vehicle. Safe from signal handlers."""
        self._stop_event.set()

    async def stop(self):
        """Stop the loop and wait for it to exit."""
        self.request_stop()
        if self._task is not None:
            await self._task
            self._task = None
        logger.info("Reminder scheduler stopped")

    async def run_sweep(self) -> Optional[SweepReport]:
        """Run one sweep now, unless one is already running.

        Returns:
            SweepReport, or None if the request was dropped
        """
        if self._sweep_lock.locked():
            logger.warning("Previous sweep still running, dropping this sweep request")
            return None

        async with self._sweep_lock:
            return await self._sweep()

    async def _run_loop(self):
        loop = asyncio.get_running_loop()
        next_run = loop.time()
        iteration = 0

        while not self._stop_event.is_set():
            iteration += 1
            try:
                await self.run_sweep()
            except Exception as e:
                logger.error(f"Error in sweep {iteration}: {str(e)}", exc_info=True)

            next_run += self.interval
            now = loop.time()
            if now > next_run:
                missed = int((now - next_run) // self.interval) + 1
                logger.warning(f"Sweep {iteration} overran the interval, dropping {missed} tick(s)")
                next_run += missed * self.interval

            try:
                await asyncio.wait_for(self._stop_event.wait(), timeout=next_run - now)
            except asyncio.TimeoutError:
                pass

    def _read(self, fn, *args):
        with self.session_factory() as db:
            return fn(db, *args)

    async def _sweep(self) -> SweepReport:
        now = self.clock()
        report = SweepReport()
        logger.info(f"Reminder sweep started at {now.isoformat()}")

        try:
            vehicles = await asyncio.to_thread(self._read, crud.list_vehicles)
        except Exception as e:
            logger.error(f"Failed to list vehicles, ending sweep: {str(e)}", exc_info=True)
            report.completed = False
            return report

        for vehicle in vehicles:
            if self._stop_event.is_set():
                logger.info("Shutdown requested, stopping sweep early")
                report.completed = False
                break

            try:
                await self._check_vehicle(vehicle, now, report)
            except Exception as e:
                report.vehicles_skipped += 1
                logger.error(f"Skipping vehicle {vehicle.id} ({vehicle.name}) this sweep: {str(e)}")

        logger.info(
            f"Reminder sweep finished: {report.vehicles_checked} vehicle(s) checked, "
            f"{report.vehicles_skipped} skipped, {report.reminders_evaluated} reminder(s) evaluated, "
            f"{report.notifications_sent} notification(s) sent, {report.notifications_failed} failed"
        )
        return report

    async def _check_vehicle(self, vehicle, now: datetime, report: SweepReport):
        reminders = await asyncio.to_thread(self._read, crud.list_active_reminders, vehicle.id)
        if not reminders:
            report.vehicles_checked += 1
            return

        odometer = await asyncio.to_thread(
            self._read, resolve_current_odometer, vehicle.id, self.skip_on_odometer_failure
        )
        report.vehicles_checked += 1

        for reminder in reminders:
            outcome = evaluate_reminder(reminder, odometer, now)
            report.reminders_evaluated += 1
            if not outcome.fired:
                continue

            title, message = compose_notification(vehicle, reminder, outcome)
            logger.info(f"Reminder {reminder.id} fired for vehicle {vehicle.id}: {outcome.reason}")
            if await self.notifier.send(title, message):
                report.notifications_sent += 1
            else:
                report.notifications_failed += 1


async def run_worker():
    """Run the scheduler until SIGINT/SIGTERM."""
    logger.info(f"Worker enabled: {settings.WORKER_ENABLED}")
    logger.info(f"Check interval: {settings.REMINDER_CHECK_INTERVAL} seconds")
    logger.info(f"Notifications enabled: {settings.NOTIFY_ENABLED}")

    if not settings.WORKER_ENABLED:
        logger.warning("Worker is disabled in configuration. Exiting.")
        return

    database.init_db()
    scheduler = ReminderScheduler()

    loop = asyncio.get_running_loop()
    for sig in (signal.SIGTERM, signal.SIGINT):
        loop.add_signal_handler(sig, scheduler.request_stop)

    await scheduler.start()
    logger.info("Background worker shutting down gracefully")


def main():
    """Main entry point for the background worker."""
    logger.info("=" * 60)
    logger.info("AxleNote - Reminder Worker")
    logger.info("=" * 60)

    try:
        asyncio.run(run_worker())
    except KeyboardInterrupt:
        logger.info("Received keyboard interrupt")
    except Exception as e:
        logger.error(f"Fatal error in background worker: {str(e)}", exc_info=True)
        sys.exit(1)

    logger.info("Background worker stopped")
    sys.exit(0)


if __name__ == "__main__":
    main()
