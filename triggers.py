"""Trigger evaluation for vehicle reminders.

A reminder can fire on two independent dimensions:

- Date: overdue once the due date has started, upcoming when it starts
  within the next 7 days.
- Odometer: reached once the current reading is at or past the due reading,
  approaching when fewer than 500 km remain.

Within a dimension the overdue/reached condition wins over the approaching
one. Both dimensions can fire in the same evaluation. Evaluation is a pure
function of (reminder, current odometer, now); nothing is remembered between
calls, so a due reminder fires again on every sweep until it is completed.
"""

import enum
from dataclasses import dataclass, field
from datetime import date, datetime, time, timedelta, timezone
from typing import List, Optional, Tuple

UPCOMING_WINDOW = timedelta(days=7)
APPROACHING_KM = 500


class TriggerKind(enum.Enum):
    """Which condition fired"""
    DATE_OVERDUE = "date_overdue"
    DATE_UPCOMING = "date_upcoming"
    ODOMETER_REACHED = "odometer_reached"
    ODOMETER_APPROACHING = "odometer_approaching"


@dataclass(frozen=True)
class TriggerHit:
    kind: TriggerKind
    reason: str


@dataclass(frozen=True)
class TriggerOutcome:
    """Result of evaluating one reminder. Empty ``hits`` means not fired."""

    hits: Tuple[TriggerHit, ...] = field(default_factory=tuple)

    @property
    def fired(self) -> bool:
        return bool(self.hits)

    @property
    def kinds(self) -> List[TriggerKind]:
        return [hit.kind for hit in self.hits]

    @property
    def reason(self) -> str:
        """All fired reasons joined into one line."""
        return "; ".join(hit.reason for hit in self.hits)


NOT_FIRED = TriggerOutcome()


def _as_utc(moment: datetime) -> datetime:
    if moment.tzinfo is None:
        return moment.replace(tzinfo=timezone.utc)
    return moment.astimezone(timezone.utc)


def _due_instant(due) -> Tuple[datetime, str]:
    """Return the moment a due date starts and its YYYY-MM-DD label."""
    if isinstance(due, datetime):
        due_at = _as_utc(due)
        return due_at, due_at.date().isoformat()
    return datetime.combine(due, time.min, tzinfo=timezone.utc), due.isoformat()


def _check_date(due: Optional[date], now: datetime) -> Optional[TriggerHit]:
    if due is None:
        return None

    due_at, label = _due_instant(due)
    remaining = due_at - now
    if remaining <= timedelta(0):
        return TriggerHit(TriggerKind.DATE_OVERDUE, f"date due: {label}")
    if remaining < UPCOMING_WINDOW:
        return TriggerHit(TriggerKind.DATE_UPCOMING, f"upcoming due date: {label}")
    return None


def _check_odometer(due_odometer: Optional[int], current: int) -> Optional[TriggerHit]:
    if due_odometer is None or due_odometer <= 0:
        return None

    if current >= due_odometer:
        return TriggerHit(
            TriggerKind.ODOMETER_REACHED,
            f"odometer reached: {due_odometer} km",
        )
    if due_odometer - current < APPROACHING_KM:
        return TriggerHit(
            TriggerKind.ODOMETER_APPROACHING,
            f"odometer approaching: {due_odometer} km (current {current})",
        )
    return None


def evaluate_reminder(reminder, current_odometer: int, now: datetime) -> TriggerOutcome:
    """Decide whether a reminder fires.

    Args:
        reminder: Any object with ``is_completed``, ``due_date`` and
            ``due_odometer`` attributes (ORM row or schema)
        current_odometer: Current odometer reading in km
        now: Evaluation time; naive values are taken as UTC

    Returns:
        TriggerOutcome: date hit first, then odometer hit, each only if fired
    """
    if getattr(reminder, "is_completed", False):
        return NOT_FIRED

    now = _as_utc(now)
    hits = [
        _check_date(getattr(reminder, "due_date", None), now),
        _check_odometer(getattr(reminder, "due_odometer", None), current_odometer),
    ]
    return TriggerOutcome(tuple(hit for hit in hits if hit is not None))
