"""
Payment schedule engine.

Pure functions over Decimal amounts and calendar dates: building the
deposit + installment plan for a booking, pricing helpers (early bird,
first payment), and the reminder / grace-deadline cadence used by the
periodic sweeps. Nothing here touches the database; payments.services
persists and advances schedules built by these functions.
"""
from __future__ import annotations

import math
from dataclasses import dataclass
from datetime import date, datetime, timedelta
from decimal import ROUND_HALF_UP, Decimal
from typing import Iterable, Optional, Sequence

CENT = Decimal("0.01")

PLAN_DEPOSIT = "deposit"
PLAN_FULL = "full"

GRACE_DAYS = 14

# Deadline reminder stages, in the order they are sent after a failure
STAGE_INITIAL = "initial"
STAGE_THREE_DAYS = "3_day"
STAGE_ONE_DAY = "1_day"
ACTION_CANCEL = "cancel"

# Due-date reminders: days before due -> reminder type
DUE_REMINDER_DAYS = ((14, "14_days"), (7, "7_days"), (3, "3_days"), (1, "1_day"))
REMINDER_TODAY = "today"
REMINDER_OVERDUE = "overdue"


def round_currency(amount) -> Decimal:
    return Decimal(str(amount)).quantize(CENT, rounding=ROUND_HALF_UP)


@dataclass(frozen=True)
class ScheduleLine:
    number: int
    amount: Decimal
    due_date: date
    description: str


def create_schedule(
    total_amount: Decimal,
    deposit_amount: Decimal,
    retreat_start: date,
    installments: int,
    today: date,
    buffer_days: int = 7,
) -> list[ScheduleLine]:
    """
    Build the ordered schedule for a booking.

    Entry #1 is the deposit, due today. The remainder is split into
    `installments` even payments (rounding residue on the last one) whose due
    dates are spread evenly up to `retreat_start - buffer_days`. When that
    cutoff is not after today the remainder collapses into one final payment
    due immediately.
    """
    total = round_currency(total_amount)
    deposit = min(round_currency(deposit_amount), total)
    if total <= 0:
        raise ValueError("Total amount must be positive")
    if deposit <= 0:
        raise ValueError("Deposit amount must be positive")

    if deposit >= total:
        return [ScheduleLine(1, total, today, "Full payment")]

    lines = [ScheduleLine(1, deposit, today, "Deposit")]
    remainder = total - deposit
    cutoff = retreat_start - timedelta(days=buffer_days)
    gap_days = (cutoff - today).days

    if gap_days <= 0:
        lines.append(ScheduleLine(2, remainder, today, "Final payment"))
        return lines

    count = max(1, min(int(installments or 1), gap_days))
    share = (remainder / count).quantize(CENT, rounding=ROUND_HALF_UP)
    for i in range(1, count + 1):
        amount = share if i < count else remainder - share * (count - 1)
        due = cutoff if i == count else today + timedelta(days=(gap_days * i) // count)
        if count == 1:
            description = "Final payment"
        else:
            description = f"Installment {i} of {count}"
        lines.append(ScheduleLine(i + 1, amount, due, description))
    return lines


def next_pending(entries: Iterable, after_number: int = 0):
    """First entry (by number) still pending after `after_number`."""
    for entry in sorted(entries, key=lambda e: e.number):
        if entry.number > after_number and entry.status == "pending":
            return entry
    return None


def advance_on_success(entries: Sequence, number: int):
    """Mark entry `number` paid in-memory and return the next pending entry (or None)."""
    paid = None
    for entry in entries:
        if entry.number == number:
            entry.status = "paid"
            paid = entry
    if paid is None:
        raise ValueError(f"No schedule entry #{number}")
    return next_pending(entries, after_number=0)


def handle_failure(entry, now: datetime, grace_days: int = GRACE_DAYS) -> datetime:
    """
    Record a failed scheduled payment. The grace deadline starts on the first
    failure only; later retries keep the original deadline.
    """
    entry.status = "failed"
    if entry.failed_at is None or entry.payment_deadline is None:
        entry.failed_at = now
        entry.payment_deadline = now + timedelta(days=grace_days)
        entry.reminder_stage = STAGE_INITIAL
    return entry.payment_deadline


def days_remaining(deadline: datetime, now: datetime) -> int:
    """Whole days left before `deadline` (rounded up, never negative)."""
    seconds = (deadline - now).total_seconds()
    if seconds <= 0:
        return 0
    return math.ceil(seconds / 86400)


def deadline_action(deadline: datetime, now: datetime, stage: str = "") -> Optional[str]:
    """
    Cadence after a failed payment with a 14-day grace window:
    day 11 -> "3_day" reminder, day 13 -> "1_day" reminder, deadline passed -> "cancel".
    A stage already sent is not repeated.
    """
    if now >= deadline:
        return ACTION_CANCEL
    left = days_remaining(deadline, now)
    if left <= 1:
        return STAGE_ONE_DAY if stage != STAGE_ONE_DAY else None
    if left <= 3:
        return STAGE_THREE_DAYS if stage not in (STAGE_THREE_DAYS, STAGE_ONE_DAY) else None
    return None


def due_date_reminder(due_date: date, today: date, last_sent: Optional[date] = None) -> Optional[str]:
    """Reminder type for an upcoming installment, at most one per day."""
    if last_sent is not None and last_sent >= today:
        return None
    days_until = (due_date - today).days
    if days_until < 0:
        return REMINDER_OVERDUE
    if days_until == 0:
        return REMINDER_TODAY
    for days, kind in DUE_REMINDER_DAYS:
        if days_until == days:
            return kind
    return None


# ---------------------------------------------------------------------------
# Pricing
# ---------------------------------------------------------------------------
def months_between(start: date, end: date) -> int:
    """Whole calendar months from `start` to `end` (a partial month does not count)."""
    months = (end.year - start.year) * 12 + (end.month - start.month)
    if end.day < start.day:
        months -= 1
    return months


def is_early_bird_eligible(booking_date: date, retreat_start: date, cutoff_months: int = 3) -> bool:
    return months_between(booking_date, retreat_start) >= cutoff_months


def apply_early_bird(total: Decimal, percent) -> tuple[Decimal, Decimal]:
    """Return (discounted_total, discount)."""
    discount = round_currency(Decimal(str(total)) * Decimal(str(percent)) / 100)
    return round_currency(total) - discount, discount


def first_payment_amount(
    total: Decimal,
    booking_date: date,
    retreat_start: date,
    plan: str = PLAN_DEPOSIT,
    deposit_percent=10,
    late_deposit_percent=50,
    late_threshold_months: int = 2,
) -> Decimal:
    """Deposit for the booking: the full amount on the full plan, a larger share for late bookings."""
    if plan == PLAN_FULL:
        return round_currency(total)
    late = months_between(booking_date, retreat_start) < late_threshold_months
    percent = late_deposit_percent if late else deposit_percent
    return round_currency(Decimal(str(total)) * Decimal(str(percent)) / 100)


def schedule_as_html(lines: Iterable) -> str:
    """
    Render schedule rows as an HTML table for emails. Only numbers, dates and
    fixed descriptions are interpolated, so the output is safe to embed raw.
    """
    rows = "".join(
        f"<tr><td>{line.number}</td><td>{line.description}</td>"
        f"<td>{line.due_date:%Y-%m-%d}</td><td>{round_currency(line.amount)}</td></tr>"
        for line in lines
    )
    return (
        '<table class="schedule"><thead><tr><th>#</th><th>Payment</th><th>Due</th><th>Amount</th></tr></thead>'
        f"<tbody>{rows}</tbody></table>"
    )
