from datetime import date, datetime, timedelta, timezone as dt_timezone
from decimal import Decimal
from types import SimpleNamespace

import pytest

from payments import schedule


def _entries(*statuses):
    return [SimpleNamespace(number=i + 1, status=s) for i, s in enumerate(statuses)]


def test_schedule_sums_to_total_and_spreads_installments():
    today = date(2025, 1, 1)
    lines = schedule.create_schedule(
        Decimal("1000.00"), Decimal("100.00"), date(2025, 7, 1), installments=3, today=today
    )
    assert [line.number for line in lines] == [1, 2, 3, 4]
    assert lines[0].amount == Decimal("100.00")
    assert lines[0].due_date == today
    assert sum(line.amount for line in lines) == Decimal("1000.00")
    # last installment lands on the buffer cutoff
    assert lines[-1].due_date == date(2025, 6, 24)
    due_dates = [line.due_date for line in lines]
    assert due_dates == sorted(due_dates)


def test_rounding_residue_goes_on_last_installment():
    lines = schedule.create_schedule(
        Decimal("1000.00"), Decimal("100.00"), date(2025, 7, 1), installments=7, today=date(2025, 1, 1)
    )
    installments = [line.amount for line in lines[1:]]
    assert installments[:-1] == [Decimal("128.57")] * 6
    assert installments[-1] == Decimal("900.00") - Decimal("128.57") * 6


def test_full_payment_when_deposit_covers_total():
    lines = schedule.create_schedule(
        Decimal("500.00"), Decimal("500.00"), date(2025, 7, 1), installments=2, today=date(2025, 1, 1)
    )
    assert len(lines) == 1
    assert lines[0].description == "Full payment"


def test_remainder_collapses_when_retreat_is_too_close():
    today = date(2025, 6, 28)
    lines = schedule.create_schedule(
        Decimal("1000.00"), Decimal("500.00"), date(2025, 7, 1), installments=3, today=today
    )
    assert len(lines) == 2
    assert lines[1].amount == Decimal("500.00")
    assert lines[1].due_date == today
    assert lines[1].description == "Final payment"


def test_installments_capped_by_available_days():
    lines = schedule.create_schedule(
        Decimal("300.00"), Decimal("100.00"), date(2025, 1, 10), installments=5, today=date(2025, 1, 1)
    )
    # cutoff is 2025-01-03: two days, so at most two installments
    assert len(lines) == 3


def test_invalid_amounts_are_rejected():
    with pytest.raises(ValueError):
        schedule.create_schedule(Decimal("0"), Decimal("0"), date(2025, 7, 1), 2, date(2025, 1, 1))
    with pytest.raises(ValueError):
        schedule.create_schedule(Decimal("100"), Decimal("0"), date(2025, 7, 1), 2, date(2025, 1, 1))


def test_advance_on_success_returns_next_pending():
    entries = _entries("pending", "pending", "pending")
    nxt = schedule.advance_on_success(entries, 1)
    assert entries[0].status == "paid"
    assert nxt.number == 2

    entries = _entries("paid", "pending")
    assert schedule.advance_on_success(entries, 2) is None

    with pytest.raises(ValueError):
        schedule.advance_on_success(_entries("pending"), 5)


def test_handle_failure_keeps_first_deadline():
    now = datetime(2025, 3, 1, 12, tzinfo=dt_timezone.utc)
    entry = SimpleNamespace(status="processing", failed_at=None, payment_deadline=None, reminder_stage="")
    deadline = schedule.handle_failure(entry, now)
    assert entry.status == "failed"
    assert deadline == now + timedelta(days=14)
    assert entry.reminder_stage == schedule.STAGE_INITIAL

    later = now + timedelta(days=3)
    assert schedule.handle_failure(entry, later) == deadline
    assert entry.failed_at == now


def test_deadline_cadence():
    deadline = datetime(2025, 3, 15, 12, tzinfo=dt_timezone.utc)
    day = timedelta(days=1)
    assert schedule.deadline_action(deadline, deadline - 10 * day) is None
    assert schedule.deadline_action(deadline, deadline - 3 * day) == schedule.STAGE_THREE_DAYS
    assert schedule.deadline_action(deadline, deadline - 3 * day, stage=schedule.STAGE_THREE_DAYS) is None
    assert schedule.deadline_action(deadline, deadline - day) == schedule.STAGE_ONE_DAY
    assert schedule.deadline_action(deadline, deadline - day, stage=schedule.STAGE_ONE_DAY) is None
    assert schedule.deadline_action(deadline, deadline) == schedule.ACTION_CANCEL


def test_days_remaining_rounds_up():
    now = datetime(2025, 3, 1, tzinfo=dt_timezone.utc)
    assert schedule.days_remaining(now + timedelta(hours=30), now) == 2
    assert schedule.days_remaining(now - timedelta(hours=1), now) == 0


def test_due_date_reminders_once_per_day():
    today = date(2025, 3, 1)
    assert schedule.due_date_reminder(today + timedelta(days=7), today) == "7_days"
    assert schedule.due_date_reminder(today + timedelta(days=5), today) is None
    assert schedule.due_date_reminder(today, today) == schedule.REMINDER_TODAY
    assert schedule.due_date_reminder(today - timedelta(days=2), today) == schedule.REMINDER_OVERDUE
    assert schedule.due_date_reminder(today, today, last_sent=today) is None


def test_pricing_helpers():
    assert schedule.months_between(date(2025, 1, 15), date(2025, 4, 14)) == 2
    assert schedule.months_between(date(2025, 1, 15), date(2025, 4, 15)) == 3
    assert schedule.is_early_bird_eligible(date(2025, 1, 1), date(2025, 4, 1))
    assert not schedule.is_early_bird_eligible(date(2025, 1, 2), date(2025, 4, 1))

    total, discount = schedule.apply_early_bird(Decimal("1999.99"), 10)
    assert discount == Decimal("200.00")
    assert total == Decimal("1799.99")

    start = date(2025, 7, 1)
    assert schedule.first_payment_amount(Decimal("1000"), date(2025, 1, 1), start) == Decimal("100.00")
    assert schedule.first_payment_amount(Decimal("1000"), date(2025, 6, 1), start) == Decimal("500.00")
    assert schedule.first_payment_amount(Decimal("1000"), date(2025, 1, 1), start, plan="full") == Decimal("1000.00")


def test_schedule_html_contains_every_row():
    lines = schedule.create_schedule(
        Decimal("1000.00"), Decimal("100.00"), date(2025, 7, 1), installments=2, today=date(2025, 1, 1)
    )
    html = schedule.schedule_as_html(lines)
    assert html.count("<tr><td>") == 3
    assert "100.00" in html
