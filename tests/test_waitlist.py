from datetime import timedelta

import pytest
from django.core.exceptions import ValidationError
from django.utils import timezone

from bookings.lifecycle import cancel_booking
from bookings.models import Booking
from core.exceptions import InsufficientInventory, InvalidTransition, OfferExpired
from notifications.models import EmailAuditLog
from waitlist import services
from waitlist.models import WaitlistEntry
from tests.factories import RetreatFactory, RoomFactory, WaitlistEntryFactory


def _join(room, email, guests_count=1, any_room=False):
    return services.join_waitlist(
        room.retreat,
        None if any_room else room,
        first_name="Wanda",
        email=email,
        guests_count=guests_count,
    )


@pytest.fixture
def full_room(room, make_booking):
    booking = make_booking(room, guests_count=4)
    room.refresh_from_db()
    room.booking = booking
    return room


@pytest.mark.django_db
def test_join_assigns_fifo_positions_per_scope(room):
    first = _join(room, "a@example.com")
    second = _join(room, "b@example.com")
    any_room = _join(room, "c@example.com", any_room=True)

    assert (first.position, second.position) == (1, 2)
    assert any_room.position == 1
    assert EmailAuditLog.objects.filter(email_type="waitlist_joined", recipient="a@example.com").exists()


@pytest.mark.django_db
def test_join_rejects_duplicate_open_entry(room):
    _join(room, "dup@example.com")
    with pytest.raises(ValidationError):
        _join(room, "DUP@example.com ")


@pytest.mark.django_db
def test_join_rejects_started_retreat():
    today = timezone.localdate()
    room = RoomFactory(retreat=RetreatFactory(start_date=today - timedelta(days=1), end_date=today + timedelta(days=3)))
    with pytest.raises(ValidationError):
        _join(room, "late@example.com")


@pytest.mark.django_db
def test_cancellation_offers_freed_seats_in_order(full_room):
    big = _join(full_room, "big@example.com", guests_count=3)
    small = _join(full_room, "small@example.com", guests_count=1)
    next_small = _join(full_room, "next@example.com", guests_count=1)

    cancel_booking(full_room.booking, send_email=False)

    big.refresh_from_db()
    small.refresh_from_db()
    next_small.refresh_from_db()
    # 4 seats freed: 3 to the head of the queue, 1 to the next that fits
    assert big.status == WaitlistEntry.STATUS_OFFERED
    assert small.status == WaitlistEntry.STATUS_OFFERED
    assert next_small.status == WaitlistEntry.STATUS_WAITING
    assert big.offered_room_id == full_room.pk
    assert big.offer_expires_at > timezone.now() + timedelta(hours=71)
    assert EmailAuditLog.objects.filter(email_type="waitlist_spot_available").count() == 2


@pytest.mark.django_db
def test_promotion_skips_entries_that_do_not_fit(full_room):
    too_big = _join(full_room, "group@example.com", guests_count=5)
    single = _join(full_room, "solo@example.com")

    services.promote(full_room.retreat, full_room)
    cancel_booking(full_room.booking, send_email=False)

    too_big.refresh_from_db()
    single.refresh_from_db()
    assert too_big.status == WaitlistEntry.STATUS_WAITING
    assert single.status == WaitlistEntry.STATUS_OFFERED


@pytest.mark.django_db
def test_open_offers_are_not_offered_twice(full_room):
    entry = _join(full_room, "first@example.com", guests_count=4)
    waiting = _join(full_room, "second@example.com", guests_count=1)
    cancel_booking(full_room.booking, send_email=False)

    # promoting again sees the 4 free seats as promised to the open offer
    assert services.promote(full_room.retreat, full_room) == []
    entry.refresh_from_db()
    waiting.refresh_from_db()
    assert entry.status == WaitlistEntry.STATUS_OFFERED
    assert waiting.status == WaitlistEntry.STATUS_WAITING


@pytest.mark.django_db
def test_accept_creates_pending_booking(full_room, stripe_gateway):
    entry = _join(full_room, "accept@example.com", guests_count=2)
    cancel_booking(full_room.booking, send_email=False)
    entry.refresh_from_db()

    acceptance = services.accept_offer(entry)

    assert acceptance.entry.status == WaitlistEntry.STATUS_ACCEPTED
    assert acceptance.booking.status == Booking.STATUS_PENDING
    assert acceptance.booking.room_id == full_room.pk
    assert acceptance.booking.guests_count == 2
    assert acceptance.client_secret.endswith("_secret")
    full_room.refresh_from_db()
    assert full_room.available == 2
    assert EmailAuditLog.objects.filter(email_type="waitlist_accepted", booking=acceptance.booking).exists()


@pytest.mark.django_db
def test_expired_offer_cannot_be_accepted_and_passes_on(full_room):
    first = _join(full_room, "slow@example.com", guests_count=4)
    second = _join(full_room, "quick@example.com", guests_count=4)
    cancel_booking(full_room.booking, send_email=False)
    first.refresh_from_db()

    later = first.offer_expires_at + timedelta(minutes=1)
    with pytest.raises(OfferExpired):
        services.accept_offer(first, now=later)

    first.refresh_from_db()
    second.refresh_from_db()
    assert first.status == WaitlistEntry.STATUS_EXPIRED
    assert second.status == WaitlistEntry.STATUS_OFFERED
    assert not Booking.objects.filter(email="slow@example.com").exists()


@pytest.mark.django_db
def test_decline_promotes_next(full_room):
    first = _join(full_room, "no@example.com", guests_count=4)
    second = _join(full_room, "yes@example.com", guests_count=4)
    cancel_booking(full_room.booking, send_email=False)

    services.decline_offer(first)

    first.refresh_from_db()
    second.refresh_from_db()
    assert first.status == WaitlistEntry.STATUS_DECLINED
    assert first.responded_at is not None
    assert second.status == WaitlistEntry.STATUS_OFFERED

    with pytest.raises(InvalidTransition):
        services.decline_offer(first)


@pytest.mark.django_db
def test_expire_offers_sweep(full_room):
    first = _join(full_room, "gone@example.com", guests_count=4)
    second = _join(full_room, "next@example.com", guests_count=4)
    cancel_booking(full_room.booking, send_email=False)
    first.refresh_from_db()

    assert services.expire_offers(now=first.offer_expires_at - timedelta(minutes=1)) == 0
    assert services.expire_offers(now=first.offer_expires_at + timedelta(minutes=1)) == 1

    second.refresh_from_db()
    assert second.status == WaitlistEntry.STATUS_OFFERED
    assert EmailAuditLog.objects.filter(email_type="waitlist_expired", recipient="gone@example.com").exists()


@pytest.mark.django_db
def test_admin_offer_out_of_order(room):
    head = WaitlistEntryFactory(retreat=room.retreat, room=room, position=1)
    tail = WaitlistEntryFactory(retreat=room.retreat, room=room, position=2)

    services.admin_offer(tail)

    head.refresh_from_db()
    tail.refresh_from_db()
    assert head.status == WaitlistEntry.STATUS_WAITING
    assert tail.status == WaitlistEntry.STATUS_OFFERED
    with pytest.raises(InvalidTransition):
        services.admin_offer(tail)


@pytest.mark.django_db
def test_promotion_queue_deduplicates_scopes(full_room):
    _join(full_room, "q@example.com")
    scope = (full_room.retreat_id, full_room.pk)
    assert services.run_promotion_queue([scope, scope, (999999, None)]) == []


@pytest.mark.django_db
def test_room_and_any_room_entries_are_offered_in_join_order(room, make_booking):
    make_booking(room, guests_count=2)
    leaving = make_booking(room, guests_count=2)
    early_any = _join(room, "early-any@example.com", any_room=True)
    first = _join(room, "first@example.com")
    second = _join(room, "second@example.com")
    late_any = _join(room, "late-any@example.com", any_room=True)
    # both scopes number their own queue from 1
    assert (early_any.position, first.position, second.position, late_any.position) == (1, 1, 2, 2)

    cancel_booking(leaving, send_email=False)

    statuses = {}
    for entry in (early_any, first, second, late_any):
        entry.refresh_from_db()
        statuses[entry.email] = entry.status
    assert statuses == {
        "early-any@example.com": WaitlistEntry.STATUS_OFFERED,
        "first@example.com": WaitlistEntry.STATUS_OFFERED,
        "second@example.com": WaitlistEntry.STATUS_WAITING,
        "late-any@example.com": WaitlistEntry.STATUS_WAITING,
    }


@pytest.mark.django_db
def test_later_room_entries_beat_a_newer_any_room_entry(room, make_booking):
    make_booking(room, guests_count=2)
    leaving = make_booking(room, guests_count=2)
    first = _join(room, "b@example.com")
    second = _join(room, "c@example.com")
    any_room = _join(room, "a@example.com", any_room=True)

    cancel_booking(leaving, send_email=False)

    first.refresh_from_db()
    second.refresh_from_db()
    any_room.refresh_from_db()
    assert first.status == second.status == WaitlistEntry.STATUS_OFFERED
    assert any_room.status == WaitlistEntry.STATUS_WAITING


@pytest.mark.django_db
def test_admin_offer_to_any_room_entry_picks_a_room_with_space(room, make_booking):
    make_booking(room, guests_count=4)
    pricey = RoomFactory(retreat=room.retreat, price=2000, capacity=2)
    entry = WaitlistEntryFactory(retreat=room.retreat, guests_count=2)

    services.admin_offer(entry)

    entry.refresh_from_db()
    assert entry.status == WaitlistEntry.STATUS_OFFERED
    assert entry.offered_room_id == pricey.pk


@pytest.mark.django_db
def test_admin_offer_needs_unpromised_seats(room, make_booking):
    make_booking(room, guests_count=2)
    held = WaitlistEntryFactory(retreat=room.retreat, room=room, guests_count=2)
    services.admin_offer(held)
    entry = WaitlistEntryFactory(retreat=room.retreat, room=room, guests_count=1)

    # the 2 free seats are already promised to the first offer
    with pytest.raises(InsufficientInventory):
        services.admin_offer(entry)

    entry.refresh_from_db()
    assert entry.status == WaitlistEntry.STATUS_WAITING
    assert entry.offered_room_id is None


@pytest.mark.django_db
def test_admin_offer_full_room_conflicts(full_room):
    entry = WaitlistEntryFactory(retreat=full_room.retreat, room=full_room)

    with pytest.raises(InsufficientInventory):
        services.admin_offer(entry)
