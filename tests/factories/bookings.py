import factory
from decimal import Decimal

from django.utils import timezone

from bookings import models as booking_models
from payments import models as payment_models
from .retreats import RoomFactory


class BookingFactory(factory.django.DjangoModelFactory):
    """A bare booking row; it holds no seats. Use bookings.services.create_booking for the real flow."""

    class Meta:
        model = booking_models.Booking

    room = factory.SubFactory(RoomFactory)
    retreat = factory.LazyAttribute(lambda o: o.room.retreat)
    first_name = "Ana"
    last_name = factory.Sequence(lambda n: f"Guest{n}")
    email = factory.LazyAttribute(lambda o: f"{o.last_name.lower()}@example.com")
    guests_count = 1
    seats_held = False
    total_amount = Decimal("1000.00")
    deposit_amount = Decimal("100.00")
    balance_due = Decimal("1000.00")


class ScheduleEntryFactory(factory.django.DjangoModelFactory):
    class Meta:
        model = payment_models.PaymentScheduleEntry

    booking = factory.SubFactory(BookingFactory)
    number = factory.Sequence(lambda n: n + 1)
    amount = Decimal("100.00")
    due_date = factory.LazyFunction(timezone.localdate)
    description = "Deposit"


class PaymentFactory(factory.django.DjangoModelFactory):
    class Meta:
        model = payment_models.Payment

    booking = factory.SubFactory(BookingFactory)
    amount = Decimal("100.00")
    currency = "eur"
    status = payment_models.Payment.STATUS_SUCCEEDED
    payment_type = payment_models.Payment.TYPE_DEPOSIT
    stripe_payment_intent_id = factory.Sequence(lambda n: f"pi_factory_{n}")
