from .accounts import UserFactory
from .retreats import RetreatFactory, RoomFactory
from .bookings import BookingFactory, ScheduleEntryFactory, PaymentFactory
from .waitlist import WaitlistEntryFactory
from .feedback import RetreatFeedbackFactory
from .promotions import PromoCodeFactory

__all__ = [
    "UserFactory",
    "RetreatFactory",
    "RoomFactory",
    "BookingFactory",
    "ScheduleEntryFactory",
    "PaymentFactory",
    "WaitlistEntryFactory",
    "RetreatFeedbackFactory",
    "PromoCodeFactory",
]
