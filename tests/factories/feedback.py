import factory

from feedback import models as feedback_models
from .bookings import BookingFactory


class RetreatFeedbackFactory(factory.django.DjangoModelFactory):
    class Meta:
        model = feedback_models.RetreatFeedback

    booking = factory.SubFactory(BookingFactory)
    retreat = factory.LazyAttribute(lambda o: o.booking.retreat)
    email = factory.LazyAttribute(lambda o: o.booking.email)
    overall_rating = 5
    recommend_score = 10
