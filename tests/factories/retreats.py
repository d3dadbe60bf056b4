import factory
from datetime import timedelta
from decimal import Decimal

from django.utils import timezone

from retreats import models as retreat_models


class RetreatFactory(factory.django.DjangoModelFactory):
    class Meta:
        model = retreat_models.Retreat

    title = factory.Sequence(lambda n: f"Surf Retreat {n}")
    slug = factory.Sequence(lambda n: f"surf-retreat-{n}")
    destination = "Ericeira"
    # far enough out for early bird and the standard deposit
    start_date = factory.LazyFunction(lambda: timezone.localdate() + timedelta(days=180))
    end_date = factory.LazyAttribute(lambda o: o.start_date + timedelta(days=7))
    installment_count = 2
    early_bird_enabled = False
    is_published = True


class RoomFactory(factory.django.DjangoModelFactory):
    class Meta:
        model = retreat_models.Room

    retreat = factory.SubFactory(RetreatFactory)
    name = factory.Sequence(lambda n: f"Room {n}")
    price = Decimal("1000.00")
    capacity = 4
    available = factory.LazyAttribute(lambda o: o.capacity)
    is_sold_out = False
