import factory
from decimal import Decimal

from promotions import models as promotion_models


class PromoCodeFactory(factory.django.DjangoModelFactory):
    class Meta:
        model = promotion_models.PromoCode

    code = factory.Sequence(lambda n: f"SURF{n}")
    discount_type = promotion_models.PromoCode.TYPE_PERCENTAGE
    discount_value = Decimal("15.00")
    scope = promotion_models.PromoCode.SCOPE_GLOBAL
    is_active = True
