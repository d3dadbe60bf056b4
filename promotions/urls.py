# promotions/urls.py
from __future__ import annotations

from django.urls import include, path
from rest_framework.routers import DefaultRouter

from . import views

app_name = "promotions"

router = DefaultRouter()
router.register(r"promo-codes", views.PromoCodeViewSet, basename="promo-codes")

urlpatterns = [
    path("promo-codes/validate/", views.validate_promo_code, name="promo-code-validate"),
    path("", include(router.urls)),
]
