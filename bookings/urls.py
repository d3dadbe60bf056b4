# bookings/urls.py
from __future__ import annotations

from django.urls import include, path
from rest_framework.routers import DefaultRouter

from . import views

app_name = "bookings"

router = DefaultRouter()
router.register(r"bookings", views.BookingViewSet, basename="bookings")

urlpatterns = [
    path("checkout/", views.checkout, name="checkout"),
    path("my-booking/", views.my_booking, name="my-booking"),
    path("my-booking/pay/", views.my_booking_pay, name="my-booking-pay"),
    path("", include(router.urls)),
]
