# retreat_backend/urls.py
from __future__ import annotations

from django.contrib import admin
from django.urls import include, path
from drf_spectacular.views import SpectacularAPIView, SpectacularSwaggerView
from rest_framework_simplejwt.views import TokenObtainPairView, TokenRefreshView

urlpatterns = [
    path("admin/", admin.site.urls),

    # API Documentation
    path("api/schema/", SpectacularAPIView.as_view(), name="schema"),
    path("api/docs/", SpectacularSwaggerView.as_view(url_name="schema"), name="swagger-ui"),

    # Admin API auth
    path("api/auth/token/", TokenObtainPairView.as_view(), name="token_obtain_pair"),
    path("api/auth/token/refresh/", TokenRefreshView.as_view(), name="token_refresh"),

    # Stripe webhook
    path("payments/", include(("payments.urls", "payments"), namespace="payments")),

    # ---- REST APIs ----
    path("api/", include(("retreats.urls", "retreats"), namespace="retreats")),
    path("api/", include(("bookings.urls", "bookings"), namespace="bookings")),
    path("api/payments/", include(("payments.api_urls", "payments_api"), namespace="payments_api")),
    path("api/", include(("waitlist.urls", "waitlist"), namespace="waitlist")),
    path("api/", include(("notifications.urls", "notifications"), namespace="notifications")),
    path("api/", include(("feedback.urls", "feedback"), namespace="feedback")),
    path("api/", include(("promotions.urls", "promotions"), namespace="promotions")),
]
