import logging
import re
import uuid
from threading import local

from django.utils.deprecation import MiddlewareMixin

# Thread-local storage for request ID
_thread_locals = local()

_INCOMING_ID = re.compile(r"^[A-Za-z0-9._-]{8,64}$")


class RequestIDMiddleware(MiddlewareMixin):
    """
    Assigns every request an ID (reusing a sane incoming X-Request-ID from the
    proxy or frontend) so log lines from booking, payment and waitlist code
    can be tied back to one API call or webhook delivery.
    """

    def process_request(self, request):
        incoming = request.META.get("HTTP_X_REQUEST_ID", "")
        request_id = incoming if _INCOMING_ID.match(incoming) else str(uuid.uuid4())

        request.request_id = request_id
        _thread_locals.request_id = request_id
        return None

    def process_response(self, request, response):
        if hasattr(request, "request_id"):
            response["X-Request-ID"] = request.request_id

        if hasattr(_thread_locals, "request_id"):
            delattr(_thread_locals, "request_id")

        return response

    def process_exception(self, request, exception):
        if hasattr(_thread_locals, "request_id"):
            delattr(_thread_locals, "request_id")
        return None


def get_request_id():
    """Current request ID, or None outside a request (Celery, shell)."""
    return getattr(_thread_locals, "request_id", None)


class RequestIDFilter(logging.Filter):
    """
    Logging filter that adds request ID to log records.
    """

    def filter(self, record):
        record.request_id = get_request_id() or "no-request-id"
        return True
