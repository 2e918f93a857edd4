import logging

from django.core.exceptions import PermissionDenied, ValidationError
from django.db import IntegrityError
from django.http import Http404
from django_ratelimit.exceptions import Ratelimited

from .api import error_response
from .exceptions import AcademicRecordsError

logger = logging.getLogger(__name__)

API_PREFIX = '/api/'


class ApiErrorMiddleware:
    """
    Translate exceptions raised by API views into JSON error responses.

    Only requests under /api/ are handled; everything else (the Django admin)
    keeps the default error pages.

    Mapping:
    - AcademicRecordsError subclasses -> their own status_code
    - Ratelimited -> 429
    - Http404 -> 404, PermissionDenied -> 403
    - ValidationError -> 400, IntegrityError -> 409
    - anything else -> 500, logged with traceback
    """

    def __init__(self, get_response):
        self.get_response = get_response

    def __call__(self, request):
        return self.get_response(request)

    def process_exception(self, request, exception):
        if not request.path.startswith(API_PREFIX):
            return None

        if isinstance(exception, AcademicRecordsError):
            if exception.status_code >= 500:
                logger.error(f"{request.method} {request.path} failed: {exception.message}")
            return error_response(exception.message, exception.status_code, exception.errors)

        # Ratelimited subclasses PermissionDenied, so check it first
        if isinstance(exception, Ratelimited):
            logger.warning(f"Rate limit exceeded on {request.path} by {request.user}")
            return error_response('Too many requests, please try again later', 429)

        if isinstance(exception, Http404):
            return error_response(str(exception) or 'Not found', 404)

        if isinstance(exception, PermissionDenied):
            return error_response(str(exception) or 'Permission denied', 403)

        if isinstance(exception, ValidationError):
            if hasattr(exception, 'error_dict'):
                errors = {field: list(messages) for field, messages in exception.message_dict.items()}
            else:
                errors = {'__all__': exception.messages}
            return error_response('Validation failed', 400, errors)

        if isinstance(exception, IntegrityError):
            logger.warning(f"Integrity error on {request.method} {request.path}: {exception}")
            return error_response('Resource already exists or violates a constraint', 409)

        logger.exception(f"Unhandled error on {request.method} {request.path}")
        return error_response('Internal server error', 500)
