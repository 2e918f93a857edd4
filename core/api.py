"""
JSON helpers shared by the API views.

The wire format is camelCase (``marksObtained``); Python code works in
snake_case. Conversion happens here, once, on the way in and out.
"""
import json
import logging
import math
import re

from django.conf import settings
from django.core.paginator import Paginator
from django.http import JsonResponse

from .exceptions import NotFound, ValidationFailed

logger = logging.getLogger(__name__)

_UPPER_RE = re.compile(r'(?<!^)(?=[A-Z])')


def to_camel(name):
    """student_id -> studentId"""
    head, *rest = name.split('_')
    return head + ''.join(part[:1].upper() + part[1:] for part in rest)


def to_snake(name):
    """studentId -> student_id"""
    return _UPPER_RE.sub('_', name).lower()


def camelize(data):
    if isinstance(data, dict):
        return {
            to_camel(key) if isinstance(key, str) else key: camelize(value)
            for key, value in data.items()
        }
    if isinstance(data, (list, tuple)):
        return [camelize(item) for item in data]
    return data


def decamelize(data):
    if isinstance(data, dict):
        return {
            to_snake(key) if isinstance(key, str) else key: decamelize(value)
            for key, value in data.items()
        }
    if isinstance(data, list):
        return [decamelize(item) for item in data]
    return data


def api_response(data, status=200):
    """Return ``data`` as a camelCase JSON response."""
    return JsonResponse(camelize(data), status=status, safe=False)


def error_response(message, status, errors=None):
    payload = {'message': message}
    if errors:
        payload['errors'] = errors
    return JsonResponse(camelize(payload), status=status)


def parse_json_body(request):
    """
    Decode a JSON object request body into a snake_case dict.

    Raises:
        ValidationFailed: body is not a JSON object
    """
    if not request.body:
        return {}
    try:
        data = json.loads(request.body)
    except (ValueError, UnicodeDecodeError):
        raise ValidationFailed('Request body must be valid JSON')
    if not isinstance(data, dict):
        raise ValidationFailed('Request body must be a JSON object')
    return decamelize(data)


def get_or_404(queryset_or_model, message, **lookup):
    """Fetch a single object or raise NotFound with a readable message."""
    queryset = getattr(queryset_or_model, 'objects', queryset_or_model)
    try:
        return queryset.get(**lookup)
    except (queryset.model.DoesNotExist, ValueError):
        raise NotFound(message)


def _positive_int(value, default):
    try:
        number = int(value)
    except (TypeError, ValueError):
        return default
    return number if number > 0 else default


def paginate(request, queryset):
    """
    Slice ``queryset`` using the ``page`` and ``limit`` query parameters.

    Returns:
        tuple: (list of objects on the page, pagination metadata dict)
    """
    default_size = getattr(settings, 'API_DEFAULT_PAGE_SIZE', 10)
    max_size = getattr(settings, 'API_MAX_PAGE_SIZE', 100)
    limit = min(_positive_int(request.GET.get('limit'), default_size), max_size)
    page_number = _positive_int(request.GET.get('page'), 1)

    paginator = Paginator(queryset, limit)
    total = paginator.count
    if page_number <= paginator.num_pages:
        items = list(paginator.page(page_number).object_list)
    else:
        items = []

    return items, {
        'total_pages': math.ceil(total / limit),
        'current_page': page_number,
        'total': total,
    }


def query_int(request, name):
    """Optional integer query parameter; ValidationFailed when malformed."""
    value = request.GET.get(name, '').strip()
    if not value:
        return None
    try:
        return int(value)
    except ValueError:
        raise ValidationFailed(f'{name} must be an integer', errors={name: ['Enter a whole number.']})
