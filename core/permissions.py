"""Role checks and view decorators for the JSON API."""
from functools import wraps

from .api import error_response
from .choices import Role
from .exceptions import Forbidden


def is_admin(user):
    """Check if user is an administrator or superuser."""
    return user.is_authenticated and (
        user.is_superuser or getattr(user, 'role', None) == Role.ADMIN
    )


def is_teacher(user):
    return user.is_authenticated and getattr(user, 'role', None) == Role.TEACHER


def is_student(user):
    return user.is_authenticated and getattr(user, 'role', None) == Role.STUDENT


def is_teacher_or_admin(user):
    """Check if user is a teacher, administrator, or superuser."""
    return is_admin(user) or is_teacher(user)


def api_login_required(view_func):
    """Reject anonymous requests with a 401 JSON response."""
    @wraps(view_func)
    def wrapper(request, *args, **kwargs):
        if not request.user.is_authenticated:
            return error_response('Authentication required', status=401)
        return view_func(request, *args, **kwargs)
    return wrapper


def _role_gate(check, message):
    def decorator(view_func):
        @wraps(view_func)
        def wrapper(request, *args, **kwargs):
            if not request.user.is_authenticated:
                return error_response('Authentication required', status=401)
            if not check(request.user):
                raise Forbidden(message)
            return view_func(request, *args, **kwargs)
        return wrapper
    return decorator


admin_required = _role_gate(is_admin, 'Admin access required')
teacher_or_admin_required = _role_gate(is_teacher_or_admin, 'Teacher or Admin access required')
student_required = _role_gate(is_student, 'Student access required')
