import logging

from django.contrib.auth import get_user_model, login, logout, update_session_auth_hash
from django.db import transaction
from django.db.models import Q
from django.middleware.csrf import get_token
from django.views.decorators.csrf import ensure_csrf_cookie
from django.views.decorators.http import require_GET, require_http_methods, require_POST
from django_ratelimit.decorators import ratelimit

from academics.services import assign_subjects, detach_teacher
from core.api import api_response, error_response, get_or_404, paginate, parse_json_body
from core.choices import Role
from core.exceptions import Forbidden, ValidationFailed
from core.forms import bind_partial, validated
from core.permissions import admin_required, api_login_required

from .forms import (
    ChangePasswordForm, LoginForm, RegisterForm, TeacherCreateForm, UserCreateForm, UserUpdateForm,
)

logger = logging.getLogger(__name__)

User = get_user_model()


def serialize_user(user, include_subjects=False):
    data = {
        'id': user.pk,
        'name': user.name,
        'email': user.email,
        'role': user.role,
        'employee_id': user.employee_id,
        'roll_number': user.roll_number,
        'department': user.department,
        'year': user.year,
        'is_active': user.is_active,
        'date_joined': user.date_joined,
    }
    if include_subjects:
        data['subjects'] = [
            {'id': s.pk, 'name': s.name, 'code': s.code, 'department': s.department}
            for s in user.subjects.all()
        ]
    return data


def _search_users(queryset, search):
    if not search:
        return queryset
    return queryset.filter(
        Q(name__icontains=search) |
        Q(email__icontains=search) |
        Q(roll_number__icontains=search) |
        Q(employee_id__icontains=search)
    )


# ---------------------------------------------------------------------------
# Authentication
# ---------------------------------------------------------------------------

@require_GET
@ensure_csrf_cookie
def csrf(request):
    """Hand the CSRF token to API clients before their first unsafe request."""
    return api_response({'csrf_token': get_token(request)})


@require_POST
def register(request):
    form = RegisterForm(data=parse_json_body(request))
    validated(form)
    user = form.save()
    login(request, user)
    logger.info(f"Registered {user.role} {user.email}")
    return api_response({
        'message': 'User registered successfully',
        'user': serialize_user(user),
    }, status=201)


@require_POST
@ratelimit(key='ip', rate='10/m', block=True)
def login_view(request):
    data = parse_json_body(request)
    email = (data.get('email') or '').strip()
    password = data.get('password') or ''
    if not email or not password:
        raise ValidationFailed('Email and password are required')

    form = LoginForm(request, data={'username': email, 'password': password})
    if not form.is_valid():
        logger.warning(f"Failed login for {email}")
        message = ' '.join(form.non_field_errors()) or 'Invalid email or password'
        return error_response(message, status=401)

    user = form.get_user()
    login(request, user)
    logger.info(f"User {user.email} logged in")
    return api_response({
        'message': 'Login successful',
        'user': serialize_user(user, include_subjects=user.role == Role.TEACHER),
    })


@require_POST
def logout_view(request):
    logout(request)
    return api_response({'message': 'Logged out successfully'})


@require_GET
@api_login_required
def me(request):
    user = request.user
    return api_response({'user': serialize_user(user, include_subjects=user.role == Role.TEACHER)})


@require_POST
@api_login_required
def change_password(request):
    form = ChangePasswordForm(request.user, parse_json_body(request))
    if not form.is_valid():
        raise ValidationFailed(errors=form.api_errors())
    user = form.save()
    # Keep the current session signed in after the hash changes
    update_session_auth_hash(request, user)
    logger.info(f"User {user.email} changed their password")
    return api_response({'message': 'Password changed successfully'})


# ---------------------------------------------------------------------------
# Admin: users and teachers
# ---------------------------------------------------------------------------

def _create_user(request):
    form = UserCreateForm(data=parse_json_body(request))
    cleaned = validated(form)
    with transaction.atomic():
        user = form.save()
        if user.role == Role.TEACHER and cleaned['subjects']:
            assign_subjects(user, cleaned['subjects'])
    logger.info(f"User {user.email} ({user.role}) created by {request.user.email}")
    return api_response({
        'message': 'User created successfully',
        'user': serialize_user(user, include_subjects=user.role == Role.TEACHER),
    }, status=201)


@require_http_methods(["GET", "POST"])
@admin_required
def admin_users(request):
    if request.method == 'POST':
        return _create_user(request)

    users = User.objects.active().order_by('-date_joined', '-pk').prefetch_related('subjects')
    role = request.GET.get('role')
    if role:
        users = users.filter(role=role)
    department = request.GET.get('department')
    if department:
        users = users.filter(department=department)
    users = _search_users(users, request.GET.get('search', '').strip())

    page, meta = paginate(request, users)
    return api_response({
        'users': [serialize_user(u, include_subjects=u.role == Role.TEACHER) for u in page],
        **meta,
    })


@require_http_methods(["PUT", "DELETE"])
@admin_required
def admin_user_detail(request, pk):
    user = get_or_404(User, 'User not found', pk=pk)

    if request.method == 'DELETE':
        if user.is_admin:
            raise Forbidden('Cannot delete admin users')
        with transaction.atomic():
            user.is_active = False
            user.save(update_fields=['is_active', 'updated_at'])
            detach_teacher(user)
        logger.info(f"User {user.email} deactivated by {request.user.email}")
        return api_response({'message': 'User deleted successfully'})

    data = parse_json_body(request)
    form = bind_partial(UserUpdateForm, user, data)
    cleaned = validated(form)
    with transaction.atomic():
        user = form.save()
        if user.role == Role.TEACHER and user.is_active:
            if 'subjects' in data:
                assign_subjects(user, cleaned['subjects'])
        else:
            detach_teacher(user)
    logger.info(f"User {user.email} updated by {request.user.email}")
    return api_response({
        'message': 'User updated successfully',
        'user': serialize_user(user, include_subjects=user.role == Role.TEACHER),
    })


@require_http_methods(["GET", "POST"])
@admin_required
def admin_teachers(request):
    if request.method == 'POST':
        form = TeacherCreateForm(data=parse_json_body(request))
        cleaned = validated(form)
        with transaction.atomic():
            teacher = form.save()
            if cleaned['subjects']:
                assign_subjects(teacher, cleaned['subjects'])
        logger.info(f"Teacher {teacher.email} created by {request.user.email}")
        return api_response({
            'message': 'Teacher created successfully',
            'teacher': serialize_user(teacher, include_subjects=True),
        }, status=201)

    teachers = User.objects.active().teachers().prefetch_related('subjects').order_by('name', 'pk')
    teachers = _search_users(teachers, request.GET.get('search', '').strip())
    page, meta = paginate(request, teachers)
    return api_response({
        'teachers': [serialize_user(t, include_subjects=True) for t in page],
        **meta,
    })
