"""Test (assessment) CRUD endpoints."""
import logging

from django.views.decorators.http import require_http_methods

from core.api import api_response, paginate, parse_json_body, query_int
from core.exceptions import Forbidden
from core.forms import bind_partial, validated
from core.permissions import api_login_required, is_admin, is_teacher, is_teacher_or_admin

from ..forms import TestForm
from ..models import Test
from ..services import delete_test, update_test
from .base import (
    ensure_can_manage_test, ensure_can_view_test, get_test_or_404,
    serialize_test, teaches,
)

logger = logging.getLogger(__name__)


def _require_teacher_or_admin(user):
    if not is_teacher_or_admin(user):
        raise Forbidden('Teacher or Admin access required')


@require_http_methods(["GET", "POST"])
@api_login_required
def test_list(request):
    if request.method == 'POST':
        return _create_test(request)

    tests = (
        Test.objects.visible_to(request.user)
        .select_related('subject', 'created_by')
        .order_by('-test_date', '-pk')
    )
    subject_id = query_int(request, 'subject')
    if subject_id:
        tests = tests.filter(subject_id=subject_id)
    test_type = request.GET.get('testType') or request.GET.get('test_type')
    if test_type:
        tests = tests.filter(test_type=test_type)

    page, meta = paginate(request, tests)
    return api_response({'tests': [serialize_test(t) for t in page], **meta})


def _create_test(request):
    _require_teacher_or_admin(request.user)
    form = TestForm(data=parse_json_body(request))
    cleaned = validated(form)

    if is_teacher(request.user) and not teaches(request.user, cleaned['subject']):
        raise Forbidden('You can only create tests for your subjects')

    test = form.save(commit=False)
    test.created_by = request.user
    test.save()
    logger.info(f"Test {test.pk} '{test.title}' created by {request.user.email}")
    return api_response({
        'message': 'Test created successfully',
        'test': serialize_test(test),
    }, status=201)


@require_http_methods(["GET", "PUT", "DELETE"])
@api_login_required
def test_detail(request, pk):
    if request.method == 'GET':
        test = get_test_or_404(pk)
        ensure_can_view_test(request.user, test)
        return api_response({'test': serialize_test(test)})

    _require_teacher_or_admin(request.user)

    if request.method == 'DELETE':
        hard = request.GET.get('hard', '').lower() == 'true'
        if hard and not is_admin(request.user):
            raise Forbidden('Only admins can permanently delete tests')
        test = get_test_or_404(pk, include_inactive=hard)
        ensure_can_manage_test(request.user, test, action='delete')
        delete_test(test, hard=hard)
        return api_response({'message': 'Test deleted successfully'})

    test = get_test_or_404(pk)
    ensure_can_manage_test(request.user, test, action='update')
    data = parse_json_body(request)
    form = bind_partial(TestForm, test, data)
    cleaned = validated(form)

    if (is_teacher(request.user) and cleaned['subject'].pk != test.subject_id
            and not teaches(request.user, cleaned['subject'])):
        raise Forbidden('You can only create tests for your subjects')

    changes = {name: cleaned[name] for name in TestForm.Meta.fields if name in cleaned}
    # is_valid() writes onto the instance; reload the stored values first
    test.refresh_from_db()
    test = update_test(test, changes)
    logger.info(f"Test {test.pk} updated by {request.user.email}")
    return api_response({
        'message': 'Test updated successfully',
        'test': serialize_test(test),
    })
