"""Subject endpoints: read access for every user, management for admins."""
import logging

from django.db import transaction
from django.db.models import Q
from django.views.decorators.http import require_GET, require_http_methods

from core.api import api_response, get_or_404, paginate, parse_json_body
from core.forms import bind_partial, validated
from core.permissions import admin_required, api_login_required

from ..forms import SubjectForm
from ..models import Subject
from ..services import assign_teachers, detach_subject

logger = logging.getLogger(__name__)


def serialize_subject(subject, include_teachers=True):
    data = {
        'id': subject.pk,
        'name': subject.name,
        'code': subject.code,
        'description': subject.description,
        'department': subject.department,
        'credits': subject.credits,
        'is_active': subject.is_active,
        'created_by': subject.created_by.name if subject.created_by else None,
        'created_at': subject.created_at,
    }
    if include_teachers:
        data['teachers'] = [
            {'id': t.pk, 'name': t.name, 'email': t.email, 'employee_id': t.employee_id}
            for t in subject.teachers.all()
        ]
    return data


def _filtered_subjects(request):
    subjects = (
        Subject.objects.active()
        .select_related('created_by')
        .prefetch_related('teachers')
        .order_by('-created_at', '-pk')
    )
    department = request.GET.get('department')
    if department:
        subjects = subjects.filter(department=department)
    search = request.GET.get('search', '').strip()
    if search:
        subjects = subjects.filter(Q(name__icontains=search) | Q(code__icontains=search))
    return subjects


def _subject_page(request):
    page, meta = paginate(request, _filtered_subjects(request))
    return api_response({'subjects': [serialize_subject(s) for s in page], **meta})


@require_GET
@api_login_required
def subject_list(request):
    return _subject_page(request)


@require_GET
@api_login_required
def subject_detail(request, pk):
    subject = get_or_404(
        Subject.objects.select_related('created_by').prefetch_related('teachers'),
        'Subject not found', pk=pk
    )
    return api_response({'subject': serialize_subject(subject)})


@require_http_methods(["GET", "POST"])
@admin_required
def admin_subjects(request):
    if request.method == 'GET':
        return _subject_page(request)

    data = parse_json_body(request)
    form = SubjectForm(data=data)
    cleaned = validated(form)
    with transaction.atomic():
        subject = form.save(commit=False)
        subject.created_by = request.user
        subject.save()
        if cleaned['teachers']:
            assign_teachers(subject, cleaned['teachers'])
    logger.info(f"Subject {subject.code} created by {request.user.email}")
    return api_response({
        'message': 'Subject created successfully',
        'subject': serialize_subject(subject),
    }, status=201)


@require_http_methods(["PUT", "DELETE"])
@admin_required
def admin_subject_detail(request, pk):
    subject = get_or_404(Subject, 'Subject not found', pk=pk)

    if request.method == 'DELETE':
        with transaction.atomic():
            subject.is_active = False
            subject.save(update_fields=['is_active', 'updated_at'])
            detach_subject(subject)
        logger.info(f"Subject {subject.code} deactivated by {request.user.email}")
        return api_response({'message': 'Subject deleted successfully'})

    data = parse_json_body(request)
    form = bind_partial(SubjectForm, subject, data)
    cleaned = validated(form)
    with transaction.atomic():
        subject = form.save()
        if 'teachers' in data:
            assign_teachers(subject, cleaned['teachers'])
    logger.info(f"Subject {subject.code} updated by {request.user.email}")
    return api_response({
        'message': 'Subject updated successfully',
        'subject': serialize_subject(subject),
    })
