"""Student directory and per-student results."""
import logging

from django.contrib.auth import get_user_model
from django.db.models import Q
from django.views.decorators.http import require_GET

from accounts.views import serialize_user
from core.api import api_response, get_or_404, paginate, query_int
from core.exceptions import Forbidden
from core.permissions import api_login_required, is_teacher_or_admin, student_required, teacher_or_admin_required
from gradebook.aggregation import (
    marks_weighted_percentage, pass_rate, records_from, student_summary, subject_performance,
)
from gradebook.models import TestResult
from gradebook.views.base import serialize_result

logger = logging.getLogger(__name__)

User = get_user_model()


@require_GET
@teacher_or_admin_required
def student_list(request):
    """Active students, filterable by department, year and a search term."""
    students = User.objects.active().students().order_by('name', 'pk')

    department = request.GET.get('department', '').strip()
    if department:
        students = students.filter(department=department)
    year = query_int(request, 'year')
    if year:
        students = students.filter(year=year)
    search = request.GET.get('search', '').strip()
    if search:
        students = students.filter(
            Q(name__icontains=search) |
            Q(email__icontains=search) |
            Q(roll_number__icontains=search)
        )

    page, meta = paginate(request, students)
    return api_response({'students': [serialize_user(s) for s in page], **meta})


@require_GET
@api_login_required
def student_detail(request, pk):
    """One active student; students may only read their own record."""
    if not is_teacher_or_admin(request.user) and request.user.pk != pk:
        raise Forbidden('Access denied')
    student = get_or_404(User.objects.active().students(), 'Student not found', pk=pk)
    return api_response({
        'message': 'Student retrieved successfully',
        'student': serialize_user(student),
    })


@require_GET
@student_required
def my_results(request):
    """The signed-in student's results on published tests, newest first."""
    results = (
        TestResult.objects.filter_for(
            student=request.user,
            subject=query_int(request, 'subject'),
            test_type=request.GET.get('testType') or request.GET.get('test_type'),
        )
        .filter(test__is_published=True)
        .with_related()
        .order_by('-submitted_at', '-pk')
    )
    page, meta = paginate(request, results)
    return api_response({
        'results': [serialize_result(r, include_test=True) for r in page],
        **meta,
    })


@require_GET
@teacher_or_admin_required
def student_performance(request, pk):
    """Full performance report of one student for teachers and admins."""
    student = get_or_404(User.objects.students(), 'Student not found', pk=pk)
    results = list(
        TestResult.objects.filter_for(student=student).with_related()
        .order_by('-submitted_at', '-pk')
    )
    records = records_from(results)

    return api_response({
        'student': serialize_user(student),
        'summary': student_summary(records),
        'overall_percentage': marks_weighted_percentage(records),
        'pass_rate': pass_rate(records),
        'subject_performance': subject_performance(records),
        'overall_results': [serialize_result(r, include_test=True) for r in results],
    })
