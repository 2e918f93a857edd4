"""Role dashboards built on the performance aggregator."""
import logging

from django.contrib.auth import get_user_model
from django.utils import timezone
from django.views.decorators.http import require_GET
from django_ratelimit.decorators import ratelimit

from academics.models import Subject
from academics.views import serialize_subject
from accounts.views import serialize_user
from core.api import api_response, error_response, get_or_404, query_int
from core.choices import Role
from core.exceptions import Forbidden, StudentNotFound, ValidationFailed
from core.permissions import admin_required, api_login_required, is_admin, is_teacher, teacher_or_admin_required

from .. import config
from ..aggregation import (
    cohort_statistics, marks_weighted_percentage, pass_rate, records_from,
    student_summary, subject_breakdown, trend_series,
)
from ..models import Test, TestResult
from .base import serialize_result, serialize_test

logger = logging.getLogger(__name__)

User = get_user_model()


def _upcoming(tests):
    return tests.filter(test_date__gte=timezone.localdate()).order_by('test_date', 'pk')


# ============ Role Routing ============

@require_GET
@api_login_required
def dashboard_home(request):
    """Tell the client which dashboard belongs to the current user."""
    user = request.user
    if is_admin(user):
        role, target = Role.ADMIN, '/api/dashboard/admin/'
    elif user.role == Role.TEACHER:
        role, target = Role.TEACHER, f'/api/dashboard/teacher/{user.pk}/'
    elif user.role == Role.STUDENT:
        role, target = Role.STUDENT, f'/api/dashboard/student/{user.pk}/'
    else:
        return error_response('Unknown user role', status=400)

    return api_response({
        'message': f'Redirecting to {role} dashboard',
        'redirect_to': target,
        'user_role': role,
    })


# ============ Student Dashboard ============

@require_GET
@api_login_required
@ratelimit(key='user', rate='60/h', block=True)
def student_dashboard(request, pk):
    """Performance overview of one student (admins, or the student themself)."""
    if not is_admin(request.user) and request.user.pk != pk:
        raise Forbidden('Access denied. You can only view your own dashboard.')

    student = User.objects.filter(pk=pk).first()
    if student is None:
        raise StudentNotFound()
    if student.role != Role.STUDENT:
        raise ValidationFailed('User is not a student')

    results = list(
        TestResult.objects.filter_for(student=student).with_related()
        .order_by('-graded_at', '-pk')
    )
    records = records_from(results)

    upcoming = _upcoming(
        Test.objects.active().filter(
            is_published=True,
            subject__is_active=True,
            subject__department=student.department,
        ).select_related('subject', 'created_by')
    )[:config.UPCOMING_TESTS_LIMIT]

    return api_response({
        'message': 'Student dashboard data retrieved successfully',
        'student': serialize_user(student),
        'summary': student_summary(records),
        'performance': {
            'overall_percentage': marks_weighted_percentage(records),
            'pass_rate': pass_rate(records),
            'total_tests': len(records),
            'passed_tests': sum(1 for r in records if r.is_passed),
        },
        'subject_averages': subject_breakdown(records),
        'trend_data': trend_series(records, config.TREND_LIMIT),
        'recent_results': [
            serialize_result(r, include_test=True) for r in results[:config.RECENT_ITEMS_LIMIT]
        ],
        'upcoming_tests': [serialize_test(t) for t in upcoming],
    })


# ============ Class (Cohort) Dashboard ============

@require_GET
@teacher_or_admin_required
@ratelimit(key='user', rate='60/h', block=True)
def class_dashboard(request):
    """
    Cohort statistics for a department, optionally narrowed to a year.

    Teachers only see results of the subjects they teach.
    """
    department = request.GET.get('department', '').strip()
    if not department:
        raise ValidationFailed('Department parameter is required')
    year = query_int(request, 'year')

    results = TestResult.objects.filter_for(department=department, year=year)
    tests = Test.objects.active().filter(subject__department=department)
    if is_teacher(request.user):
        results = results.filter(test__subject__teachers=request.user)
        tests = tests.filter(subject__teachers=request.user)
    records = records_from(results.with_related())

    students = User.objects.active().students().filter(department=department)
    if year:
        students = students.filter(year=year)

    stats = cohort_statistics(records, top_n=config.TOP_PERFORMERS_LIMIT)
    breakdown = stats.pop('performance_breakdown')
    return api_response({
        'message': 'Class performance data retrieved successfully',
        'department': department,
        'year': year,
        'class_stats': {
            **stats,
            'total_students': students.count(),
            'students_with_results': stats['total_students'],
            'total_tests': tests.count(),
        },
        'performance_breakdown': breakdown,
    })


# ============ Teacher Dashboard ============

@require_GET
@api_login_required
@ratelimit(key='user', rate='60/h', block=True)
def teacher_dashboard(request, pk):
    """Subjects, tests and result statistics of one teacher."""
    if not is_admin(request.user) and request.user.pk != pk:
        raise Forbidden('Access denied')

    teacher = get_or_404(User.objects.teachers(), 'Teacher not found', pk=pk)
    subjects = list(Subject.objects.active().taught_by(teacher).prefetch_related('teachers'))
    tests = (
        Test.objects.active().filter(created_by=teacher)
        .select_related('subject', 'created_by')
        .order_by('-test_date', '-pk')
    )
    departments = {s.department for s in subjects}
    records = records_from(
        TestResult.objects.filter_for()
        .filter(test__subject__in=subjects)
        .with_related()
    )
    upcoming = _upcoming(tests)

    return api_response({
        'message': 'Teacher dashboard data',
        'teacher': serialize_user(teacher),
        'stats': {
            'total_subjects': len(subjects),
            'total_tests': tests.count(),
            'total_students': User.objects.active().students().filter(department__in=departments).count(),
            'upcoming_tests': upcoming.count(),
            'graded_results': len(records),
            'average_performance': cohort_statistics(records)['average_performance'],
            'pass_rate': pass_rate(records),
        },
        'subjects': [serialize_subject(s) for s in subjects],
        'subject_performance': subject_breakdown(records),
        'recent_tests': [serialize_test(t) for t in tests[:config.RECENT_ITEMS_LIMIT]],
        'upcoming_tests': [serialize_test(t) for t in upcoming[:config.UPCOMING_TESTS_LIMIT]],
    })


# ============ Admin Dashboard ============

@require_GET
@admin_required
@ratelimit(key='user', rate='60/h', block=True)
def admin_dashboard(request):
    """Institution-wide counts, recent activity and overall performance."""
    active_users = User.objects.active()
    total_students = active_users.students().count()
    total_teachers = active_users.teachers().count()

    records = records_from(TestResult.objects.filter_for().with_related())
    overall = cohort_statistics(records, top_n=config.TOP_PERFORMERS_LIMIT)

    recent_users = active_users.order_by('-date_joined', '-pk')[:config.RECENT_ITEMS_LIMIT]
    recent_tests = (
        Test.objects.active().select_related('subject', 'created_by')
        .order_by('-created_at', '-pk')[:config.RECENT_ITEMS_LIMIT]
    )
    recent_results = (
        TestResult.objects.filter_for().with_related()
        .order_by('-graded_at', '-pk')[:config.RECENT_ITEMS_LIMIT]
    )

    return api_response({
        'message': 'Admin dashboard data',
        'stats': {
            'total_students': total_students,
            'total_teachers': total_teachers,
            'total_subjects': Subject.objects.active().count(),
            'total_tests': Test.objects.active().count(),
            'total_users': total_students + total_teachers,
            'total_results': len(records),
        },
        'performance': {
            'average_performance': overall['average_performance'],
            'pass_rate': overall['pass_rate'],
            'performance_breakdown': overall['performance_breakdown'],
            'top_performers': overall['top_performers'],
        },
        'recent_users': [serialize_user(u) for u in recent_users],
        'recent_tests': [serialize_test(t) for t in recent_tests],
        'recent_results': [serialize_result(r, include_test=True) for r in recent_results],
    })
