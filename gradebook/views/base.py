"""Shared access checks and serializers for gradebook views."""
import logging

from core.api import get_or_404
from core.exceptions import Forbidden
from core.permissions import is_admin, is_student, is_teacher

from ..models import Test

logger = logging.getLogger(__name__)


def teaches(user, subject):
    """Check if ``user`` is one of the subject's assigned teachers."""
    return subject.teachers.filter(pk=user.pk).exists()


def get_test_or_404(pk, include_inactive=False):
    tests = Test.objects.select_related('subject', 'created_by')
    if not include_inactive:
        tests = tests.active()
    return get_or_404(tests, 'Test not found', pk=pk)


def ensure_can_view_test(user, test):
    """
    Admins see every test, teachers the tests of subjects they teach,
    students published tests.
    """
    if is_admin(user):
        return
    if is_teacher(user):
        if not teaches(user, test.subject):
            raise Forbidden('Access denied')
        return
    if is_student(user) and test.is_published:
        return
    raise Forbidden('Access denied')


def ensure_can_grade_test(user, test):
    """Admins grade any test; teachers only tests of subjects they teach."""
    if is_admin(user):
        return
    if not (is_teacher(user) and teaches(user, test.subject)):
        raise Forbidden('You can only grade tests for your subjects')


def ensure_can_manage_test(user, test, action='update'):
    """Admins manage any test; teachers only the tests they created."""
    if is_admin(user):
        return
    if test.created_by_id != user.pk:
        raise Forbidden(f'You can only {action} your own tests')


def serialize_test(test):
    subject = test.subject
    return {
        'id': test.pk,
        'title': test.title,
        'subject': {
            'id': subject.pk,
            'name': subject.name,
            'code': subject.code,
            'department': subject.department,
        },
        'test_type': test.test_type,
        'max_marks': test.max_marks,
        'passing_marks': test.passing_marks,
        'test_date': test.test_date,
        'duration': test.duration,
        'description': test.description,
        'instructions': test.instructions,
        'is_active': test.is_active,
        'is_published': test.is_published,
        'created_by': (
            {'id': test.created_by.pk, 'name': test.created_by.name}
            if test.created_by else None
        ),
        'created_at': test.created_at,
    }


def serialize_result(result, include_test=False):
    student = result.student
    data = {
        'id': result.pk,
        'test_id': result.test_id,
        'student': {
            'id': student.pk,
            'name': student.name,
            'roll_number': student.roll_number,
            'department': student.department,
            'year': student.year,
        },
        'marks_obtained': float(result.marks_obtained),
        'percentage': result.percentage,
        'grade': result.grade,
        'is_passed': result.is_passed,
        'remarks': result.remarks,
        'graded_by': result.graded_by.name if result.graded_by else None,
        'graded_at': result.graded_at,
        'submitted_at': result.submitted_at,
    }
    if include_test:
        test = result.test
        data['test'] = {
            'id': test.pk,
            'title': test.title,
            'test_type': test.test_type,
            'max_marks': test.max_marks,
            'passing_marks': test.passing_marks,
            'test_date': test.test_date,
            'subject': {'id': test.subject.pk, 'name': test.subject.name, 'code': test.subject.code},
        }
    return data
