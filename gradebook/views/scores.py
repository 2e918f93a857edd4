"""Marks submission and per-test result listings."""
import logging

from django.views.decorators.http import require_GET, require_POST
from django_ratelimit.decorators import ratelimit

from core.api import api_response, paginate, parse_json_body
from core.forms import validated
from core.permissions import teacher_or_admin_required

from ..aggregation import (
    grade_distribution, pass_rate, performance_distribution, records_from, student_summary,
)
from ..forms import MarksSubmissionForm
from ..services import submit_marks
from .base import ensure_can_grade_test, ensure_can_view_test, get_test_or_404, serialize_result

logger = logging.getLogger(__name__)


def submission_response(outcome, entry_errors=()):
    """Shape a SubmissionOutcome as {message, results, errors}."""
    errors = list(entry_errors) + [
        {'student_id': failure['student_id'], 'error': failure['reason']}
        for failure in outcome.failed
    ]
    return api_response({
        'message': 'Marks submitted successfully',
        'results': len(outcome.applied),
        'errors': errors,
    })


@require_POST
@teacher_or_admin_required
@ratelimit(key='user', rate='200/h', block=True)
def submit_test_marks(request, pk):
    """
    Record marks for a test.

    Body: {"marks": [{"studentId": 1, "marksObtained": 85, "remarks": "..."}]}
    """
    test = get_test_or_404(pk)
    ensure_can_grade_test(request.user, test)

    form = MarksSubmissionForm(data=parse_json_body(request))
    validated(form, 'Marks array is required')
    outcome = submit_marks(test.pk, form.entries, request.user)
    return submission_response(outcome, form.entry_errors)


@require_GET
@teacher_or_admin_required
def test_results(request, pk):
    """Paginated results of one test with summary statistics over all of them."""
    test = get_test_or_404(pk)
    ensure_can_view_test(request.user, test)

    results = test.results.current().with_related().order_by('-marks_obtained', 'student_id')
    page, meta = paginate(request, results)
    records = records_from(results)

    return api_response({
        'results': [serialize_result(r) for r in page],
        **meta,
        'test': {
            'id': test.pk,
            'title': test.title,
            'max_marks': test.max_marks,
            'passing_marks': test.passing_marks,
            'subject': test.subject.name,
        },
        'summary': {**student_summary(records), 'pass_rate': pass_rate(records)},
        'distribution': performance_distribution(records),
        'grade_distribution': grade_distribution(records),
    })
