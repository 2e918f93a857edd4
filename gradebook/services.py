"""
Writing graded results.

submit_marks is the single entry point for recording marks: each entry is
validated and upserted on (test, student) independently, so one bad entry
never blocks the rest of a batch.
"""
import logging
from dataclasses import dataclass, field
from decimal import ROUND_HALF_UP, Decimal
from typing import List, Optional

from django.contrib.auth import get_user_model
from django.core.exceptions import ValidationError
from django.db import transaction
from django.db.models import Max
from django.utils import timezone

from core.exceptions import AcademicRecordsError, NotFound, StudentNotFound, ValidationFailed

from . import config
from .grading import to_decimal
from .models import DERIVED_FIELDS, Test, TestResult

logger = logging.getLogger(__name__)

MARKING_FIELDS = ('max_marks', 'passing_marks')
TWO_PLACES = Decimal('0.01')


@dataclass(frozen=True)
class MarkEntry:
    student_id: int
    marks_obtained: Decimal
    remarks: str = ''


@dataclass
class SubmissionOutcome:
    applied: List[TestResult] = field(default_factory=list)
    failed: List[dict] = field(default_factory=list)


def _load_student(student_id):
    User = get_user_model()
    try:
        return User.objects.active().students().get(pk=student_id)
    except (User.DoesNotExist, ValueError, TypeError):
        raise StudentNotFound(f"Student {student_id} not found")


def _validate_marks(test, marks_obtained):
    marks = to_decimal(marks_obtained).quantize(TWO_PLACES, rounding=ROUND_HALF_UP)
    if marks < 0:
        raise ValidationFailed(
            'Marks cannot be negative',
            errors={'marks_obtained': ['Marks cannot be negative']}
        )
    if marks > test.max_marks:
        message = f'Marks cannot exceed maximum marks ({test.max_marks})'
        raise ValidationFailed(message, errors={'marks_obtained': [message]})
    return marks


def upsert_result(test, student, marks_obtained, remarks='', graded_by=None):
    """
    Create or update the (test, student) result.

    update_or_create locks an existing row; a concurrent insert that loses
    the race on the unique constraint is retried as an update.

    Returns:
        tuple: (TestResult, created)
    """
    marks = _validate_marks(test, marks_obtained)
    with transaction.atomic():
        result, created = TestResult.objects.update_or_create(
            test=test,
            student=student,
            defaults={
                'marks_obtained': marks,
                'remarks': remarks or '',
                'graded_by': graded_by,
                'graded_at': timezone.now(),
            },
        )
    return result, created


def submit_marks(test_id, entries, graded_by):
    """
    Record a batch of marks for one test.

    Raises:
        NotFound: the test does not exist or was deleted

    Returns:
        SubmissionOutcome with the applied results and per-entry failures
    """
    try:
        test = Test.objects.active().select_related('subject').get(pk=test_id)
    except (Test.DoesNotExist, ValueError, TypeError):
        raise NotFound('Test not found')

    outcome = SubmissionOutcome()
    created_count = 0
    for entry in entries:
        try:
            with transaction.atomic():
                student = _load_student(entry.student_id)
                result, created = upsert_result(
                    test, student, entry.marks_obtained, entry.remarks, graded_by
                )
        except AcademicRecordsError as e:
            logger.warning(f"Mark for student {entry.student_id} on test {test.pk} rejected: {e.message}")
            outcome.failed.append({'student_id': entry.student_id, 'reason': e.message})
        except ValidationError as e:
            reason = '; '.join(e.messages)
            logger.warning(f"Mark for student {entry.student_id} on test {test.pk} rejected: {reason}")
            outcome.failed.append({'student_id': entry.student_id, 'reason': reason})
        else:
            created_count += created
            outcome.applied.append(result)

    logger.info(
        f"Marks submitted for test {test.pk} by {graded_by}: "
        f"{len(outcome.applied)} applied ({created_count} new), {len(outcome.failed)} failed"
    )
    return outcome


def regrade_test_results(test, policy=None):
    """Re-derive percentage, grade and pass flag for every result of ``test``."""
    results = list(test.results.all())
    for result in results:
        result.test = test
        result.apply_grade(policy)
    TestResult.objects.bulk_update(
        results, DERIVED_FIELDS, batch_size=config.BULK_UPDATE_BATCH_SIZE
    )
    logger.info(f"Re-graded {len(results)} results for test {test.pk}")
    return len(results)


@transaction.atomic
def update_test(test, changes):
    """
    Apply validated field changes to ``test``.

    Lowering max_marks below the best stored marks is rejected. Results are
    re-graded when max_marks or passing_marks change.
    """
    new_max = changes.get('max_marks', test.max_marks)
    if new_max < test.max_marks:
        best = test.results.aggregate(best=Max('marks_obtained'))['best']
        if best is not None and best > new_max:
            message = f'Maximum marks cannot be lower than an existing result ({best})'
            raise ValidationFailed(message, errors={'max_marks': [message]})

    marking_changed = any(
        name in changes and changes[name] != getattr(test, name) for name in MARKING_FIELDS
    )
    for name, value in changes.items():
        setattr(test, name, value)
    test.save()

    if marking_changed:
        regrade_test_results(test)
    return test


def delete_test(test, hard=False):
    """Soft delete by default; a hard delete cascades to the test's results."""
    if hard:
        test_id = test.pk
        test.delete()
        logger.info(f"Test {test_id} deleted permanently")
        return
    test.is_active = False
    test.save(update_fields=['is_active', 'updated_at'])
    logger.info(f"Test {test.pk} deactivated")


def find_student_by_roll_number(roll_number) -> Optional[int]:
    User = get_user_model()
    return (
        User.objects.active().students()
        .filter(roll_number=str(roll_number).strip().upper())
        .values_list('pk', flat=True)
        .first()
    )
