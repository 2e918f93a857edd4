"""
Teacher <-> subject assignment.

Both directions of the relation are one join table (Subject.teachers /
user.subjects), so every change here is a single set of row edits inside
one transaction. ``reconcile_subject_teachers`` repairs links left behind
by direct data edits.
"""
import logging

from django.contrib.auth import get_user_model
from django.db import transaction
from django.db.models import Q

from core.choices import Role
from core.exceptions import ValidationFailed

from .models import Subject

logger = logging.getLogger(__name__)


def _require_teacher(user):
    if user.role != Role.TEACHER:
        raise ValidationFailed(f"{user.email} is not a teacher")


@transaction.atomic
def assign_subjects(teacher, subject_ids):
    """Replace the teacher's subjects with ``subject_ids`` (active subjects only)."""
    _require_teacher(teacher)
    subjects = list(Subject.objects.active().filter(pk__in=subject_ids))
    missing = sorted(set(subject_ids) - {s.pk for s in subjects})
    if missing:
        raise ValidationFailed(
            'Unknown or inactive subjects',
            errors={'subjects': [f"Subject {pk} not found" for pk in missing]}
        )
    teacher.subjects.set(subjects)
    logger.info(f"Assigned {len(subjects)} subjects to teacher {teacher.pk}")
    return subjects


@transaction.atomic
def assign_teachers(subject, teacher_ids):
    """Replace the subject's teachers with ``teacher_ids`` (active teachers only)."""
    User = get_user_model()
    teachers = list(User.objects.active().teachers().filter(pk__in=teacher_ids))
    missing = sorted(set(teacher_ids) - {t.pk for t in teachers})
    if missing:
        raise ValidationFailed(
            'Unknown or inactive teachers',
            errors={'teachers': [f"Teacher {pk} not found" for pk in missing]}
        )
    subject.teachers.set(teachers)
    logger.info(f"Assigned {len(teachers)} teachers to subject {subject.code}")
    return teachers


def detach_teacher(teacher):
    """Remove every subject link of a teacher (used on deactivation)."""
    removed = Subject.teachers.through.objects.filter(user=teacher).delete()[0]
    logger.info(f"Detached teacher {teacher.pk} from {removed} subjects")
    return removed


def detach_subject(subject):
    """Remove every teacher link of a subject (used on deactivation)."""
    removed = Subject.teachers.through.objects.filter(subject=subject).delete()[0]
    logger.info(f"Detached {removed} teachers from subject {subject.code}")
    return removed


@transaction.atomic
def reconcile_subject_teachers():
    """
    Delete links that point at inactive users, non-teachers, or inactive
    subjects.

    Returns:
        int: number of links removed
    """
    stale = Subject.teachers.through.objects.filter(
        Q(user__is_active=False) | ~Q(user__role=Role.TEACHER) | Q(subject__is_active=False)
    )
    removed = stale.delete()[0]
    if removed:
        logger.info(f"Reconciliation removed {removed} stale teacher-subject links")
    else:
        logger.debug("Reconciliation found no stale teacher-subject links")
    return removed
