from django.conf import settings
from django.core.exceptions import ValidationError
from django.core.validators import MaxValueValidator, MinLengthValidator, MinValueValidator
from django.db import models

from academics.models import Subject
from core.choices import Grade, Role, TestType

from .grading import compute_grade

DERIVED_FIELDS = ('percentage', 'grade', 'is_passed')


class TestQuerySet(models.QuerySet):

    def active(self):
        return self.filter(is_active=True)

    def visible_to(self, user):
        """Active tests a user may list: admins all, teachers their subjects, students published."""
        tests = self.active()
        if user.is_superuser or user.role == Role.ADMIN:
            return tests
        if user.role == Role.TEACHER:
            return tests.filter(subject__teachers=user)
        return tests.filter(is_published=True, subject__is_active=True)


class Test(models.Model):
    """
    A graded assessment of one subject.

    Invariant: passing_marks <= max_marks, enforced by clean() and by a
    database check constraint.
    """
    title = models.CharField(
        max_length=100,
        validators=[MinLengthValidator(3)]
    )
    subject = models.ForeignKey(
        Subject,
        on_delete=models.PROTECT,
        related_name='tests'
    )
    test_type = models.CharField(
        max_length=20,
        choices=TestType.choices
    )
    max_marks = models.PositiveIntegerField(
        validators=[MinValueValidator(1), MaxValueValidator(1000)],
        help_text='Maximum obtainable marks (1-1000)'
    )
    passing_marks = models.PositiveIntegerField(
        help_text='Minimum marks to pass; cannot exceed max marks'
    )
    test_date = models.DateField(help_text='Date the test is administered')
    duration = models.PositiveIntegerField(
        default=60,
        validators=[MinValueValidator(1), MaxValueValidator(300)],
        help_text='Duration in minutes'
    )
    description = models.TextField(blank=True)
    instructions = models.TextField(blank=True)

    is_active = models.BooleanField(default=True)
    is_published = models.BooleanField(
        default=True,
        help_text='Visible to students'
    )
    created_by = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name='created_tests'
    )
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    objects = TestQuerySet.as_manager()

    class Meta:
        ordering = ['-test_date', '-created_at']
        verbose_name = 'Test'
        verbose_name_plural = 'Tests'
        constraints = [
            models.CheckConstraint(
                condition=models.Q(passing_marks__lte=models.F('max_marks')),
                name='test_passing_marks_lte_max_marks',
            ),
        ]
        indexes = [
            models.Index(fields=['subject', 'is_active'], name='test_subject_active_idx'),
            models.Index(fields=['test_date'], name='test_date_idx'),
        ]

    def __str__(self):
        return f"{self.title} ({self.subject.code})"

    def clean(self):
        super().clean()
        if (self.max_marks is not None and self.passing_marks is not None
                and self.passing_marks > self.max_marks):
            raise ValidationError({
                'passing_marks': 'Passing marks cannot exceed maximum marks'
            })


class TestResultQuerySet(models.QuerySet):

    def with_related(self):
        return self.select_related('test__subject', 'student', 'graded_by')

    def current(self):
        """Results of students who have not been removed."""
        return self.filter(student__is_active=True)

    def filter_for(self, student=None, subject=None, department=None, year=None,
                   date_from=None, date_to=None, test_type=None):
        """
        Results of active tests and active students, narrowed by any of the
        given filters.

        department and year select a cohort through the student's profile;
        dates apply to the test date.
        """
        results = self.current().filter(test__is_active=True)
        if student is not None:
            results = results.filter(student=student)
        if subject is not None:
            results = results.filter(test__subject=subject)
        if department:
            results = results.filter(student__department=department)
        if year:
            results = results.filter(student__year=year)
        if date_from:
            results = results.filter(test__test_date__gte=date_from)
        if date_to:
            results = results.filter(test__test_date__lte=date_to)
        if test_type:
            results = results.filter(test__test_type=test_type)
        return results


class TestResult(models.Model):
    """
    A student's graded result for one test. At most one per (test, student).

    percentage, grade and is_passed are derived from marks_obtained and the
    test's marking parameters on every save.
    """
    test = models.ForeignKey(
        Test,
        on_delete=models.CASCADE,
        related_name='results'
    )
    student = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.CASCADE,
        related_name='test_results'
    )
    marks_obtained = models.DecimalField(
        max_digits=6,
        decimal_places=2,
        validators=[MinValueValidator(0)]
    )
    percentage = models.FloatField(default=0)
    grade = models.CharField(
        max_length=2,
        choices=Grade.choices,
        default=Grade.F
    )
    is_passed = models.BooleanField(default=False)
    remarks = models.TextField(blank=True)

    graded_by = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name='graded_results'
    )
    graded_at = models.DateTimeField(null=True, blank=True)
    submitted_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    objects = TestResultQuerySet.as_manager()

    class Meta:
        ordering = ['-marks_obtained', 'student_id']
        verbose_name = 'Test Result'
        verbose_name_plural = 'Test Results'
        constraints = [
            models.UniqueConstraint(
                fields=['test', 'student'],
                name='unique_result_per_student_test',
            ),
        ]
        indexes = [
            models.Index(fields=['student', 'test'], name='result_student_test_idx'),
        ]

    def __str__(self):
        return f"{self.student} - {self.test.title}: {self.marks_obtained}"

    def clean(self):
        super().clean()
        if self.marks_obtained is not None and self.test_id:
            if self.marks_obtained > self.test.max_marks:
                raise ValidationError({
                    'marks_obtained': f'Marks cannot exceed maximum marks ({self.test.max_marks})'
                })

    def apply_grade(self, policy=None):
        """Recompute the derived fields from the current test parameters."""
        outcome = compute_grade(
            self.marks_obtained, self.test.max_marks, self.test.passing_marks, policy
        )
        self.percentage = outcome.percentage
        self.grade = outcome.grade
        self.is_passed = outcome.passed
        return outcome

    def save(self, *args, **kwargs):
        self.apply_grade()
        update_fields = kwargs.get('update_fields')
        if update_fields is not None:
            kwargs['update_fields'] = set(update_fields) | set(DERIVED_FIELDS)
        super().save(*args, **kwargs)
