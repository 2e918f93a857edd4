"""
Grade calculation.

Converts raw marks into a percentage, a letter grade and a pass flag. The
boundary table and pass rule come from a GradingPolicy, by default built
from the GRADEBOOK_ settings (see gradebook.config).
"""
from decimal import Decimal, InvalidOperation
from typing import NamedTuple

from django.core.exceptions import ImproperlyConfigured

from core.choices import Grade
from core.exceptions import DivisionInvalid, ValidationFailed

PASS_RULE_MARKS = 'marks'
PASS_RULE_PERCENTAGE = 'percentage'


class GradeOutcome(NamedTuple):
    percentage: float
    grade: str
    passed: bool


def to_decimal(value, field='marks_obtained'):
    """Exact Decimal for ints, Decimals, numeric strings and floats."""
    if isinstance(value, bool):
        raise ValidationFailed(errors={field: ['Must be a number']})
    if isinstance(value, Decimal):
        number = value
    else:
        try:
            number = Decimal(str(value))
        except (InvalidOperation, TypeError, ValueError):
            raise ValidationFailed(errors={field: ['Must be a number']})
    if not number.is_finite():
        raise ValidationFailed(errors={field: ['Must be a finite number']})
    return number


class GradingPolicy:
    """
    A boundary table plus a pass rule.

    ``boundaries`` is a sequence of (minimum percentage, grade) pairs,
    strictly descending; any percentage below the last threshold is F.
    """

    def __init__(self, boundaries, pass_rule=PASS_RULE_MARKS, pass_percentage=40):
        self.boundaries = self._validate_boundaries(boundaries)
        if pass_rule not in (PASS_RULE_MARKS, PASS_RULE_PERCENTAGE):
            raise ImproperlyConfigured(f"Unknown pass rule: {pass_rule!r}")
        self.pass_rule = pass_rule
        self.pass_percentage = Decimal(str(pass_percentage))

    @classmethod
    def from_settings(cls):
        from . import config
        return cls(config.GRADE_BOUNDARIES, config.PASS_RULE, config.PASS_PERCENTAGE)

    @staticmethod
    def _validate_boundaries(boundaries):
        table = []
        previous = None
        for threshold, grade in boundaries:
            threshold = Decimal(str(threshold))
            if grade not in Grade.values or grade == Grade.F:
                raise ImproperlyConfigured(f"Invalid grade label in boundaries: {grade!r}")
            if not Decimal(0) <= threshold <= Decimal(100):
                raise ImproperlyConfigured(f"Grade threshold out of range: {threshold}")
            if previous is not None and threshold >= previous:
                raise ImproperlyConfigured("Grade thresholds must be strictly descending")
            table.append((threshold, grade))
            previous = threshold
        if not table:
            raise ImproperlyConfigured("Grade boundaries cannot be empty")
        return tuple(table)

    def grade_for(self, percentage):
        percentage = to_decimal(percentage, field='percentage')
        for threshold, grade in self.boundaries:
            if percentage >= threshold:
                return grade
        return Grade.F.value

    def is_passing(self, marks_obtained, passing_marks, percentage):
        if self.pass_rule == PASS_RULE_PERCENTAGE:
            return to_decimal(percentage, field='percentage') >= self.pass_percentage
        return to_decimal(marks_obtained) >= to_decimal(passing_marks, field='passing_marks')

    def compute(self, marks_obtained, max_marks, passing_marks):
        marks = to_decimal(marks_obtained)
        maximum = to_decimal(max_marks, field='max_marks')
        if maximum <= 0:
            raise DivisionInvalid()

        percentage = marks * 100 / maximum
        return GradeOutcome(
            percentage=float(percentage),
            grade=self.grade_for(percentage),
            passed=self.is_passing(marks, passing_marks, percentage),
        )


def compute_grade(marks_obtained, max_marks, passing_marks, policy=None):
    """
    Grade ``marks_obtained`` out of ``max_marks``.

    Raises:
        DivisionInvalid: max_marks is zero or negative
    """
    policy = policy or GradingPolicy.from_settings()
    return policy.compute(marks_obtained, max_marks, passing_marks)
