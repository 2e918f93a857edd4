"""
Performance aggregation over graded results.

All functions take a sequence of GradedRecord and are pure. Display
averages are rounded half-up to whole percentage points; highest and lowest
scores are reported at full precision.
"""
from collections import OrderedDict
from decimal import ROUND_HALF_UP, Decimal
from typing import NamedTuple, Optional

from core.choices import Grade

# Bucket floors, highest first; they coincide with the A+, B+ and C+ cutoffs
DISTRIBUTION_BUCKETS = (
    ('excellent', 90),
    ('good', 70),
    ('average', 50),
    ('needs_improvement', None),
)


class GradedRecord(NamedTuple):
    result_id: int
    student_id: int
    student_name: str
    test_id: int
    test_title: str
    test_date: object
    subject_id: int
    subject_name: str
    percentage: float
    grade: str
    is_passed: bool
    marks_obtained: Decimal
    max_marks: int
    graded_at: Optional[object] = None

    @classmethod
    def from_result(cls, result):
        """Build from a TestResult with test__subject and student loaded."""
        test = result.test
        return cls(
            result_id=result.pk,
            student_id=result.student_id,
            student_name=result.student.name,
            test_id=test.pk,
            test_title=test.title,
            test_date=test.test_date,
            subject_id=test.subject_id,
            subject_name=test.subject.name,
            percentage=result.percentage,
            grade=result.grade,
            is_passed=result.is_passed,
            marks_obtained=result.marks_obtained,
            max_marks=test.max_marks,
            graded_at=result.graded_at,
        )


def records_from(results):
    return [GradedRecord.from_result(result) for result in results]


def round_half_up(value, places=0):
    """Round half away from zero; 69.5 -> 70, 2.345 -> 2.35 (places=2)."""
    quantum = Decimal(1).scaleb(-places)
    rounded = Decimal(str(value)).quantize(quantum, rounding=ROUND_HALF_UP)
    return int(rounded) if places == 0 else float(rounded)


def _mean(values):
    values = list(values)
    if not values:
        return Decimal(0)
    return sum(Decimal(str(v)) for v in values) / len(values)


def student_summary(records):
    if not records:
        return {
            'total_tests': 0,
            'average_score': 0,
            'highest_score': 0,
            'lowest_score': 0,
            'passed_tests': 0,
            'failed_tests': 0,
        }

    percentages = [r.percentage for r in records]
    passed = sum(1 for r in records if r.is_passed)
    return {
        'total_tests': len(records),
        'average_score': round_half_up(_mean(percentages)),
        'highest_score': max(percentages),
        'lowest_score': min(percentages),
        'passed_tests': passed,
        'failed_tests': len(records) - passed,
    }


def _group(records, key):
    groups = OrderedDict()
    for record in records:
        groups.setdefault(key(record), []).append(record)
    return groups


def subject_breakdown(records):
    """Per subject: rounded mean percentage, test count and passed count."""
    breakdown = []
    for (subject_id, subject_name), group in _group(
            records, lambda r: (r.subject_id, r.subject_name)).items():
        breakdown.append({
            'subject_id': subject_id,
            'subject': subject_name,
            'average': round_half_up(_mean(r.percentage for r in group)),
            'total_tests': len(group),
            'passed_tests': sum(1 for r in group if r.is_passed),
        })
    breakdown.sort(key=lambda row: (row['subject'], row['subject_id']))
    return breakdown


def performance_distribution(records):
    """Count records per bucket: excellent >=90, good 70-89, average 50-69, below 50."""
    counts = OrderedDict((name, 0) for name, _ in DISTRIBUTION_BUCKETS)
    for record in records:
        percentage = Decimal(str(record.percentage))
        for name, floor in DISTRIBUTION_BUCKETS:
            if floor is None or percentage >= floor:
                counts[name] += 1
                break
    return dict(counts)


def grade_distribution(records):
    counts = OrderedDict((grade, 0) for grade in Grade.values)
    for record in records:
        counts[record.grade] = counts.get(record.grade, 0) + 1
    return dict(counts)


def rank_students(records, top_n=None):
    """
    Students ordered by exact mean percentage, highest first; ties go to the
    lowest student id. The reported average is rounded for display.
    """
    ranked = []
    for student_id, group in _group(records, lambda r: r.student_id).items():
        mean = _mean(r.percentage for r in group)
        ranked.append((mean, student_id, group))
    ranked.sort(key=lambda item: (-item[0], item[1]))
    if top_n is not None:
        ranked = ranked[:top_n]
    return [
        {
            'student_id': student_id,
            'student_name': group[0].student_name,
            'average': round_half_up(mean),
            'total_tests': len(group),
        }
        for mean, student_id, group in ranked
    ]


def pass_rate(records):
    """Share of passed records as a percentage, two decimal places."""
    if not records:
        return 0
    passed = sum(1 for r in records if r.is_passed)
    return round_half_up(Decimal(passed) * 100 / len(records), places=2)


def marks_weighted_percentage(records):
    """Total marks over total maximum marks, as a percentage with two places."""
    total_max = sum(Decimal(r.max_marks) for r in records)
    if not total_max:
        return 0
    total_marks = sum(Decimal(str(r.marks_obtained)) for r in records)
    return round_half_up(total_marks * 100 / total_max, places=2)


def cohort_statistics(records, top_n=5):
    """
    Aggregate view of a cohort's results.

    The average is taken over all results, so a student with more graded
    tests weighs more than one with fewer.
    """
    if not records:
        return {
            'total_results': 0,
            'total_students': 0,
            'average_performance': 0,
            'top_performers': [],
            'performance_breakdown': performance_distribution([]),
            'subject_averages': [],
            'pass_rate': 0,
        }

    return {
        'total_results': len(records),
        'total_students': len({r.student_id for r in records}),
        'average_performance': round_half_up(_mean(r.percentage for r in records)),
        'top_performers': rank_students(records, top_n),
        'performance_breakdown': performance_distribution(records),
        'subject_averages': subject_breakdown(records),
        'pass_rate': pass_rate(records),
    }


def _trend_key(record):
    graded = record.graded_at.timestamp() if record.graded_at else 0.0
    return (record.test_date, graded, record.result_id)


def trend_series(records, limit=None):
    """Chronological list (oldest first) of the latest ``limit`` results."""
    ordered = sorted(records, key=_trend_key)
    if limit is not None:
        ordered = ordered[-limit:] if limit > 0 else []
    return [
        {
            'test_title': r.test_title,
            'percentage': r.percentage,
            'date': r.test_date.isoformat() if r.test_date else None,
            'subject': r.subject_name,
        }
        for r in ordered
    ]


def subject_performance(records):
    """Per subject totals with a marks-weighted percentage and pass rate."""
    rows = []
    for (subject_id, subject_name), group in _group(
            records, lambda r: (r.subject_id, r.subject_name)).items():
        passed = sum(1 for r in group if r.is_passed)
        rows.append({
            'subject': {'id': subject_id, 'name': subject_name},
            'total_marks': float(sum(Decimal(str(r.marks_obtained)) for r in group)),
            'total_max_marks': sum(r.max_marks for r in group),
            'total_tests': len(group),
            'passed_tests': passed,
            'percentage': marks_weighted_percentage(group),
            'pass_rate': pass_rate(group),
        })
    rows.sort(key=lambda row: (row['subject']['name'], row['subject']['id']))
    return rows
