import datetime
import json
from decimal import Decimal
from io import BytesIO
from unittest import mock

import openpyxl
from django.contrib.auth import get_user_model
from django.core.cache import cache
from django.core.exceptions import ImproperlyConfigured
from django.core.files.uploadedfile import SimpleUploadedFile
from django.db import IntegrityError, transaction
from django.db.models.query import QuerySet
from django.test import SimpleTestCase, TestCase, override_settings
from django.urls import reverse
from django.utils import timezone

from academics.models import Subject
from core.exceptions import DivisionInvalid, NotFound, ValidationFailed

from .aggregation import (
    GradedRecord, cohort_statistics, marks_weighted_percentage, pass_rate,
    performance_distribution, rank_students, round_half_up, student_summary, trend_series,
)
from .grading import PASS_RULE_PERCENTAGE, GradingPolicy, compute_grade
from .models import Test, TestResult
from .services import MarkEntry, delete_test, submit_marks, update_test, upsert_result
from .views.import_export import EXPORT_HEADERS

User = get_user_model()

DEFAULT_BOUNDARIES = ((90, 'A+'), (80, 'A'), (70, 'B+'), (60, 'B'), (50, 'C+'), (40, 'C'), (35, 'D'))


class GradeCalculatorTests(SimpleTestCase):
    """Tests for compute_grade and GradingPolicy."""

    def test_grade_table(self):
        """Test every boundary of the default table."""
        expected = [
            (100, 'A+'), (90, 'A+'), (89.99, 'A'), (80, 'A'), (79, 'B+'), (70, 'B+'),
            (60, 'B'), (50, 'C+'), (40, 'C'), (39.99, 'D'), (35, 'D'), (34.99, 'F'), (0, 'F'),
        ]
        for marks, grade in expected:
            with self.subTest(marks=marks):
                self.assertEqual(compute_grade(marks, 100, 40).grade, grade)

    def test_reference_cases(self):
        """Test the reference cases for a 100 mark test with pass mark 40."""
        self.assertEqual(tuple(compute_grade(85, 100, 40)), (85.0, 'A', True))
        self.assertEqual(tuple(compute_grade(40, 100, 40)), (40.0, 'C', True))
        self.assertEqual(tuple(compute_grade(30, 100, 40)), (30.0, 'F', False))

    def test_percentage_is_not_rounded_before_grading(self):
        """Test grading uses the exact percentage."""
        outcome = compute_grade(Decimal('44.99'), 50, 20)
        self.assertAlmostEqual(outcome.percentage, 89.98)
        self.assertEqual(outcome.grade, 'A')

    def test_zero_max_marks(self):
        """Test a non-positive maximum raises DivisionInvalid."""
        with self.assertRaises(DivisionInvalid):
            compute_grade(10, 0, 0)
        with self.assertRaises(DivisionInvalid):
            compute_grade(10, -5, 0)

    def test_non_numeric_marks(self):
        """Test NaN, infinity, booleans and text are rejected."""
        for value in ('NaN', float('inf'), True, 'abc', None):
            with self.subTest(value=value):
                with self.assertRaises(ValidationFailed):
                    compute_grade(value, 100, 40)

    def test_pass_is_independent_of_grade(self):
        """Test a D grade can still fail when below the pass mark."""
        outcome = compute_grade(36, 100, 40)
        self.assertEqual(outcome.grade, 'D')
        self.assertFalse(outcome.passed)

    def test_percentage_pass_rule(self):
        """Test the percentage pass rule ignores passing marks."""
        policy = GradingPolicy(DEFAULT_BOUNDARIES, PASS_RULE_PERCENTAGE, 50)
        self.assertFalse(policy.compute(45, 100, 40).passed)
        self.assertTrue(policy.compute(25, 50, 40).passed)

    @override_settings(GRADEBOOK_GRADE_BOUNDARIES=(
        (90, 'A+'), (80, 'A'), (70, 'B+'), (60, 'B'), (50, 'C+'), (40, 'C'), (33, 'D'),
    ))
    def test_boundaries_from_settings(self):
        """Test the D cutoff follows the configured table."""
        self.assertEqual(compute_grade(34, 100, 40).grade, 'D')

    def test_invalid_policies(self):
        """Test malformed boundary tables are refused."""
        invalid = [
            (),
            ((80, 'A'), (90, 'A+')),
            ((90, 'A+'), (90, 'A')),
            ((90, 'Z'),),
            ((30, 'F'),),
            ((120, 'A+'),),
        ]
        for boundaries in invalid:
            with self.subTest(boundaries=boundaries):
                with self.assertRaises(ImproperlyConfigured):
                    GradingPolicy(boundaries)
        with self.assertRaises(ImproperlyConfigured):
            GradingPolicy(DEFAULT_BOUNDARIES, pass_rule='average')


def make_record(result_id, student_id, percentage, **kwargs):
    values = {
        'result_id': result_id,
        'student_id': student_id,
        'student_name': f'Student {student_id}',
        'test_id': 1,
        'test_title': f'Test {result_id}',
        'test_date': datetime.date(2026, 1, 1),
        'subject_id': 1,
        'subject_name': 'Algorithms',
        'percentage': percentage,
        'grade': compute_grade(percentage, 100, 40).grade,
        'is_passed': percentage >= 40,
        'marks_obtained': Decimal(str(percentage)),
        'max_marks': 100,
    }
    values.update(kwargs)
    return GradedRecord(**values)


class AggregationTests(SimpleTestCase):
    """Tests for the performance aggregator."""

    def test_cohort_of_three(self):
        """Test buckets and the rounded average for [95, 72, 40]."""
        records = [make_record(1, 1, 95), make_record(2, 2, 72), make_record(3, 3, 40)]
        stats = cohort_statistics(records)
        self.assertEqual(stats['performance_breakdown'], {
            'excellent': 1, 'good': 1, 'average': 0, 'needs_improvement': 1,
        })
        self.assertEqual(stats['average_performance'], 69)
        self.assertEqual(stats['total_students'], 3)
        self.assertEqual(stats['pass_rate'], 100)

    def test_empty_inputs(self):
        """Test empty input yields zeros, not errors."""
        self.assertEqual(student_summary([]), {
            'total_tests': 0, 'average_score': 0, 'highest_score': 0,
            'lowest_score': 0, 'passed_tests': 0, 'failed_tests': 0,
        })
        stats = cohort_statistics([])
        self.assertEqual(stats['average_performance'], 0)
        self.assertEqual(stats['top_performers'], [])
        self.assertEqual(sum(stats['performance_breakdown'].values()), 0)
        self.assertEqual(pass_rate([]), 0)
        self.assertEqual(trend_series([]), [])

    def test_round_half_up(self):
        """Test .5 rounds away from zero."""
        self.assertEqual(round_half_up(69.5), 70)
        self.assertEqual(round_half_up(68.5), 69)
        self.assertEqual(round_half_up(2.345, places=2), 2.35)

    def test_student_summary(self):
        """Test highest and lowest are raw while the average is rounded."""
        records = [make_record(1, 1, 72.5), make_record(2, 1, 30.25)]
        summary = student_summary(records)
        self.assertEqual(summary['average_score'], 51)
        self.assertEqual(summary['highest_score'], 72.5)
        self.assertEqual(summary['lowest_score'], 30.25)
        self.assertEqual(summary['passed_tests'], 1)
        self.assertEqual(summary['failed_tests'], 1)

    def test_bucket_boundaries(self):
        """Test bucket floors are inclusive."""
        records = [make_record(i, i, p) for i, p in enumerate([90, 89.99, 70, 50, 49.99], 1)]
        self.assertEqual(performance_distribution(records), {
            'excellent': 1, 'good': 2, 'average': 1, 'needs_improvement': 1,
        })

    def test_ranking_ties_go_to_lowest_id(self):
        """Test ties on the exact mean are ordered by student id."""
        records = [make_record(1, 7, 80), make_record(2, 3, 80), make_record(3, 5, 95)]
        ranked = rank_students(records)
        self.assertEqual([r['student_id'] for r in ranked], [5, 3, 7])
        self.assertEqual(len(rank_students(records, top_n=2)), 2)

    def test_ranking_uses_exact_mean(self):
        """Test ranking is not affected by display rounding."""
        records = [
            make_record(1, 1, 80.4), make_record(2, 1, 80.4),
            make_record(3, 2, 80.0),
        ]
        self.assertEqual([r['student_id'] for r in rank_students(records)], [1, 2])

    def test_pass_rate_two_places(self):
        """Test pass rate keeps two decimal places."""
        records = [make_record(1, 1, 90), make_record(2, 2, 50), make_record(3, 3, 10)]
        self.assertEqual(pass_rate(records), 66.67)

    def test_marks_weighted_percentage(self):
        """Test totals are weighted by maximum marks."""
        records = [
            make_record(1, 1, 50, marks_obtained=Decimal('10'), max_marks=20),
            make_record(2, 1, 100, marks_obtained=Decimal('80'), max_marks=80),
        ]
        self.assertEqual(marks_weighted_percentage(records), 90.0)

    def test_trend_series_is_chronological_and_stable(self):
        """Test the trend is oldest first, limited to the latest entries."""
        records = [
            make_record(1, 1, 60, test_date=datetime.date(2026, 3, 1)),
            make_record(2, 1, 70, test_date=datetime.date(2026, 1, 1)),
            make_record(3, 1, 80, test_date=datetime.date(2026, 2, 1)),
        ]
        series = trend_series(records, limit=2)
        self.assertEqual([p['percentage'] for p in series], [80, 60])
        self.assertEqual(series[0]['date'], '2026-02-01')
        self.assertEqual(trend_series(records, limit=2), series)


class GradebookFixtureMixin:
    """Shared users, subject and test for database-backed tests."""

    def setUp(self):
        cache.clear()
        self.admin = User.objects.create_admin(email='admin@example.com', password='x', name='Admin')
        self.teacher = User.objects.create_teacher(
            email='teacher@example.com', password='x', name='Kwame Asante', employee_id='EMP-001'
        )
        self.other_teacher = User.objects.create_teacher(
            email='other@example.com', password='x', name='Yaw Darko', employee_id='EMP-002'
        )
        self.students = [
            User.objects.create_student(
                email=f'student{i}@example.com', password='x', name=f'Student {i}',
                roll_number=f'CS-00{i}', department='Computer Science', year=2
            )
            for i in (1, 2, 3)
        ]
        self.subject = Subject.objects.create(
            name='Algorithms', code='CS201', department='Computer Science'
        )
        self.subject.teachers.add(self.teacher)
        self.test = Test.objects.create(
            title='Midterm Exam',
            subject=self.subject,
            test_type='midterm',
            max_marks=100,
            passing_marks=40,
            test_date=timezone.localdate(),
            created_by=self.teacher,
        )


class ResultModelTests(GradebookFixtureMixin, TestCase):
    """Tests for Test and TestResult models."""

    def test_derived_fields_on_save(self):
        """Test percentage, grade and pass flag are set on save."""
        result = TestResult.objects.create(
            test=self.test, student=self.students[0], marks_obtained=Decimal('85')
        )
        self.assertEqual(result.percentage, 85.0)
        self.assertEqual(result.grade, 'A')
        self.assertTrue(result.is_passed)

    def test_one_result_per_student_and_test(self):
        """Test the database rejects a second result for the same pair."""
        TestResult.objects.create(test=self.test, student=self.students[0], marks_obtained=50)
        with self.assertRaises(IntegrityError):
            with transaction.atomic():
                TestResult.objects.create(test=self.test, student=self.students[0], marks_obtained=60)

    def test_passing_marks_constraint(self):
        """Test passing marks above max marks are rejected by the database."""
        with self.assertRaises(IntegrityError):
            with transaction.atomic():
                Test.objects.create(
                    title='Broken', subject=self.subject, test_type='quiz',
                    max_marks=10, passing_marks=20, test_date=timezone.localdate(),
                )

    def test_visible_to(self):
        """Test list visibility per role."""
        Test.objects.create(
            title='Draft Quiz', subject=self.subject, test_type='quiz', max_marks=10,
            passing_marks=5, test_date=timezone.localdate(), is_published=False,
        )
        self.assertEqual(Test.objects.visible_to(self.admin).count(), 2)
        self.assertEqual(Test.objects.visible_to(self.teacher).count(), 2)
        self.assertEqual(Test.objects.visible_to(self.other_teacher).count(), 0)
        self.assertEqual(Test.objects.visible_to(self.students[0]).count(), 1)


class SubmitMarksTests(GradebookFixtureMixin, TestCase):
    """Tests for the result upsert manager."""

    def submit(self, student, marks, remarks=''):
        return submit_marks(self.test.pk, [MarkEntry(student.pk, marks, remarks)], self.teacher)

    def test_reference_scenarios(self):
        """Test grading of 85, 40 and 30 out of 100 with pass mark 40."""
        outcome = submit_marks(self.test.pk, [
            MarkEntry(self.students[0].pk, Decimal('85')),
            MarkEntry(self.students[1].pk, Decimal('40')),
            MarkEntry(self.students[2].pk, Decimal('30')),
        ], self.teacher)
        self.assertEqual(outcome.failed, [])
        graded = {r.student_id: (r.percentage, r.grade, r.is_passed) for r in outcome.applied}
        self.assertEqual(graded[self.students[0].pk], (85.0, 'A', True))
        self.assertEqual(graded[self.students[1].pk], (40.0, 'C', True))
        self.assertEqual(graded[self.students[2].pk], (30.0, 'F', False))

    def test_resubmission_updates_in_place(self):
        """Test a second submission replaces the existing result."""
        self.submit(self.students[0], Decimal('85'), 'first')
        self.submit(self.students[0], Decimal('90'), 'second')
        results = TestResult.objects.filter(test=self.test, student=self.students[0])
        self.assertEqual(results.count(), 1)
        result = results.get()
        self.assertEqual(result.percentage, 90.0)
        self.assertEqual(result.grade, 'A+')
        self.assertTrue(result.is_passed)
        self.assertEqual(result.remarks, 'second')

    def test_upsert_reports_creation(self):
        """Test upsert returns whether a row was created."""
        _, created = upsert_result(self.test, self.students[0], 50)
        self.assertTrue(created)
        _, created = upsert_result(self.test, self.students[0], 55)
        self.assertFalse(created)

    def test_losing_concurrent_insert_updates_stored_result(self):
        """Test an insert beaten by another writer updates that writer's row."""
        student = self.students[0]
        original_get = QuerySet.get
        competing = []

        def get_after_competing_insert(queryset, *args, **kwargs):
            if queryset.model is TestResult and not competing:
                # Another request stores the pair between the lookup and the insert
                competing.append(TestResult.objects.create(
                    test=self.test, student=student, marks_obtained=Decimal('50')
                ))
                raise TestResult.DoesNotExist
            return original_get(queryset, *args, **kwargs)

        with mock.patch.object(QuerySet, 'get', autospec=True, side_effect=get_after_competing_insert):
            outcome = self.submit(student, Decimal('90'), 'late')

        self.assertEqual(len(competing), 1)
        self.assertEqual(outcome.failed, [])
        result = TestResult.objects.get(test=self.test, student=student)
        self.assertEqual(result.pk, competing[0].pk)
        self.assertEqual(outcome.applied[0].pk, result.pk)
        self.assertEqual(result.marks_obtained, Decimal('90'))
        self.assertEqual(result.grade, 'A+')
        self.assertEqual(result.remarks, 'late')
        self.assertEqual(result.graded_by, self.teacher)

    def test_partial_failure(self):
        """Test bad entries fail alone while the rest are applied."""
        outcome = submit_marks(self.test.pk, [
            MarkEntry(self.students[0].pk, Decimal('70')),
            MarkEntry(9999, Decimal('50')),
            MarkEntry(self.students[1].pk, Decimal('150')),
            MarkEntry(self.students[2].pk, Decimal('-1')),
            MarkEntry(self.teacher.pk, Decimal('50')),
        ], self.teacher)
        self.assertEqual(len(outcome.applied), 1)
        self.assertEqual(len(outcome.failed), 4)
        self.assertIn({'student_id': 9999, 'reason': 'Student 9999 not found'}, outcome.failed)
        self.assertEqual(TestResult.objects.count(), 1)

    def test_marks_equal_to_max(self):
        """Test full marks are accepted."""
        outcome = self.submit(self.students[0], Decimal('100'))
        self.assertEqual(outcome.applied[0].percentage, 100.0)

    def test_deleted_test(self):
        """Test marks cannot be recorded for a deleted test."""
        delete_test(self.test)
        with self.assertRaises(NotFound):
            self.submit(self.students[0], Decimal('50'))


class UpdateTestTests(GradebookFixtureMixin, TestCase):
    """Tests for changing a test's marking parameters."""

    def setUp(self):
        super().setUp()
        submit_marks(self.test.pk, [
            MarkEntry(self.students[0].pk, Decimal('85')),
            MarkEntry(self.students[1].pk, Decimal('45')),
        ], self.teacher)

    def test_raising_max_marks_regrades(self):
        """Test results are re-graded against the new maximum."""
        update_test(self.test, {'max_marks': 200})
        result = TestResult.objects.get(test=self.test, student=self.students[0])
        self.assertEqual(result.percentage, 42.5)
        self.assertEqual(result.grade, 'C')
        self.assertTrue(result.is_passed)

    def test_raising_passing_marks_regrades(self):
        """Test pass flags follow the new pass mark."""
        update_test(self.test, {'passing_marks': 50})
        result = TestResult.objects.get(test=self.test, student=self.students[1])
        self.assertFalse(result.is_passed)

    def test_lowering_max_below_existing_marks(self):
        """Test max marks cannot drop below a recorded result."""
        with self.assertRaises(ValidationFailed) as ctx:
            update_test(self.test, {'max_marks': 80})
        self.assertIn('max_marks', ctx.exception.errors)
        self.test.refresh_from_db()
        self.assertEqual(self.test.max_marks, 100)

    def test_lowering_max_above_existing_marks(self):
        """Test lowering max marks is allowed while results still fit."""
        update_test(self.test, {'max_marks': 90})
        result = TestResult.objects.get(test=self.test, student=self.students[0])
        self.assertEqual(result.grade, 'A+')

    def test_hard_delete_cascades(self):
        """Test a hard delete removes the results too."""
        delete_test(self.test, hard=True)
        self.assertFalse(TestResult.objects.exists())


class TestApiTests(GradebookFixtureMixin, TestCase):
    """Tests for the test CRUD endpoints."""

    def payload(self, **overrides):
        data = {
            'title': 'Final Exam',
            'subject': self.subject.pk,
            'testType': 'final',
            'maxMarks': 100,
            'passingMarks': 40,
            'testDate': '2026-12-01',
        }
        data.update(overrides)
        return json.dumps(data)

    def test_teacher_creates_test(self):
        """Test a teacher creates a test for a subject they teach."""
        self.client.force_login(self.teacher)
        response = self.client.post(reverse('gradebook:test_list'), data=self.payload(),
                                    content_type='application/json')
        self.assertEqual(response.status_code, 201)
        test = response.json()['test']
        self.assertEqual(test['duration'], 60)
        self.assertTrue(test['isPublished'])
        self.assertEqual(test['createdBy']['id'], self.teacher.pk)

    def test_teacher_cannot_create_for_other_subject(self):
        """Test teachers are limited to their own subjects."""
        self.client.force_login(self.other_teacher)
        response = self.client.post(reverse('gradebook:test_list'), data=self.payload(),
                                    content_type='application/json')
        self.assertEqual(response.status_code, 403)
        self.assertEqual(response.json()['message'], 'You can only create tests for your subjects')

    def test_student_cannot_create(self):
        """Test students cannot create tests."""
        self.client.force_login(self.students[0])
        response = self.client.post(reverse('gradebook:test_list'), data=self.payload(),
                                    content_type='application/json')
        self.assertEqual(response.status_code, 403)

    def test_passing_above_max_rejected(self):
        """Test passing marks cannot exceed max marks."""
        self.client.force_login(self.teacher)
        response = self.client.post(reverse('gradebook:test_list'), data=self.payload(passingMarks=150),
                                    content_type='application/json')
        self.assertEqual(response.status_code, 400)
        self.assertIn('passingMarks', response.json()['errors'])

    def test_student_sees_published_only(self):
        """Test unpublished tests are hidden from students."""
        Test.objects.create(
            title='Draft Quiz', subject=self.subject, test_type='quiz', max_marks=10,
            passing_marks=5, test_date=timezone.localdate(), is_published=False,
        )
        self.client.force_login(self.students[0])
        body = self.client.get(reverse('gradebook:test_list')).json()
        self.assertEqual([t['title'] for t in body['tests']], ['Midterm Exam'])

    def test_update_by_creator_regrades(self):
        """Test a partial update changes only the sent fields and re-grades."""
        submit_marks(self.test.pk, [MarkEntry(self.students[0].pk, Decimal('45'))], self.teacher)
        self.client.force_login(self.teacher)
        response = self.client.put(
            reverse('gradebook:test_detail', args=[self.test.pk]),
            data=json.dumps({'passingMarks': 50}), content_type='application/json'
        )
        self.assertEqual(response.status_code, 200)
        self.test.refresh_from_db()
        self.assertEqual(self.test.passing_marks, 50)
        self.assertEqual(self.test.title, 'Midterm Exam')
        self.assertFalse(TestResult.objects.get(student=self.students[0]).is_passed)

    def test_partial_update_passing_above_stored_max(self):
        """Test passing marks sent alone are checked against the stored maximum."""
        self.client.force_login(self.teacher)
        response = self.client.put(
            reverse('gradebook:test_detail', args=[self.test.pk]),
            data=json.dumps({'passingMarks': 150}), content_type='application/json'
        )
        self.assertEqual(response.status_code, 400)
        self.assertEqual(response.json()['errors'], {
            'passingMarks': ['Passing marks cannot exceed maximum marks'],
        })
        self.test.refresh_from_db()
        self.assertEqual(self.test.passing_marks, 40)

    def test_update_by_other_teacher(self):
        """Test teachers can only edit their own tests."""
        self.subject.teachers.add(self.other_teacher)
        self.client.force_login(self.other_teacher)
        response = self.client.put(
            reverse('gradebook:test_detail', args=[self.test.pk]),
            data=json.dumps({'title': 'Renamed'}), content_type='application/json'
        )
        self.assertEqual(response.status_code, 403)
        self.assertEqual(response.json()['message'], 'You can only update your own tests')

    def test_soft_delete_then_not_found(self):
        """Test a deleted test is no longer reachable."""
        self.client.force_login(self.teacher)
        response = self.client.delete(reverse('gradebook:test_detail', args=[self.test.pk]))
        self.assertEqual(response.status_code, 200)
        response = self.client.get(reverse('gradebook:test_detail', args=[self.test.pk]))
        self.assertEqual(response.status_code, 404)
        self.assertTrue(Test.objects.filter(pk=self.test.pk).exists())

    def test_hard_delete_admin_only(self):
        """Test only admins may permanently delete."""
        url = reverse('gradebook:test_detail', args=[self.test.pk]) + '?hard=true'
        self.client.force_login(self.teacher)
        self.assertEqual(self.client.delete(url).status_code, 403)
        self.client.force_login(self.admin)
        self.assertEqual(self.client.delete(url).status_code, 200)
        self.assertFalse(Test.objects.filter(pk=self.test.pk).exists())


class MarksApiTests(GradebookFixtureMixin, TestCase):
    """Tests for marks submission, results, export and import."""

    def submit(self, marks):
        return self.client.post(
            reverse('gradebook:submit_marks', args=[self.test.pk]),
            data=json.dumps({'marks': marks}), content_type='application/json'
        )

    def test_submit_marks(self):
        """Test valid entries are applied and invalid ones reported."""
        self.client.force_login(self.teacher)
        response = self.submit([
            {'studentId': self.students[0].pk, 'marksObtained': 85, 'remarks': 'Well done'},
            {'studentId': 9999, 'marksObtained': 50},
            {'studentId': self.students[1].pk, 'marksObtained': 'abc'},
        ])
        self.assertEqual(response.status_code, 200)
        body = response.json()
        self.assertEqual(body['message'], 'Marks submitted successfully')
        self.assertEqual(body['results'], 1)
        self.assertEqual(len(body['errors']), 2)
        self.assertEqual(TestResult.objects.get().grade, 'A')

    def test_empty_marks_rejected(self):
        """Test an empty marks array is a 400."""
        self.client.force_login(self.teacher)
        response = self.submit([])
        self.assertEqual(response.status_code, 400)
        self.assertEqual(response.json()['message'], 'Marks array is required')

    def test_other_teacher_cannot_grade(self):
        """Test teachers grade only their subjects' tests."""
        self.client.force_login(self.other_teacher)
        response = self.submit([{'studentId': self.students[0].pk, 'marksObtained': 85}])
        self.assertEqual(response.status_code, 403)
        self.assertEqual(response.json()['message'], 'You can only grade tests for your subjects')

    def test_student_cannot_submit(self):
        """Test students cannot submit marks."""
        self.client.force_login(self.students[0])
        response = self.submit([{'studentId': self.students[0].pk, 'marksObtained': 100}])
        self.assertEqual(response.status_code, 403)

    def test_results_summary(self):
        """Test the results listing carries summary and distributions."""
        submit_marks(self.test.pk, [
            MarkEntry(self.students[0].pk, Decimal('95')),
            MarkEntry(self.students[1].pk, Decimal('72')),
            MarkEntry(self.students[2].pk, Decimal('40')),
        ], self.teacher)
        self.client.force_login(self.teacher)
        body = self.client.get(reverse('gradebook:test_results', args=[self.test.pk])).json()
        self.assertEqual(body['total'], 3)
        self.assertEqual(body['results'][0]['marksObtained'], 95.0)
        self.assertEqual(body['summary']['averageScore'], 69)
        self.assertEqual(body['distribution']['needsImprovement'], 1)
        self.assertEqual(body['gradeDistribution']['A+'], 1)
        self.assertEqual(body['test']['subject'], 'Algorithms')

    def test_export_results(self):
        """Test the Excel export contains a row per result."""
        submit_marks(self.test.pk, [MarkEntry(self.students[0].pk, Decimal('85'))], self.teacher)
        self.client.force_login(self.teacher)
        response = self.client.get(reverse('gradebook:export_results', args=[self.test.pk]))
        self.assertEqual(response.status_code, 200)
        self.assertIn('results_CS201_midterm-exam.xlsx', response['Content-Disposition'])

        ws = openpyxl.load_workbook(BytesIO(response.content)).active
        rows = list(ws.iter_rows(values_only=True))
        self.assertEqual(list(rows[0]), EXPORT_HEADERS)
        self.assertEqual(rows[1][0], 'CS-001')
        self.assertEqual(rows[1][6], 'A')
        self.assertEqual(rows[1][7], 'Pass')

    def upload(self, rows, name='marks.xlsx'):
        wb = openpyxl.Workbook()
        ws = wb.active
        ws.append(['Roll Number', 'Marks', 'Remarks'])
        for row in rows:
            ws.append(row)
        buffer = BytesIO()
        wb.save(buffer)
        return SimpleUploadedFile(name, buffer.getvalue())

    def test_import_marks(self):
        """Test workbook rows are matched by roll number and submitted."""
        self.client.force_login(self.teacher)
        upload = self.upload([
            ['cs-001', 77, 'Good'],
            ['CS-999', 50, None],
            ['CS-002', None, None],
        ])
        response = self.client.post(
            reverse('gradebook:import_marks', args=[self.test.pk]), {'file': upload}
        )
        self.assertEqual(response.status_code, 200)
        body = response.json()
        self.assertEqual(body['results'], 1)
        self.assertEqual(len(body['errors']), 1)
        result = TestResult.objects.get()
        self.assertEqual(result.student, self.students[0])
        self.assertEqual(result.remarks, 'Good')

    def test_import_rejects_other_formats(self):
        """Test only .xlsx uploads are accepted."""
        self.client.force_login(self.teacher)
        upload = SimpleUploadedFile('marks.csv', b'Roll Number,Marks\nCS-001,50\n')
        response = self.client.post(
            reverse('gradebook:import_marks', args=[self.test.pk]), {'file': upload}
        )
        self.assertEqual(response.status_code, 400)


class DashboardApiTests(GradebookFixtureMixin, TestCase):
    """Tests for the role dashboards."""

    def setUp(self):
        super().setUp()
        submit_marks(self.test.pk, [
            MarkEntry(self.students[0].pk, Decimal('95')),
            MarkEntry(self.students[1].pk, Decimal('72')),
            MarkEntry(self.students[2].pk, Decimal('40')),
        ], self.teacher)

    def test_dashboard_home(self):
        """Test the home endpoint points each role to its dashboard."""
        self.client.force_login(self.students[0])
        body = self.client.get(reverse('gradebook:dashboard')).json()
        self.assertEqual(body['userRole'], 'student')
        self.assertEqual(body['redirectTo'], f'/api/dashboard/student/{self.students[0].pk}/')

    def test_student_dashboard_self(self):
        """Test a student sees their own summary."""
        student = self.students[0]
        self.client.force_login(student)
        response = self.client.get(reverse('gradebook:student_dashboard', args=[student.pk]))
        self.assertEqual(response.status_code, 200)
        body = response.json()
        self.assertEqual(body['summary']['totalTests'], 1)
        self.assertEqual(body['summary']['averageScore'], 95)
        self.assertEqual(body['performance']['passRate'], 100)
        self.assertEqual(len(body['trendData']), 1)
        self.assertEqual(body['upcomingTests'][0]['title'], 'Midterm Exam')

    def test_student_dashboard_other_student(self):
        """Test students cannot see each other's dashboards."""
        self.client.force_login(self.students[0])
        response = self.client.get(reverse('gradebook:student_dashboard', args=[self.students[1].pk]))
        self.assertEqual(response.status_code, 403)

    def test_student_dashboard_errors(self):
        """Test unknown and non-student ids are reported."""
        self.client.force_login(self.admin)
        response = self.client.get(reverse('gradebook:student_dashboard', args=[9999]))
        self.assertEqual(response.status_code, 404)
        self.assertEqual(response.json()['message'], 'Student not found')
        response = self.client.get(reverse('gradebook:student_dashboard', args=[self.teacher.pk]))
        self.assertEqual(response.status_code, 400)
        self.assertEqual(response.json()['message'], 'User is not a student')

    def test_class_dashboard(self):
        """Test cohort statistics for a department."""
        self.client.force_login(self.admin)
        response = self.client.get(reverse('gradebook:class_dashboard'), {'department': 'Computer Science'})
        self.assertEqual(response.status_code, 200)
        body = response.json()
        self.assertEqual(body['classStats']['averagePerformance'], 69)
        self.assertEqual(body['classStats']['totalStudents'], 3)
        self.assertEqual(body['classStats']['topPerformers'][0]['studentId'], self.students[0].pk)
        self.assertEqual(body['performanceBreakdown'], {
            'excellent': 1, 'good': 1, 'average': 0, 'needsImprovement': 1,
        })

    def test_class_dashboard_requires_department(self):
        """Test the department parameter is mandatory."""
        self.client.force_login(self.admin)
        response = self.client.get(reverse('gradebook:class_dashboard'))
        self.assertEqual(response.status_code, 400)
        self.assertEqual(response.json()['message'], 'Department parameter is required')

    def test_class_dashboard_teacher_scope(self):
        """Test teachers only see results of subjects they teach."""
        self.client.force_login(self.other_teacher)
        body = self.client.get(reverse('gradebook:class_dashboard'), {'department': 'Computer Science'}).json()
        self.assertEqual(body['classStats']['totalResults'], 0)
        self.assertEqual(body['classStats']['averagePerformance'], 0)

    def test_teacher_dashboard(self):
        """Test a teacher sees their subjects and tests."""
        self.client.force_login(self.teacher)
        response = self.client.get(reverse('gradebook:teacher_dashboard', args=[self.teacher.pk]))
        self.assertEqual(response.status_code, 200)
        stats = response.json()['stats']
        self.assertEqual(stats['totalSubjects'], 1)
        self.assertEqual(stats['gradedResults'], 3)

    def test_admin_dashboard(self):
        """Test the admin overview counts."""
        self.client.force_login(self.admin)
        body = self.client.get(reverse('gradebook:admin_dashboard')).json()
        self.assertEqual(body['stats']['totalStudents'], 3)
        self.assertEqual(body['stats']['totalTeachers'], 2)
        self.assertEqual(body['stats']['totalResults'], 3)
        self.assertEqual(body['performance']['averagePerformance'], 69)

    def test_removed_student_leaves_aggregates(self):
        """Test a deleted student's results stop counting on every dashboard."""
        removed = self.students[0]
        self.client.force_login(self.admin)
        response = self.client.delete(reverse('accounts:admin_user_detail', args=[removed.pk]))
        self.assertEqual(response.status_code, 200)

        body = self.client.get(reverse('gradebook:admin_dashboard')).json()
        self.assertEqual(body['stats']['totalResults'], 2)
        self.assertEqual(body['performance']['averagePerformance'], 56)
        self.assertNotIn(removed.pk, [p['studentId'] for p in body['performance']['topPerformers']])
        self.assertNotIn(removed.pk, [r['student']['id'] for r in body['recentResults']])

        body = self.client.get(reverse('gradebook:class_dashboard'), {'department': 'Computer Science'}).json()
        self.assertEqual(body['classStats']['totalStudents'], 2)
        self.assertEqual(body['classStats']['studentsWithResults'], 2)
        self.assertEqual(body['classStats']['totalResults'], 2)
        self.assertEqual(body['performanceBreakdown']['excellent'], 0)

        body = self.client.get(reverse('gradebook:test_results', args=[self.test.pk])).json()
        self.assertEqual(body['total'], 2)

    def test_admin_dashboard_forbidden_for_teacher(self):
        """Test non-admins cannot open the admin dashboard."""
        self.client.force_login(self.teacher)
        self.assertEqual(self.client.get(reverse('gradebook:admin_dashboard')).status_code, 403)
