from decimal import Decimal

from django.contrib.auth import get_user_model
from django.test import TestCase
from django.urls import reverse
from django.utils import timezone

from academics.models import Subject
from gradebook.models import Test
from gradebook.services import MarkEntry, submit_marks

User = get_user_model()


class StudentApiTests(TestCase):
    """Tests for the student directory and result endpoints."""

    def setUp(self):
        self.admin = User.objects.create_admin(email='admin@example.com', password='x', name='Admin')
        self.teacher = User.objects.create_teacher(email='teacher@example.com', password='x', name='Teacher')
        self.ama = User.objects.create_student(
            email='ama@example.com', password='x', name='Ama Mensah',
            roll_number='CS-001', department='Computer Science', year=1
        )
        self.kofi = User.objects.create_student(
            email='kofi@example.com', password='x', name='Kofi Boateng',
            roll_number='EE-001', department='Electrical', year=2
        )
        self.algorithms = Subject.objects.create(name='Algorithms', code='CS201', department='Computer Science')
        self.networks = Subject.objects.create(name='Networks', code='CS301', department='Computer Science')
        self.algorithms.teachers.add(self.teacher)
        self.networks.teachers.add(self.teacher)

        self.quiz = self.make_test('Quiz 1', self.algorithms, 'quiz', 20, 10)
        self.midterm = self.make_test('Midterm', self.networks, 'midterm', 80, 32)
        self.draft = self.make_test('Draft', self.algorithms, 'quiz', 10, 5, is_published=False)

        submit_marks(self.quiz.pk, [MarkEntry(self.ama.pk, Decimal('10'))], self.teacher)
        submit_marks(self.midterm.pk, [MarkEntry(self.ama.pk, Decimal('80'))], self.teacher)
        submit_marks(self.draft.pk, [MarkEntry(self.ama.pk, Decimal('1'))], self.teacher)

    def make_test(self, title, subject, test_type, max_marks, passing_marks, **extra):
        return Test.objects.create(
            title=title, subject=subject, test_type=test_type, max_marks=max_marks,
            passing_marks=passing_marks, test_date=timezone.localdate(),
            created_by=self.teacher, **extra
        )

    def test_list_requires_teacher_or_admin(self):
        """Test students cannot list other students."""
        self.client.force_login(self.ama)
        response = self.client.get(reverse('students:student_list'))
        self.assertEqual(response.status_code, 403)
        self.assertEqual(response.json()['message'], 'Teacher or Admin access required')

    def test_list_filters(self):
        """Test filtering students by department and search."""
        self.client.force_login(self.teacher)
        body = self.client.get(reverse('students:student_list'), {'department': 'Electrical'}).json()
        self.assertEqual([s['email'] for s in body['students']], ['kofi@example.com'])
        body = self.client.get(reverse('students:student_list'), {'search': 'cs-0'}).json()
        self.assertEqual([s['rollNumber'] for s in body['students']], ['CS-001'])

    def test_list_bad_year(self):
        """Test a non-numeric year is a 400."""
        self.client.force_login(self.teacher)
        response = self.client.get(reverse('students:student_list'), {'year': 'first'})
        self.assertEqual(response.status_code, 400)

    def test_detail(self):
        """Test teachers read a single student record."""
        self.client.force_login(self.teacher)
        response = self.client.get(reverse('students:student_detail', args=[self.ama.pk]))
        self.assertEqual(response.status_code, 200)
        body = response.json()
        self.assertEqual(body['message'], 'Student retrieved successfully')
        self.assertEqual(body['student']['rollNumber'], 'CS-001')

    def test_detail_own_record_only(self):
        """Test students may read themselves but not others."""
        self.client.force_login(self.ama)
        self.assertEqual(self.client.get(reverse('students:student_detail', args=[self.ama.pk])).status_code, 200)
        response = self.client.get(reverse('students:student_detail', args=[self.kofi.pk]))
        self.assertEqual(response.status_code, 403)

    def test_detail_not_found(self):
        """Test non-student and removed ids are a 404."""
        self.client.force_login(self.admin)
        response = self.client.get(reverse('students:student_detail', args=[self.teacher.pk]))
        self.assertEqual(response.status_code, 404)
        self.assertEqual(response.json()['message'], 'Student not found')
        self.kofi.is_active = False
        self.kofi.save()
        response = self.client.get(reverse('students:student_detail', args=[self.kofi.pk]))
        self.assertEqual(response.status_code, 404)

    def test_my_results_published_only(self):
        """Test students see their results on published tests only."""
        self.client.force_login(self.ama)
        body = self.client.get(reverse('students:my_results')).json()
        self.assertEqual(body['total'], 2)
        self.assertEqual({r['test']['title'] for r in body['results']}, {'Quiz 1', 'Midterm'})

    def test_my_results_filter_by_type(self):
        """Test the testType filter."""
        self.client.force_login(self.ama)
        body = self.client.get(reverse('students:my_results'), {'testType': 'midterm'}).json()
        self.assertEqual([r['test']['title'] for r in body['results']], ['Midterm'])

    def test_my_results_students_only(self):
        """Test teachers are refused the student-only endpoint."""
        self.client.force_login(self.teacher)
        self.assertEqual(self.client.get(reverse('students:my_results')).status_code, 403)

    def test_performance_report(self):
        """Test the per-subject report and marks-weighted percentage."""
        self.client.force_login(self.admin)
        response = self.client.get(reverse('students:student_performance', args=[self.ama.pk]))
        self.assertEqual(response.status_code, 200)
        body = response.json()
        self.assertEqual(body['summary']['totalTests'], 3)
        # (10 + 80 + 1) / (20 + 80 + 10)
        self.assertEqual(body['overallPercentage'], 82.73)
        subjects = {row['subject']['name']: row for row in body['subjectPerformance']}
        self.assertEqual(subjects['Networks']['percentage'], 100.0)
        self.assertEqual(subjects['Algorithms']['totalTests'], 2)
        self.assertEqual(subjects['Algorithms']['passRate'], 50.0)

    def test_performance_unknown_student(self):
        """Test non-student ids are a 404."""
        self.client.force_login(self.admin)
        response = self.client.get(reverse('students:student_performance', args=[self.teacher.pk]))
        self.assertEqual(response.status_code, 404)
