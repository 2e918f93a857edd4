import json
from io import StringIO

from django.contrib.auth import get_user_model
from django.core.management import call_command
from django.test import TestCase
from django.urls import reverse

from core.exceptions import ValidationFailed

from .forms import SubjectForm
from .models import Subject
from .services import assign_subjects, assign_teachers, reconcile_subject_teachers

User = get_user_model()


class SubjectModelTests(TestCase):
    """Tests for Subject model."""

    def test_code_is_uppercased(self):
        """Test codes are stored upper-cased."""
        subject = Subject.objects.create(name='Data Structures', code=' cs102 ', department='Computer Science')
        self.assertEqual(subject.code, 'CS102')
        self.assertEqual(subject.credits, 3)

    def test_str_representation(self):
        """Test string representation."""
        subject = Subject.objects.create(name='Calculus', code='MA101', department='Mathematics')
        self.assertEqual(str(subject), 'MA101 - Calculus')


class SubjectFormTests(TestCase):
    """Tests for SubjectForm."""

    def test_valid_form(self):
        """Test a minimal valid subject."""
        form = SubjectForm(data={'name': 'Physics', 'code': 'ph101', 'department': 'Science'})
        self.assertTrue(form.is_valid(), form.errors)
        self.assertEqual(form.cleaned_data['code'], 'PH101')
        self.assertEqual(form.cleaned_data['credits'], 3)

    def test_department_required(self):
        """Test department must be at least two characters."""
        form = SubjectForm(data={'name': 'Physics', 'code': 'PH101', 'department': ' '})
        self.assertFalse(form.is_valid())
        self.assertIn('department', form.errors)

    def test_duplicate_code(self):
        """Test codes are unique regardless of input case."""
        Subject.objects.create(name='Physics', code='PH101', department='Science')
        form = SubjectForm(data={'name': 'Physics II', 'code': 'ph101', 'department': 'Science'})
        self.assertFalse(form.is_valid())
        self.assertIn('code', form.errors)

    def test_credits_range(self):
        """Test credits outside 1-10 are rejected."""
        form = SubjectForm(data={'name': 'Physics', 'code': 'PH101', 'department': 'Science', 'credits': 11})
        self.assertFalse(form.is_valid())
        self.assertIn('credits', form.errors)


class AssignmentServiceTests(TestCase):
    """Tests for teacher-subject assignment."""

    def setUp(self):
        self.teacher = User.objects.create_teacher(email='t@example.com', password='x', name='Teacher')
        self.other = User.objects.create_teacher(email='o@example.com', password='x', name='Other')
        self.math = Subject.objects.create(name='Calculus', code='MA101', department='Mathematics')
        self.physics = Subject.objects.create(name='Physics', code='PH101', department='Science')

    def test_assign_subjects_replaces(self):
        """Test assignment replaces the existing set."""
        assign_subjects(self.teacher, [self.math.pk])
        assign_subjects(self.teacher, [self.physics.pk])
        self.assertEqual(list(self.teacher.subjects.all()), [self.physics])

    def test_relation_is_symmetric(self):
        """Test both sides see the same link."""
        assign_teachers(self.math, [self.teacher.pk, self.other.pk])
        self.assertIn(self.math, self.teacher.subjects.all())
        self.assertEqual(self.math.teachers.count(), 2)

    def test_unknown_subject_rejected(self):
        """Test unknown ids raise and leave links unchanged."""
        assign_subjects(self.teacher, [self.math.pk])
        with self.assertRaises(ValidationFailed) as ctx:
            assign_subjects(self.teacher, [self.physics.pk, 9999])
        self.assertIn('subjects', ctx.exception.errors)
        self.assertEqual(list(self.teacher.subjects.all()), [self.math])

    def test_non_teacher_cannot_be_assigned(self):
        """Test students are not valid teacher ids."""
        student = User.objects.create_student(email='s@example.com', password='x', name='Student')
        with self.assertRaises(ValidationFailed):
            assign_teachers(self.math, [student.pk])
        with self.assertRaises(ValidationFailed):
            assign_subjects(student, [self.math.pk])

    def test_reconcile_removes_stale_links(self):
        """Test links to inactive users and subjects are removed."""
        self.math.teachers.add(self.teacher, self.other)
        self.physics.teachers.add(self.teacher)
        User.objects.filter(pk=self.other.pk).update(is_active=False)
        Subject.objects.filter(pk=self.physics.pk).update(is_active=False)

        self.assertEqual(reconcile_subject_teachers(), 2)
        self.assertEqual(list(self.math.teachers.all()), [self.teacher])
        self.assertEqual(reconcile_subject_teachers(), 0)

    def test_reconcile_command(self):
        """Test the management command reports what it removed."""
        self.math.teachers.add(self.teacher)
        User.objects.filter(pk=self.teacher.pk).update(role='student')
        out = StringIO()
        call_command('reconcile_subject_teachers', stdout=out)
        self.assertIn('Removed 1 stale links', out.getvalue())


class SubjectApiTests(TestCase):
    """Tests for the subject endpoints."""

    def setUp(self):
        self.admin = User.objects.create_admin(email='admin@example.com', password='x', name='Admin')
        self.teacher = User.objects.create_teacher(email='t@example.com', password='x', name='Teacher')
        self.student = User.objects.create_student(email='s@example.com', password='x', name='Student')
        self.subject = Subject.objects.create(name='Calculus', code='MA101', department='Mathematics')
        Subject.objects.create(name='Old Course', code='OLD1', department='Mathematics', is_active=False)

    def test_list_requires_login(self):
        """Test anonymous users get 401."""
        self.assertEqual(self.client.get(reverse('academics:subject_list')).status_code, 401)

    def test_list_shows_active_only(self):
        """Test inactive subjects are hidden."""
        self.client.force_login(self.student)
        body = self.client.get(reverse('academics:subject_list')).json()
        self.assertEqual([s['code'] for s in body['subjects']], ['MA101'])
        self.assertEqual(body['totalPages'], 1)

    def test_search(self):
        """Test search matches code and name."""
        Subject.objects.create(name='Physics', code='PH101', department='Science')
        self.client.force_login(self.student)
        body = self.client.get(reverse('academics:subject_list'), {'search': 'ph1'}).json()
        self.assertEqual([s['code'] for s in body['subjects']], ['PH101'])

    def test_admin_create_with_teachers(self):
        """Test admins create subjects and assign teachers in one call."""
        self.client.force_login(self.admin)
        response = self.client.post(reverse('academics:admin_subjects'), data=json.dumps({
            'name': 'Linear Algebra',
            'code': 'ma201',
            'department': 'Mathematics',
            'teachers': [self.teacher.pk],
        }), content_type='application/json')
        self.assertEqual(response.status_code, 201)
        subject = Subject.objects.get(code='MA201')
        self.assertEqual(subject.created_by, self.admin)
        self.assertEqual(list(subject.teachers.all()), [self.teacher])

    def test_teacher_cannot_create(self):
        """Test only admins manage subjects."""
        self.client.force_login(self.teacher)
        response = self.client.post(reverse('academics:admin_subjects'), data=json.dumps({
            'name': 'Linear Algebra', 'code': 'MA201', 'department': 'Mathematics',
        }), content_type='application/json')
        self.assertEqual(response.status_code, 403)

    def test_admin_partial_update(self):
        """Test an update keeps fields that were not sent."""
        self.client.force_login(self.admin)
        response = self.client.put(
            reverse('academics:admin_subject_detail', args=[self.subject.pk]),
            data=json.dumps({'credits': 4}), content_type='application/json'
        )
        self.assertEqual(response.status_code, 200)
        self.subject.refresh_from_db()
        self.assertEqual(self.subject.credits, 4)
        self.assertEqual(self.subject.name, 'Calculus')

    def test_admin_delete_is_soft(self):
        """Test delete deactivates and removes teacher links."""
        self.subject.teachers.add(self.teacher)
        self.client.force_login(self.admin)
        response = self.client.delete(reverse('academics:admin_subject_detail', args=[self.subject.pk]))
        self.assertEqual(response.status_code, 200)
        self.subject.refresh_from_db()
        self.assertFalse(self.subject.is_active)
        self.assertFalse(self.teacher.subjects.exists())

    def test_detail_not_found(self):
        """Test a missing subject is a 404 with a message."""
        self.client.force_login(self.student)
        response = self.client.get(reverse('academics:subject_detail', args=[9999]))
        self.assertEqual(response.status_code, 404)
        self.assertEqual(response.json()['message'], 'Subject not found')
