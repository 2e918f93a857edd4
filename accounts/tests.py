import json
import os
from io import StringIO
from unittest import mock

from django.contrib.auth import get_user_model
from django.core.cache import cache
from django.core.management import call_command
from django.db import IntegrityError, transaction
from django.test import TestCase
from django.urls import reverse

from academics.models import Subject
from core.choices import Role

from .provisioning import ensure_initial_admin

User = get_user_model()


class UserManagerTests(TestCase):
    """Tests for the custom UserManager."""

    def test_create_user(self):
        """Test creating a regular user with email."""
        user = User.objects.create_user(
            email='test@example.com',
            password='testpass123',
            name='Test User'
        )
        self.assertEqual(user.email, 'test@example.com')
        self.assertTrue(user.check_password('testpass123'))
        self.assertEqual(user.role, Role.STUDENT)
        self.assertFalse(user.is_staff)
        self.assertFalse(user.is_superuser)
        self.assertTrue(user.is_active)

    def test_create_user_without_email_raises_error(self):
        """Test that creating a user without email raises ValueError."""
        with self.assertRaises(ValueError):
            User.objects.create_user(email='', password='testpass123')

    def test_create_user_lowercases_email(self):
        """Test that the whole email is stored lower-cased."""
        user = User.objects.create_user(
            email='Test@EXAMPLE.COM',
            password='testpass123',
            name='Test User'
        )
        self.assertEqual(user.email, 'test@example.com')

    def test_create_superuser(self):
        """Test creating a superuser makes an admin."""
        user = User.objects.create_superuser(
            email='admin@example.com',
            password='adminpass123',
            name='Admin'
        )
        self.assertTrue(user.is_staff)
        self.assertTrue(user.is_superuser)
        self.assertEqual(user.role, Role.ADMIN)
        self.assertEqual(user.role_label, 'Super Admin')

    def test_create_superuser_without_is_staff_raises_error(self):
        """Test that superuser must have is_staff=True."""
        with self.assertRaises(ValueError):
            User.objects.create_superuser(
                email='admin@example.com',
                password='adminpass123',
                is_staff=False
            )

    def test_role_helpers(self):
        """Test role-specific creation helpers and properties."""
        teacher = User.objects.create_teacher(email='t@example.com', password='pass1234', name='Teacher')
        student = User.objects.create_student(email='s@example.com', password='pass1234', name='Student')
        admin = User.objects.create_admin(email='a@example.com', password='pass1234', name='Admin')
        self.assertTrue(teacher.is_teacher)
        self.assertTrue(student.is_student)
        self.assertTrue(admin.is_admin)
        self.assertTrue(admin.is_staff)
        self.assertEqual(list(User.objects.teachers()), [teacher])
        self.assertEqual(teacher.role_label, 'Teacher')

    def test_blank_identifiers_stored_as_null(self):
        """Test empty employee ids do not collide on the unique index."""
        first = User.objects.create_student(email='a@example.com', password='x', name='A', employee_id='')
        second = User.objects.create_student(email='b@example.com', password='x', name='B', employee_id='')
        self.assertIsNone(first.employee_id)
        self.assertIsNone(second.employee_id)

    def test_roll_number_upper_cased(self):
        """Test roll numbers are stored upper-cased and unique regardless of case."""
        student = User.objects.create_student(email='a@example.com', password='x', name='A', roll_number=' cs-009 ')
        self.assertEqual(student.roll_number, 'CS-009')
        with self.assertRaises(IntegrityError):
            with transaction.atomic():
                User.objects.create_student(email='b@example.com', password='x', name='B', roll_number='Cs-009')


class AuthApiTests(TestCase):
    """Tests for register, login, logout and me."""

    def setUp(self):
        cache.clear()
        self.student = User.objects.create_student(
            email='student@example.com',
            password='studentpass',
            name='Ama Mensah',
            roll_number='CS-001',
            department='Computer Science',
            year=2
        )

    def post(self, url, data):
        return self.client.post(url, data=json.dumps(data), content_type='application/json')

    def test_register_student(self):
        """Test registration creates the user and logs them in."""
        response = self.post(reverse('accounts:register'), {
            'name': 'Kofi Boateng',
            'email': 'Kofi@Example.com',
            'password': 'Ledger#2026',
            'role': 'student',
            'rollNumber': 'CS-002',
            'department': 'Computer Science',
            'year': 1,
        })
        self.assertEqual(response.status_code, 201)
        body = response.json()
        self.assertEqual(body['message'], 'User registered successfully')
        self.assertEqual(body['user']['email'], 'kofi@example.com')
        self.assertEqual(body['user']['rollNumber'], 'CS-002')
        self.assertEqual(self.client.get(reverse('accounts:me')).status_code, 200)

    def test_register_duplicate_email(self):
        """Test registering an existing email is rejected."""
        response = self.post(reverse('accounts:register'), {
            'name': 'Someone',
            'email': 'STUDENT@example.com',
            'password': 'Ledger#2026',
            'role': 'student',
        })
        self.assertEqual(response.status_code, 400)
        self.assertIn('email', response.json()['errors'])

    def test_register_cannot_create_admin(self):
        """Test self-registration rejects the admin role."""
        response = self.post(reverse('accounts:register'), {
            'name': 'Mallory',
            'email': 'mallory@example.com',
            'password': 'Ledger#2026',
            'role': 'admin',
        })
        self.assertEqual(response.status_code, 400)
        self.assertFalse(User.objects.filter(email='mallory@example.com').exists())

    def test_register_student_drops_employee_id(self):
        """Test role-foreign identifiers are not stored."""
        self.post(reverse('accounts:register'), {
            'name': 'Esi Owusu',
            'email': 'esi@example.com',
            'password': 'Ledger#2026',
            'role': 'student',
            'employeeId': 'EMP-9',
        })
        self.assertIsNone(User.objects.get(email='esi@example.com').employee_id)

    def test_register_rejects_weak_passwords(self):
        """Test the configured password validators run on registration."""
        for password in ('password', '12345678', 'abc'):
            with self.subTest(password=password):
                response = self.post(reverse('accounts:register'), {
                    'name': 'Esi Owusu',
                    'email': 'esi@example.com',
                    'password': password,
                    'role': 'student',
                })
                self.assertEqual(response.status_code, 400)
                self.assertIn('password', response.json()['errors'])
        self.assertFalse(User.objects.filter(email='esi@example.com').exists())

    def test_register_roll_number_case_clash(self):
        """Test a roll number differing only in case is a duplicate."""
        response = self.post(reverse('accounts:register'), {
            'name': 'Esi Owusu',
            'email': 'esi@example.com',
            'password': 'Ledger#2026',
            'role': 'student',
            'rollNumber': 'cs-001',
        })
        self.assertEqual(response.status_code, 400)
        self.assertIn('rollNumber', response.json()['errors'])

    def test_login_success(self):
        """Test valid credentials log the user in."""
        response = self.post(reverse('accounts:login'), {
            'email': 'Student@Example.com',
            'password': 'studentpass',
        })
        self.assertEqual(response.status_code, 200)
        self.assertEqual(response.json()['message'], 'Login successful')
        self.assertEqual(response.json()['user']['role'], 'student')

    def test_login_wrong_password(self):
        """Test invalid credentials return 401."""
        response = self.post(reverse('accounts:login'), {
            'email': 'student@example.com',
            'password': 'wrong',
        })
        self.assertEqual(response.status_code, 401)
        self.assertEqual(response.json()['message'], 'Invalid email or password')

    def test_login_missing_fields(self):
        """Test missing email or password is a 400."""
        response = self.post(reverse('accounts:login'), {'email': 'student@example.com'})
        self.assertEqual(response.status_code, 400)
        self.assertEqual(response.json()['message'], 'Email and password are required')

    def test_login_deactivated_account(self):
        """Test deactivated users cannot log in."""
        self.student.is_active = False
        self.student.save()
        response = self.post(reverse('accounts:login'), {
            'email': 'student@example.com',
            'password': 'studentpass',
        })
        self.assertEqual(response.status_code, 401)

    def test_login_rate_limited(self):
        """Test repeated logins from one address are throttled."""
        for _ in range(10):
            self.post(reverse('accounts:login'), {'email': 'student@example.com', 'password': 'wrong'})
        response = self.post(reverse('accounts:login'), {'email': 'student@example.com', 'password': 'wrong'})
        self.assertEqual(response.status_code, 429)

    def test_me_requires_authentication(self):
        """Test me returns 401 for anonymous users."""
        self.assertEqual(self.client.get(reverse('accounts:me')).status_code, 401)

    def test_logout(self):
        """Test logout ends the session."""
        self.client.force_login(self.student)
        self.assertEqual(self.client.post(reverse('accounts:logout')).status_code, 200)
        self.assertEqual(self.client.get(reverse('accounts:me')).status_code, 401)

    def test_csrf_token(self):
        """Test the csrf endpoint returns a token."""
        response = self.client.get(reverse('accounts:csrf'))
        self.assertEqual(response.status_code, 200)
        self.assertTrue(response.json()['csrfToken'])


class ChangePasswordApiTests(TestCase):
    """Tests for changing the signed-in user's password."""

    def setUp(self):
        self.student = User.objects.create_student(
            email='student@example.com', password='studentpass', name='Ama Mensah'
        )
        self.client.force_login(self.student)

    def post(self, data):
        return self.client.post(
            reverse('accounts:change_password'), data=json.dumps(data), content_type='application/json'
        )

    def test_change_password(self):
        """Test the password changes and the session stays valid."""
        response = self.post({'currentPassword': 'studentpass', 'newPassword': 'Ledger#2026'})
        self.assertEqual(response.status_code, 200)
        self.assertEqual(response.json()['message'], 'Password changed successfully')
        self.student.refresh_from_db()
        self.assertTrue(self.student.check_password('Ledger#2026'))
        self.assertEqual(self.client.get(reverse('accounts:me')).status_code, 200)

    def test_wrong_current_password(self):
        """Test the current password must match."""
        response = self.post({'currentPassword': 'wrong', 'newPassword': 'Ledger#2026'})
        self.assertEqual(response.status_code, 400)
        self.assertEqual(response.json()['errors']['currentPassword'], ['Current password is incorrect'])
        self.student.refresh_from_db()
        self.assertTrue(self.student.check_password('studentpass'))

    def test_weak_new_password(self):
        """Test the new password goes through the password validators."""
        response = self.post({'currentPassword': 'studentpass', 'newPassword': '12345678'})
        self.assertEqual(response.status_code, 400)
        self.assertIn('newPassword', response.json()['errors'])

    def test_requires_login(self):
        """Test anonymous users get 401."""
        self.client.logout()
        response = self.post({'currentPassword': 'studentpass', 'newPassword': 'Ledger#2026'})
        self.assertEqual(response.status_code, 401)


class AdminUserApiTests(TestCase):
    """Tests for admin user and teacher management."""

    def setUp(self):
        cache.clear()
        self.admin = User.objects.create_admin(email='admin@example.com', password='adminpass', name='Admin')
        self.teacher = User.objects.create_teacher(
            email='teacher@example.com', password='teacherpass', name='Kwame Asante',
            employee_id='EMP-001', department='Computer Science'
        )
        self.student = User.objects.create_student(
            email='student@example.com', password='studentpass', name='Ama Mensah',
            roll_number='CS-001', department='Computer Science', year=1
        )
        self.subject = Subject.objects.create(name='Algorithms', code='cs201', department='Computer Science')
        self.client.force_login(self.admin)

    def put(self, url, data):
        return self.client.put(url, data=json.dumps(data), content_type='application/json')

    def test_non_admin_is_forbidden(self):
        """Test teachers cannot use admin endpoints."""
        self.client.force_login(self.teacher)
        response = self.client.get(reverse('accounts:admin_users'))
        self.assertEqual(response.status_code, 403)
        self.assertEqual(response.json()['message'], 'Admin access required')

    def test_list_users_filtered_by_role(self):
        """Test the user list filters by role."""
        response = self.client.get(reverse('accounts:admin_users'), {'role': 'student'})
        body = response.json()
        self.assertEqual(response.status_code, 200)
        self.assertEqual(body['total'], 1)
        self.assertEqual(body['users'][0]['email'], 'student@example.com')

    def test_create_student(self):
        """Test admins can create student accounts."""
        response = self.client.post(reverse('accounts:admin_users'), data=json.dumps({
            'name': 'Kofi Boateng',
            'email': 'kofi@example.com',
            'password': 'Ledger#2026',
            'role': 'student',
            'rollNumber': 'cs-002',
            'department': 'Computer Science',
            'year': 1,
        }), content_type='application/json')
        self.assertEqual(response.status_code, 201)
        self.assertEqual(response.json()['message'], 'User created successfully')
        student = User.objects.get(email='kofi@example.com')
        self.assertEqual(student.role, Role.STUDENT)
        self.assertEqual(student.roll_number, 'CS-002')
        self.assertTrue(student.check_password('Ledger#2026'))
        self.assertFalse(student.is_staff)

    def test_create_admin(self):
        """Test created admins can use the Django admin site."""
        response = self.client.post(reverse('accounts:admin_users'), data=json.dumps({
            'name': 'Efua Admin',
            'email': 'efua@example.com',
            'password': 'Ledger#2026',
            'role': 'admin',
            'rollNumber': 'CS-404',
        }), content_type='application/json')
        self.assertEqual(response.status_code, 201)
        admin = User.objects.get(email='efua@example.com')
        self.assertEqual(admin.role, Role.ADMIN)
        self.assertTrue(admin.is_staff)
        self.assertIsNone(admin.roll_number)

    def test_create_user_validation(self):
        """Test role and password are required and checked."""
        response = self.client.post(reverse('accounts:admin_users'), data=json.dumps({
            'name': 'Nobody',
            'email': 'nobody@example.com',
            'password': 'password',
        }), content_type='application/json')
        self.assertEqual(response.status_code, 400)
        errors = response.json()['errors']
        self.assertIn('role', errors)
        self.assertIn('password', errors)

    def test_create_user_forbidden_for_teacher(self):
        """Test only admins create users."""
        self.client.force_login(self.teacher)
        response = self.client.post(reverse('accounts:admin_users'), data=json.dumps({
            'name': 'Kofi Boateng', 'email': 'kofi@example.com',
            'password': 'Ledger#2026', 'role': 'student',
        }), content_type='application/json')
        self.assertEqual(response.status_code, 403)

    def test_create_teacher_with_subjects(self):
        """Test creating a teacher assigns the requested subjects."""
        response = self.client.post(reverse('accounts:admin_teachers'), data=json.dumps({
            'name': 'Yaw Darko',
            'email': 'yaw@example.com',
            'password': 'Ledger#2026',
            'employeeId': 'EMP-002',
            'department': 'Computer Science',
            'subjects': [self.subject.pk],
        }), content_type='application/json')
        self.assertEqual(response.status_code, 201)
        teacher = User.objects.get(email='yaw@example.com')
        self.assertEqual(teacher.role, Role.TEACHER)
        self.assertEqual(list(teacher.subjects.all()), [self.subject])
        self.assertEqual(response.json()['teacher']['subjects'][0]['code'], 'CS201')

    def test_create_teacher_duplicate_employee_id(self):
        """Test employee ids must be unique."""
        response = self.client.post(reverse('accounts:admin_teachers'), data=json.dumps({
            'name': 'Yaw Darko',
            'email': 'yaw@example.com',
            'password': 'Ledger#2026',
            'employeeId': 'EMP-001',
            'department': 'Computer Science',
        }), content_type='application/json')
        self.assertEqual(response.status_code, 400)
        self.assertIn('employeeId', response.json()['errors'])

    def test_create_teacher_unknown_subject(self):
        """Test unknown subject ids roll back the whole creation."""
        response = self.client.post(reverse('accounts:admin_teachers'), data=json.dumps({
            'name': 'Yaw Darko',
            'email': 'yaw@example.com',
            'password': 'Ledger#2026',
            'employeeId': 'EMP-002',
            'department': 'Computer Science',
            'subjects': [9999],
        }), content_type='application/json')
        self.assertEqual(response.status_code, 400)
        self.assertFalse(User.objects.filter(email='yaw@example.com').exists())

    def test_partial_update_keeps_other_fields(self):
        """Test updating one field leaves the rest unchanged."""
        response = self.put(reverse('accounts:admin_user_detail', args=[self.student.pk]), {'year': 3})
        self.assertEqual(response.status_code, 200)
        self.student.refresh_from_db()
        self.assertEqual(self.student.year, 3)
        self.assertEqual(self.student.roll_number, 'CS-001')
        self.assertTrue(self.student.check_password('studentpass'))

    def test_update_teacher_subjects(self):
        """Test assigning subjects through a user update."""
        url = reverse('accounts:admin_user_detail', args=[self.teacher.pk])
        response = self.put(url, {'subjects': [self.subject.pk]})
        self.assertEqual(response.status_code, 200)
        self.assertEqual(list(self.teacher.subjects.all()), [self.subject])

    def test_demoting_teacher_detaches_subjects(self):
        """Test a teacher changed to another role loses subject links."""
        self.subject.teachers.add(self.teacher)
        self.put(reverse('accounts:admin_user_detail', args=[self.teacher.pk]), {'role': 'student'})
        self.assertFalse(self.subject.teachers.exists())

    def test_delete_user_is_soft(self):
        """Test deleting deactivates the user and removes subject links."""
        self.subject.teachers.add(self.teacher)
        response = self.client.delete(reverse('accounts:admin_user_detail', args=[self.teacher.pk]))
        self.assertEqual(response.status_code, 200)
        self.teacher.refresh_from_db()
        self.assertFalse(self.teacher.is_active)
        self.assertFalse(self.subject.teachers.exists())

    def test_cannot_delete_admin(self):
        """Test admin accounts cannot be deleted."""
        other = User.objects.create_admin(email='other@example.com', password='x', name='Other')
        response = self.client.delete(reverse('accounts:admin_user_detail', args=[other.pk]))
        self.assertEqual(response.status_code, 403)
        self.assertEqual(response.json()['message'], 'Cannot delete admin users')

    def test_update_unknown_user(self):
        """Test updating a missing user is a 404."""
        response = self.put(reverse('accounts:admin_user_detail', args=[9999]), {'year': 2})
        self.assertEqual(response.status_code, 404)


class ProvisioningTests(TestCase):
    """Tests for first-admin provisioning."""

    def test_creates_admin_when_none_exists(self):
        """Test the first admin is created."""
        user, created = ensure_initial_admin('Root@Example.com', 'rootpass')
        self.assertTrue(created)
        self.assertEqual(user.email, 'root@example.com')
        self.assertEqual(user.role, Role.ADMIN)
        self.assertTrue(user.check_password('rootpass'))

    def test_is_idempotent(self):
        """Test a second run changes nothing."""
        first, _ = ensure_initial_admin('root@example.com', 'rootpass')
        second, created = ensure_initial_admin('root@example.com', 'different')
        self.assertFalse(created)
        self.assertEqual(first.pk, second.pk)
        second.refresh_from_db()
        self.assertTrue(second.check_password('rootpass'))

    def test_promotes_existing_user(self):
        """Test an existing account with the admin email is promoted."""
        User.objects.create_student(email='root@example.com', password='x', name='Root')
        user, created = ensure_initial_admin('root@example.com', 'rootpass')
        self.assertTrue(created)
        self.assertEqual(User.objects.count(), 1)
        self.assertEqual(user.role, Role.ADMIN)

    def test_command_without_env(self):
        """Test the command only warns when credentials are missing."""
        out = StringIO()
        with mock.patch.dict(os.environ, {}, clear=True):
            call_command('ensure_admin', stdout=out)
        self.assertIn('must be set', out.getvalue())
        self.assertFalse(User.objects.exists())

    def test_command_creates_admin(self):
        """Test the command provisions from the environment."""
        out = StringIO()
        env = {'ADMIN_EMAIL': 'root@example.com', 'ADMIN_PASSWORD': 'rootpass'}
        with mock.patch.dict(os.environ, env):
            call_command('ensure_admin', stdout=out)
        self.assertIn('created successfully', out.getvalue())
        self.assertTrue(User.objects.admins().filter(email='root@example.com').exists())
