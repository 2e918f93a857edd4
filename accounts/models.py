from django.contrib.auth.models import AbstractUser, BaseUserManager
from django.core.validators import MaxValueValidator, MinLengthValidator, MinValueValidator
from django.db import models
from django.utils.translation import gettext_lazy as _

from core.choices import Role


class UserQuerySet(models.QuerySet):

    def active(self):
        return self.filter(is_active=True)

    def students(self):
        return self.filter(role=Role.STUDENT)

    def teachers(self):
        return self.filter(role=Role.TEACHER)

    def admins(self):
        return self.filter(role=Role.ADMIN)


class UserManager(BaseUserManager.from_queryset(UserQuerySet)):
    """
    Custom manager to easily create users of each role.
    """

    def create_user(self, email, password=None, **extra_fields):
        """Base method for creating a generic user."""
        if not email:
            raise ValueError(_('The Email must be set'))
        email = self.normalize_email(email).lower()
        user = self.model(email=email, **extra_fields)
        user.set_password(password)
        user.save(using=self._db)
        return user

    def create_superuser(self, email, password=None, **extra_fields):
        """Create a Superuser. Superusers are always admins."""
        extra_fields.setdefault('is_staff', True)
        extra_fields.setdefault('is_superuser', True)
        extra_fields.setdefault('is_active', True)
        extra_fields.setdefault('role', Role.ADMIN)

        if extra_fields.get('is_staff') is not True:
            raise ValueError(_('Superuser must have is_staff=True.'))
        if extra_fields.get('is_superuser') is not True:
            raise ValueError(_('Superuser must have is_superuser=True.'))

        return self.create_user(email, password, **extra_fields)

    # --- ROLE SPECIFIC HELPERS ---

    def create_admin(self, email, password=None, **extra_fields):
        """Create an Administrator. Admins can also use the Django admin site."""
        extra_fields['role'] = Role.ADMIN
        extra_fields.setdefault('is_staff', True)
        return self.create_user(email, password, **extra_fields)

    def create_teacher(self, email, password=None, **extra_fields):
        """Create a Teacher."""
        extra_fields['role'] = Role.TEACHER
        return self.create_user(email, password, **extra_fields)

    def create_student(self, email, password=None, **extra_fields):
        """Create a Student."""
        extra_fields['role'] = Role.STUDENT
        return self.create_user(email, password, **extra_fields)


class User(AbstractUser):
    """
    Single identity model for students, teachers and administrators.

    Login is by email. Role-specific fields are optional at the database
    level; forms enforce which ones each role needs.
    """
    username = None
    first_name = None
    last_name = None

    email = models.EmailField(_('email address'), unique=True)
    name = models.CharField(
        max_length=50,
        validators=[MinLengthValidator(2)],
        help_text="Full name"
    )
    role = models.CharField(
        max_length=10,
        choices=Role.choices,
        default=Role.STUDENT,
        db_index=True
    )

    # Teacher
    employee_id = models.CharField(
        max_length=30,
        unique=True,
        null=True,
        blank=True,
        help_text="Staff identifier, unique when present"
    )

    # Student
    roll_number = models.CharField(
        max_length=30,
        unique=True,
        null=True,
        blank=True,
        help_text="Student roll number, unique when present"
    )
    department = models.CharField(max_length=100, blank=True, default='')
    year = models.PositiveSmallIntegerField(
        null=True,
        blank=True,
        validators=[MinValueValidator(1), MaxValueValidator(4)],
        help_text="Year of study (1-4)"
    )

    updated_at = models.DateTimeField(auto_now=True)

    USERNAME_FIELD = 'email'
    REQUIRED_FIELDS = ['name']

    objects = UserManager()

    class Meta:
        ordering = ['name']
        verbose_name = 'User'
        verbose_name_plural = 'Users'

    def __str__(self):
        return self.email

    def save(self, *args, **kwargs):
        self.email = (self.email or '').strip().lower()
        # Blank identifiers are stored as NULL so the unique index ignores them.
        # Roll numbers are upper-cased so uniqueness ignores case.
        self.employee_id = self.employee_id or None
        self.roll_number = (self.roll_number or '').strip().upper() or None
        super().save(*args, **kwargs)

    def get_full_name(self):
        return self.name

    def get_short_name(self):
        return self.name.split(' ')[0] if self.name else self.email

    @property
    def is_admin(self):
        return self.is_superuser or self.role == Role.ADMIN

    @property
    def is_teacher(self):
        return self.role == Role.TEACHER

    @property
    def is_student(self):
        return self.role == Role.STUDENT

    @property
    def role_label(self):
        """Helper to get a string representation of the user's role"""
        if self.is_superuser:
            return "Super Admin"
        return self.get_role_display()
