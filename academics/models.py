from django.conf import settings
from django.core.validators import MaxValueValidator, MinLengthValidator, MinValueValidator
from django.db import models


class SubjectQuerySet(models.QuerySet):

    def active(self):
        return self.filter(is_active=True)

    def taught_by(self, teacher):
        return self.filter(teachers=teacher)


class Subject(models.Model):
    """
    Represents a subject taught in a department.

    Teachers are linked through a single many-to-many join table; the
    reverse accessor ``user.subjects`` lists a teacher's subjects.
    """
    name = models.CharField(
        max_length=100,
        validators=[MinLengthValidator(2)],
        help_text="e.g., Mathematics, Data Structures"
    )
    code = models.CharField(
        max_length=20,
        unique=True,
        validators=[MinLengthValidator(2)],
        help_text="Subject code, stored upper-cased (e.g., CS101)"
    )
    description = models.TextField(blank=True)
    department = models.CharField(
        max_length=100,
        help_text="Department offering the subject"
    )
    credits = models.PositiveSmallIntegerField(
        default=3,
        validators=[MinValueValidator(1), MaxValueValidator(10)]
    )
    teachers = models.ManyToManyField(
        settings.AUTH_USER_MODEL,
        blank=True,
        related_name='subjects',
        help_text="Teachers assigned to this subject"
    )

    is_active = models.BooleanField(default=True)
    created_by = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name='created_subjects'
    )
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    objects = SubjectQuerySet.as_manager()

    class Meta:
        ordering = ['name']
        verbose_name = "Subject"
        verbose_name_plural = "Subjects"
        indexes = [
            models.Index(fields=['department', 'is_active'], name='subject_dept_active_idx'),
        ]

    def __str__(self):
        return f"{self.code} - {self.name}"

    def save(self, *args, **kwargs):
        self.code = (self.code or '').strip().upper()
        super().save(*args, **kwargs)
