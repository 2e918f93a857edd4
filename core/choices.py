from django.db import models
from django.utils.translation import gettext_lazy as _


class Role(models.TextChoices):
    STUDENT = 'student', _('Student')
    TEACHER = 'teacher', _('Teacher')
    ADMIN = 'admin', _('Admin')


class TestType(models.TextChoices):
    QUIZ = 'quiz', _('Quiz')
    MIDTERM = 'midterm', _('Midterm')
    FINAL = 'final', _('Final')
    ASSIGNMENT = 'assignment', _('Assignment')


class Grade(models.TextChoices):
    A_PLUS = 'A+', _('A+')
    A = 'A', _('A')
    B_PLUS = 'B+', _('B+')
    B = 'B', _('B')
    C_PLUS = 'C+', _('C+')
    C = 'C', _('C')
    D = 'D', _('D')
    F = 'F', _('F')
