"""
Remove teacher-subject links that no longer make sense.

Usage:
    python manage.py reconcile_subject_teachers
"""
from django.core.management.base import BaseCommand

from academics.services import reconcile_subject_teachers


class Command(BaseCommand):
    help = 'Remove links to inactive or non-teacher users and inactive subjects'

    def handle(self, *args, **options):
        removed = reconcile_subject_teachers()
        if removed:
            self.stdout.write(self.style.SUCCESS(f'Removed {removed} stale links'))
        else:
            self.stdout.write('No stale links found')
