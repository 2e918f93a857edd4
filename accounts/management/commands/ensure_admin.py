import os

from django.core.management.base import BaseCommand

from accounts.provisioning import DEFAULT_ADMIN_NAME, ensure_initial_admin


class Command(BaseCommand):
    help = 'Create the initial admin from ADMIN_EMAIL / ADMIN_PASSWORD if no admin exists'

    def add_arguments(self, parser):
        parser.add_argument('--name', default=os.getenv('ADMIN_NAME', DEFAULT_ADMIN_NAME))

    def handle(self, *args, **options):
        email = os.getenv('ADMIN_EMAIL')
        password = os.getenv('ADMIN_PASSWORD')

        self.stdout.write(f'ADMIN_EMAIL env: {"SET" if email else "NOT SET"}')
        self.stdout.write(f'ADMIN_PASSWORD env: {"SET" if password else "NOT SET"}')

        if not all([email, password]):
            self.stdout.write(self.style.WARNING(
                'ADMIN_EMAIL and ADMIN_PASSWORD must be set'
            ))
            return

        user, created = ensure_initial_admin(email, password, name=options['name'])
        if created:
            self.stdout.write(self.style.SUCCESS(f'Admin {user.email} created successfully'))
        else:
            self.stdout.write(f'Admin {user.email} already exists, nothing to do')
