"""First-admin bootstrap."""
import logging

from django.contrib.auth import get_user_model
from django.db import transaction

from core.choices import Role

logger = logging.getLogger(__name__)

DEFAULT_ADMIN_NAME = 'System Administrator'


@transaction.atomic
def ensure_initial_admin(email, password, name=DEFAULT_ADMIN_NAME):
    """
    Create the first administrator unless an active admin already exists.

    Safe to run on every deploy: once any active admin exists nothing is
    changed and no password is overwritten.

    Returns:
        tuple: (admin user, created flag)
    """
    User = get_user_model()

    existing = User.objects.active().admins().order_by('date_joined').first()
    if existing:
        logger.info(f"Admin already exists ({existing.email}), skipping provisioning")
        return existing, False

    email = email.strip().lower()
    if User.objects.filter(email=email).exists():
        # Promote the existing account rather than failing on the unique email
        user = User.objects.get(email=email)
        user.role = Role.ADMIN
        user.is_staff = True
        user.is_active = True
        user.set_password(password)
        user.save()
        logger.info(f"Promoted existing user {email} to admin")
        return user, True

    user = User.objects.create_admin(email=email, password=password, name=name)
    logger.info(f"Created initial admin {email}")
    return user, True
