from decimal import Decimal

from django.contrib.auth.hashers import make_password
from django.core.management.base import BaseCommand

from workflow.models import User


class Command(BaseCommand):
    help = "Create or reset one staff account per role (<role>1) for local testing."

    def add_arguments(self, parser):
        parser.add_argument('--password', default='123456')

    def handle(self, *args, **opts):
        password = make_password(opts['password'])
        for role, label in User.ROLE_CHOICES:
            username = f"{role}1"
            fields = {
                "role": role,
                "password": password,
                "is_active": True,
                "is_staff": role == User.ROLE_ADMIN,
            }
            if role == User.ROLE_DOCTOR:
                fields.update(available=True, consultation_fee=Decimal("40.00"))
            user, created = User.objects.update_or_create(username=username, defaults=fields)
            verb = "created" if created else "reset"
            self.stdout.write(self.style.SUCCESS(f"{verb}: {user.username} ({label})"))
