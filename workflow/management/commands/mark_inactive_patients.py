from django.conf import settings
from django.core.management.base import BaseCommand

from workflow.services.patients import mark_inactive_patients


class Command(BaseCommand):
    help = "Mark patients without a recent visit as Inactive (run daily from cron)."

    def add_arguments(self, parser):
        parser.add_argument('--days', type=int, default=None,
                            help='inactivity window in days (default: PATIENT_INACTIVITY_DAYS)')

    def handle(self, *args, **options):
        days = options['days'] or settings.PATIENT_INACTIVITY_DAYS
        count = mark_inactive_patients(days)
        self.stdout.write(self.style.SUCCESS(f"Marked {count} patient(s) inactive (>{days} days)"))
