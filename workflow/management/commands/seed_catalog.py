"""
Management command to load the reference catalog (services,
investigation types and medications).  Safe to run repeatedly.
"""
from decimal import Decimal

from django.conf import settings
from django.core.management.base import BaseCommand
from django.db import transaction

from workflow.models import InvestigationType, MedicationCatalog, Service

SERVICES = [
    (None, 'General consultation', Service.CATEGORY_CONSULTATION, '30.00'),
    ('LAB001', 'Complete blood count', Service.CATEGORY_LAB, '50.00'),
    ('LAB002', 'Blood glucose', Service.CATEGORY_LAB, '20.00'),
    ('LAB003', 'Urinalysis', Service.CATEGORY_LAB, '15.00'),
    ('RAD001', 'Chest X-ray', Service.CATEGORY_RADIOLOGY, '75.00'),
    ('RAD002', 'Abdominal ultrasound', Service.CATEGORY_RADIOLOGY, '90.00'),
    ('EMR001', 'Emergency assessment', Service.CATEGORY_EMERGENCY, '100.00'),
]

MEDICATIONS = [
    ('Paracetamol', '500mg', 'Tablet', '0.50', 1000),
    ('Amoxicillin', '500mg', 'Capsule', '1.20', 500),
    ('Ibuprofen', '400mg', 'Tablet', '0.80', 800),
    ('Omeprazole', '20mg', 'Capsule', '1.00', 300),
]


class Command(BaseCommand):
    help = 'Seed services, investigation types and medications'

    @transaction.atomic
    def handle(self, *args, **options):
        created = 0
        for code, name, category, price in SERVICES:
            code = code or settings.CONSULTATION_SERVICE_CODE
            service, is_new = Service.objects.update_or_create(
                code=code, defaults={'name': name, 'category': category, 'price': Decimal(price)},
            )
            created += int(is_new)
            if category in (Service.CATEGORY_LAB, Service.CATEGORY_RADIOLOGY):
                InvestigationType.objects.update_or_create(
                    service=service, name=name,
                    defaults={'category': category, 'price': Decimal(price)},
                )
        for name, strength, form, price, qty in MEDICATIONS:
            MedicationCatalog.objects.update_or_create(
                name=name, strength=strength, dosage_form=form,
                defaults={'unit_price': Decimal(price), 'available_quantity': qty},
            )
        self.stdout.write(self.style.SUCCESS(
            f'Catalog ready: {Service.objects.count()} services ({created} new), '
            f'{InvestigationType.objects.count()} investigation types, '
            f'{MedicationCatalog.objects.count()} medications'
        ))
