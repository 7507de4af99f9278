from decimal import Decimal
from typing import Optional

from django.conf import settings
from rest_framework.exceptions import NotFound

from workflow.models import InvestigationType, MedicationCatalog, Service


def get_service(service_id: int) -> Service:
    service = Service.objects.filter(id=service_id, is_active=True).first()
    if not service:
        raise NotFound(f'service {service_id} not found')
    return service


def get_service_by_code(code: str) -> Service:
    service = Service.objects.filter(code=code, is_active=True).first()
    if not service:
        raise NotFound(f'service {code} not found')
    return service


def get_investigation_type(type_id: int) -> InvestigationType:
    inv = InvestigationType.objects.select_related('service').filter(id=type_id).first()
    if not inv:
        raise NotFound(f'investigation type {type_id} not found')
    return inv


def consultation_service() -> Optional[Service]:
    """The service billed for a doctor consultation, if configured."""
    return (
        Service.objects.filter(code=settings.CONSULTATION_SERVICE_CODE, is_active=True).first()
        or Service.objects.filter(category=Service.CATEGORY_CONSULTATION, is_active=True).order_by('id').first()
    )


def find_medication(name: str, strength: str = '', dosage_form: str = '') -> Optional[MedicationCatalog]:
    qs = MedicationCatalog.objects.filter(name__iexact=name.strip())
    if strength:
        qs = qs.filter(strength__iexact=strength.strip())
    if dosage_form:
        qs = qs.filter(dosage_form__iexact=dosage_form.strip())
    return qs.order_by('id').first()


def custom_medication_price() -> Decimal:
    return Decimal(str(settings.CUSTOM_MEDICATION_UNIT_PRICE))
