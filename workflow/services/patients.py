import logging
from datetime import timedelta
from typing import Optional

from django.db.models import Q
from django.utils import timezone

from workflow.models import Patient, User, Visit
from workflow.services.audit import log_action

logger = logging.getLogger(__name__)


def create_patient(current_user: Optional[User], *, name, sex='', age=None, phone='', blood_type='') -> Patient:
    patient = Patient.objects.create(
        name=name, sex=sex or '', age=age, phone=phone or '', blood_type=blood_type or '',
        status=Patient.STATUS_ACTIVE,
    )
    log_action(user=current_user, action='patient_create', object_type='patient', object_id=patient.id)
    return patient


def list_patients(*, q: Optional[str] = None, status: Optional[str] = None, page: int = 1, page_size: int = 20):
    qs = Patient.objects.all().order_by('-created_at', '-id')
    if q:
        qs = qs.filter(Q(name__icontains=q) | Q(phone__icontains=q))
    if status:
        qs = qs.filter(status=status)
    total = qs.count()
    start = (page - 1) * page_size
    return list(qs[start:start + page_size]), total


def mark_inactive_patients(days: int, *, now=None) -> int:
    """Flag patients with no visit in the last ``days`` days as Inactive.

    Patients with an open visit are never touched.
    """
    now = now or timezone.now()
    cutoff = now - timedelta(days=days)
    open_visits = Visit.objects.exclude(status__in=Visit.TERMINAL_STATUSES).values('patient_id')
    stale = (
        Patient.objects.filter(status=Patient.STATUS_ACTIVE)
        .filter(Q(last_visit_at__lt=cutoff) | Q(last_visit_at__isnull=True, created_at__lt=cutoff))
        .exclude(id__in=open_visits)
    )
    count = stale.update(status=Patient.STATUS_INACTIVE)
    logger.info("marked %s patient(s) inactive (no visit since %s)", count, cutoff.date())
    return count
