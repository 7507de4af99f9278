"""
Department queues.

A queue is not stored anywhere: each one is a filter over visit, order
or billing status.
"""
from __future__ import annotations

from typing import Optional

from django.core.cache import cache
from django.db.models import Exists, OuterRef, Q

from workflow.models import (
    BatchOrderService,
    Billing,
    DiagnosticOrder,
    MedicationOrder,
    OrderStatus,
    User,
    Visit,
)

DOCTOR_WAITING = (Visit.WAITING_FOR_DOCTOR, Visit.IN_DOCTOR_QUEUE, Visit.UNDER_DOCTOR_REVIEW)
WORKABLE = (OrderStatus.QUEUED, OrderStatus.IN_PROGRESS)
OUTSTANDING_BILLING = (
    Billing.PENDING, Billing.PARTIALLY_PAID, Billing.PENDING_INSURANCE,
    Billing.INSURANCE_CLAIMED, Billing.EMERGENCY_PENDING,
)


def _visits():
    return Visit.objects.select_related('patient', 'assignment__doctor').order_by('created_at', 'id')


def _for_doctor(qs, doctor: Optional[User]):
    if doctor is not None and doctor.role == User.ROLE_DOCTOR:
        qs = qs.filter(assignment__doctor=doctor)
    return qs


def triage_queue(user: Optional[User] = None):
    return _visits().filter(status__in=[Visit.WAITING_FOR_TRIAGE, Visit.TRIAGED])


def doctor_queue(user: Optional[User] = None):
    """Visits a doctor may see: consultation paid, none billed, or emergency."""
    unpaid_consult = Billing.objects.filter(
        visit=OuterRef('pk'), billing_type=Billing.TYPE_CONSULTATION,
    ).exclude(status=Billing.PAID)
    qs = _visits().filter(status__in=DOCTOR_WAITING, queue_type=Visit.QUEUE_CONSULTATION)
    qs = qs.filter(Q(is_emergency=True) | ~Exists(unpaid_consult))
    return _for_doctor(qs, user)


def results_queue(user: Optional[User] = None):
    qs = _visits().filter(status=Visit.AWAITING_RESULTS_REVIEW, queue_type=Visit.QUEUE_RESULTS_REVIEW)
    return _for_doctor(qs, user)


def _diagnostic_work(kind: str) -> dict:
    category = Q(investigation_type__category=kind) | Q(investigation_type__isnull=True, service__category=kind)
    return {
        'orders': DiagnosticOrder.objects.select_related('visit', 'patient', 'investigation_type')
        .filter(kind=kind, status__in=WORKABLE).order_by('created_at', 'id'),
        'batch_services': BatchOrderService.objects.select_related(
            'batch_order__visit', 'batch_order__patient', 'service', 'investigation_type',
        ).filter(category, status__in=WORKABLE).order_by('batch_order__created_at', 'id'),
    }


def lab_queue(user: Optional[User] = None) -> dict:
    return _diagnostic_work(DiagnosticOrder.KIND_LAB)


def radiology_queue(user: Optional[User] = None) -> dict:
    return _diagnostic_work(DiagnosticOrder.KIND_RADIOLOGY)


def pharmacy_queue(user: Optional[User] = None):
    return (
        MedicationOrder.objects.select_related('visit', 'patient')
        .filter(status=OrderStatus.QUEUED).order_by('updated_at', 'id')
    )


def billing_queue(user: Optional[User] = None):
    return (
        Billing.objects.select_related('patient', 'visit')
        .filter(status__in=OUTSTANDING_BILLING).order_by('created_at', 'id')
    )


QUEUES = {
    'triage': (triage_queue, {User.ROLE_NURSE, User.ROLE_RECEPTION}),
    'doctor': (doctor_queue, {User.ROLE_DOCTOR}),
    'results': (results_queue, {User.ROLE_DOCTOR}),
    'lab': (lab_queue, {User.ROLE_LAB}),
    'radiology': (radiology_queue, {User.ROLE_RADIOLOGY}),
    'pharmacy': (pharmacy_queue, {User.ROLE_PHARMACY}),
    'billing': (billing_queue, {User.ROLE_BILLING, User.ROLE_RECEPTION}),
}


COUNTS_CACHE_KEY = 'queues:counts'
COUNTS_TTL = 30


def compute_counts() -> dict[str, int]:
    counts = {}
    for name, (build, _) in QUEUES.items():
        result = build(None)
        if isinstance(result, dict):
            counts[name] = sum(qs.count() for qs in result.values())
        else:
            counts[name] = result.count()
    return counts


def queue_counts(*, refresh: bool = False) -> dict[str, int]:
    """Hospital-wide queue lengths, cached briefly for dashboards."""
    if refresh:
        counts = compute_counts()
        cache.set(COUNTS_CACHE_KEY, counts, COUNTS_TTL)
        return counts
    return cache.get_or_set(COUNTS_CACHE_KEY, compute_counts, COUNTS_TTL)
