"""
Visit state machine.

Every transition runs in one ``transaction.atomic()`` block, locks the
visit row with ``select_for_update()`` and validates the persisted
status before writing.  Nothing else in the codebase writes
``Visit.status``.
"""
from __future__ import annotations

import logging
from datetime import date
from decimal import Decimal, ROUND_HALF_UP
from typing import Iterable, Optional

import bleach
from django.db import IntegrityError, transaction
from django.db.models import Q
from django.db.models.functions import Length
from django.utils import timezone
from rest_framework.exceptions import NotFound, PermissionDenied, ValidationError

from workflow.events import BillingLine, MedicationLine, OrderLine, VisitSnapshot, money
from workflow.exceptions import DoctorUnavailable, InvalidVisitState, PaymentRequired, PendingInvestigations
from workflow.models import (
    Appointment,
    Assignment,
    BatchOrder,
    BatchOrderService,
    Billing,
    DiagnosticOrder,
    MedicalHistory,
    MedicationOrder,
    OrderStatus,
    Patient,
    User,
    Visit,
    VitalSign,
)
from workflow.services import billing as ledger
from workflow.services import catalog, notify
from workflow.services.audit import log_action

logger = logging.getLogger(__name__)

UID_ATTEMPTS = 5

REVIEW_SOURCES = (Visit.WAITING_FOR_DOCTOR, Visit.IN_DOCTOR_QUEUE, Visit.AWAITING_RESULTS_REVIEW)
DIAGNOSTIC_SOURCES = (
    Visit.WAITING_FOR_DOCTOR, Visit.IN_DOCTOR_QUEUE, Visit.UNDER_DOCTOR_REVIEW, *Visit.SENT_STATUSES,
)
MEDICATION_SOURCES = DIAGNOSTIC_SOURCES + (Visit.AWAITING_RESULTS_REVIEW,)
FINISHED_ORDER_STATUSES = (OrderStatus.COMPLETED, OrderStatus.CANCELLED)


def clean_text(value: Optional[str]) -> str:
    return bleach.clean((value or '').strip(), strip=True)


def lock_visit(visit_id: int) -> Visit:
    visit = Visit.objects.select_for_update().select_related('patient', 'assignment').filter(id=visit_id).first()
    if not visit:
        raise NotFound(f'visit {visit_id} not found')
    return visit


def require_status(visit: Visit, allowed: Iterable[str], action: str) -> None:
    allowed = tuple(allowed)
    if visit.status not in allowed:
        logger.info("visit %s: %s refused from %s", visit.id, action, visit.status)
        raise InvalidVisitState(
            f'cannot {action} a visit in {visit.status}; expected one of {", ".join(allowed)}'
        )


def _set_status(visit: Visit, new_status: str, *, fields: Iterable[str] = ()) -> str:
    old = visit.status
    visit.status = new_status
    visit.save(update_fields=['status', 'updated_at', *fields])
    logger.info("visit %s %s -> %s", visit.id, old, new_status)
    return old


def _check_doctor(visit: Visit, doctor: User) -> None:
    if doctor.role == User.ROLE_ADMIN:
        return
    if visit.assignment_id and visit.assignment.doctor_id != doctor.id:
        raise PermissionDenied('visit is assigned to another doctor')


def _next_visit_uid(day: date) -> str:
    # the prefix has a fixed width, so longer uids carry larger sequence numbers
    prefix = f"VISIT-{day:%Y%m%d}-"
    last = (
        Visit.objects.filter(visit_uid__startswith=prefix)
        .order_by(Length('visit_uid').desc(), '-visit_uid')
        .values_list('visit_uid', flat=True).first()
    )
    seq = int(last[len(prefix):]) + 1 if last else 1
    return f"{prefix}{seq:04d}"


def _create_visit_row(**fields) -> Visit:
    """Insert a visit with the next free ``VISIT-YYYYMMDD-NNNN`` uid."""
    today = timezone.localdate()
    for attempt in range(UID_ATTEMPTS):
        try:
            with transaction.atomic():
                return Visit.objects.create(visit_uid=_next_visit_uid(today), **fields)
        except IntegrityError:
            logger.info("visit uid collision, retrying (%s)", attempt + 1)
    raise IntegrityError('could not allocate a visit uid')


# ---------------------------------------------------------------------------
# Entry paths
# ---------------------------------------------------------------------------

def create_visit(patient: Patient, *, created_by: Optional[User], notes: str = '',
                 is_emergency: bool = False) -> Visit:
    with transaction.atomic():
        patient = Patient.objects.select_for_update().get(id=patient.id)
        visit = _create_visit_row(
            patient=patient, created_by=created_by, notes=clean_text(notes),
            is_emergency=is_emergency, status=Visit.WAITING_FOR_TRIAGE,
        )
        patient.last_visit_at = timezone.now()
        patient.status = Patient.STATUS_ACTIVE
        patient.save(update_fields=['status', 'last_visit_at'])
        if is_emergency:
            ledger.open_billing(patient=patient, visit=visit, billing_type=Billing.TYPE_EMERGENCY,
                                status=Billing.EMERGENCY_PENDING, notes='Emergency visit')
        log_action(user=created_by, action='visit_create', object_type='visit', object_id=visit.id,
                   detail={'visit_uid': visit.visit_uid, 'emergency': is_emergency})
        notify.queue_changed(visit, 'visit_created')
    return visit


def create_visit_from_appointment(appointment_id: int, *, actor: Optional[User]) -> Visit:
    """Send a scheduled appointment straight to the doctor's queue, skipping triage."""
    with transaction.atomic():
        appointment = (
            Appointment.objects.select_for_update().select_related('patient', 'doctor')
            .filter(id=appointment_id).first()
        )
        if not appointment:
            raise NotFound(f'appointment {appointment_id} not found')
        if appointment.status != Appointment.STATUS_SCHEDULED:
            raise ValidationError({'appointment': f'appointment is {appointment.status}'})
        doctor = appointment.doctor
        if doctor.role != User.ROLE_DOCTOR or not doctor.is_active:
            raise DoctorUnavailable()
        patient = appointment.patient
        assignment = Assignment.objects.create(patient=patient, doctor=doctor, status=Assignment.STATUS_PENDING)
        visit = _create_visit_row(
            patient=patient, created_by=actor, assignment=assignment,
            notes=clean_text(appointment.notes), status=Visit.IN_DOCTOR_QUEUE,
        )
        if appointment.type == Appointment.TYPE_CONSULTATION:
            _open_consultation_charge(visit, doctor)
        appointment.status = Appointment.STATUS_IN_PROGRESS
        appointment.visit = visit
        appointment.save(update_fields=['status', 'visit'])
        patient.last_visit_at = timezone.now()
        patient.status = Patient.STATUS_ACTIVE
        patient.save(update_fields=['status', 'last_visit_at'])
        log_action(user=actor, action='visit_create', object_type='visit', object_id=visit.id,
                   detail={'visit_uid': visit.visit_uid, 'appointment_id': appointment.id})
        notify.queue_changed(visit, 'visit_created')
    return visit


# ---------------------------------------------------------------------------
# Triage & assignment
# ---------------------------------------------------------------------------

def _bmi(weight: Optional[Decimal], height: Optional[Decimal]) -> Optional[Decimal]:
    if not weight or not height:
        return None
    return (Decimal(weight) / (Decimal(height) ** 2)).quantize(Decimal('0.1'), rounding=ROUND_HALF_UP)


def record_vitals(visit_id: int, vitals: dict, *, recorded_by: Optional[User]) -> tuple[Visit, VitalSign]:
    """Record vital signs; a visit waiting for triage becomes TRIAGED.

    Vitals may be re-taken at any later non-terminal status without
    moving the visit.
    """
    vitals = dict(vitals)
    blood_type = vitals.pop('blood_type', None)
    with transaction.atomic():
        visit = lock_visit(visit_id)
        if visit.status in Visit.TERMINAL_STATUSES:
            raise InvalidVisitState(f'cannot record vitals for a {visit.status} visit')
        sign = VitalSign.objects.create(
            visit=visit, patient=visit.patient, recorded_by=recorded_by,
            bmi=_bmi(vitals.get('weight'), vitals.get('height')),
            **vitals,
        )
        if blood_type:
            visit.patient.blood_type = blood_type
            visit.patient.save(update_fields=['blood_type'])
        if visit.status == Visit.WAITING_FOR_TRIAGE:
            _set_status(visit, Visit.TRIAGED)
            notify.queue_changed(visit, 'triaged')
        log_action(user=recorded_by, action='vitals_record', object_type='visit', object_id=visit.id,
                   detail={'vital_id': sign.id, 'status': visit.status})
    return visit, sign


def _open_consultation_charge(visit: Visit, doctor: User) -> Optional[Billing]:
    service = catalog.consultation_service()
    price = doctor.consultation_fee if doctor.consultation_fee is not None else getattr(service, 'price', None)
    if price is None:
        raise ValidationError({'doctor': 'no consultation fee or consultation service configured'})
    description = f'Consultation - Dr. {doctor.get_full_name() or doctor.username}'
    if visit.is_emergency:
        billing = ledger.open_billing_for(visit, Billing.TYPE_EMERGENCY)
    else:
        billing = ledger.open_billing(patient=visit.patient, visit=visit, billing_type=Billing.TYPE_CONSULTATION)
    ledger.add_line_item(billing, service=service, description=description, quantity=1, unit_price=price)
    if Decimal(price) == 0 and billing.billing_type == Billing.TYPE_CONSULTATION:
        ledger.mark_paid(billing, reason='free consultation')
    return billing


def assign_doctor(visit_id: int, doctor_id: int, *, actor: Optional[User]) -> tuple[Visit, Assignment, Billing]:
    with transaction.atomic():
        visit = lock_visit(visit_id)
        require_status(visit, [Visit.TRIAGED], 'assign a doctor to')
        doctor = User.objects.filter(id=doctor_id).first()
        if not doctor or doctor.role != User.ROLE_DOCTOR or not doctor.available or not doctor.is_active:
            logger.info("visit %s: doctor %s unavailable", visit.id, doctor_id)
            raise DoctorUnavailable()
        assignment = (
            Assignment.objects.filter(patient=visit.patient, doctor=doctor, status=Assignment.STATUS_PENDING)
            .order_by('-id').first()
        )
        if assignment is None:
            assignment = Assignment.objects.create(patient=visit.patient, doctor=doctor)
        visit.assignment = assignment
        visit.queue_type = Visit.QUEUE_CONSULTATION
        _set_status(visit, Visit.WAITING_FOR_DOCTOR, fields=['assignment', 'queue_type'])
        billing = _open_consultation_charge(visit, doctor)
        log_action(user=actor, action='doctor_assign', object_type='visit', object_id=visit.id,
                   detail={'doctor_id': doctor.id, 'assignment_id': assignment.id, 'billing_id': billing.id})
        notify.queue_changed(visit, 'doctor_assigned')
    return visit, assignment, billing


# ---------------------------------------------------------------------------
# Doctor review
# ---------------------------------------------------------------------------

def consultation_billing(visit: Visit) -> Optional[Billing]:
    return visit.billings.filter(billing_type=Billing.TYPE_CONSULTATION).order_by('-id').first()


def start_review(visit_id: int, *, doctor: User) -> Visit:
    """Doctor picks a visit from their queue."""
    with transaction.atomic():
        visit = lock_visit(visit_id)
        require_status(visit, REVIEW_SOURCES, 'start reviewing')
        _check_doctor(visit, doctor)
        if not visit.is_emergency:
            consult = consultation_billing(visit)
            if consult is not None and not ledger.is_paid(consult):
                raise PaymentRequired('consultation billing must be paid before the doctor can see the patient')
        if visit.assignment_id and visit.assignment.status == Assignment.STATUS_PENDING:
            visit.assignment.status = Assignment.STATUS_ACTIVE
            visit.assignment.save(update_fields=['status', 'updated_at'])
        visit.queue_type = Visit.QUEUE_CONSULTATION
        old = _set_status(visit, Visit.UNDER_DOCTOR_REVIEW, fields=['queue_type'])
        log_action(user=doctor, action='visit_review', object_type='visit', object_id=visit.id,
                   detail={'from': old})
        notify.queue_changed(visit, 'review_started', extra_queues=['results'] if old == Visit.AWAITING_RESULTS_REVIEW else ())
    return visit


# ---------------------------------------------------------------------------
# Diagnostics
# ---------------------------------------------------------------------------

def _active_diagnostics(visit: Visit):
    return (
        DiagnosticOrder.objects.filter(visit=visit).exclude(status=OrderStatus.CANCELLED),
        BatchOrder.objects.filter(visit=visit).exclude(status=OrderStatus.CANCELLED),
    )


def _outstanding_diagnostics(visit: Visit):
    return (
        DiagnosticOrder.objects.filter(visit=visit).exclude(status__in=FINISHED_ORDER_STATUSES),
        BatchOrder.objects.filter(visit=visit).exclude(status__in=FINISHED_ORDER_STATUSES),
    )


def diagnostic_status(visit: Visit) -> Optional[str]:
    """SENT_TO_* status implied by every non-cancelled diagnostic order of the visit.

    Completed orders still count, so a lab order placed after a radiology
    result has come back sends the visit to both departments.
    """
    orders, batches = _active_diagnostics(visit)
    kinds = set(orders.values_list('kind', flat=True))
    for batch_type in batches.values_list('type', flat=True):
        if batch_type == BatchOrder.TYPE_MIXED:
            kinds.update({DiagnosticOrder.KIND_LAB, DiagnosticOrder.KIND_RADIOLOGY})
        else:
            kinds.add(batch_type)
    if {DiagnosticOrder.KIND_LAB, DiagnosticOrder.KIND_RADIOLOGY} <= kinds:
        return Visit.SENT_TO_BOTH
    if DiagnosticOrder.KIND_RADIOLOGY in kinds:
        return Visit.SENT_TO_RADIOLOGY
    if DiagnosticOrder.KIND_LAB in kinds:
        return Visit.SENT_TO_LAB
    return None


def require_diagnostics_allowed(visit: Visit) -> None:
    require_status(visit, DIAGNOSTIC_SOURCES, 'order diagnostics for')


def apply_diagnostic_status(visit: Visit) -> str:
    """Move a locked visit to the SENT_TO_* status its orders imply."""
    target = diagnostic_status(visit)
    if target and target != visit.status:
        _set_status(visit, target)
    return visit.status


def check_investigation_completion(visit_id: int, *, actor: Optional[User] = None) -> bool:
    """Advance the visit to results review once every diagnostic order is done.

    Cancelled orders are ignored.  Returns True only when this call moved
    the visit; a second call with no new results is a no-op.
    """
    with transaction.atomic():
        visit = lock_visit(visit_id)
        if visit.status not in Visit.SENT_STATUSES:
            return False
        orders, batches = _active_diagnostics(visit)
        total = orders.count() + batches.count()
        done = (
            orders.filter(status=OrderStatus.COMPLETED).count()
            + batches.filter(status=OrderStatus.COMPLETED).count()
        )
        if total == 0 or done != total:
            return False
        visit.queue_type = Visit.QUEUE_RESULTS_REVIEW
        old = _set_status(visit, Visit.AWAITING_RESULTS_REVIEW, fields=['queue_type'])
        log_action(user=actor, action='investigations_complete', object_type='visit', object_id=visit.id,
                   detail={'from': old, 'orders': total})
        notify.queue_changed(visit, 'results_ready')
    return True


def pending_investigations(visit: Visit) -> int:
    orders, batches = _outstanding_diagnostics(visit)
    return orders.count() + batches.count()


def ensure_no_pending_investigations(visit: Visit) -> None:
    pending = pending_investigations(visit)
    if pending:
        raise PendingInvestigations(
            f'{pending} lab/radiology order(s) must be completed before ordering medications'
        )


def medication_check(visit: Visit) -> dict:
    pending = pending_investigations(visit)
    return {
        'canOrder': pending == 0 and visit.status in MEDICATION_SOURCES,
        'pendingInvestigations': pending,
        'status': visit.status,
        'message': (
            'Lab and radiology investigations must be completed before ordering medications.'
            if pending else ''
        ),
    }


# ---------------------------------------------------------------------------
# Completion & cancellation
# ---------------------------------------------------------------------------

def _snapshot(visit: Visit, doctor: User, follow_up: Optional[Appointment]) -> VisitSnapshot:
    investigations = [
        OrderLine(kind=o.kind, order_id=o.id, name=o.investigation_type.name, status=o.status, result=o.result)
        for o in visit.diagnostic_orders.select_related('investigation_type').order_by('id')
    ]
    for batch in visit.batch_orders.prefetch_related('services__service').order_by('id'):
        for s in batch.services.all():
            investigations.append(OrderLine(
                kind=f'BATCH_{batch.type}', order_id=s.id, name=s.service.name, status=s.status, result=s.result,
            ))
    return VisitSnapshot(
        visit_uid=visit.visit_uid,
        patient_id=visit.patient_id,
        doctor_id=doctor.id,
        diagnosis=visit.diagnosis,
        diagnosis_details=visit.diagnosis_details,
        instructions=visit.instructions,
        is_emergency=visit.is_emergency,
        vitals=[
            {
                'temperature': str(v.temperature) if v.temperature is not None else None,
                'blood_pressure': v.blood_pressure,
                'heart_rate': v.heart_rate,
                'oxygen_saturation': v.oxygen_saturation,
                'bmi': str(v.bmi) if v.bmi is not None else None,
                'recorded_at': v.created_at.isoformat(),
            }
            for v in visit.vitals.order_by('id')
        ],
        investigations=investigations,
        medications=[
            MedicationLine(order_id=m.id, name=m.name, strength=m.strength, quantity=m.quantity,
                           frequency=m.frequency, duration=m.duration, status=m.status)
            for m in visit.medication_orders.order_by('id')
        ],
        billings=[
            BillingLine(billing_id=b.id, billing_type=b.billing_type, status=b.status,
                        total_amount=money(b.total_amount))
            for b in visit.billings.order_by('id')
        ],
        follow_up_appointment_id=follow_up.id if follow_up else None,
    )


def complete_visit(visit_id: int, *, doctor: User, diagnosis: str, diagnosis_details: str = '',
                   instructions: str = '', follow_up: Optional[dict] = None) -> Visit:
    """Close a visit under review.

    Writes the medical history snapshot, the optional follow-up
    appointment and queues paid medication orders for pharmacy, all in
    the same transaction as the status change.
    """
    diagnosis = clean_text(diagnosis)
    if not diagnosis:
        raise ValidationError({'diagnosis': 'diagnosis is required'})
    with transaction.atomic():
        visit = lock_visit(visit_id)
        require_status(visit, [Visit.UNDER_DOCTOR_REVIEW], 'complete')
        _check_doctor(visit, doctor)
        now = timezone.now()
        appointment = None
        if follow_up:
            appointment = Appointment.objects.create(
                patient=visit.patient, doctor=doctor,
                appointment_date=follow_up['appointment_date'],
                appointment_time=follow_up.get('appointment_time', ''),
                notes=clean_text(follow_up.get('notes')),
                type=Appointment.TYPE_FOLLOW_UP,
                status=Appointment.STATUS_SCHEDULED,
                created_by=doctor,
            )
        visit.diagnosis = diagnosis
        visit.diagnosis_details = clean_text(diagnosis_details)
        visit.instructions = clean_text(instructions)
        visit.completed_at = now
        _set_status(visit, Visit.COMPLETED,
                    fields=['diagnosis', 'diagnosis_details', 'instructions', 'completed_at'])
        queued = MedicationOrder.objects.filter(visit=visit, status=OrderStatus.PAID).update(status=OrderStatus.QUEUED)
        if visit.assignment_id:
            visit.assignment.status = Assignment.STATUS_COMPLETED
            visit.assignment.save(update_fields=['status', 'updated_at'])
        Appointment.objects.filter(visit=visit, status=Appointment.STATUS_IN_PROGRESS).update(
            status=Appointment.STATUS_COMPLETED
        )
        snapshot = _snapshot(visit, doctor, appointment)
        MedicalHistory.objects.create(
            patient=visit.patient, visit=visit, doctor=doctor, diagnosis=diagnosis,
            snapshot=snapshot.to_json(), appointment=appointment, completed_at=now,
        )
        log_action(user=doctor, action='visit_complete', object_type='visit', object_id=visit.id,
                   detail={'medications_queued': queued,
                           'follow_up_appointment_id': appointment.id if appointment else None})
        notify.queue_changed(visit, 'visit_completed', extra_queues=['doctor'])
    return visit


def cancel_visit(visit_id: int, *, actor: Optional[User], reason: str) -> Visit:
    reason = clean_text(reason)
    if not reason:
        raise ValidationError({'reason': 'a reason is required'})
    with transaction.atomic():
        visit = lock_visit(visit_id)
        if visit.status in Visit.TERMINAL_STATUSES:
            raise InvalidVisitState(f'cannot cancel a {visit.status} visit')
        unpaid = Q(visit=visit, status=OrderStatus.UNPAID)
        cancelled = {
            'diagnostic': DiagnosticOrder.objects.filter(unpaid).update(status=OrderStatus.CANCELLED),
            'batch': BatchOrder.objects.filter(unpaid).update(status=OrderStatus.CANCELLED),
            'medication': MedicationOrder.objects.filter(unpaid).update(status=OrderStatus.CANCELLED),
        }
        BatchOrderService.objects.filter(
            batch_order__visit=visit, status=OrderStatus.UNPAID
        ).update(status=OrderStatus.CANCELLED)
        if visit.assignment_id:
            visit.assignment.status = Assignment.STATUS_COMPLETED
            visit.assignment.save(update_fields=['status', 'updated_at'])
        visit.notes = f'{visit.notes}\nCancelled: {reason}'.strip()
        old = _set_status(visit, Visit.CANCELLED, fields=['notes'])
        Appointment.objects.filter(visit=visit, status=Appointment.STATUS_IN_PROGRESS).update(
            status=Appointment.STATUS_CANCELLED
        )
        log_action(user=actor, action='visit_cancel', object_type='visit', object_id=visit.id,
                   detail={'from': old, 'reason': reason, 'cancelled': cancelled})
        notify.queue_changed(visit, 'visit_cancelled', extra_queues=notify.STATUS_QUEUES.get(old, []))
    return visit
