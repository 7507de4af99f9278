import datetime
import re
import threading
from decimal import Decimal

import pytest
from django.db import connection
from django.utils import timezone
from rest_framework.exceptions import PermissionDenied, ValidationError

from workflow.exceptions import DoctorUnavailable, InvalidVisitState, PaymentRequired
from workflow.models import (
    Appointment,
    Assignment,
    Billing,
    DiagnosticOrder,
    MedicalHistory,
    OrderStatus,
    Visit,
)
from workflow.services import billing as ledger
from workflow.services import orders, visits

pytestmark = pytest.mark.django_db


def triaged_visit(patient, reception, nurse, **kwargs):
    visit = visits.create_visit(patient, created_by=reception, **kwargs)
    visits.record_vitals(visit.id, {'weight': Decimal('70'), 'height': Decimal('1.75')}, recorded_by=nurse)
    return visit


def visit_with_doctor(patient, reception, nurse, doctor, cashier, pay=True):
    visit = triaged_visit(patient, reception, nurse)
    _, _, billing = visits.assign_doctor(visit.id, doctor.id, actor=nurse)
    if pay:
        ledger.record_payment(billing.id, amount=billing.total_amount, received_by=cashier)
    return visit, billing


def test_create_visit_allocates_daily_uid(patient, reception):
    first = visits.create_visit(patient, created_by=reception)
    second = visits.create_visit(patient, created_by=reception)
    assert first.status == Visit.WAITING_FOR_TRIAGE
    assert re.fullmatch(r'VISIT-\d{8}-0001', first.visit_uid)
    assert second.visit_uid.endswith('-0002')
    patient.refresh_from_db()
    assert patient.last_visit_at is not None


def test_visit_uid_sequence_grows_past_four_digits(patient, reception):
    prefix = f"VISIT-{timezone.localdate():%Y%m%d}-"
    Visit.objects.create(patient=patient, visit_uid=f'{prefix}9998')
    Visit.objects.create(patient=patient, visit_uid=f'{prefix}9999')
    assert visits.create_visit(patient, created_by=reception).visit_uid == f'{prefix}10000'
    assert visits.create_visit(patient, created_by=reception).visit_uid == f'{prefix}10001'


def test_vitals_triage_visit_and_compute_bmi(patient, reception, nurse):
    visit = visits.create_visit(patient, created_by=reception)
    visit, sign = visits.record_vitals(
        visit.id, {'weight': Decimal('70'), 'height': Decimal('1.75'), 'blood_type': 'O+'}, recorded_by=nurse,
    )
    assert visit.status == Visit.TRIAGED
    assert sign.bmi == Decimal('22.9')
    patient.refresh_from_db()
    assert patient.blood_type == 'O+'

    # re-taking vitals does not move the visit
    visit, _ = visits.record_vitals(visit.id, {'heart_rate': 80}, recorded_by=nurse)
    assert visit.status == Visit.TRIAGED


def test_assign_doctor_opens_consultation_billing(patient, reception, nurse, doctor, catalog):
    visit = triaged_visit(patient, reception, nurse)
    visit, assignment, billing = visits.assign_doctor(visit.id, doctor.id, actor=nurse)
    assert visit.status == Visit.WAITING_FOR_DOCTOR
    assert visit.queue_type == Visit.QUEUE_CONSULTATION
    assert assignment.doctor_id == doctor.id
    assert billing.billing_type == Billing.TYPE_CONSULTATION
    assert billing.status == Billing.PENDING
    assert billing.total_amount == Decimal('40.00')


def test_consultation_falls_back_to_service_price(patient, reception, nurse, other_doctor, catalog):
    visit = triaged_visit(patient, reception, nurse)
    _, _, billing = visits.assign_doctor(visit.id, other_doctor.id, actor=nurse)
    assert billing.total_amount == Decimal('30.00')


def test_free_consultation_is_settled_immediately(patient, reception, nurse, doctor, catalog):
    doctor.consultation_fee = Decimal('0.00')
    doctor.save()
    visit = triaged_visit(patient, reception, nurse)
    _, _, billing = visits.assign_doctor(visit.id, doctor.id, actor=nurse)
    billing.refresh_from_db()
    assert billing.status == Billing.PAID


def test_assign_doctor_requires_triage(patient, reception, nurse, doctor, catalog):
    visit = visits.create_visit(patient, created_by=reception)
    with pytest.raises(InvalidVisitState):
        visits.assign_doctor(visit.id, doctor.id, actor=nurse)
    visit.refresh_from_db()
    assert visit.status == Visit.WAITING_FOR_TRIAGE
    assert not Billing.objects.filter(visit=visit).exists()


@pytest.mark.parametrize('case', ['unavailable', 'not_doctor', 'missing'])
def test_assign_doctor_rejects_unavailable_doctor(case, patient, reception, nurse, doctor, catalog):
    visit = triaged_visit(patient, reception, nurse)
    doctor_id = doctor.id
    if case == 'unavailable':
        doctor.available = False
        doctor.save()
    elif case == 'not_doctor':
        doctor_id = nurse.id
    else:
        doctor_id = 999999
    with pytest.raises(DoctorUnavailable):
        visits.assign_doctor(visit.id, doctor_id, actor=nurse)
    visit.refresh_from_db()
    assert visit.status == Visit.TRIAGED


def test_review_waits_for_consultation_payment(patient, reception, nurse, doctor, cashier, catalog):
    visit, billing = visit_with_doctor(patient, reception, nurse, doctor, cashier, pay=False)
    with pytest.raises(PaymentRequired):
        visits.start_review(visit.id, doctor=doctor)

    ledger.record_payment(billing.id, amount=Decimal('40.00'), received_by=cashier)
    visit = visits.start_review(visit.id, doctor=doctor)
    assert visit.status == Visit.UNDER_DOCTOR_REVIEW
    assert Assignment.objects.get(id=visit.assignment_id).status == Assignment.STATUS_ACTIVE


def test_review_is_limited_to_assigned_doctor(patient, reception, nurse, doctor, other_doctor, cashier, catalog):
    visit, _ = visit_with_doctor(patient, reception, nurse, doctor, cashier)
    with pytest.raises(PermissionDenied):
        visits.start_review(visit.id, doctor=other_doctor)


def test_full_visit_with_lab_and_radiology(patient, reception, nurse, doctor, cashier, lab_tech, radiologist,
                                          catalog):
    visit, _ = visit_with_doctor(patient, reception, nurse, doctor, cashier)

    visit, (lab,) = orders.order_diagnostics(
        visit.id, doctor=doctor, kind=DiagnosticOrder.KIND_LAB,
        orders=[{'investigation_type_id': catalog['cbc'].id}],
    )
    assert visit.status == Visit.SENT_TO_LAB
    visit, (xray,) = orders.order_diagnostics(
        visit.id, doctor=doctor, kind=DiagnosticOrder.KIND_RADIOLOGY,
        orders=[{'investigation_type_id': catalog['xray'].id}],
    )
    assert visit.status == Visit.SENT_TO_BOTH
    assert lab.billing_id == xray.billing_id

    diagnostics = Billing.objects.get(id=lab.billing_id)
    assert diagnostics.billing_type == Billing.TYPE_DIAGNOSTICS
    assert diagnostics.total_amount == Decimal('125.00')
    assert diagnostics.items.count() == 2

    ledger.record_payment(diagnostics.id, amount=Decimal('125.00'), received_by=cashier)
    lab.refresh_from_db()
    xray.refresh_from_db()
    assert lab.status == OrderStatus.QUEUED
    assert xray.status == OrderStatus.QUEUED

    orders.record_diagnostic_result(lab.id, result='Hb 13.5 g/dL', actor=lab_tech)
    visit.refresh_from_db()
    assert visit.status == Visit.SENT_TO_BOTH

    orders.record_diagnostic_result(xray.id, result='Clear lung fields', actor=radiologist)
    visit.refresh_from_db()
    assert visit.status == Visit.AWAITING_RESULTS_REVIEW
    assert visit.queue_type == Visit.QUEUE_RESULTS_REVIEW

    visits.start_review(visit.id, doctor=doctor)
    visit = visits.complete_visit(visit.id, doctor=doctor, diagnosis='Viral infection',
                                  instructions='Rest and fluids')
    assert visit.status == Visit.COMPLETED
    assert visit.completed_at is not None

    history = MedicalHistory.objects.get(visit=visit)
    assert history.diagnosis == 'Viral infection'
    names = sorted(line['name'] for line in history.snapshot['investigations'])
    assert names == ['Chest X-ray', 'Complete blood count']
    assert Assignment.objects.get(id=visit.assignment_id).status == Assignment.STATUS_COMPLETED


def test_new_lab_order_after_radiology_result_goes_to_both(patient, reception, nurse, doctor, cashier,
                                                           radiologist, catalog):
    visit, _ = visit_with_doctor(patient, reception, nurse, doctor, cashier)
    visit, (xray,) = orders.order_diagnostics(
        visit.id, doctor=doctor, kind=DiagnosticOrder.KIND_RADIOLOGY,
        orders=[{'investigation_type_id': catalog['xray'].id}],
    )
    assert visit.status == Visit.SENT_TO_RADIOLOGY
    ledger.record_payment(xray.billing_id, amount=Decimal('75.00'), received_by=cashier)
    orders.record_diagnostic_result(xray.id, result='Hilar shadowing', actor=radiologist)
    visits.start_review(visit.id, doctor=doctor)

    # the finished x-ray still counts towards the visit's diagnostic status
    visit, (lab,) = orders.order_diagnostics(
        visit.id, doctor=doctor, kind=DiagnosticOrder.KIND_LAB,
        orders=[{'investigation_type_id': catalog['cbc'].id}],
    )
    assert visit.status == Visit.SENT_TO_BOTH
    assert lab.billing_id != xray.billing_id


def test_completion_check_is_idempotent(patient, reception, nurse, doctor, cashier, lab_tech, catalog):
    visit, _ = visit_with_doctor(patient, reception, nurse, doctor, cashier)
    order = orders.create_diagnostic_order(visit.id, doctor=doctor, investigation_type_id=catalog['cbc'].id)
    assert visits.check_investigation_completion(visit.id) is False

    ledger.record_payment(order.billing_id, amount=Decimal('50.00'), received_by=cashier)
    orders.record_diagnostic_result(order.id, result='normal', actor=lab_tech)
    visit.refresh_from_db()
    assert visit.status == Visit.AWAITING_RESULTS_REVIEW

    assert visits.check_investigation_completion(visit.id) is False
    assert visits.check_investigation_completion(visit.id) is False
    visit.refresh_from_db()
    assert visit.status == Visit.AWAITING_RESULTS_REVIEW


def test_complete_requires_review(patient, reception, nurse, doctor, cashier, catalog):
    visit, _ = visit_with_doctor(patient, reception, nurse, doctor, cashier)
    with pytest.raises(InvalidVisitState):
        visits.complete_visit(visit.id, doctor=doctor, diagnosis='Flu')


def test_second_completion_is_rejected(patient, reception, nurse, doctor, cashier, catalog):
    visit, _ = visit_with_doctor(patient, reception, nurse, doctor, cashier)
    visits.start_review(visit.id, doctor=doctor)
    visits.complete_visit(visit.id, doctor=doctor, diagnosis='Flu')
    with pytest.raises(InvalidVisitState):
        visits.complete_visit(visit.id, doctor=doctor, diagnosis='Flu again')
    assert MedicalHistory.objects.filter(visit=visit).count() == 1


@pytest.mark.django_db(transaction=True)
@pytest.mark.skipif(connection.vendor == 'sqlite', reason='SQLite ignores select_for_update')
def test_concurrent_completion_has_one_winner(patient, reception, nurse, doctor, cashier, catalog):
    visit, _ = visit_with_doctor(patient, reception, nurse, doctor, cashier)
    visits.start_review(visit.id, doctor=doctor)
    barrier = threading.Barrier(2)
    outcomes = []

    def complete(diagnosis):
        try:
            barrier.wait(timeout=10)
            outcomes.append(visits.complete_visit(visit.id, doctor=doctor, diagnosis=diagnosis).status)
        except InvalidVisitState as exc:
            outcomes.append(exc)
        finally:
            connection.close()

    threads = [threading.Thread(target=complete, args=(d,)) for d in ('Flu', 'Common cold')]
    for t in threads:
        t.start()
    for t in threads:
        t.join(timeout=30)

    losers = [o for o in outcomes if isinstance(o, InvalidVisitState)]
    assert len(losers) == 1
    assert [o for o in outcomes if o not in losers] == [Visit.COMPLETED]
    assert MedicalHistory.objects.filter(visit=visit).count() == 1


def test_complete_requires_diagnosis(patient, reception, nurse, doctor, cashier, catalog):
    visit, _ = visit_with_doctor(patient, reception, nurse, doctor, cashier)
    visits.start_review(visit.id, doctor=doctor)
    with pytest.raises(ValidationError):
        visits.complete_visit(visit.id, doctor=doctor, diagnosis='  ')
    visit.refresh_from_db()
    assert visit.status == Visit.UNDER_DOCTOR_REVIEW


def test_complete_books_follow_up(patient, reception, nurse, doctor, cashier, catalog):
    visit, _ = visit_with_doctor(patient, reception, nurse, doctor, cashier)
    visits.start_review(visit.id, doctor=doctor)
    when = datetime.date.today() + datetime.timedelta(days=7)
    visits.complete_visit(
        visit.id, doctor=doctor, diagnosis='Hypertension',
        follow_up={'appointment_date': when, 'appointment_time': '09:30', 'notes': 'BP check'},
    )
    appointment = Appointment.objects.get(patient=patient, type=Appointment.TYPE_FOLLOW_UP)
    assert appointment.status == Appointment.STATUS_SCHEDULED
    assert appointment.appointment_date == when
    history = MedicalHistory.objects.get(visit=visit)
    assert history.appointment_id == appointment.id
    assert history.snapshot['follow_up_appointment_id'] == appointment.id


def test_cancel_visit_cancels_unpaid_orders(patient, reception, nurse, doctor, cashier, catalog):
    visit, _ = visit_with_doctor(patient, reception, nurse, doctor, cashier)
    order = orders.create_diagnostic_order(visit.id, doctor=doctor, investigation_type_id=catalog['cbc'].id)
    visit = visits.cancel_visit(visit.id, actor=reception, reason='Patient left')
    assert visit.status == Visit.CANCELLED
    order.refresh_from_db()
    assert order.status == OrderStatus.CANCELLED

    with pytest.raises(InvalidVisitState):
        visits.cancel_visit(visit.id, actor=reception, reason='again')


def test_appointment_goes_straight_to_doctor(patient, reception, doctor, catalog):
    appointment = Appointment.objects.create(
        patient=patient, doctor=doctor, appointment_date=datetime.date.today(),
        type=Appointment.TYPE_CONSULTATION,
    )
    visit = visits.create_visit_from_appointment(appointment.id, actor=reception)
    assert visit.status == Visit.IN_DOCTOR_QUEUE
    assert visit.assignment.doctor_id == doctor.id
    assert visits.consultation_billing(visit).total_amount == Decimal('40.00')
    appointment.refresh_from_db()
    assert appointment.status == Appointment.STATUS_IN_PROGRESS
    assert appointment.visit_id == visit.id

    with pytest.raises(ValidationError):
        visits.create_visit_from_appointment(appointment.id, actor=reception)


def test_emergency_visit_charges_one_billing(patient, reception, nurse, doctor, cashier, catalog):
    visit = triaged_visit(patient, reception, nurse, is_emergency=True)
    emergency = Billing.objects.get(visit=visit)
    assert emergency.status == Billing.EMERGENCY_PENDING

    _, _, billing = visits.assign_doctor(visit.id, doctor.id, actor=nurse)
    assert billing.id == emergency.id

    # emergency visits are seen before payment
    visits.start_review(visit.id, doctor=doctor)
    order = orders.create_diagnostic_order(visit.id, doctor=doctor, investigation_type_id=catalog['xray'].id)
    assert order.billing_id == emergency.id
    assert order.status == OrderStatus.UNPAID

    emergency.refresh_from_db()
    assert emergency.total_amount == Decimal('115.00')
    ledger.record_payment(emergency.id, amount=Decimal('115.00'), received_by=cashier)
    order.refresh_from_db()
    assert order.status == OrderStatus.QUEUED
