from decimal import Decimal

import pytest
from rest_framework.exceptions import ValidationError

from workflow.exceptions import InvalidVisitState, PaymentRequired, PendingInvestigations
from workflow.models import BatchOrder, Billing, DiagnosticOrder, OrderStatus, Visit
from workflow.services import billing as ledger
from workflow.services import orders, queues, visits

pytestmark = pytest.mark.django_db


@pytest.fixture
def reviewed_visit(patient, reception, nurse, doctor, cashier, catalog):
    visit = visits.create_visit(patient, created_by=reception)
    visits.record_vitals(visit.id, {'heart_rate': 72}, recorded_by=nurse)
    _, _, consult = visits.assign_doctor(visit.id, doctor.id, actor=nurse)
    ledger.record_payment(consult.id, amount=consult.total_amount, received_by=cashier)
    return visits.start_review(visit.id, doctor=doctor)


def mixed_batch(visit, doctor, catalog):
    return orders.create_batch_order(visit.id, doctor=doctor, type=BatchOrder.TYPE_MIXED, services=[
        {'service_id': catalog['cbc_service'].id, 'investigation_type_id': catalog['cbc'].id},
        {'service_id': catalog['xray_service'].id},
    ])


def test_mixed_batch_runs_to_results_review(reviewed_visit, doctor, cashier, lab_tech, radiologist, catalog):
    batch = mixed_batch(reviewed_visit, doctor, catalog)
    reviewed_visit.refresh_from_db()
    assert reviewed_visit.status == Visit.SENT_TO_BOTH
    assert batch.status == OrderStatus.UNPAID
    assert Billing.objects.get(id=batch.billing_id).total_amount == Decimal('125.00')

    ledger.record_payment(batch.billing_id, amount=Decimal('125.00'), received_by=cashier)
    lab_line, xray_line = batch.services.order_by('id')
    lab_line.refresh_from_db()
    assert lab_line.status == OrderStatus.QUEUED
    assert lab_line.category == 'LAB'
    assert xray_line.category == 'RADIOLOGY'

    orders.record_batch_service_result(lab_line.id, result='WBC 6.1', actor=lab_tech)
    batch.refresh_from_db()
    reviewed_visit.refresh_from_db()
    assert batch.status == OrderStatus.IN_PROGRESS
    assert reviewed_visit.status == Visit.SENT_TO_BOTH

    # recording the same result twice changes nothing
    orders.record_batch_service_result(lab_line.id, result='WBC 9.9', actor=lab_tech)
    lab_line.refresh_from_db()
    assert lab_line.result == 'WBC 6.1'

    orders.record_batch_service_result(xray_line.id, result='Normal chest', actor=radiologist)
    batch.refresh_from_db()
    reviewed_visit.refresh_from_db()
    assert batch.status == OrderStatus.COMPLETED
    assert reviewed_visit.status == Visit.AWAITING_RESULTS_REVIEW


def test_batch_rejects_duplicates_and_wrong_category(reviewed_visit, doctor, catalog):
    with pytest.raises(ValidationError):
        orders.create_batch_order(reviewed_visit.id, doctor=doctor, type=BatchOrder.TYPE_LAB, services=[
            {'service_id': catalog['cbc_service'].id},
            {'service_id': catalog['cbc_service'].id},
        ])
    with pytest.raises(ValidationError):
        orders.create_batch_order(reviewed_visit.id, doctor=doctor, type=BatchOrder.TYPE_LAB, services=[
            {'service_id': catalog['xray_service'].id},
        ])
    with pytest.raises(ValidationError):
        orders.create_batch_order(reviewed_visit.id, doctor=doctor, type=BatchOrder.TYPE_LAB, services=[
            {'service_id': catalog['consult'].id},
        ])
    assert not BatchOrder.objects.exists()
    reviewed_visit.refresh_from_db()
    assert reviewed_visit.status == Visit.UNDER_DOCTOR_REVIEW


def test_lab_batch_prices_from_services(reviewed_visit, doctor, catalog):
    batch = orders.create_batch_order(reviewed_visit.id, doctor=doctor, type=BatchOrder.TYPE_LAB, services=[
        {'service_id': catalog['cbc_service'].id},
        {'service_id': catalog['glucose_service'].id},
    ])
    reviewed_visit.refresh_from_db()
    assert reviewed_visit.status == Visit.SENT_TO_LAB
    assert Billing.objects.get(id=batch.billing_id).total_amount == Decimal('70.00')


def test_investigation_kind_must_match(reviewed_visit, doctor, catalog):
    with pytest.raises(ValidationError):
        orders.order_diagnostics(reviewed_visit.id, doctor=doctor, kind=DiagnosticOrder.KIND_LAB,
                                 orders=[{'investigation_type_id': catalog['xray'].id}])
    assert not DiagnosticOrder.objects.exists()


def test_diagnostics_not_allowed_before_doctor(patient, reception, doctor, catalog):
    visit = visits.create_visit(patient, created_by=reception)
    with pytest.raises(InvalidVisitState):
        orders.create_diagnostic_order(visit.id, doctor=doctor, investigation_type_id=catalog['cbc'].id)


def test_medication_blocked_by_pending_investigations(reviewed_visit, doctor, cashier, lab_tech, catalog):
    order = orders.create_diagnostic_order(reviewed_visit.id, doctor=doctor,
                                           investigation_type_id=catalog['cbc'].id)
    check = visits.medication_check(Visit.objects.get(id=reviewed_visit.id))
    assert check['canOrder'] is False
    assert check['pendingInvestigations'] == 1

    items = [{'catalog_id': catalog['paracetamol'].id, 'quantity': 6}]
    with pytest.raises(PendingInvestigations):
        orders.create_medication_order(reviewed_visit.id, doctor=doctor, items=items)

    ledger.record_payment(order.billing_id, amount=Decimal('50.00'), received_by=cashier)
    orders.record_diagnostic_result(order.id, result='negative', actor=lab_tech)
    visit = Visit.objects.get(id=reviewed_visit.id)
    assert visit.status == Visit.AWAITING_RESULTS_REVIEW
    assert visits.medication_check(visit)['canOrder'] is True

    (med,) = orders.create_medication_order(visit.id, doctor=doctor, items=items)
    assert med.status == OrderStatus.UNPAID
    assert med.catalog_id == catalog['paracetamol'].id


def test_start_order_needs_payment(reviewed_visit, doctor, cashier, lab_tech, catalog):
    order = orders.create_diagnostic_order(reviewed_visit.id, doctor=doctor,
                                           investigation_type_id=catalog['cbc'].id)
    with pytest.raises(PaymentRequired):
        orders.start_order('lab', order.id, actor=lab_tech)

    ledger.record_payment(order.billing_id, amount=Decimal('50.00'), received_by=cashier)
    order = orders.start_order('lab', order.id, actor=lab_tech)
    assert order.status == OrderStatus.IN_PROGRESS
    with pytest.raises(ValidationError):
        orders.start_order('lab', order.id, actor=lab_tech)


def test_dispense_checks_stock(reviewed_visit, doctor, cashier, pharmacist, catalog):
    (med,) = orders.create_medication_order(reviewed_visit.id, doctor=doctor, items=[
        {'catalog_id': catalog['paracetamol'].id, 'quantity': 500},
    ])
    ledger.record_payment(med.billing_id, amount=Decimal('250.00'), received_by=cashier)
    visits.complete_visit(reviewed_visit.id, doctor=doctor, diagnosis='Back pain')
    with pytest.raises(ValidationError):
        orders.dispense_medication(med.id, actor=pharmacist)
    med.refresh_from_db()
    assert med.status == OrderStatus.QUEUED


def test_queues_follow_payment(patient, reception, nurse, doctor, cashier, lab_tech, catalog):
    visit = visits.create_visit(patient, created_by=reception)
    assert list(queues.triage_queue()) == [visit]

    visits.record_vitals(visit.id, {'heart_rate': 90}, recorded_by=nurse)
    _, _, consult = visits.assign_doctor(visit.id, doctor.id, actor=nurse)
    assert not queues.triage_queue().exists()
    assert not queues.doctor_queue(doctor).exists()
    assert queues.billing_queue().filter(id=consult.id).exists()

    ledger.record_payment(consult.id, amount=consult.total_amount, received_by=cashier)
    assert list(queues.doctor_queue(doctor)) == [Visit.objects.get(id=visit.id)]

    visits.start_review(visit.id, doctor=doctor)
    order = orders.create_diagnostic_order(visit.id, doctor=doctor, investigation_type_id=catalog['cbc'].id)
    assert not queues.lab_queue()['orders'].exists()
    ledger.record_payment(order.billing_id, amount=Decimal('50.00'), received_by=cashier)
    assert list(queues.lab_queue()['orders']) == [DiagnosticOrder.objects.get(id=order.id)]

    orders.record_diagnostic_result(order.id, result='ok', actor=lab_tech)
    assert queues.results_queue(doctor).filter(id=visit.id).exists()
    counts = queues.queue_counts(refresh=True)
    assert counts['results'] == 1
    assert counts['lab'] == 0
