from decimal import Decimal

import pytest
from django.db import DatabaseError
from django.db.models import Sum
from rest_framework.exceptions import ValidationError

from workflow.exceptions import PaymentRequired
from workflow.models import (
    AuditEvent,
    BatchOrderService,
    Billing,
    DiagnosticOrder,
    OrderStatus,
    Payment,
    Visit,
)
from workflow.services import audit
from workflow.services import billing as ledger
from workflow.services import notify, orders, visits

pytestmark = pytest.mark.django_db


@pytest.fixture
def reviewed_visit(patient, reception, nurse, doctor, cashier, catalog):
    visit = visits.create_visit(patient, created_by=reception)
    visits.record_vitals(visit.id, {'temperature': Decimal('37.0')}, recorded_by=nurse)
    _, _, consult = visits.assign_doctor(visit.id, doctor.id, actor=nurse)
    ledger.record_payment(consult.id, amount=consult.total_amount, received_by=cashier)
    return visits.start_review(visit.id, doctor=doctor)


def order_both(visit, doctor, catalog):
    _, (lab,) = orders.order_diagnostics(visit.id, doctor=doctor, kind=DiagnosticOrder.KIND_LAB,
                                         orders=[{'investigation_type_id': catalog['cbc'].id}])
    _, (xray,) = orders.order_diagnostics(visit.id, doctor=doctor, kind=DiagnosticOrder.KIND_RADIOLOGY,
                                          orders=[{'investigation_type_id': catalog['xray'].id}])
    return lab, xray


def assert_queued_orders_are_paid():
    for order in DiagnosticOrder.objects.filter(status=OrderStatus.QUEUED).select_related('billing'):
        assert order.billing.status == Billing.PAID
    for sub in BatchOrderService.objects.filter(status=OrderStatus.QUEUED).select_related('batch_order__billing'):
        assert sub.batch_order.billing.status == Billing.PAID


def test_total_matches_line_items(reviewed_visit, doctor, catalog):
    lab, _ = order_both(reviewed_visit, doctor, catalog)
    billing = Billing.objects.get(id=lab.billing_id)
    items_total = billing.items.aggregate(s=Sum('total_price'))['s']
    assert billing.total_amount == items_total == Decimal('125.00')
    assert billing.items_total() == billing.total_amount


def test_partial_payment_keeps_orders_locked(reviewed_visit, doctor, cashier, lab_tech, catalog):
    lab, xray = order_both(reviewed_visit, doctor, catalog)
    ledger.record_payment(lab.billing_id, amount=Decimal('50.00'), received_by=cashier)
    billing = Billing.objects.get(id=lab.billing_id)
    assert billing.status == Billing.PARTIALLY_PAID
    assert billing.remaining_balance() == Decimal('75.00')
    lab.refresh_from_db()
    assert lab.status == OrderStatus.UNPAID
    assert_queued_orders_are_paid()

    with pytest.raises(PaymentRequired):
        orders.record_diagnostic_result(lab.id, result='Hb 12', actor=lab_tech)

    ledger.record_payment(lab.billing_id, amount=Decimal('75.00'), received_by=cashier)
    billing.refresh_from_db()
    assert billing.status == Billing.PAID
    assert set(DiagnosticOrder.objects.values_list('status', flat=True)) == {OrderStatus.QUEUED}
    assert_queued_orders_are_paid()


def test_order_after_partial_payment_opens_new_billing(reviewed_visit, doctor, cashier, catalog):
    lab, _ = order_both(reviewed_visit, doctor, catalog)
    ledger.record_payment(lab.billing_id, amount=Decimal('50.00'), received_by=cashier)

    # an invoice the patient has started paying keeps its total
    _, (repeat,) = orders.order_diagnostics(reviewed_visit.id, doctor=doctor, kind=DiagnosticOrder.KIND_LAB,
                                            orders=[{'investigation_type_id': catalog['cbc'].id}])
    first = Billing.objects.get(id=lab.billing_id)
    second = Billing.objects.get(id=repeat.billing_id)
    assert first.id != second.id
    assert first.total_amount == Decimal('125.00')
    assert first.status == Billing.PARTIALLY_PAID
    assert second.status == Billing.PENDING
    assert second.total_amount == Decimal('50.00')

    # further orders coalesce onto the new pending billing
    _, (xray,) = orders.order_diagnostics(reviewed_visit.id, doctor=doctor, kind=DiagnosticOrder.KIND_RADIOLOGY,
                                          orders=[{'investigation_type_id': catalog['xray'].id}])
    assert xray.billing_id == second.id


def test_payment_validation(reviewed_visit, doctor, cashier, catalog):
    lab, _ = order_both(reviewed_visit, doctor, catalog)
    with pytest.raises(ValidationError):
        ledger.record_payment(lab.billing_id, amount=Decimal('0'), received_by=cashier)
    with pytest.raises(ValidationError):
        ledger.record_payment(lab.billing_id, amount=Decimal('200.00'), received_by=cashier)
    with pytest.raises(ValidationError):
        ledger.record_payment(lab.billing_id, amount=Decimal('10.00'), method=Payment.METHOD_BANK,
                              received_by=cashier)
    assert not Payment.objects.filter(billing_id=lab.billing_id).exists()

    ledger.record_payment(lab.billing_id, amount=Decimal('125.00'), method=Payment.METHOD_BANK,
                          bank_name='Ecobank', trans_number='TX-1', received_by=cashier)
    with pytest.raises(ValidationError):
        ledger.record_payment(lab.billing_id, amount=Decimal('1.00'), received_by=cashier)


def test_paid_billing_refuses_new_items(reviewed_visit, doctor, cashier, catalog):
    lab, _ = order_both(reviewed_visit, doctor, catalog)
    ledger.record_payment(lab.billing_id, amount=Decimal('125.00'), received_by=cashier)

    # a later order opens a fresh billing instead of growing the paid one
    extra = orders.create_diagnostic_order(reviewed_visit.id, doctor=doctor,
                                           investigation_type_id=catalog['cbc'].id)
    assert extra.billing_id != lab.billing_id
    assert extra.status == OrderStatus.UNPAID

    paid = Billing.objects.get(id=lab.billing_id)
    with pytest.raises(ValidationError):
        ledger.add_line_item(paid, description='late charge', unit_price=Decimal('5.00'))


def test_insurance_deferral_then_claim(reviewed_visit, doctor, cashier, catalog):
    lab, xray = order_both(reviewed_visit, doctor, catalog)
    billing = ledger.defer_to_insurance(lab.billing_id, insurance_ref='NHIS-001', actor=cashier)
    assert billing.status == Billing.PENDING_INSURANCE
    assert billing.insurance_ref == 'NHIS-001'
    lab.refresh_from_db()
    assert lab.status == OrderStatus.UNPAID

    billing = ledger.mark_insurance_claimed(lab.billing_id, actor=cashier)
    assert billing.status == Billing.INSURANCE_CLAIMED
    with pytest.raises(ValidationError):
        ledger.defer_to_insurance(lab.billing_id, insurance_ref='again', actor=cashier)

    payment = ledger.record_payment(lab.billing_id, amount=Decimal('125.00'), method=Payment.METHOD_INSURANCE,
                                    received_by=cashier)
    assert payment.insurance_ref == 'NHIS-001'
    xray.refresh_from_db()
    assert xray.status == OrderStatus.QUEUED


def test_admin_adjustment(reviewed_visit, doctor, cashier, admin_user, catalog):
    lab, _ = order_both(reviewed_visit, doctor, catalog)
    with pytest.raises(ValidationError):
        ledger.adjust_billing_status(lab.billing_id, status=Billing.PAID, reason='', actor=admin_user)

    ledger.adjust_billing_status(lab.billing_id, status=Billing.PAID, reason='waived by director',
                                 actor=admin_user)
    lab.refresh_from_db()
    assert lab.status == OrderStatus.QUEUED

    with pytest.raises(ValidationError):
        ledger.adjust_billing_status(lab.billing_id, status=Billing.PENDING, reason='mistake', actor=admin_user)


def test_adjust_paid_billing_without_released_orders(reviewed_visit, admin_user):
    consult = visits.consultation_billing(reviewed_visit)
    billing = ledger.adjust_billing_status(consult.id, status=Billing.PENDING, reason='cheque bounced',
                                           actor=admin_user)
    assert billing.status == Billing.PENDING


def test_medication_released_on_completion(reviewed_visit, doctor, cashier, pharmacist, catalog):
    (order,) = orders.create_medication_order(reviewed_visit.id, doctor=doctor, items=[
        {'catalog_id': catalog['paracetamol'].id, 'quantity': 10, 'frequency': 'TDS', 'duration': '3 days'},
    ])
    billing = Billing.objects.get(id=order.billing_id)
    assert billing.billing_type == Billing.TYPE_PHARMACY
    assert billing.total_amount == Decimal('5.00')

    ledger.record_payment(billing.id, amount=Decimal('5.00'), received_by=cashier)
    order.refresh_from_db()
    assert order.status == OrderStatus.PAID
    with pytest.raises(ValidationError):
        orders.dispense_medication(order.id, actor=pharmacist)

    visits.complete_visit(reviewed_visit.id, doctor=doctor, diagnosis='Malaria')
    order.refresh_from_db()
    assert order.status == OrderStatus.QUEUED

    orders.dispense_medication(order.id, actor=pharmacist)
    order.refresh_from_db()
    catalog['paracetamol'].refresh_from_db()
    assert order.status == OrderStatus.COMPLETED
    assert catalog['paracetamol'].available_quantity == 90


def test_medication_paid_after_completion_goes_to_pharmacy(reviewed_visit, doctor, cashier, catalog):
    (order,) = orders.create_medication_order(reviewed_visit.id, doctor=doctor, items=[
        {'name': 'Herbal syrup', 'quantity': 2},
    ])
    assert order.catalog_id is None
    assert order.unit_price == Decimal('5.00')
    visits.complete_visit(reviewed_visit.id, doctor=doctor, diagnosis='Cough')
    order.refresh_from_db()
    assert order.status == OrderStatus.UNPAID

    ledger.record_payment(order.billing_id, amount=Decimal('10.00'), received_by=cashier)
    order.refresh_from_db()
    assert order.status == OrderStatus.QUEUED


def test_audit_written_on_commit(reviewed_visit, doctor, django_capture_on_commit_callbacks):
    with django_capture_on_commit_callbacks(execute=True):
        visits.complete_visit(reviewed_visit.id, doctor=doctor, diagnosis='Flu')
    event = AuditEvent.objects.get(action='visit_complete')
    assert event.object_type == 'visit'
    assert event.object_id == reviewed_visit.id
    assert event.user_id == doctor.id


def test_audit_failure_does_not_raise(monkeypatch, caplog, doctor):
    def boom(*args, **kwargs):
        raise DatabaseError('audit table locked')

    monkeypatch.setattr(AuditEvent.objects, 'create', boom)
    audit._write(doctor.id, 'visit_complete', 'visit', 1, {})
    assert 'audit' in caplog.text.lower()


def test_queue_notification_sent_after_commit(monkeypatch, patient, reception, django_capture_on_commit_callbacks):
    sent = []
    monkeypatch.setattr(notify, '_send', sent.append)
    with django_capture_on_commit_callbacks(execute=True):
        visit = visits.create_visit(patient, created_by=reception)
    assert sent
    message = sent[-1]
    assert message['type'] == 'queue.changed'
    assert message['visit_id'] == visit.id
    assert message['status'] == Visit.WAITING_FOR_TRIAGE
    assert 'triage' in message['queues']
