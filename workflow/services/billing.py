"""
Billing ledger and the payment gate.

Billings collect line items and payments.  ``total_amount`` is always
recomputed from the items under the billing row lock.  An order is
only released to its department once its billing is exactly ``PAID``;
the release happens in the same transaction as the payment that
settles the billing.
"""
from __future__ import annotations

import logging
from decimal import Decimal
from typing import Optional

from django.db import transaction
from django.db.models import Sum
from rest_framework.exceptions import NotFound, ValidationError

from workflow.models import (
    BatchOrder,
    BatchOrderService,
    Billing,
    BillingItem,
    DiagnosticOrder,
    MedicationOrder,
    OrderStatus,
    Patient,
    Payment,
    Service,
    User,
    Visit,
)
from workflow.services import notify
from workflow.services.audit import log_action

logger = logging.getLogger(__name__)

ZERO = Decimal('0.00')

# Forward graph; ``adjust_billing_status`` is the only way backwards.
BILLING_TRANSITIONS = {
    Billing.PENDING: [Billing.PARTIALLY_PAID, Billing.PAID, Billing.PENDING_INSURANCE],
    Billing.PARTIALLY_PAID: [Billing.PAID, Billing.PENDING_INSURANCE],
    Billing.PENDING_INSURANCE: [Billing.INSURANCE_CLAIMED, Billing.PAID],
    Billing.INSURANCE_CLAIMED: [Billing.PAID],
    Billing.EMERGENCY_PENDING: [Billing.PAID],
    Billing.PAID: [],
}

# Only these billings accept new line items
OPEN_STATUSES = (Billing.PENDING, Billing.EMERGENCY_PENDING)


def _can_transition(current: str, new: str) -> bool:
    return new in BILLING_TRANSITIONS.get(current, [])


def is_paid(billing: Optional[Billing]) -> bool:
    return bool(billing and billing.status == Billing.PAID)


def is_payable(order) -> bool:
    """True when the order's billing has been fully paid."""
    return is_paid(order.billing)


def lock_billing(billing_id: int) -> Billing:
    billing = Billing.objects.select_for_update().filter(id=billing_id).first()
    if not billing:
        raise NotFound(f'billing {billing_id} not found')
    return billing


def open_billing(*, patient: Patient, visit: Optional[Visit], billing_type: str,
                 status: str = Billing.PENDING, notes: str = '') -> Billing:
    billing = Billing.objects.create(
        patient=patient, visit=visit, billing_type=billing_type, status=status,
        total_amount=ZERO, notes=notes,
    )
    logger.info("opened %s billing %s for visit %s", billing_type, billing.id, getattr(visit, 'id', None))
    return billing


def open_billing_for(visit: Visit, billing_type: str) -> Billing:
    """Return the visit's open billing of ``billing_type``, creating one if needed.

    Emergency visits charge everything to their single emergency billing.
    Callers must hold the visit row lock, which keeps this lookup from
    racing into two open billings.
    """
    if visit.is_emergency:
        emergency = (
            Billing.objects.select_for_update()
            .filter(visit=visit, billing_type=Billing.TYPE_EMERGENCY, status=Billing.EMERGENCY_PENDING)
            .order_by('id').first()
        )
        if emergency:
            return emergency
    billing = (
        Billing.objects.select_for_update()
        .filter(visit=visit, billing_type=billing_type, status=Billing.PENDING)
        .order_by('id').first()
    )
    if billing:
        return billing
    return open_billing(patient=visit.patient, visit=visit, billing_type=billing_type)


def _recompute_total(billing: Billing) -> Decimal:
    total = BillingItem.objects.filter(billing=billing).aggregate(s=Sum('total_price'))['s'] or ZERO
    billing.total_amount = total
    billing.save(update_fields=['total_amount', 'updated_at'])
    return total


def add_line_item(billing: Billing, *, service: Optional[Service] = None, description: str = '',
                  quantity: int = 1, unit_price: Optional[Decimal] = None) -> BillingItem:
    """Append a line item and recompute the billing total."""
    if quantity < 1:
        raise ValidationError({'quantity': 'quantity must be at least 1'})
    if unit_price is None:
        if service is None:
            raise ValidationError({'unit_price': 'unit price or service is required'})
        unit_price = service.price
    unit_price = Decimal(unit_price)
    if unit_price < 0:
        raise ValidationError({'unit_price': 'unit price cannot be negative'})
    with transaction.atomic():
        locked = lock_billing(billing.id)
        if locked.status not in OPEN_STATUSES:
            raise ValidationError({'billing': f'billing {locked.id} is {locked.status} and cannot take new items'})
        item = BillingItem.objects.create(
            billing=locked,
            service=service,
            description=description or (service.name if service else ''),
            quantity=quantity,
            unit_price=unit_price,
            total_price=unit_price * quantity,
        )
        billing.total_amount = _recompute_total(locked)
    return item


def release_orders(billing: Billing) -> dict[str, int]:
    """Release every unpaid order tied to ``billing`` to its department.

    Diagnostic orders, batch orders and their services become QUEUED.
    Medication orders become PAID while the visit is still open and go
    straight to QUEUED when the visit has already been completed.
    Must run inside the transaction that settled the billing.
    """
    if not is_paid(billing):
        return {}
    released = {
        'diagnostic': DiagnosticOrder.objects.filter(billing=billing, status=OrderStatus.UNPAID)
        .update(status=OrderStatus.QUEUED),
        'batch': BatchOrder.objects.filter(billing=billing, status=OrderStatus.UNPAID)
        .update(status=OrderStatus.QUEUED),
        'batch_service': BatchOrderService.objects.filter(
            batch_order__billing=billing, status=OrderStatus.UNPAID
        ).update(status=OrderStatus.QUEUED),
        'medication': MedicationOrder.objects.filter(
            billing=billing, status=OrderStatus.UNPAID
        ).exclude(visit__status=Visit.COMPLETED).update(status=OrderStatus.PAID),
        'medication_queued': MedicationOrder.objects.filter(
            billing=billing, status=OrderStatus.UNPAID, visit__status=Visit.COMPLETED
        ).update(status=OrderStatus.QUEUED),
    }
    if any(released.values()):
        logger.info("billing %s released orders: %s", billing.id, released)
    return released


def _settle(billing: Billing, new_status: str, actor: Optional[User], reason: str) -> dict[str, int]:
    old = billing.status
    billing.status = new_status
    billing.save(update_fields=['status', 'updated_at'])
    released = release_orders(billing)
    log_action(user=actor, action='billing_status', object_type='billing', object_id=billing.id,
               detail={'from': old, 'to': new_status, 'reason': reason, 'released': released})
    if billing.visit_id:
        extra = []
        if released.get('diagnostic') or released.get('batch'):
            extra = ['lab', 'radiology']
        elif released.get('medication_queued'):
            extra = ['pharmacy']
        notify.queue_changed(billing.visit, 'billing_paid' if new_status == Billing.PAID else 'billing_status',
                             extra_queues=extra)
    return released


def mark_paid(billing: Billing, *, actor: Optional[User] = None, reason: str = 'settled') -> dict[str, int]:
    """Settle a billing without a payment row (zero-priced charges)."""
    with transaction.atomic():
        locked = lock_billing(billing.id)
        if locked.status == Billing.PAID:
            return {}
        released = _settle(locked, Billing.PAID, actor, reason)
    billing.status = Billing.PAID
    return released


def record_payment(billing_id: int, *, amount: Decimal, method: str = Payment.METHOD_CASH,
                   received_by: Optional[User] = None, bank_name: str = '', trans_number: str = '',
                   insurance_ref: str = '', notes: str = '') -> Payment:
    """Record a payment and settle the billing when fully covered."""
    amount = Decimal(amount)
    if amount <= 0:
        raise ValidationError({'amount': 'payment amount must be greater than zero'})
    with transaction.atomic():
        billing = lock_billing(billing_id)
        if billing.status == Billing.PAID:
            raise ValidationError({'billing': 'billing is already paid'})
        if method == Payment.METHOD_BANK and not (bank_name and trans_number):
            raise ValidationError({'bank_name': 'bank name and transaction number are required for bank payments'})
        paid = billing.amount_paid()
        remaining = billing.total_amount - paid
        if amount > remaining:
            raise ValidationError({'amount': f'payment exceeds remaining balance {remaining:.2f}'})
        payment = Payment.objects.create(
            billing=billing, patient_id=billing.patient_id, amount=amount, method=method,
            bank_name=bank_name, trans_number=trans_number,
            insurance_ref=insurance_ref or billing.insurance_ref, notes=notes,
            received_by=received_by,
        )
        log_action(user=received_by, action='payment', object_type='billing', object_id=billing.id,
                   detail={'payment_id': payment.id, 'amount': f'{amount:.2f}', 'method': method})
        if paid + amount >= billing.total_amount:
            _settle(billing, Billing.PAID, received_by, 'payment')
        elif billing.status == Billing.PENDING:
            billing.status = Billing.PARTIALLY_PAID
            billing.save(update_fields=['status', 'updated_at'])
        logger.info("payment %s of %s on billing %s -> %s", payment.id, amount, billing.id, billing.status)
    return payment


def defer_to_insurance(billing_id: int, *, insurance_ref: str, actor: Optional[User] = None) -> Billing:
    with transaction.atomic():
        billing = lock_billing(billing_id)
        if not _can_transition(billing.status, Billing.PENDING_INSURANCE):
            raise ValidationError({'status': f'cannot defer a {billing.status} billing to insurance'})
        old = billing.status
        billing.status = Billing.PENDING_INSURANCE
        billing.insurance_ref = insurance_ref
        billing.save(update_fields=['status', 'insurance_ref', 'updated_at'])
        log_action(user=actor, action='billing_status', object_type='billing', object_id=billing.id,
                   detail={'from': old, 'to': billing.status, 'insurance_ref': insurance_ref})
    return billing


def mark_insurance_claimed(billing_id: int, *, actor: Optional[User] = None) -> Billing:
    with transaction.atomic():
        billing = lock_billing(billing_id)
        if not _can_transition(billing.status, Billing.INSURANCE_CLAIMED):
            raise ValidationError({'status': f'cannot mark a {billing.status} billing as claimed'})
        billing.status = Billing.INSURANCE_CLAIMED
        billing.save(update_fields=['status', 'updated_at'])
        log_action(user=actor, action='billing_status', object_type='billing', object_id=billing.id,
                   detail={'from': Billing.PENDING_INSURANCE, 'to': billing.status})
    return billing


def adjust_billing_status(billing_id: int, *, status: str, reason: str, actor: Optional[User] = None) -> Billing:
    """Administrative override of a billing status.

    Released orders are never pulled back, so moving a PAID billing
    backwards is refused while any of its orders has left UNPAID.
    """
    if status not in dict(Billing.STATUS_CHOICES):
        raise ValidationError({'status': f'unknown billing status {status}'})
    if not reason:
        raise ValidationError({'reason': 'a reason is required'})
    with transaction.atomic():
        billing = lock_billing(billing_id)
        if billing.status == status:
            return billing
        if billing.status == Billing.PAID and _has_released_orders(billing):
            raise ValidationError({'status': 'billing has released orders and cannot leave PAID'})
        if status == Billing.PAID:
            _settle(billing, status, actor, reason)
        else:
            old = billing.status
            billing.status = status
            billing.save(update_fields=['status', 'updated_at'])
            log_action(user=actor, action='billing_adjust', object_type='billing', object_id=billing.id,
                       detail={'from': old, 'to': status, 'reason': reason})
        logger.warning("billing %s status adjusted to %s by %s: %s", billing.id, status,
                       getattr(actor, 'username', None), reason)
    return billing


def _has_released_orders(billing: Billing) -> bool:
    return (
        DiagnosticOrder.objects.filter(billing=billing).exclude(status=OrderStatus.UNPAID).exists()
        or BatchOrder.objects.filter(billing=billing).exclude(status=OrderStatus.UNPAID).exists()
        or MedicationOrder.objects.filter(billing=billing).exclude(status=OrderStatus.UNPAID).exists()
    )


def billing_summary(billing: Billing) -> dict:
    paid = billing.amount_paid()
    return {
        'id': billing.id,
        'visitId': billing.visit_id,
        'patientId': billing.patient_id,
        'type': billing.billing_type,
        'status': billing.status,
        'totalAmount': f'{billing.total_amount:.2f}',
        'amountPaid': f'{paid:.2f}',
        'remaining': f'{billing.total_amount - paid:.2f}',
        'insuranceRef': billing.insurance_ref,
        'items': [
            {
                'id': it.id,
                'serviceId': it.service_id,
                'description': it.description,
                'quantity': it.quantity,
                'unitPrice': f'{it.unit_price:.2f}',
                'totalPrice': f'{it.total_price:.2f}',
            }
            for it in billing.items.all().order_by('id')
        ],
        'payments': [
            {
                'id': p.id,
                'amount': f'{p.amount:.2f}',
                'method': p.method,
                'createdAt': p.created_at.isoformat(),
            }
            for p in billing.payments.all().order_by('id')
        ],
    }
