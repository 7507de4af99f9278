"""
Diagnostic, batch and medication orders.

Orders are created UNPAID against the visit's coalesced billing of the
matching type and are released by the billing gate.  Departments can
only act on an order once it has been released.
"""
from __future__ import annotations

import logging
from typing import Optional

from django.db import transaction
from django.db.models import F
from rest_framework.exceptions import NotFound, ValidationError

from workflow.exceptions import PaymentRequired
from workflow.models import (
    BatchOrder,
    BatchOrderService,
    Billing,
    DiagnosticOrder,
    InvestigationType,
    MedicationCatalog,
    MedicationOrder,
    OrderStatus,
    Service,
    User,
    Visit,
)
from workflow.services import billing as ledger
from workflow.services import catalog, notify, visits
from workflow.services.audit import log_action

logger = logging.getLogger(__name__)

DIAGNOSTIC_CATEGORIES = (Service.CATEGORY_LAB, Service.CATEGORY_RADIOLOGY)


def _require_released(order, label: str) -> None:
    if order.status == OrderStatus.UNPAID:
        raise PaymentRequired(f'{label} {order.id} has not been paid yet')
    if order.status == OrderStatus.CANCELLED:
        raise ValidationError({'status': f'{label} {order.id} was cancelled'})


# ---------------------------------------------------------------------------
# Individual diagnostic orders
# ---------------------------------------------------------------------------

def order_diagnostics(visit_id: int, *, doctor: User, kind: str, orders: list[dict]) -> tuple[Visit, list[DiagnosticOrder]]:
    """Create one or more lab or radiology orders on a visit.

    Each ``orders`` entry carries ``investigation_type_id`` and optional
    ``instructions``.  All line items land on the visit's open
    diagnostics billing and the visit moves to the SENT_TO_* status its
    outstanding orders imply.
    """
    if not orders:
        raise ValidationError({'orders': 'at least one order is required'})
    with transaction.atomic():
        visit = visits.lock_visit(visit_id)
        visits.require_diagnostics_allowed(visit)
        billing = ledger.open_billing_for(visit, Billing.TYPE_DIAGNOSTICS)
        created = []
        for spec in orders:
            inv = catalog.get_investigation_type(spec['investigation_type_id'])
            if inv.category != kind:
                raise ValidationError({'investigation_type_id': f'{inv.name} is not a {kind.lower()} investigation'})
            ledger.add_line_item(billing, service=inv.service, description=inv.name, quantity=1,
                                 unit_price=inv.price)
            created.append(DiagnosticOrder.objects.create(
                visit=visit, patient=visit.patient, doctor=doctor, kind=kind,
                investigation_type=inv, billing=billing, status=OrderStatus.UNPAID,
                instructions=visits.clean_text(spec.get('instructions')),
            ))
        visits.apply_diagnostic_status(visit)
        log_action(user=doctor, action='diagnostic_order', object_type='visit', object_id=visit.id,
                   detail={'kind': kind, 'orders': [o.id for o in created], 'billing_id': billing.id})
        notify.queue_changed(visit, 'diagnostics_ordered')
    return visit, created


def create_diagnostic_order(visit_id: int, *, doctor: User, investigation_type_id: int,
                            instructions: str = '') -> DiagnosticOrder:
    inv = catalog.get_investigation_type(investigation_type_id)
    _, created = order_diagnostics(
        visit_id, doctor=doctor, kind=inv.category,
        orders=[{'investigation_type_id': inv.id, 'instructions': instructions}],
    )
    return created[0]


# ---------------------------------------------------------------------------
# Batch orders
# ---------------------------------------------------------------------------

def _resolve_batch_line(line: dict) -> tuple[Service, Optional[InvestigationType]]:
    service = catalog.get_service(line['service_id'])
    inv = None
    if line.get('investigation_type_id'):
        inv = catalog.get_investigation_type(line['investigation_type_id'])
    return service, inv


def create_batch_order(visit_id: int, *, doctor: User, type: str, services: list[dict],
                       instructions: str = '') -> BatchOrder:
    """Order several diagnostic services as one unit.

    Each line is priced from its investigation type when one is given,
    otherwise from the service.
    """
    if type not in dict(BatchOrder.TYPE_CHOICES):
        raise ValidationError({'type': f'unknown batch type {type}'})
    if not services:
        raise ValidationError({'services': 'at least one service is required'})
    seen = set()
    for line in services:
        key = (line['service_id'], line.get('investigation_type_id'))
        if key in seen:
            raise ValidationError({'services': f'service {key[0]} is listed twice'})
        seen.add(key)

    with transaction.atomic():
        visit = visits.lock_visit(visit_id)
        visits.require_diagnostics_allowed(visit)
        resolved = [(line, *_resolve_batch_line(line)) for line in services]
        for _, service, inv in resolved:
            category = inv.category if inv else service.category
            if category not in DIAGNOSTIC_CATEGORIES:
                raise ValidationError({'services': f'{service.name} is not a lab or radiology service'})
            if type != BatchOrder.TYPE_MIXED and category != type:
                raise ValidationError({'services': f'{service.name} does not belong in a {type} batch'})
        billing = ledger.open_billing_for(visit, Billing.TYPE_DIAGNOSTICS)
        batch = BatchOrder.objects.create(
            visit=visit, patient=visit.patient, doctor=doctor, type=type, billing=billing,
            status=OrderStatus.UNPAID, instructions=visits.clean_text(instructions),
        )
        for line, service, inv in resolved:
            ledger.add_line_item(
                billing, service=service, description=inv.name if inv else service.name,
                quantity=1, unit_price=inv.price if inv else service.price,
            )
            BatchOrderService.objects.create(
                batch_order=batch, service=service, investigation_type=inv,
                status=OrderStatus.UNPAID, instructions=visits.clean_text(line.get('instructions')),
            )
        visits.apply_diagnostic_status(visit)
        log_action(user=doctor, action='batch_order', object_type='visit', object_id=visit.id,
                   detail={'batch_id': batch.id, 'type': type, 'services': len(resolved),
                           'billing_id': billing.id})
        notify.queue_changed(visit, 'diagnostics_ordered', order_kind='batch', order_id=batch.id)
    return batch


# ---------------------------------------------------------------------------
# Department actions
# ---------------------------------------------------------------------------

def _locked_diagnostic(order_id: int, kind: Optional[str]) -> tuple[Visit, DiagnosticOrder]:
    found = DiagnosticOrder.objects.filter(id=order_id).values_list('visit_id', 'kind').first()
    if not found or (kind and found[1] != kind):
        raise NotFound(f'order {order_id} not found')
    visit = visits.lock_visit(found[0])
    order = DiagnosticOrder.objects.select_for_update().select_related('billing').get(id=order_id)
    return visit, order


def record_diagnostic_result(order_id: int, *, result: str, actor: Optional[User],
                             kind: Optional[str] = None) -> DiagnosticOrder:
    result = visits.clean_text(result)
    if not result:
        raise ValidationError({'result': 'result is required'})
    with transaction.atomic():
        visit, order = _locked_diagnostic(order_id, kind)
        if order.status == OrderStatus.COMPLETED:
            return order
        _require_released(order, f'{order.kind.lower()} order')
        order.result = result
        order.status = OrderStatus.COMPLETED
        order.save(update_fields=['result', 'status', 'updated_at'])
        log_action(user=actor, action='diagnostic_result', object_type='diagnostic_order', object_id=order.id,
                   detail={'visit_id': visit.id, 'kind': order.kind})
        logger.info("%s order %s completed for visit %s", order.kind, order.id, visit.id)
        visits.check_investigation_completion(visit.id, actor=actor)
    return order


def _refresh_batch(batch: BatchOrder) -> str:
    """Recount a batch's sub-orders and set its status from the counts."""
    live = batch.services.exclude(status=OrderStatus.CANCELLED)
    total = live.count()
    done = live.filter(status=OrderStatus.COMPLETED).count()
    if total and done == total:
        new_status = OrderStatus.COMPLETED
    elif live.filter(status__in=[OrderStatus.IN_PROGRESS, OrderStatus.COMPLETED]).exists():
        new_status = OrderStatus.IN_PROGRESS
    else:
        new_status = batch.status
    if new_status != batch.status:
        batch.status = new_status
        batch.save(update_fields=['status', 'updated_at'])
    return batch.status


def record_batch_service_result(sub_order_id: int, *, result: str, actor: Optional[User]) -> BatchOrderService:
    result = visits.clean_text(result)
    if not result:
        raise ValidationError({'result': 'result is required'})
    with transaction.atomic():
        found = BatchOrderService.objects.filter(id=sub_order_id).values_list('batch_order__visit_id', flat=True).first()
        if found is None:
            raise NotFound(f'batch service {sub_order_id} not found')
        visit = visits.lock_visit(found)
        sub = BatchOrderService.objects.select_for_update().select_related('batch_order').get(id=sub_order_id)
        if sub.status == OrderStatus.COMPLETED:
            return sub
        _require_released(sub, 'batch service')
        sub.result = result
        sub.status = OrderStatus.COMPLETED
        sub.save(update_fields=['result', 'status', 'updated_at'])
        batch = BatchOrder.objects.select_for_update().get(id=sub.batch_order_id)
        batch_status = _refresh_batch(batch)
        log_action(user=actor, action='batch_result', object_type='batch_order', object_id=batch.id,
                   detail={'service_id': sub.id, 'batch_status': batch_status})
        visits.check_investigation_completion(visit.id, actor=actor)
    return sub


def start_order(kind: str, order_id: int, *, actor: Optional[User]):
    """A department picks up a released order (QUEUED -> IN_PROGRESS)."""
    with transaction.atomic():
        if kind in ('lab', 'radiology'):
            _, order = _locked_diagnostic(order_id, kind.upper())
        elif kind == 'batch':
            visit_id = BatchOrder.objects.filter(id=order_id).values_list('visit_id', flat=True).first()
            if visit_id is None:
                raise NotFound(f'batch order {order_id} not found')
            visits.lock_visit(visit_id)
            order = BatchOrder.objects.select_for_update().get(id=order_id)
        else:
            raise NotFound(f'unknown order kind {kind}')
        _require_released(order, f'{kind} order')
        if order.status != OrderStatus.QUEUED:
            raise ValidationError({'status': f'{kind} order {order.id} is {order.status}'})
        order.status = OrderStatus.IN_PROGRESS
        order.save(update_fields=['status', 'updated_at'])
        if kind == 'batch':
            order.services.filter(status=OrderStatus.QUEUED).update(status=OrderStatus.IN_PROGRESS)
        log_action(user=actor, action='order_start', object_type=f'{kind}_order', object_id=order.id)
    return order


# ---------------------------------------------------------------------------
# Medication
# ---------------------------------------------------------------------------

def _medication_source(item: dict) -> Optional[MedicationCatalog]:
    if item.get('catalog_id'):
        entry = MedicationCatalog.objects.filter(id=item['catalog_id']).first()
        if not entry:
            raise NotFound(f'medication {item["catalog_id"]} not found')
        return entry
    return catalog.find_medication(item['name'], item.get('strength', ''), item.get('dosage_form', ''))


def create_medication_order(visit_id: int, *, doctor: User, items: list[dict]) -> list[MedicationOrder]:
    """Prescribe medications once every diagnostic order on the visit is done.

    Catalog medications are priced from the catalog; anything else is
    charged at the configured custom-medication unit price.
    """
    if not items:
        raise ValidationError({'items': 'at least one medication is required'})
    with transaction.atomic():
        visit = visits.lock_visit(visit_id)
        visits.require_status(visit, visits.MEDICATION_SOURCES, 'order medication for')
        visits.ensure_no_pending_investigations(visit)
        billing = ledger.open_billing_for(visit, Billing.TYPE_PHARMACY)
        created = []
        for item in items:
            entry = _medication_source(item)
            if entry is None and not item.get('name'):
                raise ValidationError({'name': 'medication name is required'})
            unit_price = entry.unit_price if entry else catalog.custom_medication_price()
            quantity = int(item.get('quantity') or 1)
            name = entry.name if entry else visits.clean_text(item['name'])
            ledger.add_line_item(billing, description=f'Medication: {name}', quantity=quantity,
                                 unit_price=unit_price)
            created.append(MedicationOrder.objects.create(
                visit=visit, patient=visit.patient, doctor=doctor, catalog=entry,
                name=name,
                strength=entry.strength if entry else item.get('strength', ''),
                dosage_form=entry.dosage_form if entry else item.get('dosage_form', ''),
                quantity=quantity,
                frequency=item.get('frequency', ''),
                duration=item.get('duration', ''),
                instructions=visits.clean_text(item.get('instructions')),
                unit_price=unit_price,
                billing=billing,
                status=OrderStatus.UNPAID,
            ))
        log_action(user=doctor, action='medication_order', object_type='visit', object_id=visit.id,
                   detail={'orders': [m.id for m in created], 'billing_id': billing.id})
    return created


def dispense_medication(order_id: int, *, actor: Optional[User]) -> MedicationOrder:
    with transaction.atomic():
        visit_id = MedicationOrder.objects.filter(id=order_id).values_list('visit_id', flat=True).first()
        if visit_id is None:
            raise NotFound(f'medication order {order_id} not found')
        visit = visits.lock_visit(visit_id)
        order = MedicationOrder.objects.select_for_update().get(id=order_id)
        _require_released(order, 'medication order')
        if order.status == OrderStatus.PAID:
            raise ValidationError({'status': 'medication is released to pharmacy when the visit is completed'})
        if order.status != OrderStatus.QUEUED:
            raise ValidationError({'status': f'medication order {order.id} is {order.status}'})
        if order.catalog_id:
            updated = MedicationCatalog.objects.filter(
                id=order.catalog_id, available_quantity__gte=order.quantity
            ).update(available_quantity=F('available_quantity') - order.quantity)
            if not updated:
                raise ValidationError({'quantity': f'insufficient stock for {order.name}'})
        order.status = OrderStatus.COMPLETED
        order.save(update_fields=['status', 'updated_at'])
        log_action(user=actor, action='medication_dispense', object_type='medication_order', object_id=order.id,
                   detail={'visit_id': visit.id, 'quantity': order.quantity})
        notify.queue_changed(visit, 'medication_dispensed', order_kind='medication', order_id=order.id)
    return order
