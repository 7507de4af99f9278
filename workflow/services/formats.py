from typing import Optional

from workflow.models import (
    BatchOrder,
    BatchOrderService,
    DiagnosticOrder,
    MedicationOrder,
    Patient,
    Visit,
    VitalSign,
)


def _iso(dt) -> Optional[str]:
    return dt.isoformat() if dt else None


def format_patient(p: Patient) -> dict:
    return {
        'id': p.id,
        'name': p.name,
        'sex': p.sex,
        'age': p.age,
        'phone': p.phone,
        'bloodType': p.blood_type,
        'status': p.status,
        'lastVisitAt': _iso(p.last_visit_at),
    }


def format_visit(v: Visit) -> dict:
    doctor = v.assignment.doctor if v.assignment_id else None
    return {
        'id': v.id,
        'visitUid': v.visit_uid,
        'patientId': v.patient_id,
        'patientName': v.patient.name,
        'status': v.status,
        'queueType': v.queue_type,
        'isEmergency': v.is_emergency,
        'doctorId': doctor.id if doctor else None,
        'doctorName': (doctor.get_full_name() or doctor.username) if doctor else None,
        'assignmentStatus': v.assignment.status if v.assignment_id else None,
        'diagnosis': v.diagnosis,
        'notes': v.notes,
        'createdAt': _iso(v.created_at),
        'completedAt': _iso(v.completed_at),
    }


def format_vitals(s: VitalSign) -> dict:
    return {
        'id': s.id,
        'visitId': s.visit_id,
        'temperature': str(s.temperature) if s.temperature is not None else None,
        'bloodPressure': s.blood_pressure,
        'heartRate': s.heart_rate,
        'respiratoryRate': s.respiratory_rate,
        'oxygenSaturation': s.oxygen_saturation,
        'weight': str(s.weight) if s.weight is not None else None,
        'height': str(s.height) if s.height is not None else None,
        'bmi': str(s.bmi) if s.bmi is not None else None,
    }


def format_diagnostic_order(o: DiagnosticOrder) -> dict:
    return {
        'id': o.id,
        'visitId': o.visit_id,
        'patientId': o.patient_id,
        'kind': o.kind,
        'investigationTypeId': o.investigation_type_id,
        'name': o.investigation_type.name,
        'billingId': o.billing_id,
        'status': o.status,
        'instructions': o.instructions,
        'result': o.result,
    }


def format_batch_service(s: BatchOrderService) -> dict:
    return {
        'id': s.id,
        'batchOrderId': s.batch_order_id,
        'visitId': s.batch_order.visit_id,
        'serviceId': s.service_id,
        'name': s.investigation_type.name if s.investigation_type_id else s.service.name,
        'category': s.category,
        'status': s.status,
        'instructions': s.instructions,
        'result': s.result,
    }


def format_batch_order(b: BatchOrder) -> dict:
    return {
        'id': b.id,
        'visitId': b.visit_id,
        'type': b.type,
        'billingId': b.billing_id,
        'status': b.status,
        'services': [format_batch_service(s) for s in b.services.select_related('service', 'investigation_type')],
    }


def format_medication_order(m: MedicationOrder) -> dict:
    return {
        'id': m.id,
        'visitId': m.visit_id,
        'patientId': m.patient_id,
        'name': m.name,
        'strength': m.strength,
        'dosageForm': m.dosage_form,
        'quantity': m.quantity,
        'frequency': m.frequency,
        'duration': m.duration,
        'unitPrice': f'{m.unit_price:.2f}',
        'billingId': m.billing_id,
        'status': m.status,
    }
