"""
Visit endpoints: registration, detail, cancellation and the medication
pre-check, plus sending a scheduled appointment to the doctor.
"""
from __future__ import annotations

from rest_framework import status
from rest_framework.decorators import api_view, permission_classes
from rest_framework.exceptions import NotFound
from rest_framework.permissions import IsAuthenticated
from rest_framework.response import Response

from workflow.models import Patient, Visit
from workflow.permissions import IsDoctor, IsFrontDesk
from workflow.serializers.visits import VisitCancelSerializer, VisitCreateSerializer
from workflow.services import visits as visit_service
from workflow.services.billing import billing_summary
from workflow.services.formats import (
    format_batch_order,
    format_diagnostic_order,
    format_medication_order,
    format_visit,
    format_vitals,
)


def _get_visit(visit_id: int) -> Visit:
    visit = Visit.objects.select_related('patient', 'assignment__doctor').filter(id=visit_id).first()
    if not visit:
        raise NotFound('visit not found')
    return visit


@api_view(['POST'])
@permission_classes([IsAuthenticated, IsFrontDesk])
def create_visit(request):
    s = VisitCreateSerializer(data=request.data)
    s.is_valid(raise_exception=True)
    v = s.validated_data
    patient = Patient.objects.filter(id=v['patientId']).first()
    if not patient:
        raise NotFound('patient not found')
    visit = visit_service.create_visit(
        patient, created_by=request.user, notes=v.get('notes', ''), is_emergency=v['isEmergency'],
    )
    return Response({'ok': True, 'data': format_visit(_get_visit(visit.id))}, status=status.HTTP_201_CREATED)


@api_view(['GET'])
@permission_classes([IsAuthenticated])
def visit_detail(request, visit_id: int):
    visit = _get_visit(visit_id)
    data = format_visit(visit)
    data['vitals'] = [format_vitals(s) for s in visit.vitals.order_by('id')]
    data['diagnosticOrders'] = [
        format_diagnostic_order(o) for o in visit.diagnostic_orders.select_related('investigation_type').order_by('id')
    ]
    data['batchOrders'] = [format_batch_order(b) for b in visit.batch_orders.order_by('id')]
    data['medicationOrders'] = [format_medication_order(m) for m in visit.medication_orders.order_by('id')]
    data['billings'] = [billing_summary(b) for b in visit.billings.order_by('id')]
    return Response({'ok': True, 'data': data})


@api_view(['POST'])
@permission_classes([IsAuthenticated, IsFrontDesk | IsDoctor])
def cancel_visit(request, visit_id: int):
    s = VisitCancelSerializer(data=request.data)
    s.is_valid(raise_exception=True)
    visit = visit_service.cancel_visit(visit_id, actor=request.user, reason=s.validated_data['reason'])
    return Response({'ok': True, 'data': format_visit(_get_visit(visit.id))})


@api_view(['GET'])
@permission_classes([IsAuthenticated, IsDoctor])
def medication_check(request, visit_id: int):
    return Response({'ok': True, 'data': visit_service.medication_check(_get_visit(visit_id))})


@api_view(['POST'])
@permission_classes([IsAuthenticated, IsFrontDesk])
def send_appointment_to_doctor(request, appointment_id: int):
    visit = visit_service.create_visit_from_appointment(appointment_id, actor=request.user)
    return Response({'ok': True, 'data': format_visit(_get_visit(visit.id))}, status=status.HTTP_201_CREATED)
