"""
Doctor endpoints.

The doctor picks a visit from their queue, orders diagnostics and
medication against it and finally completes it.  All state changes go
through ``workflow.services.visits`` and ``workflow.services.orders``.
"""
from __future__ import annotations

from rest_framework import serializers, status
from rest_framework.decorators import api_view, permission_classes
from rest_framework.permissions import IsAuthenticated
from rest_framework.response import Response

from workflow.models import DiagnosticOrder
from workflow.permissions import IsDoctor, IsNurse
from workflow.serializers.orders import BatchOrderSerializer, DiagnosticOrderSerializer, MedicationOrderSerializer
from workflow.serializers.visits import CompleteVisitSerializer, SelectVisitSerializer
from workflow.services import doctors as doctor_service
from workflow.services import orders as order_service
from workflow.services import visits as visit_service
from workflow.services.formats import (
    format_batch_order,
    format_diagnostic_order,
    format_medication_order,
    format_visit,
)


class DoctorListQuerySerializer(serializers.Serializer):
    q = serializers.CharField(max_length=64, required=False)
    available = serializers.BooleanField(required=False, default=False)
    page = serializers.IntegerField(min_value=1, required=False)
    pageSize = serializers.IntegerField(min_value=1, max_value=200, required=False)


@api_view(['GET'])
@permission_classes([IsAuthenticated, IsNurse | IsDoctor])
def list_doctors(request):
    q = DoctorListQuerySerializer(data=request.query_params)
    q.is_valid(raise_exception=True)
    vd = q.validated_data
    data, total = doctor_service.list_doctors(
        q=vd.get('q'), available_only=vd['available'], page=vd.get('page'), page_size=vd.get('pageSize'),
    )
    return Response({'ok': True, 'data': data, 'pagination': {'total': total}})


@api_view(['POST'])
@permission_classes([IsAuthenticated, IsDoctor])
def select_visit(request):
    s = SelectVisitSerializer(data=request.data)
    s.is_valid(raise_exception=True)
    visit = visit_service.start_review(s.validated_data['visitId'], doctor=request.user)
    return Response({'ok': True, 'data': format_visit(visit)})


def _order_diagnostics(request, kind: str):
    s = DiagnosticOrderSerializer(data=request.data)
    s.is_valid(raise_exception=True)
    visit, created = order_service.order_diagnostics(
        s.validated_data['visitId'], doctor=request.user, kind=kind, orders=s.lines(),
    )
    return Response({
        'ok': True,
        'data': {
            'visitStatus': visit.status,
            'orders': [format_diagnostic_order(o) for o in created],
            'billingId': created[0].billing_id,
        },
    }, status=status.HTTP_201_CREATED)


@api_view(['POST'])
@permission_classes([IsAuthenticated, IsDoctor])
def lab_orders(request):
    return _order_diagnostics(request, DiagnosticOrder.KIND_LAB)


@api_view(['POST'])
@permission_classes([IsAuthenticated, IsDoctor])
def radiology_orders(request):
    return _order_diagnostics(request, DiagnosticOrder.KIND_RADIOLOGY)


@api_view(['POST'])
@permission_classes([IsAuthenticated, IsDoctor])
def batch_orders(request):
    s = BatchOrderSerializer(data=request.data)
    s.is_valid(raise_exception=True)
    vd = s.validated_data
    batch = order_service.create_batch_order(
        vd['visitId'], doctor=request.user, type=vd['type'], services=s.lines(),
        instructions=vd.get('instructions', ''),
    )
    batch.visit.refresh_from_db(fields=['status'])
    return Response({'ok': True, 'data': {**format_batch_order(batch), 'visitStatus': batch.visit.status}},
                    status=status.HTTP_201_CREATED)


@api_view(['POST'])
@permission_classes([IsAuthenticated, IsDoctor])
def medication_orders(request):
    s = MedicationOrderSerializer(data=request.data)
    s.is_valid(raise_exception=True)
    created = order_service.create_medication_order(
        s.validated_data['visitId'], doctor=request.user, items=s.items(),
    )
    return Response({
        'ok': True,
        'data': {
            'orders': [format_medication_order(m) for m in created],
            'billingId': created[0].billing_id,
        },
    }, status=status.HTTP_201_CREATED)


@api_view(['POST'])
@permission_classes([IsAuthenticated, IsDoctor])
def complete_visit(request):
    s = CompleteVisitSerializer(data=request.data)
    s.is_valid(raise_exception=True)
    vd = s.validated_data
    visit = visit_service.complete_visit(
        vd['visitId'], doctor=request.user, diagnosis=vd['diagnosis'],
        diagnosis_details=vd.get('diagnosisDetails', ''), instructions=vd.get('instructions', ''),
        follow_up=s.follow_up(),
    )
    return Response({'ok': True, 'data': format_visit(visit)})


class AvailabilitySerializer(serializers.Serializer):
    available = serializers.BooleanField()


@api_view(['POST'])
@permission_classes([IsAuthenticated, IsDoctor])
def set_availability(request):
    s = AvailabilitySerializer(data=request.data)
    s.is_valid(raise_exception=True)
    doctor = doctor_service.set_availability(request.user, s.validated_data['available'])
    return Response({'ok': True, 'data': doctor_service.format_doctor(doctor)})
