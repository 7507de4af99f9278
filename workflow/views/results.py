"""
Department endpoints for lab, radiology and pharmacy.

Each action is only possible once the order's billing has been paid;
recording a result re-checks whether the visit's investigations are
all done.
"""
from rest_framework.decorators import api_view, permission_classes
from rest_framework.exceptions import PermissionDenied
from rest_framework.permissions import IsAuthenticated
from rest_framework.response import Response

from workflow.models import DiagnosticOrder, User
from workflow.permissions import IsDiagnostics, IsLab, IsPharmacy, IsRadiology
from workflow.serializers.orders import ResultSerializer
from workflow.services import orders as order_service
from workflow.services.formats import (
    format_batch_service,
    format_diagnostic_order,
    format_medication_order,
)

START_ROLES = {
    'lab': {User.ROLE_LAB},
    'radiology': {User.ROLE_RADIOLOGY},
    'batch': {User.ROLE_LAB, User.ROLE_RADIOLOGY},
}


def _record(request, order_id: int, kind: str):
    s = ResultSerializer(data=request.data)
    s.is_valid(raise_exception=True)
    order = order_service.record_diagnostic_result(
        order_id, result=s.validated_data['result'], actor=request.user, kind=kind,
    )
    order.visit.refresh_from_db(fields=['status'])
    return Response({'ok': True, 'data': {**format_diagnostic_order(order), 'visitStatus': order.visit.status}})


@api_view(['POST'])
@permission_classes([IsAuthenticated, IsLab])
def lab_result(request, order_id: int):
    return _record(request, order_id, DiagnosticOrder.KIND_LAB)


@api_view(['POST'])
@permission_classes([IsAuthenticated, IsRadiology])
def radiology_result(request, order_id: int):
    return _record(request, order_id, DiagnosticOrder.KIND_RADIOLOGY)


@api_view(['POST'])
@permission_classes([IsAuthenticated, IsDiagnostics])
def batch_service_result(request, service_id: int):
    s = ResultSerializer(data=request.data)
    s.is_valid(raise_exception=True)
    sub = order_service.record_batch_service_result(service_id, result=s.validated_data['result'], actor=request.user)
    batch = sub.batch_order
    batch.refresh_from_db(fields=['status'])
    batch.visit.refresh_from_db(fields=['status'])
    return Response({
        'ok': True,
        'data': {**format_batch_service(sub), 'batchStatus': batch.status, 'visitStatus': batch.visit.status},
    })


@api_view(['POST'])
@permission_classes([IsAuthenticated, IsDiagnostics])
def start_order(request, kind: str, order_id: int):
    roles = START_ROLES.get(kind, set())
    if request.user.role != User.ROLE_ADMIN and request.user.role not in roles:
        raise PermissionDenied(f'{request.user.role} cannot start {kind} orders')
    order = order_service.start_order(kind, order_id, actor=request.user)
    return Response({'ok': True, 'data': {'id': order.id, 'kind': kind, 'status': order.status}})


@api_view(['POST'])
@permission_classes([IsAuthenticated, IsPharmacy])
def dispense_medication(request, order_id: int):
    order = order_service.dispense_medication(order_id, actor=request.user)
    return Response({'ok': True, 'data': format_medication_order(order)})
