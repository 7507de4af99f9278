"""
Patient registration and lookup.

Demographics are a thin collaborator of the visit workflow: reception
registers a patient once and opens visits against the record.
"""
from __future__ import annotations

from rest_framework import status
from rest_framework.decorators import api_view, permission_classes
from rest_framework.permissions import IsAuthenticated
from rest_framework.response import Response

from workflow.permissions import IsFrontDesk
from workflow.serializers.patient import PatientCreateSerializer, PatientListQuerySerializer
from workflow.services import patients as patient_service
from workflow.services.formats import format_patient


@api_view(['GET', 'POST'])
@permission_classes([IsAuthenticated, IsFrontDesk])
def patients(request):
    if request.method == 'POST':
        return _create_patient(request)
    q = PatientListQuerySerializer(data=request.query_params)
    q.is_valid(raise_exception=True)
    vd = q.validated_data
    page = vd.get('page') or 1
    page_size = vd.get('pageSize') or 20
    items, total = patient_service.list_patients(q=vd.get('q'), status=vd.get('status'), page=page,
                                                 page_size=page_size)
    return Response({
        'ok': True,
        'data': [format_patient(p) for p in items],
        'pagination': {'total': total, 'page': page, 'pageSize': page_size},
    })


def _create_patient(request):
    s = PatientCreateSerializer(data=request.data)
    s.is_valid(raise_exception=True)
    v = s.validated_data
    patient = patient_service.create_patient(
        request.user, name=v['name'], sex=v.get('sex', ''), age=v.get('age'),
        phone=v.get('phone', ''), blood_type=v.get('bloodType', ''),
    )
    return Response({'ok': True, 'data': format_patient(patient)}, status=status.HTTP_201_CREATED)
