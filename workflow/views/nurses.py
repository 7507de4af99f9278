from rest_framework import status
from rest_framework.decorators import api_view, permission_classes
from rest_framework.permissions import IsAuthenticated
from rest_framework.response import Response

from workflow.permissions import IsNurse
from workflow.serializers.visits import AssignDoctorSerializer, VitalsSerializer
from workflow.services import visits as visit_service
from workflow.services.formats import format_visit, format_vitals


@api_view(['POST'])
@permission_classes([IsAuthenticated, IsNurse])
def record_vitals(request):
    s = VitalsSerializer(data=request.data)
    s.is_valid(raise_exception=True)
    visit, sign = visit_service.record_vitals(s.validated_data['visitId'], s.to_vitals(), recorded_by=request.user)
    return Response({'ok': True, 'data': {'visit': format_visit(visit), 'vitals': format_vitals(sign)}},
                    status=status.HTTP_201_CREATED)


@api_view(['POST'])
@permission_classes([IsAuthenticated, IsNurse])
def assign_doctor(request):
    s = AssignDoctorSerializer(data=request.data)
    s.is_valid(raise_exception=True)
    visit, assignment, billing = visit_service.assign_doctor(
        s.validated_data['visitId'], s.validated_data['doctorId'], actor=request.user,
    )
    return Response({
        'ok': True,
        'data': {
            'visit': format_visit(visit),
            'assignmentId': assignment.id,
            'billingId': billing.id,
            'billingStatus': billing.status,
            'billingTotal': f'{billing.total_amount:.2f}',
        },
    })
