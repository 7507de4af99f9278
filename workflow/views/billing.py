"""
Billing endpoints.

Payments settle a billing and, once it is fully paid, release the
orders waiting on it.  Insurance deferral and administrative status
adjustment are separate actions.
"""
from rest_framework import status
from rest_framework.decorators import api_view, permission_classes
from rest_framework.exceptions import NotFound
from rest_framework.permissions import IsAuthenticated
from rest_framework.response import Response

from workflow.models import Billing
from workflow.permissions import IsAdminRole, IsBilling
from workflow.serializers.billing import AdjustBillingSerializer, DeferInsuranceSerializer, PaymentSerializer
from workflow.services import billing as ledger


def _summary(billing_id: int) -> dict:
    billing = Billing.objects.filter(id=billing_id).first()
    if not billing:
        raise NotFound('billing not found')
    return ledger.billing_summary(billing)


@api_view(['GET'])
@permission_classes([IsAuthenticated, IsBilling])
def billing_detail(request, billing_id: int):
    return Response({'ok': True, 'data': _summary(billing_id)})


@api_view(['POST'])
@permission_classes([IsAuthenticated, IsBilling])
def record_payment(request, billing_id: int):
    s = PaymentSerializer(data=request.data)
    s.is_valid(raise_exception=True)
    v = s.validated_data
    payment = ledger.record_payment(
        billing_id, amount=v['amount'], method=v['method'], received_by=request.user,
        bank_name=v.get('bankName', ''), trans_number=v.get('transNumber', ''),
        insurance_ref=v.get('insuranceRef', ''), notes=v.get('notes', ''),
    )
    return Response({'ok': True, 'paymentId': payment.id, 'data': _summary(billing_id)},
                    status=status.HTTP_201_CREATED)


@api_view(['POST'])
@permission_classes([IsAuthenticated, IsBilling])
def defer_insurance(request, billing_id: int):
    s = DeferInsuranceSerializer(data=request.data)
    s.is_valid(raise_exception=True)
    ledger.defer_to_insurance(billing_id, insurance_ref=s.validated_data['insuranceRef'], actor=request.user)
    return Response({'ok': True, 'data': _summary(billing_id)})


@api_view(['POST'])
@permission_classes([IsAuthenticated, IsBilling])
def insurance_claimed(request, billing_id: int):
    ledger.mark_insurance_claimed(billing_id, actor=request.user)
    return Response({'ok': True, 'data': _summary(billing_id)})


@api_view(['POST'])
@permission_classes([IsAuthenticated, IsAdminRole])
def adjust_billing(request, billing_id: int):
    s = AdjustBillingSerializer(data=request.data)
    s.is_valid(raise_exception=True)
    ledger.adjust_billing_status(
        billing_id, status=s.validated_data['status'], reason=s.validated_data['reason'], actor=request.user,
    )
    return Response({'ok': True, 'data': _summary(billing_id)})
