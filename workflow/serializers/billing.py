from decimal import Decimal

from rest_framework import serializers

from workflow.models import Billing, Payment


class PaymentSerializer(serializers.Serializer):
    amount = serializers.DecimalField(max_digits=12, decimal_places=2, min_value=Decimal('0.01'))
    method = serializers.ChoiceField(choices=[c for c, _ in Payment.METHOD_CHOICES], default=Payment.METHOD_CASH)
    bankName = serializers.CharField(max_length=128, required=False, allow_blank=True)
    transNumber = serializers.CharField(max_length=64, required=False, allow_blank=True)
    insuranceRef = serializers.CharField(max_length=64, required=False, allow_blank=True)
    notes = serializers.CharField(max_length=2000, required=False, allow_blank=True)


class DeferInsuranceSerializer(serializers.Serializer):
    insuranceRef = serializers.CharField(max_length=64)


class AdjustBillingSerializer(serializers.Serializer):
    status = serializers.ChoiceField(choices=[c for c, _ in Billing.STATUS_CHOICES])
    reason = serializers.CharField(max_length=500)
