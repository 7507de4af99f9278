import bleach
from rest_framework import serializers

from workflow.models import Patient


class PatientCreateSerializer(serializers.Serializer):
    name = serializers.CharField(max_length=128)
    sex = serializers.ChoiceField(choices=['M', 'F', 'O'], required=False, allow_blank=True)
    age = serializers.IntegerField(min_value=0, max_value=130, required=False, allow_null=True)
    phone = serializers.CharField(required=False, allow_blank=True, max_length=32)
    bloodType = serializers.CharField(required=False, allow_blank=True, max_length=8)

    def validate_name(self, v):
        v = bleach.clean((v or '').strip(), strip=True)
        if len(v) < 2:
            raise serializers.ValidationError('name must be at least 2 characters')
        return v

    def validate_phone(self, v):
        return bleach.clean((v or '').strip(), strip=True)


class PatientListQuerySerializer(serializers.Serializer):
    q = serializers.CharField(max_length=64, required=False)
    status = serializers.ChoiceField(choices=[c for c, _ in Patient.STATUS_CHOICES], required=False)
    page = serializers.IntegerField(required=False, min_value=1)
    pageSize = serializers.IntegerField(required=False, min_value=1, max_value=200)
