from rest_framework import serializers

from workflow.models import BatchOrder


class DiagnosticLineSerializer(serializers.Serializer):
    investigationTypeId = serializers.IntegerField(min_value=1)
    instructions = serializers.CharField(required=False, allow_blank=True, max_length=2000)


class DiagnosticOrderSerializer(serializers.Serializer):
    """Either a single ``investigationTypeId`` or a list of ``orders``."""
    visitId = serializers.IntegerField(min_value=1)
    investigationTypeId = serializers.IntegerField(min_value=1, required=False)
    instructions = serializers.CharField(required=False, allow_blank=True, max_length=2000)
    orders = DiagnosticLineSerializer(many=True, required=False)

    def validate(self, attrs):
        if not attrs.get('orders') and not attrs.get('investigationTypeId'):
            raise serializers.ValidationError('investigationTypeId or orders is required')
        return attrs

    def lines(self) -> list[dict]:
        vd = self.validated_data
        if vd.get('orders'):
            return [
                {'investigation_type_id': o['investigationTypeId'], 'instructions': o.get('instructions', '')}
                for o in vd['orders']
            ]
        return [{'investigation_type_id': vd['investigationTypeId'], 'instructions': vd.get('instructions', '')}]


class BatchServiceSerializer(serializers.Serializer):
    serviceId = serializers.IntegerField(min_value=1)
    investigationTypeId = serializers.IntegerField(min_value=1, required=False, allow_null=True)
    instructions = serializers.CharField(required=False, allow_blank=True, max_length=2000)


class BatchOrderSerializer(serializers.Serializer):
    visitId = serializers.IntegerField(min_value=1)
    type = serializers.ChoiceField(choices=[c for c, _ in BatchOrder.TYPE_CHOICES])
    instructions = serializers.CharField(required=False, allow_blank=True, max_length=2000)
    services = BatchServiceSerializer(many=True, allow_empty=False)

    def lines(self) -> list[dict]:
        return [
            {
                'service_id': s['serviceId'],
                'investigation_type_id': s.get('investigationTypeId'),
                'instructions': s.get('instructions', ''),
            }
            for s in self.validated_data['services']
        ]


class MedicationItemSerializer(serializers.Serializer):
    catalogId = serializers.IntegerField(min_value=1, required=False)
    name = serializers.CharField(max_length=255, required=False)
    strength = serializers.CharField(max_length=64, required=False, allow_blank=True)
    dosageForm = serializers.CharField(max_length=64, required=False, allow_blank=True)
    quantity = serializers.IntegerField(min_value=1, default=1)
    frequency = serializers.CharField(max_length=64, required=False, allow_blank=True)
    duration = serializers.CharField(max_length=64, required=False, allow_blank=True)
    instructions = serializers.CharField(max_length=2000, required=False, allow_blank=True)

    def validate(self, attrs):
        if not attrs.get('catalogId') and not attrs.get('name'):
            raise serializers.ValidationError('catalogId or name is required')
        return attrs


class MedicationOrderSerializer(serializers.Serializer):
    visitId = serializers.IntegerField(min_value=1)
    medications = MedicationItemSerializer(many=True, allow_empty=False)

    def items(self) -> list[dict]:
        return [
            {
                'catalog_id': m.get('catalogId'),
                'name': m.get('name', ''),
                'strength': m.get('strength', ''),
                'dosage_form': m.get('dosageForm', ''),
                'quantity': m['quantity'],
                'frequency': m.get('frequency', ''),
                'duration': m.get('duration', ''),
                'instructions': m.get('instructions', ''),
            }
            for m in self.validated_data['medications']
        ]


class ResultSerializer(serializers.Serializer):
    result = serializers.CharField(max_length=10000)
