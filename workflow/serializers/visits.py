from rest_framework import serializers


class VisitCreateSerializer(serializers.Serializer):
    patientId = serializers.IntegerField(min_value=1)
    notes = serializers.CharField(required=False, allow_blank=True, max_length=2000)
    isEmergency = serializers.BooleanField(required=False, default=False)


class VisitCancelSerializer(serializers.Serializer):
    reason = serializers.CharField(max_length=500)


class VitalsSerializer(serializers.Serializer):
    visitId = serializers.IntegerField(min_value=1)
    temperature = serializers.DecimalField(max_digits=4, decimal_places=1, required=False, allow_null=True,
                                           min_value=25, max_value=45)
    bloodPressure = serializers.RegexField(r'^\d{2,3}/\d{2,3}$', required=False, allow_blank=True)
    heartRate = serializers.IntegerField(required=False, allow_null=True, min_value=20, max_value=250)
    respiratoryRate = serializers.IntegerField(required=False, allow_null=True, min_value=4, max_value=80)
    oxygenSaturation = serializers.IntegerField(required=False, allow_null=True, min_value=50, max_value=100)
    weight = serializers.DecimalField(max_digits=5, decimal_places=1, required=False, allow_null=True,
                                      min_value=0)
    height = serializers.DecimalField(max_digits=4, decimal_places=2, required=False, allow_null=True,
                                      min_value=0, help_text='metres')
    bloodType = serializers.ChoiceField(
        choices=['A+', 'A-', 'B+', 'B-', 'AB+', 'AB-', 'O+', 'O-'], required=False, allow_blank=True,
    )

    FIELD_MAP = {
        'temperature': 'temperature',
        'bloodPressure': 'blood_pressure',
        'heartRate': 'heart_rate',
        'respiratoryRate': 'respiratory_rate',
        'oxygenSaturation': 'oxygen_saturation',
        'weight': 'weight',
        'height': 'height',
        'bloodType': 'blood_type',
    }

    def to_vitals(self) -> dict:
        vd = self.validated_data
        return {dest: vd[src] for src, dest in self.FIELD_MAP.items() if vd.get(src) not in (None, '')}


class AssignDoctorSerializer(serializers.Serializer):
    visitId = serializers.IntegerField(min_value=1)
    doctorId = serializers.IntegerField(min_value=1)


class SelectVisitSerializer(serializers.Serializer):
    visitId = serializers.IntegerField(min_value=1)


class FollowUpSerializer(serializers.Serializer):
    date = serializers.DateField()
    time = serializers.CharField(required=False, allow_blank=True, max_length=8)
    notes = serializers.CharField(required=False, allow_blank=True, max_length=2000)


class CompleteVisitSerializer(serializers.Serializer):
    visitId = serializers.IntegerField(min_value=1)
    diagnosis = serializers.CharField(max_length=2000)
    diagnosisDetails = serializers.CharField(required=False, allow_blank=True, max_length=5000)
    instructions = serializers.CharField(required=False, allow_blank=True, max_length=5000)
    followUp = FollowUpSerializer(required=False, allow_null=True)

    def follow_up(self):
        fu = self.validated_data.get('followUp')
        if not fu:
            return None
        return {
            'appointment_date': fu['date'],
            'appointment_time': fu.get('time', ''),
            'notes': fu.get('notes', ''),
        }
