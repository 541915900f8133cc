"""
Visit serializers.
"""
from rest_framework import serializers

from apps.visits.models import Visit, VisitStatusChoices


class VisitSerializer(serializers.ModelSerializer):
    patient_mr_number = serializers.CharField(source='patient.mr_number', read_only=True)
    status_display = serializers.CharField(source='get_status_display', read_only=True)

    class Meta:
        model = Visit
        fields = [
            'id', 'visit_number', 'patient', 'patient_mr_number', 'visit_type',
            'status', 'status_display', 'doctor', 'arrival_at', 'end_at',
            'cancellation_reason', 'created_at', 'updated_at',
        ]
        read_only_fields = fields


class VisitTransitionSerializer(serializers.Serializer):
    """
    Body of POST /visits/{id}/transition/.

    Reason is required when cancelling.
    """
    new_status = serializers.ChoiceField(choices=VisitStatusChoices.choices)
    reason = serializers.CharField(required=False, allow_blank=False)

    def validate(self, data):
        if data['new_status'] == VisitStatusChoices.CANCELLED and not data.get('reason'):
            raise serializers.ValidationError({'reason': 'Reason is required when cancelling a visit'})
        return data
