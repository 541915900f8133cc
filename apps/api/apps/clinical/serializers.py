"""
Clinical serializers: medical record, entries and lock state.
"""
from rest_framework import serializers

from apps.clinical.models import Diagnosis, MedicalRecord, Prescription, Procedure


class DiagnosisSerializer(serializers.ModelSerializer):
    class Meta:
        model = Diagnosis
        fields = ['id', 'icd10_code', 'diagnosis_name', 'diagnosis_type', 'created_at']
        read_only_fields = ['id', 'created_at']


class ProcedureSerializer(serializers.ModelSerializer):
    class Meta:
        model = Procedure
        fields = ['id', 'service', 'procedure_name', 'icd9_code', 'performed_at', 'created_at']
        read_only_fields = ['id', 'created_at']


class PrescriptionSerializer(serializers.ModelSerializer):
    drug_name = serializers.CharField(source='drug.name', read_only=True)

    class Meta:
        model = Prescription
        fields = [
            'id', 'drug', 'drug_name', 'quantity', 'dispensed_quantity',
            'dosage', 'frequency', 'duration', 'is_fulfilled', 'created_at',
        ]
        read_only_fields = ['id', 'drug_name', 'dispensed_quantity', 'is_fulfilled', 'created_at']


class MedicalRecordSerializer(serializers.ModelSerializer):
    """Record with entries; lock fields are read-only (changed via lock/unlock)."""
    diagnoses = DiagnosisSerializer(many=True, read_only=True)
    procedures = ProcedureSerializer(many=True, read_only=True)
    prescriptions = PrescriptionSerializer(many=True, read_only=True)
    visit_status = serializers.CharField(source='visit.status', read_only=True)

    class Meta:
        model = MedicalRecord
        fields = [
            'id', 'visit', 'visit_status', 'doctor',
            'subjective', 'objective', 'assessment', 'plan',
            'is_draft', 'is_locked', 'locked_at', 'locked_by',
            'diagnoses', 'procedures', 'prescriptions',
            'created_at', 'updated_at',
        ]
        read_only_fields = [
            'id', 'visit', 'visit_status', 'doctor', 'is_draft', 'is_locked',
            'locked_at', 'locked_by', 'created_at', 'updated_at',
        ]


class PrescriptionFulfillSerializer(serializers.Serializer):
    dispensed_quantity = serializers.IntegerField(min_value=1, required=False)
