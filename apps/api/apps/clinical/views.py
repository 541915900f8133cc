"""
Clinical viewsets: medical record lock/unlock and entry creation.
"""
from rest_framework import mixins, status, viewsets
from rest_framework.decorators import action
from rest_framework.response import Response
from rest_framework.views import APIView

from apps.authz.permissions import IsAdmin, IsClinicianOrAdmin, IsPharmacistOrAdmin
from apps.clinical import services
from apps.clinical.models import MedicalRecord
from apps.clinical.serializers import (
    DiagnosisSerializer,
    MedicalRecordSerializer,
    PrescriptionFulfillSerializer,
    PrescriptionSerializer,
    ProcedureSerializer,
)
from apps.core.errors import DomainError, domain_error_response


class MedicalRecordViewSet(mixins.ListModelMixin, mixins.RetrieveModelMixin, viewsets.GenericViewSet):
    """
    Endpoints:
    - GET  /api/v1/clinical/medical-records/
    - GET  /api/v1/clinical/medical-records/{id}/
    - POST /api/v1/clinical/medical-records/{id}/lock/
    - POST /api/v1/clinical/medical-records/{id}/unlock/     (admin)
    - POST /api/v1/clinical/medical-records/{id}/diagnoses/
    - POST /api/v1/clinical/medical-records/{id}/procedures/
    - POST /api/v1/clinical/medical-records/{id}/prescriptions/

    Query parameters:
    - ?visit=<uuid> - record of one visit
    - ?locked=true|false
    """
    serializer_class = MedicalRecordSerializer
    permission_classes = [IsClinicianOrAdmin]

    def get_queryset(self):
        queryset = MedicalRecord.objects.select_related('visit').prefetch_related(
            'diagnoses', 'procedures', 'prescriptions__drug'
        )
        visit_id = self.request.query_params.get('visit')
        if visit_id:
            queryset = queryset.filter(visit_id=visit_id)
        locked = self.request.query_params.get('locked')
        if locked is not None:
            queryset = queryset.filter(is_locked=locked.lower() == 'true')
        return queryset.order_by('-created_at')

    def _record_response(self, record_id):
        record = self.get_queryset().get(id=record_id)
        return Response(MedicalRecordSerializer(record).data, status=status.HTTP_200_OK)

    @action(detail=True, methods=['post'], url_path='lock')
    def lock(self, request, pk=None):
        try:
            services.lock_medical_record(pk, actor=request.user)
        except DomainError as e:
            return domain_error_response(e)
        return self._record_response(pk)

    @action(detail=True, methods=['post'], url_path='unlock', permission_classes=[IsAdmin])
    def unlock(self, request, pk=None):
        try:
            services.unlock_medical_record(pk, actor=request.user)
        except DomainError as e:
            return domain_error_response(e)
        return self._record_response(pk)

    def _add_entry(self, request, pk, serializer_class, add):
        serializer = serializer_class(data=request.data)
        serializer.is_valid(raise_exception=True)
        try:
            entry = add(pk, **serializer.validated_data)
        except DomainError as e:
            return domain_error_response(e)
        return Response(serializer_class(entry).data, status=status.HTTP_201_CREATED)

    @action(detail=True, methods=['post'], url_path='diagnoses')
    def diagnoses(self, request, pk=None):
        return self._add_entry(request, pk, DiagnosisSerializer, services.add_diagnosis)

    @action(detail=True, methods=['post'], url_path='procedures')
    def procedures(self, request, pk=None):
        return self._add_entry(request, pk, ProcedureSerializer, services.add_procedure)

    @action(detail=True, methods=['post'], url_path='prescriptions')
    def prescriptions(self, request, pk=None):
        return self._add_entry(request, pk, PrescriptionSerializer, services.add_prescription)


class PrescriptionFulfillView(APIView):
    """
    POST /api/v1/clinical/prescriptions/{id}/fulfill/
    {"dispensed_quantity": 8}  // optional, defaults to the prescribed quantity
    """
    permission_classes = [IsPharmacistOrAdmin]

    def post(self, request, prescription_id):
        serializer = PrescriptionFulfillSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        try:
            prescription = services.fulfill_prescription(
                prescription_id,
                dispensed_quantity=serializer.validated_data.get('dispensed_quantity'),
            )
        except DomainError as e:
            return domain_error_response(e)
        return Response(PrescriptionSerializer(prescription).data, status=status.HTTP_200_OK)
