"""
Billing views.

Visit-scoped endpoints (preview, create, discharge) are APIViews keyed on the
visit id; billing-scoped endpoints live on BillingViewSet and the payment
history on PaymentViewSet.
"""
from django.db.models import Q
from django.utils.dateparse import parse_date
from rest_framework import mixins, status, viewsets
from rest_framework.decorators import action
from rest_framework.exceptions import ValidationError
from rest_framework.response import Response
from rest_framework.views import APIView

from apps.authz.permissions import IsCashierOrAdmin, IsClinicianOrAdmin, IsVisitStaff
from apps.core.errors import DomainError, domain_error_response

from . import discharge, services
from .models import Billing, Payment
from .serializers import (
    BillingSerializer,
    BillingStatisticsSerializer,
    CreateBillingSerializer,
    DischargeEligibilitySerializer,
    DischargeSummarySerializer,
    DraftBillingSerializer,
    PaymentHistorySerializer,
    PaymentRequestSerializer,
    PaymentSerializer,
    RefreshBillingSerializer,
)


class BillingViewSet(mixins.ListModelMixin, mixins.RetrieveModelMixin, viewsets.GenericViewSet):
    """
    Endpoints:
    - GET  /api/v1/billing/billings/                 (?payment_status=, ?visit=)
    - GET  /api/v1/billing/billings/{id}/
    - POST /api/v1/billing/billings/{id}/refresh/
    - POST /api/v1/billing/billings/{id}/payments/
    - GET  /api/v1/billing/billings/statistics/
    """
    serializer_class = BillingSerializer
    permission_classes = [IsCashierOrAdmin]

    def get_queryset(self):
        queryset = Billing.objects.select_related('visit').prefetch_related('items', 'payments')
        payment_status = self.request.query_params.get('payment_status')
        if payment_status:
            queryset = queryset.filter(payment_status=payment_status)
        visit_id = self.request.query_params.get('visit')
        if visit_id:
            queryset = queryset.filter(visit_id=visit_id)
        return queryset.order_by('-created_at')

    def _billing_data(self, billing_id):
        return BillingSerializer(self.get_queryset().get(id=billing_id)).data

    @action(detail=True, methods=['post'], url_path='refresh')
    def refresh(self, request, pk=None):
        """
        Re-aggregate charges into the billing.

        POST /api/v1/billing/billings/{id}/refresh/
        {"as_of": "2026-01-05T10:00:00Z"}  // optional
        """
        serializer = RefreshBillingSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)

        try:
            billing = services.refresh_billing(
                pk, actor=request.user, as_of=serializer.validated_data.get('as_of')
            )
        except DomainError as e:
            return domain_error_response(e)

        return Response(self._billing_data(billing.id), status=status.HTTP_200_OK)

    @action(detail=True, methods=['post'], url_path='payments')
    def payments(self, request, pk=None):
        """
        Record a payment.

        POST /api/v1/billing/billings/{id}/payments/
        {
            "amount": "135000.00",
            "payment_method": "cash",
            "amount_received": "150000.00",
            "discount_percentage": "10",
            "expected_version": 1
        }

        Returns:
        - 201: payment recorded, updated billing and change
        - 400: invalid payment or over-payment
        - 404: billing not found
        - 409: stale expected_version
        """
        serializer = PaymentRequestSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)

        try:
            result = services.process_payment(pk, serializer.validated_data, actor=request.user)
        except DomainError as e:
            return domain_error_response(e)

        return Response({
            'payment': PaymentSerializer(result['payment']).data,
            'billing': self._billing_data(result['billing'].id),
            'change_given': result['change_given'],
        }, status=status.HTTP_201_CREATED)

    @action(detail=False, methods=['get'], url_path='statistics')
    def statistics(self, request):
        stats = services.get_billing_statistics()
        return Response(BillingStatisticsSerializer(stats).data)


class PaymentViewSet(mixins.ListModelMixin, mixins.RetrieveModelMixin, viewsets.GenericViewSet):
    """
    Cashier transaction history. Read-only: payments are created through
    POST /billings/{id}/payments/ and never modified.

    Endpoints:
    - GET /api/v1/billing/payments/       newest first, paginated
    - GET /api/v1/billing/payments/{id}/  receipt detail

    Query parameters:
    - ?search=        patient name, MR number, visit number or receipt number
    - ?payment_method=cash|transfer|card|insurance
    - ?visit_type=outpatient|inpatient|emergency
    - ?date_from=YYYY-MM-DD, ?date_to=YYYY-MM-DD (inclusive, on received_at)
    - ?billing=<uuid>
    """
    serializer_class = PaymentHistorySerializer
    permission_classes = [IsCashierOrAdmin]

    def _date_param(self, name):
        value = self.request.query_params.get(name)
        if not value:
            return None
        try:
            parsed = parse_date(value)
        except ValueError:
            parsed = None
        if parsed is None:
            raise ValidationError({name: 'Use the YYYY-MM-DD format'})
        return parsed

    def get_queryset(self):
        queryset = Payment.objects.select_related(
            'billing__visit__patient', 'received_by'
        )
        params = self.request.query_params

        search = params.get('search')
        if search:
            queryset = queryset.filter(
                Q(billing__visit__patient__full_name__icontains=search)
                | Q(billing__visit__patient__mr_number__icontains=search)
                | Q(billing__visit__visit_number__icontains=search)
                | Q(receipt_number__icontains=search)
            )

        payment_method = params.get('payment_method')
        if payment_method and payment_method != 'all':
            queryset = queryset.filter(payment_method=payment_method)

        visit_type = params.get('visit_type')
        if visit_type and visit_type != 'all':
            queryset = queryset.filter(billing__visit__visit_type=visit_type)

        date_from = self._date_param('date_from')
        if date_from:
            queryset = queryset.filter(received_at__date__gte=date_from)
        date_to = self._date_param('date_to')
        if date_to:
            queryset = queryset.filter(received_at__date__lte=date_to)

        billing_id = params.get('billing')
        if billing_id:
            queryset = queryset.filter(billing_id=billing_id)

        return queryset.order_by('-received_at', '-receipt_number')


class VisitBillingPreviewView(APIView):
    """
    GET /api/v1/billing/visits/{visit_id}/preview/?variant=checkout&as_of=...

    Draft billing of a visit. Nothing is written.
    """
    permission_classes = [IsCashierOrAdmin]

    def get(self, request, visit_id):
        params = CreateBillingSerializer(data=request.query_params)
        params.is_valid(raise_exception=True)

        try:
            draft = services.preview_billing(
                visit_id,
                variant=params.validated_data.get('variant'),
                as_of=params.validated_data.get('as_of'),
            )
        except DomainError as e:
            return domain_error_response(e)

        return Response(DraftBillingSerializer(draft).data)


class VisitBillingCreateView(APIView):
    """POST /api/v1/billing/visits/{visit_id}/create/"""
    permission_classes = [IsCashierOrAdmin]

    def post(self, request, visit_id):
        serializer = CreateBillingSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)

        try:
            billing = services.create_billing(
                visit_id,
                actor=request.user,
                variant=serializer.validated_data.get('variant'),
                as_of=serializer.validated_data.get('as_of'),
                notes=serializer.validated_data.get('notes'),
            )
        except DomainError as e:
            return domain_error_response(e)

        billing = Billing.objects.prefetch_related('items', 'payments').get(id=billing.id)
        return Response(BillingSerializer(billing).data, status=status.HTTP_201_CREATED)


class DischargeEligibilityView(APIView):
    """GET /api/v1/billing/visits/{visit_id}/discharge-eligibility/"""
    permission_classes = [IsVisitStaff]

    def get(self, request, visit_id):
        try:
            decision = discharge.can_discharge(visit_id)
        except DomainError as e:
            return domain_error_response(e)
        return Response(DischargeEligibilitySerializer(decision).data)


class DischargeSummaryView(APIView):
    """
    GET  /api/v1/billing/visits/{visit_id}/discharge-summary/
    POST /api/v1/billing/visits/{visit_id}/discharge-summary/

    POST discharges the inpatient: it succeeds only when the discharge gate
    allows it and completes the visit.
    """
    permission_classes = [IsClinicianOrAdmin]

    def get(self, request, visit_id):
        try:
            summary = discharge.get_discharge_summary(visit_id)
        except DomainError as e:
            return domain_error_response(e)
        return Response(DischargeSummarySerializer(summary).data)

    def post(self, request, visit_id):
        serializer = DischargeSummarySerializer(data=request.data)
        serializer.is_valid(raise_exception=True)

        try:
            summary = discharge.create_discharge_summary(
                visit_id, serializer.validated_data, actor=request.user
            )
        except DomainError as e:
            return domain_error_response(e)

        return Response(DischargeSummarySerializer(summary).data, status=status.HTTP_201_CREATED)
