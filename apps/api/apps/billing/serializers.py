"""Billing serializers."""
from rest_framework import serializers

from .models import Billing, BillingItem, DischargeSummary, Payment, PaymentMethodChoices


class BillingItemSerializer(serializers.ModelSerializer):
    class Meta:
        model = BillingItem
        fields = [
            'id', 'item_type', 'source_key', 'item_name', 'item_code',
            'quantity', 'unit_price', 'discount', 'total_price', 'description',
            'created_at',
        ]
        read_only_fields = fields


class PaymentSerializer(serializers.ModelSerializer):
    received_by_name = serializers.CharField(source='received_by.display_name', read_only=True)

    class Meta:
        model = Payment
        fields = [
            'id', 'billing', 'receipt_number', 'amount', 'payment_method',
            'payment_reference', 'amount_received', 'change_given', 'notes',
            'received_by', 'received_by_name', 'received_at',
        ]
        read_only_fields = fields


class PaymentHistorySerializer(PaymentSerializer):
    """Payment with the billing, visit and patient context a cashier needs."""
    billing_total_amount = serializers.DecimalField(
        source='billing.total_amount', max_digits=14, decimal_places=2, read_only=True
    )
    billing_payment_status = serializers.CharField(source='billing.payment_status', read_only=True)
    visit = serializers.UUIDField(source='billing.visit_id', read_only=True)
    visit_number = serializers.CharField(source='billing.visit.visit_number', read_only=True)
    visit_type = serializers.CharField(source='billing.visit.visit_type', read_only=True)
    patient_name = serializers.CharField(source='billing.visit.patient.full_name', read_only=True)
    mr_number = serializers.CharField(source='billing.visit.patient.mr_number', read_only=True)

    class Meta(PaymentSerializer.Meta):
        fields = PaymentSerializer.Meta.fields + [
            'billing_total_amount', 'billing_payment_status',
            'visit', 'visit_number', 'visit_type', 'patient_name', 'mr_number',
        ]
        read_only_fields = fields


class BillingSerializer(serializers.ModelSerializer):
    """Billing with its items and payments. Every field is computed server side."""
    items = BillingItemSerializer(many=True, read_only=True)
    payments = PaymentSerializer(many=True, read_only=True)
    visit_number = serializers.CharField(source='visit.visit_number', read_only=True)

    class Meta:
        model = Billing
        fields = [
            'id', 'visit', 'visit_number', 'subtotal', 'discount', 'discount_percentage',
            'tax', 'insurance_coverage', 'total_amount', 'patient_payable',
            'paid_amount', 'remaining_amount', 'payment_status', 'notes',
            'created_by', 'processed_by', 'processed_at', 'version',
            'created_at', 'updated_at', 'items', 'payments',
        ]
        read_only_fields = fields


class DraftItemSerializer(serializers.Serializer):
    category = serializers.CharField()
    item_type = serializers.CharField()
    source_key = serializers.CharField()
    item_name = serializers.CharField()
    item_code = serializers.CharField(allow_blank=True)
    quantity = serializers.IntegerField()
    unit_price = serializers.DecimalField(max_digits=12, decimal_places=2)
    discount = serializers.DecimalField(max_digits=12, decimal_places=2)
    total_price = serializers.DecimalField(max_digits=14, decimal_places=2)
    description = serializers.CharField(allow_null=True)


class DraftBillingSerializer(serializers.Serializer):
    """Output of the read-only preview."""
    visit_id = serializers.UUIDField()
    visit_type = serializers.CharField()
    variant = serializers.CharField()
    as_of = serializers.DateTimeField()
    items = DraftItemSerializer(many=True)
    breakdown = serializers.DictField(child=serializers.DecimalField(max_digits=14, decimal_places=2))
    counts = serializers.DictField(child=serializers.IntegerField())
    subtotal = serializers.DecimalField(max_digits=14, decimal_places=2)
    item_count = serializers.IntegerField()


class CreateBillingSerializer(serializers.Serializer):
    variant = serializers.ChoiceField(choices=['checkout', 'discharge'], required=False)
    as_of = serializers.DateTimeField(required=False)
    notes = serializers.CharField(required=False, allow_blank=True)


class RefreshBillingSerializer(serializers.Serializer):
    as_of = serializers.DateTimeField(required=False)


class PaymentRequestSerializer(serializers.Serializer):
    """
    Body of POST /billings/{id}/payments/.

    Shape only; money rules (over-payment, cash tendered, exclusive
    discounts) are enforced by the payment service.
    """
    amount = serializers.DecimalField(max_digits=14, decimal_places=2)
    payment_method = serializers.ChoiceField(choices=PaymentMethodChoices.choices)
    amount_received = serializers.DecimalField(max_digits=14, decimal_places=2, required=False)
    discount = serializers.DecimalField(max_digits=14, decimal_places=2, required=False)
    discount_percentage = serializers.DecimalField(max_digits=5, decimal_places=2, required=False)
    insurance_coverage = serializers.DecimalField(max_digits=14, decimal_places=2, required=False)
    tax = serializers.DecimalField(max_digits=14, decimal_places=2, required=False)
    payment_reference = serializers.CharField(max_length=100, required=False, allow_blank=True)
    notes = serializers.CharField(required=False, allow_blank=True)
    expected_version = serializers.IntegerField(min_value=1, required=False)


class BillingStatisticsSerializer(serializers.Serializer):
    date = serializers.DateField()
    total_billings = serializers.IntegerField()
    unpaid_billings = serializers.IntegerField()
    partial_billings = serializers.IntegerField()
    paid_billings = serializers.IntegerField()
    total_revenue = serializers.DecimalField(max_digits=16, decimal_places=2)
    pending_revenue = serializers.DecimalField(max_digits=16, decimal_places=2)
    collected_today = serializers.DecimalField(max_digits=16, decimal_places=2)
    currency = serializers.CharField()
    visits_ready_for_billing = serializers.IntegerField()


class DischargeEligibilitySerializer(serializers.Serializer):
    allowed = serializers.BooleanField()
    reason = serializers.CharField(allow_null=True)
    billing_id = serializers.UUIDField(allow_null=True)
    remaining_amount = serializers.DecimalField(max_digits=14, decimal_places=2, allow_null=True)


class DischargeSummarySerializer(serializers.ModelSerializer):
    class Meta:
        model = DischargeSummary
        fields = [
            'id', 'visit', 'admission_diagnosis', 'discharge_diagnosis',
            'clinical_summary', 'procedures_performed', 'medications_on_discharge',
            'discharge_instructions', 'follow_up_date', 'discharged_by', 'discharged_at',
        ]
        read_only_fields = ['id', 'visit', 'discharged_by', 'discharged_at']
