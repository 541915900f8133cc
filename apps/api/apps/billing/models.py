"""
Billing models: service master, visit billing, items, payments and
discharge summaries.

All money columns are Decimal with 2 places. Derived billing fields
(subtotal, totals, paid and remaining amounts, payment status) are written
only through apps.billing.engine.
"""
import uuid
from decimal import Decimal

from django.conf import settings
from django.core.exceptions import ValidationError
from django.core.validators import MaxValueValidator, MinValueValidator
from django.db import models
from django.db.models import Sum
from django.utils import timezone
from django.utils.translation import gettext_lazy as _

ZERO = Decimal('0.00')


class ServiceTypeChoices(models.TextChoices):
    CONSULTATION = 'consultation', _('Consultation')
    ADMINISTRATION = 'administration', _('Administration')
    PROCEDURE = 'procedure', _('Procedure')
    LABORATORY = 'laboratory', _('Laboratory')
    ROOM = 'room', _('Room')
    OTHER = 'other', _('Other')


class Service(models.Model):
    """Priced service master (fees, procedures)."""
    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)
    code = models.CharField(_('Code'), max_length=50, unique=True)
    name = models.CharField(_('Name'), max_length=255)
    service_type = models.CharField(
        _('Service Type'),
        max_length=20,
        choices=ServiceTypeChoices.choices,
        default=ServiceTypeChoices.OTHER
    )
    price = models.DecimalField(
        _('Price'),
        max_digits=12,
        decimal_places=2,
        validators=[MinValueValidator(ZERO)]
    )
    is_active = models.BooleanField(_('Active'), default=True)
    created_at = models.DateTimeField(_('Created At'), auto_now_add=True)

    class Meta:
        db_table = 'services'
        ordering = ['code']
        verbose_name = _('Service')
        verbose_name_plural = _('Services')
        indexes = [
            models.Index(fields=['service_type', 'is_active'], name='idx_service_type_active'),
        ]

    def __str__(self):
        return f"{self.code} {self.name}"


class PaymentStatusChoices(models.TextChoices):
    UNPAID = 'unpaid', _('Unpaid')
    PARTIAL = 'partial', _('Partially Paid')
    PAID = 'paid', _('Paid')


class Billing(models.Model):
    """
    Itemized bill of one visit.

    Business Rules:
    - Exactly one billing per visit (DB unique)
    - subtotal == sum(items.total_price)
    - total_amount = max(0, subtotal - discount - insurance_coverage + tax)
    - patient_payable == total_amount
    - paid_amount == sum(payments.amount)
    - remaining_amount = max(0, patient_payable - paid_amount)
    - version increments on every write (optimistic concurrency token)
    """
    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)
    visit = models.OneToOneField(
        'visits.Visit',
        on_delete=models.PROTECT,
        related_name='billing',
        verbose_name=_('Visit')
    )

    subtotal = models.DecimalField(_('Subtotal'), max_digits=14, decimal_places=2, default=ZERO)
    discount = models.DecimalField(_('Discount'), max_digits=14, decimal_places=2, default=ZERO)
    discount_percentage = models.DecimalField(
        _('Discount Percentage'),
        max_digits=5,
        decimal_places=2,
        null=True,
        blank=True,
        validators=[MinValueValidator(ZERO), MaxValueValidator(Decimal('100'))],
        help_text=_('When set, discount was derived from this percentage of the subtotal')
    )
    tax = models.DecimalField(_('Tax'), max_digits=14, decimal_places=2, default=ZERO)
    insurance_coverage = models.DecimalField(
        _('Insurance Coverage'), max_digits=14, decimal_places=2, default=ZERO
    )
    total_amount = models.DecimalField(_('Total'), max_digits=14, decimal_places=2, default=ZERO)
    patient_payable = models.DecimalField(
        _('Patient Payable'), max_digits=14, decimal_places=2, default=ZERO
    )
    paid_amount = models.DecimalField(_('Paid'), max_digits=14, decimal_places=2, default=ZERO)
    remaining_amount = models.DecimalField(
        _('Remaining'), max_digits=14, decimal_places=2, default=ZERO
    )
    payment_status = models.CharField(
        _('Payment Status'),
        max_length=10,
        choices=PaymentStatusChoices.choices,
        default=PaymentStatusChoices.UNPAID
    )

    notes = models.TextField(_('Notes'), blank=True, null=True)
    created_by = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name='created_billings',
        verbose_name=_('Created By')
    )
    processed_by = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name='processed_billings',
        verbose_name=_('Processed By')
    )
    processed_at = models.DateTimeField(_('Processed At'), null=True, blank=True)
    version = models.PositiveIntegerField(_('Version'), default=1)

    created_at = models.DateTimeField(_('Created At'), auto_now_add=True)
    updated_at = models.DateTimeField(_('Updated At'), auto_now=True)

    class Meta:
        db_table = 'billings'
        ordering = ['-created_at']
        verbose_name = _('Billing')
        verbose_name_plural = _('Billings')
        indexes = [
            models.Index(fields=['payment_status'], name='idx_billing_status'),
            models.Index(fields=['-created_at'], name='idx_billing_created'),
        ]
        constraints = [
            models.CheckConstraint(
                condition=models.Q(subtotal__gte=0),
                name='billing_subtotal_non_negative'
            ),
            models.CheckConstraint(
                condition=models.Q(discount__gte=0),
                name='billing_discount_non_negative'
            ),
            models.CheckConstraint(
                condition=models.Q(tax__gte=0) & models.Q(insurance_coverage__gte=0),
                name='billing_adjustments_non_negative'
            ),
            models.CheckConstraint(
                condition=models.Q(total_amount__gte=0) & models.Q(remaining_amount__gte=0),
                name='billing_totals_non_negative'
            ),
        ]

    def __str__(self):
        return f"Billing {self.visit_id} - {self.get_payment_status_display()}"

    def save(self, *args, **kwargs):
        if not kwargs.pop('skip_validation', False):
            self.full_clean()
        super().save(*args, **kwargs)

    def items_subtotal(self):
        return self.items.aggregate(total=Sum('total_price'))['total'] or ZERO

    def payments_total(self):
        return self.payments.aggregate(total=Sum('amount'))['total'] or ZERO

    @property
    def is_settled(self):
        return self.remaining_amount == ZERO


class BillingItemTypeChoices(models.TextChoices):
    SERVICE = 'service', _('Service')
    DRUG = 'drug', _('Drug')
    MATERIAL = 'material', _('Material')
    ROOM = 'room', _('Room')
    LABORATORY = 'laboratory', _('Laboratory')


class BillingItem(models.Model):
    """
    One charge line.

    ``source_key`` identifies the clinical fact the line was built from
    (e.g. ``drug:<prescription id>``) so re-aggregation never duplicates a
    charge.
    """
    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)
    billing = models.ForeignKey(
        Billing,
        on_delete=models.CASCADE,
        related_name='items',
        verbose_name=_('Billing')
    )
    item_type = models.CharField(
        _('Item Type'),
        max_length=20,
        choices=BillingItemTypeChoices.choices
    )
    source_key = models.CharField(_('Source Key'), max_length=100)
    item_name = models.CharField(_('Item'), max_length=255)
    item_code = models.CharField(_('Item Code'), max_length=50, blank=True)
    quantity = models.PositiveIntegerField(_('Quantity'))
    unit_price = models.DecimalField(_('Unit Price'), max_digits=12, decimal_places=2)
    discount = models.DecimalField(_('Discount'), max_digits=12, decimal_places=2, default=ZERO)
    total_price = models.DecimalField(_('Total Price'), max_digits=14, decimal_places=2)
    description = models.TextField(_('Description'), blank=True, null=True)
    created_at = models.DateTimeField(_('Created At'), auto_now_add=True)

    class Meta:
        db_table = 'billing_items'
        ordering = ['created_at', 'item_type']
        verbose_name = _('Billing Item')
        verbose_name_plural = _('Billing Items')
        constraints = [
            models.UniqueConstraint(
                fields=['billing', 'source_key'],
                name='uniq_billing_item_source',
                violation_error_message='This charge is already on the billing'
            ),
            models.CheckConstraint(
                condition=models.Q(quantity__gt=0),
                name='billing_item_quantity_positive'
            ),
            models.CheckConstraint(
                condition=models.Q(unit_price__gte=0) & models.Q(discount__gte=0),
                name='billing_item_prices_non_negative'
            ),
            models.CheckConstraint(
                condition=models.Q(total_price__gte=0),
                name='billing_item_total_non_negative'
            ),
        ]
        indexes = [
            models.Index(fields=['billing', 'item_type'], name='idx_billing_item_type'),
        ]

    def __str__(self):
        return f"{self.item_name} x {self.quantity} = {self.total_price}"


class PaymentMethodChoices(models.TextChoices):
    CASH = 'cash', _('Cash')
    TRANSFER = 'transfer', _('Bank Transfer')
    CARD = 'card', _('Card')
    INSURANCE = 'insurance', _('Insurance')


class Payment(models.Model):
    """
    Append-only payment record.

    Rows are never updated or deleted; corrections are new compensating
    entries.
    """
    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)
    billing = models.ForeignKey(
        Billing,
        on_delete=models.PROTECT,
        related_name='payments',
        verbose_name=_('Billing')
    )
    receipt_number = models.CharField(_('Receipt Number'), max_length=40, unique=True)
    amount = models.DecimalField(
        _('Amount'),
        max_digits=14,
        decimal_places=2,
        validators=[MinValueValidator(Decimal('0.01'))]
    )
    payment_method = models.CharField(
        _('Payment Method'),
        max_length=20,
        choices=PaymentMethodChoices.choices
    )
    payment_reference = models.CharField(_('Reference'), max_length=100, blank=True, null=True)
    amount_received = models.DecimalField(
        _('Amount Received'), max_digits=14, decimal_places=2, null=True, blank=True
    )
    change_given = models.DecimalField(
        _('Change Given'), max_digits=14, decimal_places=2, null=True, blank=True
    )
    notes = models.TextField(_('Notes'), blank=True, null=True)
    received_by = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.PROTECT,
        related_name='received_payments',
        verbose_name=_('Received By')
    )
    received_at = models.DateTimeField(_('Received At'), default=timezone.now)

    class Meta:
        db_table = 'payments'
        ordering = ['received_at']
        verbose_name = _('Payment')
        verbose_name_plural = _('Payments')
        constraints = [
            models.CheckConstraint(
                condition=models.Q(amount__gt=0),
                name='payment_amount_positive'
            ),
        ]
        indexes = [
            models.Index(fields=['billing', 'received_at'], name='idx_payment_billing'),
            models.Index(fields=['received_at'], name='idx_payment_received'),
        ]

    def __str__(self):
        return f"{self.receipt_number} {self.amount}"

    def save(self, *args, **kwargs):
        if not self._state.adding:
            raise ValidationError('Payments are append-only and cannot be modified')
        if not kwargs.pop('skip_validation', False):
            self.full_clean()
        super().save(*args, **kwargs)

    def delete(self, *args, **kwargs):
        raise ValidationError('Payments are append-only and cannot be deleted')


class DischargeSummary(models.Model):
    """
    Inpatient discharge summary. Created once, after the discharge gate
    allowed it; never modified afterwards.
    """
    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)
    visit = models.OneToOneField(
        'visits.Visit',
        on_delete=models.PROTECT,
        related_name='discharge_summary',
        verbose_name=_('Visit')
    )
    admission_diagnosis = models.TextField(_('Admission Diagnosis'))
    discharge_diagnosis = models.TextField(_('Discharge Diagnosis'))
    clinical_summary = models.TextField(_('Clinical Summary'))
    procedures_performed = models.TextField(_('Procedures Performed'), blank=True)
    medications_on_discharge = models.TextField(_('Medications on Discharge'), blank=True)
    discharge_instructions = models.TextField(_('Discharge Instructions'))
    follow_up_date = models.DateField(_('Follow-up Date'), null=True, blank=True)
    discharged_by = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.PROTECT,
        related_name='discharge_summaries',
        verbose_name=_('Discharged By')
    )
    discharged_at = models.DateTimeField(_('Discharged At'), default=timezone.now)

    class Meta:
        db_table = 'discharge_summaries'
        ordering = ['-discharged_at']
        verbose_name = _('Discharge Summary')
        verbose_name_plural = _('Discharge Summaries')

    def __str__(self):
        return f"Discharge summary {self.visit_id}"

    def save(self, *args, **kwargs):
        if not self._state.adding:
            raise ValidationError('Discharge summaries cannot be modified')
        if not kwargs.pop('skip_validation', False):
            self.full_clean()
        super().save(*args, **kwargs)
