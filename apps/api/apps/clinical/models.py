"""
Clinical models: medical record and its entries, plus the billable clinical
facts (prescriptions, procedures, materials, bed stays, lab orders).
"""
import uuid
from decimal import Decimal

from django.conf import settings
from django.core.validators import MinValueValidator
from django.db import models
from django.utils import timezone
from django.utils.translation import gettext_lazy as _

from apps.core.errors import RecordLocked


# ============================================================================
# Master data
# ============================================================================

class Drug(models.Model):
    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)
    code = models.CharField(_('Code'), max_length=50, unique=True)
    name = models.CharField(_('Name'), max_length=255)
    unit = models.CharField(_('Unit'), max_length=30, default='tablet')
    price = models.DecimalField(
        _('Price'),
        max_digits=12,
        decimal_places=2,
        validators=[MinValueValidator(Decimal('0.00'))]
    )
    is_active = models.BooleanField(_('Active'), default=True)

    class Meta:
        db_table = 'drugs'
        ordering = ['name']
        verbose_name = _('Drug')
        verbose_name_plural = _('Drugs')

    def __str__(self):
        return f"{self.code} {self.name}"


class RoomTypeChoices(models.TextChoices):
    VIP = 'vip', _('VIP')
    CLASS_1 = 'class_1', _('Class 1')
    CLASS_2 = 'class_2', _('Class 2')
    CLASS_3 = 'class_3', _('Class 3')
    ICU = 'icu', _('ICU')
    ISOLATION = 'isolation', _('Isolation')


class Room(models.Model):
    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)
    room_number = models.CharField(_('Room Number'), max_length=20, unique=True)
    room_type = models.CharField(
        _('Room Type'),
        max_length=20,
        choices=RoomTypeChoices.choices,
        default=RoomTypeChoices.CLASS_3
    )
    daily_rate = models.DecimalField(
        _('Daily Rate'),
        max_digits=12,
        decimal_places=2,
        validators=[MinValueValidator(Decimal('0.00'))]
    )
    is_active = models.BooleanField(_('Active'), default=True)

    class Meta:
        db_table = 'rooms'
        ordering = ['room_number']
        verbose_name = _('Room')
        verbose_name_plural = _('Rooms')

    def __str__(self):
        return f"{self.room_number} ({self.get_room_type_display()})"


# ============================================================================
# Medical record
# ============================================================================

class MedicalRecord(models.Model):
    """
    Clinical documentation of a visit (SOAP).

    Business Rules:
    - One record per visit
    - Once locked, diagnoses/procedures/prescriptions cannot be added or removed
    - Only lock_medical_record()/unlock_medical_record() flip is_locked
    """
    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)
    visit = models.OneToOneField(
        'visits.Visit',
        on_delete=models.PROTECT,
        related_name='medical_record',
        verbose_name=_('Visit')
    )
    doctor = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.PROTECT,
        related_name='medical_records',
        verbose_name=_('Doctor')
    )

    subjective = models.TextField(_('Subjective'), blank=True)
    objective = models.TextField(_('Objective'), blank=True)
    assessment = models.TextField(_('Assessment'), blank=True)
    plan = models.TextField(_('Plan'), blank=True)

    is_draft = models.BooleanField(_('Draft'), default=True)
    is_locked = models.BooleanField(_('Locked'), default=False)
    locked_at = models.DateTimeField(_('Locked At'), null=True, blank=True)
    locked_by = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name='locked_medical_records',
        verbose_name=_('Locked By')
    )

    created_at = models.DateTimeField(_('Created At'), auto_now_add=True)
    updated_at = models.DateTimeField(_('Updated At'), auto_now=True)

    class Meta:
        db_table = 'medical_records'
        verbose_name = _('Medical Record')
        verbose_name_plural = _('Medical Records')
        indexes = [
            models.Index(fields=['is_locked'], name='idx_medrec_locked'),
        ]

    def __str__(self):
        state = 'locked' if self.is_locked else 'open'
        return f"Medical record {self.visit_id} ({state})"


class RecordEntry(models.Model):
    """
    Base for rows that belong to a medical record.

    Inserts, updates and deletes are refused while the parent record is
    locked, except updates limited (via update_fields) to
    ``fields_mutable_when_locked``. The lock flag is read from the database,
    not from a possibly stale in-memory parent.
    """
    fields_mutable_when_locked = frozenset()

    class Meta:
        abstract = True

    def _assert_record_open(self):
        if MedicalRecord.objects.filter(pk=self.medical_record_id, is_locked=True).exists():
            raise RecordLocked(
                f'Cannot modify {self._meta.verbose_name}: medical record is locked',
                medical_record_id=self.medical_record_id,
            )

    def save(self, *args, **kwargs):
        update_fields = kwargs.get('update_fields')
        limited_update = (
            not self._state.adding
            and update_fields
            and set(update_fields) <= self.fields_mutable_when_locked
        )
        if not limited_update:
            self._assert_record_open()
        if not kwargs.pop('skip_validation', False):
            self.full_clean()
        super().save(*args, **kwargs)

    def delete(self, *args, **kwargs):
        self._assert_record_open()
        return super().delete(*args, **kwargs)


class DiagnosisTypeChoices(models.TextChoices):
    PRIMARY = 'primary', _('Primary')
    SECONDARY = 'secondary', _('Secondary')


class Diagnosis(RecordEntry):
    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)
    medical_record = models.ForeignKey(
        MedicalRecord,
        on_delete=models.CASCADE,
        related_name='diagnoses',
        verbose_name=_('Medical Record')
    )
    icd10_code = models.CharField(_('ICD-10 Code'), max_length=10)
    diagnosis_name = models.CharField(_('Diagnosis'), max_length=255)
    diagnosis_type = models.CharField(
        _('Type'),
        max_length=20,
        choices=DiagnosisTypeChoices.choices,
        default=DiagnosisTypeChoices.PRIMARY
    )
    created_at = models.DateTimeField(_('Created At'), auto_now_add=True)

    class Meta:
        db_table = 'diagnoses'
        ordering = ['created_at']
        verbose_name = _('Diagnosis')
        verbose_name_plural = _('Diagnoses')

    def __str__(self):
        return f"{self.icd10_code} {self.diagnosis_name}"


class Procedure(RecordEntry):
    """
    Procedure performed during the visit.

    Billed at the linked service's flat price; procedures without a service
    are documentation only.
    """
    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)
    medical_record = models.ForeignKey(
        MedicalRecord,
        on_delete=models.CASCADE,
        related_name='procedures',
        verbose_name=_('Medical Record')
    )
    service = models.ForeignKey(
        'billing.Service',
        on_delete=models.PROTECT,
        null=True,
        blank=True,
        related_name='procedures',
        verbose_name=_('Service')
    )
    procedure_name = models.CharField(_('Procedure'), max_length=255)
    icd9_code = models.CharField(_('ICD-9-CM Code'), max_length=10, blank=True)
    performed_at = models.DateTimeField(_('Performed At'), default=timezone.now)
    created_at = models.DateTimeField(_('Created At'), auto_now_add=True)

    class Meta:
        db_table = 'procedures'
        ordering = ['performed_at']
        verbose_name = _('Procedure')
        verbose_name_plural = _('Procedures')

    def __str__(self):
        return self.procedure_name


class Prescription(RecordEntry):
    """
    Drug prescribed during the visit.

    Only fulfilled prescriptions are billed; the dispensed quantity wins
    over the prescribed one when the pharmacy recorded it.
    """
    # Pharmacy dispenses after the doctor locks the record
    fields_mutable_when_locked = frozenset({'dispensed_quantity', 'is_fulfilled', 'fulfilled_at'})

    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)
    medical_record = models.ForeignKey(
        MedicalRecord,
        on_delete=models.CASCADE,
        related_name='prescriptions',
        verbose_name=_('Medical Record')
    )
    drug = models.ForeignKey(
        Drug,
        on_delete=models.PROTECT,
        related_name='prescriptions',
        verbose_name=_('Drug')
    )
    quantity = models.PositiveIntegerField(_('Quantity'), validators=[MinValueValidator(1)])
    dispensed_quantity = models.PositiveIntegerField(_('Dispensed Quantity'), null=True, blank=True)
    dosage = models.CharField(_('Dosage'), max_length=100, blank=True)
    frequency = models.CharField(_('Frequency'), max_length=100, blank=True)
    duration = models.CharField(_('Duration'), max_length=100, blank=True)
    is_fulfilled = models.BooleanField(_('Fulfilled'), default=False)
    fulfilled_at = models.DateTimeField(_('Fulfilled At'), null=True, blank=True)
    created_at = models.DateTimeField(_('Created At'), auto_now_add=True)

    class Meta:
        db_table = 'prescriptions'
        ordering = ['created_at']
        verbose_name = _('Prescription')
        verbose_name_plural = _('Prescriptions')
        constraints = [
            models.CheckConstraint(
                condition=models.Q(quantity__gt=0),
                name='prescription_quantity_positive'
            ),
        ]

    def __str__(self):
        return f"{self.drug.name} x {self.quantity}"

    @property
    def billable_quantity(self):
        return self.dispensed_quantity or self.quantity


# ============================================================================
# Visit-level billable facts
# ============================================================================

class MaterialUsage(models.Model):
    """Consumable used on the patient (recorded by nursing)."""
    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)
    visit = models.ForeignKey(
        'visits.Visit',
        on_delete=models.PROTECT,
        related_name='material_usages',
        verbose_name=_('Visit')
    )
    material_name = models.CharField(_('Material'), max_length=255)
    quantity = models.PositiveIntegerField(_('Quantity'), validators=[MinValueValidator(1)])
    unit = models.CharField(_('Unit'), max_length=30, blank=True)
    unit_price = models.DecimalField(
        _('Unit Price'),
        max_digits=12,
        decimal_places=2,
        validators=[MinValueValidator(Decimal('0.00'))]
    )
    used_at = models.DateTimeField(_('Used At'), default=timezone.now)
    created_at = models.DateTimeField(_('Created At'), auto_now_add=True)

    class Meta:
        db_table = 'material_usages'
        ordering = ['used_at']
        verbose_name = _('Material Usage')
        verbose_name_plural = _('Material Usages')

    def __str__(self):
        return f"{self.material_name} x {self.quantity}"


class BedAssignment(models.Model):
    """
    Inpatient bed stay. Open while ``released_at`` is null.
    """
    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)
    visit = models.ForeignKey(
        'visits.Visit',
        on_delete=models.PROTECT,
        related_name='bed_assignments',
        verbose_name=_('Visit')
    )
    room = models.ForeignKey(
        Room,
        on_delete=models.PROTECT,
        related_name='bed_assignments',
        verbose_name=_('Room')
    )
    bed_number = models.CharField(_('Bed Number'), max_length=10)
    assigned_at = models.DateTimeField(_('Assigned At'), default=timezone.now)
    released_at = models.DateTimeField(_('Released At'), null=True, blank=True)

    class Meta:
        db_table = 'bed_assignments'
        ordering = ['assigned_at']
        verbose_name = _('Bed Assignment')
        verbose_name_plural = _('Bed Assignments')
        indexes = [
            models.Index(fields=['visit', 'released_at'], name='idx_bed_visit_open'),
        ]

    def __str__(self):
        return f"{self.room.room_number}/{self.bed_number}"


class LabOrderStatusChoices(models.TextChoices):
    ORDERED = 'ordered', _('Ordered')
    IN_PROGRESS = 'in_progress', _('In Progress')
    COMPLETED = 'completed', _('Completed')
    VERIFIED = 'verified', _('Verified')
    CANCELLED = 'cancelled', _('Cancelled')


class LabOrder(models.Model):
    """Laboratory test order. Billed once its result is verified."""
    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)
    visit = models.ForeignKey(
        'visits.Visit',
        on_delete=models.PROTECT,
        related_name='lab_orders',
        verbose_name=_('Visit')
    )
    order_number = models.CharField(_('Order Number'), max_length=32, unique=True)
    test_code = models.CharField(_('Test Code'), max_length=30, blank=True)
    test_name = models.CharField(_('Test'), max_length=255)
    price = models.DecimalField(
        _('Price'),
        max_digits=12,
        decimal_places=2,
        validators=[MinValueValidator(Decimal('0.00'))]
    )
    status = models.CharField(
        _('Status'),
        max_length=20,
        choices=LabOrderStatusChoices.choices,
        default=LabOrderStatusChoices.ORDERED
    )
    verified_at = models.DateTimeField(_('Verified At'), null=True, blank=True)
    created_at = models.DateTimeField(_('Created At'), auto_now_add=True)

    class Meta:
        db_table = 'lab_orders'
        ordering = ['created_at']
        verbose_name = _('Lab Order')
        verbose_name_plural = _('Lab Orders')

    def __str__(self):
        return f"{self.order_number} {self.test_name}"
