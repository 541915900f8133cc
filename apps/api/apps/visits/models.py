"""
Visit models: patient (registration reference) and visit lifecycle.
"""
import uuid

from django.conf import settings
from django.core.exceptions import ValidationError
from django.db import models
from django.utils import timezone
from django.utils.translation import gettext_lazy as _

from apps.core.errors import InvalidTransition


class Patient(models.Model):
    """
    Minimal patient reference.

    Registration owns demographics; billing only needs a stable identity
    and a display name for receipts.
    """
    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)
    mr_number = models.CharField(_('Medical Record Number'), max_length=32, unique=True)
    full_name = models.CharField(_('Full Name'), max_length=255)
    created_at = models.DateTimeField(_('Created At'), auto_now_add=True)

    class Meta:
        db_table = 'patients'
        ordering = ['mr_number']
        verbose_name = _('Patient')
        verbose_name_plural = _('Patients')

    def __str__(self):
        return f"{self.mr_number} {self.full_name}"


class VisitTypeChoices(models.TextChoices):
    OUTPATIENT = 'outpatient', _('Outpatient')
    INPATIENT = 'inpatient', _('Inpatient')
    EMERGENCY = 'emergency', _('Emergency')


class VisitStatusChoices(models.TextChoices):
    """
    Visit status with allowed transitions:
    - pending -> registered | waiting | in_examination | cancelled
    - registered -> waiting | cancelled
    - waiting -> in_examination | cancelled
    - in_examination -> ready_for_billing | waiting | cancelled
    - ready_for_billing -> completed | in_examination | cancelled
    - completed, cancelled are terminal states
    """
    PENDING = 'pending', _('Pending')
    REGISTERED = 'registered', _('Registered')
    WAITING = 'waiting', _('Waiting')
    IN_EXAMINATION = 'in_examination', _('In Examination')
    READY_FOR_BILLING = 'ready_for_billing', _('Ready for Billing')
    COMPLETED = 'completed', _('Completed')
    CANCELLED = 'cancelled', _('Cancelled')


TERMINAL_STATUSES = frozenset({VisitStatusChoices.COMPLETED, VisitStatusChoices.CANCELLED})


class Visit(models.Model):
    """
    One patient encounter with the facility, from arrival to completion.

    Business Rules:
    - status only moves along get_valid_transitions()
    - completed and cancelled are terminal
    - cancellation requires a reason
    - visits are never deleted
    """
    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)
    visit_number = models.CharField(_('Visit Number'), max_length=32, unique=True)

    patient = models.ForeignKey(
        Patient,
        on_delete=models.PROTECT,
        related_name='visits',
        verbose_name=_('Patient')
    )
    visit_type = models.CharField(
        _('Visit Type'),
        max_length=20,
        choices=VisitTypeChoices.choices,
        default=VisitTypeChoices.OUTPATIENT
    )
    status = models.CharField(
        _('Status'),
        max_length=20,
        choices=VisitStatusChoices.choices,
        default=VisitStatusChoices.REGISTERED
    )
    doctor = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name='visits_as_doctor',
        verbose_name=_('Doctor')
    )

    arrival_at = models.DateTimeField(_('Arrival At'), default=timezone.now)
    end_at = models.DateTimeField(_('Ended At'), null=True, blank=True)
    cancellation_reason = models.TextField(_('Cancellation Reason'), blank=True, null=True)

    created_at = models.DateTimeField(_('Created At'), auto_now_add=True)
    updated_at = models.DateTimeField(_('Updated At'), auto_now=True)

    class Meta:
        db_table = 'visits'
        ordering = ['-arrival_at']
        verbose_name = _('Visit')
        verbose_name_plural = _('Visits')
        indexes = [
            models.Index(fields=['status'], name='idx_visit_status'),
            models.Index(fields=['visit_type', 'status'], name='idx_visit_type_status'),
            models.Index(fields=['patient', '-arrival_at'], name='idx_visit_patient'),
        ]

    def __str__(self):
        return f"{self.visit_number} ({self.get_status_display()})"

    def save(self, *args, **kwargs):
        if not kwargs.pop('skip_validation', False):
            self.full_clean()
        super().save(*args, **kwargs)

    def clean(self):
        super().clean()

        if self.status == VisitStatusChoices.CANCELLED and not self.cancellation_reason:
            raise ValidationError({
                'cancellation_reason': 'Cancellation reason is required for cancelled visits'
            })

        if self.end_at and self.arrival_at and self.end_at < self.arrival_at:
            raise ValidationError({'end_at': 'Visit cannot end before it started'})

    @property
    def is_inpatient(self):
        return self.visit_type == VisitTypeChoices.INPATIENT

    def is_terminal_status(self):
        return self.status in TERMINAL_STATUSES

    @classmethod
    def get_valid_transitions(cls):
        """
        Get valid status transitions.

        Returns dict: {current_status: [allowed_next_statuses]}
        """
        return {
            VisitStatusChoices.PENDING: [
                VisitStatusChoices.REGISTERED,
                VisitStatusChoices.WAITING,
                VisitStatusChoices.IN_EXAMINATION,
                VisitStatusChoices.CANCELLED,
            ],
            VisitStatusChoices.REGISTERED: [VisitStatusChoices.WAITING, VisitStatusChoices.CANCELLED],
            VisitStatusChoices.WAITING: [VisitStatusChoices.IN_EXAMINATION, VisitStatusChoices.CANCELLED],
            VisitStatusChoices.IN_EXAMINATION: [
                VisitStatusChoices.READY_FOR_BILLING,
                VisitStatusChoices.WAITING,
                VisitStatusChoices.CANCELLED,
            ],
            VisitStatusChoices.READY_FOR_BILLING: [
                VisitStatusChoices.COMPLETED,
                VisitStatusChoices.IN_EXAMINATION,
                VisitStatusChoices.CANCELLED,
            ],
            VisitStatusChoices.COMPLETED: [],  # Terminal
            VisitStatusChoices.CANCELLED: [],  # Terminal
        }

    def can_transition_to(self, new_status):
        return new_status in self.get_valid_transitions().get(self.status, [])

    def transition_to(self, new_status, reason=None):
        """
        Move the visit to ``new_status`` in memory and persist it.

        Completion side effects (``end_at``) are applied here; the settlement
        check belongs to the discharge gate, which callers must consult first.

        Raises:
            InvalidTransition: if the move is not allowed or a cancellation
                has no reason.
        """
        if not self.can_transition_to(new_status):
            valid = self.get_valid_transitions().get(self.status, [])
            raise InvalidTransition(
                f'Invalid transition from {self.status} to {new_status}. '
                f'Valid transitions: {", ".join(valid) if valid else "none (terminal state)"}',
                from_status=self.status,
                to_status=new_status,
            )

        if new_status == VisitStatusChoices.CANCELLED:
            if not reason:
                raise InvalidTransition(
                    'Cancellation reason is required',
                    from_status=self.status,
                    to_status=new_status,
                )
            self.cancellation_reason = reason

        if new_status in TERMINAL_STATUSES and self.end_at is None:
            self.end_at = timezone.now()

        self.status = new_status
        self.save()

        return self


def initial_status_for(visit_type, quick=False):
    """
    Starting status for a freshly registered visit.

    Emergency quick registration starts at ``pending`` so triage can proceed
    before registration details are complete.
    """
    if quick and visit_type == VisitTypeChoices.EMERGENCY:
        return VisitStatusChoices.PENDING
    return VisitStatusChoices.REGISTERED
