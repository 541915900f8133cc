"""
Medical record lock service.

Locking a record freezes its clinical entries and hands the visit over to
billing (in_examination -> ready_for_billing). Unlocking is an admin
correction that reopens the examination; payments are never touched.
"""
from django.conf import settings
from django.db import transaction
from django.utils import timezone
from django.utils.module_loading import import_string

from apps.authz.models import RoleChoices
from apps.clinical.models import Diagnosis, MedicalRecord, Prescription, Procedure
from apps.core.errors import DomainError, NotFound, PermissionDenied, PreconditionFailed, RecordLocked
from apps.core.observability import get_sanitized_logger, metrics
from apps.core.observability.events import log_record_lock_changed
from apps.core.observability.tracing import trace_span
from apps.visits.models import VisitStatusChoices
from apps.visits.services import apply_transition, get_visit_for_update

logger = get_sanitized_logger(__name__)

DEFAULT_COMPLETENESS_CHECK = 'apps.clinical.services.record_has_diagnosis'


def record_has_diagnosis(record):
    """Default completeness rule: at least one diagnosis is documented."""
    return record.diagnoses.exists()


def is_record_complete(record):
    check = import_string(
        getattr(settings, 'CLINICAL_RECORD_COMPLETENESS_CHECK', DEFAULT_COMPLETENESS_CHECK)
    )
    return bool(check(record))


def _is_admin(user):
    return user.is_superuser or user.has_role(RoleChoices.ADMIN)


def _lock_record_and_visit(record_id):
    """
    Lock visit then record (same order as checkout and discharge).

    Must be called inside a transaction.
    """
    visit_id = MedicalRecord.objects.filter(id=record_id).values_list('visit_id', flat=True).first()
    if visit_id is None:
        raise NotFound('Medical record not found', medical_record_id=record_id)
    visit = get_visit_for_update(visit_id)
    record = MedicalRecord.objects.select_for_update().get(id=record_id)
    return record, visit


def lock_medical_record(record_id, actor):
    """
    Lock a medical record and move its visit to ready_for_billing.

    BUSINESS RULES:
    - Already locked: RecordLocked
    - Only the authoring doctor or an admin may lock: PermissionDenied
    - Record must pass the completeness check: PreconditionFailed
    - Inpatient visits need their discharge billing first: PreconditionFailed
    - Visit must be in_examination: InvalidTransition

    Returns:
        MedicalRecord instance
    """
    with trace_span('lock_medical_record', attributes={'medical_record_id': str(record_id)}):
        try:
            with transaction.atomic():
                record, visit = _lock_record_and_visit(record_id)

                if record.is_locked:
                    raise RecordLocked('Medical record is already locked', medical_record_id=record.id)

                if actor.id != record.doctor_id and not _is_admin(actor):
                    raise PermissionDenied(
                        'Only the authoring doctor or an admin can lock this record'
                    )

                if not is_record_complete(record):
                    raise PreconditionFailed(
                        'Medical record is incomplete: at least one diagnosis is required',
                        medical_record_id=record.id,
                    )

                if visit.is_inpatient and not hasattr(visit, 'billing'):
                    raise PreconditionFailed(
                        'Create the discharge billing before locking an inpatient record',
                        visit_id=visit.id,
                    )

                apply_transition(visit, VisitStatusChoices.READY_FOR_BILLING, actor)

                record.is_locked = True
                record.is_draft = False
                record.locked_at = timezone.now()
                record.locked_by = actor
                record.save()
        except DomainError as e:
            metrics.medical_record_lock_total.labels(action='lock', result=str(e.kind)).inc()
            raise

    metrics.medical_record_lock_total.labels(action='lock', result='success').inc()
    log_record_lock_changed(record, 'lock', actor)
    return record


def unlock_medical_record(record_id, actor):
    """
    Reopen a locked record (admin only) and move the visit back to
    in_examination. Billing and payments are left as they are.

    Raises:
        NotFound, PermissionDenied, PreconditionFailed (not locked),
        InvalidTransition (visit already completed or cancelled)
    """
    with trace_span('unlock_medical_record', attributes={'medical_record_id': str(record_id)}):
        try:
            with transaction.atomic():
                record, visit = _lock_record_and_visit(record_id)

                if not _is_admin(actor):
                    raise PermissionDenied('Only an admin can unlock a medical record')

                if not record.is_locked:
                    raise PreconditionFailed('Medical record is not locked', medical_record_id=record.id)

                apply_transition(visit, VisitStatusChoices.IN_EXAMINATION, actor)

                record.is_locked = False
                record.locked_at = None
                record.locked_by = None
                record.save()
        except DomainError as e:
            metrics.medical_record_lock_total.labels(action='unlock', result=str(e.kind)).inc()
            raise

    metrics.medical_record_lock_total.labels(action='unlock', result='success').inc()
    log_record_lock_changed(record, 'unlock', actor)
    return record


# ============================================================================
# Clinical entries
# ============================================================================

def _get_record(record_id):
    try:
        return MedicalRecord.objects.get(id=record_id)
    except MedicalRecord.DoesNotExist:
        raise NotFound('Medical record not found', medical_record_id=record_id)


def add_diagnosis(record_id, **fields):
    diagnosis = Diagnosis(medical_record=_get_record(record_id), **fields)
    diagnosis.save()
    return diagnosis


def add_procedure(record_id, **fields):
    procedure = Procedure(medical_record=_get_record(record_id), **fields)
    procedure.save()
    return procedure


def add_prescription(record_id, **fields):
    prescription = Prescription(medical_record=_get_record(record_id), **fields)
    prescription.save()
    return prescription


def remove_clinical_entry(entry):
    """Delete a diagnosis, procedure or prescription (refused while locked)."""
    entry.delete()


def fulfill_prescription(prescription_id, dispensed_quantity=None):
    """
    Mark a prescription dispensed by the pharmacy.

    Allowed on locked records; the drug becomes billable on the next
    aggregation or refresh.
    """
    try:
        prescription = Prescription.objects.get(id=prescription_id)
    except Prescription.DoesNotExist:
        raise NotFound('Prescription not found', prescription_id=prescription_id)

    if dispensed_quantity is not None and dispensed_quantity < 1:
        raise PreconditionFailed('Dispensed quantity must be at least 1', prescription_id=prescription.id)

    prescription.is_fulfilled = True
    prescription.dispensed_quantity = dispensed_quantity
    prescription.fulfilled_at = timezone.now()
    prescription.save(update_fields=['dispensed_quantity', 'is_fulfilled', 'fulfilled_at'])
    logger.info(
        'prescription_fulfilled',
        extra={
            'prescription_id': str(prescription.id),
            'medical_record_id': str(prescription.medical_record_id),
            'billable_quantity': prescription.billable_quantity,
        }
    )
    return prescription
