"""
Discharge gate.

Decides whether a visit may leave the facility (inpatient discharge or
outpatient checkout) and performs the inpatient discharge.

Gate reasons, checked in order (stable strings, safe to branch on):
- billing not created
- unsettled balance
- medical record not locked
- visit not ready for discharge
"""
from django.db import IntegrityError, transaction
from django.utils import timezone

from apps.billing.models import Billing, DischargeSummary
from apps.clinical.models import BedAssignment, MedicalRecord
from apps.core.errors import AlreadyExists, DomainError, InvalidVisitType, NotFound, PreconditionFailed
from apps.core.observability import metrics
from apps.core.observability.events import log_discharge_gate_evaluated, log_domain_event
from apps.core.observability.tracing import trace_span
from apps.visits.models import Visit, VisitStatusChoices
from apps.visits.services import apply_transition, get_visit_for_update

REASON_BILLING_NOT_CREATED = 'billing not created'
REASON_UNSETTLED_BALANCE = 'unsettled balance'
REASON_RECORD_NOT_LOCKED = 'medical record not locked'
REASON_VISIT_NOT_READY = 'visit not ready for discharge'

SUMMARY_FIELDS = (
    'admission_diagnosis',
    'discharge_diagnosis',
    'clinical_summary',
    'procedures_performed',
    'medications_on_discharge',
    'discharge_instructions',
    'follow_up_date',
)


def _decide(visit, billing, record):
    if billing is None:
        reason = REASON_BILLING_NOT_CREATED
    elif billing.remaining_amount > 0:
        reason = REASON_UNSETTLED_BALANCE
    elif record is None or not record.is_locked:
        reason = REASON_RECORD_NOT_LOCKED
    elif visit.status != VisitStatusChoices.READY_FOR_BILLING:
        reason = REASON_VISIT_NOT_READY
    else:
        reason = None

    decision = {
        'allowed': reason is None,
        'reason': reason,
        'billing_id': billing.id if billing is not None else None,
        'remaining_amount': billing.remaining_amount if billing is not None else None,
    }

    metrics.discharge_gate_checks_total.labels(
        allowed=str(decision['allowed']).lower(),
        reason=reason or 'none',
    ).inc()
    log_discharge_gate_evaluated(visit.id, decision['allowed'], reason)
    return decision


def can_discharge(visit_id):
    """
    Evaluate the discharge gate without locking anything.

    Returns:
        dict: {'allowed': bool, 'reason': str | None, 'billing_id', 'remaining_amount'}

    Raises:
        NotFound: visit does not exist
    """
    try:
        visit = Visit.objects.get(id=visit_id)
    except Visit.DoesNotExist:
        raise NotFound('Visit not found', visit_id=visit_id)

    billing = Billing.objects.filter(visit=visit).first()
    record = MedicalRecord.objects.filter(visit=visit).first()
    return _decide(visit, billing, record)


def evaluate_gate_locked(visit):
    """
    Evaluate the gate for a visit whose row the caller already locked.

    Billing and record rows are locked too, so a payment or an unlock cannot
    slip in between the check and the caller's write.
    """
    billing = Billing.objects.select_for_update().filter(visit_id=visit.id).first()
    record = MedicalRecord.objects.select_for_update().filter(visit_id=visit.id).first()
    return _decide(visit, billing, record)


def create_discharge_summary(visit_id, data, actor):
    """
    Discharge an inpatient.

    BUSINESS RULES:
    - Inpatient visits only
    - One summary per visit
    - Gate must allow (billing settled, record locked, visit ready)
    - Visit moves to completed, end time recorded, open bed stays released

    TRANSACTION: visit, billing and record rows locked; check and write
    commit together.

    Args:
        visit_id: Visit to discharge
        data: dict of summary fields (admission_diagnosis, discharge_diagnosis,
            clinical_summary, discharge_instructions, ...)
        actor: Discharging user

    Returns:
        DischargeSummary instance

    Raises:
        NotFound, InvalidVisitType, AlreadyExists, PreconditionFailed
    """
    with trace_span('create_discharge_summary', attributes={'visit_id': str(visit_id)}):
        try:
            with transaction.atomic():
                visit = get_visit_for_update(visit_id)

                if not visit.is_inpatient:
                    raise InvalidVisitType(
                        'Discharge summaries are only for inpatient visits',
                        visit_type=visit.visit_type,
                    )

                if DischargeSummary.objects.filter(visit=visit).exists():
                    raise AlreadyExists('Discharge summary already exists for this visit', visit_id=visit.id)

                decision = evaluate_gate_locked(visit)
                if not decision['allowed']:
                    raise PreconditionFailed(
                        f"Cannot discharge: {decision['reason']}",
                        reason=decision['reason'],
                    )

                now = timezone.now()
                summary = DischargeSummary(
                    visit=visit,
                    discharged_by=actor,
                    discharged_at=now,
                    **{field: data[field] for field in SUMMARY_FIELDS if field in data}
                )
                summary.save()

                apply_transition(visit, VisitStatusChoices.COMPLETED, actor)

                released = BedAssignment.objects.filter(
                    visit=visit, released_at__isnull=True
                ).update(released_at=now)
        except IntegrityError:
            metrics.discharge_summaries_total.labels(result='duplicate').inc()
            raise AlreadyExists('Discharge summary already exists for this visit', visit_id=visit_id)
        except DomainError as e:
            metrics.discharge_summaries_total.labels(result=str(e.kind)).inc()
            raise

    metrics.discharge_summaries_total.labels(result='success').inc()
    log_domain_event(
        'patient_discharged',
        entity_type='DischargeSummary',
        entity_id=str(summary.id),
        entity_ids={'visit_id': str(visit.id), 'discharge_summary_id': str(summary.id)},
        beds_released=released,
        actor_id=str(actor.id),
    )
    return summary


def get_discharge_summary(visit_id):
    try:
        return DischargeSummary.objects.select_related('visit', 'discharged_by').get(visit_id=visit_id)
    except DischargeSummary.DoesNotExist:
        raise NotFound('Discharge summary not found', visit_id=visit_id)
