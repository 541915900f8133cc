"""
Visit lifecycle service layer.

Every status change goes through transition_visit() so the Visit row is
locked for the duration and completion is always checked against the
discharge gate.
"""
from django.db import transaction

from apps.core.errors import InvalidTransition, InvalidVisitType, NotFound, PreconditionFailed
from apps.core.numbering import save_with_daily_number
from apps.core.observability import get_sanitized_logger, metrics
from apps.core.observability.events import log_visit_transition
from apps.core.observability.tracing import trace_span
from apps.visits.models import Visit, VisitStatusChoices, initial_status_for

logger = get_sanitized_logger(__name__)

VISIT_NUMBER_PREFIX = 'VST'


def get_visit_for_update(visit_id):
    """Row-lock and return a visit. Must be called inside a transaction."""
    try:
        return Visit.objects.select_for_update().get(id=visit_id)
    except Visit.DoesNotExist:
        raise NotFound('Visit not found', visit_id=visit_id)


@transaction.atomic
def register_visit(patient, visit_type, actor=None, doctor=None, quick=False):
    """
    Register a new visit for ``patient``.

    Emergency visits registered with ``quick=True`` start in ``pending``.
    """
    visit = Visit(
        patient=patient,
        visit_type=visit_type,
        status=initial_status_for(visit_type, quick=quick),
        doctor=doctor,
    )
    save_with_daily_number(visit, 'visit_number', VISIT_NUMBER_PREFIX)

    log_visit_transition(
        visit,
        from_status=None,
        to_status=visit.status,
        actor_id=str(actor.id) if actor is not None else None,
    )
    return visit


def get_allowed_transitions(visit):
    """
    Statuses reachable from the visit's current status.

    ``completed`` is listed only when the discharge gate currently allows it.
    """
    allowed = list(Visit.get_valid_transitions().get(visit.status, []))
    if VisitStatusChoices.COMPLETED in allowed:
        from apps.billing.discharge import can_discharge
        if not can_discharge(visit.id)['allowed']:
            allowed.remove(VisitStatusChoices.COMPLETED)
    return allowed


def transition_visit(visit_id, new_status, actor, reason=None):
    """
    Move a visit to ``new_status``.

    BUSINESS RULES:
    - Only transitions listed in Visit.get_valid_transitions() are allowed
    - Cancellation requires a reason and is refused while the visit's
      billing has a remaining amount (settle it first)
    - ``completed`` is delegated to complete_visit() (settlement gate)
    - ``ready_for_billing`` and the way back to ``in_examination`` belong to
      the medical record lock/unlock operations

    TRANSACTION: Visit row is locked with select_for_update.

    Raises:
        NotFound, InvalidTransition, PreconditionFailed
    """
    if new_status == VisitStatusChoices.COMPLETED:
        return complete_visit(visit_id, actor)

    if new_status == VisitStatusChoices.READY_FOR_BILLING:
        raise InvalidTransition(
            'Visits become ready for billing by locking the medical record',
            to_status=new_status,
        )

    with transaction.atomic():
        visit = get_visit_for_update(visit_id)

        if (
            visit.status == VisitStatusChoices.READY_FOR_BILLING
            and new_status == VisitStatusChoices.IN_EXAMINATION
        ):
            raise InvalidTransition(
                'Reopen the examination by unlocking the medical record',
                from_status=visit.status,
                to_status=new_status,
            )

        if new_status == VisitStatusChoices.CANCELLED:
            _assert_no_outstanding_balance(visit)

        return apply_transition(visit, new_status, actor, reason=reason)


def _assert_no_outstanding_balance(visit):
    """Lock the visit's billing (after the visit row) and refuse if money is owed."""
    from apps.billing.models import Billing

    billing = Billing.objects.select_for_update().filter(visit_id=visit.id).first()
    if billing is not None and billing.remaining_amount > 0:
        raise PreconditionFailed(
            'Visit cannot be cancelled: unsettled balance',
            reason='unsettled balance',
            billing_id=billing.id,
            remaining_amount=billing.remaining_amount,
        )


def apply_transition(visit, new_status, actor, reason=None):
    """
    Transition an already-locked visit and record the outcome.

    Shared by the lock/unlock and discharge operations, which hold their own
    row locks.
    """
    from_status = visit.status
    with trace_span('visit_transition', attributes={'visit_id': str(visit.id), 'to_status': str(new_status)}):
        try:
            visit.transition_to(new_status, reason=reason)
        except InvalidTransition:
            metrics.visit_transition_total.labels(
                from_status=from_status, to_status=new_status, result='rejected'
            ).inc()
            log_visit_transition(visit, from_status, new_status, result='blocked')
            raise

    metrics.visit_transition_total.labels(
        from_status=from_status, to_status=new_status, result='success'
    ).inc()
    log_visit_transition(
        visit,
        from_status,
        new_status,
        actor_id=str(actor.id) if actor is not None else None,
    )
    return visit


@transaction.atomic
def complete_visit(visit_id, actor):
    """
    Complete an outpatient or emergency visit at checkout.

    Inpatient visits are completed by create_discharge_summary().

    The discharge gate is re-evaluated with the visit and billing rows
    locked, so a visit can never reach ``completed`` with a balance due.

    Raises:
        NotFound: visit does not exist
        InvalidVisitType: inpatient visit
        PreconditionFailed: gate refused (reason in ``details['reason']``)
        InvalidTransition: visit not in ``ready_for_billing``
    """
    from apps.billing.discharge import evaluate_gate_locked

    visit = get_visit_for_update(visit_id)

    if visit.is_inpatient:
        raise InvalidVisitType(
            'Inpatient visits are completed through the discharge summary',
            visit_type=visit.visit_type,
        )

    if not visit.can_transition_to(VisitStatusChoices.COMPLETED):
        raise InvalidTransition(
            f'Visit cannot be completed from {visit.status}',
            from_status=visit.status,
            to_status=VisitStatusChoices.COMPLETED,
        )

    decision = evaluate_gate_locked(visit)
    if not decision['allowed']:
        logger.warning(
            'Visit completion refused by discharge gate',
            extra={
                'event': 'visit_completion_refused',
                'visit_id': str(visit.id),
                'reason': decision['reason'],
            }
        )
        raise PreconditionFailed(
            f"Visit cannot be completed: {decision['reason']}",
            reason=decision['reason'],
        )

    return apply_transition(visit, VisitStatusChoices.COMPLETED, actor)
