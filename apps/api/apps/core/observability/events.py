"""
Domain events logging helpers.

Provides structured event logging for billing and visit lifecycle operations.
"""
from typing import Dict, Optional

from .logging import get_sanitized_logger, sanitize_dict

logger = get_sanitized_logger(__name__)


def log_domain_event(
    event_name: str,
    entity_type: Optional[str] = None,
    entity_id: Optional[str] = None,
    entity_ids: Optional[Dict[str, str]] = None,
    result: str = 'success',
    **extra_fields
):
    """
    Log a domain event with structured data.

    Args:
        event_name: Name of the event (e.g., 'billing_created', 'payment_recorded')
        entity_type: Type of entity (e.g., 'Billing', 'Visit')
        entity_id: ID of primary entity
        entity_ids: Dictionary of related entity IDs
        result: Result of operation (success, failure, blocked, ...)
        **extra_fields: Additional fields to log (will be sanitized)

    Example:
        log_domain_event(
            'billing_created',
            entity_type='Billing',
            entity_id=str(billing.id),
            entity_ids={'visit_id': str(billing.visit_id)},
            item_count=4,
        )
    """
    event_data = {
        'event': event_name,
        'result': result,
    }

    if entity_type:
        event_data['entity_type'] = entity_type

    if entity_id:
        event_data['entity_id'] = entity_id

    if entity_ids:
        event_data.update(entity_ids)

    event_data.update(sanitize_dict(extra_fields))

    if result in ['failure', 'error']:
        logger.error(f'Domain event: {event_name}', extra=event_data)
    elif result in ['warning', 'blocked', 'denied']:
        logger.warning(f'Domain event: {event_name}', extra=event_data)
    else:
        logger.info(f'Domain event: {event_name}', extra=event_data)


def log_consistency_checkpoint(
    checkpoint_name: str,
    entity_ids: Dict[str, str],
    checks_passed: Dict[str, bool],
    **extra_fields
):
    """
    Log a consistency checkpoint event.

    Used to verify data integrity at critical points. Returns True when
    every check passed.

    Example:
        log_consistency_checkpoint(
            'billing_payment_consistency',
            entity_ids={'billing_id': str(billing.id)},
            checks_passed={'paid_matches_payments': True},
        )
    """
    all_passed = all(checks_passed.values())

    event_data = {
        'event': 'consistency_checkpoint',
        'checkpoint': checkpoint_name,
        'status': 'passed' if all_passed else 'failed',
        'checks': checks_passed,
    }
    event_data.update(entity_ids)
    event_data.update(sanitize_dict(extra_fields))

    if all_passed:
        logger.info(f'Checkpoint passed: {checkpoint_name}', extra=event_data)
    else:
        logger.error(f'Checkpoint FAILED: {checkpoint_name}', extra=event_data)

    return all_passed


def log_billing_created(billing, variant, item_count, **extra):
    log_domain_event(
        'billing_created',
        entity_type='Billing',
        entity_id=str(billing.id),
        entity_ids={'billing_id': str(billing.id), 'visit_id': str(billing.visit_id)},
        variant=variant,
        item_count=item_count,
        subtotal=str(billing.subtotal),
        **extra
    )


def log_payment_recorded(payment, billing, **extra):
    """Log a successfully recorded payment and the resulting billing state."""
    log_domain_event(
        'payment_recorded',
        entity_type='Payment',
        entity_id=str(payment.id),
        entity_ids={
            'payment_id': str(payment.id),
            'billing_id': str(billing.id),
            'visit_id': str(billing.visit_id),
        },
        amount=str(payment.amount),
        payment_method=payment.payment_method,
        receipt_number=payment.receipt_number,
        payment_status=billing.payment_status,
        remaining_amount=str(billing.remaining_amount),
        **extra
    )


def log_overpayment_blocked(billing, requested_amount, remaining_amount):
    """Log blocked over-payment attempt."""
    log_domain_event(
        'billing_overpayment_blocked',
        entity_type='Billing',
        entity_id=str(billing.id),
        entity_ids={'billing_id': str(billing.id), 'visit_id': str(billing.visit_id)},
        result='blocked',
        requested_amount=str(requested_amount),
        remaining_amount=str(remaining_amount),
    )


def log_visit_transition(visit, from_status, to_status, result='success', **extra):
    """Log visit status transition event."""
    log_domain_event(
        'visit_transition',
        entity_type='Visit',
        entity_id=str(visit.id),
        entity_ids={'visit_id': str(visit.id)},
        result=result,
        from_status=from_status,
        to_status=to_status,
        **extra
    )


def log_record_lock_changed(record, action, actor=None):
    log_domain_event(
        f'medical_record_{action}ed',
        entity_type='MedicalRecord',
        entity_id=str(record.id),
        entity_ids={'medical_record_id': str(record.id), 'visit_id': str(record.visit_id)},
        actor_id=str(actor.id) if actor is not None else None,
    )


def log_discharge_gate_evaluated(visit_id, allowed, reason=None):
    log_domain_event(
        'discharge_gate_evaluated',
        entity_type='Visit',
        entity_id=str(visit_id),
        entity_ids={'visit_id': str(visit_id)},
        result='success' if allowed else 'denied',
        allowed=allowed,
        reason=reason,
    )
