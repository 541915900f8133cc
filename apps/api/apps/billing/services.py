"""
Billing service layer.

- Billing creation from charge aggregation (checkout / discharge)
- Compensating re-aggregation
- Payment processing with discount and insurance adjustments
- Billing statistics

Every write runs in one transaction with the Billing (or Visit) row locked;
any failure rolls the whole unit back.
"""
import time

from django.conf import settings
from django.core.exceptions import ValidationError
from django.db import IntegrityError, transaction
from django.db.models import Count, Q, Sum
from django.utils import timezone

from apps.billing.aggregation import VARIANT_DISCHARGE, aggregate, aggregate_visit
from apps.billing.engine import (
    ZERO,
    apply_totals,
    calculate_change,
    compute_totals,
    quantize_money,
    resolve_discount,
    to_decimal,
)
from apps.billing.models import (
    Billing,
    BillingItem,
    Payment,
    PaymentMethodChoices,
    PaymentStatusChoices,
)
from apps.core.errors import (
    AlreadyExists,
    BillingNotFound,
    ConcurrentModification,
    DomainError,
    InvalidPayment,
    OverPayment,
    PreconditionFailed,
)
from apps.core.numbering import save_with_daily_number
from apps.core.observability import get_sanitized_logger, log_domain_event, metrics
from apps.core.observability.events import (
    log_billing_created,
    log_consistency_checkpoint,
    log_overpayment_blocked,
    log_payment_recorded,
)
from apps.core.observability.tracing import add_span_attribute, trace_span
from apps.visits.models import Visit, VisitStatusChoices
from apps.visits.services import get_visit_for_update

logger = get_sanitized_logger(__name__)

RECEIPT_PREFIX = 'RCP'

ITEM_FIELDS = (
    'item_type',
    'source_key',
    'item_name',
    'item_code',
    'quantity',
    'unit_price',
    'discount',
    'total_price',
    'description',
)


def get_billing_for_update(billing_id):
    """Row-lock and return a billing. Must be called inside a transaction."""
    try:
        return Billing.objects.select_for_update().get(id=billing_id)
    except Billing.DoesNotExist:
        raise BillingNotFound(billing_id=billing_id)


def _build_items(billing, draft_items):
    return [
        BillingItem(billing=billing, **{field: item[field] for field in ITEM_FIELDS})
        for item in draft_items
    ]


def preview_billing(visit_id, variant=None, as_of=None):
    """Draft billing for review. Persists nothing."""
    return aggregate(visit_id, variant=variant, as_of=as_of)


def create_billing(visit_id, actor, variant=None, as_of=None, notes=None):
    """
    Persist the aggregated billing of a visit.

    BUSINESS RULES:
    - One billing per visit: a second call raises AlreadyExists
    - Items come from aggregate(); subtotal is their sum
    - No discount, insurance or tax at creation; those arrive with payments

    TRANSACTION: Visit row locked; billing and items inserted together. A
    concurrent insert that wins the race surfaces as AlreadyExists via the
    unique constraint on visit.

    Args:
        visit_id: Visit to bill
        actor: User creating the billing
        variant: 'checkout' | 'discharge' | None (inferred from visit type)
        as_of: Cut-off for open bed stays (defaults to now)
        notes: Optional cashier notes

    Returns:
        Billing instance

    Raises:
        NotFound, AlreadyExists, InvalidVisitType, PreconditionFailed
    """
    with trace_span('create_billing', attributes={'visit_id': str(visit_id)}):
        try:
            with transaction.atomic():
                visit = get_visit_for_update(visit_id)

                if Billing.objects.filter(visit_id=visit.id).exists():
                    raise AlreadyExists('Billing already exists for this visit', visit_id=visit.id)

                draft = aggregate_visit(visit, variant=variant, as_of=as_of)

                billing = Billing(visit=visit, created_by=actor, notes=notes)
                apply_totals(billing, compute_totals(draft['subtotal']))
                billing.save()

                items = BillingItem.objects.bulk_create(_build_items(billing, draft['items']))
        except IntegrityError:
            metrics.billing_created_total.labels(variant=variant or 'inferred', result='duplicate').inc()
            raise AlreadyExists('Billing already exists for this visit', visit_id=visit_id)
        except DomainError as e:
            metrics.billing_created_total.labels(variant=variant or 'inferred', result=str(e.kind)).inc()
            raise

    for item in items:
        metrics.billing_items_created_total.labels(item_type=item.item_type).inc()
    metrics.billing_created_total.labels(variant=draft['variant'], result='success').inc()
    log_billing_created(billing, draft['variant'], len(items), actor_id=str(actor.id))

    return billing


def create_discharge_billing(visit_id, actor, as_of=None, notes=None):
    """Discharge aggregation for an inpatient visit."""
    return create_billing(visit_id, actor, variant=VARIANT_DISCHARGE, as_of=as_of, notes=notes)


def refresh_billing(billing_id, actor, as_of=None):
    """
    Re-aggregate charges into an existing billing.

    - No payments yet: all items are replaced by a fresh aggregation
    - Payments recorded: existing items stay untouched; only charge sources
      not yet on the billing are appended

    Totals are recomputed (a stored discount percentage is re-applied to the
    new subtotal) and the version is incremented.

    Raises:
        BillingNotFound, PreconditionFailed (visit closed)
    """
    with trace_span('refresh_billing', attributes={'billing_id': str(billing_id)}):
        with transaction.atomic():
            # Lock order is visit then billing, as in checkout and discharge
            visit_id = Billing.objects.filter(id=billing_id).values_list('visit_id', flat=True).first()
            if visit_id is None:
                raise BillingNotFound(billing_id=billing_id)
            visit = get_visit_for_update(visit_id)
            billing = get_billing_for_update(billing_id)

            if visit.is_terminal_status():
                raise PreconditionFailed(
                    f'Cannot refresh billing of a {visit.status} visit',
                    visit_id=visit.id,
                )

            draft = aggregate_visit(visit, as_of=as_of)

            if billing.payments.exists():
                mode = 'append'
                existing_keys = set(billing.items.values_list('source_key', flat=True))
                new_items = [item for item in draft['items'] if item['source_key'] not in existing_keys]
            else:
                mode = 'replace'
                billing.items.all().delete()
                new_items = draft['items']

            BillingItem.objects.bulk_create(_build_items(billing, new_items))

            _recompute(billing)
            billing.version += 1
            billing.save()

    metrics.billing_refreshed_total.labels(mode=mode, result='success').inc()
    log_domain_event(
        'billing_refreshed',
        entity_type='Billing',
        entity_id=str(billing.id),
        entity_ids={'billing_id': str(billing.id), 'visit_id': str(billing.visit_id)},
        mode=mode,
        items_added=len(new_items),
        subtotal=str(billing.subtotal),
        actor_id=str(actor.id),
    )
    return billing


def _recompute(billing, discount=None, discount_percentage=None, insurance_coverage=None, tax=None):
    """Recompute derived fields from items, payments and adjustments."""
    subtotal = billing.items_subtotal()
    discount_amount, percentage = resolve_discount(
        subtotal,
        discount=discount,
        discount_percentage=discount_percentage,
        current_discount=billing.discount,
        current_percentage=billing.discount_percentage,
    )
    totals = compute_totals(
        subtotal,
        discount=discount_amount,
        insurance_coverage=billing.insurance_coverage if insurance_coverage is None else insurance_coverage,
        tax=billing.tax if tax is None else tax,
        paid_amount=billing.payments_total(),
    )
    apply_totals(billing, totals)
    billing.discount_percentage = percentage
    return totals


def _check_payment_consistency(billing):
    subtotal = billing.items_subtotal()
    paid = billing.payments_total()
    return log_consistency_checkpoint(
        'billing_payment_consistency',
        entity_ids={'billing_id': str(billing.id), 'visit_id': str(billing.visit_id)},
        checks_passed={
            'subtotal_matches_items': subtotal == billing.subtotal,
            'paid_matches_payments': paid == billing.paid_amount,
            'remaining_matches_payable': billing.remaining_amount == max(billing.patient_payable - paid, ZERO),
        },
        subtotal=str(billing.subtotal),
        paid_amount=str(billing.paid_amount),
        remaining_amount=str(billing.remaining_amount),
    )


def _parse_version(value):
    if value is None:
        return None
    try:
        return int(value)
    except (TypeError, ValueError):
        raise InvalidPayment('expected_version must be an integer', field='expected_version', value=value)


def process_payment(billing_id, payment_request, actor):
    """
    Apply adjustments and record one payment against a billing.

    BUSINESS RULES:
    - amount must be > 0
    - discount and discount_percentage are mutually exclusive per request;
      the percentage is taken of the current subtotal
    - cash requires amount_received >= amount; change is returned
    - amount may not exceed the remaining amount after adjustments unless
      settings.BILLING_ALLOW_OVERPAYMENT is enabled
    - paid_amount is always the sum of recorded payments

    IDEMPOTENCY: pass ``expected_version`` (the billing version the client
    saw); a stale version raises ConcurrentModification instead of
    recording a second payment.

    TRANSACTION: Billing row locked with select_for_update; payment insert
    and billing update commit together or not at all.

    Args:
        billing_id: Billing to pay
        payment_request: dict with:
            - amount: Decimal (required)
            - payment_method: cash|transfer|card|insurance (required)
            - amount_received: Decimal (required for cash)
            - discount / discount_percentage: Decimal (optional, exclusive)
            - insurance_coverage, tax: Decimal (optional)
            - payment_reference, notes: str (optional)
            - expected_version: int (optional)
        actor: User receiving the payment

    Returns:
        dict: {'payment': Payment, 'billing': Billing, 'change_given': Decimal | None}

    Raises:
        BillingNotFound, ConcurrentModification, InvalidPayment, OverPayment

    Example:
        >>> result = process_payment(
        ...     billing.id,
        ...     {'amount': '135000', 'payment_method': 'cash', 'amount_received': '150000',
        ...      'discount_percentage': '10'},
        ...     actor=request.user,
        ... )
        >>> result['change_given']
        Decimal('15000.00')
    """
    start_time = time.time()
    method = payment_request.get('payment_method')

    with trace_span('process_payment', attributes={'billing_id': str(billing_id)}):
        try:
            with transaction.atomic():
                billing = get_billing_for_update(billing_id)

                expected_version = _parse_version(payment_request.get('expected_version'))
                if expected_version is not None and expected_version != billing.version:
                    metrics.billing_concurrent_modification_total.inc()
                    raise ConcurrentModification(
                        'Billing changed since it was read; reload and retry',
                        expected_version=expected_version,
                        current_version=billing.version,
                    )

                if method not in PaymentMethodChoices.values:
                    raise InvalidPayment(f'Unknown payment method: {method}', payment_method=method)

                amount = to_decimal(payment_request.get('amount'), 'amount')
                if amount is None or amount <= 0:
                    raise InvalidPayment('Payment amount must be greater than zero')
                amount = quantize_money(amount)

                totals = _recompute(
                    billing,
                    discount=payment_request.get('discount'),
                    discount_percentage=payment_request.get('discount_percentage'),
                    insurance_coverage=to_decimal(payment_request.get('insurance_coverage'), 'insurance_coverage'),
                    tax=to_decimal(payment_request.get('tax'), 'tax'),
                )

                amount_received = to_decimal(payment_request.get('amount_received'), 'amount_received')
                change_given = None
                if method == PaymentMethodChoices.CASH:
                    if amount_received is None:
                        raise InvalidPayment('amount_received is required for cash payments')
                    if amount_received < amount:
                        raise InvalidPayment(
                            'Amount received is less than the payment amount',
                            amount=amount,
                            amount_received=amount_received,
                        )
                    change_given = calculate_change(amount_received, amount)

                remaining = totals['remaining_amount']
                if amount > remaining and not getattr(settings, 'BILLING_ALLOW_OVERPAYMENT', False):
                    metrics.billing_overpayment_blocked_total.inc()
                    log_overpayment_blocked(billing, amount, remaining)
                    raise OverPayment(
                        f'Payment amount ({amount}) exceeds remaining amount ({remaining})',
                        amount=amount,
                        remaining_amount=remaining,
                    )

                now = timezone.now()
                payment = Payment(
                    billing=billing,
                    amount=amount,
                    payment_method=method,
                    payment_reference=payment_request.get('payment_reference'),
                    amount_received=amount_received,
                    change_given=change_given,
                    notes=payment_request.get('notes'),
                    received_by=actor,
                    received_at=now,
                )
                save_with_daily_number(payment, 'receipt_number', RECEIPT_PREFIX, when=now)

                # paid_amount is re-folded from the payment rows, never incremented
                _recompute(billing)
                billing.processed_by = actor
                billing.processed_at = now
                billing.version += 1
                billing.save()

                _check_payment_consistency(billing)

        except DomainError as e:
            metrics.billing_payments_total.labels(method=str(method), result=str(e.kind)).inc()
            raise
        except (IntegrityError, ValidationError) as e:
            metrics.billing_payments_total.labels(method=str(method), result='error').inc()
            metrics.exceptions_total.labels(
                exception_type=e.__class__.__name__,
                location='process_payment'
            ).inc()
            logger.error(
                'process_payment_failed',
                extra={
                    'billing_id': str(billing_id),
                    'error_type': type(e).__name__,
                    'error_message': str(e)[:200],
                },
                exc_info=True,
            )
            raise

    duration = time.time() - start_time
    metrics.billing_payments_total.labels(method=method, result='success').inc()
    metrics.billing_payment_duration_seconds.observe(duration)
    metrics.billing_outstanding_amount.set(float(billing.remaining_amount))
    add_span_attribute('payment_status', billing.payment_status)
    log_payment_recorded(payment, billing, duration_ms=round(duration * 1000, 2))

    return {
        'payment': payment,
        'billing': billing,
        'change_given': change_given,
    }


def get_billing_statistics(day=None):
    """
    Aggregate billing figures for dashboards.

    Returns dict with counts per payment status, total_revenue (all payments),
    pending_revenue (sum of remaining amounts) and collected_today.
    """
    day = day or timezone.localdate()

    counts = Billing.objects.aggregate(
        total_billings=Count('id'),
        unpaid=Count('id', filter=Q(payment_status=PaymentStatusChoices.UNPAID)),
        partial=Count('id', filter=Q(payment_status=PaymentStatusChoices.PARTIAL)),
        paid=Count('id', filter=Q(payment_status=PaymentStatusChoices.PAID)),
        pending_revenue=Sum('remaining_amount'),
    )
    total_revenue = Payment.objects.aggregate(total=Sum('amount'))['total'] or ZERO
    collected_today = (
        Payment.objects.filter(received_at__date=day).aggregate(total=Sum('amount'))['total'] or ZERO
    )

    return {
        'date': day,
        'total_billings': counts['total_billings'],
        'unpaid_billings': counts['unpaid'],
        'partial_billings': counts['partial'],
        'paid_billings': counts['paid'],
        'total_revenue': quantize_money(total_revenue),
        'pending_revenue': quantize_money(counts['pending_revenue'] or ZERO),
        'collected_today': quantize_money(collected_today),
        'currency': getattr(settings, 'BILLING_CURRENCY', 'IDR'),
        'visits_ready_for_billing': Visit.objects.filter(status=VisitStatusChoices.READY_FOR_BILLING).count(),
    }

