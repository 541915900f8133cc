"""
Charge aggregation.

Each charge source reader turns one kind of clinical fact into normalized
billing item dicts. aggregate() runs every reader for a visit and returns a
draft billing without writing anything.

Item dict keys: item_type, source_key, item_name, item_code, quantity,
unit_price, discount, total_price, description, category.
"""
import math
import time
from datetime import timedelta

from django.utils import timezone

from apps.billing.engine import ZERO, calculate_subtotal, line_total, quantize_money
from apps.billing.models import BillingItemTypeChoices, Service, ServiceTypeChoices
from apps.clinical.models import (
    BedAssignment,
    LabOrder,
    LabOrderStatusChoices,
    MaterialUsage,
    MedicalRecord,
    Prescription,
    Procedure,
)
from apps.core.errors import InvalidVisitType, NotFound, PreconditionFailed
from apps.core.observability import get_sanitized_logger, metrics
from apps.core.observability.tracing import add_span_attribute, trace_span
from apps.visits.models import Visit, VisitStatusChoices, VisitTypeChoices

logger = get_sanitized_logger(__name__)

VARIANT_CHECKOUT = 'checkout'
VARIANT_DISCHARGE = 'discharge'
VARIANTS = (VARIANT_CHECKOUT, VARIANT_DISCHARGE)

ONE_DAY = timedelta(days=1)

CATEGORIES = (
    'consultation',
    'administration',
    'drugs',
    'procedures',
    'materials',
    'rooms',
    'laboratory',
)


def _item(category, item_type, source_key, name, quantity, unit_price, code='', description=None):
    return {
        'category': category,
        'item_type': item_type,
        'source_key': source_key,
        'item_name': name,
        'item_code': code or '',
        'quantity': quantity,
        'unit_price': quantize_money(unit_price),
        'discount': ZERO,
        'total_price': line_total(unit_price, quantity),
        'description': description,
    }


# ============================================================================
# Charge source readers
# ============================================================================

def _fee_reader(service_type, category):
    def read(visit, record, as_of):
        service = (
            Service.objects
            .filter(service_type=service_type, is_active=True)
            .order_by('code')
            .first()
        )
        if service is None:
            logger.warning(
                f'No active {service_type} service configured - fee skipped',
                extra={'event': 'billing_fee_missing', 'visit_id': str(visit.id), 'service_type': service_type}
            )
            return []
        # Keyed on the visit so the fee is charged once however many entries exist
        return [_item(
            category,
            BillingItemTypeChoices.SERVICE,
            f'{category}:{visit.id}',
            service.name,
            1,
            service.price,
            code=service.code,
        )]
    read.__name__ = f'read_{category}_fee'
    return read


read_consultation_fee = _fee_reader(ServiceTypeChoices.CONSULTATION, 'consultation')
read_administration_fee = _fee_reader(ServiceTypeChoices.ADMINISTRATION, 'administration')


def read_drugs(visit, record, as_of):
    """Fulfilled prescriptions at the drug's price x dispensed quantity."""
    prescriptions = (
        Prescription.objects
        .filter(medical_record=record, is_fulfilled=True)
        .select_related('drug')
        .order_by('created_at', 'id')
    )
    items = []
    for rx in prescriptions:
        details = ' '.join(part for part in (rx.dosage, rx.frequency) if part)
        items.append(_item(
            'drugs',
            BillingItemTypeChoices.DRUG,
            f'drug:{rx.id}',
            rx.drug.name,
            rx.billable_quantity,
            rx.drug.price,
            code=rx.drug.code,
            description=details or None,
        ))
    return items


def read_procedures(visit, record, as_of):
    """Procedures at the linked service's flat price (quantity 1)."""
    items = []
    procedures = (
        Procedure.objects
        .filter(medical_record=record)
        .select_related('service')
        .order_by('performed_at', 'id')
    )
    for procedure in procedures:
        if procedure.service is None:
            logger.warning(
                'Procedure has no priced service - skipping',
                extra={
                    'event': 'billing_procedure_unpriced',
                    'procedure_id': str(procedure.id),
                    'visit_id': str(visit.id),
                }
            )
            continue
        items.append(_item(
            'procedures',
            BillingItemTypeChoices.SERVICE,
            f'procedure:{procedure.id}',
            procedure.procedure_name,
            1,
            procedure.service.price,
            code=procedure.icd9_code or procedure.service.code,
        ))
    return items


def read_materials(visit, record, as_of):
    return [
        _item(
            'materials',
            BillingItemTypeChoices.MATERIAL,
            f'material:{usage.id}',
            usage.material_name,
            usage.quantity,
            usage.unit_price,
            description=usage.unit or None,
        )
        for usage in MaterialUsage.objects.filter(visit=visit).order_by('used_at', 'id')
    ]


def stay_days(start, end):
    """Whole days billed for a stay: partial days round up, minimum one."""
    elapsed = max(end - start, timedelta(0))
    return max(1, math.ceil(elapsed / ONE_DAY))


def read_rooms(visit, record, as_of):
    """
    One line per bed assignment at the room's daily rate.

    Open stays are measured to the visit end, or to ``as_of`` while the
    patient is still admitted.
    """
    items = []
    assignments = (
        BedAssignment.objects
        .filter(visit=visit)
        .select_related('room')
        .order_by('assigned_at', 'id')
    )
    for assignment in assignments:
        end = assignment.released_at or visit.end_at or as_of
        days = stay_days(assignment.assigned_at, end)
        room = assignment.room
        items.append(_item(
            'rooms',
            BillingItemTypeChoices.ROOM,
            f'room:{assignment.id}',
            f'Room {room.room_number} ({room.get_room_type_display()})',
            days,
            room.daily_rate,
            code=room.room_number,
            description=f'Bed {assignment.bed_number}, {days} day(s)',
        ))
    return items


def read_laboratory(visit, record, as_of):
    return [
        _item(
            'laboratory',
            BillingItemTypeChoices.LABORATORY,
            f'lab:{order.id}',
            order.test_name,
            1,
            order.price,
            code=order.test_code,
            description=order.order_number,
        )
        for order in (
            LabOrder.objects
            .filter(visit=visit, status=LabOrderStatusChoices.VERIFIED)
            .order_by('created_at', 'id')
        )
    ]


CHARGE_SOURCE_READERS = (
    read_consultation_fee,
    read_administration_fee,
    read_drugs,
    read_procedures,
    read_materials,
    read_rooms,
    read_laboratory,
)


# ============================================================================
# Aggregator
# ============================================================================

def resolve_variant(visit, variant=None):
    """
    Pick the aggregation variant for ``visit``.

    ``discharge`` applies to inpatient visits only and ``checkout`` to every
    other visit type.

    Raises:
        InvalidVisitType: explicit variant does not match the visit type
    """
    expected = VARIANT_DISCHARGE if visit.visit_type == VisitTypeChoices.INPATIENT else VARIANT_CHECKOUT
    if variant is None:
        return expected
    if variant not in VARIANTS:
        raise InvalidVisitType(f'Unknown billing variant: {variant}', variant=variant)
    if variant != expected:
        raise InvalidVisitType(
            f'{variant} billing is not available for {visit.visit_type} visits',
            variant=variant,
            visit_type=visit.visit_type,
        )
    return variant


def load_visit(visit_id):
    try:
        return Visit.objects.select_related('patient').get(id=visit_id)
    except Visit.DoesNotExist:
        raise NotFound('Visit not found', visit_id=visit_id)


def aggregate_visit(visit, variant=None, as_of=None):
    """
    Build the draft billing of an already-loaded visit.

    Raises:
        PreconditionFailed: visit cancelled or has no medical record
        InvalidVisitType: variant mismatch
    """
    start_time = time.time()
    as_of = as_of or timezone.now()

    if visit.status == VisitStatusChoices.CANCELLED:
        raise PreconditionFailed('Cancelled visits cannot be billed', visit_id=visit.id)

    variant = resolve_variant(visit, variant)

    record = MedicalRecord.objects.filter(visit=visit).first()
    if record is None:
        raise PreconditionFailed('Medical record not found for this visit', visit_id=visit.id)

    with trace_span('billing_aggregate', attributes={'visit_id': str(visit.id), 'variant': variant}):
        items = []
        for reader in CHARGE_SOURCE_READERS:
            items.extend(reader(visit, record, as_of))

        breakdown = {category: ZERO for category in CATEGORIES}
        counts = {category: 0 for category in CATEGORIES}
        for item in items:
            breakdown[item['category']] += item['total_price']
            counts[item['category']] += 1

        subtotal = calculate_subtotal(items)
        add_span_attribute('item_count', len(items))

    metrics.billing_aggregation_duration_seconds.observe(time.time() - start_time)

    return {
        'visit_id': visit.id,
        'visit_type': visit.visit_type,
        'variant': variant,
        'as_of': as_of,
        'items': items,
        'breakdown': breakdown,
        'counts': counts,
        'subtotal': subtotal,
        'item_count': len(items),
    }


def aggregate(visit_id, variant=None, as_of=None):
    """
    Read every charge source of a visit and return the draft billing.

    Read-only: nothing is persisted.

    Raises:
        NotFound, PreconditionFailed, InvalidVisitType
    """
    return aggregate_visit(load_visit(visit_id), variant=variant, as_of=as_of)
