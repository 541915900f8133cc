"""
Billing engine - pure money arithmetic.

No ORM access here: every function takes and returns plain Decimals or dicts
so the same rules serve previews, persisted billings and tests.

Rounding: values are quantized half-up to 2 places once, at the end of each
computation. Intermediate products are never rounded.
"""
from decimal import ROUND_HALF_UP, Decimal, InvalidOperation

from apps.core.errors import InvalidPayment

ZERO = Decimal('0.00')
CENT = Decimal('0.01')
HUNDRED = Decimal('100')

PAYMENT_STATUS_UNPAID = 'unpaid'
PAYMENT_STATUS_PARTIAL = 'partial'
PAYMENT_STATUS_PAID = 'paid'


def to_decimal(value, field='amount'):
    """Coerce user/ORM input to Decimal. Floats go through str() first."""
    if value is None:
        return None
    if isinstance(value, Decimal):
        return value
    try:
        return Decimal(str(value))
    except (InvalidOperation, ValueError):
        raise InvalidPayment(f'{field} must be a number', field=field, value=value)


def quantize_money(value):
    return to_decimal(value).quantize(CENT, rounding=ROUND_HALF_UP)


def line_total(unit_price, quantity, discount=ZERO):
    """unit_price x quantity - discount, floored at zero."""
    total = to_decimal(unit_price) * to_decimal(quantity) - to_decimal(discount or ZERO)
    return quantize_money(max(total, ZERO))


def calculate_subtotal(items):
    """Sum of ``total_price`` over item dicts or BillingItem instances."""
    subtotal = ZERO
    for item in items:
        value = item['total_price'] if isinstance(item, dict) else item.total_price
        subtotal += to_decimal(value)
    return quantize_money(subtotal)


def _non_negative(value, field):
    value = to_decimal(value, field)
    if value is not None and value < 0:
        raise InvalidPayment(f'{field} cannot be negative', field=field)
    return value


def resolve_discount(
    subtotal,
    discount=None,
    discount_percentage=None,
    current_discount=ZERO,
    current_percentage=None,
):
    """
    Resolve the discount of an adjustment event.

    Returns (discount_amount, discount_percentage) to store on the billing.

    - percentage given: discount = subtotal x percentage / 100; the
      percentage is stored
    - nominal amount given: stored as-is and any stored percentage is cleared
    - nothing given: a stored percentage is re-applied to the (possibly
      changed) subtotal, otherwise the stored nominal discount is kept
    - both given in one event: InvalidPayment

    Raises:
        InvalidPayment: negative values, percentage > 100 or with more than
            2 decimal places, or both forms given
    """
    subtotal = to_decimal(subtotal)
    discount = _non_negative(discount, 'discount')
    discount_percentage = _non_negative(discount_percentage, 'discount_percentage')

    if discount is not None and discount_percentage is not None:
        raise InvalidPayment(
            'Provide either discount or discount_percentage, not both'
        )

    if discount_percentage is None and discount is None:
        if current_percentage is not None:
            discount_percentage = to_decimal(current_percentage)
        else:
            return quantize_money(current_discount or ZERO), None

    if discount_percentage is not None:
        if discount_percentage > HUNDRED:
            raise InvalidPayment(
                'discount_percentage cannot exceed 100',
                field='discount_percentage',
            )
        if discount_percentage != discount_percentage.quantize(CENT):
            raise InvalidPayment(
                'discount_percentage allows at most 2 decimal places',
                field='discount_percentage',
                value=discount_percentage,
            )
        discount_percentage = discount_percentage.quantize(CENT)
        return quantize_money(subtotal * discount_percentage / HUNDRED), discount_percentage

    return quantize_money(discount), None


def determine_payment_status(patient_payable, paid_amount):
    """
    paid iff nothing remains; partial iff 0 < paid < payable; else unpaid.
    """
    payable = to_decimal(patient_payable)
    paid = to_decimal(paid_amount)
    if paid >= payable:
        return PAYMENT_STATUS_PAID
    if paid > ZERO:
        return PAYMENT_STATUS_PARTIAL
    return PAYMENT_STATUS_UNPAID


def compute_totals(subtotal, discount=ZERO, insurance_coverage=ZERO, tax=ZERO, paid_amount=ZERO):
    """
    Derive every computed billing field from the inputs.

    Returns a dict with subtotal, discount, insurance_coverage, tax,
    total_amount, patient_payable, paid_amount, remaining_amount and
    payment_status.
    """
    subtotal = to_decimal(subtotal)
    discount = _non_negative(discount or ZERO, 'discount')
    insurance_coverage = _non_negative(insurance_coverage or ZERO, 'insurance_coverage')
    tax = _non_negative(tax or ZERO, 'tax')
    paid_amount = to_decimal(paid_amount or ZERO)

    total_amount = quantize_money(max(subtotal - discount - insurance_coverage + tax, ZERO))
    patient_payable = total_amount
    remaining_amount = quantize_money(max(patient_payable - paid_amount, ZERO))

    return {
        'subtotal': quantize_money(subtotal),
        'discount': quantize_money(discount),
        'insurance_coverage': quantize_money(insurance_coverage),
        'tax': quantize_money(tax),
        'total_amount': total_amount,
        'patient_payable': patient_payable,
        'paid_amount': quantize_money(paid_amount),
        'remaining_amount': remaining_amount,
        'payment_status': determine_payment_status(patient_payable, paid_amount),
    }


def calculate_change(amount_received, amount):
    """Change due for a cash payment, or None when nothing was tendered."""
    if amount_received is None:
        return None
    return quantize_money(max(to_decimal(amount_received) - to_decimal(amount), ZERO))


def apply_totals(billing, totals):
    """Copy computed values onto a Billing instance. The caller saves it."""
    for field, value in totals.items():
        setattr(billing, field, value)
    return billing
