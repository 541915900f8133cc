"""
Human-readable document numbers (visits, receipts).

Format: ``PREFIX/YYYYMMDD/000123``; the sequence restarts every day.
Numbers are drawn from the rows already issued, so two transactions can
draw the same one. save_with_daily_number() inserts inside a savepoint and
draws again when the unique column rejects the number.
"""
from django.core.exceptions import ValidationError
from django.db import IntegrityError, transaction
from django.utils import timezone

from apps.core.errors import ConcurrentModification
from apps.core.observability import get_sanitized_logger, metrics

logger = get_sanitized_logger(__name__)

NUMBER_ATTEMPTS = 5


def next_daily_number(model, field, prefix, when=None, width=6):
    when = when or timezone.now()
    stem = f"{prefix}/{timezone.localtime(when):%Y%m%d}/"
    issued = model.objects.filter(**{f'{field}__startswith': stem}).count()
    return f"{stem}{issued + 1:0{width}d}"


def _is_number_clash(error, field):
    if isinstance(error, IntegrityError):
        return True
    # full_clean() reports a clash with an already committed row
    return set(getattr(error, 'error_dict', {})) == {field}


def save_with_daily_number(instance, field, prefix, when=None, attempts=NUMBER_ATTEMPTS):
    """
    Assign the next daily number to ``instance.<field>`` and insert it.

    Must be called inside a transaction. Each attempt runs in its own
    savepoint so a clash leaves the outer transaction usable.

    Raises:
        ConcurrentModification: every attempt clashed with a concurrent insert
    """
    model = type(instance)
    for attempt in range(1, attempts + 1):
        setattr(instance, field, next_daily_number(model, field, prefix, when=when))
        try:
            with transaction.atomic():
                instance.save()
            return instance
        except (IntegrityError, ValidationError) as e:
            if not _is_number_clash(e, field):
                raise
            metrics.document_number_conflicts_total.labels(prefix=prefix).inc()
            logger.warning(
                'Document number taken by a concurrent insert - drawing again',
                extra={
                    'event': 'document_number_conflict',
                    'prefix': prefix,
                    'number': getattr(instance, field),
                    'attempt': attempt,
                }
            )

    raise ConcurrentModification(
        'Could not allocate a document number; retry the request',
        prefix=prefix,
        attempts=attempts,
    )
