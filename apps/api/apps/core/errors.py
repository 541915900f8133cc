"""
Domain error taxonomy.

Every failure raised by the billing and visit lifecycle services is a
DomainError carrying a stable machine-readable ``kind``. Callers branch on the
exception class or on ``kind``; the message is for humans only.
"""
from django.db import models
from django.utils.translation import gettext_lazy as _
from rest_framework import status
from rest_framework.response import Response


class ErrorKind(models.TextChoices):
    NOT_FOUND = 'not_found', _('Not found')
    ALREADY_EXISTS = 'already_exists', _('Already exists')
    INVALID_VISIT_TYPE = 'invalid_visit_type', _('Invalid visit type')
    PRECONDITION_FAILED = 'precondition_failed', _('Precondition failed')
    INVALID_PAYMENT = 'invalid_payment', _('Invalid payment')
    OVER_PAYMENT = 'over_payment', _('Over-payment')
    INVALID_TRANSITION = 'invalid_transition', _('Invalid transition')
    CONCURRENT_MODIFICATION = 'concurrent_modification', _('Concurrent modification')
    RECORD_LOCKED = 'record_locked', _('Record locked')
    PERMISSION_DENIED = 'permission_denied', _('Permission denied')


class DomainError(Exception):
    """Base class for expected business failures."""

    kind = None
    default_message = 'Domain error'

    def __init__(self, message=None, **details):
        self.message = message or self.default_message
        self.details = details
        super().__init__(self.message)

    def as_dict(self):
        payload = {
            'error': self.message,
            'error_type': str(self.kind),
        }
        if self.details:
            payload['details'] = {k: str(v) if v is not None else None for k, v in self.details.items()}
        return payload


class NotFound(DomainError):
    kind = ErrorKind.NOT_FOUND
    default_message = 'Not found'


class BillingNotFound(NotFound):
    default_message = 'Billing not found'


class AlreadyExists(DomainError):
    kind = ErrorKind.ALREADY_EXISTS
    default_message = 'Already exists'


class InvalidVisitType(DomainError):
    kind = ErrorKind.INVALID_VISIT_TYPE
    default_message = 'Operation not allowed for this visit type'


class PreconditionFailed(DomainError):
    kind = ErrorKind.PRECONDITION_FAILED
    default_message = 'Precondition failed'


class InvalidPayment(DomainError):
    kind = ErrorKind.INVALID_PAYMENT
    default_message = 'Invalid payment'


class OverPayment(DomainError):
    kind = ErrorKind.OVER_PAYMENT
    default_message = 'Payment exceeds remaining amount'


class InvalidTransition(DomainError):
    kind = ErrorKind.INVALID_TRANSITION
    default_message = 'Invalid status transition'


class ConcurrentModification(DomainError):
    kind = ErrorKind.CONCURRENT_MODIFICATION
    default_message = 'Record was modified by another request'


class RecordLocked(DomainError):
    kind = ErrorKind.RECORD_LOCKED
    default_message = 'Medical record is locked'


class PermissionDenied(DomainError):
    kind = ErrorKind.PERMISSION_DENIED
    default_message = 'Not allowed to perform this action'


HTTP_STATUS_BY_KIND = {
    ErrorKind.NOT_FOUND: status.HTTP_404_NOT_FOUND,
    ErrorKind.ALREADY_EXISTS: status.HTTP_409_CONFLICT,
    ErrorKind.INVALID_VISIT_TYPE: status.HTTP_400_BAD_REQUEST,
    ErrorKind.PRECONDITION_FAILED: status.HTTP_422_UNPROCESSABLE_ENTITY,
    ErrorKind.INVALID_PAYMENT: status.HTTP_400_BAD_REQUEST,
    ErrorKind.OVER_PAYMENT: status.HTTP_400_BAD_REQUEST,
    ErrorKind.INVALID_TRANSITION: status.HTTP_409_CONFLICT,
    ErrorKind.CONCURRENT_MODIFICATION: status.HTTP_409_CONFLICT,
    ErrorKind.RECORD_LOCKED: status.HTTP_409_CONFLICT,
    ErrorKind.PERMISSION_DENIED: status.HTTP_403_FORBIDDEN,
}


def domain_error_response(error):
    """Translate a DomainError into a DRF Response."""
    return Response(
        error.as_dict(),
        status=HTTP_STATUS_BY_KIND.get(error.kind, status.HTTP_400_BAD_REQUEST),
    )
