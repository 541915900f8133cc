"""
Tracing support over the OpenTelemetry API.

Without a configured SDK the API hands out non-recording spans, so the
helpers below are safe to call in every environment.
"""
import logging
from contextlib import contextmanager
from typing import Any, Dict, Optional

from opentelemetry import trace
from opentelemetry.trace import SpanKind

logger = logging.getLogger(__name__)

tracer = trace.get_tracer('visit_billing')

SPAN_KINDS = {
    'server': SpanKind.SERVER,
    'client': SpanKind.CLIENT,
    'internal': SpanKind.INTERNAL,
}


@contextmanager
def trace_span(
    name: str,
    kind: Optional[str] = None,
    attributes: Optional[Dict[str, Any]] = None
):
    """
    Context manager for creating trace spans.

    Args:
        name: Span name
        kind: Span kind (server, client, internal)
        attributes: Span attributes

    Usage:
        with trace_span('process_payment', attributes={'billing_id': str(billing.id)}):
            # ... operation ...
    """
    span_kind = SPAN_KINDS.get(kind, SpanKind.INTERNAL)

    with tracer.start_as_current_span(name, kind=span_kind) as span:
        if attributes:
            for key, value in attributes.items():
                span.set_attribute(key, value)

        try:
            yield span
        except Exception as e:
            span.set_attribute('error', True)
            span.set_attribute('error.type', e.__class__.__name__)
            # Domain errors carry a stable machine-readable kind
            kind_value = getattr(e, 'kind', None)
            if kind_value:
                span.set_attribute('error.kind', str(kind_value))
            raise


def add_span_attribute(key: str, value: Any):
    """Add attribute to the current span if it is recording."""
    span = trace.get_current_span()
    if span and span.is_recording():
        span.set_attribute(key, value)


def current_trace_id() -> Optional[str]:
    """Hex trace id of the active span, or None outside a valid span."""
    ctx = trace.get_current_span().get_span_context()
    if not ctx.is_valid:
        return None
    return format(ctx.trace_id, '032x')
