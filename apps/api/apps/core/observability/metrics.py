"""
Metrics instrumentation.

Prometheus counters, histograms and gauges for the billing and visit
lifecycle flows.
"""
import logging
import time
from functools import wraps

from prometheus_client import Counter, Gauge, Histogram

logger = logging.getLogger(__name__)


class MetricsRegistry:
    """
    Central metrics registry.

    Provides typed access to all application metrics. Instantiated once per
    process (prometheus_client refuses duplicate registrations).
    """

    def __init__(self):
        self._setup_metrics()

    def _create_counter(self, name, description, labels=None):
        return Counter(name, description, labels or [])

    def _create_histogram(self, name, description, labels=None, buckets=None):
        if buckets:
            return Histogram(name, description, labels or [], buckets=buckets)
        return Histogram(name, description, labels or [])

    def _create_gauge(self, name, description, labels=None):
        return Gauge(name, description, labels or [])

    def _setup_metrics(self):
        """Setup all application metrics."""

        # ===================================================================
        # HTTP Metrics
        # ===================================================================
        self.http_requests_total = self._create_counter(
            'http_requests_total',
            'Total HTTP requests',
            ['path', 'method', 'status']
        )

        self.http_request_duration_seconds = self._create_histogram(
            'http_request_duration_seconds',
            'HTTP request duration in seconds',
            ['path', 'method'],
            buckets=[0.005, 0.01, 0.025, 0.05, 0.1, 0.25, 0.5, 1.0, 2.5, 5.0, 10.0]
        )

        self.exceptions_total = self._create_counter(
            'exceptions_total',
            'Total exceptions',
            ['exception_type', 'location']
        )

        # ===================================================================
        # Billing Metrics
        # ===================================================================
        self.billing_created_total = self._create_counter(
            'billing_created_total',
            'Billings created from aggregation',
            ['variant', 'result']  # variant: checkout|discharge
        )

        self.billing_refreshed_total = self._create_counter(
            'billing_refreshed_total',
            'Billing re-aggregations',
            ['mode', 'result']  # mode: replace|append
        )

        self.billing_items_created_total = self._create_counter(
            'billing_items_created_total',
            'Billing items created',
            ['item_type']
        )

        self.billing_aggregation_duration_seconds = self._create_histogram(
            'billing_aggregation_duration_seconds',
            'Duration of charge source aggregation',
            buckets=[0.005, 0.01, 0.025, 0.05, 0.1, 0.25, 0.5, 1.0]
        )

        self.billing_payments_total = self._create_counter(
            'billing_payments_total',
            'Payments processed',
            ['method', 'result']
        )

        self.billing_payment_duration_seconds = self._create_histogram(
            'billing_payment_duration_seconds',
            'Duration of payment processing',
            buckets=[0.01, 0.05, 0.1, 0.25, 0.5, 1.0, 2.5]
        )

        self.billing_overpayment_blocked_total = self._create_counter(
            'billing_overpayment_blocked_total',
            'Blocked over-payment attempts'
        )

        self.billing_concurrent_modification_total = self._create_counter(
            'billing_concurrent_modification_total',
            'Stale version tokens rejected'
        )

        self.billing_outstanding_amount = self._create_gauge(
            'billing_outstanding_amount',
            'Remaining amount of the last touched billing',
        )

        self.document_number_conflicts_total = self._create_counter(
            'document_number_conflicts_total',
            'Daily document numbers redrawn after a unique clash',
            ['prefix']
        )

        # ===================================================================
        # Visit / Clinical Metrics
        # ===================================================================
        self.visit_transition_total = self._create_counter(
            'visit_transition_total',
            'Visit status transitions',
            ['from_status', 'to_status', 'result']
        )

        self.medical_record_lock_total = self._create_counter(
            'medical_record_lock_total',
            'Medical record lock/unlock operations',
            ['action', 'result']  # action: lock|unlock
        )

        self.discharge_gate_checks_total = self._create_counter(
            'discharge_gate_checks_total',
            'Discharge gate evaluations',
            ['allowed', 'reason']
        )

        self.discharge_summaries_total = self._create_counter(
            'discharge_summaries_total',
            'Discharge summaries created',
            ['result']
        )

    def track_duration(self, histogram_metric):
        """
        Decorator to track function duration.

        Usage:
            @metrics.track_duration(metrics.billing_payment_duration_seconds)
            def process_payment(billing_id, payment_request, actor):
                ...
        """
        def decorator(func):
            @wraps(func)
            def wrapper(*args, **kwargs):
                start_time = time.time()
                try:
                    return func(*args, **kwargs)
                finally:
                    histogram_metric.observe(time.time() - start_time)
            return wrapper
        return decorator


# Global metrics instance
metrics = MetricsRegistry()
