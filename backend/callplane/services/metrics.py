"""Prometheus metrics instrumentation for call orchestration.

Metrics exported:
- calls_started_total: Counter of sessions created, by call type and initiator
- calls_ended_total: Counter of sessions reaching a terminal state, by cause
- admission_decisions_total: Counter of reserve outcomes, by outcome and reason
- room_provision_failures_total: Counter of rooms that could not be created

Usage:
    from callplane.services.metrics import calls_started

    calls_started.labels(call_type='audio', initiator='agent').inc()
"""

from prometheus_client import Counter, start_http_server
import logging

logger = logging.getLogger(__name__)

calls_started = Counter(
    'calls_started_total',
    'Call sessions created',
    labelnames=['call_type', 'initiator']
)

calls_ended = Counter(
    'calls_ended_total',
    'Call sessions moved to a terminal state',
    labelnames=['status', 'ended_by']
)

admission_decisions = Counter(
    'admission_decisions_total',
    'Admission reservations by outcome',
    labelnames=['outcome', 'reason']  # outcome: allowed, denied
)

room_provision_failures = Counter(
    'room_provision_failures_total',
    'Provider rooms that could not be created after retries'
)


def start_metrics_server(port: int = 8001):
    """Start Prometheus metrics HTTP server."""
    try:
        start_http_server(port)
        logger.info(f"✅ Metrics server started on port {port}")
    except Exception as e:
        logger.error(f"❌ Failed to start metrics server: {e}")
