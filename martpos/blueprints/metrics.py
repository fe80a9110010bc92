"""
Prometheus metrics and health endpoints.

/metrics is not authenticated and should only be reachable from the
monitoring network.
"""
import os
import time

from flask import Blueprint, Response, request, g, jsonify
from prometheus_client import Counter, Histogram, Gauge, generate_latest, CollectorRegistry, CONTENT_TYPE_LATEST
from prometheus_client import multiprocess, REGISTRY
from sqlalchemy import text

metrics_bp = Blueprint('metrics', __name__)

# Gunicorn workers share metrics through PROMETHEUS_MULTIPROC_DIR
MULTIPROCESS_MODE = os.environ.get('PROMETHEUS_MULTIPROC_DIR') is not None

if MULTIPROCESS_MODE:
    registry = CollectorRegistry()
    multiprocess.MultiProcessCollector(registry)
else:
    registry = REGISTRY

# HTTP Request Metrics
http_requests_total = Counter(
    'http_requests_total',
    'Total HTTP requests',
    ['method', 'endpoint', 'http_status'],
    registry=registry if not MULTIPROCESS_MODE else None
)

http_request_duration_seconds = Histogram(
    'http_request_duration_seconds',
    'HTTP request latency in seconds',
    ['method', 'endpoint'],
    registry=registry if not MULTIPROCESS_MODE else None,
    buckets=(0.005, 0.01, 0.025, 0.05, 0.1, 0.25, 0.5, 1.0, 2.5, 5.0, 10.0)
)

http_requests_in_flight = Gauge(
    'http_requests_in_flight',
    'Number of HTTP requests currently being processed',
    registry=registry if not MULTIPROCESS_MODE else None
)

# Authorization outcomes: outcome is 'admitted' or 'denied', code the denial code
auth_decisions_total = Counter(
    'auth_decisions_total',
    'Authorization decisions',
    ['outcome', 'code'],
    registry=registry if not MULTIPROCESS_MODE else None
)


def record_auth_decision(code=None):
    """Count an admitted request (no code) or a denial with its error code."""
    if code is None:
        auth_decisions_total.labels(outcome='admitted', code='').inc()
    else:
        auth_decisions_total.labels(outcome='denied', code=code).inc()


def setup_metrics_instrumentation(app):
    """Register before/after request hooks that feed the HTTP metrics."""

    @app.before_request
    def before_request_metrics():
        g._prometheus_metrics_start_time = time.time()
        http_requests_in_flight.inc()

    @app.after_request
    def after_request_metrics(response):
        try:
            if hasattr(g, '_prometheus_metrics_start_time'):
                duration = time.time() - g._prometheus_metrics_start_time
                endpoint = request.endpoint or 'unknown'

                http_request_duration_seconds.labels(
                    method=request.method,
                    endpoint=endpoint
                ).observe(duration)

                http_requests_total.labels(
                    method=request.method,
                    endpoint=endpoint,
                    http_status=response.status_code
                ).inc()

                http_requests_in_flight.dec()
        except Exception as e:
            # Metrics never break the response
            app.logger.warning(f"Failed to record metrics: {e}")

        return response


@metrics_bp.route('/metrics')
def metrics():
    """Prometheus-formatted metrics in text/plain."""
    data = generate_latest(registry)
    return Response(data, mimetype=CONTENT_TYPE_LATEST)


@metrics_bp.route('/health')
def health():
    """Liveness plus a database round trip."""
    from martpos.database import get_session

    database = 'ok'
    try:
        get_session().execute(text('SELECT 1'))
    except Exception as e:
        database = f'error: {e.__class__.__name__}'

    status = 200 if database == 'ok' else 503
    return jsonify({
        'success': status == 200,
        'status': 'healthy' if status == 200 else 'degraded',
        'database': database,
    }), status
