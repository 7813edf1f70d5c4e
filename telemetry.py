"""
OpenTelemetry wiring for the HTTP server.

Two process-wide pipelines, both pushing OTLP over plaintext gRPC to the same
collector:

- traces: OTLPSpanExporter -> BatchSpanProcessor -> TracerProvider
- metrics: OTLPMetricExporter -> PeriodicExportingMetricReader -> MeterProvider

Export failures (collector down, network errors) stay inside the SDK's
background threads; they are logged by the SDK and never reach a request.
"""

import functools
import logging

from flask import current_app, request
from opentelemetry.exporter.otlp.proto.grpc.metric_exporter import OTLPMetricExporter
from opentelemetry.exporter.otlp.proto.grpc.trace_exporter import OTLPSpanExporter
from opentelemetry.propagate import extract
from opentelemetry.sdk.metrics import MeterProvider
from opentelemetry.sdk.metrics.export import PeriodicExportingMetricReader
from opentelemetry.sdk.resources import SERVICE_NAME, Resource
from opentelemetry.sdk.trace import TracerProvider
from opentelemetry.sdk.trace.export import BatchSpanProcessor
from opentelemetry.trace import SpanKind

import config

logger = logging.getLogger(__name__)

REQUEST_COUNTER_NAME = "http_server_requests_total"


def build_resource():
    """Resource attached to every span and metric this process exports."""
    return Resource.create({SERVICE_NAME: config.SERVICE_NAME})


# -------- TRACES --------
def init_tracer(endpoint=config.COLLECTOR_ENDPOINT):
    """
    Build the trace pipeline and return its TracerProvider.

    Raises whatever the exporter raises if it cannot be constructed. An
    unreachable collector is not an error here: the exporter connects lazily
    and the batch processor drops what it cannot send.
    """
    exporter = OTLPSpanExporter(endpoint=endpoint, insecure=True)

    provider = TracerProvider(resource=build_resource())
    provider.add_span_processor(BatchSpanProcessor(exporter))

    logger.info("Tracing initialized: %s -> %s", config.SERVICE_NAME, endpoint)
    return provider


# -------- METRICS --------
def init_meter(endpoint=config.COLLECTOR_ENDPOINT,
               export_interval_millis=config.METRIC_EXPORT_INTERVAL_MILLIS):
    """Build the metric pipeline and return its MeterProvider."""
    exporter = OTLPMetricExporter(endpoint=endpoint, insecure=True)
    reader = PeriodicExportingMetricReader(exporter, export_interval_millis=export_interval_millis)

    provider = MeterProvider(resource=build_resource(), metric_readers=[reader])

    logger.info(
        "Metrics initialized: %s -> %s every %dms",
        config.SERVICE_NAME, endpoint, export_interval_millis,
    )
    return provider


def create_request_counter(meter):
    return meter.create_counter(
        REQUEST_COUNTER_NAME,
        unit="1",
        description="Total number of HTTP requests received",
    )


# -------- PER-REQUEST INSTRUMENTATION --------
def instrumented(name, tracer, counter):
    """
    Wrap a Flask view in a SERVER span called ``name`` and count the request.

    The span's parent comes from the incoming trace headers, if any. The counter
    is bumped before the view runs, so client errors are counted too. The span
    is ended on every path, including an exception escaping the view.
    """
    def decorator(view):
        @functools.wraps(view)
        def wrapper(*args, **kwargs):
            parent = extract(request.headers)
            with tracer.start_as_current_span(name, context=parent, kind=SpanKind.SERVER) as span:
                counter.add(1)
                span.set_attribute("http.request.method", request.method)
                if request.url_rule is not None:
                    span.set_attribute("http.route", request.url_rule.rule)

                response = current_app.make_response(view(*args, **kwargs))
                span.set_attribute("http.response.status_code", response.status_code)
                return response
        return wrapper
    return decorator


# -------- SHUTDOWN --------
def shutdown_telemetry(tracer_provider, meter_provider,
                       timeout_millis=config.SHUTDOWN_TIMEOUT_MILLIS):
    """
    Flush and stop both pipelines.

    Best effort: if the collector is unreachable, pending data is dropped once
    the timeout runs out.
    """
    if not tracer_provider.force_flush(timeout_millis):
        logger.warning("Timed out flushing spans after %dms", timeout_millis)
    tracer_provider.shutdown()

    meter_provider.shutdown(timeout_millis=timeout_millis)
    logger.info("Telemetry shut down")
