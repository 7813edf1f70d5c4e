import pytest
from opentelemetry.sdk.metrics import MeterProvider
from opentelemetry.sdk.metrics.export import InMemoryMetricReader
from opentelemetry.sdk.trace import TracerProvider
from opentelemetry.sdk.trace.export import SimpleSpanProcessor
from opentelemetry.sdk.trace.export.in_memory_span_exporter import InMemorySpanExporter

from app import create_app
from telemetry import REQUEST_COUNTER_NAME, build_resource


@pytest.fixture
def span_exporter():
    return InMemorySpanExporter()


@pytest.fixture
def tracer_provider(span_exporter):
    provider = TracerProvider(resource=build_resource())
    provider.add_span_processor(SimpleSpanProcessor(span_exporter))
    yield provider
    provider.shutdown()


@pytest.fixture
def metric_reader():
    return InMemoryMetricReader()


@pytest.fixture
def meter_provider(metric_reader):
    provider = MeterProvider(resource=build_resource(), metric_readers=[metric_reader])
    yield provider
    provider.shutdown()


@pytest.fixture
def client(tracer_provider, meter_provider):
    app = create_app(tracer_provider, meter_provider)
    app.config["TESTING"] = True
    return app.test_client()


def find_metric(metrics_data, name):
    if metrics_data is None:
        return None
    for resource_metrics in metrics_data.resource_metrics:
        for scope_metrics in resource_metrics.scope_metrics:
            for metric in scope_metrics.metrics:
                if metric.name == name:
                    return resource_metrics, metric
    return None


@pytest.fixture
def request_count(metric_reader):
    """Current cumulative value of the request counter."""
    def read():
        found = find_metric(metric_reader.get_metrics_data(), REQUEST_COUNTER_NAME)
        if found is None:
            return 0
        _, metric = found
        return sum(point.value for point in metric.data.data_points)
    return read
