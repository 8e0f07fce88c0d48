"""
Tests for txattrs.instrumentor — writing attributes onto OTel spans.
"""

from datetime import timedelta

import pytest

from opentelemetry.sdk.resources import Resource
from opentelemetry.sdk.trace import TracerProvider
from opentelemetry.sdk.trace.export import SimpleSpanProcessor
from opentelemetry.sdk.trace.export.in_memory_span_exporter import InMemorySpanExporter

from txattrs import enforcement
from txattrs.builders import (
    build_cat_trip_id_attributes,
    build_custom_attribute,
    build_duration_attribute,
    build_error_class_attribute,
)
from txattrs.destinations import AttributeDestinations
from txattrs.instrumentor import AttributeInstrumentor
from txattrs.policies import SecurityPoliciesConfiguration

TE = AttributeDestinations.TRANSACTION_EVENT
EE = AttributeDestinations.ERROR_EVENT
TT = AttributeDestinations.TRANSACTION_TRACE


# ===================================================================
# Fixtures
# ===================================================================

@pytest.fixture
def exporter():
    return InMemorySpanExporter()


@pytest.fixture
def tracer(exporter):
    """A real SDK tracer exporting into memory."""
    provider = TracerProvider(resource=Resource.create({"service.name": "txattrs-test"}))
    provider.add_span_processor(SimpleSpanProcessor(exporter))
    yield provider.get_tracer("test")
    provider.shutdown()


@pytest.fixture(autouse=True)
def reset_policies():
    enforcement.reset_security_policies()
    yield
    enforcement.reset_security_policies()


@pytest.fixture
def attributes():
    return [
        build_duration_attribute(timedelta(milliseconds=1500)),
        build_error_class_attribute("ValueError"),
        build_custom_attribute("plan", "gold"),
        *build_cat_trip_id_attributes("abc"),
    ]


def _finished_attributes(exporter):
    spans = exporter.get_finished_spans()
    assert len(spans) == 1
    return dict(spans[0].attributes)


# ===================================================================
# record()
# ===================================================================

class TestRecord:

    def test_sets_matching_attributes_on_current_span(self, tracer, exporter, attributes):
        instrumentor = AttributeInstrumentor()
        with tracer.start_as_current_span("transaction"):
            written = instrumentor.record(attributes, TE)
        assert written == {"duration": 1.5, "plan": "gold", "nr.tripId": "abc"}
        assert _finished_attributes(exporter) == written

    def test_explicit_span(self, tracer, exporter, attributes):
        instrumentor = AttributeInstrumentor()
        span = tracer.start_span("transaction")
        instrumentor.record(attributes, TT, span=span)
        span.end()
        assert _finished_attributes(exporter) == {"plan": "gold", "trip_id": "abc"}

    def test_explicit_policies_apply(self, tracer, exporter, attributes):
        registry = SecurityPoliciesConfiguration({"custom_parameters": {"enabled": False}})
        instrumentor = AttributeInstrumentor(policies=registry)
        with tracer.start_as_current_span("transaction"):
            written = instrumentor.record(attributes, TE)
        assert "plan" not in written
        assert "plan" not in _finished_attributes(exporter)

    def test_installed_policies_picked_up_at_call_time(self, tracer, attributes):
        instrumentor = AttributeInstrumentor()
        enforcement.configure_security_policies({"custom_parameters": {"enabled": False}})
        with tracer.start_as_current_span("transaction"):
            written = instrumentor.record(attributes, TE)
        assert "plan" not in written

    def test_start_span_without_provider(self, attributes):
        instrumentor = AttributeInstrumentor(tracer_name="txattrs-test")
        with instrumentor.start_span("transaction"):
            written = instrumentor.record(attributes, TE)
        assert written["duration"] == 1.5

    def test_user_attribute_cannot_replace_intrinsic(self, tracer, exporter, caplog):
        instrumentor = AttributeInstrumentor()
        colliding = [
            build_duration_attribute(timedelta(seconds=2)),
            build_custom_attribute("duration", "hacked"),
        ]
        with tracer.start_as_current_span("transaction"):
            written = instrumentor.record(colliding, TE)
        assert written == {"duration": 2.0}
        assert _finished_attributes(exporter) == {"duration": 2.0}
        assert "duration" in caplog.text

    def test_intrinsic_replaces_earlier_user_attribute(self, tracer):
        instrumentor = AttributeInstrumentor()
        colliding = [
            build_custom_attribute("error.class", "Spoofed"),
            build_error_class_attribute("ValueError"),
        ]
        with tracer.start_as_current_span("transaction"):
            written = instrumentor.record(colliding, EE)
        assert written == {"error.class": "ValueError"}

    def test_no_span_is_harmless(self, attributes):
        instrumentor = AttributeInstrumentor()
        written = instrumentor.record(attributes, EE)
        assert written == {"duration": 1.5, "error.class": "ValueError", "plan": "gold"}


# ===================================================================
# record_event()
# ===================================================================

class TestRecordEvent:

    def test_adds_span_event(self, tracer, exporter, attributes):
        instrumentor = AttributeInstrumentor()
        with tracer.start_as_current_span("transaction"):
            instrumentor.record_event("TransactionError", attributes, EE)
        span = exporter.get_finished_spans()[0]
        assert len(span.events) == 1
        event = span.events[0]
        assert event.name == "TransactionError"
        assert dict(event.attributes) == {
            "duration": 1.5,
            "error.class": "ValueError",
            "plan": "gold",
        }


# ===================================================================
# Callback
# ===================================================================

class TestCallback:

    def test_callback_receives_written_mapping(self, tracer, attributes):
        received = []
        instrumentor = AttributeInstrumentor(attribute_callback=received.append)
        with tracer.start_as_current_span("transaction"):
            written = instrumentor.record(attributes, TE)
        assert received == [written]

    def test_callback_failure_is_logged_not_raised(self, tracer, attributes, caplog):
        def broken(_collected):
            raise RuntimeError("queue full")

        instrumentor = AttributeInstrumentor(attribute_callback=broken)
        with tracer.start_as_current_span("transaction"):
            instrumentor.record(attributes, TE)
        assert "queue full" in caplog.text
