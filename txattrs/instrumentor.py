"""
Attribute Instrumentor
======================

Bridges transaction attributes to OpenTelemetry spans. For one output
destination it keeps the attributes whose bitmask covers that destination,
applies the installed security policies and writes the survivors onto a span,
either as span attributes or as a single span event.

Usage:
    from txattrs import AttributeInstrumentor, AttributeDestinations
    from txattrs.builders import build_duration_attribute, build_custom_attribute

    instrumentor = AttributeInstrumentor()
    instrumentor.record(
        [build_duration_attribute(elapsed), build_custom_attribute("plan", "gold")],
        AttributeDestinations.TRANSACTION_EVENT,
    )
"""

import logging
from typing import Any, Callable, Iterable, Optional

from opentelemetry import trace
from opentelemetry.trace import Span

from txattrs.attribute import Attribute
from txattrs.destinations import AttributeClassification, AttributeDestinations
from txattrs.enforcement import filter_attributes
from txattrs.policies import SecurityPoliciesConfiguration

logger = logging.getLogger(__name__)


class AttributeInstrumentor:
    """
    Writes destination-filtered attributes onto OTel spans.

    Responsibilities:
    1. Selects the attributes eligible for a destination (exact-subset match).
    2. Applies security policies (explicit registry, else the installed one).
    3. Sets the result on the span and hands it to ``attribute_callback``.
    """

    def __init__(
        self,
        tracer_name: str = "txattrs",
        policies: Optional[SecurityPoliciesConfiguration] = None,
        attribute_callback: Optional[Callable[[dict[str, Any]], None]] = None,
    ):
        """
        Args:
            tracer_name: OTel tracer name used by ``start_span``.
            policies: Security policies to apply. When None, the registry
                installed with ``configure_security_policies`` is used at
                call time, so refreshes are picked up.
            attribute_callback: Optional callback invoked with each filtered
                ``{key: value}`` mapping (e.g. to feed an event queue).
        """
        self.tracer_name = tracer_name
        self.policies = policies
        self.attribute_callback = attribute_callback
        self._tracer = trace.get_tracer(tracer_name)

    def start_span(self, name: str, **kwargs: Any):
        """Start a span as current on this instrumentor's tracer."""
        return self._tracer.start_as_current_span(name, **kwargs)

    def collect(
        self,
        attributes: Iterable[Attribute],
        destination: AttributeDestinations,
    ) -> dict[str, Any]:
        """
        Return ``{key: value}`` for the attributes allowed at ``destination``.

        A user attribute never replaces an intrinsic or agent attribute with
        the same key; it is dropped with a warning, whichever came first.
        """
        collected: dict[str, Any] = {}
        owners: dict[str, AttributeClassification] = {}
        for attribute in filter_attributes(attributes, destination, self.policies):
            owner = owners.get(attribute.key)
            if (
                owner is not None
                and owner is not AttributeClassification.USER_ATTRIBUTES
                and attribute.classification is AttributeClassification.USER_ATTRIBUTES
            ):
                logger.warning(
                    "Dropping user attribute %s: the key is already used by %s.",
                    attribute.key,
                    owner.name,
                )
                continue
            collected[attribute.key] = attribute.value
            owners[attribute.key] = attribute.classification
        return collected

    def _notify(self, collected: dict[str, Any]) -> None:
        if self.attribute_callback:
            try:
                self.attribute_callback(collected)
            except Exception as e:
                logger.error(f"Attribute callback failed: {e}")

    def record(
        self,
        attributes: Iterable[Attribute],
        destination: AttributeDestinations,
        span: Optional[Span] = None,
    ) -> dict[str, Any]:
        """
        Set the eligible attributes on ``span`` (the current span by default).

        Returns the mapping that was written.
        """
        if span is None:
            span = trace.get_current_span()

        collected = self.collect(attributes, destination)
        if collected:
            span.set_attributes(collected)
        self._notify(collected)
        return collected

    def record_event(
        self,
        event_name: str,
        attributes: Iterable[Attribute],
        destination: AttributeDestinations,
        span: Optional[Span] = None,
    ) -> dict[str, Any]:
        """Add one span event carrying the eligible attributes."""
        if span is None:
            span = trace.get_current_span()

        collected = self.collect(attributes, destination)
        span.add_event(event_name, attributes=collected)
        self._notify(collected)
        return collected
