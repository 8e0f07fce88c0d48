"""
txattrs — Transaction Attributes
================================

Normalized, classified, destination-tagged attributes for a telemetry agent,
governed by collector-supplied security policies.

Quick Start::

    from datetime import timedelta
    from txattrs import AttributeDestinations, has_destination
    from txattrs.builders import build_duration_attribute, build_custom_attribute

    duration = build_duration_attribute(timedelta(milliseconds=1500))
    plan = build_custom_attribute("plan", "gold")

    has_destination(duration, AttributeDestinations.TRANSACTION_EVENT)  # True
    has_destination(duration, AttributeDestinations.TRANSACTION_TRACE)  # False

What txattrs does:
  - Fixes each attribute kind's classification and destinations at creation
  - Truncates application-supplied keys and values to 256 UTF-8 bytes
  - Degrades unsupported value types to "" instead of raising
  - Tracks security policies and reports unknown required ones
  - Copies destination-filtered attributes onto OpenTelemetry spans

What txattrs does NOT do:
  - Serialize attributes for the wire
  - Fetch security policies from the collector
  - Decide which attributes instrumentation records
"""

# ── Attributes ────────────────────────────────────────────────────────

from txattrs.destinations import (
    AttributeClassification,
    AttributeDestinations,
    TypeAttributeValue,
    has_destination,
)
from txattrs.attribute import (
    MAX_USER_VALUE_BYTES,
    Attribute,
    validate_attribute_value,
    truncate_to_byte_length,
)
from txattrs.builders import (
    AttributeKind,
    AttributeDefinition,
    ATTRIBUTE_DEFINITIONS,
)

# ── Security policies ─────────────────────────────────────────────────

from txattrs.policies import (
    KNOWN_POLICIES,
    SecurityPolicy,
    SecurityPolicyState,
    SecurityPoliciesConfiguration,
)
from txattrs.config import SecurityPolicyConfig
from txattrs.enforcement import (
    SecurityPolicyError,
    configure_security_policies,
    reset_security_policies,
    get_security_policies,
    apply_security_policies,
    filter_attributes,
)

# ── OpenTelemetry bridge ──────────────────────────────────────────────

from txattrs.instrumentor import AttributeInstrumentor

__version__ = "0.1.0"
__all__ = [
    # ── Attributes ──
    "AttributeClassification",
    "AttributeDestinations",
    "TypeAttributeValue",
    "has_destination",
    "MAX_USER_VALUE_BYTES",
    "Attribute",
    "validate_attribute_value",
    "truncate_to_byte_length",
    "AttributeKind",
    "AttributeDefinition",
    "ATTRIBUTE_DEFINITIONS",
    # ── Security policies ──
    "KNOWN_POLICIES",
    "SecurityPolicy",
    "SecurityPolicyState",
    "SecurityPoliciesConfiguration",
    "SecurityPolicyConfig",
    "SecurityPolicyError",
    "configure_security_policies",
    "reset_security_policies",
    "get_security_policies",
    "apply_security_policies",
    "filter_attributes",
    # ── OpenTelemetry bridge ──
    "AttributeInstrumentor",
]
