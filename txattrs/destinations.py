"""
Attribute Classifications and Destinations
==========================================

Every attribute carries two pieces of metadata fixed at construction:

- a **classification** telling where the value came from (computed by the
  agent, derived from the request context, or supplied by the application);
- a **destination** bitmask listing the output channels (traces, events,
  error payloads, browser agent) the attribute may be reported to.

``has_destination`` is the predicate reporting pipelines use to decide, per
output channel, whether an attribute is eligible.
"""

from __future__ import annotations

import enum
from typing import Any, Optional


class AttributeClassification(enum.Enum):
    """Origin category of an attribute."""

    INTRINSICS = "Intrinsics"
    AGENT_ATTRIBUTES = "AgentAttributes"
    USER_ATTRIBUTES = "UserAttributes"


class AttributeDestinations(enum.IntFlag):
    """Bitmask of output channels an attribute is eligible for."""

    NONE = 0
    TRANSACTION_TRACE = 1 << 0
    TRANSACTION_EVENT = 1 << 1
    ERROR_TRACE = 1 << 2
    JAVASCRIPT_AGENT = 1 << 3
    ERROR_EVENT = 1 << 4

    ALL = (
        TRANSACTION_TRACE
        | TRANSACTION_EVENT
        | ERROR_TRACE
        | JAVASCRIPT_AGENT
        | ERROR_EVENT
    )


class TypeAttributeValue(str, enum.Enum):
    """Values of the ``type`` intrinsic."""

    TRANSACTION = "Transaction"
    TRANSACTION_ERROR = "TransactionError"


def has_destination(attribute: Optional[Any], destination: AttributeDestinations) -> bool:
    """
    Return True when every bit of ``destination`` is set on the attribute.

    A compound query means "all of these", not "any of these": an attribute
    tagged ``TRANSACTION_EVENT`` does not match
    ``TRANSACTION_EVENT | ERROR_EVENT``. A missing attribute matches nothing.
    """
    if attribute is None:
        return False
    return (attribute.destinations & destination) == destination


__all__ = [
    "AttributeClassification",
    "AttributeDestinations",
    "TypeAttributeValue",
    "has_destination",
]
