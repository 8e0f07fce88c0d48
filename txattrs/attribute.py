"""
Attribute entity, value validation and UTF-8 truncation.

The collector can only decode three value types for attributes: text,
single-precision and double-precision floats. Anything else is replaced with
an empty string and reported through the ``txattrs`` logger rather than
raised, so instrumentation never crashes the monitored application.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, Union

from txattrs.destinations import (
    AttributeClassification,
    AttributeDestinations,
    has_destination,
)

logger = logging.getLogger(__name__)

# bytes, measured on the UTF-8 encoding
MAX_USER_VALUE_BYTES = 256

AttributeValue = Union[str, float]


def validate_attribute_value(key: str, value: Any) -> tuple[AttributeValue, bool]:
    """
    Check that ``value`` is one of the wire-supported types.

    Returns ``(value, True)`` for ``str`` and ``float`` values. Any other type
    (including ``int`` and ``bool``) returns ``("", False)`` and logs a warning
    naming the key and the rejected type.
    """
    if isinstance(value, (str, float)):
        return value, True

    logger.warning(
        "Attribute at key %s of type %s not allowed. "
        "Only str and float types are accepted as attributes.",
        key,
        type(value).__name__,
    )
    return "", False


def truncate_to_byte_length(text: Any, max_bytes: int = MAX_USER_VALUE_BYTES) -> Any:
    """
    Clamp ``text`` to the longest prefix whose UTF-8 encoding fits ``max_bytes``.

    The cut always lands on a code-point boundary. Values that are not text
    are returned unchanged.
    """
    if not isinstance(text, str):
        return text
    # Each code point takes at most 4 bytes.
    if len(text) * 4 <= max_bytes:
        return text
    if len(text.encode("utf-8", "surrogatepass")) <= max_bytes:
        return text

    size = 0
    for index, char in enumerate(text):
        size += len(char.encode("utf-8", "surrogatepass"))
        if size > max_bytes:
            return text[:index]
    return text


@dataclass(frozen=True)
class Attribute:
    """
    Immutable key/value fact about a transaction or error.

    ``value`` is checked on every construction path: an unsupported type is
    replaced by ``""`` before the instance becomes visible.
    """

    key: str
    value: AttributeValue
    classification: AttributeClassification
    destinations: AttributeDestinations = AttributeDestinations.NONE

    def __post_init__(self) -> None:
        value, ok = validate_attribute_value(self.key, self.value)
        if not ok:
            object.__setattr__(self, "value", value)

    def has_destination(self, destination: AttributeDestinations) -> bool:
        return has_destination(self, destination)


__all__ = [
    "MAX_USER_VALUE_BYTES",
    "AttributeValue",
    "Attribute",
    "validate_attribute_value",
    "truncate_to_byte_length",
]
