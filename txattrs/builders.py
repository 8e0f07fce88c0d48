"""
Attribute Builders
==================

One construction function per attribute kind. Each kind's key,
classification and destination bitmask live in ``ATTRIBUTE_DEFINITIONS``,
a static table built once at import time; builders never derive them from
their input. The only data-dependent destination is the ``type`` intrinsic.

Builders convert raw inputs to the on-wire representation (durations become
seconds as floats, timestamps become Unix seconds), truncate user-supplied
text to ``MAX_USER_VALUE_BYTES`` and let ``Attribute`` validate the value.
They never raise on bad input: a value of the wrong type degrades to ``""``.

Usage:
    from txattrs.builders import build_duration_attribute, build_cat_trip_id_attributes

    duration = build_duration_attribute(timedelta(milliseconds=1500))
    trip_id, nr_trip_id = build_cat_trip_id_attributes("abc")
"""

from __future__ import annotations

import enum
import logging
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from types import MappingProxyType
from typing import Any, Mapping, Optional, Union

from txattrs.attribute import Attribute, truncate_to_byte_length
from txattrs.destinations import (
    AttributeClassification,
    AttributeDestinations,
    TypeAttributeValue,
)

logger = logging.getLogger(__name__)

_INTRINSICS = AttributeClassification.INTRINSICS
_AGENT = AttributeClassification.AGENT_ATTRIBUTES
_USER = AttributeClassification.USER_ATTRIBUTES

_TT = AttributeDestinations.TRANSACTION_TRACE
_TE = AttributeDestinations.TRANSACTION_EVENT
_ET = AttributeDestinations.ERROR_TRACE
_EE = AttributeDestinations.ERROR_EVENT
_JS = AttributeDestinations.JAVASCRIPT_AGENT

REQUEST_PARAMETER_PREFIX = "request.parameters."

_EPOCH = datetime(1970, 1, 1, tzinfo=timezone.utc)


class AttributeKind(str, enum.Enum):
    """Every attribute the builders can produce."""

    QUEUE_WAIT_TIME = "queue_wait_time"
    QUEUE_DURATION = "queue_duration"
    ORIGINAL_URL = "original_url"
    REQUEST_URI = "request_uri"
    REQUEST_REFERER = "request_referer"
    REQUEST_PARAMETER = "request_parameter"
    RESPONSE_STATUS = "response_status"
    CLIENT_CROSS_PROCESS_ID = "client_cross_process_id"
    CAT_TRIP_ID = "cat_trip_id"
    CAT_NR_TRIP_ID = "cat_nr_trip_id"
    BROWSER_TRIP_ID = "browser_trip_id"
    CAT_PATH_HASH = "cat_path_hash"
    CAT_NR_PATH_HASH = "cat_nr_path_hash"
    CAT_REFERRING_PATH_HASH = "cat_referring_path_hash"
    CAT_REFERRING_TRANSACTION_GUID = "cat_referring_transaction_guid"
    CAT_NR_REFERRING_TRANSACTION_GUID = "cat_nr_referring_transaction_guid"
    CAT_ALTERNATE_PATH_HASHES = "cat_alternate_path_hashes"
    CUSTOM_ERROR = "custom_error"
    ERROR_TYPE = "error_type"
    ERROR_MESSAGE = "error_message"
    TIMESTAMP = "timestamp"
    TRANSACTION_NAME = "transaction_name"
    ERROR_TRANSACTION_NAME = "error_transaction_name"
    GUID = "guid"
    SYNTHETICS_RESOURCE_ID = "synthetics_resource_id"
    SYNTHETICS_RESOURCE_ID_TRACE = "synthetics_resource_id_trace"
    SYNTHETICS_JOB_ID = "synthetics_job_id"
    SYNTHETICS_JOB_ID_TRACE = "synthetics_job_id_trace"
    SYNTHETICS_MONITOR_ID = "synthetics_monitor_id"
    SYNTHETICS_MONITOR_ID_TRACE = "synthetics_monitor_id_trace"
    DURATION = "duration"
    WEB_DURATION = "web_duration"
    TOTAL_TIME = "total_time"
    CPU_TIME = "cpu_time"
    APDEX_PERF_ZONE = "apdex_perf_zone"
    EXTERNAL_DURATION = "external_duration"
    EXTERNAL_CALL_COUNT = "external_call_count"
    DATABASE_DURATION = "database_duration"
    DATABASE_CALL_COUNT = "database_call_count"
    ERROR_CLASS = "error_class"
    TYPE = "type"
    CUSTOM = "custom"
    ERROR_DOT_MESSAGE = "error_dot_message"


@dataclass(frozen=True)
class AttributeDefinition:
    """
    Fixed metadata for one attribute kind.

    ``key`` is empty for kinds whose key is supplied by the application
    (custom and custom error attributes); for request parameters it is the
    prefix the parameter name is appended to.
    """

    key: str
    classification: AttributeClassification
    destinations: AttributeDestinations
    user_supplied: bool = False

    def build(self, value: Any, *, key: Optional[str] = None) -> Attribute:
        """Create an Attribute of this kind, truncating user-supplied text."""
        actual_key = self.key if key is None else key
        if self.user_supplied:
            actual_key = truncate_to_byte_length(actual_key)
            value = truncate_to_byte_length(value)
            if not actual_key:
                logger.warning(
                    "Attribute with classification %s built with an empty key.",
                    self.classification.name,
                )
        return Attribute(actual_key, value, self.classification, self.destinations)


def _define(
    key: str,
    classification: AttributeClassification,
    destinations: AttributeDestinations,
    user_supplied: bool = False,
) -> AttributeDefinition:
    return AttributeDefinition(key, classification, destinations, user_supplied)


ATTRIBUTE_DEFINITIONS: Mapping[AttributeKind, AttributeDefinition] = MappingProxyType({
    # Request and response context
    AttributeKind.QUEUE_WAIT_TIME: _define("queue_wait_time_ms", _AGENT, _ET | _TT | _EE),
    AttributeKind.QUEUE_DURATION: _define("queueDuration", _INTRINSICS, _TE | _EE),
    AttributeKind.ORIGINAL_URL: _define("original_url", _AGENT, _ET | _TT | _EE),
    AttributeKind.REQUEST_URI: _define("request_uri", _AGENT, _TE | _EE),
    AttributeKind.REQUEST_REFERER: _define("request.referer", _AGENT, _ET | _TT | _EE),
    # Included only through configured include/exclude rules.
    AttributeKind.REQUEST_PARAMETER: _define(
        REQUEST_PARAMETER_PREFIX, _AGENT, AttributeDestinations.NONE, user_supplied=True
    ),
    AttributeKind.RESPONSE_STATUS: _define("response.status", _AGENT, _ET | _TT | _TE | _EE),
    # Cross application tracing
    AttributeKind.CLIENT_CROSS_PROCESS_ID: _define("client_cross_process_id", _INTRINSICS, _ET | _TT),
    AttributeKind.CAT_TRIP_ID: _define("trip_id", _INTRINSICS, _ET | _TT),
    AttributeKind.CAT_NR_TRIP_ID: _define("nr.tripId", _INTRINSICS, _TE),
    AttributeKind.BROWSER_TRIP_ID: _define("nr.tripId", _AGENT, _JS),
    AttributeKind.CAT_PATH_HASH: _define("path_hash", _INTRINSICS, _ET | _TT),
    AttributeKind.CAT_NR_PATH_HASH: _define("nr.pathHash", _INTRINSICS, _TE),
    AttributeKind.CAT_REFERRING_PATH_HASH: _define("nr.referringPathHash", _INTRINSICS, _TE),
    AttributeKind.CAT_REFERRING_TRANSACTION_GUID: _define(
        "referring_transaction_guid", _INTRINSICS, _ET | _TT
    ),
    AttributeKind.CAT_NR_REFERRING_TRANSACTION_GUID: _define(
        "nr.referringTransactionGuid", _INTRINSICS, _TE | _EE
    ),
    AttributeKind.CAT_ALTERNATE_PATH_HASHES: _define("nr.alternatePathHashes", _INTRINSICS, _TE),
    # Errors
    AttributeKind.CUSTOM_ERROR: _define("", _USER, _EE | _ET, user_supplied=True),
    AttributeKind.ERROR_TYPE: _define("errorType", _INTRINSICS, _TE),
    AttributeKind.ERROR_MESSAGE: _define("errorMessage", _INTRINSICS, _TE),
    AttributeKind.ERROR_CLASS: _define("error.class", _INTRINSICS, _EE),
    AttributeKind.ERROR_DOT_MESSAGE: _define("error.message", _INTRINSICS, _EE),
    # Transaction identity
    AttributeKind.TIMESTAMP: _define("timestamp", _INTRINSICS, _TE | _EE),
    AttributeKind.TRANSACTION_NAME: _define("name", _INTRINSICS, _TE),
    AttributeKind.ERROR_TRANSACTION_NAME: _define("transactionName", _INTRINSICS, _EE),
    AttributeKind.GUID: _define("nr.guid", _INTRINSICS, _TE | _EE),
    AttributeKind.TYPE: _define("type", _INTRINSICS, AttributeDestinations.NONE),
    # Synthetics
    AttributeKind.SYNTHETICS_RESOURCE_ID: _define("nr.syntheticsResourceId", _INTRINSICS, _TE | _EE),
    AttributeKind.SYNTHETICS_RESOURCE_ID_TRACE: _define("synthetics_resource_id", _INTRINSICS, _TT),
    AttributeKind.SYNTHETICS_JOB_ID: _define("nr.syntheticsJobId", _INTRINSICS, _TE | _EE),
    AttributeKind.SYNTHETICS_JOB_ID_TRACE: _define("synthetics_job_id", _INTRINSICS, _TT),
    AttributeKind.SYNTHETICS_MONITOR_ID: _define("nr.syntheticsMonitorId", _INTRINSICS, _TE | _EE),
    AttributeKind.SYNTHETICS_MONITOR_ID_TRACE: _define("synthetics_monitor_id", _INTRINSICS, _TT),
    # Timings
    AttributeKind.DURATION: _define("duration", _INTRINSICS, _TE | _EE),
    AttributeKind.WEB_DURATION: _define("webDuration", _INTRINSICS, _TE),
    AttributeKind.TOTAL_TIME: _define("totalTime", _INTRINSICS, _TE | _TT),
    AttributeKind.CPU_TIME: _define("cpuTime", _INTRINSICS, _TE | _TT),
    AttributeKind.APDEX_PERF_ZONE: _define("nr.apdexPerfZone", _INTRINSICS, _TE),
    AttributeKind.EXTERNAL_DURATION: _define("externalDuration", _INTRINSICS, _TE | _EE),
    AttributeKind.EXTERNAL_CALL_COUNT: _define("externalCallCount", _INTRINSICS, _TE | _EE),
    AttributeKind.DATABASE_DURATION: _define("databaseDuration", _INTRINSICS, _TE | _EE),
    AttributeKind.DATABASE_CALL_COUNT: _define("databaseCallCount", _INTRINSICS, _EE | _TE),
    # Application supplied
    AttributeKind.CUSTOM: _define("", _USER, AttributeDestinations.ALL, user_supplied=True),
})

_TYPE_DESTINATIONS: Mapping[str, AttributeDestinations] = MappingProxyType({
    TypeAttributeValue.TRANSACTION.value: _TE,
    TypeAttributeValue.TRANSACTION_ERROR.value: _EE,
})


def _build(kind: AttributeKind, value: Any, *, key: Optional[str] = None) -> Attribute:
    return ATTRIBUTE_DEFINITIONS[kind].build(value, key=key)


def _build_converted(kind: AttributeKind, converted: Any, raw: Any) -> Attribute:
    """Build from a converted value; a failed conversion (None) degrades to ""."""
    if converted is None:
        definition = ATTRIBUTE_DEFINITIONS[kind]
        logger.warning(
            "Attribute at key %s cannot be built from a value of type %s.",
            definition.key,
            type(raw).__name__,
        )
        converted = ""
    return _build(kind, converted)


# ── Conversions (None when the input has the wrong type) ─────────────


def _as_float(value: Any) -> Optional[float]:
    if isinstance(value, (int, float)) and not isinstance(value, bool):
        try:
            return float(value)
        except OverflowError:
            return None
    return None


def _total_seconds(value: Union[timedelta, float]) -> Optional[float]:
    if isinstance(value, timedelta):
        return value.total_seconds()
    return _as_float(value)


def _total_milliseconds_text(value: Union[timedelta, float]) -> Optional[str]:
    if isinstance(value, timedelta):
        milliseconds = value / timedelta(milliseconds=1)
    else:
        seconds = _as_float(value)
        if seconds is None:
            return None
        milliseconds = seconds * 1000.0
    text = repr(milliseconds)
    if text.endswith(".0"):
        text = text[:-2]
    return text


def _unix_seconds(value: datetime) -> Optional[float]:
    """Naive datetimes are taken as UTC."""
    if not isinstance(value, datetime):
        return None
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    return (value - _EPOCH).total_seconds()


# ── Request and response ─────────────────────────────────────────────


def build_queue_wait_time_attribute(queue_time: timedelta) -> Attribute:
    """Queue time in milliseconds, reported as text."""
    return _build_converted(
        AttributeKind.QUEUE_WAIT_TIME, _total_milliseconds_text(queue_time), queue_time
    )


def build_queue_duration_attribute(queue_time: timedelta) -> Attribute:
    return _build_converted(AttributeKind.QUEUE_DURATION, _total_seconds(queue_time), queue_time)


def build_original_url_attribute(value: str) -> Attribute:
    return _build(AttributeKind.ORIGINAL_URL, value)


def build_request_uri_attribute(value: str) -> Attribute:
    return _build(AttributeKind.REQUEST_URI, value)


def build_request_referer_attribute(value: str) -> Attribute:
    return _build(AttributeKind.REQUEST_REFERER, value)


def build_request_parameter_attribute(key: str, value: str) -> Attribute:
    """
    Build a ``request.parameters.{key}`` attribute.

    The attribute carries no default destination: whether it is reported is
    decided by the caller's include/exclude rules, not by this builder.
    Both the full key and the value are truncated.
    """
    return _build(
        AttributeKind.REQUEST_PARAMETER,
        value,
        key=f"{REQUEST_PARAMETER_PREFIX}{key}",
    )


def build_response_status_attribute(value: str) -> Attribute:
    return _build(AttributeKind.RESPONSE_STATUS, value)


# ── Cross application tracing ────────────────────────────────────────


def build_client_cross_process_id_attribute(value: str) -> Attribute:
    return _build(AttributeKind.CLIENT_CROSS_PROCESS_ID, value)


def build_cat_trip_id_attributes(value: str) -> tuple[Attribute, Attribute]:
    """Legacy ``trip_id`` (traces) followed by ``nr.tripId`` (events)."""
    return (
        _build(AttributeKind.CAT_TRIP_ID, value),
        _build(AttributeKind.CAT_NR_TRIP_ID, value),
    )


def build_browser_trip_id_attributes(value: str) -> tuple[Attribute]:
    return (_build(AttributeKind.BROWSER_TRIP_ID, value),)


def build_cat_path_hash_attributes(value: str) -> tuple[Attribute, Attribute]:
    return (
        _build(AttributeKind.CAT_PATH_HASH, value),
        _build(AttributeKind.CAT_NR_PATH_HASH, value),
    )


def build_cat_referring_path_hash_attributes(value: str) -> tuple[Attribute]:
    return (_build(AttributeKind.CAT_REFERRING_PATH_HASH, value),)


def build_cat_referring_transaction_guid_attributes(value: str) -> tuple[Attribute, Attribute]:
    return (
        _build(AttributeKind.CAT_REFERRING_TRANSACTION_GUID, value),
        _build(AttributeKind.CAT_NR_REFERRING_TRANSACTION_GUID, value),
    )


def build_cat_alternate_path_hashes_attributes(value: str) -> tuple[Attribute]:
    return (_build(AttributeKind.CAT_ALTERNATE_PATH_HASHES, value),)


# ── Errors ───────────────────────────────────────────────────────────


def build_custom_error_attribute(key: str, value: Any) -> Attribute:
    """Application-supplied error attribute; key and value are truncated."""
    return _build(AttributeKind.CUSTOM_ERROR, value, key=key)


def build_error_type_attribute(error_type: str) -> Attribute:
    return _build(AttributeKind.ERROR_TYPE, error_type)


def build_error_message_attribute(error_message: str) -> Attribute:
    return _build(AttributeKind.ERROR_MESSAGE, error_message)


def build_error_class_attribute(error_class: str) -> Attribute:
    return _build(AttributeKind.ERROR_CLASS, error_class)


def build_error_dot_message_attribute(error_message: str) -> Attribute:
    return _build(AttributeKind.ERROR_DOT_MESSAGE, error_message)


# ── Transaction identity ─────────────────────────────────────────────


def build_timestamp_attribute(start_time: datetime) -> Attribute:
    """Transaction start as Unix-epoch seconds."""
    return _build_converted(AttributeKind.TIMESTAMP, _unix_seconds(start_time), start_time)


def build_transaction_name_attributes(transaction_name: str) -> tuple[Attribute, Attribute]:
    """``name`` for transaction events, ``transactionName`` for error events."""
    return (
        _build(AttributeKind.TRANSACTION_NAME, transaction_name),
        _build(AttributeKind.ERROR_TRANSACTION_NAME, transaction_name),
    )


def build_guid_attribute(guid: str) -> Attribute:
    return _build(AttributeKind.GUID, guid)


def build_type_attribute(type_value: Union[TypeAttributeValue, str]) -> Attribute:
    """
    The ``type`` intrinsic.

    The destination follows the value: transaction events for
    ``Transaction``, error events for ``TransactionError``, none otherwise.
    """
    name = type_value.value if isinstance(type_value, TypeAttributeValue) else type_value
    destinations = AttributeDestinations.NONE
    if isinstance(name, str):
        destinations = _TYPE_DESTINATIONS.get(name, AttributeDestinations.NONE)
    definition = ATTRIBUTE_DEFINITIONS[AttributeKind.TYPE]
    return Attribute(definition.key, name, definition.classification, destinations)


# ── Synthetics ───────────────────────────────────────────────────────


def build_synthetics_resource_id_attributes(resource_id: str) -> tuple[Attribute, Attribute]:
    return (
        _build(AttributeKind.SYNTHETICS_RESOURCE_ID, resource_id),
        _build(AttributeKind.SYNTHETICS_RESOURCE_ID_TRACE, resource_id),
    )


def build_synthetics_job_id_attributes(job_id: str) -> tuple[Attribute, Attribute]:
    return (
        _build(AttributeKind.SYNTHETICS_JOB_ID, job_id),
        _build(AttributeKind.SYNTHETICS_JOB_ID_TRACE, job_id),
    )


def build_synthetics_monitor_id_attributes(monitor_id: str) -> tuple[Attribute, Attribute]:
    return (
        _build(AttributeKind.SYNTHETICS_MONITOR_ID, monitor_id),
        _build(AttributeKind.SYNTHETICS_MONITOR_ID_TRACE, monitor_id),
    )


# ── Timings ──────────────────────────────────────────────────────────


def build_duration_attribute(transaction_duration: timedelta) -> Attribute:
    return _build_converted(
        AttributeKind.DURATION, _total_seconds(transaction_duration), transaction_duration
    )


def build_web_duration_attribute(web_transaction_duration: timedelta) -> Attribute:
    return _build_converted(
        AttributeKind.WEB_DURATION, _total_seconds(web_transaction_duration), web_transaction_duration
    )


def build_total_time_attribute(total_time: timedelta) -> Attribute:
    return _build_converted(AttributeKind.TOTAL_TIME, _total_seconds(total_time), total_time)


def build_cpu_time_attribute(cpu_time: timedelta) -> Attribute:
    return _build_converted(AttributeKind.CPU_TIME, _total_seconds(cpu_time), cpu_time)


def build_apdex_perf_zone_attribute(apdex_perf_zone: str) -> Attribute:
    return _build(AttributeKind.APDEX_PERF_ZONE, apdex_perf_zone)


def build_external_duration_attribute(duration_in_sec: float) -> Attribute:
    return _build_converted(
        AttributeKind.EXTERNAL_DURATION, _as_float(duration_in_sec), duration_in_sec
    )


def build_external_call_count_attribute(count: float) -> Attribute:
    return _build_converted(AttributeKind.EXTERNAL_CALL_COUNT, _as_float(count), count)


def build_database_duration_attribute(duration_in_sec: float) -> Attribute:
    return _build_converted(
        AttributeKind.DATABASE_DURATION, _as_float(duration_in_sec), duration_in_sec
    )


def build_database_call_count_attribute(count: float) -> Attribute:
    return _build_converted(AttributeKind.DATABASE_CALL_COUNT, _as_float(count), count)


# ── Application supplied ─────────────────────────────────────────────


def build_custom_attribute(key: str, value: Any) -> Attribute:
    """
    Application-supplied attribute, eligible for every destination.

    Key and value are truncated to ``MAX_USER_VALUE_BYTES``. Values that are
    not ``str`` or ``float`` are replaced by ``""`` with a warning.
    """
    return _build(AttributeKind.CUSTOM, value, key=key)


__all__ = [
    "REQUEST_PARAMETER_PREFIX",
    "AttributeKind",
    "AttributeDefinition",
    "ATTRIBUTE_DEFINITIONS",
    "build_queue_wait_time_attribute",
    "build_queue_duration_attribute",
    "build_original_url_attribute",
    "build_request_uri_attribute",
    "build_request_referer_attribute",
    "build_request_parameter_attribute",
    "build_response_status_attribute",
    "build_client_cross_process_id_attribute",
    "build_cat_trip_id_attributes",
    "build_browser_trip_id_attributes",
    "build_cat_path_hash_attributes",
    "build_cat_referring_path_hash_attributes",
    "build_cat_referring_transaction_guid_attributes",
    "build_cat_alternate_path_hashes_attributes",
    "build_custom_error_attribute",
    "build_error_type_attribute",
    "build_error_message_attribute",
    "build_error_class_attribute",
    "build_error_dot_message_attribute",
    "build_timestamp_attribute",
    "build_transaction_name_attributes",
    "build_guid_attribute",
    "build_type_attribute",
    "build_synthetics_resource_id_attributes",
    "build_synthetics_job_id_attributes",
    "build_synthetics_monitor_id_attributes",
    "build_duration_attribute",
    "build_web_duration_attribute",
    "build_total_time_attribute",
    "build_cpu_time_attribute",
    "build_apdex_perf_zone_attribute",
    "build_external_duration_attribute",
    "build_external_call_count_attribute",
    "build_database_duration_attribute",
    "build_database_call_count_attribute",
    "build_custom_attribute",
]
