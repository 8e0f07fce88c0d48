"""
Security Policies
=================

Security policies are named on/off switches delivered by the collector. Each
policy in the inbound map carries two flags:

- ``enabled``: whether the category of data collection is allowed;
- ``required``: whether the collector insists the agent understands and
  enforces the policy.

``SecurityPoliciesConfiguration`` is built once per configuration epoch from
that map and never mutated; a refresh builds a new instance. It records every
supplied policy, including names this build does not know, and reports which
known policies were left out and which required policies it cannot enforce.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, Mapping, Optional, Union

logger = logging.getLogger(__name__)

RECORD_SQL = "record_sql"
ATTRIBUTES_INCLUDE = "attributes_include"
ALLOW_RAW_EXCEPTION_MESSAGES = "allow_raw_exception_messages"
CUSTOM_EVENTS = "custom_events"
CUSTOM_PARAMETERS = "custom_parameters"
CUSTOM_INSTRUMENTATION_EDITOR = "custom_instrumentation_editor"

KNOWN_POLICIES: tuple[str, ...] = (
    RECORD_SQL,
    ATTRIBUTES_INCLUDE,
    ALLOW_RAW_EXCEPTION_MESSAGES,
    CUSTOM_EVENTS,
    CUSTOM_PARAMETERS,
    CUSTOM_INSTRUMENTATION_EDITOR,
)


@dataclass(frozen=True)
class SecurityPolicyState:
    """Inbound state of one policy as delivered by the collector."""

    enabled: bool = False
    required: bool = False

    @classmethod
    def from_value(cls, value: PolicyValue) -> SecurityPolicyState:
        """
        Accept a state, a ``{"enabled": ..., "required": ...}`` mapping or an
        ``(enabled, required)`` pair. Anything else is logged and read as
        disabled and optional.
        """
        if isinstance(value, SecurityPolicyState):
            return value
        if isinstance(value, Mapping):
            return cls(
                enabled=bool(value.get("enabled", False)),
                required=bool(value.get("required", False)),
            )
        if isinstance(value, (tuple, list)) and len(value) == 2:
            enabled, required = value
            return cls(enabled=bool(enabled), required=bool(required))
        logger.warning(
            "Security policy state of type %s is not recognized; treating it as disabled.",
            type(value).__name__,
        )
        return cls()


@dataclass(frozen=True)
class SecurityPolicy:
    name: str
    enabled: bool


PolicyValue = Union[SecurityPolicyState, Mapping[str, Any], tuple[bool, bool]]
PolicyMap = Mapping[str, PolicyValue]


class SecurityPoliciesConfiguration:
    """Read-only view of the security policies for one configuration epoch."""

    def __init__(self, policies: Optional[PolicyMap] = None):
        self._policies: dict[str, SecurityPolicy] = {}
        for name, value in (policies or {}).items():
            state = SecurityPolicyState.from_value(value)
            self._policies[name] = SecurityPolicy(name, state.enabled)

    def __len__(self) -> int:
        return len(self._policies)

    def __contains__(self, name: object) -> bool:
        return name in self._policies

    def __repr__(self) -> str:
        return f"SecurityPoliciesConfiguration({sorted(self._policies)!r})"

    @property
    def policies(self) -> dict[str, SecurityPolicy]:
        return dict(self._policies)

    def exists(self, name: str) -> bool:
        return name in self._policies

    def get(self, name: str) -> Optional[SecurityPolicy]:
        return self._policies.get(name)

    def is_enabled(self, name: str, default: bool = True) -> bool:
        """Return the policy's ``enabled`` flag, or ``default`` when it is absent."""
        policy = self._policies.get(name)
        if policy is None:
            return default
        return policy.enabled

    # ── Named policies (None when the collector did not send them) ──

    @property
    def record_sql(self) -> Optional[SecurityPolicy]:
        return self.get(RECORD_SQL)

    @property
    def attributes_include(self) -> Optional[SecurityPolicy]:
        return self.get(ATTRIBUTES_INCLUDE)

    @property
    def allow_raw_exception_messages(self) -> Optional[SecurityPolicy]:
        return self.get(ALLOW_RAW_EXCEPTION_MESSAGES)

    @property
    def custom_events(self) -> Optional[SecurityPolicy]:
        return self.get(CUSTOM_EVENTS)

    @property
    def custom_parameters(self) -> Optional[SecurityPolicy]:
        return self.get(CUSTOM_PARAMETERS)

    @property
    def custom_instrumentation_editor(self) -> Optional[SecurityPolicy]:
        return self.get(CUSTOM_INSTRUMENTATION_EDITOR)

    # ── Map checks ──

    @staticmethod
    def missing_expected_policies(policies: PolicyMap) -> list[str]:
        """Known policy names absent from ``policies``, in declaration order."""
        return [name for name in KNOWN_POLICIES if name not in policies]

    @staticmethod
    def missing_required_policies(policies: PolicyMap) -> list[str]:
        """
        Policies marked required that this build does not know.

        A non-empty result means the collector expects enforcement the agent
        cannot provide; the caller decides whether to disable or fail.
        """
        missing = []
        for name, value in policies.items():
            state = SecurityPolicyState.from_value(value)
            if state.required and name not in KNOWN_POLICIES:
                missing.append(name)
        return missing


__all__ = [
    "RECORD_SQL",
    "ATTRIBUTES_INCLUDE",
    "ALLOW_RAW_EXCEPTION_MESSAGES",
    "CUSTOM_EVENTS",
    "CUSTOM_PARAMETERS",
    "CUSTOM_INSTRUMENTATION_EDITOR",
    "KNOWN_POLICIES",
    "PolicyMap",
    "SecurityPolicy",
    "SecurityPolicyState",
    "SecurityPoliciesConfiguration",
]
