"""
Security Policy Enforcement
===========================

Holds the process-wide ``SecurityPoliciesConfiguration`` and applies it to
attributes on their way to a reporting destination.

``configure_security_policies()`` is called at startup and on every
configuration refresh. It builds a new registry and swaps the module-level
reference in one assignment, so readers on other threads see either the old
registry or the new one, never a mix.

Policies with an attribute category:

- ``custom_parameters`` disabled: user attributes are dropped.
- ``attributes_include`` disabled: ``request.parameters.*`` attributes are
  dropped, since only include rules could report them.
- ``allow_raw_exception_messages`` disabled: ``error.message`` and
  ``errorMessage`` values are replaced by ``stripped_message``.

A policy the collector did not send is treated as enabled.
"""

from __future__ import annotations

import dataclasses
import logging
from typing import Iterable, Optional

from txattrs.attribute import Attribute
from txattrs.builders import REQUEST_PARAMETER_PREFIX
from txattrs.config import SecurityPolicyConfig
from txattrs.destinations import (
    AttributeClassification,
    AttributeDestinations,
    has_destination,
)
from txattrs.policies import (
    ALLOW_RAW_EXCEPTION_MESSAGES,
    ATTRIBUTES_INCLUDE,
    CUSTOM_PARAMETERS,
    PolicyMap,
    SecurityPoliciesConfiguration,
)

logger = logging.getLogger(__name__)

EXCEPTION_MESSAGE_KEYS = frozenset({"error.message", "errorMessage"})


class SecurityPolicyError(RuntimeError):
    """Raised when the collector requires policies this build cannot enforce."""

    def __init__(self, message: str, missing_required: Optional[list[str]] = None):
        super().__init__(message)
        self.missing_required = list(missing_required or [])


# ── Global State ──────────────────────────────────────────────────────


@dataclasses.dataclass(frozen=True)
class _InstalledPolicies:
    """Registry and options installed together; replaced as one object."""

    policies: Optional[SecurityPoliciesConfiguration]
    config: SecurityPolicyConfig


_installed = _InstalledPolicies(None, SecurityPolicyConfig(fail_closed=False))


def configure_security_policies(
    policies: PolicyMap,
    *,
    config: Optional[SecurityPolicyConfig] = None,
) -> SecurityPoliciesConfiguration:
    """
    Install the security policies received from the collector.

    Args:
        policies: Policy name -> ``{"enabled": bool, "required": bool}`` or an
                  ``(enabled, required)`` pair.
        config: Enforcement options. Defaults to ``SecurityPolicyConfig()``,
                which reads the environment.

    Returns:
        The newly installed registry.

    Raises:
        SecurityPolicyError: In fail-closed mode, when ``policies`` marks as
            required a policy this build does not know. The previously
            installed registry and options stay in place.
    """
    global _installed

    config = config or SecurityPolicyConfig()

    missing_expected = SecurityPoliciesConfiguration.missing_expected_policies(policies)
    if missing_expected:
        logger.info(
            "Security policies not sent by the collector: %s", ", ".join(missing_expected)
        )

    missing_required = SecurityPoliciesConfiguration.missing_required_policies(policies)
    if missing_required:
        logger.error(
            "The collector requires security policies this agent does not support: %s",
            ", ".join(missing_required),
        )
        if config.fail_closed:
            raise SecurityPolicyError(
                f"Unsupported required security policies: {missing_required}",
                missing_required=missing_required,
            )

    registry = SecurityPoliciesConfiguration(policies)
    _installed = _InstalledPolicies(registry, config)
    return registry


def reset_security_policies() -> None:
    """Forget the installed policies (all categories become allowed again)."""
    global _installed
    _installed = _InstalledPolicies(None, SecurityPolicyConfig(fail_closed=False))


def get_security_policies() -> Optional[SecurityPoliciesConfiguration]:
    """Return the installed registry, or None before the first configuration."""
    return _installed.policies


def get_config() -> SecurityPolicyConfig:
    return _installed.config


# ── Attribute filtering ──────────────────────────────────────────────


def apply_security_policies(
    attribute: Attribute,
    policies: Optional[SecurityPoliciesConfiguration] = None,
    *,
    stripped_message: Optional[str] = None,
) -> Optional[Attribute]:
    """
    Return the attribute as allowed by ``policies``.

    Returns None when the attribute's category is disabled, a copy with the
    message replaced when raw exception messages are disabled, or the
    attribute itself.

    When ``policies`` is None the installed registry is used, and a missing
    ``stripped_message`` comes from the options installed with it. An
    explicit registry takes its default message from ``SecurityPolicyConfig()``.
    """
    policies, stripped_message = _resolve(policies, stripped_message)
    return _apply(attribute, policies, stripped_message)


def _resolve(
    policies: Optional[SecurityPoliciesConfiguration],
    stripped_message: Optional[str],
) -> tuple[Optional[SecurityPoliciesConfiguration], str]:
    if policies is None:
        installed = _installed
        policies, config = installed.policies, installed.config
    else:
        config = None
    if stripped_message is None:
        if config is None:
            config = SecurityPolicyConfig(fail_closed=False)
        stripped_message = config.stripped_message
    return policies, stripped_message


def _apply(
    attribute: Attribute,
    policies: Optional[SecurityPoliciesConfiguration],
    stripped_message: str,
) -> Optional[Attribute]:
    if policies is None:
        return attribute

    if attribute.classification is AttributeClassification.USER_ATTRIBUTES:
        if not policies.is_enabled(CUSTOM_PARAMETERS):
            return None

    if isinstance(attribute.key, str) and attribute.key.startswith(REQUEST_PARAMETER_PREFIX):
        if not policies.is_enabled(ATTRIBUTES_INCLUDE):
            return None

    if attribute.key in EXCEPTION_MESSAGE_KEYS:
        if not policies.is_enabled(ALLOW_RAW_EXCEPTION_MESSAGES):
            return dataclasses.replace(attribute, value=stripped_message)

    return attribute


def filter_attributes(
    attributes: Iterable[Attribute],
    destination: AttributeDestinations,
    policies: Optional[SecurityPoliciesConfiguration] = None,
    *,
    stripped_message: Optional[str] = None,
) -> list[Attribute]:
    """
    Attributes eligible for ``destination`` after security policies apply.

    The installed policies are read once for the whole batch.
    """
    policies, stripped_message = _resolve(policies, stripped_message)
    eligible = []
    for attribute in attributes:
        if not has_destination(attribute, destination):
            continue
        allowed = _apply(attribute, policies, stripped_message)
        if allowed is not None:
            eligible.append(allowed)
    return eligible


__all__ = [
    "EXCEPTION_MESSAGE_KEYS",
    "SecurityPolicyError",
    "configure_security_policies",
    "reset_security_policies",
    "get_security_policies",
    "get_config",
    "apply_security_policies",
    "filter_attributes",
]
