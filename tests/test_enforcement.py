"""
Tests for txattrs.enforcement — installing policies and filtering attributes.
"""

import logging
from datetime import timedelta

import pytest

from txattrs import enforcement
from txattrs.builders import (
    build_custom_attribute,
    build_custom_error_attribute,
    build_duration_attribute,
    build_error_dot_message_attribute,
    build_error_message_attribute,
    build_request_parameter_attribute,
)
from txattrs.config import (
    DEFAULT_STRIPPED_MESSAGE,
    FAIL_CLOSED_ENV,
    STRIPPED_MESSAGE_ENV,
    SecurityPolicyConfig,
)
from txattrs.destinations import AttributeDestinations
from txattrs.enforcement import (
    SecurityPolicyError,
    apply_security_policies,
    configure_security_policies,
    filter_attributes,
    get_config,
    get_security_policies,
)
from txattrs.policies import KNOWN_POLICIES, SecurityPoliciesConfiguration

TE = AttributeDestinations.TRANSACTION_EVENT
EE = AttributeDestinations.ERROR_EVENT


@pytest.fixture(autouse=True)
def reset_globals(monkeypatch):
    """Reset installed policies and the environment between tests."""
    monkeypatch.delenv(FAIL_CLOSED_ENV, raising=False)
    monkeypatch.delenv(STRIPPED_MESSAGE_ENV, raising=False)
    enforcement.reset_security_policies()
    yield
    enforcement.reset_security_policies()


def _policies(**enabled):
    policies = {name: {"enabled": True, "required": False} for name in KNOWN_POLICIES}
    for name, value in enabled.items():
        policies[name] = {"enabled": value, "required": False}
    return policies


class TestConfig:

    def test_defaults(self):
        config = SecurityPolicyConfig()
        assert config.fail_closed is False
        assert config.stripped_message == DEFAULT_STRIPPED_MESSAGE

    def test_fail_closed_from_env(self, monkeypatch):
        monkeypatch.setenv(FAIL_CLOSED_ENV, "true")
        assert SecurityPolicyConfig().fail_closed is True

    def test_explicit_value_wins_over_env(self, monkeypatch):
        monkeypatch.setenv(FAIL_CLOSED_ENV, "1")
        assert SecurityPolicyConfig(fail_closed=False).fail_closed is False

    def test_stripped_message_from_env(self, monkeypatch):
        monkeypatch.setenv(STRIPPED_MESSAGE_ENV, "redacted")
        assert SecurityPolicyConfig().stripped_message == "redacted"


class TestConfigureSecurityPolicies:

    def test_nothing_installed_initially(self):
        assert get_security_policies() is None

    def test_installs_registry(self):
        registry = configure_security_policies(_policies())
        assert get_security_policies() is registry
        assert registry.exists("record_sql")

    def test_refresh_replaces_registry(self):
        first = configure_security_policies(_policies())
        second = configure_security_policies(_policies(record_sql=False))
        assert second is not first
        assert get_security_policies() is second
        assert first.record_sql.enabled is True
        assert second.record_sql.enabled is False

    def test_missing_expected_is_logged(self, caplog):
        policies = _policies()
        del policies["custom_events"]
        with caplog.at_level(logging.INFO, logger="txattrs"):
            configure_security_policies(policies)
        assert "custom_events" in caplog.text

    def test_unknown_required_is_logged_and_installed(self, caplog):
        policies = _policies()
        policies["unknown_policy"] = {"enabled": True, "required": True}
        with caplog.at_level(logging.ERROR, logger="txattrs"):
            registry = configure_security_policies(policies)
        assert "unknown_policy" in caplog.text
        assert get_security_policies() is registry

    def test_fail_closed_keeps_previous_config(self):
        previous_config = SecurityPolicyConfig(stripped_message="before")
        configure_security_policies(_policies(), config=previous_config)
        with pytest.raises(SecurityPolicyError):
            configure_security_policies(
                {"unknown_policy": (True, True)},
                config=SecurityPolicyConfig(fail_closed=True, stripped_message="after"),
            )
        assert get_config() is previous_config

    def test_fail_closed_rejects_unknown_required(self):
        previous = configure_security_policies(_policies())
        policies = _policies()
        policies["unknown_policy"] = {"enabled": True, "required": True}
        with pytest.raises(SecurityPolicyError) as exc_info:
            configure_security_policies(
                policies, config=SecurityPolicyConfig(fail_closed=True)
            )
        assert exc_info.value.missing_required == ["unknown_policy"]
        assert get_security_policies() is previous

    def test_fail_closed_from_env(self, monkeypatch):
        monkeypatch.setenv(FAIL_CLOSED_ENV, "yes")
        with pytest.raises(SecurityPolicyError):
            configure_security_policies({"unknown_policy": {"required": True}})

    def test_config_is_kept(self):
        config = SecurityPolicyConfig(stripped_message="gone")
        configure_security_policies(_policies(), config=config)
        assert get_config() is config


class TestApplySecurityPolicies:

    def test_no_policies_allows_everything(self):
        attribute = build_custom_attribute("plan", "gold")
        assert apply_security_policies(attribute) is attribute

    def test_custom_parameters_disabled_drops_user_attributes(self):
        registry = SecurityPoliciesConfiguration(_policies(custom_parameters=False))
        assert apply_security_policies(build_custom_attribute("plan", "gold"), registry) is None
        assert apply_security_policies(build_custom_error_attribute("id", "7"), registry) is None

    def test_custom_parameters_disabled_keeps_intrinsics(self):
        registry = SecurityPoliciesConfiguration(_policies(custom_parameters=False))
        duration = build_duration_attribute(timedelta(seconds=1))
        assert apply_security_policies(duration, registry) is duration

    def test_attributes_include_disabled_drops_request_parameters(self):
        registry = SecurityPoliciesConfiguration(_policies(attributes_include=False))
        attribute = build_request_parameter_attribute("q", "search")
        assert apply_security_policies(attribute, registry) is None

    def test_raw_exception_messages_disabled_strips_messages(self):
        registry = SecurityPoliciesConfiguration(_policies(allow_raw_exception_messages=False))
        for attribute in (
            build_error_message_attribute("secret"),
            build_error_dot_message_attribute("secret"),
        ):
            stripped = apply_security_policies(attribute, registry)
            assert stripped.value == DEFAULT_STRIPPED_MESSAGE
            assert stripped.key == attribute.key
            assert stripped.destinations == attribute.destinations

    def test_explicit_stripped_message(self):
        registry = SecurityPoliciesConfiguration(_policies(allow_raw_exception_messages=False))
        stripped = apply_security_policies(
            build_error_message_attribute("secret"), registry, stripped_message="[hidden]"
        )
        assert stripped.value == "[hidden]"

    def test_explicit_empty_stripped_message(self):
        registry = SecurityPoliciesConfiguration(_policies(allow_raw_exception_messages=False))
        stripped = apply_security_policies(
            build_error_message_attribute("secret"), registry, stripped_message=""
        )
        assert stripped.value == ""

    def test_installed_message_goes_with_installed_registry(self):
        configure_security_policies(
            _policies(allow_raw_exception_messages=False),
            config=SecurityPolicyConfig(stripped_message="gone"),
        )
        stripped = apply_security_policies(build_error_message_attribute("secret"))
        assert stripped.value == "gone"

    def test_explicit_registry_ignores_installed_message(self):
        configure_security_policies(
            _policies(), config=SecurityPolicyConfig(stripped_message="gone")
        )
        registry = SecurityPoliciesConfiguration(_policies(allow_raw_exception_messages=False))
        stripped = apply_security_policies(build_error_message_attribute("secret"), registry)
        assert stripped.value == DEFAULT_STRIPPED_MESSAGE

    def test_absent_policy_is_treated_as_enabled(self):
        registry = SecurityPoliciesConfiguration({"record_sql": {"enabled": False}})
        attribute = build_custom_attribute("plan", "gold")
        assert apply_security_policies(attribute, registry) is attribute

    def test_uses_installed_policies(self):
        configure_security_policies(_policies(custom_parameters=False))
        assert apply_security_policies(build_custom_attribute("plan", "gold")) is None


class TestFilterAttributes:

    def test_filters_by_destination(self):
        attributes = [
            build_duration_attribute(timedelta(seconds=1)),
            build_error_dot_message_attribute("boom"),
            build_custom_attribute("plan", "gold"),
        ]
        kept = filter_attributes(attributes, TE)
        assert [a.key for a in kept] == ["duration", "plan"]

    def test_filters_by_destination_and_policy(self):
        registry = SecurityPoliciesConfiguration(_policies(custom_parameters=False))
        attributes = [
            build_duration_attribute(timedelta(seconds=1)),
            build_custom_attribute("plan", "gold"),
        ]
        kept = filter_attributes(attributes, TE | EE, registry)
        assert [a.key for a in kept] == ["duration"]

    def test_compound_destination_is_exact_subset(self):
        attributes = [build_error_message_attribute("boom")]
        assert filter_attributes(attributes, TE | EE) == []
