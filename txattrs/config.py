"""Configuration for security policy enforcement."""

from __future__ import annotations

import os
from dataclasses import dataclass
from typing import Optional

FAIL_CLOSED_ENV = "TXATTRS_SECURITY_POLICIES_FAIL_CLOSED"
STRIPPED_MESSAGE_ENV = "TXATTRS_STRIPPED_EXCEPTION_MESSAGE"

DEFAULT_STRIPPED_MESSAGE = (
    "Message removed based on the currently enabled security policies."
)


def _env_flag(name: str, default: str = "false") -> bool:
    return os.getenv(name, default).strip().lower() in ("true", "1", "yes")


@dataclass
class SecurityPolicyConfig:
    """
    Options for ``configure_security_policies``.

    Fields left unset fall back to the environment:

    - ``fail_closed`` from ``TXATTRS_SECURITY_POLICIES_FAIL_CLOSED``. When
      True, a required policy this build does not know rejects the whole
      policy map instead of only being logged.
    - ``stripped_message`` from ``TXATTRS_STRIPPED_EXCEPTION_MESSAGE``;
      replaces raw exception messages when ``allow_raw_exception_messages``
      is disabled.
    """

    fail_closed: Optional[bool] = None
    stripped_message: str = ""

    def __post_init__(self) -> None:
        if self.fail_closed is None:
            self.fail_closed = _env_flag(FAIL_CLOSED_ENV)
        if not self.stripped_message:
            self.stripped_message = (
                os.getenv(STRIPPED_MESSAGE_ENV, "").strip() or DEFAULT_STRIPPED_MESSAGE
            )


__all__ = [
    "FAIL_CLOSED_ENV",
    "STRIPPED_MESSAGE_ENV",
    "DEFAULT_STRIPPED_MESSAGE",
    "SecurityPolicyConfig",
]
