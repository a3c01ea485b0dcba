"""Error kinds and validation results for safeping."""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum


class SafePingError(Exception):
    """Base class for errors raised by safeping."""


class InvalidConfiguration(SafePingError):
    """Sender configuration cannot produce a deadline (ping time, grace period, time zone)."""


class RecordNotFound(SafePingError):
    """A sender, ping or break id did not resolve to a stored record."""


class PingsDisabled(SafePingError):
    """The sender has daily pings switched off."""


class BreakTransitionError(SafePingError):
    """A break cannot move to the requested status."""


class BreakErrorKind(str, Enum):
    INVALID_RANGE = "invalid_range"
    START_IN_PAST = "start_in_past"
    OVERLAPPING_BREAK = "overlapping_break"


class BreakWarning(str, Enum):
    LONG_BREAK = "long_break"


ERROR_MESSAGES: dict[BreakErrorKind, str] = {
    BreakErrorKind.INVALID_RANGE: "End date must be on or after start date",
    BreakErrorKind.START_IN_PAST: "Start date cannot be in the past",
    BreakErrorKind.OVERLAPPING_BREAK: "You already have a break during this period",
}

WARNING_MESSAGES: dict[BreakWarning, str] = {
    BreakWarning.LONG_BREAK: "Breaks longer than 1 year may affect your account",
}


@dataclass(frozen=True)
class ValidationResult:
    is_valid: bool
    error_kind: BreakErrorKind | None = None
    warning: BreakWarning | None = None

    @classmethod
    def ok(cls, warning: BreakWarning | None = None) -> ValidationResult:
        return cls(is_valid=True, warning=warning)

    @classmethod
    def fail(cls, kind: BreakErrorKind) -> ValidationResult:
        return cls(is_valid=False, error_kind=kind)

    @property
    def message(self) -> str | None:
        if self.error_kind is None:
            return None
        return ERROR_MESSAGES[self.error_kind]

    @property
    def warning_message(self) -> str | None:
        if self.warning is None:
            return None
        return WARNING_MESSAGES[self.warning]

    def to_dict(self) -> dict:
        return {
            "is_valid": self.is_valid,
            "error_kind": self.error_kind.value if self.error_kind else None,
            "message": self.message,
            "warning": self.warning.value if self.warning else None,
            "warning_message": self.warning_message,
        }
