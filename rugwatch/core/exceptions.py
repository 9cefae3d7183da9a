"""
Application-level exceptions.

One hierarchy for the API layer, the scheduler and the services: unknown ids,
state-machine violations, unsupported networks, provider failures and
malformed input. Each error carries a stable code for HTTP mapping and logs.
"""

from __future__ import annotations

from typing import Any


class RugwatchError(Exception):
    """Base exception for all Rugwatch domain errors."""

    code = "rugwatch_error"

    def __init__(self, message: str, details: dict[str, Any] | None = None) -> None:
        self.message = message
        self.details = details or {}
        super().__init__(message)

    def to_dict(self) -> dict[str, Any]:
        return {
            "error": self.code,
            "message": self.message,
            "details": self.details,
        }


class NotFoundError(RugwatchError):
    """Unknown warning / tombstone / submission / message id."""

    code = "not_found"

    def __init__(self, kind: str, record_id: str) -> None:
        super().__init__(f"{kind} not found: {record_id}", {"kind": kind, "id": record_id})
        self.kind = kind
        self.record_id = record_id


class InvalidTransitionError(RugwatchError):
    """Status change not allowed from the current state."""

    code = "invalid_transition"

    def __init__(self, record_id: str, current: str, target: str) -> None:
        super().__init__(
            f"Cannot transition {record_id} from {current!r} to {target!r}",
            {"id": record_id, "current": current, "target": target},
        )
        self.current = current
        self.target = target


class WarningClosedError(InvalidTransitionError):
    """Evidence or profile update attempted on a Resolved / False Alarm warning."""

    def __init__(self, record_id: str, current: str) -> None:
        RugwatchError.__init__(
            self,
            f"Warning {record_id} is {current}; only Active warnings accept updates",
            {"id": record_id, "current": current},
        )
        self.current = current
        self.target = current


class UnsupportedNetworkError(RugwatchError):
    """Chain provider has no handler for the requested network."""

    code = "unsupported_network"

    def __init__(self, network: str) -> None:
        super().__init__(f"Unsupported network: {network}", {"network": network})
        self.network = network


class ProviderError(RugwatchError):
    """External chain / ML call failed."""

    code = "provider_error"

    def __init__(self, provider: str, operation: str, message: str) -> None:
        super().__init__(
            f"{provider}.{operation} failed: {message}",
            {"provider": provider, "operation": operation},
        )
        self.provider = provider
        self.operation = operation


class ProviderTimeoutError(ProviderError):
    code = "provider_timeout"

    def __init__(self, provider: str, operation: str, timeout_sec: float) -> None:
        super().__init__(provider, operation, f"no response within {timeout_sec:g}s")
        self.details["timeout_sec"] = timeout_sec


class ProviderUnavailableError(ProviderError):
    code = "provider_unavailable"


class ValidationError(RugwatchError):
    """Malformed input (bad enum value, negative counts, empty required text)."""

    code = "validation_error"


class DuplicateRecordError(ValidationError):
    """Unique constraint violated (tombstone symbol/network or address, submission hash)."""

    code = "duplicate_record"
