"""Error taxonomy surfaced by the gateway core to its callers."""

from __future__ import annotations

from typing import Any, Dict, Optional


class ShiftError(Exception):
    """Base class for user-visible gateway failures."""

    code = "error"
    status_code = 500

    def __init__(self, message: str, *, details: Optional[Dict[str, Any]] = None):
        super().__init__(message)
        self.message = message
        self.details = details or {}

    def to_dict(self) -> Dict[str, Any]:
        payload: Dict[str, Any] = {"error": self.message, "code": self.code}
        if self.details:
            payload["details"] = self.details
        return payload


# Human wording for request field names
_FIELD_LABELS = {"publicKey": "public key"}


class MissingParameter(ShiftError):
    """A required input was absent or empty."""

    code = "missing_parameter"
    status_code = 400

    def __init__(self, *names: str):
        labels = [_FIELD_LABELS.get(n, n) for n in names]
        joined = " and ".join(labels) if labels else "parameter"
        verb = "are" if len(names) > 1 else "is"
        super().__init__(
            f"{joined[0].upper()}{joined[1:]} {verb} required",
            details={"missing_fields": list(names)},
        )
        self.names = list(names)


class SessionNotFound(ShiftError):
    code = "session_not_found"
    status_code = 404

    def __init__(self, wallet_key: str):
        super().__init__(
            "Session not found - please connect wallet first",
            details={"wallet_key": wallet_key},
        )
        self.wallet_key = wallet_key


class ModelInvocationError(ShiftError):
    """The external language model call failed."""

    code = "model_invocation_error"
    status_code = 502


class ExternalFetchError(ShiftError):
    """A price or balance collaborator failed."""

    code = "external_fetch_error"
    status_code = 502


__all__ = [
    "ShiftError",
    "MissingParameter",
    "SessionNotFound",
    "ModelInvocationError",
    "ExternalFetchError",
]
