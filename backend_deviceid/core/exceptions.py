"""
Application-level exceptions.

The scoring engine itself never raises on partial data; these cover the
request handler and storage boundary (unknown device, bad identifier type).
Each carries a stable error code for API and tool error handling.
"""

from __future__ import annotations

from typing import Any


class DeviceRegistryError(Exception):
    """Base error with a machine-readable code."""

    code = "DEVICE_REGISTRY_ERROR"

    def __init__(self, message: str, **details: Any) -> None:
        super().__init__(message)
        self.message = message
        self.details = details

    def to_dict(self) -> dict[str, Any]:
        return {"code": self.code, "message": self.message, "details": self.details}


class DeviceNotFoundError(DeviceRegistryError):
    code = "DEVICE_NOT_FOUND"

    def __init__(self, device_ref: Any) -> None:
        super().__init__(f"Device not found: {device_ref}", device=device_ref)


class InvalidIdentifierError(DeviceRegistryError):
    code = "INVALID_IDENTIFIER"

    def __init__(self, identifier_type: str) -> None:
        super().__init__(
            f"Unsupported identifier type: {identifier_type!r}",
            identifier_type=identifier_type,
        )
