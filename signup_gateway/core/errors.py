"""Gateway errors rendered as JSON envelopes for the control panel.

Envelope format:
    {"success": bool, "status": int, "message": str | None, "result": dict}
"""
from __future__ import annotations
from typing import Any, Dict, List, Optional


class GatewayError(Exception):
    """Error with an HTTP status and a front-end envelope representation."""

    status = 500
    success = False

    def __init__(self, message: str, status: Optional[int] = None, result: Optional[Dict[str, Any]] = None):
        self.message = message
        if status is not None:
            self.status = status
        self.result = result or {}
        super().__init__(message)

    def to_envelope(self) -> Dict[str, Any]:
        """Convert to the front-end response envelope."""
        return {
            "success": self.success,
            "status": self.status,
            "message": self.message,
            "result": self.result,
        }


class ValidationError(GatewayError):
    """Missing or malformed request fields (user-correctable)."""
    status = 400


class IdentityVerificationError(ValidationError):
    """An SSO assertion could not be verified."""
    pass


class ForgedIdentityError(IdentityVerificationError):
    """The verified SSO identity does not match the claimed email."""
    pass


class AuthenticationFailure(GatewayError):
    """Well-formed request with wrong credentials.

    ``success`` is True to tell the front-end the request itself was valid.
    """
    status = 400
    success = True


class UpstreamError(GatewayError):
    """CoreAPI failure (5xx, network, unexpected response)."""
    status = 500


class ProvisioningError(UpstreamError):
    """Provisioning pipeline aborted; earlier steps are not rolled back.

    Attributes:
        step: Name of the step that failed
        completed_steps: Steps that succeeded before the failure, in order
        partial: Results of those steps (same keys as a full result)
    """

    def __init__(
        self,
        step: str,
        completed_steps: Optional[List[str]] = None,
        partial: Optional[Dict[str, Any]] = None,
    ):
        self.step = step
        self.completed_steps = list(completed_steps or [])
        self.partial = partial or {}
        super().__init__(
            f"Unable to complete account setup (failed at: {step})",
            result={"failedStep": step, "completedSteps": self.completed_steps},
        )
