"""Error taxonomy shared by the intake pipeline and the HTTP surface."""

from __future__ import annotations

from typing import List, Optional


class IntakeError(RuntimeError):
    """Base error carrying the HTTP status and a client-safe message."""

    status_code = 500
    public_message = "Internal server error."

    def __init__(self, detail: str, *, public_message: Optional[str] = None) -> None:
        super().__init__(detail)
        self.detail = detail
        if public_message is not None:
            self.public_message = public_message


class ConfigError(IntakeError):
    """A capability was requested but its credentials are not configured."""

    public_message = "Server is not configured for this request."


class InvalidInput(IntakeError):
    """The request body is missing fields or has the wrong shape."""

    status_code = 400

    def __init__(self, detail: str) -> None:
        super().__init__(detail, public_message=detail)


class ProviderError(IntakeError):
    """The completion provider timed out, failed, or returned nothing usable."""

    public_message = "Failed to fetch response from AI."


class ReportGenerationError(IntakeError):
    """The finalize output could not be turned into a valid report."""

    public_message = "Failed to generate the intake report."

    def __init__(self, detail: str, errors: Optional[List[str]] = None) -> None:
        super().__init__(detail)
        self.errors: List[str] = list(errors or [])


class PersistenceError(IntakeError):
    """The report store rejected or failed the case write."""

    public_message = "Failed to save the intake report."


class NotificationError(IntakeError):
    """Notification failed after the case record was already stored."""

    public_message = "Intake report saved, but the notification could not be sent."

    def __init__(self, detail: str, *, case_number: Optional[str] = None) -> None:
        super().__init__(detail)
        self.case_number = case_number
