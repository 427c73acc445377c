"""Error taxonomy shared by the build and mirror passes.

Per-item errors are raised close to where they happen and converted to
:class:`ItemFailure` entries by the orchestrating pass, which keeps
going. Only enumeration, strict-mode validation and authentication
failures escape a pass.
"""

from __future__ import annotations

from pydantic import BaseModel


class PressroomError(Exception):
    """Base class for all pressroom errors."""

    kind = "PressroomError"

    def __init__(self, message: str, *, subject: str = "") -> None:
        super().__init__(message)
        self.message = message
        self.subject = subject

    def __str__(self) -> str:
        if self.subject:
            return f"{self.subject}: {self.message}"
        return self.message


class InputValidationError(PressroomError):
    """A content record is malformed, has no slug, or duplicates a slug."""

    kind = "InputValidationError"


class EnumerationError(PressroomError):
    """Content could not be listed at all."""

    kind = "EnumerationError"


class RenderError(PressroomError):
    """A route handler failed for one route and mode."""

    kind = "RenderError"

    def __init__(self, message: str, *, subject: str = "", mode: str = "") -> None:
        super().__init__(message, subject=subject)
        self.mode = mode


class WriteError(PressroomError):
    """An artifact could not be written."""

    kind = "WriteError"


class TransportError(PressroomError):
    """A remote call failed."""

    kind = "TransportError"

    def __init__(
        self,
        message: str,
        *,
        subject: str = "",
        status: int | None = None,
        retryable: bool = True,
    ) -> None:
        super().__init__(message, subject=subject)
        self.status = status
        self.retryable = retryable


class SessionExpiredError(TransportError):
    """The access token expired in the middle of a pass."""

    kind = "TransportError"


class AuthenticationError(PressroomError):
    """A remote session could not be created."""

    kind = "AuthenticationError"


class ConsistencyError(PressroomError):
    """Local and remote state disagree; needs a human decision."""

    kind = "ConsistencyError"


class ItemFailure(BaseModel):
    """One failed item in a build or sync report."""

    kind: str
    subject: str
    message: str

    @classmethod
    def from_exception(cls, exc: PressroomError, subject: str = "") -> ItemFailure:
        return cls(
            kind=exc.kind,
            subject=subject or exc.subject,
            message=exc.message,
        )

    def __str__(self) -> str:
        return f"[{self.kind}] {self.subject}: {self.message}"
