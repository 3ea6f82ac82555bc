from __future__ import annotations

from dataclasses import dataclass

import httpx


@dataclass(frozen=True)
class UserFacingError(Exception):
    title: str
    summary: str
    suggested_fixes: tuple[str, ...] = ()
    error_code: str = "APP-000"
    can_retry: bool = True

    def __str__(self) -> str:
        return f"{self.summary} (code {self.error_code})"


def as_user_facing_error(exc: Exception) -> UserFacingError:
    if isinstance(exc, UserFacingError):
        return exc

    if isinstance(exc, FileNotFoundError):
        return UserFacingError(
            title="File not found",
            summary="The selected PDF could not be found.",
            suggested_fixes=(
                "Verify the file still exists in its original location.",
                "Select the file again and retry.",
            ),
            error_code="IO-001",
            can_retry=True,
        )

    if isinstance(exc, PermissionError):
        return UserFacingError(
            title="Access denied",
            summary="We don't have permission to read or write one of the files.",
            suggested_fixes=(
                "Move the file to a readable location.",
                "Check the download folder permissions and try again.",
            ),
            error_code="IO-002",
            can_retry=True,
        )

    if isinstance(exc, httpx.TimeoutException):
        return UserFacingError(
            title="Service timed out",
            summary=str(exc) or "The header removal service did not answer in time.",
            suggested_fixes=(
                "Try again with a smaller document.",
                "Increase HEADER_REMOVER_TIMEOUT_SECONDS.",
            ),
            error_code="NET-002",
            can_retry=True,
        )

    if isinstance(exc, httpx.HTTPError):
        return UserFacingError(
            title="Service unreachable",
            summary=str(exc) or "We couldn't reach the header removal service.",
            suggested_fixes=(
                "Check that the service is running.",
                "Verify HEADER_REMOVER_API_URL points at the service.",
            ),
            error_code="NET-001",
            can_retry=True,
        )

    return UserFacingError(
        title="Something went wrong",
        summary=str(exc) or "An unknown error occurred.",
        suggested_fixes=(
            "Try again in a moment.",
            "If the issue persists, check the logs for details.",
        ),
        error_code="APP-001",
        can_retry=True,
    )
