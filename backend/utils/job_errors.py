from __future__ import annotations


class JobError(Exception):
    """Base class for every failure a job can end in."""

    status_code = 500

    def __init__(self, message: str):
        self.message = message
        super().__init__(message)


class ValidationError(JobError):
    status_code = 400


class TranscodeError(JobError):
    def __init__(
        self,
        message: str,
        returncode: int | None = None,
        diagnostic: str = "",
    ):
        self.returncode = returncode
        self.diagnostic = diagnostic
        super().__init__(message)


class TranscodeTimeoutError(TranscodeError):
    def __init__(self, timeout_seconds: float, diagnostic: str = ""):
        self.timeout_seconds = timeout_seconds
        super().__init__(
            f"FFmpeg timed out after {timeout_seconds:g}s",
            returncode=None,
            diagnostic=diagnostic,
        )


class UploadError(JobError):
    pass


class UnexpectedError(JobError):
    """Wraps anything outside the taxonomy; the message is never shown to callers."""

    public_message = "Unexpected error"
