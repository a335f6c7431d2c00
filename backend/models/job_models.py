"""
Models for render and concatenate jobs.

This module defines:
- Job kinds and the job stage state machine
- Internal pipeline values (invocations, process results, artifacts)
- Request/response schemas for the HTTP surface
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path

from pydantic import BaseModel, Field

from utils.job_errors import TranscodeError, TranscodeTimeoutError


# =============================================================================
# ENUMS
# =============================================================================


class JobKind(str, Enum):
    """Type of job."""

    RENDER = "render"  # Still image + audio track -> video
    CONCAT = "concat"  # Ordered segments -> one video, stream copy


class JobStage(str, Enum):
    """Pipeline stage of a job."""

    RECEIVED = "received"  # Request accepted, inputs not yet checked
    VALIDATED = "validated"  # Inputs checked, output path computed
    TRANSCODING = "transcoding"  # ffmpeg running
    TRANSCODED = "transcoded"  # ffmpeg finished, output on disk
    UPLOADING = "uploading"  # Streaming output to storage
    COMPLETED = "completed"  # Uploaded and cleaned up
    FAILED = "failed"  # Error occurred


class ProcessOutcome(str, Enum):
    SUCCESS = "success"
    FAILED = "failed"
    TIMEOUT = "timeout"


ALLOWED_TRANSITIONS: dict[JobStage, frozenset[JobStage]] = {
    JobStage.RECEIVED: frozenset({JobStage.VALIDATED}),
    JobStage.VALIDATED: frozenset({JobStage.TRANSCODING, JobStage.FAILED}),
    JobStage.TRANSCODING: frozenset({JobStage.TRANSCODED, JobStage.FAILED}),
    JobStage.TRANSCODED: frozenset({JobStage.UPLOADING}),
    JobStage.UPLOADING: frozenset({JobStage.COMPLETED, JobStage.FAILED}),
    JobStage.COMPLETED: frozenset(),
    JobStage.FAILED: frozenset(),
}

TERMINAL_STAGES = frozenset({JobStage.COMPLETED, JobStage.FAILED})


class InvalidTransitionError(RuntimeError):
    def __init__(self, current: JobStage, target: JobStage):
        self.current = current
        self.target = target
        super().__init__(f"Cannot move job from {current.value} to {target.value}")


# =============================================================================
# INTERNAL MODELS (for job processing)
# =============================================================================


@dataclass
class ReceivedPart:
    """A multipart file part already written to the scratch directory."""

    field_name: str
    path: Path
    original_filename: str = ""
    content_type: str | None = None


@dataclass
class Job:
    """
    One request's worth of transcode-and-upload work.

    ``input_paths`` are the scratch files the job owns until cleanup.
    Stage changes go through ``advance`` and ``fail`` so the state machine
    can't be skipped.
    """

    kind: JobKind
    output_filename: str
    output_path: Path
    input_paths: list[Path] = field(default_factory=list)
    stage: JobStage = JobStage.RECEIVED
    error: Exception | None = None

    @property
    def is_terminal(self) -> bool:
        return self.stage in TERMINAL_STAGES

    def owned_files(self) -> list[Path]:
        return [*self.input_paths, self.output_path]

    def advance(self, target: JobStage) -> None:
        if target == JobStage.FAILED:
            raise ValueError("Use fail() to move a job to the failed stage")
        if target not in ALLOWED_TRANSITIONS[self.stage]:
            raise InvalidTransitionError(self.stage, target)
        self.stage = target

    def fail(self, error: Exception) -> None:
        if JobStage.FAILED not in ALLOWED_TRANSITIONS[self.stage]:
            raise InvalidTransitionError(self.stage, JobStage.FAILED)
        self.stage = JobStage.FAILED
        self.error = error


@dataclass(frozen=True)
class ProcessInvocation:
    """Argument vector for one external process call. Never joined into a shell string."""

    args: tuple[str, ...]
    timeout_seconds: float
    output_path: Path

    @property
    def executable(self) -> str:
        return self.args[0]


@dataclass(frozen=True)
class ProcessResult:
    outcome: ProcessOutcome
    returncode: int | None
    output: str
    elapsed_seconds: float
    timeout_seconds: float

    @property
    def ok(self) -> bool:
        return self.outcome == ProcessOutcome.SUCCESS

    def raise_for_outcome(self) -> None:
        """Raise the matching transcode error unless the process succeeded."""
        if self.outcome == ProcessOutcome.SUCCESS:
            return
        if self.outcome == ProcessOutcome.TIMEOUT:
            raise TranscodeTimeoutError(self.timeout_seconds, diagnostic=self.output)

        if self.returncode == 0:
            message = "FFmpeg exited cleanly but produced no output file"
        elif self.returncode is None:
            message = "FFmpeg could not be started"
        else:
            message = f"FFmpeg failed (code {self.returncode})"
        if self.output:
            message = f"{message}. Output:\n{self.output}"
        raise TranscodeError(message, returncode=self.returncode, diagnostic=self.output)


@dataclass(frozen=True)
class UploadedArtifact:
    file_id: str
    link: str


@dataclass
class CleanupReport:
    deleted: list[Path] = field(default_factory=list)
    retained: list[Path] = field(default_factory=list)
    pruned_dirs: list[Path] = field(default_factory=list)


# =============================================================================
# REQUEST MODELS
# =============================================================================


class ConcatRequest(BaseModel):
    """Request to concatenate segments into one video."""

    concatList: str | list[str] | None = Field(
        default=None,
        description="Concat directive text (one file entry per line) or a list of segment paths",
    )
    output: str | None = Field(
        default=None, description="Output filename (long_take.mp4 if not specified)"
    )


# =============================================================================
# RESPONSE MODELS
# =============================================================================


class JobResponse(BaseModel):
    message: str
    driveLink: str


class ErrorResponse(BaseModel):
    error: str


class HealthResponse(BaseModel):
    status: str = "ok"


class PingResponse(BaseModel):
    status: str = "ok"
    message: str = "FFmpeg server is alive!"
