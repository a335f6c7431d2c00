from __future__ import annotations

import logging
from pathlib import Path
from typing import Mapping
from uuid import uuid4

from config.settings import Settings
from models.job_models import (
    ALLOWED_TRANSITIONS,
    Job,
    JobKind,
    JobStage,
    ReceivedPart,
    UploadedArtifact,
)
from utils.cleanup import discard_files, finalize_job_files
from utils.ffmpeg_builder import build_invocation
from utils.gcs_uploader import ArtifactUploader
from utils.input_validator import validate_concat_input, validate_render_input
from utils.job_errors import JobError, UnexpectedError, ValidationError
from utils.process_supervisor import run_invocation

logger = logging.getLogger(__name__)


def write_concat_list(list_text: str, scratch_dir: Path) -> Path:
    scratch_dir = Path(scratch_dir)
    scratch_dir.mkdir(parents=True, exist_ok=True)
    list_path = scratch_dir / f"concat_{uuid4().hex}.txt"
    list_path.write_text(list_text, encoding="utf-8")
    return list_path


def _fail_job(job: Job, error: JobError) -> None:
    if JobStage.FAILED in ALLOWED_TRANSITIONS[job.stage]:
        job.fail(error)
    else:
        logger.error(
            "%s job for %s errored in stage %s", job.kind.value, job.output_filename, job.stage.value
        )
        job.stage = JobStage.FAILED
        job.error = error


def run_job(
    job: Job,
    uploader: ArtifactUploader,
    settings: Settings,
    list_text: str | None = None,
) -> UploadedArtifact:
    """
    Drive a validated job through transcode, upload and cleanup.

    Each stage runs once; the first failure ends the job. Files are released
    by the cleanup step after the job reaches ``completed`` or ``failed``.

    Raises:
        TranscodeError / TranscodeTimeoutError: ffmpeg failed or ran too long.
        UploadError: the storage call failed.
        UnexpectedError: anything else.
    """
    if job.stage != JobStage.VALIDATED:
        raise ValueError(f"Job must be validated before running, not {job.stage.value}")

    try:
        if job.kind == JobKind.CONCAT:
            job.input_paths.append(write_concat_list(list_text or "", settings.uploads_dir))
        job.output_path.parent.mkdir(parents=True, exist_ok=True)

        invocation = build_invocation(job, settings.ffmpeg_bin)

        job.advance(JobStage.TRANSCODING)
        result = run_invocation(invocation)
        result.raise_for_outcome()
        job.advance(JobStage.TRANSCODED)

        job.advance(JobStage.UPLOADING)
        artifact = uploader.upload(job.output_path, job.output_filename)
        job.advance(JobStage.COMPLETED)
    except JobError as exc:
        logger.error(f"{job.kind.value} job for {job.output_filename} failed: {exc.message}")
        _fail_job(job, exc)
        finalize_job_files(job, settings.uploads_dir)
        raise
    except Exception as exc:
        logger.exception(f"Unexpected error in {job.kind.value} job for {job.output_filename}")
        error = UnexpectedError(str(exc))
        _fail_job(job, error)
        finalize_job_files(job, settings.uploads_dir)
        raise error from exc

    report = finalize_job_files(job, settings.uploads_dir)
    logger.info(
        f"{job.kind.value} job for {job.output_filename} completed, "
        f"removed {len(report.deleted)} files"
    )
    return artifact


def run_render_job(
    parts: Mapping[str, ReceivedPart | None],
    filename: str | None,
    uploader: ArtifactUploader,
    settings: Settings,
) -> UploadedArtifact:
    try:
        job = validate_render_input(parts, filename, settings)
    except ValidationError:
        discard_files(part.path for part in parts.values() if part is not None)
        raise

    logger.info(f"Rendering {job.output_filename}...")
    return run_job(job, uploader, settings)


def run_concat_job(
    concat_list: str | list[str] | None,
    output: str | None,
    uploader: ArtifactUploader,
    settings: Settings,
) -> UploadedArtifact:
    job, list_text = validate_concat_input(concat_list, output, settings)

    logger.info(f"Concatenating into {job.output_filename}...")
    return run_job(job, uploader, settings, list_text=list_text)
