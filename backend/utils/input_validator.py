from __future__ import annotations

from pathlib import Path
from typing import Mapping

from config.settings import Settings
from models.job_models import Job, JobKind, JobStage, ReceivedPart
from utils.ffmpeg_builder import anchor_concat_list, format_concat_list
from utils.job_errors import ValidationError


DEFAULT_RENDER_FILENAME = "output.mp4"
DEFAULT_CONCAT_FILENAME = "long_take.mp4"


def _has_part(part: ReceivedPart | None) -> bool:
    return part is not None and bool(part.original_filename)


def _resolve_output_filename(requested: str | None, default: str) -> str:
    filename = (requested or "").strip()
    if not filename:
        return default
    if filename in (".", "..") or "/" in filename or "\\" in filename or "\x00" in filename:
        raise ValidationError(f"Invalid output filename: {filename!r}")
    return filename


def validate_render_input(
    parts: Mapping[str, ReceivedPart | None],
    filename: str | None,
    settings: Settings,
) -> Job:
    image = parts.get("image")
    audio = parts.get("audio")
    if not _has_part(image) or not _has_part(audio):
        raise ValidationError("Missing image or audio file")

    output_filename = _resolve_output_filename(filename, DEFAULT_RENDER_FILENAME)
    job = Job(
        kind=JobKind.RENDER,
        output_filename=output_filename,
        output_path=Path(settings.renders_dir) / output_filename,
        input_paths=[image.path, audio.path],
    )
    job.advance(JobStage.VALIDATED)
    return job


def validate_concat_input(
    concat_list: str | list[str] | None,
    output: str | None,
    settings: Settings,
) -> tuple[Job, str]:
    """
    Check a concatenate request and normalise its segment list.

    Returns the validated job (no inputs attached yet; the orchestrator adds
    the list file once it is written) and the concat directive text, with
    relative segment paths anchored to the server's working directory.
    An empty list is accepted here and left for ffmpeg to reject.
    """
    if concat_list is None:
        raise ValidationError("Missing concatList")

    if isinstance(concat_list, str):
        list_text = anchor_concat_list(concat_list, Path.cwd())
    elif isinstance(concat_list, list) and all(isinstance(p, str) for p in concat_list):
        list_text = format_concat_list(concat_list, base_dir=Path.cwd())
    else:
        raise ValidationError("concatList must be text or a list of paths")

    output_filename = _resolve_output_filename(output, DEFAULT_CONCAT_FILENAME)
    job = Job(
        kind=JobKind.CONCAT,
        output_filename=output_filename,
        output_path=Path(settings.renders_dir) / output_filename,
    )
    job.advance(JobStage.VALIDATED)
    return job, list_text
