from __future__ import annotations

import logging
import shlex
from pathlib import Path
from typing import Iterable

from models.job_models import Job, JobKind, ProcessInvocation

logger = logging.getLogger(__name__)

RENDER_TIMEOUT_SECONDS = 120
CONCAT_TIMEOUT_SECONDS = 180

VIDEO_CODEC = "libx264"
PIXEL_FORMAT = "yuv420p"
STILL_IMAGE_TUNE = "stillimage"


def _escape_concat_path(path: str) -> str:
    # concat demuxer quoting: close the quote, emit an escaped quote, reopen
    return "'" + path.replace("'", "'\\''") + "'"


def _parse_concat_token(raw: str) -> str:
    # Inverse of _escape_concat_path, plus backslash escapes outside quotes.
    chars: list[str] = []
    quoted = False
    index = 0
    while index < len(raw):
        ch = raw[index]
        if ch == "'":
            quoted = not quoted
        elif ch == "\\" and not quoted and index + 1 < len(raw):
            index += 1
            chars.append(raw[index])
        elif ch.isspace() and not quoted:
            break
        else:
            chars.append(ch)
        index += 1
    return "".join(chars)


def _anchor_segment_path(path: str, base_dir: Path | None) -> str:
    # The concat demuxer resolves relative entries against the list file's
    # directory, which is the scratch dir, not the caller's working directory.
    if base_dir is None or "://" in path or Path(path).is_absolute():
        return path
    return str(Path(base_dir) / path)


def format_concat_list(paths: Iterable[str], base_dir: Path | None = None) -> str:
    """Render segment paths as concat demuxer directives, one ``file`` line each."""
    lines = [
        f"file {_escape_concat_path(_anchor_segment_path(str(p), base_dir))}"
        for p in paths
    ]
    if not lines:
        return ""
    return "\n".join(lines) + "\n"


def anchor_concat_list(list_text: str, base_dir: Path) -> str:
    """Rewrite relative ``file`` directives in concat list text to sit under ``base_dir``."""
    lines = []
    for line in list_text.splitlines():
        keyword, _, rest = line.strip().partition(" ")
        if keyword != "file" or not rest.strip():
            lines.append(line)
            continue
        path = _anchor_segment_path(_parse_concat_token(rest.strip()), base_dir)
        lines.append(f"file {_escape_concat_path(path)}")
    if not lines:
        return ""
    return "\n".join(lines) + "\n"


def build_render_invocation(job: Job, ffmpeg_bin: str = "ffmpeg") -> ProcessInvocation:
    if job.kind != JobKind.RENDER:
        raise ValueError(f"Expected a render job, got {job.kind.value}")
    if len(job.input_paths) != 2:
        raise ValueError("Render job needs exactly one image and one audio input")

    image_path, audio_path = job.input_paths
    args = [
        ffmpeg_bin,
        "-loop",
        "1",
        "-i",
        str(image_path),
        "-i",
        str(audio_path),
        "-shortest",
        "-c:v",
        VIDEO_CODEC,
        "-pix_fmt",
        PIXEL_FORMAT,
        "-tune",
        STILL_IMAGE_TUNE,
        "-y",
        str(job.output_path),
    ]
    return ProcessInvocation(
        args=tuple(args),
        timeout_seconds=RENDER_TIMEOUT_SECONDS,
        output_path=Path(job.output_path),
    )


def build_concat_invocation(job: Job, ffmpeg_bin: str = "ffmpeg") -> ProcessInvocation:
    if job.kind != JobKind.CONCAT:
        raise ValueError(f"Expected a concat job, got {job.kind.value}")
    if len(job.input_paths) != 1:
        raise ValueError("Concat job needs exactly one list file input")

    list_path = job.input_paths[0]
    # -xerror: a segment that fails to open mid-list must fail the job rather
    # than yield a truncated file with exit status 0.
    args = [
        ffmpeg_bin,
        "-xerror",
        "-f",
        "concat",
        "-safe",
        "0",
        "-i",
        str(list_path),
        "-c",
        "copy",
        "-y",
        str(job.output_path),
    ]
    return ProcessInvocation(
        args=tuple(args),
        timeout_seconds=CONCAT_TIMEOUT_SECONDS,
        output_path=Path(job.output_path),
    )


def build_invocation(job: Job, ffmpeg_bin: str = "ffmpeg") -> ProcessInvocation:
    if job.kind == JobKind.RENDER:
        invocation = build_render_invocation(job, ffmpeg_bin)
    else:
        invocation = build_concat_invocation(job, ffmpeg_bin)
    logger.debug("Command: %s", format_command(invocation))
    return invocation


def format_command(invocation: ProcessInvocation) -> str:
    """Quoted, copy-pasteable form of an invocation. For logs only, never executed."""
    text = shlex.join(invocation.args)
    if len(text) > 4000:
        return f"{text[:4000]}... [truncated]"
    return text
