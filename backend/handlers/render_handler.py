import logging
import shutil
from pathlib import Path
from typing import BinaryIO
from uuid import uuid4

from fastapi import APIRouter, Depends, File, Form, UploadFile
from starlette.concurrency import run_in_threadpool

from config.settings import Settings
from dependencies.pipeline import get_settings, get_uploader
from models.job_models import ConcatRequest, ErrorResponse, JobResponse, ReceivedPart
from operators.job_operator import run_concat_job, run_render_job
from utils.cleanup import discard_files
from utils.gcs_uploader import ArtifactUploader
from utils.job_errors import UnexpectedError


router = APIRouter(tags=["render"])
logger = logging.getLogger(__name__)

UPLOAD_READ_CHUNK = 1024 * 1024
ERROR_RESPONSES = {
    400: {"model": ErrorResponse},
    500: {"model": ErrorResponse},
}


def _write_part(source: BinaryIO, path: Path) -> None:
    try:
        with open(path, "wb") as out:
            shutil.copyfileobj(source, out, UPLOAD_READ_CHUNK)
    except BaseException:
        discard_files([path])
        raise


async def _store_part(
    field_name: str,
    upload: UploadFile | None,
    scratch_dir: Path,
) -> ReceivedPart | None:
    if upload is None or not upload.filename:
        return None

    scratch_dir.mkdir(parents=True, exist_ok=True)
    # Random name; the client filename never reaches the filesystem.
    path = scratch_dir / uuid4().hex
    try:
        await run_in_threadpool(_write_part, upload.file, path)
    finally:
        await upload.close()
    logger.debug("Stored %s part %r at %s", field_name, upload.filename, path)

    return ReceivedPart(
        field_name=field_name,
        path=path,
        original_filename=upload.filename,
        content_type=upload.content_type,
    )


@router.post("/render", response_model=JobResponse, responses=ERROR_RESPONSES)
async def render(
    image: UploadFile | None = File(None),
    audio: UploadFile | None = File(None),
    filename: str | None = Form(None),
    settings: Settings = Depends(get_settings),
    uploader: ArtifactUploader = Depends(get_uploader),
):
    scratch_dir = Path(settings.uploads_dir)
    parts: dict[str, ReceivedPart | None] = {}
    try:
        for field_name, upload in (("image", image), ("audio", audio)):
            parts[field_name] = await _store_part(field_name, upload, scratch_dir)
    except Exception as exc:
        discard_files(part.path for part in parts.values() if part is not None)
        logger.exception("Failed to store uploaded parts")
        raise UnexpectedError(str(exc)) from exc

    artifact = await run_in_threadpool(run_render_job, parts, filename, uploader, settings)

    return JobResponse(message="Rendered and uploaded", driveLink=artifact.link)


@router.post("/concat", response_model=JobResponse, responses=ERROR_RESPONSES)
async def concat(
    request: ConcatRequest,
    settings: Settings = Depends(get_settings),
    uploader: ArtifactUploader = Depends(get_uploader),
):
    artifact = await run_in_threadpool(
        run_concat_job, request.concatList, request.output, uploader, settings
    )

    return JobResponse(message="Concatenated and uploaded", driveLink=artifact.link)
