import logging
from contextlib import asynccontextmanager
from pathlib import Path

import uvicorn
from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from config.settings import Settings, load_settings
from handlers.health_handler import router as health_router
from handlers.render_handler import router as render_router
from utils.gcs_uploader import ArtifactUploader, GCSArtifactUploader
from utils.job_errors import JobError, UnexpectedError

ROOT_DIR = Path(__file__).resolve().parents[1]
LOG_FORMAT = "%(asctime)s %(levelname)s [%(name)s] %(message)s"

PIPELINE_LOGGERS = (
    "handlers.render_handler",
    "operators.job_operator",
    "utils.process_supervisor",
    "utils.gcs_uploader",
    "utils.cleanup",
)

logger = logging.getLogger(__name__)


def _attach_file_handler(
    logger_name: str,
    log_file_path: Path,
    level_name: str,
) -> None:
    logger_level_value = getattr(logging, level_name.upper(), logging.INFO)

    log_file_path.parent.mkdir(parents=True, exist_ok=True)
    file_handler = logging.FileHandler(log_file_path, encoding="utf-8")
    file_handler.setLevel(logger_level_value)
    file_handler.setFormatter(logging.Formatter(LOG_FORMAT))

    target_logger = logging.getLogger(logger_name)
    if not any(
        isinstance(handler, logging.FileHandler)
        and getattr(handler, "baseFilename", None) == str(log_file_path)
        for handler in target_logger.handlers
    ):
        target_logger.addHandler(file_handler)
    target_logger.setLevel(logger_level_value)


def configure_logging(settings: Settings) -> None:
    logging.basicConfig(level=settings.log_level, format=LOG_FORMAT)

    if settings.job_log_file:
        log_path = Path(settings.job_log_file)
        if not log_path.is_absolute():
            log_path = ROOT_DIR / log_path
        for logger_name in PIPELINE_LOGGERS:
            _attach_file_handler(logger_name, log_path, settings.log_level)


async def job_error_handler(request: Request, exc: JobError) -> JSONResponse:
    message = exc.public_message if isinstance(exc, UnexpectedError) else exc.message
    return JSONResponse(status_code=exc.status_code, content={"error": message})


async def request_validation_handler(
    request: Request, exc: RequestValidationError
) -> JSONResponse:
    details = "; ".join(
        f"{'.'.join(str(part) for part in err.get('loc', ()))}: {err.get('msg')}"
        for err in exc.errors()
    )
    return JSONResponse(status_code=400, content={"error": f"Invalid request: {details}"})


async def unhandled_error_handler(request: Request, exc: Exception) -> JSONResponse:
    logger.exception("Unhandled error on %s %s", request.method, request.url.path)
    return JSONResponse(status_code=500, content={"error": UnexpectedError.public_message})


def create_app(
    settings: Settings | None = None,
    uploader: ArtifactUploader | None = None,
) -> FastAPI:
    settings = settings or load_settings(dotenv_path=ROOT_DIR / ".env")

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        Path(settings.renders_dir).mkdir(parents=True, exist_ok=True)
        logger.info(f"FFmpeg server listening on port {settings.port}")
        yield
        logger.info("Gracefully shutting down...")

    app = FastAPI(title="Render Relay", lifespan=lifespan)
    app.state.settings = settings
    app.state.uploader = uploader or GCSArtifactUploader(settings)

    app.include_router(health_router)
    app.include_router(render_router)

    app.add_exception_handler(JobError, job_error_handler)
    app.add_exception_handler(RequestValidationError, request_validation_handler)
    app.add_exception_handler(Exception, unhandled_error_handler)

    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_methods=["*"],
        allow_headers=["*"],
    )

    return app


def main() -> None:
    settings = load_settings(dotenv_path=ROOT_DIR / ".env")
    configure_logging(settings)
    uvicorn.run(create_app(settings), host=settings.host, port=settings.port)


if __name__ == "__main__":
    main()
