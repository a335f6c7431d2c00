"""
Runtime configuration for the render server.

Values come from the process environment (optionally seeded from a ``.env``
file) and are frozen into a single ``Settings`` value at startup. Components
receive that value explicitly instead of reading the environment themselves.
"""

from __future__ import annotations

import logging
import os
from dataclasses import dataclass
from pathlib import Path
from typing import Mapping

from dotenv import load_dotenv

logger = logging.getLogger(__name__)

DEFAULT_PORT = 3000


@dataclass(frozen=True)
class Settings:
    renders_dir: Path = Path("renders")
    uploads_dir: Path = Path("uploads")
    ffmpeg_bin: str = "ffmpeg"
    gcs_bucket: str = ""
    upload_folder: str | None = None
    share_link_ttl_seconds: int = 0
    gcp_credentials: str = ""
    gcp_credentials_b64: str = ""
    host: str = "0.0.0.0"
    port: int = DEFAULT_PORT
    log_level: str = "INFO"
    job_log_file: str = ""


def _int_from_env(env: Mapping[str, str], key: str, default: int) -> int:
    raw = env.get(key, "").strip()
    if not raw:
        return default
    try:
        return int(raw)
    except ValueError:
        logger.warning("Ignoring non-integer %s=%r, using %s", key, raw, default)
        return default


def load_settings(
    env: Mapping[str, str] | None = None,
    dotenv_path: Path | None = None,
) -> Settings:
    """
    Build ``Settings`` from environment variables.

    Args:
        env: Mapping to read instead of ``os.environ`` (tests pass a dict).
        dotenv_path: Optional ``.env`` file loaded into ``os.environ`` first.
            Ignored when ``env`` is given.

    Returns:
        A frozen ``Settings`` instance.
    """
    if env is None:
        load_dotenv(dotenv_path)
        env = os.environ

    # GOOGLE_DRIVE_FOLDER_ID and SERVICE_ACCOUNT_B64 are accepted for
    # deployments configured for the previous Drive-backed server.
    upload_folder = (
        env.get("UPLOAD_FOLDER", "").strip()
        or env.get("GOOGLE_DRIVE_FOLDER_ID", "").strip()
        or None
    )

    return Settings(
        renders_dir=Path(env.get("RENDERS_DIR", "renders")),
        uploads_dir=Path(env.get("UPLOADS_DIR", "uploads")),
        ffmpeg_bin=env.get("FFMPEG_BIN", "ffmpeg").strip() or "ffmpeg",
        gcs_bucket=env.get("GCS_BUCKET", "").strip(),
        upload_folder=upload_folder.strip("/") if upload_folder else None,
        share_link_ttl_seconds=max(0, _int_from_env(env, "SHARE_LINK_TTL_SECONDS", 0)),
        gcp_credentials=env.get("GCP_CREDENTIALS", ""),
        gcp_credentials_b64=(
            env.get("GCP_CREDENTIALS_B64", "") or env.get("SERVICE_ACCOUNT_B64", "")
        ),
        host=env.get("HOST", "0.0.0.0"),
        port=_int_from_env(env, "PORT", DEFAULT_PORT),
        log_level=env.get("LOG_LEVEL", "INFO").upper(),
        job_log_file=env.get("JOB_LOG_FILE", "").strip(),
    )
