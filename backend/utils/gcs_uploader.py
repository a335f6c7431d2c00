from __future__ import annotations

import base64
import binascii
import json
import logging
import threading
from datetime import timedelta
from pathlib import Path
from typing import Protocol

from google.cloud import storage
from google.oauth2 import service_account

from config.settings import Settings
from models.job_models import UploadedArtifact
from utils.job_errors import UploadError

logger = logging.getLogger(__name__)

VIDEO_CONTENT_TYPE = "video/mp4"
# Resumable upload chunk size; must be a multiple of 256 KiB.
UPLOAD_CHUNK_SIZE = 8 * 1024 * 1024
BROWSER_URL_BASE = "https://storage.cloud.google.com"


class ArtifactUploader(Protocol):
    def upload(self, local_path: Path, name: str) -> UploadedArtifact: ...


def _load_credentials_info(settings: Settings) -> dict | None:
    credentials_raw = settings.gcp_credentials
    if not credentials_raw and settings.gcp_credentials_b64:
        try:
            credentials_raw = base64.b64decode(settings.gcp_credentials_b64).decode("utf-8")
        except (binascii.Error, UnicodeDecodeError) as exc:
            raise ValueError("Invalid GCP_CREDENTIALS_B64 value") from exc
    if not credentials_raw:
        return None
    try:
        return json.loads(credentials_raw)
    except json.JSONDecodeError as exc:
        raise ValueError("Invalid GCP_CREDENTIALS JSON") from exc


def _get_storage_client(settings: Settings) -> storage.Client:
    credentials_info = _load_credentials_info(settings)
    if not credentials_info:
        return storage.Client()
    credentials = service_account.Credentials.from_service_account_info(
        credentials_info
    )
    return storage.Client(
        credentials=credentials, project=credentials_info.get("project_id")
    )


def build_blob_name(name: str, folder: str | None = None) -> str:
    if not folder:
        return name
    return f"{folder.strip('/')}/{name}"


class GCSArtifactUploader:
    """
    Streams rendered files into a Google Cloud Storage bucket.

    ``settings.upload_folder`` acts as the parent folder: it becomes the blob
    name prefix, and an unset folder means the bucket root. The storage client
    is created on first use so the server can start without credentials.
    """

    def __init__(self, settings: Settings, client: storage.Client | None = None):
        self._settings = settings
        self._client = client
        self._client_lock = threading.Lock()

    def _get_bucket(self) -> storage.Bucket:
        with self._client_lock:
            if self._client is None:
                self._client = _get_storage_client(self._settings)
        return self._client.bucket(self._settings.gcs_bucket)

    def _share_link(self, blob: storage.Blob, bucket_name: str) -> str:
        ttl = self._settings.share_link_ttl_seconds
        if ttl > 0:
            return blob.generate_signed_url(
                expiration=timedelta(seconds=ttl),
                method="GET",
                version="v4",
            )
        return f"{BROWSER_URL_BASE}/{bucket_name}/{blob.name}"

    def upload(self, local_path: Path, name: str) -> UploadedArtifact:
        bucket_name = self._settings.gcs_bucket
        if not bucket_name:
            raise UploadError("Storage bucket is not configured (set GCS_BUCKET)")

        blob_name = build_blob_name(name, self._settings.upload_folder)
        logger.info("Uploading %s to gs://%s/%s", local_path, bucket_name, blob_name)

        try:
            bucket = self._get_bucket()
            blob = bucket.blob(blob_name, chunk_size=UPLOAD_CHUNK_SIZE)
            with open(local_path, "rb") as file_obj:
                blob.upload_from_file(file_obj, content_type=VIDEO_CONTENT_TYPE)
            link = self._share_link(blob, bucket_name)
        except Exception as exc:
            logger.exception(
                "Error uploading file to bucket %s at %s", bucket_name, blob_name
            )
            raise UploadError(f"Upload failed: {exc}") from exc

        artifact = UploadedArtifact(file_id=f"gs://{bucket_name}/{blob_name}", link=link)
        logger.info("Uploaded %s", artifact.file_id)
        return artifact
