from fastapi import Request

from config.settings import Settings
from utils.gcs_uploader import ArtifactUploader


def get_settings(request: Request) -> Settings:
    return request.app.state.settings


def get_uploader(request: Request) -> ArtifactUploader:
    return request.app.state.uploader
