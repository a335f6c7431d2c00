from fastapi import APIRouter

from models.job_models import HealthResponse, PingResponse

router = APIRouter(tags=["health"])


@router.get("/health", response_model=HealthResponse)
async def health():
    return HealthResponse()


@router.get("/ping", response_model=PingResponse)
async def ping():
    return PingResponse()
