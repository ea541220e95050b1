"""Health check endpoint."""

import os

from pydantic import BaseModel

from uploader.core.logger import LogIcon, logger
from uploader.core.router import Router
from uploader.core.settings import settings as st

router = Router(__file__, prefix="/")


class HealthResponse(BaseModel):
    """Health check response model."""

    status: str
    service: str
    version: str
    upload_dir_writable: bool


@router.get("/health")
async def health_check() -> HealthResponse:
    logger.info("Health check requested", icon=LogIcon.HEALTHCHECK)
    upload_dir = st.UPLOAD_DIR
    return HealthResponse(
        status="healthy",
        service=st.API_NAME,
        version=st.API_VERSION,
        upload_dir_writable=upload_dir.is_dir() and os.access(upload_dir, os.W_OK),
    )
