from fastapi import APIRouter, Request

from ..models.v1.files_models import HealthResponse
from media_transfer.utils.upload_naming import isoformat_utc, utc_now

router = APIRouter()


@router.get("/health", response_model=HealthResponse)
def health(request: Request):
    return HealthResponse(
        timestamp=isoformat_utc(utc_now()),
        uploadsDirectory=request.app.state.settings.uploads_dir,
    )
