from fastapi import APIRouter, Request

from ..models.v1.files_models import ErrorResponse, UploadResponse
from ..services.upload_service import save_upload

router = APIRouter()


@router.post(
    "/upload",
    response_model=UploadResponse,
    responses={400: {"model": ErrorResponse}, 413: {"model": ErrorResponse}, 500: {"model": ErrorResponse}},
)
async def upload_file(request: Request):
    """Store a single multipart file sent under the ``file`` field.

    The body is parsed by hand rather than through ``File(...)`` so that
    limit and field violations map onto the upload error envelope instead of
    FastAPI's 422.
    """
    record = await save_upload(request, request.app.state.settings)
    return UploadResponse(file=record)
