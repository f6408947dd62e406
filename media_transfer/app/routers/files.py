from fastapi import APIRouter, Request

from ..models.v1.files_models import ErrorResponse, FilesResponse
from ..services.listing_service import list_uploads

router = APIRouter()


@router.get("/files", response_model=FilesResponse, responses={500: {"model": ErrorResponse}})
async def list_files(request: Request):
    files = await list_uploads(request.app.state.settings.uploads_dir)
    return FilesResponse(files=files)
