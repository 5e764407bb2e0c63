from fastapi import APIRouter, Depends, File, UploadFile

from feedback_tracker.core.auth import CurrentUser, get_current_user
from feedback_tracker.core.storage import save_upload
from feedback_tracker.schemas.requests import UploadOut

router = APIRouter()


@router.post("/upload", response_model=UploadOut, status_code=201)
async def upload_file(
    file: UploadFile = File(...),
    _: CurrentUser = Depends(get_current_user),
):
    content = await file.read()
    name, path = save_upload(filename=file.filename, content=content)
    return UploadOut(filename=name, path=path)
