# backend/app/api/endpoints/upload.py
from typing import Optional

from fastapi import APIRouter, Depends, File, Form, UploadFile

from app.api.deps import get_current_user
from app.schemas.upload import UploadDelete, UploadRead
from app.schemas.user import SuccessMessage
from app.utils import storage

router = APIRouter(prefix="/api/upload", tags=["Upload"], dependencies=[Depends(get_current_user)])


@router.post("", response_model=UploadRead)
async def upload_file(
    file: Optional[UploadFile] = File(None),
    previous_url: Optional[str] = Form(None),
):
    """
    [요청] multipart/form-data: file (+ previous_url)
    [응답] {file_name, file_url}
    """
    return await storage.save_upload(file, previous_url=previous_url)


@router.delete("", response_model=SuccessMessage)
async def delete_file(payload: UploadDelete):
    await storage.delete_upload(payload.file_url)
    return SuccessMessage(message="File deleted")
