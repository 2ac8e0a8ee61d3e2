# 파일 위치: backend/app/schemas/upload.py

from pydantic import BaseModel


class UploadRead(BaseModel):
    """
    [응답] POST /api/upload
    file 타입 custom field의 value에는 file_url만 저장됩니다.
    """
    file_name: str
    file_url: str


class UploadDelete(BaseModel):
    """[요청] DELETE /api/upload"""
    file_url: str
