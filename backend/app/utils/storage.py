# backend/app/utils/storage.py
"""
업로드 파일 저장소 (로컬 디스크)

file 타입 custom field에는 파일 자체가 아니라 여기서 돌려주는 file_url만 저장됩니다.
파일 I/O는 이벤트 루프를 막지 않도록 threadpool에서 실행합니다.
"""

import re
import time
from pathlib import Path
from typing import Optional

import structlog
from fastapi import UploadFile
from fastapi.concurrency import run_in_threadpool

from app.core.config import settings
from app.core.errors import StorageError, ValidationError
from app.schemas.upload import UploadRead

logger = structlog.get_logger(__name__)

_UNSAFE_CHARS = re.compile(r"[^a-z0-9.]")


def upload_root() -> Path:
    return Path(settings.UPLOAD_DIR).resolve()


def sanitize_file_name(name: str) -> str:
    """'My Photo (1).PNG' -> 'my-photo--1-.png'"""
    return _UNSAFE_CHARS.sub("-", (name or "").lower())


def build_file_name(original_name: str, now_ms: Optional[int] = None) -> str:
    if now_ms is None:
        now_ms = int(time.time() * 1000)
    return f"{now_ms}-{sanitize_file_name(original_name)}"


def resolve_upload_path(file_url: str) -> Path:
    """
    '/uploads/<name>' 형태의 URL을 디스크 경로로 바꿉니다.
    업로드 디렉터리 밖을 가리키면 ValidationError.
    """
    if not file_url or not file_url.strip():
        raise ValidationError("No file URL provided")

    relative = file_url.strip()
    prefix = settings.UPLOAD_URL_PREFIX.rstrip("/") + "/"
    if relative.startswith(prefix):
        relative = relative[len(prefix):]
    relative = relative.lstrip("/")

    root = upload_root()
    path = (root / relative).resolve()
    if path == root or root not in path.parents:
        raise ValidationError("Invalid file path")
    return path


def _write_bytes(path: Path, data: bytes) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_bytes(data)


def _unlink_if_exists(path: Path) -> bool:
    if not path.exists():
        return False
    path.unlink()
    return True


async def delete_upload(file_url: str) -> bool:
    """
    파일이 있으면 지우고 True. 없으면 경고만 남기고 False (에러 아님).
    """
    path = resolve_upload_path(file_url)
    try:
        removed = await run_in_threadpool(_unlink_if_exists, path)
    except OSError as e:
        logger.error("upload_delete_failed", file_url=file_url, error=str(e))
        raise StorageError("Error deleting file") from e

    if not removed:
        logger.warning("upload_not_found", file_url=file_url)
    return removed


async def save_upload(file: UploadFile, previous_url: Optional[str] = None) -> UploadRead:
    if file is None or not file.filename:
        raise ValidationError("No file uploaded")

    # 같은 필드에 다시 업로드하면 이전 파일은 지움
    if previous_url:
        await delete_upload(previous_url)

    file_name = build_file_name(file.filename)
    path = upload_root() / file_name

    data = await file.read()
    try:
        await run_in_threadpool(_write_bytes, path, data)
    except OSError as e:
        logger.error("upload_write_failed", file_name=file_name, error=str(e))
        raise StorageError("Error uploading file") from e

    file_url = f"{settings.UPLOAD_URL_PREFIX.rstrip('/')}/{file_name}"
    logger.info("upload_saved", file_name=file_name, size=len(data))
    return UploadRead(file_name=file_name, file_url=file_url)
