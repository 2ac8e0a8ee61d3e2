# backend/app/core/errors.py
"""
Task 라이프사이클 엔진과 CRUD 계층이 던지는 도메인 예외.

HTTP 상태 코드로의 변환은 main.py의 exception handler 한 곳에서만 합니다.
엔진/CRUD 코드는 HTTPException을 직접 만들지 않습니다.
"""

from typing import List, Optional


class TaskAppError(Exception):
    code = "error"
    status_code = 500

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class ValidationError(TaskAppError):
    """
    잘못되었거나 누락된 입력 (필수 필드, role enum, 전화번호/날짜 형식 등).
    errors에는 실패한 모든 필드 메시지가, message에는 첫 번째 메시지가 들어갑니다.
    """
    code = "validation_error"
    status_code = 400

    def __init__(self, message: str, errors: Optional[List[str]] = None):
        super().__init__(message)
        self.errors = errors or [message]


class NotFoundError(TaskAppError):
    code = "not_found"
    status_code = 404

    def __init__(self, entity: str):
        super().__init__(f"{entity} not found")
        self.entity = entity


class ConflictError(TaskAppError):
    """쓰기 시점에 전제 조건이 깨진 경우 (예: 이미 다른 사람이 accept한 task)"""
    code = "conflict"
    status_code = 409


class PermissionDeniedError(TaskAppError):
    code = "permission_denied"
    status_code = 403


class AuthenticationError(TaskAppError):
    code = "authentication_failed"
    status_code = 401


class StorageError(TaskAppError):
    """
    DB / 파일 시스템 장애. 호출자가 재시도할 수 있지만,
    엔진 내부에서 자동 재시도는 하지 않습니다.
    """
    code = "storage_error"
    status_code = 503


TASK_UNAVAILABLE = "task is no longer available"
