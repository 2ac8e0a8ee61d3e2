# 파일 위치: backend/app/schemas/task.py

from datetime import datetime
from typing import Dict, List, Optional, Union

from pydantic import BaseModel, ConfigDict, Field

from app.models.task import (
    AssignType,
    CustomField,
    CustomInterval,
    HistoryEntry,
    NotificationFrequency,
    NotificationInterval,
    NotificationType,
    TaskPriority,
    TaskStatus,
)


class NotificationFrequencyIn(BaseModel):
    """
    알림 설정 입력. start_time/end_time이 없으면 서버가 오늘 09:00 / 17:00으로 채웁니다.
    """
    type: NotificationType = NotificationType.ONCE
    interval: NotificationInterval = NotificationInterval.DAILY
    custom_interval: CustomInterval = Field(default_factory=CustomInterval)
    start_time: Optional[datetime] = None
    end_time: Optional[datetime] = None


# --- API 요청(Request) 스키마 ---
class TaskCreate(BaseModel):
    """
    [요청] POST /api/tasks
    관리자가 새 task를 만들 때 보내는 데이터 구조입니다.
    title/description 필수 여부와 할당 대상 검증은 CRUD/엔진에서 처리합니다.
    """
    model_config = ConfigDict(str_strip_whitespace=True)

    title: Optional[str] = None
    description: Optional[str] = None
    priority: TaskPriority = TaskPriority.MEDIUM

    # assign_type이 없으면 assigned_role / assigned_to 중 있는 쪽으로 판단
    assign_type: Optional[AssignType] = None
    assigned_role: Optional[str] = None
    assigned_to: Optional[List[str]] = None

    fields: List[CustomField] = Field(default_factory=list)
    notification_frequency: Optional[NotificationFrequencyIn] = None
    repeat_notification: bool = False


class TaskUpdate(BaseModel):
    """
    [요청] PATCH /api/tasks/{task_id}
    보낸 필드만 변경됩니다. (exclude_unset)
    """
    model_config = ConfigDict(str_strip_whitespace=True)

    title: Optional[str] = None
    description: Optional[str] = None
    priority: Optional[TaskPriority] = None
    assign_type: Optional[AssignType] = None
    assigned_role: Optional[str] = None
    assigned_to: Optional[List[str]] = None
    status: Optional[str] = None
    assignment_status: Optional[str] = None
    fields: Optional[List[CustomField]] = None
    notification_frequency: Optional[NotificationFrequencyIn] = None
    repeat_notification: Optional[bool] = None


class TaskStatusUpdate(BaseModel):
    """[요청] PATCH /api/tasks/{task_id}/status"""
    status: str


class FieldValue(BaseModel):
    """제출 시에는 label로 task의 필드 정의를 찾아 value만 채웁니다."""
    label: str
    value: Optional[Union[str, int, float]] = None
    # 클라이언트가 같이 보내도 무시 (정의는 task 쪽이 기준)
    type: Optional[str] = None
    required: Optional[bool] = None


class TaskSubmission(BaseModel):
    """
    [요청] POST /api/tasks/{task_id}/submit
    담당자가 custom field 값을 채워서 제출합니다. 기본적으로 completed로 전환됩니다.
    """
    fields: List[FieldValue] = Field(default_factory=list)
    status: TaskStatus = TaskStatus.COMPLETED


# --- API 응답(Response) 스키마 ---
class TaskAssignee(BaseModel):
    id: str
    username: str


class TaskRead(BaseModel):
    id: str
    title: str
    description: str
    priority: str
    assigned_role: Optional[str] = None
    assigned_to: List[str] = Field(default_factory=list)
    status: str
    assignment_status: str
    fields: List[CustomField] = Field(default_factory=list)
    notification_frequency: NotificationFrequency
    repeat_notification: bool = False
    last_notified: Optional[datetime] = None
    next_notification: Optional[datetime] = None
    history: List[HistoryEntry] = Field(default_factory=list)
    created_at: datetime
    updated_at: datetime

    # 관리자 응답에서만 채워짐 (assigned_to id -> username)
    assignees: Optional[List[TaskAssignee]] = None

    model_config = ConfigDict(from_attributes=True)


class TaskStats(BaseModel):
    """[응답] GET /api/tasks/stats (관리자 대시보드)"""
    total: int = 0
    pending: int = 0
    in_progress: int = 0
    completed: int = 0


class UserTaskStats(BaseModel):
    """[응답] GET /api/users/me/stats"""
    pending: int = 0
    in_progress: int = 0
    completed: int = 0


class AssigneeTaskStats(UserTaskStats):
    """[응답] GET /api/tasks/stats/users 의 한 줄"""
    user_id: str
    total: int = 0


def stats_key(status: str) -> str:
    # 'in-progress' -> 'in_progress'
    return status.replace("-", "_")


STATUS_COUNT_KEYS: Dict[str, str] = {s.value: stats_key(s.value) for s in TaskStatus}
