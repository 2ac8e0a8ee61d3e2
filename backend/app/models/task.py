# 파일 위치: backend/app/models/task.py

from datetime import datetime, timezone
from enum import Enum
from typing import Annotated, List, Literal, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, conint, field_validator


class TaskPriority(str, Enum):
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    URGENT = "urgent"


class TaskStatus(str, Enum):
    """작업 진행 상태"""
    PENDING = "pending"
    IN_PROGRESS = "in-progress"
    COMPLETED = "completed"


class AssignmentStatus(str, Enum):
    """누가 task를 맡을지에 대한 협상 상태 (작업 진행 상태와 독립)"""
    PENDING = "pending"
    ACCEPTED = "accepted"
    REJECTED = "rejected"


class AssignableRole(str, Enum):
    SALESMAN = "salesman"
    PURCHASEMAN = "purchaseman"


class AssignType(str, Enum):
    ROLE = "role"
    USER = "user"


class NotificationType(str, Enum):
    ONCE = "once"
    RECURRING = "recurring"


class NotificationInterval(str, Enum):
    DAILY = "daily"
    CUSTOM = "custom"


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def ensure_aware_utc(dt: Optional[datetime]) -> Optional[datetime]:
    """
    naive datetime이 들어오면 UTC로 간주해서 tzinfo를 붙입니다.
    """
    if dt is None:
        return dt
    if dt.tzinfo is None:
        return dt.replace(tzinfo=timezone.utc)
    return dt.astimezone(timezone.utc)


# -------------------------
# Custom Field (type으로 구분되는 tagged union)
# -------------------------
class _CustomFieldBase(BaseModel):
    model_config = ConfigDict(str_strip_whitespace=True)

    label: str = Field(..., min_length=1)
    required: bool = False
    value: Optional[str] = None

    @field_validator("value", mode="before")
    @classmethod
    def _coerce_scalar(cls, v):
        # JSON에서 숫자로 넘어오는 값도 문자열로 보관
        if isinstance(v, (int, float)) and not isinstance(v, bool):
            return str(v)
        if isinstance(v, datetime):
            return v.isoformat()
        return v

    def is_empty(self) -> bool:
        return self.value is None or str(self.value).strip() == ""


class TextField(_CustomFieldBase):
    type: Literal["string"] = "string"


class PhoneField(_CustomFieldBase):
    """type 'number'는 UI에서 전화번호 입력용으로 쓰입니다."""
    type: Literal["number"] = "number"


class DateField(_CustomFieldBase):
    type: Literal["date"] = "date"

    def as_datetime(self) -> Optional[datetime]:
        if self.is_empty():
            return None
        return parse_iso_datetime(self.value)


class FileField(_CustomFieldBase):
    """value에는 파일 바이트가 아니라 저장된 파일의 URL/경로만 들어갑니다."""
    type: Literal["file"] = "file"


CustomField = Annotated[
    Union[TextField, PhoneField, DateField, FileField],
    Field(discriminator="type"),
]


def parse_iso_datetime(value: str) -> datetime:
    """
    ISO-8601 문자열 -> datetime. 'Z' 접미사와 날짜만 있는 형식도 허용.
    파싱 실패 시 ValueError.
    """
    text = str(value).strip()
    if text.endswith("Z") or text.endswith("z"):
        text = text[:-1] + "+00:00"
    return datetime.fromisoformat(text)


# -------------------------
# 알림 설정 / 이력
# -------------------------
class CustomInterval(BaseModel):
    hours: conint(ge=0, le=23) = 0
    minutes: conint(ge=0, le=59) = 0


class NotificationFrequency(BaseModel):
    model_config = ConfigDict(use_enum_values=True)

    type: NotificationType = NotificationType.ONCE
    interval: NotificationInterval = NotificationInterval.DAILY
    custom_interval: CustomInterval = Field(default_factory=CustomInterval)
    start_time: datetime = Field(default_factory=_utcnow)
    end_time: Optional[datetime] = None

    @field_validator("start_time", "end_time")
    @classmethod
    def _aware(cls, v):
        return ensure_aware_utc(v)


class HistoryEntry(BaseModel):
    action: str
    performed_by: str
    timestamp: datetime = Field(default_factory=_utcnow)

    @field_validator("timestamp")
    @classmethod
    def _aware(cls, v):
        return ensure_aware_utc(v)


class TaskInDB(BaseModel):
    """
    MongoDB의 'tasks' 컬렉션에 저장되는 완전한 형태의 데이터 모델입니다.
    라이프사이클 엔진(app.services.*)은 이 모델 위에서 동작합니다.
    """
    id: str = Field(..., alias="_id")
    title: str
    description: str
    priority: TaskPriority = TaskPriority.MEDIUM

    # 할당 대상: role 또는 특정 user 목록
    assigned_role: Optional[AssignableRole] = None
    assigned_to: List[str] = Field(default_factory=list)

    status: TaskStatus = TaskStatus.PENDING
    assignment_status: AssignmentStatus = AssignmentStatus.PENDING

    fields: List[CustomField] = Field(default_factory=list)

    notification_frequency: NotificationFrequency = Field(default_factory=NotificationFrequency)
    repeat_notification: bool = False
    last_notified: Optional[datetime] = None
    next_notification: Optional[datetime] = None

    history: List[HistoryEntry] = Field(default_factory=list)

    created_at: datetime = Field(default_factory=_utcnow)
    updated_at: datetime = Field(default_factory=_utcnow)

    model_config = ConfigDict(
        populate_by_name=True,
        from_attributes=True,
        validate_assignment=True,
        use_enum_values=True,
    )

    @field_validator("id", mode="before")
    @classmethod
    def _stringify_id(cls, v):
        # ObjectId -> str
        return str(v) if v is not None else v

    @field_validator("assigned_to", mode="before")
    @classmethod
    def _normalize_assigned_to(cls, v):
        # 과거 문서에는 null 이거나 단일 값으로 저장된 경우가 있음
        if v is None:
            return []
        if not isinstance(v, list):
            return [str(v)]
        return [str(x) for x in v]

    @field_validator("last_notified", "next_notification", "created_at", "updated_at")
    @classmethod
    def _aware(cls, v):
        return ensure_aware_utc(v)
