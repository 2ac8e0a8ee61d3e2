# backend/app/crud/tasks.py
import re
from datetime import datetime, time, timezone
from typing import Any, Dict, List, Optional, Tuple

import structlog
from bson import ObjectId
from bson.errors import InvalidId
from pymongo import ReturnDocument
from pymongo.errors import PyMongoError

from app.core.config import settings
from app.core.errors import (
    ConflictError,
    NotFoundError,
    PermissionDeniedError,
    TASK_UNAVAILABLE,
    ValidationError,
)
from app.crud import users as users_crud
from app.db.mongo import get_db, storage_guard
from app.models.task import AssignmentStatus, NotificationFrequency, TaskInDB, TaskStatus
from app.models.user import UserInDB
from app.schemas.task import (
    AssigneeTaskStats,
    NotificationFrequencyIn,
    STATUS_COUNT_KEYS,
    TaskCreate,
    TaskStats,
    TaskSubmission,
    TaskUpdate,
    UserTaskStats,
)
from app.services import lifecycle
from app.services.assignment import apply_assignment
from app.services.fields import ensure_valid_fields
from app.services.notifications import refresh_next_notification
from app.services.pending import is_eligible, pending_tasks_query

logger = structlog.get_logger(__name__)

DEFAULT_NOTIFY_START = time(9, 0)
DEFAULT_NOTIFY_END = time(17, 0)


def get_tasks_collection():
    return get_db()["tasks"]


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _safe_object_id(task_id: str) -> ObjectId:
    try:
        return ObjectId(str(task_id).strip())
    except (InvalidId, TypeError):
        raise ValidationError("Invalid task_id")


def _to_doc(task: TaskInDB) -> Dict[str, Any]:
    """TaskInDB -> Mongo document ('_id' 제외)"""
    doc = task.model_dump(by_alias=True)
    doc.pop("_id", None)
    return doc


def _empty_assignee_filter() -> Dict[str, Any]:
    return {
        "$or": [
            {"assigned_to": {"$exists": False}},
            {"assigned_to": []},
            {"assigned_to": None},
        ]
    }


def _build_frequency(
    data: Optional[NotificationFrequencyIn],
    now: datetime,
    current: Optional[NotificationFrequency] = None,
) -> NotificationFrequency:
    """
    보낸 키만 current 위에 덮어씁니다. (PATCH)
    그래도 start/end가 없으면 오늘 09:00 ~ 17:00 (now와 같은 timezone)
    """
    values = current.model_dump() if current is not None else {}
    if data is not None:
        values.update(data.model_dump(exclude_unset=True, exclude_none=True))

    tz = now.tzinfo or timezone.utc
    if not values.get("start_time"):
        values["start_time"] = datetime.combine(now.date(), DEFAULT_NOTIFY_START, tzinfo=tz)
    if not values.get("end_time"):
        values["end_time"] = datetime.combine(now.date(), DEFAULT_NOTIFY_END, tzinfo=tz)
    return NotificationFrequency(**values)


async def _load(task_id: str) -> Tuple[ObjectId, TaskInDB]:
    oid = _safe_object_id(task_id)
    doc = await get_tasks_collection().find_one({"_id": oid})
    if not doc:
        raise NotFoundError("Task")
    return oid, TaskInDB(**doc)


async def _save_changes(
    oid: ObjectId,
    before: TaskInDB,
    after: TaskInDB,
    now: datetime,
    extra_filter: Optional[Dict[str, Any]] = None,
) -> Optional[TaskInDB]:
    """
    before/after 차이만 $set 하고, 새 history 항목은 $push 합니다.
    extra_filter가 쓰기 시점에 더 이상 맞지 않으면 None을 반환합니다.
    """
    before_doc = _to_doc(before)
    after_doc = _to_doc(after)

    set_fields = {
        k: v for k, v in after_doc.items()
        if k not in ("history", "updated_at", "created_at") and before_doc.get(k) != v
    }
    new_history = after_doc["history"][len(before_doc["history"]):]

    if not set_fields and not new_history:
        return after

    set_fields["updated_at"] = now
    update: Dict[str, Any] = {"$set": set_fields}
    if new_history:
        update["$push"] = {"history": {"$each": new_history}}

    doc = await get_tasks_collection().find_one_and_update(
        {"_id": oid, **(extra_filter or {})},
        update,
        return_document=ReturnDocument.AFTER,
    )
    return TaskInDB(**doc) if doc else None


async def _conflict_or_missing(oid: ObjectId) -> ConflictError:
    if await get_tasks_collection().find_one({"_id": oid}, {"_id": 1}) is None:
        raise NotFoundError("Task")
    return ConflictError(TASK_UNAVAILABLE)


def _require_assignee(task: TaskInDB, user_id: str, is_admin: bool) -> None:
    if is_admin:
        return
    if task.assignment_status != AssignmentStatus.ACCEPTED or str(user_id) not in task.assigned_to:
        raise PermissionDeniedError("Only the assignee can work on this task")


# ---------- CREATE ----------

@storage_guard
async def create_task(data: TaskCreate, actor_id: str, now: Optional[datetime] = None) -> TaskInDB:
    now = now or _utcnow()

    if not data.title or not data.description:
        raise ValidationError("Title and description are required")

    oid = ObjectId()
    task = TaskInDB(
        id=str(oid),
        title=data.title,
        description=data.description,
        priority=data.priority,
        fields=data.fields,
        notification_frequency=_build_frequency(data.notification_frequency, now),
        repeat_notification=data.repeat_notification,
        created_at=now,
        updated_at=now,
    )

    assign_type = data.assign_type or (
        "role" if data.assigned_role else "user" if data.assigned_to else None
    )
    if assign_type is not None:
        target = data.assigned_role if getattr(assign_type, "value", assign_type) == "role" else data.assigned_to
        apply_assignment(task, assign_type, target)

    # 관리자가 정의하는 단계: 형식(전화번호/날짜)만 검사
    ensure_valid_fields(task.fields, is_admin=True)
    refresh_next_notification(task, now, force=True)
    lifecycle.record(task, "created", actor_id, now)

    doc = _to_doc(task)
    doc["_id"] = oid
    await get_tasks_collection().insert_one(doc)

    logger.info(
        "task_created",
        task_id=task.id,
        assigned_role=task.assigned_role,
        assigned_to=task.assigned_to,
    )
    return task


# ---------- READ ----------

@storage_guard
async def get_task(task_id: str) -> TaskInDB:
    _, task = await _load(task_id)
    return task


@storage_guard
async def get_tasks(
    status: Optional[str] = None,
    priority: Optional[str] = None,
    role: Optional[str] = None,
    search: Optional[str] = None,
) -> List[TaskInDB]:
    query: Dict[str, Any] = {}
    if status:
        query["status"] = status
    if priority:
        query["priority"] = priority
    if role:
        query["assigned_role"] = role

    search = (search or "").strip()
    if search:
        pattern = {"$regex": re.escape(search), "$options": "i"}
        query["$or"] = [{"title": pattern}, {"description": pattern}]

    cursor = get_tasks_collection().find(query).sort("created_at", -1)
    return [TaskInDB(**doc) async for doc in cursor]


@storage_guard
async def get_pending_tasks(user: UserInDB) -> List[TaskInDB]:
    cursor = get_tasks_collection().find(pending_tasks_query(user)).sort("created_at", -1)
    return [TaskInDB(**doc) async for doc in cursor]


@storage_guard
async def get_tasks_for_assignee(user_id: str) -> List[TaskInDB]:
    """assigned_to에 user가 들어 있는 모든 task (my-tasks)"""
    cursor = get_tasks_collection().find({"assigned_to": str(user_id)}).sort("created_at", -1)
    return [TaskInDB(**doc) async for doc in cursor]


@storage_guard
async def get_tasks_by_ids(task_ids: List[str]) -> List[TaskInDB]:
    oids = []
    for task_id in task_ids:
        try:
            oids.append(ObjectId(task_id))
        except (InvalidId, TypeError):
            continue
    if not oids:
        return []
    cursor = get_tasks_collection().find({"_id": {"$in": oids}}).sort("created_at", -1)
    return [TaskInDB(**doc) async for doc in cursor]


@storage_guard
async def get_task_stats() -> TaskStats:
    col = get_tasks_collection()
    stats = TaskStats(total=await col.count_documents({}))
    for status, key in STATUS_COUNT_KEYS.items():
        setattr(stats, key, await col.count_documents({"status": status}))
    return stats


@storage_guard
async def get_user_task_stats(user_id: str) -> UserTaskStats:
    col = get_tasks_collection()
    stats = UserTaskStats()
    for status, key in STATUS_COUNT_KEYS.items():
        setattr(stats, key, await col.count_documents({"assigned_to": str(user_id), "status": status}))
    return stats


@storage_guard
async def get_assignee_stats() -> List[AssigneeTaskStats]:
    """담당자별 task 개수 (status별)"""
    cursor = get_tasks_collection().find(
        {"assigned_to": {"$exists": True, "$ne": []}},
        {"assigned_to": 1, "status": 1},
    )

    per_user: Dict[str, AssigneeTaskStats] = {}
    async for doc in cursor:
        key = STATUS_COUNT_KEYS.get(doc.get("status"))
        for user_id in doc.get("assigned_to") or []:
            stats = per_user.setdefault(str(user_id), AssigneeTaskStats(user_id=str(user_id)))
            stats.total += 1
            if key:
                setattr(stats, key, getattr(stats, key) + 1)

    return list(per_user.values())


# ---------- UPDATE (관리자 PATCH) ----------

@storage_guard
async def update_task(
    task_id: str,
    data: TaskUpdate,
    actor_id: str,
    now: Optional[datetime] = None,
) -> TaskInDB:
    now = now or _utcnow()
    changes = data.model_dump(exclude_unset=True)

    oid, task = await _load(task_id)
    before = task.model_copy(deep=True)
    release_back_references = False

    for key in ("title", "description"):
        if key in changes and not changes[key]:
            raise ValidationError("Title and description are required")
        if changes.get(key):
            setattr(task, key, changes[key])

    if changes.get("priority") is not None:
        task.priority = data.priority
    if changes.get("repeat_notification") is not None:
        task.repeat_notification = data.repeat_notification

    if {"assign_type", "assigned_role", "assigned_to"} & changes.keys():
        assign_type = data.assign_type or ("user" if "assigned_to" in changes else "role")
        is_role = getattr(assign_type, "value", assign_type) == "role"
        target = data.assigned_role if is_role else data.assigned_to
        if apply_assignment(task, assign_type, target):
            lifecycle.record(task, "reassigned", actor_id, now)
            release_back_references = before.assignment_status == AssignmentStatus.ACCEPTED

    if data.fields is not None:
        task.fields = data.fields
        ensure_valid_fields(task.fields, is_admin=True)

    if data.notification_frequency is not None:
        task.notification_frequency = _build_frequency(data.notification_frequency, now, task.notification_frequency)
        refresh_next_notification(task, now, force=True)
    else:
        refresh_next_notification(task, now)

    if changes.get("status") is not None:
        # 관리자가 accepted task를 pending으로 되돌리면 accept도 함께 해제
        if data.status == TaskStatus.PENDING.value and task.assignment_status == AssignmentStatus.ACCEPTED.value:
            lifecycle.record(task, "assignment status changed from accepted to pending", actor_id, now)
            task.assignment_status = AssignmentStatus.PENDING
            release_back_references = True
        lifecycle.update_status(task, data.status, actor_id, now, allow_reopen=settings.ALLOW_TASK_REOPEN)

    if changes.get("assignment_status") is not None:
        new_assignment = data.assignment_status
        if new_assignment == AssignmentStatus.ACCEPTED.value and task.assignment_status != new_assignment:
            raise ValidationError("Assignment status 'accepted' can only be set by accepting the task")
        if new_assignment not in lifecycle.ASSIGNMENT_TRANSITIONS:
            raise ValidationError(f"Invalid assignment status: {new_assignment}")
        current = task.assignment_status
        lifecycle.check_assignment_transition(current, new_assignment)
        if current != new_assignment:
            lifecycle.record(task, f"assignment status changed from {current} to {new_assignment}", actor_id, now)
            task.assignment_status = new_assignment
            if current == AssignmentStatus.ACCEPTED.value:
                release_back_references = True

    updated = await _save_changes(oid, before, task, now)
    if updated is None:
        raise NotFoundError("Task")

    if release_back_references:
        await users_crud.release_task_everywhere(updated.id)

    logger.info("task_updated", task_id=updated.id, keys=sorted(changes))
    return updated


# ---------- 라이프사이클 ----------

async def _compensate_accept(oid: ObjectId, before: TaskInDB, user_id: str) -> None:
    """
    user 역참조 갱신이 실패했을 때 task를 accept 이전 상태로 되돌립니다.
    그 사이 다른 변경이 있었다면(필터 불일치) 건드리지 않습니다.
    """
    before_doc = _to_doc(before)
    restore = {
        key: before_doc[key]
        for key in ("assigned_to", "assignment_status", "status", "history", "updated_at")
    }
    try:
        result = await get_tasks_collection().update_one(
            {
                "_id": oid,
                "assignment_status": AssignmentStatus.ACCEPTED.value,
                "assigned_to": [str(user_id)],
            },
            {"$set": restore},
        )
    except PyMongoError as e:
        logger.error("accept_rollback_failed", task_id=str(oid), user_id=user_id, error=str(e))
        return

    logger.warning(
        "accept_rolled_back",
        task_id=str(oid),
        user_id=user_id,
        restored=result.modified_count == 1,
    )


@storage_guard
async def accept_task(task_id: str, user_id: str, now: Optional[datetime] = None) -> TaskInDB:
    """
    task accept + user 역참조 추가를 하나의 작업 단위로 처리합니다.

    1) task 쓰기: 아직 pending이고 담당자가 바뀌지 않았을 때만 (쓰기 시점 재검증)
    2) user 쓰기: 실패하면 1)을 보상 롤백한 뒤 예외를 그대로 올립니다.
    """
    now = now or _utcnow()
    oid, task = await _load(task_id)
    user = await users_crud.require_user(user_id)

    before = task.model_copy(deep=True)
    lifecycle.accept(task, user.id, now, allow_reopen=settings.ALLOW_TASK_REOPEN)

    if not is_eligible(before, user.id, user.role):
        raise PermissionDeniedError("Task is not assigned to you")

    write_filter: Dict[str, Any] = {"assignment_status": AssignmentStatus.PENDING.value}
    if before.assigned_to:
        write_filter["assigned_to"] = list(before.assigned_to)
    else:
        write_filter.update(_empty_assignee_filter())

    updated = await _save_changes(oid, before, task, now, extra_filter=write_filter)
    if updated is None:
        logger.info("task_accept_conflict", task_id=task.id, user_id=user.id)
        raise await _conflict_or_missing(oid)

    try:
        await users_crud.add_assigned_task(user.id, updated.id)
    except Exception:
        await _compensate_accept(oid, before, user.id)
        raise

    logger.info("task_accepted", task_id=updated.id, user_id=user.id)
    return updated


@storage_guard
async def reject_task(task_id: str, user_id: str, now: Optional[datetime] = None) -> TaskInDB:
    now = now or _utcnow()
    oid, task = await _load(task_id)
    user = await users_crud.require_user(user_id)

    before = task.model_copy(deep=True)
    if not is_eligible(before, user.id, user.role):
        raise PermissionDeniedError("Task is not assigned to you")

    lifecycle.reject(task, user.id, now)

    updated = await _save_changes(
        oid, before, task, now,
        extra_filter={"assignment_status": before.assignment_status},
    )
    if updated is None:
        raise await _conflict_or_missing(oid)

    if updated.id in user.assigned_tasks:
        await users_crud.remove_assigned_task(user.id, updated.id)

    logger.info("task_rejected", task_id=updated.id, user_id=user.id)
    return updated


@storage_guard
async def change_status(
    task_id: str,
    new_status: str,
    user_id: str,
    *,
    is_admin: bool = False,
    now: Optional[datetime] = None,
) -> TaskInDB:
    now = now or _utcnow()
    oid, task = await _load(task_id)
    _require_assignee(task, user_id, is_admin)

    before = task.model_copy(deep=True)
    if not lifecycle.update_status(task, new_status, user_id, now, allow_reopen=settings.ALLOW_TASK_REOPEN):
        return task

    updated = await _save_changes(oid, before, task, now)
    if updated is None:
        raise NotFoundError("Task")

    logger.info("task_status_changed", task_id=updated.id, status=updated.status, user_id=user_id)
    return updated


@storage_guard
async def submit_task(
    task_id: str,
    submission: TaskSubmission,
    user_id: str,
    *,
    is_admin: bool = False,
    now: Optional[datetime] = None,
) -> TaskInDB:
    """
    담당자가 custom field 값을 제출합니다.
    필드 정의(type/required)는 task 쪽이 기준이고, label로 매칭해서 value만 채웁니다.
    """
    now = now or _utcnow()
    oid, task = await _load(task_id)
    _require_assignee(task, user_id, is_admin)

    before = task.model_copy(deep=True)
    positions = {field.label: i for i, field in enumerate(task.fields)}
    fields = list(task.fields)

    for submitted in submission.fields:
        label = submitted.label.strip()
        if label not in positions:
            raise ValidationError(f"{label} is not a field of this task")
        current = fields[positions[label]]
        fields[positions[label]] = type(current)(
            label=current.label,
            required=current.required,
            value=submitted.value,
        )

    ensure_valid_fields(fields, is_admin=is_admin)

    task.fields = fields
    lifecycle.record(task, "submitted", user_id, now)
    lifecycle.update_status(task, submission.status, user_id, now, allow_reopen=settings.ALLOW_TASK_REOPEN)

    updated = await _save_changes(oid, before, task, now)
    if updated is None:
        raise NotFoundError("Task")

    logger.info("task_submitted", task_id=updated.id, user_id=user_id, status=updated.status)
    return updated


# ---------- DELETE ----------

@storage_guard
async def delete_task(task_id: str) -> None:
    oid = _safe_object_id(task_id)
    result = await get_tasks_collection().delete_one({"_id": oid})
    if result.deleted_count == 0:
        raise NotFoundError("Task")

    await users_crud.release_task_everywhere(str(oid))
    logger.info("task_deleted", task_id=str(oid))


@storage_guard
async def release_assignee(user_id: str, actor_id: str, now: Optional[datetime] = None) -> int:
    """
    삭제된 사용자를 모든 task의 assigned_to에서 빼냅니다.
    그 사용자가 accept했던 task는 assignment_status가 pending으로 돌아갑니다.
    """
    now = now or _utcnow()
    user_id = str(user_id)
    col = get_tasks_collection()
    docs = [doc async for doc in col.find({"assigned_to": user_id})]

    for doc in docs:
        task = TaskInDB(**doc)
        before = task.model_copy(deep=True)
        task.assigned_to = [u for u in task.assigned_to if u != user_id]
        if before.assignment_status == AssignmentStatus.ACCEPTED:
            task.assignment_status = AssignmentStatus.PENDING
            lifecycle.record(task, "assignee removed", actor_id, now)
        await _save_changes(doc["_id"], before, task, now)

    if docs:
        logger.info("assignee_released", user_id=user_id, tasks=len(docs))
    return len(docs)
