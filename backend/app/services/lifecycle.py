# backend/app/services/lifecycle.py
"""
Task 라이프사이클 상태 머신 (순수 전이 함수)

- assignment_status: pending -> accepted | rejected, accepted/rejected -> pending
- status: pending -> in-progress -> completed, in-progress -> pending
  completed에서 나가는 전이는 allow_reopen 정책을 따릅니다. (accept로 넘겨받는 경우 포함)
  accepted 상태의 task는 pending으로 돌아갈 수 없습니다.

각 함수는 TaskInDB를 제자리에서 수정하고 history를 덧붙입니다.
DB 반영(및 accept의 user 역참조 갱신)은 app.crud.tasks가 담당합니다.
"""

from datetime import datetime

from app.core.errors import ConflictError, TASK_UNAVAILABLE, ValidationError
from app.models.task import AssignmentStatus, HistoryEntry, TaskInDB, TaskStatus

ASSIGNMENT_TRANSITIONS = {
    AssignmentStatus.PENDING.value: {AssignmentStatus.ACCEPTED.value, AssignmentStatus.REJECTED.value},
    AssignmentStatus.ACCEPTED.value: {AssignmentStatus.PENDING.value},
    AssignmentStatus.REJECTED.value: {AssignmentStatus.PENDING.value},
}

TASK_STATUSES = {s.value for s in TaskStatus}


def record(task: TaskInDB, action: str, user_id: str, now: datetime) -> HistoryEntry:
    entry = HistoryEntry(action=action, performed_by=str(user_id), timestamp=now)
    task.history = [*task.history, entry]
    return entry


def check_assignment_transition(current: str, new: str) -> None:
    if current == new:
        return
    if new not in ASSIGNMENT_TRANSITIONS.get(current, set()):
        raise ConflictError(f"Cannot change assignment status from {current} to {new}")


def accept(task: TaskInDB, user_id: str, now: datetime, *, allow_reopen: bool = False) -> TaskInDB:
    # 이미 accepted(본인 포함) / rejected 상태면 항상 충돌. history 중복 기록 없음
    if task.assignment_status != AssignmentStatus.PENDING:
        raise ConflictError(TASK_UNAVAILABLE)

    task.assigned_to = [str(user_id)]
    task.assignment_status = AssignmentStatus.ACCEPTED
    record(task, "accepted", user_id, now)

    # completed task를 넘겨받은 경우: reopen 정책이 허용할 때만 다시 in-progress
    if task.status == TaskStatus.COMPLETED:
        if allow_reopen:
            update_status(task, TaskStatus.IN_PROGRESS, user_id, now, allow_reopen=True)
    else:
        task.status = TaskStatus.IN_PROGRESS
    return task


def reject(task: TaskInDB, user_id: str, now: datetime) -> TaskInDB:
    user_id = str(user_id)

    # 다른 사람이 accept한 task를 대신 reject할 수는 없음
    if task.assignment_status == AssignmentStatus.ACCEPTED and user_id not in task.assigned_to:
        raise ConflictError(TASK_UNAVAILABLE)

    task.assignment_status = AssignmentStatus.PENDING
    if task.assigned_to == [user_id]:
        task.assigned_to = []
    record(task, "rejected", user_id, now)
    return task


def update_status(
    task: TaskInDB,
    new_status: str,
    user_id: str,
    now: datetime,
    *,
    allow_reopen: bool = False,
) -> bool:
    """
    상태가 바뀌면 history에 전이를 기록하고 True를 반환합니다.
    """
    new_status = getattr(new_status, "value", new_status)
    if new_status not in TASK_STATUSES:
        raise ValidationError(f"Invalid status: {new_status}")

    if new_status == task.status:
        return False

    if task.status == TaskStatus.COMPLETED and not allow_reopen:
        raise ConflictError("Completed task cannot be reopened")

    # accepted task는 in-progress 이상이어야 함. 되돌리려면 먼저 accept를 해제
    if new_status == TaskStatus.PENDING and task.assignment_status == AssignmentStatus.ACCEPTED:
        raise ConflictError("Accepted task cannot go back to pending")

    record(task, f"status changed from {task.status} to {new_status}", user_id, now)
    task.status = new_status
    return True
