# backend/app/services/pending.py
"""
사용자가 accept/reject를 결정해야 하는 task 조회 조건

is_pending_for()와 pending_tasks_query()는 같은 조건을 표현합니다.
- assignment_status == pending
- 이미 user.assigned_tasks에 들어간 task는 제외
- user에게 직접 할당되었거나,
  user의 role에 할당되었고 아직 아무도 가져가지 않은(assigned_to가 비어 있는) task
"""

from typing import Any, Dict, List

from bson import ObjectId
from bson.errors import InvalidId

from app.models.task import AssignmentStatus, TaskInDB
from app.models.user import UserInDB


def is_pending_for(task: TaskInDB, user: UserInDB) -> bool:
    if task.assignment_status != AssignmentStatus.PENDING:
        return False
    if task.id in user.assigned_tasks:
        return False
    if user.id in task.assigned_to:
        return True
    return bool(task.assigned_role) and task.assigned_role == user.role and not task.assigned_to


def is_eligible(task: TaskInDB, user_id: str, role: str) -> bool:
    """직접 할당 대상이거나 role 풀에 속한 사용자인지 (accept 권한 체크용)"""
    if str(user_id) in task.assigned_to:
        return True
    return bool(task.assigned_role) and task.assigned_role == role and not task.assigned_to


def _object_ids(task_ids: List[str]) -> List[Any]:
    ids: List[Any] = []
    for task_id in task_ids:
        try:
            ids.append(ObjectId(task_id))
        except (InvalidId, TypeError):
            ids.append(task_id)
    return ids


def pending_tasks_query(user: UserInDB) -> Dict[str, Any]:
    return {
        "assignment_status": AssignmentStatus.PENDING.value,
        "_id": {"$nin": _object_ids(user.assigned_tasks)},
        "$or": [
            {"assigned_to": user.id},
            {
                "assigned_role": user.role,
                "$or": [
                    {"assigned_to": {"$exists": False}},
                    {"assigned_to": []},
                    {"assigned_to": None},
                ],
            },
        ],
    }
