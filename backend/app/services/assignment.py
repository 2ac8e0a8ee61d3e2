# backend/app/services/assignment.py
"""
할당 대상(role / user) 적용

role과 user 할당은 서로 배타적입니다. 대상이 바뀌면 assignment_status는
pending으로 되돌아가고, 작업 진행 상태(status)는 건드리지 않습니다.
"""

from typing import List, Optional, Sequence, Tuple, Union

from app.core.errors import ValidationError
from app.models.task import AssignableRole, AssignmentStatus, AssignType, TaskInDB

ASSIGNABLE_ROLES = {r.value for r in AssignableRole}

Target = Optional[Tuple[str, Tuple[str, ...]]]


def current_target(task: TaskInDB) -> Target:
    """
    현재 활성화된 할당 대상.
    assigned_to가 있으면 user 할당이 우선합니다. (role 풀에서 누군가 accept한 경우 포함)
    """
    if task.assigned_to:
        return (AssignType.USER.value, tuple(task.assigned_to))
    if task.assigned_role:
        return (AssignType.ROLE.value, (task.assigned_role,))
    return None


def _normalize_user_target(target: Union[str, Sequence[str], None]) -> List[str]:
    if target is None:
        return []
    if isinstance(target, str):
        target = [target]
    users = []
    for user_id in target:
        user_id = str(user_id).strip()
        if user_id and user_id not in users:
            users.append(user_id)
    return users


def apply_assignment(task: TaskInDB, assign_type: str, target) -> bool:
    """
    할당 대상을 적용하고, 대상이 바뀌었는지 여부를 반환합니다.
    """
    previous = current_target(task)
    assign_type = getattr(assign_type, "value", assign_type)

    if assign_type == AssignType.ROLE.value:
        role = getattr(target, "value", target)
        role = role.strip() if isinstance(role, str) else role
        if not role:
            raise ValidationError("Assigned role is required when assignment type is role")
        if role not in ASSIGNABLE_ROLES:
            raise ValidationError("Invalid role selected")
        task.assigned_role = role
        task.assigned_to = []

    elif assign_type == AssignType.USER.value:
        users = _normalize_user_target(target)
        if not users:
            raise ValidationError("Assigned user is required when assignment type is user")
        task.assigned_to = users
        task.assigned_role = None

    else:
        raise ValidationError("Invalid assignment type")

    changed = current_target(task) != previous
    if changed:
        task.assignment_status = AssignmentStatus.PENDING
    return changed
