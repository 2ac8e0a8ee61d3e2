# backend/app/api/endpoints/admin/tasks.py
from typing import List, Optional

from fastapi import APIRouter, Depends, status

from app.api.deps import CurrentUser, require_admin
from app.crud import tasks as task_crud
from app.crud import users as users_crud
from app.models.task import TaskInDB
from app.schemas.task import AssigneeTaskStats, TaskAssignee, TaskCreate, TaskRead, TaskStats, TaskUpdate
from app.schemas.user import SuccessMessage

router = APIRouter(prefix="/api/tasks", tags=["Admin Tasks"])


def to_task_read(task: TaskInDB) -> TaskRead:
    return TaskRead(**task.model_dump())


async def to_admin_task_reads(tasks: List[TaskInDB]) -> List[TaskRead]:
    """
    관리자 화면용: assigned_to의 id마다 username을 붙여서 반환합니다.
    """
    user_ids = sorted({user_id for task in tasks for user_id in task.assigned_to})
    usernames = await users_crud.get_usernames(user_ids)

    reads = []
    for task in tasks:
        read = to_task_read(task)
        read.assignees = [
            TaskAssignee(id=user_id, username=usernames[user_id])
            for user_id in task.assigned_to
            if user_id in usernames
        ]
        reads.append(read)
    return reads


# CREATE
@router.post("", response_model=TaskRead, status_code=status.HTTP_201_CREATED)
async def create_task(payload: TaskCreate, admin: CurrentUser = Depends(require_admin)):
    task = await task_crud.create_task(payload, actor_id=admin.id)
    return (await to_admin_task_reads([task]))[0]


# READ ALL (필터/검색)
@router.get("", response_model=List[TaskRead])
async def read_tasks(
    status: Optional[str] = None,
    priority: Optional[str] = None,
    role: Optional[str] = None,
    search: Optional[str] = None,
    admin: CurrentUser = Depends(require_admin),
):
    tasks = await task_crud.get_tasks(status=status, priority=priority, role=role, search=search)
    return await to_admin_task_reads(tasks)


@router.get("/stats", response_model=TaskStats)
async def read_task_stats(admin: CurrentUser = Depends(require_admin)):
    return await task_crud.get_task_stats()


@router.get("/stats/users", response_model=List[AssigneeTaskStats])
async def read_assignee_stats(admin: CurrentUser = Depends(require_admin)):
    return await task_crud.get_assignee_stats()


# READ ONE
@router.get("/{task_id}", response_model=TaskRead)
async def read_task(task_id: str, admin: CurrentUser = Depends(require_admin)):
    task = await task_crud.get_task(task_id)
    return (await to_admin_task_reads([task]))[0]


# UPDATE (보낸 키만 변경)
@router.patch("/{task_id}", response_model=TaskRead)
async def update_task(task_id: str, payload: TaskUpdate, admin: CurrentUser = Depends(require_admin)):
    task = await task_crud.update_task(task_id, payload, actor_id=admin.id)
    return (await to_admin_task_reads([task]))[0]


# DELETE
@router.delete("/{task_id}", response_model=SuccessMessage)
async def delete_task(task_id: str, admin: CurrentUser = Depends(require_admin)):
    await task_crud.delete_task(task_id)
    return SuccessMessage(message="Task deleted")
