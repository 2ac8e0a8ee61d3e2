# backend/app/api/endpoints/user/tasks.py

from typing import List

from fastapi import APIRouter, Depends

from app.api.deps import CurrentUser, get_current_user, require_member
from app.api.endpoints.admin.tasks import to_task_read
from app.crud import tasks as task_crud
from app.schemas.task import TaskRead, TaskStatusUpdate, TaskSubmission

router = APIRouter(prefix="/api/tasks", tags=["My Tasks"])


@router.get("/my-tasks", response_model=List[TaskRead])
async def read_my_tasks(user: CurrentUser = Depends(require_member)):
    """
    [응답] assigned_to에 내가 포함된 task 목록 (accept 여부와 무관)
    """
    return [to_task_read(t) for t in await task_crud.get_tasks_for_assignee(user.id)]


@router.post("/{task_id}/accept", response_model=TaskRead)
async def accept_task(task_id: str, user: CurrentUser = Depends(require_member)):
    """
    [응답] 409: 이미 다른 사람이 가져갔거나 pending이 아닌 task
    """
    return to_task_read(await task_crud.accept_task(task_id, user.id))


@router.post("/{task_id}/reject", response_model=TaskRead)
async def reject_task(task_id: str, user: CurrentUser = Depends(require_member)):
    return to_task_read(await task_crud.reject_task(task_id, user.id))


@router.patch("/{task_id}/status", response_model=TaskRead)
async def update_task_status(
    task_id: str,
    payload: TaskStatusUpdate,
    user: CurrentUser = Depends(get_current_user),
):
    task = await task_crud.change_status(task_id, payload.status, user.id, is_admin=user.is_admin)
    return to_task_read(task)


@router.post("/{task_id}/submit", response_model=TaskRead)
async def submit_task(
    task_id: str,
    payload: TaskSubmission,
    user: CurrentUser = Depends(get_current_user),
):
    """
    [요청] {fields: [{label, value}], status?}
    label로 task의 필드 정의를 찾아 value를 채우고, 기본적으로 completed로 전환합니다.
    """
    task = await task_crud.submit_task(task_id, payload, user.id, is_admin=user.is_admin)
    return to_task_read(task)
