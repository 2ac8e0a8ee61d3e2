# backend/app/api/endpoints/admin/users.py
from typing import List

from fastapi import APIRouter, Depends, status

from app.api.deps import CurrentUser, require_admin
from app.api.endpoints.admin.tasks import to_task_read
from app.crud import tasks as task_crud
from app.crud import users as users_crud
from app.models.user import UserInDB
from app.schemas.task import TaskRead
from app.schemas.user import SuccessMessage, UserCreate, UserRead, UserUpdate

router = APIRouter(prefix="/api/users", tags=["Admin Users"], dependencies=[Depends(require_admin)])


def to_user_read(user: UserInDB) -> UserRead:
    """password_hash는 응답에서 빠집니다."""
    return UserRead(**user.model_dump())


@router.post("", response_model=UserRead, status_code=status.HTTP_201_CREATED)
async def create_user(payload: UserCreate):
    return to_user_read(await users_crud.create_user(payload))


@router.get("", response_model=List[UserRead])
async def read_users():
    return [to_user_read(u) for u in await users_crud.get_users()]


@router.get("/{user_id}", response_model=UserRead)
async def read_user(user_id: str):
    return to_user_read(await users_crud.require_user(user_id))


@router.patch("/{user_id}", response_model=UserRead)
async def update_user(user_id: str, payload: UserUpdate):
    return to_user_read(await users_crud.update_user(user_id, payload))


@router.delete("/{user_id}", response_model=SuccessMessage)
async def delete_user(user_id: str, admin: CurrentUser = Depends(require_admin)):
    await users_crud.delete_user(user_id)
    # 삭제된 사용자가 맡고 있던 task는 다시 pending으로
    await task_crud.release_assignee(user_id, actor_id=admin.id)
    return SuccessMessage(message="User deleted")


@router.get("/{user_id}/pending-tasks", response_model=List[TaskRead])
async def read_user_pending_tasks(user_id: str):
    user = await users_crud.require_user(user_id)
    return [to_task_read(t) for t in await task_crud.get_pending_tasks(user)]


@router.get("/{user_id}/assigned-tasks", response_model=List[TaskRead])
async def read_user_assigned_tasks(user_id: str):
    user = await users_crud.require_user(user_id)
    return [to_task_read(t) for t in await task_crud.get_tasks_by_ids(user.assigned_tasks)]
