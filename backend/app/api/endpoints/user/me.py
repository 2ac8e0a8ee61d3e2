# backend/app/api/endpoints/user/me.py

from typing import List

from fastapi import APIRouter, Depends

from app.api.deps import CurrentUser, require_member
from app.api.endpoints.admin.tasks import to_task_read
from app.api.endpoints.admin.users import to_user_read
from app.crud import tasks as task_crud
from app.crud import users as users_crud
from app.schemas.task import TaskRead, UserTaskStats
from app.schemas.user import UserRead

router = APIRouter(prefix="/api/users", tags=["Me"])


@router.get("/me", response_model=UserRead)
async def read_my_profile(user: CurrentUser = Depends(require_member)):
    return to_user_read(await users_crud.require_user(user.id))


@router.get("/me/pending-tasks", response_model=List[TaskRead])
async def read_my_pending_tasks(user: CurrentUser = Depends(require_member)):
    """
    [응답] 내가 accept/reject를 결정해야 하는 task
    - 나에게 직접 할당되었거나, 내 role에 할당되고 아직 아무도 가져가지 않은 것
    """
    me = await users_crud.require_user(user.id)
    return [to_task_read(t) for t in await task_crud.get_pending_tasks(me)]


@router.get("/me/assigned-tasks", response_model=List[TaskRead])
async def read_my_assigned_tasks(user: CurrentUser = Depends(require_member)):
    me = await users_crud.require_user(user.id)
    return [to_task_read(t) for t in await task_crud.get_tasks_by_ids(me.assigned_tasks)]


@router.get("/me/stats", response_model=UserTaskStats)
async def read_my_stats(user: CurrentUser = Depends(require_member)):
    return await task_crud.get_user_task_stats(user.id)
