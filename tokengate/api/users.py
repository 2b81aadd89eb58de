"""User endpoints gated by role rights with a self-access override."""

from uuid import UUID

from fastapi import APIRouter, Depends, HTTPException, Query, status
from sqlalchemy.ext.asyncio import AsyncSession

from tokengate.api.deps import path_param, require_auth
from tokengate.core import get_db
from tokengate.core.roles import Right
from tokengate.models.user import Principal
from tokengate.schemas.auth import UserResponse
from tokengate.services.user import UserService

router = APIRouter(prefix="/users", tags=["users"])


def get_user_service(db: AsyncSession = Depends(get_db)) -> UserService:
    """Dependency to get user service."""
    return UserService(db)


@router.get("", response_model=list[UserResponse])
async def list_users(
    limit: int = Query(100, ge=1, le=500),
    offset: int = Query(0, ge=0),
    _: Principal = Depends(require_auth(Right.GET_USERS)),
    service: UserService = Depends(get_user_service),
) -> list[UserResponse]:
    users = await service.list_users(limit=limit, offset=offset)
    return [UserResponse.model_validate(u) for u in users]


@router.get("/{user_id}", response_model=UserResponse)
async def get_user(
    user_id: UUID,
    _: Principal = Depends(require_auth(Right.GET_USERS, owner=path_param("user_id"))),
    service: UserService = Depends(get_user_service),
) -> UserResponse:
    user = await service.find_by_id(user_id)
    if user is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="User not found")
    return UserResponse.model_validate(user)


@router.delete("/{user_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_user(
    user_id: UUID,
    _: Principal = Depends(require_auth(Right.MANAGE_USERS, owner=path_param("user_id"))),
    service: UserService = Depends(get_user_service),
) -> None:
    user = await service.find_by_id(user_id)
    if user is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="User not found")
    await service.delete(user)
