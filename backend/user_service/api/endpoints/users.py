"""
Users API endpoints

CRUD routes over the cached user store. Reads may be served from the
cache; every write goes to the store of record first.
"""

from datetime import datetime
from typing import List, Optional

from fastapi import APIRouter, Depends, HTTPException, Response, status
from pydantic import BaseModel, ConfigDict, Field, StrictInt
from sqlalchemy.exc import SQLAlchemyError
import structlog

from ...constants import MAX_USER_NAME_LENGTH
from ...domain.users.entities import User
from ...services.users.cached_user_store import CachedUserStore
from ..dependencies import get_user_store

logger = structlog.get_logger()
router = APIRouter(prefix="/users")

# Store of record failures surfaced as 503
STORE_ERRORS = (SQLAlchemyError, OSError)


class UserBase(BaseModel):
    """Mutable user fields."""

    name: Optional[str] = Field(
        None, max_length=MAX_USER_NAME_LENGTH, description="User name"
    )
    age: Optional[StrictInt] = Field(None, description="User age")


class UserCreate(UserBase):
    """Schema for creating users."""


class UserUpdate(UserBase):
    """Schema for overwriting a user's name and age."""


class UserRead(UserBase):
    """Schema for reading users."""

    model_config = ConfigDict(from_attributes=True)

    id: str
    created_at: Optional[datetime] = None


def _store_unavailable(operation: str, error: Exception, **context) -> HTTPException:
    logger.error(
        "User store unavailable",
        operation=operation,
        error=str(error),
        error_type=type(error).__name__,
        **context,
    )
    return HTTPException(
        status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
        detail="User store unavailable",
    )


def _user_not_found() -> HTTPException:
    return HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="User not found")


def _check_user_id(user_id: str) -> None:
    """Blank ids never name a user."""
    if not user_id.strip():
        raise _user_not_found()


@router.get("", response_model=List[UserRead])
async def list_users(store: CachedUserStore = Depends(get_user_store)):
    """
    List all users.

    Served from the cache when it holds any users, otherwise from the
    store of record.
    """
    try:
        return [UserRead.model_validate(user) async for user in store.list_all()]
    except STORE_ERRORS as e:
        raise _store_unavailable("list_users", e)


@router.post("", response_model=UserRead, status_code=status.HTTP_201_CREATED)
async def create_user(
    user_data: UserCreate,
    response: Response,
    store: CachedUserStore = Depends(get_user_store),
):
    """
    Create a new user.

    Returns:
        Created user with its assigned id; ``Location`` points at it
    """
    try:
        user = await store.save(User(name=user_data.name, age=user_data.age))
    except STORE_ERRORS as e:
        raise _store_unavailable("create_user", e)

    response.headers["Location"] = f"/users/{user.id}"
    logger.info("User created", user_id=user.id)
    return UserRead.model_validate(user)


@router.get("/{user_id}", response_model=UserRead)
async def get_user(user_id: str, store: CachedUserStore = Depends(get_user_store)):
    """Get user by id."""
    _check_user_id(user_id)
    try:
        user = await store.get_by_id(user_id)
    except STORE_ERRORS as e:
        raise _store_unavailable("get_user", e, user_id=user_id)

    if user is None:
        raise _user_not_found()
    return UserRead.model_validate(user)


@router.put("/{user_id}", status_code=status.HTTP_204_NO_CONTENT)
async def update_user(
    user_id: str,
    update_data: UserUpdate,
    store: CachedUserStore = Depends(get_user_store),
):
    """
    Overwrite a user's name and age.

    Args:
        user_id: User id
        update_data: New name and age; omitted fields are cleared
    """
    _check_user_id(user_id)
    try:
        existing = await store.get_by_id(user_id)
        if existing is None:
            raise _user_not_found()

        await store.save(existing.with_details(update_data.name, update_data.age))
    except STORE_ERRORS as e:
        raise _store_unavailable("update_user", e, user_id=user_id)

    logger.info("User updated", user_id=user_id)
    return Response(status_code=status.HTTP_204_NO_CONTENT)


@router.delete("/{user_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_user(user_id: str, store: CachedUserStore = Depends(get_user_store)):
    """Delete user by id."""
    _check_user_id(user_id)
    try:
        deleted = await store.delete_by_id(user_id)
    except STORE_ERRORS as e:
        raise _store_unavailable("delete_user", e, user_id=user_id)

    if not deleted:
        raise _user_not_found()
    return Response(status_code=status.HTTP_204_NO_CONTENT)
