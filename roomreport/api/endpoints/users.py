# roomreport/api/endpoints/users.py

import logging
from fastapi import APIRouter, Depends, HTTPException, status
from sqlalchemy.orm import Session

from roomreport.api.dependencies import require_roles
from roomreport.shared.db.database import get_db_session
from roomreport.models.auth import (
    MANAGEMENT_ROLES,
    MessageResponse,
    User,
    UserCreate,
    UserEnvelope,
    UserListResponse,
    UserUpdate,
)
from roomreport.models.video import Video

logger = logging.getLogger(__name__)

# Every user endpoint is restricted to managers and supervisors
router = APIRouter()

manager_only = require_roles(*MANAGEMENT_ROLES)


def _get_user_or_404(db: Session, user_id: int) -> User:
    user = db.get(User, user_id)
    if user is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="User not found")
    return user


def _ensure_unique(db: Session, username: str, email: str, exclude_id: int | None = None):
    for column, value, detail in (
        (User.username, username, "Username already exists"),
        (User.email, email, "Email already exists"),
    ):
        query = db.query(User).filter(column == value)
        if exclude_id is not None:
            query = query.filter(User.id != exclude_id)
        if query.first() is not None:
            raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail=detail)


@router.get("", response_model=UserListResponse, summary="List all users")
def list_users(db: Session = Depends(get_db_session), current_user: User = Depends(manager_only)):
    users = db.query(User).order_by(User.id).all()
    return {"users": users}


@router.post("", status_code=status.HTTP_201_CREATED, response_model=UserEnvelope, summary="Create a user")
def create_user(payload: UserCreate, db: Session = Depends(get_db_session), current_user: User = Depends(manager_only)):
    _ensure_unique(db, payload.username, payload.email)

    user = User(
        username=payload.username,
        email=payload.email,
        role=payload.role.value,
        is_active=True,
    )
    try:
        user.set_password(payload.password)
    except Exception as e:
        logger.error(f"Failed to hash password: {e}")
        raise HTTPException(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, detail="Failed to hash password")

    db.add(user)
    db.commit()
    db.refresh(user)

    logger.info(f"User '{user.username}' ({user.role}) created by {current_user.username}")
    return {"message": "User created successfully", "user": user}


@router.put("/{user_id}", response_model=UserEnvelope, summary="Update a user")
def update_user(user_id: int, payload: UserUpdate, db: Session = Depends(get_db_session), current_user: User = Depends(manager_only)):
    user = _get_user_or_404(db, user_id)
    _ensure_unique(db, payload.username, payload.email, exclude_id=user_id)

    user.username = payload.username
    user.email = payload.email
    user.role = payload.role.value
    user.is_active = payload.is_active
    if payload.password:
        user.set_password(payload.password)

    db.commit()
    db.refresh(user)
    return {"message": "User updated successfully", "user": user}


@router.delete("/{user_id}", response_model=MessageResponse, summary="Delete a user without videos")
def delete_user(user_id: int, db: Session = Depends(get_db_session), current_user: User = Depends(manager_only)):
    user = _get_user_or_404(db, user_id)

    if user.id == current_user.id:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Cannot delete your own account")

    video_count = db.query(Video).filter(Video.uploaded_by == user_id).count()
    if video_count > 0:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Cannot delete user with existing videos")

    db.delete(user)
    db.commit()
    logger.info(f"User '{user.username}' deleted by {current_user.username}")
    return MessageResponse(message="User deleted successfully")
