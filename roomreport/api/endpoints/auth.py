# roomreport/api/endpoints/auth.py

import logging
from fastapi import APIRouter, Depends, HTTPException, status
from sqlalchemy.orm import Session

from roomreport.core.security import generate_token
from roomreport.shared.db.database import get_db_session
from roomreport.models.auth import LoginResponse, MessageResponse, User, UserLogin, UserSummary

logger = logging.getLogger(__name__)

router = APIRouter()


@router.post("/login", response_model=LoginResponse, summary="Log in with username and password")
def login(credentials: UserLogin, db: Session = Depends(get_db_session)):
    """
    Only active accounts may log in. Unknown users and wrong passwords get the same answer.
    """
    user = db.query(User).filter(User.username == credentials.username, User.is_active.is_(True)).first()
    if user is None or not user.check_password(credentials.password):
        logger.warning(f"Failed login attempt for username '{credentials.username}'")
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Invalid credentials")

    try:
        token = generate_token(user.id, user.username, user.role)
    except Exception as e:
        logger.error(f"Token generation failed for user {user.id}: {e}")
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Failed to generate token",
        )

    logger.info(f"User '{user.username}' logged in")
    return LoginResponse(token=token, user=UserSummary.model_validate(user))


@router.post("/logout", response_model=MessageResponse, summary="Log out")
def logout():
    # Tokens are stateless; the client discards its copy
    return MessageResponse(message="Logout successful")
