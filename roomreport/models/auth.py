# roomreport/models/auth.py

from datetime import datetime
from enum import Enum
from sqlalchemy import Boolean, Column, DateTime, Integer, String
from pydantic import BaseModel, ConfigDict, EmailStr, Field, field_validator
from werkzeug.security import check_password_hash, generate_password_hash

from roomreport.shared.db.database import Base


# =================================================================
# Constants
# =================================================================
class Validation:
    MIN_PASSWORD_LENGTH = 6
    MAX_USERNAME_LENGTH = 50
    MAX_EMAIL_LENGTH = 100


class Role(str, Enum):
    """Permission levels, lowest first"""
    USER = "user"
    MANAGER = "manager"
    SUPERVISOR = "supervisor"


# Roles allowed into the management views and endpoints
MANAGEMENT_ROLES = (Role.MANAGER.value, Role.SUPERVISOR.value)


# =================================================================
# SQLAlchemy ORM Model (database)
# =================================================================
class User(Base):
    """
    An account that can log in, record and upload videos.
    Managers and supervisors can also administer rooms, users and files.
    """
    __tablename__ = "users"

    id = Column(Integer, primary_key=True, index=True)
    username = Column(String(Validation.MAX_USERNAME_LENGTH), unique=True, index=True, nullable=False)
    email = Column(String(Validation.MAX_EMAIL_LENGTH), unique=True, index=True, nullable=False)
    password_hash = Column(String(255), nullable=False)
    role = Column(String(20), nullable=False, default=Role.USER.value)
    is_active = Column(Boolean, nullable=False, default=True)
    created_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    def set_password(self, password: str):
        self.password_hash = generate_password_hash(password)

    def check_password(self, password: str) -> bool:
        return check_password_hash(self.password_hash, password)

    @property
    def can_manage(self) -> bool:
        return self.role in MANAGEMENT_ROLES


# =================================================================
# Pydantic Schemas (API Request/Response)
# =================================================================

class UserLogin(BaseModel):
    """User login schema"""
    username: str = Field(..., min_length=1)
    password: str = Field(..., min_length=1)


class UserSummary(BaseModel):
    """The user block returned by the login endpoint"""
    id: int
    username: str
    email: str
    role: str

    model_config = ConfigDict(from_attributes=True)


class LoginResponse(BaseModel):
    message: str = "Login successful"
    token: str
    user: UserSummary


class UserBase(BaseModel):
    """Fields shared by create and update"""
    username: str = Field(..., min_length=1, max_length=Validation.MAX_USERNAME_LENGTH)
    email: EmailStr
    role: Role

    @field_validator("username", mode="before")
    @classmethod
    def strip_username(cls, value):
        return value.strip() if isinstance(value, str) else value


class UserCreate(UserBase):
    """User creation schema"""
    password: str = Field(..., min_length=Validation.MIN_PASSWORD_LENGTH)


class UserUpdate(UserBase):
    """User update schema; an empty password leaves the current one unchanged"""
    is_active: bool = True
    password: str | None = None

    @field_validator("password")
    @classmethod
    def check_new_password(cls, value: str | None) -> str | None:
        if value and len(value) < Validation.MIN_PASSWORD_LENGTH:
            raise ValueError(f"password must be at least {Validation.MIN_PASSWORD_LENGTH} characters")
        return value or None


class UserResponse(BaseModel):
    """User response schema (never carries the password hash)"""
    id: int
    username: str
    email: str
    role: str
    is_active: bool
    created_at: datetime | None = None
    updated_at: datetime | None = None

    model_config = ConfigDict(from_attributes=True)


class UserEnvelope(BaseModel):
    message: str
    user: UserResponse


class UserListResponse(BaseModel):
    users: list[UserResponse]


class MessageResponse(BaseModel):
    message: str
