# roomreport/models/room.py

from datetime import datetime
from sqlalchemy import Boolean, Column, DateTime, Integer, String
from sqlalchemy.orm import relationship
from pydantic import BaseModel, ConfigDict, Field, field_validator

from roomreport.shared.db.database import Base

MAX_ROOM_NUMBER_LENGTH = 20


class Room(Base):
    """
    A labeled physical location that videos are recorded in.
    """
    __tablename__ = "rooms"

    id = Column(Integer, primary_key=True, index=True)
    room_number = Column(String(MAX_ROOM_NUMBER_LENGTH), unique=True, index=True, nullable=False)
    is_active = Column(Boolean, nullable=False, default=True)
    created_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    videos = relationship("Video", back_populates="room", lazy="select")


class RoomPayload(BaseModel):
    """Body of both create and update requests"""
    room_number: str = Field(..., min_length=1, max_length=MAX_ROOM_NUMBER_LENGTH)

    # Stripped before the length limits apply
    @field_validator("room_number", mode="before")
    @classmethod
    def strip_room_number(cls, value):
        return value.strip() if isinstance(value, str) else value


class RoomResponse(BaseModel):
    id: int
    room_number: str
    is_active: bool = True
    created_at: datetime | None = None
    updated_at: datetime | None = None

    model_config = ConfigDict(from_attributes=True)


class RoomEnvelope(BaseModel):
    message: str
    room: RoomResponse


class RoomListResponse(BaseModel):
    rooms: list[RoomResponse]
