# roomreport/models/video.py

import json
from datetime import datetime
from sqlalchemy import BigInteger, Column, DateTime, ForeignKey, Integer, String, Text
from sqlalchemy.orm import relationship
from pydantic import BaseModel, ConfigDict, Field

from roomreport.shared.db.database import Base
from roomreport.models.auth import UserResponse
from roomreport.models.room import RoomResponse

DEFAULT_CONTENT_TYPE = "video/mp4"


class Video(Base):
    """
    Represents an uploaded recording.
    The file itself lives in the storage backend under `file_path`.
    """
    __tablename__ = "videos"

    id = Column(Integer, primary_key=True, index=True)
    filename = Column(String(255), nullable=False)
    original_filename = Column(String(255), nullable=False)
    file_path = Column(String(500), unique=True, nullable=False)
    file_size = Column(BigInteger, nullable=False)
    duration = Column(Integer, nullable=True)  # seconds

    room_id = Column(Integer, ForeignKey("rooms.id"), nullable=True, index=True)
    uploaded_by = Column(Integer, ForeignKey("users.id"), nullable=False, index=True)
    upload_date = Column(DateTime, default=datetime.utcnow)

    # "metadata" is reserved on declarative classes, so the attribute is renamed
    video_metadata = Column("metadata", Text, nullable=True)

    created_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    room = relationship("Room", back_populates="videos", lazy="joined")
    user = relationship("User", lazy="joined")

    @property
    def content_type(self) -> str:
        if not self.video_metadata:
            return DEFAULT_CONTENT_TYPE
        try:
            return json.loads(self.video_metadata).get("content_type") or DEFAULT_CONTENT_TYPE
        except ValueError:
            return DEFAULT_CONTENT_TYPE


class VideoResponse(BaseModel):
    """A video with its room and uploader already joined"""
    id: int
    filename: str
    original_filename: str
    file_path: str
    file_size: int
    duration: int | None = None
    room_id: int | None = None
    uploaded_by: int
    upload_date: datetime | None = None
    metadata: str | None = Field(default=None, validation_alias="video_metadata")
    created_at: datetime | None = None
    updated_at: datetime | None = None
    room: RoomResponse | None = None
    user: UserResponse | None = None

    model_config = ConfigDict(from_attributes=True, populate_by_name=True)


class VideoEnvelope(BaseModel):
    video: VideoResponse


class VideoListResponse(BaseModel):
    videos: list[VideoResponse]


class UploadedVideo(BaseModel):
    id: int
    filename: str
    size: int
    room: str


class VideoUploadResponse(BaseModel):
    message: str = "Video uploaded successfully"
    video: UploadedVideo
