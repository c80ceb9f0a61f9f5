# roomreport/api/endpoints/videos.py

import json
import logging
from datetime import datetime
from fastapi import APIRouter, Depends, File, Form, HTTPException, UploadFile, status
from fastapi.responses import FileResponse, StreamingResponse
from sqlalchemy.orm import Session

# --- Project imports ---
from roomreport.api.dependencies import get_current_user, get_media_user  # Dependency for the user
from roomreport.core.config import settings
from roomreport.shared.db.database import get_db_session  # Dependency for the database session
from roomreport.services.storage_service import (
    FileTooLargeError,
    StorageError,
    StorageService,
    build_object_key,
    get_storage_service,
)
# Models
from roomreport.models.auth import MANAGEMENT_ROLES, MessageResponse, User
from roomreport.models.room import Room
from roomreport.models.video import (
    UploadedVideo,
    Video,
    VideoEnvelope,
    VideoListResponse,
    VideoUploadResponse,
)

logger = logging.getLogger(__name__)

router = APIRouter()

STREAM_HEADERS = {
    "Accept-Ranges": "bytes",
    "Cache-Control": "no-cache",
}


def _get_video_or_404(db: Session, video_id: int) -> Video:
    video = db.get(Video, video_id)
    if video is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Video not found")
    return video


def _resolve_room(db: Session, room_number: str | None, room_id: str | None) -> Room:
    if room_number and room_number.strip():
        room = db.query(Room).filter(Room.room_number == room_number.strip()).first()
    elif room_id and room_id.strip():
        try:
            room = db.get(Room, int(room_id))
        except ValueError:
            raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Invalid room ID")
    else:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Room number is required")

    if room is None:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Room not found")
    return room


def _file_response(video: Video, storage: StorageService, attachment: bool):
    if not storage.exists(video.file_path):
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Video file not found")

    filename = (video.original_filename or video.filename) if attachment else None
    path = storage.local_path(video.file_path)
    if path is not None:
        return FileResponse(path, media_type=video.content_type, filename=filename, headers=STREAM_HEADERS)

    headers = dict(STREAM_HEADERS)
    if filename:
        headers["Content-Disposition"] = f'attachment; filename="{filename}"'
    return StreamingResponse(storage.open(video.file_path), media_type=video.content_type, headers=headers)


# --- Endpoints ---
@router.get("", response_model=VideoListResponse, summary="List all videos with their room and uploader")
def list_videos(db: Session = Depends(get_db_session), current_user: User = Depends(get_current_user)):
    videos = db.query(Video).order_by(Video.upload_date.desc(), Video.id.desc()).all()
    logger.debug(f"Listing {len(videos)} videos for user {current_user.id} ({current_user.role})")
    return {"videos": videos}


@router.post(
    "/upload",
    response_model=VideoUploadResponse,
    summary="Upload a recorded video for a room",
    description="Stores the file under <year>/<month>/room_<number>/ and records it in the database.",
)
def upload_video(
    video: UploadFile | None = File(default=None),
    room_number: str | None = Form(default=None),
    room_id: str | None = Form(default=None),
    db: Session = Depends(get_db_session),
    storage: StorageService = Depends(get_storage_service),
    current_user: User = Depends(get_current_user),
):
    if video is None or not video.filename:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="No video file provided")

    room = _resolve_room(db, room_number, room_id)

    now = datetime.now()
    object_key, filename = build_object_key(room.room_number, video.filename, now)
    sequence = 0
    while storage.exists(object_key) or db.query(Video).filter(Video.file_path == object_key).first():
        sequence += 1
        object_key, filename = build_object_key(room.room_number, video.filename, now, sequence)

    try:
        file_size = storage.save(object_key, video.file, max_size=settings.MAX_FILE_SIZE)
    except FileTooLargeError:
        raise HTTPException(status_code=status.HTTP_413_REQUEST_ENTITY_TOO_LARGE, detail="File too large")
    except (StorageError, OSError) as e:
        logger.error(f"Failed to store upload {object_key}: {e}")
        raise HTTPException(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, detail="Failed to save file")

    record = Video(
        filename=filename,
        original_filename=video.filename,
        file_path=object_key,
        file_size=file_size,
        room_id=room.id,
        uploaded_by=current_user.id,
        upload_date=now,
        video_metadata=json.dumps({"content_type": video.content_type, "room_number": room.room_number}),
    )
    try:
        db.add(record)
        db.commit()
        db.refresh(record)
    except Exception as e:
        db.rollback()
        logger.error(f"Database error on creating video record: {e}")
        # Clean up the stored file if the database save fails
        try:
            storage.delete(object_key)
        except StorageError as cleanup_error:
            logger.error(f"Could not remove orphaned upload {object_key}: {cleanup_error}")
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Failed to save video record",
        )

    logger.info(f"Video {record.id} ({file_size} bytes) uploaded to room {room.room_number} by {current_user.username}")
    return VideoUploadResponse(
        video=UploadedVideo(id=record.id, filename=record.filename, size=record.file_size, room=room.room_number)
    )


@router.get("/{video_id}", response_model=VideoEnvelope, summary="Get one video")
def get_video(video_id: int, db: Session = Depends(get_db_session), current_user: User = Depends(get_current_user)):
    return {"video": _get_video_or_404(db, video_id)}


@router.get("/{video_id}/stream", summary="Stream the video file")
def stream_video(
    video_id: int,
    db: Session = Depends(get_db_session),
    storage: StorageService = Depends(get_storage_service),
    current_user: User = Depends(get_media_user),
):
    video = _get_video_or_404(db, video_id)
    return _file_response(video, storage, attachment=False)


@router.get("/{video_id}/download", summary="Download the video file as an attachment")
def download_video(
    video_id: int,
    db: Session = Depends(get_db_session),
    storage: StorageService = Depends(get_storage_service),
    current_user: User = Depends(get_current_user),
):
    video = _get_video_or_404(db, video_id)
    logger.info(f"Video {video.id} downloaded by {current_user.username}")
    return _file_response(video, storage, attachment=True)


@router.delete("/{video_id}", response_model=MessageResponse, summary="Delete a video")
def delete_video(
    video_id: int,
    db: Session = Depends(get_db_session),
    storage: StorageService = Depends(get_storage_service),
    current_user: User = Depends(get_current_user),
):
    query = db.query(Video).filter(Video.id == video_id)
    # Users without a management role may only delete their own videos
    if current_user.role not in MANAGEMENT_ROLES:
        query = query.filter(Video.uploaded_by == current_user.id)

    video = query.first()
    if video is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Video not found")

    try:
        storage.delete(video.file_path)
    except StorageError as e:
        # The record is removed even when the file is already gone
        logger.warning(f"Failed to delete file {video.file_path}: {e}")

    db.delete(video)
    db.commit()
    logger.info(f"Video {video_id} deleted by {current_user.username}")
    return MessageResponse(message="Video deleted successfully")
