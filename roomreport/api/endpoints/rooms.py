# roomreport/api/endpoints/rooms.py

import logging
from fastapi import APIRouter, Depends, HTTPException, status
from sqlalchemy.orm import Session

from roomreport.api.dependencies import get_current_user, require_roles
from roomreport.shared.db.database import get_db_session
from roomreport.models.auth import MANAGEMENT_ROLES, MessageResponse, User
from roomreport.models.room import Room, RoomEnvelope, RoomListResponse, RoomPayload
from roomreport.models.video import Video

logger = logging.getLogger(__name__)

router = APIRouter()

manager_only = require_roles(*MANAGEMENT_ROLES)


def _get_room_or_404(db: Session, room_id: int) -> Room:
    room = db.get(Room, room_id)
    if room is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Room not found")
    return room


def _ensure_unique(db: Session, room_number: str, exclude_id: int | None = None):
    query = db.query(Room).filter(Room.room_number == room_number)
    if exclude_id is not None:
        query = query.filter(Room.id != exclude_id)
    if query.first() is not None:
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail="Room number already exists")


@router.get("", response_model=RoomListResponse, summary="List all rooms")
def list_rooms(db: Session = Depends(get_db_session), current_user: User = Depends(get_current_user)):
    rooms = db.query(Room).order_by(Room.room_number).all()
    return {"rooms": rooms}


@router.post("", status_code=status.HTTP_201_CREATED, response_model=RoomEnvelope, summary="Create a room")
def create_room(payload: RoomPayload, db: Session = Depends(get_db_session), current_user: User = Depends(manager_only)):
    _ensure_unique(db, payload.room_number)

    room = Room(room_number=payload.room_number)
    db.add(room)
    db.commit()
    db.refresh(room)

    logger.info(f"Room {room.room_number} created by {current_user.username}")
    return {"message": "Room created successfully", "room": room}


@router.put("/{room_id}", response_model=RoomEnvelope, summary="Rename a room")
def update_room(room_id: int, payload: RoomPayload, db: Session = Depends(get_db_session), current_user: User = Depends(manager_only)):
    room = _get_room_or_404(db, room_id)
    _ensure_unique(db, payload.room_number, exclude_id=room_id)

    room.room_number = payload.room_number
    db.commit()
    db.refresh(room)
    return {"message": "Room updated successfully", "room": room}


@router.delete("/{room_id}", response_model=MessageResponse, summary="Delete a room without videos")
def delete_room(room_id: int, db: Session = Depends(get_db_session), current_user: User = Depends(manager_only)):
    room = _get_room_or_404(db, room_id)

    video_count = db.query(Video).filter(Video.room_id == room_id).count()
    if video_count > 0:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Cannot delete room with existing videos")

    db.delete(room)
    db.commit()
    logger.info(f"Room {room.room_number} deleted by {current_user.username}")
    return MessageResponse(message="Room deleted successfully")
