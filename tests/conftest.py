"""
Shared fixtures: an in-memory database, a temporary upload directory and
users of every role, wired into the FastAPI app through dependency overrides,
plus a fake ffmpeg for the microphone recorder.
"""

import os
import subprocess

# Settings are read once at import time
os.environ["JWT_SECRET"] = "test-secret"
os.environ["SEED_DEFAULTS"] = "false"
os.environ["STORAGE_BACKEND"] = "local"

from datetime import datetime

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from roomreport.client.audio import AudioRecorder
from roomreport.core.security import generate_token
from roomreport.main import app
from roomreport.models.auth import User
from roomreport.models.room import Room
from roomreport.models.video import Video
from roomreport.services.storage_service import LocalStorage, get_storage_service
from roomreport.shared.db.database import create_db_and_tables, get_db_session


@pytest.fixture
def engine():
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    create_db_and_tables(bind=engine)
    yield engine
    engine.dispose()


@pytest.fixture
def session_factory(engine):
    return sessionmaker(autoflush=False, bind=engine, expire_on_commit=False)


@pytest.fixture
def storage(tmp_path):
    return LocalStorage(str(tmp_path / "uploads"))


@pytest.fixture
def client(session_factory, storage):
    def override_db_session():
        db = session_factory()
        try:
            yield db
        finally:
            db.close()

    app.dependency_overrides[get_db_session] = override_db_session
    app.dependency_overrides[get_storage_service] = lambda: storage
    # Not entered as a context manager, so startup seeding does not run
    yield TestClient(app)
    app.dependency_overrides.clear()


@pytest.fixture
def make_user(session_factory):
    def _make(username, role="user", password="secret123", is_active=True, email=None):
        with session_factory() as db:
            user = User(
                username=username,
                email=email or f"{username}@example.com",
                role=role,
                is_active=is_active,
            )
            user.set_password(password)
            db.add(user)
            db.commit()
            return {"id": user.id, "username": username, "role": role, "password": password}

    return _make


@pytest.fixture
def make_room(session_factory):
    def _make(room_number):
        with session_factory() as db:
            room = Room(room_number=room_number)
            db.add(room)
            db.commit()
            return {"id": room.id, "room_number": room.room_number}

    return _make


@pytest.fixture
def make_video(session_factory, storage):
    """Stores a file and its record, bypassing the upload endpoint"""
    counter = {"n": 0}

    def _make(room, user, content=b"video-bytes", upload_date=None, original_filename="clip.webm",
              content_type="video/webm", store_file=True):
        counter["n"] += 1
        key = f"2024/01/room_{room['room_number']}/video_{counter['n']}.webm"
        if store_file:
            with _open_for(storage, key) as out:
                out.write(content)
        with session_factory() as db:
            video = Video(
                filename=os.path.basename(key),
                original_filename=original_filename,
                file_path=key,
                file_size=len(content),
                room_id=room["id"],
                uploaded_by=user["id"],
                upload_date=upload_date or datetime.utcnow(),
                video_metadata=f'{{"content_type": "{content_type}"}}',
            )
            db.add(video)
            db.commit()
            return {"id": video.id, "file_path": key}

    return _make


def _open_for(storage, key):
    path = storage.local_path(key)
    os.makedirs(os.path.dirname(path), exist_ok=True)
    return open(path, "wb")


@pytest.fixture
def headers_for():
    def _headers(user: dict) -> dict:
        token = generate_token(user["id"], user["username"], user["role"])
        return {"Authorization": f"Bearer {token}"}

    return _headers


@pytest.fixture
def supervisor(make_user):
    return make_user("boss", role="supervisor")


@pytest.fixture
def manager(make_user):
    return make_user("mandy", role="manager")


@pytest.fixture
def member(make_user):
    return make_user("alice", role="user")


class FakeProcess:
    """Stands in for a microphone capture process; writes its output file on start"""

    def __init__(self, command):
        self.command = command
        self.inputs = []
        self.killed = False
        with open(command[-1], "wb") as f:
            f.write(b"RIFF")

    def communicate(self, input=None, timeout=None):
        self.inputs.append(input)
        return b"", b""

    def kill(self):
        self.killed = True


class FakeFfmpeg:
    """popen/run replacements recording every ffmpeg invocation"""

    def __init__(self):
        self.processes = []
        self.runs = []
        self.fail_start = False
        self.fail_mux = False

    def popen(self, command, **kwargs):
        if self.fail_start:
            raise FileNotFoundError("ffmpeg")
        process = FakeProcess(command)
        self.processes.append(process)
        return process

    def run(self, command, **kwargs):
        self.runs.append(command)
        if self.fail_mux:
            raise subprocess.CalledProcessError(1, command, stderr="Unknown encoder")
        with open(command[-1], "wb") as f:
            f.write(b"muxed")
        return subprocess.CompletedProcess(command, 0)

    def audio(self, **kwargs) -> AudioRecorder:
        return AudioRecorder("pulse", "default", popen=self.popen, run=self.run, **kwargs)


@pytest.fixture
def ffmpeg():
    return FakeFfmpeg()
