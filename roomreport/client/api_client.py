# roomreport/client/api_client.py

import logging
import mimetypes
import os
from typing import Callable

import requests
from requests_toolbelt import MultipartEncoder, MultipartEncoderMonitor

logger = logging.getLogger(__name__)

ProgressCallback = Callable[[int, int], None]

DEFAULT_TIMEOUT = 30.0
DEFAULT_CHUNK_SIZE = 64 * 1024


class ApiError(Exception):
    """A failed API call, carrying the message to show the user"""

    def __init__(self, message: str, status_code: int | None = None):
        super().__init__(message)
        self.message = message
        self.status_code = status_code


def _error_message(response: requests.Response, fallback: str) -> str:
    try:
        data = response.json()
    except ValueError:
        return fallback
    if isinstance(data, dict):
        message = data.get("detail") or data.get("error")
        if isinstance(message, str) and message:
            return message
    return fallback


class ApiClient:
    """
    Thin wrapper around the Room Report REST API.
    Every method either returns the decoded payload or raises ApiError.
    """

    def __init__(self, base_url: str, token: str | None = None, session: requests.Session | None = None,
                 timeout: float = DEFAULT_TIMEOUT, chunk_size: int = DEFAULT_CHUNK_SIZE):
        self.base_url = base_url.rstrip("/")
        self.token = token
        self.session = session or requests.Session()
        self.timeout = timeout
        self.chunk_size = chunk_size

    # --- plumbing ---
    def url(self, path: str) -> str:
        return f"{self.base_url}{path}"

    def _headers(self, extra: dict | None = None) -> dict:
        headers = {}
        if self.token:
            headers["Authorization"] = f"Bearer {self.token}"
        if extra:
            headers.update(extra)
        return headers

    def _request(self, method: str, path: str, fallback: str, **kwargs) -> requests.Response:
        headers = self._headers(kwargs.pop("headers", None))
        try:
            response = self.session.request(method, self.url(path), headers=headers, timeout=self.timeout, **kwargs)
        except requests.RequestException as e:
            logger.error(f"{method} {path} failed: {e}")
            raise ApiError(fallback) from e

        if not response.ok:
            message = _error_message(response, fallback)
            logger.warning(f"{method} {path} returned {response.status_code}: {message}")
            raise ApiError(message, response.status_code)
        return response

    def _json(self, method: str, path: str, fallback: str, **kwargs) -> dict:
        response = self._request(method, path, fallback, **kwargs)
        try:
            return response.json()
        except ValueError as e:
            raise ApiError(fallback, response.status_code) from e

    # --- auth ---
    def login(self, username: str, password: str) -> dict:
        return self._json("POST", "/api/auth/login", "Login failed",
                          json={"username": username, "password": password})

    def logout(self) -> dict:
        return self._json("POST", "/api/auth/logout", "Logout failed")

    # --- rooms ---
    def list_rooms(self) -> list[dict]:
        return self._json("GET", "/api/rooms", "Failed to load rooms").get("rooms") or []

    def create_room(self, room_number: str) -> dict:
        return self._json("POST", "/api/rooms", "Failed to save room", json={"room_number": room_number})["room"]

    def update_room(self, room_id: int, room_number: str) -> dict:
        return self._json("PUT", f"/api/rooms/{room_id}", "Failed to save room",
                          json={"room_number": room_number})["room"]

    def delete_room(self, room_id: int) -> None:
        self._request("DELETE", f"/api/rooms/{room_id}", "Failed to delete room")

    # --- users ---
    def list_users(self) -> list[dict]:
        return self._json("GET", "/api/users", "Failed to load users").get("users") or []

    def create_user(self, payload: dict) -> dict:
        return self._json("POST", "/api/users", "Failed to save user", json=payload)["user"]

    def update_user(self, user_id: int, payload: dict) -> dict:
        return self._json("PUT", f"/api/users/{user_id}", "Failed to save user", json=payload)["user"]

    def delete_user(self, user_id: int) -> None:
        self._request("DELETE", f"/api/users/{user_id}", "Failed to delete user")

    # --- videos ---
    def list_videos(self) -> list[dict]:
        return self._json("GET", "/api/videos", "Failed to load videos").get("videos") or []

    def get_video(self, video_id: int) -> dict:
        return self._json("GET", f"/api/videos/{video_id}", "Failed to load video")["video"]

    def upload_video(self, file_path: str, room_number: str, progress: ProgressCallback | None = None,
                     content_type: str | None = None) -> dict:
        """
        Streams the recording from disk as multipart `video` + `room_number`,
        calling progress(sent_bytes, total_bytes) as the body is read.
        """
        filename = os.path.basename(file_path)
        content_type = content_type or mimetypes.guess_type(filename)[0] or "application/octet-stream"

        def on_read(monitor: MultipartEncoderMonitor):
            if progress is not None:
                progress(monitor.bytes_read, monitor.len)

        with open(file_path, "rb") as f:
            encoder = MultipartEncoder({
                "room_number": room_number,
                "video": (filename, f, content_type),
            })
            monitor = MultipartEncoderMonitor(encoder, on_read)
            return self._json(
                "POST", "/api/videos/upload", "Upload failed. Please try again.",
                data=monitor,
                headers={"Content-Type": monitor.content_type},
            )

    def stream_url(self, video_id: int) -> str:
        url = self.url(f"/api/videos/{video_id}/stream")
        if self.token:
            url = f"{url}?token={self.token}"
        return url

    def fetch_stream(self, video_id: int) -> bytes:
        return self._request("GET", f"/api/videos/{video_id}/stream", "Failed to load video").content

    def download_video(self, video: dict, dest_dir: str) -> str:
        """Saves the file under its original name and returns the local path"""
        filename = os.path.basename(video.get("original_filename") or video.get("filename") or f"video_{video['id']}")
        dest_path = os.path.join(dest_dir, filename)
        os.makedirs(dest_dir, exist_ok=True)

        response = self._request("GET", f"/api/videos/{video['id']}/download", "Failed to download video", stream=True)
        try:
            with open(dest_path, "wb") as out:
                for chunk in response.iter_content(chunk_size=self.chunk_size):
                    if chunk:
                        out.write(chunk)
        except (OSError, requests.RequestException) as e:
            logger.error(f"Download of video {video['id']} failed: {e}")
            raise ApiError("Failed to download video") from e
        finally:
            response.close()
        return dest_path

    def delete_video(self, video_id: int) -> None:
        self._request("DELETE", f"/api/videos/{video_id}", "Failed to delete video")
