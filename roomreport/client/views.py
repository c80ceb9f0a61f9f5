# roomreport/client/views.py

import logging
from datetime import date, datetime
from enum import Enum

from pydantic import EmailStr, TypeAdapter, ValidationError

from roomreport.client.api_client import ApiClient, ApiError

logger = logging.getLogger(__name__)

ROLES = ("user", "manager", "supervisor")
MANAGEMENT_ROLES = ("manager", "supervisor")
MIN_PASSWORD_LENGTH = 6

_email_adapter = TypeAdapter(EmailStr)

ACCESS_DENIED = (
    "You don't have permission to access {feature}. "
    "This feature is only available for Manager and Supervisor roles."
)


# =================================================================
# Dashboard routing
# =================================================================
class View(str, Enum):
    DASHBOARD = "dashboard"
    RECORD = "record"
    FILES = "files"
    ROOMS = "rooms"
    USERS = "users"


MANAGEMENT_VIEWS = (View.FILES, View.ROOMS, View.USERS)


def has_management_access(user: dict | None) -> bool:
    return bool(user) and user.get("role") in MANAGEMENT_ROLES


def available_views(user: dict | None) -> list[View]:
    """The action cards shown on the dashboard for this user"""
    if not user:
        return []
    views = [View.RECORD]
    if has_management_access(user):
        views.extend(MANAGEMENT_VIEWS)
    return views


class DashboardRouter:
    """
    Tracks which feature view is open. Leaving a view calls its close hook,
    which is how the recorder gives the camera back.
    """

    def __init__(self, user: dict | None):
        self.user = user
        self.current = View.DASHBOARD
        self._close_hooks = []

    def on_leave(self, hook):
        self._close_hooks.append(hook)

    def open(self, view: View) -> bool:
        if view in MANAGEMENT_VIEWS and not has_management_access(self.user):
            # The card is hidden for these users, so this is not expected
            logger.warning(f"User does not have permission to access {view.value}")
            return False
        if view != self.current:
            self._leave()
        self.current = view
        return True

    def back(self):
        self._leave()
        self.current = View.DASHBOARD

    def _leave(self):
        hooks, self._close_hooks = self._close_hooks, []
        for hook in hooks:
            hook()


# =================================================================
# Formatting
# =================================================================
def format_file_size(size: int) -> str:
    if not size:
        return "0 Bytes"
    units = ["Bytes", "KB", "MB", "GB"]
    value, i = float(size), 0
    while value >= 1024 and i < len(units) - 1:
        value /= 1024
        i += 1
    return f"{round(value, 2):g} {units[i]}"


def format_time(seconds: float) -> str:
    seconds = int(seconds)
    return f"{seconds // 60:02d}:{seconds % 60:02d}"


def parse_timestamp(value) -> datetime | None:
    if isinstance(value, datetime):
        return value
    if not value:
        return None
    try:
        return datetime.fromisoformat(str(value).replace("Z", "+00:00"))
    except ValueError:
        return None


def _as_date(value) -> date | None:
    if value is None or value == "":
        return None
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    return date.fromisoformat(value)


# =================================================================
# Views
# =================================================================
class ManagementView:
    """Shared state of the list/filter/CRUD views"""
    feature = ""

    def __init__(self, api: ApiClient, user: dict | None):
        self.api = api
        self.user = user
        self.error = ""
        self.loaded = False

    @property
    def has_permission(self) -> bool:
        return has_management_access(self.user)

    def _denied(self) -> bool:
        if self.has_permission:
            return False
        self.error = ACCESS_DENIED.format(feature=self.feature)
        return True


class RoomsView(ManagementView):
    feature = "Room Management"

    def __init__(self, api: ApiClient, user: dict | None):
        super().__init__(api, user)
        self.rooms: list[dict] = []
        self.search = ""
        self.editing: dict | None = None
        self.show_form = False

    def load(self):
        if self._denied():
            return
        try:
            self.error = ""
            self.rooms = self.api.list_rooms()
            self.loaded = True
        except ApiError:
            self.error = "Failed to load rooms"

    @property
    def filtered_rooms(self) -> list[dict]:
        term = self.search.strip().lower()
        if not term:
            return self.rooms
        return [room for room in self.rooms if term in room["room_number"].lower()]

    def start_create(self):
        self.editing = None
        self.show_form = True
        self.error = ""

    def start_edit(self, room: dict):
        self.editing = room
        self.show_form = True
        self.error = ""

    def cancel(self):
        self.editing = None
        self.show_form = False
        self.error = ""

    def save(self, room_number: str) -> bool:
        self.error = ""
        room_number = (room_number or "").strip()
        if not room_number:
            self.error = "Room number is required"
            return False

        try:
            if self.editing:
                self.api.update_room(self.editing["id"], room_number)
            else:
                self.api.create_room(room_number)
        except ApiError as e:
            self.error = e.message or "Failed to save room"
            return False

        self.cancel()
        self.load()
        return True

    def delete(self, room_id: int) -> bool:
        try:
            self.api.delete_room(room_id)
        except ApiError as e:
            self.error = e.message if e.status_code == 400 else "Failed to delete room"
            return False
        self.rooms = [room for room in self.rooms if room["id"] != room_id]
        return True


def empty_user_form() -> dict:
    return {"username": "", "email": "", "password": "", "role": "user", "is_active": True}


def is_valid_email(value: str) -> bool:
    """Same check the server applies to `email`"""
    try:
        _email_adapter.validate_python((value or "").strip())
    except ValidationError:
        return False
    return True


def role_index(role: str | None) -> int:
    """Position of `role` in ROLES, falling back to the first role for unknown values"""
    try:
        return ROLES.index(role)
    except ValueError:
        return 0


def validate_user_form(form: dict, creating: bool) -> str:
    """Returns the first problem with the form, or an empty string"""
    if not form.get("username", "").strip():
        return "Username is required"
    if not is_valid_email(form.get("email", "")):
        return "A valid email is required"
    if form.get("role") not in ROLES:
        return "Role must be one of: " + ", ".join(ROLES)
    password = form.get("password") or ""
    if creating and not password:
        return "Password is required"
    if password and len(password) < MIN_PASSWORD_LENGTH:
        return f"Password must be at least {MIN_PASSWORD_LENGTH} characters"
    return ""


class UsersView(ManagementView):
    feature = "User Management"

    def __init__(self, api: ApiClient, user: dict | None):
        super().__init__(api, user)
        self.users: list[dict] = []
        self.editing: dict | None = None
        self.form = empty_user_form()
        self.show_form = False

    def load(self):
        if self._denied():
            return
        try:
            self.error = ""
            self.users = self.api.list_users()
            self.loaded = True
        except ApiError:
            self.error = "Failed to load users"

    def start_create(self):
        self.editing = None
        self.form = empty_user_form()
        self.show_form = True
        self.error = ""

    def start_edit(self, user: dict):
        self.editing = user
        self.form = {
            "username": user["username"],
            "email": user["email"],
            "password": "",
            "role": user["role"],
            "is_active": user.get("is_active", True),
        }
        self.show_form = True
        self.error = ""

    def cancel(self):
        self.editing = None
        self.form = empty_user_form()
        self.show_form = False
        self.error = ""

    def save(self, form: dict | None = None) -> bool:
        self.error = ""
        if form is not None:
            self.form = dict(form)

        problem = validate_user_form(self.form, creating=self.editing is None)
        if problem:
            self.error = problem
            return False

        payload = {
            "username": self.form["username"].strip(),
            "email": self.form["email"].strip(),
            "role": self.form["role"],
            "is_active": bool(self.form.get("is_active", True)),
        }
        if self.form.get("password"):
            payload["password"] = self.form["password"]

        try:
            if self.editing:
                self.api.update_user(self.editing["id"], payload)
            else:
                self.api.create_user(payload)
        except ApiError as e:
            self.error = e.message or "Failed to save user"
            return False

        self.cancel()
        self.load()
        return True

    def delete(self, user_id: int) -> bool:
        try:
            self.api.delete_user(user_id)
        except ApiError as e:
            self.error = e.message if e.status_code == 400 else "Failed to delete user"
            return False
        self.load()
        return True


class FilesView(ManagementView):
    feature = "File Management"

    def __init__(self, api: ApiClient, user: dict | None):
        super().__init__(api, user)
        self.videos: list[dict] = []
        self.selected_rooms: list[str] = []
        self.start_date: date | None = None
        self.end_date: date | None = None

    def load(self):
        if self._denied():
            return
        try:
            self.error = ""
            self.videos = self.api.list_videos()
            self.loaded = True
            self._prune_selection()
        except ApiError:
            self.error = "Failed to load videos"

    @property
    def unique_rooms(self) -> list[str]:
        rooms = {(video.get("room") or {}).get("room_number") for video in self.videos}
        return sorted(room for room in rooms if room)

    def _prune_selection(self):
        # A selected room disappears once its last video is deleted
        rooms = set(self.unique_rooms)
        self.selected_rooms = [room for room in self.selected_rooms if room in rooms]

    def toggle_room(self, room_number: str):
        if room_number in self.selected_rooms:
            self.selected_rooms = [room for room in self.selected_rooms if room != room_number]
        else:
            self.selected_rooms = self.selected_rooms + [room_number]

    def set_date_range(self, start=None, end=None):
        self.start_date = _as_date(start)
        self.end_date = _as_date(end)

    def clear_filters(self):
        self.selected_rooms = []
        self.start_date = None
        self.end_date = None

    @property
    def has_filters(self) -> bool:
        return bool(self.selected_rooms or self.start_date or self.end_date)

    @property
    def filtered_videos(self) -> list[dict]:
        videos = self.videos

        if self.selected_rooms:
            videos = [
                video for video in videos
                if (video.get("room") or {}).get("room_number") in self.selected_rooms
            ]

        if self.start_date or self.end_date:
            kept = []
            for video in videos:
                uploaded = parse_timestamp(video.get("upload_date") or video.get("created_at"))
                if uploaded is None:
                    continue
                day = uploaded.date()
                if self.start_date and day < self.start_date:
                    continue
                if self.end_date and day > self.end_date:
                    continue
                kept.append(video)
            videos = kept

        return videos

    def download(self, video: dict, dest_dir: str) -> str | None:
        try:
            return self.api.download_video(video, dest_dir)
        except ApiError:
            self.error = "Failed to download video"
            return None

    def delete(self, video_id: int) -> bool:
        try:
            self.api.delete_video(video_id)
        except ApiError:
            self.error = "Failed to delete video"
            return False
        self.videos = [video for video in self.videos if video["id"] != video_id]
        self._prune_selection()
        return True
