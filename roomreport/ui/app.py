import os
import tempfile
from datetime import datetime, timedelta

import extra_streamlit_components as stx
import pandas as pd
import streamlit as st
from dotenv import load_dotenv

from roomreport.client.api_client import ApiClient, ApiError
from roomreport.client.audio import AudioRecorder
from roomreport.client.auth import AuthContext, SessionStore, is_valid_browser_id, new_browser_id
from roomreport.client.config import get_client_settings, resolve_api_url
from roomreport.client.recorder import RecorderState, RecorderView, VideoRecorder
from roomreport.client.views import (
    ROLES,
    DashboardRouter,
    FilesView,
    RoomsView,
    UsersView,
    View,
    available_views,
    format_file_size,
    format_time,
    parse_timestamp,
    role_index,
)

# --- Page Configuration & ENV Loading ---
st.set_page_config(page_title="Room Report", page_icon="🎥", layout="wide")
load_dotenv()

CARDS = {
    View.RECORD: ("🎥 Record Video", "Capture and upload videos directly from your device"),
    View.FILES: ("📂 File Management", "Browse, search, and manage uploaded videos"),
    View.ROOMS: ("🏢 Room Management", "Manage rooms and organize video content"),
    View.USERS: ("👥 User Management", "Manage users and their permissions"),
}

BROWSER_COOKIE = "roomreport_browser"
# Must stay well under RECORDER_IDLE_TIMEOUT
HEARTBEAT_SECONDS = 5


# --- Session objects (one set per browser session) ---
def get_browser_id() -> str:
    """Id kept in a cookie so every browser restores only its own saved session"""
    if "browser_id" not in st.session_state:
        browser_id = st.context.cookies.get(BROWSER_COOKIE)
        if not is_valid_browser_id(browser_id):
            browser_id = new_browser_id()
            stx.CookieManager(key="cookie_manager").set(
                BROWSER_COOKIE, browser_id, expires_at=datetime.now() + timedelta(days=365), key="set_browser_cookie",
            )
        st.session_state.browser_id = browser_id
    return st.session_state.browser_id


def get_auth() -> AuthContext:
    if "auth" not in st.session_state:
        settings = get_client_settings()
        base_url = settings.API_BASE_URL or resolve_api_url(getattr(st.context, "url", None))
        api = ApiClient(base_url, timeout=settings.REQUEST_TIMEOUT, chunk_size=settings.UPLOAD_CHUNK_SIZE)
        auth = AuthContext(api, SessionStore.for_browser(settings.SESSION_DIR, get_browser_id()))
        auth.restore()
        st.session_state.auth = auth
    return st.session_state.auth


def get_router(auth: AuthContext) -> DashboardRouter:
    router = st.session_state.get("router")
    if router is None or router.user is not auth.user:
        router = DashboardRouter(auth.user)
        st.session_state.router = router
    return router


def get_view(key: str, factory):
    """Creates the view on first visit and loads it (fetch-on-mount)"""
    if key not in st.session_state:
        view = factory()
        view.load()
        st.session_state[key] = view
    return st.session_state[key]


def leave_view(router: DashboardRouter):
    router.back()
    for key in ("recorder_view", "files_view", "rooms_view", "users_view"):
        st.session_state.pop(key, None)
    st.rerun()


def logout(auth: AuthContext):
    recorder_view = st.session_state.get("recorder_view")
    if recorder_view is not None:
        recorder_view.close()
    auth.logout()
    for key in list(st.session_state.keys()):
        if key not in ("auth", "browser_id"):
            del st.session_state[key]
    st.rerun()


def make_recorder() -> VideoRecorder:
    settings = get_client_settings()
    audio = AudioRecorder(settings.AUDIO_INPUT_FORMAT, settings.AUDIO_DEVICE) if settings.RECORD_AUDIO else None
    return VideoRecorder(audio=audio, idle_timeout=settings.RECORDER_IDLE_TIMEOUT)


@st.fragment(run_every=HEARTBEAT_SECONDS)
def recorder_status(recorder: VideoRecorder):
    # Reruns on its own while the tab is open; once it stops the camera is released
    recorder.touch()
    if recorder.state in (RecorderState.RECORDING, RecorderState.PAUSED):
        label = "⏸️ Paused" if recorder.state == RecorderState.PAUSED else "🔴 Recording"
        st.write(f"{label} {format_time(recorder.recording_time)}")
    elif recorder.error:
        st.warning(recorder.error)


# --- Pages ---
def render_login(auth: AuthContext):
    st.title("🎥 Room Report")
    st.caption("Video Upload & Management System")
    with st.container(border=True):
        with st.form("login"):
            username = st.text_input("Username")
            password = st.text_input("Password", type="password")
            submitted = st.form_submit_button("Sign in", type="primary", use_container_width=True)
        if submitted:
            try:
                auth.login(username, password)
                st.rerun()
            except ApiError as e:
                st.error(e.message)


def render_header(auth: AuthContext):
    left, right = st.columns([4, 1])
    with left:
        st.title("🎥 Room Report")
        st.caption(f"👤 {auth.user.get('username')} · 🛡️ {auth.user.get('role', '').capitalize()}")
    with right:
        if st.button("Logout", type="primary", use_container_width=True):
            logout(auth)
    st.divider()


def render_dashboard(auth: AuthContext, router: DashboardRouter):
    with st.container(border=True):
        st.subheader(f"Welcome back, {auth.user.get('username')}!")
        st.write("What would you like to do today?")

    views = available_views(auth.user)
    columns = st.columns(len(views))
    for column, view in zip(columns, views):
        title, description = CARDS[view]
        with column, st.container(border=True):
            st.markdown(f"**{title}**")
            st.caption(description)
            if st.button("Open", key=f"open_{view.value}", use_container_width=True):
                router.open(view)
                st.rerun()


def render_recorder(auth: AuthContext, router: DashboardRouter):
    view = st.session_state.get("recorder_view")
    if view is None:
        view = RecorderView(auth.api, make_recorder())
        view.load_rooms()
        st.session_state.recorder_view = view
        router.on_leave(view.close)
    recorder = view.recorder
    recorder.touch()

    st.header("Record Video")
    if view.error:
        st.error(view.error)
    if view.message:
        st.success(view.message)

    room_numbers = [room["room_number"] for room in view.rooms]
    view.selected_room = st.selectbox(
        "Select room", [""] + room_numbers,
        index=([""] + room_numbers).index(view.selected_room) if view.selected_room in room_numbers else 0,
        format_func=lambda number: "Choose a room..." if not number else f"Room {number}",
    )

    with st.container(border=True):
        frame = recorder.snapshot()
        if frame is not None:
            st.image(frame, channels="BGR", use_container_width=True)
        else:
            st.info("Camera is off")

        recorder_status(recorder)

        c1, c2, c3, c4 = st.columns(4)
        if recorder.state == RecorderState.IDLE:
            if c1.button("Start camera", use_container_width=True):
                view.start_camera()
                st.rerun()
        elif recorder.state == RecorderState.CAPTURING:
            if c1.button("Start recording", type="primary", use_container_width=True):
                view.start_recording()
                st.rerun()
            if c2.button("Switch camera", use_container_width=True):
                view.switch_camera()
                st.rerun()
            if c3.button("Stop camera", use_container_width=True):
                recorder.stop_camera()
                st.rerun()
        else:
            pause_label = "Resume" if recorder.state == RecorderState.PAUSED else "Pause"
            if c1.button(pause_label, use_container_width=True):
                view.toggle_pause()
                st.rerun()
            if c2.button("Stop", type="primary", use_container_width=True):
                view.stop_recording()
                st.rerun()
        if c4.button("Refresh preview", use_container_width=True):
            st.rerun()

    recording = recorder.recording
    if recording is not None and recorder.state not in (RecorderState.RECORDING, RecorderState.PAUSED):
        with st.container(border=True):
            st.subheader("Preview")
            with open(recording.path, "rb") as f:
                st.video(f.read())
            st.caption(f"{format_time(recording.duration)} · {format_file_size(recording.size)} · {recording.mime_type}")
            if st.button("Upload", type="primary", use_container_width=True):
                progress_bar = st.progress(0, text="Uploading...")
                view.upload(progress=lambda percent: progress_bar.progress(int(percent), text=f"Uploading... {percent:.0f}%"))
                st.rerun()


def render_files(auth: AuthContext):
    view = get_view("files_view", lambda: FilesView(auth.api, auth.user))
    st.header("File Management")
    st.caption("Browse and manage uploaded videos")
    if view.error:
        st.error(view.error)
    if not view.has_permission:
        return

    with st.container(border=True):
        rooms = view.unique_rooms
        view.selected_rooms = st.multiselect("Rooms", rooms, default=[room for room in view.selected_rooms if room in rooms])
        c1, c2, c3 = st.columns([2, 2, 1])
        start = c1.date_input("From", value=view.start_date)
        end = c2.date_input("To", value=view.end_date)
        view.set_date_range(start, end)
        if view.has_filters and c3.button("Clear all filters"):
            view.clear_filters()
            st.rerun()
        if c3.button("Refresh"):
            view.load()
            st.rerun()

    videos = view.filtered_videos
    if not videos:
        if view.has_filters:
            st.info("No videos match your filter criteria. Try adjusting your filters.")
        else:
            st.info("No videos uploaded yet.")
        return

    for video in videos:
        uploaded = parse_timestamp(video.get("upload_date") or video.get("created_at"))
        with st.container(border=True):
            left, right = st.columns([3, 2])
            with left:
                st.markdown(f"**{video.get('original_filename') or video['filename']}**")
                st.caption(
                    f"Room {(video.get('room') or {}).get('room_number', '-')} · "
                    f"{format_file_size(video.get('file_size', 0))} · "
                    f"{uploaded.strftime('%Y-%m-%d %H:%M') if uploaded else '-'} · "
                    f"by {(video.get('user') or {}).get('username', '-')}"
                )
            with right:
                b1, b2, b3 = st.columns(3)
                if b1.button("Play", key=f"play_{video['id']}"):
                    st.session_state.playing = video["id"]
                if b2.button("Download", key=f"dl_{video['id']}"):
                    path = view.download(video, tempfile.mkdtemp(prefix="roomreport-dl-"))
                    if path:
                        st.session_state[f"download_path_{video['id']}"] = path
                if b3.button("Delete", key=f"del_{video['id']}"):
                    view.delete(video["id"])
                    st.rerun()

            path = st.session_state.get(f"download_path_{video['id']}")
            if path and os.path.exists(path):
                with open(path, "rb") as f:
                    st.download_button("Save file", f.read(), file_name=os.path.basename(path), key=f"save_{video['id']}")
            if st.session_state.get("playing") == video["id"]:
                try:
                    st.video(auth.api.fetch_stream(video["id"]))
                except ApiError:
                    st.error("Failed to load video")


def render_rooms(auth: AuthContext):
    view = get_view("rooms_view", lambda: RoomsView(auth.api, auth.user))
    st.header("Room Management")
    if view.error:
        st.error(view.error)
    if not view.has_permission:
        return

    c1, c2 = st.columns([3, 1])
    view.search = c1.text_input("Search rooms", value=view.search, placeholder="Room number")
    if c2.button("Add room", type="primary", use_container_width=True):
        view.start_create()
        st.rerun()

    if view.show_form:
        with st.form("room_form"):
            st.subheader("Edit room" if view.editing else "New room")
            room_number = st.text_input("Room number", value=view.editing["room_number"] if view.editing else "")
            save, cancel = st.columns(2)
            if save.form_submit_button("Save", type="primary"):
                view.save(room_number)
                st.rerun()
            if cancel.form_submit_button("Cancel"):
                view.cancel()
                st.rerun()

    rooms = view.filtered_rooms
    if not rooms:
        st.info("No rooms match your search." if view.search else "No rooms yet.")
        return
    for room in rooms:
        with st.container(border=True):
            left, edit, delete = st.columns([4, 1, 1])
            left.markdown(f"**Room {room['room_number']}**")
            if edit.button("Edit", key=f"edit_room_{room['id']}"):
                view.start_edit(room)
                st.rerun()
            if delete.button("Delete", key=f"delete_room_{room['id']}"):
                view.delete(room["id"])
                st.rerun()


def render_users(auth: AuthContext):
    view = get_view("users_view", lambda: UsersView(auth.api, auth.user))
    st.header("User Management")
    if view.error:
        st.error(view.error)
    if not view.has_permission:
        return

    if st.button("Add user", type="primary"):
        view.start_create()
        st.rerun()

    if view.show_form:
        form = view.form
        with st.form("user_form"):
            st.subheader("Edit user" if view.editing else "New user")
            username = st.text_input("Username", value=form["username"])
            email = st.text_input("Email", value=form["email"])
            password = st.text_input(
                "Password" if not view.editing else "New password (leave blank to keep)",
                type="password",
            )
            role = st.selectbox("Role", ROLES, index=role_index(form["role"]))
            is_active = st.checkbox("Active", value=form["is_active"])
            save, cancel = st.columns(2)
            if save.form_submit_button("Save", type="primary"):
                view.save({"username": username, "email": email, "password": password,
                           "role": role, "is_active": is_active})
                st.rerun()
            if cancel.form_submit_button("Cancel"):
                view.cancel()
                st.rerun()

    if view.users:
        table = pd.DataFrame(view.users)[["id", "username", "email", "role", "is_active"]]
        st.dataframe(table, hide_index=True, use_container_width=True)
        for user in view.users:
            left, edit, delete = st.columns([4, 1, 1])
            left.write(f"{user['username']} ({user['role']})")
            if edit.button("Edit", key=f"edit_user_{user['id']}"):
                view.start_edit(user)
                st.rerun()
            if delete.button("Delete", key=f"delete_user_{user['id']}"):
                view.delete(user["id"])
                st.rerun()


# --- Main UI ---
auth = get_auth()

if not auth.is_authenticated:
    render_login(auth)
else:
    render_header(auth)
    router = get_router(auth)

    if router.current != View.DASHBOARD:
        if st.button("← Back to Dashboard"):
            leave_view(router)

    if router.current == View.DASHBOARD:
        render_dashboard(auth, router)
    elif router.current == View.RECORD:
        render_recorder(auth, router)
    elif router.current == View.FILES:
        render_files(auth)
    elif router.current == View.ROOMS:
        render_rooms(auth)
    elif router.current == View.USERS:
        render_users(auth)
