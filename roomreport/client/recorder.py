# roomreport/client/recorder.py

import atexit
import logging
import os
import signal
import tempfile
import threading
import time
import weakref
from dataclasses import dataclass
from datetime import datetime
from enum import Enum

import cv2

from roomreport.client.api_client import ApiClient, ApiError
from roomreport.client.audio import AudioError, AudioRecorder

logger = logging.getLogger(__name__)

# Container/codec pairs tried in order of preference: (mime type, extension, fourcc)
MIME_TYPE_PREFERENCES = [
    ("video/webm;codecs=vp9", ".webm", "VP90"),
    ("video/webm;codecs=vp8", ".webm", "VP80"),
    ("video/webm", ".webm", "VP80"),
    ("video/mp4", ".mp4", "mp4v"),
    ("video/ogg;codecs=theora", ".ogv", "THEO"),
    ("video/ogg", ".ogv", "THEO"),
]

IDEAL_WIDTH = 1280
IDEAL_HEIGHT = 720
DEFAULT_FPS = 30.0

NO_CAMERA = "No camera found. Please check if your device has a camera and it is not being used by another application."
CAMERA_NOT_STARTED = "Camera not started. Please start camera first."
NO_SUPPORTED_FORMAT = "No supported video format found for recording."
CAMERA_LOST = "The camera stopped delivering frames."
PAGE_CLOSED = "Recording stopped because the page was closed."


class RecorderError(Exception):
    """A recorder failure with a message meant for the user"""


class RecorderState(str, Enum):
    IDLE = "idle"
    CAPTURING = "capturing"
    RECORDING = "recording"
    PAUSED = "paused"


@dataclass
class Recording:
    path: str
    mime_type: str
    duration: float
    chunk_count: int
    has_audio: bool = False

    @property
    def size(self) -> int:
        return os.path.getsize(self.path) if os.path.exists(self.path) else 0


def _open_writer(path, fourcc, fps, size):
    return cv2.VideoWriter(path, cv2.VideoWriter_fourcc(*fourcc), fps, size)


# Recorders still holding a device; released on interpreter exit and SIGTERM
_live_recorders = weakref.WeakSet()
_previous_sigterm = None
_signal_installed = False


def _release_all():
    for recorder in list(_live_recorders):
        recorder.release()


def _handle_sigterm(signum, frame):
    _release_all()
    if callable(_previous_sigterm):
        _previous_sigterm(signum, frame)
    else:
        raise SystemExit(128 + signum)


def install_cleanup_hooks():
    """
    Registers the exit-path cleanup. The SIGTERM handler can only be installed
    from the main thread; elsewhere (e.g. a Streamlit script thread) only the
    atexit hook is used.
    """
    global _previous_sigterm, _signal_installed
    if _signal_installed:
        return
    try:
        _previous_sigterm = signal.signal(signal.SIGTERM, _handle_sigterm)
        _signal_installed = True
    except ValueError:
        logger.debug("Not on the main thread, SIGTERM cleanup not installed")


atexit.register(_release_all)


class VideoRecorder:
    """
    Wraps a capture device, a video writer and optionally the microphone.

    idle -> capturing (device open) -> recording <-> paused, and stop() goes
    back to capturing with a finished Recording. Frames are written in
    one-second slices from a background thread.

    With `idle_timeout` set, the page has to call touch() regularly; once it
    stops (the tab was closed) a watcher thread stops any recording and
    releases the device.
    """

    def __init__(self, capture_factory=cv2.VideoCapture, writer_factory=_open_writer,
                 output_dir: str | None = None, rear_device: int = 1, front_device: int = 0,
                 timeslice: float = 1.0, audio: AudioRecorder | None = None,
                 idle_timeout: float | None = None, watch_interval: float | None = None,
                 clock=time.monotonic):
        self.capture_factory = capture_factory
        self.writer_factory = writer_factory
        self.output_dir = output_dir or tempfile.mkdtemp(prefix="roomreport-")
        self.devices = {"environment": rear_device, "user": front_device}
        self.timeslice = timeslice
        self.audio = audio
        self.idle_timeout = idle_timeout
        if watch_interval is None:
            watch_interval = idle_timeout / 4 if idle_timeout else 0
        self.watch_interval = watch_interval
        self.clock = clock

        self.facing_mode = "environment"
        self.state = RecorderState.IDLE
        self.mime_type: str | None = None
        self.recording: Recording | None = None
        self.error: str | None = None

        self._capture = None
        self._writer = None
        self._path: str | None = None
        self._fps = DEFAULT_FPS
        self._size = (IDEAL_WIDTH, IDEAL_HEIGHT)
        self._frames_written = 0
        self._chunk_count = 0
        self._last_frame = None
        self._with_audio = False
        self._last_seen = clock()
        self._lock = threading.Lock()
        # Serializes state changes between the page and the idle watcher
        self._control = threading.RLock()
        self._stop_event = threading.Event()
        self._paused = threading.Event()
        self._thread: threading.Thread | None = None
        self._watch_stop = threading.Event()

        install_cleanup_hooks()

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc, tb):
        self.release()

    # --- device ---
    @property
    def is_camera_on(self) -> bool:
        return self.state != RecorderState.IDLE

    def _try_open(self, index: int):
        capture = self.capture_factory(index)
        if capture is not None and capture.isOpened():
            return capture
        if capture is not None:
            capture.release()
        return None

    def start_camera(self):
        with self._control:
            if self.is_camera_on:
                return
            self.error = None

            preferred = self.devices[self.facing_mode]
            capture = self._try_open(preferred)
            if capture is None and preferred != 0:
                logger.info(f"Camera {preferred} unavailable, falling back to the default device")
                capture = self._try_open(0)
            if capture is None:
                raise RecorderError(NO_CAMERA)

            capture.set(cv2.CAP_PROP_FRAME_WIDTH, IDEAL_WIDTH)
            capture.set(cv2.CAP_PROP_FRAME_HEIGHT, IDEAL_HEIGHT)
            self._fps = capture.get(cv2.CAP_PROP_FPS) or DEFAULT_FPS

            self._capture = capture
            self.state = RecorderState.CAPTURING
            _live_recorders.add(self)
            self.touch()
            self._start_watcher()
            logger.info(f"Camera started ({self.facing_mode} @ {self._fps:g} fps)")

    def stop_camera(self):
        self.release()

    def switch_camera(self):
        """Toggles between the rear and front camera, reopening the device if it was on"""
        with self._control:
            was_on = self.is_camera_on
            if was_on:
                self.release()
            self.facing_mode = "user" if self.facing_mode == "environment" else "environment"
            if was_on:
                self.start_camera()

    def snapshot(self):
        """Latest frame for a preview, or None"""
        if self.state in (RecorderState.RECORDING, RecorderState.PAUSED):
            with self._lock:
                return self._last_frame
        if self._capture is None:
            return None
        ok, frame = self._capture.read()
        return frame if ok else None

    # --- page heartbeat ---
    def touch(self):
        """Called by the page while it is open"""
        self._last_seen = self.clock()

    @property
    def is_stale(self) -> bool:
        return bool(self.idle_timeout) and self.is_camera_on and self.clock() - self._last_seen > self.idle_timeout

    def check_idle(self) -> bool:
        """Releases the device when the page has gone quiet; True if it did"""
        with self._control:
            if not self.is_stale:
                return False
            logger.warning(f"No heartbeat for {self.idle_timeout:g}s, releasing the camera")
            self.suspend()
            self.error = PAGE_CLOSED
            return True

    def _start_watcher(self):
        if not self.idle_timeout or self.watch_interval <= 0:
            return
        # Each watcher owns its stop event so a stale one cannot outlive release()
        self._watch_stop = threading.Event()
        threading.Thread(target=self._watch, args=(self._watch_stop,),
                         name="roomreport-recorder-watch", daemon=True).start()

    def _watch(self, stop: threading.Event):
        while not stop.wait(self.watch_interval):
            self.check_idle()

    # --- recording ---
    @property
    def recording_time(self) -> float:
        """Seconds of video written so far; paused time is not counted"""
        return self._frames_written / self._fps if self._fps else 0.0

    def _negotiate_writer(self):
        stamp = datetime.now().strftime("%Y%m%d_%H%M%S")
        for mime_type, ext, fourcc in MIME_TYPE_PREFERENCES:
            path = os.path.join(self.output_dir, f"recording_{stamp}{ext}")
            writer = self.writer_factory(path, fourcc, self._fps, self._size)
            if writer is not None and writer.isOpened():
                logger.info(f"Supported MIME type: {mime_type}")
                return writer, path, mime_type
            if writer is not None:
                writer.release()
            if os.path.exists(path):
                os.remove(path)
        return None, None, None

    def start_recording(self):
        with self._control:
            if self._capture is None:
                raise RecorderError(CAMERA_NOT_STARTED)
            if self.state in (RecorderState.RECORDING, RecorderState.PAUSED):
                return

            self.error = None
            self.discard()

            # The writer is sized from a real frame; drivers may ignore the requested resolution
            ok, first_frame = self._capture.read()
            if not ok or first_frame is None:
                raise RecorderError(CAMERA_LOST)
            height, width = first_frame.shape[:2]
            self._size = (width, height)

            writer, path, mime_type = self._negotiate_writer()
            if writer is None:
                raise RecorderError(NO_SUPPORTED_FORMAT)

            self._writer, self._path, self.mime_type = writer, path, mime_type
            self._frames_written = 0
            self._chunk_count = 0
            self._stop_event.clear()
            self._paused.clear()
            self.state = RecorderState.RECORDING

            self._with_audio = self.audio is not None
            self._start_audio_segment()

            self._thread = threading.Thread(target=self._capture_loop, args=(first_frame,),
                                            name="roomreport-recorder", daemon=True)
            self._thread.start()

    def _capture_loop(self, frame):
        frames_per_chunk = max(1, round(self._fps * self.timeslice))
        chunk = []
        while True:
            with self._lock:
                self._last_frame = frame
            if not self._paused.is_set():
                chunk.append(frame)
                if len(chunk) >= frames_per_chunk:
                    self._flush(chunk)
                    chunk = []
            if self._stop_event.is_set():
                break
            ok, frame = self._capture.read()
            if not ok:
                self.error = CAMERA_LOST
                logger.warning("Capture device returned no frame, ending recording loop")
                break
        if chunk:
            self._flush(chunk)

    def _flush(self, frames):
        for frame in frames:
            self._writer.write(frame)
        self._frames_written += len(frames)
        self._chunk_count += 1

    # --- audio ---
    def _start_audio_segment(self):
        if not self._with_audio:
            return
        root = os.path.splitext(self._path)[0]
        try:
            self.audio.start_segment(f"{root}_audio{len(self.audio.segments)}.wav")
        except AudioError as e:
            logger.warning(f"Recording without audio: {e}")
            self._with_audio = False
            self.audio.discard()

    def _mux_audio(self) -> bool:
        if not self._with_audio:
            return False
        root, ext = os.path.splitext(self._path)
        muxed = f"{root}_av{ext}"
        try:
            if not self.audio.mux(self._path, muxed):
                return False
            os.replace(muxed, self._path)
            return True
        finally:
            self.audio.discard()
            if os.path.exists(muxed):
                os.remove(muxed)

    def pause(self):
        with self._control:
            if self.state == RecorderState.RECORDING:
                self._paused.set()
                self.state = RecorderState.PAUSED
                if self._with_audio:
                    self.audio.stop_segment()

    def resume(self):
        with self._control:
            if self.state == RecorderState.PAUSED:
                self._start_audio_segment()
                self._paused.clear()
                self.state = RecorderState.RECORDING

    def toggle_pause(self):
        if self.state == RecorderState.RECORDING:
            self.pause()
        elif self.state == RecorderState.PAUSED:
            self.resume()

    def _finish_writer(self) -> Recording | None:
        self._stop_event.set()
        if self._thread is not None and self._thread is not threading.current_thread():
            self._thread.join()
        self._thread = None
        if self._writer is None:
            return None
        self._writer.release()
        self._writer = None
        has_audio = self._mux_audio()
        self._with_audio = False
        return Recording(
            path=self._path,
            mime_type=self.mime_type,
            duration=self.recording_time,
            chunk_count=self._chunk_count,
            has_audio=has_audio,
        )

    def stop_recording(self) -> Recording | None:
        with self._control:
            if self.state not in (RecorderState.RECORDING, RecorderState.PAUSED):
                return self.recording
            self.recording = self._finish_writer()
            self._paused.clear()
            self.state = RecorderState.CAPTURING
            logger.info(f"Recording stopped after {self.recording_time:.1f}s in {self._chunk_count} chunks")
            return self.recording

    def discard(self):
        """Deletes the finished recording, if any"""
        if self.recording and os.path.exists(self.recording.path):
            os.remove(self.recording.path)
        self.recording = None

    # --- cleanup ---
    def release(self):
        """
        Stops any recording and frees the device and the writer.
        Safe to call any number of times; a finished recording is kept.
        """
        with self._control:
            self._watch_stop.set()
            if self.state in (RecorderState.RECORDING, RecorderState.PAUSED):
                self.recording = self._finish_writer()
                self._paused.clear()
            if self._capture is not None:
                self._capture.release()
                self._capture = None
                logger.info("Camera released")
            self.state = RecorderState.IDLE
            _live_recorders.discard(self)

    def suspend(self):
        """Called when the page is hidden: stop recording and give the camera back"""
        self.release()

    def reset(self):
        self.release()
        self.discard()
        self._frames_written = 0
        self._chunk_count = 0


class RecorderView:
    """
    The record-and-upload screen: room selection, recorder controls and the
    upload with progress. Failures end up in `error`.
    """

    def __init__(self, api: ApiClient, recorder: VideoRecorder | None = None):
        self.api = api
        self.recorder = recorder or VideoRecorder()
        self.rooms: list[dict] = []
        self.selected_room = ""
        self.error: str | None = None
        self.message: str | None = None
        self.is_uploading = False
        self.upload_progress = 0.0

    def load_rooms(self):
        try:
            self.rooms = self.api.list_rooms()
        except ApiError as e:
            logger.error(f"Failed to load rooms: {e.message}")

    def _run(self, action):
        self.error = None
        try:
            return action()
        except RecorderError as e:
            self.error = str(e)
            return None

    def start_camera(self):
        self._run(self.recorder.start_camera)

    def switch_camera(self):
        self._run(self.recorder.switch_camera)

    def start_recording(self):
        self.message = None
        self._run(self.recorder.start_recording)

    def toggle_pause(self):
        self.recorder.toggle_pause()

    def stop_recording(self):
        self.recorder.stop_recording()
        if self.recorder.error:
            self.error = self.recorder.error

    def _on_progress(self, sent: int, total: int):
        if total:
            self.upload_progress = sent / total * 100

    def upload(self, room_number: str | None = None, progress=None) -> bool:
        if room_number is not None:
            self.selected_room = room_number
        if not self.selected_room:
            self.error = "Please select a room before uploading."
            return False
        recording = self.recorder.recording
        if recording is None or not os.path.exists(recording.path):
            self.error = "No video recorded. Please record a video first."
            return False

        def report(sent, total):
            self._on_progress(sent, total)
            if progress is not None:
                progress(self.upload_progress)

        self.is_uploading = True
        self.upload_progress = 0.0
        self.error = None
        try:
            self.api.upload_video(recording.path, self.selected_room, progress=report,
                                  content_type=recording.mime_type.split(";")[0])
        except ApiError as e:
            self.error = e.message or "Upload failed. Please try again."
            self.upload_progress = 0.0
            return False
        finally:
            self.is_uploading = False

        # Start over after a successful upload
        self.recorder.reset()
        self.selected_room = ""
        self.upload_progress = 0.0
        self.message = "Video uploaded successfully"
        return True

    def close(self):
        self.recorder.release()
