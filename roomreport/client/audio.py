# roomreport/client/audio.py

import logging
import os
import platform
import subprocess

logger = logging.getLogger(__name__)

# Audio codec per container when the microphone track is muxed into the video
AUDIO_CODECS = {
    ".webm": "libopus",
    ".mp4": "aac",
    ".ogv": "libvorbis",
}


class AudioError(Exception):
    """The microphone could not be opened"""


def default_input() -> tuple[str, str]:
    """ffmpeg input format and device for the platform's default microphone"""
    system = platform.system()
    if system == "Darwin":
        return "avfoundation", ":0"
    if system == "Windows":
        return "dshow", "audio=default"
    return "pulse", "default"


def _concat_line(path: str) -> str:
    escaped = os.path.abspath(path).replace("'", "'\\''")
    return f"file '{escaped}'\n"


class AudioRecorder:
    """
    Records the microphone next to the OpenCV video, one ffmpeg process per
    segment so paused time is left out of the audio as it is of the video.
    mux() joins the segments and copies them into the finished video file.
    """

    def __init__(self, input_format: str | None = None, device: str | None = None, ffmpeg: str = "ffmpeg",
                 popen=subprocess.Popen, run=subprocess.run, stop_timeout: float = 5.0):
        default_format, default_device = default_input()
        self.input_format = input_format or default_format
        self.device = device or default_device
        self.ffmpeg = ffmpeg
        self.popen = popen
        self.run = run
        self.stop_timeout = stop_timeout
        self.segments: list[str] = []
        self._process = None

    @property
    def is_recording(self) -> bool:
        return self._process is not None

    def start_segment(self, path: str):
        if self._process is not None:
            return
        command = [
            self.ffmpeg, "-hide_banner", "-loglevel", "error", "-y",
            "-f", self.input_format, "-i", self.device,
            "-c:a", "pcm_s16le", path,
        ]
        try:
            self._process = self.popen(command, stdin=subprocess.PIPE,
                                       stdout=subprocess.DEVNULL, stderr=subprocess.DEVNULL)
        except OSError as e:
            raise AudioError(f"Could not start audio capture: {e}") from e
        self.segments.append(path)

    def stop_segment(self):
        process, self._process = self._process, None
        if process is None:
            return
        # "q" on stdin makes ffmpeg finish the file cleanly
        try:
            process.communicate(b"q", timeout=self.stop_timeout)
        except subprocess.TimeoutExpired:
            logger.warning("Audio capture did not stop in time, killing it")
            process.kill()
            process.communicate()

    def mux(self, video_path: str, output_path: str) -> bool:
        """
        Writes video_path's video plus the recorded audio to output_path.
        Returns False, leaving the video untouched, when there is nothing
        to add or ffmpeg fails.
        """
        self.stop_segment()
        segments = [path for path in self.segments if os.path.exists(path) and os.path.getsize(path) > 0]
        if not segments:
            return False

        command = [self.ffmpeg, "-hide_banner", "-loglevel", "error", "-y", "-i", video_path]
        list_path = None
        if len(segments) == 1:
            command += ["-i", segments[0]]
        else:
            list_path = os.path.splitext(output_path)[0] + "_segments.txt"
            with open(list_path, "w", encoding="utf-8") as f:
                f.writelines(_concat_line(path) for path in segments)
            command += ["-f", "concat", "-safe", "0", "-i", list_path]

        codec = AUDIO_CODECS.get(os.path.splitext(video_path)[1].lower(), "aac")
        command += ["-map", "0:v:0", "-map", "1:a:0", "-c:v", "copy", "-c:a", codec, "-shortest", output_path]

        try:
            self.run(command, check=True, capture_output=True, text=True)
        except (OSError, subprocess.CalledProcessError) as e:
            stderr = getattr(e, "stderr", None) or e
            logger.warning(f"Could not add audio to {os.path.basename(video_path)}: {stderr}")
            return False
        finally:
            if list_path and os.path.exists(list_path):
                os.remove(list_path)
        return True

    def discard(self):
        """Stops capture and deletes every segment"""
        self.stop_segment()
        for path in self.segments:
            if os.path.exists(path):
                os.remove(path)
        self.segments = []
