# roomreport/client/config.py

from functools import lru_cache
from urllib.parse import urlparse

from pydantic_settings import BaseSettings, SettingsConfigDict

BACKEND_PORT = 8080


class ClientSettings(BaseSettings):
    """Settings for the Streamlit client and the API client"""
    API_BASE_URL: str | None = None
    SESSION_DIR: str = "~/.roomreport/sessions"
    REQUEST_TIMEOUT: float = 30.0
    UPLOAD_CHUNK_SIZE: int = 64 * 1024
    # Seconds without a page heartbeat before the camera is released
    RECORDER_IDLE_TIMEOUT: float = 30.0
    RECORD_AUDIO: bool = True
    AUDIO_INPUT_FORMAT: str | None = None
    AUDIO_DEVICE: str | None = None

    model_config = SettingsConfigDict(
        env_prefix="ROOMREPORT_",
        env_file=".env",
        env_file_encoding='utf-8',
        extra="ignore",
    )


def resolve_api_url(page_url: str | None = None) -> str:
    """
    Works out where the backend lives from the address the UI was opened on,
    so the same build works on localhost and from other devices on the network.
    """
    if not page_url:
        return f"http://localhost:{BACKEND_PORT}"

    parsed = urlparse(page_url)
    hostname = parsed.hostname or "localhost"

    # If the page is HTTPS the backend must be HTTPS too
    if parsed.scheme == "https":
        return f"https://{hostname}:{BACKEND_PORT}"
    if hostname in ("localhost", "127.0.0.1"):
        return f"http://localhost:{BACKEND_PORT}"
    return f"http://{hostname}:{BACKEND_PORT}"


@lru_cache()
def get_client_settings():
    return ClientSettings()
