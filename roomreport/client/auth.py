# roomreport/client/auth.py

import json
import logging
import os
import re
import secrets

from roomreport.client.api_client import ApiClient

logger = logging.getLogger(__name__)

BROWSER_ID_PATTERN = re.compile(r"^[A-Za-z0-9_-]{16,128}$")


def new_browser_id() -> str:
    return secrets.token_urlsafe(24)


def is_valid_browser_id(value) -> bool:
    return isinstance(value, str) and bool(BROWSER_ID_PATTERN.match(value))


class SessionStore:
    """
    Keeps the token and user between runs in a small JSON file,
    the way a browser app keeps them in local storage. Each browser gets
    its own file (see for_browser) so sessions are never shared.
    """

    def __init__(self, path: str):
        self.path = os.path.expanduser(path)

    @classmethod
    def for_browser(cls, directory: str, browser_id: str) -> "SessionStore":
        if not is_valid_browser_id(browser_id):
            raise ValueError("invalid browser id")
        return cls(os.path.join(os.path.expanduser(directory), f"{browser_id}.json"))

    def load(self) -> tuple[str, dict] | None:
        if not os.path.exists(self.path):
            return None
        try:
            with open(self.path, encoding="utf-8") as f:
                data = json.load(f)
            # A token saved without its user is not enough to restore a session
            if data.get("user") is None:
                return None
            token, user = data["token"], data["user"]
            if not isinstance(token, str) or not isinstance(user, dict):
                raise ValueError("unexpected session layout")
        except (OSError, ValueError, KeyError, TypeError, AttributeError) as e:
            logger.error(f"Error parsing stored session data: {e}")
            self.clear()
            return None
        return token, user

    def save(self, token: str, user: dict | None):
        directory = os.path.dirname(self.path)
        if directory:
            os.makedirs(directory, exist_ok=True)
        # The file holds a bearer token, so only the owner may read it
        fd = os.open(self.path, os.O_WRONLY | os.O_CREAT | os.O_TRUNC, 0o600)
        with open(fd, "w", encoding="utf-8") as f:
            json.dump({"token": token, "user": user}, f)

    def clear(self):
        try:
            os.remove(self.path)
        except FileNotFoundError:
            pass


class AuthContext:
    """
    The logged-in user and token, shared by every view.
    """

    def __init__(self, api: ApiClient, store: SessionStore):
        self.api = api
        self.store = store
        self.user: dict | None = None
        self.token: str | None = None

    @property
    def is_authenticated(self) -> bool:
        return self.token is not None

    @property
    def role(self) -> str | None:
        return self.user.get("role") if self.user else None

    def _apply(self, token: str | None, user: dict | None):
        self.token = token
        self.user = user
        self.api.token = token

    def restore(self) -> bool:
        """Picks up a session saved by an earlier run"""
        stored = self.store.load()
        if stored is None:
            return False
        self._apply(*stored)
        return True

    def login(self, username: str, password: str):
        # ApiError propagates to the login form
        data = self.api.login(username, password)
        self._apply(data["token"], data["user"])
        self.store.save(data["token"], data["user"])
        logger.info(f"Logged in as {username}")

    def login_with_token(self, token: str, user: dict | None = None):
        if user is None:
            user = self.user
        self._apply(token, user)
        self.store.save(token, user)

    def logout(self):
        self._apply(None, None)
        self.store.clear()
