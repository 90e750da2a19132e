"""User accounts kept in a JSON file."""

from __future__ import annotations

import hmac
import json
import logging
from pathlib import Path

from linkpub.config import Theme
from linkpub.models import SessionUser

logger = logging.getLogger(__name__)


class UserNotFoundError(LookupError):
    """Raised when a user id is not present in the users file."""


class UserStore:
    """Reads and updates ``{"users": [...]}`` records in a JSON file."""

    def __init__(self, path: Path) -> None:
        self.path = path

    def _load(self) -> dict:
        try:
            data = json.loads(self.path.read_text(encoding="utf-8"))
        except (OSError, ValueError) as exc:
            logger.error("Error loading users from %s: %s", self.path, exc)
            return {"users": []}
        if not isinstance(data, dict) or not isinstance(data.get("users"), list):
            return {"users": []}
        return data

    def _save(self, data: dict) -> None:
        self.path.parent.mkdir(parents=True, exist_ok=True)
        self.path.write_text(json.dumps(data, indent=2), encoding="utf-8")

    def authenticate(self, username: str, password: str) -> SessionUser | None:
        """Return the session view of the matching user, or None."""

        for user in self._load()["users"]:
            if user.get("username") != username:
                continue
            stored = str(user.get("password", "")).encode("utf-8")
            if not hmac.compare_digest(stored, password.encode("utf-8")):
                return None
            return SessionUser(
                id=str(user["id"]),
                username=user["username"],
                theme=user.get("theme") or Theme.LIGHT,
                preferences=user.get("preferences") or {},
            )
        return None

    def update_theme(self, user_id: str, theme: Theme | str) -> Theme:
        theme = Theme(theme)
        data = self._load()
        for user in data["users"]:
            if str(user.get("id")) == user_id:
                user["theme"] = theme.value
                self._save(data)
                return theme
        raise UserNotFoundError(f"User not found: {user_id}")
