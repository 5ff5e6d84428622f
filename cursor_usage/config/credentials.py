"""
Credential storage.

Keeps the session cookie in a user-only JSON file. The environment
variable CURSOR_SESSION_TOKEN takes precedence over the stored value.
"""

import json
import logging
import os
from pathlib import Path
from typing import Dict, Optional

logger = logging.getLogger(__name__)

COOKIE_NAME = "cursor.cookie"
COOKIE_ENV_VAR = "CURSOR_SESSION_TOKEN"
DEFAULT_CREDENTIALS_PATH = "~/.cursor-usage/credentials.json"

_ENV_OVERRIDES = {COOKIE_NAME: COOKIE_ENV_VAR}


class CredentialStore:
    """File-backed secret store, read-only from the core's perspective."""

    def __init__(self, path: str = DEFAULT_CREDENTIALS_PATH):
        self.path = Path(path).expanduser()

    def _load(self) -> Dict[str, str]:
        if not self.path.exists():
            return {}
        try:
            data = json.loads(self.path.read_text(encoding="utf-8"))
        except (OSError, json.JSONDecodeError) as e:
            logger.warning(f"Could not read credential file {self.path}: {e}")
            return {}
        if not isinstance(data, dict):
            return {}
        return {k: v for k, v in data.items() if isinstance(v, str)}

    def _save(self, data: Dict[str, str]) -> None:
        self.path.parent.mkdir(parents=True, exist_ok=True)
        fd = os.open(str(self.path), os.O_WRONLY | os.O_CREAT | os.O_TRUNC, 0o600)
        with os.fdopen(fd, "w", encoding="utf-8") as f:
            json.dump(data, f)
        os.chmod(self.path, 0o600)

    def get(self, name: str) -> Optional[str]:
        """Return a secret, or None if it is not set."""
        env_var = _ENV_OVERRIDES.get(name)
        if env_var:
            env_value = os.environ.get(env_var, "").strip()
            if env_value:
                return env_value
        value = self._load().get(name, "").strip()
        return value or None

    def store(self, name: str, value: str) -> None:
        """Store a secret.

        Raises:
            ValueError: If value is missing/empty
        """
        if not value or not value.strip():
            raise ValueError("credential value is required and cannot be empty")
        data = self._load()
        data[name] = value.strip()
        self._save(data)

    def delete(self, name: str) -> None:
        """Remove a secret; removing an absent secret is a no-op."""
        data = self._load()
        if data.pop(name, None) is not None:
            self._save(data)
