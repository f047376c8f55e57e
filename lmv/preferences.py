"""Durable per-directory preferences (last opened document)."""
from __future__ import annotations

import json
import logging
from pathlib import Path
from typing import Optional

from platformdirs import user_data_dir

from lmv import config

logger = logging.getLogger("lmv.preferences")


def default_state_dir() -> Path:
    if config.STATE_DIR is not None:
        return config.STATE_DIR
    return Path(user_data_dir("lmv", appauthor=False))


class PreferenceStore:
    """Remembers the last opened relative path for each working directory.

    Stored as ``state.json``: ``{"lastDocument": {"<cwd>": "<relative path>"}}``.
    """

    def __init__(self, state_dir: Optional[Path] = None):
        self.state_dir = state_dir if state_dir is not None else default_state_dir()

    @property
    def state_path(self) -> Path:
        return self.state_dir / "state.json"

    def _load(self) -> dict:
        if not self.state_path.exists():
            return {"lastDocument": {}}
        try:
            content = self.state_path.read_text(encoding="utf-8")
            data = json.loads(content) if content.strip() else {}
        except (OSError, ValueError) as e:
            logger.error(f"Failed to load preferences file: {e}")
            return {"lastDocument": {}}
        if not isinstance(data, dict) or not isinstance(data.get("lastDocument"), dict):
            return {"lastDocument": {}}
        return data

    def _save(self, data: dict) -> None:
        self.state_dir.mkdir(parents=True, exist_ok=True)
        self.state_path.write_text(json.dumps(data, indent="\t") + "\n", encoding="utf-8")

    def get_last_document(self, cwd: Path) -> Optional[str]:
        value = self._load()["lastDocument"].get(str(cwd))
        return value if isinstance(value, str) and value else None

    def set_last_document(self, cwd: Path, rel_path: str) -> None:
        data = self._load()
        data["lastDocument"][str(cwd)] = rel_path
        self._save(data)
