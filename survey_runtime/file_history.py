"""
File History Backend — external JSON file.

Layout inside the data directory:
  draw_history.json   current list (newest first)
  draw_history.bak    previous version, replaced on every write

Writes go to a temp file first and are moved into place with an atomic
rename, so a crash never leaves a half-written history file.
"""

from __future__ import annotations

import json
import os
import shutil
from pathlib import Path
from typing import List

HISTORY_FILE_NAME = "draw_history.json"
BACKUP_FILE_NAME = "draw_history.bak"
_TEMP_FILE_NAME = "draw_history.json.tmp"


class HistoryFormatError(Exception):
    """Raised when the history file does not hold a JSON list."""

    def __init__(self, path: Path, detail: str) -> None:
        self.path = path
        self.detail = detail
        super().__init__(f"Invalid history file {str(path)!r}: {detail}")


class FileHistoryBackend:
    """Primary history backend over a JSON file."""

    def __init__(self, directory: str | Path) -> None:
        self._dir = Path(directory)
        self._prepare_dir()

    @property
    def path(self) -> Path:
        return self._dir / HISTORY_FILE_NAME

    @property
    def backup_path(self) -> Path:
        return self._dir / BACKUP_FILE_NAME

    def _prepare_dir(self) -> None:
        self._dir.mkdir(parents=True, exist_ok=True)
        if not self.path.exists():
            self.path.write_text("[]", encoding="utf-8")

    # ------------------------------------------------------------------
    # Read
    # ------------------------------------------------------------------

    def load_all(self) -> List[dict]:
        try:
            text = self.path.read_text(encoding="utf-8")
        except FileNotFoundError:
            return []
        if not text.strip():
            return []
        try:
            data = json.loads(text)
        except json.JSONDecodeError as exc:
            raise HistoryFormatError(self.path, f"not valid JSON ({exc.msg})") from exc
        if not isinstance(data, list):
            raise HistoryFormatError(self.path, "top-level value must be a list")
        return data

    # ------------------------------------------------------------------
    # Write
    # ------------------------------------------------------------------

    def replace_all(self, records: List[dict]) -> None:
        self._dir.mkdir(parents=True, exist_ok=True)
        temp_path = self._dir / _TEMP_FILE_NAME
        with open(temp_path, "w", encoding="utf-8") as fh:
            json.dump(records, fh, ensure_ascii=False, indent=2)
            fh.flush()
            os.fsync(fh.fileno())

        if self.path.exists():
            shutil.copyfile(self.path, self.backup_path)
        os.replace(temp_path, self.path)

    def close(self) -> None:
        """Nothing held open between calls."""
