from __future__ import annotations

import logging
import os
from pathlib import Path

logger = logging.getLogger(__name__)


class JsonSnapshotStore:
    """Stores the serialized application snapshot as a single JSON file."""

    def __init__(self, path: str | Path) -> None:
        self.path = Path(path)

    def load(self) -> str | None:
        if not self.path.exists():
            return None
        return self.path.read_text(encoding="utf-8")

    def save(self, data: str) -> None:
        self.path.parent.mkdir(parents=True, exist_ok=True)
        # atomic replace
        tmp_path = self.path.with_suffix(self.path.suffix + ".tmp")
        tmp_path.write_text(data, encoding="utf-8")
        os.replace(tmp_path, self.path)
        logger.debug("Snapshot written to %s", self.path)

    def clear(self) -> None:
        if self.path.exists():
            self.path.unlink()
