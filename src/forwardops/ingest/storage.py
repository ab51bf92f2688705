"""Raw upload file store.

Uploaded files are kept under ``storage.upload_dir`` at
``{owner}/{timestamp_ms}-{sanitized_name}`` so the admin "re-analyze" action
can re-extract text. Global knowledge-base documents live under ``global/``.
"""

from __future__ import annotations

import re
import time
from pathlib import Path

import structlog

from forwardops.errors import ValidationError

logger = structlog.get_logger(logger_name=__name__)

_UNSAFE_CHARS = re.compile(r"[^a-zA-Z0-9.\-]")
_GLOBAL_DIR = "global"


def sanitize_file_name(file_name: str) -> str:
    """Replace unsafe characters with ``_``, collapse runs, lowercase.

    Example:
        "My C&P Exam (2023).pdf" -> "my_c_p_exam_2023_.pdf"
    """
    cleaned = _UNSAFE_CHARS.sub("_", Path(file_name).name)
    cleaned = re.sub(r"_+", "_", cleaned).lower()
    return cleaned or "upload"


class FileStore:
    """Directory-backed store for raw uploaded files."""

    def __init__(self, root: Path | str) -> None:
        self.root = Path(root)

    def save(self, owner_id: str | None, file_name: str, data: bytes) -> str:
        """Write *data* and return its path relative to the store root."""
        owner_dir = _GLOBAL_DIR if owner_id is None else sanitize_file_name(owner_id)
        rel = f"{owner_dir}/{int(time.time() * 1000)}-{sanitize_file_name(file_name)}"
        target = self._resolve(rel)
        target.parent.mkdir(parents=True, exist_ok=True)
        target.write_bytes(data)
        logger.debug("Upload stored", path=rel, bytes=len(data))
        return rel

    def read(self, rel_path: str) -> bytes:
        target = self._resolve(rel_path)
        if not target.is_file():
            raise ValidationError(f"Stored file '{rel_path}' is missing")
        return target.read_bytes()

    def exists(self, rel_path: str) -> bool:
        return self._resolve(rel_path).is_file()

    def remove(self, rel_path: str | None) -> bool:
        """Delete a stored file. Returns False if there was nothing to delete."""
        if not rel_path:
            return False
        target = self._resolve(rel_path)
        if not target.exists():
            return False
        target.unlink()
        logger.debug("Upload removed", path=rel_path)
        return True

    def _resolve(self, rel_path: str) -> Path:
        root = self.root.resolve()
        target = (root / rel_path).resolve()
        if root not in target.parents:
            raise ValidationError(f"Path escapes the upload directory: '{rel_path}'")
        return target
