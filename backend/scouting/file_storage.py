"""
File storage layer: keeps uploaded spreadsheets on local disk.
Files are stored under  {upload_dir}/{team_id}/{file_key}/{filename}
and referenced by that relative path from the file record.
"""

import logging
import shutil
from pathlib import Path
from typing import Optional

from scouting.errors import IngestionError

logger = logging.getLogger(__name__)


class FileStorage:
    def __init__(self, root: Path):
        self.root = Path(root)
        self.root.mkdir(parents=True, exist_ok=True)

    def _resolve(self, storage_path: str) -> Path:
        path = (self.root / storage_path).resolve()
        if self.root.resolve() not in path.parents:
            raise IngestionError(f"Storage path escapes upload directory: {storage_path}")
        return path

    def save(self, team_id: str, file_key: str, filename: str, content: bytes) -> str:
        """Save an uploaded file and return its storage path (relative to root)."""
        safe_name = Path(filename).name or "upload"
        storage_path = f"{team_id}/{file_key}/{safe_name}"
        dest_path = self._resolve(storage_path)
        dest_path.parent.mkdir(parents=True, exist_ok=True)
        dest_path.write_bytes(content)
        logger.info(f"Stored file → {dest_path}  ({len(content)} bytes)")
        return storage_path

    def read(self, storage_path: str) -> bytes:
        """Return the stored bytes; a missing file is a fatal ingestion error."""
        path = self._resolve(storage_path)
        try:
            return path.read_bytes()
        except OSError as e:
            raise IngestionError(f"Failed to download file: {e}") from e

    def get_file_path(self, storage_path: str) -> Optional[Path]:
        """Return the path to a previously-saved file, or None."""
        p = self._resolve(storage_path)
        return p if p.exists() else None

    def delete(self, storage_path: str) -> bool:
        """Remove a stored file's directory (used when record creation fails)."""
        p = self._resolve(storage_path).parent
        if not p.is_dir():
            return False
        shutil.rmtree(p)
        return True
