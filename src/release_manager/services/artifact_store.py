"""Build artifact storage.

Artifacts live in ``upload_root / storage_path``. Files are verified against
the MD5 digest claimed by the uploader before they are moved into place, and
the final rename happens inside the destination directory so a reader never
sees a partially written build.
"""
from __future__ import annotations

import hashlib
import logging
import os
import shutil
import tempfile
from pathlib import Path
from typing import Optional

from release_manager.domain.errors import IntegrityError, StorageError

logger = logging.getLogger(__name__)

CHECKSUM_ALGORITHM = "md5"


def checksum_of_file(path: Path) -> str:
    h = hashlib.new(CHECKSUM_ALGORITHM)
    with Path(path).open("rb") as fh:
        for chunk in iter(lambda: fh.read(65536), b""):
            h.update(chunk)
    return h.hexdigest()


def _safe_filename(name: str) -> str:
    base = os.path.basename(str(name or "").replace("\\", "/")).strip()
    if base in {"", ".", ".."}:
        return ""
    return base


class ArtifactStore:
    """Store release builds under ``upload_root / storage_path``.

    Usage::

        store = ArtifactStore(upload_root=Path("/srv/uploads"), storage_path="releases")
        store.ensure_directory()
        name = store.store(Path("/tmp/upload-123"), "gravityview-2.9.zip", md5_hex)
        store.resolve(name)  # -> /srv/uploads/releases/gravityview-2.9.zip
    """

    def __init__(self, upload_root: Path, storage_path: str) -> None:
        self._root = Path(upload_root).expanduser().resolve()
        self._storage_path = str(storage_path or "").strip().strip("/")

    @property
    def upload_root(self) -> Path:
        return self._root

    @property
    def storage_path(self) -> str:
        return self._storage_path

    @property
    def directory(self) -> Path:
        return self._within_root(self._storage_path)

    def ensure_directory(self, previous_storage_path: str = "") -> Path:
        """Create the storage directory, moving ``previous_storage_path`` there if it exists."""
        target = self.directory
        previous = str(previous_storage_path or "").strip().strip("/")
        if previous and previous != self._storage_path:
            source = self._within_root(previous)
            if source.is_dir():
                if target.exists():
                    raise StorageError(f"could not move {source} to {target}: destination exists")
                try:
                    target.parent.mkdir(parents=True, exist_ok=True)
                    source.rename(target)
                except OSError as exc:
                    raise StorageError(f"could not move {source} to {target}: {exc}") from exc
                logger.info("Moved storage directory %s -> %s", source, target)
                return target
        if target.is_dir():
            return target
        try:
            target.mkdir(parents=True, exist_ok=True)
        except OSError as exc:
            raise StorageError(f"could not create an upload folder {target}: {exc}") from exc
        return target

    def store(self, temp_location: Path, declared_filename: str, expected_checksum: str) -> str:
        """Verify ``temp_location`` against ``expected_checksum`` and move it into place.

        Returns the filename now resolvable under the storage directory. An
        existing file with the same name is replaced.
        """
        filename = _safe_filename(declared_filename)
        if not filename:
            raise StorageError(f"invalid build file name: {declared_filename!r}")
        source = Path(temp_location)
        try:
            actual = checksum_of_file(source)
        except OSError as exc:
            raise StorageError(f"could not read uploaded build: {exc}") from exc
        expected = str(expected_checksum or "").strip().lower()
        if not expected or actual != expected:
            raise IntegrityError("build does not exist or failed hash validation")

        directory = self.ensure_directory()
        staged: Optional[Path] = None
        try:
            with source.open("rb") as src, tempfile.NamedTemporaryFile(
                mode="wb",
                dir=str(directory),
                prefix=".upload_",
                suffix=".tmp",
                delete=False,
            ) as dst:
                staged = Path(dst.name)
                shutil.copyfileobj(src, dst, 65536)
            os.replace(staged, directory / filename)
        except OSError as exc:
            if staged is not None and staged.exists():
                staged.unlink()
            raise StorageError(f"could not save build file in {directory}: {exc}") from exc
        logger.info("Stored build %s (%s=%s) in %s", filename, CHECKSUM_ALGORITHM, actual, directory)
        return filename

    def resolve(self, filename: str) -> Optional[Path]:
        name = _safe_filename(filename)
        if not name or name != filename or not self._storage_path:
            return None
        try:
            path = self.directory / name
        except StorageError:
            return None
        return path if path.is_file() else None

    def _within_root(self, relative: str) -> Path:
        if not relative:
            raise StorageError("storage path is not configured")
        candidate = (self._root / relative).resolve()
        if candidate == self._root or self._root not in candidate.parents:
            raise StorageError(f"storage path '{relative}' resolves outside the upload root {self._root}")
        return candidate
