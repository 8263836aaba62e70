import logging
import secrets
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Dict, Mapping, Optional

from release_manager.domain.errors import RepositoryError, ValidationError
from release_manager.domain.releases import (
    OPTIONAL_VALUE_FIELDS,
    REQUIRED_FIELDS,
    ReleaseRecord,
    UploadedArtifact,
)
from release_manager.domain.settings import Settings
from release_manager.observability.structured_log import log_event
from release_manager.services.artifact_store import ArtifactStore
from release_manager.services.release_repository import ReleaseRepository
from release_manager.services.settings import SettingsStore
from release_manager.util import is_web_url, random_token, strip_control_chars

logger = logging.getLogger(__name__)

GENERATED_STORAGE_PATH_LENGTH = 25
URL_FIELDS = ("gh_commit_url", "ci_job_url")


class ReleaseService:
    """Validate release submissions and persist the build plus its record.

    ``settings`` is the snapshot loaded for the current request. When no
    storage path is configured one is generated and written back through
    ``settings_store`` once the first build has been stored.
    """

    def __init__(
        self,
        settings: Settings,
        repository: ReleaseRepository,
        upload_root: Path,
        settings_store: Optional[SettingsStore] = None,
    ) -> None:
        self._settings = settings
        self._repository = repository
        self._upload_root = Path(upload_root)
        self._settings_store = settings_store

    @property
    def settings(self) -> Settings:
        return self._settings

    def artifact_store(self) -> ArtifactStore:
        return ArtifactStore(upload_root=self._upload_root, storage_path=self._settings.storage_path)

    def check_authorization(self, presented_token: Optional[str]) -> bool:
        expected = self._settings.auth_token or ""
        supplied = str(presented_token or "")
        if not expected or not supplied:
            return False
        return secrets.compare_digest(supplied.encode("utf-8"), expected.encode("utf-8"))

    def list_releases(self):
        return self._repository.list_all()

    def submit(
        self,
        fields: Mapping[str, Any],
        upload: Optional[UploadedArtifact],
        expected_checksum: Optional[str] = None,
    ) -> ReleaseRecord:
        clean = _validated_fields(fields)
        if upload is None:
            raise ValidationError("build_file", "'build_file' upload is missing.")
        checksum = strip_control_chars(expected_checksum) if expected_checksum is not None else clean["build_hash"]

        storage_path = self._settings.storage_path
        generated = not storage_path
        if generated:
            storage_path = random_token(GENERATED_STORAGE_PATH_LENGTH)
        store = ArtifactStore(upload_root=self._upload_root, storage_path=storage_path)
        try:
            build_file = store.store(upload.path, upload.filename, checksum)
        except Exception as exc:
            log_event(
                logger,
                "release.upload_failed",
                level=logging.WARNING,
                plugin_name=clean["plugin_name"],
                plugin_version=clean["plugin_version"],
                error=str(exc),
            )
            raise
        if generated:
            self._persist_storage_path(storage_path)

        record = ReleaseRecord(
            id=self._repository.compute_id(clean["plugin_name"], clean["plugin_version"], clean["gh_commit_tag"]),
            plugin_name=clean["plugin_name"],
            plugin_version=clean["plugin_version"],
            gh_commit_tag=clean["gh_commit_tag"],
            gh_commit_timestamp=clean["gh_commit_timestamp"],
            gh_commit_url=clean["gh_commit_url"],
            ci_job_url=clean["ci_job_url"],
            build_hash=clean["build_hash"],
            build_file=build_file,
        )
        try:
            saved = self._repository.upsert(record)
        except RepositoryError as exc:
            # The stored build is left in place without a record.
            log_event(
                logger,
                "release.orphaned_build",
                level=logging.ERROR,
                release_id=record.id,
                build_file=str(store.directory / build_file),
                error=str(exc),
            )
            raise
        log_event(
            logger,
            "release.saved",
            release_id=saved.id,
            plugin_name=saved.plugin_name,
            plugin_version=saved.plugin_version,
            build_file=saved.build_file,
        )
        return saved

    def _persist_storage_path(self, storage_path: str) -> None:
        self._settings = Settings(auth_token=self._settings.auth_token, storage_path=storage_path)
        if self._settings_store is not None:
            try:
                self._settings_store.update(storage_path=storage_path)
            except Exception as exc:
                raise RepositoryError(f"Failed to save the storage path: {exc}") from exc
        log_event(logger, "settings.storage_path_generated", storage_path=storage_path)


def _validated_fields(fields: Mapping[str, Any]) -> Dict[str, Any]:
    clean: Dict[str, Any] = {}
    for name in REQUIRED_FIELDS:
        if name not in fields or fields[name] is None:
            raise ValidationError(name)
        value = strip_control_chars(fields[name])
        if not value and name not in OPTIONAL_VALUE_FIELDS:
            raise ValidationError(name)
        clean[name] = value
    try:
        clean["gh_commit_timestamp"] = int(clean["gh_commit_timestamp"])
    except ValueError:
        raise ValidationError(
            "gh_commit_timestamp", "'gh_commit_timestamp' must be a unix timestamp in seconds."
        ) from None
    try:
        datetime.fromtimestamp(clean["gh_commit_timestamp"], tz=timezone.utc)
    except (OverflowError, OSError, ValueError):
        raise ValidationError(
            "gh_commit_timestamp", "'gh_commit_timestamp' is out of range."
        ) from None
    for name in URL_FIELDS:
        if clean[name] and not is_web_url(clean[name]):
            raise ValidationError(name, f"'{name}' must be an http or https URL.")
    clean["build_hash"] = clean["build_hash"].lower()
    return clean
