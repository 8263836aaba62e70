import logging
from dataclasses import asdict, replace
from pathlib import Path
from typing import Any, Dict

from release_manager.domain.settings import Settings
from release_manager.observability.structured_log import log_event
from release_manager.persistence.option_store import OptionStore
from release_manager.services.artifact_store import ArtifactStore
from release_manager.util import strip_control_chars

logger = logging.getLogger(__name__)

OPTION_SETTINGS = "release_manager_settings"


class SettingsStore:
    def __init__(self, option_store: OptionStore):
        self._options = option_store

    def load(self) -> Settings:
        raw = self._options.get(OPTION_SETTINGS, {})
        data: Dict[str, Any] = raw if isinstance(raw, dict) else {}
        return Settings(
            auth_token=str(data.get("auth_token") or ""),
            storage_path=str(data.get("storage_path") or ""),
        )

    def get(self, name: str) -> str:
        return str(getattr(self.load(), name, "") or "")

    def save(self, settings: Settings) -> Settings:
        self._options.set(OPTION_SETTINGS, asdict(settings))
        return settings

    def update(self, **changes: str) -> Settings:
        return self.save(replace(self.load(), **changes))


def apply_settings_update(
    store: SettingsStore,
    upload_root: Path,
    auth_token: str = "",
    storage_path: str = "",
) -> Settings:
    """Save submitted settings; blank inputs keep the current value.

    A changed storage path moves the previous directory when it exists and
    otherwise creates the new one. ``StorageError`` aborts the save.
    """
    current = store.load()
    token = strip_control_chars(auth_token)
    path = strip_control_chars(storage_path).strip("/")
    updated = current
    if token:
        updated = replace(updated, auth_token=token)
    if path:
        ArtifactStore(upload_root=upload_root, storage_path=path).ensure_directory(
            previous_storage_path=current.storage_path
        )
        updated = replace(updated, storage_path=path)
    if updated == current:
        return current
    store.save(updated)
    log_event(
        logger,
        "settings.saved",
        token_changed=updated.auth_token != current.auth_token,
        storage_path=updated.storage_path,
        previous_storage_path=current.storage_path,
    )
    return updated
