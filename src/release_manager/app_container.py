import logging
import secrets
from dataclasses import dataclass

from release_manager.config import Config
from release_manager.persistence.option_store import OptionStore, SqliteOptionStore
from release_manager.services.nonce import NonceIssuer
from release_manager.services.release_repository import ReleaseRepository
from release_manager.services.release_service import ReleaseService
from release_manager.services.settings import SettingsStore

logger = logging.getLogger(__name__)

OPTION_NONCE_SECRET = "release_manager_nonce_secret"


@dataclass
class AppContainer:
    config: Config
    options: OptionStore
    repository: ReleaseRepository
    settings_store: SettingsStore
    nonces: NonceIssuer

    def release_service(self) -> ReleaseService:
        """A service bound to the settings as they are stored right now."""
        return ReleaseService(
            settings=self.settings_store.load(),
            repository=self.repository,
            upload_root=self.config.upload_root,
            settings_store=self.settings_store,
        )


def build_container(config: Config) -> AppContainer:
    options = SqliteOptionStore(db_path=config.db_path)
    config.upload_root.mkdir(parents=True, exist_ok=True)
    logger.info("Release manager state db=%s upload_root=%s", config.db_path, config.upload_root)
    return AppContainer(
        config=config,
        options=options,
        repository=ReleaseRepository(options),
        settings_store=SettingsStore(options),
        nonces=NonceIssuer(_nonce_secret(config, options)),
    )


def _nonce_secret(config: Config, options: OptionStore) -> str:
    if config.nonce_secret:
        return config.nonce_secret
    stored = str(options.get(OPTION_NONCE_SECRET, "") or "")
    if stored:
        return stored
    generated = secrets.token_hex(32)
    options.set(OPTION_NONCE_SECRET, generated)
    return generated
