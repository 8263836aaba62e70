import os
import sys
from dataclasses import dataclass
from pathlib import Path
from typing import Dict, Optional

from release_manager.domain.releases import DEFAULT_PER_PAGE

UPLOAD_ROOT_KEY = "RELEASE_MANAGER_UPLOAD_ROOT"
DB_PATH_KEY = "RELEASE_MANAGER_DB_PATH"
PAGE_SIZE_KEY = "RELEASE_MANAGER_PAGE_SIZE"
NONCE_SECRET_KEY = "RELEASE_MANAGER_NONCE_SECRET"
UI_SECRET_KEY = "RELEASE_MANAGER_UI_SECRET"

DEFAULT_CONFIG_DIR = Path.home() / ".config" / "release-manager"


@dataclass(frozen=True)
class Config:
    config_dir: Path
    upload_root: Path
    db_path: Path
    page_size: int = DEFAULT_PER_PAGE
    nonce_secret: str = ""
    ui_secret: str = ""


def load_env_file(path: Path) -> Dict[str, str]:
    data: Dict[str, str] = {}
    if not path.exists():
        return data
    try:
        for line in path.read_text(encoding="utf-8").splitlines():
            line = line.strip()
            if not line or line.startswith("#") or "=" not in line:
                continue
            k, v = line.split("=", 1)
            data[k.strip()] = v.strip().strip('"').strip("'")
    except OSError as exc:
        print(f"Failed to read .env: {exc}", file=sys.stderr)
    return data


def get_env_path(config_dir: Path) -> Path:
    return config_dir / ".env"


def get_env_value(key: str, env_file: Dict[str, str]) -> Optional[str]:
    return os.environ.get(key) or env_file.get(key)


def _parse_page_size(raw: Optional[str]) -> int:
    try:
        value = int(str(raw or "").strip())
    except ValueError:
        return DEFAULT_PER_PAGE
    return value if value > 0 else DEFAULT_PER_PAGE


def _resolve_path(raw: Optional[str], default: Path) -> Path:
    if not raw or not raw.strip():
        return default
    return Path(raw.strip()).expanduser().resolve()


def load_config(config_dir: Path) -> Config:
    config_dir = Path(config_dir).expanduser().resolve()
    env_file = load_env_file(get_env_path(config_dir))
    return Config(
        config_dir=config_dir,
        upload_root=_resolve_path(get_env_value(UPLOAD_ROOT_KEY, env_file), config_dir / "uploads"),
        db_path=_resolve_path(get_env_value(DB_PATH_KEY, env_file), config_dir / "state.db"),
        page_size=_parse_page_size(get_env_value(PAGE_SIZE_KEY, env_file)),
        nonce_secret=(get_env_value(NONCE_SECRET_KEY, env_file) or "").strip(),
        ui_secret=(get_env_value(UI_SECRET_KEY, env_file) or "").strip(),
    )
