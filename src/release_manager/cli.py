import argparse
import logging
import os
import secrets
from pathlib import Path

from release_manager.app_container import build_container
from release_manager.config import DEFAULT_CONFIG_DIR, get_env_path, load_config


def _configure_logging(level: str) -> None:
    level = (level or "INFO").upper()
    logging.basicConfig(
        level=getattr(logging, level, logging.INFO),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )


def _print_config(config_dir: Path) -> None:
    config = load_config(config_dir)
    container = build_container(config)
    settings = container.settings_store.load()

    print(f"Config dir: {config.config_dir}")
    print(f"Env file: {get_env_path(config.config_dir)}")
    print(f"State db: {config.db_path}")
    print(f"Upload root: {config.upload_root}")
    print(f"Storage path: {settings.storage_path or '(generated on first upload)'}")
    print(f"Auth token present: {'yes' if settings.auth_token else 'no'}")
    print(f"UI secret present: {'yes' if config.ui_secret else 'no'}")
    print(f"Releases: {len(container.repository.list_all())}")


def _rotate_token(config_dir: Path) -> str:
    container = build_container(load_config(config_dir))
    token = secrets.token_urlsafe(24)
    container.settings_store.update(auth_token=token)
    return token


def main() -> None:
    parser = argparse.ArgumentParser(description="Release manager web service")
    parser.add_argument(
        "--config-dir",
        default=str(DEFAULT_CONFIG_DIR),
        help="Directory holding .env and state.db (default: ~/.config/release-manager)",
    )
    parser.add_argument("--print-config", action="store_true", help="Print active config summary")
    parser.add_argument("--rotate-token", action="store_true", help="Generate and save a new submission token")
    parser.add_argument("--host", default="127.0.0.1", help="Bind host")
    parser.add_argument("--port", type=int, default=8766, help="Bind port")
    parser.add_argument("--log-level", default=os.environ.get("LOG_LEVEL", "INFO"))

    args = parser.parse_args()
    config_dir = Path(args.config_dir).expanduser().resolve()

    _configure_logging(args.log_level)

    if args.print_config:
        _print_config(config_dir)
        return

    if args.rotate_token:
        print(_rotate_token(config_dir))
        return

    from release_manager.control_center.app import create_app_with_config
    import uvicorn

    app = create_app_with_config(load_config(config_dir))
    uvicorn.run(app, host=args.host, port=args.port, log_level=args.log_level.lower())


if __name__ == "__main__":
    main()
