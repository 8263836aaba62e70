import os
import tempfile
import unittest
from pathlib import Path
from unittest.mock import patch

from release_manager.config import (
    DB_PATH_KEY,
    NONCE_SECRET_KEY,
    PAGE_SIZE_KEY,
    UI_SECRET_KEY,
    UPLOAD_ROOT_KEY,
    load_config,
    load_env_file,
)

_KEYS = (UPLOAD_ROOT_KEY, DB_PATH_KEY, PAGE_SIZE_KEY, NONCE_SECRET_KEY, UI_SECRET_KEY)


class TestConfig(unittest.TestCase):
    def setUp(self):
        self.tmp = tempfile.TemporaryDirectory()
        self.config_dir = Path(self.tmp.name).resolve()
        self.env_patch = patch.dict(os.environ, {})
        self.env_patch.start()
        for key in _KEYS:
            os.environ.pop(key, None)

    def tearDown(self):
        self.env_patch.stop()
        self.tmp.cleanup()

    def test_defaults_live_in_config_dir(self):
        config = load_config(self.config_dir)
        self.assertEqual(config.upload_root, self.config_dir / "uploads")
        self.assertEqual(config.db_path, self.config_dir / "state.db")
        self.assertEqual(config.page_size, 20)
        self.assertEqual(config.nonce_secret, "")
        self.assertEqual(config.ui_secret, "")

    def test_env_file_values(self):
        uploads = self.config_dir / "srv-uploads"
        (self.config_dir / ".env").write_text(
            "# release manager\n"
            f"{UPLOAD_ROOT_KEY}={uploads}\n"
            f"{PAGE_SIZE_KEY}='50'\n"
            f'{UI_SECRET_KEY}="letmein"\n'
            "not a pair\n",
            encoding="utf-8",
        )
        config = load_config(self.config_dir)
        self.assertEqual(config.upload_root, uploads)
        self.assertEqual(config.page_size, 50)
        self.assertEqual(config.ui_secret, "letmein")

    def test_environment_overrides_env_file(self):
        (self.config_dir / ".env").write_text(f"{UI_SECRET_KEY}=from-file\n", encoding="utf-8")
        os.environ[UI_SECRET_KEY] = "from-env"
        self.assertEqual(load_config(self.config_dir).ui_secret, "from-env")

    def test_invalid_page_size_falls_back(self):
        for raw in ("zero", "0", "-5", ""):
            os.environ[PAGE_SIZE_KEY] = raw
            self.assertEqual(load_config(self.config_dir).page_size, 20)

    def test_missing_env_file_is_empty(self):
        self.assertEqual(load_env_file(self.config_dir / "missing.env"), {})
