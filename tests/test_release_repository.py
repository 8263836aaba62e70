import hashlib
import sqlite3
import tempfile
import unittest
from dataclasses import replace
from pathlib import Path

from release_manager.domain.errors import RepositoryError
from release_manager.domain.releases import ReleaseRecord
from release_manager.persistence.option_store import SqliteOptionStore
from release_manager.services.release_repository import OPTION_RELEASES, ReleaseRepository


class _FailingOptionStore:
    def __init__(self):
        self.data = {}

    def get(self, key, default=None):
        return self.data.get(key, default)

    def set(self, key, value):
        raise OSError("disk full")


class _UnreadableOptionStore:
    def get(self, key, default=None):
        raise sqlite3.OperationalError("database is locked")

    def set(self, key, value):
        raise AssertionError("set must not be reached")


def _record(name="gravityview", version="2.9", tag="v2.9.0", ts=1700000000, build_file="gv.zip"):
    return ReleaseRecord(
        id="",
        plugin_name=name,
        plugin_version=version,
        gh_commit_tag=tag,
        gh_commit_timestamp=ts,
        gh_commit_url="https://github.com/gravityview/GravityView/commit/abc123",
        ci_job_url="https://ci/job/42",
        build_hash="0" * 32,
        build_file=build_file,
    )


class TestReleaseRepository(unittest.TestCase):
    def setUp(self):
        self.tmp = tempfile.TemporaryDirectory()
        self.options = SqliteOptionStore(db_path=Path(self.tmp.name) / "state.db")
        self.repo = ReleaseRepository(self.options)

    def tearDown(self):
        self.tmp.cleanup()

    def test_compute_id_is_short_deterministic_md5_prefix(self):
        release_id = ReleaseRepository.compute_id("gravityview", "2.9", "v2.9.0")
        self.assertEqual(len(release_id), 5)
        self.assertEqual(release_id, hashlib.md5(b"gravityview-2.9-v2.9.0").hexdigest()[:5])
        self.assertEqual(release_id, ReleaseRepository.compute_id("gravityview", "2.9", "v2.9.0"))
        self.assertNotEqual(release_id, ReleaseRepository.compute_id("gravityview", "2.9", "v2.9.1"))

    def test_upsert_assigns_id_and_is_listed(self):
        saved = self.repo.upsert(_record())
        self.assertEqual(saved.id, ReleaseRepository.compute_id("gravityview", "2.9", "v2.9.0"))
        self.assertEqual(self.repo.list_all(), [saved])
        self.assertEqual(self.repo.get(saved.id), saved)
        self.assertIsNone(self.repo.get("zzzzz"))

    def test_resubmission_overwrites_instead_of_duplicating(self):
        first = self.repo.upsert(_record(build_file="old.zip"))
        second = self.repo.upsert(_record(build_file="new.zip"))
        self.assertEqual(first.id, second.id)
        releases = self.repo.list_all()
        self.assertEqual(len(releases), 1)
        self.assertEqual(releases[0].build_file, "new.zip")

    def test_distinct_releases_are_kept(self):
        self.repo.upsert(_record(version="2.9"))
        self.repo.upsert(_record(version="2.10", tag="v2.10.0"))
        self.assertEqual(len(self.repo.list_all()), 2)

    def test_caller_supplied_id_is_replaced_with_computed_one(self):
        saved = self.repo.upsert(replace(_record(), id="bogus"))
        self.assertNotEqual(saved.id, "bogus")
        self.assertIsNone(self.repo.get("bogus"))

    def test_write_failure_raises_repository_error(self):
        repo = ReleaseRepository(_FailingOptionStore())
        with self.assertRaises(RepositoryError):
            repo.upsert(_record())

    def test_malformed_rows_are_skipped(self):
        good = self.repo.upsert(_record())
        raw = self.options.get(OPTION_RELEASES)
        raw["bad01"] = "not-a-dict"
        raw["bad02"] = {"plugin_name": "x", "gh_commit_timestamp": "yesterday"}
        self.options.set(OPTION_RELEASES, raw)
        self.assertEqual(self.repo.list_all(), [good])


class TestReleaseRepositoryReadFailure(unittest.TestCase):
    def test_failing_read_during_upsert_is_a_repository_error(self):
        repo = ReleaseRepository(_UnreadableOptionStore())
        with self.assertRaises(RepositoryError) as ctx:
            repo.upsert(_record())
        self.assertIn("database is locked", ctx.exception.message)
