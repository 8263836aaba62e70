import hashlib
import logging
from dataclasses import asdict
from typing import Any, Dict, List, Optional

from release_manager.domain.errors import RepositoryError
from release_manager.domain.releases import ReleaseRecord
from release_manager.persistence.option_store import OptionStore

logger = logging.getLogger(__name__)

OPTION_RELEASES = "release_manager_releases"
ID_LENGTH = 5


class ReleaseRepository:
    """Release records kept as one ``{id: record}`` mapping in the option store.

    The collection is read and rewritten whole on every upsert; concurrent
    writers race and the last write wins.
    """

    def __init__(self, option_store: OptionStore):
        self._options = option_store

    @staticmethod
    def compute_id(plugin_name: str, plugin_version: str, gh_commit_tag: str) -> str:
        key = f"{plugin_name}-{plugin_version}-{gh_commit_tag}"
        return hashlib.md5(key.encode("utf-8")).hexdigest()[:ID_LENGTH]

    def list_all(self) -> List[ReleaseRecord]:
        out: List[ReleaseRecord] = []
        for release_id, row in self._load().items():
            record = _dict_to_release(release_id, row)
            if record is not None:
                out.append(record)
        return out

    def get(self, release_id: str) -> Optional[ReleaseRecord]:
        row = self._load().get(release_id)
        if row is None:
            return None
        return _dict_to_release(release_id, row)

    def upsert(self, record: ReleaseRecord) -> ReleaseRecord:
        release_id = self.compute_id(record.plugin_name, record.plugin_version, record.gh_commit_tag)
        if record.id != release_id:
            record = ReleaseRecord(**{**asdict(record), "id": release_id})
        try:
            releases = self._load()
            releases[release_id] = asdict(record)
            self._options.set(OPTION_RELEASES, releases)
        except Exception as exc:
            raise RepositoryError(f"Failed to save the release: {exc}") from exc
        return record

    def _load(self) -> Dict[str, Any]:
        data = self._options.get(OPTION_RELEASES, {})
        return dict(data) if isinstance(data, dict) else {}


def _dict_to_release(release_id: str, data: Any) -> Optional[ReleaseRecord]:
    if not isinstance(data, dict):
        logger.warning("Skipping malformed release row %s", release_id)
        return None
    try:
        timestamp = int(data.get("gh_commit_timestamp") or 0)
    except (TypeError, ValueError):
        logger.warning("Skipping release %s with invalid gh_commit_timestamp", release_id)
        return None
    return ReleaseRecord(
        id=str(release_id),
        plugin_name=str(data.get("plugin_name") or ""),
        plugin_version=str(data.get("plugin_version") or ""),
        gh_commit_tag=str(data.get("gh_commit_tag") or ""),
        gh_commit_timestamp=timestamp,
        gh_commit_url=str(data.get("gh_commit_url") or ""),
        ci_job_url=str(data.get("ci_job_url") or ""),
        build_hash=str(data.get("build_hash") or ""),
        build_file=str(data.get("build_file") or ""),
    )
