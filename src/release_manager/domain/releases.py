from dataclasses import dataclass
from pathlib import Path
from typing import List, Tuple


REQUIRED_FIELDS: Tuple[str, ...] = (
    "plugin_name",
    "plugin_version",
    "gh_commit_tag",
    "gh_commit_timestamp",
    "gh_commit_url",
    "ci_job_url",
    "build_hash",
)

# Must be submitted, but an empty value means "not applicable".
OPTIONAL_VALUE_FIELDS = frozenset({"ci_job_url"})

SORTABLE_COLUMNS: Tuple[str, ...] = ("plugin_name", "plugin_version", "gh_commit_timestamp")

DEFAULT_ORDER_BY = "gh_commit_timestamp"
DEFAULT_ORDER = "desc"
DEFAULT_PER_PAGE = 20


@dataclass(frozen=True)
class ReleaseRecord:
    id: str
    plugin_name: str
    plugin_version: str
    gh_commit_tag: str
    gh_commit_timestamp: int
    gh_commit_url: str
    ci_job_url: str
    build_hash: str
    build_file: str


@dataclass(frozen=True)
class UploadedArtifact:
    """A build file received with a submission and spooled to a local path."""

    path: Path
    filename: str


@dataclass(frozen=True)
class ReleasePage:
    items: List[ReleaseRecord]
    total_items: int
    total_pages: int
    page: int
    page_size: int
    order_by: str
    order: str
