from dataclasses import dataclass
from typing import Dict, List

from release_manager.domain.errors import (
    IntegrityError,
    ReleaseManagerError,
    RepositoryError,
    StorageError,
    ValidationError,
)


@dataclass(frozen=True)
class ErrorCatalogEntry:
    code: str
    title: str
    http_status: int
    user_message: str


ERROR_CATALOG: List[ErrorCatalogEntry] = [
    ErrorCatalogEntry(
        code=ValidationError.code,
        title="Missing release data",
        http_status=400,
        user_message="A required release property is missing or malformed.",
    ),
    ErrorCatalogEntry(
        code=IntegrityError.code,
        title="Checksum mismatch",
        http_status=422,
        user_message="The uploaded build does not match the submitted build hash.",
    ),
    ErrorCatalogEntry(
        code=StorageError.code,
        title="Build file upload failed",
        http_status=500,
        user_message="The build file could not be written to the storage directory.",
    ),
    ErrorCatalogEntry(
        code=RepositoryError.code,
        title="Release not saved",
        http_status=500,
        user_message="The release record could not be persisted.",
    ),
    ErrorCatalogEntry(
        code="rest_forbidden",
        title="Unauthorized",
        http_status=401,
        user_message="The authorization token is missing or does not match.",
    ),
    ErrorCatalogEntry(
        code="invalid_nonce",
        title="Expired form",
        http_status=403,
        user_message="The request could not be verified. Reload the page and try again.",
    ),
]

_UNKNOWN = ErrorCatalogEntry(
    code="unknown_error",
    title="Unknown failure",
    http_status=500,
    user_message="The request failed for an unknown reason.",
)

_BY_CODE: Dict[str, ErrorCatalogEntry] = {entry.code: entry for entry in ERROR_CATALOG}


def get_catalog_entry(code: str) -> ErrorCatalogEntry:
    return _BY_CODE.get(code, _UNKNOWN)


def error_payload(exc: ReleaseManagerError) -> Dict[str, object]:
    entry = get_catalog_entry(exc.code)
    payload: Dict[str, object] = {
        "code": exc.code,
        "message": exc.message,
        "data": {"status": entry.http_status},
    }
    field = getattr(exc, "field", "")
    if field:
        payload["field"] = field
    return payload
