class ReleaseManagerError(Exception):
    """Base for failures surfaced to the caller as ``{code, message}``."""

    code = "release_manager_error"

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class ValidationError(ReleaseManagerError):
    code = "missing_data"

    def __init__(self, field: str, message: str = ""):
        super().__init__(message or f"'{field}' property is missing.")
        self.field = field


class IntegrityError(ReleaseManagerError):
    """Uploaded content does not match the checksum claimed by the caller."""

    code = "integrity_error"


class StorageError(ReleaseManagerError):
    code = "upload_fail"


class RepositoryError(ReleaseManagerError):
    code = "save_error"
