from dataclasses import dataclass


@dataclass(frozen=True)
class Settings:
    auth_token: str = ""
    storage_path: str = ""
