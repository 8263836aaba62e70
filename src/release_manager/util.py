import re
import secrets
import string
from urllib.parse import urlsplit

_CONTROL_CHARS = re.compile(r"[\x00-\x1f\x7f-\x9f]")
_RANDOM_ALPHABET = string.ascii_lowercase + string.digits


def strip_control_chars(value: object) -> str:
    if value is None:
        return ""
    return _CONTROL_CHARS.sub("", str(value)).strip()


def random_token(length: int = 25) -> str:
    return "".join(secrets.choice(_RANDOM_ALPHABET) for _ in range(length))


def is_web_url(value: str) -> bool:
    parts = urlsplit(str(value or ""))
    return parts.scheme.lower() in {"http", "https"} and bool(parts.netloc)
