"""Request-forgery tokens for the admin forms.

A nonce is an HMAC over the action name and a time tick. Each tick spans half
of the lifetime and a nonce is accepted during its own tick and the next one,
so a page stays usable for between half and the full lifetime.
"""
import hashlib
import hmac
import math
import time
from typing import Callable

NONCE_ACTION = "release_manager_nonce"
NONCE_LENGTH = 10
DEFAULT_LIFETIME_SEC = 24 * 60 * 60


class NonceIssuer:
    def __init__(
        self,
        secret: str,
        lifetime_sec: int = DEFAULT_LIFETIME_SEC,
        clock: Callable[[], float] = time.time,
    ) -> None:
        if not secret:
            raise ValueError("Nonce secret must not be empty.")
        self._secret = secret.encode("utf-8")
        self._lifetime_sec = max(2, int(lifetime_sec))
        self._clock = clock

    def create(self, action: str = NONCE_ACTION) -> str:
        return self._digest(action, self._tick())

    def verify(self, token: str, action: str = NONCE_ACTION) -> bool:
        supplied = str(token or "").strip()
        if not supplied:
            return False
        tick = self._tick()
        for candidate in (tick, tick - 1):
            if hmac.compare_digest(supplied.encode("utf-8"), self._digest(action, candidate).encode("utf-8")):
                return True
        return False

    def _tick(self) -> int:
        return int(math.ceil(self._clock() / (self._lifetime_sec / 2)))

    def _digest(self, action: str, tick: int) -> str:
        message = f"{action}|{tick}".encode("utf-8")
        return hmac.new(self._secret, message, hashlib.sha256).hexdigest()[:NONCE_LENGTH]
