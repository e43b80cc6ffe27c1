"""
Short-lived one-time codes for password resets.

Codes live in a lock-guarded in-process map keyed by email; each entry
expires after `ttl_seconds` and expired entries are swept whenever a new code
is issued. A multi-instance deployment needs a shared store with the same
interface.
"""

import secrets
import threading
import time
from dataclasses import dataclass
from typing import Callable, Dict

from errors import InvalidInput


@dataclass
class OTPEntry:
    code: str
    expires_at: float
    verified: bool = False


def generate_otp() -> str:
    return str(100000 + secrets.randbelow(900000))


class OTPStore:
    def __init__(self, ttl_seconds: int = 600, clock: Callable[[], float] = time.monotonic) -> None:
        self.ttl_seconds = ttl_seconds
        self._clock = clock
        self._entries: Dict[str, OTPEntry] = {}
        self._lock = threading.Lock()

    @staticmethod
    def _key(email: str) -> str:
        return (email or "").strip().lower()

    def issue(self, email: str) -> str:
        """Create a code for `email`, replacing any earlier one."""
        code = generate_otp()
        with self._lock:
            self._sweep_locked()
            self._entries[self._key(email)] = OTPEntry(code, self._clock() + self.ttl_seconds)
        return code

    def verify(self, email: str, code: str) -> None:
        key = self._key(email)
        with self._lock:
            entry = self._entries.get(key)
            if entry is None:
                raise InvalidInput("OTP not found or expired")
            if self._clock() > entry.expires_at:
                del self._entries[key]
                raise InvalidInput("OTP has expired")
            if not secrets.compare_digest(entry.code.encode(), str(code).encode()):
                raise InvalidInput("Invalid OTP")
            entry.verified = True

    def is_verified(self, email: str) -> bool:
        with self._lock:
            entry = self._entries.get(self._key(email))
            return bool(entry and entry.verified and self._clock() <= entry.expires_at)

    def discard(self, email: str) -> None:
        with self._lock:
            self._entries.pop(self._key(email), None)

    def sweep(self) -> int:
        with self._lock:
            return self._sweep_locked()

    def _sweep_locked(self) -> int:
        now = self._clock()
        expired = [k for k, entry in self._entries.items() if now > entry.expires_at]
        for k in expired:
            del self._entries[k]
        return len(expired)

    def __len__(self) -> int:
        return len(self._entries)
