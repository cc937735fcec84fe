"""
Brute force protection for the login endpoint.

Failures are counted per lower-cased email inside a sliding window; once
the limit is hit the key stays blocked for the lockout period.
"""
import logging
import threading
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from typing import Dict, List, Optional

from cafm.config import settings

logger = logging.getLogger(__name__)


@dataclass
class _AttemptRecord:
    failures: List[datetime] = field(default_factory=list)
    blocked_until: Optional[datetime] = None


class LoginAttemptService:

    def __init__(self, max_attempts: int = None, window_minutes: int = None, lockout_minutes: int = None,
                 clock=None):
        self.max_attempts = max_attempts or settings.max_login_attempts
        self.window = timedelta(minutes=window_minutes or settings.login_attempt_window_minutes)
        self.lockout = timedelta(minutes=lockout_minutes or settings.login_lockout_minutes)
        self._clock = clock or datetime.utcnow
        self._records: Dict[str, _AttemptRecord] = {}
        self._lock = threading.Lock()

    @staticmethod
    def _key(email: str) -> str:
        return (email or "").strip().lower()

    def _prune(self, record: _AttemptRecord, now: datetime):
        cutoff = now - self.window
        record.failures = [t for t in record.failures if t > cutoff]
        if record.blocked_until and record.blocked_until <= now:
            record.blocked_until = None
            record.failures = []

    def login_failed(self, email: str):
        key = self._key(email)
        now = self._clock()
        with self._lock:
            record = self._records.setdefault(key, _AttemptRecord())
            self._prune(record, now)
            record.failures.append(now)
            if len(record.failures) >= self.max_attempts:
                record.blocked_until = now + self.lockout
                logger.warning(f"Login blocked for {key} until {record.blocked_until.isoformat()}")

    def login_succeeded(self, email: str):
        with self._lock:
            self._records.pop(self._key(email), None)

    def is_blocked(self, email: str) -> bool:
        now = self._clock()
        with self._lock:
            record = self._records.get(self._key(email))
            if record is None:
                return False
            self._prune(record, now)
            return record.blocked_until is not None

    def get_remaining_attempts(self, email: str) -> int:
        now = self._clock()
        with self._lock:
            record = self._records.get(self._key(email))
            if record is None:
                return self.max_attempts
            self._prune(record, now)
            if record.blocked_until is not None:
                return 0
            return max(self.max_attempts - len(record.failures), 0)

    def reset(self, email: Optional[str] = None):
        with self._lock:
            if email is None:
                self._records.clear()
            else:
                self._records.pop(self._key(email), None)


login_attempt_service = LoginAttemptService()
