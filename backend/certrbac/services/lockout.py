"""
Account Lockout Guard — failed-login counter and temporary lock window per user.
"""
from datetime import datetime, timedelta
from typing import Optional

from certrbac.config import Settings, get_settings
from certrbac.utils.timeutil import utcnow


class AccountLockoutGuard:
    """Mutates lockout fields on a User; the caller commits."""

    def __init__(self, max_attempts: int = 5, lock_window: timedelta = timedelta(hours=2)):
        self.max_attempts = max_attempts
        self.lock_window = lock_window

    @classmethod
    def from_settings(cls, settings: Optional[Settings] = None) -> "AccountLockoutGuard":
        settings = settings or get_settings()
        return cls(
            max_attempts=settings.MAX_LOGIN_ATTEMPTS,
            lock_window=timedelta(minutes=settings.LOCK_TIME_MINUTES),
        )

    def is_locked(self, user, now: Optional[datetime] = None) -> bool:
        return user.is_locked(now or utcnow())

    def register_failure(self, user, now: Optional[datetime] = None) -> None:
        """Count a failed password check, locking the account at the threshold.

        The first failure observed after a lock has lapsed clears the lock and
        counts as attempt 1, not 0.
        """
        now = now or utcnow()
        if user.lock_until and user.lock_until <= now:
            user.lock_until = None
            user.login_attempts = 1
            return

        user.login_attempts = (user.login_attempts or 0) + 1
        if user.login_attempts >= self.max_attempts and not user.is_locked(now):
            user.lock_until = now + self.lock_window

    def register_success(self, user, now: Optional[datetime] = None) -> None:
        user.login_attempts = 0
        user.lock_until = None
        user.last_login = now or utcnow()
