"""
Failed-login lockout.

An account is Locked while its lockout expiry lies in the future, and
Unlocked otherwise. Expiry is evaluated lazily when the account is read;
nothing sweeps expired lockouts. State lives in the credential store, not
in process memory, so every replica sees the same counters.

Transitions:
    Unlocked --failure (count < threshold)--> Unlocked
    Unlocked --failure (count reaches threshold)--> Locked (expiry = now + duration)
    Locked   --any attempt--> Locked (rejected, counter untouched)
    any      --success--> Unlocked (counter 0, expiry cleared)

The counter is not reset when a lockout lapses, so the first failure after
expiry locks the account again.
"""

from dataclasses import dataclass
from datetime import datetime, timedelta
from enum import Enum
from typing import Optional, Protocol

from loguru import logger

from .models import StaffAccount


DEFAULT_THRESHOLD = 5
DEFAULT_DURATION = timedelta(minutes=30)


class LockState(str, Enum):
    UNLOCKED = "unlocked"
    LOCKED = "locked"


class LockoutStore(Protocol):
    def increment_failed_attempts(self, staff_id: str) -> int: ...

    def set_locked_until(self, staff_id: str, locked_until: datetime) -> None: ...

    def reset_failed_attempts(self, staff_id: str, login_at: Optional[datetime] = None) -> None: ...


@dataclass(frozen=True)
class LockoutPolicy:
    """
    Lockout thresholds.

    Attributes:
        threshold: Cumulative failed attempts that lock the account
        duration: How long a lockout lasts
    """
    threshold: int = DEFAULT_THRESHOLD
    duration: timedelta = DEFAULT_DURATION

    def state(self, account: StaffAccount, now: datetime) -> LockState:
        if account.locked_until is not None and account.locked_until > now:
            return LockState.LOCKED
        return LockState.UNLOCKED

    def is_locked(self, account: StaffAccount, now: datetime) -> bool:
        return self.state(account, now) == LockState.LOCKED

    def record_failure(self, store: LockoutStore, account: StaffAccount, now: datetime) -> int:
        """
        Count a failed password check and lock the account at the threshold.

        The increment and the lock are two separate writes. Concurrent
        failures may race; the counter is advisory.

        Returns:
            The new failed-attempt count
        """
        attempts = store.increment_failed_attempts(account.staff_id)
        account.failed_login_attempts = attempts

        if attempts >= self.threshold:
            locked_until = now + self.duration
            store.set_locked_until(account.staff_id, locked_until)
            account.locked_until = locked_until
            logger.warning(
                f"Staff {account.staff_id} locked until {locked_until.isoformat()} "
                f"after {attempts} failed attempts"
            )
        else:
            logger.info(f"Failed login {attempts}/{self.threshold} for staff {account.staff_id}")

        return attempts

    def record_success(self, store: LockoutStore, account: StaffAccount, now: datetime) -> None:
        """Reset the counter and clear any lockout after a successful login."""
        store.reset_failed_attempts(account.staff_id, login_at=now)
        account.failed_login_attempts = 0
        account.locked_until = None
        account.last_login_at = now
