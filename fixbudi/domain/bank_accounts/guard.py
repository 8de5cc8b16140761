"""
Bank account change lock

A whitelisted payout account can only be replaced once the lock window since
its last change has fully elapsed.
"""

import math
from datetime import datetime, timedelta
from typing import Optional

from ...config import BANK_ACCOUNT_LOCK_DAYS

SECONDS_PER_DAY = 24 * 60 * 60


def days_until_editable(
    last_updated_at: Optional[datetime], now: datetime, lock_days: int = BANK_ACCOUNT_LOCK_DAYS
) -> int:
    """Whole days (rounded up) until the account may change again; 0 when editable"""
    if last_updated_at is None:
        return 0
    unlock_at = last_updated_at + timedelta(days=lock_days)
    remaining = (unlock_at - now).total_seconds()
    if remaining <= 0:
        return 0
    return max(0, math.ceil(remaining / SECONDS_PER_DAY))


def is_editable(last_updated_at: Optional[datetime], now: datetime, lock_days: int = BANK_ACCOUNT_LOCK_DAYS) -> bool:
    return days_until_editable(last_updated_at, now, lock_days) == 0


def names_match(account_name: str, registered_name: str) -> bool:
    """Account holder must be the registered business, ignoring case and surrounding spaces"""
    if not account_name or not registered_name:
        return False
    return account_name.strip().casefold() == registered_name.strip().casefold()
