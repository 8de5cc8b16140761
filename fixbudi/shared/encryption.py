"""Field-level encryption for payout account numbers"""

import logging
from typing import Optional

from cryptography.fernet import Fernet

from ..config import BANK_ACCOUNT_ENCRYPTION_KEY

logger = logging.getLogger(__name__)

fernet = Fernet(BANK_ACCOUNT_ENCRYPTION_KEY) if BANK_ACCOUNT_ENCRYPTION_KEY else None

if not fernet:
    logger.warning("⚠️ BANK_ACCOUNT_ENCRYPTION_KEY not set - account numbers will be stored unencrypted")


def encrypt_value(value: str, cipher: Optional[Fernet] = None) -> str:
    cipher = cipher or fernet
    if not cipher or not value:
        return value
    return cipher.encrypt(value.encode()).decode()


def mask_account_number(account_number: str, visible_chars: int = 4) -> str:
    if not account_number:
        return ""
    return f"****{account_number[-visible_chars:]}"
