"""
Security Utilities
Access token verification and at-rest encryption for stored calendar credentials
"""

import logging
from datetime import datetime, timedelta, timezone
from typing import Any, Optional

from cryptography.fernet import Fernet, InvalidToken
from jose import JWTError
from jose import jwt as jose_jwt

from .config import ICLOUD_ENCRYPTION_KEY, SECRET_KEY

logger = logging.getLogger(__name__)

ALGORITHM = "HS256"

# Credentials are stored in plain text when no key is configured (local development)
fernet = Fernet(ICLOUD_ENCRYPTION_KEY) if ICLOUD_ENCRYPTION_KEY else None
if fernet is None:
    logger.warning("⚠️ ICLOUD_ENCRYPTION_KEY not set - iCloud app passwords will be stored unencrypted")


# ============================================================================
# CREDENTIAL ENCRYPTION
# ============================================================================


def encrypt_secret(value: str) -> str:
    """Encrypt a credential for storage"""
    if not fernet or not value:
        return value or ""
    return fernet.encrypt(value.encode()).decode()


def decrypt_secret(encrypted: str) -> str:
    """Decrypt a stored credential, returning it unchanged if it was never encrypted"""
    if not fernet or not encrypted:
        return encrypted or ""
    try:
        return fernet.decrypt(encrypted.encode()).decode()
    except InvalidToken:
        logger.warning("⚠️ Stored credential is not a Fernet token - using it as-is")
        return encrypted


# ============================================================================
# ACCESS TOKENS
# ============================================================================


def create_access_token(data: dict[str, Any], expires_delta: Optional[timedelta] = None) -> str:
    """
    Create a signed access token

    Issuance belongs to the identity provider in production; this helper
    exists for tooling and tests.
    """
    to_encode = data.copy()
    expire = datetime.now(timezone.utc) + (expires_delta or timedelta(minutes=15))
    to_encode.update({"exp": expire})
    return jose_jwt.encode(to_encode, SECRET_KEY, algorithm=ALGORITHM)


def verify_access_token(token: str) -> Optional[dict[str, Any]]:
    """
    Verify and decode an access token

    Returns:
        Decoded payload if valid, None if invalid or expired
    """
    try:
        return jose_jwt.decode(token, SECRET_KEY, algorithms=[ALGORITHM])
    except JWTError as e:
        logger.warning(f"JWT verification failed: {e}")
        return None
