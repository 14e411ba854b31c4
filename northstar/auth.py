import logging

from fastapi import Depends, HTTPException
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from sqlalchemy.orm import Session

from .database import get_db
from .models import User
from .security_utils import verify_access_token

logger = logging.getLogger(__name__)

security = HTTPBearer(auto_error=False)


async def get_current_user(
    credentials: HTTPAuthorizationCredentials = Depends(security),
    db: Session = Depends(get_db),
) -> User:
    """Resolve the calling user from the Bearer token"""

    if not credentials:
        logger.error("❌ No credentials provided")
        raise HTTPException(
            status_code=401,
            detail="Not authenticated. Please provide a valid Bearer token in the Authorization header.",
        )

    token = credentials.credentials
    if len(token.split(".")) != 3:
        logger.warning(f"⚠️ Malformed token received, token length: {len(token)}")
        raise HTTPException(status_code=401, detail="Invalid token format. Expected a valid JWT token.")

    payload = verify_access_token(token)
    if payload is None:
        raise HTTPException(status_code=401, detail="Invalid or expired token")

    subject = payload.get("sub")
    try:
        user_id = int(subject)
    except (TypeError, ValueError) as e:
        logger.error(f"❌ Token missing user ID claim. Available claims: {list(payload.keys())}")
        raise HTTPException(status_code=401, detail="Invalid token claims") from e

    user = db.query(User).filter(User.id == user_id).first()
    if not user:
        logger.warning(f"⚠️ Token subject {user_id} does not match any user")
        raise HTTPException(status_code=401, detail="User not found")

    logger.debug(f"✅ User authenticated: {user.email}")
    return user


async def require_admin(user: User = Depends(get_current_user)) -> User:
    """
    Get current user and verify they are an administrator.
    Use this dependency for all back-office routes.
    """
    if not user.is_admin:
        logger.warning(f"⚠️ User {user.email} attempted to access an admin route")
        raise HTTPException(status_code=403, detail="Admin access required")
    return user
