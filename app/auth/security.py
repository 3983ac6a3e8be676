from datetime import datetime, timedelta, timezone
from typing import Dict, Optional
from uuid import UUID

from jose import JWTError, jwt

from app.core.config import settings


def create_access_token(
    *, subject: Dict, expires_minutes: Optional[int] = None
) -> str:
    if expires_minutes is None:
        expires_minutes = settings.access_token_expire_minutes

    to_encode = subject.copy()
    expire = datetime.now(timezone.utc) + timedelta(minutes=expires_minutes)
    to_encode.update({"exp": expire})
    encoded_jwt = jwt.encode(
        to_encode, settings.jwt_secret_key, algorithm=settings.jwt_algorithm
    )
    return encoded_jwt


def create_user_token(user_id: UUID, role: str, expires_minutes: Optional[int] = None) -> str:
    """Token carrying the claims get_current_user expects."""
    return create_access_token(
        subject={"sub": str(user_id), "role": role},
        expires_minutes=expires_minutes,
    )


def decode_access_token(token: str) -> Optional[Dict]:
    """Return the claims, or None when the signature or expiry is invalid."""
    try:
        return jwt.decode(token, settings.jwt_secret_key, algorithms=[settings.jwt_algorithm])
    except JWTError:
        return None
