from datetime import datetime, timedelta, timezone
from typing import Dict

from jose import jwt

from app.core.config import settings


def create_access_token(*, subject: Dict, expires_minutes: int = 15) -> str:
    """Issue a signed access token. Login lives in the identity service; this is used by tooling and tests."""
    to_encode = subject.copy()
    expire = datetime.now(timezone.utc) + timedelta(minutes=expires_minutes)
    to_encode.update({"exp": expire})
    return jwt.encode(to_encode, settings.jwt_secret_key, algorithm=settings.jwt_algorithm)
