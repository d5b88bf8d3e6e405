from datetime import datetime, timedelta
from typing import Optional
from jose import JWTError, jwt
from coursewallet.config import settings


def create_access_token(user_id: str, expires_minutes: int = 60) -> str:
    """Mint a token shaped like the ones Supabase Auth issues (used by scripts and tests)."""
    expire = datetime.utcnow() + timedelta(minutes=expires_minutes)
    return jwt.encode(
        {"sub": user_id, "aud": settings.JWT_AUDIENCE, "role": "authenticated", "exp": expire},
        settings.SUPABASE_JWT_SECRET,
        settings.JWT_ALGORITHM,
    )


def decode_token(token: str) -> Optional[str]:
    try:
        payload = jwt.decode(
            token,
            settings.SUPABASE_JWT_SECRET,
            algorithms=[settings.JWT_ALGORITHM],
            audience=settings.JWT_AUDIENCE,
        )
        return payload.get("sub")
    except JWTError:
        return None
