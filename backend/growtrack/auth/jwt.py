"""JWT token creation and decoding.

Token claims:
  - sub:          user ID
  - role:         user role string
  - facility_id:  facility (tenant) the user operates in
  - type:         "access"
  - exp:          expiry timestamp
"""

from datetime import datetime, timedelta, timezone

from jose import JWTError, jwt

from growtrack.config import settings

ALGORITHM = settings.jwt_algorithm


def create_access_token(
    user_id: str,
    role: str,
    facility_id: str | None = None,
    expires_delta: timedelta | None = None,
) -> str:
    expire = datetime.now(timezone.utc) + (
        expires_delta or timedelta(minutes=settings.access_token_expire_minutes)
    )
    payload = {
        "sub": user_id,
        "role": role,
        "type": "access",
        "exp": expire,
    }
    if facility_id:
        payload["facility_id"] = facility_id
    return jwt.encode(payload, settings.secret_key, algorithm=ALGORITHM)


def decode_token(token: str) -> dict:
    """Decode and validate a JWT. Returns empty dict on failure."""
    try:
        return jwt.decode(token, settings.secret_key, algorithms=[ALGORITHM])
    except JWTError:
        return {}
