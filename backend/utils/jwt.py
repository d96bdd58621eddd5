from datetime import datetime, timedelta
from jose import jwt
from config.env import JWT_SECRET, JWT_ALGORITHM, ACCESS_TOKEN_HOURS

# ===============================
# ACCESS TOKENS
# ===============================
# sub = str(usuarios._id). Roles travel in the token for the client only;
# get_current_user always re-reads them from the database.


def _signing_key() -> str:
    secret = (JWT_SECRET or "").strip()
    if not secret:
        raise RuntimeError("JWT_SECRET is not configured")
    return secret


def create_access_token(user: dict, expires_in: timedelta | None = None) -> str:
    issued_at = datetime.utcnow()
    claims = {
        "sub": str(user["_id"]),
        "email": user.get("email"),
        "roles": user.get("roles", []),
        "iat": issued_at,
        "exp": issued_at + (expires_in or timedelta(hours=ACCESS_TOKEN_HOURS)),
    }
    return jwt.encode(claims, _signing_key(), algorithm=JWT_ALGORITHM)


def decode_token(token: str) -> dict:
    return jwt.decode(token, _signing_key(), algorithms=[JWT_ALGORITHM])
