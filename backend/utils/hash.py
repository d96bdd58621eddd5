from passlib.context import CryptContext

pwd_context = CryptContext(
    schemes=["bcrypt"],
    deprecated="auto",
    bcrypt__rounds=12,
)

# bcrypt silently truncates beyond this
MAX_BCRYPT_BYTES = 72


def _too_long(password: str) -> bool:
    return len(password.encode("utf-8")) > MAX_BCRYPT_BYTES


def hash_password(password: str) -> str:
    if _too_long(password):
        raise ValueError("La contraseña es demasiado larga (máximo 72 bytes)")
    return pwd_context.hash(password)


def verify_password(plain_password: str, hashed_password: str | None) -> tuple[bool, str | None]:
    """
    Returns (valid, new_hash). new_hash is set when the stored hash was
    produced with weaker settings and should be replaced.
    Malformed legacy hashes count as a failed login.
    """
    if not hashed_password or _too_long(plain_password):
        return False, None
    try:
        return pwd_context.verify_and_update(plain_password, hashed_password)
    except ValueError:
        return False, None
