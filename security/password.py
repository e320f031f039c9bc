import bcrypt
from flask import current_app, has_app_context


def _rounds() -> int:
    if has_app_context():
        return int(current_app.config.get("BCRYPT_ROUNDS", 12))
    return 12


def hash_password(plain_password: str) -> str:
    if not isinstance(plain_password, str) or len(plain_password) == 0:
        raise ValueError("Password must be a non-empty string")

    salt = bcrypt.gensalt(rounds=_rounds())
    hashed = bcrypt.hashpw(plain_password.encode("utf-8"), salt)
    return hashed.decode("utf-8")


def verify_password(plain_password: str, password_hash: str) -> bool:
    if not isinstance(plain_password, str) or not plain_password or not password_hash:
        return False
    try:
        return bcrypt.checkpw(
            plain_password.encode("utf-8"),
            password_hash.encode("utf-8")
        )
    except ValueError:
        # malformed stored hash
        return False


def password_errors(password) -> list:
    """Policy check for new passwords. Empty list means acceptable."""
    if not isinstance(password, str):
        return ["Password must be a string"]
    min_len = 6
    if has_app_context():
        min_len = int(current_app.config.get("PASSWORD_MIN_LEN", 6))
    errors = []
    if len(password) < min_len:
        errors.append(f"Password must be at least {min_len} characters")
    if len(password) > 128:
        errors.append("Password must be at most 128 characters")
    return errors
