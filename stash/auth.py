import hmac

import bcrypt
import structlog

from stash.models import User

logger = structlog.get_logger(__name__)

BCRYPT_MAX_BYTES = 72


def hash_rounds(password_hash: str) -> int:
    """Cost factor of a bcrypt hash such as ``$2b$12$...``."""
    parts = password_hash.split("$")
    if len(parts) != 4 or not parts[2].isdigit():
        raise ValueError("admin_password_hash is not a bcrypt hash")
    return int(parts[2])


class CredentialVerifier:
    def __init__(self, *, user_id: str, username: str, password_hash: str, min_rounds: int = 12):
        rounds = hash_rounds(password_hash)
        if rounds < min_rounds:
            raise ValueError(f"admin_password_hash uses {rounds} rounds, at least {min_rounds} required")

        self.user = User(id=user_id, username=username)
        self._username = username.encode("utf-8")
        self._password_hash = password_hash.encode("utf-8")

    def verify(self, username: str, password: str) -> bool:
        username_ok = hmac.compare_digest(self._username, username.encode("utf-8"))
        password_ok = bcrypt.checkpw(password.encode("utf-8")[:BCRYPT_MAX_BYTES], self._password_hash)
        if username_ok and password_ok:
            return True
        logger.info("login_rejected")
        return False

    def __repr__(self) -> str:
        return f"CredentialVerifier(username={self.user.username!r})"
