import base64
import binascii
import hashlib
import hmac
import json
import time
from collections.abc import Callable

from stash.errors import AuthenticationError


def _b64encode(data: bytes) -> str:
    return base64.urlsafe_b64encode(data).rstrip(b"=").decode("ascii")


def _b64decode(data: str) -> bytes:
    return base64.urlsafe_b64decode(data + "=" * (-len(data) % 4))


class SessionSigner:
    """Stateless session tokens: ``<base64url(json payload)>.<hex hmac-sha256>``."""

    def __init__(self, secret_key: str, ttl_seconds: int, clock: Callable[[], float] = time.time):
        self.secret_key = secret_key.encode("utf-8")
        self.ttl_seconds = ttl_seconds
        self._clock = clock

    def _sign(self, body: str) -> str:
        return hmac.new(self.secret_key, body.encode("ascii"), hashlib.sha256).hexdigest()

    def issue(self, subject_id: str) -> str:
        issued_at = int(self._clock())
        payload = {"sub": subject_id, "iat": issued_at, "exp": issued_at + self.ttl_seconds}
        body = _b64encode(json.dumps(payload, separators=(",", ":")).encode("utf-8"))
        return f"{body}.{self._sign(body)}"

    def verify(self, token: str) -> str:
        """Return the subject id, or raise AuthenticationError for any bad token."""
        rejected = AuthenticationError("Invalid token. Please log in again.")

        body, sep, signature = token.partition(".")
        if not sep or not body or not signature:
            raise rejected
        try:
            body.encode("ascii")
            signature.encode("ascii")
        except UnicodeEncodeError:
            raise rejected from None
        if not hmac.compare_digest(self._sign(body), signature):
            raise rejected

        try:
            payload = json.loads(_b64decode(body))
            subject_id = payload["sub"]
            expires_at = int(payload["exp"])
        except (binascii.Error, ValueError, KeyError, TypeError):
            raise rejected from None

        if not isinstance(subject_id, str) or self._clock() >= expires_at:
            raise rejected
        return subject_id
