import logging
from datetime import datetime, timedelta, timezone
from typing import Optional

import bcrypt
import jwt

from errors import InvalidToken

logger = logging.getLogger(__name__)

# bcrypt only reads the first 72 bytes of its input.
BCRYPT_MAX_BYTES = 72


class SecretHasher:
    """One-way hashing for passwords and one-time codes."""

    def hash(self, plaintext: str) -> str:
        raise NotImplementedError

    def verify(self, plaintext: str, hashed: Optional[str]) -> bool:
        raise NotImplementedError


class BcryptHasher(SecretHasher):
    def __init__(self, rounds: int = 12):
        self.rounds = rounds

    @staticmethod
    def _encode(plaintext: str) -> bytes:
        return plaintext.encode("utf-8")[:BCRYPT_MAX_BYTES]

    def hash(self, plaintext: str) -> str:
        salt = bcrypt.gensalt(rounds=self.rounds)
        return bcrypt.hashpw(self._encode(plaintext), salt).decode("ascii")

    def verify(self, plaintext: str, hashed: Optional[str]) -> bool:
        if not plaintext or not hashed:
            return False
        try:
            return bcrypt.checkpw(self._encode(plaintext), hashed.encode("ascii"))
        except ValueError:
            logger.warning("Stored hash is not a bcrypt hash")
            return False


class TokenIssuer:
    """Signed, time-limited bearer tokens carrying an account id."""

    def __init__(self, secret: str, algorithm: str = "HS256", ttl_days: int = 30):
        self.secret = secret
        self.algorithm = algorithm
        self.ttl = timedelta(days=ttl_days)

    def issue(self, account_id: str, now: Optional[datetime] = None) -> str:
        issued = now or datetime.now(timezone.utc)
        payload = {"id": account_id, "iat": issued, "exp": issued + self.ttl}
        return jwt.encode(payload, self.secret, algorithm=self.algorithm)

    def decode(self, token: Optional[str]) -> str:
        """Return the account id, or raise InvalidToken for any failure."""
        if not token:
            raise InvalidToken("Access token required")
        try:
            payload = jwt.decode(token, self.secret, algorithms=[self.algorithm])
        except jwt.InvalidTokenError:
            # Callers never learn why a token was rejected.
            raise InvalidToken()
        account_id = payload.get("id")
        if not account_id or not isinstance(account_id, str):
            raise InvalidToken()
        return account_id
