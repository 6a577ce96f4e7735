"""
One-time passcodes for email verification.

An account holds at most one pending code, stored only as a hash together
with its expiry. Issuing again replaces the previous code. Resends are
counted across the whole unverified life of the account and are never
reset by expiry.
"""
import secrets
from datetime import datetime, timedelta
from typing import Optional

from database import as_utc
from schemas import User
from security import SecretHasher


class OtpManager:
    def __init__(self, hasher: SecretHasher, ttl_minutes: int = 10,
                 max_resends: int = 5, resend_cooldown_seconds: int = 60):
        self.hasher = hasher
        self.ttl = timedelta(minutes=ttl_minutes)
        self.max_resends = max_resends
        self.resend_cooldown = timedelta(seconds=resend_cooldown_seconds)

    @staticmethod
    def generate_code() -> str:
        return str(100000 + secrets.randbelow(900000))

    def issue(self, account: User, now: datetime) -> str:
        """Attach a fresh code to the account and return its plaintext once."""
        code = self.generate_code()
        account.otp_hash = self.hasher.hash(code)
        account.otp_expiry = now + self.ttl
        return code

    def verify(self, account: User, candidate: Optional[str], now: datetime) -> bool:
        if not account.otp_hash or not account.otp_expiry:
            return False
        if now > as_utc(account.otp_expiry):
            return False
        return self.hasher.verify(str(candidate or "").strip(), account.otp_hash)

    @staticmethod
    def clear(account: User) -> None:
        account.otp_hash = None
        account.otp_expiry = None

    def can_resend(self, account: User, now: datetime) -> bool:
        if account.otp_resend_count >= self.max_resends:
            return False
        last = as_utc(account.last_otp_resend_at)
        if last is not None and now - last < self.resend_cooldown:
            return False
        return True

    @staticmethod
    def record_resend(account: User, now: datetime) -> None:
        account.otp_resend_count += 1
        account.last_otp_resend_at = now
