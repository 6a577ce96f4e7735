"""
Signup, email verification, login and bearer-token authentication.
"""
import logging
from datetime import datetime
from typing import Any, Callable, Dict, Optional

from fastapi import BackgroundTasks
from pydantic import ValidationError as PydanticValidationError
from pymongo.database import Database
from pymongo.errors import DuplicateKeyError

from database import create_document, serialize_doc, to_object_id, utcnow
from errors import (AlreadyVerified, DuplicateEmail, InvalidCredentials, InvalidOtp, InvalidToken,
                    NotFound, RateLimited, UnverifiedAccount, ValidationError, validation_error_from)
from notifications import OTP_SUBJECT, NotificationSender, send_quietly
from otp import OtpManager
from schemas import NewAccount, User
from security import SecretHasher, TokenIssuer

logger = logging.getLogger(__name__)

COLLECTION = "user"

# Never loaded for authenticated requests.
SECRET_FIELDS = {"password_hash": 0, "otp_hash": 0}


def normalize_email(email: Optional[str]) -> str:
    return (email or "").strip().lower()


class AccountService:
    def __init__(self, db: Database, hasher: SecretHasher, otp: OtpManager,
                 tokens: TokenIssuer, notifier: NotificationSender,
                 clock: Callable[[], datetime] = utcnow):
        self.db = db
        self.collection = db[COLLECTION]
        self.hasher = hasher
        self.otp = otp
        self.tokens = tokens
        self.notifier = notifier
        self.clock = clock

    # ----------------------- lookups -----------------------

    def find_by_email(self, email: str) -> Optional[User]:
        doc = self.collection.find_one({"email": normalize_email(email)})
        return User(**serialize_doc(doc)) if doc else None

    def find_by_id(self, account_id: str, projection: Optional[dict] = None) -> Optional[User]:
        oid = to_object_id(account_id)
        if oid is None:
            return None
        doc = self.collection.find_one({"_id": oid}, projection)
        return User(**serialize_doc(doc)) if doc else None

    def _save(self, account: User, *fields: str) -> None:
        update = {f: getattr(account, f) for f in fields}
        update["updated_at"] = self.clock()
        self.collection.update_one({"_id": to_object_id(account.id)}, {"$set": update})

    def _require_pending(self, email: str) -> User:
        account = self.find_by_email(email)
        if account is None:
            raise NotFound("User not found")
        if account.is_verified:
            raise AlreadyVerified()
        return account

    # ----------------------- operations -----------------------

    def signup(self, name: Optional[str], email: Optional[str], password: Optional[str],
               phone: Optional[str], tasks: Optional[BackgroundTasks] = None) -> Dict[str, Any]:
        if not (name and email and password and phone):
            raise ValidationError("All fields are required")
        try:
            fields = NewAccount(name=name, email=email.strip(), password=password, phone=phone.strip())
        except PydanticValidationError as exc:
            raise validation_error_from(exc)

        if self.collection.find_one({"email": fields.email}):
            raise DuplicateEmail()

        now = self.clock()
        account = User(
            name=fields.name,
            email=fields.email,
            password_hash=self.hasher.hash(fields.password),
            phone=fields.phone,
        )
        code = self.otp.issue(account, now)
        try:
            account.id = create_document(self.db, COLLECTION, account, now=now)
        except DuplicateKeyError:
            raise DuplicateEmail()
        logger.info("Account %s created for %s, awaiting verification", account.id, account.email)

        self._dispatch_otp(account, code, tasks)
        return {"userId": account.id, "email": account.email, "name": account.name}

    def verify_otp(self, email: Optional[str], candidate: Optional[str]) -> Dict[str, Any]:
        if not email or not candidate:
            raise ValidationError("Email and OTP are required")
        account = self._require_pending(email)
        if not self.otp.verify(account, candidate, self.clock()):
            raise InvalidOtp()

        account.is_verified = True
        self.otp.clear(account)
        self._save(account, "is_verified", "otp_hash", "otp_expiry")
        logger.info("Account %s verified", account.id)
        return {"token": self.tokens.issue(account.id), "user": account.public()}

    def resend_otp(self, email: Optional[str], tasks: Optional[BackgroundTasks] = None) -> Dict[str, Any]:
        if not email:
            raise ValidationError("Email is required")
        account = self._require_pending(email)
        now = self.clock()
        if not self.otp.can_resend(account, now):
            logger.info("OTP resend refused for account %s (count=%d)",
                        account.id, account.otp_resend_count)
            raise RateLimited()

        code = self.otp.issue(account, now)
        self.otp.record_resend(account, now)
        self._save(account, "otp_hash", "otp_expiry", "otp_resend_count", "last_otp_resend_at")

        self._dispatch_otp(account, code, tasks)
        return {"resendCount": account.otp_resend_count, "maxResends": self.otp.max_resends}

    def login(self, email: Optional[str], password: Optional[str]) -> Dict[str, Any]:
        if not email or not password:
            raise ValidationError("Email and password are required")
        account = self.find_by_email(email)
        # Same error for unknown email and wrong password.
        if account is None or not self.hasher.verify(password, account.password_hash):
            raise InvalidCredentials()
        if not account.is_verified:
            raise UnverifiedAccount()
        return {"token": self.tokens.issue(account.id), "user": account.public()}

    def authenticate(self, token: Optional[str]) -> User:
        account_id = self.tokens.decode(token)
        account = self.find_by_id(account_id, SECRET_FIELDS)
        if account is None:
            raise InvalidToken()
        return account

    # ----------------------- notifications -----------------------

    def _dispatch_otp(self, account: User, code: str, tasks: Optional[BackgroundTasks]) -> None:
        data = {"name": account.name, "otp": code, "ttlMinutes": int(self.otp.ttl.total_seconds() // 60)}
        args = (self.notifier, account.email, OTP_SUBJECT, "otp", data)
        if tasks is not None:
            tasks.add_task(send_quietly, *args)
        else:
            send_quietly(*args)
