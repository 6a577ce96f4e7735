import pytest

from accounts import AccountService
from conftest import FailingSender
from errors import (AlreadyVerified, DuplicateEmail, InvalidCredentials, InvalidOtp, InvalidToken,
                    NotFound, RateLimited, UnverifiedAccount, ValidationError)
from otp import OtpManager
from security import BcryptHasher, TokenIssuer


def signup(accounts, **overrides):
    fields = {"name": "Ravi", "email": "ravi@x.com", "password": "secret1", "phone": "9876543210"}
    fields.update(overrides)
    return accounts.signup(**fields)


def test_signup_creates_unverified_account_and_sends_one_otp(accounts, sender, db):
    result = signup(accounts)
    assert set(result) == {"userId", "email", "name"}

    doc = db["user"].find_one({"email": "ravi@x.com"})
    assert doc["is_verified"] is False
    assert doc["password_hash"] != "secret1"
    assert doc["otp_hash"] and doc["otp_expiry"]
    assert doc["otp_resend_count"] == 0

    assert len(sender.sent) == 1
    message = sender.sent[0]
    assert message["to"] == "ravi@x.com"
    assert message["template"] == "otp"
    assert doc["otp_hash"] != message["data"]["otp"]


def test_signup_normalises_email(accounts, db):
    signup(accounts, email="  Ravi@X.com ")
    assert db["user"].find_one({"email": "ravi@x.com"})


def test_duplicate_email_rejected_before_verification(accounts):
    signup(accounts)
    with pytest.raises(DuplicateEmail):
        signup(accounts, email="RAVI@x.com", name="Other")


def test_signup_requires_all_fields(accounts):
    with pytest.raises(ValidationError) as exc:
        signup(accounts, phone="")
    assert exc.value.message == "All fields are required"


def test_signup_aggregates_field_errors(accounts, db):
    with pytest.raises(ValidationError) as exc:
        signup(accounts, name="R", password="123", phone="12345")
    assert exc.value.message == (
        "Name must be at least 2 characters long, "
        "Password must be at least 6 characters long, "
        "Please enter a valid 10-digit phone number"
    )
    assert db["user"].count_documents({}) == 0


def test_signup_rejects_bad_email(accounts):
    with pytest.raises(ValidationError) as exc:
        signup(accounts, email="ravi@")
    assert exc.value.message == "Please enter a valid email"


def test_signup_survives_mail_failure(db, clock):
    failing = FailingSender()
    hasher = BcryptHasher(4)
    service = AccountService(db, hasher, OtpManager(hasher), TokenIssuer("k"), failing, clock=clock)
    result = signup(service)
    assert failing.attempts == 1
    assert db["user"].find_one({"email": result["email"]})


def test_verify_otp_marks_account_verified(accounts, sender, db):
    signup(accounts)
    result = accounts.verify_otp("ravi@x.com", sender.last_otp("ravi@x.com"))
    assert result["token"]
    assert result["user"]["isVerified"] is True
    assert "password_hash" not in result["user"]

    doc = db["user"].find_one({"email": "ravi@x.com"})
    assert doc["is_verified"] is True
    assert doc["otp_hash"] is None and doc["otp_expiry"] is None


def test_verify_otp_rejects_wrong_code(accounts, sender):
    signup(accounts)
    code = sender.last_otp("ravi@x.com")
    wrong = "999999" if code != "999999" else "111111"
    with pytest.raises(InvalidOtp):
        accounts.verify_otp("ravi@x.com", wrong)


def test_verify_otp_rejects_expired_code(accounts, sender, clock):
    signup(accounts)
    clock.advance(minutes=10, seconds=1)
    with pytest.raises(InvalidOtp):
        accounts.verify_otp("ravi@x.com", sender.last_otp("ravi@x.com"))


def test_verify_otp_unknown_and_already_verified(accounts, sender):
    with pytest.raises(NotFound):
        accounts.verify_otp("nobody@x.com", "123456")
    signup(accounts)
    code = sender.last_otp("ravi@x.com")
    accounts.verify_otp("ravi@x.com", code)
    with pytest.raises(AlreadyVerified):
        accounts.verify_otp("ravi@x.com", code)


def test_verify_otp_requires_both_fields(accounts):
    with pytest.raises(ValidationError) as exc:
        accounts.verify_otp("ravi@x.com", "")
    assert exc.value.message == "Email and OTP are required"


def test_resend_replaces_code_and_counts(accounts, sender, clock):
    signup(accounts)
    first = sender.last_otp("ravi@x.com")
    result = accounts.resend_otp("ravi@x.com")
    assert result == {"resendCount": 1, "maxResends": 5}
    second = sender.last_otp("ravi@x.com")
    assert len(sender.sent) == 2
    if first != second:
        with pytest.raises(InvalidOtp):
            accounts.verify_otp("ravi@x.com", first)
    assert accounts.verify_otp("ravi@x.com", second)["token"]


def test_resend_within_cooldown_is_rate_limited(accounts, clock):
    signup(accounts)
    accounts.resend_otp("ravi@x.com")
    clock.advance(seconds=30)
    with pytest.raises(RateLimited):
        accounts.resend_otp("ravi@x.com")
    clock.advance(seconds=31)
    assert accounts.resend_otp("ravi@x.com")["resendCount"] == 2


def test_sixth_resend_is_rate_limited_regardless_of_time(accounts, clock, db):
    signup(accounts)
    for expected in range(1, 6):
        assert accounts.resend_otp("ravi@x.com")["resendCount"] == expected
        clock.advance(minutes=15)
    clock.advance(days=2)
    with pytest.raises(RateLimited):
        accounts.resend_otp("ravi@x.com")
    assert db["user"].find_one({"email": "ravi@x.com"})["otp_resend_count"] == 5


def test_resend_unknown_or_verified(accounts, sender):
    with pytest.raises(NotFound):
        accounts.resend_otp("nobody@x.com")
    signup(accounts)
    accounts.verify_otp("ravi@x.com", sender.last_otp("ravi@x.com"))
    with pytest.raises(AlreadyVerified):
        accounts.resend_otp("ravi@x.com")


def test_login_hides_which_part_was_wrong(accounts, sender):
    signup(accounts)
    accounts.verify_otp("ravi@x.com", sender.last_otp("ravi@x.com"))
    with pytest.raises(InvalidCredentials) as wrong_password:
        accounts.login("ravi@x.com", "wrong-pass")
    with pytest.raises(InvalidCredentials) as unknown_email:
        accounts.login("ghost@x.com", "secret1")
    assert wrong_password.value.message == unknown_email.value.message
    assert wrong_password.value.status_code == unknown_email.value.status_code == 401


def test_login_requires_verification(accounts):
    signup(accounts)
    with pytest.raises(UnverifiedAccount) as exc:
        accounts.login("ravi@x.com", "secret1")
    assert exc.value.extra == {"requiresVerification": True}


def test_login_and_authenticate(accounts, sender):
    signup(accounts)
    accounts.verify_otp("ravi@x.com", sender.last_otp("ravi@x.com"))
    result = accounts.login("RAVI@x.com", "secret1")
    account = accounts.authenticate(result["token"])
    assert account.email == "ravi@x.com"
    assert account.password_hash is None
    assert account.otp_hash is None


def test_authenticate_rejects_token_for_missing_account(accounts, db, sender):
    signup(accounts)
    token = accounts.verify_otp("ravi@x.com", sender.last_otp("ravi@x.com"))["token"]
    db["user"].delete_many({})
    with pytest.raises(InvalidToken):
        accounts.authenticate(token)


def test_authenticate_rejects_token_with_non_objectid_subject(accounts):
    token = accounts.tokens.issue("not-an-object-id")
    with pytest.raises(InvalidToken):
        accounts.authenticate(token)
