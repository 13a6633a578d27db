"""Account lifecycle tests against the service layer."""

from __future__ import annotations

from datetime import timedelta

import pytest
from flask_jwt_extended import decode_token

from models import db
from models.user import User
from models.verification_token import EMAIL_VERIFICATION, PASSWORD_RESET, VerificationToken
from services.errors import (
    AlreadyUsedError,
    AuthError,
    ConflictError,
    ExpiredError,
    NotFoundError,
    ValidationError,
)
from services.account_service import PASSWORD_RESET_REQUESTED, AccountService
from services.credentials import CredentialStore
from services.notifier import Notifier
from services.token_service import TokenIssuer
from storage import SQLAlchemyRepository
from utils.clock import utcnow

from conftest import TEST_PASSWORD_HASH_METHOD, make_user


class RecordingNotifier(Notifier):
    """Collects notifications in memory and can simulate delivery failure."""

    def __init__(self, deliver: bool = True):
        super().__init__("http://shop.test", 15, None)
        self.deliver = deliver
        self.sent = []

    def notify(self, kind, email, token, display_name):
        self.sent.append((kind, email, token))
        return self.deliver


@pytest.fixture()
def notifier(app):
    recorder = RecordingNotifier()
    app.extensions["myshop.accounts"].notifier = recorder
    return recorder


@pytest.fixture()
def accounts(app, db_session, notifier):
    return app.extensions["myshop.accounts"]


def _tokens(user_id: int, token_type: str) -> list[VerificationToken]:
    return VerificationToken.query.filter_by(user_id=user_id, token_type=token_type).all()


def _register(accounts, email="new@example.com", password="secret123"):
    return accounts.register("New User", email, password, password)


def test_register_creates_unverified_user_and_token(accounts, notifier):
    result = _register(accounts)

    assert result.temporary is True
    assert result.user.is_email_verified is False
    assert result.user.password_hash != "secret123"
    claims = decode_token(result.access_token)
    assert claims["sub"] == str(result.user.id)
    assert claims["exp"] - claims["iat"] == 30 * 60
    assert "token_use" not in claims

    tokens = _tokens(result.user.id, EMAIL_VERIFICATION)
    assert len(tokens) == 1
    assert tokens[0].is_used is False
    assert notifier.sent == [("verification", "new@example.com", tokens[0].token)]


def test_register_token_expires_in_fifteen_minutes(accounts):
    before = utcnow()
    result = _register(accounts)
    token = _tokens(result.user.id, EMAIL_VERIFICATION)[0]

    assert before + timedelta(minutes=14) < token.expires_at <= utcnow() + timedelta(minutes=15)


@pytest.mark.parametrize(
    "name,email,password,confirm,message",
    [
        ("", "a@example.com", "pw", "pw", "All fields are required."),
        ("A", "", "pw", "pw", "All fields are required."),
        ("A", "a@example.com", "", "", "All fields are required."),
        ("A", "a@example.com", "pw", "other", "Passwords do not match."),
    ],
)
def test_register_validation(accounts, name, email, password, confirm, message):
    with pytest.raises(ValidationError) as excinfo:
        accounts.register(name, email, password, confirm)
    assert excinfo.value.description == message


def test_register_duplicate_email_conflicts(accounts):
    _register(accounts)

    with pytest.raises(ConflictError):
        _register(accounts)
    assert User.query.filter_by(email="new@example.com").count() == 1


def test_register_survives_notifier_failure(accounts, notifier):
    notifier.deliver = False

    result = _register(accounts)

    assert db.session.get(User, result.user.id) is not None
    assert len(_tokens(result.user.id, EMAIL_VERIFICATION)) == 1


def test_verify_email_consumes_token_and_marks_user(accounts, notifier):
    result = _register(accounts)
    token = notifier.sent[-1][2]

    verified = accounts.verify_email(token)

    assert verified.user.is_email_verified is True
    full_claims = decode_token(verified.access_token)
    assert full_claims["exp"] - full_claims["iat"] == 7 * 24 * 60 * 60
    record = VerificationToken.query.filter_by(token=token).one()
    assert record.is_used is True
    assert record.used_at is not None
    assert db.session.get(User, result.user.id).is_email_verified is True


def test_verify_email_twice_reports_already_used(accounts, notifier):
    _register(accounts)
    token = notifier.sent[-1][2]
    accounts.verify_email(token)

    with pytest.raises(AlreadyUsedError):
        accounts.verify_email(token)


def test_verify_email_unknown_token(accounts):
    with pytest.raises(NotFoundError):
        accounts.verify_email("does-not-exist")


def test_verify_email_requires_token(accounts):
    with pytest.raises(ValidationError):
        accounts.verify_email("")


def test_verify_email_expired_token_leaves_user_unverified(accounts, notifier):
    result = _register(accounts)
    record = _tokens(result.user.id, EMAIL_VERIFICATION)[0]
    record.expires_at = utcnow() - timedelta(seconds=1)
    db.session.commit()

    with pytest.raises(ExpiredError):
        accounts.verify_email(record.token)

    assert db.session.get(User, result.user.id).is_email_verified is False
    assert VerificationToken.query.filter_by(token=record.token).one().is_used is False


def test_verify_email_rejects_reset_token(accounts, notifier):
    user = make_user("reset-only@example.com", verified=False)
    accounts.request_password_reset(user.email)
    reset_token = notifier.sent[-1][2]

    with pytest.raises(ValidationError) as excinfo:
        accounts.verify_email(reset_token)
    assert excinfo.value.description == "Invalid token type."


def test_resend_supersedes_previous_token(accounts, notifier):
    result = _register(accounts)
    first = notifier.sent[-1][2]

    accounts.resend_verification("new@example.com")
    second = notifier.sent[-1][2]

    assert first != second
    assert [t.token for t in _tokens(result.user.id, EMAIL_VERIFICATION)] == [second]
    with pytest.raises(NotFoundError):
        accounts.verify_email(first)
    assert accounts.verify_email(second).user.is_email_verified is True


def test_resend_errors(accounts, notifier):
    with pytest.raises(ValidationError):
        accounts.resend_verification("")
    with pytest.raises(NotFoundError):
        accounts.resend_verification("ghost@example.com")

    _register(accounts)
    accounts.verify_email(notifier.sent[-1][2])
    with pytest.raises(ConflictError):
        accounts.resend_verification("new@example.com")


def test_verification_status_tracks_token_state(accounts, notifier):
    result = _register(accounts)

    status = accounts.verification_status(result.user.id)
    assert status["is_email_verified"] is False
    assert status["token_state"] == "issued"
    assert status["token_expires_at"]

    accounts.verify_email(notifier.sent[-1][2])
    status = accounts.verification_status(result.user.id)
    assert status == {
        "is_email_verified": True,
        "token_state": "consumed",
        "token_expires_at": None,
    }


def test_login_with_correct_password(accounts):
    user = make_user("login@example.com", "secret123")

    result = accounts.login("login@example.com", "secret123")

    assert result.user.id == user.id
    assert decode_token(result.access_token)["sub"] == str(user.id)


def test_login_is_allowed_before_verification(accounts):
    make_user("unverified@example.com", "secret123", verified=False)
    assert accounts.login("unverified@example.com", "secret123").user.is_email_verified is False


def test_login_failures(accounts):
    make_user("login@example.com", "secret123")

    with pytest.raises(ValidationError):
        accounts.login("login@example.com", "")
    with pytest.raises(NotFoundError):
        accounts.login("nobody@example.com", "secret123")
    with pytest.raises(AuthError):
        accounts.login("login@example.com", "wrong-password")


def test_password_reset_response_does_not_reveal_accounts(accounts, notifier):
    make_user("known@example.com")

    known = accounts.request_password_reset("known@example.com")
    unknown = accounts.request_password_reset("unknown@example.com")

    assert known == unknown == PASSWORD_RESET_REQUESTED
    assert len(notifier.sent) == 1
    assert notifier.sent[0][0] == "password_reset"


def test_password_reset_requires_email(accounts):
    with pytest.raises(ValidationError):
        accounts.request_password_reset("  ")


def test_reset_password_changes_credentials(accounts, notifier):
    user = make_user("reset@example.com", "old-password")
    accounts.request_password_reset(user.email)
    token = notifier.sent[-1][2]

    accounts.reset_password(token, "new-password", "new-password")

    assert accounts.login(user.email, "new-password").user.id == user.id
    with pytest.raises(AuthError):
        accounts.login(user.email, "old-password")
    with pytest.raises(AlreadyUsedError):
        accounts.reset_password(token, "third-password", "third-password")


def test_reset_password_rejects_mismatch_and_wrong_type(accounts, notifier):
    _register(accounts, email="mixed@example.com")
    verification_token = notifier.sent[-1][2]

    with pytest.raises(ValidationError) as excinfo:
        accounts.reset_password(verification_token, "a-password", "b-password")
    assert excinfo.value.description == "Passwords do not match."

    with pytest.raises(ValidationError) as excinfo:
        accounts.reset_password(verification_token, "a-password", "a-password")
    assert excinfo.value.description == "Invalid token type."


def test_reset_password_expired_token_keeps_old_password(accounts, notifier):
    user = make_user("late@example.com", "old-password")
    accounts.request_password_reset(user.email)
    record = _tokens(user.id, PASSWORD_RESET)[0]
    record.expires_at = utcnow() - timedelta(minutes=1)
    db.session.commit()

    with pytest.raises(ExpiredError):
        accounts.reset_password(record.token, "new-password", "new-password")
    assert accounts.login(user.email, "old-password").user.id == user.id


def test_second_reset_request_supersedes_first(accounts, notifier):
    user = make_user("twice@example.com")
    accounts.request_password_reset(user.email)
    first = notifier.sent[-1][2]
    accounts.request_password_reset(user.email)

    assert len(_tokens(user.id, PASSWORD_RESET)) == 1
    with pytest.raises(NotFoundError):
        accounts.reset_password(first, "new-password", "new-password")


def test_update_profile_applies_only_supplied_fields(accounts):
    user = make_user("profile@example.com", name="Before")

    updated = accounts.update_profile(user.id, phone=" 555-0100 ", address="")

    assert updated.name == "Before"
    assert updated.phone == "555-0100"
    assert updated.address is None


def test_get_user_unknown_id(accounts):
    with pytest.raises(NotFoundError):
        accounts.get_user(9999)


class _RivalConsumerRepository(SQLAlchemyRepository):
    """Lets a rival request consume a token after this request has checked it."""

    def __init__(self, db):
        super().__init__(db)
        self.rival = None

    def mark_token_used(self, token_id, used_at):
        if self.rival is not None:
            rival, self.rival = self.rival, None
            rival()
        return super().mark_token_used(token_id, used_at)


def _service_with_rival(notifier) -> tuple[_RivalConsumerRepository, AccountService]:
    repository = _RivalConsumerRepository(db)
    service = AccountService(
        repository,
        notifier,
        TokenIssuer(),
        CredentialStore(TEST_PASSWORD_HASH_METHOD),
    )
    return repository, service


def test_concurrent_verification_consumes_token_once(app, db_session, notifier):
    repository, service = _service_with_rival(notifier)
    result = service.register("Racer", "racer@example.com", "secret123", "secret123")
    token = notifier.sent[-1][2]
    repository.rival = lambda: service.verify_email(token)

    with pytest.raises(AlreadyUsedError):
        service.verify_email(token)

    db.session.expire_all()
    record = VerificationToken.query.filter_by(token=token).one()
    assert record.is_used is True
    assert db.session.get(User, result.user.id).is_email_verified is True


def test_concurrent_password_reset_applies_only_the_first(app, db_session, notifier):
    repository, service = _service_with_rival(notifier)
    user = make_user("reset-race@example.com", "old-password")
    service.request_password_reset(user.email)
    token = notifier.sent[-1][2]
    repository.rival = lambda: service.reset_password(token, "rival-password", "rival-password")

    with pytest.raises(AlreadyUsedError):
        service.reset_password(token, "late-password", "late-password")

    db.session.expire_all()
    assert service.login("reset-race@example.com", "rival-password").user.id == user.id
    with pytest.raises(AuthError):
        service.login("reset-race@example.com", "late-password")
