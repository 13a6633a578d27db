"""Account lifecycle: registration, email verification, login and password reset."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timedelta

from flask import current_app
from flask_jwt_extended import create_access_token

from models.user import User
from models.verification_token import EMAIL_VERIFICATION, PASSWORD_RESET, VerificationToken
from services import notifier as notices
from services.credentials import CredentialStore
from services.errors import (
    AlreadyUsedError,
    AuthError,
    ConflictError,
    ExpiredError,
    NotFoundError,
    ValidationError,
)
from services.notifier import Notifier
from services.token_service import TokenIssuer, TokenOutcome, TokenState
from storage.abstract_repository import AbstractRepository


PASSWORD_RESET_REQUESTED = "If email exists, password reset link has been sent"

_OUTCOME_ERRORS = {
    TokenOutcome.UNKNOWN: (NotFoundError, "Invalid token."),
    TokenOutcome.WRONG_TYPE: (ValidationError, "Invalid token type."),
    TokenOutcome.EXPIRED: (ExpiredError, "Token has expired."),
    TokenOutcome.ALREADY_USED: (AlreadyUsedError, "Token already used."),
}


@dataclass
class AuthResult:
    """An issued bearer credential and the account it belongs to."""

    access_token: str
    user: User
    temporary: bool = False


class AccountService:
    def __init__(
        self,
        repository: AbstractRepository,
        notifier: Notifier,
        token_issuer: TokenIssuer,
        credentials: CredentialStore,
        *,
        token_expiry_minutes: int = 15,
        temporary_token_expires: timedelta = timedelta(minutes=30),
    ):
        self.repository = repository
        self.notifier = notifier
        self.token_issuer = token_issuer
        self.credentials = credentials
        self.token_expiry_minutes = token_expiry_minutes
        self.temporary_token_expires = temporary_token_expires

    # Registration and verification

    def register(self, name: str, email: str, password: str, confirm_password: str) -> AuthResult:
        """Create an unverified account and email it a verification token.

        The returned credential is temporary: it authenticates the caller
        but the account stays unverified until ``verify_email`` succeeds.
        """

        name = (name or "").strip()
        email = (email or "").strip()
        if not name or not email or not password:
            raise ValidationError("All fields are required.")
        if password != confirm_password:
            raise ValidationError("Passwords do not match.")

        if self.repository.find_user_by_email(email) is not None:
            raise ConflictError("Email already registered.")

        with self.repository.transaction():
            user = self.repository.create_user(
                name=name,
                email=email,
                password_hash=self.credentials.hash_password(password),
                is_email_verified=False,
            )
            token = self._issue_token(user, EMAIL_VERIFICATION)

        current_app.logger.info("User %s registered", user.id)
        self._notify(notices.VERIFICATION, user, token)
        return AuthResult(self._access_token(user, temporary=True), user, temporary=True)

    def verify_email(self, token: str) -> AuthResult:
        if not token:
            raise ValidationError("Token is required.")

        now = self.token_issuer.now()
        record = self._checked_token(token, EMAIL_VERIFICATION, now)

        with self.repository.transaction():
            self._consume(record, now)
            user = self._require_user(record.user_id)
            user.is_email_verified = True
            self.repository.update_user(user)

        current_app.logger.info("Email verification completed for user %s", user.id)
        return AuthResult(self._access_token(user), user)

    def resend_verification(self, email: str) -> None:
        email = (email or "").strip()
        if not email:
            raise ValidationError("Email is required.")

        user = self.repository.find_user_by_email(email)
        if user is None:
            raise NotFoundError("User not found.")
        if user.is_email_verified:
            raise ConflictError("Email already verified.")

        with self.repository.transaction():
            token = self._issue_token(user, EMAIL_VERIFICATION)

        self._notify(notices.VERIFICATION, user, token)

    def verification_status(self, user_id: int) -> dict:
        user = self.get_user(user_id)
        latest = self.repository.find_latest_token(user.id, EMAIL_VERIFICATION)
        state = self.token_issuer.state_of(latest)
        return {
            "is_email_verified": bool(user.is_email_verified),
            "token_state": state.value,
            "token_expires_at": latest.expires_at.isoformat()
            if state is TokenState.ISSUED
            else None,
        }

    # Sign in

    def login(self, email: str, password: str) -> AuthResult:
        email = (email or "").strip()
        if not email or not password:
            raise ValidationError("Email and password required.")

        user = self.repository.find_user_by_email(email)
        if user is None:
            raise NotFoundError("User not found.")
        if not self.credentials.verify_password(user.password_hash, password):
            current_app.logger.info("Failed login for user %s", user.id)
            raise AuthError("Invalid password.")

        return AuthResult(self._access_token(user), user)

    # Password reset

    def request_password_reset(self, email: str) -> str:
        """Issue a reset token if the account exists.

        The return value is identical whether or not the email is known.
        """

        email = (email or "").strip()
        if not email:
            raise ValidationError("Email is required.")

        user = self.repository.find_user_by_email(email)
        if user is not None:
            with self.repository.transaction():
                token = self._issue_token(user, PASSWORD_RESET)
            self._notify(notices.PASSWORD_RESET, user, token)

        return PASSWORD_RESET_REQUESTED

    def reset_password(self, token: str, new_password: str, confirm_password: str) -> User:
        if not token or not new_password:
            raise ValidationError("Token and password required.")
        if new_password != confirm_password:
            raise ValidationError("Passwords do not match.")

        now = self.token_issuer.now()
        record = self._checked_token(token, PASSWORD_RESET, now)

        with self.repository.transaction():
            self._consume(record, now)
            user = self._require_user(record.user_id)
            user.password_hash = self.credentials.hash_password(new_password)
            self.repository.update_user(user)

        current_app.logger.info("Password reset completed for user %s", user.id)
        return user

    # Profile

    def get_user(self, user_id: int) -> User:
        return self._require_user(user_id)

    def update_profile(
        self,
        user_id: int,
        *,
        name: str | None = None,
        phone: str | None = None,
        address: str | None = None,
    ) -> User:
        """Update only the profile fields that were supplied with a value."""

        user = self._require_user(user_id)
        with self.repository.transaction():
            if name:
                user.name = name.strip()
            if phone:
                user.phone = phone.strip()
            if address:
                user.address = address.strip()
            self.repository.update_user(user)
        return user

    # Helpers

    def _require_user(self, user_id: int) -> User:
        user = self.repository.find_user_by_id(user_id)
        if user is None:
            raise NotFoundError("User not found.")
        return user

    def _checked_token(self, token: str, expected_type: str, now: datetime) -> VerificationToken:
        record = self.repository.find_verification_token(token)
        outcome = self.token_issuer.evaluate(record, expected_type, now)
        if outcome is not TokenOutcome.VALID:
            error_class, message = _OUTCOME_ERRORS[outcome]
            raise error_class(message)
        return record

    def _consume(self, record: VerificationToken, now: datetime) -> None:
        # Conditional update: of two concurrent consumers only one flips the flag.
        if not self.repository.mark_token_used(record.id, now):
            raise AlreadyUsedError("Token already used.")

    def _issue_token(self, user: User, token_type: str) -> str:
        superseded = self.repository.delete_unused_tokens(user.id, token_type)
        if superseded:
            current_app.logger.info(
                "Superseded %s unused %s token(s) for user %s", superseded, token_type, user.id
            )

        value = self.token_issuer.issue()
        self.repository.create_verification_token(
            user_id=user.id,
            email=user.email,
            token=value,
            token_type=token_type,
            expires_at=self.token_issuer.expiry_from(
                self.token_issuer.now(), self.token_expiry_minutes
            ),
        )
        return value

    def _notify(self, kind: str, user: User, token: str) -> bool:
        delivered = self.notifier.notify(kind, user.email, token, user.name)
        if not delivered:
            current_app.logger.warning("Could not deliver %s email to user %s", kind, user.id)
        return delivered

    def _access_token(self, user: User, temporary: bool = False) -> str:
        # A temporary credential differs from a full one only by its lifetime.
        if temporary:
            return create_access_token(
                identity=str(user.id), expires_delta=self.temporary_token_expires
            )
        return create_access_token(identity=str(user.id))
