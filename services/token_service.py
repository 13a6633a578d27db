"""Opaque token issuance and the verification token state machine.

A token moves through ``NONE -> ISSUED -> {CONSUMED | EXPIRED | SUPERSEDED}``
for a given (user, type). Superseded tokens are deleted when a newer one is
issued, so afterwards they are indistinguishable from tokens that never
existed.
"""

from __future__ import annotations

import enum
import secrets
from datetime import datetime, timedelta
from typing import Callable

from models.verification_token import VerificationToken
from utils.clock import utcnow


DEFAULT_EXPIRY_MINUTES = 15
TOKEN_BYTES = 32


class TokenState(enum.Enum):
    NONE = "none"
    ISSUED = "issued"
    CONSUMED = "consumed"
    EXPIRED = "expired"


class TokenOutcome(enum.Enum):
    """Result of checking a presented token against an expected type."""

    VALID = "valid"
    UNKNOWN = "unknown"
    WRONG_TYPE = "wrong_type"
    EXPIRED = "expired"
    ALREADY_USED = "already_used"


class TokenIssuer:
    """Generates opaque tokens and evaluates presented ones."""

    def __init__(self, clock: Callable[[], datetime] = utcnow, token_bytes: int = TOKEN_BYTES):
        self.clock = clock
        self.token_bytes = token_bytes

    def now(self) -> datetime:
        return self.clock()

    def issue(self) -> str:
        """Return a random hex token. Uniqueness is left to the store constraint."""

        return secrets.token_hex(self.token_bytes)

    @staticmethod
    def expiry_from(now: datetime, minutes: int = DEFAULT_EXPIRY_MINUTES) -> datetime:
        return now + timedelta(minutes=minutes)

    @staticmethod
    def is_expired(expires_at: datetime, now: datetime) -> bool:
        return now > expires_at

    def state_of(self, record: VerificationToken | None, now: datetime | None = None) -> TokenState:
        """Lifecycle state of a stored token. Consumption is terminal."""

        if record is None:
            return TokenState.NONE
        if record.is_used:
            return TokenState.CONSUMED
        if self.is_expired(record.expires_at, now or self.now()):
            return TokenState.EXPIRED
        return TokenState.ISSUED

    def evaluate(
        self,
        record: VerificationToken | None,
        expected_type: str,
        now: datetime | None = None,
    ) -> TokenOutcome:
        """Check a presented token.

        Checks run in a fixed order: existence, type, expiry, then use. A
        token that is both expired and used therefore reports ``EXPIRED``.
        """

        if record is None:
            return TokenOutcome.UNKNOWN
        if record.token_type != expected_type:
            return TokenOutcome.WRONG_TYPE
        if self.is_expired(record.expires_at, now or self.now()):
            return TokenOutcome.EXPIRED
        if record.is_used:
            return TokenOutcome.ALREADY_USED
        return TokenOutcome.VALID
