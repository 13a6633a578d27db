"""Unit tests for token issuance and the token state machine."""

from __future__ import annotations

from datetime import datetime, timedelta

from models.verification_token import EMAIL_VERIFICATION, PASSWORD_RESET, VerificationToken
from services.token_service import TokenIssuer, TokenOutcome, TokenState

NOW = datetime(2026, 1, 1, 12, 0, 0)


def _record(**overrides) -> VerificationToken:
    fields = {
        "user_id": 1,
        "email": "token@example.com",
        "token": "abc",
        "token_type": EMAIL_VERIFICATION,
        "expires_at": NOW + timedelta(minutes=15),
        "is_used": False,
    }
    fields.update(overrides)
    return VerificationToken(**fields)


def test_issue_returns_distinct_hex_tokens():
    issuer = TokenIssuer()
    first, second = issuer.issue(), issuer.issue()

    assert first != second
    assert len(first) == 64
    int(first, 16)


def test_expiry_is_fifteen_minutes_by_default():
    assert TokenIssuer.expiry_from(NOW) == NOW + timedelta(minutes=15)


def test_token_is_valid_until_exact_expiry_instant():
    expires_at = NOW + timedelta(minutes=15)

    assert TokenIssuer.is_expired(expires_at, expires_at) is False
    assert TokenIssuer.is_expired(expires_at, expires_at + timedelta(seconds=1)) is True


def test_clock_is_injectable():
    issuer = TokenIssuer(clock=lambda: NOW)
    assert issuer.now() == NOW


def test_evaluate_outcomes():
    issuer = TokenIssuer(clock=lambda: NOW)

    assert issuer.evaluate(None, EMAIL_VERIFICATION) is TokenOutcome.UNKNOWN
    assert issuer.evaluate(_record(), EMAIL_VERIFICATION) is TokenOutcome.VALID
    assert issuer.evaluate(_record(), PASSWORD_RESET) is TokenOutcome.WRONG_TYPE
    assert (
        issuer.evaluate(_record(expires_at=NOW - timedelta(seconds=1)), EMAIL_VERIFICATION)
        is TokenOutcome.EXPIRED
    )
    assert issuer.evaluate(_record(is_used=True), EMAIL_VERIFICATION) is TokenOutcome.ALREADY_USED


def test_evaluate_checks_type_before_expiry_and_expiry_before_use():
    issuer = TokenIssuer(clock=lambda: NOW)
    stale = _record(expires_at=NOW - timedelta(minutes=1), is_used=True)

    assert issuer.evaluate(stale, PASSWORD_RESET) is TokenOutcome.WRONG_TYPE
    assert issuer.evaluate(stale, EMAIL_VERIFICATION) is TokenOutcome.EXPIRED


def test_state_of():
    issuer = TokenIssuer(clock=lambda: NOW)

    assert issuer.state_of(None) is TokenState.NONE
    assert issuer.state_of(_record()) is TokenState.ISSUED
    assert issuer.state_of(_record(is_used=True)) is TokenState.CONSUMED
    assert issuer.state_of(_record(expires_at=NOW - timedelta(minutes=1))) is TokenState.EXPIRED
    # consumption is terminal even after the expiry instant passes
    assert (
        issuer.state_of(_record(is_used=True, expires_at=NOW - timedelta(minutes=1)))
        is TokenState.CONSUMED
    )
