"""Single-use verification token model.

One table holds both email verification and password reset tokens. Used
tokens are kept as an audit trail; only unused tokens that were superseded
by a newer one of the same type are deleted.
"""

from utils.clock import utcnow

from . import db


EMAIL_VERIFICATION = "email_verification"
PASSWORD_RESET = "password_reset"
TOKEN_TYPES = (EMAIL_VERIFICATION, PASSWORD_RESET)


class VerificationToken(db.Model):
    __tablename__ = "verification_tokens"

    id = db.Column(db.Integer, primary_key=True)
    user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=False, index=True)
    email = db.Column(db.String(255), nullable=False)
    token = db.Column(db.String(128), unique=True, nullable=False, index=True)
    token_type = db.Column(
        "type",
        db.Enum(*TOKEN_TYPES, name="verification_token_type"),
        nullable=False,
    )
    expires_at = db.Column(db.DateTime, nullable=False)
    is_used = db.Column(db.Boolean, nullable=False, default=False, server_default=db.false())
    used_at = db.Column(db.DateTime, nullable=True)
    created_at = db.Column(db.DateTime, nullable=False, default=utcnow)

    user = db.relationship(
        "User",
        backref=db.backref("verification_tokens", lazy="dynamic"),
    )

    def to_dict(self) -> dict:
        # The token value itself is a credential and is never serialized.
        return {
            "id": self.id,
            "user_id": self.user_id,
            "type": self.token_type,
            "expires_at": self.expires_at.isoformat() if self.expires_at else None,
            "is_used": self.is_used,
            "used_at": self.used_at.isoformat() if self.used_at else None,
            "created_at": self.created_at.isoformat() if self.created_at else None,
        }

    def __repr__(self) -> str:
        return f"<VerificationToken user_id={self.user_id} type={self.token_type} used={self.is_used}>"
