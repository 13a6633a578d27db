"""Outbound account emails.

Two notifiers share one interface. ``build_notifier`` picks one when the
application starts; callers never branch on which one they hold.
"""

from __future__ import annotations

import logging
import smtplib
from abc import ABC, abstractmethod

from flask import Flask
from flask_mail import Mail, Message


VERIFICATION = "verification"
PASSWORD_RESET = "password_reset"

_SUBJECTS = {
    VERIFICATION: "Verify Your MyShop Account",
    PASSWORD_RESET: "Reset Your MyShop Password",
}
_LINK_PATHS = {
    VERIFICATION: "verify-email",
    PASSWORD_RESET: "reset-password",
}


class Notifier(ABC):
    """Delivers verification and password reset emails."""

    def __init__(self, frontend_url: str, expiry_minutes: int, logger: logging.Logger):
        self.frontend_url = frontend_url.rstrip("/")
        self.expiry_minutes = expiry_minutes
        self.logger = logger

    def link_for(self, kind: str, token: str) -> str:
        if kind not in _LINK_PATHS:
            raise ValueError(f"Unknown notification kind: {kind}")
        return f"{self.frontend_url}/{_LINK_PATHS[kind]}?token={token}"

    @abstractmethod
    def notify(self, kind: str, email: str, token: str, display_name: str) -> bool:
        """Send the email for ``kind``. Returns False when delivery failed."""


class LoggingNotifier(Notifier):
    """Writes the email link to the application log instead of sending it."""

    def notify(self, kind: str, email: str, token: str, display_name: str) -> bool:
        link = self.link_for(kind, token)
        self.logger.info(
            "Email delivery not configured; %s email for %s (%s): %s",
            kind,
            email,
            display_name,
            link,
        )
        return True


class MailNotifier(Notifier):
    """Sends account emails over SMTP through Flask-Mail."""

    def __init__(
        self,
        mail: Mail,
        sender: str | None,
        frontend_url: str,
        expiry_minutes: int,
        logger: logging.Logger,
    ):
        super().__init__(frontend_url, expiry_minutes, logger)
        self.mail = mail
        self.sender = sender

    def notify(self, kind: str, email: str, token: str, display_name: str) -> bool:
        link = self.link_for(kind, token)
        message = Message(
            subject=_SUBJECTS[kind],
            recipients=[email],
            sender=self.sender,
            body=self._render_text(kind, link, display_name),
            html=self._render_html(kind, link, display_name),
        )
        try:
            self.mail.send(message)
        except (smtplib.SMTPException, OSError) as exc:
            self.logger.error("Failed to send %s email to %s: %s", kind, email, exc)
            return False
        self.logger.info("%s email sent to %s", kind, email)
        return True

    def _render_text(self, kind: str, link: str, display_name: str) -> str:
        if kind == VERIFICATION:
            intro = (
                f"Welcome to MyShop, {display_name}!\n\n"
                "Thank you for registering. Please verify your email to activate your account:"
            )
            outro = ""
        else:
            intro = (
                f"Hi {display_name},\n\n"
                "We received a request to reset your password. Use the link below to proceed:"
            )
            outro = " If you didn't request this, ignore this email."
        return f"{intro}\n\n{link}\n\nThis link expires in {self.expiry_minutes} minutes.{outro}\n"

    def _render_html(self, kind: str, link: str, display_name: str) -> str:
        if kind == VERIFICATION:
            heading = f"Welcome to MyShop, {display_name}!"
            lead = "Thank you for registering. Please verify your email to activate your account."
            action = "Verify Email"
        else:
            heading = "Reset Your Password"
            lead = f"Hi {display_name}, we received a request to reset your password."
            action = "Reset Password"
        return (
            '<div style="font-family: Arial, sans-serif; max-width: 600px; margin: 0 auto;">'
            f"<h2>{heading}</h2>"
            f"<p>{lead}</p>"
            f'<p><a href="{link}">{action}</a></p>'
            f"<p>Or copy this link:</p><p>{link}</p>"
            f'<p style="color: #666; font-size: 12px;">This link expires in {self.expiry_minutes} minutes.</p>'
            "</div>"
        )


def mail_configured(config) -> bool:
    password = config.get("MAIL_PASSWORD")
    return bool(config.get("MAIL_SERVER") and password and password != "dev")


def build_notifier(app: Flask, mail: Mail) -> Notifier:
    """Choose the notifier for this application once, from configuration."""

    frontend_url = app.config.get("FRONTEND_URL", "")
    expiry_minutes = app.config.get("TOKEN_EXPIRY_MINUTES", 15)

    if mail_configured(app.config):
        app.logger.info("Email delivery enabled via %s", app.config["MAIL_SERVER"])
        return MailNotifier(
            mail,
            app.config.get("MAIL_DEFAULT_SENDER"),
            frontend_url,
            expiry_minutes,
            app.logger,
        )

    app.logger.info("Email delivery not configured; account emails will be logged")
    return LoggingNotifier(frontend_url, expiry_minutes, app.logger)
