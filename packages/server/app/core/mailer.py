"""
Outbound email.

``Mailer.send`` is the only transport seam: it returns ``False`` on delivery
failure instead of raising. Flows that cannot complete without the email
(verification, reset, invite) go through ``send_required``, which turns a
failed send into ``DependencyFailure``.
"""

from __future__ import annotations

import asyncio
import html
import smtplib
from email.mime.multipart import MIMEMultipart
from email.mime.text import MIMEText
from email.utils import formataddr
from urllib.parse import urlencode

import structlog
from fastapi import Request

from app.core.config import Settings
from app.core.errors import DependencyFailure

log = structlog.get_logger()


class Mailer:
    def __init__(self, settings: Settings):
        self._settings = settings

    def build_link(self, path: str, **query: str) -> str:
        base = self._settings.frontend_url.rstrip("/")
        link = f"{base}/{path.lstrip('/')}"
        if query:
            link = f"{link}?{urlencode(query)}"
        return link

    def _build_message(self, to: str, subject: str, html_body: str) -> MIMEMultipart:
        msg = MIMEMultipart("alternative")
        msg["Subject"] = subject
        msg["From"] = formataddr((self._settings.email_from_name, self._settings.email_from))
        msg["To"] = to
        msg.attach(MIMEText(html_body, "html"))
        return msg

    def _deliver(self, msg: MIMEMultipart, to: str) -> None:
        s = self._settings
        with smtplib.SMTP(s.smtp_host, s.smtp_port, timeout=s.smtp_timeout_seconds) as server:
            if s.smtp_use_tls:
                server.starttls()
            if s.smtp_username:
                server.login(s.smtp_username, s.smtp_password)
            server.sendmail(s.email_from, [to], msg.as_string())

    async def send(self, to: str, subject: str, html_body: str) -> bool:
        """Send one HTML email. Returns True on success, False on any failure."""
        if not self._settings.smtp_host:
            log.info("email.skipped", to=to, subject=subject, reason="smtp_host not configured")
            return True

        msg = self._build_message(to, subject, html_body)
        try:
            await asyncio.to_thread(self._deliver, msg, to)
        except smtplib.SMTPAuthenticationError:
            log.error("email.auth_failed", host=self._settings.smtp_host)
            return False
        except (smtplib.SMTPException, OSError) as exc:
            log.error("email.send_failed", to=to, subject=subject, error=str(exc))
            return False

        log.info("email.sent", to=to, subject=subject)
        return True

    async def send_required(self, to: str, subject: str, html_body: str, *, what: str) -> None:
        """Send an email the caller cannot proceed without."""
        if not await self.send(to, subject, html_body):
            raise DependencyFailure(f"Failed to send {what} email")


# ---------------------------------------------------------------------------
# Templates
# ---------------------------------------------------------------------------

def _layout(heading: str, body: str, link: str, button: str) -> str:
    return (
        "<html><body style=\"font-family:sans-serif\">"
        f"<h2>{html.escape(heading)}</h2>"
        f"<p>{body}</p>"
        f"<p><a href=\"{html.escape(link, quote=True)}\" "
        "style=\"background:#3b82f6;color:#fff;padding:10px 16px;"
        f"border-radius:6px;text-decoration:none\">{html.escape(button)}</a></p>"
        f"<p style=\"color:#6b7280;font-size:12px\">{html.escape(link)}</p>"
        "</body></html>"
    )


def verification_email(name: str, link: str) -> tuple[str, str]:
    body = (
        f"Hi {html.escape(name)}, please confirm your email address. "
        "This link expires in 1 hour."
    )
    return "Verify your email", _layout("Verify your email", body, link, "Verify Email")


def reset_password_email(name: str, link: str) -> tuple[str, str]:
    body = (
        f"Hi {html.escape(name)}, we received a request to reset your password. "
        "This link expires in 15 minutes."
    )
    return "Reset your password", _layout("Reset your password", body, link, "Reset Password")


def invite_email(inviter: str, workspace: str, role: str, link: str) -> tuple[str, str]:
    body = (
        f"{html.escape(inviter)} invited you to join <strong>{html.escape(workspace)}</strong> "
        f"as {html.escape(role)}. This invitation expires in 7 days."
    )
    return "You're invited to join a workspace", _layout(
        "Workspace invitation", body, link, "Accept Invitation"
    )


def get_mailer(request: Request) -> Mailer:
    """FastAPI dependency: the ``Mailer`` built at startup."""
    return request.app.state.mailer
