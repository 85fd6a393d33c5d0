"""
Mail transports and the best-effort confirmation dispatcher.
"""

import sys
import uuid
from concurrent.futures import Future, ThreadPoolExecutor
from typing import Optional, Tuple

import requests

from clinic.config import (
    APP_BASE_URL, MAIL_FROM, MAIL_TIMEOUT_SECONDS, RESEND_API_KEY, RESEND_API_URL,
    ROLE_CONFIG,
)
from clinic.errors import MailDeliveryError, ValidationError
from clinic.models import Role


# ── Transports ───────────────────────────────────────────────────────

class ConsoleTransport:
    """Development transport: prints instead of sending."""

    def send(self, to: str, subject: str, html: str) -> str:
        print(f"[mail] To: {to} | Subject: {subject}")
        return f"console-{uuid.uuid4().hex[:12]}"


class ResendTransport:
    """Deliver mail through the Resend HTTP API."""

    def __init__(self, api_key: str, sender: str = MAIL_FROM,
                 timeout: float = MAIL_TIMEOUT_SECONDS, http=None):
        self.api_key = api_key
        self.sender = sender
        self.timeout = timeout
        self.http = http or requests.Session()

    def send(self, to: str, subject: str, html: str) -> str:
        try:
            response = self.http.post(
                RESEND_API_URL,
                json={"from": self.sender, "to": [to], "subject": subject, "html": html},
                headers={"Authorization": f"Bearer {self.api_key}"},
                timeout=self.timeout,
            )
            response.raise_for_status()
            return response.json().get("id", "")
        except (requests.RequestException, ValueError) as e:
            raise MailDeliveryError(f"Mail delivery to {to} failed: {e}") from e


def init_transport():
    """Pick the Resend transport when an API key is configured."""
    if RESEND_API_KEY:
        print("[init] Mail transport: Resend")
        return ResendTransport(RESEND_API_KEY)
    print("[init] RESEND_API_KEY not set; mail will be printed to the console")
    return ConsoleTransport()


# ── Confirmation message ─────────────────────────────────────────────

def confirmation_message(email: str, role: Role, base_url: str = APP_BASE_URL) -> Tuple[str, str]:
    """Return (subject, html) for the role-specific welcome message."""
    role_title = role.value.capitalize()
    dashboard_url = base_url.rstrip("/") + ROLE_CONFIG[role].redirect_to
    subject = f"Welcome to Clinic Management - {role_title} Account Created"
    html = f"""
        <div style="max-width: 600px; margin: 0 auto; font-family: Arial, sans-serif;">
          <h1 style="color: #2563eb; text-align: center;">Welcome to Clinic Management!</h1>
          <h2>Account Successfully Created</h2>
          <p>Your <strong>{role_title}</strong> account has been successfully created for:</p>
          <p><strong>{email}</strong></p>
          <h3>Next Steps:</h3>
          <ol>
            <li>Check your email for the verification link</li>
            <li>Click the verification link to confirm your email address</li>
            <li>Return to the app and log in with your credentials</li>
            <li>Access your {role.value} dashboard to get started</li>
          </ol>
          <p style="text-align: center;">
            <a href="{dashboard_url}">Go to {role_title} Dashboard</a>
          </p>
          <p style="text-align: center; color: #64748b; font-size: 12px;">
            This email was sent automatically. Please do not reply to this email.
          </p>
        </div>
    """
    return subject, html


def _log_detached_failure(future: Future) -> None:
    error = future.exception()
    if error is not None:
        print(f"[WARN] Detached confirmation task failed: {error}", file=sys.stderr)


class ConfirmationDispatcher:
    """
    Courtesy notifier layered on top of the identity provider's own
    verification link. Delivery problems are logged, never raised, except
    for input validation on ``resend``.
    """

    def __init__(self, transport, identity=None, executor=None):
        self.transport = transport
        self.identity = identity
        self.executor = executor or ThreadPoolExecutor(
            max_workers=1, thread_name_prefix="confirmation-mail"
        )

    def send(self, email: str, role: Role) -> bool:
        print(f"[mail] Sending confirmation email to {email} for {role.value}")
        try:
            subject, html = confirmation_message(email, role)
            message_id = self.transport.send(email, subject, html)
        except Exception as e:
            print(f"[WARN] Confirmation email to {email} failed: {e}", file=sys.stderr)
            return False
        print(f"[mail] Confirmation email sent: {message_id}")
        return True

    def dispatch(self, email: str, role: Role) -> Future:
        """Run ``send`` as a detached task; the caller never waits on it."""
        future = self.executor.submit(self.send, email, role)
        future.add_done_callback(_log_detached_failure)
        return future

    def resend(self, email: Optional[str], role) -> Optional[Future]:
        """
        Re-trigger the verification link, then the courtesy message.

        The courtesy message goes only to an account still awaiting
        confirmation, and names the role stored for it rather than *role*.
        Returns None when nothing was dispatched.
        """
        email = (email or "").strip().lower()
        if not email:
            raise ValidationError("Email is required to resend the confirmation.")
        role = Role.parse(role)
        if self.identity is not None:
            account = self.identity.resend_verification(email)
            if account is None:
                return None
            if account.role is not None and account.role is not role:
                print(
                    f"[WARN] Resend for {email} asked for {role.value}; "
                    f"account is {account.role.value}",
                    file=sys.stderr,
                )
                role = account.role
        return self.dispatch(email, role)
