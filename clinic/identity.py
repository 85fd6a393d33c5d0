"""
Identity provider: credentials, email verification, JWT sessions and
session-change notifications.
"""

import sys
import uuid
from datetime import datetime, timedelta
from typing import Any, Callable, Dict, List, Optional

import bcrypt
import jwt
from sqlalchemy.exc import IntegrityError

from clinic.config import (
    APP_BASE_URL, SECRET_KEY, TOKEN_EXPIRY_HOURS, VERIFICATION_EXPIRY_HOURS,
)
from clinic.errors import (
    AlreadyRegistered, InvalidCredentials, MailDeliveryError, NotVerified, Unavailable,
)
from clinic.models import Account, Role, Session, Verification

SIGNED_IN = "SIGNED_IN"
SIGNED_OUT = "SIGNED_OUT"

AuthListener = Callable[[str, Session], None]

_DUMMY_HASH = bcrypt.hashpw(b"no-such-account", bcrypt.gensalt())


def account_from_row(row, role: Optional[Role]) -> Account:
    return Account(
        id=row["id"],
        email=row["email"],
        full_name=row["full_name"],
        role=role,
        verification=Verification(row["verification"]),
        created_at=row["created_at"],
    )


def verification_email(link: str):
    subject = "Confirm your signup"
    html = (
        "<h2>Confirm your signup</h2>"
        "<p>Follow this link to confirm your email address:</p>"
        f'<p><a href="{link}">Confirm your email</a></p>'
    )
    return subject, html


class IdentityProvider:
    """
    Store-backed identity service.

    Sessions live in memory keyed by their JWT; a token is honoured only
    while it both verifies and is still present in ``sessions``.
    """

    def __init__(self, store, transport=None, secret_key: str = SECRET_KEY,
                 base_url: str = APP_BASE_URL):
        self.store = store
        self.transport = transport
        self.secret_key = secret_key
        self.base_url = base_url.rstrip("/")
        self.sessions: Dict[str, Session] = {}
        self._listeners: List[AuthListener] = []

    # ── Tokens ───────────────────────────────────────────────────────

    def _encode(self, payload: Dict[str, Any], hours: int) -> str:
        now = datetime.utcnow()
        payload = dict(payload, iat=now, exp=now + timedelta(hours=hours))
        return jwt.encode(payload, self.secret_key, algorithm="HS256")

    def verify_token(self, token: str, purpose: str) -> Optional[Dict[str, Any]]:
        """Decode a JWT and check its purpose; None when invalid or expired."""
        try:
            payload = jwt.decode(token, self.secret_key, algorithms=["HS256"])
        except jwt.ExpiredSignatureError:
            return None
        except jwt.InvalidTokenError:
            return None
        if payload.get("purpose") != purpose:
            return None
        return payload

    # ── Sign-up / verification ───────────────────────────────────────

    def sign_up(self, email: str, password: str, metadata: Dict[str, Any]) -> Account:
        if self.store.find_account(email) is not None:
            raise AlreadyRegistered(f"An account already exists for {email}.")

        password_hash = bcrypt.hashpw(password.encode("utf-8"), bcrypt.gensalt())
        account_id = str(uuid.uuid4())
        created_at = datetime.utcnow()
        try:
            self.store.insert_account(
                account_id, email, password_hash.decode("utf-8"),
                metadata.get("full_name", ""), metadata.get("user_type"), created_at,
            )
        except IntegrityError as e:
            raise AlreadyRegistered(f"An account already exists for {email}.") from e
        print(f"[auth] Created pending account {account_id} for {email}")

        try:
            self.send_verification_link(email, account_id)
        except MailDeliveryError as e:
            print(f"[WARN] Verification link for {email} not sent: {e}", file=sys.stderr)

        return Account(
            id=account_id, email=email, full_name=metadata.get("full_name", ""),
            role=None, verification=Verification.PENDING, created_at=created_at,
        )

    def send_verification_link(self, email: str, account_id: str) -> None:
        token = self._encode(
            {"sub": account_id, "email": email, "purpose": "verify"},
            VERIFICATION_EXPIRY_HOURS,
        )
        link = f"{self.base_url}/api/auth/confirm?token={token}"
        if self.transport is None:
            print(f"[auth] Verification link for {email}: {link}")
            return
        subject, html = verification_email(link)
        self.transport.send(email, subject, html)

    def resend_verification(self, email: str) -> Optional[Account]:
        """
        Send a fresh link to a pending account and return it, with its stored
        role. Unknown or already verified emails return None.
        """
        row = self.store.find_account(email)
        if row is None or row["verification"] == Verification.VERIFIED.value:
            print(f"[auth] No pending account for {email}; resend skipped")
            return None
        try:
            self.send_verification_link(email, row["id"])
        except MailDeliveryError as e:
            raise Unavailable(f"Could not resend verification to {email}.") from e

        role = self.store.get_role(row["id"])
        if role is None and row["user_type"]:
            role = Role.parse(row["user_type"])
        return account_from_row(row, role)

    def confirm(self, token: str) -> Session:
        """Handle the out-of-band confirmation link; opens a session."""
        payload = self.verify_token(token, purpose="verify")
        if not payload:
            raise InvalidCredentials("Verification link is invalid or expired.")
        row = self.store.get_account(payload["sub"])
        if row is None:
            raise InvalidCredentials("Verification link is invalid or expired.")
        if row["verification"] != Verification.VERIFIED.value:
            self.store.mark_verified(row["id"], datetime.utcnow())
            print(f"[auth] Verified {row['email']}")
        return self._open_session(row)

    # ── Sessions ─────────────────────────────────────────────────────

    def sign_in(self, email: str, password: str) -> Session:
        row = self.store.find_account(email)
        # Unknown emails still pay for a hash check.
        stored = row["password_hash"].encode("utf-8") if row is not None else _DUMMY_HASH
        password_ok = bcrypt.checkpw(password.encode("utf-8"), stored)
        if row is None or not password_ok:
            raise InvalidCredentials("Invalid email or password.")
        if row["verification"] != Verification.VERIFIED.value:
            raise NotVerified("Please confirm your email address before signing in.")
        return self._open_session(row)

    def _open_session(self, row) -> Session:
        token = self._encode(
            {"sub": row["id"], "email": row["email"], "purpose": "session",
             "jti": uuid.uuid4().hex},
            TOKEN_EXPIRY_HOURS,
        )
        now = datetime.utcnow()
        session = Session(
            access_token=token,
            account_id=row["id"],
            email=row["email"],
            created_at=now,
            expires_at=now + timedelta(hours=TOKEN_EXPIRY_HOURS),
            last_activity=now,
        )
        self.sessions[token] = session
        self._emit(SIGNED_IN, session)
        return session

    def sign_out(self, token: str) -> None:
        session = self.sessions.pop(token, None)
        if session is not None:
            self._emit(SIGNED_OUT, session)

    def get_session(self, token: str) -> Optional[Session]:
        if not self.verify_token(token, purpose="session"):
            self.sessions.pop(token, None)
            return None
        session = self.sessions.get(token)
        if session is None:
            return None
        if session.expired():
            del self.sessions[token]
            return None
        session.last_activity = datetime.utcnow()
        return session

    def cleanup_expired_sessions(self) -> int:
        """Remove sessions that have been inactive beyond TOKEN_EXPIRY_HOURS."""
        now = datetime.utcnow()
        expired = [
            tok for tok, s in self.sessions.items()
            if s.expired(now)
            or (now - s.last_activity).total_seconds() > TOKEN_EXPIRY_HOURS * 3600
        ]
        for tok in expired:
            del self.sessions[tok]
        if expired:
            print(f"[cleanup] Removed {len(expired)} expired sessions")
        return len(expired)

    # ── Notifications ────────────────────────────────────────────────

    def on_auth_state_change(self, listener: AuthListener) -> Callable[[], None]:
        """Subscribe to SIGNED_IN / SIGNED_OUT; returns an unsubscribe callable."""
        self._listeners.append(listener)

        def unsubscribe():
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    def _emit(self, event: str, session: Session) -> None:
        for listener in list(self._listeners):
            try:
                listener(event, session)
            except Exception as e:
                print(f"[WARN] Auth listener failed on {event}: {e}", file=sys.stderr)
