"""
Account directory: sign-up, sign-in, role assignment and session routing
for one client context.
"""

import re
import sys
from typing import Callable, Optional, Tuple

from clinic.config import HOME_ROUTE, MIN_PASSWORD_LENGTH, ROLE_CONFIG
from clinic.errors import ClinicError, ValidationError
from clinic.identity import SIGNED_IN, SIGNED_OUT
from clinic.models import Account, Role, Session

EMAIL_PATTERN = re.compile(r"^[^@\s]+@[^@\s]+\.[^@\s]+$")


def normalise_email(email: Optional[str]) -> str:
    email = (email or "").strip().lower()
    if not email:
        raise ValidationError("Email is required.")
    if not EMAIL_PATTERN.match(email):
        raise ValidationError(f"'{email}' is not a valid email address.")
    return email


def route_for(role: Optional[Role]) -> str:
    """Dashboard path for a role; the home page when the role is unknown."""
    if role is None:
        return HOME_ROUTE
    return ROLE_CONFIG[role].redirect_to


class AccountDirectory:
    """
    Gatekeeper in front of the patient registry and visit coordinator.

    Holds at most one active session for its client context.
    """

    def __init__(self, identity, store, dispatcher=None, session: Optional[Session] = None):
        self.identity = identity
        self.store = store
        self.dispatcher = dispatcher
        self._session = session
        self._pending_email: Optional[str] = None

    # ── Sign-up ──────────────────────────────────────────────────────

    def sign_up(self, email: str, password: str, full_name: str, role) -> Account:
        email = normalise_email(email)
        if not password or len(password) < MIN_PASSWORD_LENGTH:
            raise ValidationError(
                f"Password must be at least {MIN_PASSWORD_LENGTH} characters."
            )
        full_name = (full_name or "").strip()
        if not full_name:
            raise ValidationError("Full name is required.")
        role = Role.parse(role)

        account = self.identity.sign_up(
            email, password, {"full_name": full_name, "user_type": role.value}
        )
        self._pending_email = email

        try:
            account.role = self.assign_role(account.id, role)
        except ClinicError as e:
            # Sign-up stands; the role is repaired on the next sign-in.
            print(
                f"[ERROR] Role assignment failed for account {account.id} "
                f"({email}, {role.value}): {e}. Needs operator follow-up.",
                file=sys.stderr,
            )

        if self.dispatcher is not None:
            self.dispatcher.dispatch(email, role)
        return account

    def assign_role(self, account_id: str, role) -> Role:
        """Idempotent: the same role again is a no-op, a different one is refused."""
        role = Role.parse(role)
        previous = self.store.insert_role_if_absent(account_id, role)
        if previous is not None and previous != role:
            raise ValidationError(
                f"Account {account_id} already has role '{previous.value}'."
            )
        return role

    def resend_confirmation(self, email: Optional[str], role):
        email = normalise_email(email)
        future = self.dispatcher.resend(email, role)
        self._pending_email = email
        return future

    # ── Sign-in / sessions ───────────────────────────────────────────

    def sign_in(self, email: str, password: str) -> Tuple[Session, Optional[Role]]:
        email = normalise_email(email)
        if not password:
            raise ValidationError("Password is required.")
        session = self.identity.sign_in(email, password)
        self._session = session
        self._pending_email = None
        return session, self.role_of(session.account_id)

    def sign_out(self, session: Optional[Session] = None) -> None:
        target = session or self._session
        if target is None:
            return
        self.identity.sign_out(target.access_token)
        if self._session is not None and self._session.access_token == target.access_token:
            self._session = None

    def current_session(self) -> Optional[Session]:
        if self._session is None:
            return None
        live = self.identity.get_session(self._session.access_token)
        if live is None:
            self._session = None
        return live

    def role_of(self, account_id: str) -> Optional[Role]:
        """Look up the role, repairing a missing row from sign-up metadata."""
        role = self.store.get_role(account_id)
        if role is not None:
            return role

        print(f"[WARN] Account {account_id} has no role row", file=sys.stderr)
        row = self.store.get_account(account_id)
        if row is None or not row["user_type"]:
            return None
        try:
            return self.assign_role(account_id, row["user_type"])
        except ClinicError as e:
            print(f"[ERROR] Role repair failed for {account_id}: {e}", file=sys.stderr)
            return None

    # ── Routing ──────────────────────────────────────────────────────

    def _owns(self, session: Session) -> bool:
        if self._pending_email is not None and session.email == self._pending_email:
            return True
        return self._session is not None and self._session.account_id == session.account_id

    def watch(self, on_route: Callable[[str], None]) -> Callable[[], None]:
        """
        Route on mount and on every later session change for this client.

        The subscription is taken before the mount check so a confirmation
        landing in between is not lost.
        """
        def handle(event: str, session: Session) -> None:
            if event == SIGNED_IN and self._owns(session):
                self._session = session
                self._pending_email = None
                on_route(route_for(self.role_of(session.account_id)))
            elif (
                event == SIGNED_OUT
                and self._session is not None
                and self._session.access_token == session.access_token
            ):
                self._session = None
                on_route(HOME_ROUTE)

        unsubscribe = self.identity.on_auth_state_change(handle)
        session = self.current_session()
        if session is not None:
            on_route(route_for(self.role_of(session.account_id)))
        return unsubscribe
