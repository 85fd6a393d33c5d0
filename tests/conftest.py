"""
Shared fixtures: in-memory store, fake mail transport, inline executor.
"""

import re
from concurrent.futures import Future

import pytest
from sqlalchemy.pool import StaticPool

from clinic.database import init_schema, make_engine
from clinic.errors import MailDeliveryError
from clinic.models import Role
from clinic.services import build_services


# ── Helpers / Fakes ──────────────────────────────────────────────────

class InlineExecutor:
    """Run detached work immediately so tests can observe it."""
    def __init__(self):
        self.submitted = 0

    def submit(self, fn, *args, **kwargs):
        self.submitted += 1
        future = Future()
        try:
            future.set_result(fn(*args, **kwargs))
        except Exception as e:
            future.set_exception(e)
        return future


class FakeTransport:
    """Records outgoing mail; can be switched to fail."""
    def __init__(self, fail=False):
        self.fail = fail
        self.sent = []

    def send(self, to, subject, html):
        if self.fail:
            raise MailDeliveryError("transport down")
        self.sent.append({"to": to, "subject": subject, "html": html})
        return f"msg-{len(self.sent)}"

    def to(self, email):
        return [m for m in self.sent if m["to"] == email]

    def verification_token(self, email):
        """Token from the most recent verification link sent to *email*."""
        for message in reversed(self.to(email)):
            match = re.search(r"token=([\w\-.]+)", message["html"])
            if match:
                return match.group(1)
        raise AssertionError(f"no verification link sent to {email}")


# ── Fixtures ─────────────────────────────────────────────────────────

@pytest.fixture
def engine():
    eng = make_engine("sqlite://", poolclass=StaticPool)
    init_schema(eng)
    yield eng
    eng.dispose()


@pytest.fixture
def transport():
    return FakeTransport()


@pytest.fixture
def executor():
    return InlineExecutor()


@pytest.fixture
def services(engine, transport, executor):
    return build_services(
        engine, transport, executor=executor,
        secret_key="test-secret", base_url="http://clinic.test",
    )


@pytest.fixture
def store(services):
    return services.store


@pytest.fixture
def make_account(services, transport):
    """Sign up and confirm an account; returns (account, session)."""
    def _make(email="doc@clinic.test", role=Role.DOCTOR, password="secret123",
              full_name="Dr Test"):
        account = services.directory().sign_up(email, password, full_name, role)
        session = services.identity.confirm(transport.verification_token(email))
        return account, session
    return _make


@pytest.fixture
def john(services):
    """The intake example: John Doe, 35, Male, fever."""
    return services.registry.register({
        "name": "John Doe", "age": 35, "gender": "Male",
        "contact": "+1234567890", "symptoms": "Fever",
    })
