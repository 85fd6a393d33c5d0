"""
Tests for the console login loop and its session routing.
"""

import getpass

import pytest

from clinic import cli
from clinic.models import Role


@pytest.fixture
def answers(monkeypatch):
    """Feed scripted answers to the console; callables are resolved lazily."""
    def _feed(*values):
        queue = iter(values)

        def ask(prompt):
            value = next(queue)
            return value() if callable(value) else value

        monkeypatch.setattr(cli, "_ask", ask)
        monkeypatch.setattr(getpass, "getpass", lambda prompt="": "secret123")
    return _feed


def test_confirmation_routes_straight_to_the_dashboard(services, transport, answers):
    directory = services.directory()
    routes = []
    unsubscribe = directory.watch(routes.append)

    def link():
        token = transport.verification_token("doc@clinic.test")
        return f"http://clinic.test/api/auth/confirm?token={token}"

    answers("signup", "doc@clinic.test", "Dr A", "doctor", "confirm", link)
    session, role = cli.login(directory, routes)
    unsubscribe()

    assert routes == ["/doctor-dashboard"]
    assert session.email == "doc@clinic.test"
    assert role is Role.DOCTOR


def test_password_sign_in_returns_session_and_role(services, make_account, answers):
    make_account(email="rec@clinic.test", role=Role.RECEPTIONIST)
    directory = services.directory()
    routes = []
    directory.watch(routes.append)

    answers("login", "rec@clinic.test")
    session, role = cli.login(directory, routes)

    assert session.email == "rec@clinic.test"
    assert role is Role.RECEPTIONIST


def test_unverified_sign_in_keeps_prompting(services, answers, capsys):
    services.directory().sign_up("doc@clinic.test", "secret123", "Dr A", "doctor")
    directory = services.directory()
    routes = []
    directory.watch(routes.append)

    answers("login", "doc@clinic.test", "quit")
    assert cli.login(directory, routes) is None
    assert "Use 'resend'" in capsys.readouterr().out
    assert routes == []
