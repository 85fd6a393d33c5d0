"""
Unit tests for configuration helpers, roles and the store-call guard.
"""

import pytest
from sqlalchemy import exc as sa_exc

from clinic.config import ROLE_CONFIG, get_env
from clinic.database import store_call
from clinic.errors import Unavailable, ValidationError
from clinic.models import Role


# ── Tests: get_env ───────────────────────────────────────────────────

def test_get_env_ok(monkeypatch):
    monkeypatch.setenv("X", "123")
    assert get_env("X") == "123"


def test_get_env_missing_exits(monkeypatch, capsys):
    monkeypatch.delenv("MISSING_ENV", raising=False)
    with pytest.raises(SystemExit) as e:
        get_env("MISSING_ENV")
    assert e.value.code == 1
    err = capsys.readouterr().err
    assert "ERROR: env var MISSING_ENV is not set" in err


# ── Tests: roles ─────────────────────────────────────────────────────

def test_role_config_covers_every_role():
    assert set(ROLE_CONFIG) == set(Role)
    assert ROLE_CONFIG[Role.DOCTOR].redirect_to == "/doctor-dashboard"
    assert ROLE_CONFIG[Role.RECEPTIONIST].title == "Receptionist Portal"


def test_role_parse():
    assert Role.parse(" Doctor ") is Role.DOCTOR
    assert Role.parse(Role.RECEPTIONIST) is Role.RECEPTIONIST
    with pytest.raises(ValidationError, match="Unsupported role"):
        Role.parse("admin")


# ── Tests: store_call ────────────────────────────────────────────────

def test_store_call_maps_connectivity_errors(capsys):
    with pytest.raises(Unavailable):
        with store_call("probe"):
            raise sa_exc.OperationalError("SELECT 1", {}, Exception("connection refused"))
    assert "Store call failed during probe" in capsys.readouterr().err


def test_store_call_maps_pool_timeouts():
    with pytest.raises(Unavailable):
        with store_call("probe"):
            raise sa_exc.TimeoutError("QueuePool limit reached")


def test_store_call_passes_integrity_errors_through():
    with pytest.raises(sa_exc.IntegrityError):
        with store_call("probe"):
            raise sa_exc.IntegrityError("INSERT", {}, Exception("UNIQUE constraint failed"))
