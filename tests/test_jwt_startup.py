"""
tests/test_jwt_startup — JWT Secret Validation at Import
=========================================================
``prodigyhub.api.deps`` refuses to load when JWT_SECRET is missing, blank,
too short, or a known weak default.
"""

from __future__ import annotations

import importlib

import pytest

import prodigyhub.api.deps as deps


@pytest.fixture(autouse=True)
def _reload_with_suite_secret():
    """Reload deps after each test so later modules sign with the suite secret."""
    yield
    importlib.reload(deps)


@pytest.mark.parametrize(
    "secret, message",
    [
        (None, "JWT_SECRET environment variable is not set"),
        ("", "JWT_SECRET environment variable is not set"),
        ("prodigyhub-dev-secret-change-me", "known weak default"),
        ("change-me", "known weak default"),
        ("tooshort", "too short"),
        ("x" * 31, "too short"),
    ],
)
def test_rejects_bad_secret(monkeypatch, secret, message):
    if secret is None:
        monkeypatch.delenv("JWT_SECRET", raising=False)
    else:
        monkeypatch.setenv("JWT_SECRET", secret)
    with pytest.raises(RuntimeError, match=message):
        importlib.reload(deps)


def test_accepts_strong_secret(monkeypatch):
    monkeypatch.setenv("JWT_SECRET", "a" * 64)
    importlib.reload(deps)
    assert deps.JWT_SECRET == "a" * 64
    assert deps.JWT_ALGORITHM == "HS256"
