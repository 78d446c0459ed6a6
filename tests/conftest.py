"""Shared fixtures for the unit and integration suites."""

from __future__ import annotations

import pytest

from gsc_config.settings import Settings
from tests.helpers.fakes import FakeCredentials


@pytest.fixture
def token_path(tmp_path):
    return tmp_path / "token.json"


@pytest.fixture
def settings(tmp_path, token_path):
    """Settings with interactive credentials and everything written under tmp_path."""
    return Settings(
        client_id="client-id.apps.googleusercontent.com",
        client_secret="client-secret",
        token_path=str(token_path),
        oauth_host="127.0.0.1",
        oauth_port=0,
        telemetry_dir=str(tmp_path / "telemetry"),
    )


@pytest.fixture
def fake_credentials():
    return FakeCredentials()
