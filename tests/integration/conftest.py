"""
Pytest configuration for integration tests.

Runs the real application in-process with FastAPI's TestClient over an
in-memory SQLite database.
"""

from typing import Generator

import pyotp
import pytest
from fastapi import FastAPI
from fastapi.testclient import TestClient

from cms_auth.main import create_app
from cms_auth.models import User, UserRole


TEST_PASSWORD = "Str0ng!Pass"


@pytest.fixture
def app(settings) -> FastAPI:
    return create_app(settings)


@pytest.fixture
def client(app: FastAPI) -> Generator[TestClient, None, None]:
    """Client with the lifespan (table creation) running"""
    with TestClient(app) as test_client:
        yield test_client


@pytest.fixture
def api_url(settings) -> str:
    return settings.API_PREFIX


@pytest.fixture
def create_user(app: FastAPI, client: TestClient):
    """Insert a user directly; returns its id"""
    def _create_user(email: str, role: UserRole = UserRole.USER, password: str = TEST_PASSWORD) -> str:
        db = app.state.session_factory()
        try:
            user = User(
                email=email,
                password_hash=app.state.hasher.hash(password),
                full_name=email.split("@")[0].title(),
                role=role,
                is_active=True
            )
            db.add(user)
            db.commit()
            return user.id
        finally:
            db.close()

    return _create_user


@pytest.fixture
def login(client: TestClient, api_url: str):
    """Log in and return the access token (for accounts without 2FA)"""
    def _login(email: str, password: str = TEST_PASSWORD) -> str:
        response = client.post(f"{api_url}/auth/login", json={"email": email, "password": password})
        assert response.status_code == 200, response.text
        return response.json()["accessToken"]

    return _login


@pytest.fixture
def enable_two_factor(client: TestClient, api_url: str):
    """Run setup + enable for a logged-in user; returns (secret, backup_codes)"""
    def _enable(access_token: str):
        headers = {"Authorization": f"Bearer {access_token}"}

        setup = client.post(f"{api_url}/profile/2fa/setup", headers=headers)
        assert setup.status_code == 200, setup.text
        secret = setup.json()["data"]["secret"]

        enable = client.post(
            f"{api_url}/profile/2fa/enable",
            headers=headers,
            json={"token": pyotp.TOTP(secret).now()}
        )
        assert enable.status_code == 200, enable.text
        return secret, enable.json()["backupCodes"]

    return _enable