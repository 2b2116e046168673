"""
Integration tests for two-factor authentication.

Walks the full lifecycle over HTTP:
1. Enrolment (/profile/2fa/setup and /enable)
2. Login returning a pending token
3. Completing login with a TOTP code or a backup code
4. Step-up verification, status, regeneration and disabling
"""

import json
import time

import pyotp
import pytest

from cms_auth.models import AdminProfile, UserRole


TEST_PASSWORD = "Str0ng!Pass"


def bearer(token: str) -> dict:
    return {"Authorization": f"Bearer {token}"}


def wrong_code(secret: str) -> str:
    """A 6-digit code that is not valid anywhere near the current time"""
    totp = pyotp.TOTP(secret)
    now = time.time()
    nearby = {totp.at(now + step * 30) for step in range(-5, 6)}
    for candidate in ("000000", "111111", "123456", "999999", "424242"):
        if candidate not in nearby:
            return candidate
    raise AssertionError("no wrong code found")


@pytest.fixture
def alice(create_user, login, enable_two_factor):
    """alice@example.com with 2FA enabled; returns (secret, backup_codes)"""
    create_user("alice@example.com")
    return enable_two_factor(login("alice@example.com"))


@pytest.fixture
def pending_token(client, api_url, alice):
    response = client.post(
        f"{api_url}/auth/login",
        json={"email": "alice@example.com", "password": TEST_PASSWORD}
    )
    assert response.status_code == 200
    return response.json()["tempToken"]


class TestEnrolment:
    """Test /profile/2fa setup and enable"""

    def test_setup_returns_enrolment_material(self, client, api_url, create_user, login):
        create_user("alice@example.com")
        token = login("alice@example.com")

        response = client.post(f"{api_url}/profile/2fa/setup", headers=bearer(token))

        assert response.status_code == 200
        body = response.json()
        assert body["success"] is True
        assert len(body["data"]["secret"]) >= 16
        assert body["data"]["qrCode"].startswith("data:image/png;base64,")
        assert body["data"]["otpauthUrl"].startswith("otpauth://totp/")
        assert "alice%40example.com" in body["data"]["otpauthUrl"]

    def test_setup_does_not_enable(self, client, api_url, create_user, login):
        create_user("alice@example.com")
        token = login("alice@example.com")
        client.post(f"{api_url}/profile/2fa/setup", headers=bearer(token))

        status = client.get(f"{api_url}/profile/2fa", headers=bearer(token))

        assert status.json()["data"]["twoFactorEnabled"] is False

    def test_enable_returns_backup_codes(self, client, api_url, create_user, login, enable_two_factor):
        create_user("alice@example.com")
        token = login("alice@example.com")

        _, backup_codes = enable_two_factor(token)

        assert len(backup_codes) == 10
        assert len(set(backup_codes)) == 10

        status = client.get(f"{api_url}/profile/2fa", headers=bearer(token))
        data = status.json()["data"]
        assert data["twoFactorEnabled"] is True
        assert data["backupCodesRemaining"] == 10
        assert data["enabledAt"] is not None

    def test_enable_with_wrong_code(self, client, api_url, create_user, login):
        create_user("alice@example.com")
        token = login("alice@example.com")
        setup = client.post(f"{api_url}/profile/2fa/setup", headers=bearer(token))
        secret = setup.json()["data"]["secret"]

        response = client.post(
            f"{api_url}/profile/2fa/enable",
            headers=bearer(token),
            json={"token": wrong_code(secret)}
        )

        assert response.status_code == 400
        assert response.json()["success"] is False

    def test_enable_without_setup(self, client, api_url, create_user, login):
        create_user("alice@example.com")
        token = login("alice@example.com")

        response = client.post(
            f"{api_url}/profile/2fa/enable",
            headers=bearer(token),
            json={"token": "123456"}
        )

        assert response.status_code == 400
        assert response.json() == {"success": False, "message": "No 2FA setup in progress. Call setup first."}

    def test_enable_rejects_non_numeric_code(self, client, api_url, create_user, login):
        create_user("alice@example.com")
        token = login("alice@example.com")

        response = client.post(
            f"{api_url}/profile/2fa/enable",
            headers=bearer(token),
            json={"token": "abcdef"}
        )

        assert response.status_code == 400
        assert response.json()["error"] == "Validation failed"

    def test_setup_when_already_enabled(self, client, api_url, create_user, login, enable_two_factor):
        create_user("alice@example.com")
        token = login("alice@example.com")
        enable_two_factor(token)

        response = client.post(f"{api_url}/profile/2fa/setup", headers=bearer(token))

        assert response.status_code == 400
        assert response.json()["success"] is False

    def test_profile_routes_require_authentication(self, client, api_url):
        response = client.post(f"{api_url}/profile/2fa/setup")

        assert response.status_code == 401


class TestTwoFactorLogin:
    """Test the two-step login"""

    def test_login_returns_pending_token(self, client, api_url, alice):
        response = client.post(
            f"{api_url}/auth/login",
            json={"email": "alice@example.com", "password": TEST_PASSWORD}
        )

        assert response.status_code == 200
        body = response.json()
        assert body["requires2FA"] is True
        assert body["tempToken"]
        assert body["userId"]
        assert "accessToken" not in body
        assert "refreshToken" not in response.cookies

    def test_pending_token_rejected_on_protected_routes(self, client, api_url, pending_token):
        response = client.get(f"{api_url}/auth/me", headers=bearer(pending_token))

        assert response.status_code == 401
        assert response.json() == {"error": "Two-factor verification required"}

        response = client.post(f"{api_url}/profile/2fa/setup", headers=bearer(pending_token))
        assert response.status_code == 401

    def test_complete_login_with_totp(self, client, api_url, alice, pending_token):
        secret, _ = alice

        response = client.post(
            f"{api_url}/auth/verify-2fa-login",
            headers=bearer(pending_token),
            json={"token": pyotp.TOTP(secret).now()}
        )

        assert response.status_code == 200
        body = response.json()
        assert body["success"] is True
        assert body["user"]["email"] == "alice@example.com"
        assert "backupCodesRemaining" not in body
        assert response.cookies.get("refreshToken")

        me = client.get(f"{api_url}/auth/me", headers=bearer(body["accessToken"]))
        assert me.status_code == 200

    def test_complete_login_with_wrong_totp(self, client, api_url, alice, pending_token):
        secret, _ = alice

        response = client.post(
            f"{api_url}/auth/verify-2fa-login",
            headers=bearer(pending_token),
            json={"token": wrong_code(secret)}
        )

        assert response.status_code == 401
        assert response.json() == {"success": False, "message": "Invalid verification code"}

    def test_backup_code_works_once(self, client, api_url, alice, pending_token):
        _, backup_codes = alice

        first = client.post(
            f"{api_url}/auth/verify-2fa-login",
            headers=bearer(pending_token),
            json={"token": backup_codes[0], "useBackupCode": True}
        )
        assert first.status_code == 200
        assert first.json()["backupCodesRemaining"] == 9

        second = client.post(
            f"{api_url}/auth/verify-2fa-login",
            headers=bearer(pending_token),
            json={"token": backup_codes[0], "useBackupCode": True}
        )
        assert second.status_code == 401
        assert second.json() == {"success": False, "message": "Invalid backup code"}

    def test_backup_code_format_is_lenient(self, client, api_url, alice, pending_token):
        _, backup_codes = alice

        response = client.post(
            f"{api_url}/auth/verify-2fa-login",
            headers=bearer(pending_token),
            json={"token": backup_codes[1].lower(), "useBackupCode": True}
        )

        assert response.status_code == 200

    def test_no_backup_codes_left(self, client, api_url, alice, pending_token):
        _, backup_codes = alice
        for code in backup_codes:
            spent = client.post(
                f"{api_url}/auth/verify-2fa-login",
                headers=bearer(pending_token),
                json={"token": code, "useBackupCode": True}
            )
            assert spent.status_code == 200

        response = client.post(
            f"{api_url}/auth/verify-2fa-login",
            headers=bearer(pending_token),
            json={"token": backup_codes[0], "useBackupCode": True}
        )

        assert response.status_code == 400
        assert response.json() == {"success": False, "message": "No backup codes available"}

    def test_access_token_cannot_complete_login(self, client, api_url, create_user, login):
        create_user("bob@example.com")
        token = login("bob@example.com")

        response = client.post(
            f"{api_url}/auth/verify-2fa-login",
            headers=bearer(token),
            json={"token": "123456"}
        )

        assert response.status_code == 401
        assert response.json() == {"error": "2FA verification token required"}


class TestStepUpVerification:
    """Test POST /auth/verify-2fa"""

    def test_verify_with_totp(self, client, api_url, alice, pending_token):
        secret, _ = alice
        login = client.post(
            f"{api_url}/auth/verify-2fa-login",
            headers=bearer(pending_token),
            json={"token": pyotp.TOTP(secret).now()}
        )
        access_token = login.json()["accessToken"]

        response = client.post(
            f"{api_url}/auth/verify-2fa",
            headers=bearer(access_token),
            json={"token": pyotp.TOTP(secret).now()}
        )

        assert response.status_code == 200
        assert response.json()["success"] is True

    def test_deactivated_user_cannot_spend_backup_code(
        self, app, client, api_url, alice, pending_token, create_user, login
    ):
        secret, backup_codes = alice
        completed = client.post(
            f"{api_url}/auth/verify-2fa-login",
            headers=bearer(pending_token),
            json={"token": pyotp.TOTP(secret).now()}
        )
        access_token = completed.json()["accessToken"]
        alice_id = completed.json()["user"]["id"]

        create_user("admin@example.com", role=UserRole.ADMIN)
        deactivate = client.patch(
            f"{api_url}/users/{alice_id}/status",
            headers=bearer(login("admin@example.com")),
            json={"isActive": False}
        )
        assert deactivate.status_code == 200

        response = client.post(
            f"{api_url}/auth/verify-2fa",
            headers=bearer(access_token),
            json={"token": backup_codes[0], "useBackupCode": True}
        )

        assert response.status_code == 401
        assert response.json() == {"error": "Authentication required"}

        db = app.state.session_factory()
        try:
            profile = db.query(AdminProfile).filter(AdminProfile.user_id == alice_id).first()
            hashed_codes = json.loads(app.state.cipher.decrypt(profile.two_factor_backup_codes))
        finally:
            db.close()
        assert len(hashed_codes) == len(backup_codes)

    def test_verify_without_two_factor(self, client, api_url, create_user, login):
        create_user("bob@example.com")
        token = login("bob@example.com")

        response = client.post(
            f"{api_url}/auth/verify-2fa",
            headers=bearer(token),
            json={"token": "123456"}
        )

        assert response.status_code == 400
        assert response.json() == {"success": False, "message": "2FA not enabled"}


class TestManagement:
    """Test status, regeneration and disabling"""

    @pytest.fixture
    def alice_token(self, client, api_url, alice, pending_token):
        secret, _ = alice
        response = client.post(
            f"{api_url}/auth/verify-2fa-login",
            headers=bearer(pending_token),
            json={"token": pyotp.TOTP(secret).now()}
        )
        return response.json()["accessToken"]

    def test_regenerate_backup_codes(self, client, api_url, alice, alice_token):
        _, old_codes = alice

        response = client.post(
            f"{api_url}/profile/2fa/regenerate-backup-codes",
            headers=bearer(alice_token),
            json={"password": TEST_PASSWORD}
        )

        assert response.status_code == 200
        new_codes = response.json()["backupCodes"]
        assert len(new_codes) == 10
        assert not set(new_codes) & set(old_codes)

        login = client.post(
            f"{api_url}/auth/login",
            json={"email": "alice@example.com", "password": TEST_PASSWORD}
        )
        old = client.post(
            f"{api_url}/auth/verify-2fa-login",
            headers=bearer(login.json()["tempToken"]),
            json={"token": old_codes[0], "useBackupCode": True}
        )
        assert old.status_code == 401

    def test_regenerate_requires_password(self, client, api_url, alice_token):
        response = client.post(
            f"{api_url}/profile/2fa/regenerate-backup-codes",
            headers=bearer(alice_token),
            json={"password": "Wr0ng!Password"}
        )

        assert response.status_code == 401
        assert response.json()["success"] is False

    def test_disable(self, client, api_url, alice_token):
        response = client.post(
            f"{api_url}/profile/2fa/disable",
            headers=bearer(alice_token),
            json={"password": TEST_PASSWORD}
        )

        assert response.status_code == 200
        assert response.json() == {"success": True, "message": "2FA disabled successfully"}

        login = client.post(
            f"{api_url}/auth/login",
            json={"email": "alice@example.com", "password": TEST_PASSWORD}
        )
        assert login.json()["requires2FA"] is False
        assert login.json()["accessToken"]

    def test_disable_with_wrong_password(self, client, api_url, alice_token):
        response = client.post(
            f"{api_url}/profile/2fa/disable",
            headers=bearer(alice_token),
            json={"password": "Wr0ng!Password"}
        )

        assert response.status_code == 401

        status = client.get(f"{api_url}/profile/2fa", headers=bearer(alice_token))
        assert status.json()["data"]["twoFactorEnabled"] is True
