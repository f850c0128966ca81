"""
API tests for the /api/v1/auth endpoints.
"""
import pytest

from conftest import DEFAULT_PASSWORD

AUTH = "/api/v1/auth"


def _sent_otp(mailer) -> str:
    return mailer.send_verification_email.await_args.args[2]


def _login(client, email, password=DEFAULT_PASSWORD):
    return client.post(f"{AUTH}/login", json={"email": email, "password": password})


@pytest.mark.api
class TestSignUpEndpoint:

    def test_signup_success(self, client, mailer, sample_signup_data):
        response = client.post(f"{AUTH}/signup", json=sample_signup_data)
        assert response.status_code == 201
        body = response.json()
        assert body["success"] is True
        assert "tokens" not in body
        assert "accessToken" not in response.cookies
        mailer.send_verification_email.assert_awaited_once()

    def test_register_alias(self, client, sample_signup_data):
        assert client.post(f"{AUTH}/register", json=sample_signup_data).status_code == 201

    def test_passwords_do_not_match(self, client, sample_signup_data):
        sample_signup_data["confirmPassword"] = "Different@123"
        response = client.post(f"{AUTH}/signup", json=sample_signup_data)
        assert response.status_code == 400
        assert response.json()["success"] is False
        assert "Passwords don't match" in response.json()["message"]

    def test_invalid_email(self, client, sample_signup_data):
        sample_signup_data["email"] = "invalid-email"
        response = client.post(f"{AUTH}/signup", json=sample_signup_data)
        assert response.status_code == 400
        assert response.json()["success"] is False
        assert "email" in response.json()["message"]

    def test_short_password(self, client, sample_signup_data):
        sample_signup_data["password"] = sample_signup_data["confirmPassword"] = "12345"
        response = client.post(f"{AUTH}/signup", json=sample_signup_data)
        assert response.status_code == 400
        assert "password" in response.json()["message"]

    def test_missing_fields(self, client):
        response = client.post(f"{AUTH}/signup", json={"email": "john@example.com"})
        assert response.status_code == 400
        assert response.json()["success"] is False

    def test_duplicate_email(self, client, sample_signup_data):
        client.post(f"{AUTH}/signup", json=sample_signup_data)
        response = client.post(f"{AUTH}/signup", json=sample_signup_data)
        assert response.status_code == 409
        assert response.json()["message"] == "Email already registered!"


@pytest.mark.api
class TestVerifyEmailEndpoint:

    def test_verify_then_verify_again(self, client, mailer, sample_signup_data):
        client.post(f"{AUTH}/signup", json=sample_signup_data)
        payload = {"email": sample_signup_data["email"], "otp": _sent_otp(mailer)}

        first = client.post(f"{AUTH}/verify-email", json=payload)
        assert first.status_code == 200
        body = first.json()
        assert body["data"]["user"]["isEmailVerified"] is True
        assert set(body["tokens"]) == {"accessToken", "refreshToken"}
        assert "accessToken" in first.cookies

        second = client.post(f"{AUTH}/verify-email", json=payload)
        assert second.status_code == 400
        assert second.json()["code"] == "ALREADY_VERIFIED"

    def test_wrong_otp(self, client, mailer, sample_signup_data):
        client.post(f"{AUTH}/signup", json=sample_signup_data)
        otp = _sent_otp(mailer)
        wrong = f"{(int(otp) + 1) % 1_000_000:06d}"
        response = client.post(f"{AUTH}/verify-email", json={"email": sample_signup_data["email"], "otp": wrong})
        assert response.status_code == 400
        assert response.json()["message"] == "Invalid or expired OTP"

    def test_unknown_email(self, client):
        response = client.post(f"{AUTH}/verify-email", json={"email": "nobody@example.com", "otp": "123456"})
        assert response.status_code == 404

    def test_resend_otp(self, client, mailer, sample_signup_data):
        client.post(f"{AUTH}/signup", json=sample_signup_data)
        response = client.post(f"{AUTH}/resend-otp", json={"email": sample_signup_data["email"]})
        assert response.status_code == 200
        assert mailer.send_verification_email.await_count == 2


@pytest.mark.api
class TestLoginEndpoint:

    def test_login_success(self, client, verified_user):
        response = _login(client, verified_user["email"])
        assert response.status_code == 200
        body = response.json()
        assert body["success"] is True
        assert "Login successful" in body["message"]
        assert body["data"]["user"]["email"] == verified_user["email"]
        assert "passwordHash" not in body["data"]["user"]
        assert "password_hash" not in body["data"]["user"]
        assert body["tokens"]["accessToken"] and body["tokens"]["refreshToken"]
        assert "set-cookie" in response.headers
        assert response.headers["Cache-Control"].startswith("no-store")

    def test_wrong_password(self, client, verified_user):
        response = _login(client, verified_user["email"], "WrongPassword@123")
        assert response.status_code == 401
        assert response.json()["success"] is False
        assert response.json()["message"] == "Invalid email or password"

    def test_unknown_email(self, client):
        response = _login(client, "nonexistent@example.com")
        assert response.status_code == 401
        assert response.json()["message"] == "Invalid email or password"

    def test_unverified_email(self, client, unverified_user):
        response = _login(client, unverified_user["email"])
        assert response.status_code == 403
        assert response.json()["success"] is False
        assert "verify your email" in response.json()["message"]

    def test_invalid_input(self, client):
        response = client.post(f"{AUTH}/login", json={"email": "invalid-email", "password": "short"})
        assert response.status_code == 400
        assert response.json()["success"] is False

    def test_extra_fields_are_ignored(self, client, verified_user):
        response = client.post(f"{AUTH}/login", json={
            "email": verified_user["email"],
            "password": DEFAULT_PASSWORD,
            "extraField": "should be ignored",
        })
        assert response.status_code == 200


@pytest.mark.api
class TestRefreshEndpoint:

    def test_rotation_via_body(self, client, verified_user):
        old = _login(client, verified_user["email"]).json()["tokens"]["refreshToken"]
        client.cookies.clear()

        first = client.post(f"{AUTH}/refresh-token", json={"refreshToken": old})
        assert first.status_code == 200
        new = first.json()["tokens"]["refreshToken"]
        assert new != old

        client.cookies.clear()
        replay = client.post(f"{AUTH}/refresh-token", json={"refreshToken": old})
        assert replay.status_code == 401
        assert replay.json()["message"] == "Invalid or expired refresh token"

    def test_rotation_via_cookie(self, client, verified_user):
        _login(client, verified_user["email"])
        response = client.post(f"{AUTH}/refresh-token")
        assert response.status_code == 200
        assert response.cookies.get("refreshToken") == response.json()["tokens"]["refreshToken"]

    def test_missing_token(self, client):
        response = client.post(f"{AUTH}/refresh-token", json={})
        assert response.status_code == 401
        assert response.json()["success"] is False


@pytest.mark.api
class TestPasswordEndpoints:

    def test_forgot_and_reset(self, client, mailer, verified_user):
        email = verified_user["email"]
        old_refresh = _login(client, email).json()["tokens"]["refreshToken"]

        assert client.post(f"{AUTH}/forgot-password", json={"email": email}).status_code == 200
        token = mailer.send_password_reset_email.await_args.args[2]

        response = client.post(f"{AUTH}/reset-password", json={"token": token, "newPassword": "NewPassword@456"})
        assert response.status_code == 200

        again = client.post(f"{AUTH}/reset-password", json={"token": token, "newPassword": "Other@789"})
        assert again.status_code == 400
        assert again.json()["message"] == "Invalid or expired reset password token"

        client.cookies.clear()
        assert client.post(f"{AUTH}/refresh-token", json={"refreshToken": old_refresh}).status_code == 401
        assert _login(client, email).status_code == 401
        assert _login(client, email, "NewPassword@456").status_code == 200

    def test_forgot_password_unknown_email(self, client):
        response = client.post(f"{AUTH}/forgot-password", json={"email": "nobody@example.com"})
        assert response.status_code == 404

    def test_change_password_requires_auth(self, client):
        response = client.post(f"{AUTH}/change-password", json={
            "currentPassword": DEFAULT_PASSWORD,
            "newPassword": "Changed@456",
        })
        assert response.status_code == 401
        assert response.json()["message"] == "Access token required"

    def test_change_password_keeps_this_session(self, client, verified_user):
        email = verified_user["email"]
        other_refresh = _login(client, email).json()["tokens"]["refreshToken"]
        _login(client, email)  # cookies now carry this device's session

        response = client.post(f"{AUTH}/change-password", json={
            "currentPassword": DEFAULT_PASSWORD,
            "newPassword": "Changed@456",
        })
        assert response.status_code == 200

        assert client.post(f"{AUTH}/refresh-token").status_code == 200
        client.cookies.clear()
        assert client.post(f"{AUTH}/refresh-token", json={"refreshToken": other_refresh}).status_code == 401

    def test_change_password_wrong_current(self, client, verified_user):
        _login(client, verified_user["email"])
        response = client.post(f"{AUTH}/change-password", json={
            "currentPassword": "Wrong@123",
            "newPassword": "Changed@456",
        })
        assert response.status_code == 401
        assert response.json()["message"] == "Current password is incorrect"


@pytest.mark.api
class TestLogoutEndpoint:

    def test_logout_revokes_refresh_token_and_clears_cookies(self, client, verified_user):
        tokens = _login(client, verified_user["email"]).json()["tokens"]

        response = client.post(f"{AUTH}/logout")
        assert response.status_code == 200
        assert response.json()["message"] == "Logged out successfully"
        cleared = [c for c in response.headers.get_list("set-cookie") if "Max-Age=0" in c]
        assert any(c.startswith("accessToken=") for c in cleared)
        assert any(c.startswith("refreshToken=") for c in cleared)

        assert client.post(f"{AUTH}/refresh-token", json={"refreshToken": tokens["refreshToken"]}).status_code == 401

    def test_logout_requires_auth(self, client):
        response = client.post(f"{AUTH}/logout")
        assert response.status_code == 401
