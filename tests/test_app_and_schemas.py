import pytest
from fastapi.testclient import TestClient
from pydantic import ValidationError

from voyagevault import app as app_module
from voyagevault.api import schemas
from voyagevault.config import reset_settings_cache


def test_security_headers_and_health():
    client = TestClient(app_module.app)
    response = client.get("/healthz", headers={"X-Request-ID": "req-123"})

    assert response.status_code == 200
    body = response.json()
    assert body["status"] == "healthy"
    assert body["checks"]["database"] == {"status": "healthy"}
    assert response.headers["X-Frame-Options"] == "DENY"
    assert response.headers["X-Content-Type-Options"] == "nosniff"
    assert response.headers["Cache-Control"].startswith("no-store")
    assert response.headers["X-Request-ID"] == "req-123"


def test_cors_allows_frontend_with_credentials():
    client = TestClient(app_module.app)
    response = client.get("/healthz", headers={"Origin": "http://localhost:5173"})

    assert response.headers["access-control-allow-origin"] == "http://localhost:5173"
    assert response.headers["access-control-allow-credentials"] == "true"


def test_allowed_origins_default(monkeypatch):
    monkeypatch.delenv("CORS_ALLOW_ORIGINS", raising=False)
    reset_settings_cache()

    assert app_module._allowed_origins() == ["http://localhost:5173"]


def test_allowed_origins_override(monkeypatch):
    monkeypatch.setenv("CORS_ALLOW_ORIGINS", "https://example.com, https://demo.local")
    reset_settings_cache()

    assert app_module._allowed_origins() == ["https://example.com", "https://demo.local"]


class TestSchemas:
    def test_signup_accepts_camel_case(self):
        body = schemas.SignupRequest.model_validate(
            {"firstName": " Ada ", "lastName": "Lovelace", "email": " Ada@Example.com "}
        )

        assert body.first_name == "Ada"
        assert body.email == "Ada@Example.com"

    @pytest.mark.parametrize(
        "payload",
        [
            {"firstName": "", "lastName": "L", "email": "a@example.com"},
            {"firstName": "A", "lastName": "L", "email": "no-at-sign"},
            {"firstName": "A", "lastName": "L", "email": "a@localhost"},
            {"lastName": "L", "email": "a@example.com"},
        ],
    )
    def test_signup_rejects_bad_input(self, payload):
        with pytest.raises(ValidationError):
            schemas.SignupRequest.model_validate(payload)

    def test_email_zero_width_characters_stripped(self):
        body = schemas.EmailRequest(email="ada\u200b@example.com")
        assert body.email == "ada@example.com"

    @pytest.mark.parametrize("code", ["12345", "abcdef", "1234567"])
    def test_code_must_be_six_digits(self, code):
        with pytest.raises(ValidationError):
            schemas.CodeVerificationRequest(email="a@example.com", code=code)

    def test_code_keeps_leading_zeros(self):
        body = schemas.CodeVerificationRequest(email="a@example.com", code="007007")
        assert body.code == "007007"

    def test_google_sign_in_alias(self):
        assert schemas.GoogleSignInRequest.model_validate({"idToken": "t"}).id_token == "t"

    def test_user_response_serializes_camel_case(self):
        user = schemas.AccountSummaryResponse(
            id="u-1", firstName="Ada", lastName="L", email="a@example.com"
        )

        assert user.model_dump(by_alias=True) == {
            "id": "u-1",
            "firstName": "Ada",
            "lastName": "L",
            "email": "a@example.com",
            "profilePicture": None,
        }
