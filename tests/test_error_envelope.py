"""Tests for the error envelope format and the error-kind status mapping.

Error responses share one shape:
{
    "status": "error",
    "error": {"code": "<stable_code>", "message": "<text>", "details": <object|array|null>},
    "request_id": "<id>"
}
"""

import pytest
from fastapi import FastAPI
from fastapi.testclient import TestClient
from pydantic import BaseModel
from pydantic import ValidationError as PydanticValidationError

from voyagevault.api.error_handling import (
    _error_code_for_status,
    _error_response,
    register_exception_handlers,
)
from voyagevault.api.schemas import Envelope, ErrorBody
from voyagevault.service.errors import (
    STATUS_FOR_KIND,
    ConflictError,
    ErrorKind,
    NotFoundError,
    ServiceError,
    UnauthenticatedError,
    UnauthorizedError,
    UpstreamFailureError,
    ValidationError,
    status_for_kind,
)
from voyagevault.storage.errors import ConstraintViolation


class TestStatusMapping:
    def test_every_kind_is_mapped(self):
        assert set(STATUS_FOR_KIND) == set(ErrorKind)

    @pytest.mark.parametrize(
        "exc_type, status, code",
        [
            (ValidationError, 400, "validation_error"),
            (UnauthorizedError, 401, "unauthorized"),
            (UnauthenticatedError, 401, "unauthenticated"),
            (NotFoundError, 404, "not_found"),
            (ConflictError, 400, "conflict"),
            (UpstreamFailureError, 500, "upstream_failure"),
        ],
    )
    def test_subclass_status_and_code(self, exc_type, status, code):
        exc = exc_type("boom")
        assert exc.status_code == status
        assert exc.error_code == code

    def test_base_error_is_internal(self):
        assert ServiceError("boom").status_code == 500
        assert ServiceError("boom", kind=ErrorKind.NOT_FOUND).status_code == 404

    def test_unknown_kind_raises(self):
        with pytest.raises(ValueError):
            status_for_kind("teapot")

    def test_fallback_codes_for_http_statuses(self):
        assert _error_code_for_status(404) == "not_found"
        assert _error_code_for_status(405) == "validation_error"
        assert _error_code_for_status(503) == "server_error"


class TestErrorBody:
    def test_all_kinds_are_valid_codes(self):
        for kind in ErrorKind:
            assert ErrorBody(code=kind.value, message="x").code == kind.value

    def test_unknown_code_rejected(self):
        with pytest.raises(PydanticValidationError):
            ErrorBody(code="teapot", message="x")

    def test_envelope_generates_request_id(self):
        envelope = Envelope(status="error", error=ErrorBody(code="not_found", message="x"))
        assert envelope.request_id

    def test_error_response_shape(self):
        response = _error_response(400, "bad", {"field": "email"}, code="validation_error")

        assert response.status_code == 400
        assert b'"status":"error"' in response.body
        assert b'"field":"email"' in response.body


class _Body(BaseModel):
    email: str


@pytest.fixture
def error_client():
    app = FastAPI()
    register_exception_handlers(app)

    @app.get("/service/{kind}")
    async def raise_service(kind: str):
        raise ServiceError(f"{kind} happened", kind=ErrorKind(kind), detail={"kind": kind})

    @app.get("/constraint")
    async def raise_constraint():
        raise ConstraintViolation("email already exists", {"field": "email"})

    @app.post("/validate")
    async def validate(body: _Body):
        return {"email": body.email}

    @app.get("/crash")
    async def crash():
        raise RuntimeError("secret internals")

    return TestClient(app, raise_server_exceptions=False)


class TestHandlers:
    @pytest.mark.parametrize("kind", list(ErrorKind))
    def test_service_errors_use_kind_status(self, error_client, kind):
        response = error_client.get(f"/service/{kind.value}")

        assert response.status_code == STATUS_FOR_KIND[kind]
        body = response.json()
        assert body["status"] == "error"
        assert body["error"]["code"] == kind.value
        assert body["error"]["details"] == {"kind": kind.value}
        assert body["request_id"]

    def test_constraint_violation_is_conflict(self, error_client):
        response = error_client.get("/constraint")

        assert response.status_code == 400
        assert response.json()["error"]["code"] == "conflict"

    def test_request_validation_is_400(self, error_client):
        response = error_client.post("/validate", json={})

        assert response.status_code == 400
        body = response.json()
        assert body["error"]["code"] == "validation_error"
        assert body["error"]["details"][0]["loc"] == ["body", "email"]

    def test_unknown_route_is_not_found(self, error_client):
        response = error_client.get("/nope")

        assert response.status_code == 404
        assert response.json()["error"]["code"] == "not_found"

    def test_uncaught_exception_is_generic_500(self, error_client):
        response = error_client.get("/crash")

        assert response.status_code == 500
        body = response.json()
        assert body["error"]["code"] == "server_error"
        assert "secret" not in body["error"]["message"]
