import time

import pytest
from authlib.jose import jwt
from authlib.jose.errors import JoseError
from flask import Flask, g, jsonify

import auth
from auth import attach_identity, decode_token, student_required
from errors import register_error_handlers

SECRET = "test-secret"


def _token(payload, secret=SECRET):
    return jwt.encode({"alg": "HS256"}, payload, secret.encode("utf-8")).decode("utf-8")


@pytest.fixture
def client(monkeypatch):
    monkeypatch.setattr(auth, "JWT_SECRET", SECRET)
    app = Flask(__name__)
    app.testing = True
    register_error_handlers(app)
    app.before_request(attach_identity)

    @app.get("/me")
    @student_required
    def me():
        return jsonify({"id": g.user_id, "role": g.user_role})

    return app.test_client()


def test_decode_token_returns_claims():
    claims = decode_token(_token({"id": "u1", "role": "student"}), SECRET)
    assert claims["id"] == "u1"
    assert claims["role"] == "student"


def test_expired_token_is_rejected():
    with pytest.raises(JoseError):
        decode_token(_token({"id": "u1", "exp": int(time.time()) - 60}), SECRET)


def test_wrong_secret_is_rejected():
    with pytest.raises(JoseError):
        decode_token(_token({"id": "u1"}, secret="other"), SECRET)


def test_student_token_reaches_route(client):
    resp = client.get("/me", headers={"Authorization": f"Bearer {_token({'sub': 'u7', 'role': 'student'})}"})
    assert resp.status_code == 200
    assert resp.get_json() == {"id": "u7", "role": "student"}


def test_missing_or_bad_token_is_unauthorized(client):
    assert client.get("/me").status_code == 401

    resp = client.get("/me", headers={"Authorization": "Bearer not-a-token"})
    assert resp.status_code == 401
    assert resp.get_json()["message"] == "Invalid or expired token"


def test_other_roles_are_forbidden(client):
    resp = client.get("/me", headers={"Authorization": f"Bearer {_token({'id': 't1', 'role': 'teacher'})}"})
    assert resp.status_code == 403


def test_gateway_headers_only_when_auth_not_required(client, monkeypatch):
    headers = {"X-User-Id": "u9", "X-User-Role": "student"}
    monkeypatch.setattr(auth, "AUTH_REQUIRED", True)
    assert client.get("/me", headers=headers).status_code == 401

    monkeypatch.setattr(auth, "AUTH_REQUIRED", False)
    resp = client.get("/me", headers=headers)
    assert resp.status_code == 200
    assert resp.get_json()["id"] == "u9"
