import io
import time

import jwt
import pytest

from app.blog import create_app
from app.blog.db import session_scope
from app.blog.models import ROLE_VIEWER, ROLE_WRITER, Base, User

JWT_SECRET = "test-jwt-secret-for-hs256-signing-0001"

PNG_BYTES = b"\x89PNG\r\n\x1a\n" + b"\x00" * 64


def _auth(sub: str) -> dict:
    token = jwt.encode({"sub": sub, "exp": int(time.time()) + 3600}, JWT_SECRET, algorithm="HS256")
    return {"Authorization": f"Bearer {token}"}


@pytest.fixture()
def app(tmp_path, monkeypatch):
    monkeypatch.setenv("SECRET_KEY", "test-secret")
    monkeypatch.setenv("DATABASE_URL", f"sqlite:///{tmp_path/'test.db'}")
    monkeypatch.setenv("ENV", "test")
    monkeypatch.setenv("STORAGE_BACKEND", "local")
    monkeypatch.setenv("STORAGE_ROOT", str(tmp_path / "storage"))
    monkeypatch.setenv("UPLOAD_MAX_BYTES", "1024")
    monkeypatch.setenv("AUTH_JWT_KEY", JWT_SECRET)
    monkeypatch.setenv("AUTH_JWT_ALGORITHMS", "HS256")
    monkeypatch.setenv("EMAIL_BACKEND", "console")
    for k in ("AUTH_JWT_ISSUER", "CLERK_SECRET_KEY", "CLERK_WEBHOOK_SECRET"):
        monkeypatch.delenv(k, raising=False)

    app = create_app()

    engine = app.extensions["sqlalchemy_engine"]
    Base.metadata.create_all(bind=engine)

    with session_scope(app) as s:
        s.add(User(clerk_id="user_writer", email="writer@example.com", role=ROLE_WRITER, is_active=True))
        s.add(User(clerk_id="user_viewer", email="viewer@example.com", role=ROLE_VIEWER, is_active=True))

    return app


@pytest.fixture()
def client(app):
    return app.test_client()


def _upload(client, data: bytes, filename: str, content_type: str, sub: str = "user_writer"):
    return client.post(
        "/api/upload",
        data={"file": (io.BytesIO(data), filename, content_type)},
        content_type="multipart/form-data",
        headers=_auth(sub),
    )


def test_upload_and_serve_png(tmp_path, client):
    r = _upload(client, PNG_BYTES, "cover.png", "image/png")
    assert r.status_code == 200
    assert r.json["type"] == "image/png"
    assert r.json["size"] == len(PNG_BYTES)
    assert r.json["filename"].endswith(".png")
    assert r.json["url"] == f"/uploads/{r.json['filename']}"
    assert (tmp_path / "storage" / "uploads" / r.json["filename"]).read_bytes() == PNG_BYTES

    r = client.get(r.json["url"])
    assert r.status_code == 200
    assert r.mimetype == "image/png"
    assert r.data == PNG_BYTES


def test_upload_rejects_non_image(client):
    r = _upload(client, b"%PDF-1.4", "doc.pdf", "application/pdf")
    assert r.status_code == 400
    assert "Invalid file type" in r.json["error"]


def test_upload_rejects_large_file(client):
    r = _upload(client, PNG_BYTES * 20, "big.png", "image/png")
    assert r.status_code == 400
    assert r.json["error"].startswith("File too large")


def test_upload_requires_file_and_writer(client):
    r = client.post("/api/upload", data={}, content_type="multipart/form-data", headers=_auth("user_writer"))
    assert r.status_code == 400

    r = _upload(client, PNG_BYTES, "cover.png", "image/png", sub="user_viewer")
    assert r.status_code == 403


def test_missing_upload_is_404(client):
    r = client.get("/uploads/nope.png")
    assert r.status_code == 404
