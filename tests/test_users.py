import io
import os

import pytest

from conftest import PASSWORD, login
from models import db
from models.user import User


def test_admin_lists_users_without_password_hashes(login_as, make_user):
    admin, _ = login_as(role="admin")
    make_user()
    resp = admin.get("/api/users")
    assert resp.status_code == 200
    users = resp.get_json()
    assert len(users) == 2
    assert all("passwordHash" not in u and "password_hash" not in u for u in users)


def test_users_list_is_admin_only_but_public_list_is_not(login_as):
    client, _ = login_as(professional_type="psychologist")
    assert client.get("/api/users").status_code == 403

    public = client.get("/api/users/public").get_json()
    assert set(public[0]) == {"id", "fullName", "professionalType", "isActive"}
    assert public[0]["professionalType"] == "psychologist"


def test_admin_creates_user_with_multipart_documents(app, login_as):
    admin, _ = login_as(role="admin")
    data = {
        "username": "drgarcia",
        "password": "secret123",
        "fullName": "Dra. Garcia",
        "email": "garcia@example.com",
        "professionalType": "doctor",
        "profileImage": (io.BytesIO(b"\x89PNG fake"), "face.png"),
        "diploma": (io.BytesIO(b"%PDF-1.4 fake"), "diploma.pdf"),
    }
    resp = admin.post("/api/users", data=data, content_type="multipart/form-data")
    assert resp.status_code == 201, resp.get_json()
    user = resp.get_json()
    assert user["documentationStatus"] == "pending"
    assert user["diplomaUrl"].startswith("/api/uploads/")
    assert user["profileImageUrl"].endswith("face.png")

    stored = os.path.basename(user["diplomaUrl"])
    assert os.path.exists(os.path.join(app.config["UPLOAD_FOLDER"], stored))

    served = admin.get(user["diplomaUrl"])
    assert served.status_code == 200
    assert served.data == b"%PDF-1.4 fake"


def test_admin_create_rejects_bad_files_and_duplicates(login_as, make_user):
    admin, _ = login_as(role="admin")
    make_user(username="taken")

    data = {
        "username": "someone",
        "password": "secret123",
        "fullName": "Some One",
        "email": "someone@example.com",
        "profileImage": (io.BytesIO(b"MZ"), "virus.exe"),
    }
    assert admin.post("/api/users", data=data, content_type="multipart/form-data").status_code == 400

    body = {"username": "taken", "password": "secret123", "fullName": "Some One", "email": "x@example.com"}
    assert admin.post("/api/users", json=body).status_code == 400


def test_owner_updates_profile_but_not_protected_fields(app, login_as, make_user):
    client, user_id = login_as()
    other_id = make_user()

    resp = client.patch(f"/api/users/{user_id}", json={"bio": "Gestalt therapist", "phone": "5551234"})
    assert resp.status_code == 200
    assert resp.get_json()["bio"] == "Gestalt therapist"

    assert client.patch(f"/api/users/{user_id}", json={"role": "admin"}).status_code == 403
    assert client.patch(f"/api/users/{user_id}", json={"documentationStatus": "approved"}).status_code == 403
    assert client.patch(f"/api/users/{other_id}", json={"bio": "hacked"}).status_code == 403
    assert client.get(f"/api/users/{other_id}").status_code == 403

    # password is never changed through PATCH
    client.patch(f"/api/users/{user_id}", json={"password": "changed123"})
    with app.app_context():
        username = db.session.get(User, user_id).username
    fresh = app.test_client()
    login(fresh, username, PASSWORD)


def test_admin_updates_role_and_deactivates(app, login_as, make_user):
    admin, _ = login_as(role="admin")
    user_id = make_user()

    resp = admin.patch(f"/api/users/{user_id}", json={"role": "vip", "isActive": False})
    assert resp.status_code == 200
    assert resp.get_json()["role"] == "vip"
    assert resp.get_json()["isActive"] is False

    assert admin.patch(f"/api/users/{user_id}", json={"role": "superuser"}).status_code == 400


def test_change_password(app, login_as, make_user):
    client, user_id = login_as()
    resp = client.post(f"/api/users/{user_id}/change-password",
                       json={"currentPassword": "wrong", "newPassword": "another123"})
    assert resp.status_code == 401

    resp = client.post(f"/api/users/{user_id}/change-password",
                       json={"currentPassword": PASSWORD, "newPassword": "abc"})
    assert resp.status_code == 400

    resp = client.post(f"/api/users/{user_id}/change-password",
                       json={"currentPassword": PASSWORD, "newPassword": "another123"})
    assert resp.status_code == 200

    # admins reset without the current password
    admin, _ = login_as(role="admin")
    other_id = make_user()
    resp = admin.post(f"/api/users/{other_id}/change-password", json={"newPassword": "reset12345"})
    assert resp.status_code == 200


def test_document_upload_and_validation(login_as):
    client, user_id = login_as(documentation_status="none")
    admin, _ = login_as(role="admin")

    assert admin.post(f"/api/users/{user_id}/documents/validate", json={"action": "approve"}).status_code == 400

    data = {"identification": (io.BytesIO(b"%PDF id"), "ine.pdf")}
    resp = client.post(f"/api/users/{user_id}/documents", data=data, content_type="multipart/form-data")
    assert resp.status_code == 200
    assert resp.get_json()["documentationStatus"] == "pending"

    assert client.post(f"/api/users/{user_id}/documents/validate", json={"action": "approve"}).status_code == 403
    assert admin.post(f"/api/users/{user_id}/documents/validate", json={"action": "maybe"}).status_code == 400

    resp = admin.post(f"/api/users/{user_id}/documents/validate", json={"action": "approve"})
    assert resp.status_code == 200
    assert resp.get_json()["documentationStatus"] == "approved"

    # a new upload keeps an approved status
    data = {"diploma": (io.BytesIO(b"%PDF diploma"), "titulo.pdf")}
    resp = client.post(f"/api/users/{user_id}/documents", data=data, content_type="multipart/form-data")
    assert resp.get_json()["documentationStatus"] == "approved"
    assert client.get(f"/api/users/{user_id}/documents").get_json()["diplomaUrl"]


def test_upload_too_large(app, login_as):
    client, user_id = login_as()
    big = io.BytesIO(b"0" * (app.config["MAX_CONTENT_LENGTH"] + 1))
    resp = client.post(f"/api/users/{user_id}/documents", data={"diploma": (big, "big.pdf")},
                       content_type="multipart/form-data")
    assert resp.status_code == 413
    assert resp.get_json()["code"] == "PAYLOAD_TOO_LARGE"


def test_user_bookings_owner_or_admin(login_as, make_user):
    client, user_id = login_as()
    other_id = make_user()
    assert client.get(f"/api/users/{user_id}/bookings").get_json() == []
    assert client.get(f"/api/users/{other_id}/bookings").status_code == 403


@pytest.mark.parametrize("body", [{"fullName": None}, {"email": None}, {"fullName": 42}, {"email": ["a@b.co"]}])
def test_patch_rejects_missing_name_or_email(app, login_as, body):
    client, user_id = login_as()
    resp = client.patch(f"/api/users/{user_id}", json=body)
    assert resp.status_code == 400
    assert resp.get_json()["code"] == "VALIDATION_ERROR"

    with app.app_context():
        user = db.session.get(User, user_id)
        assert user.full_name and user.email


@pytest.mark.parametrize("field", ["username", "fullName", "email"])
def test_admin_create_rejects_non_text_fields(login_as, field):
    admin, _ = login_as(role="admin")
    body = {"username": "newuser", "password": "secret123", "fullName": "New User", "email": "new@example.com"}
    body[field] = 12345
    resp = admin.post("/api/users", json=body)
    assert resp.status_code == 400
    assert resp.get_json()["code"] == "VALIDATION_ERROR"
