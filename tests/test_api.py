from urllib.parse import parse_qs, urlparse

from fastapi.testclient import TestClient
from sqlalchemy.exc import OperationalError

from app.api.v1.routes import bookings as bookings_routes
from app.core.config import settings
from app.main import app
from app.models.audit_log import AuditLog
from app.models.user import User
from conftest import PDF


def _register_guide(client, email="guide@example.com"):
    r = client.post("/api/v1/guides/register", json={
        "email": email, "password": "guide-pass", "full_name": "Neema Swai", "contact_number": "+255711000000",
    })
    assert r.status_code == 201
    body = r.json()
    return body["guide"]["id"], {"Authorization": f"Bearer {body['access_token']}"}


def _upload(client, headers, document_type="license", content_type="application/pdf"):
    return client.post(
        "/api/v1/guides/documents",
        files={"document": (f"{document_type}.pdf", PDF, content_type)},
        data={"document_type": document_type},
        headers=headers,
    )


def test_health(client):
    assert client.get("/health").json() == {"status": "ok"}


def test_tourist_register_login_me(client):
    r = client.post("/api/v1/auth/register", json={"email": "T@Example.com", "password": "pw", "full_name": "Tess"})
    assert r.status_code == 201

    tokens = client.post("/api/v1/auth/login", json={"email": "t@example.com", "password": "pw"}).json()
    me = client.get("/api/v1/auth/me", headers={"Authorization": f"Bearer {tokens['access_token']}"}).json()
    assert me["email"] == "t@example.com" and me["role"] == "tourist"

    refreshed = client.post("/api/v1/auth/refresh", params={"refresh_token": tokens["refresh_token"]})
    assert refreshed.status_code == 200
    assert client.post("/api/v1/auth/refresh", params={"refresh_token": tokens["access_token"]}).status_code == 401

    dup = client.post("/api/v1/auth/register", json={"email": "t@example.com", "password": "pw", "full_name": "T"})
    assert dup.status_code == 409
    assert dup.json() == {"success": False, "kind": "Conflict", "detail": "Email already exists"}


def test_pending_guide_can_log_in_but_blocked_cannot(client, db):
    guide_id, headers = _register_guide(client)
    r = client.post("/api/v1/auth/login", json={"email": "guide@example.com", "password": "guide-pass"})
    assert r.status_code == 200

    db.expire_all()
    account = db.query(User).filter(User.email == "guide@example.com").one()
    account.status = "blocked"
    db.commit()

    assert client.post("/api/v1/auth/login", json={"email": "guide@example.com", "password": "guide-pass"}).status_code == 401
    assert client.get("/api/v1/auth/me", headers=headers).status_code == 401


def test_onboarding_flow_over_http(client, factory, auth, notifier):
    admin = factory.admin()
    admin_headers = auth(admin.id)
    guide_id, headers = _register_guide(client)

    r = _upload(client, headers, "license")
    assert r.status_code == 201
    doc_id = r.json()["document"]["id"]

    dup = _upload(client, headers, "license")
    assert dup.status_code == 409 and dup.json()["kind"] == "Conflict"
    bad = _upload(client, headers, "certificate", content_type="text/plain")
    assert bad.status_code == 400 and bad.json()["kind"] == "ValidationError"

    me = client.get("/api/v1/guides/me", headers=headers).json()
    assert me["state"] == "under_review" and me["status"] == "pending"
    assert [d["documentType"] for d in me["documents"]] == ["license"]

    listing = client.get("/api/v1/admin/guides", params={"status": "pending"}, headers=admin_headers).json()
    assert [g["id"] for g in listing["items"]] == [guide_id]
    assert listing["items"][0]["pendingDocuments"] == 1

    url = client.get(f"/api/v1/admin/guides/{guide_id}/documents/{doc_id}/url", headers=admin_headers).json()["url"]
    download = client.get(url)
    assert download.status_code == 200 and download.content == PDF

    verified = client.patch(f"/api/v1/admin/guide-documents/{doc_id}/verify", headers=admin_headers).json()
    assert verified["guideApproved"] is True
    assert notifier.subjects("guide@example.com").count("Your guide account is approved") == 1

    after = _upload(client, headers, "certificate")
    assert after.status_code == 409 and after.json()["kind"] == "InvalidState"


def test_reject_action_requires_reason(client, factory, auth):
    admin = factory.admin()
    guide_id, headers = _register_guide(client)
    _upload(client, headers, "license")

    r = client.patch(f"/api/v1/admin/guides/{guide_id}/reject-action", json={"reason": ""}, headers=auth(admin.id))
    assert r.status_code == 400
    r = client.patch(f"/api/v1/admin/guides/{guide_id}/reject-action", json={"reason": "Invalid license"},
                     headers=auth(admin.id))
    assert r.json()["rejectionReason"] == "Invalid license"

    detail = client.get(f"/api/v1/admin/guides/{guide_id}", headers=auth(admin.id)).json()
    assert detail["state"] == "rejected"

    r = client.patch(f"/api/v1/admin/guides/{guide_id}/approve-action", headers=auth(admin.id))
    assert r.status_code == 200
    detail = client.get(f"/api/v1/admin/guides/{guide_id}", headers=auth(admin.id)).json()
    assert detail["approved"] is True and detail["rejectionReason"] is None


def test_booking_and_assignment_over_http(client, factory, auth, future_date):
    admin = factory.admin()
    tourist = factory.tourist()
    package = factory.package(price=300)
    guide = factory.approved_guide(admin)

    packages = client.get("/api/v1/packages").json()["items"]
    assert [p["id"] for p in packages] == [package.id]

    created = []
    for _ in range(2):
        r = client.post("/api/v1/bookings", json={
            "package_id": package.id, "travel_date": future_date.isoformat(), "travelers": 2,
        }, headers=auth(tourist.id))
        assert r.status_code == 201
        assert r.json()["booking"]["totalPrice"] == 600
        created.append(r.json()["booking"]["id"])

    available = client.get("/api/v1/admin/bookings/available-guides",
                           params={"travel_date": future_date.isoformat()}, headers=auth(admin.id)).json()
    assert [g["id"] for g in available["items"]] == [guide.id]

    r = client.post(f"/api/v1/admin/bookings/{created[0]}/assign-guide", json={"guideId": guide.id},
                    headers=auth(admin.id))
    assert r.status_code == 200 and r.json()["booking"]["guideId"] == guide.id

    clash = client.post(f"/api/v1/admin/bookings/{created[1]}/assign-guide", json={"guideId": guide.id},
                        headers=auth(admin.id))
    assert clash.status_code == 409
    assert clash.json()["detail"] == "Guide is already assigned to another booking on this date"

    missing = client.post(f"/api/v1/admin/bookings/{created[1]}/assign-guide", json={}, headers=auth(admin.id))
    assert missing.status_code == 400

    guide_bookings = client.get("/api/v1/guides/bookings", headers=auth(guide.user_id)).json()["items"]
    assert [b["id"] for b in guide_bookings] == [created[0]]

    mine = client.get("/api/v1/bookings/my", headers=auth(tourist.id)).json()["items"]
    assert {b["guideName"] for b in mine if b["guideId"]} == {guide.full_name}

    r = client.patch(f"/api/v1/admin/bookings/{created[1]}/status", json={"status": "bogus"}, headers=auth(admin.id))
    assert r.status_code == 400
    r = client.post(f"/api/v1/admin/bookings/{created[0]}/unassign-guide", headers=auth(admin.id))
    assert r.json()["booking"]["guideId"] is None


def test_guide_availability_over_http(client, factory, auth, future_date):
    admin = factory.admin()
    guide = factory.approved_guide(admin)
    headers = auth(guide.user_id)

    r = client.post("/api/v1/guides/availability", json={"date": future_date.isoformat(), "status": "unavailable"},
                    headers=headers)
    assert r.status_code == 200
    items = client.get("/api/v1/guides/availability", headers=headers).json()["items"]
    assert items == [{"date": future_date.isoformat(), "status": "unavailable"}]

    bad = client.post("/api/v1/guides/availability", json={"date": "soon", "status": "available"}, headers=headers)
    assert bad.status_code == 400


def test_role_gating(client, factory, auth):
    tourist = factory.tourist()
    assert client.get("/api/v1/admin/guides").status_code == 401
    assert client.get("/api/v1/admin/guides", headers=auth(tourist.id)).status_code == 403
    assert client.get("/api/v1/guides/me", headers=auth(tourist.id)).status_code == 403
    assert client.get("/api/v1/admin/bookings/missing", headers=auth(factory.admin().id)).status_code == 404


def test_expired_or_forged_file_links_are_refused(client):
    assert client.get("/api/v1/files/not-a-token").status_code == 403


def test_database_errors_render_as_internal(client, monkeypatch):
    def db_down(db):
        raise OperationalError("SELECT 1", {}, Exception("connection lost"))

    monkeypatch.setattr(bookings_routes, "list_packages", db_down)
    r = client.get("/api/v1/packages")
    assert r.status_code == 500
    assert r.json() == {"success": False, "kind": "Internal", "detail": "Database error"}


def test_malformed_bodies_render_as_validation_errors(client, factory, auth, future_date):
    admin = factory.admin()
    booking = factory.booking(factory.tourist(), factory.package(), future_date)

    r = client.patch(f"/api/v1/admin/bookings/{booking.id}/status", json={}, headers=auth(admin.id))
    assert r.status_code == 400
    body = r.json()
    assert body["success"] is False and body["kind"] == "ValidationError"
    assert "status" in body["detail"]

    r = client.post("/api/v1/guides/register", json={"email": "half@example.com"})
    assert r.status_code == 400 and r.json()["kind"] == "ValidationError"
    assert "password" in r.json()["detail"] and "full_name" in r.json()["detail"]


def test_unexpected_errors_render_as_internal(client, monkeypatch):
    def broken(db):
        raise RuntimeError("boom")

    monkeypatch.setattr(bookings_routes, "list_packages", broken)
    with TestClient(app, raise_server_exceptions=False) as c:
        r = c.get("/api/v1/packages")
    assert r.status_code == 500
    assert r.json() == {"success": False, "kind": "Internal", "detail": "Internal server error"}


def test_oversized_upload_is_rejected(client, monkeypatch):
    monkeypatch.setattr(settings, "MAX_DOCUMENT_BYTES", 8)
    guide_id, headers = _register_guide(client)
    r = client.post(
        "/api/v1/guides/documents",
        files={"document": ("license.pdf", b"%PDF" + b"x" * 64, "application/pdf")},
        data={"document_type": "license"},
        headers=headers,
    )
    assert r.status_code == 400 and r.json()["kind"] == "ValidationError"
    assert client.get("/api/v1/guides/me", headers=headers).json()["documents"] == []


def test_admin_blocks_and_unblocks_a_guide(client, factory, auth, db):
    admin = factory.admin()
    guide = factory.approved_guide(admin)
    url = f"/api/v1/admin/users/{guide.user_id}/status"

    r = client.patch(url, json={"status": "blocked"}, headers=auth(admin.id))
    assert r.status_code == 200 and r.json()["user"]["status"] == "blocked"
    assert client.post("/api/v1/auth/login", json={"email": "approved@tourdesk.test", "password": "guide-pass"}
                       ).status_code == 401
    assert client.get(f"/api/v1/admin/guides/{guide.id}", headers=auth(admin.id)).json()["state"] == "blocked"

    r = client.patch(url, json={"status": "active"}, headers=auth(admin.id))
    assert r.json()["user"]["status"] == "active"
    detail = client.get(f"/api/v1/admin/guides/{guide.id}", headers=auth(admin.id)).json()
    assert detail["state"] == "approved" and detail["approved"] is True

    actions = [a.details_json for a in db.query(AuditLog).filter(AuditLog.action == "user.status").all()]
    assert len(actions) == 2

    blocked = client.get("/api/v1/admin/users", params={"status": "blocked"}, headers=auth(admin.id)).json()
    assert blocked["total"] == 0


def test_user_status_update_validation(client, factory, auth):
    admin = factory.admin()
    tourist = factory.tourist()

    assert client.patch(f"/api/v1/admin/users/{tourist.id}/status", json={"status": "frozen"},
                        headers=auth(admin.id)).status_code == 400
    assert client.patch(f"/api/v1/admin/users/{tourist.id}/status", json={"status": "rejected"},
                        headers=auth(admin.id)).status_code == 409
    missing = client.patch("/api/v1/admin/users/nope/status", json={"status": "blocked"}, headers=auth(admin.id))
    assert missing.status_code == 404 and missing.json()["detail"] == "User not found"
    assert client.patch(f"/api/v1/admin/users/{admin.id}/status", json={"status": "blocked"},
                        headers=auth(tourist.id)).status_code == 403


def _link_token(html):
    href = html.split('href="', 1)[1].split('"', 1)[0]
    return parse_qs(urlparse(href.replace("&amp;", "&")).query)["token"][0]


def test_email_verification_over_http(client, notifier):
    r = client.post("/api/v1/auth/register", json={"email": "v@example.com", "password": "pw", "full_name": "Vee"})
    headers = {"Authorization": f"Bearer {r.json()['token']}"}
    assert client.get("/api/v1/auth/me", headers=headers).json()["emailVerified"] is False

    mail = notifier.sent[-1]
    assert mail["to"] == "v@example.com" and mail["subject"].startswith("Verify your email")
    token = _link_token(mail["html"])

    r = client.get("/api/v1/auth/verify-email", params={"token": token})
    assert r.status_code == 200
    assert client.get("/api/v1/auth/me", headers=headers).json()["emailVerified"] is True

    bad = client.get("/api/v1/auth/verify-email", params={"token": "garbage"})
    assert bad.status_code == 400 and bad.json()["kind"] == "ValidationError"

    before = len(notifier.sent)
    assert client.post("/api/v1/auth/resend-verification", json={"email": "v@example.com"}).status_code == 200
    assert client.post("/api/v1/auth/resend-verification", json={"email": "nobody@example.com"}).status_code == 200
    assert len(notifier.sent) == before


def test_password_reset_over_http(client, factory, notifier):
    factory.tourist(email="forgetful@example.com")

    assert client.post("/api/v1/auth/forgot-password", json={"email": "nobody@example.com"}).status_code == 200
    assert notifier.sent == []

    r = client.post("/api/v1/auth/forgot-password", json={"email": "Forgetful@Example.com"})
    assert r.status_code == 200
    token = _link_token(notifier.sent[-1]["html"])

    r = client.post("/api/v1/auth/reset-password", json={"token": token, "password": "new-secret"})
    assert r.status_code == 200
    assert client.post("/api/v1/auth/login", json={"email": "forgetful@example.com", "password": "new-secret"}
                       ).status_code == 200
    assert client.post("/api/v1/auth/login", json={"email": "forgetful@example.com", "password": "tourist-pass"}
                       ).status_code == 401

    reused = client.post("/api/v1/auth/reset-password", json={"token": token, "password": "again"})
    assert reused.status_code == 400
