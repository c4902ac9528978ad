from academy.constants import CredentialType
from academy.models import Certificate
from academy.shared import certificates as registry
from academy.shared.certificates import issue_for, revoke
from conftest import chapters_of, login


def test_verify_distinguishes_missing_and_revoked(app, client, make_user, make_course):
    user = make_user(name="Kavya Nair")
    course = make_course()
    cert = issue_for(user.id, CredentialType.COURSE, course.id)
    number = cert.certificate_no

    ok = client.get(f"/api/certificates/verify/{number}")
    assert ok.status_code == 200
    assert ok.get_json()["valid"] is True
    assert ok.get_json()["data"]["recipientName"] == "Kavya Nair"

    revoke(cert.id)
    revoked = client.get(f"/api/certificates/verify/{number}")
    assert revoked.status_code == 200
    assert revoked.get_json()["valid"] is False
    assert revoked.get_json()["data"]["certificateNo"] == number

    missing = client.get("/api/certificates/verify/CERT-UNKNOWN-00000000")
    assert missing.status_code == 404
    assert missing.get_json()["valid"] is False


def test_learner_endpoints_require_login(client):
    assert client.get("/api/certificates/mine").status_code == 401
    assert client.post("/api/chapters/1/progress", json={"progress": 10}).status_code == 401


def test_my_certificates_and_download(app, client, make_user, make_course):
    owner = make_user()
    stranger = make_user()
    course = make_course(title="Rust for Beginners")
    cert = issue_for(owner.id, CredentialType.COURSE, course.id)
    cert_id = cert.id

    login(client, owner)
    mine = client.get("/api/certificates/mine").get_json()
    assert [c["id"] for c in mine["data"]] == [cert_id]
    assert mine["data"][0]["itemDetails"]["title"] == "Rust for Beginners"
    assert mine["data"][0]["certificateUrl"].startswith("/media/certificates/")

    download = client.get(f"/api/certificates/{cert_id}/download")
    assert download.status_code == 200
    assert download.get_json()["downloadUrl"].endswith(".pdf")

    login(client, stranger)
    assert client.get(f"/api/certificates/{cert_id}/download").status_code == 404


def test_progress_endpoint_completes_course(app, client, make_user, make_course, enroll):
    user = make_user()
    course = make_course(chapters=2)
    enroll(user, course)
    first, second = chapters_of(course)
    login(client, user)

    res = client.post(f"/api/chapters/{first.id}/progress", json={"progress": 120})
    body = res.get_json()
    assert res.status_code == 200
    assert body["progress"]["progress"] == 100
    assert body["progress"]["isCompleted"] is True
    assert body["courseCompleted"] is False

    res = client.post(
        f"/api/chapters/{second.id}/progress", json={"progress": 30, "isCompleted": "true"}
    )
    body = res.get_json()
    assert body["courseCompleted"] is True
    assert body["newlyCompleted"] is True
    assert body["certificatePending"] is False

    status = client.get(f"/api/courses/{course.id}/completion").get_json()
    assert status["completed"] is True
    assert status["certificate"]["status"] == "GENERATED"


def test_progress_endpoint_errors(app, client, make_user, make_course):
    user = make_user()
    course = make_course(free_preview=True)
    preview = chapters_of(course)[0]
    login(client, user)

    res = client.post(f"/api/chapters/{preview.id}/progress", json={"progress": 10})
    assert res.status_code == 403
    assert res.get_json()["error"] == "Please enroll to track progress"

    assert client.post("/api/chapters/999/progress", json={"progress": 10}).status_code == 404
    assert client.get("/api/courses/999/completion").status_code == 404


def test_progress_endpoint_rejects_bad_number(app, client, make_user, make_course, enroll):
    user = make_user()
    course = make_course()
    enroll(user, course)
    login(client, user)

    res = client.post(
        f"/api/chapters/{chapters_of(course)[0].id}/progress", json={"progress": "plenty"}
    )

    assert res.status_code == 400
    assert res.get_json()["ok"] is False


def test_admin_endpoints_require_admin(app, client, make_user):
    login(client, make_user())

    assert client.get("/api/admin/certificates").status_code == 403
    assert client.get("/api/admin/certificate-templates").status_code == 403


def test_admin_certificate_lifecycle(app, client, make_user, make_course, enroll):
    admin = make_user(name="Admin", is_admin=True)
    learner = make_user(name="Sara Thomas")
    course = make_course()
    enroll(learner, course)
    login(client, admin)

    issued = client.post(
        "/api/admin/certificates/issue",
        json={"userId": learner.id, "type": "COURSE", "referenceId": course.id},
    )
    assert issued.status_code == 201
    cert_id = issued.get_json()["data"]["id"]
    number = issued.get_json()["data"]["certificateNo"]

    duplicate = client.post(
        "/api/admin/certificates/issue",
        json={"userId": learner.id, "type": "COURSE", "referenceId": course.id},
    )
    assert duplicate.status_code == 409

    listing = client.get("/api/admin/certificates?type=COURSE&page=1&limit=5").get_json()
    assert listing["pagination"]["total"] == 1
    assert listing["data"][0]["user"]["name"] == "Sara Thomas"

    assert client.post(f"/api/admin/certificates/{cert_id}/revoke").status_code == 200
    assert client.post(f"/api/admin/certificates/{cert_id}/revoke").status_code == 409
    stats = client.get("/api/admin/certificates/stats").get_json()["data"]
    assert stats["revoked"] == 1
    assert client.post(f"/api/admin/certificates/{cert_id}/restore").status_code == 200

    by_subject = client.get(f"/api/admin/certificates/subject/COURSE/{course.id}").get_json()
    assert [c["id"] for c in by_subject["data"]] == [cert_id]

    assert client.delete(f"/api/admin/certificates/{cert_id}").status_code == 200
    assert client.get(f"/api/certificates/verify/{number}").status_code == 404
    assert client.delete(f"/api/admin/certificates/{cert_id}").status_code == 404


def test_admin_issue_validation(app, client, make_user, make_course):
    admin = make_user(is_admin=True)
    learner = make_user()
    course = make_course()
    login(client, admin)

    not_enrolled = client.post(
        "/api/admin/certificates/issue",
        json={"userId": learner.id, "type": "COURSE", "referenceId": course.id},
    )
    assert not_enrolled.status_code == 400

    unknown_type = client.post(
        "/api/admin/certificates/issue",
        json={"userId": learner.id, "type": "PODCAST", "referenceId": 1},
    )
    assert unknown_type.status_code == 400

    no_user = client.post(
        "/api/admin/certificates/issue",
        json={"userId": 9999, "type": "COURSE", "referenceId": course.id},
    )
    assert no_user.status_code == 404
    assert Certificate.query.count() == 0


def test_admin_regenerate_and_issuance_failure(app, client, make_user, make_course, monkeypatch):
    admin = make_user(is_admin=True)
    learner = make_user()
    course = make_course()
    cert = issue_for(learner.id, CredentialType.COURSE, course.id)
    cert_id, old_number = cert.id, cert.certificate_no
    login(client, admin)

    res = client.post(f"/api/admin/certificates/{cert_id}/regenerate")
    assert res.status_code == 200
    assert res.get_json()["data"]["certificateNo"] != old_number

    def _broken(*args, **kwargs):
        raise RuntimeError("disk full")

    monkeypatch.setattr(registry, "render", _broken)
    new_id = res.get_json()["data"]["id"]
    failed = client.post(f"/api/admin/certificates/{new_id}/regenerate")
    assert failed.status_code == 502


def test_template_admin_endpoints(app, client, make_user):
    login(client, make_user(is_admin=True))

    bad = client.put(
        "/api/admin/certificate-templates/COURSE",
        json={"name": "Course", "primaryColor": "red"},
    )
    assert bad.status_code == 400

    saved = client.put(
        "/api/admin/certificate-templates/COURSE",
        json={"name": "Course", "primaryColor": "#112233", "issuerName": "Northwind"},
    )
    assert saved.status_code == 200
    assert saved.get_json()["data"]["primaryColor"] == "#112233"

    assets = client.put(
        "/api/admin/certificate-templates/COURSE/assets",
        json={"logoKey": "https://cdn.test/logo.png"},
    )
    assert assets.get_json()["data"]["logoUrl"] == "https://cdn.test/logo.png"

    listing = client.get("/api/admin/certificate-templates").get_json()
    assert [t["type"] for t in listing["data"]] == ["COURSE"]

    assert client.delete("/api/admin/certificate-templates/COURSE").status_code == 200
    assert client.get("/api/admin/certificate-templates/COURSE").status_code == 404


def test_admin_issue_reports_number_exhaustion(
    app, client, make_user, make_course, enroll, monkeypatch
):
    admin = make_user(is_admin=True)
    first = make_user()
    second = make_user()
    course = make_course()
    enroll(second, course)
    monkeypatch.setattr(registry, "generate_certificate_number", lambda: "CERT-DUP-00000001")
    issue_for(first.id, CredentialType.COURSE, course.id)
    login(client, admin)

    res = client.post(
        "/api/admin/certificates/issue",
        json={"userId": second.id, "type": "COURSE", "referenceId": course.id},
    )

    assert res.status_code == 502
    assert res.get_json()["ok"] is False
