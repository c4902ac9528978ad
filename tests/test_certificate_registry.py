import os
import re

import pytest
from sqlalchemy.exc import IntegrityError

from academy.app import db
from academy.constants import CertificateStatus, CredentialType
from academy.models import (
    Certificate,
    CourseCompletion,
    Mentorship,
    Webinar,
)
from academy.shared import certificates as registry
from academy.shared.certificates import (
    CertificateConflictError,
    CertificateIssuanceError,
    CertificateNotFoundError,
    CertificateStateError,
    CertificateValidationError,
    admin_issue,
    certificate_stats,
    delete,
    download_link,
    generate_certificate_number,
    issue,
    issue_for,
    list_certificates,
    regenerate,
    restore,
    revoke,
    verify,
)
from academy.shared.time import now_utc


def _artifact_files(app):
    root = os.path.join(app.config["SITE_ROOT"], "artifacts", "certificates")
    found = []
    for dirpath, _, names in os.walk(root):
        found.extend(os.path.join(dirpath, name) for name in names)
    return found


def test_certificate_number_format():
    number = generate_certificate_number()

    assert re.fullmatch(r"CERT-[0-9A-Z]+-[0-9A-F]{8}", number)
    assert generate_certificate_number() != number


def test_issue_creates_row_and_artifact(app, make_user, make_course):
    user = make_user(name="Rohan Verma")
    course = make_course(title="Machine Learning 101")

    cert = issue_for(user.id, CredentialType.COURSE, course.id)

    assert cert.status == CertificateStatus.GENERATED.value
    assert cert.certificate_url.startswith(f"certificates/course-{course.id}/")
    files = _artifact_files(app)
    assert len(files) == 1
    with open(files[0], "rb") as handle:
        assert handle.read(4) == b"%PDF"


def test_issue_is_idempotent(app, make_user, make_course):
    user = make_user()
    course = make_course()

    first = issue_for(user.id, "COURSE", course.id)
    second = issue_for(user.id, "COURSE", course.id)

    assert first.id == second.id
    assert first.certificate_no == second.certificate_no
    assert Certificate.query.count() == 1
    assert len(_artifact_files(app)) == 1


def test_lost_insert_race_returns_existing(app, make_user, make_course, monkeypatch):
    user = make_user()
    course = make_course()
    original = issue_for(user.id, CredentialType.COURSE, course.id)

    real_find = registry.find_certificate
    calls = {"n": 0}

    def _stale_then_real(*args, **kwargs):
        calls["n"] += 1
        if calls["n"] == 1:
            return None
        return real_find(*args, **kwargs)

    monkeypatch.setattr(registry, "find_certificate", _stale_then_real)

    again = issue(user.id, CredentialType.COURSE, course.id, "Someone", course.title)

    assert again.id == original.id
    assert Certificate.query.count() == 1
    assert len(_artifact_files(app)) == 1


def test_duplicate_certificate_number_is_rejected_by_storage(app, make_user, make_course):
    user = make_user()
    other = make_user()
    course = make_course()
    cert = issue_for(user.id, CredentialType.COURSE, course.id)

    db.session.add(
        Certificate(
            user_id=other.id,
            type="COURSE",
            reference_id=course.id,
            certificate_no=cert.certificate_no,
            issued_at=now_utc(),
        )
    )
    with pytest.raises(IntegrityError):
        db.session.commit()
    db.session.rollback()


def test_number_collision_retries_with_fresh_number(app, make_user, make_course, monkeypatch):
    first_user = make_user()
    second_user = make_user()
    course = make_course()
    numbers = iter(["CERT-DUP-00000001", "CERT-DUP-00000001", "CERT-NEW-00000002"])
    monkeypatch.setattr(registry, "generate_certificate_number", lambda: next(numbers))

    issue_for(first_user.id, CredentialType.COURSE, course.id)
    second = issue_for(second_user.id, CredentialType.COURSE, course.id)

    assert second.certificate_no == "CERT-NEW-00000002"
    assert Certificate.query.count() == 2
    assert len(_artifact_files(app)) == 2


def test_exhausted_number_retries_raise_issuance_error(
    app, make_user, make_course, monkeypatch
):
    first_user = make_user()
    second_user = make_user()
    course = make_course()
    monkeypatch.setattr(registry, "generate_certificate_number", lambda: "CERT-DUP-00000001")
    issue_for(first_user.id, CredentialType.COURSE, course.id)

    with pytest.raises(CertificateIssuanceError, match="unique certificate number"):
        issue_for(second_user.id, CredentialType.COURSE, course.id)
    assert Certificate.query.count() == 1
    assert len(_artifact_files(app)) == 1


def test_render_failure_creates_no_row(app, make_user, make_course, monkeypatch):
    user = make_user()
    course = make_course()

    def _broken(*args, **kwargs):
        raise RuntimeError("font cache corrupted")

    monkeypatch.setattr(registry, "render", _broken)

    with pytest.raises(CertificateIssuanceError):
        issue_for(user.id, CredentialType.COURSE, course.id)
    assert Certificate.query.count() == 0


def test_issue_requires_recipient_and_title(app, make_user):
    user = make_user()

    with pytest.raises(CertificateValidationError):
        issue(user.id, CredentialType.COURSE, 1, "  ", "Course")


def test_issue_for_unknown_subject(app, make_user):
    user = make_user()

    with pytest.raises(CertificateNotFoundError, match="Webinar not found"):
        issue_for(user.id, CredentialType.WEBINAR, 404)


def test_issue_for_other_credential_types(app, make_user):
    user = make_user()
    program = Mentorship(title="Career Mentorship")
    db.session.add(program)
    db.session.commit()

    cert = issue_for(user.id, "mentorship", program.id, recipient_name="Dr. A. Rao")

    assert cert.type == "MENTORSHIP"
    assert verify(cert.certificate_no)["data"]["itemDetails"]["title"] == "Career Mentorship"


def test_revoke_restore_and_verify(app, make_user, make_course):
    user = make_user(name="Meera Iyer")
    course = make_course()
    cert = issue_for(user.id, CredentialType.COURSE, course.id)

    valid = verify(cert.certificate_no)
    assert valid["valid"] is True
    assert valid["data"]["recipientName"] == "Meera Iyer"
    assert "certificateUrl" not in valid["data"]

    revoke(cert.id)
    revoked = verify(cert.certificate_no)
    assert revoked["valid"] is False
    assert revoked["data"]["status"] == "REVOKED"
    assert revoked["data"]["certificateNo"] == cert.certificate_no

    with pytest.raises(CertificateStateError):
        revoke(cert.id)

    restore(cert.id)
    assert verify(cert.certificate_no)["valid"] is True
    with pytest.raises(CertificateStateError):
        restore(cert.id)


def test_verify_unknown_number_is_none(app):
    assert verify("CERT-NOPE-00000000") is None
    assert verify("") is None


def test_delete_removes_row_and_artifact(app, make_user, make_course):
    user = make_user()
    course = make_course()
    cert = issue_for(user.id, CredentialType.COURSE, course.id)
    number = cert.certificate_no

    delete(cert.id)

    assert verify(number) is None
    assert Certificate.query.count() == 0
    assert _artifact_files(app) == []
    with pytest.raises(CertificateNotFoundError):
        delete(cert.id)


def test_regenerate_issues_new_number(app, make_user, make_course):
    user = make_user()
    course = make_course()
    cert = issue_for(user.id, CredentialType.COURSE, course.id)
    old_number = cert.certificate_no

    fresh = regenerate(cert.id)

    assert fresh.certificate_no != old_number
    assert verify(old_number) is None
    assert Certificate.query.count() == 1
    assert len(_artifact_files(app)) == 1


def test_regenerate_keeps_certificate_when_subject_is_gone(app, make_user):
    user = make_user()
    program = Mentorship(title="Platform Mentorship")
    db.session.add(program)
    db.session.commit()
    cert = issue_for(user.id, CredentialType.MENTORSHIP, program.id)
    cert_id = cert.id
    db.session.delete(program)
    db.session.commit()

    with pytest.raises(CertificateNotFoundError, match="not found"):
        regenerate(cert_id)
    assert db.session.get(Certificate, cert_id) is not None
    assert len(_artifact_files(app)) == 1


def test_printed_name_is_what_verify_reports(app, make_user, make_course, enroll):
    user = make_user(name="", email="ravi.k@example.com")
    custom = make_user(name="Anita")
    course = make_course()
    enroll(custom, course)

    derived = issue_for(user.id, CredentialType.COURSE, course.id)
    manual = admin_issue(custom.id, "COURSE", course.id, custom_name="Dr. Anita Desai")

    assert derived.recipient_name == "ravi.k"
    assert verify(derived.certificate_no)["data"]["recipientName"] == "ravi.k"
    assert verify(manual.certificate_no)["data"]["recipientName"] == "Dr. Anita Desai"
    assert regenerate(manual.id).recipient_name == "Dr. Anita Desai"


def test_download_link_checks_owner_and_status(app, make_user, make_course):
    owner = make_user()
    stranger = make_user()
    course = make_course()
    cert = issue_for(owner.id, CredentialType.COURSE, course.id)

    link = download_link(cert.id, owner.id)
    assert link["downloadUrl"] == f"/media/{cert.certificate_url}"

    with pytest.raises(CertificateNotFoundError):
        download_link(cert.id, stranger.id)

    revoke(cert.id)
    with pytest.raises(CertificateNotFoundError):
        download_link(cert.id, owner.id)


def test_admin_issue_rejects_duplicates(app, make_user, make_course, enroll):
    user = make_user()
    course = make_course()
    enroll(user, course)

    cert = admin_issue(user.id, "COURSE", course.id, custom_name="R. K. Narayan")

    assert cert.type == "COURSE"
    assert CourseCompletion.query.filter_by(user_id=user.id, course_id=course.id).count() == 1
    with pytest.raises(CertificateConflictError):
        admin_issue(user.id, "COURSE", course.id)


def test_admin_issue_course_requires_enrollment(app, make_user, make_course):
    user = make_user()
    course = make_course()

    with pytest.raises(CertificateValidationError, match="not enrolled"):
        admin_issue(user.id, "COURSE", course.id)


def test_admin_issue_validates_input(app, make_user):
    user = make_user()

    with pytest.raises(CertificateValidationError):
        admin_issue(user.id, "PODCAST", 1)
    with pytest.raises(CertificateNotFoundError, match="User not found"):
        admin_issue(999, "COURSE", 1)


def test_admin_listing_and_stats(app, make_user, make_course):
    course = make_course()
    webinar = Webinar(title="Cloud Basics", slug="cloud-basics", start_date=now_utc())
    db.session.add(webinar)
    db.session.commit()
    users = [make_user() for _ in range(3)]
    certs = [issue_for(u.id, CredentialType.COURSE, course.id) for u in users]
    issue_for(users[0].id, CredentialType.WEBINAR, webinar.id)
    revoke(certs[0].id)

    items, pagination = list_certificates(credential_type="course", page=1, limit=2)
    assert len(items) == 2
    assert pagination == {"page": 1, "limit": 2, "total": 3, "pages": 2}

    revoked, _ = list_certificates(status="revoked")
    assert [c.id for c in revoked] == [certs[0].id]

    needle = certs[1].certificate_no[-8:].lower()
    found, _ = list_certificates(search=needle)
    assert [c.id for c in found] == [certs[1].id]

    stats = certificate_stats()
    assert stats["total"] == 4
    assert stats["courseCerts"] == 3
    assert stats["webinarCerts"] == 1
    assert stats["revoked"] == 1
