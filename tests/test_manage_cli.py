import os
from datetime import timedelta

import pytest

from academy.app import db
from academy.constants import CredentialType
from academy.models import Certificate, CourseCompletion, Webinar, WebinarEnrollment
from academy.shared.certificates import issue_for
from academy.shared.storage import get_artifact_store
from academy.shared.time import now_utc
from manage import (
    issue_cert,
    process_webinars,
    purge_orphan_certs,
    reprocess_completions,
)


@pytest.fixture
def runner(app):
    for command in (issue_cert, process_webinars, reprocess_completions, purge_orphan_certs):
        app.cli.add_command(command)
    return app.test_cli_runner()


def test_issue_cert_cli(app, runner, make_user, make_course):
    user = make_user()
    course = make_course()

    res = runner.invoke(
        args=["issue_cert", "--user", str(user.id), "--type", "course", "--ref", str(course.id)]
    )

    assert res.exit_code == 0
    assert "CERT-" in res.output
    assert Certificate.query.count() == 1


def test_issue_cert_cli_unknown_subject(app, runner, make_user):
    user = make_user()

    res = runner.invoke(
        args=["issue_cert", "--user", str(user.id), "--type", "WEBINAR", "--ref", "77"]
    )

    assert "Webinar not found" in res.output
    assert Certificate.query.count() == 0


def test_process_webinars_cli(app, runner, make_user):
    learner = make_user()
    webinar = Webinar(
        title="GraphQL Live", slug="graphql-live", start_date=now_utc() - timedelta(hours=2)
    )
    db.session.add(webinar)
    db.session.flush()
    db.session.add(WebinarEnrollment(webinar_id=webinar.id, user_id=learner.id))
    db.session.commit()

    res = runner.invoke(args=["process_webinars"])

    assert res.exit_code == 0
    assert "new_completions=1" in res.output


def test_reprocess_completions_cli(app, runner, make_user, make_course):
    user = make_user()
    course = make_course()
    db.session.add(CourseCompletion(course_id=course.id, user_id=user.id))
    db.session.commit()

    res = runner.invoke(args=["reprocess_completions", "--type", "COURSE"])

    assert "issued=1" in res.output
    assert Certificate.query.count() == 1


def test_purge_orphan_certs_cli(app, runner, make_user, make_course):
    user = make_user()
    course = make_course()
    cert = issue_for(user.id, CredentialType.COURSE, course.id)
    kept_key = cert.certificate_url
    store = get_artifact_store()
    orphan_key = store.put(b"%PDF-1.4 orphan", "certificates/course-99/orphan.pdf", "application/pdf")

    dry = runner.invoke(args=["purge_orphan_certs", "--dry-run"])
    assert "scanned=2 deleted=0 kept=1 errors=0" in dry.output
    assert store.get(orphan_key) is not None

    res = runner.invoke(args=["purge_orphan_certs"])
    assert "deleted=1" in res.output
    assert store.get(orphan_key) is None
    assert store.get(kept_key) is not None
    assert os.path.isdir(os.path.join(app.config["SITE_ROOT"], "artifacts", "certificates"))
