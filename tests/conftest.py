import itertools
import pathlib
import sys

import pytest

PROJECT_ROOT = pathlib.Path(__file__).resolve().parent.parent
if str(PROJECT_ROOT) not in sys.path:
    sys.path.insert(0, str(PROJECT_ROOT))

from academy.app import create_app, db
from academy.models import (
    Course,
    CourseChapter,
    CourseEnrollment,
    CourseSection,
    User,
)

_SMTP_KEYS = (
    "SMTP_HOST",
    "SMTP_PORT",
    "SMTP_USER",
    "SMTP_PASS",
    "SMTP_FROM_DEFAULT",
    "SMTP_FROM_NAME",
)


def pytest_collection_modifyitems(config, items):
    for item in items:
        if "slow" in item.keywords or "quarantine" in item.keywords:
            continue
        item.add_marker("full")
        if "no_smoke" in item.keywords:
            continue
        item.add_marker("smoke")


@pytest.fixture
def app(tmp_path, monkeypatch):
    monkeypatch.setenv("DATABASE_URL", "sqlite:///:memory:")
    monkeypatch.setenv("SITE_ROOT", str(tmp_path))
    monkeypatch.setenv("CLIENT_URL", "https://academy.test")
    monkeypatch.setenv("NOTIFY_SYNC", "1")
    monkeypatch.delenv("WEBINAR_SWEEP_ENABLED", raising=False)
    monkeypatch.delenv("ARTIFACT_PUBLIC_BASE_URL", raising=False)
    for key in _SMTP_KEYS:
        monkeypatch.delenv(key, raising=False)
    application = create_app()
    application.config["TESTING"] = True
    with application.app_context():
        db.create_all()
        yield application
        db.session.remove()


@pytest.fixture
def client(app):
    return app.test_client()


@pytest.fixture
def make_user(app):
    counter = itertools.count(1)

    def _make(name="Asha Learner", email=None, is_admin=False):
        n = next(counter)
        user = User(email=email or f"learner{n}@example.com", name=name, is_admin=is_admin)
        db.session.add(user)
        db.session.commit()
        return user

    return _make


@pytest.fixture
def make_course(app):
    counter = itertools.count(1)

    def _make(title=None, chapters=3, free_preview=False):
        n = next(counter)
        title = title or f"Python Foundations {n}"
        course = Course(title=title, slug=f"course-{n}")
        section = CourseSection(course=course, title="Getting started", position=1)
        for idx in range(chapters):
            CourseChapter(
                section=section,
                title=f"Chapter {idx + 1}",
                position=idx + 1,
                is_free_preview=free_preview and idx == 0,
            )
        db.session.add(course)
        db.session.commit()
        return course

    return _make


@pytest.fixture
def enroll(app):
    def _enroll(user, course):
        enrollment = CourseEnrollment(course_id=course.id, user_id=user.id)
        db.session.add(enrollment)
        db.session.commit()
        return enrollment

    return _enroll


def chapters_of(course):
    return sorted(
        (chapter for section in course.sections for chapter in section.chapters),
        key=lambda chapter: chapter.position,
    )


def login(client, user):
    with client.session_transaction() as sess:
        sess["user_id"] = user.id
