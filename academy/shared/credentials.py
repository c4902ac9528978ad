"""Lookup table describing each credential-bearing subject type."""

from __future__ import annotations

from typing import Callable, NamedTuple

from ..app import db
from ..constants import CREDENTIAL_TYPE_LABELS, CredentialType
from ..models import (
    Bundle,
    Course,
    CourseChapter,
    CourseCompletion,
    CourseEnrollment,
    CourseSection,
    Guidance,
    Mentorship,
    OfflineBatch,
    Webinar,
    WebinarCompletion,
    WebinarEnrollment,
)


def _published_chapter_ids(course_id: int) -> list[int]:
    rows = (
        db.session.query(CourseChapter.id)
        .join(CourseSection, CourseChapter.section_id == CourseSection.id)
        .filter(CourseSection.course_id == course_id)
        .filter(CourseChapter.is_published.is_(True))
        .order_by(CourseSection.position, CourseChapter.position, CourseChapter.id)
        .all()
    )
    return [chapter_id for (chapter_id,) in rows]


class CredentialSpec(NamedTuple):
    label: str
    subject_model: type
    marker_model: type | None = None
    marker_subject_field: str | None = None
    enrollment_model: type | None = None
    enrollment_subject_field: str | None = None
    required_units: Callable[[int], list[int]] | None = None


CREDENTIALS: dict[CredentialType, CredentialSpec] = {
    CredentialType.COURSE: CredentialSpec(
        label=CREDENTIAL_TYPE_LABELS[CredentialType.COURSE],
        subject_model=Course,
        marker_model=CourseCompletion,
        marker_subject_field="course_id",
        enrollment_model=CourseEnrollment,
        enrollment_subject_field="course_id",
        required_units=_published_chapter_ids,
    ),
    CredentialType.WEBINAR: CredentialSpec(
        label=CREDENTIAL_TYPE_LABELS[CredentialType.WEBINAR],
        subject_model=Webinar,
        marker_model=WebinarCompletion,
        marker_subject_field="webinar_id",
        enrollment_model=WebinarEnrollment,
        enrollment_subject_field="webinar_id",
    ),
    CredentialType.MENTORSHIP: CredentialSpec(
        label=CREDENTIAL_TYPE_LABELS[CredentialType.MENTORSHIP],
        subject_model=Mentorship,
    ),
    CredentialType.GUIDANCE: CredentialSpec(
        label=CREDENTIAL_TYPE_LABELS[CredentialType.GUIDANCE],
        subject_model=Guidance,
    ),
    CredentialType.OFFLINE_BATCH: CredentialSpec(
        label=CREDENTIAL_TYPE_LABELS[CredentialType.OFFLINE_BATCH],
        subject_model=OfflineBatch,
    ),
    CredentialType.BUNDLE: CredentialSpec(
        label=CREDENTIAL_TYPE_LABELS[CredentialType.BUNDLE],
        subject_model=Bundle,
    ),
}


def get_spec(credential_type) -> CredentialSpec:
    return CREDENTIALS[CredentialType.parse(credential_type)]


def load_subject(credential_type, subject_id: int):
    return db.session.get(get_spec(credential_type).subject_model, subject_id)


def subject_title(credential_type, subject_id: int) -> str | None:
    subject = load_subject(credential_type, subject_id)
    return subject.title if subject else None


def find_marker(credential_type, subject_id: int, user_id: int):
    spec = get_spec(credential_type)
    if spec.marker_model is None:
        return None
    return (
        db.session.query(spec.marker_model)
        .filter_by(**{spec.marker_subject_field: subject_id, "user_id": user_id})
        .one_or_none()
    )


def build_marker(credential_type, subject_id: int, user_id: int):
    spec = get_spec(credential_type)
    if spec.marker_model is None:
        raise ValueError(f"{spec.label} has no completion marker")
    return spec.marker_model(**{spec.marker_subject_field: subject_id, "user_id": user_id})


def find_enrollment(credential_type, subject_id: int, user_id: int):
    spec = get_spec(credential_type)
    if spec.enrollment_model is None:
        return None
    return (
        db.session.query(spec.enrollment_model)
        .filter_by(**{spec.enrollment_subject_field: subject_id, "user_id": user_id})
        .one_or_none()
    )


def enrolled_user_ids(credential_type, subject_id: int) -> list[int]:
    spec = get_spec(credential_type)
    if spec.enrollment_model is None:
        return []
    model = spec.enrollment_model
    rows = (
        db.session.query(model.user_id)
        .filter(getattr(model, spec.enrollment_subject_field) == subject_id)
        .order_by(model.id)
        .all()
    )
    return [user_id for (user_id,) in rows]


def subject_details(credential_type, subject_id: int) -> dict | None:
    subject = load_subject(credential_type, subject_id)
    if not subject:
        return None
    return {
        "id": subject.id,
        "title": subject.title,
        "slug": getattr(subject, "slug", None),
    }
