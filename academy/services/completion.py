from __future__ import annotations

from datetime import datetime, timedelta
from typing import NamedTuple

from flask import current_app
from sqlalchemy.exc import IntegrityError

from ..app import db
from ..constants import (
    COMPLETION_THRESHOLD_PERCENT,
    CREDENTIAL_TYPE_LABELS,
    DEFAULT_WEBINAR_DURATION_MINUTES,
    CredentialType,
)
from ..models import ChapterProgress, Course, CourseReview, User, Webinar
from ..shared.certificates import find_certificate, issue_for
from ..shared.credentials import (
    build_marker,
    enrolled_user_ids,
    find_enrollment,
    find_marker,
    get_spec,
)
from ..shared.time import as_utc, isoformat, now_utc
from .notifications import notify_review_request

__all__ = [
    "CompletionResult",
    "SubjectNotFoundError",
    "evaluate",
    "completion_status",
    "webinar_end_time",
    "webinar_has_ended",
    "complete_webinar_for_enrolled_users",
    "process_ended_webinars",
]


class SubjectNotFoundError(LookupError):
    """Raised when the course or webinar being evaluated does not exist."""


class CompletionResult(NamedTuple):
    completed: bool
    is_new: bool
    certificate_pending: bool = False


def _course_units_satisfied(user_id: int, course_id: int, now: datetime | None = None) -> bool:
    enrollment = find_enrollment(CredentialType.COURSE, course_id, user_id)
    if enrollment is None:
        return False
    unit_ids = get_spec(CredentialType.COURSE).required_units(course_id)
    if not unit_ids:
        current_app.logger.info("[COMPLETION] course=%s has no published chapters", course_id)
        return False
    satisfied = (
        db.session.query(ChapterProgress.chapter_id)
        .filter(ChapterProgress.enrollment_id == enrollment.id)
        .filter(ChapterProgress.chapter_id.in_(unit_ids))
        .filter(
            (ChapterProgress.progress_percent >= COMPLETION_THRESHOLD_PERCENT)
            | ChapterProgress.completed.is_(True)
        )
        .distinct()
        .count()
    )
    current_app.logger.debug(
        "[COMPLETION] course=%s user=%s satisfied=%s/%s",
        course_id,
        user_id,
        satisfied,
        len(unit_ids),
    )
    return satisfied >= len(unit_ids)


def webinar_end_time(webinar: Webinar) -> datetime | None:
    start = as_utc(webinar.start_date)
    if start is None:
        return None
    minutes = webinar.duration or DEFAULT_WEBINAR_DURATION_MINUTES
    return start + timedelta(minutes=minutes)


def webinar_has_ended(webinar: Webinar, now: datetime | None = None) -> bool:
    end = webinar_end_time(webinar)
    if end is None:
        return False
    return end <= (as_utc(now) if now else now_utc())


def _webinar_attended(user_id: int, webinar_id: int, now: datetime | None = None) -> bool:
    webinar = db.session.get(Webinar, webinar_id)
    if webinar is None:
        return False
    if find_enrollment(CredentialType.WEBINAR, webinar_id, user_id) is None:
        return False
    return webinar_has_ended(webinar, now)


COMPLETION_RULES = {
    CredentialType.COURSE: _course_units_satisfied,
    CredentialType.WEBINAR: _webinar_attended,
}


def _record_marker(ctype: CredentialType, subject_id: int, user_id: int) -> bool:
    db.session.add(build_marker(ctype, subject_id, user_id))
    try:
        db.session.commit()
    except IntegrityError:
        db.session.rollback()
        current_app.logger.info(
            "[COMPLETION] already recorded type=%s subject=%s user=%s",
            ctype.value,
            subject_id,
            user_id,
        )
        return False
    current_app.logger.info(
        "[COMPLETION] recorded type=%s subject=%s user=%s", ctype.value, subject_id, user_id
    )
    return True


def _issue_after_completion(ctype: CredentialType, subject_id: int, user_id: int) -> bool:
    try:
        issue_for(user_id, ctype, subject_id)
    except Exception:
        db.session.rollback()
        current_app.logger.exception(
            "[CERT-PENDING] type=%s subject=%s user=%s", ctype.value, subject_id, user_id
        )
        return False
    return True


def _request_review(user_id: int, course_id: int) -> None:
    reviewed = (
        db.session.query(CourseReview.id)
        .filter_by(user_id=user_id, course_id=course_id)
        .first()
    )
    if reviewed:
        return
    try:
        notify_review_request(db.session.get(User, user_id), db.session.get(Course, course_id))
    except Exception:
        current_app.logger.exception(
            "[REVIEW-REQUEST-FAIL] course=%s user=%s", course_id, user_id
        )


def evaluate(
    user_id: int, credential_type, subject_id: int, *, now: datetime | None = None
) -> CompletionResult:
    """Record completion for (user, subject) once its rule is satisfied.

    Only the caller that inserts the completion marker issues the certificate
    and sends the review request; everyone else sees ``is_new=False``.
    """
    ctype = CredentialType.parse(credential_type)
    rule = COMPLETION_RULES.get(ctype)
    if rule is None:
        raise ValueError(f"{CREDENTIAL_TYPE_LABELS[ctype]} completion is not tracked")

    if find_marker(ctype, subject_id, user_id) is not None:
        return CompletionResult(completed=True, is_new=False)
    if not rule(user_id, subject_id, now):
        return CompletionResult(completed=False, is_new=False)
    if not _record_marker(ctype, subject_id, user_id):
        return CompletionResult(completed=True, is_new=False)

    issued = _issue_after_completion(ctype, subject_id, user_id)
    if ctype is CredentialType.COURSE:
        _request_review(user_id, subject_id)
    return CompletionResult(completed=True, is_new=True, certificate_pending=not issued)


def completion_status(user_id: int, course_id: int) -> dict:
    if db.session.get(Course, course_id) is None:
        raise SubjectNotFoundError("Course not found")
    marker = find_marker(CredentialType.COURSE, course_id, user_id)
    cert = find_certificate(user_id, CredentialType.COURSE, course_id)
    if cert is not None:
        certificate = {"id": cert.id, "certificateNo": cert.certificate_no, "status": cert.status}
    elif marker is not None:
        certificate = {"status": "PENDING"}
    else:
        certificate = None
    return {
        "courseId": course_id,
        "completed": marker is not None,
        "completedAt": isoformat(marker.completed_at) if marker else None,
        "certificate": certificate,
    }


def complete_webinar_for_enrolled_users(webinar_id: int, now: datetime | None = None) -> int:
    """Evaluate every enrollee of an ended webinar; returns new completions."""
    webinar = db.session.get(Webinar, webinar_id)
    if webinar is None:
        raise SubjectNotFoundError("Webinar not found")
    if not webinar_has_ended(webinar, now):
        current_app.logger.info("[WEBINAR-SWEEP] webinar=%s not ended yet", webinar_id)
        return 0

    processed = 0
    for user_id in enrolled_user_ids(CredentialType.WEBINAR, webinar_id):
        try:
            result = evaluate(user_id, CredentialType.WEBINAR, webinar_id, now=now)
        except Exception:
            db.session.rollback()
            current_app.logger.exception(
                "[WEBINAR-SWEEP] user=%s webinar=%s failed", user_id, webinar_id
            )
            continue
        if result.is_new:
            processed += 1
    current_app.logger.info(
        "[WEBINAR-SWEEP] webinar=%s new_completions=%s", webinar_id, processed
    )
    return processed


def process_ended_webinars(now: datetime | None = None) -> int:
    now = as_utc(now) if now else now_utc()
    webinars = (
        db.session.query(Webinar)
        .filter(Webinar.is_published.is_(True))
        .filter(Webinar.start_date.isnot(None))
        .order_by(Webinar.start_date, Webinar.id)
        .all()
    )
    total = 0
    for webinar in webinars:
        if not webinar_has_ended(webinar, now):
            continue
        try:
            total += complete_webinar_for_enrolled_users(webinar.id, now)
        except Exception:
            db.session.rollback()
            current_app.logger.exception("[WEBINAR-SWEEP] webinar=%s failed", webinar.id)
    return total
