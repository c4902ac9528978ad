from __future__ import annotations

import math
from typing import NamedTuple

from flask import current_app
from sqlalchemy.exc import IntegrityError

from ..app import db
from ..constants import COMPLETION_THRESHOLD_PERCENT, CredentialType
from ..models import ChapterProgress, CourseChapter, CourseEnrollment
from ..shared.credentials import find_enrollment
from ..shared.time import now_utc
from .completion import CompletionResult, evaluate

__all__ = [
    "ProgressValidationError",
    "ProgressNotFoundError",
    "ProgressAccessError",
    "ProgressUpdate",
    "clamp_percent",
    "record_progress",
    "record_progress_for_user",
]


class ProgressValidationError(ValueError):
    """Raised when a progress payload cannot be interpreted."""


class ProgressNotFoundError(LookupError):
    """Raised when the chapter or enrollment does not exist."""


class ProgressAccessError(PermissionError):
    """Raised when the learner may not track progress on a chapter."""


class ProgressUpdate(NamedTuple):
    progress: ChapterProgress
    completion: CompletionResult | None
    evaluation_failed: bool = False


def clamp_percent(value) -> float:
    if value is None or value == "":
        return 0.0
    if isinstance(value, bool):
        raise ProgressValidationError("progress must be a number")
    try:
        number = float(value)
    except (TypeError, ValueError) as exc:
        raise ProgressValidationError("progress must be a number") from exc
    if math.isnan(number):
        raise ProgressValidationError("progress must be a number")
    return min(100.0, max(0.0, number))


def _is_explicit_completion(value) -> bool:
    if isinstance(value, str):
        return value.strip().lower() == "true"
    return value is True


def _upsert(chapter_id: int, enrollment_id: int, percent: float, completed: bool) -> ChapterProgress:
    lookup = db.session.query(ChapterProgress).filter_by(
        chapter_id=chapter_id, enrollment_id=enrollment_id
    )
    row = lookup.one_or_none()
    if row is None:
        row = ChapterProgress(chapter_id=chapter_id, enrollment_id=enrollment_id)
        db.session.add(row)
        try:
            db.session.flush()
        except IntegrityError:
            db.session.rollback()
            row = lookup.one()
    row.progress_percent = percent
    row.completed = completed
    row.last_watched_at = now_utc()
    return row


def record_progress(
    chapter_id: int, enrollment_id: int, percent, explicit_completed=None
) -> ProgressUpdate:
    """Upsert one chapter's progress and re-evaluate course completion.

    The progress write is committed before evaluation; an evaluation failure
    is reported through ``evaluation_failed`` and never undoes the write.
    """
    chapter = db.session.get(CourseChapter, chapter_id)
    if chapter is None:
        raise ProgressNotFoundError("Chapter not found")
    enrollment = db.session.get(CourseEnrollment, enrollment_id)
    if enrollment is None:
        raise ProgressNotFoundError("Enrollment not found")
    course_id = chapter.course_id
    if enrollment.course_id != course_id:
        raise ProgressValidationError("Chapter does not belong to the enrolled course")

    value = clamp_percent(percent)
    completed = _is_explicit_completion(explicit_completed) or value >= COMPLETION_THRESHOLD_PERCENT
    user_id = enrollment.user_id
    row = _upsert(chapter_id, enrollment_id, value, completed)
    db.session.commit()
    current_app.logger.info(
        "[PROGRESS] chapter=%s enrollment=%s percent=%.1f completed=%s",
        chapter_id,
        enrollment_id,
        value,
        completed,
    )

    try:
        completion = evaluate(user_id, CredentialType.COURSE, course_id)
    except Exception:
        db.session.rollback()
        current_app.logger.exception(
            "[COMPLETION-FAIL] course=%s user=%s", course_id, user_id
        )
        return ProgressUpdate(row, None, evaluation_failed=True)
    return ProgressUpdate(row, completion)


def record_progress_for_user(
    chapter_id: int, user_id: int, percent, explicit_completed=None
) -> ProgressUpdate:
    chapter = db.session.get(CourseChapter, chapter_id)
    if chapter is None:
        raise ProgressNotFoundError("Chapter not found")
    enrollment = find_enrollment(CredentialType.COURSE, chapter.course_id, user_id)
    if enrollment is None:
        if chapter.is_free_preview:
            raise ProgressAccessError("Please enroll to track progress")
        raise ProgressAccessError("Not enrolled in this course")
    return record_progress(chapter_id, enrollment.id, percent, explicit_completed)
