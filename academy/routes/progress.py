from __future__ import annotations

from flask import Blueprint, jsonify, request

from ..app import db
from ..services.completion import SubjectNotFoundError, completion_status
from ..services.progress import (
    ProgressAccessError,
    ProgressNotFoundError,
    ProgressValidationError,
    record_progress_for_user,
)
from ..shared.rbac import login_required
from ..shared.time import isoformat

bp = Blueprint("progress", __name__, url_prefix="/api")


@bp.post("/chapters/<int:chapter_id>/progress")
@login_required
def update_progress(chapter_id: int, current_user):
    payload = request.get_json(silent=True)
    if not isinstance(payload, dict):
        payload = request.form

    try:
        update = record_progress_for_user(
            chapter_id,
            current_user.id,
            payload.get("progress"),
            payload.get("isCompleted"),
        )
    except ProgressNotFoundError as exc:
        db.session.rollback()
        return jsonify({"ok": False, "error": str(exc)}), 404
    except ProgressAccessError as exc:
        db.session.rollback()
        return jsonify({"ok": False, "error": str(exc)}), 403
    except ProgressValidationError as exc:
        db.session.rollback()
        return jsonify({"ok": False, "error": str(exc)}), 400

    progress = update.progress
    completion = update.completion
    return jsonify(
        {
            "ok": True,
            "progress": {
                "chapterId": progress.chapter_id,
                "enrollmentId": progress.enrollment_id,
                "progress": progress.progress_percent,
                "isCompleted": progress.completed,
                "lastWatchedAt": isoformat(progress.last_watched_at),
            },
            "courseCompleted": bool(completion and completion.completed),
            "newlyCompleted": bool(completion and completion.is_new),
            "certificatePending": bool(completion and completion.certificate_pending),
            "evaluationFailed": update.evaluation_failed,
        }
    )


@bp.get("/courses/<int:course_id>/completion")
@login_required
def course_completion(course_id: int, current_user):
    try:
        status = completion_status(current_user.id, course_id)
    except SubjectNotFoundError as exc:
        return jsonify({"ok": False, "error": str(exc)}), 404
    return jsonify({"ok": True, **status})
