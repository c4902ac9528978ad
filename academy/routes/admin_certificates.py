from __future__ import annotations

from flask import Blueprint, jsonify, request

from ..app import db
from ..services.completion import (
    SubjectNotFoundError,
    complete_webinar_for_enrolled_users,
    process_ended_webinars,
)
from ..shared.certificates import (
    CertificateConflictError,
    CertificateIssuanceError,
    CertificateNotFoundError,
    CertificateStateError,
    CertificateValidationError,
    admin_issue,
    certificate_stats,
    certificate_to_dict,
    certificates_for_subject,
    delete,
    list_certificates,
    regenerate,
    reprocess_pending,
    restore,
    revoke,
)
from ..shared.rbac import admin_required

bp = Blueprint("admin_certificates", __name__, url_prefix="/api/admin/certificates")


def _error(exc: Exception):
    db.session.rollback()
    if isinstance(exc, CertificateNotFoundError):
        code = 404
    elif isinstance(exc, (CertificateConflictError, CertificateStateError)):
        code = 409
    elif isinstance(exc, CertificateIssuanceError):
        code = 502
    else:
        code = 400
    return jsonify({"ok": False, "error": str(exc)}), code


_HANDLED = (
    CertificateNotFoundError,
    CertificateConflictError,
    CertificateStateError,
    CertificateIssuanceError,
    CertificateValidationError,
)


@bp.get("")
@admin_required
def index(current_user):
    try:
        items, pagination = list_certificates(
            credential_type=request.args.get("type"),
            status=request.args.get("status"),
            search=request.args.get("search"),
            page=request.args.get("page", 1, type=int),
            limit=request.args.get("limit", 10, type=int),
        )
    except CertificateValidationError as exc:
        return _error(exc)
    return jsonify(
        {
            "ok": True,
            "data": [certificate_to_dict(cert, admin=True) for cert in items],
            "pagination": pagination,
        }
    )


@bp.get("/stats")
@admin_required
def stats(current_user):
    return jsonify({"ok": True, "data": certificate_stats()})


@bp.get("/subject/<credential_type>/<int:reference_id>")
@admin_required
def by_subject(credential_type: str, reference_id: int, current_user):
    try:
        items = certificates_for_subject(credential_type, reference_id)
    except ValueError as exc:
        return jsonify({"ok": False, "error": str(exc)}), 400
    return jsonify(
        {"ok": True, "data": [certificate_to_dict(cert, admin=True) for cert in items]}
    )


@bp.post("/issue")
@admin_required
def issue_manual(current_user):
    payload = request.get_json(silent=True)
    if not isinstance(payload, dict):
        payload = request.form
    try:
        user_id = int(payload.get("userId") or 0)
        reference_id = int(payload.get("referenceId") or 0)
    except (TypeError, ValueError):
        return jsonify({"ok": False, "error": "userId and referenceId must be integers"}), 400
    try:
        cert = admin_issue(
            user_id,
            payload.get("type"),
            reference_id,
            custom_name=payload.get("customName"),
        )
    except _HANDLED as exc:
        return _error(exc)
    return jsonify({"ok": True, "data": certificate_to_dict(cert, admin=True)}), 201


@bp.post("/<int:certificate_id>/revoke")
@admin_required
def revoke_certificate(certificate_id: int, current_user):
    try:
        cert = revoke(certificate_id)
    except _HANDLED as exc:
        return _error(exc)
    return jsonify({"ok": True, "data": certificate_to_dict(cert, admin=True)})


@bp.post("/<int:certificate_id>/restore")
@admin_required
def restore_certificate(certificate_id: int, current_user):
    try:
        cert = restore(certificate_id)
    except _HANDLED as exc:
        return _error(exc)
    return jsonify({"ok": True, "data": certificate_to_dict(cert, admin=True)})


@bp.post("/<int:certificate_id>/regenerate")
@admin_required
def regenerate_certificate(certificate_id: int, current_user):
    try:
        cert = regenerate(certificate_id)
    except _HANDLED as exc:
        return _error(exc)
    return jsonify({"ok": True, "data": certificate_to_dict(cert, admin=True)})


@bp.delete("/<int:certificate_id>")
@admin_required
def delete_certificate(certificate_id: int, current_user):
    try:
        delete(certificate_id)
    except _HANDLED as exc:
        return _error(exc)
    return jsonify({"ok": True})


@bp.post("/reprocess/<credential_type>")
@admin_required
def reprocess(credential_type: str, current_user):
    try:
        issued = reprocess_pending(credential_type)
    except ValueError as exc:
        return jsonify({"ok": False, "error": str(exc)}), 400
    return jsonify({"ok": True, "issued": issued})


@bp.post("/webinars/<int:webinar_id>/complete")
@admin_required
def complete_webinar(webinar_id: int, current_user):
    try:
        processed = complete_webinar_for_enrolled_users(webinar_id)
    except SubjectNotFoundError as exc:
        return jsonify({"ok": False, "error": str(exc)}), 404
    return jsonify({"ok": True, "processed": processed})


@bp.post("/webinars/process")
@admin_required
def process_webinars(current_user):
    return jsonify({"ok": True, "processed": process_ended_webinars()})
