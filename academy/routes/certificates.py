from __future__ import annotations

from flask import Blueprint, jsonify

from ..shared.certificates import (
    CertificateNotFoundError,
    certificate_to_dict,
    download_link,
    list_for_user,
    verify,
)
from ..shared.rbac import login_required

bp = Blueprint("certificates", __name__, url_prefix="/api/certificates")


@bp.get("/mine")
@login_required
def my_certificates(current_user):
    items = [certificate_to_dict(cert) for cert in list_for_user(current_user.id)]
    return jsonify({"ok": True, "data": items})


@bp.get("/<int:certificate_id>/download")
@login_required
def download(certificate_id: int, current_user):
    try:
        link = download_link(certificate_id, current_user.id)
    except CertificateNotFoundError as exc:
        return jsonify({"ok": False, "error": str(exc)}), 404
    return jsonify({"ok": True, **link})


@bp.get("/verify/<path:certificate_no>")
def verify_certificate(certificate_no: str):
    result = verify(certificate_no)
    if result is None:
        return jsonify({"ok": False, "valid": False, "error": "Certificate not found"}), 404
    return jsonify({"ok": True, **result})
