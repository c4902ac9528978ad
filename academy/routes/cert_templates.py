from __future__ import annotations

from flask import Blueprint, jsonify, request

from ..app import db
from ..models import CertificateTemplate
from ..shared.certificate_templates import (
    TemplateNotFoundError,
    TemplateValidationError,
    delete_template,
    get_template,
    list_templates,
    update_template_assets,
    upsert_template,
)
from ..shared.rbac import admin_required
from ..shared.storage import get_artifact_store
from ..shared.time import isoformat

bp = Blueprint(
    "cert_templates", __name__, url_prefix="/api/admin/certificate-templates"
)

_PAYLOAD_FIELDS = {
    "name": "name",
    "description": "description",
    "issuerName": "issuer_name",
    "issuerTitle": "issuer_title",
    "footerText": "footer_text",
    "primaryColor": "primary_color",
    "secondaryColor": "secondary_color",
    "isActive": "is_active",
    "logoKey": "logo_key",
    "signatureKey": "signature_key",
    "stampKey": "stamp_key",
    "backgroundKey": "background_key",
}


def _payload() -> dict:
    raw = request.get_json(silent=True)
    if not isinstance(raw, dict):
        raw = request.form.to_dict()
    return {field: raw[key] for key, field in _PAYLOAD_FIELDS.items() if key in raw}


def _serialize(template: CertificateTemplate) -> dict:
    store = get_artifact_store()
    data = {
        "id": template.id,
        "type": template.type,
        "name": template.name,
        "description": template.description,
        "issuerName": template.issuer_name,
        "issuerTitle": template.issuer_title,
        "footerText": template.footer_text,
        "primaryColor": template.primary_color,
        "secondaryColor": template.secondary_color,
        "isActive": template.is_active,
        "createdAt": isoformat(template.created_at),
        "updatedAt": isoformat(template.updated_at),
    }
    for field in CertificateTemplate.ASSET_FIELDS:
        key = getattr(template, field)
        camel = field.replace("_key", "")
        data[f"{camel}Key"] = key
        if key and key.startswith(("http://", "https://")):
            data[f"{camel}Url"] = key
        else:
            data[f"{camel}Url"] = store.get(key) if key else None
    return data


@bp.get("")
@admin_required
def index(current_user):
    return jsonify({"ok": True, "data": [_serialize(t) for t in list_templates()]})


@bp.get("/<credential_type>")
@admin_required
def show(credential_type: str, current_user):
    try:
        template = get_template(credential_type)
    except TemplateNotFoundError as exc:
        return jsonify({"ok": False, "error": str(exc)}), 404
    except ValueError as exc:
        return jsonify({"ok": False, "error": str(exc)}), 400
    return jsonify({"ok": True, "data": _serialize(template)})


@bp.put("/<credential_type>")
@admin_required
def upsert(credential_type: str, current_user):
    try:
        template = upsert_template(credential_type, _payload())
        db.session.commit()
    except TemplateValidationError as exc:
        db.session.rollback()
        return jsonify({"ok": False, "error": str(exc)}), 400
    return jsonify({"ok": True, "data": _serialize(template)})


@bp.put("/<credential_type>/assets")
@admin_required
def update_assets(credential_type: str, current_user):
    try:
        template = update_template_assets(credential_type, _payload())
        db.session.commit()
    except TemplateValidationError as exc:
        db.session.rollback()
        return jsonify({"ok": False, "error": str(exc)}), 400
    return jsonify({"ok": True, "data": _serialize(template)})


@bp.delete("/<credential_type>")
@admin_required
def destroy(credential_type: str, current_user):
    try:
        delete_template(credential_type)
        db.session.commit()
    except TemplateNotFoundError as exc:
        db.session.rollback()
        return jsonify({"ok": False, "error": str(exc)}), 404
    except ValueError as exc:
        db.session.rollback()
        return jsonify({"ok": False, "error": str(exc)}), 400
    return jsonify({"ok": True})
