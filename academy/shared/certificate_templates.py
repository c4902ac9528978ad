from __future__ import annotations

import re
from io import BytesIO
from typing import NamedTuple

import requests
from flask import current_app
from PIL import Image, UnidentifiedImageError

from ..app import db
from ..constants import (
    DEFAULT_FOOTER_TEXT,
    DEFAULT_ISSUER_NAME,
    DEFAULT_ISSUER_TITLE,
    DEFAULT_PRIMARY_COLOR,
    DEFAULT_SECONDARY_COLOR,
    CredentialType,
)
from ..models import CertificateTemplate
from .storage import get_artifact_store

_HEX_COLOR_RE = re.compile(r"^#[0-9a-fA-F]{6}$")
_MAX_ASSET_PX = 1200

EDITABLE_FIELDS: tuple[str, ...] = (
    "name",
    "description",
    "issuer_name",
    "issuer_title",
    "footer_text",
    "primary_color",
    "secondary_color",
    "is_active",
)


class TemplateValidationError(ValueError):
    """Raised when template fields fail validation."""


class TemplateNotFoundError(LookupError):
    """Raised when no template row exists for a credential type."""


class TemplateConfig(NamedTuple):
    type: str
    primary_color: str = DEFAULT_PRIMARY_COLOR
    secondary_color: str = DEFAULT_SECONDARY_COLOR
    issuer_name: str = DEFAULT_ISSUER_NAME
    issuer_title: str = DEFAULT_ISSUER_TITLE
    footer_text: str = DEFAULT_FOOTER_TEXT
    logo: bytes | None = None
    signature: bytes | None = None
    stamp: bytes | None = None
    background: bytes | None = None
    source: str = "default"


def _safe_color(value: str | None, default: str, *, field: str) -> str:
    cleaned = (value or "").strip()
    if not cleaned:
        return default
    if _HEX_COLOR_RE.match(cleaned):
        return cleaned
    current_app.logger.warning(
        "[cert-template] invalid %s=%r; falling back to %s", field, cleaned, default
    )
    return default


def fetch_asset(key: str | None) -> bytes | None:
    """Load a template asset from the artifact store or a remote URL.

    Any failure degrades the asset to absent.
    """
    cleaned = (key or "").strip()
    if not cleaned:
        return None
    if not cleaned.startswith(("http://", "https://")):
        data = get_artifact_store().read(cleaned)
        if not data:
            current_app.logger.warning("[cert-template] asset unresolved key=%s", cleaned)
            return None
        return data
    url = cleaned
    try:
        response = requests.get(url, timeout=current_app.config["ASSET_FETCH_TIMEOUT"])
        response.raise_for_status()
    except requests.RequestException as exc:
        current_app.logger.warning(
            "[cert-template] asset fetch failed url=%s error=%s", url, exc
        )
        return None
    return response.content or None


def normalize_image(data: bytes | None, *, allow_pdf: bool = False) -> bytes | None:
    """Re-encode an image as PNG; undecodable data becomes ``None``."""
    if not data:
        return None
    if allow_pdf and data.startswith(b"%PDF"):
        return data
    resampling = getattr(Image, "Resampling", None)
    resample_filter = resampling.LANCZOS if resampling is not None else Image.LANCZOS
    try:
        with Image.open(BytesIO(data)) as img:
            converted = img.convert("RGBA")
            converted.thumbnail((_MAX_ASSET_PX, _MAX_ASSET_PX), resample_filter)
            out = BytesIO()
            converted.save(out, format="PNG")
            return out.getvalue()
    except (UnidentifiedImageError, OSError, ValueError):
        current_app.logger.warning("[cert-template] undecodable asset skipped")
        return None


def _active_template(credential_type: CredentialType) -> CertificateTemplate | None:
    return (
        db.session.query(CertificateTemplate)
        .filter(CertificateTemplate.type == credential_type.value)
        .filter(CertificateTemplate.is_active.is_(True))
        .one_or_none()
    )


def resolve(credential_type) -> TemplateConfig:
    ctype = CredentialType.parse(credential_type)
    template = _active_template(ctype)
    if template is None:
        current_app.logger.info("[cert-template] type=%s source=default", ctype.value)
        return TemplateConfig(type=ctype.value)

    config = TemplateConfig(
        type=ctype.value,
        primary_color=_safe_color(
            template.primary_color, DEFAULT_PRIMARY_COLOR, field="primary_color"
        ),
        secondary_color=_safe_color(
            template.secondary_color, DEFAULT_SECONDARY_COLOR, field="secondary_color"
        ),
        issuer_name=(template.issuer_name or "").strip() or DEFAULT_ISSUER_NAME,
        issuer_title=(template.issuer_title or "").strip() or DEFAULT_ISSUER_TITLE,
        footer_text=(template.footer_text or "").strip() or DEFAULT_FOOTER_TEXT,
        logo=normalize_image(fetch_asset(template.logo_key)),
        signature=normalize_image(fetch_asset(template.signature_key)),
        stamp=normalize_image(fetch_asset(template.stamp_key)),
        background=normalize_image(fetch_asset(template.background_key), allow_pdf=True),
        source="stored",
    )
    current_app.logger.info(
        "[cert-template] type=%s source=stored logo=%s signature=%s stamp=%s background=%s",
        ctype.value,
        config.logo is not None,
        config.signature is not None,
        config.stamp is not None,
        config.background is not None,
    )
    return config


def get_template(credential_type) -> CertificateTemplate:
    ctype = CredentialType.parse(credential_type)
    template = (
        db.session.query(CertificateTemplate)
        .filter(CertificateTemplate.type == ctype.value)
        .one_or_none()
    )
    if template is None:
        raise TemplateNotFoundError(f"No template configured for {ctype.value}")
    return template


def list_templates() -> list[CertificateTemplate]:
    return (
        db.session.query(CertificateTemplate)
        .order_by(CertificateTemplate.created_at.desc(), CertificateTemplate.id.desc())
        .all()
    )


def upsert_template(credential_type, payload: dict) -> CertificateTemplate:
    """Create or update the template for ``credential_type``; caller commits."""
    try:
        ctype = CredentialType.parse(credential_type)
    except ValueError as exc:
        raise TemplateValidationError(str(exc)) from exc
    name = (payload.get("name") or "").strip()
    if not name:
        raise TemplateValidationError("Type and name are required")
    for field in ("primary_color", "secondary_color"):
        value = payload.get(field)
        if value and not _HEX_COLOR_RE.match(str(value).strip()):
            raise TemplateValidationError(f"{field} must be a hex color like #6366F1")

    template = (
        db.session.query(CertificateTemplate)
        .filter(CertificateTemplate.type == ctype.value)
        .one_or_none()
    )
    if template is None:
        template = CertificateTemplate(
            type=ctype.value,
            issuer_name=DEFAULT_ISSUER_NAME,
            issuer_title=DEFAULT_ISSUER_TITLE,
            primary_color=DEFAULT_PRIMARY_COLOR,
            secondary_color=DEFAULT_SECONDARY_COLOR,
            is_active=True,
        )
        db.session.add(template)
    for field in EDITABLE_FIELDS:
        if field not in payload or payload[field] is None:
            continue
        value = payload[field]
        if field == "is_active":
            value = value is not False and str(value).lower() != "false"
        elif isinstance(value, str):
            value = value.strip()
        setattr(template, field, value)
    template.name = name
    return template


def update_template_assets(credential_type, payload: dict) -> CertificateTemplate:
    """Point asset fields at new keys and drop the replaced artifacts."""
    try:
        ctype = CredentialType.parse(credential_type)
    except ValueError as exc:
        raise TemplateValidationError(str(exc)) from exc
    template = (
        db.session.query(CertificateTemplate)
        .filter(CertificateTemplate.type == ctype.value)
        .one_or_none()
    )
    if template is None:
        template = CertificateTemplate(
            type=ctype.value, name=f"{ctype.value} Certificate", is_active=True
        )
        db.session.add(template)

    replaced: list[str] = []
    for field in CertificateTemplate.ASSET_FIELDS:
        if field not in payload:
            continue
        new_value = (payload[field] or "").strip() or None
        old_value = getattr(template, field)
        if old_value and old_value != new_value:
            replaced.append(old_value)
        setattr(template, field, new_value)

    store = get_artifact_store()
    for key in replaced:
        if not store.delete(key):
            current_app.logger.info("[cert-template] old asset not removed key=%s", key)
    return template


def delete_template(credential_type) -> None:
    template = get_template(credential_type)
    db.session.delete(template)
