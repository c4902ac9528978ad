from __future__ import annotations

import math
import secrets
import string
import time

from flask import current_app
from sqlalchemy import func
from sqlalchemy.exc import IntegrityError

from ..app import db
from ..constants import (
    CERTIFICATE_CONTENT_TYPE,
    CREDENTIAL_TYPE_LABELS,
    CertificateStatus,
    CredentialType,
)
from ..models import Certificate, User
from .certificate_render import render
from .certificate_templates import resolve
from .credentials import (
    build_marker,
    find_enrollment,
    find_marker,
    get_spec,
    subject_details,
    subject_title,
)
from .storage import get_artifact_store
from .time import isoformat, now_utc

MAX_NUMBER_ATTEMPTS = 3
_BASE36 = string.digits + string.ascii_uppercase


class CertificateValidationError(ValueError):
    """Raised when issuance input is incomplete or inconsistent."""


class CertificateNotFoundError(LookupError):
    """Raised when a certificate, user or subject does not exist."""


class CertificateStateError(ValueError):
    """Raised on an invalid status transition (revoke twice, restore active)."""


class CertificateConflictError(ValueError):
    """Raised when a manual issue targets an already certified pair."""


class CertificateIssuanceError(RuntimeError):
    """Raised when rendering or storing the document fails; no row is written."""


def _base36(value: int) -> str:
    if value == 0:
        return "0"
    digits: list[str] = []
    while value:
        value, rem = divmod(value, 36)
        digits.append(_BASE36[rem])
    return "".join(reversed(digits))


def generate_certificate_number() -> str:
    """``CERT-<ms timestamp base36>-<8 hex>``; sortable by issue time."""
    timestamp = _base36(time.time_ns() // 1_000_000)
    suffix = secrets.token_hex(4).upper()
    return f"CERT-{timestamp}-{suffix}"


def _certificate_key(ctype: CredentialType, reference_id: int, user_id: int, certificate_no: str) -> str:
    return (
        f"certificates/{ctype.value.lower()}-{reference_id}/"
        f"user-{user_id}-{certificate_no}.pdf"
    )


def _is_cert_number_conflict(error: IntegrityError) -> bool:
    details = str(getattr(error, "orig", None) or error).lower()
    return "certificate_no" in details


def find_certificate(user_id: int, credential_type, reference_id: int) -> Certificate | None:
    ctype = CredentialType.parse(credential_type)
    return (
        db.session.query(Certificate)
        .filter_by(user_id=user_id, type=ctype.value, reference_id=reference_id)
        .one_or_none()
    )


def get_certificate(certificate_id: int) -> Certificate:
    cert = db.session.get(Certificate, certificate_id)
    if cert is None:
        raise CertificateNotFoundError("Certificate not found")
    return cert


def _notify_issued(cert: Certificate, credential_title: str) -> None:
    from ..services.notifications import notify_certificate_issued

    try:
        user = db.session.get(User, cert.user_id)
        notify_certificate_issued(cert, user, credential_title)
    except Exception:
        current_app.logger.exception(
            "[CERT-NOTIFY-FAIL] certificate=%s user=%s", cert.certificate_no, cert.user_id
        )


def issue(
    user_id: int,
    credential_type,
    reference_id: int,
    recipient_name: str,
    credential_title: str,
    *,
    notify: bool = True,
) -> Certificate:
    """Return the certificate for (user, type, subject), creating it once.

    An existing row is returned untouched. Otherwise the document is rendered
    and stored before the row is inserted; a lost insert race returns the
    winner's row.
    """
    ctype = CredentialType.parse(credential_type)
    existing = find_certificate(user_id, ctype, reference_id)
    if existing:
        current_app.logger.info(
            "[CERT-EXISTS] user=%s type=%s ref=%s no=%s",
            user_id,
            ctype.value,
            reference_id,
            existing.certificate_no,
        )
        return existing

    recipient_name = (recipient_name or "").strip()
    credential_title = (credential_title or "").strip()
    if not recipient_name or not credential_title:
        raise CertificateValidationError("recipient name and credential title are required")

    template = resolve(ctype)
    store = get_artifact_store()
    type_label = CREDENTIAL_TYPE_LABELS[ctype]

    for attempt in range(1, MAX_NUMBER_ATTEMPTS + 1):
        certificate_no = generate_certificate_number()
        issued_at = now_utc()
        try:
            pdf_bytes = render(
                recipient_name,
                type_label,
                credential_title,
                certificate_no,
                issued_at,
                template,
            )
            key = store.put(
                pdf_bytes,
                _certificate_key(ctype, reference_id, user_id, certificate_no),
                CERTIFICATE_CONTENT_TYPE,
            )
        except Exception as exc:
            current_app.logger.exception(
                "[CERT-FAIL] user=%s type=%s ref=%s", user_id, ctype.value, reference_id
            )
            raise CertificateIssuanceError(
                f"Certificate generation failed for {type_label.lower()} {reference_id}"
            ) from exc

        cert = Certificate(
            user_id=user_id,
            type=ctype.value,
            reference_id=reference_id,
            certificate_no=certificate_no,
            certificate_url=key,
            recipient_name=recipient_name,
            issued_at=issued_at,
            status=CertificateStatus.GENERATED.value,
        )
        db.session.add(cert)
        try:
            db.session.commit()
        except IntegrityError as exc:
            db.session.rollback()
            store.delete(key)
            winner = find_certificate(user_id, ctype, reference_id)
            if winner:
                current_app.logger.info(
                    "[CERT-RACE] user=%s type=%s ref=%s kept=%s",
                    user_id,
                    ctype.value,
                    reference_id,
                    winner.certificate_no,
                )
                return winner
            if _is_cert_number_conflict(exc):
                current_app.logger.warning(
                    "[CERT-NUMBER-CONFLICT] no=%s attempt=%s", certificate_no, attempt
                )
                continue
            raise CertificateIssuanceError(
                f"Certificate could not be saved for {type_label.lower()} {reference_id}"
            ) from exc

        current_app.logger.info(
            "[CERT-ISSUE] user=%s type=%s ref=%s no=%s key=%s",
            user_id,
            ctype.value,
            reference_id,
            certificate_no,
            key,
        )
        if notify:
            _notify_issued(cert, credential_title)
        return cert

    current_app.logger.error(
        "[CERT-FAIL] user=%s type=%s ref=%s no unique number after %s attempts",
        user_id,
        ctype.value,
        reference_id,
        MAX_NUMBER_ATTEMPTS,
    )
    raise CertificateIssuanceError("Could not allocate a unique certificate number")


def issue_for(
    user_id: int,
    credential_type,
    reference_id: int,
    *,
    recipient_name: str | None = None,
) -> Certificate:
    """Resolve the recipient and subject title, then ``issue``."""
    ctype = CredentialType.parse(credential_type)
    user = db.session.get(User, user_id)
    if user is None:
        raise CertificateNotFoundError("User not found")
    title = subject_title(ctype, reference_id)
    if title is None:
        raise CertificateNotFoundError(f"{CREDENTIAL_TYPE_LABELS[ctype]} not found")
    name = (recipient_name or "").strip() or user.display_name
    return issue(user_id, ctype, reference_id, name, title)


def revoke(certificate_id: int) -> Certificate:
    cert = get_certificate(certificate_id)
    if cert.status == CertificateStatus.REVOKED.value:
        raise CertificateStateError("Certificate is already revoked")
    cert.status = CertificateStatus.REVOKED.value
    db.session.commit()
    current_app.logger.info("[CERT-REVOKE] id=%s no=%s", cert.id, cert.certificate_no)
    return cert


def restore(certificate_id: int) -> Certificate:
    cert = get_certificate(certificate_id)
    if cert.status != CertificateStatus.REVOKED.value:
        raise CertificateStateError("Certificate is not revoked")
    cert.status = CertificateStatus.GENERATED.value
    db.session.commit()
    current_app.logger.info("[CERT-RESTORE] id=%s no=%s", cert.id, cert.certificate_no)
    return cert


def delete(certificate_id: int) -> None:
    cert = get_certificate(certificate_id)
    if cert.certificate_url and not get_artifact_store().delete(cert.certificate_url):
        current_app.logger.warning(
            "[CERT-DELETE] artifact not removed key=%s", cert.certificate_url
        )
    certificate_no = cert.certificate_no
    db.session.delete(cert)
    db.session.commit()
    current_app.logger.info("[CERT-DELETE] id=%s no=%s", certificate_id, certificate_no)


def regenerate(certificate_id: int) -> Certificate:
    cert = get_certificate(certificate_id)
    user_id, ctype, reference_id = cert.user_id, cert.credential_type, cert.reference_id
    if db.session.get(User, user_id) is None:
        raise CertificateNotFoundError("User not found")
    if subject_title(ctype, reference_id) is None:
        raise CertificateNotFoundError(f"{CREDENTIAL_TYPE_LABELS[ctype]} not found")
    recipient_name = cert.recipient_name
    delete(certificate_id)
    return issue_for(user_id, ctype, reference_id, recipient_name=recipient_name)


def admin_issue(
    user_id: int,
    credential_type,
    reference_id: int,
    *,
    custom_name: str | None = None,
) -> Certificate:
    """Manual issuance from the back office; refuses to replace a certificate."""
    if not user_id or not credential_type or not reference_id:
        raise CertificateValidationError("userId, type, and referenceId are required")
    try:
        ctype = CredentialType.parse(credential_type)
    except ValueError as exc:
        raise CertificateValidationError(str(exc)) from exc
    if db.session.get(User, user_id) is None:
        raise CertificateNotFoundError("User not found")
    if subject_title(ctype, reference_id) is None:
        raise CertificateNotFoundError(f"{CREDENTIAL_TYPE_LABELS[ctype]} not found")
    if find_certificate(user_id, ctype, reference_id):
        raise CertificateConflictError("Certificate already exists for this user and item")

    spec = get_spec(ctype)
    if ctype is CredentialType.COURSE and find_enrollment(ctype, reference_id, user_id) is None:
        raise CertificateValidationError("User is not enrolled in this course")
    if spec.marker_model is not None and find_marker(ctype, reference_id, user_id) is None:
        db.session.add(build_marker(ctype, reference_id, user_id))
        try:
            db.session.commit()
        except IntegrityError:
            db.session.rollback()

    return issue_for(user_id, ctype, reference_id, recipient_name=custom_name)


def reprocess_pending(credential_type) -> int:
    """Issue certificates for completion markers that have none yet."""
    ctype = CredentialType.parse(credential_type)
    spec = get_spec(ctype)
    if spec.marker_model is None:
        return 0
    marker = spec.marker_model
    subject_col = getattr(marker, spec.marker_subject_field)
    rows = (
        db.session.query(marker.user_id, subject_col)
        .outerjoin(
            Certificate,
            (Certificate.user_id == marker.user_id)
            & (Certificate.type == ctype.value)
            & (Certificate.reference_id == subject_col),
        )
        .filter(Certificate.id.is_(None))
        .order_by(marker.id)
        .all()
    )
    issued = 0
    for user_id, subject_id in rows:
        try:
            issue_for(user_id, ctype, subject_id)
            issued += 1
        except (CertificateIssuanceError, CertificateNotFoundError, CertificateValidationError):
            db.session.rollback()
            current_app.logger.exception(
                "[CERT-REPROCESS-FAIL] user=%s type=%s ref=%s", user_id, ctype.value, subject_id
            )
    current_app.logger.info("[CERT-REPROCESS] type=%s issued=%s pending=%s", ctype.value, issued, len(rows))
    return issued


def verify(certificate_no: str) -> dict | None:
    """Public lookup; ``None`` means the number was never issued (or deleted)."""
    cleaned = (certificate_no or "").strip()
    if not cleaned:
        return None
    cert = db.session.query(Certificate).filter_by(certificate_no=cleaned).one_or_none()
    if cert is None:
        return None
    payload = {
        "certificateNo": cert.certificate_no,
        "type": cert.type,
        "status": cert.status,
        "recipientName": cert.recipient_name
        or (cert.user.display_name if cert.user else None)
        or "Anonymous",
        "issuedAt": isoformat(cert.issued_at),
        "itemDetails": subject_details(cert.type, cert.reference_id),
    }
    if cert.status == CertificateStatus.REVOKED.value:
        return {"valid": False, "message": "Certificate revoked", "data": payload}
    return {"valid": True, "message": "Certificate is valid", "data": payload}


def certificate_to_dict(cert: Certificate, *, admin: bool = False) -> dict:
    store = get_artifact_store()
    data = {
        "id": cert.id,
        "userId": cert.user_id,
        "type": cert.type,
        "referenceId": cert.reference_id,
        "certificateNo": cert.certificate_no,
        "issuedAt": isoformat(cert.issued_at),
        "status": cert.status,
        "certificateUrl": store.get(cert.certificate_url),
        "itemDetails": subject_details(cert.type, cert.reference_id),
    }
    if admin:
        data["certificateKey"] = cert.certificate_url
        if cert.user:
            data["user"] = {"id": cert.user.id, "name": cert.user.name, "email": cert.user.email}
    return data


def list_for_user(user_id: int) -> list[Certificate]:
    return (
        db.session.query(Certificate)
        .filter_by(user_id=user_id, status=CertificateStatus.GENERATED.value)
        .order_by(Certificate.issued_at.desc(), Certificate.id.desc())
        .all()
    )


def download_link(certificate_id: int, user_id: int) -> dict:
    cert = (
        db.session.query(Certificate)
        .filter_by(id=certificate_id, user_id=user_id, status=CertificateStatus.GENERATED.value)
        .one_or_none()
    )
    if cert is None or not cert.certificate_url:
        raise CertificateNotFoundError("Certificate not found")
    url = get_artifact_store().get(cert.certificate_url)
    if not url:
        raise CertificateNotFoundError("Certificate file is not available")
    return {"downloadUrl": url, "certificateNo": cert.certificate_no}


def list_certificates(
    *,
    credential_type: str | None = None,
    status: str | None = None,
    search: str | None = None,
    page: int = 1,
    limit: int = 10,
) -> tuple[list[Certificate], dict]:
    query = db.session.query(Certificate)
    if credential_type:
        try:
            query = query.filter(Certificate.type == CredentialType.parse(credential_type).value)
        except ValueError as exc:
            raise CertificateValidationError(str(exc)) from exc
    if status:
        query = query.filter(Certificate.status == status.strip().upper())
    if search:
        query = query.filter(
            func.lower(Certificate.certificate_no).contains(search.strip().lower())
        )
    page = max(1, int(page or 1))
    limit = min(100, max(1, int(limit or 10)))
    total = query.count()
    items = (
        query.order_by(Certificate.issued_at.desc(), Certificate.id.desc())
        .offset((page - 1) * limit)
        .limit(limit)
        .all()
    )
    pagination = {
        "page": page,
        "limit": limit,
        "total": total,
        "pages": math.ceil(total / limit) if total else 0,
    }
    return items, pagination


def certificates_for_subject(credential_type, reference_id: int) -> list[Certificate]:
    ctype = CredentialType.parse(credential_type)
    return (
        db.session.query(Certificate)
        .filter_by(type=ctype.value, reference_id=reference_id)
        .order_by(Certificate.issued_at.desc(), Certificate.id.desc())
        .all()
    )


def certificate_stats() -> dict:
    counts = dict(
        db.session.query(Certificate.type, func.count(Certificate.id))
        .group_by(Certificate.type)
        .all()
    )
    revoked = (
        db.session.query(func.count(Certificate.id))
        .filter(Certificate.status == CertificateStatus.REVOKED.value)
        .scalar()
    )
    return {
        "total": sum(counts.values()),
        "courseCerts": counts.get(CredentialType.COURSE.value, 0),
        "webinarCerts": counts.get(CredentialType.WEBINAR.value, 0),
        "revoked": revoked or 0,
        "byType": {ctype.value: counts.get(ctype.value, 0) for ctype in CredentialType},
    }
