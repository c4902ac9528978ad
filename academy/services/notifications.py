from __future__ import annotations

import logging
from concurrent.futures import ThreadPoolExecutor
from datetime import date

from flask import current_app, render_template

from .. import emailer
from ..constants import CREDENTIAL_TYPE_LABELS, CredentialType
from ..models import Certificate, Course, User
from ..shared.storage import get_artifact_store

__all__ = [
    "Notifier",
    "notify_certificate_issued",
    "notify_review_request",
]

logger = logging.getLogger("academy.mailer")


class Notifier:
    """Runs best-effort side effects off the request path.

    Jobs are executed inside an application context; any failure is logged
    and dropped. ``sync=True`` runs jobs inline, which tests rely on.
    """

    def __init__(self, app, *, sync: bool = False):
        self.app = app
        self.sync = sync
        self._executor = (
            None
            if sync
            else ThreadPoolExecutor(max_workers=1, thread_name_prefix="academy-notify")
        )

    def submit(self, fn, *args, **kwargs) -> None:
        label = getattr(fn, "__name__", repr(fn))

        def _run() -> None:
            with self.app.app_context():
                try:
                    fn(*args, **kwargs)
                except Exception:
                    logger.exception("[NOTIFY-FAIL] job=%s", label)

        if self._executor is None:
            _run()
            return
        try:
            self._executor.submit(_run)
        except RuntimeError:
            logger.warning("[NOTIFY-DROP] executor closed job=%s", label)

    def shutdown(self) -> None:
        if self._executor is not None:
            self._executor.shutdown(wait=False)


def _get_notifier() -> Notifier:
    return current_app.extensions["academy.notifier"]


def notify_certificate_issued(
    certificate: Certificate, user: User, credential_title: str
) -> None:
    if not user or not user.email:
        return
    client_url = current_app.config["CLIENT_URL"]
    type_label = CREDENTIAL_TYPE_LABELS.get(
        CredentialType(certificate.type), certificate.type
    )
    context = {
        "recipient_name": user.name or "Student",
        "credential_title": credential_title,
        "type_label": type_label,
        "certificate_no": certificate.certificate_no,
        "download_url": get_artifact_store().get(certificate.certificate_url),
        "certificates_url": f"{client_url}/profile/certificates",
        "year": date.today().year,
    }
    subject = f"Congratulations! Your {type_label} Certificate is Ready"
    html = render_template("email/certificate_issued.html", **context)
    body = render_template("email/certificate_issued.txt", **context)
    _get_notifier().submit(emailer.send, user.email, subject, body, html)


def notify_review_request(user: User, course: Course) -> None:
    if not user or not user.email or not course:
        return
    client_url = current_app.config["CLIENT_URL"]
    context = {
        "recipient_name": user.name or "Student",
        "course_title": course.title,
        "review_url": f"{client_url}/courses/{course.slug or course.id}",
        "year": date.today().year,
    }
    subject = f"Share Your Experience - Review \"{course.title}\""
    html = render_template("email/review_request.html", **context)
    body = render_template("email/review_request.txt", **context)
    _get_notifier().submit(emailer.send, user.email, subject, body, html)
