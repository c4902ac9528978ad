import logging
import re
import smtplib
import sys
from email.message import EmailMessage
from typing import Iterable, Sequence

from flask import current_app

logger = logging.getLogger("academy.mailer")
if not logger.handlers:
    handler = logging.StreamHandler(sys.stdout)
    logger.addHandler(handler)
logger.setLevel(logging.INFO)

_SPLIT_RE = re.compile(r"[;,]")


def _iter_tokens(recipients: Sequence[str] | str | None) -> Iterable[str]:
    if recipients is None:
        return []
    if isinstance(recipients, str):
        return (part for part in _SPLIT_RE.split(recipients))
    return (str(value) for value in recipients)


def normalize_recipients(recipients: Sequence[str] | str | None) -> list[str]:
    """Drop blanks, malformed addresses and case-insensitive duplicates."""
    seen: set[str] = set()
    kept: list[str] = []
    for raw in _iter_tokens(recipients):
        candidate = (raw or "").strip()
        if not candidate:
            continue
        lowered = candidate.lower()
        if "@" not in lowered or "." not in lowered.split("@")[-1]:
            logger.warning("[MAIL-INVALID-RECIPIENT] token=%s", candidate)
            continue
        if lowered in seen:
            continue
        seen.add(lowered)
        kept.append(candidate)
    return kept


def send(
    recipients: Sequence[str] | str | None,
    subject: str,
    body: str,
    html: str | None = None,
):
    config = current_app.config
    host = config.get("SMTP_HOST")
    port = config.get("SMTP_PORT")
    user = config.get("SMTP_USER")
    password = config.get("SMTP_PASS")
    from_addr = config.get("SMTP_FROM_DEFAULT")
    from_name = config.get("SMTP_FROM_NAME") or ""

    envelope = normalize_recipients(recipients)
    header = ", ".join(envelope)
    if not host or not port or not from_addr:
        logger.info(
            "[MAIL-OUT] mode=stub to=%s subject=\"%s\" result=stub",
            header,
            subject,
        )
        return {"ok": False, "detail": "stub: missing config"}

    if not envelope:
        logger.warning("[MAIL-NO-RECIPIENTS] subject=\"%s\" host=%s", subject, host)
        return {"ok": False, "detail": "no valid recipients"}

    try:
        port_int = int(port)
        msg = EmailMessage()
        msg["Subject"] = subject
        msg["To"] = header
        msg["From"] = f"{from_name} <{from_addr}>" if from_name else from_addr
        msg.set_content(body)
        if html:
            msg.add_alternative(html, subtype="html")
        smtp_cls = smtplib.SMTP_SSL if port_int == 465 else smtplib.SMTP
        with smtp_cls(host, port_int) as server:
            if port_int == 587:
                server.starttls()
            if user and password:
                server.login(user, password)
            server.sendmail(from_addr, envelope, msg.as_string())
    except (smtplib.SMTPException, OSError, ValueError) as exc:
        logger.info(
            "[MAIL-OUT] mode=real to=%s subject=\"%s\" host=%s result=%s",
            header,
            subject,
            host,
            exc,
        )
        return {"ok": False, "detail": str(exc)}
    logger.info(
        "[MAIL-OUT] mode=real to=%s subject=\"%s\" host=%s result=sent",
        header,
        subject,
        host,
    )
    return {"ok": True, "detail": "sent"}
