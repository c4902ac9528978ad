from __future__ import annotations

from ..app import db
from ..constants import CertificateStatus, CredentialType

from .catalog import (  # noqa: E402,F401
    Bundle,
    Course,
    CourseChapter,
    CourseEnrollment,
    CourseReview,
    CourseSection,
    Guidance,
    Mentorship,
    OfflineBatch,
    User,
    Webinar,
    WebinarEnrollment,
)


class ChapterProgress(db.Model):
    __tablename__ = "chapter_progress"

    id = db.Column(db.Integer, primary_key=True)
    chapter_id = db.Column(
        db.Integer,
        db.ForeignKey("course_chapters.id", ondelete="CASCADE"),
        nullable=False,
    )
    enrollment_id = db.Column(
        db.Integer,
        db.ForeignKey("course_enrollments.id", ondelete="CASCADE"),
        nullable=False,
    )
    progress_percent = db.Column(db.Float, nullable=False, default=0)
    completed = db.Column(db.Boolean, nullable=False, default=False)
    last_watched_at = db.Column(db.DateTime(timezone=True))
    __table_args__ = (
        db.UniqueConstraint(
            "chapter_id", "enrollment_id", name="uq_chapter_progress_enrollment"
        ),
        db.CheckConstraint(
            "progress_percent >= 0 AND progress_percent <= 100",
            name="ck_chapter_progress_range",
        ),
    )


class CourseCompletion(db.Model):
    __tablename__ = "course_completions"

    id = db.Column(db.Integer, primary_key=True)
    course_id = db.Column(
        db.Integer, db.ForeignKey("courses.id", ondelete="CASCADE"), nullable=False
    )
    user_id = db.Column(
        db.Integer, db.ForeignKey("users.id", ondelete="CASCADE"), nullable=False
    )
    completed_at = db.Column(db.DateTime, server_default=db.func.now())
    __table_args__ = (
        db.UniqueConstraint("course_id", "user_id", name="uq_course_completion"),
    )


class WebinarCompletion(db.Model):
    __tablename__ = "webinar_completions"

    id = db.Column(db.Integer, primary_key=True)
    webinar_id = db.Column(
        db.Integer, db.ForeignKey("webinars.id", ondelete="CASCADE"), nullable=False
    )
    user_id = db.Column(
        db.Integer, db.ForeignKey("users.id", ondelete="CASCADE"), nullable=False
    )
    completed_at = db.Column(db.DateTime, server_default=db.func.now())
    __table_args__ = (
        db.UniqueConstraint("webinar_id", "user_id", name="uq_webinar_completion"),
    )


class Certificate(db.Model):
    __tablename__ = "certificates"

    id = db.Column(db.Integer, primary_key=True)
    user_id = db.Column(
        db.Integer, db.ForeignKey("users.id", ondelete="CASCADE"), nullable=False
    )
    type = db.Column(db.String(20), nullable=False)
    reference_id = db.Column(db.Integer, nullable=False)
    certificate_no = db.Column(db.String(64), nullable=False)
    certificate_url = db.Column(db.String(512))
    # name printed on the document
    recipient_name = db.Column(db.String(255))
    issued_at = db.Column(db.DateTime(timezone=True), nullable=False)
    status = db.Column(
        db.String(16),
        nullable=False,
        default=CertificateStatus.GENERATED.value,
        server_default=CertificateStatus.GENERATED.value,
    )
    __table_args__ = (
        db.UniqueConstraint(
            "user_id", "type", "reference_id", name="uq_certificates_user_type_ref"
        ),
        db.UniqueConstraint("certificate_no", name="uq_certificates_certificate_no"),
        db.Index("ix_certificates_type_reference", "type", "reference_id"),
    )
    user = db.relationship("User")

    @property
    def credential_type(self) -> CredentialType:
        return CredentialType(self.type)

    @property
    def is_active(self) -> bool:
        return self.status == CertificateStatus.GENERATED.value


class CertificateTemplate(db.Model):
    __tablename__ = "certificate_templates"

    id = db.Column(db.Integer, primary_key=True)
    type = db.Column(db.String(20), nullable=False, unique=True)
    name = db.Column(db.String(255), nullable=False)
    description = db.Column(db.Text)
    issuer_name = db.Column(db.String(255))
    issuer_title = db.Column(db.String(255))
    footer_text = db.Column(db.Text)
    primary_color = db.Column(db.String(16))
    secondary_color = db.Column(db.String(16))
    logo_key = db.Column(db.String(512))
    signature_key = db.Column(db.String(512))
    stamp_key = db.Column(db.String(512))
    background_key = db.Column(db.String(512))
    is_active = db.Column(db.Boolean, nullable=False, default=True)
    created_at = db.Column(db.DateTime, server_default=db.func.now())
    updated_at = db.Column(
        db.DateTime, server_default=db.func.now(), onupdate=db.func.now()
    )

    ASSET_FIELDS = ("logo_key", "signature_key", "stamp_key", "background_key")
