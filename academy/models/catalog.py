"""Read models owned by the commerce and catalog side of the platform.

The completion core only queries these tables; their CRUD lives elsewhere.
"""

from __future__ import annotations

from sqlalchemy.orm import validates

from ..app import db


class User(db.Model):
    __tablename__ = "users"

    id = db.Column(db.Integer, primary_key=True)
    email = db.Column(db.String(255), nullable=False, unique=True)
    name = db.Column(db.String(255))
    is_admin = db.Column(db.Boolean, nullable=False, default=False)
    created_at = db.Column(db.DateTime, server_default=db.func.now())

    @validates("email")
    def lower_email(self, key, value):  # pragma: no cover - simple normalizer
        return value.lower()

    @property
    def display_name(self) -> str:
        name = (self.name or "").strip()
        if name:
            return name
        return (self.email or "").split("@")[0]


class Course(db.Model):
    __tablename__ = "courses"

    id = db.Column(db.Integer, primary_key=True)
    title = db.Column(db.String(255), nullable=False)
    slug = db.Column(db.String(255), unique=True)
    is_published = db.Column(db.Boolean, nullable=False, default=True)

    sections = db.relationship(
        "CourseSection", backref="course", cascade="all, delete-orphan"
    )


class CourseSection(db.Model):
    __tablename__ = "course_sections"

    id = db.Column(db.Integer, primary_key=True)
    course_id = db.Column(
        db.Integer, db.ForeignKey("courses.id", ondelete="CASCADE"), nullable=False
    )
    title = db.Column(db.String(255), nullable=False, default="")
    position = db.Column(db.Integer, nullable=False, default=0)
    is_published = db.Column(db.Boolean, nullable=False, default=True)

    chapters = db.relationship(
        "CourseChapter", backref="section", cascade="all, delete-orphan"
    )


class CourseChapter(db.Model):
    __tablename__ = "course_chapters"

    id = db.Column(db.Integer, primary_key=True)
    section_id = db.Column(
        db.Integer,
        db.ForeignKey("course_sections.id", ondelete="CASCADE"),
        nullable=False,
    )
    title = db.Column(db.String(255), nullable=False, default="")
    position = db.Column(db.Integer, nullable=False, default=0)
    is_published = db.Column(db.Boolean, nullable=False, default=True)
    is_free_preview = db.Column(db.Boolean, nullable=False, default=False)

    @property
    def course_id(self) -> int:
        return self.section.course_id


class CourseEnrollment(db.Model):
    __tablename__ = "course_enrollments"

    id = db.Column(db.Integer, primary_key=True)
    course_id = db.Column(
        db.Integer, db.ForeignKey("courses.id", ondelete="CASCADE"), nullable=False
    )
    user_id = db.Column(
        db.Integer, db.ForeignKey("users.id", ondelete="CASCADE"), nullable=False
    )
    enrolled_at = db.Column(db.DateTime, server_default=db.func.now())
    __table_args__ = (
        db.UniqueConstraint("course_id", "user_id", name="uq_course_enrollment"),
    )

    progress = db.relationship(
        "ChapterProgress",
        backref="enrollment",
        cascade="all, delete-orphan",
        passive_deletes=True,
    )


class CourseReview(db.Model):
    __tablename__ = "course_reviews"

    id = db.Column(db.Integer, primary_key=True)
    course_id = db.Column(
        db.Integer, db.ForeignKey("courses.id", ondelete="CASCADE"), nullable=False
    )
    user_id = db.Column(
        db.Integer, db.ForeignKey("users.id", ondelete="CASCADE"), nullable=False
    )
    rating = db.Column(db.Integer, nullable=False, default=5)
    __table_args__ = (
        db.UniqueConstraint("user_id", "course_id", name="uq_course_review_user"),
    )


class Webinar(db.Model):
    __tablename__ = "webinars"

    id = db.Column(db.Integer, primary_key=True)
    title = db.Column(db.String(255), nullable=False)
    slug = db.Column(db.String(255), unique=True)
    start_date = db.Column(db.DateTime(timezone=True), nullable=False)
    duration = db.Column(db.Integer)  # minutes
    is_published = db.Column(db.Boolean, nullable=False, default=True)


class WebinarEnrollment(db.Model):
    __tablename__ = "webinar_enrollments"

    id = db.Column(db.Integer, primary_key=True)
    webinar_id = db.Column(
        db.Integer, db.ForeignKey("webinars.id", ondelete="CASCADE"), nullable=False
    )
    user_id = db.Column(
        db.Integer, db.ForeignKey("users.id", ondelete="CASCADE"), nullable=False
    )
    __table_args__ = (
        db.UniqueConstraint("webinar_id", "user_id", name="uq_webinar_enrollment"),
    )


class Mentorship(db.Model):
    __tablename__ = "mentorship_programs"

    id = db.Column(db.Integer, primary_key=True)
    title = db.Column(db.String(255), nullable=False)


class Guidance(db.Model):
    __tablename__ = "guidance_offerings"

    id = db.Column(db.Integer, primary_key=True)
    title = db.Column(db.String(255), nullable=False)


class OfflineBatch(db.Model):
    __tablename__ = "offline_batches"

    id = db.Column(db.Integer, primary_key=True)
    title = db.Column(db.String(255), nullable=False)


class Bundle(db.Model):
    __tablename__ = "bundles"

    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(255), nullable=False)

    @property
    def title(self) -> str:
        return self.name
