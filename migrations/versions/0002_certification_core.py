"""progress, completion markers, certificates and certificate templates

Revision ID: 0002_certification_core
Revises: 0001_catalog_read_models
Create Date: 2026-10-19 00:00:00.000000
"""

from alembic import op
import sqlalchemy as sa


revision = "0002_certification_core"
down_revision = "0001_catalog_read_models"
branch_labels = None
depends_on = None


def upgrade() -> None:
    conn = op.get_bind()
    existing = set(sa.inspect(conn).get_table_names())

    if "chapter_progress" not in existing:
        op.create_table(
            "chapter_progress",
            sa.Column("id", sa.Integer(), primary_key=True),
            sa.Column(
                "chapter_id",
                sa.Integer(),
                sa.ForeignKey("course_chapters.id", ondelete="CASCADE"),
                nullable=False,
            ),
            sa.Column(
                "enrollment_id",
                sa.Integer(),
                sa.ForeignKey("course_enrollments.id", ondelete="CASCADE"),
                nullable=False,
            ),
            sa.Column("progress_percent", sa.Float(), nullable=False, server_default="0"),
            sa.Column("completed", sa.Boolean(), nullable=False, server_default=sa.false()),
            sa.Column("last_watched_at", sa.DateTime(timezone=True)),
            sa.UniqueConstraint(
                "chapter_id", "enrollment_id", name="uq_chapter_progress_enrollment"
            ),
            sa.CheckConstraint(
                "progress_percent >= 0 AND progress_percent <= 100",
                name="ck_chapter_progress_range",
            ),
        )

    for table, subject_col, subject_table, constraint in (
        ("course_completions", "course_id", "courses", "uq_course_completion"),
        ("webinar_completions", "webinar_id", "webinars", "uq_webinar_completion"),
    ):
        if table in existing:
            continue
        op.create_table(
            table,
            sa.Column("id", sa.Integer(), primary_key=True),
            sa.Column(
                subject_col,
                sa.Integer(),
                sa.ForeignKey(f"{subject_table}.id", ondelete="CASCADE"),
                nullable=False,
            ),
            sa.Column(
                "user_id",
                sa.Integer(),
                sa.ForeignKey("users.id", ondelete="CASCADE"),
                nullable=False,
            ),
            sa.Column("completed_at", sa.DateTime(), server_default=sa.func.now()),
            sa.UniqueConstraint(subject_col, "user_id", name=constraint),
        )

    if "certificates" not in existing:
        op.create_table(
            "certificates",
            sa.Column("id", sa.Integer(), primary_key=True),
            sa.Column(
                "user_id",
                sa.Integer(),
                sa.ForeignKey("users.id", ondelete="CASCADE"),
                nullable=False,
            ),
            sa.Column("type", sa.String(20), nullable=False),
            sa.Column("reference_id", sa.Integer(), nullable=False),
            sa.Column("certificate_no", sa.String(64), nullable=False),
            sa.Column("certificate_url", sa.String(512)),
            sa.Column("recipient_name", sa.String(255)),
            sa.Column("issued_at", sa.DateTime(timezone=True), nullable=False),
            sa.Column("status", sa.String(16), nullable=False, server_default="GENERATED"),
            sa.UniqueConstraint(
                "user_id", "type", "reference_id", name="uq_certificates_user_type_ref"
            ),
            sa.UniqueConstraint("certificate_no", name="uq_certificates_certificate_no"),
        )
        op.create_index(
            "ix_certificates_type_reference", "certificates", ["type", "reference_id"]
        )

    if "certificate_templates" not in existing:
        op.create_table(
            "certificate_templates",
            sa.Column("id", sa.Integer(), primary_key=True),
            sa.Column("type", sa.String(20), nullable=False, unique=True),
            sa.Column("name", sa.String(255), nullable=False),
            sa.Column("description", sa.Text()),
            sa.Column("issuer_name", sa.String(255)),
            sa.Column("issuer_title", sa.String(255)),
            sa.Column("footer_text", sa.Text()),
            sa.Column("primary_color", sa.String(16)),
            sa.Column("secondary_color", sa.String(16)),
            sa.Column("logo_key", sa.String(512)),
            sa.Column("signature_key", sa.String(512)),
            sa.Column("stamp_key", sa.String(512)),
            sa.Column("background_key", sa.String(512)),
            sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.true()),
            sa.Column("created_at", sa.DateTime(), server_default=sa.func.now()),
            sa.Column("updated_at", sa.DateTime(), server_default=sa.func.now()),
        )


def downgrade() -> None:
    conn = op.get_bind()
    existing = set(sa.inspect(conn).get_table_names())
    if "certificates" in existing:
        op.drop_index("ix_certificates_type_reference", table_name="certificates")
    for table in (
        "certificate_templates",
        "certificates",
        "webinar_completions",
        "course_completions",
        "chapter_progress",
    ):
        if table in existing:
            op.drop_table(table)
