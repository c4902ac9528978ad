"""catalog read models used by completion tracking

Revision ID: 0001_catalog_read_models
Revises:
Create Date: 2026-10-19 00:00:00.000000

These tables are owned by the catalog side; they are only created when a
fresh database does not have them yet.
"""

from alembic import op
import sqlalchemy as sa


revision = "0001_catalog_read_models"
down_revision = None
branch_labels = None
depends_on = None


def _fk(table: str) -> sa.ForeignKey:
    return sa.ForeignKey(f"{table}.id", ondelete="CASCADE")


def upgrade() -> None:
    conn = op.get_bind()
    existing = set(sa.inspect(conn).get_table_names())

    if "users" not in existing:
        op.create_table(
            "users",
            sa.Column("id", sa.Integer(), primary_key=True),
            sa.Column("email", sa.String(255), nullable=False, unique=True),
            sa.Column("name", sa.String(255)),
            sa.Column("is_admin", sa.Boolean(), nullable=False, server_default=sa.false()),
            sa.Column("created_at", sa.DateTime(), server_default=sa.func.now()),
        )
    if "courses" not in existing:
        op.create_table(
            "courses",
            sa.Column("id", sa.Integer(), primary_key=True),
            sa.Column("title", sa.String(255), nullable=False),
            sa.Column("slug", sa.String(255), unique=True),
            sa.Column("is_published", sa.Boolean(), nullable=False, server_default=sa.true()),
        )
    if "course_sections" not in existing:
        op.create_table(
            "course_sections",
            sa.Column("id", sa.Integer(), primary_key=True),
            sa.Column("course_id", sa.Integer(), _fk("courses"), nullable=False),
            sa.Column("title", sa.String(255), nullable=False, server_default=""),
            sa.Column("position", sa.Integer(), nullable=False, server_default="0"),
            sa.Column("is_published", sa.Boolean(), nullable=False, server_default=sa.true()),
        )
    if "course_chapters" not in existing:
        op.create_table(
            "course_chapters",
            sa.Column("id", sa.Integer(), primary_key=True),
            sa.Column("section_id", sa.Integer(), _fk("course_sections"), nullable=False),
            sa.Column("title", sa.String(255), nullable=False, server_default=""),
            sa.Column("position", sa.Integer(), nullable=False, server_default="0"),
            sa.Column("is_published", sa.Boolean(), nullable=False, server_default=sa.true()),
            sa.Column(
                "is_free_preview", sa.Boolean(), nullable=False, server_default=sa.false()
            ),
        )
    if "course_enrollments" not in existing:
        op.create_table(
            "course_enrollments",
            sa.Column("id", sa.Integer(), primary_key=True),
            sa.Column("course_id", sa.Integer(), _fk("courses"), nullable=False),
            sa.Column("user_id", sa.Integer(), _fk("users"), nullable=False),
            sa.Column("enrolled_at", sa.DateTime(), server_default=sa.func.now()),
            sa.UniqueConstraint("course_id", "user_id", name="uq_course_enrollment"),
        )
    if "course_reviews" not in existing:
        op.create_table(
            "course_reviews",
            sa.Column("id", sa.Integer(), primary_key=True),
            sa.Column("course_id", sa.Integer(), _fk("courses"), nullable=False),
            sa.Column("user_id", sa.Integer(), _fk("users"), nullable=False),
            sa.Column("rating", sa.Integer(), nullable=False, server_default="5"),
            sa.UniqueConstraint("user_id", "course_id", name="uq_course_review_user"),
        )
    if "webinars" not in existing:
        op.create_table(
            "webinars",
            sa.Column("id", sa.Integer(), primary_key=True),
            sa.Column("title", sa.String(255), nullable=False),
            sa.Column("slug", sa.String(255), unique=True),
            sa.Column("start_date", sa.DateTime(timezone=True), nullable=False),
            sa.Column("duration", sa.Integer()),
            sa.Column("is_published", sa.Boolean(), nullable=False, server_default=sa.true()),
        )
    if "webinar_enrollments" not in existing:
        op.create_table(
            "webinar_enrollments",
            sa.Column("id", sa.Integer(), primary_key=True),
            sa.Column("webinar_id", sa.Integer(), _fk("webinars"), nullable=False),
            sa.Column("user_id", sa.Integer(), _fk("users"), nullable=False),
            sa.UniqueConstraint("webinar_id", "user_id", name="uq_webinar_enrollment"),
        )
    for table in ("mentorship_programs", "guidance_offerings", "offline_batches"):
        if table not in existing:
            op.create_table(
                table,
                sa.Column("id", sa.Integer(), primary_key=True),
                sa.Column("title", sa.String(255), nullable=False),
            )
    if "bundles" not in existing:
        op.create_table(
            "bundles",
            sa.Column("id", sa.Integer(), primary_key=True),
            sa.Column("name", sa.String(255), nullable=False),
        )


def downgrade() -> None:
    # catalog tables are shared with other services; leave them in place
    pass
