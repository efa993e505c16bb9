"""Initial schema."""

from alembic import op
import sqlalchemy as sa


revision = "0001_initial"
down_revision = None
branch_labels = None
depends_on = None


def upgrade() -> None:
    op.create_table(
        "uploads",
        sa.Column("id", sa.String(length=36), primary_key=True),
        sa.Column("original_name", sa.String(length=255), nullable=False),
        sa.Column("file_name", sa.String(length=500), nullable=False, unique=True),
        sa.Column("file_size", sa.Integer(), nullable=False),
        sa.Column("mime_type", sa.String(length=64), nullable=False),
        sa.Column("width", sa.Integer(), nullable=False),
        sa.Column("height", sa.Integer(), nullable=False),
        sa.Column("blob_url", sa.String(length=1000), nullable=False),
        sa.Column("thumbnail_url", sa.String(length=1000), nullable=True),
        sa.Column("status", sa.String(length=32), nullable=False),
        sa.Column("nsfw_score", sa.Float(), nullable=True),
        sa.Column("nsfw_checked", sa.Boolean(), nullable=False),
        sa.Column("ip_address", sa.String(length=64), nullable=True),
        sa.Column("user_agent", sa.String(length=500), nullable=True),
        sa.Column("exif_stripped", sa.Boolean(), nullable=False),
        sa.Column("expires_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False),
    )
    op.create_index("ix_uploads_status", "uploads", ["status"], unique=False)
    op.create_index("ix_uploads_expires_at", "uploads", ["expires_at"], unique=False)

    op.create_table(
        "garments",
        sa.Column("id", sa.String(length=36), primary_key=True),
        sa.Column("name", sa.String(length=255), nullable=False),
        sa.Column("description", sa.Text(), nullable=True),
        sa.Column("category", sa.String(length=32), nullable=False),
        sa.Column("subcategory", sa.String(length=64), nullable=True),
        sa.Column("image_url", sa.String(length=1000), nullable=False),
        sa.Column("thumbnail_url", sa.String(length=1000), nullable=True),
        sa.Column("brand", sa.String(length=128), nullable=True),
        sa.Column("color", sa.String(length=64), nullable=True),
        sa.Column("tags", sa.JSON(), nullable=False),
        sa.Column("is_active", sa.Boolean(), nullable=False),
        sa.Column("display_order", sa.Integer(), nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False),
    )
    op.create_index("ix_garments_category", "garments", ["category"], unique=False)
    op.create_index("ix_garments_is_active", "garments", ["is_active"], unique=False)

    op.create_table(
        "tryon_jobs",
        sa.Column("id", sa.String(length=36), primary_key=True),
        sa.Column("upload_id", sa.String(length=36), sa.ForeignKey("uploads.id", ondelete="CASCADE"), nullable=False),
        sa.Column("garment_id", sa.String(length=36), sa.ForeignKey("garments.id", ondelete="CASCADE"), nullable=False),
        sa.Column("session_ref", sa.String(length=128), nullable=True),
        sa.Column("status", sa.String(length=32), nullable=False),
        sa.Column("driver_name", sa.String(length=64), nullable=False),
        sa.Column("external_job_id", sa.String(length=255), nullable=True),
        sa.Column("processing_params", sa.JSON(), nullable=False),
        sa.Column("result_url", sa.String(length=1000), nullable=True),
        sa.Column("result_thumbnail_url", sa.String(length=1000), nullable=True),
        sa.Column("processing_time_ms", sa.Integer(), nullable=True),
        sa.Column("error_detail", sa.Text(), nullable=True),
        sa.Column("retry_count", sa.Integer(), nullable=False),
        sa.Column("max_retries", sa.Integer(), nullable=False),
        sa.Column("webhook_received", sa.Boolean(), nullable=False),
        sa.Column("dispatched_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("completion_token", sa.String(length=36), nullable=True),
        sa.Column("inflight_key", sa.String(length=80), nullable=True, unique=True),
        sa.Column("expires_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False),
    )
    op.create_index("ix_tryon_jobs_upload_id", "tryon_jobs", ["upload_id"], unique=False)
    op.create_index("ix_tryon_jobs_garment_id", "tryon_jobs", ["garment_id"], unique=False)
    op.create_index("ix_tryon_jobs_status", "tryon_jobs", ["status"], unique=False)
    op.create_index("ix_tryon_jobs_external_job_id", "tryon_jobs", ["external_job_id"], unique=False)
    op.create_index("ix_tryon_jobs_expires_at", "tryon_jobs", ["expires_at"], unique=False)


def downgrade() -> None:
    op.drop_table("tryon_jobs")
    op.drop_table("garments")
    op.drop_table("uploads")
