"""stories, media assets and playthroughs

Revision ID: 0001_initial
Revises:
Create Date: 2026-10-01 00:00:00.000000
"""

from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa

from app.db.types import GUID, JSONType


revision: str = "0001_initial"
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    op.create_table(
        "stories",
        sa.Column("id", GUID(), nullable=False),
        sa.Column("story_id", sa.String(length=64), nullable=False),
        sa.Column("title", sa.String(length=255), nullable=False),
        sa.Column("revision", sa.Integer(), nullable=False),
        sa.Column("checksum", sa.String(length=64), nullable=False),
        sa.Column("graph_json", JSONType, nullable=False),
        sa.Column("created_at", sa.DateTime(), nullable=False),
        sa.Column("updated_at", sa.DateTime(), nullable=False),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index("ix_stories_story_id", "stories", ["story_id"], unique=True)
    op.create_index("ix_stories_created_at", "stories", ["created_at"], unique=False)
    op.create_index("ix_stories_updated_at", "stories", ["updated_at"], unique=False)

    op.create_table(
        "media_assets",
        sa.Column("id", GUID(), nullable=False),
        sa.Column("kind", sa.String(length=32), nullable=False),
        sa.Column("filename", sa.String(length=255), nullable=False),
        sa.Column("content_type", sa.String(length=128), nullable=False),
        sa.Column("size_bytes", sa.Integer(), nullable=False),
        sa.Column("sha256", sa.String(length=64), nullable=False),
        sa.Column("storage_path", sa.Text(), nullable=False),
        sa.Column("created_at", sa.DateTime(), nullable=False),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index("ix_media_assets_kind", "media_assets", ["kind"], unique=False)
    op.create_index("ix_media_assets_sha256", "media_assets", ["sha256"], unique=False)
    op.create_index("ix_media_assets_created_at", "media_assets", ["created_at"], unique=False)

    op.create_table(
        "playthroughs",
        sa.Column("id", GUID(), nullable=False),
        sa.Column("story_id", sa.String(length=64), nullable=True),
        sa.Column("graph_json", JSONType, nullable=False),
        sa.Column("start_scene_id", sa.String(length=128), nullable=True),
        sa.Column("current_scene_id", sa.String(length=128), nullable=True),
        sa.Column("status", sa.String(length=32), nullable=False),
        sa.Column("end_reason", sa.String(length=32), nullable=True),
        sa.Column("stats", JSONType, nullable=False),
        sa.Column("steps", sa.Integer(), nullable=False),
        sa.Column("created_at", sa.DateTime(), nullable=False),
        sa.Column("updated_at", sa.DateTime(), nullable=False),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index("ix_playthroughs_story_id", "playthroughs", ["story_id"], unique=False)
    op.create_index("ix_playthroughs_status", "playthroughs", ["status"], unique=False)
    op.create_index("ix_playthroughs_created_at", "playthroughs", ["created_at"], unique=False)
    op.create_index("ix_playthroughs_updated_at", "playthroughs", ["updated_at"], unique=False)


def downgrade() -> None:
    op.drop_index("ix_playthroughs_updated_at", table_name="playthroughs")
    op.drop_index("ix_playthroughs_created_at", table_name="playthroughs")
    op.drop_index("ix_playthroughs_status", table_name="playthroughs")
    op.drop_index("ix_playthroughs_story_id", table_name="playthroughs")
    op.drop_table("playthroughs")
    op.drop_index("ix_media_assets_created_at", table_name="media_assets")
    op.drop_index("ix_media_assets_sha256", table_name="media_assets")
    op.drop_index("ix_media_assets_kind", table_name="media_assets")
    op.drop_table("media_assets")
    op.drop_index("ix_stories_updated_at", table_name="stories")
    op.drop_index("ix_stories_created_at", table_name="stories")
    op.drop_index("ix_stories_story_id", table_name="stories")
    op.drop_table("stories")
