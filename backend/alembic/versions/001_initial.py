"""Initial schema: wikis, wiki_stats, wiki_archives.

Revision ID: 001
Revises:
"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects import postgresql

revision: str = "001"
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    # Tracked wikis
    op.create_table(
        "wikis",
        sa.Column("id", postgresql.UUID(as_uuid=False), primary_key=True),
        sa.Column("url", sa.String(2048), nullable=False, unique=True),
        sa.Column("api_url", sa.String(2048), nullable=True),
        sa.Column("index_url", sa.String(2048), nullable=True),
        sa.Column("wiki_name", sa.String(255), nullable=True),
        sa.Column("sitename", sa.String(255), nullable=True),
        sa.Column("lang", sa.String(10), nullable=True),
        sa.Column("db_type", sa.String(50), nullable=True),
        sa.Column("db_version", sa.String(50), nullable=True),
        sa.Column("mediawiki_version", sa.String(50), nullable=True),
        sa.Column("max_page_id", sa.Integer, nullable=True),
        sa.Column("status", sa.String(20), nullable=False, server_default="pending"),
        sa.Column("has_archive", sa.Boolean, nullable=False, server_default="false"),
        sa.Column("api_available", sa.Boolean, nullable=False, server_default="true"),
        sa.Column("last_error", sa.Text, nullable=True),
        sa.Column("last_error_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("last_check_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("archive_last_check_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("archive_last_error", sa.Text, nullable=True),
        sa.Column("archive_last_error_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("is_active", sa.Boolean, nullable=False, server_default="true"),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.CheckConstraint(
            "status IN ('pending', 'ok', 'error', 'offline')", name="ck_wikis_status"
        ),
    )
    op.create_index("ix_wikis_api_url", "wikis", ["api_url"])
    op.create_index("ix_wikis_sitename", "wikis", ["sitename"])
    op.create_index("ix_wikis_status", "wikis", ["status"])
    op.create_index("ix_wikis_has_archive", "wikis", ["has_archive"])
    op.create_index("ix_wikis_last_check_at", "wikis", ["last_check_at"])
    op.create_index("ix_wikis_archive_last_check_at", "wikis", ["archive_last_check_at"])
    op.create_index("ix_wikis_created_at", "wikis", ["created_at"])

    # Siteinfo statistics time series
    op.create_table(
        "wiki_stats",
        sa.Column("id", sa.BigInteger, primary_key=True, autoincrement=True),
        sa.Column(
            "wiki_id",
            postgresql.UUID(as_uuid=False),
            sa.ForeignKey("wikis.id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column("time", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.Column("pages", sa.Integer, nullable=False, server_default="0"),
        sa.Column("articles", sa.Integer, nullable=False, server_default="0"),
        sa.Column("edits", sa.Integer, nullable=False, server_default="0"),
        sa.Column("images", sa.Integer, nullable=False, server_default="0"),
        sa.Column("users", sa.Integer, nullable=False, server_default="0"),
        sa.Column("active_users", sa.Integer, nullable=False, server_default="0"),
        sa.Column("admins", sa.Integer, nullable=False, server_default="0"),
        sa.Column("jobs", sa.Integer, nullable=False, server_default="0"),
        sa.Column("response_time_ms", sa.Integer, nullable=True),
        sa.Column("http_status", sa.Integer, nullable=True),
    )
    op.create_index("ix_wiki_stats_wiki_id", "wiki_stats", ["wiki_id"])
    op.create_index("ix_wiki_stats_time", "wiki_stats", ["time"])
    op.create_index("idx_wiki_stats_wiki_time", "wiki_stats", ["wiki_id", "time"])

    # archive.org dump items
    op.create_table(
        "wiki_archives",
        sa.Column("id", postgresql.UUID(as_uuid=False), primary_key=True),
        sa.Column(
            "wiki_id",
            postgresql.UUID(as_uuid=False),
            sa.ForeignKey("wikis.id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column("ia_identifier", sa.String(255), nullable=False),
        sa.Column("added_date", sa.DateTime(timezone=True), nullable=True),
        sa.Column("dump_date", sa.DateTime(timezone=True), nullable=True),
        sa.Column("item_size", sa.BigInteger, nullable=True),
        sa.Column("uploader", sa.String(255), nullable=True),
        sa.Column("scanner", sa.String(255), nullable=True),
        sa.Column("upload_state", sa.String(50), nullable=True),
        sa.Column("has_xml_current", sa.Boolean, nullable=False, server_default="false"),
        sa.Column("has_xml_history", sa.Boolean, nullable=False, server_default="false"),
        sa.Column("has_images_dump", sa.Boolean, nullable=False, server_default="false"),
        sa.Column("has_titles_list", sa.Boolean, nullable=False, server_default="false"),
        sa.Column("has_images_list", sa.Boolean, nullable=False, server_default="false"),
        sa.Column("has_legacy_wikidump", sa.Boolean, nullable=False, server_default="false"),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.UniqueConstraint("wiki_id", "ia_identifier", name="unique_wiki_archive"),
    )
    op.create_index("ix_wiki_archives_wiki_id", "wiki_archives", ["wiki_id"])
    op.create_index("ix_wiki_archives_ia_identifier", "wiki_archives", ["ia_identifier"])
    op.create_index("ix_wiki_archives_dump_date", "wiki_archives", ["dump_date"])


def downgrade() -> None:
    op.drop_index("ix_wiki_archives_dump_date")
    op.drop_index("ix_wiki_archives_ia_identifier")
    op.drop_index("ix_wiki_archives_wiki_id")
    op.drop_table("wiki_archives")
    op.drop_index("idx_wiki_stats_wiki_time")
    op.drop_index("ix_wiki_stats_time")
    op.drop_index("ix_wiki_stats_wiki_id")
    op.drop_table("wiki_stats")
    op.drop_index("ix_wikis_created_at")
    op.drop_index("ix_wikis_archive_last_check_at")
    op.drop_index("ix_wikis_last_check_at")
    op.drop_index("ix_wikis_has_archive")
    op.drop_index("ix_wikis_status")
    op.drop_index("ix_wikis_sitename")
    op.drop_index("ix_wikis_api_url")
    op.drop_table("wikis")
