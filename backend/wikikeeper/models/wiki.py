"""Wiki model for tracked MediaWiki sites."""

from datetime import datetime, timezone
from enum import Enum
from uuid import uuid4

from sqlalchemy import Boolean, DateTime, Integer, String, Text
from sqlalchemy.dialects.postgresql import UUID
from sqlalchemy.orm import Mapped, mapped_column, relationship

from wikikeeper.database import Base


class WikiStatus(str, Enum):
    """Collection status of a wiki."""

    PENDING = "pending"
    OK = "ok"
    ERROR = "error"
    OFFLINE = "offline"


# Columns owned by siteinfo collection (mark_collected / mark_error)
COLLECTION_FIELDS = (
    "api_url",
    "index_url",
    "sitename",
    "lang",
    "db_type",
    "db_version",
    "mediawiki_version",
    "max_page_id",
    "status",
    "api_available",
    "last_error",
    "last_error_at",
    "last_check_at",
)

# Columns owned by archive.org checks
ARCHIVE_STATUS_FIELDS = (
    "has_archive",
    "archive_last_check_at",
    "archive_last_error",
    "archive_last_error_at",
)


def _iso(value: datetime | None) -> str | None:
    return value.isoformat() if value else None


class Wiki(Base):
    """A MediaWiki site being tracked."""

    __tablename__ = "wikis"

    id: Mapped[str] = mapped_column(
        UUID(as_uuid=False),
        primary_key=True,
        default=lambda: str(uuid4()),
    )
    url: Mapped[str] = mapped_column(String(2048), unique=True)
    api_url: Mapped[str | None] = mapped_column(String(2048), nullable=True, index=True)
    index_url: Mapped[str | None] = mapped_column(String(2048), nullable=True)
    wiki_name: Mapped[str | None] = mapped_column(String(255), nullable=True)

    # Metadata from siteinfo.general
    sitename: Mapped[str | None] = mapped_column(String(255), nullable=True, index=True)
    lang: Mapped[str | None] = mapped_column(String(10), nullable=True)
    db_type: Mapped[str | None] = mapped_column(String(50), nullable=True)
    db_version: Mapped[str | None] = mapped_column(String(50), nullable=True)
    mediawiki_version: Mapped[str | None] = mapped_column(String(50), nullable=True)
    max_page_id: Mapped[int | None] = mapped_column(Integer, nullable=True)

    # Status
    status: Mapped[str] = mapped_column(
        String(20), default=WikiStatus.PENDING.value, index=True
    )  # pending, ok, error, offline
    has_archive: Mapped[bool] = mapped_column(Boolean, default=False, index=True)
    api_available: Mapped[bool] = mapped_column(Boolean, default=True)

    # Siteinfo collection errors
    last_error: Mapped[str | None] = mapped_column(Text, nullable=True)
    last_error_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), nullable=True
    )
    last_check_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), nullable=True, index=True
    )

    # Archive.org check status
    archive_last_check_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), nullable=True, index=True
    )
    archive_last_error: Mapped[str | None] = mapped_column(Text, nullable=True)
    archive_last_error_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), nullable=True
    )

    is_active: Mapped[bool] = mapped_column(Boolean, default=True)

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=lambda: datetime.now(timezone.utc),
        index=True,
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=lambda: datetime.now(timezone.utc),
        onupdate=lambda: datetime.now(timezone.utc),
    )

    # Relationships
    stats: Mapped[list["WikiStats"]] = relationship(
        "WikiStats", back_populates="wiki", cascade="all, delete-orphan", passive_deletes=True
    )
    archives: Mapped[list["WikiArchive"]] = relationship(
        "WikiArchive", back_populates="wiki", cascade="all, delete-orphan", passive_deletes=True
    )

    def mark_collected(self, api_url: str, index_url: str, checked_at: datetime) -> None:
        """Mark a successful siteinfo collection."""
        self.api_url = api_url
        self.index_url = index_url
        self.api_available = True
        self.status = WikiStatus.OK.value
        self.last_error = None
        self.last_error_at = None
        self.last_check_at = checked_at

    def mark_error(self, error_message: str, checked_at: datetime) -> None:
        """Mark a failed siteinfo collection."""
        self.status = WikiStatus.ERROR.value
        self.last_error = error_message
        self.last_error_at = checked_at
        self.last_check_at = checked_at
        self.api_available = False

    def mark_archive_checked(self, has_archive: bool, checked_at: datetime) -> None:
        """Mark a completed archive.org check."""
        self.has_archive = has_archive
        self.archive_last_check_at = checked_at
        self.archive_last_error = None
        self.archive_last_error_at = None

    def mark_archive_error(self, error_message: str, checked_at: datetime) -> None:
        """Mark a failed archive.org search. has_archive is left unchanged."""
        self.archive_last_error = error_message
        self.archive_last_error_at = checked_at
        self.archive_last_check_at = checked_at

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "url": self.url,
            "api_url": self.api_url,
            "index_url": self.index_url,
            "wiki_name": self.wiki_name,
            "sitename": self.sitename,
            "lang": self.lang,
            "dbtype": self.db_type,
            "dbversion": self.db_version,
            "mediawiki_version": self.mediawiki_version,
            "max_page_id": self.max_page_id,
            "status": self.status,
            "has_archive": self.has_archive,
            "api_available": self.api_available,
            "last_error": self.last_error,
            "last_error_at": _iso(self.last_error_at),
            "archive_last_check_at": _iso(self.archive_last_check_at),
            "archive_last_error": self.archive_last_error,
            "archive_last_error_at": _iso(self.archive_last_error_at),
            "created_at": _iso(self.created_at),
            "updated_at": _iso(self.updated_at),
            "last_check_at": _iso(self.last_check_at),
            "is_active": self.is_active,
        }


# Forward references
from wikikeeper.models.wiki_archive import WikiArchive  # noqa: E402
from wikikeeper.models.wiki_stats import WikiStats  # noqa: E402
