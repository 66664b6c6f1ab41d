"""WikiArchive model for archive.org dump items."""

from datetime import datetime, timezone
from uuid import uuid4

from sqlalchemy import BigInteger, Boolean, DateTime, ForeignKey, String, UniqueConstraint
from sqlalchemy.dialects.postgresql import UUID
from sqlalchemy.orm import Mapped, mapped_column, relationship

from wikikeeper.database import Base

# Columns refreshed when an item is re-discovered
ARCHIVE_DATA_FIELDS = (
    "added_date",
    "dump_date",
    "item_size",
    "uploader",
    "scanner",
    "upload_state",
    "has_xml_current",
    "has_xml_history",
    "has_images_dump",
    "has_titles_list",
    "has_images_list",
    "has_legacy_wikidump",
)


class WikiArchive(Base):
    """An archive.org item holding a dump of a tracked wiki."""

    __tablename__ = "wiki_archives"
    __table_args__ = (
        UniqueConstraint("wiki_id", "ia_identifier", name="unique_wiki_archive"),
    )

    id: Mapped[str] = mapped_column(
        UUID(as_uuid=False),
        primary_key=True,
        default=lambda: str(uuid4()),
    )
    wiki_id: Mapped[str] = mapped_column(
        UUID(as_uuid=False),
        ForeignKey("wikis.id", ondelete="CASCADE"),
        index=True,
    )
    ia_identifier: Mapped[str] = mapped_column(String(255), index=True)

    # Item metadata
    added_date: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    dump_date: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), nullable=True, index=True
    )
    item_size: Mapped[int | None] = mapped_column(BigInteger, nullable=True)
    uploader: Mapped[str | None] = mapped_column(String(255), nullable=True)
    scanner: Mapped[str | None] = mapped_column(String(255), nullable=True)
    upload_state: Mapped[str | None] = mapped_column(String(50), nullable=True)

    # Dump content flags
    has_xml_current: Mapped[bool] = mapped_column(Boolean, default=False)
    has_xml_history: Mapped[bool] = mapped_column(Boolean, default=False)
    has_images_dump: Mapped[bool] = mapped_column(Boolean, default=False)
    has_titles_list: Mapped[bool] = mapped_column(Boolean, default=False)
    has_images_list: Mapped[bool] = mapped_column(Boolean, default=False)
    has_legacy_wikidump: Mapped[bool] = mapped_column(Boolean, default=False)

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=lambda: datetime.now(timezone.utc),
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=lambda: datetime.now(timezone.utc),
        onupdate=lambda: datetime.now(timezone.utc),
    )

    # Relationships
    wiki: Mapped["Wiki"] = relationship("Wiki", back_populates="archives")

    def copy_data_from(self, other: "WikiArchive") -> None:
        """Overwrite item metadata and flags with a freshly parsed item."""
        for field in ARCHIVE_DATA_FIELDS:
            setattr(self, field, getattr(other, field))
        self.updated_at = datetime.now(timezone.utc)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "wiki_id": self.wiki_id,
            "ia_identifier": self.ia_identifier,
            "added_date": self.added_date.isoformat() if self.added_date else None,
            "dump_date": self.dump_date.isoformat() if self.dump_date else None,
            "item_size": self.item_size,
            "uploader": self.uploader,
            "scanner": self.scanner,
            "upload_state": self.upload_state,
            "has_xml_current": self.has_xml_current,
            "has_xml_history": self.has_xml_history,
            "has_images_dump": self.has_images_dump,
            "has_titles_list": self.has_titles_list,
            "has_images_list": self.has_images_list,
            "has_legacy_wikidump": self.has_legacy_wikidump,
            "created_at": self.created_at.isoformat() if self.created_at else None,
            "updated_at": self.updated_at.isoformat() if self.updated_at else None,
        }


# Forward reference
from wikikeeper.models.wiki import Wiki  # noqa: E402
