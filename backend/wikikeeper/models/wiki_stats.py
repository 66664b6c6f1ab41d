"""WikiStats model: time-series siteinfo statistics."""

from datetime import datetime, timezone

from sqlalchemy import BigInteger, DateTime, ForeignKey, Index, Integer
from sqlalchemy.dialects.postgresql import UUID
from sqlalchemy.orm import Mapped, mapped_column, relationship

from wikikeeper.database import Base


class WikiStats(Base):
    """One statistics reading for a wiki. Rows are append-only."""

    __tablename__ = "wiki_stats"
    __table_args__ = (Index("idx_wiki_stats_wiki_time", "wiki_id", "time"),)

    # SQLite only autoincrements INTEGER PRIMARY KEY
    id: Mapped[int] = mapped_column(
        BigInteger().with_variant(Integer, "sqlite"), primary_key=True, autoincrement=True
    )
    wiki_id: Mapped[str] = mapped_column(
        UUID(as_uuid=False),
        ForeignKey("wikis.id", ondelete="CASCADE"),
        index=True,
    )
    time: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=lambda: datetime.now(timezone.utc),
        index=True,
    )

    # From siteinfo.statistics
    pages: Mapped[int] = mapped_column(Integer, default=0)
    articles: Mapped[int] = mapped_column(Integer, default=0)
    edits: Mapped[int] = mapped_column(Integer, default=0)
    images: Mapped[int] = mapped_column(Integer, default=0)
    users: Mapped[int] = mapped_column(Integer, default=0)
    active_users: Mapped[int] = mapped_column(Integer, default=0)
    admins: Mapped[int] = mapped_column(Integer, default=0)
    jobs: Mapped[int] = mapped_column(Integer, default=0)

    # Availability
    response_time_ms: Mapped[int | None] = mapped_column(Integer, nullable=True)
    http_status: Mapped[int | None] = mapped_column(Integer, nullable=True)

    # Relationships
    wiki: Mapped["Wiki"] = relationship("Wiki", back_populates="stats")

    def to_dict(self) -> dict:
        return {
            "wiki_id": self.wiki_id,
            "time": self.time.isoformat() if self.time else None,
            "pages": self.pages,
            "articles": self.articles,
            "edits": self.edits,
            "images": self.images,
            "users": self.users,
            "active_users": self.active_users,
            "admins": self.admins,
            "jobs": self.jobs,
            "response_time_ms": self.response_time_ms,
            "http_status": self.http_status,
        }


# Forward reference
from wikikeeper.models.wiki import Wiki  # noqa: E402
