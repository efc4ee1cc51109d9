"""SQLAlchemy ORM models for the podcast catalog."""

from datetime import UTC, datetime
from typing import List, Optional

from sqlalchemy import (
    Boolean,
    DateTime,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
    UniqueConstraint,
)
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column, relationship


def utcnow() -> datetime:
    """Current time in UTC; every stored timestamp uses it."""
    return datetime.now(UTC)


class Base(DeclarativeBase):
    """Base class for all ORM models."""

    pass


class Owner(Base):
    """Catalog owner.

    Only a single default owner is used today; subscriptions reference it
    so the catalog can be partitioned later.
    """

    __tablename__ = "owners"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    username: Mapped[str] = mapped_column(String(256), nullable=False)
    email: Mapped[str] = mapped_column(String(256), nullable=False, default="")
    # Credentials placeholder
    password: Mapped[str] = mapped_column(String(256), nullable=False, default="")
    created_at: Mapped[datetime] = mapped_column(DateTime, default=utcnow)

    subscriptions: Mapped[List["Subscription"]] = relationship(
        "Subscription", back_populates="owner"
    )

    def __repr__(self) -> str:
        return f"<Owner(id={self.id}, username={self.username!r})>"


class Subscription(Base):
    """Podcast subscription.

    Created by the OPML import and refreshed with feed metadata on each poll.
    """

    __tablename__ = "subscriptions"

    # AUTOINCREMENT keeps SQLite from reusing ids of deleted rows
    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    owner_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("owners.id"), nullable=False
    )

    # Identity within the owner's catalog; also the download subdirectory
    name: Mapped[str] = mapped_column(String(512), nullable=False)

    feed_url: Mapped[str] = mapped_column(String(2048), nullable=False)
    website_url: Mapped[Optional[str]] = mapped_column(String(2048))
    image_url: Mapped[Optional[str]] = mapped_column(String(2048))

    # Metadata from the feed itself
    title: Mapped[Optional[str]] = mapped_column(String(512))
    description: Mapped[Optional[str]] = mapped_column(Text)
    language: Mapped[Optional[str]] = mapped_column(String(32))
    last_checked: Mapped[Optional[datetime]] = mapped_column(DateTime)

    created_at: Mapped[datetime] = mapped_column(DateTime, default=utcnow)

    owner: Mapped["Owner"] = relationship("Owner", back_populates="subscriptions")
    episodes: Mapped[List["Episode"]] = relationship(
        "Episode", back_populates="subscription"
    )

    __table_args__ = (
        UniqueConstraint("owner_id", "name", name="uq_subscription_owner_name"),
        Index("ix_subscriptions_owner_id", "owner_id"),
        {"sqlite_autoincrement": True},
    )

    def __repr__(self) -> str:
        return f"<Subscription(id={self.id}, name={self.name!r})>"


class Episode(Base):
    """Current media item of a subscription.

    At most one row exists per (subscription, media_url). When a feed moves
    an episode to a new URL the row is re-pointed and the previous state is
    kept in ArchivedEpisode.
    """

    __tablename__ = "episodes"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    subscription_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("subscriptions.id"), nullable=False
    )

    media_url: Mapped[str] = mapped_column(String(2048), nullable=False)

    # Feed-side identity used to detect URL changes
    guid: Mapped[Optional[str]] = mapped_column(String(2048))
    feed_position: Mapped[Optional[int]] = mapped_column(Integer)  # counted from the oldest item

    title: Mapped[Optional[str]] = mapped_column(String(512))
    published: Mapped[Optional[str]] = mapped_column(String(128))  # opaque pubDate

    # Download state
    downloaded: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    file_name: Mapped[Optional[str]] = mapped_column(String(1024))
    downloaded_at: Mapped[Optional[datetime]] = mapped_column(DateTime)

    created_at: Mapped[datetime] = mapped_column(DateTime, default=utcnow)
    updated_at: Mapped[Optional[datetime]] = mapped_column(DateTime)

    subscription: Mapped["Subscription"] = relationship(
        "Subscription", back_populates="episodes"
    )
    archived_versions: Mapped[List["ArchivedEpisode"]] = relationship(
        "ArchivedEpisode", back_populates="episode"
    )

    __table_args__ = (
        UniqueConstraint("subscription_id", "media_url", name="uq_episode_subscription_url"),
        Index("ix_episodes_subscription_id", "subscription_id"),
        Index("ix_episodes_downloaded", "downloaded"),
        {"sqlite_autoincrement": True},
    )

    def __repr__(self) -> str:
        return f"<Episode(id={self.id}, media_url={self.media_url!r})>"


class ArchivedEpisode(Base):
    """Snapshot of an episode's URL and download state before supersession.

    Rows are insert-only.
    """

    __tablename__ = "archived_episodes"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    original_episode_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("episodes.id"), nullable=False
    )
    subscription_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("subscriptions.id"), nullable=False
    )
    media_url: Mapped[str] = mapped_column(String(2048), nullable=False)
    downloaded: Mapped[bool] = mapped_column(Boolean, nullable=False)
    archived_at: Mapped[datetime] = mapped_column(DateTime, nullable=False)

    episode: Mapped["Episode"] = relationship("Episode", back_populates="archived_versions")

    __table_args__ = (
        Index("ix_archived_episodes_original_episode_id", "original_episode_id"),
    )

    def __repr__(self) -> str:
        return (
            f"<ArchivedEpisode(original_episode_id={self.original_episode_id}, "
            f"media_url={self.media_url!r})>"
        )
