"""Article model - catalog items ingested from external sources."""

from datetime import UTC, datetime
from enum import Enum
from uuid import UUID, uuid4

from sqlalchemy import JSON, Column, DateTime, Index, Text
from sqlmodel import Field, SQLModel


class EnrichmentState(str, Enum):
    """Where an article is in the summary -> audio pipeline."""

    UNPROCESSED = "UNPROCESSED"
    SUMMARY_READY = "SUMMARY_READY"
    AUDIO_PENDING = "AUDIO_PENDING"
    AUDIO_READY = "AUDIO_READY"
    AUDIO_FAILED = "AUDIO_FAILED"


class Article(SQLModel, table=True):
    """
    Catalog item.

    Identity is the internal ``id``; ``external_id`` / ``external_url`` are the
    dedup keys of the upstream source and are unique at the storage layer.
    The view/like/save counters are a cache of the interaction rows and are
    only written by the interaction service.
    """

    __tablename__ = "articles"
    __table_args__ = (Index("ix_articles_active_processed", "is_active", "is_processed"),)

    id: UUID = Field(default_factory=uuid4, primary_key=True)

    # External identity
    external_id: str | None = Field(default=None, max_length=100, unique=True, index=True)
    external_url: str = Field(max_length=2048, unique=True, index=True)

    # Content
    title: str = Field(max_length=500)
    body: str | None = Field(default=None, sa_type=Text)
    summary: str | None = Field(default=None, sa_type=Text)
    tags: list[str] = Field(default_factory=list, sa_column=Column(JSON, nullable=False))
    image_url: str | None = Field(default=None, max_length=2048)
    category_id: UUID | None = Field(default=None, index=True)

    # Audio
    audio_url: str | None = Field(default=None, max_length=2048)
    audio_duration: float | None = Field(default=None)

    # Timestamps
    published_at: datetime | None = Field(default=None, sa_type=DateTime(timezone=True))
    created_at: datetime = Field(
        default_factory=lambda: datetime.now(UTC),
        sa_type=DateTime(timezone=True),
        index=True,
    )

    # Status
    is_active: bool = Field(default=True)
    is_processed: bool = Field(default=False)
    enrichment_state: EnrichmentState = Field(default=EnrichmentState.UNPROCESSED)

    # Denormalized counters
    view_count: int = Field(default=0, ge=0)
    like_count: int = Field(default=0, ge=0)
    save_count: int = Field(default=0, ge=0)
