"""User interaction model (view/like/save)."""

from datetime import UTC, datetime
from enum import Enum
from uuid import UUID, uuid4

from sqlalchemy import DateTime, Index, text
from sqlmodel import Field, SQLModel


class InteractionKind(str, Enum):
    LIKE = "LIKE"
    VIEW = "VIEW"
    SAVE = "SAVE"

    @property
    def is_toggle(self) -> bool:
        """LIKE and SAVE are on/off per user; VIEW is an append-only event."""
        return self is not InteractionKind.VIEW


# Views repeat, so uniqueness only covers the toggle kinds
_TOGGLE_KINDS = text("kind IN ('LIKE', 'SAVE')")


class Interaction(SQLModel, table=True):
    """One row per engagement event."""

    __tablename__ = "user_interactions"
    __table_args__ = (
        Index(
            "uq_user_interactions_user_article_kind",
            "user_id",
            "article_id",
            "kind",
            unique=True,
            postgresql_where=_TOGGLE_KINDS,
            sqlite_where=_TOGGLE_KINDS,
        ),
    )

    id: UUID = Field(default_factory=uuid4, primary_key=True)
    user_id: UUID = Field(index=True)
    article_id: UUID = Field(foreign_key="articles.id", ondelete="CASCADE", index=True)
    kind: InteractionKind
    created_at: datetime = Field(
        default_factory=lambda: datetime.now(UTC),
        sa_type=DateTime(timezone=True),
    )
