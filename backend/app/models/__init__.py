"""Models package - SQLModel database models."""

from app.models.article import Article, EnrichmentState
from app.models.feed import Feed
from app.models.interaction import Interaction, InteractionKind

__all__ = ["Article", "EnrichmentState", "Feed", "Interaction", "InteractionKind"]
