"""Vocabulary constants shared by the catalog, interactions and recommender sync."""

from app.models.interaction import InteractionKind

# API sort keys -> Article attributes
SORT_FIELDS: dict[str, str] = {
    "createdAt": "created_at",
    "publishedAt": "published_at",
    "title": "title",
    "viewCount": "view_count",
    "likeCount": "like_count",
    "saveCount": "save_count",
}

# Counter column bumped by each interaction kind
COUNTER_FIELDS: dict[InteractionKind, str] = {
    InteractionKind.VIEW: "view_count",
    InteractionKind.LIKE: "like_count",
    InteractionKind.SAVE: "save_count",
}

# Interaction kinds as the recommender names them
FEEDBACK_TYPES: dict[InteractionKind, str] = {
    InteractionKind.LIKE: "like",
    InteractionKind.VIEW: "open_article",
    InteractionKind.SAVE: "save",
}

# Every catalog item is published to the recommender with these
ITEM_BASE_LABELS: list[str] = ["wikipedia", "article"]
ITEM_CATEGORIES: list[str] = ["article"]
