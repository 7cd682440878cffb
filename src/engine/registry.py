"""
Content variant registry.

Every content type registers its ORM model and the counter fields it
carries, keyed by the interaction that drives them. The ledger, the counter
projection and the comment code look variants up here instead of carrying
one copy of the like/comment logic per content type.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Optional

from src.engine.errors import ValidationError
from src.models.models import (
    CommuteAlert,
    ContentType,
    ForumTopic,
    Gig,
    InteractionKind,
    Post,
    SkateSpot,
    TrickVideo,
)


@dataclass(frozen=True)
class ContentVariant:
    content_type: ContentType
    model: type
    # interaction kind -> counter column
    counters: dict[InteractionKind, str]
    comments_field: str = "comments_count"
    views_field: Optional[str] = None
    shares_field: Optional[str] = None
    average_field: Optional[str] = None
    label: str = ""

    def counter_for(self, kind: InteractionKind) -> str:
        name = self.counters.get(kind)
        if name is None:
            raise ValidationError(
                f"{self.label or self.content_type.value} does not support "
                f"'{kind.value}' interactions."
            )
        return name

    @property
    def counter_fields(self) -> list[str]:
        """Every integer counter the variant stores."""
        names = list(self.counters.values()) + [self.comments_field]
        for extra in (self.views_field, self.shares_field):
            if extra:
                names.append(extra)
        return names


_VARIANTS: dict[ContentType, ContentVariant] = {}


def register(variant: ContentVariant) -> ContentVariant:
    _VARIANTS[variant.content_type] = variant
    return variant


register(ContentVariant(
    ContentType.POST, Post,
    counters={InteractionKind.LIKE: "likes_count"},
    shares_field="shared_count",
    label="Post",
))
register(ContentVariant(
    ContentType.GIG, Gig,
    counters={
        InteractionKind.LIKE: "likes_count",
        InteractionKind.INTERESTED: "interested_count",
    },
    label="Gig",
))
register(ContentVariant(
    ContentType.SKATE_SPOT, SkateSpot,
    counters={
        InteractionKind.LIKE: "likes_count",
        InteractionKind.RATING: "ratings_count",
    },
    average_field="rating",
    label="Skate spot",
))
register(ContentVariant(
    ContentType.TRICK_VIDEO, TrickVideo,
    counters={InteractionKind.LIKE: "likes_count"},
    views_field="views_count",
    label="Trick video",
))
register(ContentVariant(
    ContentType.FORUM_TOPIC, ForumTopic,
    counters={InteractionKind.LIKE: "likes_count"},
    views_field="views_count",
    label="Forum topic",
))
register(ContentVariant(
    ContentType.COMMUTE_ALERT, CommuteAlert,
    counters={InteractionKind.LIKE: "likes_count"},
    label="Commute alert",
))


def parse_content_type(value) -> ContentType:
    if isinstance(value, ContentType):
        return value
    try:
        return ContentType(value)
    except ValueError:
        raise ValidationError(
            f"Invalid content type '{value}'. "
            f"Valid types: {[t.value for t in ContentType]}"
        ) from None


def parse_kind(value) -> InteractionKind:
    if isinstance(value, InteractionKind):
        return value
    try:
        return InteractionKind(value)
    except ValueError:
        raise ValidationError(
            f"Invalid interaction kind '{value}'. "
            f"Valid kinds: {[k.value for k in InteractionKind]}"
        ) from None


def get_variant(content_type) -> ContentVariant:
    return _VARIANTS[parse_content_type(content_type)]


def all_variants() -> list[ContentVariant]:
    return list(_VARIANTS.values())
