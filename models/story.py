"""Story models: the generation request and the REST story payloads."""

from __future__ import annotations

from enum import Enum
from typing import Iterable

from pydantic import ConfigDict, Field

from models.base import ApiEnvelope, ApiModel
from models.hero import Hero


class StoryStyle(str, Enum):
    ADVENTURE = "Adventure"
    FANTASY = "Fantasy"
    EDUCATIONAL = "Educational"
    MYSTERY = "Mystery"


class HeroRef(ApiModel):
    """Reference to a saved hero, as sent with a generation request."""

    model_config = ConfigDict(frozen=True)

    id: str | None = None
    name: str


class GenerationRequest(ApiModel):
    """POST body of the streaming generation endpoint.

    Frozen: a request is built once by the caller and never mutated.
    """

    model_config = ConfigDict(frozen=True)

    story_name: str
    story_idea: str
    story_style: str = StoryStyle.ADVENTURE.value
    language: str = "en"
    story_length: int = Field(default=1, ge=1)
    heroes: tuple[HeroRef, ...] = ()

    @classmethod
    def build(
        cls,
        *,
        story_name: str,
        story_idea: str,
        story_style: str | StoryStyle,
        language: str,
        story_length: int,
        heroes: Iterable[Hero] = (),
    ) -> GenerationRequest:
        """Create a request from full :class:`Hero` objects."""
        style = story_style.value if isinstance(story_style, StoryStyle) else story_style
        return cls(
            story_name=story_name,
            story_idea=story_idea,
            story_style=style,
            language=language,
            story_length=story_length,
            heroes=tuple(HeroRef(id=h.id, name=h.name) for h in heroes),
        )


class Story(ApiModel):
    id: str | None = None
    user_id: str | None = None
    title: str
    content: str | None = None
    hero_name: str | None = None
    hero_names: list[str] | None = None
    age: int | None = None
    story_style: str
    language: str
    story_idea: str | None = None
    story_length: int | None = None
    child_gender: str | None = None
    created_at: str | None = None


class StoryData(ApiModel):
    story: Story


class StoryResponse(ApiEnvelope):
    data: StoryData | None = None


class StoriesListData(ApiModel):
    stories: list[Story]
    total: int | None = None
    skip: int | None = None
    limit: int | None = None


class StoriesListResponse(ApiEnvelope):
    data: StoriesListData | None = None


class DeleteStoryResponse(ApiEnvelope):
    pass
