"""Hero (story character) models."""

from __future__ import annotations

from enum import Enum

from models.base import ApiEnvelope, ApiModel


class HeroGender(str, Enum):
    BOY = "boy"
    GIRL = "girl"


class HeroAvatar(str, Enum):
    """Avatar images a hero can be drawn with."""

    KNIGHT = "knight"
    PRINCESS = "princess"
    WIZARD = "wizard"
    ARCHER = "archer"
    HEALER = "healer"
    DRAGON = "dragon"
    FAIRY = "fairy"

    @property
    def gender(self) -> HeroGender | None:
        """Gender affinity of the avatar; ``None`` means available to both."""
        return _AVATAR_GENDER.get(self)


_AVATAR_GENDER = {
    HeroAvatar.KNIGHT: HeroGender.BOY,
    HeroAvatar.WIZARD: HeroGender.BOY,
    HeroAvatar.ARCHER: HeroGender.BOY,
    HeroAvatar.PRINCESS: HeroGender.GIRL,
    HeroAvatar.HEALER: HeroGender.GIRL,
    HeroAvatar.FAIRY: HeroGender.GIRL,
}


def avatars_for_gender(gender: HeroGender) -> list[HeroAvatar]:
    """Avatars offered for *gender*, neutral ones included."""
    return [a for a in HeroAvatar if a.gender in (gender, None)]


class Hero(ApiModel):
    id: str | None = None
    user_id: str | None = None
    name: str
    gender: str
    age: int
    appearance: str | None = None
    personality: str | None = None
    power: str | None = None
    avatar_image: str | None = None
    created_at: str | None = None
    updated_at: str | None = None


class HeroCreateRequest(ApiModel):
    """POST /api/v1/heroes/ — request body."""

    name: str
    gender: str
    age: int
    appearance: str | None = None
    personality: str | None = None
    power: str | None = None
    avatar_image: str | None = None


class HeroUpdateRequest(HeroCreateRequest):
    """PUT /api/v1/heroes/{id}/ — request body (full replacement)."""


class HeroResponse(ApiEnvelope):
    data: Hero | None = None


class HeroesListData(ApiModel):
    heroes: list[Hero]
    total: int | None = None
    skip: int | None = None
    limit: int | None = None


class HeroesListResponse(ApiEnvelope):
    data: HeroesListData | None = None


class DeleteHeroResponse(ApiEnvelope):
    pass
