"""Hero CRUD service.

Keeps a local ``heroes`` list in sync with the backend and announces changes
on the event bus so other screens can refresh.
"""

from __future__ import annotations

import logging

from models.hero import (
    DeleteHeroResponse,
    Hero,
    HeroCreateRequest,
    HeroesListResponse,
    HeroResponse,
    HeroUpdateRequest,
)
from services.api_client import ApiBackedService, ApiClient
from services.events import DomainEvent, EventBus, get_event_bus

logger = logging.getLogger(__name__)

HEROES_PATH = "/api/v1/heroes/"


class HeroService(ApiBackedService):
    def __init__(self, *, api_client: ApiClient | None = None, event_bus: EventBus | None = None) -> None:
        super().__init__(api_client)
        self._events = event_bus or get_event_bus()
        self.heroes: list[Hero] = []

    async def create_hero(self, request: HeroCreateRequest) -> Hero | None:
        response = await self._call("POST", HEROES_PATH, HeroResponse, body=request)
        if response is None:
            return None
        if not response.success or response.data is None:
            self.error_message = response.message or "Failed to create hero"
            return None
        self.heroes.append(response.data)
        self._events.emit(DomainEvent.HERO_CREATED, response.data.id)
        return response.data

    async def update_hero(self, hero_id: str, request: HeroUpdateRequest) -> Hero | None:
        response = await self._call("PUT", f"{HEROES_PATH}{hero_id}/", HeroResponse, body=request)
        if response is None:
            return None
        if not response.success or response.data is None:
            self.error_message = response.message or "Failed to update hero"
            return None
        updated = response.data
        self.heroes = [updated if h.id == hero_id else h for h in self.heroes]
        self._events.emit(DomainEvent.HERO_UPDATED, hero_id)
        return updated

    async def fetch_user_heroes(self) -> list[Hero]:
        response = await self._call("GET", HEROES_PATH, HeroesListResponse)
        if response is None:
            return []
        if not response.success or response.data is None:
            self.error_message = response.message or "Failed to fetch heroes"
            return []
        logger.info("Fetched %d heroes", len(response.data.heroes))
        self.heroes = list(response.data.heroes)
        return response.data.heroes

    async def delete_hero(self, hero_id: str) -> bool:
        response = await self._call("DELETE", f"{HEROES_PATH}{hero_id}/", DeleteHeroResponse)
        if response is None:
            return False
        if not response.success:
            self.error_message = response.message or "Failed to delete hero"
            return False
        self.heroes = [h for h in self.heroes if h.id != hero_id]
        self._events.emit(DomainEvent.HERO_DELETED, hero_id)
        return True

    def clear_heroes(self) -> None:
        self.heroes = []
