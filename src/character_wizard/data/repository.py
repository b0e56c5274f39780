from __future__ import annotations

import logging
from typing import Callable, Dict, Optional, TypeVar

from ..errors import WizardError
from .client import CharacterApi
from .reference import BackgroundData, ClassData, RaceData

__all__ = [
    "ReferenceRepository",
]

logger = logging.getLogger(__name__)

T = TypeVar("T")


class ReferenceRepository:
    """Fetches and caches race, class and background details by slug."""

    def __init__(self, api: CharacterApi) -> None:
        self.api = api
        self._cache: Dict[str, Dict[str, object]] = {}

    def _load(self, resource: str, slug: str, fetch: Callable[[str], dict], build: Callable[[dict], T]) -> T:
        if not slug:
            raise WizardError(f"Missing {resource} slug")
        bucket = self._cache.setdefault(resource, {})
        key = slug.lower()
        if key not in bucket:
            payload = fetch(slug)
            if not payload:
                raise WizardError(f"Unknown {resource}: {slug}")
            bucket[key] = build(payload)
            logger.debug("Cached %s %s", resource, slug)
        return bucket[key]  # type: ignore[return-value]

    def race(self, slug: str) -> RaceData:
        return self._load("races", slug, self.api.race, RaceData.from_payload)

    def character_class(self, slug: str) -> ClassData:
        return self._load("classes", slug, self.api.character_class, ClassData.from_payload)

    def background(self, slug: str) -> BackgroundData:
        return self._load("backgrounds", slug, self.api.background, BackgroundData.from_payload)

    def cached(self, resource: str, slug: str) -> Optional[object]:
        return self._cache.get(resource, {}).get(slug.lower())

    def clear(self) -> None:
        self._cache.clear()
