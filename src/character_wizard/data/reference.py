from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Dict, Iterable, List, Optional

from ..constants import BONUS_FEAT_CATEGORY

__all__ = [
    "slug_from_ref",
    "normalize_category",
    "ClassLevel",
    "SubclassData",
    "ClassData",
    "SubraceData",
    "RaceData",
    "BackgroundData",
]


def slug_from_ref(ref: Any) -> Optional[str]:
    """Extract a slug from a nested ``{"slug": ...}`` reference or a bare string."""

    if isinstance(ref, str):
        return ref or None
    if isinstance(ref, dict):
        return ref.get("slug") or ref.get("full_slug") or None
    return None


def normalize_category(value: Any) -> str:
    if not isinstance(value, str):
        return ""
    return value.strip().lower().replace("-", "_").replace(" ", "_")


def _int(value: Any, default: int = 0) -> int:
    try:
        return int(value)
    except (TypeError, ValueError):
        return default


def _dicts(entries: Any) -> List[dict]:
    if not isinstance(entries, list):
        return []
    return [entry for entry in entries if isinstance(entry, dict)]


def _grants_bonus_feat(modifiers: Iterable[dict]) -> bool:
    return any(normalize_category(mod.get("modifier_category")) == BONUS_FEAT_CATEGORY for mod in modifiers)


@dataclass(slots=True)
class ClassLevel:
    level: int
    cantrips_known: int = 0
    spells_known: int = 0
    spell_slots: Dict[int, int] = field(default_factory=dict)

    @classmethod
    def from_payload(cls, payload: dict) -> "ClassLevel":
        slots: Dict[int, int] = {}
        for key, value in payload.items():
            if key.startswith("spell_slots_") and isinstance(value, int) and value > 0:
                digits = "".join(ch for ch in key[len("spell_slots_"):] if ch.isdigit())
                if digits:
                    slots[int(digits)] = value
        return cls(
            level=_int(payload.get("level")),
            cantrips_known=_int(payload.get("cantrips_known")),
            spells_known=_int(payload.get("spells_known")),
            spell_slots={lvl: slots[lvl] for lvl in sorted(slots)},
        )


@dataclass(slots=True)
class SubclassData:
    id: Optional[int]
    slug: str
    name: str

    @classmethod
    def from_payload(cls, payload: dict) -> "SubclassData":
        slug = slug_from_ref(payload) or ""
        return cls(id=payload.get("id"), slug=slug, name=payload.get("name") or slug)


@dataclass(slots=True)
class ClassData:
    id: Optional[int]
    slug: str
    name: str
    hit_die: int
    spellcasting_ability: Optional[str]
    subclass_level: Optional[int]
    levels: Dict[int, ClassLevel]
    subclasses: Dict[str, SubclassData]

    @classmethod
    def from_payload(cls, payload: dict) -> "ClassData":
        slug = slug_from_ref(payload) or ""
        ability = payload.get("spellcasting_ability")
        if isinstance(ability, dict):
            ability = ability.get("code") or ability.get("name")
        levels: Dict[int, ClassLevel] = {}
        for entry in _dicts(payload.get("level_progression")):
            level = ClassLevel.from_payload(entry)
            levels[level.level] = level
        subclasses: Dict[str, SubclassData] = {}
        for entry in _dicts(payload.get("subclasses")):
            sub = SubclassData.from_payload(entry)
            if sub.slug:
                subclasses[sub.slug] = sub
        subclass_level = payload.get("subclass_level")
        return cls(
            id=payload.get("id"),
            slug=slug,
            name=payload.get("name") or slug,
            hit_die=_int(payload.get("hit_die"), 8),
            spellcasting_ability=ability or None,
            subclass_level=_int(subclass_level) if subclass_level is not None else None,
            levels=levels,
            subclasses=subclasses,
        )

    def is_spellcaster_at(self, level: int = 1) -> bool:
        """A spellcasting ability alone is not enough; the level must grant cantrips or spells."""

        if not self.spellcasting_ability:
            return False
        progression = self.levels.get(level)
        if not progression:
            return False
        return progression.cantrips_known > 0 or progression.spells_known > 0


@dataclass(slots=True)
class SubraceData:
    id: Optional[int]
    slug: str
    name: str
    modifiers: List[dict] = field(default_factory=list)

    @classmethod
    def from_payload(cls, payload: dict) -> "SubraceData":
        slug = slug_from_ref(payload) or ""
        return cls(
            id=payload.get("id"),
            slug=slug,
            name=payload.get("name") or slug,
            modifiers=_dicts(payload.get("modifiers")),
        )

    @property
    def grants_bonus_feat(self) -> bool:
        return _grants_bonus_feat(self.modifiers)


@dataclass(slots=True)
class RaceData:
    id: Optional[int]
    slug: str
    name: str
    subraces: Dict[str, SubraceData]
    subrace_required: bool = False
    modifiers: List[dict] = field(default_factory=list)

    @classmethod
    def from_payload(cls, payload: dict) -> "RaceData":
        slug = slug_from_ref(payload) or ""
        subraces: Dict[str, SubraceData] = {}
        for entry in _dicts(payload.get("subraces")):
            sub = SubraceData.from_payload(entry)
            if sub.slug:
                subraces[sub.slug] = sub
        return cls(
            id=payload.get("id"),
            slug=slug,
            name=payload.get("name") or slug,
            subraces=subraces,
            subrace_required=payload.get("subrace_required") is True,
            modifiers=_dicts(payload.get("modifiers")),
        )

    @property
    def has_subraces(self) -> bool:
        return bool(self.subraces)

    @property
    def grants_bonus_feat(self) -> bool:
        return _grants_bonus_feat(self.modifiers)


@dataclass(slots=True)
class BackgroundData:
    id: Optional[int]
    slug: str
    name: str

    @classmethod
    def from_payload(cls, payload: dict) -> "BackgroundData":
        slug = slug_from_ref(payload) or ""
        return cls(id=payload.get("id"), slug=slug, name=payload.get("name") or slug)
