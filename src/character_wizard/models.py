from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

from .constants import ABILITY_SCORES, DEFAULT_ABILITY_METHOD, DEFAULT_ABILITY_SCORE
from .data.reference import BackgroundData, ClassData, RaceData, SubclassData, SubraceData


@dataclass(slots=True)
class ClassEntry:
    class_data: ClassData
    subclass: Optional[SubclassData] = None
    level: int = 1
    is_primary: bool = False
    order: int = 0
    # Identifier of the persisted class row, once the backend has one.
    entry_id: Optional[int] = None

    @property
    def slug(self) -> str:
        return self.class_data.slug


@dataclass(slots=True)
class CollectionItem:
    """One equipment or spell row to create on the remote character."""

    slug: Optional[str] = None
    quantity: int = 1
    custom_name: Optional[str] = None

    def to_payload(self, slug_field: str) -> Dict[str, Any]:
        payload: Dict[str, Any] = {slug_field: self.slug, "quantity": self.quantity}
        if self.custom_name:
            payload["custom_name"] = self.custom_name
        return payload


@dataclass(slots=True)
class LevelUpResult:
    previous_level: int
    new_level: int
    hp_increase: int = 0
    new_max_hp: int = 0
    features_gained: List[dict] = field(default_factory=list)
    spell_slots: Dict[str, int] = field(default_factory=dict)
    asi_pending: bool = False
    hp_choice_pending: bool = False

    @classmethod
    def from_payload(cls, payload: dict) -> "LevelUpResult":
        slots = payload.get("spell_slots")
        features = payload.get("features_gained")
        return cls(
            previous_level=int(payload.get("previous_level") or 0),
            new_level=int(payload.get("new_level") or 0),
            hp_increase=int(payload.get("hp_increase") or 0),
            new_max_hp=int(payload.get("new_max_hp") or 0),
            features_gained=[f for f in features if isinstance(f, dict)] if isinstance(features, list) else [],
            spell_slots=dict(slots) if isinstance(slots, dict) else {},
            asi_pending=payload.get("asi_pending") is True,
            hp_choice_pending=payload.get("hp_choice_pending") is True,
        )


@dataclass(slots=True)
class DraftCharacter:
    """Working aggregate for a character under construction or mid level-up."""

    id: Optional[int] = None
    public_id: Optional[str] = None
    name: str = ""
    level: int = 1
    status: str = "draft"
    race: Optional[RaceData] = None
    subrace: Optional[SubraceData] = None
    classes: List[ClassEntry] = field(default_factory=list)
    background: Optional[BackgroundData] = None
    ability_method: str = DEFAULT_ABILITY_METHOD
    ability_scores: Dict[str, int] = field(
        default_factory=lambda: {key: DEFAULT_ABILITY_SCORE for key in ABILITY_SCORES}
    )
    equipment: List[dict] = field(default_factory=list)
    spells: List[dict] = field(default_factory=list)
    stats: Dict[str, Any] = field(default_factory=dict)
    summary: Dict[str, Any] = field(default_factory=dict)
    loading: bool = False
    error: Optional[str] = None

    # ------------------------------------------------------------------
    @property
    def is_persisted(self) -> bool:
        return self.id is not None

    @property
    def primary_class(self) -> Optional[ClassEntry]:
        for entry in self.classes:
            if entry.is_primary:
                return entry
        return self.classes[0] if self.classes else None

    @property
    def total_level(self) -> int:
        if not self.classes:
            return self.level
        return sum(entry.level for entry in self.classes)

    @property
    def is_multiclass(self) -> bool:
        return len(self.classes) > 1

    def set_single_class(self, class_data: ClassData) -> None:
        self.classes = [ClassEntry(class_data=class_data, level=1, is_primary=True, order=0)]

    def reset(self) -> None:
        """Return to an empty draft. Remote records are left alone."""

        self.id = None
        self.public_id = None
        self.name = ""
        self.level = 1
        self.status = "draft"
        self.race = None
        self.subrace = None
        self.classes = []
        self.background = None
        self.ability_method = DEFAULT_ABILITY_METHOD
        self.ability_scores = {key: DEFAULT_ABILITY_SCORE for key in ABILITY_SCORES}
        self.equipment = []
        self.spells = []
        self.stats = {}
        self.summary = {}
        self.loading = False
        self.error = None
