from __future__ import annotations

import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, Iterable, List, Optional, Tuple

from .constants import CLASSIC_SOURCES, FEATURE_SUBTYPES, SOURCE_LABELS
from .data.reference import slug_from_ref

logger = logging.getLogger(__name__)


class ChoiceKind(Enum):
    PROFICIENCY = "proficiency"
    LANGUAGE = "language"
    EQUIPMENT = "equipment"
    SPELL = "spell"
    FEATURE = "feature"
    FEAT = "feat"
    ABILITY_SCORE = "ability_score"
    ASI_OR_FEAT = "asi_or_feat"
    SUBCLASS = "subclass"
    HIT_POINTS = "hit_points"
    UNKNOWN = "unknown"


# Single source of truth for (type, subtype) -> kind. ``None`` as subtype is
# the fallback for a type whose subtype has no specific entry.
_KIND_TABLE: Dict[Tuple[str, Optional[str]], ChoiceKind] = {
    ("ability_score", "asi_or_feat"): ChoiceKind.ASI_OR_FEAT,
    ("ability_score", "feat"): ChoiceKind.FEAT,
    ("ability_score", None): ChoiceKind.ABILITY_SCORE,
    # Legacy payloads that put the subtype in ``type``.
    ("asi_or_feat", None): ChoiceKind.ASI_OR_FEAT,
    ("feat", None): ChoiceKind.FEAT,
    ("proficiency", None): ChoiceKind.PROFICIENCY,
    ("language", None): ChoiceKind.LANGUAGE,
    ("equipment", None): ChoiceKind.EQUIPMENT,
    ("spell", None): ChoiceKind.SPELL,
    ("subclass", None): ChoiceKind.SUBCLASS,
    ("hit_points", None): ChoiceKind.HIT_POINTS,
    ("feature", None): ChoiceKind.FEATURE,
    ("optional_feature", None): ChoiceKind.FEATURE,
    ("fighting_style", None): ChoiceKind.FEATURE,
    ("expertise", None): ChoiceKind.FEATURE,
}
for _subtype in FEATURE_SUBTYPES:
    _KIND_TABLE[("feature", _subtype)] = ChoiceKind.FEATURE


def classify(choice_type: Optional[str], subtype: Optional[str] = None) -> ChoiceKind:
    if not choice_type:
        return ChoiceKind.UNKNOWN
    choice_type = choice_type.lower()
    subtype = subtype.lower() if subtype else None
    kind = _KIND_TABLE.get((choice_type, subtype))
    if kind is None:
        kind = _KIND_TABLE.get((choice_type, None), ChoiceKind.UNKNOWN)
    return kind


@dataclass(slots=True, frozen=True)
class ChoiceKey:
    """Parsed form of ``type|source|source-id|level|discriminator``."""

    type: str
    source: Optional[str] = None
    source_id: Optional[str] = None
    level: Optional[int] = None
    discriminator: Optional[str] = None

    @classmethod
    def parse(cls, choice_id: str) -> "ChoiceKey":
        parts = (choice_id or "").split("|")
        parts += [""] * (5 - len(parts))
        level: Optional[int]
        try:
            level = int(parts[3]) if parts[3] else None
        except ValueError:
            level = None
        return cls(
            type=parts[0],
            source=parts[1] or None,
            source_id=parts[2] or None,
            level=level,
            discriminator="|".join(parts[4:]) or None,
        )


@dataclass(slots=True)
class ChoiceOption:
    id: str
    label: str
    kind: str = "option"
    description: Optional[str] = None
    extra: Dict[str, Any] = field(default_factory=dict)


@dataclass(slots=True)
class PendingChoice:
    id: str
    type: str
    subtype: Optional[str]
    source: str
    source_name: str
    level_granted: Optional[int]
    required: bool
    quantity: int
    remaining: int
    selected: List[str] = field(default_factory=list)
    options: List[Any] = field(default_factory=list)
    options_endpoint: Optional[str] = None
    metadata: Dict[str, Any] = field(default_factory=dict)

    @classmethod
    def from_payload(cls, payload: Any) -> Optional["PendingChoice"]:
        """Build a choice from a backend payload, or ``None`` when it is unusable."""

        if not isinstance(payload, dict):
            logger.warning("Skipping pending choice that is not an object: %r", payload)
            return None
        choice_id = payload.get("id")
        choice_type = payload.get("type")
        if not choice_id or not choice_type:
            logger.warning("Skipping pending choice without id/type: %r", payload)
            return None
        key = ChoiceKey.parse(str(choice_id))

        try:
            quantity = max(1, int(payload.get("quantity") or 1))
        except (TypeError, ValueError):
            quantity = 1
        selected = [str(value) for value in payload.get("selected") or [] if value is not None]
        remaining_raw = payload.get("remaining")
        try:
            remaining = int(remaining_raw) if remaining_raw is not None else quantity - len(selected)
        except (TypeError, ValueError):
            remaining = quantity - len(selected)

        level = payload.get("level_granted", key.level)
        try:
            level = int(level) if level is not None else None
        except (TypeError, ValueError):
            level = key.level

        options = payload.get("options")
        metadata = payload.get("metadata")
        source = payload.get("source") or key.source or "unknown"
        return cls(
            id=str(choice_id),
            type=str(choice_type),
            subtype=payload.get("subtype") or None,
            source=str(source),
            source_name=payload.get("source_name") or SOURCE_LABELS.get(source, str(source).replace("_", " ").title()),
            level_granted=level,
            required=payload.get("required", True) is not False,
            quantity=quantity,
            remaining=max(0, remaining),
            selected=selected,
            options=list(options) if isinstance(options, list) else [],
            options_endpoint=payload.get("options_endpoint") or None,
            metadata=dict(metadata) if isinstance(metadata, dict) else {},
        )

    # ------------------------------------------------------------------
    @property
    def kind(self) -> ChoiceKind:
        return classify(self.type, self.subtype)

    @property
    def key(self) -> ChoiceKey:
        return ChoiceKey.parse(self.id)

    @property
    def choice_group(self) -> str:
        return self.metadata.get("choice_group") or self.key.discriminator or self.id

    @property
    def is_outstanding(self) -> bool:
        return self.remaining > 0

    @property
    def needs_option_fetch(self) -> bool:
        return not self.options and bool(self.options_endpoint)


def parse_choices(payload: Any) -> List[PendingChoice]:
    entries = payload.get("choices") if isinstance(payload, dict) else payload
    if not isinstance(entries, list):
        logger.warning("Pending choice response has no choice list: %r", payload)
        return []
    choices: List[PendingChoice] = []
    for entry in entries:
        choice = PendingChoice.from_payload(entry)
        if choice is not None:
            choices.append(choice)
    return choices


def ledger_key(choice: PendingChoice) -> str:
    """Key under which a choice's in-progress picks are held."""

    if choice.kind is ChoiceKind.PROFICIENCY and choice.metadata.get("choice_group"):
        return f"{choice.source}:{choice.metadata['choice_group']}"
    return choice.id


def find_choice(choices: Iterable[PendingChoice], key: str) -> Optional[PendingChoice]:
    for choice in choices:
        if choice.id == key or ledger_key(choice) == key:
            return choice
    return None


def group_by_source(choices: Iterable[PendingChoice]) -> Dict[str, List[PendingChoice]]:
    grouped: Dict[str, List[PendingChoice]] = {}
    for choice in choices:
        grouped.setdefault(choice.source, []).append(choice)
    ordered = [source for source in CLASSIC_SOURCES if source in grouped]
    ordered += sorted(source for source in grouped if source not in CLASSIC_SOURCES)
    return {source: grouped[source] for source in ordered}


def group_by_kind(choices: Iterable[PendingChoice]) -> Dict[ChoiceKind, List[PendingChoice]]:
    grouped: Dict[ChoiceKind, List[PendingChoice]] = {}
    for choice in choices:
        grouped.setdefault(choice.kind, []).append(choice)
    return grouped


def choices_of_kind(choices: Iterable[PendingChoice], *kinds: ChoiceKind) -> List[PendingChoice]:
    return [choice for choice in choices if choice.kind in kinds]


# ----------------------------------------------------------------------
# Options


def option_from_payload(raw: Any) -> Optional[ChoiceOption]:
    if isinstance(raw, str):
        return ChoiceOption(id=raw, label=raw)
    if not isinstance(raw, dict):
        return None
    for nested_key in ("skill", "proficiency_type", "language", "item", "spell", "feat"):
        nested = raw.get(nested_key)
        if isinstance(nested, dict) and slug_from_ref(nested):
            slug = slug_from_ref(nested)
            return ChoiceOption(
                id=slug,
                label=nested.get("name") or slug,
                kind=nested_key,
                description=nested.get("description"),
                extra=raw,
            )
    option_id = slug_from_ref(raw) or raw.get("code") or raw.get("option") or raw.get("type")
    if not option_id:
        return None
    label = raw.get("name") or raw.get("label") or str(option_id)
    return ChoiceOption(
        id=str(option_id),
        label=label,
        kind=raw.get("type") or "option",
        description=raw.get("description"),
        extra=raw,
    )


def display_options(choice: PendingChoice, fetched: Optional[List[Any]] = None) -> List[ChoiceOption]:
    """Selectable options for a choice; malformed entries are dropped."""

    raw_options = choice.options or fetched or []
    options: List[ChoiceOption] = []
    for raw in raw_options:
        option = option_from_payload(raw)
        if option is None:
            logger.debug("Dropping malformed option on %s: %r", choice.id, raw)
            continue
        options.append(option)
    return options


def granted_options(choice: PendingChoice) -> List[str]:
    """Options the character already has from elsewhere (e.g. known languages)."""

    known = choice.metadata.get("known_languages") or choice.metadata.get("already_granted") or []
    return [str(value) for value in known if value]


# ----------------------------------------------------------------------
# Equipment


class ItemShape(Enum):
    CATALOG = "catalog"
    CATEGORY = "category"
    FLAVOR = "flavor"


@dataclass(slots=True)
class EquipmentItem:
    shape: ItemShape
    name: str
    quantity: int = 1
    slug: Optional[str] = None
    candidates: List[ChoiceOption] = field(default_factory=list)


@dataclass(slots=True)
class EquipmentOption:
    option: str
    label: str
    items: List[EquipmentItem]

    @property
    def category_indexes(self) -> List[int]:
        return [index for index, item in enumerate(self.items) if item.shape is ItemShape.CATEGORY]

    @property
    def requires_item_selection(self) -> bool:
        return bool(self.category_indexes)


def _quantity(value: Any) -> int:
    try:
        return max(1, int(value))
    except (TypeError, ValueError):
        return 1


def _candidate(raw: Any) -> Optional[ChoiceOption]:
    if not isinstance(raw, dict):
        return None
    item = raw.get("item") if isinstance(raw.get("item"), dict) else raw
    slug = slug_from_ref(item)
    if not slug:
        return None
    return ChoiceOption(id=slug, label=item.get("name") or slug, kind="item", extra={"quantity": _quantity(raw.get("quantity"))})


def _looks_like_category(raw: dict, items: List[dict]) -> bool:
    flag = raw.get("is_category")
    if flag is not None:
        return flag is True
    # Unflagged options: three or more equal-quantity alternatives read as a category list.
    if len(items) < 3:
        return False
    quantities = {str(item.get("quantity", 1)) for item in items}
    return len(quantities) == 1


def _equipment_item(raw: dict) -> Optional[EquipmentItem]:
    quantity = _quantity(raw.get("quantity"))
    item_ref = raw.get("item") if isinstance(raw.get("item"), dict) else raw
    name = item_ref.get("name") or raw.get("name") or raw.get("description") or ""

    category = raw.get("category") or raw.get("equipment_category")
    if isinstance(category, dict):
        candidates = [c for c in (_candidate(entry) for entry in category.get("items") or []) if c]
        label = category.get("name") or name or "Any item"
        return EquipmentItem(shape=ItemShape.CATEGORY, name=label, quantity=quantity, candidates=candidates)

    slug = slug_from_ref(item_ref)
    if slug:
        return EquipmentItem(shape=ItemShape.CATALOG, name=name or slug, quantity=quantity, slug=slug)
    if name:
        return EquipmentItem(shape=ItemShape.FLAVOR, name=name, quantity=quantity)
    return None


def equipment_options(choice: PendingChoice) -> List[EquipmentOption]:
    options: List[EquipmentOption] = []
    for raw in choice.options:
        if not isinstance(raw, dict) or not raw.get("option"):
            logger.debug("Dropping malformed equipment option on %s: %r", choice.id, raw)
            continue
        items_raw = [item for item in raw.get("items") or [] if isinstance(item, dict)]
        letter = str(raw["option"])
        label = raw.get("label") or raw.get("name") or letter
        if _looks_like_category(raw, items_raw):
            candidates = [c for c in (_candidate(item) for item in items_raw) if c]
            count = _quantity(raw.get("select_count"))
            items = [
                EquipmentItem(shape=ItemShape.CATEGORY, name=label, quantity=1, candidates=list(candidates))
                for _ in range(count)
            ]
        else:
            items = [item for item in (_equipment_item(entry) for entry in items_raw) if item]
        options.append(EquipmentOption(option=letter, label=label, items=items))
    return options


def find_equipment_option(choice: PendingChoice, option: str) -> Optional[EquipmentOption]:
    for candidate in equipment_options(choice):
        if candidate.option == option:
            return candidate
    return None
