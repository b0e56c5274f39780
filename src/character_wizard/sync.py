from __future__ import annotations

import logging
from typing import Any, Dict, Iterable, List, Optional, Sequence

from .choices import (
    ChoiceKind,
    ItemShape,
    PendingChoice,
    find_equipment_option,
    ledger_key,
    parse_choices,
)
from .constants import COLLECTION_EQUIPMENT, COLLECTION_SPELLS
from .data.client import CharacterApi, CharacterRef
from .errors import ApiError, CollectionReplaceError
from .ledger import EquipmentLedger, SelectionLedger
from .models import CollectionItem

logger = logging.getLogger(__name__)

SLUG_FIELDS = {
    COLLECTION_EQUIPMENT: "item_slug",
    COLLECTION_SPELLS: "spell_slug",
}


def _class_row_id(row: dict) -> Optional[Any]:
    if row.get("class_id") is not None:
        return row["class_id"]
    ref = row.get("class")
    if isinstance(ref, dict):
        return ref.get("id")
    return row.get("id")


def equipment_items(choices: Iterable[PendingChoice], ledger: EquipmentLedger) -> List[CollectionItem]:
    """Rows implied by the chosen bundles.

    Catalog items go by slug, category placeholders by the user's pick and
    flavor items by their descriptive name. Untouched groups fall back to
    the option already persisted on the choice.
    """

    items: List[CollectionItem] = []
    for choice in choices:
        if choice.kind is not ChoiceKind.EQUIPMENT:
            continue
        option = ledger.selected_option(choice.id)
        touched = option is not None
        if not touched:
            if not choice.selected:
                continue
            option = choice.selected[0]
        bundle = find_equipment_option(choice, option)
        if bundle is None:
            logger.warning("Equipment option %s is not offered by %s", option, choice.id)
            continue
        if touched:
            picks = ledger.item_selections(choice.id, option)
        else:
            # Persisted picks are listed in category-slot order.
            persisted = choice.metadata.get("item_selections") or {}
            picks = dict(zip(bundle.category_indexes, persisted.get(option) or []))
        for index, item in enumerate(bundle.items):
            if item.shape is ItemShape.CATALOG:
                items.append(CollectionItem(slug=item.slug, quantity=item.quantity))
            elif item.shape is ItemShape.CATEGORY:
                slug = picks.get(index)
                if not slug:
                    logger.warning("No item picked for %s option %s slot %d", choice.id, option, index)
                    continue
                quantity = item.quantity
                for candidate in item.candidates:
                    if candidate.id == slug:
                        quantity = max(quantity, int(candidate.extra.get("quantity", 1)))
                        break
                items.append(CollectionItem(slug=slug, quantity=quantity))
            else:
                items.append(CollectionItem(slug=None, quantity=item.quantity, custom_name=item.name))
    return items


def selection_items(
    choices: Iterable[PendingChoice],
    ledger: SelectionLedger,
    kinds: Sequence[ChoiceKind] = (ChoiceKind.SPELL,),
) -> List[CollectionItem]:
    """One row per picked option across the given choice kinds, local picks first."""

    slugs: List[str] = []
    for choice in choices:
        if choice.kind not in kinds:
            continue
        entry = ledger.get(ledger_key(choice))
        for slug in entry if entry is not None else choice.selected:
            if slug not in slugs:
                slugs.append(slug)
    return [CollectionItem(slug=slug) for slug in slugs]


class CharacterSynchronizer:
    """Turns local selections into remote mutations."""

    def __init__(self, api: CharacterApi) -> None:
        self.api = api

    # Scalar patch ---------------------------------------------------------
    def patch(self, character: CharacterRef, fields: Dict[str, Any]) -> dict:
        logger.debug("Patching character %s: %s", character, sorted(fields))
        return self.api.update_character(character, fields)

    # Classes --------------------------------------------------------------
    def replace_class(self, character: CharacterRef, class_id: Any) -> List[dict]:
        """Remove every class entry then add exactly one."""

        for row in self.api.list_classes(character):
            row_id = _class_row_id(row)
            if row_id is not None:
                self.api.remove_class(character, row_id)
        self.api.add_class(character, class_id)
        return self.api.list_classes(character)

    def set_subclass(self, character: CharacterRef, class_id: Any, subclass_id: Any) -> dict:
        return self.api.set_subclass(character, class_id, subclass_id)

    # Collection replace ---------------------------------------------------
    def replace_collection(
        self,
        character: CharacterRef,
        collection: str,
        items: Sequence[CollectionItem],
    ) -> List[dict]:
        """Delete every persisted row, then create one row per item.

        Not atomic. On failure the collection is re-fetched and attached to
        the raised ``CollectionReplaceError``; callers retry the whole call.
        """

        slug_field = SLUG_FIELDS.get(collection, "slug")
        try:
            existing = self.api.list_collection(character, collection)
            for row in existing:
                if row.get("id") is not None:
                    self.api.delete_collection_item(character, collection, row["id"])
            for item in items:
                self.api.add_collection_item(character, collection, item.to_payload(slug_field))
        except ApiError as exc:
            logger.error("Replacing %s on character %s failed: %s", collection, character, exc)
            raise CollectionReplaceError(collection, exc, self._refetch(character, collection)) from exc
        rows = self.api.list_collection(character, collection)
        logger.info("Replaced %s on character %s (%d rows)", collection, character, len(rows))
        return rows

    def _refetch(self, character: CharacterRef, collection: str) -> List[dict]:
        try:
            return self.api.list_collection(character, collection)
        except ApiError as exc:
            logger.warning("Could not re-fetch %s after failed replace: %s", collection, exc)
            return []

    # Choice resolution ----------------------------------------------------
    def fetch_choices(self, character: CharacterRef, choice_type: Optional[str] = None) -> List[PendingChoice]:
        return parse_choices(self.api.pending_choices(character, choice_type))

    def resolve_choices(
        self,
        character: CharacterRef,
        choices: Iterable[PendingChoice],
        ledger: SelectionLedger,
    ) -> List[PendingChoice]:
        """Submit every changed ledger entry, then re-fetch the pending list once."""

        payloads = []
        for choice in choices:
            entry = ledger.get(ledger_key(choice))
            if not entry:
                continue
            if set(entry) == set(choice.selected) and not choice.is_outstanding:
                continue
            payloads.append(
                (choice.id, {"source": choice.source, "choice_group": choice.choice_group, "selected": entry})
            )
        return self._submit(character, payloads)

    def resolve_equipment(
        self,
        character: CharacterRef,
        choices: Iterable[PendingChoice],
        ledger: EquipmentLedger,
    ) -> List[PendingChoice]:
        payloads = []
        for choice in choices:
            if choice.kind is not ChoiceKind.EQUIPMENT:
                continue
            option = ledger.selected_option(choice.id)
            if option is None:
                continue
            payload: Dict[str, Any] = {"source": choice.source, "choice_group": choice.choice_group, "selected": [option]}
            picks = ledger.item_selections(choice.id, option)
            if picks:
                payload["item_selections"] = {option: [picks[index] for index in sorted(picks)]}
            payloads.append((choice.id, payload))
        return self._submit(character, payloads)

    def resolve_one(self, character: CharacterRef, choice_id: str, payload: Dict[str, Any]) -> Any:
        logger.debug("Resolving %s on character %s", choice_id, character)
        return self.api.resolve_choice(character, choice_id, payload)

    def _submit(self, character: CharacterRef, payloads: List[tuple]) -> List[PendingChoice]:
        for choice_id, payload in payloads:
            self.resolve_one(character, choice_id, payload)
        return self.fetch_choices(character)
