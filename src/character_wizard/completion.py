from __future__ import annotations

from typing import Collection, Dict, Iterable, Optional

from .abilities import validate_ability_scores
from .choices import ChoiceKind, PendingChoice, find_equipment_option, ledger_key
from .constants import (
    STEP_ABILITIES,
    STEP_BACKGROUND,
    STEP_CLASS,
    STEP_NAME,
    STEP_RACE,
    STEP_SUBCLASS,
    STEP_SUBRACE,
)
from .ledger import EquipmentLedger, SelectionLedger
from .models import DraftCharacter


def is_group_complete(choice: PendingChoice, entry: Optional[Collection[str]]) -> bool:
    """Whether one choice group lets its step advance.

    A touched group is complete only when the local picks fill it. An
    untouched group keeps its persisted answer; ``remaining == 0`` with an
    empty ``selected`` also counts as answered.
    """

    if entry is not None:
        return len(entry) == choice.quantity
    return len(choice.selected) >= choice.quantity or choice.remaining == 0


def is_equipment_group_complete(choice: PendingChoice, ledger: EquipmentLedger) -> bool:
    option = ledger.selected_option(choice.id)
    if option is None:
        return is_group_complete(choice, None)
    bundle = find_equipment_option(choice, option)
    if bundle is None:
        return False
    picks = ledger.item_selections(choice.id, option)
    return all(index in picks for index in bundle.category_indexes)


def choice_complete(
    choice: PendingChoice,
    ledger: SelectionLedger,
    equipment: Optional[EquipmentLedger] = None,
) -> bool:
    if choice.kind is ChoiceKind.EQUIPMENT and equipment is not None:
        return is_equipment_group_complete(choice, equipment)
    return is_group_complete(choice, ledger.get(ledger_key(choice)))


def group_completion(
    choices: Iterable[PendingChoice],
    ledger: SelectionLedger,
    equipment: Optional[EquipmentLedger] = None,
) -> Dict[str, bool]:
    return {choice.id: choice_complete(choice, ledger, equipment) for choice in choices}


def are_choices_complete(
    choices: Iterable[PendingChoice],
    kinds: Collection[ChoiceKind],
    ledger: SelectionLedger,
    equipment: Optional[EquipmentLedger] = None,
) -> bool:
    """Conjunction over every required group whose kind is in ``kinds``."""

    return all(
        choice_complete(choice, ledger, equipment)
        for choice in choices
        if choice.kind in kinds and choice.required
    )


def all_of_kind_complete(
    choices: Iterable[PendingChoice],
    kind: ChoiceKind,
    ledger: SelectionLedger,
    equipment: Optional[EquipmentLedger] = None,
) -> bool:
    return are_choices_complete(choices, (kind,), ledger, equipment)


def all_required_resolved(choices: Iterable[PendingChoice]) -> bool:
    """Server view: nothing required is still outstanding."""

    return not any(choice.required and choice.is_outstanding for choice in choices)


def has_unsaved_changes(choices: Iterable[PendingChoice], ledger: SelectionLedger) -> bool:
    for choice in choices:
        entry = ledger.get(ledger_key(choice))
        if entry is not None and set(entry) != set(choice.selected):
            return True
    return False


def scalar_step_complete(step: str, draft: DraftCharacter) -> bool:
    """Gate for steps that edit the draft itself rather than pending choices."""

    if step == STEP_NAME:
        return bool(draft.name.strip())
    if step == STEP_RACE:
        return draft.race is not None
    if step == STEP_SUBRACE:
        if draft.race is None:
            return False
        return draft.subrace is not None or not draft.race.subrace_required
    if step == STEP_CLASS:
        return draft.primary_class is not None
    if step == STEP_SUBCLASS:
        entry = draft.primary_class
        return entry is not None and entry.subclass is not None
    if step == STEP_ABILITIES:
        return bool(validate_ability_scores(draft.ability_scores, draft.ability_method))
    if step == STEP_BACKGROUND:
        return draft.background is not None
    return True
