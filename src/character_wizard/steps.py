"""Ordered, variable-length step lists for creation and level-up.

Every list is recomputed from the current draft and pending choices on
each read; nothing here caches a step count.
"""

from __future__ import annotations

from typing import Dict, FrozenSet, Iterable, List, Optional, Sequence, Tuple

from .choices import ChoiceKind, PendingChoice
from .constants import (
    STEP_ABILITIES,
    STEP_ASI_FEAT,
    STEP_BACKGROUND,
    STEP_CLASS,
    STEP_CLASS_SELECTION,
    STEP_EQUIPMENT,
    STEP_FEATS,
    STEP_FEATURE_CHOICES,
    STEP_HIT_POINTS,
    STEP_LANGUAGES,
    STEP_NAME,
    STEP_PROFICIENCIES,
    STEP_RACE,
    STEP_REVIEW,
    STEP_SPELLS,
    STEP_SUBCLASS,
    STEP_SUBRACE,
    STEP_SUMMARY,
)
from .models import DraftCharacter, LevelUpResult

# Pending choice kinds each step resolves.
STEP_KINDS: Dict[str, FrozenSet[ChoiceKind]] = {
    STEP_ABILITIES: frozenset({ChoiceKind.ABILITY_SCORE}),
    STEP_SUBCLASS: frozenset({ChoiceKind.SUBCLASS}),
    STEP_FEATS: frozenset({ChoiceKind.FEAT}),
    STEP_PROFICIENCIES: frozenset({ChoiceKind.PROFICIENCY}),
    STEP_LANGUAGES: frozenset({ChoiceKind.LANGUAGE}),
    STEP_EQUIPMENT: frozenset({ChoiceKind.EQUIPMENT}),
    STEP_SPELLS: frozenset({ChoiceKind.SPELL}),
    STEP_HIT_POINTS: frozenset({ChoiceKind.HIT_POINTS}),
    STEP_ASI_FEAT: frozenset({ChoiceKind.ASI_OR_FEAT}),
    STEP_FEATURE_CHOICES: frozenset({ChoiceKind.FEATURE}),
}

# Order used to find the first level-up step with outstanding work.
RESUME_PRIORITY: Tuple[str, ...] = (
    STEP_SUBCLASS,
    STEP_ASI_FEAT,
    STEP_FEATURE_CHOICES,
    STEP_SPELLS,
    STEP_LANGUAGES,
    STEP_PROFICIENCIES,
)


def step_kinds(step: str) -> FrozenSet[ChoiceKind]:
    return STEP_KINDS.get(step, frozenset())


def _has_kind(choices: Iterable[PendingChoice], kinds: FrozenSet[ChoiceKind]) -> bool:
    return any(choice.kind in kinds for choice in choices)


def _has_outstanding(choices: Iterable[PendingChoice], kinds: FrozenSet[ChoiceKind]) -> bool:
    return any(choice.kind in kinds and choice.is_outstanding for choice in choices)


def grants_bonus_feat(draft: DraftCharacter) -> bool:
    if draft.race is None:
        return False
    if draft.race.grants_bonus_feat:
        return True
    return draft.subrace is not None and draft.subrace.grants_bonus_feat


def needs_subclass_at_creation(draft: DraftCharacter) -> bool:
    entry = draft.primary_class
    return entry is not None and entry.class_data.subclass_level == 1


def is_spellcaster(draft: DraftCharacter) -> bool:
    entry = draft.primary_class
    if entry is None:
        return False
    return entry.class_data.is_spellcaster_at(max(1, entry.level))


def creation_steps(draft: DraftCharacter, choices: Sequence[PendingChoice] = ()) -> List[str]:
    steps = [STEP_NAME, STEP_RACE]
    if draft.race is not None and draft.race.has_subraces:
        steps.append(STEP_SUBRACE)
    steps.append(STEP_CLASS)
    if needs_subclass_at_creation(draft):
        steps.append(STEP_SUBCLASS)
    steps += [STEP_ABILITIES, STEP_BACKGROUND]
    if grants_bonus_feat(draft):
        steps.append(STEP_FEATS)
    # Shown whenever such a choice exists, answered or not, so it can be revisited.
    if _has_kind(choices, STEP_KINDS[STEP_PROFICIENCIES]):
        steps.append(STEP_PROFICIENCIES)
    if _has_kind(choices, STEP_KINDS[STEP_FEATURE_CHOICES]):
        steps.append(STEP_FEATURE_CHOICES)
    if _has_kind(choices, STEP_KINDS[STEP_LANGUAGES]):
        steps.append(STEP_LANGUAGES)
    steps.append(STEP_EQUIPMENT)
    if is_spellcaster(draft):
        steps.append(STEP_SPELLS)
    steps.append(STEP_REVIEW)
    return steps


def level_up_steps(
    result: Optional[LevelUpResult],
    choices: Sequence[PendingChoice] = (),
    needs_class_selection: bool = False,
) -> List[str]:
    steps: List[str] = []
    if needs_class_selection:
        steps.append(STEP_CLASS_SELECTION)
    if hp_pending(result, choices):
        steps.append(STEP_HIT_POINTS)
    if _has_kind(choices, STEP_KINDS[STEP_SUBCLASS]):
        steps.append(STEP_SUBCLASS)
    if (result is not None and result.asi_pending) or _has_kind(choices, STEP_KINDS[STEP_ASI_FEAT]):
        steps.append(STEP_ASI_FEAT)
    for step in (STEP_FEATURE_CHOICES, STEP_SPELLS, STEP_LANGUAGES, STEP_PROFICIENCIES):
        if _has_kind(choices, STEP_KINDS[step]):
            steps.append(step)
    steps.append(STEP_SUMMARY)
    return steps


def hp_pending(result: Optional[LevelUpResult], choices: Sequence[PendingChoice] = ()) -> bool:
    if result is not None and result.hp_choice_pending:
        return True
    return _has_outstanding(choices, STEP_KINDS[STEP_HIT_POINTS])


def resume_level_up_step(
    choices: Sequence[PendingChoice],
    hp_choice_pending: bool = False,
    asi_pending: bool = False,
) -> str:
    """First level-up step with outstanding work after a reload or partial save.

    The result flags count as outstanding work even when no matching choice
    has been listed yet.
    """

    if hp_choice_pending or _has_outstanding(choices, STEP_KINDS[STEP_HIT_POINTS]):
        return STEP_HIT_POINTS
    for step in RESUME_PRIORITY:
        if _has_outstanding(choices, STEP_KINDS[step]) or (step == STEP_ASI_FEAT and asi_pending):
            return step
    return STEP_SUMMARY


# ----------------------------------------------------------------------
# Navigation


def next_step(steps: Sequence[str], current: str) -> Optional[str]:
    if current not in steps:
        return steps[0] if steps else None
    index = steps.index(current)
    return steps[index + 1] if index + 1 < len(steps) else None


def previous_step(steps: Sequence[str], current: str) -> Optional[str]:
    if current not in steps:
        return None
    index = steps.index(current)
    return steps[index - 1] if index > 0 else None


def progress_percent(steps: Sequence[str], current: str) -> int:
    if not steps or current not in steps:
        return 0
    return round((steps.index(current) + 1) * 100 / len(steps))
