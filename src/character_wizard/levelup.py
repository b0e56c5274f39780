from __future__ import annotations

import logging
from typing import Any, Dict, Iterable, List, Optional

from PySide6 import QtCore

from .abilities import ability_codes, average_hit_die, validate_ability_increase
from .choices import ChoiceKind, PendingChoice, choices_of_kind
from .constants import (
    HIT_POINT_METHODS,
    STEP_ASI_FEAT,
    STEP_CLASS_SELECTION,
    STEP_FEATURE_CHOICES,
    STEP_HIT_POINTS,
    STEP_LANGUAGES,
    STEP_PROFICIENCIES,
    STEP_SPELLS,
    STEP_SUBCLASS,
    STEP_SUMMARY,
)
from .data.client import CharacterApi
from .data.repository import ReferenceRepository
from .errors import WizardError, WizardValidationError
from .models import ClassEntry, LevelUpResult
from .state import WizardSession
from .steps import hp_pending, level_up_steps, next_step, resume_level_up_step

logger = logging.getLogger(__name__)

RESOLVED_BY_LEDGER = (
    STEP_SUBCLASS,
    STEP_FEATURE_CHOICES,
    STEP_SPELLS,
    STEP_LANGUAGES,
    STEP_PROFICIENCIES,
)


class LevelUpViewModel(WizardSession):
    """Advancing an existing character by one level in one class."""

    levelUpApplied = QtCore.Signal()
    wizardClosed = QtCore.Signal()

    def __init__(
        self,
        api: CharacterApi,
        repository: Optional[ReferenceRepository] = None,
        parent: Optional[QtCore.QObject] = None,
    ) -> None:
        super().__init__(api, repository, parent)
        self.result: Optional[LevelUpResult] = None
        self.class_slug: Optional[str] = None
        self.is_open = False
        self._hp_method: Optional[str] = None
        self._hp_roll: Optional[int] = None
        self._asi: Dict[str, int] = {}
        self._feat: Optional[str] = None

    # ------------------------------------------------------------------
    @property
    def needs_class_selection(self) -> bool:
        """Whether the user picks which class to advance rather than taking the only one."""

        if self.result is not None:
            return False
        return self.draft.is_multiclass or self.draft.total_level == 1 or not self.draft.classes

    @property
    def hp_choice_pending(self) -> bool:
        return hp_pending(self.result, self.choices)

    @property
    def asi_pending(self) -> bool:
        if self.result is not None and self.result.asi_pending:
            return True
        return any(choice.is_outstanding for choice in choices_of_kind(self.choices, ChoiceKind.ASI_OR_FEAT))

    @property
    def is_complete(self) -> bool:
        if self.result is None:
            return False
        if any(choice.is_outstanding for choice in self.choices):
            return False
        return not self.hp_choice_pending and not self.asi_pending

    def steps(self) -> List[str]:
        # The class step triggers the transition, so it stays until a result exists.
        return level_up_steps(self.result, self.choices, self.result is None)

    def resume_step(self) -> str:
        if self.result is None:
            return STEP_CLASS_SELECTION
        return resume_level_up_step(self.choices, self.hp_choice_pending, self.asi_pending)

    def leveling_class(self) -> Optional[ClassEntry]:
        for entry in self.draft.classes:
            if entry.slug == self.class_slug:
                return entry
        return None

    @property
    def average_hit_points(self) -> Optional[int]:
        entry = self.leveling_class()
        if entry is None:
            return None
        return average_hit_die(entry.class_data.hit_die)

    # ------------------------------------------------------------------
    # Lifecycle
    def open(
        self,
        character_id: int,
        public_id: Optional[str],
        classes: Iterable[ClassEntry],
        total_level: int,
        ability_scores: Optional[Dict[str, int]] = None,
    ) -> None:
        with self._suspend_signals():
            self._reset_local()
            self._clear_staged()
            self.result = None
            self.draft.id = character_id
            self.draft.public_id = public_id
            self.draft.classes = list(classes)
            self.draft.level = total_level
            if ability_scores:
                self.draft.ability_scores.update(ability_scores)
            self.class_slug = None
            if not self.needs_class_selection and self.draft.primary_class is not None:
                self.class_slug = self.draft.primary_class.slug
            self.is_open = True
            self._enter_step(self.steps()[0])
        self.stepChanged.emit(self.current_step)
        self._emit_state_changed()

    def resume(
        self,
        character_id: int,
        public_id: Optional[str],
        classes: Iterable[ClassEntry] = (),
        total_level: int = 1,
        result: Optional[LevelUpResult] = None,
        class_slug: Optional[str] = None,
        ability_scores: Optional[Dict[str, int]] = None,
    ) -> bool:
        """Reopen an interrupted level-up at its first step with outstanding work."""

        self.open(character_id, public_id, classes, total_level, ability_scores)
        self.result = result or LevelUpResult(previous_level=max(0, total_level - 1), new_level=total_level)
        self.class_slug = class_slug or self.class_slug
        if not self.fetch_choices():
            return False
        self._enter_step(self.resume_step())
        return True

    def close(self) -> None:
        with self._suspend_signals():
            self._reset_local()
            self._clear_staged()
            self.result = None
            self.class_slug = None
            self.is_open = False
            self.current_step = ""
        self.wizardClosed.emit()
        self._emit_state_changed()

    def _clear_staged(self) -> None:
        self._hp_method = None
        self._hp_roll = None
        self._asi = {}
        self._feat = None

    # ------------------------------------------------------------------
    # Local edits
    def select_class(self, slug: str) -> None:
        self.class_slug = slug
        self._emit_state_changed()

    def choose_hit_points(self, method: str, roll: Optional[int] = None) -> None:
        if method not in HIT_POINT_METHODS:
            raise ValueError(f"Unknown hit point method: {method}")
        if method == "roll":
            entry = self.leveling_class()
            hit_die = entry.class_data.hit_die if entry else None
            if roll is None or roll < 1 or (hit_die is not None and roll > hit_die):
                raise ValueError(f"Roll must be between 1 and {hit_die or 'the hit die'}")
        self._hp_method = method
        self._hp_roll = roll if method == "roll" else None
        self._emit_state_changed()

    def choose_asi(self, increases: Dict[str, int]) -> None:
        self._asi = {key: int(value) for key, value in increases.items() if value}
        self._feat = None
        self._emit_state_changed()

    def choose_feat(self, slug: Optional[str]) -> None:
        self._feat = slug or None
        self._asi = {}
        self._emit_state_changed()

    @property
    def staged_asi(self) -> Dict[str, int]:
        return dict(self._asi)

    @property
    def staged_feat(self) -> Optional[str]:
        return self._feat

    # ------------------------------------------------------------------
    def _scalar_step_complete(self, step: str) -> bool:
        if step == STEP_CLASS_SELECTION:
            return bool(self.class_slug)
        if step == STEP_HIT_POINTS:
            return self._hp_method is not None or not self.hp_choice_pending
        if step == STEP_ASI_FEAT:
            outstanding = self._outstanding(ChoiceKind.ASI_OR_FEAT)
            if not outstanding and not (self.result and self.result.asi_pending):
                return True
            return bool(self._feat) or bool(validate_ability_increase(self._asi, self.draft.ability_scores))
        return True

    def is_step_complete(self, step: Optional[str] = None) -> bool:
        step = step or self.current_step
        if step in (STEP_CLASS_SELECTION, STEP_HIT_POINTS, STEP_ASI_FEAT, STEP_SUMMARY):
            return self._scalar_step_complete(step)
        return super().is_step_complete(step)

    def _outstanding(self, kind: ChoiceKind) -> List[PendingChoice]:
        return [choice for choice in choices_of_kind(self.choices, kind) if choice.is_outstanding]

    def _character_ref(self) -> Any:
        return self.draft.public_id or self.draft.id

    def _commit_step(self, step: str) -> None:
        if self.draft.id is None:
            raise WizardValidationError("No character is open for level up")
        if step == STEP_CLASS_SELECTION:
            self._apply_level_up()
        elif step == STEP_HIT_POINTS:
            self._save_hit_points()
        elif step == STEP_ASI_FEAT:
            self._save_asi_or_feat()
        elif step in RESOLVED_BY_LEDGER:
            # New spells are additive at level up, so they are committed by resolution alone.
            step_choices = self.choices_for_step(step)
            self._replace_choices(self.sync.resolve_choices(self.draft.id, step_choices, self.ledger))
        elif step == STEP_SUMMARY:
            return

    def _after_commit(self, step: str) -> None:
        if step == STEP_SUMMARY:
            self.close()
            return
        steps = self.steps()
        following = next_step(steps, step) if step in steps else None
        self._enter_step(following or self.resume_step())

    # ------------------------------------------------------------------
    def level_up(self, class_slug: Optional[str] = None) -> bool:
        """Apply the level transition directly, outside of ``confirm``."""

        if class_slug:
            self.class_slug = class_slug
        if self._saving:
            return False
        self._set_saving(True)
        try:
            self._apply_level_up()
        except WizardError as exc:
            logger.error("Level up failed: %s", exc)
            self._set_error(str(exc))
            return False
        finally:
            self._set_saving(False)
        self._enter_step(self.resume_step())
        return True

    def _apply_level_up(self) -> None:
        if not self.class_slug:
            raise WizardValidationError("Choose a class to advance")
        payload = self.api.level_up(self._character_ref(), self.class_slug)
        self.result = LevelUpResult.from_payload(payload)
        self.draft.level = self.result.new_level or self.draft.level + 1
        entry = self.leveling_class()
        if entry is not None:
            entry.level += 1
        logger.info(
            "Character %s advanced from %s to %s in %s",
            self.draft.id,
            self.result.previous_level,
            self.result.new_level,
            self.class_slug,
        )
        self.levelUpApplied.emit()
        self._replace_choices(self.sync.fetch_choices(self.draft.id))

    def _save_hit_points(self) -> None:
        if self._hp_method is None:
            return
        outstanding = self._outstanding(ChoiceKind.HIT_POINTS)
        if not outstanding:
            raise WizardError("No hit point choice is pending")
        payload: Dict[str, Any] = {"selected": [self._hp_method]}
        if self._hp_method == "roll":
            payload["roll_result"] = self._hp_roll
        response = self.sync.resolve_one(self.draft.id, outstanding[0].id, payload)
        if self.result is not None:
            pending = response.get("hp_choice_pending") if isinstance(response, dict) else None
            self.result.hp_choice_pending = pending is True
            if isinstance(response, dict) and response.get("hp_increase") is not None:
                self.result.hp_increase = int(response["hp_increase"])
        self._hp_method = None
        self._hp_roll = None
        self._replace_choices(self.sync.fetch_choices(self.draft.id))

    def _save_asi_or_feat(self) -> None:
        outstanding = self._outstanding(ChoiceKind.ASI_OR_FEAT)
        if not outstanding:
            self._replace_choices(self.sync.fetch_choices(self.draft.id))
            outstanding = self._outstanding(ChoiceKind.ASI_OR_FEAT)
        if not outstanding:
            if self.result is not None and self.result.asi_pending:
                raise WizardError("No ability score improvement choice is pending")
            return
        if self._feat:
            payload: Dict[str, Any] = {"type": "feat", "selected": self._feat}
        else:
            result = validate_ability_increase(self._asi, self.draft.ability_scores)
            if not result:
                raise WizardValidationError("; ".join(result.errors))
            payload = {"type": "asi", "ability_scores": ability_codes(self._asi)}
        self.sync.resolve_one(self.draft.id, outstanding[0].id, payload)
        for ability, amount in self._asi.items():
            self.draft.ability_scores[ability] = self.draft.ability_scores.get(ability, 0) + amount
        self._asi = {}
        self._feat = None
        self._replace_choices(self.sync.fetch_choices(self.draft.id))
        if self.result is not None:
            self.result.asi_pending = bool(self._outstanding(ChoiceKind.ASI_OR_FEAT))
