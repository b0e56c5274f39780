from __future__ import annotations

import logging
from contextlib import contextmanager
from typing import Any, Dict, List, Optional

from PySide6 import QtCore

from .abilities import validate_ability_scores
from .choices import (
    ChoiceKind,
    ChoiceOption,
    PendingChoice,
    display_options,
    find_choice,
    granted_options,
    group_by_source,
    ledger_key,
    parse_choices,
)
from .completion import (
    all_of_kind_complete,
    are_choices_complete,
    choice_complete,
    group_completion,
    scalar_step_complete,
)
from .constants import (
    ABILITY_FIELDS,
    ABILITY_METHODS,
    ABILITY_SCORES,
    COLLECTION_EQUIPMENT,
    COLLECTION_SPELLS,
    STEP_ABILITIES,
    STEP_BACKGROUND,
    STEP_CLASS,
    STEP_EQUIPMENT,
    STEP_FEATS,
    STEP_FEATURE_CHOICES,
    STEP_LANGUAGES,
    STEP_NAME,
    STEP_PROFICIENCIES,
    STEP_RACE,
    STEP_REVIEW,
    STEP_SPELLS,
    STEP_SUBCLASS,
    STEP_SUBRACE,
)
from .data.client import CharacterApi
from .data.reference import slug_from_ref
from .data.repository import ReferenceRepository
from .errors import ApiError, CollectionReplaceError, WizardError, WizardValidationError
from .ledger import EquipmentLedger, SelectionLedger
from .models import ClassEntry, DraftCharacter
from .steps import creation_steps, next_step, previous_step, progress_percent, step_kinds
from .sync import CharacterSynchronizer, equipment_items, selection_items

logger = logging.getLogger(__name__)


class WizardSession(QtCore.QObject):
    """Step navigation, pending choices and the selection ledgers shared by both wizards."""

    stateChanged = QtCore.Signal()
    choicesChanged = QtCore.Signal()
    stepChanged = QtCore.Signal(str)
    savingChanged = QtCore.Signal()
    errorOccurred = QtCore.Signal(str)
    messageEmitted = QtCore.Signal(str)

    def __init__(
        self,
        api: CharacterApi,
        repository: Optional[ReferenceRepository] = None,
        parent: Optional[QtCore.QObject] = None,
    ) -> None:
        super().__init__(parent)
        self.api = api
        self.reference = repository or ReferenceRepository(api)
        self.sync = CharacterSynchronizer(api)
        self.draft = DraftCharacter()
        self.choices: List[PendingChoice] = []
        self.ledger = SelectionLedger()
        self.equipment_ledger = EquipmentLedger()
        self.current_step = ""
        self.error: Optional[str] = None
        self._saving = False
        self._fetched_options: Dict[str, List[Any]] = {}
        self._signal_suppression = 0

    # ------------------------------------------------------------------
    # Overridden by each wizard
    def steps(self) -> List[str]:
        raise NotImplementedError

    def _commit_step(self, step: str) -> None:
        raise NotImplementedError

    def _scalar_step_complete(self, step: str) -> bool:
        return True

    def _after_commit(self, step: str) -> None:
        self._enter_step(next_step(self.steps(), step) or step)

    # ------------------------------------------------------------------
    @property
    def is_saving(self) -> bool:
        return self._saving

    @property
    def can_continue(self) -> bool:
        return not self._saving and self.is_step_complete()

    def progress_percent(self) -> int:
        return progress_percent(self.steps(), self.current_step)

    def is_step_complete(self, step: Optional[str] = None) -> bool:
        step = step or self.current_step
        if not self._scalar_step_complete(step):
            return False
        return are_choices_complete(self.choices, step_kinds(step), self.ledger, self.equipment_ledger)

    # ------------------------------------------------------------------
    # Pending choices
    def fetch_choices(self, choice_type: Optional[str] = None) -> bool:
        """Refresh the pending list; a failure keeps the previous list."""

        if self.draft.id is None:
            return False
        try:
            fetched = parse_choices(self.api.pending_choices(self.draft.id, choice_type))
        except ApiError as exc:
            logger.warning("Fetching pending choices failed: %s", exc)
            self._set_error(str(exc))
            return False
        if choice_type:
            fetched_ids = {choice.id for choice in fetched}
            kept = [c for c in self.choices if c.type != choice_type and c.id not in fetched_ids]
            fetched = kept + fetched
        self._replace_choices(fetched)
        return True

    def _replace_choices(self, choices: List[PendingChoice]) -> None:
        self.choices = choices
        if self._signal_suppression == 0:
            self.choicesChanged.emit()

    def choice(self, key: str) -> Optional[PendingChoice]:
        return find_choice(self.choices, key)

    def choices_for_step(self, step: Optional[str] = None) -> List[PendingChoice]:
        kinds = step_kinds(step or self.current_step)
        return [choice for choice in self.choices if choice.kind in kinds]

    def choices_by_source(self, step: Optional[str] = None) -> Dict[str, List[PendingChoice]]:
        return group_by_source(self.choices_for_step(step))

    def fetch_options(self, choice: PendingChoice) -> List[Any]:
        if not choice.needs_option_fetch:
            return list(choice.options)
        if choice.id not in self._fetched_options:
            try:
                self._fetched_options[choice.id] = self.api.fetch_options(choice.options_endpoint or "")
            except ApiError as exc:
                logger.warning("Could not load options for %s: %s", choice.id, exc)
                return []
        return list(self._fetched_options[choice.id])

    def options_for(self, key: str) -> List[ChoiceOption]:
        choice = self.choice(key)
        if choice is None:
            return []
        fetched = self.fetch_options(choice) if choice.needs_option_fetch else None
        return display_options(choice, fetched)

    def is_group_complete(self, key: str) -> bool:
        choice = self.choice(key)
        if choice is None:
            return True
        return choice_complete(choice, self.ledger, self.equipment_ledger)

    def group_completion(self, step: Optional[str] = None) -> Dict[str, bool]:
        """Completion of every choice group on ``step``, keyed by choice id."""

        return group_completion(self.choices_for_step(step), self.ledger, self.equipment_ledger)

    def all_of_kind_complete(self, kind: ChoiceKind) -> bool:
        return all_of_kind_complete(self.choices, kind, self.ledger, self.equipment_ledger)

    def undo_choice(self, key: str) -> bool:
        choice = self.choice(key)
        if choice is None or self.draft.id is None:
            return False
        try:
            self.api.undo_choice(self.draft.id, choice.id)
        except ApiError as exc:
            self._set_error(str(exc))
            return False
        self.ledger.discard(ledger_key(choice))
        self.equipment_ledger.discard(choice.id)
        return self.fetch_choices()

    # ------------------------------------------------------------------
    # Local selection ledger
    def toggle_option(self, key: str, option_id: str) -> bool:
        choice = self.choice(key)
        if choice is None:
            return False
        changed = self.ledger.toggle(
            ledger_key(choice),
            option_id,
            choice.quantity,
            initial=choice.selected,
            granted=granted_options(choice),
        )
        if changed:
            self._emit_state_changed()
        return changed

    def set_option(self, key: str, option_id: Optional[str]) -> None:
        choice = self.choice(key)
        if choice is None:
            return
        self.ledger.set(ledger_key(choice), option_id)
        self._emit_state_changed()

    def is_option_selected(self, key: str, option_id: str) -> bool:
        choice = self.choice(key)
        if choice is None:
            return False
        lkey = ledger_key(choice)
        if lkey in self.ledger:
            return self.ledger.is_selected(lkey, option_id)
        return option_id in choice.selected

    def is_option_taken_elsewhere(self, key: str, option_id: str) -> bool:
        choice = self.choice(key)
        if choice is None:
            return False
        return option_id in granted_options(choice) or self.ledger.selected_elsewhere(option_id, ledger_key(choice))

    def select_equipment_option(self, key: str, option: str) -> None:
        choice = self.choice(key)
        if choice is None:
            return
        self.equipment_ledger.select_option(choice.id, option)
        self._emit_state_changed()

    def select_equipment_item(self, key: str, option: str, index: int, slug: Optional[str]) -> None:
        choice = self.choice(key)
        if choice is None:
            return
        self.equipment_ledger.select_item(choice.id, option, index, slug)
        self._emit_state_changed()

    # ------------------------------------------------------------------
    # Navigation
    def confirm(self) -> bool:
        """Commit the current step and advance. Ignored while a save is in flight."""

        if self._saving:
            logger.debug("Ignoring confirm on %s while saving", self.current_step)
            return False
        step = self.current_step
        if not self.is_step_complete(step):
            self.messageEmitted.emit("Finish the choices on this step before continuing.")
            return False
        self._set_saving(True)
        self._clear_error()
        try:
            self._commit_step(step)
        except WizardError as exc:
            logger.error("Saving step %s failed: %s", step, exc)
            self._set_error(str(exc))
            return False
        finally:
            self._set_saving(False)
        self._after_commit(step)
        return True

    def go_back(self) -> bool:
        if self._saving:
            return False
        previous = previous_step(self.steps(), self.current_step)
        if previous is None:
            return False
        self._enter_step(previous)
        return True

    def go_to(self, step: str) -> bool:
        if self._saving or step not in self.steps():
            return False
        self._enter_step(step)
        return True

    def _enter_step(self, step: str) -> None:
        self.ledger.clear()
        self.equipment_ledger.clear()
        self._clear_error()
        changed = step != self.current_step
        self.current_step = step
        if changed and self._signal_suppression == 0:
            self.stepChanged.emit(step)
        self._emit_state_changed()

    # ------------------------------------------------------------------
    def _set_saving(self, saving: bool) -> None:
        self._saving = saving
        self.draft.loading = saving
        if self._signal_suppression == 0:
            self.savingChanged.emit()

    def _set_error(self, message: str) -> None:
        self.error = message
        self.draft.error = message
        self.errorOccurred.emit(message)

    def _clear_error(self) -> None:
        self.error = None
        self.draft.error = None

    def _emit_state_changed(self) -> None:
        if self._signal_suppression == 0:
            self.stateChanged.emit()

    @contextmanager
    def _suspend_signals(self):
        self._signal_suppression += 1
        try:
            yield
        finally:
            self._signal_suppression = max(0, self._signal_suppression - 1)

    def _reset_local(self) -> None:
        self.draft.reset()
        self.choices = []
        self.ledger.clear()
        self.equipment_ledger.clear()
        self._fetched_options.clear()
        self.error = None
        self._saving = False


class CharacterWizardViewModel(WizardSession):
    """Level-1 character creation."""

    wizardFinished = QtCore.Signal()

    def __init__(
        self,
        api: CharacterApi,
        repository: Optional[ReferenceRepository] = None,
        parent: Optional[QtCore.QObject] = None,
    ) -> None:
        super().__init__(api, repository, parent)
        self.current_step = STEP_NAME

    def steps(self) -> List[str]:
        return creation_steps(self.draft, self.choices)

    @property
    def is_complete(self) -> bool:
        if self.draft.status == "complete":
            return True
        return self.draft.summary.get("creation_complete") is True

    def _scalar_step_complete(self, step: str) -> bool:
        return scalar_step_complete(step, self.draft)

    # ------------------------------------------------------------------
    # Local edits
    def set_name(self, name: str) -> None:
        self.draft.name = name.strip()
        self._emit_state_changed()

    def select_race(self, slug: str) -> bool:
        try:
            race = self.reference.race(slug)
        except WizardError as exc:
            self._set_error(str(exc))
            return False
        if self.draft.race is None or self.draft.race.slug != race.slug:
            self.draft.race = race
            self.draft.subrace = None
        self._emit_state_changed()
        return True

    def select_subrace(self, slug: Optional[str]) -> bool:
        race = self.draft.race
        if race is None:
            return False
        if slug is None:
            self.draft.subrace = None
        else:
            subrace = race.subraces.get(slug)
            if subrace is None:
                self.messageEmitted.emit(f"{race.name} has no subrace {slug}")
                return False
            self.draft.subrace = subrace
        self._emit_state_changed()
        return True

    def select_class(self, slug: str) -> bool:
        current = self.draft.primary_class
        if current is not None and current.slug == slug:
            return True
        try:
            class_data = self.reference.character_class(slug)
        except WizardError as exc:
            self._set_error(str(exc))
            return False
        self.draft.set_single_class(class_data)
        self._emit_state_changed()
        return True

    def select_subclass(self, slug: Optional[str]) -> bool:
        entry = self.draft.primary_class
        if entry is None:
            return False
        if slug is None:
            entry.subclass = None
        else:
            subclass = entry.class_data.subclasses.get(slug)
            if subclass is None:
                self.messageEmitted.emit(f"{entry.class_data.name} has no subclass {slug}")
                return False
            entry.subclass = subclass
        self._emit_state_changed()
        return True

    def set_ability_method(self, method: str) -> None:
        if method not in ABILITY_METHODS:
            raise ValueError(f"Unknown ability score method: {method}")
        self.draft.ability_method = method
        self._emit_state_changed()

    def set_ability_score(self, ability: str, value: int) -> None:
        if ability not in ABILITY_SCORES:
            raise ValueError(f"Unknown ability: {ability}")
        self.draft.ability_scores[ability] = int(value)
        self._emit_state_changed()

    def set_ability_scores(self, scores: Dict[str, int]) -> None:
        with self._suspend_signals():
            for ability, value in scores.items():
                self.set_ability_score(ability, value)
        self._emit_state_changed()

    def select_background(self, slug: str) -> bool:
        try:
            self.draft.background = self.reference.background(slug)
        except WizardError as exc:
            self._set_error(str(exc))
            return False
        self._emit_state_changed()
        return True

    # ------------------------------------------------------------------
    # Commit
    def _commit_step(self, step: str) -> None:
        draft = self.draft
        if step == STEP_NAME:
            self._save_name()
            return
        if draft.id is None:
            raise WizardValidationError("Save a name before continuing")

        if step == STEP_RACE:
            self.sync.patch(draft.id, {"race_id": draft.race.id})
        elif step == STEP_SUBRACE:
            target = draft.subrace or draft.race
            self.sync.patch(draft.id, {"race_id": target.id})
        elif step == STEP_CLASS:
            self._save_class()
        elif step == STEP_SUBCLASS:
            entry = draft.primary_class
            self.sync.set_subclass(draft.id, entry.class_data.id, entry.subclass.id)
            self._resolve_step_choices(step)
        elif step == STEP_ABILITIES:
            self._save_abilities()
        elif step == STEP_BACKGROUND:
            self.sync.patch(draft.id, {"background_id": draft.background.id})
        elif step == STEP_EQUIPMENT:
            self._save_equipment()
            return
        elif step == STEP_SPELLS:
            self._save_spells()
            return
        elif step in (STEP_FEATS, STEP_PROFICIENCIES, STEP_FEATURE_CHOICES, STEP_LANGUAGES):
            self._resolve_step_choices(step)
            return
        elif step == STEP_REVIEW:
            self.sync_with_backend()
            return
        self._refresh_choices()
        self.sync_with_backend()

    def _after_commit(self, step: str) -> None:
        if step == STEP_REVIEW:
            self._emit_state_changed()
            if self.is_complete:
                self.wizardFinished.emit()
            return
        super()._after_commit(step)

    def _save_name(self) -> None:
        draft = self.draft
        if draft.id is None:
            created = self.api.create_character(draft.name)
            if created.get("id") is None:
                raise ApiError("Character creation returned no id", method="POST", path="/characters")
            draft.id = created["id"]
            draft.public_id = created.get("public_id") or created.get("publicId")
            draft.status = created.get("status") or "draft"
            logger.info("Created draft character %s", draft.id)
        else:
            self.sync.patch(draft.id, {"name": draft.name})

    def _save_class(self) -> None:
        draft = self.draft
        entry = draft.primary_class
        if entry.entry_id is not None:
            return
        self.sync.replace_class(draft.id, entry.class_data.id)
        entry.entry_id = entry.class_data.id

    def _save_abilities(self) -> None:
        draft = self.draft
        result = validate_ability_scores(draft.ability_scores, draft.ability_method)
        if not result:
            raise WizardValidationError("; ".join(result.errors))
        fields: Dict[str, Any] = {"ability_score_method": draft.ability_method}
        for ability in ABILITY_SCORES:
            fields[ABILITY_FIELDS[ability]] = draft.ability_scores[ability]
        self.sync.patch(draft.id, fields)
        if self.choices_for_step(STEP_ABILITIES):
            self._resolve_step_choices(STEP_ABILITIES)

    def _save_equipment(self) -> None:
        draft = self.draft
        step_choices = self.choices_for_step(STEP_EQUIPMENT)
        if len(self.equipment_ledger):
            items = equipment_items(step_choices, self.equipment_ledger)
            draft.equipment = self._replace(COLLECTION_EQUIPMENT, items)
            self._replace_choices(self.sync.resolve_equipment(draft.id, step_choices, self.equipment_ledger))
        self.sync_with_backend()

    def _save_spells(self) -> None:
        draft = self.draft
        step_choices = self.choices_for_step(STEP_SPELLS)
        if any(ledger_key(choice) in self.ledger for choice in step_choices):
            items = selection_items(step_choices, self.ledger, (ChoiceKind.SPELL,))
            draft.spells = self._replace(COLLECTION_SPELLS, items)
            self._resolve_step_choices(STEP_SPELLS)
        self.sync_with_backend()

    def _replace(self, collection: str, items) -> List[dict]:
        try:
            return self.sync.replace_collection(self.draft.id, collection, items)
        except CollectionReplaceError as exc:
            setattr(self.draft, collection, exc.rows)
            self._emit_state_changed()
            raise

    def _resolve_step_choices(self, step: str) -> None:
        resolved = self.sync.resolve_choices(self.draft.id, self.choices_for_step(step), self.ledger)
        self._replace_choices(resolved)

    def _refresh_choices(self) -> None:
        self._replace_choices(self.sync.fetch_choices(self.draft.id))

    # ------------------------------------------------------------------
    # Backend state
    def sync_with_backend(self) -> None:
        """Refresh derived stats and the validation summary; failures keep the old values."""

        if self.draft.id is None:
            return
        try:
            self.draft.stats = self.api.stats(self.draft.id)
            self.draft.summary = self.api.summary(self.draft.id)
        except ApiError as exc:
            logger.warning("Syncing character %s with backend failed: %s", self.draft.id, exc)
            return
        status = self.draft.summary.get("status")
        if status:
            self.draft.status = status
        self._emit_state_changed()

    def load_character(self, character_id: int) -> bool:
        """Populate the draft from a persisted level-1 character."""

        try:
            payload = self.api.get_character(character_id)
        except ApiError as exc:
            self._set_error(str(exc))
            return False
        level = int(payload.get("level") or 1)
        if level > 1:
            message = f"{payload.get('name') or 'This character'} is level {level}; use level up instead"
            self._set_error(message)
            raise WizardValidationError(message)

        with self._suspend_signals():
            self._reset_local()
            try:
                self._populate(payload)
                self.draft.equipment = self.api.list_collection(character_id, COLLECTION_EQUIPMENT)
                self.draft.spells = self.api.list_collection(character_id, COLLECTION_SPELLS)
            except WizardError as exc:
                self._set_error(str(exc))
                return False
            self.fetch_choices()
            self.sync_with_backend()
            self._enter_step(self.first_incomplete_step())
        self.choicesChanged.emit()
        self.stepChanged.emit(self.current_step)
        self._emit_state_changed()
        return True

    def _populate(self, payload: dict) -> None:
        draft = self.draft
        draft.id = payload.get("id")
        draft.public_id = payload.get("public_id") or payload.get("publicId")
        draft.name = payload.get("name") or ""
        draft.level = int(payload.get("level") or 1)
        draft.status = payload.get("status") or "draft"
        method = payload.get("ability_score_method")
        if method in ABILITY_METHODS:
            draft.ability_method = method
        for ability in ABILITY_SCORES:
            value = payload.get(ABILITY_FIELDS[ability])
            if isinstance(value, int):
                draft.ability_scores[ability] = value

        race_ref = payload.get("race")
        if isinstance(race_ref, dict):
            parent_slug = slug_from_ref(race_ref.get("parent_race"))
            if parent_slug:
                draft.race = self.reference.race(parent_slug)
                draft.subrace = draft.race.subraces.get(slug_from_ref(race_ref) or "")
            elif slug_from_ref(race_ref):
                draft.race = self.reference.race(slug_from_ref(race_ref))

        background_slug = slug_from_ref(payload.get("background"))
        if background_slug:
            draft.background = self.reference.background(background_slug)

        class_rows = payload.get("classes")
        if not isinstance(class_rows, list):
            class_rows = self.api.list_classes(draft.id)
        for order, row in enumerate(row for row in class_rows if isinstance(row, dict)):
            slug = slug_from_ref(row.get("class"))
            if not slug:
                continue
            class_data = self.reference.character_class(slug)
            draft.classes.append(
                ClassEntry(
                    class_data=class_data,
                    subclass=class_data.subclasses.get(slug_from_ref(row.get("subclass")) or ""),
                    level=int(row.get("level") or 1),
                    is_primary=row.get("is_primary") is True or order == 0,
                    order=int(row.get("order", order)),
                    entry_id=class_data.id,
                )
            )

    def first_incomplete_step(self) -> str:
        for step in self.steps():
            if step == STEP_REVIEW:
                break
            if step in (
                STEP_EQUIPMENT,
                STEP_SPELLS,
                STEP_FEATS,
                STEP_PROFICIENCIES,
                STEP_FEATURE_CHOICES,
                STEP_LANGUAGES,
            ):
                if any(choice.is_outstanding for choice in self.choices_for_step(step)):
                    return step
                continue
            if not self.is_step_complete(step):
                return step
        return STEP_REVIEW

    def reset(self) -> None:
        """Discard local state. The remote draft, if any, is left for its owner to delete."""

        self._reset_local()
        self.current_step = STEP_NAME
        self.stepChanged.emit(self.current_step)
        self.choicesChanged.emit()
        self._emit_state_changed()
